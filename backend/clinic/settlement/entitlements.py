from __future__ import annotations

from dataclasses import dataclass

from ..models import Appointment, ServiceType, WalletEntry
from .wallet import describe_lock, find_usable_entry

NO_SESSIONS_REASON = "No available sessions in wallet for this service."


@dataclass(frozen=True)
class BookingEligibility:
    can_book: bool
    reason: str = ""
    wallet_entry: WalletEntry | None = None

    @property
    def uses_wallet(self) -> bool:
        return self.can_book and self.wallet_entry is not None


def can_book_service(patient_id: int, service_type: str) -> BookingEligibility:
    """Decide whether a wallet session covers this booking.

    Only the stored lock flag is read here; gates are cleared when the gating
    appointment completes.
    """
    if service_type == ServiceType.GROUP_SESSION:
        return BookingEligibility(can_book=True)

    entry = find_usable_entry(patient_id, service_type)
    if entry is None:
        return BookingEligibility(can_book=False, reason=NO_SESSIONS_REASON)
    if entry.is_locked:
        return BookingEligibility(can_book=False, reason=describe_lock(entry), wallet_entry=entry)
    return BookingEligibility(can_book=True, wallet_entry=entry)


def is_first_visit(patient_id: int, doctor_id: int, service_type: str) -> bool:
    return not Appointment.objects.filter(
        patient_id=patient_id,
        doctor_id=doctor_id,
        service_type=service_type,
        status=Appointment.Status.COMPLETED,
    ).exists()
