from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone as django_timezone

from ..models import Appointment, PaymentConfirmation, Profile, ServiceType, Transaction, WalletEntry
from . import gating, ledger, payments, wallet
from .commission import (
    ZERO,
    CommissionSplit,
    calculate_commission,
    completion_commission,
    default_commission,
    to_money,
)
from .entitlements import can_book_service, is_first_visit
from .errors import (
    ConflictError,
    NotFoundError,
    PaymentRequired,
    PersistenceError,
    ProductNotFound,
    ServiceLocked,
    ValidationError,
    as_validation_error,
)

logger = logging.getLogger(__name__)

SPECIALITY_SERVICE_TYPES = {
    "neurologist": ServiceType.NEUROLOGY,
    "physiotherapist": ServiceType.PHYSIOTHERAPY,
    "psychologist": ServiceType.PSYCHOLOGY,
    "nutritionist": ServiceType.NUTRITION,
    "coach": ServiceType.COACHING,
}
TIME_FORMATS = ("%H:%M", "%H:%M:%S")
SLOT_BLOCKING_STATUSES = (Appointment.Status.ACCEPTED, Appointment.Status.COMPLETED)
ALLOWED_TRANSITIONS = {
    Appointment.Status.PENDING: {
        Appointment.Status.ACCEPTED,
        Appointment.Status.REJECTED,
        Appointment.Status.CANCELLED,
        Appointment.Status.COMPLETED,
    },
    Appointment.Status.ACCEPTED: {
        Appointment.Status.REJECTED,
        Appointment.Status.CANCELLED,
        Appointment.Status.COMPLETED,
    },
}


@dataclass
class BookingRequest:
    doctor_id: Any
    date: Any
    time: Any
    appointment_for: str
    service_type: str | None = None
    reason: str = ""
    notes: str = ""
    payment_method: str = ""
    payment_reference: str = ""


@dataclass(frozen=True)
class BookingResult:
    appointment: Appointment

    def as_dict(self) -> dict[str, Any]:
        return {
            "appointment_id": self.appointment.pk,
            "fee": str(self.appointment.fee),
            "consumed_from_plan": self.appointment.consumed_from_plan,
            "service_type": self.appointment.service_type,
            "visit_type": self.appointment.visit_type,
            "status": self.appointment.status,
        }


def parse_appointment_date(value: Any) -> date:
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        try:
            value = datetime.strptime(str(value or "").strip(), "%Y-%m-%d").date()
        except ValueError as exc:
            raise ValidationError({"date": "Date must use the YYYY-MM-DD format."}) from exc

    if value < django_timezone.localdate():
        raise ValidationError({"date": "Appointments cannot be booked in the past."})
    return value


def parse_appointment_time(value: Any) -> time:
    """Accept ``HH:MM``, ``HH:MM:SS`` or a ``HH:MM - HH:MM`` range (start is kept)."""
    if isinstance(value, time):
        return value

    raw = str(value or "").strip()
    if "-" in raw:
        raw = raw.split("-", 1)[0].strip()

    for time_format in TIME_FORMATS:
        try:
            return datetime.strptime(raw, time_format).time()
        except ValueError:
            continue
    raise ValidationError({"time": "Time must use HH:MM, HH:MM:SS or 'HH:MM - HH:MM'."})


def resolve_service_type(doctor: Profile, requested: str | None) -> str:
    requested = str(requested or "").strip().lower()
    if requested:
        if requested not in ServiceType.values:
            raise ValidationError({"service_type": f"Unknown service type '{requested}'."})
        return requested

    service_type = SPECIALITY_SERVICE_TYPES.get((doctor.speciality or "").strip().lower())
    if service_type is None:
        raise ValidationError(
            {"service_type": "service_type is required for this doctor's speciality."}
        )
    return service_type


def _get_active_doctor(doctor_id: Any) -> Profile:
    try:
        doctor = Profile.objects.filter(
            pk=int(doctor_id),
            role=Profile.Role.DOCTOR,
            is_active=True,
        ).first()
    except (TypeError, ValueError):
        doctor = None
    if doctor is None:
        raise NotFoundError("Doctor not found.")
    return doctor


def _claim_slot(patient: Profile, doctor: Profile, appointment_date: date, appointment_time: time) -> None:
    slot = Appointment.objects.select_for_update().filter(
        doctor=doctor,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
    )
    if slot.filter(status__in=SLOT_BLOCKING_STATUSES).exists():
        raise ConflictError("The doctor already has a confirmed appointment at this time.")

    stale = slot.filter(patient=patient, status=Appointment.Status.PENDING).update(
        status=Appointment.Status.CANCELLED,
        updated_at=django_timezone.now(),
    )
    if stale:
        logger.info(
            "Cancelled %s stale pending booking(s) of patient %s with doctor %s at %s %s.",
            stale,
            patient.pk,
            doctor.pk,
            appointment_date,
            appointment_time,
        )


def _plan_split(appointment: Appointment, amount: Decimal) -> CommissionSplit:
    if not appointment.product_id:
        return default_commission(amount)
    try:
        return calculate_commission(appointment.product_id, appointment.visit_type, amount)
    except ProductNotFound:
        logger.warning(
            "Product %s is no longer active; settling appointment %s with the default rate.",
            appointment.product_id,
            appointment.pk,
        )
        return default_commission(amount)


def _book_from_wallet(patient: Profile, doctor: Profile, entry: WalletEntry, **fields) -> Appointment:
    service_type = fields["service_type"]
    entry_id = wallet.consume(entry.purchase_id, service_type)

    appointment = Appointment.objects.create(
        patient=patient,
        doctor=doctor,
        fee=ZERO,
        payment_method=Appointment.WALLET_PAYMENT_METHOD,
        consumed_from_plan=True,
        visit_type=(
            Appointment.VisitType.FIRST
            if is_first_visit(patient.pk, doctor.pk, service_type)
            else Appointment.VisitType.FOLLOWUP
        ),
        purchase_id=entry.purchase_id,
        wallet_entry_id=entry_id,
        **fields,
    )

    split = _plan_split(appointment, ZERO)
    ledger.record_transaction(
        transaction_type=Transaction.TransactionType.FOLLOWUP_APPOINTMENT,
        patient=patient,
        doctor=doctor,
        appointment=appointment,
        purchase=entry.purchase,
        amount=ZERO,
        split=split,
        payment_method=Appointment.WALLET_PAYMENT_METHOD,
    )
    ledger.credit_doctor_balance(doctor.pk, split.professional_earning)
    logger.info(
        "Appointment %s booked from wallet entry %s (purchase %s, %s).",
        appointment.pk,
        entry_id,
        entry.purchase_id,
        appointment.visit_type,
    )
    return appointment


def _resolve_fee(doctor: Profile, service_type: str) -> Decimal:
    if service_type == ServiceType.GROUP_SESSION:
        return to_money(getattr(settings, "GROUP_SESSION_FEE", Decimal("25.00")))
    if doctor.fee is None:
        raise ValidationError({"doctor_id": "This doctor has no consultation fee configured."})
    return to_money(doctor.fee)


def _ensure_payment_matches(
    payment: PaymentConfirmation,
    doctor: Profile,
    appointment_date: date,
    appointment_time: time,
) -> None:
    """Reject a payment captured for a plan or for a different booking."""
    metadata = payment.metadata if isinstance(payment.metadata, dict) else {}
    if metadata.get("product_id") or metadata.get("productId"):
        raise PaymentRequired("Payment was captured for a plan purchase.")

    booked_doctor = str(metadata.get("doctor_id") or metadata.get("doctorId") or "").strip()
    if booked_doctor and booked_doctor != str(doctor.pk):
        raise PaymentRequired("Payment was captured for another doctor.")

    booked_date = str(metadata.get("date") or "").strip()
    if booked_date and booked_date != appointment_date.isoformat():
        raise PaymentRequired("Payment was captured for another date.")

    booked_time = metadata.get("time")
    if booked_time:
        try:
            same_slot = parse_appointment_time(booked_time) == appointment_time
        except ValidationError:
            same_slot = False
        if not same_slot:
            raise PaymentRequired("Payment was captured for another time slot.")


def _book_with_payment(
    patient: Profile,
    doctor: Profile,
    request: BookingRequest,
    *,
    payment: PaymentConfirmation | None,
    denial_reason: str,
    **fields,
) -> Appointment:
    payment_method = str(request.payment_method or "").strip()
    if not payment_method:
        raise ValidationError({"payment_method": "payment_method is required when no wallet session applies."})

    fee = _resolve_fee(doctor, fields["service_type"])
    if payment is None:
        try:
            payment = payments.get_captured_payment(patient.pk, request.payment_reference)
        except PaymentRequired:
            if denial_reason:
                raise ServiceLocked(f"{denial_reason} A confirmed payment is required to book it now.")
            raise
    elif payment.patient_id != patient.pk or not payment.is_captured:
        raise PaymentRequired()
    _ensure_payment_matches(payment, doctor, fields["appointment_date"], fields["appointment_time"])

    appointment = Appointment.objects.create(
        patient=patient,
        doctor=doctor,
        fee=fee,
        payment_method=payment_method,
        consumed_from_plan=False,
        visit_type=Appointment.VisitType.FOLLOWUP,
        **fields,
    )
    payments.spend_on_appointment(payment, appointment, fee=fee)

    split = default_commission(fee)
    ledger.record_transaction(
        transaction_type=Transaction.TransactionType.APPOINTMENT_PAYMENT,
        patient=patient,
        doctor=doctor,
        appointment=appointment,
        amount=fee,
        split=split,
        payment_method=payment_method,
    )
    ledger.credit_doctor_balance(doctor.pk, split.professional_earning)
    logger.info(
        "Appointment %s booked with payment %s: fee=%s platform=%s doctor=%s.",
        appointment.pk,
        payment.reference,
        fee,
        split.platform_fee,
        split.professional_earning,
    )
    return appointment


def create_appointment(
    patient: Profile,
    request: BookingRequest,
    *,
    payment: PaymentConfirmation | None = None,
) -> BookingResult:
    """Book an appointment and settle it in one transaction.

    A usable wallet session is consumed when one exists; otherwise the booking
    must be backed by a captured payment confirmation. An explicit ``payment``
    always books on the paid path and leaves the wallet untouched. Nothing is
    written when any step fails.
    """
    appointment_date = parse_appointment_date(request.date)
    appointment_time = parse_appointment_time(request.time)
    appointment_for = str(request.appointment_for or "").strip()
    if not appointment_for:
        raise ValidationError({"appointment_for": "appointment_for is required."})

    doctor = _get_active_doctor(request.doctor_id)
    if doctor.pk == patient.pk:
        raise ValidationError({"doctor_id": "You cannot book an appointment with yourself."})
    service_type = resolve_service_type(doctor, request.service_type)

    fields = {
        "appointment_date": appointment_date,
        "appointment_time": appointment_time,
        "appointment_for": appointment_for,
        "reason": request.reason or "",
        "notes": request.notes or "",
        "service_type": service_type,
        "status": Appointment.Status.PENDING,
    }

    try:
        with transaction.atomic():
            _claim_slot(patient, doctor, appointment_date, appointment_time)

            eligibility = None
            if payment is None and service_type != ServiceType.GROUP_SESSION:
                eligibility = can_book_service(patient.pk, service_type)

            if eligibility is not None and eligibility.uses_wallet:
                appointment = _book_from_wallet(patient, doctor, eligibility.wallet_entry, **fields)
            else:
                appointment = _book_with_payment(
                    patient,
                    doctor,
                    request,
                    payment=payment,
                    denial_reason=eligibility.reason if eligibility and eligibility.wallet_entry else "",
                    **fields,
                )
    except DjangoValidationError as exc:
        raise as_validation_error(exc) from exc
    except DatabaseError as exc:
        logger.exception("Booking for patient %s with doctor %s rolled back.", patient.pk, doctor.pk)
        raise PersistenceError() from exc

    return BookingResult(appointment=appointment)


def _get_owned_appointment(appointment_id: Any, **ownership) -> Appointment:
    try:
        appointment = (
            Appointment.objects.select_for_update()
            .select_related("doctor", "patient")
            .filter(pk=int(appointment_id), **ownership)
            .first()
        )
    except (TypeError, ValueError):
        appointment = None
    if appointment is None:
        raise NotFoundError("Appointment not found.")
    return appointment


@transaction.atomic
def accept_appointment(doctor: Profile, appointment_id: Any) -> Appointment:
    appointment = _get_owned_appointment(appointment_id, doctor=doctor)
    if appointment.status != Appointment.Status.PENDING:
        raise ConflictError(f"Only pending appointments can be accepted (status is {appointment.status}).")

    clash = (
        Appointment.objects.filter(
            doctor=doctor,
            appointment_date=appointment.appointment_date,
            appointment_time=appointment.appointment_time,
            status__in=SLOT_BLOCKING_STATUSES,
        )
        .exclude(pk=appointment.pk)
        .exists()
    )
    if clash:
        raise ConflictError("Another appointment is already confirmed at this time.")

    appointment.status = Appointment.Status.ACCEPTED
    appointment.save(update_fields=["status", "updated_at"])
    logger.info("Doctor %s accepted appointment %s.", doctor.pk, appointment.pk)
    return appointment


@transaction.atomic
def cancel_appointment(patient: Profile, appointment_id: Any) -> Appointment:
    """Cancel a pending or accepted appointment. Consumed wallet sessions are not returned."""
    appointment = _get_owned_appointment(appointment_id, patient=patient)
    if appointment.status not in (Appointment.Status.PENDING, Appointment.Status.ACCEPTED):
        raise ConflictError(f"Appointment cannot be cancelled (status is {appointment.status}).")

    appointment.status = Appointment.Status.CANCELLED
    appointment.save(update_fields=["status", "updated_at"])
    logger.info("Patient %s cancelled appointment %s.", patient.pk, appointment.pk)
    return appointment


def settle_completed_appointment(appointment: Appointment) -> Transaction | None:
    """Record the payout of a completed appointment unless it was already settled.

    Runs in its own savepoint; failures are logged and swallowed so the
    completion itself always sticks.
    """
    try:
        with transaction.atomic():
            if Transaction.objects.filter(appointment=appointment).exists():
                logger.info("Appointment %s already settled; skipping.", appointment.pk)
                return None

            if appointment.consumed_from_plan:
                amount = ZERO
                split = _plan_split(appointment, amount)
            elif appointment.fee > 0:
                amount = to_money(appointment.fee)
                split = completion_commission(amount)
            else:
                logger.info("Appointment %s has nothing to settle.", appointment.pk)
                return None

            txn = ledger.record_transaction(
                transaction_type=Transaction.TransactionType.FOLLOWUP_APPOINTMENT,
                patient=appointment.patient,
                doctor=appointment.doctor,
                appointment=appointment,
                purchase=appointment.purchase,
                product_id=appointment.product_id,
                amount=amount,
                split=split,
                payment_method=appointment.payment_method,
            )
            ledger.credit_doctor_balance(appointment.doctor_id, split.professional_earning)
    except Exception:
        logger.exception("Completion settlement failed for appointment %s.", appointment.pk)
        return None

    logger.info(
        "Settled appointment %s at completion: amount=%s platform=%s doctor=%s.",
        appointment.pk,
        txn.amount,
        txn.platform_fee,
        txn.professional_earning,
    )
    return txn


def _complete(appointment: Appointment) -> None:
    settle_completed_appointment(appointment)
    gating.unlock_after_gating_service(appointment)


@transaction.atomic
def update_appointment_status(
    doctor: Profile,
    appointment_id: Any,
    *,
    status: str | None = None,
    notes: str | None = None,
) -> Appointment:
    appointment = _get_owned_appointment(appointment_id, doctor=doctor)
    update_fields: list[str] = []

    if notes is not None:
        appointment.notes = notes
        update_fields.append("notes")

    if status and status != appointment.status:
        if status not in Appointment.Status.values:
            raise ValidationError({"status": f"Unknown status '{status}'."})
        if status not in ALLOWED_TRANSITIONS.get(appointment.status, set()):
            raise ConflictError(f"Cannot move an appointment from {appointment.status} to {status}.")

        appointment.status = status
        update_fields.append("status")
        if status == Appointment.Status.COMPLETED:
            appointment.completed_at = django_timezone.now()
            update_fields.append("completed_at")

    if update_fields:
        try:
            appointment.save(update_fields=[*update_fields, "updated_at"])
        except DjangoValidationError as exc:
            raise as_validation_error(exc) from exc
        logger.info("Doctor %s updated appointment %s: %s.", doctor.pk, appointment.pk, ", ".join(update_fields))

    # Replays of a completion are settled idempotently.
    if appointment.status == Appointment.Status.COMPLETED and status == Appointment.Status.COMPLETED:
        _complete(appointment)
    return appointment
