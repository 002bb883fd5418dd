from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from ..models import Profile
from ..settlement.commission import to_money

MINOR_UNITS = Decimal("100")


def _normalize_text(value: Any) -> str:
    return str(value or "").strip()


def _payment_object(data: dict[str, Any]) -> dict[str, Any]:
    """Gateways wrap the payment either directly in ``data`` or in ``data.object``."""
    nested = data.get("object")
    return nested if isinstance(nested, dict) else data


def _payment_metadata(payment: dict[str, Any]) -> dict[str, Any]:
    metadata = payment.get("metadata")
    return metadata if isinstance(metadata, dict) else {}


def _extract_amount(payment: dict[str, Any]) -> Decimal | None:
    """Amounts arrive in minor units (cents)."""
    raw = payment.get("amount_received")
    if raw in (None, ""):
        raw = payment.get("amount")
    if raw in (None, ""):
        return None
    try:
        return to_money(Decimal(str(raw)) / MINOR_UNITS)
    except (InvalidOperation, ValueError):
        return None


def _resolve_patient(metadata: dict[str, Any]) -> Profile | None:
    patient_id = _normalize_text(metadata.get("patient_id") or metadata.get("patientId"))
    if not patient_id.isdigit():
        return None
    return Profile.objects.filter(pk=int(patient_id), role=Profile.Role.PATIENT).first()


def _booking_fields(metadata: dict[str, Any]) -> dict[str, Any] | None:
    doctor_id = metadata.get("doctor_id") or metadata.get("doctorId")
    date = metadata.get("date")
    time = metadata.get("time")
    if not (doctor_id and date and time):
        return None
    return {
        "doctor_id": doctor_id,
        "date": date,
        "time": time,
        "appointment_for": _normalize_text(metadata.get("appointment_for") or metadata.get("appointmentFor")),
        "service_type": _normalize_text(metadata.get("service_type") or metadata.get("serviceType")) or None,
        "reason": _normalize_text(metadata.get("reason")),
        "notes": _normalize_text(metadata.get("notes")),
        "payment_method": _normalize_text(metadata.get("payment_method")) or "card",
    }
