from __future__ import annotations

import logging
from typing import Any

from rest_framework.exceptions import APIException

from ..models import PaymentConfirmation
from ..settlement import BookingRequest, confirm_plan_purchase, create_appointment
from ..settlement.errors import PersistenceError
from ..settlement.payments import record_payment_confirmation
from .helpers import (
    _booking_fields,
    _extract_amount,
    _normalize_text,
    _payment_metadata,
    _payment_object,
    _resolve_patient,
)

logger = logging.getLogger(__name__)


def _record_from_payload(data: dict[str, Any], status: str) -> PaymentConfirmation | None:
    payment = _payment_object(data)
    metadata = _payment_metadata(payment)
    reference = _normalize_text(payment.get("id"))
    if not reference:
        logger.warning("Skipping payment webhook without a payment id.")
        return None

    patient = _resolve_patient(metadata)
    if patient is None:
        logger.warning("Skipping payment %s: metadata does not name a known patient.", reference)
        return None

    amount = _extract_amount(payment)
    if amount is None:
        logger.warning("Skipping payment %s: amount is missing or malformed.", reference)
        return None

    confirmation, _ = record_payment_confirmation(
        reference=reference,
        patient=patient,
        amount=amount,
        status=status,
        currency=_normalize_text(payment.get("currency")).upper() or "USD",
        metadata=metadata,
        raw_payload=data,
    )
    return confirmation


def handle_payment_succeeded(data: dict[str, Any]) -> None:
    confirmation = _record_from_payload(data, PaymentConfirmation.Status.CAPTURED)
    if confirmation is None or not confirmation.is_captured:
        return
    if confirmation.is_spent:
        logger.info("Payment %s was already settled.", confirmation.reference)
        return

    metadata = confirmation.metadata if isinstance(confirmation.metadata, dict) else {}
    try:
        if metadata.get("product_id") or metadata.get("productId"):
            purchase, replayed = confirm_plan_purchase(confirmation)
            logger.info(
                "Payment %s settled purchase %s (replayed=%s).",
                confirmation.reference,
                purchase.pk,
                replayed,
            )
            return

        booking = _booking_fields(metadata)
        if booking is None:
            logger.info("Payment %s carries no purchase or booking metadata; kept for later use.", confirmation.reference)
            return

        result = create_appointment(
            confirmation.patient,
            BookingRequest(payment_reference=confirmation.reference, **booking),
            payment=confirmation,
        )
        logger.info("Payment %s settled appointment %s.", confirmation.reference, result.appointment.pk)
    except PersistenceError:
        raise
    except APIException as exc:
        # Business rejections leave the payment unspent so it can be used again.
        logger.warning("Payment %s could not be settled: %s", confirmation.reference, exc.detail)


def handle_payment_failed(data: dict[str, Any]) -> None:
    confirmation = _record_from_payload(data, PaymentConfirmation.Status.FAILED)
    if confirmation is not None:
        logger.info("Payment %s recorded as %s.", confirmation.reference, confirmation.status)


EVENT_HANDLERS: dict[str, Any] = {
    "payment_intent.succeeded": handle_payment_succeeded,
    "payment.succeeded": handle_payment_succeeded,
    "payment_intent.payment_failed": handle_payment_failed,
    "payment.failed": handle_payment_failed,
}
