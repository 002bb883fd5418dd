from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from django.conf import settings
from django.db import transaction
from django.utils import timezone as django_timezone

from ..models import Appointment, PaymentConfirmation, Product, Profile
from .commission import to_money
from .errors import PaymentRequired, ProductNotFound, ValidationError

logger = logging.getLogger(__name__)


def _safe_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


@transaction.atomic
def record_payment_confirmation(
    *,
    reference: str,
    patient: Profile,
    amount: Any,
    status: str = PaymentConfirmation.Status.CAPTURED,
    provider: str = PaymentConfirmation.Provider.GATEWAY,
    currency: str = "USD",
    metadata: dict[str, Any] | None = None,
    raw_payload: dict[str, Any] | None = None,
) -> tuple[PaymentConfirmation, bool]:
    """Upsert a payment confirmation keyed by its gateway reference.

    A captured confirmation never moves back to failed, and redeliveries do not
    touch a confirmation that has already been spent.
    """
    reference = str(reference or "").strip()
    if not reference:
        raise ValidationError({"payment_reference": "Payment reference is required."})

    payment = PaymentConfirmation.objects.select_for_update().filter(reference=reference).first()
    if payment is None:
        payment = PaymentConfirmation.objects.create(
            provider=provider,
            reference=reference,
            patient=patient,
            amount=to_money(amount),
            currency=currency or "USD",
            status=status,
            metadata=_safe_dict(metadata),
            raw_payload=_safe_dict(raw_payload),
        )
        logger.info("Recorded %s payment %s for patient %s.", status, reference, patient.pk)
        return payment, True

    if payment.patient_id != patient.pk:
        raise ValidationError({"payment_reference": "Payment reference belongs to another patient."})

    if payment.is_spent or payment.is_captured:
        logger.info("Payment %s already recorded as %s; keeping it.", reference, payment.status)
        return payment, False

    payment.status = status
    payment.amount = to_money(amount)
    payment.currency = currency or payment.currency
    payment.metadata = _safe_dict(metadata) or payment.metadata
    payment.raw_payload = _safe_dict(raw_payload) or payment.raw_payload
    payment.save(update_fields=["status", "amount", "currency", "metadata", "raw_payload", "updated_at"])
    logger.info("Payment %s moved to %s.", reference, status)
    return payment, False


def get_captured_payment(patient_id: int, reference: str) -> PaymentConfirmation:
    reference = str(reference or "").strip()
    payment = None
    if reference:
        payment = (
            PaymentConfirmation.objects.select_for_update()
            .filter(
                reference=reference,
                patient_id=patient_id,
                status=PaymentConfirmation.Status.CAPTURED,
            )
            .first()
        )
    if payment is None:
        raise PaymentRequired()
    return payment


def resolve_purchase_payment(
    patient: Profile,
    reference: str,
    *,
    product_id: Any = None,
) -> PaymentConfirmation:
    """Captured confirmation for a purchase request, optionally minting a manual one.

    Manual confirmations exist for local development and are only created when
    ``PURCHASE_CONFIRM_ALLOW_MANUAL`` is enabled.
    """
    reference = str(reference or "").strip()
    if not reference:
        raise ValidationError({"payment_reference": "Payment reference is required."})

    existing = PaymentConfirmation.objects.filter(reference=reference).first()
    if existing is not None:
        if existing.patient_id != patient.pk:
            raise PaymentRequired()
        if not existing.is_captured:
            raise PaymentRequired("Payment was not captured.")
        return existing

    if not getattr(settings, "PURCHASE_CONFIRM_ALLOW_MANUAL", False):
        raise PaymentRequired()
    if not product_id:
        raise ValidationError({"product_id": "product_id is required for a manual confirmation."})

    product = Product.objects.filter(pk=product_id, is_active=True).first()
    if product is None:
        raise ProductNotFound()

    logger.warning("Creating manual payment %s for patient %s (product %s).", reference, patient.pk, product.pk)
    payment, _ = record_payment_confirmation(
        reference=reference,
        patient=patient,
        amount=product.price,
        provider=PaymentConfirmation.Provider.MANUAL,
        metadata={"product_id": product.pk},
    )
    return payment


def spend_on_appointment(payment: PaymentConfirmation, appointment: Appointment, *, fee: Decimal) -> None:
    if payment.amount < fee:
        raise PaymentRequired(f"Captured payment of {payment.amount} does not cover the fee of {fee}.")

    now = django_timezone.now()
    updated = PaymentConfirmation.objects.filter(
        pk=payment.pk,
        status=PaymentConfirmation.Status.CAPTURED,
        purchase__isnull=True,
        appointment__isnull=True,
    ).update(appointment=appointment, spent_at=now, updated_at=now)
    if not updated:
        raise PaymentRequired("Payment has already been used.")

    payment.appointment = appointment
    payment.spent_at = now
