from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone as django_timezone

from ..models import Appointment, PatientPurchase, PaymentConfirmation, Product, Profile, Transaction
from . import ledger, wallet
from .commission import resolve_commission_rate, split_amount, to_money
from .errors import (
    AlreadyCancelled,
    ConflictError,
    NotFoundError,
    PaymentRequired,
    PersistenceError,
    ProductNotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _metadata_product_id(payment: PaymentConfirmation) -> int:
    metadata = payment.metadata if isinstance(payment.metadata, dict) else {}
    raw = metadata.get("product_id") or metadata.get("productId")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError({"payment_reference": "Payment does not reference a product."}) from exc


def _active_purchase(patient_id: int, product_id: int) -> PatientPurchase | None:
    return PatientPurchase.objects.filter(
        patient_id=patient_id,
        product_id=product_id,
        status=PatientPurchase.Status.ACTIVE,
    ).first()


def _create_purchase(payment: PaymentConfirmation, product: Product) -> PatientPurchase:
    now = django_timezone.now()
    # Purchases are always settled at the first-visit rate.
    split = split_amount(payment.amount, resolve_commission_rate(product, Appointment.VisitType.FIRST))

    purchase = PatientPurchase.objects.create(
        patient_id=payment.patient_id,
        product=product,
        total_paid=to_money(payment.amount),
        platform_fee=split.platform_fee,
        professional_pool=split.professional_earning,
        status=PatientPurchase.Status.ACTIVE,
        expires_at=now + timedelta(days=product.validity_days) if product.validity_days else None,
    )
    entries = wallet.create_entries_for_purchase(purchase, product.services.all())

    ledger.record_transaction(
        transaction_type=Transaction.TransactionType.PLAN_PURCHASE,
        patient=payment.patient,
        purchase=purchase,
        amount=purchase.total_paid,
        split=split,
        payment_method=payment.provider,
    )

    payment.purchase = purchase
    payment.spent_at = now
    payment.save(update_fields=["purchase", "spent_at", "updated_at"])

    Profile.objects.filter(pk=payment.patient_id).update(is_subscribed=True, updated_at=now)
    logger.info(
        "Purchase %s confirmed for patient %s: product=%s total=%s platform=%s pool=%s entries=%s.",
        purchase.pk,
        payment.patient_id,
        product.pk,
        purchase.total_paid,
        purchase.platform_fee,
        purchase.professional_pool,
        len(entries),
    )
    return purchase


def confirm_plan_purchase(payment: PaymentConfirmation) -> tuple[PatientPurchase, bool]:
    """Turn a captured payment into an active purchase with its wallet.

    Returns ``(purchase, already_confirmed)``. Replays of the same payment, or
    a payment for a product the patient already holds an active purchase of,
    return the existing purchase without writing anything.
    """
    if not payment.is_captured:
        raise PaymentRequired("Payment was not captured.")
    product_id = _metadata_product_id(payment)

    try:
        with transaction.atomic():
            payment = (
                PaymentConfirmation.objects.select_for_update()
                .select_related("patient", "purchase")
                .get(pk=payment.pk)
            )
            if payment.purchase_id:
                return payment.purchase, True
            if payment.appointment_id:
                raise ConflictError("Payment has already been used for an appointment.")

            existing = _active_purchase(payment.patient_id, product_id)
            if existing is not None:
                logger.info(
                    "Patient %s already holds active purchase %s of product %s.",
                    payment.patient_id,
                    existing.pk,
                    product_id,
                )
                return existing, True

            product = Product.objects.filter(pk=product_id, is_active=True).first()
            if product is None:
                raise ProductNotFound()

            return _create_purchase(payment, product), False
    except (IntegrityError, DjangoValidationError) as exc:
        existing = _active_purchase(payment.patient_id, product_id)
        if existing is not None:
            logger.info("Concurrent confirmation for patient %s resolved to purchase %s.", payment.patient_id, existing.pk)
            return existing, True
        logger.exception("Purchase confirmation for payment %s failed.", payment.reference)
        raise PersistenceError() from exc
    except DatabaseError as exc:
        logger.exception("Purchase confirmation for payment %s failed.", payment.reference)
        raise PersistenceError() from exc


def _end_purchase(purchase: PatientPurchase, status: str) -> PatientPurchase:
    now = django_timezone.now()
    purchase.status = status
    purchase.ended_at = now
    purchase.save(update_fields=["status", "ended_at", "updated_at"])

    locked = wallet.lock_entries_for_purchase(purchase.pk)

    still_subscribed = PatientPurchase.objects.filter(
        patient_id=purchase.patient_id,
        status=PatientPurchase.Status.ACTIVE,
    ).exists()
    if not still_subscribed:
        Profile.objects.filter(pk=purchase.patient_id).update(is_subscribed=False, updated_at=now)

    logger.info(
        "Purchase %s %s: locked %s wallet entries, patient %s subscribed=%s.",
        purchase.pk,
        status,
        locked,
        purchase.patient_id,
        still_subscribed,
    )
    return purchase


def _locked_purchase(purchase_id: Any, **filters) -> PatientPurchase:
    try:
        purchase = PatientPurchase.objects.select_for_update().filter(pk=int(purchase_id), **filters).first()
    except (TypeError, ValueError):
        purchase = None
    if purchase is None:
        raise NotFoundError("Purchase not found.")
    if purchase.status != PatientPurchase.Status.ACTIVE:
        raise AlreadyCancelled()
    return purchase


@transaction.atomic
def cancel_plan(patient_id: int, purchase_id: Any) -> PatientPurchase:
    purchase = _locked_purchase(purchase_id, patient_id=patient_id)
    return _end_purchase(purchase, PatientPurchase.Status.CANCELLED)


@transaction.atomic
def expire_plan(purchase_id: Any) -> PatientPurchase:
    purchase = _locked_purchase(purchase_id)
    return _end_purchase(purchase, PatientPurchase.Status.EXPIRED)


def due_for_expiry(now: datetime | None = None):
    now = now or django_timezone.now()
    return PatientPurchase.objects.filter(
        status=PatientPurchase.Status.ACTIVE,
        expires_at__isnull=False,
        expires_at__lte=now,
    ).order_by("expires_at", "id")


def expire_due_purchases(now: datetime | None = None) -> list[int]:
    expired: list[int] = []
    for purchase_id in list(due_for_expiry(now).values_list("pk", flat=True)):
        try:
            expire_plan(purchase_id)
        except AlreadyCancelled:
            logger.info("Purchase %s ended before it could expire.", purchase_id)
            continue
        expired.append(purchase_id)
    return expired
