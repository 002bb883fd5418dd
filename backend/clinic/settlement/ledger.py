from __future__ import annotations

import logging
from decimal import Decimal

from django.db.models import F
from django.utils import timezone as django_timezone

from ..models import Appointment, PatientPurchase, Profile, Transaction
from .commission import CommissionSplit

logger = logging.getLogger(__name__)


def record_transaction(
    *,
    transaction_type: str,
    patient: Profile,
    amount: Decimal,
    split: CommissionSplit,
    doctor: Profile | None = None,
    appointment: Appointment | None = None,
    purchase: PatientPurchase | None = None,
    product_id: int | None = None,
    payment_method: str = "",
) -> Transaction:
    return Transaction.objects.create(
        transaction_type=transaction_type,
        patient=patient,
        doctor=doctor,
        appointment=appointment,
        purchase=purchase,
        product_id=product_id or (purchase.product_id if purchase else None),
        amount=amount,
        platform_fee=split.platform_fee,
        professional_earning=split.professional_earning,
        payment_method=payment_method,
        status=Transaction.Status.PAID,
    )


def credit_doctor_balance(doctor_id: int, amount: Decimal) -> bool:
    if amount <= 0:
        return False

    updated = Profile.objects.filter(pk=doctor_id, role=Profile.Role.DOCTOR).update(
        balance=F("balance") + amount,
        updated_at=django_timezone.now(),
    )
    if updated:
        logger.info("Credited doctor %s balance with %s.", doctor_id, amount)
    else:
        logger.warning("Could not credit balance: profile %s is not a doctor.", doctor_id)
    return bool(updated)
