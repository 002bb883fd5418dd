from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from django.conf import settings

from ..models import Appointment, Product
from .errors import ProductNotFound

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")

# Completion-time payout for fee-bearing appointments that were not settled at booking.
COMPLETION_PLATFORM_PERCENT = Decimal("20")


@dataclass(frozen=True)
class CommissionSplit:
    platform_fee: Decimal
    professional_earning: Decimal

    @property
    def amount(self) -> Decimal:
        return self.platform_fee + self.professional_earning


def to_money(value: Any) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid monetary amount: {value!r}") from exc
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def split_amount(amount: Any, rate_percent: Any) -> CommissionSplit:
    """Split ``amount`` into platform fee and practitioner earning.

    The fee is rounded to cents first and the earning is derived by
    subtraction, so the two parts always add back up to ``amount``.
    """
    amount = to_money(amount)
    rate = Decimal(str(rate_percent))
    if amount < 0:
        raise ValueError("Amount cannot be negative.")
    if rate < 0 or rate > HUNDRED:
        raise ValueError("Commission rate must be between 0 and 100.")

    platform_fee = (amount * rate / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    return CommissionSplit(platform_fee=platform_fee, professional_earning=amount - platform_fee)


def resolve_commission_rate(product: Product, visit_type: str) -> Decimal:
    if visit_type == Appointment.VisitType.FOLLOWUP and product.followup_commission_percent is not None:
        return product.followup_commission_percent
    return product.platform_commission_percent


def calculate_commission(product_id: int, visit_type: str, amount: Any) -> CommissionSplit:
    product = Product.objects.filter(pk=product_id, is_active=True).first()
    if product is None:
        raise ProductNotFound()
    return split_amount(amount, resolve_commission_rate(product, visit_type))


def default_commission(amount: Any) -> CommissionSplit:
    """Split for settlements with no underlying product (plain doctor-fee bookings)."""
    rate = getattr(settings, "DEFAULT_PLATFORM_COMMISSION_PERCENT", Decimal("20"))
    return split_amount(amount, rate)


def completion_commission(amount: Any) -> CommissionSplit:
    """Fixed 80/20 split applied when a fee-bearing appointment is settled at completion."""
    return split_amount(amount, COMPLETION_PLATFORM_PERCENT)
