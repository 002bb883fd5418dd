"""Service entitlement and booking settlement.

Every operation runs inside ``transaction.atomic`` and uses the caller's
connection, so wallet, appointment and ledger writes commit or roll back
together.
"""

from .booking import (
    BookingRequest,
    BookingResult,
    accept_appointment,
    cancel_appointment,
    create_appointment,
    settle_completed_appointment,
    update_appointment_status,
)
from .commission import CommissionSplit, calculate_commission, completion_commission, default_commission
from .entitlements import BookingEligibility, can_book_service, is_first_visit
from .gating import unlock_after_gating_service
from .purchases import cancel_plan, confirm_plan_purchase, expire_due_purchases, expire_plan
from .wallet import build_wallet_summary, consume, find_usable_entry

__all__ = [
    "BookingEligibility",
    "BookingRequest",
    "BookingResult",
    "CommissionSplit",
    "accept_appointment",
    "build_wallet_summary",
    "calculate_commission",
    "can_book_service",
    "cancel_appointment",
    "cancel_plan",
    "completion_commission",
    "confirm_plan_purchase",
    "consume",
    "create_appointment",
    "default_commission",
    "expire_due_purchases",
    "expire_plan",
    "find_usable_entry",
    "is_first_visit",
    "settle_completed_appointment",
    "unlock_after_gating_service",
    "update_appointment_status",
]
