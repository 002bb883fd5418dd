from __future__ import annotations

import logging
from typing import Any, Iterable

from django.db import transaction
from django.db.models import F, Q, Sum
from django.utils import timezone as django_timezone

from ..models import PatientPurchase, ProductService, ServiceType, UnlockGate, WalletEntry
from .errors import NoAvailableSessions

logger = logging.getLogger(__name__)


def _unexpired(now=None) -> Q:
    now = now or django_timezone.now()
    return Q(purchase__expires_at__isnull=True) | Q(purchase__expires_at__gt=now)


def find_usable_entry(patient_id: int, service_type: str) -> WalletEntry | None:
    """Oldest entry with sessions left on an active purchase, unlocked entries first."""
    return (
        WalletEntry.objects.select_related("purchase")
        .filter(
            _unexpired(),
            patient_id=patient_id,
            service_type=service_type,
            remaining_sessions__gt=0,
            purchase__status=PatientPurchase.Status.ACTIVE,
        )
        .order_by("is_locked", "created_at", "id")
        .first()
    )


@transaction.atomic
def consume(purchase_id: int, service_type: str) -> int:
    """Take one session from the purchase's wallet and return the entry id.

    The decrement is a conditional UPDATE guarded on the balance, the lock
    flag and the purchase status, so two concurrent callers can never both
    take the last session.
    """
    candidate_ids = list(
        WalletEntry.objects.filter(
            purchase_id=purchase_id,
            service_type=service_type,
            remaining_sessions__gt=0,
        )
        .order_by("created_at", "id")
        .values_list("pk", flat=True)
    )

    consumed_id = None
    for entry_id in candidate_ids:
        updated = WalletEntry.objects.filter(
            _unexpired(),
            pk=entry_id,
            remaining_sessions__gt=0,
            is_locked=False,
            purchase__status=PatientPurchase.Status.ACTIVE,
        ).update(
            remaining_sessions=F("remaining_sessions") - 1,
            updated_at=django_timezone.now(),
        )
        if updated:
            consumed_id = entry_id
            break

    if consumed_id is None:
        raise NoAvailableSessions()

    _complete_purchase_if_exhausted(purchase_id)
    logger.info("Consumed one %s session from purchase %s (entry %s).", service_type, purchase_id, consumed_id)
    return consumed_id


def _complete_purchase_if_exhausted(purchase_id: int) -> bool:
    remaining = (
        WalletEntry.objects.filter(purchase_id=purchase_id)
        .aggregate(total=Sum("remaining_sessions"))
        .get("total")
        or 0
    )
    if remaining:
        return False

    now = django_timezone.now()
    updated = PatientPurchase.objects.filter(
        pk=purchase_id,
        status=PatientPurchase.Status.ACTIVE,
    ).update(status=PatientPurchase.Status.COMPLETED, ended_at=now, updated_at=now)
    if updated:
        logger.info("Purchase %s completed: all wallet sessions used.", purchase_id)
    return bool(updated)


@transaction.atomic
def create_entries_for_purchase(
    purchase: PatientPurchase,
    product_services: Iterable[ProductService],
) -> list[WalletEntry]:
    entries: list[WalletEntry] = []
    for service in product_services:
        # The gating consultation itself is always bookable.
        is_locked = service.is_locked and service.service_type != ServiceType.NEUROLOGY
        entries.append(
            WalletEntry.objects.create(
                patient_id=purchase.patient_id,
                purchase=purchase,
                service_type=service.service_type,
                remaining_sessions=service.session_count,
                is_locked=is_locked,
                unlock_after_service=service.unlock_after_service,
            )
        )
    return entries


@transaction.atomic
def lock_entries_for_purchase(purchase_id: int) -> int:
    return WalletEntry.objects.filter(purchase_id=purchase_id, is_locked=False).update(
        is_locked=True,
        updated_at=django_timezone.now(),
    )


@transaction.atomic
def unlock_entries_for_purchase(purchase_id: int, gate: str) -> int:
    return WalletEntry.objects.filter(
        purchase_id=purchase_id,
        unlock_after_service=gate,
        is_locked=True,
    ).update(is_locked=False, updated_at=django_timezone.now())


@transaction.atomic
def unlock_entries_for_patient(patient_id: int, *, exclude_service_type: str) -> int:
    return (
        WalletEntry.objects.filter(
            patient_id=patient_id,
            is_locked=True,
            purchase__status=PatientPurchase.Status.ACTIVE,
        )
        .exclude(service_type=exclude_service_type)
        .update(is_locked=False, updated_at=django_timezone.now())
    )


def build_wallet_summary(patient_id: int) -> dict[str, Any]:
    entries = list(
        WalletEntry.objects.select_related("purchase__product")
        .filter(
            _unexpired(),
            patient_id=patient_id,
            remaining_sessions__gt=0,
            purchase__status=PatientPurchase.Status.ACTIVE,
        )
        .order_by("service_type", "created_at", "id")
    )

    services: dict[str, dict[str, Any]] = {}
    summary = {
        "total_services": 0,
        "available_services": 0,
        "locked_services": 0,
        "total_sessions": 0,
        "available_sessions": 0,
    }

    for entry in entries:
        bucket = services.setdefault(
            entry.service_type,
            {
                "service_type": entry.service_type,
                "total_sessions": 0,
                "available_sessions": 0,
                "is_locked": True,
                "can_book": False,
                "entries": [],
            },
        )
        bucket["entries"].append(
            {
                "id": entry.id,
                "purchase_id": entry.purchase_id,
                "product_name": entry.purchase.product.name,
                "remaining_sessions": entry.remaining_sessions,
                "is_locked": entry.is_locked,
                "unlock_after_service": entry.unlock_after_service,
                "can_book": entry.can_book,
            }
        )
        bucket["total_sessions"] += entry.remaining_sessions

        summary["total_services"] += 1
        summary["total_sessions"] += entry.remaining_sessions
        if entry.is_locked:
            summary["locked_services"] += 1
            continue

        bucket["available_sessions"] += entry.remaining_sessions
        bucket["is_locked"] = False
        bucket["can_book"] = True
        summary["available_services"] += 1
        summary["available_sessions"] += entry.remaining_sessions

    return {"services": services, "summary": summary}


def describe_lock(entry: WalletEntry) -> str:
    if entry.unlock_after_service and entry.unlock_after_service != UnlockGate.NONE:
        return f"Locked until a {entry.unlock_after_service} consultation is completed."
    return "Service is locked."
