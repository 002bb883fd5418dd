from __future__ import annotations

import logging

from django.conf import settings
from django.db import transaction

from ..models import Appointment, ServiceType
from . import wallet

logger = logging.getLogger(__name__)

GATING_SERVICE = ServiceType.NEUROLOGY
GATING_SPECIALITY = "neurologist"

# Scope of the unlock that follows a completed gating consultation.
UNLOCK_SCOPE_PURCHASE = "purchase"
UNLOCK_SCOPE_PATIENT = "patient"
UNLOCK_SCOPES = (UNLOCK_SCOPE_PURCHASE, UNLOCK_SCOPE_PATIENT)


def get_gate_unlock_scope() -> str:
    scope = str(getattr(settings, "GATE_UNLOCK_SCOPE", UNLOCK_SCOPE_PATIENT) or "").strip().lower()
    if scope not in UNLOCK_SCOPES:
        logger.warning("Unknown GATE_UNLOCK_SCOPE %r, falling back to %s.", scope, UNLOCK_SCOPE_PATIENT)
        return UNLOCK_SCOPE_PATIENT
    return scope


def is_gating_appointment(appointment: Appointment) -> bool:
    if appointment.service_type == GATING_SERVICE:
        return True
    return (appointment.doctor.speciality or "").strip().lower() == GATING_SPECIALITY


def unlock_after_gating_service(appointment: Appointment) -> int:
    """Unlock wallet entries gated on the consultation this appointment completed.

    Entries of the linked purchase declaring the gate are unlocked first. With
    the ``patient`` scope every other locked entry the patient holds on an
    active purchase is unlocked too, except entries for the gating service
    itself. Failures are logged and never propagate to the caller.
    """
    if not is_gating_appointment(appointment):
        return 0

    scope = get_gate_unlock_scope()
    try:
        with transaction.atomic():
            unlocked = 0
            if appointment.purchase_id:
                unlocked += wallet.unlock_entries_for_purchase(appointment.purchase_id, GATING_SERVICE)
            if scope == UNLOCK_SCOPE_PATIENT:
                unlocked += wallet.unlock_entries_for_patient(
                    appointment.patient_id,
                    exclude_service_type=GATING_SERVICE,
                )
    except Exception:
        logger.exception(
            "Failed to unlock gated services after appointment %s for patient %s.",
            appointment.pk,
            appointment.patient_id,
        )
        return 0

    logger.info(
        "Unlocked %s wallet entries after %s appointment %s (scope=%s).",
        unlocked,
        GATING_SERVICE,
        appointment.pk,
        scope,
    )
    return unlocked
