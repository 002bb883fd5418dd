"""Error taxonomy for booking, purchase and wallet operations.

Every error is a DRF ``APIException`` so views can let them propagate and the
framework renders the matching status code.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, ValidationError

__all__ = [
    "ValidationError",
    "NotFoundError",
    "ProductNotFound",
    "ConflictError",
    "AlreadyCancelled",
    "EntitlementDenied",
    "NoAvailableSessions",
    "ServiceLocked",
    "PaymentRequired",
    "PersistenceError",
    "as_validation_error",
]


class NotFoundError(NotFound):
    default_detail = "Resource not found."
    default_code = "not_found"


class ProductNotFound(NotFoundError):
    default_detail = "Product not found or inactive."
    default_code = "product_not_found"


class ConflictError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state of the resource."
    default_code = "conflict"


class AlreadyCancelled(ConflictError):
    default_detail = "Purchase is no longer active."
    default_code = "already_cancelled"


class EntitlementDenied(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not entitled to book this service."
    default_code = "entitlement_denied"


class NoAvailableSessions(EntitlementDenied):
    default_detail = "No available sessions in wallet for this service."
    default_code = "no_available_sessions"


class ServiceLocked(EntitlementDenied):
    default_detail = "Service is locked."
    default_code = "service_locked"


class PaymentRequired(EntitlementDenied):
    default_detail = "A confirmed payment is required to book this service."
    default_code = "payment_required"


class PersistenceError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "The operation could not be saved. No changes were applied."
    default_code = "persistence_error"


def as_validation_error(exc) -> ValidationError:
    """Translate a Django model ``ValidationError`` into the DRF one."""
    detail = getattr(exc, "message_dict", None) or getattr(exc, "messages", None) or str(exc)
    return ValidationError(detail)
