from .catalog import PlanSerializer, ProductSerializer, ProductServiceSerializer
from .commerce import (
    PatientPurchaseSerializer,
    PurchaseCancelSerializer,
    PurchaseConfirmSerializer,
    WalletEntrySerializer,
)
from .common import LightweightProfileSerializer, ProfileSerializer
from .scheduling import (
    AppointmentCreateSerializer,
    AppointmentSerializer,
    AppointmentStatusUpdateSerializer,
)

__all__ = [
    "AppointmentCreateSerializer",
    "AppointmentSerializer",
    "AppointmentStatusUpdateSerializer",
    "LightweightProfileSerializer",
    "PatientPurchaseSerializer",
    "PlanSerializer",
    "ProductSerializer",
    "ProductServiceSerializer",
    "ProfileSerializer",
    "PurchaseCancelSerializer",
    "PurchaseConfirmSerializer",
    "WalletEntrySerializer",
]
