from .views_modules.catalog import HealthView, MeView, PlanListView, ProductDetailView, ProductListView
from .views_modules.doctor import (
    DoctorAppointmentAcceptView,
    DoctorAppointmentDetailView,
    DoctorAppointmentListView,
)
from .views_modules.operations import PurchaseExpireView
from .views_modules.patient import (
    AppointmentCancelView,
    AppointmentCreateView,
    PatientAppointmentListView,
    PurchaseCancelView,
    PurchaseConfirmView,
    PurchaseListView,
    WalletView,
)

__all__ = [
    "AppointmentCancelView",
    "AppointmentCreateView",
    "DoctorAppointmentAcceptView",
    "DoctorAppointmentDetailView",
    "DoctorAppointmentListView",
    "HealthView",
    "MeView",
    "PatientAppointmentListView",
    "PlanListView",
    "ProductDetailView",
    "ProductListView",
    "PurchaseCancelView",
    "PurchaseConfirmView",
    "PurchaseExpireView",
    "PurchaseListView",
    "WalletView",
]
