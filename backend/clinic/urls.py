from django.urls import path

from .views import (
    AppointmentCancelView,
    AppointmentCreateView,
    DoctorAppointmentAcceptView,
    DoctorAppointmentDetailView,
    DoctorAppointmentListView,
    HealthView,
    MeView,
    PatientAppointmentListView,
    PlanListView,
    ProductDetailView,
    ProductListView,
    PurchaseCancelView,
    PurchaseConfirmView,
    PurchaseExpireView,
    PurchaseListView,
    WalletView,
)
from .webhooks import PaymentWebhookView

urlpatterns = [
    path("health/", HealthView.as_view(), name="health"),
    path("me/", MeView.as_view(), name="me"),
    path("plans/", PlanListView.as_view(), name="plan-list"),
    path("products/", ProductListView.as_view(), name="product-list"),
    path("products/<int:pk>/", ProductDetailView.as_view(), name="product-detail"),
    path("appointments/", AppointmentCreateView.as_view(), name="appointment-create"),
    path("appointments/mine/", PatientAppointmentListView.as_view(), name="appointment-mine"),
    path("appointments/<int:pk>/cancel/", AppointmentCancelView.as_view(), name="appointment-cancel"),
    path("doctor/appointments/", DoctorAppointmentListView.as_view(), name="doctor-appointment-list"),
    path(
        "doctor/appointments/<int:pk>/accept/",
        DoctorAppointmentAcceptView.as_view(),
        name="doctor-appointment-accept",
    ),
    path(
        "doctor/appointments/<int:pk>/",
        DoctorAppointmentDetailView.as_view(),
        name="doctor-appointment-detail",
    ),
    path("purchases/", PurchaseListView.as_view(), name="purchase-list"),
    path("purchases/confirm/", PurchaseConfirmView.as_view(), name="purchase-confirm"),
    path("purchases/cancel/", PurchaseCancelView.as_view(), name="purchase-cancel"),
    path("purchases/<int:pk>/expire/", PurchaseExpireView.as_view(), name="purchase-expire"),
    path("wallet/", WalletView.as_view(), name="wallet"),
    path("webhooks/payments/", PaymentWebhookView.as_view(), name="payment-webhook"),
]
