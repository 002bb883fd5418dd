from __future__ import annotations

import logging

from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from ..models import Appointment, PatientPurchase
from ..serializers import (
    AppointmentCreateSerializer,
    AppointmentSerializer,
    PatientPurchaseSerializer,
    PurchaseCancelSerializer,
    PurchaseConfirmSerializer,
)
from ..settlement import (
    build_wallet_summary,
    cancel_appointment,
    cancel_plan,
    confirm_plan_purchase,
    create_appointment,
)
from ..settlement.payments import resolve_purchase_payment
from ..tools.auth import IsPatient
from .helpers import get_request_profile

logger = logging.getLogger(__name__)


class AppointmentCreateView(APIView):
    permission_classes = [IsPatient]
    throttle_scope = "booking_create"

    def post(self, request):
        serializer = AppointmentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        patient = get_request_profile(request)
        result = create_appointment(patient, serializer.to_booking_request())
        return Response(
            {
                **result.as_dict(),
                "appointment": AppointmentSerializer(result.appointment).data,
            },
            status=status.HTTP_201_CREATED,
        )


class PatientAppointmentListView(generics.ListAPIView):
    permission_classes = [IsPatient]
    serializer_class = AppointmentSerializer

    def get_queryset(self):
        patient = get_request_profile(self.request)
        return Appointment.objects.filter(patient=patient).select_related("doctor", "patient")


class AppointmentCancelView(APIView):
    permission_classes = [IsPatient]

    def post(self, request, pk):
        patient = get_request_profile(request)
        appointment = cancel_appointment(patient, pk)
        return Response(AppointmentSerializer(appointment).data)


class PurchaseConfirmView(APIView):
    permission_classes = [IsPatient]
    throttle_scope = "purchase_confirm"

    def post(self, request):
        serializer = PurchaseConfirmSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        patient = get_request_profile(request)
        payment = resolve_purchase_payment(
            patient,
            serializer.validated_data["payment_reference"],
            product_id=serializer.validated_data.get("product_id"),
        )
        purchase, already_confirmed = confirm_plan_purchase(payment)
        logger.info(
            "Patient %s confirmed purchase %s (already_confirmed=%s).",
            patient.pk,
            purchase.pk,
            already_confirmed,
        )
        return Response(
            {
                "purchase_id": purchase.pk,
                "already_confirmed": already_confirmed,
                "purchase": PatientPurchaseSerializer(purchase).data,
            },
            status=status.HTTP_200_OK if already_confirmed else status.HTTP_201_CREATED,
        )


class PurchaseListView(generics.ListAPIView):
    permission_classes = [IsPatient]
    serializer_class = PatientPurchaseSerializer

    def get_queryset(self):
        patient = get_request_profile(self.request)
        return (
            PatientPurchase.objects.filter(patient=patient)
            .select_related("product")
            .prefetch_related("wallet_entries")
        )


class PurchaseCancelView(APIView):
    permission_classes = [IsPatient]

    def post(self, request):
        serializer = PurchaseCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        patient = get_request_profile(request)
        purchase = cancel_plan(patient.pk, serializer.validated_data["purchase_id"])
        patient.refresh_from_db(fields=["is_subscribed"])
        return Response(
            {
                "purchase_id": purchase.pk,
                "status": purchase.status,
                "is_subscribed": patient.is_subscribed,
            }
        )


class WalletView(APIView):
    permission_classes = [IsPatient]

    def get(self, request):
        patient = get_request_profile(request)
        return Response(build_wallet_summary(patient.pk))
