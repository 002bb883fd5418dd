from __future__ import annotations

from rest_framework import generics
from rest_framework.response import Response
from rest_framework.views import APIView

from ..models import Appointment
from ..serializers import AppointmentSerializer, AppointmentStatusUpdateSerializer
from ..settlement import accept_appointment, update_appointment_status
from ..tools.auth import IsDoctor
from .helpers import get_request_profile


class DoctorAppointmentListView(generics.ListAPIView):
    permission_classes = [IsDoctor]
    serializer_class = AppointmentSerializer

    def get_queryset(self):
        doctor = get_request_profile(self.request)
        queryset = Appointment.objects.filter(doctor=doctor).select_related("doctor", "patient")
        status_filter = str(self.request.query_params.get("status") or "").strip().lower()
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset


class DoctorAppointmentAcceptView(APIView):
    permission_classes = [IsDoctor]

    def post(self, request, pk):
        doctor = get_request_profile(request)
        appointment = accept_appointment(doctor, pk)
        return Response(AppointmentSerializer(appointment).data)


class DoctorAppointmentDetailView(APIView):
    permission_classes = [IsDoctor]

    def patch(self, request, pk):
        serializer = AppointmentStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        doctor = get_request_profile(request)
        appointment = update_appointment_status(
            doctor,
            pk,
            status=serializer.validated_data.get("status"),
            notes=serializer.validated_data.get("notes"),
        )
        return Response(AppointmentSerializer(appointment).data)
