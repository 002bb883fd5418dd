from __future__ import annotations

from rest_framework import serializers

from ..models import Appointment
from ..settlement import BookingRequest
from .common import LightweightProfileSerializer


class AppointmentSerializer(serializers.ModelSerializer):
    doctor = LightweightProfileSerializer(read_only=True)
    patient = LightweightProfileSerializer(read_only=True)

    class Meta:
        model = Appointment
        fields = (
            "id",
            "patient",
            "doctor",
            "appointment_date",
            "appointment_time",
            "appointment_for",
            "reason",
            "notes",
            "fee",
            "payment_method",
            "service_type",
            "visit_type",
            "consumed_from_plan",
            "status",
            "purchase",
            "product",
            "completed_at",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class AppointmentCreateSerializer(serializers.Serializer):
    doctor_id = serializers.IntegerField(min_value=1)
    date = serializers.CharField(max_length=10)
    time = serializers.CharField(max_length=32)
    appointment_for = serializers.CharField(max_length=120)
    service_type = serializers.CharField(required=False, allow_blank=True, max_length=24)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=4000)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=4000)
    payment_method = serializers.CharField(required=False, allow_blank=True, max_length=30)
    payment_reference = serializers.CharField(required=False, allow_blank=True, max_length=191)

    def to_booking_request(self) -> BookingRequest:
        data = self.validated_data
        return BookingRequest(
            doctor_id=data["doctor_id"],
            date=data["date"],
            time=data["time"],
            appointment_for=data["appointment_for"],
            service_type=data.get("service_type") or None,
            reason=data.get("reason", ""),
            notes=data.get("notes", ""),
            payment_method=data.get("payment_method", ""),
            payment_reference=data.get("payment_reference", ""),
        )


class AppointmentStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Appointment.Status.choices, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=4000)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        if "status" not in attrs and "notes" not in attrs:
            raise serializers.ValidationError("Provide a status or notes to update.")
        return attrs
