from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

from .catalog import ServiceType


class Appointment(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        ACCEPTED = "accepted", "Accepted"
        REJECTED = "rejected", "Rejected"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    class VisitType(models.TextChoices):
        FIRST = "first", "First visit"
        FOLLOWUP = "followup", "Follow-up"

    WALLET_PAYMENT_METHOD = "none"
    TERMINAL_STATUSES = frozenset({Status.REJECTED, Status.COMPLETED, Status.CANCELLED})

    patient = models.ForeignKey("Profile", on_delete=models.CASCADE, related_name="patient_appointments")
    doctor = models.ForeignKey("Profile", on_delete=models.CASCADE, related_name="doctor_appointments")
    appointment_date = models.DateField()
    appointment_time = models.TimeField()
    appointment_for = models.CharField(max_length=120)
    reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    payment_method = models.CharField(max_length=30, blank=True)
    service_type = models.CharField(max_length=24, choices=ServiceType.choices)
    visit_type = models.CharField(max_length=16, choices=VisitType.choices, default=VisitType.FOLLOWUP)
    consumed_from_plan = models.BooleanField(default=False)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    purchase = models.ForeignKey(
        "PatientPurchase",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="appointments",
    )
    product = models.ForeignKey(
        "Product",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="appointments",
    )
    wallet_entry = models.ForeignKey(
        "WalletEntry",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="appointments",
    )
    completed_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-appointment_date", "-appointment_time")
        indexes = [
            models.Index(
                fields=("doctor", "appointment_date", "appointment_time"),
                name="appt_doctor_slot_idx",
            ),
            models.Index(fields=("patient", "status"), name="appt_patient_status_idx"),
            models.Index(
                fields=("patient", "doctor", "service_type", "status"),
                name="appt_visit_history_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(fee__gte=0), name="appt_fee_non_negative"),
            models.CheckConstraint(
                condition=Q(consumed_from_plan=False) | Q(fee=0),
                name="appt_plan_funded_is_free",
            ),
        ]

    def clean(self) -> None:
        self.appointment_for = (self.appointment_for or "").strip()
        self.reason = (self.reason or "").strip()
        self.notes = (self.notes or "").strip()
        self.payment_method = (self.payment_method or "").strip()

        if not self.appointment_for:
            raise ValidationError({"appointment_for": "appointment_for is required."})
        if self.patient_id and self.patient_id == self.doctor_id:
            raise ValidationError({"doctor": "A doctor cannot book an appointment with themselves."})
        if self.consumed_from_plan and not self.purchase_id:
            raise ValidationError({"purchase": "Plan-funded appointments must reference their purchase."})
        if self.completed_at and self.status != self.Status.COMPLETED:
            raise ValidationError({"completed_at": "completed_at can only be set on completed appointments."})

    def save(self, *args, **kwargs):
        if self.purchase_id and not self.product_id:
            self.product_id = self.purchase.product_id
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"Appointment({self.patient_id}->{self.doctor_id}, {self.appointment_date} {self.appointment_time}, {self.status})"
