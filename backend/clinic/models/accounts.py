from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q


class Profile(models.Model):
    class Role(models.TextChoices):
        PATIENT = "patient", "Patient"
        DOCTOR = "doctor", "Doctor"
        ADMIN = "admin", "Admin"

    external_id = models.CharField(max_length=64, unique=True, db_index=True)
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.PATIENT)
    email = models.EmailField(blank=True)
    full_name = models.CharField(max_length=180, blank=True)
    speciality = models.CharField(max_length=80, blank=True)
    fee = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    is_subscribed = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-updated_at",)
        indexes = [
            models.Index(fields=("role", "is_active"), name="profile_role_active_idx"),
            models.Index(fields=("role", "speciality"), name="profile_role_speciality_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(role__in=("patient", "doctor", "admin")),
                name="profile_role_valid",
            ),
            models.CheckConstraint(
                condition=Q(balance__gte=0),
                name="profile_balance_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(fee__isnull=True) | Q(fee__gte=0),
                name="profile_fee_non_negative",
            ),
        ]

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or self.external_id

    @property
    def is_doctor(self) -> bool:
        return self.role == self.Role.DOCTOR

    @property
    def is_patient(self) -> bool:
        return self.role == self.Role.PATIENT

    def clean(self) -> None:
        self.external_id = (self.external_id or "").strip()
        self.email = (self.email or "").strip()
        self.full_name = (self.full_name or "").strip()
        self.speciality = (self.speciality or "").strip().lower()

        if not self.external_id:
            raise ValidationError({"external_id": "External identity is required."})
        if self.role != self.Role.DOCTOR and self.fee is not None:
            raise ValidationError({"fee": "Only doctors carry a consultation fee."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.display_name} ({self.role})"
