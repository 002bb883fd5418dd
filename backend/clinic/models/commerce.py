from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

from .catalog import ServiceType, UnlockGate


class PatientPurchase(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"
        EXPIRED = "expired", "Expired"

    patient = models.ForeignKey("Profile", on_delete=models.CASCADE, related_name="purchases")
    product = models.ForeignKey("Product", on_delete=models.PROTECT, related_name="purchases")
    total_paid = models.DecimalField(max_digits=10, decimal_places=2)
    platform_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    professional_pool = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    purchased_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField(blank=True, null=True)
    ended_at = models.DateTimeField(blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-purchased_at", "-id")
        indexes = [
            models.Index(fields=("patient", "status"), name="purchase_patient_status_idx"),
            models.Index(fields=("status", "expires_at"), name="purchase_status_expiry_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=("patient", "product"),
                condition=Q(status="active"),
                name="purchase_one_active_per_product",
            ),
            models.CheckConstraint(
                condition=Q(total_paid__gte=0) & Q(platform_fee__gte=0) & Q(professional_pool__gte=0),
                name="purchase_amounts_non_negative",
            ),
        ]

    @property
    def is_active(self) -> bool:
        return self.status == self.Status.ACTIVE

    def clean(self) -> None:
        if self.platform_fee + self.professional_pool != self.total_paid:
            raise ValidationError(
                {"professional_pool": "Platform fee and professional pool must add up to the total paid."}
            )

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"Purchase({self.patient_id}, {self.product_id}, {self.status})"


class WalletEntry(models.Model):
    patient = models.ForeignKey("Profile", on_delete=models.CASCADE, related_name="wallet_entries")
    purchase = models.ForeignKey(
        "PatientPurchase",
        on_delete=models.CASCADE,
        related_name="wallet_entries",
    )
    service_type = models.CharField(max_length=24, choices=ServiceType.choices)
    remaining_sessions = models.PositiveIntegerField(default=0)
    is_locked = models.BooleanField(default=False)
    unlock_after_service = models.CharField(
        max_length=24,
        choices=UnlockGate.choices,
        default=UnlockGate.NONE,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("created_at", "id")
        verbose_name_plural = "wallet entries"
        indexes = [
            models.Index(fields=("patient", "service_type"), name="wallet_patient_service_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=("purchase", "service_type"),
                name="wallet_purchase_service_unique",
            ),
            models.CheckConstraint(
                condition=Q(remaining_sessions__gte=0),
                name="wallet_remaining_non_negative",
            ),
        ]

    @property
    def can_book(self) -> bool:
        return not self.is_locked and self.remaining_sessions > 0

    def clean(self) -> None:
        if self.purchase_id and self.patient_id and self.purchase.patient_id != self.patient_id:
            raise ValidationError({"patient": "Wallet entry must belong to the purchase's patient."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        state = "locked" if self.is_locked else "open"
        return f"{self.service_type} x{self.remaining_sessions} ({state})"


class Transaction(models.Model):
    class TransactionType(models.TextChoices):
        APPOINTMENT_PAYMENT = "appointment_payment", "Appointment payment"
        FOLLOWUP_APPOINTMENT = "followup_appointment", "Follow-up appointment"
        PLAN_PURCHASE = "plan_purchase", "Plan purchase"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        FAILED = "failed", "Failed"
        REFUNDED = "refunded", "Refunded"

    MUTABLE_FIELDS = frozenset({"status", "updated_at"})

    transaction_type = models.CharField(max_length=24, choices=TransactionType.choices)
    patient = models.ForeignKey("Profile", on_delete=models.PROTECT, related_name="patient_transactions")
    doctor = models.ForeignKey(
        "Profile",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="doctor_transactions",
    )
    appointment = models.ForeignKey(
        "Appointment",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )
    product = models.ForeignKey(
        "Product",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )
    purchase = models.ForeignKey(
        "PatientPurchase",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    platform_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    professional_earning = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    payment_method = models.CharField(max_length=30, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PAID)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at", "-id")
        indexes = [
            models.Index(fields=("doctor", "created_at"), name="txn_doctor_created_idx"),
            models.Index(fields=("transaction_type", "status"), name="txn_type_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=("appointment",),
                condition=Q(appointment__isnull=False),
                name="txn_one_per_appointment",
            ),
            models.CheckConstraint(
                condition=Q(amount__gte=0) & Q(platform_fee__gte=0) & Q(professional_earning__gte=0),
                name="txn_amounts_non_negative",
            ),
        ]

    def clean(self) -> None:
        self.payment_method = (self.payment_method or "").strip()[:30]
        if self.platform_fee + self.professional_earning != self.amount:
            raise ValidationError(
                {"professional_earning": "Platform fee and professional earning must add up to the amount."}
            )

    def save(self, *args, **kwargs):
        if not self._state.adding:
            update_fields = set(kwargs.get("update_fields") or ())
            if not update_fields or update_fields - self.MUTABLE_FIELDS:
                raise ValidationError("Ledger transactions are immutable apart from their status.")
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.transaction_type}:{self.amount} ({self.status})"


class PaymentConfirmation(models.Model):
    class Provider(models.TextChoices):
        GATEWAY = "gateway", "Gateway"
        MANUAL = "manual", "Manual"

    class Status(models.TextChoices):
        CAPTURED = "captured", "Captured"
        FAILED = "failed", "Failed"

    provider = models.CharField(max_length=24, choices=Provider.choices, default=Provider.GATEWAY)
    reference = models.CharField(max_length=191, unique=True)
    patient = models.ForeignKey(
        "Profile",
        on_delete=models.CASCADE,
        related_name="payment_confirmations",
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.CAPTURED)
    metadata = models.JSONField(default=dict, blank=True)
    raw_payload = models.JSONField(default=dict, blank=True)
    purchase = models.OneToOneField(
        "PatientPurchase",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment_confirmation",
    )
    appointment = models.OneToOneField(
        "Appointment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment_confirmation",
    )
    spent_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=("patient", "status"), name="payment_patient_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(amount__gte=0), name="payment_amount_non_negative"),
            models.CheckConstraint(
                condition=Q(purchase__isnull=True) | Q(appointment__isnull=True),
                name="payment_spent_once",
            ),
        ]

    @property
    def is_captured(self) -> bool:
        return self.status == self.Status.CAPTURED

    @property
    def is_spent(self) -> bool:
        return bool(self.purchase_id or self.appointment_id)

    def clean(self) -> None:
        self.reference = (self.reference or "").strip()
        self.currency = (self.currency or "USD").strip().upper()
        if not self.reference:
            raise ValidationError({"reference": "Payment reference is required."})
        if len(self.currency) != 3:
            raise ValidationError({"currency": "Currency must be a 3-letter code."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.provider}:{self.reference} ({self.status})"


class WebhookEvent(models.Model):
    class Provider(models.TextChoices):
        GATEWAY = "gateway", "Gateway"
        OTHER = "other", "Other"

    class Status(models.TextChoices):
        RECEIVED = "received", "Received"
        PROCESSED = "processed", "Processed"
        FAILED = "failed", "Failed"
        IGNORED = "ignored", "Ignored"

    provider = models.CharField(max_length=24, choices=Provider.choices, default=Provider.GATEWAY)
    event_id = models.CharField(max_length=191)
    event_type = models.CharField(max_length=191)
    payload = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=24, choices=Status.choices, default=Status.RECEIVED)
    error_message = models.TextField(blank=True)
    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ("-received_at",)
        constraints = [
            models.UniqueConstraint(fields=("provider", "event_id"), name="webhook_provider_event_unique"),
        ]
        indexes = [
            models.Index(fields=("status", "received_at"), name="webhook_status_received_idx"),
        ]

    def clean(self) -> None:
        self.event_id = (self.event_id or "").strip()
        self.event_type = (self.event_type or "").strip()
        self.error_message = (self.error_message or "").strip()

        if not self.event_id:
            raise ValidationError({"event_id": "Event id is required."})
        if not self.event_type:
            raise ValidationError({"event_type": "Event type is required."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.provider}:{self.event_id}"
