from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q


class ServiceType(models.TextChoices):
    NEUROLOGY = "neurology", "Neurology"
    PHYSIOTHERAPY = "physiotherapy", "Physiotherapy"
    PSYCHOLOGY = "psychology", "Psychology"
    NUTRITION = "nutrition", "Nutrition"
    COACHING = "coaching", "Coaching"
    GROUP_SESSION = "group_session", "Group session"


class UnlockGate(models.TextChoices):
    NONE = "none", "None"
    NEUROLOGY = "neurology", "Neurology"


class Product(models.Model):
    class ProductType(models.TextChoices):
        SUBSCRIPTION_PLAN = "subscription_plan", "Subscription plan"
        SINGLE_SERVICE = "single_service", "Single service"
        PACKAGE = "package", "Package"
        GROUP_SESSION = "group_session", "Group session"

    name = models.CharField(max_length=180)
    description = models.TextField(blank=True)
    product_type = models.CharField(
        max_length=24,
        choices=ProductType.choices,
        default=ProductType.SUBSCRIPTION_PLAN,
    )
    service_category = models.CharField(max_length=80, blank=True, default="multidisciplinary")
    price = models.DecimalField(max_digits=10, decimal_places=2)
    platform_commission_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("10.00"),
    )
    followup_commission_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        blank=True,
        null=True,
    )
    requires_initial_neuro = models.BooleanField(default=False)
    validity_days = models.PositiveIntegerField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("price", "id")
        indexes = [
            models.Index(fields=("product_type", "is_active"), name="product_type_active_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(price__gte=0), name="product_price_non_negative"),
            models.CheckConstraint(
                condition=Q(platform_commission_percent__gte=0) & Q(platform_commission_percent__lte=100),
                name="product_commission_in_range",
            ),
            models.CheckConstraint(
                condition=Q(followup_commission_percent__isnull=True)
                | (Q(followup_commission_percent__gte=0) & Q(followup_commission_percent__lte=100)),
                name="product_followup_commission_in_range",
            ),
        ]

    def clean(self) -> None:
        self.name = (self.name or "").strip()
        self.description = (self.description or "").strip()
        self.service_category = (self.service_category or "").strip()
        if not self.name:
            raise ValidationError({"name": "Product name cannot be empty."})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.name} ({self.product_type})"


class ProductService(models.Model):
    product = models.ForeignKey("Product", on_delete=models.CASCADE, related_name="services")
    service_type = models.CharField(max_length=24, choices=ServiceType.choices)
    session_count = models.PositiveIntegerField(default=1)
    is_locked = models.BooleanField(default=False)
    unlock_after_service = models.CharField(
        max_length=24,
        choices=UnlockGate.choices,
        default=UnlockGate.NONE,
    )

    class Meta:
        ordering = ("service_type",)
        constraints = [
            models.UniqueConstraint(
                fields=("product", "service_type"),
                name="product_service_type_unique",
            ),
        ]

    def clean(self) -> None:
        if self.service_type == self.unlock_after_service:
            raise ValidationError(
                {"unlock_after_service": "A service cannot be gated on itself."}
            )

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product_id}:{self.service_type} x{self.session_count}"
