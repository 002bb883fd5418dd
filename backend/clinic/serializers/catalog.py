from __future__ import annotations

from rest_framework import serializers

from ..models import Product, ProductService


class ProductServiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProductService
        fields = ("id", "service_type", "session_count", "is_locked", "unlock_after_service")
        read_only_fields = fields


class ProductSerializer(serializers.ModelSerializer):
    services = ProductServiceSerializer(many=True, read_only=True)

    class Meta:
        model = Product
        fields = (
            "id",
            "name",
            "description",
            "product_type",
            "service_category",
            "price",
            "platform_commission_percent",
            "followup_commission_percent",
            "requires_initial_neuro",
            "validity_days",
            "services",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class PlanSerializer(ProductSerializer):
    """Subscription plan with its included services split by lock state."""

    unlocked_services = serializers.SerializerMethodField()
    locked_services = serializers.SerializerMethodField()

    class Meta(ProductSerializer.Meta):
        fields = (*ProductSerializer.Meta.fields, "unlocked_services", "locked_services")
        read_only_fields = fields

    def _services(self, obj: Product, *, locked: bool):
        rows = [service for service in obj.services.all() if service.is_locked == locked]
        return ProductServiceSerializer(rows, many=True).data

    def get_unlocked_services(self, obj: Product):
        return self._services(obj, locked=False)

    def get_locked_services(self, obj: Product):
        return self._services(obj, locked=True)
