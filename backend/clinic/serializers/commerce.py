from __future__ import annotations

from rest_framework import serializers

from ..models import PatientPurchase, WalletEntry


class WalletEntrySerializer(serializers.ModelSerializer):
    can_book = serializers.BooleanField(read_only=True)

    class Meta:
        model = WalletEntry
        fields = (
            "id",
            "service_type",
            "remaining_sessions",
            "is_locked",
            "unlock_after_service",
            "can_book",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class PatientPurchaseSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    product_type = serializers.CharField(source="product.product_type", read_only=True)
    wallet_entries = WalletEntrySerializer(many=True, read_only=True)

    class Meta:
        model = PatientPurchase
        fields = (
            "id",
            "product",
            "product_name",
            "product_type",
            "total_paid",
            "platform_fee",
            "professional_pool",
            "status",
            "purchased_at",
            "expires_at",
            "ended_at",
            "wallet_entries",
        )
        read_only_fields = fields


class PurchaseConfirmSerializer(serializers.Serializer):
    payment_reference = serializers.CharField(max_length=191, trim_whitespace=True)
    product_id = serializers.IntegerField(required=False, min_value=1)


class PurchaseCancelSerializer(serializers.Serializer):
    purchase_id = serializers.IntegerField(min_value=1)
