from __future__ import annotations

from rest_framework import serializers

from ..models import Profile


class LightweightProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = Profile
        fields = ("id", "full_name", "email", "speciality")
        read_only_fields = fields


class ProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = Profile
        fields = (
            "id",
            "external_id",
            "role",
            "email",
            "full_name",
            "speciality",
            "fee",
            "balance",
            "is_subscribed",
            "is_active",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields
