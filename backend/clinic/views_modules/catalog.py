from __future__ import annotations

from datetime import datetime, timezone

from rest_framework import generics
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from ..models import Product
from ..serializers import PlanSerializer, ProductSerializer, ProfileSerializer
from .helpers import get_request_profile


class HealthView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        return Response(
            {
                "status": "ok",
                "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            }
        )


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        profile = get_request_profile(request)
        return Response(ProfileSerializer(profile).data)


class PlanListView(generics.ListAPIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    serializer_class = PlanSerializer

    def get_queryset(self):
        return (
            Product.objects.filter(
                is_active=True,
                product_type=Product.ProductType.SUBSCRIPTION_PLAN,
            )
            .prefetch_related("services")
            .order_by("price", "id")
        )


class ProductListView(generics.ListAPIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    serializer_class = ProductSerializer

    def get_queryset(self):
        return Product.objects.filter(is_active=True).prefetch_related("services").order_by("product_type", "price")


class ProductDetailView(generics.RetrieveAPIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    serializer_class = ProductSerializer

    def get_queryset(self):
        return Product.objects.filter(is_active=True).prefetch_related("services")
