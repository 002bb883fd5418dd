from __future__ import annotations

from rest_framework.response import Response
from rest_framework.views import APIView

from ..settlement import expire_plan
from ..tools.auth import IsAdmin


class PurchaseExpireView(APIView):
    """System-initiated expiry of a single purchase."""

    permission_classes = [IsAdmin]

    def post(self, request, pk):
        purchase = expire_plan(pk)
        return Response({"purchase_id": purchase.pk, "status": purchase.status})
