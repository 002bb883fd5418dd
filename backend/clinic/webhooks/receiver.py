from __future__ import annotations

import logging

from django.db import DatabaseError
from django.http import HttpRequest, JsonResponse
from django.utils import timezone as django_timezone
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from ..models import WebhookEvent
from .handlers import EVENT_HANDLERS
from .verification import WebhookVerificationError, _verify_webhook

logger = logging.getLogger(__name__)


def _finish(webhook_event: WebhookEvent | None, status: str, error_message: str = "") -> None:
    if webhook_event is None:
        return
    webhook_event.status = status
    webhook_event.processed_at = django_timezone.now()
    webhook_event.error_message = error_message
    webhook_event.save(update_fields=["status", "processed_at", "error_message"])


@method_decorator(csrf_exempt, name="dispatch")
class PaymentWebhookView(View):
    """Receive payment confirmation events from the gateway."""

    def post(self, request: HttpRequest) -> JsonResponse:
        svix_headers = {
            "svix-id": request.headers.get("svix-id", ""),
            "svix-timestamp": request.headers.get("svix-timestamp", ""),
            "svix-signature": request.headers.get("svix-signature", ""),
        }

        try:
            event = _verify_webhook(request.body, svix_headers)
        except WebhookVerificationError as exc:
            logger.warning("Webhook verification failed: %s", exc)
            return JsonResponse({"error": str(exc)}, status=400)

        event_id = str(svix_headers.get("svix-id") or event.get("id") or "").strip()
        event_type = str(event.get("type") or "").strip()
        data = event.get("data", {})

        webhook_event = None
        if event_id:
            try:
                webhook_event, created = WebhookEvent.objects.get_or_create(
                    provider=WebhookEvent.Provider.GATEWAY,
                    event_id=event_id,
                    defaults={
                        "event_type": event_type or "unknown",
                        "payload": event,
                        "status": WebhookEvent.Status.RECEIVED,
                    },
                )
            except DatabaseError:
                logger.warning("Could not persist webhook event %s; processing without dedup.", event_id)
            else:
                if not created and webhook_event.status in {
                    WebhookEvent.Status.PROCESSED,
                    WebhookEvent.Status.IGNORED,
                }:
                    return JsonResponse({"status": "ok", "deduplicated": True})

        handler = EVENT_HANDLERS.get(event_type)
        if handler is None:
            logger.debug("Unhandled payment webhook event type: %s", event_type)
            _finish(webhook_event, WebhookEvent.Status.IGNORED)
            return JsonResponse({"status": "ok"})

        try:
            handler(data if isinstance(data, dict) else {})
        except Exception as exc:
            logger.exception("Error processing webhook event: %s", event_type)
            _finish(webhook_event, WebhookEvent.Status.FAILED, str(exc))
            return JsonResponse({"error": "Internal handler error"}, status=500)

        _finish(webhook_event, WebhookEvent.Status.PROCESSED)
        return JsonResponse({"status": "ok"})
