from __future__ import annotations

from typing import Any

from django.conf import settings
from svix.webhooks import Webhook, WebhookVerificationError as SvixVerificationError


class WebhookVerificationError(RuntimeError):
    pass


def _verify_webhook(payload: bytes, headers: dict[str, str]) -> dict[str, Any]:
    """Verify the Svix signature and return the parsed event payload."""
    signing_secret = getattr(settings, "PAYMENT_WEBHOOK_SIGNING_SECRET", "")
    if not signing_secret:
        raise WebhookVerificationError("PAYMENT_WEBHOOK_SIGNING_SECRET is not configured.")

    try:
        event = Webhook(signing_secret).verify(payload, headers)
    except SvixVerificationError as exc:
        raise WebhookVerificationError(f"Webhook signature verification failed: {exc}") from exc

    if not isinstance(event, dict):
        raise WebhookVerificationError("Webhook payload must be a JSON object.")
    return event
