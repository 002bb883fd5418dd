from .handlers import EVENT_HANDLERS, handle_payment_failed, handle_payment_succeeded
from .receiver import PaymentWebhookView
from .verification import WebhookVerificationError, _verify_webhook

__all__ = [
    "PaymentWebhookView",
    "EVENT_HANDLERS",
    "WebhookVerificationError",
    "_verify_webhook",
    "handle_payment_succeeded",
    "handle_payment_failed",
]
