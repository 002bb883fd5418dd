from .accounts import Profile
from .catalog import Product, ProductService, ServiceType, UnlockGate
from .commerce import PatientPurchase, PaymentConfirmation, Transaction, WalletEntry, WebhookEvent
from .scheduling import Appointment

__all__ = [
    "Profile",
    "Product",
    "ProductService",
    "ServiceType",
    "UnlockGate",
    "PatientPurchase",
    "WalletEntry",
    "Transaction",
    "PaymentConfirmation",
    "WebhookEvent",
    "Appointment",
]
