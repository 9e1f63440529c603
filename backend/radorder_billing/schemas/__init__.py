from .billing_event import (
    CheckoutSessionObject,
    InvoiceObject,
    SubscriptionObject,
    WebhookEvent,
)

__all__ = [
    "CheckoutSessionObject",
    "InvoiceObject",
    "SubscriptionObject",
    "WebhookEvent",
]
