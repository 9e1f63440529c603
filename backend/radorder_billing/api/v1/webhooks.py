"""Transport-layer router for provider webhooks."""

from ...domains.billing_webhooks.webhook_routes import router

__all__ = ["router"]
