"""
Stripe client for the billing webhook endpoint.

Authenticates inbound webhook payloads against the endpoint signing secret
and turns them into canonical ``WebhookEvent`` objects. Checkout sessions,
customers and subscriptions are created elsewhere; this service only consumes
notifications about them.
"""

import json
import logging

import stripe
from pydantic import ValidationError

from ....platform.config import settings
from ....schemas.billing_event import WebhookEvent

logger = logging.getLogger(__name__)


class WebhookSignatureError(Exception):
    """Missing or invalid ``Stripe-Signature`` for the raw request body."""


class WebhookPayloadError(Exception):
    """The signed body is not a well-formed Stripe event."""


class StripeService:
    """Service for verifying Stripe webhook events."""

    def __init__(self, webhook_secret: str, tolerance: int = 300):
        """
        Initialise the Stripe service.

        Args:
            webhook_secret: Signing secret of the webhook endpoint (``whsec_...``).
            tolerance: Maximum age in seconds of the signed timestamp.
        """
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        logger.info("StripeService initialised (tolerance=%ds)", tolerance)

    @classmethod
    def from_settings(cls) -> "StripeService":
        return cls(
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )

    def verify_event(self, raw_body: bytes, signature: str) -> WebhookEvent:
        """
        Verify a webhook delivery and parse it into a canonical event.

        The signature is checked against ``raw_body`` exactly as received; the
        body is only decoded after it has been authenticated.

        Args:
            raw_body: Unparsed request body.
            signature: Value of the ``Stripe-Signature`` header.

        Returns:
            The verified ``WebhookEvent``.

        Raises:
            WebhookSignatureError: secret not configured, header missing, or
                signature/timestamp invalid.
            WebhookPayloadError: body is not a JSON Stripe event.
        """
        if not self.webhook_secret:
            raise WebhookSignatureError("Stripe webhook secret is not configured")
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")
        if isinstance(raw_body, str):
            raise WebhookPayloadError("Webhook body must be the raw request bytes")

        try:
            payload_text = raw_body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise WebhookPayloadError("Webhook body is not valid UTF-8") from exc

        try:
            stripe.WebhookSignature.verify_header(
                payload_text,
                signature,
                self.webhook_secret,
                self.tolerance,
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("Stripe signature verification failed: %s", str(exc))
            raise WebhookSignatureError(str(exc)) from exc

        try:
            decoded = json.loads(payload_text)
        except ValueError as exc:
            raise WebhookPayloadError("Webhook body is not valid JSON") from exc
        if not isinstance(decoded, dict):
            raise WebhookPayloadError("Webhook body must be a JSON object")

        try:
            event = WebhookEvent.from_payload(decoded)
        except ValidationError as exc:
            logger.warning("Stripe event failed validation: %s", exc.errors())
            raise WebhookPayloadError("Webhook body is not a valid Stripe event") from exc

        logger.info("Verified Stripe event %s (type=%s)", event.id, event.type)
        return event
