# Canonical webhook route for Stripe billing events.
from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ...components.integrations.stripe.service import (
    StripeService,
    WebhookPayloadError,
    WebhookSignatureError,
)
from ...platform.config import settings
from ...platform.database import get_db
from ...services.organization_state_service import OrganizationNotFoundError
from .dispatcher import BillingWebhookDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

# PostgreSQL deadlock_detected and serialization_failure.
_RETRYABLE_PGCODES = frozenset({"40P01", "40001"})


def _is_retryable(exc: DBAPIError) -> bool:
    return getattr(exc.orig, "pgcode", None) in _RETRYABLE_PGCODES


def get_stripe_service() -> StripeService:
    return StripeService.from_settings()


@lru_cache(maxsize=1)
def get_billing_dispatcher() -> BillingWebhookDispatcher:
    return BillingWebhookDispatcher.from_settings()


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
    dispatcher: BillingWebhookDispatcher = Depends(get_billing_dispatcher),
):
    """Verify a Stripe delivery and apply it to the billing ledger."""
    if settings.MVP_DISABLE_STRIPE:
        raise HTTPException(status_code=503, detail="Stripe integration is disabled for MVP")
    if not stripe_service.webhook_secret:
        raise HTTPException(status_code=503, detail="Stripe webhook secret is not configured")

    payload = await request.body()
    sig_header = request.headers.get("Stripe-Signature", "")
    try:
        event = stripe_service.verify_event(payload, sig_header)
    except WebhookSignatureError:
        raise HTTPException(status_code=400, detail="Invalid signature")
    except WebhookPayloadError:
        raise HTTPException(status_code=400, detail="Invalid payload")

    try:
        result = await run_in_threadpool(dispatcher.dispatch, db, event)
    except OrganizationNotFoundError:
        raise HTTPException(status_code=404, detail="Organization not found")
    except DBAPIError as exc:
        if _is_retryable(exc):
            logger.warning("Lock conflict applying %s %s; provider will redeliver", event.type, event.id)
            raise HTTPException(status_code=500, detail="Billing ledger busy, retry later")
        raise HTTPException(status_code=500, detail="Billing ledger unavailable")
    except SQLAlchemyError:
        raise HTTPException(status_code=500, detail="Billing ledger unavailable")
    return result.as_response()
