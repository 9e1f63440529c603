"""Per-event-kind handlers.

Each handler runs inside the caller's transaction: it locks the organization
row, computes a ``Transition`` from the stored state, and writes the ledger row
(first write, which doubles as the idempotency claim), the organization state,
the purgatory episode, and the relationship cascade. Committing and notifying
are left to the dispatcher.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from ...components.notifications.templates import BillingNotice
from ...models.billing_event import BillingEventType
from ...models.organization import Organization
from ...platform.config import PurgatoryPolicy
from ...schemas.billing_event import WebhookEvent
from ...services.billing_catalog import BillingCatalog
from ...services.billing_ledger_service import (
    append_billing_event,
    count_recent_failures,
    failure_window_start,
)
from ...services.organization_state_service import (
    apply_state,
    billing_id_owner,
    lock_organization_by_billing_id,
    lock_organization_by_id,
    snapshot,
)
from ...services.purgatory_service import open_purgatory, resolve_purgatory
from ...services.relationship_service import cascade_to_active, cascade_to_purgatory
from . import transitions
from .transitions import Cascade, Transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerContext:
    catalog: BillingCatalog
    policy: PurgatoryPolicy
    now: datetime


@dataclass(frozen=True)
class HandlerOutcome:
    organization_id: int
    organization_name: str
    ledger_entry_id: int
    status_before: str
    status_after: str
    notices: tuple[BillingNotice, ...] = ()


Handler = Callable[[Session, WebhookEvent, HandlerContext], HandlerOutcome]


def apply_transition(
    db: Session,
    org: Organization,
    event: WebhookEvent,
    transition: Transition,
    now: datetime,
) -> HandlerOutcome:
    before = snapshot(org)
    entry = append_billing_event(
        db,
        organization=org,
        event_type=transition.ledger_type,
        stripe_event_id=event.id,
        credits_delta=transition.credits_delta(before),
        balance_after=transition.credit_balance,
        status_after=transition.status,
        tier_after=transition.subscription_tier,
        amount_cents=transition.amount_cents,
        currency=transition.currency,
        stripe_invoice_id=transition.stripe_invoice_id,
        description=transition.description,
        created_at=now,
    )

    apply_state(
        org,
        credit_balance=transition.credit_balance,
        status=transition.status,
        subscription_tier=transition.subscription_tier,
    )
    if transition.link_billing_id:
        org.billing_id = transition.link_billing_id
        logger.info("Linked billing id %s to org_id=%s", transition.link_billing_id, org.id)
    db.flush()

    if transition.open_purgatory is not None:
        open_purgatory(
            db,
            organization_id=org.id,
            reason=transition.open_purgatory,
            stripe_event_id=event.id,
            now=now,
        )
    if transition.resolve_purgatory:
        resolve_purgatory(db, organization_id=org.id, now=now)
    if transition.cascade == Cascade.TO_PURGATORY:
        cascade_to_purgatory(db, org.id)
    elif transition.cascade == Cascade.TO_ACTIVE:
        cascade_to_active(db, org.id)

    if before.status != transition.status:
        logger.info(
            "org_id=%s status %s -> %s",
            org.id,
            before.status,
            transition.status,
            extra={"organization_id": org.id, "event_type": event.type},
        )
    return HandlerOutcome(
        organization_id=org.id,
        organization_name=org.name,
        ledger_entry_id=entry.id,
        status_before=before.status,
        status_after=transition.status,
        notices=transition.notices,
    )


def handle_checkout_session_completed(db: Session, event: WebhookEvent, ctx: HandlerContext) -> HandlerOutcome:
    session = event.object
    if session.organization_id is not None:
        org = lock_organization_by_id(db, session.organization_id)
    else:
        org = lock_organization_by_billing_id(db, session.customer)
    linkable = True
    if not org.billing_id and session.customer:
        owner_id = billing_id_owner(db, session.customer)
        if owner_id is not None and owner_id != org.id:
            linkable = False
            logger.warning(
                "Customer %s already belongs to org_id=%s; crediting org_id=%s without linking it",
                session.customer,
                owner_id,
                org.id,
                extra={"organization_id": org.id},
            )
    transition = transitions.checkout_completed(
        snapshot(org), session, ctx.catalog, customer_linkable=linkable
    )
    logger.info(
        "Top-up for org_id=%s: bundle=%s balance %s -> %s",
        org.id,
        session.bundle_id,
        org.credit_balance,
        transition.credit_balance,
        extra={"organization_id": org.id},
    )
    return apply_transition(db, org, event, transition, ctx.now)


def handle_invoice_payment_succeeded(db: Session, event: WebhookEvent, ctx: HandlerContext) -> HandlerOutcome:
    invoice = event.object
    org = lock_organization_by_billing_id(db, invoice.customer)
    transition = transitions.invoice_payment_succeeded(snapshot(org), invoice, ctx.catalog, ctx.policy)
    if invoice.is_subscription_invoice and transition.subscription_tier is None:
        logger.warning(
            "Subscription invoice %s for org_id=%s has no tier on record; credits left unchanged",
            invoice.id,
            org.id,
            extra={"organization_id": org.id},
        )
    return apply_transition(db, org, event, transition, ctx.now)


def handle_invoice_payment_failed(db: Session, event: WebhookEvent, ctx: HandlerContext) -> HandlerOutcome:
    invoice = event.object
    org = lock_organization_by_billing_id(db, invoice.customer)
    since = failure_window_start(ctx.now, ctx.policy.failure_window_days)
    # The row for this event is not written yet; count it explicitly.
    recent_failures = count_recent_failures(db, org.id, since) + 1
    transition = transitions.invoice_payment_failed(snapshot(org), invoice, recent_failures, ctx.policy)
    logger.info(
        "Payment failed for org_id=%s: attempt=%s recent_failures=%s",
        org.id,
        invoice.attempt_count,
        recent_failures,
        extra={"organization_id": org.id},
    )
    return apply_transition(db, org, event, transition, ctx.now)


def _handle_subscription_change(ledger_type: BillingEventType) -> Handler:
    def handler(db: Session, event: WebhookEvent, ctx: HandlerContext) -> HandlerOutcome:
        subscription = event.object
        org = lock_organization_by_billing_id(db, subscription.customer)
        transition = transitions.subscription_changed(snapshot(org), subscription, ctx.catalog, ledger_type)
        logger.info(
            "Subscription event for org_id=%s: provider_status=%s tier %s -> %s",
            org.id,
            subscription.status,
            org.subscription_tier,
            transition.subscription_tier,
            extra={"organization_id": org.id},
        )
        return apply_transition(db, org, event, transition, ctx.now)

    handler.__name__ = f"handle_{ledger_type.value}"
    return handler


handle_subscription_created = _handle_subscription_change(BillingEventType.SUBSCRIPTION_CREATED)
handle_subscription_updated = _handle_subscription_change(BillingEventType.SUBSCRIPTION_UPDATED)


def handle_subscription_deleted(db: Session, event: WebhookEvent, ctx: HandlerContext) -> HandlerOutcome:
    subscription = event.object
    org = lock_organization_by_billing_id(db, subscription.customer)
    transition = transitions.subscription_canceled(snapshot(org), subscription, ctx.policy)
    return apply_transition(db, org, event, transition, ctx.now)
