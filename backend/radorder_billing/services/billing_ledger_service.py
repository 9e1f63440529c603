from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.billing_event import BillingEvent, BillingEventType
from ..models.organization import Organization, OrganizationStatus

logger = logging.getLogger(__name__)


class DuplicateEventError(Exception):
    """The provider event id is already present in the ledger."""

    def __init__(self, stripe_event_id: str):
        super().__init__(f"Stripe event {stripe_event_id} already applied")
        self.stripe_event_id = stripe_event_id


def is_event_applied(db: Session, stripe_event_id: str) -> bool:
    """Read-only idempotency check against committed ledger rows."""
    return (
        db.query(BillingEvent.id)
        .filter(BillingEvent.stripe_event_id == stripe_event_id)
        .first()
        is not None
    )


def append_billing_event(
    db: Session,
    *,
    organization: Organization,
    event_type: BillingEventType,
    stripe_event_id: str,
    credits_delta: int,
    balance_after: int,
    status_after: str,
    tier_after: str | None,
    amount_cents: int | None = None,
    currency: str | None = None,
    stripe_invoice_id: str | None = None,
    description: str | None = None,
    created_at: datetime | None = None,
) -> BillingEvent:
    """Insert the ledger row for one provider event.

    The row is flushed immediately so the unique ``stripe_event_id``
    constraint decides idempotency inside the caller's transaction. Handlers
    call this before any other write, so on ``DuplicateEventError`` the caller
    rolls back the whole transaction and nothing is lost.
    """
    entry = BillingEvent(
        organization_id=organization.id,
        event_type=event_type.value,
        amount_cents=amount_cents,
        currency=(currency or "").lower() or None,
        stripe_event_id=stripe_event_id,
        stripe_invoice_id=stripe_invoice_id,
        description=description,
        credits_delta=int(credits_delta),
        balance_after=int(balance_after),
        status_after=status_after,
        tier_after=tier_after,
    )
    if created_at is not None:
        entry.created_at = created_at
    db.add(entry)
    try:
        db.flush()
    except IntegrityError as exc:
        logger.info(
            "Ledger already holds stripe event %s (org_id=%s)",
            stripe_event_id,
            organization.id,
        )
        raise DuplicateEventError(stripe_event_id) from exc
    return entry


def count_recent_failures(db: Session, organization_id: int, since: datetime) -> int:
    """Count ``payment_failed`` ledger rows for the organization created at or after ``since``."""
    return int(
        db.query(func.count(BillingEvent.id))
        .filter(
            BillingEvent.organization_id == organization_id,
            BillingEvent.event_type == BillingEventType.PAYMENT_FAILED.value,
            BillingEvent.created_at >= since,
        )
        .scalar()
        or 0
    )


def failure_window_start(now: datetime, window_days: int) -> datetime:
    return now - timedelta(days=window_days)


def list_billing_events(db: Session, organization_id: int) -> list[BillingEvent]:
    return (
        db.query(BillingEvent)
        .filter(BillingEvent.organization_id == organization_id)
        .order_by(BillingEvent.id.asc())
        .all()
    )


@dataclass(frozen=True)
class LedgerReplay:
    """Organization state rebuilt by folding its ledger rows in insertion order."""

    credit_balance: int
    status: str
    subscription_tier: Optional[str]
    events_applied: int
    broken_links: tuple[int, ...] = ()

    def matches(self, org: Organization) -> bool:
        return (
            self.credit_balance == int(org.credit_balance or 0)
            and self.status == org.status
            and self.subscription_tier == org.subscription_tier
        )


def replay_ledger(
    entries: Iterable[BillingEvent],
    *,
    opening_balance: int = 0,
    opening_status: str = OrganizationStatus.ACTIVE.value,
    opening_tier: Optional[str] = None,
) -> LedgerReplay:
    """Sum ``credits_delta`` from the opening balance and carry status/tier forward.

    ``broken_links`` lists ledger ids whose stored ``balance_after`` disagrees
    with the running sum.
    """
    balance = opening_balance
    status = opening_status
    tier = opening_tier
    count = 0
    broken: list[int] = []
    for entry in entries:
        balance += int(entry.credits_delta or 0)
        if entry.balance_after is not None and int(entry.balance_after) != balance:
            broken.append(entry.id)
        if entry.status_after:
            status = entry.status_after
        tier = entry.tier_after
        count += 1
    return LedgerReplay(
        credit_balance=balance,
        status=status,
        subscription_tier=tier,
        events_applied=count,
        broken_links=tuple(broken),
    )
