from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..models.purgatory_event import PurgatoryEvent, PurgatoryEventStatus, PurgatoryReason

logger = logging.getLogger(__name__)

TRIGGERED_BY_STRIPE_WEBHOOK = "stripe_webhook"


def get_active_purgatory(db: Session, organization_id: int) -> PurgatoryEvent | None:
    return (
        db.query(PurgatoryEvent)
        .filter(
            PurgatoryEvent.organization_id == organization_id,
            PurgatoryEvent.status == PurgatoryEventStatus.ACTIVE.value,
        )
        .first()
    )


def open_purgatory(
    db: Session,
    *,
    organization_id: int,
    reason: PurgatoryReason,
    stripe_event_id: str | None,
    now: datetime,
) -> tuple[PurgatoryEvent, bool]:
    """Open a suspension episode unless one is already active.

    Returns the active episode and whether it was created by this call.
    """
    existing = get_active_purgatory(db, organization_id)
    if existing is not None:
        return existing, False
    episode = PurgatoryEvent(
        organization_id=organization_id,
        reason=reason.value,
        triggered_by=TRIGGERED_BY_STRIPE_WEBHOOK,
        stripe_event_id=stripe_event_id,
        status=PurgatoryEventStatus.ACTIVE.value,
        created_at=now,
    )
    db.add(episode)
    db.flush()
    logger.info("Opened purgatory episode for org_id=%s reason=%s", organization_id, reason.value)
    return episode, True


def resolve_purgatory(db: Session, *, organization_id: int, now: datetime) -> int:
    """Resolve every active episode for the organization; returns the number resolved."""
    resolved = (
        db.query(PurgatoryEvent)
        .filter(
            PurgatoryEvent.organization_id == organization_id,
            PurgatoryEvent.status == PurgatoryEventStatus.ACTIVE.value,
        )
        .update(
            {
                PurgatoryEvent.status: PurgatoryEventStatus.RESOLVED.value,
                PurgatoryEvent.resolved_at: now,
            },
            synchronize_session=False,
        )
    )
    if resolved:
        logger.info("Resolved %d purgatory episode(s) for org_id=%s", resolved, organization_id)
    return int(resolved or 0)
