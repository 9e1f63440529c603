"""Parking for verified events that reference no known organization."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.webhook_dead_letter import WebhookDeadLetter
from ...schemas.billing_event import WebhookEvent

logger = logging.getLogger(__name__)


def record_failure(db: Session, event: WebhookEvent, error: str, now: datetime) -> WebhookDeadLetter:
    """Create or bump the dead letter for ``event`` and commit it on its own.

    Call only after the handler transaction has been rolled back.
    """
    letter = db.query(WebhookDeadLetter).filter(WebhookDeadLetter.stripe_event_id == event.id).first()
    if letter is None:
        letter = WebhookDeadLetter(
            stripe_event_id=event.id,
            event_type=event.type,
            payload=event.payload,
            error=error,
            attempts=1,
            first_failed_at=now,
            last_failed_at=now,
        )
        db.add(letter)
        try:
            db.commit()
        except IntegrityError:
            # A concurrent delivery of the same event inserted it first.
            db.rollback()
            return record_failure(db, event, error, now)
    else:
        letter.attempts = int(letter.attempts or 0) + 1
        letter.error = error
        letter.last_failed_at = now
        letter.resolved_at = None
        db.commit()
    db.refresh(letter)
    return letter


def resolve(db: Session, stripe_event_id: str, now: datetime) -> bool:
    """Mark the dead letter for an event resolved within the caller's transaction."""
    updated = (
        db.query(WebhookDeadLetter)
        .filter(
            WebhookDeadLetter.stripe_event_id == stripe_event_id,
            WebhookDeadLetter.resolved_at.is_(None),
        )
        .update({WebhookDeadLetter.resolved_at: now}, synchronize_session=False)
    )
    if updated:
        logger.info("Dead letter for stripe event %s resolved", stripe_event_id)
    return bool(updated)


def list_unresolved(db: Session) -> list[WebhookDeadLetter]:
    return (
        db.query(WebhookDeadLetter)
        .filter(WebhookDeadLetter.resolved_at.is_(None))
        .order_by(WebhookDeadLetter.first_failed_at.asc(), WebhookDeadLetter.id.asc())
        .all()
    )


def get_dead_letter(db: Session, dead_letter_id: int) -> WebhookDeadLetter | None:
    return db.query(WebhookDeadLetter).filter(WebhookDeadLetter.id == dead_letter_id).first()
