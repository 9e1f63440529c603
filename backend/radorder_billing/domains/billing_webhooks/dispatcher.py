"""Route verified Stripe events to their handler inside one DB transaction."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Mapping, Optional

from sqlalchemy.orm import Session

from ...components.notifications.service import BillingNotifier
from ...platform.config import PurgatoryPolicy, settings
from ...platform.request_context import reset_stripe_event_id, set_stripe_event_id
from ...schemas import billing_event as events
from ...schemas.billing_event import WebhookEvent
from ...services.billing_catalog import BillingCatalog
from ...services.billing_ledger_service import DuplicateEventError, is_event_applied
from ...services.organization_state_service import OrganizationNotFoundError
from ...shared.utils import utcnow
from . import dead_letters, handlers
from .handlers import Handler, HandlerContext, HandlerOutcome

logger = logging.getLogger(__name__)

PROCESSED = "processed"
DUPLICATE = "duplicate"
IGNORED = "ignored"
DEAD_LETTERED = "dead_lettered"

DEFAULT_HANDLERS: dict[str, Handler] = {
    events.CHECKOUT_SESSION_COMPLETED: handlers.handle_checkout_session_completed,
    events.INVOICE_PAYMENT_SUCCEEDED: handlers.handle_invoice_payment_succeeded,
    events.INVOICE_PAYMENT_FAILED: handlers.handle_invoice_payment_failed,
    events.SUBSCRIPTION_CREATED: handlers.handle_subscription_created,
    events.SUBSCRIPTION_UPDATED: handlers.handle_subscription_updated,
    events.SUBSCRIPTION_DELETED: handlers.handle_subscription_deleted,
}


@dataclass(frozen=True)
class DispatchResult:
    status: str
    event_id: str
    event_type: str
    organization_id: Optional[int] = None

    def as_response(self) -> dict:
        return {"status": self.status, "event_id": self.event_id, "event_type": self.event_type}


class BillingWebhookDispatcher:
    """Apply each verified event exactly once.

    The handler's writes and the dead-letter resolution commit together;
    any failure rolls the whole transaction back. Notices go out only after
    the commit and can never undo it.
    """

    def __init__(
        self,
        catalog: BillingCatalog,
        notifier: BillingNotifier,
        policy: PurgatoryPolicy,
        *,
        clock: Callable[[], datetime] = utcnow,
        handlers: Optional[Mapping[str, Handler]] = None,
        dead_letter_after: Optional[int] = None,
    ):
        self.catalog = catalog
        self.notifier = notifier
        self.policy = policy
        self.clock = clock
        self.handlers = dict(DEFAULT_HANDLERS if handlers is None else handlers)
        self.dead_letter_after = (
            settings.WEBHOOK_DEAD_LETTER_AFTER_ATTEMPTS if dead_letter_after is None else dead_letter_after
        )

    @classmethod
    def from_settings(cls, **overrides) -> "BillingWebhookDispatcher":
        return cls(
            catalog=BillingCatalog.from_settings(),
            notifier=BillingNotifier(),
            policy=settings.purgatory_policy,
            **overrides,
        )

    def dispatch(self, db: Session, event: WebhookEvent) -> DispatchResult:
        token = set_stripe_event_id(event.id)
        try:
            return self._dispatch(db, event)
        finally:
            reset_stripe_event_id(token)

    def _dispatch(self, db: Session, event: WebhookEvent) -> DispatchResult:
        handler = self.handlers.get(event.type)
        if handler is None:
            logger.info("Ignoring unsupported Stripe event type %s", event.type, extra={"outcome": IGNORED})
            return DispatchResult(IGNORED, event.id, event.type)

        if is_event_applied(db, event.id):
            logger.info("Stripe event %s already applied", event.id, extra={"outcome": DUPLICATE})
            return DispatchResult(DUPLICATE, event.id, event.type)

        now = self.clock()
        ctx = HandlerContext(catalog=self.catalog, policy=self.policy, now=now)
        try:
            outcome = handler(db, event, ctx)
            dead_letters.resolve(db, event.id, now)
            db.commit()
        except DuplicateEventError:
            db.rollback()
            logger.info(
                "Stripe event %s lost the race to a concurrent delivery",
                event.id,
                extra={"outcome": DUPLICATE},
            )
            return DispatchResult(DUPLICATE, event.id, event.type)
        except OrganizationNotFoundError as exc:
            db.rollback()
            return self._dead_letter(db, event, exc, now)
        except Exception:
            db.rollback()
            logger.exception("Failed to apply Stripe event %s (type=%s)", event.id, event.type)
            raise

        logger.info(
            "Applied Stripe event %s to org_id=%s",
            event.id,
            outcome.organization_id,
            extra={
                "organization_id": outcome.organization_id,
                "event_type": event.type,
                "outcome": PROCESSED,
            },
        )
        self._notify(db, outcome)
        return DispatchResult(PROCESSED, event.id, event.type, outcome.organization_id)

    def _dead_letter(
        self,
        db: Session,
        event: WebhookEvent,
        exc: OrganizationNotFoundError,
        now: datetime,
    ) -> DispatchResult:
        letter = dead_letters.record_failure(db, event, str(exc), now)
        if letter.attempts >= self.dead_letter_after:
            logger.critical(
                "Stripe event %s dead-lettered after %d attempts: %s",
                event.id,
                letter.attempts,
                exc,
                extra={"event_type": event.type, "outcome": DEAD_LETTERED},
            )
            return DispatchResult(DEAD_LETTERED, event.id, event.type)
        logger.error(
            "Stripe event %s references an unknown organization (attempt %d of %d): %s",
            event.id,
            letter.attempts,
            self.dead_letter_after,
            exc,
            extra={"event_type": event.type},
        )
        raise exc

    def _notify(self, db: Session, outcome: HandlerOutcome) -> None:
        if not outcome.notices:
            return
        try:
            self.notifier.notify(
                db,
                organization_id=outcome.organization_id,
                organization_name=outcome.organization_name,
                notices=outcome.notices,
            )
        except Exception:
            logger.warning(
                "Billing notification for org_id=%s failed after commit",
                outcome.organization_id,
                exc_info=True,
                extra={"organization_id": outcome.organization_id},
            )
