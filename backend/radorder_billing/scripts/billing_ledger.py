"""
Operator tooling for the billing ledger.

Usage (from backend/ with DATABASE_URL set):
  python -m radorder_billing.scripts.billing_ledger replay --org 42 [--opening-balance 0]
  python -m radorder_billing.scripts.billing_ledger dead-letters
  python -m radorder_billing.scripts.billing_ledger retry-dead-letter 7

``replay`` rebuilds an organization's balance, status and tier from its ledger
rows and compares them with the stored organization (exit 1 on mismatch).
``retry-dead-letter`` re-dispatches a parked event once its organization exists.
"""
from __future__ import annotations

import argparse
import sys
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from radorder_billing.domains.billing_webhooks import dead_letters
from radorder_billing.domains.billing_webhooks.dispatcher import BillingWebhookDispatcher
from radorder_billing.models.organization import Organization
from radorder_billing.platform.database import SessionLocal
from radorder_billing.schemas.billing_event import WebhookEvent
from radorder_billing.services.billing_ledger_service import list_billing_events, replay_ledger
from radorder_billing.services.organization_state_service import OrganizationNotFoundError


def replay(db: Session, org_id: int, opening_balance: int = 0) -> int:
    org = db.query(Organization).filter(Organization.id == org_id).first()
    if not org:
        print(f"Organization not found: {org_id}", file=sys.stderr)
        return 2
    result = replay_ledger(list_billing_events(db, org.id), opening_balance=opening_balance)
    print(f"org_id={org.id} ({org.name}): {result.events_applied} ledger row(s)")
    print(f"  replayed: balance={result.credit_balance} status={result.status} tier={result.subscription_tier}")
    print(f"  stored:   balance={org.credit_balance} status={org.status} tier={org.subscription_tier}")
    if result.broken_links:
        print(f"  balance_after mismatches at ledger ids: {list(result.broken_links)}", file=sys.stderr)
    if not result.matches(org) or result.broken_links:
        print("MISMATCH", file=sys.stderr)
        return 1
    print("OK")
    return 0


def list_dead_letters(db: Session) -> int:
    letters = dead_letters.list_unresolved(db)
    if not letters:
        print("No unresolved dead letters.")
        return 0
    for letter in letters:
        print(
            f"{letter.id}\t{letter.stripe_event_id}\t{letter.event_type}\t"
            f"attempts={letter.attempts}\tlast_failed_at={letter.last_failed_at}\t{letter.error or ''}"
        )
    return 0


def retry_dead_letter(db: Session, dead_letter_id: int, dispatcher: BillingWebhookDispatcher) -> int:
    letter = dead_letters.get_dead_letter(db, dead_letter_id)
    if not letter:
        print(f"Dead letter not found: {dead_letter_id}", file=sys.stderr)
        return 2
    if letter.resolved_at is not None:
        print(f"Dead letter {letter.id} already resolved at {letter.resolved_at}")
        return 0
    event = WebhookEvent.from_payload(letter.payload)
    try:
        result = dispatcher.dispatch(db, event)
    except OrganizationNotFoundError as exc:
        print(f"Still no organization for {event.id}: {exc}", file=sys.stderr)
        return 1
    print(f"{event.id} ({event.type}): {result.status}")
    return 0


def _operator_dispatcher() -> BillingWebhookDispatcher:
    # Operator retries are not bounded by the webhook retry budget.
    return BillingWebhookDispatcher.from_settings(dead_letter_after=sys.maxsize)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Billing ledger replay and dead-letter tooling")
    sub = parser.add_subparsers(dest="command", required=True)

    replay_parser = sub.add_parser("replay", help="Rebuild org state from the ledger and compare")
    replay_parser.add_argument("--org", type=int, required=True, help="Organization id")
    replay_parser.add_argument(
        "--opening-balance",
        type=int,
        default=0,
        help="Credit balance the organization had before its first ledger row",
    )

    sub.add_parser("dead-letters", help="List unresolved dead-lettered webhook events")

    retry_parser = sub.add_parser("retry-dead-letter", help="Re-dispatch a dead-lettered event")
    retry_parser.add_argument("dead_letter_id", type=int)
    return parser


def main(
    argv: Optional[Sequence[str]] = None,
    session_factory: Callable[[], Session] = SessionLocal,
    dispatcher: Optional[BillingWebhookDispatcher] = None,
) -> int:
    args = build_parser().parse_args(argv)
    db = session_factory()
    try:
        if args.command == "replay":
            return replay(db, args.org, args.opening_balance)
        if args.command == "dead-letters":
            return list_dead_letters(db)
        return retry_dead_letter(db, args.dead_letter_id, dispatcher or _operator_dispatcher())
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
