"""Pure organization-lifecycle transitions for billing events.

Every function here maps (stored organization state, typed event, config) to a
``Transition`` without touching the database. Handlers lock the organization,
call one of these, and then write the result. Replaying the same inputs always
yields the same transition.

State machine for ``Organization.status``::

    active --(failure threshold | subscription canceled)--> purgatory
    purgatory --(invoice payment succeeded)--> active

Redundant events (active->active, purgatory->purgatory) change no status but
still produce a ledger row.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from ...components.notifications.templates import BillingNotice, BillingNoticeKind
from ...models.billing_event import BillingEventType
from ...models.organization import OrganizationStatus
from ...models.purgatory_event import PurgatoryReason
from ...platform.config import PurgatoryPolicy
from ...schemas.billing_event import CheckoutSessionObject, InvoiceObject, SubscriptionObject
from ...services.billing_catalog import BillingCatalog
from ...services.organization_state_service import OrganizationSnapshot

ACTIVE = OrganizationStatus.ACTIVE.value
PURGATORY = OrganizationStatus.PURGATORY.value


class Cascade(str, enum.Enum):
    TO_PURGATORY = "to_purgatory"
    TO_ACTIVE = "to_active"


@dataclass(frozen=True)
class Transition:
    ledger_type: BillingEventType
    credit_balance: int
    status: str
    subscription_tier: Optional[str]
    description: str
    amount_cents: Optional[int] = None
    currency: Optional[str] = None
    stripe_invoice_id: Optional[str] = None
    open_purgatory: Optional[PurgatoryReason] = None
    resolve_purgatory: bool = False
    cascade: Optional[Cascade] = None
    link_billing_id: Optional[str] = None
    notices: tuple[BillingNotice, ...] = ()

    def credits_delta(self, before: OrganizationSnapshot) -> int:
        return self.credit_balance - before.credit_balance


def consumes_credits(org: OrganizationSnapshot, policy: PurgatoryPolicy) -> bool:
    return org.type in policy.credit_consuming_org_types


def renewal_balance(current: int, allotment: int, mode: str) -> int:
    """Balance after a subscription renewal.

    ``reset`` replaces the balance with the allotment (unspent credits are
    dropped, the ledger's negative ``credits_delta`` records how many);
    ``add`` stacks the allotment on top of the current balance.
    """
    if mode == "add":
        return current + allotment
    return allotment


def should_enter_purgatory(recent_failures: int, attempt_count: int, policy: PurgatoryPolicy) -> bool:
    """Either condition alone is enough: trailing-window failures or provider retry count."""
    return recent_failures >= policy.failure_threshold or attempt_count > policy.max_attempts


def checkout_completed(
    org: OrganizationSnapshot,
    session: CheckoutSessionObject,
    catalog: BillingCatalog,
    *,
    customer_linkable: bool = True,
) -> Transition:
    """Credit a bundle purchase.

    The checkout's customer id is adopted as the organization's billing id only
    when the organization has none and ``customer_linkable`` says no other
    organization already owns it. The credits land either way.
    """
    credits = catalog.credits_for_bundle(session.bundle_id)
    link = None
    if not org.billing_id and session.customer and customer_linkable:
        link = session.customer
    return Transition(
        ledger_type=BillingEventType.TOP_UP,
        credit_balance=org.credit_balance + credits,
        status=org.status,
        subscription_tier=org.subscription_tier,
        amount_cents=session.amount_total or 0,
        currency=session.currency or "usd",
        description=f"Credit bundle purchase: {credits} credits added",
        link_billing_id=link,
    )


def invoice_payment_succeeded(
    org: OrganizationSnapshot,
    invoice: InvoiceObject,
    catalog: BillingCatalog,
    policy: PurgatoryPolicy,
) -> Transition:
    balance = org.credit_balance
    tier = org.subscription_tier
    detail = f"Payment for invoice {invoice.number or invoice.id}"
    if invoice.is_subscription_invoice:
        ledger_type = BillingEventType.SUBSCRIPTION_PAYMENT
        if tier is None and invoice.price_id:
            tier = catalog.tier_for_price(invoice.price_id)
        detail = f"Subscription payment: {tier or 'unknown tier'}"
        if tier is None:
            # Nothing to replenish against; the balance is left as it is.
            detail = f"{detail}, no tier on record so credits unchanged"
        elif consumes_credits(org, policy):
            allotment = catalog.allotment_for_tier(tier)
            balance = renewal_balance(org.credit_balance, allotment, policy.renewal_credit_mode)
            detail = (
                f"Subscription payment: {tier}, "
                f"credits {policy.renewal_credit_mode} to {balance} (allotment {allotment})"
            )
    else:
        ledger_type = BillingEventType.CHARGE

    if org.in_purgatory:
        return Transition(
            ledger_type=ledger_type,
            credit_balance=balance,
            status=ACTIVE,
            subscription_tier=tier,
            amount_cents=invoice.amount_paid,
            currency=invoice.currency or "usd",
            stripe_invoice_id=invoice.id,
            description=f"{detail}; organization reactivated",
            resolve_purgatory=True,
            cascade=Cascade.TO_ACTIVE,
            notices=(BillingNotice(BillingNoticeKind.REACTIVATED),),
        )
    return Transition(
        ledger_type=ledger_type,
        credit_balance=balance,
        status=org.status,
        subscription_tier=tier,
        amount_cents=invoice.amount_paid,
        currency=invoice.currency or "usd",
        stripe_invoice_id=invoice.id,
        description=detail,
    )


def invoice_payment_failed(
    org: OrganizationSnapshot,
    invoice: InvoiceObject,
    recent_failures: int,
    policy: PurgatoryPolicy,
) -> Transition:
    """``recent_failures`` counts failed payments in the trailing window, this one included."""
    notice_context = {
        "invoice_number": invoice.number or invoice.id,
        "amount_due": invoice.amount_due,
        "currency": invoice.currency,
        "attempt_count": max(invoice.attempt_count, 1),
    }
    base = dict(
        ledger_type=BillingEventType.PAYMENT_FAILED,
        credit_balance=org.credit_balance,
        subscription_tier=org.subscription_tier,
        amount_cents=invoice.amount_due,
        currency=invoice.currency or "usd",
        stripe_invoice_id=invoice.id,
    )
    description = (
        f"Invoice payment failed: {invoice.number or invoice.id} "
        f"(attempt {invoice.attempt_count}, {recent_failures} failure(s) in {policy.failure_window_days}d)"
    )
    if not org.in_purgatory and should_enter_purgatory(recent_failures, invoice.attempt_count, policy):
        return Transition(
            status=PURGATORY,
            description=f"{description}; organization suspended",
            open_purgatory=PurgatoryReason.PAYMENT_FAILED,
            cascade=Cascade.TO_PURGATORY,
            notices=(BillingNotice(BillingNoticeKind.SUSPENDED_PAYMENT_FAILED, notice_context),),
            **base,
        )
    return Transition(
        status=org.status,
        description=description,
        notices=(BillingNotice(BillingNoticeKind.PAYMENT_FAILED_WARNING, notice_context),),
        **base,
    )


def subscription_changed(
    org: OrganizationSnapshot,
    subscription: SubscriptionObject,
    catalog: BillingCatalog,
    ledger_type: BillingEventType,
) -> Transition:
    """Tier bookkeeping for subscription created/updated events.

    Status is left alone whatever the provider reports (``past_due``,
    ``unpaid``...): suspension belongs to the payment-failed path only.
    """
    new_tier = org.subscription_tier
    if subscription.price_id:
        new_tier = catalog.tier_for_price(subscription.price_id)
    if new_tier != org.subscription_tier:
        change = f"tier {org.subscription_tier or 'none'} -> {new_tier}"
    else:
        change = f"tier unchanged ({new_tier or 'none'})"
    return Transition(
        ledger_type=ledger_type,
        credit_balance=org.credit_balance,
        status=org.status,
        subscription_tier=new_tier,
        description=f"Subscription {subscription.id}: provider status={subscription.status or 'unknown'}, {change}",
    )


def subscription_canceled(
    org: OrganizationSnapshot,
    subscription: SubscriptionObject,
    policy: PurgatoryPolicy,
) -> Transition:
    if not consumes_credits(org, policy):
        return Transition(
            ledger_type=BillingEventType.SUBSCRIPTION_CANCELED,
            credit_balance=org.credit_balance,
            status=org.status,
            subscription_tier=None,
            description=f"Subscription {subscription.id} canceled; tier cleared",
        )
    return Transition(
        ledger_type=BillingEventType.SUBSCRIPTION_CANCELED,
        credit_balance=org.credit_balance,
        status=PURGATORY,
        subscription_tier=None,
        description=f"Subscription {subscription.id} canceled; organization moved to purgatory",
        open_purgatory=PurgatoryReason.SUBSCRIPTION_CANCELED,
        cascade=Cascade.TO_PURGATORY,
        notices=(BillingNotice(BillingNoticeKind.SUSPENDED_SUBSCRIPTION_CANCELED),),
    )
