"""Plain-text email templates for billing lifecycle notifications."""

import enum
from dataclasses import dataclass, field
from typing import Any

from ...platform.brand import BRAND_NAME
from ...shared.utils import format_minor_units


class BillingNoticeKind(str, enum.Enum):
    SUSPENDED_PAYMENT_FAILED = "suspended_payment_failed"
    PAYMENT_FAILED_WARNING = "payment_failed_warning"
    SUSPENDED_SUBSCRIPTION_CANCELED = "suspended_subscription_canceled"
    REACTIVATED = "reactivated"


@dataclass(frozen=True)
class BillingNotice:
    """A notification to send to an organization's admins once the transaction commits."""

    kind: BillingNoticeKind
    context: dict[str, Any] = field(default_factory=dict)


def _sign_off() -> str:
    return f"Best regards,\nThe {BRAND_NAME} Team"


def _invoice_details(context: dict[str, Any]) -> str:
    return (
        "Invoice Details:\n"
        f"- Invoice Number: {context.get('invoice_number') or 'N/A'}\n"
        f"- Amount Due: {format_minor_units(context.get('amount_due'), context.get('currency'))}\n"
    )


def suspended_payment_failed_text(org_name: str, context: dict[str, Any]) -> tuple[str, str]:
    subject = "URGENT: Account Payment Failure"
    body = (
        "Hello,\n\n"
        f"Your organization's account ({org_name}) has been placed on hold due to a payment failure.\n\n"
        f"{_invoice_details(context)}\n"
        f"While your account is on hold, you will have limited access to {BRAND_NAME} features. "
        "To restore full access, please update your payment information in your account settings "
        "or contact our support team for assistance.\n\n"
        f"{_sign_off()}"
    )
    return subject, body


def payment_failed_warning_text(org_name: str, context: dict[str, Any]) -> tuple[str, str]:
    attempt = int(context.get("attempt_count") or 1)
    subject = f"Payment Failure Notice (attempt {attempt})"
    body = (
        "Hello,\n\n"
        f"Payment attempt {attempt} for your organization's account ({org_name}) "
        "has failed to process.\n\n"
        f"{_invoice_details(context)}\n"
        "Please update your payment information in your account settings to avoid any "
        "interruption to your service. If you believe this is an error or need assistance, "
        "please contact our support team.\n\n"
        f"{_sign_off()}"
    )
    return subject, body


def suspended_subscription_canceled_text(org_name: str, context: dict[str, Any]) -> tuple[str, str]:
    subject = "IMPORTANT: Account Status Change"
    body = (
        "Hello,\n\n"
        f"Your organization's account ({org_name}) has been placed on hold due to subscription "
        "cancellation.\n\n"
        f"While your account is on hold, you will have limited access to {BRAND_NAME} features. "
        "To restore full access, please renew your subscription in your account settings "
        "or contact our support team for assistance.\n\n"
        f"{_sign_off()}"
    )
    return subject, body


def reactivated_text(org_name: str, context: dict[str, Any]) -> tuple[str, str]:
    subject = "Account Reactivated"
    body = (
        "Hello,\n\n"
        f"Your organization's account ({org_name}) has been reactivated after a successful payment. "
        f"You now have full access to all {BRAND_NAME} features.\n\n"
        "Thank you for your continued partnership.\n\n"
        f"{_sign_off()}"
    )
    return subject, body


_RENDERERS = {
    BillingNoticeKind.SUSPENDED_PAYMENT_FAILED: suspended_payment_failed_text,
    BillingNoticeKind.PAYMENT_FAILED_WARNING: payment_failed_warning_text,
    BillingNoticeKind.SUSPENDED_SUBSCRIPTION_CANCELED: suspended_subscription_canceled_text,
    BillingNoticeKind.REACTIVATED: reactivated_text,
}


def render_billing_notice(notice: BillingNotice, org_name: str) -> tuple[str, str]:
    """Return ``(subject, body)`` for a notice."""
    return _RENDERERS[notice.kind](org_name, notice.context)
