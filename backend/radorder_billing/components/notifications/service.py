"""Best-effort billing notifications, sent after the ledger transaction commits."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from ...platform.config import settings
from ...services.user_directory import list_admin_emails
from .email_client import EmailService
from .templates import BillingNotice, render_billing_notice

logger = logging.getLogger(__name__)


class BillingNotifier:
    """Fan a notice out to an organization's admins.

    Failures are logged and swallowed: by the time this runs the financial
    transaction is committed and must not be retried on account of email.
    With Celery enabled the send is enqueued; otherwise it runs inline.
    """

    def __init__(
        self,
        email_service: Optional[EmailService] = None,
        *,
        use_celery: Optional[bool] = None,
        recipients_lookup: Callable[[Session, int], list[str]] = list_admin_emails,
    ):
        self._email_service = email_service
        self._use_celery = (not settings.MVP_DISABLE_CELERY) if use_celery is None else use_celery
        self._recipients_lookup = recipients_lookup

    def _sync_email_service(self) -> Optional[EmailService]:
        if self._email_service is not None:
            return self._email_service
        if not (settings.RESEND_API_KEY or "").strip():
            return None
        self._email_service = EmailService(api_key=settings.RESEND_API_KEY, from_email=settings.EMAIL_FROM)
        return self._email_service

    def notify(
        self,
        db: Session,
        *,
        organization_id: int,
        organization_name: str,
        notices: Iterable[BillingNotice],
    ) -> int:
        """Send every notice to every admin; returns the number of sends accepted."""
        notices = list(notices)
        if not notices:
            return 0
        try:
            recipients = self._recipients_lookup(db, organization_id)
        except Exception:
            logger.warning(
                "Could not resolve notification recipients for org_id=%s",
                organization_id,
                exc_info=True,
                extra={"organization_id": organization_id},
            )
            return 0
        if not recipients:
            logger.warning(
                "No admin recipients for org_id=%s; %d notice(s) dropped",
                organization_id,
                len(notices),
                extra={"organization_id": organization_id},
            )
            return 0

        accepted = 0
        for notice in notices:
            subject, body = render_billing_notice(notice, organization_name)
            for recipient in recipients:
                if self._send(recipient, subject, body, organization_id):
                    accepted += 1
        return accepted

    def _send(self, recipient: str, subject: str, body: str, organization_id: int) -> bool:
        try:
            if self._use_celery:
                from .tasks import send_billing_notification_email

                send_billing_notification_email.delay(recipient, subject, body)
                return True
            email_svc = self._sync_email_service()
            if email_svc is None:
                logger.info("RESEND_API_KEY not configured; skipping '%s' to %s", subject, recipient)
                return False
            result = email_svc.send_notification_email(recipient=recipient, subject=subject, body=body)
            return bool(result.get("success"))
        except Exception:
            logger.warning(
                "Billing notification '%s' to %s failed",
                subject,
                recipient,
                exc_info=True,
                extra={"organization_id": organization_id},
            )
            return False
