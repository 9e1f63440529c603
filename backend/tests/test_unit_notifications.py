"""Unit tests for billing notification templates, the Resend client and the notifier."""

from unittest.mock import MagicMock, patch

import pytest

from radorder_billing.components.notifications.email_client import EmailService
from radorder_billing.components.notifications.service import BillingNotifier
from radorder_billing.components.notifications.templates import (
    BillingNotice,
    BillingNoticeKind,
    render_billing_notice,
)
from radorder_billing.models.user import User


def _failure_notice(kind=BillingNoticeKind.PAYMENT_FAILED_WARNING, attempt=2):
    return BillingNotice(
        kind,
        {"invoice_number": "INV-7", "amount_due": 12345, "currency": "usd", "attempt_count": attempt},
    )


# ===================================================================
# Templates
# ===================================================================


class TestTemplates:

    def test_suspension_after_payment_failure(self):
        subject, body = render_billing_notice(
            _failure_notice(BillingNoticeKind.SUSPENDED_PAYMENT_FAILED), "Harbor Imaging Partners"
        )
        assert subject == "URGENT: Account Payment Failure"
        assert "Harbor Imaging Partners" in body
        assert "INV-7" in body
        assert "123.45 USD" in body

    def test_warning_mentions_attempt(self):
        subject, body = render_billing_notice(_failure_notice(attempt=2), "Org")
        assert subject == "Payment Failure Notice (attempt 2)"
        assert "Payment attempt 2" in body

    def test_cancellation(self):
        subject, body = render_billing_notice(BillingNotice(BillingNoticeKind.SUSPENDED_SUBSCRIPTION_CANCELED), "Org")
        assert subject == "IMPORTANT: Account Status Change"
        assert "subscription cancellation" in body

    def test_reactivation(self):
        subject, body = render_billing_notice(BillingNotice(BillingNoticeKind.REACTIVATED), "Org")
        assert subject == "Account Reactivated"
        assert "reactivated" in body

    def test_missing_invoice_details_render_placeholders(self):
        _, body = render_billing_notice(BillingNotice(BillingNoticeKind.SUSPENDED_PAYMENT_FAILED), "Org")
        assert "N/A" in body
        assert "0.00 USD" in body


# ===================================================================
# EmailService
# ===================================================================


class TestEmailService:

    def test_send_success(self):
        with patch("radorder_billing.components.notifications.email_client.resend") as mock_resend:
            mock_resend.Emails.send.return_value = {"id": "email_123"}
            svc = EmailService(api_key="re_test", from_email="Billing <billing@example.com>")
            result = svc.send_notification_email("admin@example.com", "Subject", "Body")

        assert result == {"success": True, "email_id": "email_123"}
        sent = mock_resend.Emails.send.call_args[0][0]
        assert sent["to"] == ["admin@example.com"]
        assert sent["text"] == "Body"
        assert sent["from"] == "Billing <billing@example.com>"

    def test_send_failure_never_raises(self):
        with patch("radorder_billing.components.notifications.email_client.resend") as mock_resend:
            mock_resend.Emails.send.side_effect = RuntimeError("rate limited")
            svc = EmailService(api_key="re_test")
            result = svc.send_notification_email("admin@example.com", "Subject", "Body")

        assert result["success"] is False
        assert "rate limited" in result["error"]


# ===================================================================
# BillingNotifier
# ===================================================================


class TestBillingNotifier:

    def test_sends_every_notice_to_every_admin(self):
        email_service = MagicMock()
        email_service.send_notification_email.return_value = {"success": True, "email_id": "x"}
        notifier = BillingNotifier(
            email_service,
            use_celery=False,
            recipients_lookup=lambda db, org_id: ["a@example.com", "b@example.com"],
        )

        accepted = notifier.notify(
            None,
            organization_id=1,
            organization_name="Org",
            notices=[_failure_notice(), BillingNotice(BillingNoticeKind.REACTIVATED)],
        )

        assert accepted == 4
        recipients = [c.kwargs["recipient"] for c in email_service.send_notification_email.call_args_list]
        assert recipients == ["a@example.com", "b@example.com", "a@example.com", "b@example.com"]

    def test_per_recipient_failure_is_logged_and_skipped(self, caplog):
        email_service = MagicMock()
        email_service.send_notification_email.side_effect = [RuntimeError("down"), {"success": True}]
        notifier = BillingNotifier(
            email_service,
            use_celery=False,
            recipients_lookup=lambda db, org_id: ["a@example.com", "b@example.com"],
        )

        accepted = notifier.notify(None, organization_id=1, organization_name="Org", notices=[_failure_notice()])

        assert accepted == 1
        assert any("failed" in r.getMessage() for r in caplog.records)

    def test_no_recipients(self):
        email_service = MagicMock()
        notifier = BillingNotifier(email_service, use_celery=False, recipients_lookup=lambda db, org_id: [])
        assert notifier.notify(None, organization_id=1, organization_name="Org", notices=[_failure_notice()]) == 0
        email_service.send_notification_email.assert_not_called()

    def test_recipient_lookup_error_is_swallowed(self):
        def broken(db, org_id):
            raise RuntimeError("db gone")

        notifier = BillingNotifier(MagicMock(), use_celery=False, recipients_lookup=broken)
        assert notifier.notify(None, organization_id=1, organization_name="Org", notices=[_failure_notice()]) == 0

    def test_without_resend_key_skips_send(self, monkeypatch):
        from radorder_billing.components.notifications import service as notifier_module

        monkeypatch.setattr(notifier_module.settings, "RESEND_API_KEY", "")
        notifier = BillingNotifier(use_celery=False, recipients_lookup=lambda db, org_id: ["a@example.com"])
        assert notifier.notify(None, organization_id=1, organization_name="Org", notices=[_failure_notice()]) == 0

    def test_celery_path_enqueues(self):
        notifier = BillingNotifier(use_celery=True, recipients_lookup=lambda db, org_id: ["a@example.com"])
        with patch("radorder_billing.components.notifications.tasks.send_billing_notification_email") as mock_task:
            accepted = notifier.notify(
                None, organization_id=1, organization_name="Org", notices=[BillingNotice(BillingNoticeKind.REACTIVATED)]
            )
        assert accepted == 1
        recipient, subject, _body = mock_task.delay.call_args[0]
        assert recipient == "a@example.com"
        assert subject == "Account Reactivated"

    def test_enqueue_failure_is_swallowed(self):
        notifier = BillingNotifier(use_celery=True, recipients_lookup=lambda db, org_id: ["a@example.com"])
        with patch("radorder_billing.components.notifications.tasks.send_billing_notification_email") as mock_task:
            mock_task.delay.side_effect = ConnectionError("redis down")
            accepted = notifier.notify(
                None, organization_id=1, organization_name="Org", notices=[BillingNotice(BillingNoticeKind.REACTIVATED)]
            )
        assert accepted == 0

    def test_default_lookup_reads_active_admins(self, db, make_org):
        org = make_org(admins=("owner", "second"))
        db.add(User(email=f"doc-{org.id}@example.com", role="physician", organization_id=org.id))
        db.commit()
        email_service = MagicMock()
        email_service.send_notification_email.return_value = {"success": True}

        accepted = BillingNotifier(email_service, use_celery=False).notify(
            db, organization_id=org.id, organization_name=org.name, notices=[_failure_notice()]
        )

        assert accepted == 2


# ===================================================================
# Celery task
# ===================================================================


class TestNotificationTask:

    def test_task_sends_through_email_service(self):
        from radorder_billing.components.notifications.tasks import send_billing_notification_email

        with patch(
            "radorder_billing.components.notifications.email_client.EmailService.send_notification_email",
            return_value={"success": True, "email_id": "e1"},
        ) as mock_send, patch("radorder_billing.components.notifications.email_client.resend"):
            result = send_billing_notification_email("a@example.com", "Subject", "Body")

        assert result["success"] is True
        mock_send.assert_called_once_with(recipient="a@example.com", subject="Subject", body="Body")

    def test_task_failure_raises_for_retry(self):
        from radorder_billing.components.notifications.tasks import send_billing_notification_email

        with patch(
            "radorder_billing.components.notifications.email_client.EmailService.send_notification_email",
            return_value={"success": False, "error": "bounced"},
        ), patch("radorder_billing.components.notifications.email_client.resend"):
            with pytest.raises(Exception):
                send_billing_notification_email("a@example.com", "Subject", "Body")
