"""Celery email tasks for billing notifications."""

import logging
from ...tasks.celery_app import celery_app
from ...platform.config import settings

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def send_billing_notification_email(self, recipient: str, subject: str, body: str):
    """Deliver one billing notification email, retrying on provider errors."""
    from .email_client import EmailService

    try:
        email_svc = EmailService(api_key=settings.RESEND_API_KEY, from_email=settings.EMAIL_FROM)
        result = email_svc.send_notification_email(recipient=recipient, subject=subject, body=body)
        if not result["success"]:
            raise Exception(result.get("error", "Email send failed"))
        logger.info(f"Billing notification sent to {recipient}")
        return result
    except Exception as exc:
        logger.error(f"Failed to send billing notification to {recipient}: {exc}")
        raise self.retry(exc=exc)
