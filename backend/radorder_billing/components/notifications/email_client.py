"""
Resend email service for billing notifications.

Handles transactional delivery of account-status emails (payment failure,
suspension, reactivation) via the Resend API.
"""

import logging

import resend

from ...platform.brand import brand_email_from

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending transactional emails through Resend."""

    def __init__(self, api_key: str, from_email: str = brand_email_from()):
        resend.api_key = api_key
        self.from_email = from_email
        logger.info("EmailService initialised (from=%s)", self.from_email)

    def send_notification_email(self, recipient: str, subject: str, body: str) -> dict:
        """Send a plain-text notification. Never raises; check ``success``."""
        try:
            logger.info("Sending notification '%s' to %s", subject, recipient)

            email = resend.Emails.send({
                "from": self.from_email,
                "to": [recipient],
                "subject": subject,
                "text": body,
            })

            email_id = email.get("id", "") if isinstance(email, dict) else str(email)
            logger.info("Notification sent successfully (email_id=%s, to=%s)", email_id, recipient)
            return {"success": True, "email_id": email_id}
        except Exception as e:
            logger.error("Failed to send notification to %s: %s", recipient, str(e))
            return {"success": False, "email_id": "", "error": str(e)}
