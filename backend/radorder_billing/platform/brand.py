"""Centralized brand configuration for user-facing copy."""

BRAND_NAME = "RadOrderPad"
BRAND_DOMAIN = "radorderpad.com"
BRAND_APP_DESCRIPTION = "Billing webhooks and organization lifecycle for RadOrderPad"

def brand_email_from() -> str:
    return f"{BRAND_NAME} <noreply@{BRAND_DOMAIN}>"
