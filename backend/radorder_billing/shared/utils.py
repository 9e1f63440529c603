"""Shared utility functions used across components."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def format_minor_units(amount: int | None, currency: str | None) -> str:
    """Render an amount in minor units as ``12.34 USD``."""
    code = (currency or "usd").upper()
    return f"{(amount or 0) / 100:.2f} {code}"
