import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..platform.database import Base


class BillingEventType(str, enum.Enum):
    TOP_UP = "top_up"
    SUBSCRIPTION_PAYMENT = "subscription_payment"
    CHARGE = "charge"
    PAYMENT_FAILED = "payment_failed"
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_CANCELED = "subscription_canceled"


class BillingEvent(Base):
    """Append-only ledger row, one per applied provider event."""

    __tablename__ = "billing_events"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), index=True, nullable=False)
    event_type = Column(String, nullable=False, index=True)
    amount_cents = Column(Integer, nullable=True)
    currency = Column(String(8), nullable=True)
    stripe_event_id = Column(String, nullable=False, unique=True, index=True)
    stripe_invoice_id = Column(String, nullable=True, index=True)
    description = Column(Text, nullable=True)
    # Post-event snapshot; lets an operator replay the ledger against the org row.
    credits_delta = Column(Integer, nullable=False, default=0)
    balance_after = Column(Integer, nullable=False)
    status_after = Column(String, nullable=False)
    tier_after = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    organization = relationship("Organization", back_populates="billing_events")
