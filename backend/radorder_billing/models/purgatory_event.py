import enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..platform.database import Base


class PurgatoryEventStatus(str, enum.Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


class PurgatoryReason(str, enum.Enum):
    PAYMENT_FAILED = "payment_failed"
    SUBSCRIPTION_CANCELED = "subscription_canceled"


class PurgatoryEvent(Base):
    __tablename__ = "purgatory_events"
    __table_args__ = (
        # At most one open suspension episode per organization.
        Index(
            "uq_purgatory_events_one_active_per_org",
            "organization_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), index=True, nullable=False)
    reason = Column(String, nullable=False)
    triggered_by = Column(String, nullable=False, default="stripe_webhook")
    stripe_event_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default=PurgatoryEventStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    organization = relationship("Organization", back_populates="purgatory_events")
