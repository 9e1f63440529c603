import enum

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..platform.database import Base


class OrganizationStatus(str, enum.Enum):
    ACTIVE = "active"
    PURGATORY = "purgatory"


class OrganizationType(str, enum.Enum):
    REFERRING_PRACTICE = "referring_practice"
    RADIOLOGY_GROUP = "radiology_group"


class Organization(Base):
    __tablename__ = "organizations"
    __table_args__ = (
        CheckConstraint("credit_balance >= 0", name="ck_organizations_credit_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, default=OrganizationType.REFERRING_PRACTICE.value)
    # Payment-provider customer reference; empty until the first payment setup.
    billing_id = Column(String, unique=True, index=True, nullable=True)
    credit_balance = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default=OrganizationStatus.ACTIVE.value, index=True)
    subscription_tier = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    users = relationship("User", back_populates="organization")
    billing_events = relationship("BillingEvent", back_populates="organization", order_by="BillingEvent.id")
    purgatory_events = relationship("PurgatoryEvent", back_populates="organization", order_by="PurgatoryEvent.id")
