import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from ..platform.database import Base


class RelationshipStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    PURGATORY = "purgatory"
    REJECTED = "rejected"
    TERMINATED = "terminated"


class OrganizationRelationship(Base):
    __tablename__ = "organization_relationships"
    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "related_organization_id",
            name="uq_organization_relationships_pair",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), index=True, nullable=False)
    related_organization_id = Column(Integer, ForeignKey("organizations.id"), index=True, nullable=False)
    status = Column(String, nullable=False, default=RelationshipStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
