from sqlalchemy import Column, DateTime, Integer, JSON, String, Text
from sqlalchemy.sql import func

from ..platform.database import Base


class WebhookDeadLetter(Base):
    """Verified provider events that could not be applied to any organization."""

    __tablename__ = "billing_webhook_dead_letters"

    id = Column(Integer, primary_key=True, index=True)
    stripe_event_id = Column(String, nullable=False, unique=True, index=True)
    event_type = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=1)
    first_failed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_failed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
