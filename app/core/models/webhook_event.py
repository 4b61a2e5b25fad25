from sqlalchemy import Column, DateTime, String

from app.core.clock import utcnow
from app.db.session import Base


class ProcessedWebhookEvent(Base):
    """Processor event ids already applied. Inserted in the same transaction as the state change."""

    __tablename__ = "processed_webhook_events"

    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(100), nullable=False)
    # applied | ignored
    outcome = Column(String(20), nullable=False)
    processed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
