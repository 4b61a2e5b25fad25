import uuid

from sqlalchemy import Column, DateTime, String, Text, Uuid

from app.core.clock import utcnow
from app.db.session import Base


class PlatformSetting(Base):
    """Platform-wide key/value setting (Stripe credentials, trial defaults, branding)."""

    __tablename__ = "platform_settings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    setting_key = Column(String(100), nullable=False, unique=True, index=True)
    setting_value = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
