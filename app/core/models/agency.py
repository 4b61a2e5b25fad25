import uuid

from sqlalchemy import Boolean, Column, DateTime, String, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from app.db.session import Base


class Agency(Base):
    """
    Tenant root: one travel agency using the platform.

    The unit of billing and data isolation. Created once per signup by trial
    provisioning; holds at most one AgencySubscription row.
    """

    __tablename__ = "agencies"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    subscription = relationship(
        "AgencySubscription", back_populates="agency", uselist=False, cascade="all, delete-orphan"
    )
