import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from app.core.enums import AppRole
from app.db.session import Base


class Profile(Base):
    """Application profile of an authenticated user. id is the identity provider's user id."""

    __tablename__ = "profiles"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    # Owning agency; null until the user is linked (trial signup or invitation)
    agency_id = Column(Uuid(as_uuid=True), ForeignKey("agencies.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    agency = relationship("Agency")
    role = relationship("UserRole", back_populates="profile", uselist=False, cascade="all, delete-orphan")


class UserRole(Base):
    """Platform role of a user: super_admin (not tenant scoped), admin or agent."""

    __tablename__ = "user_roles"
    __table_args__ = (
        # A user holds a single role
        UniqueConstraint("user_id", name="uq_user_role_user"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False, default=AppRole.AGENT.value)

    profile = relationship("Profile", back_populates="role")
