import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, Uuid

from app.core.clock import utcnow
from app.db.session import Base


class ProvisioningStep(Base):
    """
    Completion marker for one step of trial provisioning.

    Steps after agency creation are allowed to fail without rolling back the agency;
    a row with succeeded=False is how repair tooling finds half-provisioned tenants.
    """

    __tablename__ = "provisioning_steps"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(Uuid(as_uuid=True), ForeignKey("agencies.id", ondelete="CASCADE"), nullable=False, index=True)
    step = Column(String(50), nullable=False)
    succeeded = Column(Boolean, nullable=False)
    error = Column(Text, nullable=True)
    recorded_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
