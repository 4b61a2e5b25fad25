import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Uuid

from app.core.clock import utcnow
from app.db.session import Base


class PipelineStage(Base):
    """Sales pipeline stage of an agency (lead board column)."""

    __tablename__ = "pipeline_stages"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(Uuid(as_uuid=True), ForeignKey("agencies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    color = Column(String(20), nullable=False, default="#6366f1")
    order = Column(Integer, nullable=False, default=0)
    is_closed = Column(Boolean, nullable=False, default=False)
    is_lost = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class TaskColumn(Base):
    """Task board column of an agency."""

    __tablename__ = "task_columns"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(Uuid(as_uuid=True), ForeignKey("agencies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    color = Column(String(20), nullable=False, default="#64748b")
    order = Column(Integer, nullable=False, default=0)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
