import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String, Text, Uuid

from app.core.clock import utcnow
from app.core.enums import DiscountType
from app.db.session import Base


class DiscountCoupon(Base):
    """Platform discount coupon redeemable at checkout.

    code is stored upper-case; lookups normalise the input the same way.
    current_uses only moves through a single atomic increment and never passes max_uses.
    """

    __tablename__ = "discount_coupons"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(50), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    # percentage (0-100) | fixed (currency amount)
    discount_type = Column(String(20), nullable=False, default=DiscountType.PERCENTAGE.value)
    discount_value = Column(Numeric(10, 2), nullable=False, default=0)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)
    # Plan ids as strings; empty or null means every plan
    applicable_plans = Column(JSON, nullable=True, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
