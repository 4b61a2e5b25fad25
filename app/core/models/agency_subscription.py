import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from app.core.enums import BillingCycle, SubscriptionStatus
from app.db.session import Base


class AgencySubscription(Base):
    """
    Billing state of one agency.

    Created by trial provisioning (status trialing, no plan) or by the first completed
    checkout. After that only the webhook processor changes status. Never deleted:
    cancellation is a status value.
    """

    __tablename__ = "agency_subscriptions"
    __table_args__ = (
        # One subscription row per agency; webhook upserts rely on it
        UniqueConstraint("agency_id", name="uq_agency_subscription_agency"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(Uuid(as_uuid=True), ForeignKey("agencies.id", ondelete="CASCADE"), nullable=False)
    plan_id = Column(Uuid(as_uuid=True), ForeignKey("subscription_plans.id"), nullable=True)
    billing_cycle = Column(String(20), nullable=False, default=BillingCycle.MONTHLY.value)
    # trialing | active | past_due | canceled
    status = Column(String(20), nullable=False, default=SubscriptionStatus.TRIALING.value)
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    coupon_id = Column(Uuid(as_uuid=True), ForeignKey("discount_coupons.id"), nullable=True)
    # Percentage applied at checkout (null when no coupon)
    discount_applied = Column(Numeric(5, 2), nullable=True)
    # created time of the newest processor event applied to this row
    last_event_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    agency = relationship("Agency", back_populates="subscription")
    plan = relationship("SubscriptionPlan")
    coupon = relationship("DiscountCoupon")
