import uuid
from typing import Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String, Text, Uuid

from app.core.clock import utcnow
from app.core.enums import BillingCycle
from app.db.session import Base


class SubscriptionPlan(Base):
    """Subscription plan offered by the platform.

    Defines monthly/yearly prices, the Stripe price ids used at checkout, usage caps
    and the feature modules the plan unlocks. Managed by the super admin only; read-only
    for checkout and trial provisioning.
    """

    __tablename__ = "subscription_plans"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price_monthly = Column(Numeric(10, 2), nullable=False, default=0)
    price_yearly = Column(Numeric(10, 2), nullable=False, default=0)
    # Processor-side price ids; a cycle without one cannot be purchased
    stripe_price_id_monthly = Column(String(255), nullable=True)
    stripe_price_id_yearly = Column(String(255), nullable=True)
    # Usage caps (null = unlimited)
    max_users = Column(Integer, nullable=True)
    max_clients = Column(Integer, nullable=True)
    max_proposals = Column(Integer, nullable=True)
    trial_days = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    # Module keys (e.g. ["proposals", "financial", "whatsapp"])
    modules = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def price_id_for(self, billing_cycle: BillingCycle) -> Optional[str]:
        if billing_cycle == BillingCycle.YEARLY:
            return self.stripe_price_id_yearly or None
        return self.stripe_price_id_monthly or None
