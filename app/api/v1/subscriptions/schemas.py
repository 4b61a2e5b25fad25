from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import AccessBlockReason, AccessDecisionKind, BillingCycle


class AccessDecisionResponse(BaseModel):
    """Gate result for the caller. days_left is set only for warnings."""

    kind: AccessDecisionKind
    allowed: bool
    reason: Optional[AccessBlockReason] = None
    status: Optional[str] = None
    days_left: Optional[int] = None


class SubscriptionLimits(BaseModel):
    """Usage caps in force (None = unlimited)."""

    max_users: Optional[int] = None
    max_clients: Optional[int] = None
    max_proposals: Optional[int] = None


class CurrentSubscriptionResponse(BaseModel):
    agency_id: UUID
    plan_id: Optional[UUID] = None
    plan_name: Optional[str] = None
    status: str
    billing_cycle: BillingCycle
    is_trial: bool
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    discount_applied: Optional[float] = None
    limits: SubscriptionLimits


class ChangePlanRequest(BaseModel):
    plan_id: UUID
    billing_cycle: Optional[BillingCycle] = None  # keeps the current cycle when omitted


class ChangeCycleRequest(BaseModel):
    billing_cycle: BillingCycle


class PortalRequest(BaseModel):
    return_url: str = Field(..., min_length=1)


class PortalResponse(BaseModel):
    url: str


class SubscriptionChangeResponse(BaseModel):
    """Local row after a management action. status only moves when Stripe's webhook arrives."""

    success: bool = True
    agency_id: UUID
    plan_id: Optional[UUID] = None
    billing_cycle: BillingCycle
    status: str
