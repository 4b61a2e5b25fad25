from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.core.enums import BillingCycle


class CheckoutSessionRequest(BaseModel):
    plan_id: UUID
    billing_cycle: BillingCycle
    agency_id: UUID
    agency_name: str = Field(..., min_length=1)
    agency_email: EmailStr
    coupon_code: Optional[str] = None
    success_url: str = Field(..., min_length=1)
    cancel_url: str = Field(..., min_length=1)


class CheckoutSessionResponse(BaseModel):
    """Hosted checkout page to redirect the browser to."""

    url: Optional[str] = None
    session_id: str
