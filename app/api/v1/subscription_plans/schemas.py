from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SubscriptionPlanCreate(BaseModel):
    """Payload to create a subscription plan."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price_monthly: float = Field(0, ge=0)
    price_yearly: float = Field(0, ge=0)
    stripe_price_id_monthly: Optional[str] = None
    stripe_price_id_yearly: Optional[str] = None
    max_users: Optional[int] = Field(None, ge=1)
    max_clients: Optional[int] = Field(None, ge=1)
    max_proposals: Optional[int] = Field(None, ge=1)
    trial_days: Optional[int] = Field(None, ge=1)
    is_active: bool = True
    modules: List[str] = Field(default_factory=list)


class SubscriptionPlanUpdate(BaseModel):
    """Payload to update a subscription plan. Only fields sent are changed."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price_monthly: Optional[float] = Field(None, ge=0)
    price_yearly: Optional[float] = Field(None, ge=0)
    stripe_price_id_monthly: Optional[str] = None
    stripe_price_id_yearly: Optional[str] = None
    max_users: Optional[int] = Field(None, ge=1)
    max_clients: Optional[int] = Field(None, ge=1)
    max_proposals: Optional[int] = Field(None, ge=1)
    trial_days: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None
    modules: Optional[List[str]] = None


class SubscriptionPlanResponse(BaseModel):
    """Subscription plan response (list and get)."""

    id: UUID
    name: str
    description: Optional[str] = None
    price_monthly: float
    price_yearly: float
    stripe_price_id_monthly: Optional[str] = None
    stripe_price_id_yearly: Optional[str] = None
    max_users: Optional[int] = None
    max_clients: Optional[int] = None
    max_proposals: Optional[int] = None
    trial_days: Optional[int] = None
    is_active: bool
    modules: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
