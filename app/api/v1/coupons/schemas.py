from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.core.enums import DiscountType


class CouponCreate(BaseModel):
    """Payload to create a discount coupon. code is stored upper-case."""

    code: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: float = Field(..., ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)
    applicable_plans: List[UUID] = Field(default_factory=list)
    is_active: bool = True

    @model_validator(mode="after")
    def validate_value_and_window(self) -> "CouponCreate":
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("percentage discounts must be between 0 and 100")
        if self.valid_from and self.valid_until and self.valid_until < self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        return self


class CouponUpdate(BaseModel):
    """Payload to update a coupon. current_uses is never writable."""

    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = Field(None, ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)
    applicable_plans: Optional[List[UUID]] = None
    is_active: Optional[bool] = None


class CouponResponse(BaseModel):
    id: UUID
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: float
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = None
    current_uses: int
    applicable_plans: List[UUID] = Field(default_factory=list)
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1)
    plan_id: Optional[UUID] = None


class CouponValidateResponse(BaseModel):
    """What the checkout screen needs to show the discount."""

    id: UUID
    code: str
    discount_type: DiscountType
    discount_value: float
