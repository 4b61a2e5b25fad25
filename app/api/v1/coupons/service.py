"""Coupon administration and redemption."""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.enums import DiscountType
from app.core.exceptions import ServiceError
from app.core.models import DiscountCoupon

from .schemas import CouponCreate, CouponResponse, CouponUpdate, CouponValidateResponse
from .validator import normalize_code, validate_coupon

logger = logging.getLogger(__name__)


def _coupon_to_response(coupon: DiscountCoupon) -> CouponResponse:
    return CouponResponse(
        id=coupon.id,
        code=coupon.code,
        description=coupon.description,
        discount_type=DiscountType(coupon.discount_type),
        discount_value=float(coupon.discount_value or 0),
        valid_from=coupon.valid_from,
        valid_until=coupon.valid_until,
        max_uses=coupon.max_uses,
        current_uses=coupon.current_uses or 0,
        applicable_plans=[UUID(str(p)) for p in (coupon.applicable_plans or [])],
        is_active=coupon.is_active,
        created_at=coupon.created_at,
        updated_at=coupon.updated_at,
    )


async def _get_coupon_or_404(db: AsyncSession, coupon_id: UUID) -> DiscountCoupon:
    coupon = await db.get(DiscountCoupon, coupon_id)
    if not coupon:
        raise ServiceError("Coupon not found", status.HTTP_404_NOT_FOUND)
    return coupon


async def list_coupons(db: AsyncSession) -> List[CouponResponse]:
    result = await db.execute(select(DiscountCoupon).order_by(DiscountCoupon.created_at.desc()))
    return [_coupon_to_response(c) for c in result.scalars().all()]


async def create_coupon(db: AsyncSession, payload: CouponCreate) -> CouponResponse:
    coupon = DiscountCoupon(
        code=normalize_code(payload.code),
        description=payload.description,
        discount_type=payload.discount_type.value,
        discount_value=payload.discount_value,
        valid_from=payload.valid_from,
        valid_until=payload.valid_until,
        max_uses=payload.max_uses,
        current_uses=0,
        applicable_plans=[str(p) for p in payload.applicable_plans],
        is_active=payload.is_active,
    )
    db.add(coupon)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ServiceError("Coupon code already exists", status.HTTP_409_CONFLICT) from e
    await db.refresh(coupon)
    return _coupon_to_response(coupon)


async def update_coupon(db: AsyncSession, coupon_id: UUID, payload: CouponUpdate) -> CouponResponse:
    coupon = await _get_coupon_or_404(db, coupon_id)
    data = payload.model_dump(exclude_unset=True)
    if "discount_type" in data and data["discount_type"] is not None:
        data["discount_type"] = data["discount_type"].value
    if "applicable_plans" in data and data["applicable_plans"] is not None:
        data["applicable_plans"] = [str(p) for p in data["applicable_plans"]]
    for field, value in data.items():
        setattr(coupon, field, value)
    if coupon.discount_type == DiscountType.PERCENTAGE.value and float(coupon.discount_value or 0) > 100:
        await db.rollback()
        raise ServiceError("percentage discounts must be between 0 and 100", status.HTTP_400_BAD_REQUEST)
    await db.commit()
    await db.refresh(coupon)
    return _coupon_to_response(coupon)


async def deactivate_coupon(db: AsyncSession, coupon_id: UUID) -> None:
    """Coupons referenced by subscriptions are kept; deleting only turns them off."""
    coupon = await _get_coupon_or_404(db, coupon_id)
    coupon.is_active = False
    await db.commit()


async def check_coupon(
    db: AsyncSession, code: str, plan_id: Optional[UUID] = None
) -> CouponValidateResponse:
    coupon = await validate_coupon(db, code, utcnow(), plan_id)
    if coupon is None:
        raise ServiceError("Invalid or expired coupon", status.HTTP_404_NOT_FOUND)
    return CouponValidateResponse(
        id=coupon.id,
        code=coupon.code,
        discount_type=DiscountType(coupon.discount_type),
        discount_value=float(coupon.discount_value or 0),
    )


async def redeem_coupon(db: AsyncSession, coupon_id: UUID) -> bool:
    """Consume one use with a single UPDATE. Caller must commit.

    The max_uses guard sits in the WHERE clause so concurrent redemptions can
    never push current_uses past the cap. Returns False when nothing was updated.
    """
    result = await db.execute(
        update(DiscountCoupon)
        .where(
            DiscountCoupon.id == coupon_id,
            or_(
                DiscountCoupon.max_uses.is_(None),
                DiscountCoupon.current_uses < DiscountCoupon.max_uses,
            ),
        )
        .values(current_uses=DiscountCoupon.current_uses + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning("Coupon not redeemed: missing or usage cap reached", extra={"coupon_id": str(coupon_id)})
        return False
    return True
