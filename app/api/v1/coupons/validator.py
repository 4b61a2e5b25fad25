"""
Coupon validity rules.

evaluate_coupon is pure so the five conditions can be checked without a database;
validate_coupon adds the lookup by normalised code.
"""
from datetime import datetime
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc
from app.core.models import DiscountCoupon


def normalize_code(code: str) -> str:
    return code.strip().upper()


def evaluate_coupon(
    coupon: Optional[DiscountCoupon],
    as_of: datetime,
    plan_id: Optional[Union[UUID, str]] = None,
) -> bool:
    """True only if every rule holds; checked in order, first failure wins."""
    if coupon is None or not coupon.is_active:
        return False

    as_of = as_utc(as_of)
    valid_from = as_utc(coupon.valid_from)
    if valid_from is not None and as_of < valid_from:
        return False
    valid_until = as_utc(coupon.valid_until)
    if valid_until is not None and as_of > valid_until:
        return False

    if coupon.max_uses is not None and (coupon.current_uses or 0) >= coupon.max_uses:
        return False

    applicable = coupon.applicable_plans or []
    if applicable and plan_id is not None and str(plan_id) not in {str(p) for p in applicable}:
        return False

    return True


async def find_active_coupon(db: AsyncSession, code: str) -> Optional[DiscountCoupon]:
    result = await db.execute(
        select(DiscountCoupon).where(
            DiscountCoupon.code == normalize_code(code),
            DiscountCoupon.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def validate_coupon(
    db: AsyncSession,
    code: str,
    as_of: datetime,
    plan_id: Optional[Union[UUID, str]] = None,
) -> Optional[DiscountCoupon]:
    """Return the coupon when redeemable at as_of for plan_id, else None. No side effects."""
    if not code or not code.strip():
        return None
    coupon = await find_active_coupon(db, code)
    return coupon if evaluate_coupon(coupon, as_of, plan_id) else None
