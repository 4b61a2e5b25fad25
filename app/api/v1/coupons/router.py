from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi import status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_super_admin
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import CouponCreate, CouponResponse, CouponUpdate, CouponValidateRequest, CouponValidateResponse

router = APIRouter(prefix="/api/v1/coupons", tags=["coupons"])


@router.post(
    "/validate",
    response_model=CouponValidateResponse,
    dependencies=[Depends(get_current_user)],
)
async def validate(
    payload: CouponValidateRequest,
    db: AsyncSession = Depends(get_db),
) -> CouponValidateResponse:
    """Check a coupon code against now and the target plan. 404 when not redeemable."""
    try:
        return await service.check_coupon(db, payload.code, payload.plan_id)
    except ServiceError as e:
        raise e.as_http_exception()


@router.get("", response_model=List[CouponResponse], dependencies=[Depends(require_super_admin)])
async def list_coupons(db: AsyncSession = Depends(get_db)) -> List[CouponResponse]:
    """List all coupons, newest first. Super admin only."""
    return await service.list_coupons(db)


@router.post(
    "",
    response_model=CouponResponse,
    status_code=http_status.HTTP_201_CREATED,
    dependencies=[Depends(require_super_admin)],
)
async def create_coupon(payload: CouponCreate, db: AsyncSession = Depends(get_db)) -> CouponResponse:
    """Create a coupon. Super admin only."""
    try:
        return await service.create_coupon(db, payload)
    except ServiceError as e:
        raise e.as_http_exception()


@router.put("/{coupon_id}", response_model=CouponResponse, dependencies=[Depends(require_super_admin)])
async def update_coupon(
    coupon_id: UUID,
    payload: CouponUpdate,
    db: AsyncSession = Depends(get_db),
) -> CouponResponse:
    """Update a coupon. Super admin only."""
    try:
        return await service.update_coupon(db, coupon_id, payload)
    except ServiceError as e:
        raise e.as_http_exception()


@router.delete(
    "/{coupon_id}",
    status_code=http_status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_super_admin)],
)
async def delete_coupon(coupon_id: UUID, db: AsyncSession = Depends(get_db)) -> None:
    """Deactivate a coupon. Super admin only."""
    try:
        await service.deactivate_coupon(db, coupon_id)
    except ServiceError as e:
        raise e.as_http_exception()
