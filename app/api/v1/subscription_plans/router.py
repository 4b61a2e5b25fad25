from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi import status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_super_admin
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import SubscriptionPlanCreate, SubscriptionPlanResponse, SubscriptionPlanUpdate
from .service import (
    create_subscription_plan,
    delete_subscription_plan,
    get_subscription_plan,
    list_subscription_plans,
    update_subscription_plan,
)

router = APIRouter(prefix="/api/v1/subscription-plans", tags=["subscription-plans"])


@router.get("", response_model=List[SubscriptionPlanResponse])
async def list_plans(
    include_inactive: bool = Query(False, description="Also return deactivated plans"),
    db: AsyncSession = Depends(get_db),
) -> List[SubscriptionPlanResponse]:
    """List subscription plans. No authentication required."""
    return await list_subscription_plans(db, include_inactive)


@router.get("/{plan_id}", response_model=SubscriptionPlanResponse)
async def get_plan(
    plan_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> SubscriptionPlanResponse:
    """Get a single subscription plan by id. No authentication required."""
    try:
        return await get_subscription_plan(db, plan_id)
    except ServiceError as e:
        raise e.as_http_exception()


@router.post(
    "",
    response_model=SubscriptionPlanResponse,
    status_code=http_status.HTTP_201_CREATED,
    dependencies=[Depends(require_super_admin)],
)
async def create_plan(
    payload: SubscriptionPlanCreate,
    db: AsyncSession = Depends(get_db),
) -> SubscriptionPlanResponse:
    """Create a subscription plan. Super admin only."""
    try:
        return await create_subscription_plan(db, payload)
    except ServiceError as e:
        raise e.as_http_exception()


@router.put(
    "/{plan_id}",
    response_model=SubscriptionPlanResponse,
    dependencies=[Depends(require_super_admin)],
)
async def update_plan(
    plan_id: UUID,
    payload: SubscriptionPlanUpdate,
    db: AsyncSession = Depends(get_db),
) -> SubscriptionPlanResponse:
    """Update a subscription plan. Super admin only."""
    try:
        return await update_subscription_plan(db, plan_id, payload)
    except ServiceError as e:
        raise e.as_http_exception()


@router.delete(
    "/{plan_id}",
    status_code=http_status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_super_admin)],
)
async def delete_plan(
    plan_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    """Deactivate a subscription plan. Super admin only."""
    try:
        await delete_subscription_plan(db, plan_id)
    except ServiceError as e:
        raise e.as_http_exception()
