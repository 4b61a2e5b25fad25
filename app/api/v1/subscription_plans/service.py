from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import PlanNotFoundError, ServiceError
from app.core.models import SubscriptionPlan

from .schemas import SubscriptionPlanCreate, SubscriptionPlanResponse, SubscriptionPlanUpdate


def _subscription_plan_to_response(plan: SubscriptionPlan) -> SubscriptionPlanResponse:
    """Build SubscriptionPlanResponse from model. Numeric prices come back as Decimal."""
    return SubscriptionPlanResponse(
        id=plan.id,
        name=plan.name,
        description=plan.description,
        price_monthly=float(plan.price_monthly or 0),
        price_yearly=float(plan.price_yearly or 0),
        stripe_price_id_monthly=plan.stripe_price_id_monthly,
        stripe_price_id_yearly=plan.stripe_price_id_yearly,
        max_users=plan.max_users,
        max_clients=plan.max_clients,
        max_proposals=plan.max_proposals,
        trial_days=plan.trial_days,
        is_active=plan.is_active,
        modules=list(plan.modules or []),
        created_at=plan.created_at,
        updated_at=plan.updated_at,
    )


async def _get_plan(db: AsyncSession, plan_id: UUID) -> SubscriptionPlan:
    plan = await db.get(SubscriptionPlan, plan_id)
    if not plan:
        raise PlanNotFoundError(f"Subscription plan not found: {plan_id}")
    return plan


async def _ensure_unique_name(db: AsyncSession, name: str, exclude_id: Optional[UUID] = None) -> None:
    stmt = select(SubscriptionPlan.id).where(SubscriptionPlan.name == name)
    if exclude_id is not None:
        stmt = stmt.where(SubscriptionPlan.id != exclude_id)
    existing = await db.execute(stmt)
    if existing.first():
        raise ServiceError(
            f"Subscription plan '{name}' already exists",
            status_code=status.HTTP_409_CONFLICT,
        )


async def list_subscription_plans(
    db: AsyncSession,
    include_inactive: bool = False,
) -> List[SubscriptionPlanResponse]:
    """List plans cheapest first. Inactive plans only when asked for."""
    stmt = select(SubscriptionPlan).order_by(SubscriptionPlan.price_monthly, SubscriptionPlan.name)
    if not include_inactive:
        stmt = stmt.where(SubscriptionPlan.is_active.is_(True))
    result = await db.execute(stmt)
    return [_subscription_plan_to_response(p) for p in result.scalars().all()]


async def get_subscription_plan(db: AsyncSession, plan_id: UUID) -> SubscriptionPlanResponse:
    return _subscription_plan_to_response(await _get_plan(db, plan_id))


async def create_subscription_plan(
    db: AsyncSession, payload: SubscriptionPlanCreate
) -> SubscriptionPlanResponse:
    await _ensure_unique_name(db, payload.name)
    plan = SubscriptionPlan(**payload.model_dump())
    db.add(plan)
    await db.commit()
    await db.refresh(plan)
    return _subscription_plan_to_response(plan)


async def update_subscription_plan(
    db: AsyncSession, plan_id: UUID, payload: SubscriptionPlanUpdate
) -> SubscriptionPlanResponse:
    plan = await _get_plan(db, plan_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("name") and data["name"] != plan.name:
        await _ensure_unique_name(db, data["name"], exclude_id=plan_id)
    for field, value in data.items():
        setattr(plan, field, value)
    await db.commit()
    await db.refresh(plan)
    return _subscription_plan_to_response(plan)


async def delete_subscription_plan(db: AsyncSession, plan_id: UUID) -> None:
    """Soft delete: agencies may still reference the plan."""
    plan = await _get_plan(db, plan_id)
    plan.is_active = False
    await db.commit()
