from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_super_admin
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.core.payment_gateway import GatewayFactory, get_gateway_factory
from app.core.platform_settings import BillingConfig, get_billing_config
from app.db.session import get_db

from . import service
from .schemas import (
    AccessDecisionResponse,
    ChangeCycleRequest,
    ChangePlanRequest,
    CurrentSubscriptionResponse,
    PortalRequest,
    PortalResponse,
    SubscriptionChangeResponse,
)

router = APIRouter(prefix="/api/v1/subscriptions", tags=["subscriptions"])


@router.get("/access", response_model=AccessDecisionResponse)
async def get_access(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> AccessDecisionResponse:
    """Access decision for the caller: allow, warn (days left) or block (reason)."""
    decision = await service.evaluate_access(db, current_user)
    return service.decision_to_response(decision)


@router.get("/current", response_model=CurrentSubscriptionResponse)
async def get_current(
    current_user: CurrentUser = Depends(get_current_user),
    config: BillingConfig = Depends(get_billing_config),
    db: AsyncSession = Depends(get_db),
) -> CurrentSubscriptionResponse:
    """The caller's agency subscription with the limits in force."""
    try:
        return await service.get_current_subscription(db, current_user, config)
    except ServiceError as e:
        raise e.as_http_exception()


@router.post(
    "/{agency_id}/change-plan",
    response_model=SubscriptionChangeResponse,
    dependencies=[Depends(require_super_admin)],
)
async def change_plan(
    agency_id: UUID,
    payload: ChangePlanRequest,
    config: BillingConfig = Depends(get_billing_config),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
    db: AsyncSession = Depends(get_db),
) -> SubscriptionChangeResponse:
    """Move the agency to another plan (prorated). Super admin only."""
    try:
        return await service.change_plan(db, agency_id, payload.plan_id, payload.billing_cycle, config, gateway_factory)
    except ServiceError as e:
        raise e.as_http_exception()


@router.post(
    "/{agency_id}/change-cycle",
    response_model=SubscriptionChangeResponse,
    dependencies=[Depends(require_super_admin)],
)
async def change_cycle(
    agency_id: UUID,
    payload: ChangeCycleRequest,
    config: BillingConfig = Depends(get_billing_config),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
    db: AsyncSession = Depends(get_db),
) -> SubscriptionChangeResponse:
    """Switch between monthly and yearly billing on the current plan. Super admin only."""
    try:
        return await service.change_billing_cycle(db, agency_id, payload.billing_cycle, config, gateway_factory)
    except ServiceError as e:
        raise e.as_http_exception()


@router.post(
    "/{agency_id}/cancel",
    response_model=SubscriptionChangeResponse,
    dependencies=[Depends(require_super_admin)],
)
async def cancel(
    agency_id: UUID,
    config: BillingConfig = Depends(get_billing_config),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
    db: AsyncSession = Depends(get_db),
) -> SubscriptionChangeResponse:
    """Cancel at the end of the current period. Super admin only."""
    try:
        return await service.cancel_subscription(db, agency_id, config, gateway_factory)
    except ServiceError as e:
        raise e.as_http_exception()


@router.post(
    "/{agency_id}/portal",
    response_model=PortalResponse,
    dependencies=[Depends(require_super_admin)],
)
async def billing_portal(
    agency_id: UUID,
    payload: PortalRequest,
    config: BillingConfig = Depends(get_billing_config),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
    db: AsyncSession = Depends(get_db),
) -> PortalResponse:
    """Stripe billing portal link for the agency's customer. Super admin only."""
    try:
        return await service.create_billing_portal(db, agency_id, payload.return_url, config, gateway_factory)
    except ServiceError as e:
        raise e.as_http_exception()
