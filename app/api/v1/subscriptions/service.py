"""Subscription reads for the tenant app and super-admin management actions."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import CurrentUser
from app.core.clock import utcnow
from app.core.config import settings
from app.core.enums import BillingCycle, SubscriptionStatus
from app.core.exceptions import PlanNotFoundError, PlanNotPurchasableError, ServiceError
from app.core.models import AgencySubscription, SubscriptionPlan
from app.core.payment_gateway import GatewayFactory
from app.core.platform_settings import BillingConfig

from .access_gate import AccessDecision, GateIdentity, SubscriptionSnapshot, decide
from .schemas import (
    AccessDecisionResponse,
    CurrentSubscriptionResponse,
    PortalResponse,
    SubscriptionChangeResponse,
    SubscriptionLimits,
)

logger = logging.getLogger(__name__)


async def _get_agency_subscription(db: AsyncSession, agency_id: UUID) -> Optional[AgencySubscription]:
    result = await db.execute(select(AgencySubscription).where(AgencySubscription.agency_id == agency_id))
    return result.scalar_one_or_none()


async def load_gate_identity(db: AsyncSession, current_user: CurrentUser) -> GateIdentity:
    """Role first, then the agency's subscription; super admins skip the second read."""
    if current_user.is_super_admin or current_user.agency_id is None:
        return GateIdentity(is_super_admin=current_user.is_super_admin, agency_id=current_user.agency_id)
    row = await _get_agency_subscription(db, current_user.agency_id)
    snapshot = None
    if row is not None:
        snapshot = SubscriptionSnapshot(
            status=row.status,
            plan_id=row.plan_id,
            current_period_end=row.current_period_end,
        )
    return GateIdentity(is_super_admin=False, agency_id=current_user.agency_id, subscription=snapshot)


async def evaluate_access(db: AsyncSession, current_user: CurrentUser) -> AccessDecision:
    identity = await load_gate_identity(db, current_user)
    return decide(identity, utcnow(), settings.expiration_warning_days)


def decision_to_response(decision: AccessDecision) -> AccessDecisionResponse:
    return AccessDecisionResponse(
        kind=decision.kind,
        allowed=decision.allowed,
        reason=decision.reason,
        status=decision.status,
        days_left=decision.days_left,
    )


async def get_current_subscription(
    db: AsyncSession, current_user: CurrentUser, config: BillingConfig
) -> CurrentSubscriptionResponse:
    if current_user.agency_id is None:
        raise ServiceError("You do not belong to an agency", status.HTTP_404_NOT_FOUND)
    row = await _get_agency_subscription(db, current_user.agency_id)
    if row is None:
        raise ServiceError("No subscription found for this agency", status.HTTP_404_NOT_FOUND)

    plan = await db.get(SubscriptionPlan, row.plan_id) if row.plan_id else None
    if plan is not None:
        limits = SubscriptionLimits(
            max_users=plan.max_users,
            max_clients=plan.max_clients,
            max_proposals=plan.max_proposals,
        )
    else:
        limits = SubscriptionLimits(
            max_users=config.trial_max_users,
            max_clients=config.trial_max_clients,
            max_proposals=config.trial_max_proposals,
        )
    return CurrentSubscriptionResponse(
        agency_id=row.agency_id,
        plan_id=row.plan_id,
        plan_name=plan.name if plan is not None else None,
        status=row.status,
        billing_cycle=BillingCycle(row.billing_cycle),
        is_trial=row.status == SubscriptionStatus.TRIALING.value,
        current_period_start=row.current_period_start,
        current_period_end=row.current_period_end,
        discount_applied=float(row.discount_applied) if row.discount_applied is not None else None,
        limits=limits,
    )


# --- Management (super admin) ---


async def _require_processor_subscription(db: AsyncSession, agency_id: UUID) -> AgencySubscription:
    row = await _get_agency_subscription(db, agency_id)
    if row is None or not row.stripe_subscription_id:
        raise ServiceError("Agency has no active Stripe subscription", status.HTTP_409_CONFLICT)
    return row


def _change_response(row: AgencySubscription) -> SubscriptionChangeResponse:
    return SubscriptionChangeResponse(
        agency_id=row.agency_id,
        plan_id=row.plan_id,
        billing_cycle=BillingCycle(row.billing_cycle),
        status=row.status,
    )


async def _switch_price(
    db: AsyncSession,
    row: AgencySubscription,
    plan_id: UUID,
    billing_cycle: BillingCycle,
    config: BillingConfig,
    gateway_factory: GatewayFactory,
) -> SubscriptionChangeResponse:
    api_key = config.require_secret_key()
    plan = await db.get(SubscriptionPlan, plan_id)
    if plan is None:
        raise PlanNotFoundError()
    price_id = plan.price_id_for(billing_cycle)
    if not price_id:
        raise PlanNotPurchasableError()

    await gateway_factory(api_key).change_subscription_price(row.stripe_subscription_id, price_id)
    row.plan_id = plan.id
    row.billing_cycle = billing_cycle.value
    await db.commit()
    logger.info(
        "Subscription price changed",
        extra={"agency_id": str(row.agency_id), "plan_id": str(plan.id), "billing_cycle": billing_cycle.value},
    )
    return _change_response(row)


async def change_plan(
    db: AsyncSession,
    agency_id: UUID,
    plan_id: UUID,
    billing_cycle: Optional[BillingCycle],
    config: BillingConfig,
    gateway_factory: GatewayFactory,
) -> SubscriptionChangeResponse:
    row = await _require_processor_subscription(db, agency_id)
    cycle = billing_cycle or BillingCycle(row.billing_cycle)
    return await _switch_price(db, row, plan_id, cycle, config, gateway_factory)


async def change_billing_cycle(
    db: AsyncSession,
    agency_id: UUID,
    billing_cycle: BillingCycle,
    config: BillingConfig,
    gateway_factory: GatewayFactory,
) -> SubscriptionChangeResponse:
    row = await _require_processor_subscription(db, agency_id)
    if row.plan_id is None:
        raise ServiceError("Agency has no plan to change the cycle of", status.HTTP_409_CONFLICT)
    return await _switch_price(db, row, row.plan_id, billing_cycle, config, gateway_factory)


async def cancel_subscription(
    db: AsyncSession,
    agency_id: UUID,
    config: BillingConfig,
    gateway_factory: GatewayFactory,
) -> SubscriptionChangeResponse:
    """Ask Stripe to cancel at period end. The local status changes on customer.subscription.deleted."""
    row = await _require_processor_subscription(db, agency_id)
    api_key = config.require_secret_key()
    await gateway_factory(api_key).cancel_at_period_end(row.stripe_subscription_id)
    logger.info("Subscription cancellation requested", extra={"agency_id": str(agency_id)})
    return _change_response(row)


async def create_billing_portal(
    db: AsyncSession,
    agency_id: UUID,
    return_url: str,
    config: BillingConfig,
    gateway_factory: GatewayFactory,
) -> PortalResponse:
    row = await _get_agency_subscription(db, agency_id)
    if row is None or not row.stripe_customer_id:
        raise ServiceError("Agency has no Stripe customer", status.HTTP_409_CONFLICT)
    api_key = config.require_secret_key()
    url = await gateway_factory(api_key).create_portal_session(
        customer_id=row.stripe_customer_id, return_url=return_url
    )
    return PortalResponse(url=url)
