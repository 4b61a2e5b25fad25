"""
Checkout session builder.

Writes nothing locally: the subscription row is created or updated only when the
processor reports the completed checkout through the webhook, using the metadata
embedded here to find the agency, plan and coupon.
"""
import logging
from typing import Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.coupons.validator import validate_coupon
from app.auth.rbac import ensure_agency_access
from app.auth.schemas import CurrentUser
from app.core.clock import utcnow
from app.core.enums import BillingCycle, DiscountType
from app.core.exceptions import PlanNotFoundError, PlanNotPurchasableError
from app.core.models import AgencySubscription, SubscriptionPlan
from app.core.payment_gateway import GatewayFactory, StripeGateway
from app.core.platform_settings import BillingConfig

from .schemas import CheckoutSessionRequest, CheckoutSessionResponse

logger = logging.getLogger(__name__)


async def _resolve_customer(db: AsyncSession, gateway: StripeGateway, payload: CheckoutSessionRequest) -> str:
    """Reuse the customer stored on the agency's subscription, else create one (not persisted here)."""
    result = await db.execute(
        select(AgencySubscription.stripe_customer_id).where(AgencySubscription.agency_id == payload.agency_id)
    )
    existing = result.scalar_one_or_none()
    if existing:
        return existing
    customer_id = await gateway.create_customer(
        email=payload.agency_email,
        name=payload.agency_name,
        metadata={"agency_id": str(payload.agency_id)},
    )
    logger.info("Stripe customer created", extra={"agency_id": str(payload.agency_id)})
    return customer_id


def _format_percentage(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


async def create_checkout_session(
    db: AsyncSession,
    current_user: CurrentUser,
    payload: CheckoutSessionRequest,
    config: BillingConfig,
    gateway_factory: GatewayFactory,
) -> CheckoutSessionResponse:
    ensure_agency_access(current_user, payload.agency_id)
    api_key = config.require_secret_key()

    plan = await db.get(SubscriptionPlan, payload.plan_id)
    if plan is None:
        raise PlanNotFoundError()
    price_id = plan.price_id_for(BillingCycle(payload.billing_cycle))
    if not price_id:
        raise PlanNotPurchasableError()

    gateway = gateway_factory(api_key)
    customer_id = await _resolve_customer(db, gateway, payload)

    coupon_id = ""
    discount_percentage = 0.0
    if payload.coupon_code:
        coupon = await validate_coupon(db, payload.coupon_code, utcnow(), plan.id)
        if coupon is not None:
            coupon_id = str(coupon.id)
            # Fixed-amount coupons are recorded but not translated into a processor discount
            if coupon.discount_type == DiscountType.PERCENTAGE.value:
                discount_percentage = float(coupon.discount_value or 0)
        else:
            logger.info("Coupon rejected at checkout", extra={"agency_id": str(payload.agency_id)})

    processor_coupon_id = None
    if discount_percentage > 0:
        processor_coupon_id = await gateway.create_percent_coupon(discount_percentage)

    metadata: Dict[str, str] = {
        "agency_id": str(payload.agency_id),
        "plan_id": str(plan.id),
        "billing_cycle": BillingCycle(payload.billing_cycle).value,
        "coupon_id": coupon_id,
        "discount_percentage": _format_percentage(discount_percentage),
    }
    session = await gateway.create_checkout_session(
        customer_id=customer_id,
        price_id=price_id,
        success_url=payload.success_url,
        cancel_url=payload.cancel_url,
        metadata=metadata,
        subscription_metadata={"agency_id": str(payload.agency_id), "plan_id": str(plan.id)},
        trial_period_days=plan.trial_days or None,
        discount_coupon_id=processor_coupon_id,
    )
    logger.info(
        "Checkout session created",
        extra={"agency_id": str(payload.agency_id), "plan_id": str(plan.id), "session_id": session.id},
    )
    return CheckoutSessionResponse(url=session.url, session_id=session.id)
