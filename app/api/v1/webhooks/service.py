"""
Webhook event processor.

The only code path that transitions AgencySubscription.status after a row exists.
Events that reference unknown agencies or subscriptions are acknowledged and ignored
so the processor does not redeliver them forever; only malformed bodies, bad
signatures and a missing processor key are reported back as errors.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional
from uuid import UUID

import stripe
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.coupons.service import redeem_coupon
from app.core.clock import as_utc, from_timestamp
from app.core.config import settings
from app.core.enums import BillingCycle, WebhookOutcome
from app.core.exceptions import NotConfiguredError, PayloadValidationError, ProcessorError
from app.core.models import Agency, AgencySubscription, DiscountCoupon, SubscriptionPlan
from app.core.payment_gateway import GatewayFactory, subscription_from_payload, verify_webhook_signature
from app.core.platform_settings import BillingConfig

from .idempotency import is_event_processed, mark_event_processed
from .transitions import LookupKey, Transition, transition_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookEvent:
    id: Optional[str]
    type: str
    created: Optional[datetime]
    object: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookResult:
    outcome: WebhookOutcome
    detail: Optional[str] = None


def authenticate_webhook(payload: bytes, signature_header: Optional[str], config: BillingConfig) -> None:
    """Verify the Stripe-Signature header before the body is trusted."""
    secret = config.stripe_webhook_secret
    if not signature_header or not secret:
        if settings.allow_unsigned_webhooks:
            logger.warning("Accepting unverified webhook (ALLOW_UNSIGNED_WEBHOOKS is on)")
            return
        if not secret:
            raise NotConfiguredError("Webhook signing secret is not configured")
        raise PayloadValidationError("Missing Stripe-Signature header")
    try:
        verify_webhook_signature(payload, signature_header, secret, settings.webhook_tolerance_seconds)
    except UnicodeDecodeError as e:
        raise PayloadValidationError("Invalid payload: body is not UTF-8") from e
    except stripe.SignatureVerificationError as e:
        logger.warning("Webhook signature verification failed")
        raise PayloadValidationError("Invalid webhook signature") from e


def parse_event(payload: bytes) -> WebhookEvent:
    try:
        body = json.loads(payload)
    except (ValueError, UnicodeDecodeError) as e:
        raise PayloadValidationError("Invalid payload") from e
    if not isinstance(body, dict) or not isinstance(body.get("type"), str):
        raise PayloadValidationError("Invalid payload: missing event type")
    data = body.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("object"), dict):
        raise PayloadValidationError("Invalid payload: missing data.object")
    try:
        created = from_timestamp(body.get("created"))
    except (TypeError, ValueError) as e:
        raise PayloadValidationError("Invalid payload: bad created timestamp") from e
    event_id = body.get("id")
    return WebhookEvent(
        id=event_id if isinstance(event_id, str) and event_id else None,
        type=body["type"],
        created=created,
        object=data["object"],
    )


def _as_uuid(value: Any) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _object_id(value: Any) -> Optional[str]:
    """Stripe references are either an id string or an expanded object."""
    if isinstance(value, Mapping):
        value = value.get("id")
    return value if isinstance(value, str) and value else None


def _metadata(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return _mapping(obj.get("metadata"))


def _percentage(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _invoice_subscription_id(invoice: Mapping[str, Any]) -> Optional[str]:
    subscription_id = _object_id(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    # Newer API versions nest it under parent.subscription_details
    details = _mapping(_mapping(invoice.get("parent")).get("subscription_details"))
    return _object_id(details.get("subscription"))


def _is_stale(row: AgencySubscription, event: WebhookEvent) -> bool:
    last = as_utc(row.last_event_at)
    return last is not None and event.created is not None and event.created < last


def _stamp(row: AgencySubscription, event: WebhookEvent) -> None:
    """Advance last_event_at; a late event never moves it back."""
    if event.created is not None and not _is_stale(row, event):
        row.last_event_at = event.created


async def _find_row(db: AsyncSession, transition: Transition, event: WebhookEvent) -> Optional[AgencySubscription]:
    if transition.lookup == LookupKey.PROCESSOR_SUBSCRIPTION_ID:
        subscription_id = _invoice_subscription_id(event.object)
        if not subscription_id:
            return None
        result = await db.execute(
            select(AgencySubscription).where(AgencySubscription.stripe_subscription_id == subscription_id)
        )
        return result.scalars().first()

    agency_id = _as_uuid(_metadata(event.object).get("agency_id"))
    if agency_id is None:
        return None
    result = await db.execute(select(AgencySubscription).where(AgencySubscription.agency_id == agency_id))
    return result.scalar_one_or_none()


async def _apply_checkout_completed(
    db: AsyncSession,
    transition: Transition,
    event: WebhookEvent,
    config: BillingConfig,
    gateway_factory: GatewayFactory,
) -> WebhookResult:
    session = event.object
    metadata = _metadata(session)
    agency_id = _as_uuid(metadata.get("agency_id"))
    plan_id = _as_uuid(metadata.get("plan_id"))
    if agency_id is None or plan_id is None:
        return WebhookResult(WebhookOutcome.IGNORED, "checkout without agency/plan metadata")

    processor_subscription_id = _object_id(session.get("subscription"))
    if not processor_subscription_id:
        return WebhookResult(WebhookOutcome.IGNORED, "checkout without subscription")

    if await db.get(Agency, agency_id) is None:
        return WebhookResult(WebhookOutcome.IGNORED, "unknown agency")
    if await db.get(SubscriptionPlan, plan_id) is None:
        return WebhookResult(WebhookOutcome.IGNORED, "unknown plan")

    api_key = config.require_secret_key()
    processor_subscription = await gateway_factory(api_key).retrieve_subscription(processor_subscription_id)

    row = await _find_row(db, transition, event)
    # Plan, customer, subscription id and coupon arrive only with the checkout, so a
    # late delivery still records them. Status and period are kept when a newer event
    # for the same processor subscription has already been applied.
    keep_status = (
        row is not None
        and _is_stale(row, event)
        and row.stripe_subscription_id == processor_subscription.id
    )

    try:
        billing_cycle = BillingCycle(metadata.get("billing_cycle") or BillingCycle.MONTHLY.value)
    except (TypeError, ValueError):
        billing_cycle = BillingCycle.MONTHLY

    coupon_id = _as_uuid(metadata.get("coupon_id"))
    if coupon_id is not None and await db.get(DiscountCoupon, coupon_id) is None:
        logger.warning("Checkout references unknown coupon", extra={"agency_id": str(agency_id)})
        coupon_id = None
    discount = _percentage(metadata.get("discount_percentage"))

    previous_subscription_id = row.stripe_subscription_id if row is not None else None
    if row is None:
        row = AgencySubscription(agency_id=agency_id)
        db.add(row)

    row.plan_id = plan_id
    row.billing_cycle = billing_cycle.value
    if not keep_status:
        row.status = transition.resolve_status(processor_subscription.status).value
        row.current_period_start = processor_subscription.current_period_start
        row.current_period_end = processor_subscription.current_period_end
    row.stripe_customer_id = _object_id(session.get("customer")) or processor_subscription.customer_id
    row.stripe_subscription_id = processor_subscription.id
    row.coupon_id = coupon_id
    row.discount_applied = discount if discount > 0 else None
    _stamp(row, event)

    # A replay of the same checkout finds the subscription id already stored
    if coupon_id is not None and previous_subscription_id != processor_subscription.id:
        await redeem_coupon(db, coupon_id)

    logger.info(
        "Subscription recorded from checkout",
        extra={
            "agency_id": str(agency_id),
            "status": row.status,
            "event_id": event.id,
            "late_delivery": keep_status,
        },
    )
    return WebhookResult(WebhookOutcome.APPLIED)


async def _apply_status_change(
    db: AsyncSession,
    transition: Transition,
    event: WebhookEvent,
) -> WebhookResult:
    row = await _find_row(db, transition, event)
    if row is None:
        return WebhookResult(WebhookOutcome.IGNORED, "no matching subscription")

    if transition.lookup == LookupKey.AGENCY_METADATA:
        event_subscription_id = _object_id(event.object.get("id"))
        if row.stripe_subscription_id and event_subscription_id != row.stripe_subscription_id:
            return WebhookResult(WebhookOutcome.IGNORED, "event for a replaced subscription")

    if _is_stale(row, event):
        return WebhookResult(WebhookOutcome.IGNORED, "stale event")

    previous_status = row.status
    processor_status = event.object.get("status")
    row.status = transition.resolve_status(processor_status if isinstance(processor_status, str) else None).value
    if transition.refresh_period:
        try:
            snapshot = subscription_from_payload(event.object)
        except (KeyError, TypeError, ValueError):
            logger.warning("Subscription period unreadable, keeping stored bounds", extra={"event_id": event.id})
        else:
            if snapshot.current_period_start is not None:
                row.current_period_start = snapshot.current_period_start
            if snapshot.current_period_end is not None:
                row.current_period_end = snapshot.current_period_end
    _stamp(row, event)

    logger.info(
        "Subscription status changed",
        extra={
            "agency_id": str(row.agency_id),
            "from_status": previous_status,
            "to_status": row.status,
            "event_type": event.type,
            "event_id": event.id,
        },
    )
    return WebhookResult(WebhookOutcome.APPLIED)


async def process_webhook_event(
    db: AsyncSession,
    event: WebhookEvent,
    config: BillingConfig,
    gateway_factory: GatewayFactory,
) -> WebhookResult:
    transition = transition_for(event.type)
    if transition is None:
        logger.debug("Unhandled webhook event type", extra={"event_type": event.type})
        return WebhookResult(WebhookOutcome.UNHANDLED)

    if event.id and await is_event_processed(db, event.id):
        logger.info("Duplicate webhook event skipped", extra={"event_id": event.id, "event_type": event.type})
        return WebhookResult(WebhookOutcome.DUPLICATE)

    try:
        if transition.upsert:
            result = await _apply_checkout_completed(db, transition, event, config, gateway_factory)
        else:
            result = await _apply_status_change(db, transition, event)
    except ProcessorError as e:
        # Left unrecorded so a redelivery can apply it once Stripe answers
        await db.rollback()
        logger.error(
            "Could not fetch subscription from Stripe for webhook",
            extra={"event_id": event.id, "event_type": event.type, "error": e.message, "error_code": e.code},
        )
        return WebhookResult(WebhookOutcome.IGNORED, "processor error")
    except NotConfiguredError:
        await db.rollback()
        raise

    if result.outcome == WebhookOutcome.IGNORED:
        logger.info(
            "Webhook event ignored",
            extra={"event_id": event.id, "event_type": event.type, "reason": result.detail},
        )

    if event.id:
        mark_event_processed(db, event.id, event.type, result.outcome)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Webhook event applied concurrently, rolled back", extra={"event_id": event.id})
        return WebhookResult(WebhookOutcome.DUPLICATE)
    return result
