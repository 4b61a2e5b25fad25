"""
Stripe adapter used by checkout, webhooks and subscription management.

A gateway is built per request from the key currently stored in platform settings.
SDK calls are blocking, so they run in the threadpool; every stripe.StripeError is
re-raised as ProcessorError carrying Stripe's own message.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional

import stripe
from starlette.concurrency import run_in_threadpool

from app.core.clock import from_timestamp
from app.core.config import settings
from app.core.exceptions import ProcessorError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: Optional[str]


@dataclass(frozen=True)
class ProcessorSubscription:
    id: str
    status: str
    customer_id: Optional[str]
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    metadata: Dict[str, str]
    item_id: Optional[str] = None


def _first_item(obj: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    items = obj.get("items") or {}
    data = items.get("data") if isinstance(items, Mapping) else None
    if isinstance(data, list) and data and isinstance(data[0], Mapping):
        return data[0]
    return None


def subscription_from_payload(obj: Mapping[str, Any]) -> ProcessorSubscription:
    """Normalise a Stripe subscription (SDK object or webhook JSON).

    API versions from 2025 moved the period bounds onto the subscription items,
    so fall back to the first item when the top-level fields are absent.
    """
    item = _first_item(obj)
    start = obj.get("current_period_start")
    end = obj.get("current_period_end")
    if start is None and item is not None:
        start = item.get("current_period_start")
    if end is None and item is not None:
        end = item.get("current_period_end")
    customer = obj.get("customer")
    if isinstance(customer, Mapping):
        customer = customer.get("id")
    return ProcessorSubscription(
        id=obj["id"],
        status=obj.get("status") or "",
        customer_id=customer,
        current_period_start=from_timestamp(start),
        current_period_end=from_timestamp(end),
        metadata=dict(obj.get("metadata") or {}),
        item_id=item.get("id") if item is not None else None,
    )


class StripeGateway:
    def __init__(self, api_key: str, api_version: Optional[str] = None) -> None:
        self._api_key = api_key
        self._api_version = api_version or settings.stripe_api_version

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        kwargs.setdefault("api_key", self._api_key)
        kwargs.setdefault("stripe_version", self._api_version)
        try:
            return await run_in_threadpool(partial(func, *args, **kwargs))
        except stripe.StripeError as e:
            logger.warning(
                "Stripe call failed",
                extra={"operation": operation, "error_type": type(e).__name__},
            )
            raise ProcessorError(e.user_message or str(e)) from e

    async def create_customer(self, *, email: str, name: str, metadata: Dict[str, str]) -> str:
        customer = await self._call(
            "create_customer", stripe.Customer.create, email=email, name=name, metadata=metadata
        )
        return customer["id"]

    async def create_percent_coupon(self, percent_off: float) -> str:
        """Single-use processor coupon scoped to one checkout."""
        coupon = await self._call(
            "create_coupon", stripe.Coupon.create, percent_off=percent_off, duration="once"
        )
        return coupon["id"]

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        subscription_metadata: Dict[str, str],
        trial_period_days: Optional[int] = None,
        discount_coupon_id: Optional[str] = None,
    ) -> CheckoutSession:
        subscription_data: Dict[str, Any] = {"metadata": subscription_metadata}
        if trial_period_days:
            subscription_data["trial_period_days"] = trial_period_days
        params: Dict[str, Any] = {
            "customer": customer_id,
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "subscription_data": subscription_data,
        }
        if discount_coupon_id:
            params["discounts"] = [{"coupon": discount_coupon_id}]
        session = await self._call("create_checkout_session", stripe.checkout.Session.create, **params)
        return CheckoutSession(id=session["id"], url=session.get("url"))

    async def retrieve_subscription(self, subscription_id: str) -> ProcessorSubscription:
        subscription = await self._call("retrieve_subscription", stripe.Subscription.retrieve, subscription_id)
        return subscription_from_payload(subscription)

    async def change_subscription_price(self, subscription_id: str, price_id: str) -> None:
        """Swap the single subscription item to a new price, prorating the difference."""
        current = await self.retrieve_subscription(subscription_id)
        items: List[Dict[str, Any]] = [{"price": price_id}]
        if current.item_id:
            items = [{"id": current.item_id, "price": price_id}]
        await self._call(
            "change_subscription_price",
            stripe.Subscription.modify,
            subscription_id,
            items=items,
            proration_behavior="create_prorations",
        )

    async def cancel_at_period_end(self, subscription_id: str) -> None:
        await self._call(
            "cancel_at_period_end", stripe.Subscription.modify, subscription_id, cancel_at_period_end=True
        )

    async def create_portal_session(self, *, customer_id: str, return_url: str) -> str:
        session = await self._call(
            "create_portal_session",
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        return session["url"]


GatewayFactory = Callable[[str], StripeGateway]


def get_gateway_factory() -> GatewayFactory:
    """Dependency returning the gateway constructor; tests override it with a fake."""
    return StripeGateway


def verify_webhook_signature(payload: bytes, signature_header: str, secret: str, tolerance: int) -> None:
    """Check the Stripe-Signature header. Raises stripe.SignatureVerificationError."""
    stripe.WebhookSignature.verify_header(payload.decode("utf-8"), signature_header, secret, tolerance)
