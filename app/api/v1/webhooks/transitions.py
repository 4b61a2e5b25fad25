"""
Status transition table for processor webhook events.

Each handled event type maps to how the local row is found and which status it
moves to. Event types missing from TRANSITIONS are acknowledged and left alone.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from app.core.enums import SubscriptionStatus, WebhookEventType


class LookupKey(str, Enum):
    # agency_id carried in checkout/subscription metadata
    AGENCY_METADATA = "agency_metadata"
    # processor subscription id; invoices carry no agency metadata
    PROCESSOR_SUBSCRIPTION_ID = "processor_subscription_id"


StatusResolver = Callable[[Optional[str]], SubscriptionStatus]


@dataclass(frozen=True)
class Transition:
    lookup: LookupKey
    resolve_status: StatusResolver
    # Full checkout handling: may insert the row and records plan, customer and coupon
    upsert: bool = False
    refresh_period: bool = False


_PASSTHROUGH = {
    "trialing": SubscriptionStatus.TRIALING,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
}


def map_processor_status(processor_status: Optional[str]) -> SubscriptionStatus:
    """trialing, active and past_due carry over; every other processor status is canceled."""
    return _PASSTHROUGH.get(processor_status or "", SubscriptionStatus.CANCELED)


def _checkout_status(processor_status: Optional[str]) -> SubscriptionStatus:
    if processor_status == "trialing":
        return SubscriptionStatus.TRIALING
    return SubscriptionStatus.ACTIVE


def _always(status: SubscriptionStatus) -> StatusResolver:
    return lambda _processor_status: status


TRANSITIONS: Dict[WebhookEventType, Transition] = {
    WebhookEventType.CHECKOUT_COMPLETED: Transition(
        lookup=LookupKey.AGENCY_METADATA,
        resolve_status=_checkout_status,
        upsert=True,
        refresh_period=True,
    ),
    WebhookEventType.SUBSCRIPTION_UPDATED: Transition(
        lookup=LookupKey.AGENCY_METADATA,
        resolve_status=map_processor_status,
        refresh_period=True,
    ),
    WebhookEventType.SUBSCRIPTION_DELETED: Transition(
        lookup=LookupKey.AGENCY_METADATA,
        resolve_status=_always(SubscriptionStatus.CANCELED),
    ),
    WebhookEventType.INVOICE_PAYMENT_FAILED: Transition(
        lookup=LookupKey.PROCESSOR_SUBSCRIPTION_ID,
        resolve_status=_always(SubscriptionStatus.PAST_DUE),
    ),
}


def transition_for(event_type: str) -> Optional[Transition]:
    try:
        return TRANSITIONS[WebhookEventType(event_type)]
    except ValueError:
        return None
