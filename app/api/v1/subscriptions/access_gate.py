"""
Subscription access gate.

decide() is a pure function over a snapshot of the caller and their agency's
subscription. It never calls the processor and never writes, so it is only as
fresh as the last webhook applied to the row.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from app.core.clock import as_utc
from app.core.enums import AccessBlockReason, AccessDecisionKind, SubscriptionStatus

ENTITLED_STATUSES = frozenset({SubscriptionStatus.TRIALING.value, SubscriptionStatus.ACTIVE.value})


@dataclass(frozen=True)
class SubscriptionSnapshot:
    status: Optional[str]
    plan_id: Optional[UUID] = None
    current_period_end: Optional[datetime] = None


@dataclass(frozen=True)
class GateIdentity:
    is_super_admin: bool
    agency_id: Optional[UUID] = None
    subscription: Optional[SubscriptionSnapshot] = None


@dataclass(frozen=True)
class AccessDecision:
    kind: AccessDecisionKind
    reason: Optional[AccessBlockReason] = None
    # Subscription status behind a block, for messaging (None when there is no row)
    status: Optional[str] = None
    days_left: Optional[int] = None

    @property
    def allowed(self) -> bool:
        return self.kind != AccessDecisionKind.BLOCK

    @classmethod
    def allow(cls) -> "AccessDecision":
        return cls(AccessDecisionKind.ALLOW)

    @classmethod
    def warn(cls, days_left: int) -> "AccessDecision":
        return cls(AccessDecisionKind.WARN, days_left=days_left)

    @classmethod
    def block(cls, reason: AccessBlockReason, status: Optional[str] = None) -> "AccessDecision":
        return cls(AccessDecisionKind.BLOCK, reason=reason, status=status)


def days_until(period_end: datetime, now: datetime) -> int:
    """Whole days left, rounded up (2.1 days left is 3)."""
    remaining = (as_utc(period_end) - as_utc(now)).total_seconds()
    return math.ceil(remaining / 86400)


def decide(identity: GateIdentity, now: datetime, warning_days: int = 7) -> AccessDecision:
    """Rules in order: super admin, agency membership, entitled status, expiry warning."""
    if identity.is_super_admin:
        return AccessDecision.allow()

    if identity.agency_id is None:
        return AccessDecision.block(AccessBlockReason.NO_AGENCY)

    subscription = identity.subscription
    status = subscription.status if subscription is not None else None
    if status not in ENTITLED_STATUSES:
        return AccessDecision.block(AccessBlockReason.INACTIVE_SUBSCRIPTION, status)

    period_end = subscription.current_period_end
    if period_end is None:
        return AccessDecision.allow()

    days_left = days_until(period_end, now)
    # A plan-less trial has no processor subscription that could ever end it
    if status == SubscriptionStatus.TRIALING.value and subscription.plan_id is None and days_left <= 0:
        return AccessDecision.block(AccessBlockReason.TRIAL_EXPIRED, status)

    if 0 < days_left <= warning_days:
        return AccessDecision.warn(days_left)
    return AccessDecision.allow()
