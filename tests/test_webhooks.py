import json
import time
from dataclasses import replace
from datetime import timedelta
from typing import Any, Dict

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.webhooks.service import parse_event, process_webhook_event
from app.api.v1.webhooks.transitions import TRANSITIONS, LookupKey, map_processor_status
from app.core.clock import as_utc, from_timestamp, utcnow
from app.core.enums import SubscriptionStatus, WebhookEventType, WebhookOutcome
from app.core.exceptions import PayloadValidationError, ProcessorError
from app.core.models import AgencySubscription, ProcessedWebhookEvent
from app.core.payment_gateway import subscription_from_payload
from factories import (
    FakeGateway,
    billing_config,
    configure_stripe,
    create_agency,
    create_coupon,
    create_plan,
    create_subscription,
    fetch_coupon,
    fetch_subscription,
    post_webhook,
    sign_payload,
    webhook_event,
)

SUBSCRIPTION_COLUMNS = (
    "agency_id",
    "plan_id",
    "billing_cycle",
    "status",
    "stripe_customer_id",
    "stripe_subscription_id",
    "current_period_start",
    "current_period_end",
    "coupon_id",
    "discount_applied",
)


def _row_state(row: AgencySubscription) -> Dict[str, Any]:
    return {column: getattr(row, column) for column in SUBSCRIPTION_COLUMNS}


def _checkout_completed(agency_id, plan_id, coupon_id="", discount="0", subscription_id="sub_test_1", **kwargs):
    session = {
        "id": "cs_test_1",
        "object": "checkout.session",
        "customer": "cus_test_1",
        "subscription": subscription_id,
        "metadata": {
            "agency_id": str(agency_id),
            "plan_id": str(plan_id),
            "billing_cycle": "yearly",
            "coupon_id": str(coupon_id) if coupon_id else "",
            "discount_percentage": discount,
        },
    }
    return webhook_event(WebhookEventType.CHECKOUT_COMPLETED.value, session, **kwargs)


def _subscription_object(agency_id, subscription_id="sub_test_1", status="active", start=None, end=None):
    start = start if start is not None else int(time.time())
    end = end if end is not None else start + 30 * 86400
    return {
        "id": subscription_id,
        "object": "subscription",
        "status": status,
        "customer": "cus_test_1",
        "current_period_start": start,
        "current_period_end": end,
        "metadata": {"agency_id": str(agency_id)},
    }


# --- Transition table ---


def test_every_event_type_has_a_transition() -> None:
    assert set(TRANSITIONS) == set(WebhookEventType)
    assert TRANSITIONS[WebhookEventType.INVOICE_PAYMENT_FAILED].lookup == LookupKey.PROCESSOR_SUBSCRIPTION_ID
    assert [t for t in TRANSITIONS.values() if t.upsert] == [TRANSITIONS[WebhookEventType.CHECKOUT_COMPLETED]]


@pytest.mark.parametrize(
    "processor_status,expected",
    [
        ("trialing", SubscriptionStatus.TRIALING),
        ("active", SubscriptionStatus.ACTIVE),
        ("past_due", SubscriptionStatus.PAST_DUE),
        ("canceled", SubscriptionStatus.CANCELED),
        ("unpaid", SubscriptionStatus.CANCELED),
        ("incomplete_expired", SubscriptionStatus.CANCELED),
        (None, SubscriptionStatus.CANCELED),
    ],
)
def test_map_processor_status(processor_status, expected) -> None:
    assert map_processor_status(processor_status) == expected


def test_period_bounds_fall_back_to_first_item() -> None:
    start, end = 1_760_000_000, 1_762_592_000
    snapshot = subscription_from_payload(
        {
            "id": "sub_1",
            "status": "active",
            "customer": {"id": "cus_1"},
            "items": {"data": [{"id": "si_1", "current_period_start": start, "current_period_end": end}]},
        }
    )
    assert snapshot.current_period_start == from_timestamp(start)
    assert snapshot.current_period_end == from_timestamp(end)
    assert snapshot.customer_id == "cus_1"
    assert snapshot.item_id == "si_1"


@pytest.mark.parametrize(
    "payload",
    [b"not json", b"[]", b'{"type": "x"}', b'{"type": "x", "data": {"object": "y"}}'],
)
def test_parse_event_rejects_malformed_bodies(payload) -> None:
    with pytest.raises(PayloadValidationError):
        parse_event(payload)


# --- checkout.session.completed ---


@pytest.mark.asyncio
async def test_checkout_completed_creates_subscription(
    client: AsyncClient, db_session: AsyncSession, gateway: FakeGateway
) -> None:
    await configure_stripe(db_session)
    agency = await create_agency(db_session)
    plan = await create_plan(db_session)
    coupon = await create_coupon(db_session, code="BEMVINDO20", max_uses=10)
    processor_subscription = gateway.add_subscription(status="active")

    response = await post_webhook(client, _checkout_completed(agency.id, plan.id, coupon.id, "20"))

    assert response.status_code == 200
    assert response.json() == {"received": True, "outcome": "applied"}
    row = await fetch_subscription(db_session, agency.id)
    assert row.status == SubscriptionStatus.ACTIVE.value
    assert row.plan_id == plan.id
    assert row.billing_cycle == "yearly"
    assert row.stripe_customer_id == "cus_test_1"
    assert row.stripe_subscription_id == "sub_test_1"
    assert as_utc(row.current_period_end) == processor_subscription.current_period_end
    assert row.coupon_id == coupon.id
    assert float(row.discount_applied) == 20.0
    assert (await fetch_coupon(db_session, coupon.id)).current_uses == 1
    assert gateway.api_keys == ["sk_test_123"]


@pytest.mark.asyncio
async def test_checkout_completed_updates_trial_row(
    client: AsyncClient, db_session: AsyncSession, gateway: FakeGateway
) -> None:
    await configure_stripe(db_session)
    agency = await create_agency(db_session)
    plan = await create_plan(db_session, trial_days=14)
    trial = await create_subscription(db_session, agency.id, status=SubscriptionStatus.TRIALING)
    gateway.add_subscription(status="trialing")

    response = await post_webhook(client, _checkout_completed(agency.id, plan.id))

    assert response.status_code == 200
    row = await fetch_subscription(db_session, agency.id)
    assert row.id == trial.id
    assert row.status == SubscriptionStatus.TRIALING.value
    assert row.plan_id == plan.id
    assert row.coupon_id is None
    assert row.discount_applied is None
    count = (await db_session.execute(select(func.count()).select_from(AgencySubscription))).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_replayed_checkout_is_idempotent(
    client: AsyncClient, db_session: AsyncSession, gateway: FakeGateway
) -> None:
    await configure_stripe(db_session)
    agency = await create_agency(db_session)
    plan = await create_plan(db_session)
    coupon = await create_coupon(db_session, code="UMAVEZ", max_uses=5)
    gateway.add_subscription()
    event = _checkout_completed(agency.id, plan.id, coupon.id, "10", event_id="evt_checkout_1")

    await post_webhook(client, event)
    after_first = _row_state(await fetch_subscription(db_session, agency.id))

    replay = await post_webhook(client, event)

    assert replay.status_code == 200
    assert replay.json()["outcome"] == "duplicate"
    assert _row_state(await fetch_subscription(db_session, agency.id)) == after_first
    assert (await fetch_coupon(db_session, coupon.id)).current_uses == 1


@pytest.mark.asyncio
async def test_redelivery_with_new_event_id_does_not_recount_coupon(
    client: AsyncClient, db_session: AsyncSession, gateway: FakeGateway
) -> None:
    await configure_stripe(db_session)
    agency = await create_agency(db_session)
    plan = await create_plan(db_session)
    coupon = await create_coupon(db_session, code="DUASVEZES", max_uses=5)
    gateway.add_subscription()

    await post_webhook(client, _checkout_completed(agency.id, plan.id, coupon.id, "10", event_id="evt_a"))
    after_first = _row_state(await fetch_subscription(db_session, agency.id))
    second = await post_webhook(client, _checkout_completed(agency.id, plan.id, coupon.id, "10", event_id="evt_b"))

    assert second.json()["outcome"] == "applied"
    assert _row_state(await fetch_subscription(db_session, agency.id)) == after_first
    assert (await fetch_coupon(db_session, coupon.id)).current_uses == 1


@pytest.mark.asyncio
async def test_checkout_for_unknown_agency_is_ignored(
    client: AsyncClient, db_session: AsyncSession, gateway: FakeGateway
) -> None:
    await configure_stripe(db_session)
    plan = await create_plan(db_session)
    gateway.add_subscription()

    response = await post_webhook(
        client, _checkout_completed("00000000-0000-0000-0000-000000000001", plan.id)
    )

    assert response.status_code == 200
    assert response.json()["outcome"] == "ignored"
    assert gateway.called("retrieve_subscription") == []


@pytest.mark.asyncio
async def test_checkout_without_stripe_key_asks_for_retry(
    client: AsyncClient, db_session: AsyncSession, gateway: FakeGateway
) -> None:
    agency = await create_agency(db_session)
    plan = await create_plan(db_session)
    gateway.add_subscription()
    event = _checkout_completed(agency.id, plan.id, event_id="evt_unconfigured")

    response = await post_webhook(client, event)

    assert response.status_code == 400
    assert await fetch_subscription(db_session, agency.id) is None

    await configure_stripe(db_session)
    retry = await post_webhook(client, event)

    assert retry.status_code == 200
    assert retry.json()["outcome"] == "applied"


@pytest.mark.asyncio
async def test_processor_error_leaves_event_unrecorded(
    client: AsyncClient, db_session: AsyncSession, gateway: FakeGateway
) -> None:
    await configure_stripe(db_session)
    agency = await create_agency(db_session)
    plan = await create_plan(db_session)
    gateway.fail_with = ProcessorError("Stripe is down")

    response = await post_webhook(client, _checkout_completed(agency.id, plan.id, event_id="evt_flaky"))

    assert response.status_code == 200
    assert response.json()["outcome"] == "ignored"
    assert await fetch_subscription(db_session, agency.id) is None
    assert await db_session.get(ProcessedWebhookEvent, "evt_flaky") is None


# --- customer.subscription.updated / deleted ---


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "processor_status,expected",
    [("past_due", "past_due"), ("active", "active"), ("unpaid", "canceled")],
)
async def test_subscription_updated_maps_status_and_period(
    client: AsyncClient, db_session: AsyncSession, processor_status: str, expected: str
) -> None:
    agency = await create_agency(db_session)
    await create_subscription(db_session, agency.id, stripe_subscription_id="sub_test_1")
    start = int(time.time()) + 86400
    end = start + 365 * 86400

    response = await post_webhook(
        client,
        webhook_event(
            WebhookEventType.SUBSCRIPTION_UPDATED.value,
            _subscription_object(agency.id, status=processor_status, start=start, end=end),
        ),
    )

    assert response.status_code == 200
    row = await fetch_subscription(db_session, agency.id)
    assert row.status == expected
    assert as_utc(row.current_period_start) == from_timestamp(start)
    assert as_utc(row.current_period_end) == from_timestamp(end)


@pytest.mark.asyncio
async def test_subscription_deleted_cancels_without_touching_period(
    client: AsyncClient, db_session: AsyncSession
) -> None:
    agency = await create_agency(db_session)
    original = await create_subscription(db_session, agency.id, stripe_subscription_id="sub_test_1")
    original_end = as_utc(original.current_period_end)

    response = await post_webhook(
        client,
        webhook_event(
            WebhookEventType.SUBSCRIPTION_DELETED.value,
            _subscription_object(agency.id, status="canceled", start=0, end=1),
        ),
    )

    assert response.status_code == 200
    row = await fetch_subscription(db_session, agency.id)
    assert row.status == SubscriptionStatus.CANCELED.value
    assert as_utc(row.current_period_end) == original_end


@pytest.mark.asyncio
async def test_stale_update_after_delete_is_ignored(client: AsyncClient, db_session: AsyncSession) -> None:
    agency = await create_agency(db_session)
    await create_subscription(db_session, agency.id, stripe_subscription_id="sub_test_1")
    now = int(time.time())

    await post_webhook(
        client,
        webhook_event(
            WebhookEventType.SUBSCRIPTION_DELETED.value,
            _subscription_object(agency.id, status="canceled"),
            created=now,
        ),
    )
    late = await post_webhook(
        client,
        webhook_event(
            WebhookEventType.SUBSCRIPTION_UPDATED.value,
            _subscription_object(agency.id, status="active"),
            created=now - 60,
        ),
    )

    assert late.json()["outcome"] == "ignored"
    assert (await fetch_subscription(db_session, agency.id)).status == SubscriptionStatus.CANCELED.value


@pytest.mark.asyncio
async def test_update_for_replaced_subscription_is_ignored(client: AsyncClient, db_session: AsyncSession) -> None:
    agency = await create_agency(db_session)
    await create_subscription(db_session, agency.id, stripe_subscription_id="sub_current")

    response = await post_webhook(
        client,
        webhook_event(
            WebhookEventType.SUBSCRIPTION_DELETED.value,
            _subscription_object(agency.id, subscription_id="sub_old", status="canceled"),
        ),
    )

    assert response.json()["outcome"] == "ignored"
    assert (await fetch_subscription(db_session, agency.id)).status == SubscriptionStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_update_without_agency_metadata_is_ignored(client: AsyncClient, db_session: AsyncSession) -> None:
    obj = _subscription_object("x")
    obj["metadata"] = {}

    response = await post_webhook(client, webhook_event(WebhookEventType.SUBSCRIPTION_UPDATED.value, obj))

    assert response.status_code == 200
    assert response.json()["outcome"] == "ignored"


# --- invoice.payment_failed ---


@pytest.mark.asyncio
async def test_payment_failed_marks_past_due(client: AsyncClient, db_session: AsyncSession) -> None:
    agency = await create_agency(db_session)
    await create_subscription(db_session, agency.id, stripe_subscription_id="sub_test_1")

    response = await post_webhook(
        client,
        webhook_event(
            WebhookEventType.INVOICE_PAYMENT_FAILED.value,
            {"id": "in_1", "object": "invoice", "subscription": "sub_test_1"},
        ),
    )

    assert response.status_code == 200
    assert (await fetch_subscription(db_session, agency.id)).status == SubscriptionStatus.PAST_DUE.value


@pytest.mark.asyncio
async def test_payment_failed_reads_nested_subscription_id(client: AsyncClient, db_session: AsyncSession) -> None:
    agency = await create_agency(db_session)
    await create_subscription(db_session, agency.id, stripe_subscription_id="sub_nested")
    invoice = {
        "id": "in_2",
        "object": "invoice",
        "parent": {"type": "subscription_details", "subscription_details": {"subscription": "sub_nested"}},
    }

    await post_webhook(client, webhook_event(WebhookEventType.INVOICE_PAYMENT_FAILED.value, invoice))

    assert (await fetch_subscription(db_session, agency.id)).status == SubscriptionStatus.PAST_DUE.value


@pytest.mark.asyncio
async def test_payment_failed_for_unknown_subscription_changes_nothing(
    client: AsyncClient, db_session: AsyncSession
) -> None:
    agency = await create_agency(db_session)
    await create_subscription(db_session, agency.id, stripe_subscription_id="sub_known")
    before = _row_state(await fetch_subscription(db_session, agency.id))

    response = await post_webhook(
        client,
        webhook_event(
            WebhookEventType.INVOICE_PAYMENT_FAILED.value,
            {"id": "in_3", "object": "invoice", "subscription": "sub_unknown"},
        ),
    )

    assert response.status_code == 200
    assert response.json()["outcome"] == "ignored"
    assert _row_state(await fetch_subscription(db_session, agency.id)) == before


# --- Envelope handling ---


@pytest.mark.asyncio
async def test_unhandled_event_type_is_acknowledged(client: AsyncClient, db_session: AsyncSession) -> None:
    response = await post_webhook(client, webhook_event("customer.created", {"id": "cus_1"}))

    assert response.status_code == 200
    assert response.json()["outcome"] == "unhandled"


@pytest.mark.asyncio
async def test_bad_signature_rejected(client: AsyncClient, db_session: AsyncSession) -> None:
    response = await post_webhook(
        client, webhook_event("customer.created", {"id": "cus_1"}), secret="whsec_someone_else"
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_missing_signature_rejected(client: AsyncClient, db_session: AsyncSession) -> None:
    response = await client.post(
        "/api/v1/webhooks/stripe", content=json.dumps(webhook_event("customer.created", {"id": "cus_1"}))
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_expired_signature_rejected(client: AsyncClient, db_session: AsyncSession) -> None:
    payload = json.dumps(webhook_event("customer.created", {"id": "cus_1"}))
    old = int(time.time()) - 3600

    response = await client.post(
        "/api/v1/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": sign_payload(payload, timestamp=old)},
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_malformed_body_rejected(client: AsyncClient, db_session: AsyncSession) -> None:
    payload = "{not json"

    response = await client.post(
        "/api/v1/webhooks/stripe", content=payload, headers={"Stripe-Signature": sign_payload(payload)}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_non_utf8_body_rejected(client: AsyncClient, db_session: AsyncSession) -> None:
    response = await client.post(
        "/api/v1/webhooks/stripe",
        content=b'{"type": "customer.created", "data": {"object": {"n": "\xff"}}}',
        headers={"Stripe-Signature": "t=1700000000,v1=00"},
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_processor_called_directly_records_outcome(
    db_session: AsyncSession, gateway_factory
) -> None:
    agency = await create_agency(db_session)
    await create_subscription(
        db_session,
        agency.id,
        stripe_subscription_id="sub_test_1",
        period_end=utcnow() + timedelta(days=3),
    )
    event = parse_event(
        json.dumps(
            webhook_event(
                WebhookEventType.SUBSCRIPTION_DELETED.value,
                _subscription_object(agency.id, status="canceled"),
                event_id="evt_direct",
            )
        ).encode()
    )

    result = await process_webhook_event(db_session, event, billing_config(), gateway_factory)

    assert result.outcome == WebhookOutcome.APPLIED
    marker = await db_session.get(ProcessedWebhookEvent, "evt_direct")
    assert marker.outcome == WebhookOutcome.APPLIED.value
    again = await process_webhook_event(db_session, event, billing_config(), gateway_factory)
    assert again.outcome == WebhookOutcome.DUPLICATE


# --- Late and oddly shaped deliveries ---


@pytest.mark.asyncio
async def test_checkout_delivered_after_subscription_update_still_records_plan(
    client: AsyncClient, db_session: AsyncSession, gateway: FakeGateway
) -> None:
    await configure_stripe(db_session)
    agency = await create_agency(db_session)
    plan = await create_plan(db_session)
    coupon = await create_coupon(db_session, code="ATRASADO", max_uses=3)
    await create_subscription(db_session, agency.id, status=SubscriptionStatus.TRIALING)
    gateway.add_subscription(status="active")
    now = int(time.time())

    update = await post_webhook(
        client,
        webhook_event(
            WebhookEventType.SUBSCRIPTION_UPDATED.value,
            _subscription_object(agency.id, status="active"),
            created=now,
        ),
    )
    checkout = await post_webhook(client, _checkout_completed(agency.id, plan.id, coupon.id, "15", created=now - 1))

    assert update.json()["outcome"] == "applied"
    assert checkout.json()["outcome"] == "applied"
    row = await fetch_subscription(db_session, agency.id)
    assert row.plan_id == plan.id
    assert row.stripe_subscription_id == "sub_test_1"
    assert row.status == SubscriptionStatus.ACTIVE.value
    assert row.coupon_id == coupon.id
    assert as_utc(row.last_event_at) == from_timestamp(now)
    assert (await fetch_coupon(db_session, coupon.id)).current_uses == 1

    failed = await post_webhook(
        client,
        webhook_event(
            WebhookEventType.INVOICE_PAYMENT_FAILED.value,
            {"id": "in_1", "object": "invoice", "subscription": "sub_test_1"},
            created=now + 1,
        ),
    )
    assert failed.json()["outcome"] == "applied"
    assert (await fetch_subscription(db_session, agency.id)).status == SubscriptionStatus.PAST_DUE.value


@pytest.mark.asyncio
async def test_late_checkout_keeps_newer_status_of_same_subscription(
    client: AsyncClient, db_session: AsyncSession, gateway: FakeGateway
) -> None:
    await configure_stripe(db_session)
    agency = await create_agency(db_session)
    plan = await create_plan(db_session)
    await create_subscription(db_session, agency.id, stripe_subscription_id="sub_test_1")
    gateway.add_subscription(status="active")
    now = int(time.time())

    await post_webhook(
        client,
        webhook_event(
            WebhookEventType.SUBSCRIPTION_DELETED.value,
            _subscription_object(agency.id, status="canceled"),
            created=now,
        ),
    )
    checkout = await post_webhook(client, _checkout_completed(agency.id, plan.id, created=now - 60))

    assert checkout.json()["outcome"] == "applied"
    row = await fetch_subscription(db_session, agency.id)
    assert row.status == SubscriptionStatus.CANCELED.value
    assert row.plan_id == plan.id
    assert as_utc(row.last_event_at) == from_timestamp(now)


@pytest.mark.asyncio
async def test_dispatch_follows_transition_table(
    client: AsyncClient, db_session: AsyncSession, gateway: FakeGateway, monkeypatch
) -> None:
    await configure_stripe(db_session)
    agency = await create_agency(db_session)
    plan = await create_plan(db_session)
    gateway.add_subscription()
    checkout = TRANSITIONS[WebhookEventType.CHECKOUT_COMPLETED]
    monkeypatch.setitem(TRANSITIONS, WebhookEventType.CHECKOUT_COMPLETED, replace(checkout, upsert=False))

    response = await post_webhook(client, _checkout_completed(agency.id, plan.id))

    assert response.json()["outcome"] == "ignored"
    assert await fetch_subscription(db_session, agency.id) is None
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_oddly_shaped_objects_are_acknowledged(
    client: AsyncClient, db_session: AsyncSession, gateway: FakeGateway
) -> None:
    await configure_stripe(db_session)
    agency = await create_agency(db_session)
    plan = await create_plan(db_session)
    await create_subscription(db_session, agency.id, stripe_subscription_id="sub_test_1")
    gateway.add_subscription()

    for event in (
        webhook_event(
            WebhookEventType.CHECKOUT_COMPLETED.value,
            {"id": "cs_1", "subscription": "sub_test_1", "metadata": ["agency_id"]},
        ),
        webhook_event(
            WebhookEventType.INVOICE_PAYMENT_FAILED.value,
            {"id": "in_1", "subscription": ["sub_test_1"], "parent": ["subscription_details"]},
        ),
    ):
        response = await post_webhook(client, event)
        assert response.status_code == 200
        assert response.json()["outcome"] == "ignored"

    odd_discount = await post_webhook(client, _checkout_completed(agency.id, plan.id, discount={"percent": 20}))
    assert odd_discount.json()["outcome"] == "applied"
    assert (await fetch_subscription(db_session, agency.id)).discount_applied is None

    odd_update = webhook_event(
        WebhookEventType.SUBSCRIPTION_UPDATED.value,
        {**_subscription_object(agency.id), "status": ["past_due"], "current_period_end": {"at": 1}},
    )
    response = await post_webhook(client, odd_update)
    assert response.status_code == 200
    assert response.json()["outcome"] == "applied"
    assert (await fetch_subscription(db_session, agency.id)).status == SubscriptionStatus.CANCELED.value
