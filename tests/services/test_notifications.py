"""Tests for notification intents and Redis Pub/Sub fan-out.

Redis tests use fakeredis.aioredis.FakeRedis() for in-process Pub/Sub.
"""

import json
from datetime import UTC, datetime

import fakeredis.aioredis
import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from orderflow.domain.order import Order
from orderflow.domain.states import DELIVERY_GRAPH, ORDER_GRAPH, DeliveryState, OrderState
from orderflow.services.notifications import (
    NotificationIntent,
    RedisNotificationDispatcher,
    intents_for_edges,
)

pytestmark = pytest.mark.unit

S = OrderState
D = DeliveryState
T0 = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def redis():
    r = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield r
    await r.aclose()


def make_order(**fields) -> Order:
    return Order(id="order-1", buyer_id="buyer-1", product_type="hoodie", **fields)


async def drain(pubsub, attempts: int = 10) -> list[dict]:
    """Collect published payloads, skipping subscribe confirmations."""
    payloads = []
    for _ in range(attempts):
        message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.05)
        if message is not None:
            payloads.append(json.loads(message["data"]))
    return payloads


# ===========================================================================
# Intent rules
# ===========================================================================


def test_assignment_notifies_manufacturer():
    order = make_order(manufacturer_id="mfr-1")
    edge = ORDER_GRAPH.edge(S.ADMIN_APPROVED, S.MANUFACTURER_ASSIGNED)

    (intent,) = intents_for_edges(order, [edge])

    assert intent.user_id == "mfr-1"
    assert intent.type == "order_assigned"
    assert "hoodie" in intent.message


def test_qc_upload_notifies_buyer():
    edge = ORDER_GRAPH.edge(S.SAMPLE_IN_PROGRESS, S.SAMPLE_QC_UPLOADED)

    (intent,) = intents_for_edges(make_order(), [edge])

    assert intent.user_id == "buyer-1"
    assert intent.type == "qc_ready_for_review"


def test_edges_without_rules_are_silent():
    edge = ORDER_GRAPH.edge(S.DRAFT, S.SUBMITTED)
    assert intents_for_edges(make_order(), [edge]) == []


def test_missing_recipient_is_skipped():
    edge = ORDER_GRAPH.edge(S.PAYMENT_REQUESTED, S.PAYMENT_CONFIRMED)
    assert intents_for_edges(make_order(manufacturer_id=None), [edge]) == []


def test_one_intent_per_traversed_edge():
    order = make_order(manufacturer_id="mfr-1")
    edges = [
        DELIVERY_GRAPH.edge(D.PACKED, D.PICKUP_SCHEDULED),
        DELIVERY_GRAPH.edge(D.PICKUP_SCHEDULED, D.IN_TRANSIT),
    ]

    intents = intents_for_edges(order, edges)

    assert [i.type for i in intents] == ["pickup_scheduled", "in_transit"]


# ===========================================================================
# Redis dispatcher
# ===========================================================================


async def test_dispatch_publishes_to_user_and_order_channels(redis):
    pubsub = redis.pubsub()
    await pubsub.subscribe("notifications:buyer-1", "order:order-1:events")
    intent = NotificationIntent(
        user_id="buyer-1", order_id="order-1", type="in_transit", title="Order In Transit", message="On its way"
    )

    await RedisNotificationDispatcher(redis).dispatch(intent, now=T0)

    payloads = await drain(pubsub)
    assert len(payloads) == 2
    for payload in payloads:
        assert payload["user_id"] == "buyer-1"
        assert payload["type"] == "in_transit"
        assert payload["timestamp"] == T0.isoformat()
    await pubsub.aclose()


async def test_dispatch_swallows_redis_errors():
    class DownRedis:
        async def publish(self, channel, payload):
            raise RedisConnectionError("connection refused")

    intent = NotificationIntent(user_id="buyer-1", order_id="order-1", type="t", title="t", message="m")

    # Logged, not raised
    await RedisNotificationDispatcher(DownRedis()).dispatch(intent)
