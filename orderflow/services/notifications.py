"""Notification intents emitted after committed transitions.

Dispatch is fire-and-forget: a failed publish is logged and never affects
the transition result.
"""

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from orderflow.domain.order import Order
from orderflow.domain.states import Edge

logger = structlog.get_logger(__name__)


@dataclass
class NotificationIntent:
    user_id: str
    order_id: str
    type: str
    title: str
    message: str


@dataclass(frozen=True)
class NotificationRule:
    recipient: str  # "buyer" or "manufacturer"
    type: str
    title: str
    message: str


# Edge action -> who hears about it and what they are told.
NOTIFICATION_RULES: dict[str, NotificationRule] = {
    "manufacturer_assigned": NotificationRule(
        "manufacturer", "order_assigned", "New Order Assigned",
        "A new {product} order has been assigned to you. Please review and accept it.",
    ),
    "payment_requested": NotificationRule(
        "buyer", "payment_requested", "Your Order Is Approved",
        "Your {product} order has been approved. Complete payment to start production.",
    ),
    "payment_received": NotificationRule(
        "manufacturer", "payment_confirmed", "Payment Confirmed",
        "Payment for the {product} order is secured. Sample production can begin once specs are locked.",
    ),
    "sample_qc_uploaded": NotificationRule(
        "buyer", "qc_ready_for_review", "Sample Ready for Your Review",
        "The manufacturer has uploaded QC proof for your {product} order. Please review and approve or reject.",
    ),
    "sample_approved": NotificationRule(
        "manufacturer", "sample_approved", "Sample Approved",
        "The buyer approved the sample for the {product} order.",
    ),
    "sample_rejected": NotificationRule(
        "manufacturer", "qc_rejected", "Sample Rejected",
        "The sample for the {product} order was rejected. See the QC feedback and resubmit.",
    ),
    "bulk_qc_uploaded": NotificationRule(
        "buyer", "qc_ready_for_review", "Bulk Ready for Your Review",
        "The manufacturer has uploaded QC proof for your {product} order. Please review and approve or reject.",
    ),
    "bulk_qc_approved": NotificationRule(
        "manufacturer", "ready_for_dispatch", "Bulk QC Approved",
        "Bulk QC for the {product} order was approved. Pack the order and upload the packaging video.",
    ),
    "bulk_rejected": NotificationRule(
        "manufacturer", "qc_rejected", "Bulk QC Rejected",
        "Bulk QC for the {product} order was rejected. See the structured feedback for the required fix.",
    ),
    "pickup_scheduled": NotificationRule(
        "buyer", "pickup_scheduled", "Pickup Scheduled",
        "A courier pickup has been scheduled for your {product} order.",
    ),
    "in_transit": NotificationRule(
        "buyer", "in_transit", "Order In Transit",
        "Your {product} order is on its way.",
    ),
    "delivery_completed": NotificationRule(
        "buyer", "delivered", "Order Delivered",
        "Your {product} order has been delivered.",
    ),
}


def intents_for_edges(order: Order, edges: tuple[Edge, ...] | list[Edge]) -> list[NotificationIntent]:
    """Notification intents for the edges a committed transition traversed."""
    intents = []
    for edge in edges:
        rule = NOTIFICATION_RULES.get(edge.action)
        if rule is None:
            continue
        user_id = order.buyer_id if rule.recipient == "buyer" else order.manufacturer_id
        if not user_id:
            continue
        intents.append(
            NotificationIntent(
                user_id=user_id,
                order_id=order.id,
                type=rule.type,
                title=rule.title,
                message=rule.message.format(product=order.product_type or "custom"),
            )
        )
    return intents


@runtime_checkable
class NotificationDispatcher(Protocol):
    async def dispatch(self, intent: NotificationIntent) -> None:
        ...


class NullNotificationDispatcher:
    """Drops intents. Used when notifications are disabled."""

    async def dispatch(self, intent: NotificationIntent) -> None:
        logger.debug("notification_skipped", order_id=intent.order_id, type=intent.type)


class RecordingNotificationDispatcher:
    """Keeps intents in memory. Used by the CLI and by tests."""

    def __init__(self) -> None:
        self.sent: list[NotificationIntent] = []

    async def dispatch(self, intent: NotificationIntent) -> None:
        self.sent.append(intent)


class RedisNotificationDispatcher:
    """Publishes intents on Redis Pub/Sub.

    Channels:
        notifications:{user_id}   -- per-recipient inbox feed
        order:{order_id}:events   -- per-order activity stream
    """

    def __init__(self, redis: Redis):
        self.redis = redis

    async def dispatch(self, intent: NotificationIntent, now: datetime | None = None) -> None:
        now = now or datetime.now(UTC)
        payload = json.dumps({**asdict(intent), "timestamp": now.isoformat()})
        try:
            await self.redis.publish(f"notifications:{intent.user_id}", payload)
            await self.redis.publish(f"order:{intent.order_id}:events", payload)
        except RedisError as exc:
            logger.warning(
                "notification_dispatch_failed",
                order_id=intent.order_id,
                user_id=intent.user_id,
                type=intent.type,
                error=str(exc),
            )
