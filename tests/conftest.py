"""Shared test fixtures for all test groups."""

from datetime import UTC, datetime, timedelta

import pytest

from orderflow.core.config import Settings
from orderflow.domain.order import Actor
from orderflow.domain.states import OrderState
from orderflow.services.audit_log import AuditLogWriter, InMemoryAuditStore
from orderflow.services.notifications import RecordingNotificationDispatcher
from orderflow.services.order_store import InMemoryOrderStore
from orderflow.services.workflow import WorkflowOrchestrator

BUYER = Actor(role="buyer", id="buyer-1")
OTHER_BUYER = Actor(role="buyer", id="buyer-2")
MANUFACTURER = Actor(role="manufacturer", id="mfr-1")
OTHER_MANUFACTURER = Actor(role="manufacturer", id="mfr-2")
ADMIN = Actor(role="admin", id="admin-1")
SYSTEM = Actor(role="system", id="system")

PAYMENT_LINK = "https://pay.example.com/checkout/abc123"
SAMPLE_VIDEO = "https://media.example.com/qc/sample.mp4"
BULK_VIDEO = "https://media.example.com/qc/bulk.mp4"
PACKAGING_VIDEO = "https://media.example.com/qc/packaging.mp4"

COMPLETE_FEEDBACK = {
    "defect_type": "Loose stitching",
    "severity": "Major",
    "location": "Left sleeve seam",
    "required_fix": "Re-stitch with double thread",
}

DEFAULT_ATTRIBUTES = {
    "product_type": "t-shirt",
    "quantity": 500,
    "fabric_type": "cotton",
    "selected_color": "navy",
    "design_size": "M",
    "shipping_address": "12 Mill Road, Tiruppur",
}


class FakeClock:
    """Deterministic clock; call to read, advance() to move forward."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, hours: float = 1) -> datetime:
        self.now = self.now + timedelta(hours=hours)
        return self.now


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, notifications_enabled=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def order_store():
    return InMemoryOrderStore()


@pytest.fixture
def audit_store():
    return InMemoryAuditStore()


@pytest.fixture
def notifier():
    return RecordingNotificationDispatcher()


@pytest.fixture
def workflow(order_store, audit_store, notifier, settings, clock):
    """Orchestrator on in-memory stores with a recording notifier."""
    return WorkflowOrchestrator(
        store=order_store,
        audit=AuditLogWriter(audit_store),
        notifier=notifier,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def create_order(workflow):
    """Create a DRAFT order for BUYER and return its id."""

    async def _create(**overrides) -> str:
        result = await workflow.create_order(BUYER, {**DEFAULT_ATTRIBUTES, **overrides})
        assert result.success, result.reason
        return result.order.id

    return _create


async def drive_to(workflow: WorkflowOrchestrator, order_id: str, target: OrderState, clock: FakeClock | None = None):
    """Walk an order along the happy path until it reaches `target`.

    Reaching DISPATCHED also packs the order and schedules pickup, since the
    delivery graph only allows packing before dispatch.
    """
    steps = [
        (OrderState.SUBMITTED, lambda: workflow.apply_transition(order_id, BUYER, OrderState.SUBMITTED)),
        (OrderState.ADMIN_APPROVED, lambda: workflow.apply_transition(order_id, ADMIN, OrderState.ADMIN_APPROVED)),
        (OrderState.MANUFACTURER_ASSIGNED, lambda: workflow.assign_manufacturer(order_id, ADMIN, MANUFACTURER.id)),
        (OrderState.PAYMENT_REQUESTED, lambda: workflow.approve_order(order_id, ADMIN, PAYMENT_LINK)),
        (OrderState.PAYMENT_CONFIRMED, lambda: workflow.mark_payment_received(order_id, ADMIN)),
        (OrderState.SAMPLE_IN_PROGRESS, lambda: workflow.apply_transition(order_id, MANUFACTURER, OrderState.SAMPLE_IN_PROGRESS)),
        (OrderState.SAMPLE_QC_UPLOADED, lambda: workflow.upload_qc(order_id, MANUFACTURER, "sample", SAMPLE_VIDEO)),
        (OrderState.SAMPLE_APPROVED, lambda: workflow.decide_qc(order_id, BUYER, "sample", approve=True)),
        (OrderState.BULK_UNLOCKED, lambda: workflow.apply_transition(order_id, ADMIN, OrderState.BULK_UNLOCKED)),
        (OrderState.BULK_IN_PRODUCTION, lambda: workflow.apply_transition(order_id, MANUFACTURER, OrderState.BULK_IN_PRODUCTION)),
        (OrderState.BULK_QC_UPLOADED, lambda: workflow.upload_qc(order_id, MANUFACTURER, "bulk", BULK_VIDEO)),
        (OrderState.READY_FOR_DISPATCH, lambda: workflow.decide_qc(order_id, BUYER, "bulk", approve=True)),
        (OrderState.DISPATCHED, lambda: _dispatch(workflow, order_id)),
        (OrderState.DELIVERED, lambda: workflow.apply_transition(order_id, ADMIN, OrderState.DELIVERED)),
        (OrderState.COMPLETED, lambda: workflow.apply_transition(order_id, ADMIN, OrderState.COMPLETED)),
    ]

    order = await workflow.get_order(order_id)
    for state, step in steps:
        if order.order_state == target:
            break
        if list(OrderState).index(order.order_state) >= list(OrderState).index(state):
            continue
        if state == OrderState.SAMPLE_IN_PROGRESS and not order.specs_locked:
            locked = await workflow.lock_specs(order_id, ADMIN)
            assert locked.success, locked.reason
        if clock is not None:
            clock.advance(1)
        result = await step()
        assert result.success, f"{state}: {result.error} {result.reason}"
        order = result.order
    assert order.order_state == target
    return order


async def _dispatch(workflow: WorkflowOrchestrator, order_id: str):
    packed = await workflow.mark_packed(order_id, MANUFACTURER, PACKAGING_VIDEO)
    assert packed.success, packed.reason
    scheduled = await workflow.schedule_pickup(order_id, ADMIN, "BlueDart", "BD-998877")
    assert scheduled.success, scheduled.reason
    return await workflow.apply_transition(order_id, ADMIN, OrderState.DISPATCHED)
