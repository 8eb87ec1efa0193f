"""Tests for audit trail replay through the transition graphs."""

import pytest

from orderflow.domain.audit import AuditEvent, AuditOutcome, AuditScope, EventType, verify_audit_trail
from orderflow.domain.states import DeliveryState, OrderState

pytestmark = pytest.mark.unit

S = OrderState
D = DeliveryState


def event(event_type, from_state, to_state, scope=AuditScope.ORDER, outcome=AuditOutcome.COMMITTED, role="admin"):
    return AuditEvent(
        order_id="o-1",
        event_type=event_type,
        outcome=outcome,
        actor_role=role,
        actor_id=f"{role}-1",
        scope=scope,
        from_state=from_state,
        to_state=to_state,
    )


def created():
    return event(EventType.ORDER_CREATED, None, S.DRAFT, role="buyer")


def order_step(source, target, **kwargs):
    return event(EventType.ORDER_TRANSITION, source, target, **kwargs)


def test_empty_trail_is_valid():
    result = verify_audit_trail([])
    assert result.valid
    assert result.order_state is None
    assert result.delivery_state == D.NOT_STARTED


def test_happy_prefix_replays():
    trail = [
        created(),
        order_step(S.DRAFT, S.SUBMITTED, role="buyer"),
        order_step(S.SUBMITTED, S.ADMIN_APPROVED),
        order_step(S.ADMIN_APPROVED, S.MANUFACTURER_ASSIGNED),
    ]
    result = verify_audit_trail(trail)
    assert result.valid
    assert result.order_state == S.MANUFACTURER_ASSIGNED
    assert result.events_replayed == 4


def test_denied_and_attribute_events_are_skipped():
    trail = [
        created(),
        order_step(S.DRAFT, S.COMPLETED, outcome=AuditOutcome.DENIED),
        event(EventType.ATTRIBUTE_UPDATE, S.DRAFT, S.DRAFT),
        order_step(S.DRAFT, S.SUBMITTED, role="buyer"),
    ]
    result = verify_audit_trail(trail)
    assert result.valid
    assert result.events_replayed == 2


def test_non_edge_is_reported():
    bad = order_step(S.DRAFT, S.PAYMENT_CONFIRMED)
    result = verify_audit_trail([created(), bad])
    assert not result.valid
    assert result.failed_event_id == bad.id
    assert "not a order graph edge" in result.reason


def test_gap_in_trail_is_reported():
    gap = order_step(S.SUBMITTED, S.ADMIN_APPROVED)
    result = verify_audit_trail([created(), gap])
    assert not result.valid
    assert result.failed_event_id == gap.id
    assert result.order_state == S.DRAFT


def test_manual_override_reanchors_replay():
    trail = [
        created(),
        event(EventType.MANUAL_OVERRIDE, S.DRAFT, S.READY_FOR_DISPATCH),
        order_step(S.READY_FOR_DISPATCH, S.DISPATCHED),
    ]
    result = verify_audit_trail(trail)
    assert result.valid
    assert result.order_state == S.DISPATCHED


def test_delivery_events_replay_on_their_own_graph():
    trail = [
        created(),
        event(EventType.DELIVERY_TRANSITION, D.NOT_STARTED, D.PACKED, scope=AuditScope.DELIVERY, role="manufacturer"),
        event(EventType.DELIVERY_TRANSITION, D.PACKED, D.PICKUP_SCHEDULED, scope=AuditScope.DELIVERY),
    ]
    result = verify_audit_trail(trail)
    assert result.valid
    assert result.order_state == S.DRAFT
    assert result.delivery_state == D.PICKUP_SCHEDULED
