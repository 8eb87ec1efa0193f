"""Tests for transition validation (pure, no storage)."""

import pytest

from orderflow.core.exceptions import ErrorKind
from orderflow.domain.order import Order, OrderContext
from orderflow.domain.qc import QCFeedback
from orderflow.domain.states import ORDER_GRAPH, ActorRole, DeliveryState, OrderState
from orderflow.domain.transitions import (
    allowed_targets,
    is_valid_url,
    validate_manual_override,
    validate_transition,
)

pytestmark = pytest.mark.unit

S = OrderState
D = DeliveryState


def make_context(order_state=S.DRAFT, **overrides) -> OrderContext:
    order = Order(id="o-1", buyer_id="buyer-1", order_state=order_state)
    ctx = OrderContext.from_order(order)
    for key, value in overrides.items():
        setattr(ctx, key, value)
    return ctx


def paid_context(order_state, **overrides) -> OrderContext:
    return make_context(order_state, payment_received=True, specs_locked=True, **overrides)


# ============================================================================
# Graph membership and roles
# ============================================================================


def test_buyer_submits_draft_with_quantity():
    result = validate_transition(S.DRAFT, S.SUBMITTED, D.NOT_STARTED, None, "buyer", make_context(quantity=10))
    assert result.allowed
    assert [e.action for e in result.edges] == ["order_submitted"]


def test_submit_with_zero_quantity_fails_precondition():
    result = validate_transition(S.DRAFT, S.SUBMITTED, D.NOT_STARTED, None, "buyer", make_context(quantity=0))
    assert not result.allowed
    assert result.error == ErrorKind.PRECONDITION_FAILED
    assert "Quantity" in result.reason


def test_skipping_states_is_invalid_transition():
    result = validate_transition(S.DRAFT, S.PAYMENT_REQUESTED, D.NOT_STARTED, None, "admin", make_context())
    assert not result.allowed
    assert result.error == ErrorKind.INVALID_TRANSITION
    assert "Valid next states: SUBMITTED" in result.reason


def test_transition_out_of_terminal_state_mentions_terminal():
    result = validate_transition(S.COMPLETED, S.DRAFT, D.DELIVERED, None, "admin", make_context(S.COMPLETED))
    assert result.error == ErrorKind.INVALID_TRANSITION
    assert "terminal" in result.reason


def test_wrong_role_is_unauthorized_and_names_allowed_roles():
    result = validate_transition(S.SUBMITTED, S.ADMIN_APPROVED, D.NOT_STARTED, None, "buyer", make_context(S.SUBMITTED))
    assert not result.allowed
    assert result.error == ErrorKind.UNAUTHORIZED_ACTOR
    assert "admin" in result.reason


def test_unknown_role_is_never_authorized():
    result = validate_transition(S.DRAFT, S.SUBMITTED, D.NOT_STARTED, None, "courier", make_context(quantity=5))
    assert result.error == ErrorKind.UNAUTHORIZED_ACTOR


def test_invalid_transition_checked_before_role():
    # A buyer asking for an edge that does not exist gets INVALID_TRANSITION, not UNAUTHORIZED
    result = validate_transition(S.SUBMITTED, S.COMPLETED, D.NOT_STARTED, None, "buyer", make_context(S.SUBMITTED))
    assert result.error == ErrorKind.INVALID_TRANSITION


def test_no_state_change_is_allowed_without_edges():
    result = validate_transition(S.SUBMITTED, S.SUBMITTED, D.NOT_STARTED, None, "buyer", make_context(S.SUBMITTED))
    assert result.allowed
    assert result.edges == ()


# ============================================================================
# Preconditions
# ============================================================================


def test_payment_request_requires_valid_link():
    missing = validate_transition(
        S.MANUFACTURER_ASSIGNED, S.PAYMENT_REQUESTED, D.NOT_STARTED, None, "admin",
        make_context(S.MANUFACTURER_ASSIGNED),
    )
    assert missing.error == ErrorKind.PRECONDITION_FAILED

    bad = validate_transition(
        S.MANUFACTURER_ASSIGNED, S.PAYMENT_REQUESTED, D.NOT_STARTED, None, "admin",
        make_context(S.MANUFACTURER_ASSIGNED, payment_link="not-a-url"),
    )
    assert bad.error == ErrorKind.PRECONDITION_FAILED

    ok = validate_transition(
        S.MANUFACTURER_ASSIGNED, S.PAYMENT_REQUESTED, D.NOT_STARTED, None, "admin",
        make_context(S.MANUFACTURER_ASSIGNED, payment_link="https://pay.example.com/x"),
    )
    assert ok.allowed


def test_production_start_requires_payment_received():
    result = validate_transition(
        S.PAYMENT_CONFIRMED, S.SAMPLE_IN_PROGRESS, D.NOT_STARTED, None, "manufacturer",
        make_context(S.PAYMENT_CONFIRMED, specs_locked=True, payment_received=False),
    )
    assert result.error == ErrorKind.PRECONDITION_FAILED
    assert "Payment" in result.reason


def test_production_start_requires_specs_locked():
    result = validate_transition(
        S.PAYMENT_CONFIRMED, S.SAMPLE_IN_PROGRESS, D.NOT_STARTED, None, "manufacturer",
        make_context(S.PAYMENT_CONFIRMED, payment_received=True, specs_locked=False),
    )
    assert result.error == ErrorKind.PRECONDITION_FAILED
    assert "Specs" in result.reason


def test_sample_qc_upload_requires_evidence():
    result = validate_transition(
        S.SAMPLE_IN_PROGRESS, S.SAMPLE_QC_UPLOADED, D.NOT_STARTED, None, "manufacturer",
        paid_context(S.SAMPLE_IN_PROGRESS),
    )
    assert result.error == ErrorKind.PRECONDITION_FAILED

    result = validate_transition(
        S.SAMPLE_IN_PROGRESS, S.SAMPLE_QC_UPLOADED, D.NOT_STARTED, None, "manufacturer",
        paid_context(S.SAMPLE_IN_PROGRESS, sample_qc_video_url="https://m.example.com/s.mp4"),
    )
    assert result.allowed


@pytest.mark.parametrize("reason", [None, "", "bad", "too short"])
def test_sample_rejection_requires_reason_of_ten_chars(reason):
    result = validate_transition(
        S.SAMPLE_QC_UPLOADED, S.SAMPLE_IN_PROGRESS, D.NOT_STARTED, None, "buyer",
        paid_context(S.SAMPLE_IN_PROGRESS, reason=reason),
    )
    assert result.error == ErrorKind.PRECONDITION_FAILED


def test_sample_rejection_with_reason_allowed():
    result = validate_transition(
        S.SAMPLE_QC_UPLOADED, S.SAMPLE_IN_PROGRESS, D.NOT_STARTED, None, "buyer",
        paid_context(S.SAMPLE_IN_PROGRESS, reason="Colour is off-shade"),
    )
    assert result.allowed
    assert result.edges[0].action == "sample_rejected"


def test_bulk_rejection_requires_structured_feedback():
    no_feedback = validate_transition(
        S.BULK_QC_UPLOADED, S.BULK_IN_PRODUCTION, D.NOT_STARTED, None, "buyer",
        paid_context(S.BULK_IN_PRODUCTION, reason="Stitching defects on 20%"),
    )
    assert no_feedback.error == ErrorKind.PRECONDITION_FAILED

    feedback = QCFeedback(defect_type="Stitching", severity="Major", location="Hem", required_fix="Re-stitch")
    ok = validate_transition(
        S.BULK_QC_UPLOADED, S.BULK_IN_PRODUCTION, D.NOT_STARTED, None, "admin",
        paid_context(S.BULK_IN_PRODUCTION, reason="Stitching defects on 20%", feedback=feedback),
    )
    assert ok.allowed


# ============================================================================
# Delivery coupling
# ============================================================================


@pytest.mark.parametrize("order_state", [S.READY_FOR_DISPATCH, S.BULK_QC_UPLOADED])
def test_packing_allowed_when_order_dispatch_eligible(order_state):
    result = validate_transition(
        order_state, None, D.NOT_STARTED, D.PACKED, "manufacturer",
        paid_context(order_state, packaging_video_url="https://m.example.com/p.mp4"),
    )
    assert result.allowed
    assert result.edges[0].graph == "delivery"


@pytest.mark.parametrize("order_state", [S.BULK_IN_PRODUCTION, S.SAMPLE_APPROVED, S.DISPATCHED])
def test_packing_refused_before_bulk_qc(order_state):
    result = validate_transition(
        order_state, None, D.NOT_STARTED, D.PACKED, "manufacturer",
        paid_context(order_state, packaging_video_url="https://m.example.com/p.mp4"),
    )
    assert result.error == ErrorKind.PRECONDITION_FAILED


def test_packing_requires_packaging_video():
    result = validate_transition(
        S.READY_FOR_DISPATCH, None, D.NOT_STARTED, D.PACKED, "manufacturer", paid_context(S.READY_FOR_DISPATCH)
    )
    assert result.error == ErrorKind.PRECONDITION_FAILED
    assert "packaging video" in result.reason


def test_pickup_requires_packaging_video_on_file():
    ctx = paid_context(S.READY_FOR_DISPATCH, courier_name="BlueDart", tracking_id="BD-1")
    missing = validate_transition(S.READY_FOR_DISPATCH, None, D.PACKED, D.PICKUP_SCHEDULED, "admin", ctx)
    assert missing.error == ErrorKind.PRECONDITION_FAILED
    assert "packaging video" in missing.reason

    ctx.packaging_video_url = "https://m.example.com/p.mp4"
    assert validate_transition(S.READY_FOR_DISPATCH, None, D.PACKED, D.PICKUP_SCHEDULED, "admin", ctx).allowed


def test_delivery_cannot_skip_states():
    result = validate_transition(
        S.READY_FOR_DISPATCH, None, D.NOT_STARTED, D.IN_TRANSIT, "admin", paid_context(S.READY_FOR_DISPATCH)
    )
    assert result.error == ErrorKind.INVALID_TRANSITION


def test_combined_change_reports_both_edges_order_first():
    ctx = paid_context(
        S.READY_FOR_DISPATCH, packaging_video_url="https://m.example.com/p.mp4", bulk_qc_video_url="https://x.io/b"
    )
    result = validate_transition(S.BULK_QC_UPLOADED, S.READY_FOR_DISPATCH, D.NOT_STARTED, D.PACKED, "buyer", ctx)
    # Buyer may approve bulk QC but not pack, so the delivery edge is refused
    assert result.error == ErrorKind.UNAUTHORIZED_ACTOR

    order_edge_bad = validate_transition(S.BULK_QC_UPLOADED, S.DISPATCHED, D.NOT_STARTED, D.PACKED, "manufacturer", ctx)
    assert order_edge_bad.error == ErrorKind.INVALID_TRANSITION


# ============================================================================
# Manual override and helpers
# ============================================================================


def test_manual_override_requires_admin():
    result = validate_manual_override("manufacturer", "Courier confirmed by phone", "DISPATCHED", None)
    assert result.error == ErrorKind.UNAUTHORIZED_ACTOR


@pytest.mark.parametrize("reason", [None, "", "short"])
def test_manual_override_requires_reason(reason):
    result = validate_manual_override("admin", reason, "DISPATCHED", None)
    assert result.error == ErrorKind.INVALID_INPUT


def test_manual_override_requires_known_target():
    assert validate_manual_override("admin", "Fixing stuck order", None, None).error == ErrorKind.INVALID_INPUT
    assert validate_manual_override("admin", "Fixing stuck order", "SHIPPED", None).error == ErrorKind.INVALID_INPUT
    assert validate_manual_override("admin", "Fixing stuck order", None, "LOST").error == ErrorKind.INVALID_INPUT
    assert validate_manual_override("admin", "Fixing stuck order", "DISPATCHED", "IN_TRANSIT").allowed


def test_allowed_targets_filters_by_role():
    assert allowed_targets(ORDER_GRAPH, S.SAMPLE_QC_UPLOADED, ActorRole.BUYER) == [
        S.SAMPLE_APPROVED,
        S.SAMPLE_IN_PROGRESS,
    ]
    assert allowed_targets(ORDER_GRAPH, S.SAMPLE_QC_UPLOADED, ActorRole.MANUFACTURER) == []


@pytest.mark.parametrize(
    "value,expected",
    [
        ("https://pay.example.com/x", True),
        ("http://localhost:8000/pay", True),
        ("ftp://files.example.com", False),
        ("pay.example.com", False),
        ("", False),
        (None, False),
    ],
)
def test_is_valid_url(value, expected):
    assert is_valid_url(value) is expected
