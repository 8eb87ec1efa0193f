"""Tests for attribute writer roles, field locks and patch validation."""

import pytest

from orderflow.core.exceptions import ErrorKind
from orderflow.domain.attributes import (
    changed_fields,
    check_patch_permissions,
    is_evidence_locked,
    is_field_locked,
    locked_fields,
    validate_patch_values,
)
from orderflow.domain.order import Order
from orderflow.domain.states import DeliveryState, OrderState

pytestmark = pytest.mark.unit

S = OrderState
D = DeliveryState


def make_order(state=S.DRAFT, **fields) -> Order:
    return Order(id="o-1", buyer_id="buyer-1", order_state=state, **fields)


@pytest.mark.parametrize(
    "field,state,locked",
    [
        ("quantity", S.DRAFT, False),
        ("quantity", S.SUBMITTED, True),
        ("buyer_notes", S.SUBMITTED, True),
        ("fabric_type", S.BULK_UNLOCKED, True),
        ("fabric_type", S.SAMPLE_QC_UPLOADED, False),
        ("selected_color", S.SAMPLE_APPROVED, True),
        ("shipping_address", S.READY_FOR_DISPATCH, False),
        ("shipping_address", S.DISPATCHED, True),
        ("manufacturer_id", S.PAYMENT_CONFIRMED, False),
        ("manufacturer_id", S.SAMPLE_IN_PROGRESS, True),
        ("admin_notes", S.COMPLETED, False),
    ],
)
def test_is_field_locked(field, state, locked):
    assert is_field_locked(field, state) is locked


def test_locked_fields_lists_labels_and_reasons():
    fields = {entry["field"]: entry for entry in locked_fields(S.SAMPLE_APPROVED)}
    assert set(fields) == {
        "buyer_notes", "quantity", "product_type", "fabric_type", "selected_color", "design_size", "manufacturer_id",
    }
    assert fields["fabric_type"]["reason"] == (
        "Fabric Type is locked after sample approval to maintain manufacturing consistency."
    )
    assert fields["quantity"]["label"] == "Quantity"


def test_buyer_may_edit_spec_in_draft():
    result = check_patch_permissions({"quantity": 200, "buyer_notes": "Rush"}, "buyer", make_order())
    assert result.allowed


def test_buyer_cannot_write_admin_fields():
    result = check_patch_permissions({"payment_link": "https://pay.example.com"}, "buyer", make_order())
    assert result.error == ErrorKind.UNAUTHORIZED_ACTOR
    assert "payment_link" in result.reason


def test_manufacturer_cannot_change_quantity():
    result = check_patch_permissions({"quantity": 10}, "manufacturer", make_order())
    assert result.error == ErrorKind.UNAUTHORIZED_ACTOR


def test_field_lock_applies_to_admin_too():
    result = check_patch_permissions({"quantity": 10}, "admin", make_order(S.SUBMITTED))
    assert result.error == ErrorKind.PRECONDITION_FAILED
    assert result.reason == "Quantity cannot be changed after order submission."


def test_specs_cannot_be_unlocked():
    order = make_order(S.PAYMENT_CONFIRMED, specs_locked=True)
    result = check_patch_permissions({"specs_locked": False}, "admin", order)
    assert result.error == ErrorKind.PRECONDITION_FAILED


@pytest.mark.parametrize(
    "patch",
    [
        {"order_state": "COMPLETED"},
        {"version": 99},
        {"quantity": -1},
        {"quantity": "ten"},
        {"quantity": True},
        {"specs_locked": "yes"},
        {"payment_link": "javascript:alert(1)"},
        {"courier_name": 42},
    ],
)
def test_validate_patch_values_rejects_malformed(patch):
    assert validate_patch_values(patch) is not None


def test_validate_patch_values_accepts_wellformed():
    assert validate_patch_values(
        {"quantity": 0, "specs_locked": True, "packaging_video_url": "https://m.example.com/p.mp4", "buyer_notes": None}
    ) is None


def test_changed_fields_drops_unchanged_values():
    order = make_order(quantity=100, product_type="hoodie")
    assert changed_fields(order, {"quantity": 100, "product_type": "t-shirt"}) == {"product_type": "t-shirt"}


@pytest.mark.parametrize(
    "field,state,delivery,locked",
    [
        ("packaging_video_url", S.READY_FOR_DISPATCH, D.NOT_STARTED, False),
        ("packaging_video_url", S.READY_FOR_DISPATCH, D.PACKED, True),
        ("packaging_video_url", S.DISPATCHED, D.IN_TRANSIT, True),
        ("sample_qc_video_url", S.SAMPLE_IN_PROGRESS, D.NOT_STARTED, False),
        ("sample_qc_video_url", S.SAMPLE_QC_UPLOADED, D.NOT_STARTED, True),
        ("sample_qc_video_url", S.BULK_IN_PRODUCTION, D.NOT_STARTED, True),
        ("bulk_qc_video_url", S.BULK_IN_PRODUCTION, D.NOT_STARTED, False),
        ("bulk_qc_video_url", S.READY_FOR_DISPATCH, D.NOT_STARTED, True),
        ("courier_name", S.DISPATCHED, D.IN_TRANSIT, False),
    ],
)
def test_is_evidence_locked(field, state, delivery, locked):
    assert is_evidence_locked(field, make_order(state, delivery_state=delivery)) is locked


def test_packaging_video_frozen_once_packed():
    order = make_order(S.READY_FOR_DISPATCH, delivery_state=D.PACKED, packaging_video_url="https://m.example.com/p.mp4")
    result = check_patch_permissions({"packaging_video_url": "https://m.example.com/other.mp4"}, "manufacturer", order)
    assert result.error == ErrorKind.PRECONDITION_FAILED
    assert "packaging_video_url" in result.reason


@pytest.mark.parametrize("field", ["packaging_video_url", "sample_qc_video_url", "bulk_qc_video_url"])
def test_evidence_cannot_be_cleared(field):
    assert validate_patch_values({field: None}) is not None


def test_payment_link_may_still_be_cleared():
    assert validate_patch_values({"payment_link": None}) is None
