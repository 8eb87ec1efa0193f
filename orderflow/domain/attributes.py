"""Attribute patch rules: who may write which field, and when a field freezes.

Pure functions, no DB access. Two layers:
- `validate_patch_values` rejects malformed input (unknown keys, bad types,
  bad URLs) before anything else is looked at.
- `check_patch_permissions` enforces writer roles, field locks and evidence
  freezes against the stored order.
"""

from orderflow.core.exceptions import ErrorKind
from orderflow.domain.order import Order
from orderflow.domain.states import ActorRole, DeliveryState, OrderState, state_index
from orderflow.domain.transitions import TransitionResult, is_valid_url

BUYER = ActorRole.BUYER
MANUFACTURER = ActorRole.MANUFACTURER
ADMIN = ActorRole.ADMIN
SYSTEM = ActorRole.SYSTEM

# Patchable attribute -> roles allowed to write it.
ATTRIBUTE_WRITERS: dict[str, frozenset[ActorRole]] = {
    "product_type": frozenset({BUYER, ADMIN}),
    "quantity": frozenset({BUYER, ADMIN}),
    "fabric_type": frozenset({BUYER, ADMIN}),
    "selected_color": frozenset({BUYER, ADMIN}),
    "design_size": frozenset({BUYER, ADMIN}),
    "buyer_notes": frozenset({BUYER}),
    "shipping_address": frozenset({BUYER, ADMIN}),
    "admin_notes": frozenset({ADMIN}),
    "manufacturer_id": frozenset({ADMIN}),
    "payment_link": frozenset({ADMIN}),
    "specs_locked": frozenset({ADMIN}),
    "courier_name": frozenset({ADMIN, SYSTEM}),
    "tracking_id": frozenset({ADMIN, SYSTEM}),
    "sample_qc_video_url": frozenset({MANUFACTURER, ADMIN}),
    "bulk_qc_video_url": frozenset({MANUFACTURER, ADMIN}),
    "packaging_video_url": frozenset({MANUFACTURER, ADMIN}),
}

# Field -> first order state at which it becomes read-only.
FIELD_LOCK_THRESHOLDS: dict[str, OrderState] = {
    "buyer_notes": OrderState.SUBMITTED,
    "quantity": OrderState.SUBMITTED,
    "product_type": OrderState.SUBMITTED,
    "fabric_type": OrderState.SAMPLE_APPROVED,
    "selected_color": OrderState.SAMPLE_APPROVED,
    "design_size": OrderState.SAMPLE_APPROVED,
    "shipping_address": OrderState.DISPATCHED,
    "manufacturer_id": OrderState.SAMPLE_IN_PROGRESS,
}

FIELD_LABELS: dict[str, str] = {
    "buyer_notes": "Buyer Notes",
    "quantity": "Quantity",
    "product_type": "Product Type",
    "fabric_type": "Fabric Type",
    "selected_color": "Color",
    "design_size": "Design Size",
    "shipping_address": "Shipping Address",
    "manufacturer_id": "Manufacturer",
}

EVIDENCE_FIELDS = frozenset({"sample_qc_video_url", "bulk_qc_video_url", "packaging_video_url"})
URL_FIELDS = frozenset({"payment_link"}) | EVIDENCE_FIELDS

# QC video -> order state from which the uploaded evidence is frozen.
# A rejection moves the order back below it, reopening the upload.
QC_EVIDENCE_THRESHOLDS: dict[str, OrderState] = {
    "sample_qc_video_url": OrderState.SAMPLE_QC_UPLOADED,
    "bulk_qc_video_url": OrderState.BULK_QC_UPLOADED,
}


def is_evidence_locked(field: str, order: Order) -> bool:
    """Evidence is frozen once the step it backs has been taken."""
    if field == "packaging_video_url":
        return order.delivery_state != DeliveryState.NOT_STARTED
    threshold = QC_EVIDENCE_THRESHOLDS.get(field)
    if threshold is None:
        return False
    return state_index(order.order_state) >= state_index(threshold)


def is_field_locked(field: str, current_state: OrderState | None) -> bool:
    """A field is locked once the order is at or past its threshold state."""
    threshold = FIELD_LOCK_THRESHOLDS.get(field)
    if threshold is None or current_state is None:
        return False
    return state_index(current_state) >= state_index(threshold)


def field_lock_reason(field: str) -> str:
    threshold = FIELD_LOCK_THRESHOLDS.get(field)
    label = FIELD_LABELS.get(field, field)
    if threshold == OrderState.SUBMITTED:
        return f"{label} cannot be changed after order submission."
    if threshold == OrderState.SAMPLE_APPROVED:
        return f"{label} is locked after sample approval to maintain manufacturing consistency."
    if threshold == OrderState.DISPATCHED:
        return f"{label} cannot be changed after order is dispatched."
    if threshold == OrderState.SAMPLE_IN_PROGRESS:
        return f"{label} cannot be changed once production has started."
    return f"{label} is locked at this stage."


def locked_fields(current_state: OrderState | None) -> list[dict]:
    """All locked fields for a state, with labels and reasons."""
    return [
        {"field": field, "label": FIELD_LABELS[field], "reason": field_lock_reason(field)}
        for field in FIELD_LOCK_THRESHOLDS
        if is_field_locked(field, current_state)
    ]


def validate_patch_values(patch: dict) -> str | None:
    """Return an input error for a malformed patch, else None."""
    for key, value in patch.items():
        if key not in ATTRIBUTE_WRITERS:
            return f"Attribute '{key}' cannot be patched"
        if key == "quantity":
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                return "Quantity must be a non-negative integer"
        elif key == "specs_locked":
            if not isinstance(value, bool):
                return "specs_locked must be a boolean"
        elif key in EVIDENCE_FIELDS:
            if not is_valid_url(value):
                return f"{key} must be a valid http(s) URL"
        elif key in URL_FIELDS:
            if value is not None and not is_valid_url(value):
                return f"{key} must be a valid http(s) URL"
        elif value is not None and not isinstance(value, str):
            return f"{key} must be a string"
    return None


def check_patch_permissions(patch: dict, role: str, order: Order) -> TransitionResult:
    """Check writer roles and field locks for every key in the patch."""
    for key in patch:
        writers = ATTRIBUTE_WRITERS.get(key, frozenset())
        if role not in writers:
            return TransitionResult(
                allowed=False,
                reason=f"Role '{role}' may not modify '{key}'",
                error=ErrorKind.UNAUTHORIZED_ACTOR,
            )
        if is_field_locked(key, order.order_state):
            return TransitionResult(
                allowed=False,
                reason=field_lock_reason(key),
                error=ErrorKind.PRECONDITION_FAILED,
            )
        if is_evidence_locked(key, order):
            return TransitionResult(
                allowed=False,
                reason=f"{key} is recorded evidence and cannot be replaced at this stage",
                error=ErrorKind.PRECONDITION_FAILED,
            )
    if order.specs_locked and patch.get("specs_locked") is False:
        return TransitionResult(
            allowed=False,
            reason="Specs are locked and cannot be unlocked",
            error=ErrorKind.PRECONDITION_FAILED,
        )
    return TransitionResult(allowed=True, reason="Attribute update permitted")


def changed_fields(order: Order, patch: dict) -> dict:
    """Subset of patch whose values differ from the stored order."""
    return {key: value for key, value in patch.items() if getattr(order, key) != value}
