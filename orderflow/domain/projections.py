"""Role-specific read-only views of committed order state.

Pure functions -- nothing here mutates an Order. Labels differ by role so
buyers never see internal workflow terminology, and tracking details are
withheld from buyers until a pickup has been scheduled.
"""

from dataclasses import dataclass, field

from orderflow.domain.attributes import locked_fields
from orderflow.domain.delays import DelayMetric, compute_delay_metrics
from orderflow.domain.order import Order
from orderflow.domain.states import (
    DELIVERY_GRAPH,
    ORDER_GRAPH,
    ActorRole,
    DeliveryState,
    OrderState,
    QCDecision,
    state_index,
)
from orderflow.domain.transitions import allowed_targets

S = OrderState
D = DeliveryState

ADMIN_LABELS: dict[OrderState, str] = {
    S.DRAFT: "Draft",
    S.SUBMITTED: "Submitted",
    S.ADMIN_APPROVED: "Admin Approved",
    S.MANUFACTURER_ASSIGNED: "Manufacturer Assigned",
    S.PAYMENT_REQUESTED: "Payment Requested",
    S.PAYMENT_CONFIRMED: "Payment Confirmed",
    S.SAMPLE_IN_PROGRESS: "Sample In Progress",
    S.SAMPLE_QC_UPLOADED: "Sample QC Uploaded",
    S.SAMPLE_APPROVED: "Sample Approved",
    S.BULK_UNLOCKED: "Bulk Unlocked",
    S.BULK_IN_PRODUCTION: "Bulk In Production",
    S.BULK_QC_UPLOADED: "Bulk QC Uploaded",
    S.READY_FOR_DISPATCH: "Ready for Dispatch",
    S.DISPATCHED: "Dispatched",
    S.DELIVERED: "Delivered",
    S.COMPLETED: "Completed",
}

BUYER_LABELS: dict[OrderState, str] = {
    S.DRAFT: "Draft",
    S.SUBMITTED: "Submitted for Review",
    S.ADMIN_APPROVED: "Approved",
    S.MANUFACTURER_ASSIGNED: "Approved – Manufacturer Assigned",
    S.PAYMENT_REQUESTED: "Approved – Payment Pending",
    S.PAYMENT_CONFIRMED: "Payment Received",
    S.SAMPLE_IN_PROGRESS: "In Production",
    S.SAMPLE_QC_UPLOADED: "Quality Check Ready",
    S.SAMPLE_APPROVED: "Sample Approved",
    S.BULK_UNLOCKED: "Bulk Production Scheduled",
    S.BULK_IN_PRODUCTION: "Bulk Production",
    S.BULK_QC_UPLOADED: "Final Quality Check Ready",
    S.READY_FOR_DISPATCH: "Preparing Shipment",
    S.DISPATCHED: "Shipped",
    S.DELIVERED: "Delivered",
    S.COMPLETED: "Completed",
}

MANUFACTURER_LABELS: dict[OrderState, str] = {
    **ADMIN_LABELS,
    S.DRAFT: "Not Assigned",
    S.SUBMITTED: "Not Assigned",
    S.ADMIN_APPROVED: "Not Assigned",
    S.MANUFACTURER_ASSIGNED: "New Assignment",
    S.PAYMENT_REQUESTED: "Awaiting Buyer Payment",
    S.PAYMENT_CONFIRMED: "Ready to Start Sample",
    S.SAMPLE_QC_UPLOADED: "Sample Under Review",
    S.BULK_QC_UPLOADED: "Bulk Under Review",
}

STATE_COLORS: dict[OrderState, str] = {
    S.DRAFT: "gray",
    S.SUBMITTED: "blue",
    S.ADMIN_APPROVED: "blue",
    S.MANUFACTURER_ASSIGNED: "indigo",
    S.PAYMENT_REQUESTED: "amber",
    S.PAYMENT_CONFIRMED: "green",
    S.SAMPLE_IN_PROGRESS: "purple",
    S.SAMPLE_QC_UPLOADED: "yellow",
    S.SAMPLE_APPROVED: "green",
    S.BULK_UNLOCKED: "teal",
    S.BULK_IN_PRODUCTION: "orange",
    S.BULK_QC_UPLOADED: "amber",
    S.READY_FOR_DISPATCH: "cyan",
    S.DISPATCHED: "sky",
    S.DELIVERED: "emerald",
    S.COMPLETED: "green",
}

DELIVERY_LABELS: dict[DeliveryState, str] = {
    D.NOT_STARTED: "Awaiting Packaging",
    D.PACKED: "Packed & Ready",
    D.PICKUP_SCHEDULED: "Pickup Scheduled",
    D.IN_TRANSIT: "In Transit",
    D.DELIVERED: "Delivered",
}

DELIVERY_COLORS: dict[DeliveryState, str] = {
    D.NOT_STARTED: "gray",
    D.PACKED: "blue",
    D.PICKUP_SCHEDULED: "purple",
    D.IN_TRANSIT: "orange",
    D.DELIVERED: "green",
}

# Delivery states at which courier and tracking details become buyer-visible.
TRACKING_VISIBLE_STATES = frozenset({D.PICKUP_SCHEDULED, D.IN_TRANSIT, D.DELIVERED})


@dataclass
class GateStatus:
    gate: str
    passed: bool
    reason: str = ""


@dataclass
class OrderView:
    """Everything one role may see about an order."""

    order_id: str
    role: str
    order_state: OrderState
    label: str
    color: str
    progress: int
    show_pay_now: bool
    delivery: dict | None
    next_actions: list[dict] = field(default_factory=list)
    locked_fields: list[dict] = field(default_factory=list)
    gates: list[GateStatus] = field(default_factory=list)
    delays: list[DelayMetric] = field(default_factory=list)


def state_label(order: Order, role: str) -> str:
    """Label for the order state as the given role should see it."""
    if role == ActorRole.BUYER:
        if order.order_state == S.SUBMITTED and order.admin_notes:
            return "Changes Requested"
        return BUYER_LABELS[order.order_state]
    if role == ActorRole.MANUFACTURER:
        return MANUFACTURER_LABELS[order.order_state]
    return ADMIN_LABELS[order.order_state]


def state_color(order: Order, role: str) -> str:
    if role == ActorRole.BUYER and order.order_state == S.SUBMITTED and order.admin_notes:
        return "orange"
    return STATE_COLORS[order.order_state]


def show_pay_now(order: Order) -> bool:
    """Buyer payment prompt, driven by order_state alone."""
    return order.order_state == S.PAYMENT_REQUESTED


def progress_percentage(state: OrderState) -> int:
    """Position along the linear order progression as 0-100."""
    last = len(OrderState) - 1
    return int(state_index(state) / last * 100)


def buyer_delivery_tracking(order: Order) -> dict | None:
    """Buyer-visible delivery tracking.

    None until the order is packed. Courier name and tracking id are only
    disclosed from PICKUP_SCHEDULED onward.
    """
    if order.delivery_state == D.NOT_STARTED:
        return None

    reveal = order.delivery_state in TRACKING_VISIBLE_STATES
    return {
        "status": order.delivery_state,
        "status_label": DELIVERY_LABELS[order.delivery_state],
        "tracking_id": order.tracking_id if reveal else None,
        "courier_name": order.courier_name if reveal else None,
        "timestamps": {
            "packed": order.packed_at,
            "pickup_scheduled": order.pickup_scheduled_at,
            "in_transit": order.in_transit_at,
            "delivered": order.delivered_at,
        },
    }


def delivery_details(order: Order) -> dict:
    """Unfiltered delivery view for admins and the assigned manufacturer."""
    return {
        "status": order.delivery_state,
        "status_label": DELIVERY_LABELS[order.delivery_state],
        "color": DELIVERY_COLORS[order.delivery_state],
        "tracking_id": order.tracking_id,
        "courier_name": order.courier_name,
        "packaging_video_url": order.packaging_video_url,
    }


def next_actions(order: Order, role: str) -> list[dict]:
    """Transitions the role could trigger next. Preconditions are not evaluated."""
    actions = []
    for target in allowed_targets(ORDER_GRAPH, order.order_state, role):
        edge = ORDER_GRAPH.edge(order.order_state, target)
        actions.append({"graph": ORDER_GRAPH.name, "target": target, "action": edge.action})
    for target in allowed_targets(DELIVERY_GRAPH, order.delivery_state, role):
        edge = DELIVERY_GRAPH.edge(order.delivery_state, target)
        actions.append({"graph": DELIVERY_GRAPH.name, "target": target, "action": edge.action})
    return actions


def execution_gates(order: Order) -> list[GateStatus]:
    """Production and dispatch gate status for admin oversight."""
    gates = [
        GateStatus(
            "payment_received",
            order.payment_received,
            "" if order.payment_received else "Payment must be received before production can start.",
        ),
        GateStatus(
            "specs_locked",
            order.specs_locked,
            "" if order.specs_locked else "Specs must be locked by admin before production can start.",
        ),
    ]

    bulk_stage = state_index(order.order_state) >= state_index(S.BULK_UNLOCKED)
    stage = "bulk" if bulk_stage else "sample"
    uploaded = order.bulk_qc_uploaded_at if bulk_stage else order.sample_qc_uploaded_at
    record = order.bulk_qc if bulk_stage else order.sample_qc
    gates.append(
        GateStatus(
            f"{stage}_qc_uploaded",
            uploaded is not None,
            "" if uploaded else f"{stage.title()} QC must be uploaded before delivery can proceed.",
        )
    )
    approved = record is not None and record.decision == QCDecision.APPROVED
    gates.append(
        GateStatus(
            f"{stage}_qc_approved",
            approved,
            "" if approved else f"{stage.title()} QC must be approved before delivery can proceed.",
        )
    )
    return gates


def project_order_view(order: Order, role: str) -> OrderView:
    """Build the read-only view of an order for one role."""
    is_buyer = role == ActorRole.BUYER
    is_admin = role in (ActorRole.ADMIN, ActorRole.SYSTEM)
    return OrderView(
        order_id=order.id,
        role=role,
        order_state=order.order_state,
        label=state_label(order, role),
        color=state_color(order, role),
        progress=progress_percentage(order.order_state),
        show_pay_now=is_buyer and show_pay_now(order),
        delivery=buyer_delivery_tracking(order) if is_buyer else delivery_details(order),
        next_actions=next_actions(order, role),
        locked_fields=locked_fields(order.order_state) if is_buyer or is_admin else [],
        gates=execution_gates(order) if is_admin else [],
        delays=compute_delay_metrics(order) if is_admin else [],
    )
