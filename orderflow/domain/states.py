"""Order and delivery state vocabulary with the permitted transition graphs.

Pure domain data with no external dependencies. Every edge carries the
roles allowed to traverse it and the preconditions the validator checks
before the edge is accepted.
"""
from dataclasses import dataclass, field
from enum import StrEnum


class OrderState(StrEnum):
    """Primary order lifecycle. Declaration order is the linear progression."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    ADMIN_APPROVED = "ADMIN_APPROVED"
    MANUFACTURER_ASSIGNED = "MANUFACTURER_ASSIGNED"
    PAYMENT_REQUESTED = "PAYMENT_REQUESTED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    SAMPLE_IN_PROGRESS = "SAMPLE_IN_PROGRESS"
    SAMPLE_QC_UPLOADED = "SAMPLE_QC_UPLOADED"
    SAMPLE_APPROVED = "SAMPLE_APPROVED"
    BULK_UNLOCKED = "BULK_UNLOCKED"
    BULK_IN_PRODUCTION = "BULK_IN_PRODUCTION"
    BULK_QC_UPLOADED = "BULK_QC_UPLOADED"
    READY_FOR_DISPATCH = "READY_FOR_DISPATCH"
    DISPATCHED = "DISPATCHED"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"


class DeliveryState(StrEnum):
    """Physical fulfillment lifecycle, strictly linear."""

    NOT_STARTED = "NOT_STARTED"
    PACKED = "PACKED"
    PICKUP_SCHEDULED = "PICKUP_SCHEDULED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"


class ActorRole(StrEnum):
    BUYER = "buyer"
    MANUFACTURER = "manufacturer"
    ADMIN = "admin"
    SYSTEM = "system"


class QCStage(StrEnum):
    SAMPLE = "sample"
    BULK = "bulk"


class QCDecision(StrEnum):
    PENDING = "pending_buyer_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class Precondition(StrEnum):
    """Edge-specific checks evaluated against the order context."""

    QUANTITY_POSITIVE = "quantity_positive"
    MANUFACTURER_PRESENT = "manufacturer_present"
    PAYMENT_LINK_VALID = "payment_link_valid"
    PAYMENT_RECEIVED = "payment_received"
    SPECS_LOCKED = "specs_locked"
    SAMPLE_QC_EVIDENCE = "sample_qc_evidence"
    BULK_QC_EVIDENCE = "bulk_qc_evidence"
    REJECTION_REASON = "rejection_reason"
    STRUCTURED_FEEDBACK = "structured_feedback"
    COURIER_DETAILS = "courier_details"
    TRACKING_ID = "tracking_id"
    PACKAGING_VIDEO = "packaging_video"
    DISPATCH_ELIGIBLE_ORDER = "dispatch_eligible_order"


@dataclass(frozen=True)
class Edge:
    """A permitted transition between two states of one graph."""

    graph: str
    source: str | None
    target: str
    roles: frozenset[ActorRole]
    action: str
    preconditions: tuple[Precondition, ...] = ()

    @property
    def is_rejection(self) -> bool:
        return self.action.endswith("_rejected")


@dataclass
class TransitionGraph:
    """Directed edge table keyed by (source, target)."""

    name: str
    states: tuple[str, ...]
    edges: dict[tuple[str | None, str], Edge] = field(default_factory=dict)

    def add(
        self,
        source: str | None,
        target: str,
        roles: set[ActorRole],
        action: str,
        *preconditions: Precondition,
    ) -> None:
        self.edges[(source, target)] = Edge(self.name, source, target, frozenset(roles), action, preconditions)

    def edge(self, source: str | None, target: str) -> Edge | None:
        return self.edges.get((source, target))

    def targets(self, source: str | None) -> list[str]:
        """Valid next states from source, in graph declaration order."""
        return [target for (src, target) in self.edges if src == source]

    def is_terminal(self, state: str) -> bool:
        return not self.targets(state)


BUYER = ActorRole.BUYER
MANUFACTURER = ActorRole.MANUFACTURER
ADMIN = ActorRole.ADMIN
SYSTEM = ActorRole.SYSTEM

S = OrderState
P = Precondition

# Production stage: every state from SAMPLE_IN_PROGRESS onward is gated on payment.
PRODUCTION_STATES: frozenset[OrderState] = frozenset(
    list(OrderState)[list(OrderState).index(S.SAMPLE_IN_PROGRESS):]
)

# Order states from which the manufacturer may start packing.
DISPATCH_ELIGIBLE_STATES: frozenset[OrderState] = frozenset(
    {S.READY_FOR_DISPATCH, S.BULK_QC_UPLOADED}
)

ORDER_GRAPH = TransitionGraph("order", tuple(OrderState))
ORDER_GRAPH.add(None, S.DRAFT, {BUYER, ADMIN, SYSTEM}, "order_created")
ORDER_GRAPH.add(S.DRAFT, S.SUBMITTED, {BUYER}, "order_submitted", P.QUANTITY_POSITIVE)
ORDER_GRAPH.add(S.SUBMITTED, S.ADMIN_APPROVED, {ADMIN}, "admin_approved")
ORDER_GRAPH.add(
    S.ADMIN_APPROVED, S.MANUFACTURER_ASSIGNED, {ADMIN}, "manufacturer_assigned", P.MANUFACTURER_PRESENT
)
ORDER_GRAPH.add(
    S.MANUFACTURER_ASSIGNED, S.PAYMENT_REQUESTED, {ADMIN}, "payment_requested", P.PAYMENT_LINK_VALID
)
ORDER_GRAPH.add(S.PAYMENT_REQUESTED, S.PAYMENT_CONFIRMED, {ADMIN, SYSTEM}, "payment_received")
ORDER_GRAPH.add(
    S.PAYMENT_CONFIRMED, S.SAMPLE_IN_PROGRESS, {MANUFACTURER}, "sample_production_started",
    P.PAYMENT_RECEIVED, P.SPECS_LOCKED,
)
ORDER_GRAPH.add(
    S.SAMPLE_IN_PROGRESS, S.SAMPLE_QC_UPLOADED, {MANUFACTURER}, "sample_qc_uploaded",
    P.PAYMENT_RECEIVED, P.SAMPLE_QC_EVIDENCE,
)
ORDER_GRAPH.add(S.SAMPLE_QC_UPLOADED, S.SAMPLE_APPROVED, {BUYER}, "sample_approved", P.PAYMENT_RECEIVED)
ORDER_GRAPH.add(
    S.SAMPLE_QC_UPLOADED, S.SAMPLE_IN_PROGRESS, {BUYER}, "sample_rejected",
    P.PAYMENT_RECEIVED, P.REJECTION_REASON,
)
ORDER_GRAPH.add(S.SAMPLE_APPROVED, S.BULK_UNLOCKED, {ADMIN, SYSTEM}, "bulk_unlocked", P.PAYMENT_RECEIVED)
ORDER_GRAPH.add(
    S.BULK_UNLOCKED, S.BULK_IN_PRODUCTION, {MANUFACTURER}, "bulk_production_started",
    P.PAYMENT_RECEIVED, P.SPECS_LOCKED,
)
ORDER_GRAPH.add(
    S.BULK_IN_PRODUCTION, S.BULK_QC_UPLOADED, {MANUFACTURER}, "bulk_qc_uploaded",
    P.PAYMENT_RECEIVED, P.BULK_QC_EVIDENCE,
)
ORDER_GRAPH.add(
    S.BULK_QC_UPLOADED, S.READY_FOR_DISPATCH, {BUYER, ADMIN}, "bulk_qc_approved", P.PAYMENT_RECEIVED
)
ORDER_GRAPH.add(
    S.BULK_QC_UPLOADED, S.BULK_IN_PRODUCTION, {BUYER, ADMIN}, "bulk_rejected",
    P.PAYMENT_RECEIVED, P.REJECTION_REASON, P.STRUCTURED_FEEDBACK,
)
ORDER_GRAPH.add(
    S.READY_FOR_DISPATCH, S.DISPATCHED, {ADMIN, SYSTEM}, "dispatched",
    P.PAYMENT_RECEIVED, P.COURIER_DETAILS,
)
ORDER_GRAPH.add(S.DISPATCHED, S.DELIVERED, {ADMIN, SYSTEM}, "delivered", P.PAYMENT_RECEIVED)
ORDER_GRAPH.add(S.DELIVERED, S.COMPLETED, {ADMIN, SYSTEM}, "completed", P.PAYMENT_RECEIVED)

D = DeliveryState

DELIVERY_GRAPH = TransitionGraph("delivery", tuple(DeliveryState))
DELIVERY_GRAPH.add(
    D.NOT_STARTED, D.PACKED, {MANUFACTURER}, "order_packed",
    P.DISPATCH_ELIGIBLE_ORDER, P.PACKAGING_VIDEO,
)
DELIVERY_GRAPH.add(
    D.PACKED, D.PICKUP_SCHEDULED, {ADMIN}, "pickup_scheduled", P.PACKAGING_VIDEO, P.COURIER_DETAILS
)
DELIVERY_GRAPH.add(D.PICKUP_SCHEDULED, D.IN_TRANSIT, {ADMIN, SYSTEM}, "in_transit", P.TRACKING_ID)
DELIVERY_GRAPH.add(D.IN_TRANSIT, D.DELIVERED, {ADMIN, SYSTEM}, "delivery_completed")

# Milestone timestamp written when each state is first entered.
ORDER_MILESTONES: dict[OrderState, str] = {
    S.DRAFT: "created_at",
    S.SUBMITTED: "submitted_at",
    S.ADMIN_APPROVED: "admin_approved_at",
    S.MANUFACTURER_ASSIGNED: "assigned_at",
    S.PAYMENT_REQUESTED: "payment_requested_at",
    S.PAYMENT_CONFIRMED: "payment_received_at",
    S.SAMPLE_IN_PROGRESS: "sample_production_started_at",
    S.SAMPLE_QC_UPLOADED: "sample_qc_uploaded_at",
    S.SAMPLE_APPROVED: "sample_approved_at",
    S.BULK_UNLOCKED: "bulk_unlocked_at",
    S.BULK_IN_PRODUCTION: "bulk_production_started_at",
    S.BULK_QC_UPLOADED: "bulk_qc_uploaded_at",
    S.READY_FOR_DISPATCH: "bulk_qc_approved_at",
    S.DISPATCHED: "dispatched_at",
    S.DELIVERED: "delivered_at",
    S.COMPLETED: "completed_at",
}

DELIVERY_MILESTONES: dict[DeliveryState, str] = {
    D.PACKED: "packed_at",
    D.PICKUP_SCHEDULED: "pickup_scheduled_at",
    D.IN_TRANSIT: "in_transit_at",
    D.DELIVERED: "delivered_at",
}

# QC stage bookkeeping: the state a manufacturer upload lands in, and the
# states an approval or rejection moves the order to.
QC_UPLOADED_STATE: dict[QCStage, OrderState] = {
    QCStage.SAMPLE: S.SAMPLE_QC_UPLOADED,
    QCStage.BULK: S.BULK_QC_UPLOADED,
}
QC_APPROVED_STATE: dict[QCStage, OrderState] = {
    QCStage.SAMPLE: S.SAMPLE_APPROVED,
    QCStage.BULK: S.READY_FOR_DISPATCH,
}
QC_REJECTED_STATE: dict[QCStage, OrderState] = {
    QCStage.SAMPLE: S.SAMPLE_IN_PROGRESS,
    QCStage.BULK: S.BULK_IN_PRODUCTION,
}


def state_index(state: OrderState | None) -> int:
    """Position in the linear order progression (-1 for no state)."""
    if state is None:
        return -1
    return list(OrderState).index(state)


def is_production_state(state: OrderState) -> bool:
    return state in PRODUCTION_STATES
