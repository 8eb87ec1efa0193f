"""Order aggregate snapshot and the context handed to the transition validator.

Pure domain data -- no DB access. Stores hand out Order instances and
apply patches with `Order.apply`, which never mutates the original.
"""

from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime

from orderflow.domain.qc import QCFeedback
from orderflow.domain.states import DeliveryState, OrderState, QCDecision, QCStage


@dataclass
class Actor:
    """Identity of whoever requests a mutation."""

    role: str
    id: str


@dataclass
class QCRecord:
    """Review state of one QC stage (sample or bulk)."""

    stage: QCStage
    decision: QCDecision = QCDecision.PENDING
    uploaded_at: datetime | None = None
    decided_at: datetime | None = None
    decided_by: str | None = None
    decided_role: str | None = None
    reason: str | None = None
    feedback: QCFeedback | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["stage"] = self.stage.value
        data["decision"] = self.decision.value
        data["uploaded_at"] = self.uploaded_at.isoformat() if self.uploaded_at else None
        data["decided_at"] = self.decided_at.isoformat() if self.decided_at else None
        data["feedback"] = self.feedback.to_dict() if self.feedback else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "QCRecord":
        return cls(
            stage=QCStage(data["stage"]),
            decision=QCDecision(data.get("decision", QCDecision.PENDING)),
            uploaded_at=_parse_dt(data.get("uploaded_at")),
            decided_at=_parse_dt(data.get("decided_at")),
            decided_by=data.get("decided_by"),
            decided_role=data.get("decided_role"),
            reason=data.get("reason"),
            feedback=QCFeedback.from_dict(data["feedback"]) if data.get("feedback") else None,
        )


@dataclass
class Order:
    """Snapshot of one order. `version` increments on every committed write."""

    id: str
    buyer_id: str
    order_state: OrderState = OrderState.DRAFT
    delivery_state: DeliveryState = DeliveryState.NOT_STARTED
    version: int = 0

    # Buyer-authored specification
    product_type: str | None = None
    quantity: int = 0
    fabric_type: str | None = None
    selected_color: str | None = None
    design_size: str | None = None
    buyer_notes: str | None = None
    shipping_address: str | None = None

    # Admin-managed
    admin_notes: str | None = None
    manufacturer_id: str | None = None
    payment_link: str | None = None
    specs_locked: bool = False
    courier_name: str | None = None
    tracking_id: str | None = None

    # Evidence references (opaque URLs)
    sample_qc_video_url: str | None = None
    bulk_qc_video_url: str | None = None
    packaging_video_url: str | None = None

    sample_qc: QCRecord | None = None
    bulk_qc: QCRecord | None = None

    # Milestone timestamps, set once on first entry to a state
    created_at: datetime | None = None
    updated_at: datetime | None = None
    submitted_at: datetime | None = None
    admin_approved_at: datetime | None = None
    assigned_at: datetime | None = None
    manufacturer_accepted_at: datetime | None = None
    payment_requested_at: datetime | None = None
    payment_received_at: datetime | None = None
    escrow_locked_at: datetime | None = None
    specs_locked_at: datetime | None = None
    sample_production_started_at: datetime | None = None
    sample_qc_uploaded_at: datetime | None = None
    sample_approved_at: datetime | None = None
    bulk_unlocked_at: datetime | None = None
    bulk_production_started_at: datetime | None = None
    bulk_qc_uploaded_at: datetime | None = None
    bulk_qc_approved_at: datetime | None = None
    dispatched_at: datetime | None = None
    packed_at: datetime | None = None
    pickup_scheduled_at: datetime | None = None
    in_transit_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def payment_received(self) -> bool:
        return self.payment_received_at is not None

    def apply(self, patch: dict) -> "Order":
        """Return a copy with patch applied. Unknown keys raise TypeError."""
        return replace(self, **patch)

    def qc_record(self, stage: QCStage) -> QCRecord | None:
        return self.sample_qc if stage == QCStage.SAMPLE else self.bulk_qc

    def to_dict(self) -> dict:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, QCRecord):
                value = value.to_dict()
            elif isinstance(value, datetime):
                value = value.isoformat()
            data[f.name] = value
        data["payment_received"] = self.payment_received
        return data


ORDER_FIELDS: frozenset[str] = frozenset(f.name for f in fields(Order))

TIMESTAMP_FIELDS: frozenset[str] = frozenset(
    f.name for f in fields(Order) if f.name.endswith("_at")
)


@dataclass
class OrderContext:
    """Facts the validator needs beyond the two state values.

    Built from the stored order merged with the incoming attribute patch,
    so preconditions see new or previously stored values alike.
    """

    order_state: OrderState
    quantity: int = 0
    manufacturer_id: str | None = None
    payment_link: str | None = None
    payment_received: bool = False
    specs_locked: bool = False
    sample_qc_video_url: str | None = None
    bulk_qc_video_url: str | None = None
    packaging_video_url: str | None = None
    courier_name: str | None = None
    tracking_id: str | None = None
    reason: str | None = None
    feedback: QCFeedback | None = None
    min_reason_length: int = 10

    @classmethod
    def from_order(
        cls,
        order: Order,
        patch: dict | None = None,
        *,
        order_state: OrderState | None = None,
        reason: str | None = None,
        feedback: QCFeedback | None = None,
        min_reason_length: int = 10,
    ) -> "OrderContext":
        merged = order.apply(patch) if patch else order
        return cls(
            order_state=order_state or merged.order_state,
            quantity=merged.quantity or 0,
            manufacturer_id=merged.manufacturer_id,
            payment_link=merged.payment_link,
            payment_received=merged.payment_received,
            specs_locked=merged.specs_locked,
            sample_qc_video_url=merged.sample_qc_video_url,
            bulk_qc_video_url=merged.bulk_qc_video_url,
            packaging_video_url=merged.packaging_video_url,
            courier_name=merged.courier_name,
            tracking_id=merged.tracking_id,
            reason=reason,
            feedback=feedback,
            min_reason_length=min_reason_length,
        )


def _parse_dt(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
