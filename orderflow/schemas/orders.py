"""Pydantic schemas for the order workflow API.

Request bodies carry only what the caller chooses; the actor comes from
identity headers. Responses are built from domain objects via the
`from_*` helpers so routes stay thin.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from orderflow.domain.audit import AuditEvent
from orderflow.domain.delays import DelayMetric
from orderflow.domain.order import Order
from orderflow.domain.projections import OrderView
from orderflow.domain.states import DeliveryState, OrderState


# ==================== REQUESTS ====================


class QCFeedbackIn(BaseModel):
    """Structured QC feedback fields."""

    defect_type: str = ""
    severity: str = ""
    location: str = ""
    evidence_reference: str = ""
    required_fix: str = ""
    notes: str = ""


class CreateOrderRequest(BaseModel):
    """New DRAFT order. `buyer_id` is only read when an admin or system creates it."""

    buyer_id: str | None = None
    product_type: str | None = None
    quantity: int = Field(0, ge=0)
    fabric_type: str | None = None
    selected_color: str | None = None
    design_size: str | None = None
    buyer_notes: str | None = None
    shipping_address: str | None = None


class TransitionRequest(BaseModel):
    """Generic move along either graph, optionally with an attribute patch."""

    target_order_state: OrderState | None = None
    target_delivery_state: DeliveryState | None = None
    attribute_patch: dict[str, Any] = Field(default_factory=dict)
    reason: str | None = None
    # Either structured fields or the line-oriented text template
    feedback: QCFeedbackIn | str | None = None


class AttributePatchRequest(BaseModel):
    patch: dict[str, Any] = Field(..., min_length=1)
    reason: str | None = None


class ApproveOrderRequest(BaseModel):
    payment_link: str


class RequestChangesRequest(BaseModel):
    notes: str


class AssignManufacturerRequest(BaseModel):
    manufacturer_id: str


class QCUploadRequest(BaseModel):
    video_url: str | None = None


class QCDecisionRequest(BaseModel):
    decision: Literal["approve", "reject"]
    reason: str | None = None
    feedback: QCFeedbackIn | str | None = None


class MarkPackedRequest(BaseModel):
    packaging_video_url: str | None = None


class SchedulePickupRequest(BaseModel):
    courier_name: str | None = None
    tracking_id: str | None = None


class ManualOverrideRequest(BaseModel):
    reason: str
    target_order_state: str | None = None
    target_delivery_state: str | None = None


# ==================== RESPONSES ====================


class OrderResponse(BaseModel):
    """Stored order snapshot."""

    id: str
    buyer_id: str
    order_state: OrderState
    delivery_state: DeliveryState
    version: int
    product_type: str | None = None
    quantity: int = 0
    fabric_type: str | None = None
    selected_color: str | None = None
    design_size: str | None = None
    buyer_notes: str | None = None
    shipping_address: str | None = None
    admin_notes: str | None = None
    manufacturer_id: str | None = None
    payment_link: str | None = None
    payment_received: bool = False
    specs_locked: bool = False
    courier_name: str | None = None
    tracking_id: str | None = None
    sample_qc_video_url: str | None = None
    bulk_qc_video_url: str | None = None
    packaging_video_url: str | None = None
    sample_qc: dict | None = None
    bulk_qc: dict | None = None
    timestamps: dict[str, datetime | None] = Field(default_factory=dict)

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        data = order.to_dict()
        timestamps = {name: getattr(order, name) for name in data if name.endswith("_at")}
        body = {name: value for name, value in data.items() if not name.endswith("_at")}
        return cls(**body, timestamps=timestamps)


class WorkflowResponse(BaseModel):
    success: bool
    order: OrderResponse | None = None
    warnings: list[str] = Field(default_factory=list)


class AuditEventResponse(BaseModel):
    id: str
    order_id: str
    event_type: str
    outcome: str
    scope: str
    from_state: str | None
    to_state: str | None
    actor_role: str
    actor_id: str
    reason: str | None
    metadata: dict
    created_at: datetime

    @classmethod
    def from_event(cls, event: AuditEvent) -> "AuditEventResponse":
        return cls(
            id=event.id,
            order_id=event.order_id,
            event_type=event.event_type,
            outcome=event.outcome,
            scope=event.scope,
            from_state=event.from_state,
            to_state=event.to_state,
            actor_role=event.actor_role,
            actor_id=event.actor_id,
            reason=event.reason,
            metadata=event.metadata,
            created_at=event.created_at,
        )


class AuditTrailResponse(BaseModel):
    order_id: str
    events: list[AuditEventResponse]
    valid: bool
    failed_event_id: str | None = None
    reason: str = ""


class DelayMetricResponse(BaseModel):
    key: str
    label: str
    hours: float | None = None
    status: str
    warning_hours: int
    critical_hours: int

    @classmethod
    def from_metric(cls, metric: DelayMetric) -> "DelayMetricResponse":
        return cls(
            key=metric.key,
            label=metric.label,
            hours=metric.hours,
            status=metric.status,
            warning_hours=metric.warning_hours,
            critical_hours=metric.critical_hours,
        )


class GateStatusResponse(BaseModel):
    gate: str
    passed: bool
    reason: str = ""


class OrderViewResponse(BaseModel):
    """Role-specific projection of one order."""

    order_id: str
    role: str
    order_state: OrderState
    label: str
    color: str
    progress: int
    show_pay_now: bool
    delivery: dict[str, Any] | None = None
    next_actions: list[dict[str, str]] = Field(default_factory=list)
    locked_fields: list[dict[str, str]] = Field(default_factory=list)
    gates: list[GateStatusResponse] = Field(default_factory=list)
    delays: list[DelayMetricResponse] = Field(default_factory=list)

    @classmethod
    def from_view(cls, view: OrderView) -> "OrderViewResponse":
        return cls(
            order_id=view.order_id,
            role=view.role,
            order_state=view.order_state,
            label=view.label,
            color=view.color,
            progress=view.progress,
            show_pay_now=view.show_pay_now,
            delivery=view.delivery,
            next_actions=view.next_actions,
            locked_fields=view.locked_fields,
            gates=[GateStatusResponse(gate=g.gate, passed=g.passed, reason=g.reason) for g in view.gates],
            delays=[DelayMetricResponse.from_metric(m) for m in view.delays],
        )
