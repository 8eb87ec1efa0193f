"""Order workflow API routes.

Every mutation goes through WorkflowOrchestrator. Denials map to HTTP
status codes via ERROR_STATUS; an audit write that failed after a
committed transition still returns 200 with a warning.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException

from orderflow.core.auth import require_actor
from orderflow.core.config import get_settings
from orderflow.core.exceptions import ErrorKind, OrderNotFoundError
from orderflow.db.base import get_session_factory
from orderflow.db.redis import get_redis
from orderflow.domain.audit import verify_audit_trail
from orderflow.domain.delays import compute_delay_metrics
from orderflow.domain.order import Actor
from orderflow.domain.projections import project_order_view
from orderflow.domain.states import ActorRole, QCStage
from orderflow.schemas.orders import (
    ApproveOrderRequest,
    AssignManufacturerRequest,
    AttributePatchRequest,
    AuditEventResponse,
    AuditTrailResponse,
    CreateOrderRequest,
    DelayMetricResponse,
    ManualOverrideRequest,
    MarkPackedRequest,
    OrderResponse,
    OrderViewResponse,
    QCDecisionRequest,
    QCUploadRequest,
    RequestChangesRequest,
    SchedulePickupRequest,
    TransitionRequest,
    WorkflowResponse,
)
from orderflow.services.audit_log import AuditLogWriter, SqlAlchemyAuditStore
from orderflow.services.notifications import NullNotificationDispatcher, RedisNotificationDispatcher
from orderflow.services.order_store import SqlAlchemyOrderStore
from orderflow.services.workflow import WorkflowOrchestrator, WorkflowResult

logger = structlog.get_logger(__name__)

router = APIRouter()

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.UNAUTHORIZED_ACTOR: 403,
    ErrorKind.PRECONDITION_FAILED: 422,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONCURRENT_MODIFICATION: 409,
    ErrorKind.FATAL: 500,
}


def get_workflow() -> WorkflowOrchestrator:
    """Dependency that provides the orchestrator wired to Postgres and Redis.

    Override this dependency in tests via app.dependency_overrides.
    """
    session_factory = get_session_factory()
    redis = get_redis()
    settings = get_settings()
    if settings.notifications_enabled and redis is not None:
        notifier = RedisNotificationDispatcher(redis)
    else:
        notifier = NullNotificationDispatcher()
    return WorkflowOrchestrator(
        store=SqlAlchemyOrderStore(session_factory),
        audit=AuditLogWriter(SqlAlchemyAuditStore(session_factory)),
        notifier=notifier,
        settings=settings,
    )


def to_response(result: WorkflowResult) -> WorkflowResponse:
    """Convert a WorkflowResult into a response body or raise the mapped HTTPException."""
    if not result.success:
        raise HTTPException(
            status_code=ERROR_STATUS.get(result.error, 500),
            detail={"error": str(result.error), "reason": result.reason},
        )
    return WorkflowResponse(
        success=True,
        order=OrderResponse.from_order(result.order) if result.order else None,
        warnings=[str(w) for w in result.warnings],
    )


async def load_order(workflow: WorkflowOrchestrator, order_id: str):
    try:
        return await workflow.get_order(order_id)
    except OrderNotFoundError:
        raise HTTPException(
            status_code=404, detail={"error": str(ErrorKind.NOT_FOUND), "reason": f"Order '{order_id}' not found"}
        )


def ensure_can_read(order, actor: Actor) -> None:
    """Buyers and manufacturers only see their own orders."""
    if actor.role in (ActorRole.ADMIN, ActorRole.SYSTEM):
        return
    if actor.role == ActorRole.BUYER and actor.id == order.buyer_id:
        return
    if actor.role == ActorRole.MANUFACTURER and actor.id == order.manufacturer_id:
        return
    raise HTTPException(
        status_code=403,
        detail={"error": str(ErrorKind.UNAUTHORIZED_ACTOR), "reason": "Not permitted to view this order"},
    )


def ensure_admin(actor: Actor) -> None:
    if actor.role not in (ActorRole.ADMIN, ActorRole.SYSTEM):
        raise HTTPException(
            status_code=403,
            detail={"error": str(ErrorKind.UNAUTHORIZED_ACTOR), "reason": "Admin access required"},
        )


# ==================== MUTATIONS ====================


@router.post("", response_model=WorkflowResponse, status_code=201)
async def create_order(
    request: CreateOrderRequest,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    """Create a DRAFT order.

    Raises:
        HTTPException(400): buyer_id missing for admin/system, or invalid attributes
        HTTPException(403): Role may not create orders
    """
    attributes = request.model_dump(exclude_unset=True, exclude_none=True)
    return to_response(await workflow.create_order(actor, attributes))


@router.post("/{order_id}/transition", response_model=WorkflowResponse)
async def transition_order(
    order_id: str,
    request: TransitionRequest,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    """Move an order along the order and/or delivery graph.

    Raises:
        HTTPException(409): Edge not in graph, or concurrent modification
        HTTPException(403): Role may not traverse the edge
        HTTPException(422): Edge precondition failed
        HTTPException(400): Malformed patch or feedback
    """
    feedback = request.feedback
    if feedback is not None and not isinstance(feedback, str):
        feedback = feedback.model_dump()
    result = await workflow.apply_transition(
        order_id,
        actor,
        target_order_state=request.target_order_state,
        target_delivery_state=request.target_delivery_state,
        attribute_patch=request.attribute_patch,
        reason=request.reason,
        feedback=feedback,
    )
    return to_response(result)


@router.patch("/{order_id}", response_model=WorkflowResponse)
async def patch_order(
    order_id: str,
    request: AttributePatchRequest,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    """Attribute-only update, subject to writer roles and field locks."""
    result = await workflow.apply_transition(
        order_id, actor, attribute_patch=request.patch, reason=request.reason
    )
    return to_response(result)


@router.post("/{order_id}/submit", response_model=WorkflowResponse)
async def submit_order(
    order_id: str,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    """Buyer submits a DRAFT order for admin review."""
    return to_response(await workflow.apply_transition(order_id, actor, target_order_state="SUBMITTED"))


@router.post("/{order_id}/request-changes", response_model=WorkflowResponse)
async def request_changes(
    order_id: str,
    request: RequestChangesRequest,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    return to_response(await workflow.request_changes(order_id, actor, request.notes))


@router.post("/{order_id}/assign", response_model=WorkflowResponse)
async def assign_manufacturer(
    order_id: str,
    request: AssignManufacturerRequest,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    return to_response(await workflow.assign_manufacturer(order_id, actor, request.manufacturer_id))


@router.post("/{order_id}/accept", response_model=WorkflowResponse)
async def accept_assignment(
    order_id: str,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    return to_response(await workflow.accept_assignment(order_id, actor))


@router.post("/{order_id}/approve", response_model=WorkflowResponse)
async def approve_order(
    order_id: str,
    request: ApproveOrderRequest,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    """Attach the payment link and request payment from the buyer."""
    return to_response(await workflow.approve_order(order_id, actor, request.payment_link))


@router.post("/{order_id}/payment-received", response_model=WorkflowResponse)
async def mark_payment_received(
    order_id: str,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    return to_response(await workflow.mark_payment_received(order_id, actor))


@router.post("/{order_id}/lock-specs", response_model=WorkflowResponse)
async def lock_specs(
    order_id: str,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    return to_response(await workflow.lock_specs(order_id, actor))


@router.post("/{order_id}/qc/{stage}/upload", response_model=WorkflowResponse)
async def upload_qc(
    order_id: str,
    stage: QCStage,
    request: QCUploadRequest,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    return to_response(await workflow.upload_qc(order_id, actor, stage, request.video_url))


@router.post("/{order_id}/qc/{stage}/decision", response_model=WorkflowResponse)
async def decide_qc(
    order_id: str,
    stage: QCStage,
    request: QCDecisionRequest,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    """Approve or reject uploaded QC evidence.

    Raises:
        HTTPException(400): Bulk rejection without complete structured feedback
        HTTPException(422): Rejection reason missing or too short
    """
    feedback = request.feedback
    if feedback is not None and not isinstance(feedback, str):
        feedback = feedback.model_dump()
    result = await workflow.decide_qc(
        order_id,
        actor,
        stage,
        approve=request.decision == "approve",
        reason=request.reason,
        feedback=feedback,
    )
    return to_response(result)


@router.post("/{order_id}/pack", response_model=WorkflowResponse)
async def mark_packed(
    order_id: str,
    request: MarkPackedRequest,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    return to_response(await workflow.mark_packed(order_id, actor, request.packaging_video_url))


@router.post("/{order_id}/schedule-pickup", response_model=WorkflowResponse)
async def schedule_pickup(
    order_id: str,
    request: SchedulePickupRequest,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    return to_response(
        await workflow.schedule_pickup(order_id, actor, request.courier_name, request.tracking_id)
    )


@router.post("/{order_id}/override", response_model=WorkflowResponse)
async def manual_override(
    order_id: str,
    request: ManualOverrideRequest,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    """Admin override that bypasses the transition graphs. Always audited."""
    result = await workflow.manual_override(
        order_id,
        actor,
        request.reason,
        target_order_state=request.target_order_state,
        target_delivery_state=request.target_delivery_state,
    )
    if result.success:
        logger.warning("manual_override_applied", order_id=order_id, admin_id=actor.id)
    return to_response(result)


# ==================== READS ====================


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    order = await load_order(workflow, order_id)
    ensure_can_read(order, actor)
    return OrderResponse.from_order(order)


@router.get("/{order_id}/view", response_model=OrderViewResponse)
async def get_order_view(
    order_id: str,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    """Role-specific projection: labels, pay-now prompt, delivery tracking, next actions."""
    order = await load_order(workflow, order_id)
    ensure_can_read(order, actor)
    return OrderViewResponse.from_view(project_order_view(order, actor.role))


@router.get("/{order_id}/delays", response_model=list[DelayMetricResponse])
async def get_delay_metrics(
    order_id: str,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    ensure_admin(actor)
    order = await load_order(workflow, order_id)
    return [DelayMetricResponse.from_metric(m) for m in compute_delay_metrics(order)]


@router.get("/{order_id}/events", response_model=AuditTrailResponse)
async def get_audit_trail(
    order_id: str,
    actor: Actor = Depends(require_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    """Audit trail for one order, oldest first, with a replay check."""
    ensure_admin(actor)
    await load_order(workflow, order_id)
    events = await workflow.audit.list_for_order(order_id)
    replay = verify_audit_trail(events)
    return AuditTrailResponse(
        order_id=order_id,
        events=[AuditEventResponse.from_event(e) for e in events],
        valid=replay.valid,
        failed_event_id=replay.failed_event_id,
        reason=replay.reason,
    )
