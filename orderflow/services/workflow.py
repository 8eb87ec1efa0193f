"""WorkflowOrchestrator -- the single entry point for every order mutation.

This is the integration point where the pure transition rules meet the
order store, the audit log and notification dispatch. Every public method:
- Loads the order once per attempt and validates against that snapshot
- Writes conditionally on the loaded version, reloading on conflict
- Appends audit events after the order write commits
- Returns a WorkflowResult; validation outcomes are never raised
"""

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

import structlog

from orderflow.core.config import Settings, get_settings
from orderflow.core.exceptions import (
    AuditWriteError,
    ConcurrentModificationError,
    ErrorKind,
    OrderflowError,
    OrderNotFoundError,
)
from orderflow.domain.attributes import changed_fields, check_patch_permissions, validate_patch_values
from orderflow.domain.audit import AuditEvent, AuditOutcome, AuditScope, EventType
from orderflow.domain.order import Actor, Order, OrderContext, QCRecord
from orderflow.domain.qc import QCFeedback, validate_feedback
from orderflow.domain.states import (
    DELIVERY_MILESTONES,
    ORDER_GRAPH,
    ORDER_MILESTONES,
    QC_APPROVED_STATE,
    QC_REJECTED_STATE,
    QC_UPLOADED_STATE,
    ActorRole,
    DeliveryState,
    Edge,
    OrderState,
    QCDecision,
    QCStage,
)
from orderflow.domain.transitions import (
    TransitionResult,
    is_valid_url,
    validate_edge,
    validate_manual_override,
    validate_transition,
)
from orderflow.services.audit_log import AuditLogWriter
from orderflow.services.notifications import (
    NotificationDispatcher,
    NullNotificationDispatcher,
    intents_for_edges,
)
from orderflow.services.order_store import OrderStore

logger = structlog.get_logger(__name__)

QC_UPLOAD_ACTIONS: dict[str, QCStage] = {
    "sample_qc_uploaded": QCStage.SAMPLE,
    "bulk_qc_uploaded": QCStage.BULK,
}

QC_DECISION_ACTIONS: dict[str, tuple[QCStage, QCDecision]] = {
    "sample_approved": (QCStage.SAMPLE, QCDecision.APPROVED),
    "sample_rejected": (QCStage.SAMPLE, QCDecision.REJECTED),
    "bulk_qc_approved": (QCStage.BULK, QCDecision.APPROVED),
    "bulk_rejected": (QCStage.BULK, QCDecision.REJECTED),
}

# Never written by a manual override: payment is only ever confirmed explicitly.
OVERRIDE_PROTECTED_MILESTONES = frozenset({"payment_received_at"})


@dataclass
class WorkflowResult:
    """Outcome of one orchestrator call."""

    success: bool
    order: Order | None = None
    error: ErrorKind | None = None
    reason: str = ""
    warnings: list[ErrorKind] = field(default_factory=list)
    events: list[AuditEvent] = field(default_factory=list)

    @classmethod
    def failure(cls, error: ErrorKind, reason: str, order: Order | None = None) -> "WorkflowResult":
        return cls(success=False, order=order, error=error, reason=reason)


@dataclass
class TransitionRequest:
    """Everything a caller asked for in one mutation."""

    actor: Actor
    target_order_state: OrderState | None = None
    target_delivery_state: DeliveryState | None = None
    patch: dict = field(default_factory=dict)
    reason: str | None = None
    feedback: QCFeedback | None = None
    # Refuse unless the order is currently in this state
    expected_state: OrderState | None = None
    # current order state -> target, used when target_order_state is None
    advance: dict[OrderState, OrderState] = field(default_factory=dict)
    # Timestamps to stamp now if still unset
    stamps: tuple[str, ...] = ()
    action: str = "transition"


@dataclass
class _Plan:
    patch: dict
    events: list[AuditEvent]
    edges: tuple[Edge, ...] = ()
    noop: bool = False


def coerce_feedback(value) -> QCFeedback | None:
    """Accept feedback as a QCFeedback, a dict of fields or the text template.

    Raises ValueError for a dict field that is not text.
    """
    if value is None or isinstance(value, QCFeedback):
        return value
    if isinstance(value, dict):
        return QCFeedback.from_dict(value)
    return QCFeedback.from_text(str(value))


def _jsonable(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, QCRecord):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    return value


def _parse_state(enum_cls, value):
    if value is None or isinstance(value, enum_cls):
        return value, None
    try:
        return enum_cls(value), None
    except ValueError:
        return None, f"Unknown {enum_cls.__name__} '{value}'"


class WorkflowOrchestrator:
    """Owns every write to an order's state.

    Validation failures come back as WorkflowResult(success=False) with an
    ErrorKind. Store exceptions are mapped: OrderNotFoundError -> NOT_FOUND,
    ConcurrentModificationError -> retried then CONCURRENT_MODIFICATION,
    anything else -> FATAL. Audit failures after a committed write only add
    an AUDIT_WRITE_DEGRADED warning.
    """

    def __init__(
        self,
        store: OrderStore,
        audit: AuditLogWriter,
        notifier: NotificationDispatcher | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize with dependency injection.

        Args:
            store: Order store (in-memory or SQLAlchemy)
            audit: Audit log writer
            notifier: Notification dispatcher, no-op when omitted
            settings: Settings override (defaults to get_settings())
            clock: Current-time provider (for deterministic testing)
        """
        self.store = store
        self.audit = audit
        self.notifier = notifier or NullNotificationDispatcher()
        self.settings = settings or get_settings()
        self.clock = clock or (lambda: datetime.now(UTC))

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_order(self, actor: Actor, attributes: dict | None = None) -> WorkflowResult:
        """Create a DRAFT order.

        Args:
            actor: Buyer creating their own order, or admin/system acting for one
            attributes: Initial specification fields; admin/system must include buyer_id

        Returns:
            WorkflowResult with the stored order and its order_created audit event
        """
        attributes = dict(attributes or {})
        buyer_id = attributes.pop("buyer_id", None)

        input_error = validate_patch_values(attributes)
        if input_error:
            return WorkflowResult.failure(ErrorKind.INVALID_INPUT, input_error)

        if actor.role == ActorRole.BUYER:
            if buyer_id is not None and buyer_id != actor.id:
                return WorkflowResult.failure(
                    ErrorKind.UNAUTHORIZED_ACTOR, "Buyers may only create orders for themselves"
                )
            buyer_id = actor.id
        elif not buyer_id:
            return WorkflowResult.failure(ErrorKind.INVALID_INPUT, "buyer_id is required")

        now = self.clock()
        draft = Order(id=str(uuid.uuid4()), buyer_id=buyer_id, created_at=now, updated_at=now)

        check = validate_edge(
            ORDER_GRAPH, None, OrderState.DRAFT, actor.role, OrderContext.from_order(draft)
        )
        if check.allowed and attributes:
            check = check_patch_permissions(attributes, actor.role, draft)
        if not check.allowed:
            logger.info("order_create_denied", actor_role=actor.role, actor_id=actor.id, reason=check.reason)
            return WorkflowResult.failure(check.error, check.reason)

        try:
            order = await self.store.create_order(draft.apply(attributes))
        except OrderflowError as exc:
            logger.error("order_create_failed", actor_id=actor.id, error=str(exc))
            return WorkflowResult.failure(ErrorKind.FATAL, "Order could not be created")

        event = AuditEvent(
            order_id=order.id,
            event_type=EventType.ORDER_CREATED,
            outcome=AuditOutcome.COMMITTED,
            actor_role=actor.role,
            actor_id=actor.id,
            from_state=None,
            to_state=OrderState.DRAFT,
            metadata={"action": "order_created", "attributes": {k: _jsonable(v) for k, v in attributes.items()}},
            created_at=now,
        )
        warnings, events = await self._append_events([event])
        logger.info("order_created", order_id=order.id, buyer_id=buyer_id, actor_role=actor.role)
        return WorkflowResult(success=True, order=order, warnings=warnings, events=events)

    # ------------------------------------------------------------------
    # Generic transition
    # ------------------------------------------------------------------

    async def apply_transition(
        self,
        order_id: str,
        actor: Actor,
        target_order_state: OrderState | str | None = None,
        target_delivery_state: DeliveryState | str | None = None,
        attribute_patch: dict | None = None,
        reason: str | None = None,
        feedback: QCFeedback | dict | str | None = None,
    ) -> WorkflowResult:
        """Move an order along either graph and/or patch its attributes.

        Args:
            order_id: Order to mutate
            actor: Caller identity and role
            target_order_state: Desired order state (None leaves it unchanged)
            target_delivery_state: Desired delivery state (None leaves it unchanged)
            attribute_patch: Field updates applied with the transition
            reason: Free-text reason (mandatory for QC rejections)
            feedback: Structured QC feedback for rejections

        Returns:
            WorkflowResult. A target equal to the current state with no
            effective patch is a no-op success with no audit record.
        """
        order_state, error = _parse_state(OrderState, target_order_state)
        if error:
            return WorkflowResult.failure(ErrorKind.INVALID_INPUT, error)
        delivery_state, error = _parse_state(DeliveryState, target_delivery_state)
        if error:
            return WorkflowResult.failure(ErrorKind.INVALID_INPUT, error)

        try:
            parsed_feedback = coerce_feedback(feedback)
        except ValueError as exc:
            return WorkflowResult.failure(ErrorKind.INVALID_INPUT, str(exc))
        if parsed_feedback is not None:
            feedback_error = validate_feedback(parsed_feedback)
            if feedback_error:
                return WorkflowResult.failure(ErrorKind.INVALID_INPUT, feedback_error)

        return await self.execute(
            order_id,
            TransitionRequest(
                actor=actor,
                target_order_state=order_state,
                target_delivery_state=delivery_state,
                patch=dict(attribute_patch or {}),
                reason=reason,
                feedback=parsed_feedback,
            ),
        )

    async def execute(self, order_id: str, request: TransitionRequest) -> WorkflowResult:
        """Validate and commit one request with bounded retry on version conflicts."""
        input_error = validate_patch_values(request.patch)
        if input_error:
            return WorkflowResult.failure(ErrorKind.INVALID_INPUT, input_error)

        return await self._run(order_id, request, self._plan_transition)

    async def _run(
        self,
        order_id: str,
        request: TransitionRequest,
        planner: Callable[[Order, TransitionRequest], tuple[TransitionResult, _Plan | None]],
    ) -> WorkflowResult:
        attempts = self.settings.max_transition_retries + 1
        log = logger.bind(order_id=order_id, actor_role=request.actor.role, actor_id=request.actor.id, action=request.action)

        for attempt in range(1, attempts + 1):
            try:
                order = await self.store.get_order(order_id)
            except OrderNotFoundError:
                return WorkflowResult.failure(ErrorKind.NOT_FOUND, f"Order '{order_id}' not found")
            except OrderflowError as exc:
                log.error("order_load_failed", error=str(exc))
                return WorkflowResult.failure(ErrorKind.FATAL, "Order could not be loaded")

            result, plan = planner(order, request)
            if not result.allowed:
                await self._record_denial(order, request, result)
                log.info("transition_denied", error=result.error, reason=result.reason)
                return WorkflowResult.failure(result.error, result.reason, order)

            if plan.noop:
                return WorkflowResult(success=True, order=order, reason="No change")

            try:
                updated = await self.store.update_order(order.id, plan.patch, expected_version=order.version)
            except ConcurrentModificationError as exc:
                log.warning(
                    "concurrent_modification_retry",
                    attempt=attempt,
                    expected_version=exc.expected_version,
                    actual_version=exc.actual_version,
                )
                continue
            except OrderNotFoundError:
                return WorkflowResult.failure(ErrorKind.NOT_FOUND, f"Order '{order_id}' not found")
            except OrderflowError as exc:
                log.error("order_update_failed", error=str(exc))
                return WorkflowResult.failure(ErrorKind.FATAL, "Order could not be updated")

            warnings, events = await self._append_events(plan.events)
            await self._notify(updated, plan.edges)
            log.info(
                "transition_committed",
                from_order_state=order.order_state,
                to_order_state=updated.order_state,
                from_delivery_state=order.delivery_state,
                to_delivery_state=updated.delivery_state,
                version=updated.version,
                degraded=bool(warnings),
            )
            return WorkflowResult(success=True, order=updated, warnings=warnings, events=events)

        log.error("concurrent_modification_exhausted", attempts=attempts)
        return WorkflowResult.failure(
            ErrorKind.CONCURRENT_MODIFICATION,
            f"Order '{order_id}' kept changing concurrently; retry the request",
        )

    def _plan_transition(self, order: Order, request: TransitionRequest) -> tuple[TransitionResult, _Plan | None]:
        """Validate a request against a loaded order and build the write plan."""
        actor = request.actor
        target_order = request.target_order_state
        if target_order is None:
            target_order = request.advance.get(order.order_state)
        if target_order == order.order_state:
            target_order = None
        target_delivery = request.target_delivery_state
        if target_delivery == order.delivery_state:
            target_delivery = None

        if request.expected_state is not None and order.order_state != request.expected_state:
            return TransitionResult(
                False,
                f"Order is {order.order_state}; this action requires {request.expected_state}",
                ErrorKind.INVALID_TRANSITION,
            ), None

        ownership = self._check_ownership(order, actor)
        if not ownership.allowed:
            return ownership, None

        patch = changed_fields(order, request.patch)
        if patch:
            permitted = check_patch_permissions(patch, actor.role, order)
            if not permitted.allowed:
                return permitted, None

        stamps = [name for name in request.stamps if getattr(order, name) is None]

        if target_order is None and target_delivery is None and not patch and not stamps:
            return TransitionResult(True, "No change"), _Plan(patch={}, events=[], noop=True)

        context = OrderContext.from_order(
            order,
            patch,
            order_state=target_order or order.order_state,
            reason=request.reason,
            feedback=request.feedback,
            min_reason_length=self.settings.min_reason_length,
        )
        result = validate_transition(
            order.order_state, target_order, order.delivery_state, target_delivery, actor.role, context
        )
        if not result.allowed:
            return result, None

        now = self.clock()
        full_patch = dict(patch)
        for name in stamps:
            full_patch[name] = now
        if patch.get("specs_locked") and order.specs_locked_at is None:
            full_patch["specs_locked_at"] = now
        for edge in result.edges:
            full_patch.update(self._edge_effects(order, edge, request, now))
        full_patch["updated_at"] = now

        changes = {
            name: {"from": _jsonable(getattr(order, name)), "to": _jsonable(value)}
            for name, value in full_patch.items()
            if name != "updated_at"
        }
        events = self._transition_events(order, request, result.edges, changes, now)
        return result, _Plan(patch=full_patch, events=events, edges=result.edges)

    def _edge_effects(self, order: Order, edge: Edge, request: TransitionRequest, now: datetime) -> dict:
        """Fields written as a consequence of traversing one edge."""
        effects: dict = {}
        if edge.graph == ORDER_GRAPH.name:
            effects["order_state"] = OrderState(edge.target)
            milestone = ORDER_MILESTONES.get(OrderState(edge.target))
        else:
            effects["delivery_state"] = DeliveryState(edge.target)
            milestone = DELIVERY_MILESTONES.get(DeliveryState(edge.target))
        if milestone and getattr(order, milestone) is None:
            effects[milestone] = now

        if edge.action == "payment_received" and order.escrow_locked_at is None:
            effects["escrow_locked_at"] = now
        if edge.action == "payment_requested" and order.admin_notes is not None:
            effects["admin_notes"] = None

        if edge.action in QC_UPLOAD_ACTIONS:
            stage = QC_UPLOAD_ACTIONS[edge.action]
            effects[f"{stage}_qc"] = QCRecord(stage=stage, decision=QCDecision.PENDING, uploaded_at=now)

        if edge.action in QC_DECISION_ACTIONS:
            stage, decision = QC_DECISION_ACTIONS[edge.action]
            previous = order.qc_record(stage)
            effects[f"{stage}_qc"] = QCRecord(
                stage=stage,
                decision=decision,
                uploaded_at=previous.uploaded_at if previous else None,
                decided_at=now,
                decided_by=request.actor.id,
                decided_role=request.actor.role,
                reason=request.reason,
                feedback=request.feedback,
            )
        return effects

    def _transition_events(
        self,
        order: Order,
        request: TransitionRequest,
        edges: tuple[Edge, ...],
        changes: dict,
        now: datetime,
    ) -> list[AuditEvent]:
        """One audit event per traversed edge, or one attribute_update when no edge."""
        base_metadata: dict = {}
        if request.feedback is not None:
            base_metadata["qc_feedback"] = request.feedback.to_dict()

        if not edges:
            return [
                AuditEvent(
                    order_id=order.id,
                    event_type=EventType.ATTRIBUTE_UPDATE,
                    outcome=AuditOutcome.COMMITTED,
                    actor_role=request.actor.role,
                    actor_id=request.actor.id,
                    scope=AuditScope.ORDER,
                    from_state=order.order_state,
                    to_state=order.order_state,
                    reason=request.reason,
                    metadata={**base_metadata, "action": request.action, "changes": changes},
                    created_at=now,
                )
            ]

        events = []
        for index, edge in enumerate(edges):
            is_order = edge.graph == ORDER_GRAPH.name
            metadata = {**base_metadata, "action": edge.action}
            if index == 0:
                metadata["changes"] = changes
            events.append(
                AuditEvent(
                    order_id=order.id,
                    event_type=EventType.ORDER_TRANSITION if is_order else EventType.DELIVERY_TRANSITION,
                    outcome=AuditOutcome.COMMITTED,
                    actor_role=request.actor.role,
                    actor_id=request.actor.id,
                    scope=AuditScope.ORDER if is_order else AuditScope.DELIVERY,
                    from_state=edge.source,
                    to_state=edge.target,
                    reason=request.reason,
                    metadata=metadata,
                    created_at=now,
                )
            )
        return events

    def _check_ownership(self, order: Order, actor: Actor) -> TransitionResult:
        """Buyers act only on their own orders; manufacturers only on orders assigned to them."""
        if actor.role == ActorRole.BUYER and actor.id != order.buyer_id:
            return TransitionResult(False, "Order belongs to a different buyer", ErrorKind.UNAUTHORIZED_ACTOR)
        if actor.role == ActorRole.MANUFACTURER and actor.id != order.manufacturer_id:
            return TransitionResult(
                False, "Order is not assigned to this manufacturer", ErrorKind.UNAUTHORIZED_ACTOR
            )
        if actor.role not in set(ActorRole):
            return TransitionResult(False, f"Unknown role '{actor.role}'", ErrorKind.UNAUTHORIZED_ACTOR)
        return TransitionResult(True)

    # ------------------------------------------------------------------
    # Audit and notification side effects
    # ------------------------------------------------------------------

    async def _append_events(self, events: list[AuditEvent]) -> tuple[list[ErrorKind], list[AuditEvent]]:
        """Append committed events. Failures degrade to a warning."""
        written = []
        warnings: list[ErrorKind] = []
        for event in events:
            try:
                written.append(await self.audit.append(event))
            except AuditWriteError as exc:
                logger.error(
                    "audit_write_failed",
                    order_id=event.order_id,
                    event_type=event.event_type,
                    from_state=event.from_state,
                    to_state=event.to_state,
                    error=str(exc),
                )
                if ErrorKind.AUDIT_WRITE_DEGRADED not in warnings:
                    warnings.append(ErrorKind.AUDIT_WRITE_DEGRADED)
        return warnings, written

    async def _record_denial(self, order: Order, request: TransitionRequest, result: TransitionResult) -> None:
        if not self.settings.log_denied_attempts:
            return

        target_order = request.target_order_state or request.advance.get(order.order_state)
        if request.action == "manual_override":
            event_type = EventType.MANUAL_OVERRIDE
            scope = AuditScope.DELIVERY if target_order is None and request.target_delivery_state else AuditScope.ORDER
        elif target_order is not None and target_order != order.order_state:
            event_type, scope = EventType.ORDER_TRANSITION, AuditScope.ORDER
        elif request.target_delivery_state is not None:
            event_type, scope = EventType.DELIVERY_TRANSITION, AuditScope.DELIVERY
        else:
            event_type, scope = EventType.ATTRIBUTE_UPDATE, AuditScope.ORDER

        if scope == AuditScope.ORDER:
            from_state, to_state = order.order_state, target_order or order.order_state
        else:
            from_state, to_state = order.delivery_state, request.target_delivery_state

        event = AuditEvent(
            order_id=order.id,
            event_type=event_type,
            outcome=AuditOutcome.DENIED,
            actor_role=request.actor.role,
            actor_id=request.actor.id,
            scope=scope,
            from_state=from_state,
            to_state=to_state,
            reason=request.reason,
            metadata={
                "action": request.action,
                "error": str(result.error),
                "denial_reason": result.reason,
                "attempted_fields": sorted(request.patch),
            },
            created_at=self.clock(),
        )
        try:
            await self.audit.append(event)
        except AuditWriteError as exc:
            logger.warning("denied_attempt_not_audited", order_id=order.id, error=str(exc))

    async def _notify(self, order: Order, edges: tuple[Edge, ...]) -> None:
        for intent in intents_for_edges(order, edges):
            try:
                await self.notifier.dispatch(intent)
            except Exception as exc:
                logger.warning(
                    "notification_dispatch_failed",
                    order_id=order.id,
                    user_id=intent.user_id,
                    type=intent.type,
                    error=str(exc),
                )

    # ------------------------------------------------------------------
    # Special actions
    # ------------------------------------------------------------------

    async def approve_order(self, order_id: str, actor: Actor, payment_link: str) -> WorkflowResult:
        """Admin approves for payment: MANUFACTURER_ASSIGNED -> PAYMENT_REQUESTED.

        The payment link must be a valid http(s) URL; change-request notes are cleared.
        """
        if not is_valid_url(payment_link):
            return WorkflowResult.failure(ErrorKind.INVALID_INPUT, "Payment link must be a valid http(s) URL")
        return await self.execute(
            order_id,
            TransitionRequest(
                actor=actor,
                target_order_state=OrderState.PAYMENT_REQUESTED,
                patch={"payment_link": payment_link.strip()},
                action="approve_order",
            ),
        )

    async def mark_payment_received(self, order_id: str, actor: Actor) -> WorkflowResult:
        """Confirm payment and lock escrow: PAYMENT_REQUESTED -> PAYMENT_CONFIRMED."""
        return await self.execute(
            order_id,
            TransitionRequest(
                actor=actor, target_order_state=OrderState.PAYMENT_CONFIRMED, action="mark_payment_received"
            ),
        )

    async def upload_qc(
        self, order_id: str, actor: Actor, stage: QCStage | str, video_url: str | None = None
    ) -> WorkflowResult:
        """Manufacturer submits QC evidence; the decision is left pending buyer review."""
        stage = QCStage(stage)
        patch = {f"{stage}_qc_video_url": video_url} if video_url else {}
        return await self.execute(
            order_id,
            TransitionRequest(
                actor=actor,
                target_order_state=QC_UPLOADED_STATE[stage],
                patch=patch,
                action=f"upload_{stage}_qc",
            ),
        )

    async def decide_qc(
        self,
        order_id: str,
        actor: Actor,
        stage: QCStage | str,
        approve: bool,
        reason: str | None = None,
        feedback: QCFeedback | dict | str | None = None,
    ) -> WorkflowResult:
        """Approve or reject uploaded QC evidence.

        Approval advances one stage. Rejection returns to the production
        state and needs a reason; bulk rejections also need complete
        structured feedback, which is checked before the order is loaded.
        """
        stage = QCStage(stage)
        try:
            parsed = coerce_feedback(feedback)
        except ValueError as exc:
            return WorkflowResult.failure(ErrorKind.INVALID_INPUT, str(exc))
        if not approve and (parsed is not None or stage == QCStage.BULK):
            feedback_error = validate_feedback(parsed)
            if feedback_error:
                return WorkflowResult.failure(ErrorKind.INVALID_INPUT, feedback_error)

        target = QC_APPROVED_STATE[stage] if approve else QC_REJECTED_STATE[stage]
        return await self.execute(
            order_id,
            TransitionRequest(
                actor=actor,
                target_order_state=target,
                reason=reason,
                feedback=parsed,
                expected_state=QC_UPLOADED_STATE[stage],
                action=f"{'approve' if approve else 'reject'}_{stage}_qc",
            ),
        )

    async def mark_packed(
        self, order_id: str, actor: Actor, packaging_video_url: str | None = None
    ) -> WorkflowResult:
        """Manufacturer marks the order packed; a packaging video must exist."""
        patch = {"packaging_video_url": packaging_video_url} if packaging_video_url else {}
        return await self.execute(
            order_id,
            TransitionRequest(
                actor=actor,
                target_delivery_state=DeliveryState.PACKED,
                patch=patch,
                action="mark_packed",
            ),
        )

    async def schedule_pickup(
        self,
        order_id: str,
        actor: Actor,
        courier_name: str | None = None,
        tracking_id: str | None = None,
    ) -> WorkflowResult:
        """Admin schedules courier pickup from PACKED; courier and tracking id must exist."""
        patch = {}
        if courier_name:
            patch["courier_name"] = courier_name.strip()
        if tracking_id:
            patch["tracking_id"] = tracking_id.strip()
        return await self.execute(
            order_id,
            TransitionRequest(
                actor=actor,
                target_delivery_state=DeliveryState.PICKUP_SCHEDULED,
                patch=patch,
                action="schedule_pickup",
            ),
        )

    async def request_changes(self, order_id: str, actor: Actor, notes: str) -> WorkflowResult:
        """Admin sends a SUBMITTED order back to the buyer with change notes."""
        minimum = self.settings.min_reason_length
        if notes is None or len(notes.strip()) < minimum:
            return WorkflowResult.failure(
                ErrorKind.INVALID_INPUT, f"Change notes must be at least {minimum} characters"
            )
        return await self.execute(
            order_id,
            TransitionRequest(
                actor=actor,
                patch={"admin_notes": notes.strip()},
                expected_state=OrderState.SUBMITTED,
                action="request_changes",
            ),
        )

    async def lock_specs(self, order_id: str, actor: Actor) -> WorkflowResult:
        """Admin freezes the specification. Locking twice is a no-op."""
        return await self.execute(
            order_id, TransitionRequest(actor=actor, patch={"specs_locked": True}, action="lock_specs")
        )

    async def assign_manufacturer(self, order_id: str, actor: Actor, manufacturer_id: str) -> WorkflowResult:
        """Assign (from ADMIN_APPROVED) or reassign (until production starts) a manufacturer."""
        if not manufacturer_id or not manufacturer_id.strip():
            return WorkflowResult.failure(ErrorKind.INVALID_INPUT, "manufacturer_id is required")
        return await self.execute(
            order_id,
            TransitionRequest(
                actor=actor,
                patch={"manufacturer_id": manufacturer_id.strip()},
                advance={OrderState.ADMIN_APPROVED: OrderState.MANUFACTURER_ASSIGNED},
                action="assign_manufacturer",
            ),
        )

    async def accept_assignment(self, order_id: str, actor: Actor) -> WorkflowResult:
        """The assigned manufacturer acknowledges the order. Accepting twice is a no-op."""
        if actor.role != ActorRole.MANUFACTURER:
            return WorkflowResult.failure(
                ErrorKind.UNAUTHORIZED_ACTOR, "Only the assigned manufacturer may accept an order"
            )
        return await self.execute(
            order_id,
            TransitionRequest(actor=actor, stamps=("manufacturer_accepted_at",), action="accept_assignment"),
        )

    # ------------------------------------------------------------------
    # Manual override
    # ------------------------------------------------------------------

    async def manual_override(
        self,
        order_id: str,
        actor: Actor,
        reason: str,
        target_order_state: OrderState | str | None = None,
        target_delivery_state: DeliveryState | str | None = None,
    ) -> WorkflowResult:
        """Admin escape hatch that bypasses the graphs and preconditions.

        Requires a reason of at least settings.min_reason_length characters
        and is always audited as manual_override. Target milestones are
        re-stamped, with the previous values kept in the audit metadata.
        """
        check = validate_manual_override(
            actor.role, reason, target_order_state, target_delivery_state, self.settings.min_reason_length
        )
        request = TransitionRequest(
            actor=actor,
            target_order_state=_parse_state(OrderState, target_order_state)[0],
            target_delivery_state=_parse_state(DeliveryState, target_delivery_state)[0],
            reason=reason,
            action="manual_override",
        )
        if not check.allowed:
            # Loads the order so the refusal lands in its trail
            return await self._run(order_id, request, lambda order, req: (check, None))

        return await self._run(order_id, request, self._plan_override)

    def _plan_override(self, order: Order, request: TransitionRequest) -> tuple[TransitionResult, _Plan | None]:
        now = self.clock()
        patch: dict = {}
        # (scope, from, to, previous milestone values)
        changed: list[tuple[AuditScope, str, str, dict]] = []

        scoped = (
            (AuditScope.ORDER, "order_state", order.order_state, request.target_order_state, ORDER_MILESTONES),
            (AuditScope.DELIVERY, "delivery_state", order.delivery_state, request.target_delivery_state, DELIVERY_MILESTONES),
        )
        for scope, state_field, current, target, milestones in scoped:
            if target is None or target == current:
                continue
            patch[state_field] = target
            previous = {}
            milestone = milestones.get(target)
            if milestone and milestone not in OVERRIDE_PROTECTED_MILESTONES:
                previous[milestone] = _jsonable(getattr(order, milestone))
                patch[milestone] = now
            changed.append((scope, current, target, previous))

        if not changed:
            return TransitionResult(True, "No change"), _Plan(patch={}, events=[], noop=True)

        patch["updated_at"] = now
        events = [
            AuditEvent(
                order_id=order.id,
                event_type=EventType.MANUAL_OVERRIDE,
                outcome=AuditOutcome.COMMITTED,
                actor_role=request.actor.role,
                actor_id=request.actor.id,
                scope=scope,
                from_state=from_state,
                to_state=to_state,
                reason=request.reason,
                metadata={"action": "manual_override", "previous_timestamps": previous},
                created_at=now,
            )
            for scope, from_state, to_state, previous in changed
        ]
        return TransitionResult(True, "Manual override permitted"), _Plan(patch=patch, events=events)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_order(self, order_id: str) -> Order:
        """Committed order snapshot. Raises OrderNotFoundError."""
        return await self.store.get_order(order_id)
