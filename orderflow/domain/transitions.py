"""Transition validation for the order and delivery graphs.

Pure domain logic -- no side effects, no DB access. Given current and
proposed states, the actor role and an order context, decide whether the
move is permitted and why not.
"""

from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import urlparse

from orderflow.core.exceptions import ErrorKind
from orderflow.domain.order import OrderContext
from orderflow.domain.qc import validate_feedback, validate_rejection_reason
from orderflow.domain.states import (
    DELIVERY_GRAPH,
    DISPATCH_ELIGIBLE_STATES,
    ORDER_GRAPH,
    ActorRole,
    DeliveryState,
    Edge,
    OrderState,
    Precondition,
    TransitionGraph,
)


@dataclass
class TransitionResult:
    """Result of a transition check."""

    allowed: bool
    reason: str = ""
    error: ErrorKind | None = None
    edges: tuple[Edge, ...] = ()


def is_valid_url(value) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not isinstance(value, str):
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _payment_link_valid(ctx: OrderContext) -> str | None:
    if not ctx.payment_link:
        return "A payment link is required before requesting payment"
    if not is_valid_url(ctx.payment_link):
        return "Payment link must be a valid http(s) URL"
    return None


def _dispatch_eligible(ctx: OrderContext) -> str | None:
    if ctx.order_state not in DISPATCH_ELIGIBLE_STATES:
        return (
            f"Order must be READY_FOR_DISPATCH or BULK_QC_UPLOADED before packing "
            f"(currently {ctx.order_state})"
        )
    return None


PRECONDITION_CHECKS: dict[Precondition, Callable[[OrderContext], str | None]] = {
    Precondition.QUANTITY_POSITIVE: lambda ctx: (
        None if ctx.quantity > 0 else "Quantity must be greater than zero"
    ),
    Precondition.MANUFACTURER_PRESENT: lambda ctx: (
        None if ctx.manufacturer_id else "A manufacturer must be selected"
    ),
    Precondition.PAYMENT_LINK_VALID: _payment_link_valid,
    Precondition.PAYMENT_RECEIVED: lambda ctx: (
        None if ctx.payment_received else "Payment must be received before production can proceed"
    ),
    Precondition.SPECS_LOCKED: lambda ctx: (
        None if ctx.specs_locked else "Specs must be locked by admin before production can start"
    ),
    Precondition.SAMPLE_QC_EVIDENCE: lambda ctx: (
        None if ctx.sample_qc_video_url else "A sample QC video must be uploaded"
    ),
    Precondition.BULK_QC_EVIDENCE: lambda ctx: (
        None if ctx.bulk_qc_video_url else "A bulk QC video must be uploaded"
    ),
    Precondition.REJECTION_REASON: lambda ctx: validate_rejection_reason(
        ctx.reason, ctx.min_reason_length
    ),
    Precondition.STRUCTURED_FEEDBACK: lambda ctx: validate_feedback(ctx.feedback),
    Precondition.COURIER_DETAILS: lambda ctx: (
        None
        if ctx.courier_name and ctx.tracking_id
        else "Courier name and tracking ID are required"
    ),
    Precondition.TRACKING_ID: lambda ctx: (
        None if ctx.tracking_id else "A tracking ID is required"
    ),
    Precondition.PACKAGING_VIDEO: lambda ctx: (
        None if ctx.packaging_video_url else "A packaging video must be on file before packing or pickup"
    ),
    Precondition.DISPATCH_ELIGIBLE_ORDER: _dispatch_eligible,
}


def invalid_transition_reason(graph: TransitionGraph, current: str | None, proposed: str) -> str:
    if current is not None and graph.is_terminal(current):
        return f"Invalid transition: {graph.name} state {current} is terminal"
    valid_next = graph.targets(current)
    return (
        f"Invalid transition: {graph.name} state {current or 'none'} -> {proposed}. "
        f"Valid next states: {', '.join(valid_next)}"
    )


def validate_edge(
    graph: TransitionGraph,
    current: str | None,
    proposed: str,
    actor_role: str,
    context: OrderContext,
) -> TransitionResult:
    """Validate a single move within one graph.

    Checks, in order: the edge exists, the role may traverse it, and every
    precondition on the edge holds. The first failure wins.
    """
    edge = graph.edge(current, proposed)
    if edge is None:
        return TransitionResult(False, invalid_transition_reason(graph, current, proposed), ErrorKind.INVALID_TRANSITION)

    if actor_role not in edge.roles:
        return TransitionResult(
            False,
            f"Role '{actor_role}' may not move {graph.name} state from {current or 'none'} to {proposed}. "
            f"Allowed roles: {', '.join(sorted(edge.roles))}",
            ErrorKind.UNAUTHORIZED_ACTOR,
        )

    for precondition in edge.preconditions:
        failure = PRECONDITION_CHECKS[precondition](context)
        if failure:
            return TransitionResult(False, failure, ErrorKind.PRECONDITION_FAILED)

    return TransitionResult(True, edges=(edge,))


def validate_transition(
    current_order_state: OrderState | None,
    proposed_order_state: OrderState | None,
    current_delivery_state: DeliveryState,
    proposed_delivery_state: DeliveryState | None,
    actor_role: str,
    context: OrderContext,
) -> TransitionResult:
    """Validate a proposed change to either or both state dimensions.

    Pure function -- no side effects, no DB access.

    Args:
        current_order_state: Stored order state (None only for creation)
        proposed_order_state: Target order state, or None to leave it unchanged
        current_delivery_state: Stored delivery state
        proposed_delivery_state: Target delivery state, or None to leave it unchanged
        actor_role: Role of the caller
        context: Facts from the stored order merged with the incoming patch.
            `context.order_state` is the order state after this change and
            is what the delivery coupling rule is checked against.

    Returns:
        TransitionResult with allowed flag, reason, error kind on denial and
        the edges that will be traversed on success

    Rules:
        - Unknown roles are never authorized
        - A dimension whose proposed state equals its current state is untouched
        - Order edge is checked before the delivery edge
    """
    if actor_role not in set(ActorRole):
        return TransitionResult(False, f"Unknown role '{actor_role}'", ErrorKind.UNAUTHORIZED_ACTOR)

    edges: list[Edge] = []

    if proposed_order_state is not None and proposed_order_state != current_order_state:
        result = validate_edge(ORDER_GRAPH, current_order_state, proposed_order_state, actor_role, context)
        if not result.allowed:
            return result
        edges.extend(result.edges)

    if proposed_delivery_state is not None and proposed_delivery_state != current_delivery_state:
        result = validate_edge(
            DELIVERY_GRAPH, current_delivery_state, proposed_delivery_state, actor_role, context
        )
        if not result.allowed:
            return result
        edges.extend(result.edges)

    if not edges:
        return TransitionResult(True, "No state change requested")

    return TransitionResult(True, edges=tuple(edges))


def validate_manual_override(
    actor_role: str,
    reason: str | None,
    target_order_state: str | None,
    target_delivery_state: str | None,
    min_reason_length: int = 10,
) -> TransitionResult:
    """Validate an admin override that bypasses the graphs.

    Only admins may override, a reason of at least `min_reason_length`
    characters is mandatory, and at least one known target state is needed.
    """
    if actor_role != ActorRole.ADMIN:
        return TransitionResult(
            False, "Only admins may perform a manual override", ErrorKind.UNAUTHORIZED_ACTOR
        )
    if reason is None or len(reason.strip()) < min_reason_length:
        return TransitionResult(
            False,
            f"Override reason must be at least {min_reason_length} characters",
            ErrorKind.INVALID_INPUT,
        )
    if target_order_state is None and target_delivery_state is None:
        return TransitionResult(
            False, "An override needs a target order or delivery state", ErrorKind.INVALID_INPUT
        )
    if target_order_state is not None and target_order_state not in set(OrderState):
        return TransitionResult(
            False, f"Unknown order state '{target_order_state}'", ErrorKind.INVALID_INPUT
        )
    if target_delivery_state is not None and target_delivery_state not in set(DeliveryState):
        return TransitionResult(
            False, f"Unknown delivery state '{target_delivery_state}'", ErrorKind.INVALID_INPUT
        )
    return TransitionResult(True, "Manual override permitted")


def allowed_targets(graph: TransitionGraph, current: str | None, actor_role: str) -> list[str]:
    """Next states reachable from current that the role may trigger (ignores preconditions)."""
    return [
        target
        for target in graph.targets(current)
        if (edge := graph.edge(current, target)) is not None and actor_role in edge.roles
    ]
