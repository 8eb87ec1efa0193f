"""Audit event vocabulary and trail replay.

Pure domain logic -- no persistence. An audit trail is valid when replaying
its committed events from an empty order only ever follows graph edges.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum

from orderflow.domain.states import DELIVERY_GRAPH, ORDER_GRAPH, DeliveryState, TransitionGraph


class EventType(StrEnum):
    ORDER_CREATED = "order_created"
    ORDER_TRANSITION = "order_transition"
    DELIVERY_TRANSITION = "delivery_transition"
    ATTRIBUTE_UPDATE = "attribute_update"
    MANUAL_OVERRIDE = "manual_override"


class AuditOutcome(StrEnum):
    COMMITTED = "committed"
    DENIED = "denied"


class AuditScope(StrEnum):
    """Which state dimension from_state/to_state refer to."""

    ORDER = "order"
    DELIVERY = "delivery"


@dataclass
class AuditEvent:
    """One immutable audit record."""

    order_id: str
    event_type: EventType
    outcome: AuditOutcome
    actor_role: str
    actor_id: str
    scope: AuditScope = AuditScope.ORDER
    from_state: str | None = None
    to_state: str | None = None
    reason: str | None = None
    metadata: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_committed_transition(self) -> bool:
        return self.outcome == AuditOutcome.COMMITTED and self.event_type in (
            EventType.ORDER_CREATED,
            EventType.ORDER_TRANSITION,
            EventType.DELIVERY_TRANSITION,
        )


@dataclass
class AuditReplayResult:
    valid: bool
    order_state: str | None = None
    delivery_state: str | None = None
    events_replayed: int = 0
    failed_event_id: str | None = None
    reason: str = ""


def verify_audit_trail(events: list[AuditEvent]) -> AuditReplayResult:
    """Replay committed transitions in order and report the first illegal step.

    Pure function -- no side effects.

    Args:
        events: Audit events for one order, oldest first

    Returns:
        AuditReplayResult with the replayed end states, or the first event
        whose from/to pair is not an edge of its graph

    Rules:
        - Denied attempts and attribute updates are skipped
        - A manual override re-anchors the replay at its to_state
        - Every committed transition must start where the previous one ended
    """
    states: dict[AuditScope, str | None] = {
        AuditScope.ORDER: None,
        AuditScope.DELIVERY: DeliveryState.NOT_STARTED,
    }
    graphs: dict[AuditScope, TransitionGraph] = {
        AuditScope.ORDER: ORDER_GRAPH,
        AuditScope.DELIVERY: DELIVERY_GRAPH,
    }
    replayed = 0

    for event in events:
        if event.outcome != AuditOutcome.COMMITTED:
            continue

        if event.event_type == EventType.MANUAL_OVERRIDE:
            states[AuditScope(event.scope)] = event.to_state
            replayed += 1
            continue

        if not event.is_committed_transition:
            continue

        scope = AuditScope(event.scope)
        current = states[scope]
        if event.from_state != current:
            return AuditReplayResult(
                valid=False,
                order_state=states[AuditScope.ORDER],
                delivery_state=states[AuditScope.DELIVERY],
                events_replayed=replayed,
                failed_event_id=event.id,
                reason=f"Event starts at {event.from_state} but {scope} state was {current}",
            )
        if graphs[scope].edge(event.from_state, event.to_state) is None:
            return AuditReplayResult(
                valid=False,
                order_state=states[AuditScope.ORDER],
                delivery_state=states[AuditScope.DELIVERY],
                events_replayed=replayed,
                failed_event_id=event.id,
                reason=f"{event.from_state} -> {event.to_state} is not a {scope} graph edge",
            )
        states[scope] = event.to_state
        replayed += 1

    return AuditReplayResult(
        valid=True,
        order_state=states[AuditScope.ORDER],
        delivery_state=states[AuditScope.DELIVERY],
        events_replayed=replayed,
    )
