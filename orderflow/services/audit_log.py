"""AuditLogWriter -- append-only audit trail for every transition attempt.

Stores never update or delete. The writer wraps any store failure in
AuditWriteError so the orchestrator can degrade instead of failing the
business transition.
"""

from datetime import UTC
from typing import Protocol, runtime_checkable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderflow.core.exceptions import AuditWriteError
from orderflow.db.models.order_event import OrderEventRecord
from orderflow.domain.audit import (
    AuditEvent,
    AuditOutcome,
    AuditReplayResult,
    AuditScope,
    EventType,
    verify_audit_trail,
)

logger = structlog.get_logger(__name__)


@runtime_checkable
class AuditStore(Protocol):
    async def append(self, event: AuditEvent) -> None:
        ...

    async def list_for_order(self, order_id: str) -> list[AuditEvent]:
        """Events for one order, oldest first."""
        ...


class InMemoryAuditStore:
    def __init__(self) -> None:
        self._events: list[AuditEvent] = []

    async def append(self, event: AuditEvent) -> None:
        self._events.append(event)

    async def list_for_order(self, order_id: str) -> list[AuditEvent]:
        return [e for e in self._events if e.order_id == order_id]


class SqlAlchemyAuditStore:
    """Audit store on the append-only `order_events` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def append(self, event: AuditEvent) -> None:
        async with self.session_factory() as session:
            session.add(
                OrderEventRecord(
                    id=event.id,
                    order_id=event.order_id,
                    event_type=str(event.event_type),
                    outcome=str(event.outcome),
                    scope=str(event.scope),
                    from_state=event.from_state,
                    to_state=event.to_state,
                    actor_role=event.actor_role,
                    actor_id=event.actor_id,
                    detail=event.metadata,
                    reason=event.reason,
                    created_at=event.created_at,
                )
            )
            await session.commit()

    async def list_for_order(self, order_id: str) -> list[AuditEvent]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(OrderEventRecord)
                .where(OrderEventRecord.order_id == order_id)
                .order_by(OrderEventRecord.seq)
            )
            return [_record_to_event(r) for r in result.scalars().all()]


def _record_to_event(record: OrderEventRecord) -> AuditEvent:
    created_at = record.created_at
    if created_at is not None and created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    return AuditEvent(
        id=record.id,
        order_id=record.order_id,
        event_type=EventType(record.event_type),
        outcome=AuditOutcome(record.outcome),
        scope=AuditScope(record.scope),
        from_state=record.from_state,
        to_state=record.to_state,
        actor_role=record.actor_role,
        actor_id=record.actor_id,
        reason=record.reason,
        metadata=record.detail or {},
        created_at=created_at,
    )


class AuditLogWriter:
    """Appends audit events and reads trails back for replay."""

    def __init__(self, store: AuditStore):
        self.store = store

    async def append(self, event: AuditEvent) -> AuditEvent:
        """Persist one event.

        Raises:
            AuditWriteError: The store rejected or failed the write
        """
        try:
            await self.store.append(event)
        except Exception as exc:
            raise AuditWriteError(f"Failed to append audit event for order {event.order_id}: {exc}") from exc

        logger.debug(
            "audit_event_appended",
            order_id=event.order_id,
            event_type=event.event_type,
            outcome=event.outcome,
            from_state=event.from_state,
            to_state=event.to_state,
        )
        return event

    async def list_for_order(self, order_id: str) -> list[AuditEvent]:
        return await self.store.list_for_order(order_id)

    async def verify(self, order_id: str) -> AuditReplayResult:
        """Replay the stored trail for an order through the transition graphs."""
        return verify_audit_trail(await self.store.list_for_order(order_id))
