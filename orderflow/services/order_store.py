"""Order persistence behind a small protocol.

Both implementations give the orchestrator the same guarantee:
`update_order` applies a patch only if the stored version still equals
`expected_version`, and raises ConcurrentModificationError otherwise.
"""

from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

import structlog
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderflow.core.exceptions import ConcurrentModificationError, OrderNotFoundError, PersistenceError
from orderflow.db.models.order import OrderRecord
from orderflow.domain.order import ORDER_FIELDS, Order, QCRecord
from orderflow.domain.states import DeliveryState, OrderState

logger = structlog.get_logger(__name__)

QC_FIELDS = ("sample_qc", "bulk_qc")


@runtime_checkable
class OrderStore(Protocol):
    """Read/write contract for order aggregates."""

    async def get_order(self, order_id: str) -> Order:
        """Return the order or raise OrderNotFoundError."""
        ...

    async def create_order(self, order: Order) -> Order:
        """Persist a new order at version 0."""
        ...

    async def update_order(self, order_id: str, patch: dict, expected_version: int) -> Order:
        """Apply patch if the stored version equals expected_version.

        Returns:
            The updated order with version incremented by one

        Raises:
            OrderNotFoundError: No such order
            ConcurrentModificationError: Stored version differs
        """
        ...


class InMemoryOrderStore:
    """Dict-backed store for tests and the CLI dry-run path.

    The version check and the write happen without an intervening await,
    so they are atomic with respect to other coroutines.
    """

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}

    async def get_order(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def create_order(self, order: Order) -> Order:
        stored = order.apply({"version": 0})
        self._orders[order.id] = stored
        return stored

    async def update_order(self, order_id: str, patch: dict, expected_version: int) -> Order:
        current = self._orders.get(order_id)
        if current is None:
            raise OrderNotFoundError(order_id)
        if current.version != expected_version:
            raise ConcurrentModificationError(order_id, expected_version, current.version)
        updated = current.apply({**patch, "version": expected_version + 1})
        self._orders[order_id] = updated
        return updated


class SqlAlchemyOrderStore:
    """Order store on the `orders` table with a conditional UPDATE on version."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize with dependency injection.

        Args:
            session_factory: SQLAlchemy async session factory
        """
        self.session_factory = session_factory

    async def get_order(self, order_id: str) -> Order:
        try:
            async with self.session_factory() as session:
                record = await session.get(OrderRecord, order_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load order {order_id}: {exc}") from exc
        if record is None:
            raise OrderNotFoundError(order_id)
        return record_to_order(record)

    async def create_order(self, order: Order) -> Order:
        values = order_to_values(order)
        values["version"] = 0
        try:
            async with self.session_factory() as session:
                record = OrderRecord(**values)
                session.add(record)
                await session.commit()
                await session.refresh(record)
                return record_to_order(record)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to create order {order.id}: {exc}") from exc

    async def update_order(self, order_id: str, patch: dict, expected_version: int) -> Order:
        values = order_to_values(patch)
        values["version"] = expected_version + 1
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(OrderRecord)
                    .where(OrderRecord.id == order_id, OrderRecord.version == expected_version)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    await session.rollback()
                    existing = await session.get(OrderRecord, order_id)
                    if existing is None:
                        raise OrderNotFoundError(order_id)
                    raise ConcurrentModificationError(order_id, expected_version, existing.version)
                await session.commit()

                record = await session.get(OrderRecord, order_id, populate_existing=True)
                return record_to_order(record)
        except SQLAlchemyError as exc:
            logger.error("order_update_failed", order_id=order_id, error=str(exc))
            raise PersistenceError(f"Failed to update order {order_id}: {exc}") from exc


def order_to_values(source: Order | dict) -> dict:
    """Column values for an order or a partial patch."""
    data = {name: getattr(source, name) for name in ORDER_FIELDS} if isinstance(source, Order) else dict(source)
    for name in QC_FIELDS:
        if isinstance(data.get(name), QCRecord):
            data[name] = data[name].to_dict()
    for name in ("order_state", "delivery_state"):
        if data.get(name) is not None:
            data[name] = str(data[name])
    return data


def record_to_order(record: OrderRecord) -> Order:
    values = {name: getattr(record, name) for name in ORDER_FIELDS}
    values["order_state"] = OrderState(record.order_state)
    values["delivery_state"] = DeliveryState(record.delivery_state)
    for name in QC_FIELDS:
        if values[name] is not None:
            values[name] = QCRecord.from_dict(values[name])
    for name, value in values.items():
        # sqlite drops tzinfo; stored values are always UTC
        if isinstance(value, datetime) and value.tzinfo is None:
            values[name] = value.replace(tzinfo=UTC)
    return Order(**values)
