"""OrderEvent model -- append-only audit trail."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from orderflow.db.base import Base, JSONDocument


class OrderEventRecord(Base):
    __tablename__ = "order_events"

    # Autoincrement key gives a stable append order for replay
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))
    order_id = Column(String(36), nullable=False, index=True)

    event_type = Column(String(50), nullable=False)  # order_created, order_transition, delivery_transition, attribute_update, manual_override
    outcome = Column(String(20), nullable=False)  # committed, denied
    scope = Column(String(20), nullable=False, default="order")  # which state dimension from/to refer to
    from_state = Column(String(50), nullable=True)  # null for order creation
    to_state = Column(String(50), nullable=True)
    actor_role = Column(String(20), nullable=False)
    actor_id = Column(String(255), nullable=False)
    detail = Column(JSONDocument, nullable=False, default=dict)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)
    # NO updated_at -- events are immutable (append-only)
