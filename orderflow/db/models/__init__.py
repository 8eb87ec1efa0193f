"""Re-export all models so Base.metadata sees them."""

from orderflow.db.models.order import OrderRecord
from orderflow.db.models.order_event import OrderEventRecord

__all__ = [
    "OrderEventRecord",
    "OrderRecord",
]
