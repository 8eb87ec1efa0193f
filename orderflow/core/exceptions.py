from enum import StrEnum


class ErrorKind(StrEnum):
    """Outcome categories surfaced to callers of the workflow orchestrator."""

    INVALID_TRANSITION = "invalid_transition"
    UNAUTHORIZED_ACTOR = "unauthorized_actor"
    PRECONDITION_FAILED = "precondition_failed"
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    AUDIT_WRITE_DEGRADED = "audit_write_degraded"
    FATAL = "fatal"


class OrderflowError(Exception):
    """Base exception for Orderflow infrastructure failures."""

    pass


class OrderNotFoundError(OrderflowError):
    """Raised by an order store when the referenced order does not exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order '{order_id}' not found")


class ConcurrentModificationError(OrderflowError):
    """Raised when a conditional write finds a newer order version."""

    def __init__(self, order_id: str, expected_version: int, actual_version: int | None = None):
        self.order_id = order_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Order '{order_id}' changed concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )


class AuditWriteError(OrderflowError):
    """Raised when an audit event cannot be persisted."""

    pass


class PersistenceError(OrderflowError):
    """Raised for unexpected order store failures."""

    pass
