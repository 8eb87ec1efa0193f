"""Request correlation for the order API.

Every request carries an X-Request-ID (echoed when the client sends one,
generated otherwise). The id is picked up by the structlog processor in
orderflow.core.logging, so workflow events logged during a request can be
joined with the access log and the caller's own trace.
"""

import uuid

from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI

REQUEST_ID_HEADER = "X-Request-ID"


def setup_correlation_middleware(app: FastAPI) -> None:
    """Add correlation ID middleware to the FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name=REQUEST_ID_HEADER,
        generator=lambda: str(uuid.uuid4()),
        validator=None,  # Upstream gateways send non-UUID ids
        transformer=lambda a: a.strip(),
    )


def get_correlation_id() -> str | None:
    """Current request's correlation ID, or None outside a request."""
    return correlation_id.get(None)


__all__ = ["REQUEST_ID_HEADER", "setup_correlation_middleware", "get_correlation_id"]
