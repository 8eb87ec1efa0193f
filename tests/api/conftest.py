"""API-specific test fixtures."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from orderflow.api.routes import api_router
from orderflow.api.routes.orders import get_workflow
from orderflow.main import register_exception_handlers
from orderflow.middleware.correlation import setup_correlation_middleware


def actor_headers(actor) -> dict[str, str]:
    return {"X-Actor-Role": actor.role, "X-Actor-Id": actor.id}


@pytest.fixture
def api_client(workflow):
    """FastAPI test client with the orchestrator swapped for the in-memory one.

    No lifespan: routes only reach storage through get_workflow, which is
    overridden, so no database or Redis is needed.
    """
    app = FastAPI(title="Orderflow - Test Client")

    setup_correlation_middleware(app)
    # Same handlers as the real app (debug_id and error detail assertions)
    register_exception_handlers(app)

    app.include_router(api_router, prefix="/api")
    app.dependency_overrides[get_workflow] = lambda: workflow

    with TestClient(app) as client:
        yield client
