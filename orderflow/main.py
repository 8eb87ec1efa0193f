"""Orderflow: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# configure_structlog MUST run before the other orderflow imports: structlog
# caches the processor chain on first use.
from orderflow.core.logging import configure_structlog
from orderflow.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderflow.api.routes import api_router
from orderflow.core.config import Settings, get_settings
from orderflow.core.exceptions import ErrorKind
from orderflow.db import close_db, close_redis, init_db, init_redis
from orderflow.middleware.correlation import get_correlation_id, setup_correlation_middleware

logger = structlog.get_logger(__name__)


def install_sigterm_flag(app: FastAPI) -> None:
    """Flip app.state.shutting_down on SIGTERM so /health returns 503 while connections drain."""
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)


async def start_notifications(settings: Settings) -> None:
    """Connect Redis for notification fan-out. Failure leaves the API serving without it."""
    if not settings.notifications_enabled:
        logger.info("notifications_disabled")
        return
    try:
        await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning("redis_unavailable", error=str(e), error_type=type(e).__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    install_sigterm_flag(app)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    await init_db()
    logger.info("db_initialized")
    await start_notifications(settings)

    yield

    logger.info("shutdown_begin")
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


def _request_context(request: Request) -> dict:
    return {
        "correlation_id": get_correlation_id(),
        "path": request.url.path,
        "method": request.method,
        "actor_id": request.headers.get("x-actor-id"),
    }


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Log HTTPExceptions with a debug_id and return the detail unchanged.

    Workflow denials (4xx) are expected outcomes and log at warning.
    """
    debug_id = str(uuid.uuid4())
    log = logger.warning if exc.status_code < 500 else logger.error
    log("http_exception", status_code=exc.status_code, debug_id=debug_id, detail=exc.detail, **_request_context(request))

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "debug_id": debug_id},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are invalid_input (400), keeping 422 for failed preconditions."""
    debug_id = str(uuid.uuid4())
    errors = exc.errors()
    logger.info("request_validation_failed", debug_id=debug_id, error_count=len(errors), **_request_context(request))

    reason = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', 'invalid')}" for err in errors
    )
    return JSONResponse(
        status_code=400,
        content={"detail": {"error": str(ErrorKind.INVALID_INPUT), "reason": reason}, "debug_id": debug_id},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unhandled errors with traceback and return a generic 500."""
    debug_id = str(uuid.uuid4())
    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
        **_request_context(request),
    )

    return JSONResponse(
        status_code=500,
        content={"detail": {"error": str(ErrorKind.FATAL), "reason": "Internal server error"}, "debug_id": debug_id},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Order lifecycle workflow engine",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Added last so it wraps CORS and runs first on incoming requests
    setup_correlation_middleware(app)

    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("orderflow.main:app", host="0.0.0.0", port=8000, reload=True)
