"""Structured logging for the workflow engine.

Configures structlog with:
- JSON lines in production, one object per event, keyed by `event`
- ConsoleRenderer in debug mode
- A stdlib bridge so uvicorn, FastAPI and SQLAlchemy records go through the same renderer
- `correlation_id` from asgi-correlation-id and a fixed `service` field on every entry

Workflow events (`transition_committed`, `transition_denied`,
`audit_write_failed`, ...) carry order_id, actor_role and actor_id as
key/value context so a single order can be followed across requests.
"""

import logging.config

import structlog
from asgi_correlation_id.context import correlation_id

SERVICE_NAME = "orderflow"

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


def add_correlation_id(logger, method, event_dict):
    """Inject correlation_id from the asgi-correlation-id context var when inside a request."""
    request_id = correlation_id.get(None)
    if request_id:
        event_dict["correlation_id"] = request_id
    return event_dict


def add_service_name(logger, method, event_dict):
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _pre_chain() -> list:
    """Processors shared by structlog loggers and foreign (stdlib) records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        add_service_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def _render_chain(json_logs: bool) -> list:
    if not json_logs:
        return [structlog.dev.ConsoleRenderer()]
    # Tracebacks become a string field instead of multi-line output
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def _dict_config(level: str, pre_chain: list, render_chain: list) -> dict:
    loggers = {name: {"level": "WARNING"} for name in QUIET_LOGGERS}
    loggers[SERVICE_NAME] = {"level": level}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "foreign_pre_chain": pre_chain,
                "processors": [structlog.stdlib.ProcessorFormatter.remove_processors_meta, *render_chain],
            },
        },
        "handlers": {
            "stdout": {"class": "logging.StreamHandler", "formatter": "structured", "stream": "ext://sys.stdout"},
        },
        "root": {"handlers": ["stdout"], "level": level},
        "loggers": loggers,
    }


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structlog and route stdlib logging through it.

    Must run before other orderflow modules log anything: structlog caches
    the processor chain on first use.

    Args:
        log_level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
        json_logs: True for JSON output (production), False for ConsoleRenderer (dev)
    """
    pre_chain = _pre_chain()
    logging.config.dictConfig(_dict_config(log_level.upper(), pre_chain, _render_chain(json_logs)))

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
