"""Admin manual override: force an order into a state outside the normal graph.

Usage:
    python -m scripts.manual_override ORDER_ID --order-state DISPATCHED \
        --reason "Courier confirmed pickup by phone" --admin-id admin-42

The override is written to the audit trail like any other mutation and
prints the resulting order and delivery state.
"""

import argparse
import asyncio
import sys

from orderflow.core.config import get_settings
from orderflow.core.logging import configure_structlog
from orderflow.db import close_db, close_redis, init_db, init_redis
from orderflow.domain.order import Actor
from orderflow.domain.states import ActorRole, DeliveryState, OrderState
from orderflow.services.audit_log import AuditLogWriter, SqlAlchemyAuditStore
from orderflow.services.notifications import NullNotificationDispatcher, RedisNotificationDispatcher
from orderflow.services.order_store import SqlAlchemyOrderStore
from orderflow.services.workflow import WorkflowOrchestrator, WorkflowResult


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m scripts.manual_override",
        description="Force an order and/or delivery state. Requires a reason; always audited.",
    )
    parser.add_argument("order_id", help="Order to override")
    parser.add_argument("--order-state", choices=[s.value for s in OrderState], default=None)
    parser.add_argument("--delivery-state", choices=[s.value for s in DeliveryState], default=None)
    parser.add_argument("--reason", required=True, help="Why the override is needed (min 10 characters)")
    parser.add_argument("--admin-id", required=True, help="Admin performing the override")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    return parser


async def run_override(workflow: WorkflowOrchestrator, args: argparse.Namespace) -> WorkflowResult:
    actor = Actor(role=ActorRole.ADMIN, id=args.admin_id)
    return await workflow.manual_override(
        args.order_id,
        actor,
        args.reason,
        target_order_state=args.order_state,
        target_delivery_state=args.delivery_state,
    )


def report(result: WorkflowResult) -> int:
    """Print the outcome and return the process exit code."""
    if not result.success:
        print(f"Override refused ({result.error}): {result.reason}", file=sys.stderr)
        return 1
    order = result.order
    print(f"Order {order.id}: order_state={order.order_state} delivery_state={order.delivery_state}")
    for warning in result.warnings:
        print(f"  warning: {warning}", file=sys.stderr)
    return 0


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.order_state is None and args.delivery_state is None:
        print("Provide --order-state and/or --delivery-state", file=sys.stderr)
        return 2

    settings = get_settings()
    configure_structlog(log_level="DEBUG" if settings.debug else "INFO", json_logs=not settings.debug)

    session_factory = await init_db(args.database_url)
    notifier = NullNotificationDispatcher()
    if settings.notifications_enabled:
        try:
            notifier = RedisNotificationDispatcher(await init_redis())
        except Exception as exc:
            print(f"Redis unavailable, notifications skipped: {exc}", file=sys.stderr)

    workflow = WorkflowOrchestrator(
        store=SqlAlchemyOrderStore(session_factory),
        audit=AuditLogWriter(SqlAlchemyAuditStore(session_factory)),
        notifier=notifier,
        settings=settings,
    )
    try:
        return report(await run_override(workflow, args))
    finally:
        await close_redis()
        await close_db()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
