"""Database package: engine, session factory and Redis client."""

from orderflow.db.base import Base, close_db, create_tables, get_session_factory, init_db
from orderflow.db.redis import close_redis, get_redis, init_redis

__all__ = [
    "Base",
    "close_db",
    "close_redis",
    "create_tables",
    "get_redis",
    "get_session_factory",
    "init_db",
    "init_redis",
]
