"""Relational store access with a pooled async engine.

Core components:
- **profiles**: Networked (PostgreSQL) and local (SQLite file) connection
  profiles
- **pool**: Connection pool lifecycle, scoped checkout and health checks
- **binding**: ``?`` placeholder binding for raw SQL text
- **executor**: Fire-and-forget statements and queries with callbacks

All store access is async-first, through asyncpg or aiosqlite behind
SQLAlchemy's async engine.
"""

from src.infrastructure.database.binding import bind_positional
from src.infrastructure.database.executor import (
    AsyncExecutor,
    ExecutionOutcome,
    log_failure,
)
from src.infrastructure.database.pool import ConnectionPool, create_pool_engine
from src.infrastructure.database.profiles import (
    ConnectionProfile,
    LocalProfile,
    NetworkProfile,
)

__all__ = [
    "AsyncExecutor",
    "ConnectionPool",
    "ConnectionProfile",
    "ExecutionOutcome",
    "LocalProfile",
    "NetworkProfile",
    "bind_positional",
    "create_pool_engine",
    "log_failure",
]
