"""Connection pool lifecycle built on SQLAlchemy's async engine.

This module owns the bounded set of reusable store connections. A pool is
opened once from a connection profile and is never reconfigured.

Core functionality:
- **Two modes**: networked PostgreSQL (asyncpg) or a local SQLite file
  (aiosqlite), both with a fixed pool size and acquire timeout
- **Prepared statement caching**: bounded per-connection statement caches
- **Typed unavailability**: a pool that cannot start is marked unavailable
  and raises ``PoolUnavailableError`` on every use instead of crashing later
- **Scoped checkout**: ``acquire()`` always returns the connection to the pool
- **Query monitoring**: slow query detection through engine event listeners
- **Health checks**: connectivity validation for monitoring

Pools are passed explicitly to every component that needs store access;
there is no module-level engine.
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any
from weakref import WeakKeyDictionary

from loguru import logger
from sqlalchemy import event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.engine.interfaces import DBAPICursor, ExecutionContext
from sqlalchemy.exc import ArgumentError, InvalidRequestError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as SQLTimeoutError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from src.core.config import DatabaseConfig, Settings, get_settings
from src.core.context import OperationContext
from src.core.error_context import sanitize_sql_params
from src.core.exceptions import AcquireTimeoutError, PoolUnavailableError
from src.core.observability import instrument_engine
from src.infrastructure.constants import COMMAND_TIMEOUT_SECONDS, POOL_RECYCLE_SECONDS
from src.infrastructure.database.profiles import (
    ConnectionProfile,
    LocalProfile,
    NetworkProfile,
)

# Store query start times for execution contexts
_query_start_times: WeakKeyDictionary[ExecutionContext, float] = WeakKeyDictionary()

# Slow query threshold in milliseconds per monitored engine
_slow_query_thresholds: WeakKeyDictionary[Engine, int] = WeakKeyDictionary()


def _before_cursor_execute(
    _conn: Connection,
    _cursor: DBAPICursor,
    _statement: str,
    _parameters: dict[str, Any] | list[Any] | tuple[Any, ...] | None,
    context: ExecutionContext,
    _executemany: bool,
) -> None:
    """Track query start time for performance monitoring."""
    _query_start_times[context] = time.time()


def _after_cursor_execute(
    conn: Connection,
    _cursor: DBAPICursor,
    statement: str,
    parameters: dict[str, Any] | list[Any] | tuple[Any, ...] | None,
    context: ExecutionContext,
    executemany: bool,
) -> None:
    """Log slow queries with sanitized parameters.

    Args:
        conn: Database connection, used to find the engine threshold.
        _cursor: Database cursor.
        statement: SQL statement that was executed.
        parameters: Query parameters.
        context: SQLAlchemy execution context.
        executemany: Whether this was an executemany operation.
    """
    start_time = _query_start_times.pop(context, None)
    threshold_ms = _slow_query_thresholds.get(conn.engine)
    if start_time is None or threshold_ms is None:
        return

    duration_ms = (time.time() - start_time) * 1000

    rows_affected: int | None = getattr(_cursor, "rowcount", -1)
    if rows_affected is None:
        rows_affected = -1

    if duration_ms >= threshold_ms:
        clean_statement = " ".join(statement.split())[:500]

        logger.warning(
            "Slow query detected: {}... Duration: {:.2f}ms Rows: {}",
            clean_statement[:100],
            round(duration_ms, 2),
            rows_affected,
            sql=clean_statement,
            duration_ms=round(duration_ms, 2),
            rows_affected=rows_affected,
            parameters=sanitize_sql_params(parameters),
            operation_id=OperationContext.get_operation_id(),
            executemany=executemany,
            threshold_ms=threshold_ms,
        )


def _engine_options(
    profile: ConnectionProfile, config: DatabaseConfig
) -> dict[str, Any]:
    """Build ``create_async_engine`` keyword arguments for a profile."""
    options: dict[str, Any] = {
        "pool_size": config.pool_size,
        "max_overflow": 0,
        "pool_timeout": config.pool_timeout,
        "pool_pre_ping": config.pool_pre_ping,
        "pool_recycle": POOL_RECYCLE_SECONDS,
        "echo": config.echo,
    }
    if isinstance(profile, NetworkProfile):
        options["connect_args"] = {
            "prepared_statement_cache_size": config.prepared_statement_cache_size,
            "max_cacheable_statement_size": config.prepared_statement_max_sql_length,
            "command_timeout": COMMAND_TIMEOUT_SECONDS,
        }
    else:
        options["connect_args"] = {
            "cached_statements": config.prepared_statement_cache_size,
        }
    return options


def create_pool_engine(
    profile: ConnectionProfile,
    config: DatabaseConfig | None = None,
    settings: Settings | None = None,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine for a connection profile.

    Args:
        profile: Networked or local connection profile.
        config: Pool settings. Defaults to ``settings.database_config``.
        settings: Library settings. Uses ``get_settings()`` if not provided.

    Returns:
        AsyncEngine: Configured async engine instance.
    """
    settings = settings or get_settings()
    config = config or settings.database_config

    engine = create_async_engine(profile.url(), **_engine_options(profile, config))

    if settings.log_config.enable_sql_logging:
        try:
            # Event listeners work with the sync engine behind the async facade
            event.listen(
                engine.sync_engine, "before_cursor_execute", _before_cursor_execute
            )
            event.listen(
                engine.sync_engine, "after_cursor_execute", _after_cursor_execute
            )
            _slow_query_thresholds[engine.sync_engine] = (
                settings.log_config.slow_query_threshold_ms
            )
            logger.info("Registered custom query performance event listeners")
        except (InvalidRequestError, ArgumentError, AttributeError, TypeError) as e:
            logger.warning(
                "Failed to register query performance event listeners: {}: {}",
                type(e).__name__,
                str(e),
            )

    return engine


def _ensure_database_file(file_path: Path) -> None:
    """Create the local database file if it does not exist yet.

    Raises:
        OSError: If the file cannot be created.
    """
    if not file_path.exists():
        file_path.touch()
        logger.info("Created database file {}", file_path)


class ConnectionPool:
    """A bounded pool of reusable connections to one relational store.

    Use ``ConnectionPool.open`` rather than the constructor. A pool that
    could not be initialized is still returned, in the unavailable state,
    so callers receive a typed ``PoolUnavailableError`` on use.

    Example:
        pool = ConnectionPool.open(LocalProfile(file_path=Path("game.db")))
        async with pool.acquire() as conn:
            await conn.execute(text("SELECT 1"))
    """

    def __init__(
        self,
        profile: ConnectionProfile,
        engine: AsyncEngine | None,
        *,
        acquire_timeout: float,
        unavailable_reason: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.profile = profile
        self.acquire_timeout = acquire_timeout
        self._engine = engine
        self._unavailable_reason = unavailable_reason
        self._cause = cause
        if engine is None and unavailable_reason is None:
            self._unavailable_reason = "no engine"

    @classmethod
    def open(
        cls,
        profile: ConnectionProfile,
        config: DatabaseConfig | None = None,
        settings: Settings | None = None,
    ) -> "ConnectionPool":
        """Open a pool for the given profile.

        Args:
            profile: Networked or local connection profile.
            config: Pool settings. Defaults to ``settings.database_config``.
            settings: Library settings controlling query monitoring and
                tracing. Uses ``get_settings()`` if not provided.

        Returns:
            ConnectionPool: An available pool, or an unavailable one carrying
                the reason it could not start.
        """
        settings = settings or get_settings()
        config = config or settings.database_config

        if isinstance(profile, LocalProfile):
            try:
                _ensure_database_file(profile.file_path)
            except OSError as e:
                logger.error(
                    "Unable to create database file {}: {}", profile.file_path, e
                )
                return cls(
                    profile,
                    None,
                    acquire_timeout=config.pool_timeout,
                    unavailable_reason=(
                        f"cannot create database file {profile.file_path}"
                    ),
                    cause=e,
                )

        try:
            engine = create_pool_engine(profile, config, settings)
        except (ArgumentError, ImportError) as e:
            # ArgumentError: malformed URL or unknown dialect
            # ImportError: database driver not installed
            logger.error("Unable to create database engine: {}", e)
            return cls(
                profile,
                None,
                acquire_timeout=config.pool_timeout,
                unavailable_reason=f"cannot create engine: {e}",
                cause=e,
            )

        instrument_engine(engine, settings)

        logger.info(
            "Opened connection pool - mode: {}, pool_size: {}, acquire_timeout: {}s",
            "networked" if isinstance(profile, NetworkProfile) else "local",
            config.pool_size,
            config.pool_timeout,
        )
        return cls(profile, engine, acquire_timeout=config.pool_timeout)

    @property
    def available(self) -> bool:
        """Whether the pool initialized and can hand out connections."""
        return self._engine is not None

    @property
    def unavailable_reason(self) -> str | None:
        """Why the pool could not start, or None when it is available."""
        return None if self.available else self._unavailable_reason

    def _unavailable_error(self) -> PoolUnavailableError:
        return PoolUnavailableError(
            self._unavailable_reason or "unknown", cause=self._cause
        )

    def ensure_available(self) -> None:
        """Raise ``PoolUnavailableError`` if the pool failed to initialize."""
        if self._engine is None:
            raise self._unavailable_error()

    @property
    def engine(self) -> AsyncEngine:
        """The underlying engine.

        Raises:
            PoolUnavailableError: If the pool failed to initialize.
        """
        if self._engine is None:
            raise self._unavailable_error()
        return self._engine

    @property
    def checked_out(self) -> int:
        """Number of connections currently checked out of the pool."""
        if self._engine is None:
            return 0
        return int(self._engine.pool.checkedout())  # type: ignore[attr-defined]

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[AsyncConnection]:
        """Check out a connection for the duration of the ``async with`` block.

        The connection is returned to the pool on every exit path. Any
        transaction left uncommitted is rolled back on return.

        Yields:
            AsyncGenerator[AsyncConnection]: A checked-out connection.

        Raises:
            PoolUnavailableError: If the pool failed to initialize.
            AcquireTimeoutError: If no connection became free in time.
        """
        connection = self.engine.connect()
        try:
            await connection.start()
        except SQLTimeoutError as e:
            raise AcquireTimeoutError(self.acquire_timeout, cause=e) from e

        try:
            yield connection
        finally:
            await connection.close()

    async def check_connection(self) -> tuple[bool, str | None]:
        """Check if the store is reachable.

        Returns:
            tuple[bool, str | None]: A tuple containing:
                - bool: True if connection successful, False otherwise
                - str | None: Error message if connection failed, None if successful
        """
        if not self.available:
            return False, self.unavailable_reason
        try:
            async with self.acquire() as conn:
                result = await conn.execute(text("SELECT 1"))
                _ = result.scalar()
        except (SQLAlchemyError, AcquireTimeoutError, OSError) as e:
            return False, str(e)
        else:
            return True, None

    async def dispose(self) -> None:
        """Close all pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Connection pool disposed")

    def __repr__(self) -> str:
        state = "available" if self.available else "unavailable"
        return f"ConnectionPool(profile={self.profile!r}, state={state})"
