"""Entry point tying the library together around one connection pool.

A ``DataAccess`` instance owns exactly one ``ConnectionPool`` built from its
profile, plus the executor, table registry and delayed-task scheduler that
share it. Cache synchronization is opted into per table and needs a message
broker.

Example:
    async with DataAccess(LocalProfile(file_path=Path("game.db"))) as data:
        players = data.register_table(PlayerTable)
        data.execute_statement("UPDATE players SET coins = ? WHERE id = ?", 5, "a")
"""

from typing import Any, Self

from loguru import logger

from src.core.config import Settings, get_settings
from src.core.exceptions import ConfigurationError
from src.core.logging import setup_logging
from src.core.observability import setup_tracing
from src.core.types import SqlArgument
from src.infrastructure.database.executor import (
    AsyncExecutor,
    ExecutionHandle,
    FailureHandler,
    ResultCallback,
)
from src.infrastructure.database.pool import ConnectionPool
from src.infrastructure.database.profiles import ConnectionProfile
from src.infrastructure.messaging.broker import MessageBroker
from src.infrastructure.messaging.listener import CacheInvalidationListener
from src.infrastructure.messaging.publisher import InvalidationPublisher
from src.infrastructure.messaging.redis_broker import RedisBroker
from src.infrastructure.messaging.scheduler import DelayedTaskScheduler
from src.infrastructure.tables.base import Table
from src.infrastructure.tables.registry import TableFactory, TableRegistry


class DataAccess:
    """Facade over the pool, executor, registry and cache synchronization.

    Args:
        profile: Connection profile for the single pool of this instance.
        settings: Library settings. Uses ``get_settings()`` if not provided.
        broker: Pub/sub transport for cache synchronization. Required only
            by ``enable_cache_sync`` and ``publisher``.
        on_failure: Failure handler for executor operations.
    """

    def __init__(
        self,
        profile: ConnectionProfile,
        *,
        settings: Settings | None = None,
        broker: MessageBroker | None = None,
        on_failure: FailureHandler | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.pool = ConnectionPool.open(
            profile, self.settings.database_config, self.settings
        )
        self.executor = AsyncExecutor(
            self.pool,
            max_in_flight=self.settings.executor_config.max_in_flight,
            on_failure=on_failure,
        )
        self.registry = TableRegistry(self.pool, self.executor)
        self.scheduler = DelayedTaskScheduler(
            self.settings.cache_sync_config.scheduler_max_concurrency
        )
        self.broker = broker
        self._owns_broker = False
        self._listeners: dict[str, CacheInvalidationListener] = {}
        self._publisher: InvalidationPublisher | None = None
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> Self:
        """Build an instance entirely from configuration.

        Configures logging and tracing, builds the profile from
        ``database_config`` and, when ``cache_sync_config.broker_url`` is
        set, a Redis broker owned by the instance.
        """
        settings = settings or get_settings()
        setup_logging(settings)
        setup_tracing(settings)

        broker_url = settings.cache_sync_config.broker_url
        broker = RedisBroker.from_url(broker_url) if broker_url else None

        instance = cls(
            settings.database_config.to_profile(), settings=settings, broker=broker
        )
        instance._owns_broker = broker is not None
        return instance

    def register_table[T: Table[Any]](
        self, table_type: type[T], factory: TableFactory[T] | None = None
    ) -> T | None:
        """Register a table type; see ``TableRegistry.register``."""
        return self.registry.register(table_type, factory)

    def get_table[T: Table[Any]](self, table_type: type[T]) -> T | None:
        return self.registry.get(table_type)

    def lookup_table(self, name: str) -> Table[Any] | None:
        return self.registry.lookup_by_name(name)

    def execute_statement(
        self,
        sql: str,
        *args: SqlArgument,
        on_generated_keys: ResultCallback | None = None,
    ) -> ExecutionHandle:
        """Execute an update statement; see ``AsyncExecutor.execute_statement``."""
        return self.executor.execute_statement(
            sql, *args, on_generated_keys=on_generated_keys
        )

    def execute_query(
        self,
        sql: str,
        *args: SqlArgument,
        on_result: ResultCallback | None = None,
    ) -> ExecutionHandle:
        """Run a read-only query; see ``AsyncExecutor.execute_query``."""
        return self.executor.execute_query(sql, *args, on_result=on_result)

    def _require_broker(self, feature: str) -> MessageBroker:
        if self.broker is None:
            raise ConfigurationError(
                f"{feature} requires a message broker", {"feature": feature}
            )
        return self.broker

    @property
    def publisher(self) -> InvalidationPublisher:
        """Publisher for announcing committed changes.

        Raises:
            ConfigurationError: If no broker was supplied.
        """
        if self._publisher is None:
            self._publisher = InvalidationPublisher(
                self._require_broker("Publishing invalidations"),
                self.settings.cache_sync_config.channel,
            )
        return self._publisher

    async def enable_cache_sync(self, table: Table[Any]) -> CacheInvalidationListener:
        """Keep ``table``'s cache in sync with invalidation messages.

        Enabling twice for the same table returns the existing listener.

        Raises:
            ConfigurationError: If no broker was supplied or the table is
                unnamed.
        """
        broker = self._require_broker("Cache synchronization")
        if not table.name:
            msg = "Cache synchronization requires a named table"
            raise ConfigurationError(msg, {"table_type": type(table).__name__})

        key = table.name.casefold()
        if key in self._listeners:
            return self._listeners[key]

        sync = self.settings.cache_sync_config
        listener = CacheInvalidationListener(
            table,
            self.scheduler,
            channel=sync.channel,
            reload_delay=sync.reload_delay_seconds,
        )
        await listener.start(broker)
        self._listeners[key] = listener
        return listener

    async def check_health(self) -> tuple[bool, str | None]:
        return await self.pool.check_connection()

    async def close(self) -> None:
        """Stop listening, finish outstanding work and release the pool."""
        if self._closed:
            return
        self._closed = True

        try:
            for listener in self._listeners.values():
                await listener.stop()
            self._listeners.clear()

            await self.executor.drain()
            await self.scheduler.close()
            await self.executor.drain()

            if self.broker is not None and self._owns_broker:
                await self.broker.close()
        finally:
            await self.pool.dispose()
        logger.info("Data access closed")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()
