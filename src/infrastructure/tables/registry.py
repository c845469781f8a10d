"""Process-wide registry of table repositories keyed by their type.

Each table type is registered at most once. The registry builds the table
through a factory that receives the connection pool, keeps the instance, and
answers lookups by type or by case-insensitive name. There is no removal.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

from loguru import logger

from src.core.error_context import sanitize_error_context
from src.core.exceptions import (
    AlreadyRegisteredError,
    RegistrationError,
    TableConstructionError,
)
from src.infrastructure.database.executor import AsyncExecutor
from src.infrastructure.database.pool import ConnectionPool
from src.infrastructure.tables.base import SqlTable, Table

type AnyTable = Table[Any]
type TableFactory[T] = Callable[[ConnectionPool], T | None]


@dataclass(frozen=True, slots=True)
class TableRegistration:
    """A registered table and the name it was registered under."""

    name: str
    table: AnyTable


class TableRegistry:
    """Thread-safe mapping from table type to its single instance.

    Args:
        pool: Pool handed to every table factory.
        executor: Shared executor given to registered ``SqlTable`` instances
            that were not built with one.

    Example:
        registry = TableRegistry(pool)
        players = registry.register(PlayerTable)
        registry.lookup_by_name("PLAYERS") is players  # True
    """

    def __init__(
        self, pool: ConnectionPool, executor: AsyncExecutor | None = None
    ) -> None:
        self.pool = pool
        self.executor = executor
        self._registrations: dict[type[AnyTable], TableRegistration] = {}
        self._lock = threading.RLock()

    def register_or_raise[T: AnyTable](
        self,
        table_type: type[T],
        factory: TableFactory[T] | None = None,
    ) -> T:
        """Build and register a table.

        Args:
            table_type: The table class; used as the registration key.
            factory: Builds the table from the pool. Defaults to calling
                ``table_type`` with the pool.

        Returns:
            T: The newly registered table.

        Raises:
            AlreadyRegisteredError: If ``table_type`` is already registered.
            TableConstructionError: If the factory raised, returned None, or
                returned a table without a name.
        """
        build: TableFactory[T] = factory or table_type

        with self._lock:
            if table_type in self._registrations:
                raise AlreadyRegisteredError(table_type)

            try:
                table = build(self.pool)
            except Exception as e:
                raise TableConstructionError(
                    table_type, f"{type(e).__name__}: {e}", cause=e
                ) from e

            if table is None:
                raise TableConstructionError(table_type, "factory returned None")
            if not table.name:
                raise TableConstructionError(table_type, "table has no name")

            if self.executor is not None and isinstance(table, SqlTable):
                table.use_executor(self.executor)

            self._registrations[table_type] = TableRegistration(table.name, table)

        logger.info(
            "Registered table {} as '{}'",
            table_type.__name__,
            table.name,
            table=table.name,
        )
        return table

    def register[T: AnyTable](
        self,
        table_type: type[T],
        factory: TableFactory[T] | None = None,
    ) -> T | None:
        """Build and register a table, reporting failure as None.

        Same as ``register_or_raise`` except that registration errors are
        logged as warnings and None is returned.
        """
        try:
            return self.register_or_raise(table_type, factory)
        except RegistrationError as e:
            logger.opt(exception=e.cause).warning(
                "{}",
                e.message,
                error_code=e.error_code,
                **sanitize_error_context(e, e.context),
            )
            return None

    def get[T: AnyTable](self, table_type: type[T]) -> T | None:
        """Return the registered instance of ``table_type``, if any."""
        with self._lock:
            registration = self._registrations.get(table_type)
        return cast(T, registration.table) if registration else None

    def lookup_by_name(self, name: str) -> AnyTable | None:
        """Find a table by its registered name, ignoring case."""
        wanted = name.casefold()
        with self._lock:
            registrations = list(self._registrations.values())
        for registration in registrations:
            if registration.name.casefold() == wanted:
                return registration.table
        return None

    def names(self) -> list[str]:
        """Registered table names in registration order."""
        with self._lock:
            return [r.name for r in self._registrations.values()]

    def tables(self) -> list[AnyTable]:
        with self._lock:
            return [r.table for r in self._registrations.values()]

    def __contains__(self, table_type: object) -> bool:
        with self._lock:
            return table_type in self._registrations

    def __len__(self) -> int:
        with self._lock:
            return len(self._registrations)
