"""Table contract shared by every registered repository.

A table pairs a typed in-memory cache with a load-by-id hook into the
backing store, for one kind of domain entity. How objects are loaded and
persisted belongs to the host application; the library only relies on:

- a stable ``name`` used for registry lookup;
- ``get_by_id`` for synchronous cache lookup;
- ``load_by_id`` for asynchronous loading with a callback;
- ``add_to_cache`` / ``remove_from_cache`` mutation hooks.

``SqlTable`` implements the loading side for tables stored as one SQL table
with an identifier column.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, ClassVar

from loguru import logger
from sqlalchemy.engine import CursorResult

from src.core.types import ObjectId
from src.infrastructure.database.executor import AsyncExecutor
from src.infrastructure.database.pool import ConnectionPool
from src.infrastructure.tables.cache import CachedObject, TableCache

type LoadCallback[T] = Callable[[T | None], Awaitable[object] | object]


class Table[T: CachedObject](ABC):
    """Base class for a cached, store-backed collection of one entity kind.

    Args:
        pool: The pool the table loads from.
        name: Name used for case-insensitive registry lookup. A table
            without a name is rejected at registration.
    """

    def __init__(self, pool: ConnectionPool, name: str | None) -> None:
        self.pool = pool
        self.name = name
        self.cache: TableCache[T] = TableCache()
        self._loads: set[asyncio.Task[T | None]] = set()

    def get_by_id(self, object_id: ObjectId) -> T | None:
        """Look up an object in the in-memory cache only."""
        return self.cache.get(object_id)

    def add_to_cache(self, obj: T) -> None:
        self.cache.add(obj)

    def remove_from_cache(self, obj: T) -> bool:
        return self.cache.remove(obj)

    @abstractmethod
    async def fetch_by_id(self, object_id: ObjectId) -> T | None:
        """Read one object from the store.

        Returns:
            T | None: The stored object, or None if the store has no row
                for this identifier.
        """

    def load_by_id(
        self, object_id: ObjectId, callback: LoadCallback[T]
    ) -> asyncio.Task[T | None]:
        """Load an object from the store in the background.

        The callback receives the loaded object, or None when it is absent.
        The cache is not modified; callers decide what to do with the result.

        Args:
            object_id: Identifier to load.
            callback: Plain or coroutine function receiving the result.

        Returns:
            asyncio.Task[T | None]: Task resolving to the loaded object.
        """
        task = asyncio.get_running_loop().create_task(
            self._load(object_id, callback)
        )
        self._loads.add(task)
        task.add_done_callback(self._loads.discard)
        return task

    async def _load(
        self, object_id: ObjectId, callback: LoadCallback[T]
    ) -> T | None:
        obj = await self.fetch_by_id(object_id)
        returned = callback(obj)
        if inspect.isawaitable(returned):
            await returned
        return obj

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, cached={len(self.cache)})"


class SqlTable[T: CachedObject](Table[T]):
    """Table stored as a single SQL table keyed by an identifier column.

    Subclasses provide ``from_row`` to build an entity from a result row.

    Example:
        class PlayerTable(SqlTable[Player]):
            def __init__(self, pool: ConnectionPool) -> None:
                super().__init__(pool, "players")

            def from_row(self, row: Mapping[str, Any]) -> Player:
                return Player(id=row["id"], coins=row["coins"])
    """

    id_column: ClassVar[str] = "id"

    def __init__(
        self,
        pool: ConnectionPool,
        name: str,
        *,
        executor: AsyncExecutor | None = None,
    ) -> None:
        super().__init__(pool, name)
        self._executor = executor

    @property
    def executor(self) -> AsyncExecutor:
        """Executor running this table's queries.

        Tables registered with a shared executor use it; otherwise a private
        executor over the pool is created on first use.
        """
        if self._executor is None:
            self._executor = AsyncExecutor(self.pool)
        return self._executor

    def use_executor(self, executor: AsyncExecutor) -> None:
        """Run queries through ``executor`` unless one is already set."""
        if self._executor is None:
            self._executor = executor

    @abstractmethod
    def from_row(self, row: Mapping[str, Any]) -> T:
        """Build an entity from one result row."""

    async def fetch_by_id(self, object_id: ObjectId) -> T | None:
        """Read one row by identifier.

        Raises:
            PoolUnavailableError: If the pool failed to initialize.
            ExecutionError: If the query failed.
        """
        found = await self._select(
            f"SELECT * FROM {self.name} WHERE {self.id_column} = ?",  # noqa: S608
            object_id,
        )
        return found[0] if found else None

    async def load_all(self) -> int:
        """Replace the cache contents with every row of the table.

        The cache is left untouched when the query fails.

        Returns:
            int: Number of objects cached.

        Raises:
            ExecutionError: If the query failed.
        """
        loaded = await self._select(f"SELECT * FROM {self.name}")  # noqa: S608
        self.cache.clear()
        for obj in loaded:
            self.add_to_cache(obj)
        logger.debug("Loaded {} objects", len(loaded), table=self.name)
        return len(loaded)

    async def _select(self, sql: str, *args: ObjectId) -> list[T]:
        rows: list[T] = []

        def collect(result: CursorResult[Any]) -> None:
            rows.extend(self.from_row(row) for row in result.mappings())

        outcome = await asyncio.wrap_future(
            self.executor.execute_query(sql, *args, on_result=collect)
        )
        if outcome.error is not None:
            raise outcome.error
        return rows
