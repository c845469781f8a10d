"""Unit tests for src/infrastructure/tables/base.py.

This module tests the Table contract through an in-memory implementation and
SqlTable against a temporary SQLite pool.
"""

import asyncio
from typing import Any

import pytest
from pytest_mock import MockerFixture

from src.core.exceptions import ExecutionError, PoolUnavailableError
from src.infrastructure.database.executor import AsyncExecutor
from src.infrastructure.database.pool import ConnectionPool
from src.infrastructure.tables.base import Table
from tests.support import Player, PlayerTable, drop_players_table, insert_player


class DictTable(Table[Player]):
    """Table whose store is a plain dict."""

    def __init__(self, pool: Any, store: dict[str, Player]) -> None:
        super().__init__(pool, "dict_players")
        self.store = store

    async def fetch_by_id(self, object_id: str) -> Player | None:
        await asyncio.sleep(0)
        return self.store.get(object_id)


@pytest.mark.unit
class TestTable:
    """Tests for the base Table contract."""

    def test_cache_hooks(self, mocker: MockerFixture) -> None:
        """Verify get_by_id only consults the cache."""
        table = DictTable(mocker.Mock(), {"steve": Player("steve")})
        assert table.get_by_id("steve") is None

        cached = Player("steve", 3)
        table.add_to_cache(cached)
        assert table.get_by_id("steve") is cached

        assert table.remove_from_cache(cached) is True
        assert table.get_by_id("steve") is None

    async def test_load_by_id_invokes_callback(self, mocker: MockerFixture) -> None:
        """Verify the callback receives the loaded object without caching it."""
        stored = Player("steve", 5)
        table = DictTable(mocker.Mock(), {"steve": stored})
        received: list[Player | None] = []

        loaded = await table.load_by_id("steve", received.append)

        assert loaded is stored
        assert received == [stored]
        assert table.get_by_id("steve") is None

    async def test_load_by_id_absent(self, mocker: MockerFixture) -> None:
        """Verify a missing object is signalled with None."""
        table = DictTable(mocker.Mock(), {})
        received: list[Player | None] = []

        await table.load_by_id("ghost", received.append)

        assert received == [None]

    async def test_load_by_id_async_callback(self, mocker: MockerFixture) -> None:
        """Verify coroutine callbacks are awaited."""
        table = DictTable(mocker.Mock(), {"steve": Player("steve")})
        done = asyncio.Event()

        async def callback(player: Player | None) -> None:
            assert player is not None
            table.add_to_cache(player)
            done.set()

        await table.load_by_id("steve", callback)

        assert done.is_set()
        assert table.get_by_id("steve") is not None

    def test_repr(self, mocker: MockerFixture) -> None:
        """Verify the repr shows the name and cache size."""
        table = DictTable(mocker.Mock(), {})
        assert repr(table) == "DictTable(name='dict_players', cached=0)"


@pytest.mark.unit
class TestSqlTable:
    """Tests for SqlTable against SQLite."""

    async def test_fetch_by_id(self, pool: ConnectionPool) -> None:
        """Verify rows are mapped through from_row."""
        await insert_player(pool, "steve", 5)
        table = PlayerTable(pool)

        assert await table.fetch_by_id("steve") == Player("steve", 5)
        assert await table.fetch_by_id("ghost") is None

    async def test_load_by_id_reads_store(self, pool: ConnectionPool) -> None:
        """Verify load_by_id goes through the executor."""
        await insert_player(pool, "steve", 5)
        table = PlayerTable(pool)
        received: list[Player | None] = []

        await table.load_by_id("steve", received.append)

        assert received == [Player("steve", 5)]
        assert pool.checked_out == 0

    async def test_load_all_replaces_cache(self, pool: ConnectionPool) -> None:
        """Verify load_all caches every row and drops stale entries."""
        await insert_player(pool, "steve", 5)
        await insert_player(pool, "alex", 7)
        table = PlayerTable(pool)
        table.add_to_cache(Player("deleted", 1))

        count = await table.load_all()

        assert count == 2
        assert table.get_by_id("alex") == Player("alex", 7)
        assert table.get_by_id("deleted") is None

    async def test_custom_id_column(self, pool: ConnectionPool) -> None:
        """Verify subclasses can key on another column."""
        await insert_player(pool, "steve", 42)

        class CoinsTable(PlayerTable):
            id_column = "coins"

        assert await CoinsTable(pool).fetch_by_id("42") == Player("steve", 42)

    async def test_unavailable_pool_raises(
        self, pool: ConnectionPool, mocker: MockerFixture
    ) -> None:
        """Verify an unavailable pool surfaces from fetch_by_id."""
        table = PlayerTable(pool)
        mocker.patch.object(
            pool, "ensure_available", side_effect=PoolUnavailableError("down")
        )

        with pytest.raises(PoolUnavailableError):
            await table.fetch_by_id("steve")

    async def test_failed_load_all_keeps_cache(self, pool: ConnectionPool) -> None:
        """Verify a store failure raises and leaves the warm cache in place."""
        await insert_player(pool, "steve", 5)
        table = PlayerTable(pool)
        assert await table.load_all() == 1
        await drop_players_table(pool)

        with pytest.raises(ExecutionError):
            await table.load_all()

        assert table.get_by_id("steve") == Player("steve", 5)
        assert len(table.cache) == 1

    async def test_failed_fetch_differs_from_absent_row(
        self, pool: ConnectionPool
    ) -> None:
        """Verify a failing query raises while a missing row returns None."""
        table = PlayerTable(pool)
        assert await table.fetch_by_id("ghost") is None

        await drop_players_table(pool)

        with pytest.raises(ExecutionError):
            await table.fetch_by_id("ghost")

    async def test_explicit_executor_is_kept(self, pool: ConnectionPool) -> None:
        """Verify use_executor does not replace an executor given explicitly."""
        own = AsyncExecutor(pool)
        table = PlayerTable(pool, executor=own)

        table.use_executor(AsyncExecutor(pool))

        assert table.executor is own

    async def test_private_executor_created_lazily(self, pool: ConnectionPool) -> None:
        """Verify an unregistered table builds its own executor once."""
        table = PlayerTable(pool)

        assert table.executor is table.executor
        assert table.executor.pool is pool
