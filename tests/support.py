"""Test domain shared by unit and integration tests: a ``players`` table."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import text

from src.infrastructure.database.executor import AsyncExecutor
from src.infrastructure.database.pool import ConnectionPool
from src.infrastructure.tables.base import SqlTable

PLAYERS_DDL = "CREATE TABLE IF NOT EXISTS players (id TEXT PRIMARY KEY, coins INTEGER)"


@dataclass
class Player:
    """Cached entity used throughout the tests."""

    id: str
    coins: int = 0


class PlayerTable(SqlTable[Player]):
    """``players`` table keyed by ``id``."""

    def __init__(
        self, pool: ConnectionPool, executor: AsyncExecutor | None = None
    ) -> None:
        super().__init__(pool, "players", executor=executor)

    def from_row(self, row: Mapping[str, Any]) -> Player:
        return Player(id=row["id"], coins=row["coins"])


async def create_players_table(pool: ConnectionPool) -> None:
    async with pool.acquire() as conn:
        await conn.execute(text(PLAYERS_DDL))
        await conn.commit()


async def insert_player(pool: ConnectionPool, player_id: str, coins: int) -> None:
    """Insert or replace a row directly, bypassing the executor."""
    async with pool.acquire() as conn:
        await conn.execute(
            text("INSERT OR REPLACE INTO players (id, coins) VALUES (:id, :coins)"),
            {"id": player_id, "coins": coins},
        )
        await conn.commit()


async def delete_player(pool: ConnectionPool, player_id: str) -> None:
    async with pool.acquire() as conn:
        await conn.execute(
            text("DELETE FROM players WHERE id = :id"), {"id": player_id}
        )
        await conn.commit()


async def count_players(pool: ConnectionPool) -> int:
    async with pool.acquire() as conn:
        result = await conn.execute(text("SELECT COUNT(*) FROM players"))
        return int(result.scalar_one())


async def drop_players_table(pool: ConnectionPool) -> None:
    async with pool.acquire() as conn:
        await conn.execute(text("DROP TABLE players"))
        await conn.commit()
