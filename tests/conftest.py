"""Root conftest.py for the TableSync test suite.

This file contains project-wide fixtures and pytest configuration: pools over
temporary SQLite files and a loguru sink for asserting on log output.
"""

from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Any

import pytest
from loguru import logger

from src.core.config import DatabaseConfig
from src.infrastructure.database.pool import ConnectionPool
from src.infrastructure.database.profiles import LocalProfile
from tests.support import create_players_table


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test multiple components"
    )


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of a fresh SQLite file for one test."""
    return tmp_path / "tablesync-test.db"


@pytest.fixture
def local_profile(db_path: Path) -> LocalProfile:
    return LocalProfile(file_path=db_path)


@pytest.fixture
def pool_config() -> DatabaseConfig:
    """Small, fast-failing pool settings for tests."""
    return DatabaseConfig(pool_size=2, pool_timeout=2.0)


@pytest.fixture
async def pool(
    local_profile: LocalProfile, pool_config: DatabaseConfig
) -> AsyncGenerator[ConnectionPool]:
    """An open pool over a temporary SQLite file with a ``players`` table."""
    connection_pool = ConnectionPool.open(local_profile, pool_config)
    await create_players_table(connection_pool)

    yield connection_pool

    await connection_pool.dispose()


@pytest.fixture
def log_records() -> Generator[list[dict[str, Any]]]:
    """Collect loguru records emitted during the test.

    Returns:
        list[dict[str, Any]]: Loguru record dicts in emission order.
    """
    records: list[dict[str, Any]] = []

    def sink(message: Any) -> None:
        records.append(message.record)

    handler_id = logger.add(sink, level="DEBUG")
    yield records
    logger.remove(handler_id)
