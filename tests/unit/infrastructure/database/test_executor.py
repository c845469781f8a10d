"""Unit tests for src/infrastructure/database/executor.py.

This module tests fire-and-forget statement and query execution against a
temporary SQLite pool: commits, callbacks, failure reporting, concurrency
beyond the pool size and submission from other threads.
"""

import asyncio
import threading
from pathlib import Path
from typing import Any

import pytest
from pytest_mock import MockerFixture
from sqlalchemy.engine import CursorResult

from src.core.config import DatabaseConfig
from src.core.context import OperationContext
from src.core.exceptions import (
    AcquireTimeoutError,
    ExecutionError,
    PoolUnavailableError,
    StatementBindingError,
)
from src.infrastructure.database.executor import (
    AsyncExecutor,
    ExecutionOutcome,
    log_failure,
)
from src.infrastructure.database.pool import ConnectionPool
from src.infrastructure.database.profiles import LocalProfile
from tests.support import count_players, create_players_table, insert_player


@pytest.fixture
def executor(pool: ConnectionPool) -> AsyncExecutor:
    return AsyncExecutor(pool)


def _errors(records: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [r for r in records if r["level"].name == "ERROR"]


@pytest.mark.unit
class TestExecuteStatement:
    """Tests for execute_statement."""

    async def test_returns_before_completion(self, executor: AsyncExecutor) -> None:
        """Verify the call hands back a pending task without blocking."""
        handle = executor.execute_statement(
            "INSERT INTO players (id, coins) VALUES (?, ?)", "steve", 5
        )

        assert isinstance(handle, asyncio.Task)
        assert not handle.done()
        outcome = await handle
        assert outcome.succeeded

    async def test_commits(self, executor: AsyncExecutor, pool: ConnectionPool) -> None:
        """Verify statements are committed and report affected rows."""
        outcome = await executor.execute_statement(
            "INSERT INTO players (id, coins) VALUES (?, ?)", "steve", 5
        )

        assert outcome.succeeded
        assert outcome.rowcount == 1
        assert outcome.operation_id is not None
        assert outcome.operation_id.startswith("op-")
        assert await count_players(pool) == 1
        assert pool.checked_out == 0

    async def test_generated_keys_callback(self, pool: ConnectionPool) -> None:
        """Verify the callback sees the generated key after the commit."""
        async with pool.acquire() as conn:
            await conn.exec_driver_sql(
                "CREATE TABLE events (id INTEGER PRIMARY KEY, kind TEXT)"
            )
            await conn.commit()
        keys: list[int | None] = []
        executor = AsyncExecutor(pool)

        await executor.execute_statement(
            "INSERT INTO events (kind) VALUES (?)",
            "login",
            on_generated_keys=lambda result: keys.append(result.lastrowid),
        )

        assert keys == [1]

    async def test_invalid_sql_logs_once_and_does_not_raise(
        self, executor: AsyncExecutor, log_records: list[dict[str, Any]]
    ) -> None:
        """Verify a failing statement is reported once with its SQL."""
        sql = "UPDATE no_such_table SET x = ?"

        outcome = await executor.execute_statement(sql, 1)

        assert not outcome.succeeded
        assert isinstance(outcome.error, ExecutionError)
        assert outcome.error.sql == sql
        errors = _errors(log_records)
        assert len(errors) == 1
        assert sql in errors[0]["message"]
        assert errors[0]["extra"]["sql"] == sql

    async def test_binding_mismatch_reported(
        self, executor: AsyncExecutor, pool: ConnectionPool
    ) -> None:
        """Verify argument count mismatches fail without touching the store."""
        outcome = await executor.execute_statement(
            "INSERT INTO players (id, coins) VALUES (?, ?)", "steve"
        )

        assert isinstance(outcome.error, StatementBindingError)
        assert await count_players(pool) == 0

    def test_unavailable_pool_raises_synchronously(
        self, tmp_path: Path, pool_config: DatabaseConfig
    ) -> None:
        """Verify the caller learns about an unavailable pool immediately."""
        pool = ConnectionPool.open(
            LocalProfile(file_path=tmp_path / "missing" / "game.db"), pool_config
        )
        executor = AsyncExecutor(pool)

        with pytest.raises(PoolUnavailableError):
            executor.execute_statement("DELETE FROM players")
        with pytest.raises(PoolUnavailableError):
            executor.execute_query("SELECT 1")


@pytest.mark.unit
class TestExecuteQuery:
    """Tests for execute_query."""

    async def test_callback_receives_rows(
        self, executor: AsyncExecutor, pool: ConnectionPool
    ) -> None:
        """Verify rows are delivered to the callback."""
        await insert_player(pool, "steve", 5)
        await insert_player(pool, "alex", 7)
        rows: list[dict[str, Any]] = []

        outcome = await executor.execute_query(
            "SELECT id, coins FROM players WHERE coins > ? ORDER BY id",
            1,
            on_result=lambda result: rows.extend(
                dict(row) for row in result.mappings()
            ),
        )

        assert outcome.succeeded
        assert rows == [{"id": "alex", "coins": 7}, {"id": "steve", "coins": 5}]
        assert pool.checked_out == 0

    async def test_async_callback(
        self, executor: AsyncExecutor, pool: ConnectionPool
    ) -> None:
        """Verify coroutine callbacks are awaited before release."""
        await insert_player(pool, "steve", 5)
        seen: list[str] = []

        async def on_result(result: CursorResult[Any]) -> None:
            await asyncio.sleep(0)
            seen.extend(row.id for row in result)

        await executor.execute_query("SELECT id FROM players", on_result=on_result)

        assert seen == ["steve"]

    async def test_without_callback_has_no_effect(
        self, executor: AsyncExecutor, pool: ConnectionPool
    ) -> None:
        """Verify a query without a callback succeeds and changes nothing."""
        outcome = await executor.execute_query("SELECT * FROM players")

        assert outcome.succeeded
        assert await count_players(pool) == 0
        assert pool.checked_out == 0

    async def test_query_never_commits(
        self, executor: AsyncExecutor, pool: ConnectionPool
    ) -> None:
        """Verify writes issued through execute_query are rolled back."""
        outcome = await executor.execute_query(
            "INSERT INTO players (id, coins) VALUES (?, ?)", "ghost", 1
        )

        assert outcome.succeeded
        assert await count_players(pool) == 0

    async def test_callback_failure_is_reported(
        self, executor: AsyncExecutor, pool: ConnectionPool
    ) -> None:
        """Verify a raising callback becomes an ExecutionError outcome."""

        def explode(_result: CursorResult[Any]) -> None:
            msg = "host bug"
            raise ValueError(msg)

        outcome = await executor.execute_query("SELECT 1", on_result=explode)

        assert isinstance(outcome.error, ExecutionError)
        assert isinstance(outcome.error.cause, ValueError)
        assert pool.checked_out == 0


@pytest.mark.unit
class TestFailureHandling:
    """Tests for failure handler behavior."""

    async def test_custom_handler_receives_outcome(self, pool: ConnectionPool) -> None:
        """Verify the overridable handler is called once per failure."""
        failures: list[ExecutionOutcome] = []
        executor = AsyncExecutor(pool, on_failure=failures.append)

        await executor.execute_statement("NOT SQL")
        await executor.execute_statement("DELETE FROM players")

        assert len(failures) == 1
        assert failures[0].sql == "NOT SQL"

    async def test_raising_handler_is_contained(
        self, pool: ConnectionPool, mocker: MockerFixture
    ) -> None:
        """Verify a failing handler is logged and does not break the task."""
        mock_logger = mocker.patch("src.infrastructure.database.executor.logger")

        def bad_handler(_outcome: ExecutionOutcome) -> None:
            msg = "handler bug"
            raise RuntimeError(msg)

        executor = AsyncExecutor(pool, on_failure=bad_handler)

        outcome = await executor.execute_statement("NOT SQL")

        assert not outcome.succeeded
        mock_logger.exception.assert_called_once()

    def test_log_failure_includes_error_code(self, mocker: MockerFixture) -> None:
        """Verify the default handler logs the SQL and error code."""
        mock_logger = mocker.patch("src.infrastructure.database.executor.logger")
        error = ExecutionError("SELECT x", "no such column")

        log_failure(ExecutionOutcome("SELECT x", error=error, operation_id="op-1"))

        mock_logger.opt.assert_called_once_with(exception=error)
        kwargs = mock_logger.opt.return_value.error.call_args.kwargs
        assert kwargs["sql"] == "SELECT x"
        assert kwargs["error_code"] == "EXECUTION_FAILED"
        assert kwargs["operation_id"] == "op-1"


@pytest.mark.unit
class TestConcurrency:
    """Tests for many operations against a small pool."""

    async def test_more_operations_than_connections(
        self, executor: AsyncExecutor, pool: ConnectionPool
    ) -> None:
        """Verify N > M operations all complete with every connection returned."""
        handles = [
            executor.execute_statement(
                "INSERT INTO players (id, coins) VALUES (?, ?)", f"p{i}", i
            )
            for i in range(25)
        ]

        outcomes = await asyncio.wait_for(asyncio.gather(*handles), timeout=30)

        for outcome in outcomes:
            assert outcome.succeeded or isinstance(outcome.error, AcquireTimeoutError)
        succeeded = sum(outcome.succeeded for outcome in outcomes)
        assert await count_players(pool) == succeeded
        assert pool.checked_out == 0

    async def test_exhausted_pool_reports_acquire_timeout(
        self, local_profile: LocalProfile
    ) -> None:
        """Verify operations that cannot get a connection fail with a timeout."""
        pool = ConnectionPool.open(
            local_profile, DatabaseConfig(pool_size=2, pool_timeout=0.1)
        )
        await create_players_table(pool)
        failures: list[ExecutionOutcome] = []
        executor = AsyncExecutor(pool, on_failure=failures.append)

        async def hold(_result: CursorResult[Any]) -> None:
            await asyncio.sleep(0.5)

        try:
            outcomes = await asyncio.gather(
                *(executor.execute_query("SELECT 1", on_result=hold) for _ in range(6))
            )
        finally:
            await pool.dispose()

        assert any(outcome.succeeded for outcome in outcomes)
        assert failures
        assert all(isinstance(f.error, AcquireTimeoutError) for f in failures)

    async def test_max_in_flight_bounds_concurrency(self, pool: ConnectionPool) -> None:
        """Verify the optional semaphore caps concurrently running operations."""
        executor = AsyncExecutor(pool, max_in_flight=1)
        running = 0
        peak = 0

        async def track(_result: CursorResult[Any]) -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.02)
            running -= 1

        for _ in range(5):
            executor.execute_query("SELECT 1", on_result=track)
        await executor.drain()

        assert peak == 1
        assert executor.in_flight == 0

    async def test_each_operation_has_its_own_operation_id(
        self, executor: AsyncExecutor
    ) -> None:
        """Verify operations are correlated by distinct ids set in their task."""
        seen: list[str | None] = []

        def record(_result: CursorResult[Any]) -> None:
            seen.append(OperationContext.get_operation_id())

        outcomes = await asyncio.gather(
            *(executor.execute_query("SELECT 1", on_result=record) for _ in range(3))
        )

        assert set(seen) == {outcome.operation_id for outcome in outcomes}
        assert len(set(seen)) == 3
        assert OperationContext.get_operation_id() is None


@pytest.mark.unit
class TestThreadSubmission:
    """Tests for submitting work from threads without an event loop."""

    async def test_submission_from_worker_thread(
        self, pool: ConnectionPool
    ) -> None:
        """Verify a worker thread can submit onto the executor's loop."""
        executor = AsyncExecutor(pool, loop=asyncio.get_running_loop())

        future = await asyncio.to_thread(
            executor.execute_statement,
            "INSERT INTO players (id, coins) VALUES (?, ?)",
            "threaded",
            3,
        )
        outcome = await asyncio.wrap_future(future)

        assert outcome.succeeded
        assert await count_players(pool) == 1

    def test_no_loop_available(self, mocker: MockerFixture) -> None:
        """Verify submitting without any loop raises RuntimeError."""
        pool = mocker.Mock(spec=ConnectionPool)
        executor = AsyncExecutor(pool)
        errors: list[BaseException] = []

        def submit() -> None:
            try:
                executor.execute_query("SELECT 1")
            except RuntimeError as e:
                errors.append(e)

        thread = threading.Thread(target=submit)
        thread.start()
        thread.join()

        assert len(errors) == 1
