"""Fire-and-forget statement and query execution against a connection pool.

Every call returns immediately with a future and runs as its own task on the
event loop: the task checks out a connection, binds the positional
arguments, executes, hands the result to an optional callback and releases
the connection. Nothing is raised to the caller once the task is running;
failures are captured in the task's ``ExecutionOutcome`` and reported to a
failure handler, which logs the offending SQL by default.

There is no back-pressure: unless ``max_in_flight`` is set, every call spawns
a task immediately and tasks queue on the pool's acquire timeout. Operations
are never retried.
"""

import asyncio
import concurrent.futures
import inspect
from collections.abc import Awaitable, Callable, Sequence
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any

from loguru import logger
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import SQLAlchemyError

from src.core.context import OperationContext, generate_operation_id
from src.core.exceptions import ExecutionError, TableSyncError
from src.core.observability import trace_operation
from src.core.types import SqlArgument
from src.infrastructure.database.binding import bind_positional
from src.infrastructure.database.pool import ConnectionPool

type ResultCallback = Callable[[CursorResult[Any]], Awaitable[object] | object]


@dataclass(frozen=True, slots=True)
class ExecutionOutcome:
    """Result of one statement or query.

    Attributes:
        sql: The SQL text as submitted.
        error: The failure, or None on success.
        rowcount: Rows affected as reported by the driver (-1 if unknown).
        operation_id: Identifier shared by the operation's logs and span.
    """

    sql: str
    error: TableSyncError | None = None
    rowcount: int = -1
    operation_id: str | None = None

    @property
    def succeeded(self) -> bool:
        """Whether the operation completed without error."""
        return self.error is None


type FailureHandler = Callable[[ExecutionOutcome], None]
type ExecutionHandle = (
    asyncio.Future[ExecutionOutcome] | concurrent.futures.Future[ExecutionOutcome]
)


def log_failure(outcome: ExecutionOutcome) -> None:
    """Default failure handler: log the failed SQL once with the error."""
    error = outcome.error
    logger.opt(exception=error).error(
        "Issue executing statement: {}",
        outcome.sql,
        sql=outcome.sql,
        error_code=error.error_code if error else None,
        operation_id=outcome.operation_id,
    )


class AsyncExecutor:
    """Runs SQL against a pool without blocking the caller.

    Args:
        pool: The pool to check connections out of.
        max_in_flight: Optional bound on concurrently running operations.
            None (the default) leaves concurrency unbounded.
        on_failure: Called with the outcome of every failed operation.
            Defaults to ``log_failure``.
        loop: Event loop to submit to from threads without a running loop.
            When omitted, the loop of the first in-loop call is used.

    Example:
        executor = AsyncExecutor(pool)
        executor.execute_statement(
            "UPDATE players SET coins = ? WHERE id = ?", 10, "steve"
        )
        executor.execute_query(
            "SELECT * FROM players", on_result=lambda rows: print(rows.all())
        )
    """

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        max_in_flight: int | None = None,
        on_failure: FailureHandler | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.pool = pool
        self.max_in_flight = max_in_flight
        self._on_failure = on_failure or log_failure
        self._slots = asyncio.Semaphore(max_in_flight) if max_in_flight else None
        self._loop = loop
        self._tasks: set[asyncio.Task[ExecutionOutcome]] = set()

    @property
    def in_flight(self) -> int:
        """Number of operations submitted but not yet finished."""
        return len(self._tasks)

    def execute_statement(
        self,
        sql: str,
        *args: SqlArgument,
        on_generated_keys: ResultCallback | None = None,
    ) -> ExecutionHandle:
        """Execute an update statement in the background and commit it.

        Args:
            sql: Statement with ``?`` placeholders.
            *args: Values bound to the placeholders, first to first.
            on_generated_keys: Receives the cursor result after the commit,
                carrying RETURNING rows and the driver's ``lastrowid``.

        Returns:
            ExecutionHandle: Future resolving to the ``ExecutionOutcome``.
                Awaiting it is optional.

        Raises:
            PoolUnavailableError: If the pool failed to initialize.
        """
        return self._spawn(sql, args, on_generated_keys, commit=True)

    def execute_query(
        self,
        sql: str,
        *args: SqlArgument,
        on_result: ResultCallback | None = None,
    ) -> ExecutionHandle:
        """Run a read-only query in the background.

        The result is only valid while ``on_result`` runs; it is closed and
        the connection released as soon as the callback returns. The
        connection's transaction is never committed.

        Args:
            sql: Query with ``?`` placeholders.
            *args: Values bound to the placeholders, first to first.
            on_result: Receives the buffered cursor result. When omitted the
                query runs with no effect beyond acquiring a connection.

        Returns:
            ExecutionHandle: Future resolving to the ``ExecutionOutcome``.

        Raises:
            PoolUnavailableError: If the pool failed to initialize.
        """
        return self._spawn(sql, args, on_result, commit=False)

    async def drain(self) -> None:
        """Wait until every submitted operation has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(
        self,
        sql: str,
        args: Sequence[SqlArgument],
        callback: ResultCallback | None,
        *,
        commit: bool,
    ) -> ExecutionHandle:
        self.pool.ensure_available()

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is None:
            if self._loop is None or self._loop.is_closed():
                msg = "No running event loop to submit the operation to"
                raise RuntimeError(msg)
            return asyncio.run_coroutine_threadsafe(
                self._run(sql, args, callback, commit=commit), self._loop
            )

        if self._loop is None:
            self._loop = running

        task = running.create_task(self._run(sql, args, callback, commit=commit))
        self._track(task)
        return task

    def _track(self, task: asyncio.Task[ExecutionOutcome]) -> None:
        if task not in self._tasks:
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(
        self,
        sql: str,
        args: Sequence[SqlArgument],
        callback: ResultCallback | None,
        *,
        commit: bool,
    ) -> ExecutionOutcome:
        current = asyncio.current_task()
        if current is not None:
            self._track(current)  # type: ignore[arg-type]

        operation_id = generate_operation_id()
        OperationContext.set_operation_id(operation_id)

        error: TableSyncError
        try:
            async with self._slots or nullcontext():
                span_name = "db.statement" if commit else "db.query"
                with trace_operation(span_name, sql=sql):
                    rowcount = await self._execute(sql, args, callback, commit=commit)
        except TableSyncError as e:
            error = e
        except SQLAlchemyError as e:
            error = ExecutionError(sql, str(e), cause=e)
        except Exception as e:  # noqa: BLE001 - callbacks are arbitrary host code
            error = ExecutionError(sql, f"Result callback failed: {e}", cause=e)
        else:
            logger.debug(
                "Executed {} ({} rows)",
                "statement" if commit else "query",
                rowcount,
                operation_id=operation_id,
            )
            return ExecutionOutcome(sql, rowcount=rowcount, operation_id=operation_id)

        outcome = ExecutionOutcome(sql, error=error, operation_id=operation_id)
        self._report(outcome)
        return outcome

    async def _execute(
        self,
        sql: str,
        args: Sequence[SqlArgument],
        callback: ResultCallback | None,
        *,
        commit: bool,
    ) -> int:
        clause, params = bind_positional(sql, args)

        async with self.pool.acquire() as conn:
            result = await conn.execute(clause, params)
            try:
                rowcount = result.rowcount
                if commit:
                    await conn.commit()
                if callback is not None:
                    returned = callback(result)
                    if inspect.isawaitable(returned):
                        await returned
            finally:
                result.close()

        return rowcount

    def _report(self, outcome: ExecutionOutcome) -> None:
        try:
            self._on_failure(outcome)
        except Exception:
            logger.exception(
                "Failure handler raised while reporting: {}",
                outcome.sql,
                operation_id=outcome.operation_id,
            )
