"""
Query Executor

Runs statements through the connection manager's single connection and
applies the recovery rules for the error classes a serverless workload
meets in practice:

- Hard statement timeouts destroy the socket and surface the error
- Lost connections are dropped and the statement is replayed on a new one
- Transient errors (deadlocks, lock wait timeouts, killed queries) are
  retried on the same connection with jittered backoff
- Any other failure inside a transaction rolls it back before surfacing
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from connection_management.backoff import BackoffStrategy, BackoffWait
from connection_management.connection_manager import ConnectionManager
from connection_management.driver import ConnectionHandle
from connection_management.error_codes import (
    error_code,
    is_connection_loss,
    is_hard_timeout,
    is_transient_query_error,
)
from query_operations.query_exceptions import QueryError
from query_operations.results import ResultHeader, ResultSet
from serverless_mysql_exceptions import ConnectionClosedError

logger = logging.getLogger(__name__)


@dataclass
class QueryOptions:
    """
    A normalized query call.

    Attributes:
        sql: Statement with optional ``?``/``??`` placeholders
        values: Placeholder values (a single value, a list, or None)
        timeout: Per-statement timeout in seconds
    """
    sql: str
    values: Any = None
    timeout: Optional[float] = None

    @classmethod
    def from_args(
        cls,
        sql: Union[str, Mapping[str, Any], "QueryOptions", None] = None,
        values: Any = None,
        timeout: Optional[float] = None,
    ) -> Optional["QueryOptions"]:
        """
        Build options from the public ``query()`` arguments.

        Returns None when no statement was given at all.

        Raises:
            QueryError: If the arguments cannot describe a statement
        """
        if sql is None:
            return None
        if isinstance(sql, QueryOptions):
            return sql
        if isinstance(sql, str):
            return cls(sql, values, timeout)
        if isinstance(sql, Mapping):
            if not isinstance(sql.get("sql"), str):
                raise QueryError("Query options must contain a 'sql' string")
            return cls(
                sql["sql"],
                sql.get("values", values),
                sql.get("timeout", timeout),
            )
        raise QueryError(f"Unsupported query argument of type {type(sql).__name__}")


@dataclass
class ExecutionContext:
    """
    Marks a statement as a transaction step.

    ``rollback`` is called with the error after a failed step has been
    rolled back. It may be a plain function or a coroutine function.
    """
    rollback: Optional[Callable[[BaseException], Any]] = None


class QueryExecutor:
    """
    Executes statements with connection management and recovery.

    The executor registers itself as the connection manager's query runner,
    so server introspection and zombie kills go through the same path.

    Args:
        manager: Connection manager owning the connection
    """

    def __init__(self, manager: ConnectionManager):
        self.manager = manager
        self.settings = manager.settings
        self.events = manager.events
        self.strategy = BackoffStrategy.from_setting(self.settings.query_retry_backoff)
        manager.bind_query(self.execute)

    @property
    def driver(self):
        return self.manager.driver

    async def execute(
        self,
        sql: Union[str, Mapping[str, Any], QueryOptions, None] = None,
        values: Any = None,
        *,
        timeout: Optional[float] = None,
        context: Optional[ExecutionContext] = None,
    ) -> Union[ResultSet, ResultHeader, Any]:
        """
        Run a statement and return its results.

        Args:
            sql: Statement, a ``{"sql", "values", "timeout"}`` mapping, or QueryOptions
            values: Placeholder values
            timeout: Per-statement timeout in seconds
            context: Transaction step context; enables rollback on failure

        Returns:
            ResultSet for statements returning rows, ResultHeader otherwise

        Raises:
            QueryError: If no statement was given outside a transaction
            Exception: Driver errors propagate unchanged once recovery is exhausted
        """
        options = QueryOptions.from_args(sql, values, timeout)
        if options is None:
            if context is not None:
                return ResultSet()
            raise QueryError("No SQL statement provided")

        final_sql = self.driver.format(options.sql, options.values)
        replays = 0

        while True:
            await self.manager.ensure_connected()
            handle = self.manager.handle
            try:
                if handle is None:
                    raise ConnectionClosedError()
                results = await self._run_with_retry(handle, final_sql, options.timeout)
            except Exception as e:
                code = error_code(e)
                if is_hard_timeout(code):
                    logger.warning(f"Statement timed out, destroying connection: {e}")
                    if handle is not None:
                        handle.destroy()
                    self.manager.reset(handle)
                    self._attach_sql(e, final_sql)
                    raise
                if is_connection_loss(code):
                    self.manager.reset(handle)
                    if replays < self.settings.max_retries:
                        replays += 1
                        logger.debug(f"Connection lost ({code}), replaying statement (replay {replays})")
                        continue
                elif context is not None:
                    await self.rollback(context, e)
                self._attach_sql(e, final_sql)
                raise
            return self._wrap(results, final_sql)

    async def _run_with_retry(self, handle: ConnectionHandle, sql: str, timeout: Optional[float]) -> Any:
        waiter = BackoffWait(
            self.strategy, self.settings.base, self.settings.cap,
            max_attempts=self.settings.max_query_retries + 1,
        )

        def _before_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            retries = retry_state.attempt_number
            logger.debug(
                f"Transient query error ({error_code(error)}), retry "
                f"{retries}/{self.settings.max_query_retries} in {waiter.last_delay_ms}ms"
            )
            self.events.on_query_retry(error, retries, waiter.last_delay_ms, self.strategy.name)

        retrying = AsyncRetrying(
            sleep=self.manager.sleep,
            retry=retry_if_exception(lambda e: is_transient_query_error(error_code(e))),
            stop=stop_after_attempt(self.settings.max_query_retries + 1),
            wait=waiter,
            before_sleep=_before_retry,
            reraise=True,
        )
        return await retrying(handle.query, sql, timeout=timeout)

    async def rollback(self, context: ExecutionContext, error: BaseException) -> None:
        """Best-effort ROLLBACK, then hand the error to the context's rollback function."""
        try:
            await self.execute("ROLLBACK")
        except Exception as e:
            logger.warning(f"ROLLBACK after failed transaction step failed: {e}")
        if context.rollback is not None:
            outcome = context.rollback(error)
            if inspect.isawaitable(outcome):
                await outcome

    def _echo(self) -> bool:
        return bool(self.settings.return_final_sql_query)

    def _attach_sql(self, error: BaseException, sql: str) -> None:
        if self._echo():
            try:
                error.sql = sql
            except AttributeError:
                logger.debug(f"Cannot attach SQL to {type(error).__name__}")

    def _wrap(self, results: Any, sql: str) -> Any:
        echo = sql if self._echo() else None
        if isinstance(results, ResultSet):
            if echo is not None:
                results.sql = echo
            return results
        if isinstance(results, list):
            return ResultSet(results, echo)
        if isinstance(results, Mapping):
            return ResultHeader(dict(results), echo)
        return results

    async def change_user(self, options: Mapping[str, Any]) -> bool:
        """
        Switch the authenticated user and/or database of the current session.

        Connects first if needed. On success the options are merged into the
        connection configuration so later reconnects use them.

        Raises:
            Exception: The driver error. Connection-loss errors also drop the
                       stored handle so the next call reconnects.
        """
        await self.manager.ensure_connected()
        handle = self.manager.handle
        try:
            if handle is None:
                raise ConnectionClosedError()
            await handle.change_user(options)
        except Exception as e:
            if is_connection_loss(error_code(e)):
                logger.warning(f"Connection lost while changing user: {e}")
                self.manager.reset(handle)
            raise
        self.manager.state.merge_config(options)
        logger.info(f"Changed session user to {options.get('user', self.manager.state.config.get('user'))}")
        return True
