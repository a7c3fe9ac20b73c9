"""
Transaction Builder

Collects a sequence of statements and runs them between
``START TRANSACTION`` and ``COMMIT`` on the managed connection.

Example:
    results = await (
        db.transaction()
        .query("INSERT INTO orders (item) VALUES (?)", ["book"])
        .query(lambda last, results: ("UPDATE stock SET qty = qty - 1 WHERE order_id = ?", [last["insert_id"]]))
        .rollback(lambda error: logger.error(f"Order failed: {error}"))
        .commit()
    )
"""

import inspect
import logging
from typing import Any, Callable, List, Mapping, Optional

from query_operations.executor import ExecutionContext, QueryExecutor, QueryOptions
from query_operations.query_exceptions import TransactionError

logger = logging.getLogger(__name__)

Step = Callable[[Any, List[Any]], Any]


class Transaction:
    """
    Fluent transaction builder.

    Each step is a function ``(last_result, results) -> query arguments``.
    Literal arguments passed to ``query()`` are wrapped into such a function.
    A step may return None to be skipped. Steps may be coroutine functions.
    """

    def __init__(self, executor: QueryExecutor):
        self._executor = executor
        self._steps: List[Step] = []
        self._rollback: Callable[[BaseException], Any] = _noop_rollback

    def query(self, sql: Any = None, values: Any = None, *, timeout: Optional[float] = None) -> "Transaction":
        """Append a step; a callable is used as the step itself."""
        if callable(sql):
            self._steps.append(sql)
        else:
            self._steps.append(lambda last, results: QueryOptions.from_args(sql, values, timeout))
        return self

    def rollback(self, fn: Optional[Callable[[BaseException], Any]] = None) -> "Transaction":
        """Set the function called with the error when a step fails."""
        if callable(fn):
            self._rollback = fn
        return self

    async def commit(self) -> List[Any]:
        """
        Run all steps inside a transaction and commit.

        Returns:
            The result of each step, in order

        Raises:
            Exception: The first failing step's error, after ROLLBACK and the
                       rollback function have run
        """
        executor = self._executor
        context = ExecutionContext(rollback=self._rollback)
        results: List[Any] = []

        await executor.execute("START TRANSACTION")
        for step in self._steps:
            last = results[-1] if results else None
            try:
                arguments = step(last, results)
                if inspect.isawaitable(arguments):
                    arguments = await arguments
                call = _as_call(arguments)
            except Exception as e:
                logger.debug(f"Transaction step {len(results) + 1} failed before reaching the server: {e}")
                await executor.rollback(context, e)
                raise
            results.append(await executor.execute(*call, context=context))
        await executor.execute("COMMIT")

        logger.debug(f"Committed transaction with {len(self._steps)} step(s)")
        return results


def _noop_rollback(error: BaseException) -> None:
    pass


def _as_call(arguments: Any) -> tuple:
    """Turn a step's return value into ``execute()`` positional arguments."""
    if arguments is None:
        return ()
    if isinstance(arguments, (str, Mapping, QueryOptions)):
        return (arguments,)
    if isinstance(arguments, (list, tuple)):
        if not arguments:
            return ()
        if len(arguments) <= 2 and isinstance(arguments[0], (str, Mapping)):
            return tuple(arguments)
    raise TransactionError(f"Transaction step returned unsupported query arguments: {arguments!r}")
