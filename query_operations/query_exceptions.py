"""
Query Operations Exceptions

Exceptions raised by the query layer itself. Errors reported by the MySQL
server or the driver are not wrapped: they propagate unchanged so callers
can inspect their error codes, with the final SQL attached as ``sql`` when
SQL echo is enabled.
"""

from serverless_mysql_exceptions import ServerlessMySQLError


class QueryError(ServerlessMySQLError):
    """
    Base exception for query-layer errors.

    Raised directly when a query call cannot be turned into a statement,
    e.g. when no SQL was given outside of a transaction.
    """
    pass


class TransactionError(QueryError):
    """
    Raised when a transaction step produces arguments that are not a query.

    A step may return a SQL string, a mapping with ``sql``/``values``/``timeout``,
    a ``(sql, values)`` sequence or None (skip the step). Anything else is a
    programming error in the transaction definition.
    """
    pass
