"""
Query Operations Module

This module provides statement execution on top of the managed connection:
- Placeholder formatting and optional SQL echo on results and errors
- Transparent replay of statements after a lost connection
- Retries with jittered backoff for deadlocks and lock wait timeouts
- Transactions with automatic ROLLBACK on failure
"""

from .executor import ExecutionContext, QueryExecutor, QueryOptions
from .query_exceptions import QueryError, TransactionError
from .results import ResultHeader, ResultSet
from .transaction import Transaction

__all__ = [
    'ExecutionContext',
    'QueryExecutor',
    'QueryOptions',
    'QueryError',
    'TransactionError',
    'ResultHeader',
    'ResultSet',
    'Transaction',
]
