"""
Connection Management Module

This module manages the single MySQL connection held by a serverless
function instance, designed for environments where many short-lived
instances share one database server with a hard connection ceiling.

Key capabilities:
- Lazy, single-flight connection establishment
- Jittered backoff retries when the server refuses connections for capacity
- Automatic reconnection after lost sessions
- Zombie (idle) session reaping based on server-wide connection usage
- Pluggable driver boundary with an aiomysql default
- Connection-string parsing and lifecycle event hooks
"""

from .backoff import BackoffAlgorithm, BackoffStrategy, BackoffWait, compute_delay
from .connection_manager import ConnectionManager
from .connection_state import ConnectionPhase, ConnectionState, MaxConnections, UsedConnections
from .connection_string import parse_connection_string
from .driver import AiomysqlConnectionHandle, AiomysqlDriver, ConnectionHandle, Driver
from .error_codes import (
    error_code,
    is_capacity_error,
    is_connection_loss,
    is_hard_timeout,
    is_transient_query_error,
)
from .events import CallbackEvents, ConnectionEvents
from .connection_exceptions import (
    ConnectionError,
    ConnectionEstablishError,
    InvalidConnectionStringError,
    MaxRetriesExceededError,
)

__all__ = [
    'BackoffAlgorithm',
    'BackoffStrategy',
    'BackoffWait',
    'compute_delay',
    'ConnectionManager',
    'ConnectionPhase',
    'ConnectionState',
    'MaxConnections',
    'UsedConnections',
    'parse_connection_string',
    'AiomysqlConnectionHandle',
    'AiomysqlDriver',
    'ConnectionHandle',
    'Driver',
    'error_code',
    'is_capacity_error',
    'is_connection_loss',
    'is_hard_timeout',
    'is_transient_query_error',
    'CallbackEvents',
    'ConnectionEvents',
    'ConnectionError',
    'ConnectionEstablishError',
    'InvalidConnectionStringError',
    'MaxRetriesExceededError',
]
