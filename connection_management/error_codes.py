"""
MySQL Error Classification

Maps exceptions raised by the driver onto string error-code tags and groups
those tags into the families the retry engine cares about:

- capacity errors: the server refused a new session, retry the connect with backoff
- connection-loss errors: the session is gone, reconnect and replay silently
- hard timeouts: the socket cannot be trusted, destroy it and surface the error
- transient query errors: lock contention or interruption, retry the statement with backoff
"""

import asyncio
import socket
from typing import Optional

from pymysql import err as pymysql_err
from pymysql.constants import CR, ER

PROTOCOL_CONNECTION_LOST = "PROTOCOL_CONNECTION_LOST"
PROTOCOL_SEQUENCE_TIMEOUT = "PROTOCOL_SEQUENCE_TIMEOUT"
PROTOCOL_ENQUEUE_AFTER_QUIT = "PROTOCOL_ENQUEUE_AFTER_QUIT"

CAPACITY_ERRORS = frozenset({
    "ER_TOO_MANY_USER_CONNECTIONS",
    "ER_CON_COUNT_ERROR",
    "ER_USER_LIMIT_REACHED",
    "ER_OUT_OF_RESOURCES",
    PROTOCOL_CONNECTION_LOST,
    PROTOCOL_SEQUENCE_TIMEOUT,
    "ETIMEDOUT",
})

CONNECTION_LOSS_ERRORS = frozenset({
    PROTOCOL_CONNECTION_LOST,
    "EPIPE",
    "ECONNRESET",
})

TRANSIENT_QUERY_ERRORS = frozenset({
    "ER_LOCK_DEADLOCK",
    "ER_LOCK_WAIT_TIMEOUT",
    "ER_QUERY_TIMEOUT",
    "ER_QUERY_INTERRUPTED",
    "ER_QUERY_KILLED",
    "ER_LOCKING_SERVICE_DEADLOCK",
    "ER_LOCKING_SERVICE_TIMEOUT",
    "ER_LOCKING_SERVICE_WRONG_NAME",
    "ER_LOCK_ABORTED",
})

# Server error numbers that PyMySQL's ER table does not name.
_SERVER_ERROR_NAMES = {
    1689: "ER_LOCK_ABORTED",
    3024: "ER_QUERY_TIMEOUT",
    3058: "ER_LOCKING_SERVICE_WRONG_NAME",
    3059: "ER_LOCKING_SERVICE_DEADLOCK",
    3060: "ER_LOCKING_SERVICE_TIMEOUT",
}

_CLIENT_ERROR_NAMES = {
    CR.CR_SERVER_GONE_ERROR: PROTOCOL_CONNECTION_LOST,
    CR.CR_SERVER_LOST: PROTOCOL_CONNECTION_LOST,
    CR.CR_CONN_HOST_ERROR: "ECONNREFUSED",
}


def _build_server_error_names():
    names = {}
    for name in dir(ER):
        value = getattr(ER, name)
        if name.isupper() and not name.startswith("ERROR_") and isinstance(value, int):
            names.setdefault(value, f"ER_{name}")
    names.update(_SERVER_ERROR_NAMES)
    return names


_ER_NAMES = _build_server_error_names()


def error_code(error: BaseException) -> Optional[str]:
    """
    Return the error-code tag for an exception, or None if it has none.

    An explicit ``code`` attribute always wins, which lets callers (and test
    doubles) tag their own exceptions. PyMySQL errors are mapped by errno,
    and a few OS-level failures are mapped to their errno names.
    """
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code

    if isinstance(error, pymysql_err.MySQLError):
        errno = error.args[0] if error.args and isinstance(error.args[0], int) else None
        if errno in _CLIENT_ERROR_NAMES:
            return _CLIENT_ERROR_NAMES[errno]
        if errno in _ER_NAMES:
            return _ER_NAMES[errno]
        if isinstance(error, pymysql_err.InterfaceError):
            # PyMySQL raises InterfaceError(0, '') once the socket is closed
            return PROTOCOL_ENQUEUE_AFTER_QUIT
        return None

    if isinstance(error, asyncio.TimeoutError):
        return PROTOCOL_SEQUENCE_TIMEOUT
    if isinstance(error, socket.timeout):
        return "ETIMEDOUT"
    if isinstance(error, BrokenPipeError):
        return "EPIPE"
    if isinstance(error, ConnectionResetError):
        return "ECONNRESET"
    if isinstance(error, ConnectionRefusedError):
        return "ECONNREFUSED"
    return None


def is_capacity_error(code: Optional[str]) -> bool:
    return code in CAPACITY_ERRORS


def is_connection_loss(code: Optional[str]) -> bool:
    if code is None:
        return False
    return code in CONNECTION_LOSS_ERRORS or code.startswith("PROTOCOL_ENQUEUE_AFTER_")


def is_hard_timeout(code: Optional[str]) -> bool:
    return code == PROTOCOL_SEQUENCE_TIMEOUT


def is_transient_query_error(code: Optional[str]) -> bool:
    return code in TRANSIENT_QUERY_ERRORS
