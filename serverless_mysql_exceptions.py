"""
Serverless MySQL Exceptions

This module defines the root exceptions for the serverless_mysql package
to provide clear error handling and reporting.
"""


class ServerlessMySQLError(Exception):
    """Base exception for all serverless_mysql errors"""
    pass


class ConfigurationError(ServerlessMySQLError):
    """Raised when configuration is invalid or missing"""
    pass


class StatementTimeoutError(ServerlessMySQLError):
    """
    Raised by the driver when a statement exceeds its per-call timeout.

    Carries the ``PROTOCOL_SEQUENCE_TIMEOUT`` code so the query layer treats
    it as a hard timeout: the socket is destroyed and the error surfaces.
    """

    code = "PROTOCOL_SEQUENCE_TIMEOUT"

    def __init__(self, timeout: float):
        super().__init__(f"Query inactivity timeout after {timeout}s")
        self.timeout = timeout


class ConnectionClosedError(ServerlessMySQLError):
    """
    Raised when a statement is issued against a handle that was torn down.

    The code places it in the connection-loss family, so the query layer
    reconnects and replays the statement.
    """

    code = "PROTOCOL_ENQUEUE_AFTER_QUIT"

    def __init__(self, message: str = "Cannot enqueue query after the connection was closed"):
        super().__init__(message)
