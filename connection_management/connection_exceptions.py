"""
Connection Management Exceptions

This module defines specialized exceptions for MySQL connection management,
providing detailed error reporting for connection-related issues.

These exceptions let applications:
- Distinguish a terminal connect failure from a query failure
- Inspect the underlying driver error that caused a connect to fail
- Catch every connection problem through a single base class
"""

from typing import Optional

from connection_management.error_codes import error_code
from serverless_mysql_exceptions import ConfigurationError, ServerlessMySQLError


class ConnectionError(ServerlessMySQLError):
    """
    Base exception for all connection-related errors.

    This base class ensures consistent error handling across the connection
    management system and allows applications to catch all connection errors
    uniformly while still providing access to specific error details.
    """
    pass


class ConnectionEstablishError(ConnectionError):
    """
    Raised when a connection cannot be established.

    The driver error that caused the failure is chained as ``__cause__`` and
    also exposed as ``cause``; its error code (if any) is exposed as ``code``
    so callers can branch on it without unwrapping.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
        self.code = error_code(cause) if cause is not None else None


class MaxRetriesExceededError(ConnectionEstablishError):
    """
    Raised when the capacity retry budget has been exhausted.

    The server kept answering with "too many connections" style errors for
    every attempt, which indicates the fleet is saturating the server.
    """
    pass


class InvalidConnectionStringError(ConnectionError, ConfigurationError):
    """
    Raised when a data source URL cannot be parsed.

    This is a configuration-time failure: it is raised synchronously when
    the connection string is supplied, never during a query.
    """
    pass
