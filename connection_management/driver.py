"""
MySQL Driver Boundary

This module defines the small capability surface the connection manager
needs from a MySQL client library, and the default implementation of that
surface on top of aiomysql.

The manager never talks to aiomysql directly. Anything that implements
``Driver`` and ``ConnectionHandle`` can be injected instead, which is how
the test suite scripts connection and query failures.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Union, runtime_checkable

import aiomysql

from connection_management.error_codes import error_code, is_connection_loss
from serverless_mysql_exceptions import StatementTimeoutError
from utils.sql_format import DEFAULT_CHARSET, escape, escape_id, format_sql

logger = logging.getLogger(__name__)

ErrorListener = Callable[[BaseException], None]
QueryResults = Union[List[Any], Dict[str, Any]]


@runtime_checkable
class ConnectionHandle(Protocol):
    """Protocol implemented by a single live MySQL session."""

    def on_error(self, listener: ErrorListener) -> None:
        """Register a listener for session-level errors (e.g. connection lost)."""

    async def query(self, sql: str, timeout: Optional[float] = None) -> QueryResults:
        """Run a fully formatted statement; rows as a list, write results as a dict."""

    async def end(self) -> None:
        """Gracefully close the session."""

    def destroy(self) -> None:
        """Tear the socket down immediately."""

    async def change_user(self, options: Mapping[str, Any]) -> None:
        """Switch the authenticated user and/or default database."""


@runtime_checkable
class Driver(Protocol):
    """Protocol implemented by MySQL client libraries."""

    async def connect(self, config: Mapping[str, Any]) -> ConnectionHandle:
        """Open a new session using the connection configuration."""

    def escape(self, value: Any) -> str:
        """Escape a value for inclusion in SQL."""

    def escape_id(self, identifier: Any) -> str:
        """Quote an identifier."""

    def format(self, sql: str, values: Optional[Any] = None) -> str:
        """Substitute ``?``/``??`` placeholders with escaped values."""


class AiomysqlConnectionHandle:
    """
    ConnectionHandle backed by an aiomysql connection.

    Statements are formatted client side before they reach this handle, so
    they are executed without driver-side parameter binding.
    """

    def __init__(self, connection: "aiomysql.Connection", driver: "AiomysqlDriver", connect_kwargs: Dict[str, Any]):
        self._connection = connection
        self._driver = driver
        self._connect_kwargs = connect_kwargs
        self._error_listeners: List[ErrorListener] = []

    @property
    def connection(self) -> "aiomysql.Connection":
        """The underlying aiomysql connection."""
        return self._connection

    def on_error(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def _emit_error(self, error: BaseException) -> None:
        for listener in tuple(self._error_listeners):
            listener(error)

    async def query(self, sql: str, timeout: Optional[float] = None) -> QueryResults:
        try:
            cursor = await self._connection.cursor(self._driver.cursor_class)
            execution = cursor.execute(sql)
            if timeout is not None:
                await asyncio.wait_for(execution, timeout)
            else:
                await execution
            if cursor.description is not None:
                result = list(await cursor.fetchall())
            else:
                result = {
                    "affected_rows": cursor.rowcount,
                    "insert_id": cursor.lastrowid,
                }
            # Skipped on failure, where no result set is left to drain
            await cursor.close()
            return result
        except asyncio.TimeoutError as e:
            raise StatementTimeoutError(timeout) from e
        except Exception as e:
            if is_connection_loss(error_code(e)):
                self._emit_error(e)
            raise

    async def end(self) -> None:
        await self._connection.ensure_closed()

    def destroy(self) -> None:
        self._connection.close()

    async def change_user(self, options: Mapping[str, Any]) -> None:
        """
        Re-authenticate by opening a session with the merged options.

        The old session is only closed once the new one is established, so
        a failed switch leaves the handle usable.
        """
        kwargs = dict(self._connect_kwargs)
        kwargs.update(self._driver.connect_kwargs(options))
        connection = await aiomysql.connect(**kwargs)
        previous, self._connection = self._connection, connection
        self._connect_kwargs = kwargs
        previous.close()


class AiomysqlDriver:
    """
    Driver that opens sessions with aiomysql.

    Args:
        cursor_class: aiomysql cursor class used for statements. Rows come
                      back as dicts by default.
        charset: Charset used for escaping values client side.
        autocommit: Default autocommit mode for new sessions.
    """

    # Keyword arguments accepted by aiomysql.connect
    CONNECT_ARGUMENTS = frozenset({
        "host", "user", "password", "db", "port", "unix_socket", "charset",
        "sql_mode", "read_default_file", "conv", "use_unicode", "client_flag",
        "init_command", "connect_timeout", "read_default_group", "autocommit",
        "echo", "local_infile", "ssl", "auth_plugin", "program_name",
        "server_public_key",
    })

    _ALIASES = {"database": "db", "socket_path": "unix_socket", "socketPath": "unix_socket", "connectTimeout": "connect_timeout"}
    _INT_ARGUMENTS = frozenset({"port", "client_flag"})
    _FLOAT_ARGUMENTS = frozenset({"connect_timeout"})
    _BOOL_ARGUMENTS = frozenset({"autocommit", "echo", "local_infile", "use_unicode"})

    def __init__(self, cursor_class: Any = aiomysql.DictCursor, charset: str = DEFAULT_CHARSET, autocommit: bool = True):
        self.cursor_class = cursor_class
        self.charset = charset
        self.autocommit = autocommit

    def connect_kwargs(self, config: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Translate a connection configuration into aiomysql.connect kwargs.

        Connection-string parameters arrive as strings and are coerced for
        the numeric and boolean arguments. Keys aiomysql does not accept are
        dropped.
        """
        kwargs: Dict[str, Any] = {}
        for key, value in config.items():
            name = self._ALIASES.get(key, key)
            if name not in self.CONNECT_ARGUMENTS:
                logger.debug(f"Ignoring connection option '{key}' not supported by aiomysql")
                continue
            kwargs[name] = self._coerce(name, value)
        return kwargs

    def _coerce(self, name: str, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        if name in self._INT_ARGUMENTS:
            return int(value)
        if name in self._FLOAT_ARGUMENTS:
            return float(value)
        if name in self._BOOL_ARGUMENTS:
            return value.strip().lower() in ("1", "true", "yes", "on")
        return value

    async def connect(self, config: Mapping[str, Any]) -> AiomysqlConnectionHandle:
        kwargs = self.connect_kwargs(config)
        kwargs.setdefault("autocommit", self.autocommit)
        kwargs.setdefault("charset", self.charset)
        connection = await aiomysql.connect(**kwargs)
        logger.debug(f"Opened aiomysql session to {kwargs.get('host', 'localhost')}:{kwargs.get('port', 3306)}")
        return AiomysqlConnectionHandle(connection, self, kwargs)

    def escape(self, value: Any) -> str:
        return escape(value, self.charset)

    def escape_id(self, identifier: Any) -> str:
        return escape_id(identifier)

    def format(self, sql: str, values: Optional[Any] = None) -> str:
        return format_sql(sql, values, self.charset)
