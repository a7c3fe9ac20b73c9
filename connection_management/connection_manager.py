"""
MySQL Connection Manager

This module governs the lifecycle of the single MySQL connection owned by a
serverless_mysql instance: opening it lazily, retrying capacity errors with
jittered backoff, and deciding at the end of each unit of work whether to
keep it, reap idle server sessions, or close it.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from config import ServerlessMySQLSettings
from connection_management.backoff import BackoffStrategy, BackoffWait
from connection_management.connection_exceptions import ConnectionEstablishError, MaxRetriesExceededError
from connection_management.connection_state import (
    ConnectionPhase,
    ConnectionState,
    MaxConnections,
    UsedConnections,
    now_ms,
)
from connection_management.driver import ConnectionHandle, Driver
from connection_management.error_codes import error_code, is_capacity_error
from connection_management.events import ConnectionEvents

# Logger setup
logger = logging.getLogger(__name__)

QueryRunner = Callable[..., Awaitable[Any]]

MAX_CONNECTIONS_QUERY = """
    SELECT IF(@@max_user_connections > 0,
        LEAST(@@max_user_connections, @@max_connections),
        @@max_connections) AS total,
    IF(@@max_user_connections > 0, true, false) AS userLimit
"""

USED_CONNECTIONS_QUERY = """
    SELECT COUNT(ID) AS total,
        MAX(IF(command = 'Sleep' AND user = ?, time, 0)) AS max_age
    FROM information_schema.processlist
    WHERE (user = ? AND @@max_user_connections > 0) OR @@max_user_connections = 0
"""

ZOMBIE_CONNECTIONS_QUERY = """
    SELECT ID, time FROM information_schema.processlist
    WHERE command = 'Sleep' AND time >= ? AND user = ? AND ID != CONNECTION_ID()
    ORDER BY time DESC
"""


class ConnectionManager:
    """
    Governor for a single lazily-established MySQL connection.

    The manager keeps at most one connection open. Concurrent callers that
    need a connection while one is being established share the same connect
    attempt instead of opening a second session.

    Key responsibilities:
    - Capacity errors ("too many connections") are retried with jittered backoff
    - Session-level errors drop the stored handle so the next call reconnects
    - ``recycle()`` inspects server-wide usage and reaps idle sessions, or
      closes this connection when nothing else could be reclaimed
    """

    def __init__(
        self,
        driver: Driver,
        settings: ServerlessMySQLSettings,
        state: Optional[ConnectionState] = None,
        events: Optional[ConnectionEvents] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """
        Args:
            driver: Client library used to open sessions.
            settings: Retry, backoff and zombie settings.
            state: State record to operate on; a fresh one is created if None.
            events: Lifecycle hooks; no-ops if None.
            sleep: Coroutine function used for backoff delays (seconds).
        """
        self.driver = driver
        self.settings = settings
        self.state = state if state is not None else ConnectionState()
        self.events = events if events is not None else ConnectionEvents()
        self.sleep = sleep or asyncio.sleep
        self._strategy = BackoffStrategy.from_setting(settings.backoff)
        self._query: Optional[QueryRunner] = None
        self._closing = set()

    @property
    def strategy(self) -> BackoffStrategy:
        return self._strategy

    @property
    def handle(self) -> Optional[ConnectionHandle]:
        return self.state.handle

    @property
    def phase(self) -> ConnectionPhase:
        return self.state.phase

    def bind_query(self, query: QueryRunner) -> None:
        """Register the query runner used for server introspection and kills."""
        self._query = query

    # ------------------------------------------------------------------
    # Connecting
    # ------------------------------------------------------------------

    async def ensure_connected(self, wait: Any = None) -> None:
        """
        Make sure a live connection exists, opening one if necessary.

        Returns immediately when already connected. When a connect is already
        in flight, waits for it instead of starting another one.

        Args:
            wait: Previous backoff delay in milliseconds, used to seed
                  decorrelated jitter and custom backoff functions.

        Raises:
            MaxRetriesExceededError: Capacity errors persisted past ``max_retries``.
            ConnectionEstablishError: Any other connect failure.
        """
        if self.state.handle is not None:
            return

        task = self.state.connecting
        if task is None:
            task = asyncio.ensure_future(self._connect_with_retry(wait))
            self.state.connecting = task
            task.add_done_callback(self._clear_connecting)

        await asyncio.shield(task)

    def _clear_connecting(self, task: "asyncio.Future") -> None:
        if self.state.connecting is task:
            self.state.connecting = None

    async def _connect_with_retry(self, wait: Any) -> None:
        waiter = BackoffWait(
            self._strategy, self.settings.base, self.settings.cap, wait,
            max_attempts=self.settings.max_retries + 1,
        )

        def _before_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            self.state.retry_count += 1
            logger.debug(
                f"Connection attempt failed ({error_code(error)}), retry "
                f"{self.state.retry_count}/{self.settings.max_retries} in {waiter.last_delay_ms}ms"
            )
            self.events.on_retry(error, self.state.retry_count, waiter.last_delay_ms, self._strategy.name)

        retrying = AsyncRetrying(
            sleep=self.sleep,
            retry=retry_if_exception(lambda e: is_capacity_error(error_code(e))),
            stop=stop_after_attempt(self.settings.max_retries + 1),
            wait=waiter,
            before_sleep=_before_retry,
            reraise=True,
        )

        try:
            handle = await retrying(self._open)
        except Exception as e:
            self._fail_connect(e)
        else:
            self.state.attach(handle)
            logger.info(f"MySQL connection established to {self.state.config.get('host', 'localhost')}")
            self.events.on_connect(handle)

    async def _open(self) -> ConnectionHandle:
        handle = await self.driver.connect(self.state.config)
        handle.on_error(lambda error: self._on_session_error(handle, error))
        return handle

    def _fail_connect(self, error: BaseException) -> None:
        exhausted = is_capacity_error(error_code(error))
        retries = self.state.retry_count
        self.state.retry_count = 0
        self.events.on_connect_error(error)
        if exhausted:
            logger.error(f"Connection failed after {retries} retries: {error}")
            raise MaxRetriesExceededError(
                f"Failed to connect to MySQL after {retries} retries: {error}", error
            ) from error
        logger.error(f"Connection failed: {error}")
        raise ConnectionEstablishError(f"Failed to connect to MySQL: {error}", error) from error

    def _on_session_error(self, handle: ConnectionHandle, error: BaseException) -> None:
        """Session error listener: count it, drop the handle, notify."""
        self.state.error_count += 1
        self.reset(handle)
        logger.warning(f"MySQL session error ({error_code(error)}): {error}")
        self.events.on_error(error)

    def reset(self, handle: Optional[ConnectionHandle] = None) -> None:
        """
        Forget the current handle without closing it.

        When ``handle`` is given, the state is only reset if that handle is
        still the current one, so a stale failure cannot drop a newer session.
        """
        if handle is None or self.state.handle is handle:
            self.state.reset()

    # ------------------------------------------------------------------
    # Closing and recycling
    # ------------------------------------------------------------------

    def close_now(self) -> None:
        """
        Close the connection unconditionally.

        The graceful close runs in the background when an event loop is
        running; otherwise the socket is destroyed immediately. Does nothing
        when already disconnected.
        """
        handle = self.state.handle
        if handle is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(handle.end())
            self._closing.add(task)
            task.add_done_callback(self._closed)
        else:
            handle.destroy()

        self.state.reset()
        logger.info("MySQL connection closed")
        self.events.on_close()

    def _closed(self, task: "asyncio.Task") -> None:
        self._closing.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Error while closing MySQL connection: {task.exception()}")

    async def recycle(self) -> None:
        """
        End of a unit of work: keep, reap or close.

        If the server's connection usage is above ``conn_utilization``, idle
        sessions of this user are killed; when none could be killed, this
        connection is closed instead. Under the threshold, sessions idle for
        longer than ``zombie_max_timeout`` are still reaped.
        """
        if self.state.handle is None or not self.settings.manage_conns:
            return

        self.state.reuse_counter += 1

        max_conns = await self.get_max_connections()
        used_conns = await self.get_used_connections()

        if max_conns.total > 0 and used_conns.total / max_conns.total > self.settings.conn_utilization:
            timeout = min(
                max(used_conns.max_age, self.settings.zombie_min_timeout),
                self.settings.zombie_max_timeout,
            )
            killed = await self.kill_zombie_connections(timeout) if timeout <= used_conns.max_age else 0
            logger.debug(
                f"Connection utilization {used_conns.total}/{max_conns.total} over threshold, "
                f"killed {killed} zombie(s)"
            )
            if killed == 0:
                self.close_now()
        elif used_conns.max_age > self.settings.zombie_max_timeout:
            await self.kill_zombie_connections(self.settings.zombie_max_timeout)

    # ------------------------------------------------------------------
    # Server introspection
    # ------------------------------------------------------------------

    def _runner(self) -> QueryRunner:
        if self._query is None:
            raise RuntimeError("ConnectionManager has no query runner bound")
        return self._query

    async def get_max_connections(self) -> MaxConnections:
        """Connection ceiling for this user, cached for ``max_conns_freq`` ms."""
        cached = self.state.max_connections
        if cached.is_fresh(self.settings.max_conns_freq):
            return cached

        rows = await self._runner()(MAX_CONNECTIONS_QUERY)
        row = _first_row(rows)
        self.state.max_connections = MaxConnections(
            total=int(row.get("total") or 0),
            user_limit=row.get("userLimit") == 1,
            updated=now_ms(),
        )
        return self.state.max_connections

    async def get_used_connections(self) -> UsedConnections:
        """Open sessions and the longest idle time, cached for ``used_conns_freq`` ms."""
        cached = self.state.used_connections
        if cached.is_fresh(self.settings.used_conns_freq):
            return cached

        user = self.state.config.get("user")
        rows = await self._runner()(USED_CONNECTIONS_QUERY, [user, user])
        row = _first_row(rows)
        self.state.used_connections = UsedConnections(
            total=int(row.get("total") or 0),
            max_age=int(row.get("max_age") or 0),
            updated=now_ms(),
        )
        return self.state.used_connections

    async def kill_zombie_connections(self, timeout: Any) -> int:
        """
        Kill this user's sleeping sessions idle for at least ``timeout`` seconds.

        Failures (typically the session already went away) are reported
        through ``on_kill_error`` and do not stop the remaining kills.

        Returns:
            Number of sessions killed.
        """
        if not isinstance(timeout, (int, float)):
            timeout = 60 * 15
        query = self._runner()
        zombies = await query(ZOMBIE_CONNECTIONS_QUERY, [timeout, self.state.config.get("user")])

        killed = 0
        for zombie in zombies or ():
            try:
                await query("KILL ?", _zombie_id(zombie))
            except Exception as e:
                logger.debug(f"Could not kill zombie connection {_zombie_id(zombie)}: {e}")
                self.events.on_kill_error(e)
            else:
                killed += 1
                self.events.on_kill(zombie)

        if killed:
            logger.info(f"Killed {killed} zombie connection(s) idle for {timeout}s or more")
        return killed


def _first_row(rows: Any) -> Dict[str, Any]:
    if isinstance(rows, (list, tuple)) and rows and isinstance(rows[0], dict):
        return rows[0]
    return {}


def _zombie_id(zombie: Any) -> Any:
    if isinstance(zombie, dict):
        return zombie.get("ID", zombie.get("id"))
    return zombie[0]
