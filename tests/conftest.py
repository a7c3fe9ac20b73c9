"""
Shared test doubles for serverless_mysql.

``FakeDriver`` stands in for aiomysql: connect failures and query failures
are scripted per test, server statistics are plain attributes, and a tiny
in-memory ``items`` table with START TRANSACTION / COMMIT / ROLLBACK
semantics backs the transaction tests.
"""

import asyncio
import re
from typing import Any, Dict, List, Optional

import pytest

from client import ServerlessMySQL
from connection_management.error_codes import error_code, is_connection_loss
from connection_management.events import ConnectionEvents
from serverless_mysql_exceptions import ConnectionClosedError
from utils.sql_format import escape, escape_id, format_sql


class FakeMySQLError(Exception):
    """Driver error tagged with a MySQL/Node-style error code."""

    def __init__(self, code: str, message: Optional[str] = None):
        super().__init__(message or code)
        self.code = code


class FakeHandle:
    def __init__(self, driver: "FakeDriver", handle_id: int):
        self.driver = driver
        self.id = handle_id
        self.listeners = []
        self.ended = False
        self.destroyed = False
        self.user_changes: List[Dict[str, Any]] = []

    def on_error(self, listener) -> None:
        self.listeners.append(listener)

    async def query(self, sql: str, timeout: Optional[float] = None) -> Any:
        if self.ended or self.destroyed:
            raise ConnectionClosedError()
        self.driver.executed.append(sql)
        await asyncio.sleep(0)
        if self.driver.query_errors:
            error = self.driver.query_errors.pop(0)
            if error is not None:
                if is_connection_loss(error_code(error)):
                    for listener in list(self.listeners):
                        listener(error)
                raise error
        return self.driver.respond(sql)

    async def end(self) -> None:
        self.ended = True

    def destroy(self) -> None:
        self.destroyed = True

    async def change_user(self, options) -> None:
        if self.driver.change_user_errors:
            raise self.driver.change_user_errors.pop(0)
        self.user_changes.append(dict(options))


class FakeDriver:
    """Scripted driver with simulated server statistics."""

    def __init__(self):
        self.connect_calls = 0
        self.connect_configs: List[Dict[str, Any]] = []
        self.connect_errors: List[BaseException] = []
        self.query_errors: List[Optional[BaseException]] = []
        self.change_user_errors: List[BaseException] = []
        self.handles: List[FakeHandle] = []
        self.executed: List[str] = []

        self.max_connections = 100
        self.used_connections = 10
        self.max_age = 0
        self.zombies: List[Dict[str, Any]] = []
        self.kill_errors: Dict[int, BaseException] = {}
        self.killed: List[int] = []

        self.items: List[str] = []
        self._snapshot: Optional[List[str]] = None

    async def connect(self, config) -> FakeHandle:
        self.connect_calls += 1
        self.connect_configs.append(dict(config))
        await asyncio.sleep(0)
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        handle = FakeHandle(self, len(self.handles) + 1)
        self.handles.append(handle)
        return handle

    def escape(self, value: Any) -> str:
        return escape(value)

    def escape_id(self, identifier: Any) -> str:
        return escape_id(identifier)

    def format(self, sql: str, values: Any = None) -> str:
        return format_sql(sql, values)

    def respond(self, sql: str) -> Any:
        statement = " ".join(sql.split())
        kill = re.match(r"KILL (\d+)$", statement)
        if kill:
            zombie_id = int(kill.group(1))
            if zombie_id in self.kill_errors:
                raise self.kill_errors[zombie_id]
            self.killed.append(zombie_id)
            return {"affected_rows": 0, "insert_id": 0}
        if "ORDER BY time DESC" in statement:
            return [dict(zombie) for zombie in self.zombies]
        if "COUNT(ID) AS total" in statement:
            return [{"total": self.used_connections, "max_age": self.max_age}]
        if "@@max_connections) AS total" in statement:
            return [{"total": self.max_connections, "userLimit": 0}]
        if statement == "START TRANSACTION":
            self._snapshot = list(self.items)
            return {"affected_rows": 0, "insert_id": 0}
        if statement == "COMMIT":
            self._snapshot = None
            return {"affected_rows": 0, "insert_id": 0}
        if statement == "ROLLBACK":
            if self._snapshot is not None:
                self.items = self._snapshot
                self._snapshot = None
            return {"affected_rows": 0, "insert_id": 0}
        insert = re.match(r"INSERT INTO items \(name\) VALUES \('(.*)'\)$", statement)
        if insert:
            self.items.append(insert.group(1))
            return {"affected_rows": 1, "insert_id": len(self.items)}
        if statement == "SELECT COUNT(*) AS total FROM items":
            return [{"total": len(self.items)}]
        if statement.startswith("SELECT"):
            return [{"statement": statement}]
        return {"affected_rows": 0, "insert_id": 0}


class RecordingEvents(ConnectionEvents):
    """Events object that records every hook call as (name, args)."""

    def __init__(self):
        self.calls = []

    def named(self, name: str) -> List[tuple]:
        return [args for hook, args in self.calls if hook == name]

    def on_connect(self, handle):
        self.calls.append(("on_connect", (handle,)))

    def on_connect_error(self, error):
        self.calls.append(("on_connect_error", (error,)))

    def on_retry(self, error, retries, delay, backoff):
        self.calls.append(("on_retry", (error, retries, delay, backoff)))

    def on_close(self):
        self.calls.append(("on_close", ()))

    def on_error(self, error):
        self.calls.append(("on_error", (error,)))

    def on_kill(self, zombie):
        self.calls.append(("on_kill", (zombie,)))

    def on_kill_error(self, error):
        self.calls.append(("on_kill_error", (error,)))

    def on_query_retry(self, error, retries, delay, backoff):
        self.calls.append(("on_query_retry", (error, retries, delay, backoff)))


class InstantSleep:
    """Records requested backoff delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


DEFAULT_CONFIG = {"host": "db.test", "user": "app", "password": "secret", "database": "shop"}


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def events() -> RecordingEvents:
    return RecordingEvents()


@pytest.fixture
def sleeper() -> InstantSleep:
    return InstantSleep()


@pytest.fixture
def make_db(driver, events, sleeper):
    def _make(**options) -> ServerlessMySQL:
        options.setdefault("config", dict(DEFAULT_CONFIG))
        return ServerlessMySQL(library=driver, events=events, sleep=sleeper, **options)

    return _make
