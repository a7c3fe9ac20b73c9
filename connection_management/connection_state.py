"""
Connection State

Holds everything one serverless_mysql instance knows about its single
connection: the live handle, the reuse/error/retry counters, the connection
configuration and the cached server usage statistics.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from connection_management.driver import ConnectionHandle


class ConnectionPhase(str, Enum):
    """Lifecycle phase derived from the state."""
    DISCONNECTED = "disconnected"  # No handle and no connect in flight
    CONNECTING = "connecting"  # A connect task is running
    CONNECTED = "connected"  # A live handle is stored


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class MaxConnections:
    """Cached connection ceiling (server wide or per user)."""
    total: int = 0
    user_limit: bool = False
    updated: int = 0

    def is_fresh(self, refresh_interval_ms: int) -> bool:
        return now_ms() - self.updated <= refresh_interval_ms


@dataclass
class UsedConnections:
    """Cached connection usage: open sessions and the longest idle time in seconds."""
    total: int = 0
    max_age: int = 0
    updated: int = 0

    def is_fresh(self, refresh_interval_ms: int) -> bool:
        return now_ms() - self.updated <= refresh_interval_ms


@dataclass
class ConnectionState:
    """
    Mutable state owned by exactly one connection manager.

    ``handle is None`` is the disconnected marker; whenever it is None the
    reuse counter is zero. A stored handle is always a connected session.
    """
    config: Dict[str, Any] = field(default_factory=dict)
    handle: Optional[ConnectionHandle] = None
    reuse_counter: int = 0
    error_count: int = 0
    retry_count: int = 0
    connecting: Optional["asyncio.Future"] = None
    max_connections: MaxConnections = field(default_factory=MaxConnections)
    used_connections: UsedConnections = field(default_factory=UsedConnections)

    @property
    def phase(self) -> ConnectionPhase:
        if self.handle is not None:
            return ConnectionPhase.CONNECTED
        if self.connecting is not None:
            return ConnectionPhase.CONNECTING
        return ConnectionPhase.DISCONNECTED

    def attach(self, handle: ConnectionHandle) -> None:
        self.handle = handle
        self.reuse_counter = 0
        self.retry_count = 0

    def reset(self) -> None:
        self.handle = None
        self.reuse_counter = 0

    def merge_config(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """Shallow-merge ``values`` into the live config and return it."""
        self.config.update(values)
        return self.config
