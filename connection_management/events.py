"""
Connection Lifecycle Events

Observability hooks fired by the connection manager and query executor.
Subclass ``ConnectionEvents`` and override the hooks you need, or pass
individual callables through ``CallbackEvents``.

Hooks are called inline. Exceptions raised by a hook are not caught and
propagate to whichever operation fired it.
"""

from typing import Any, Callable, Optional

EVENT_NAMES = (
    "on_connect",
    "on_connect_error",
    "on_retry",
    "on_close",
    "on_error",
    "on_kill",
    "on_kill_error",
    "on_query_retry",
)


class ConnectionEvents:
    """Default hooks; every method is a no-op."""

    def on_connect(self, handle: Any) -> None:
        """A new connection was established."""

    def on_connect_error(self, error: BaseException) -> None:
        """Connecting failed for good (non-retryable error or retries exhausted)."""

    def on_retry(self, error: BaseException, retries: int, delay: Any, backoff: str) -> None:
        """A connection attempt failed with a capacity error and will be retried."""

    def on_close(self) -> None:
        """The connection was explicitly closed."""

    def on_error(self, error: BaseException) -> None:
        """The connection reported a session-level error and was dropped."""

    def on_kill(self, zombie: Any) -> None:
        """An idle server session was killed."""

    def on_kill_error(self, error: BaseException) -> None:
        """An idle server session could not be killed."""

    def on_query_retry(self, error: BaseException, retries: int, delay: Any, backoff: str) -> None:
        """A statement failed with a transient error and will be retried."""


class CallbackEvents(ConnectionEvents):
    """
    Hooks backed by individual callables.

    Any callback left as None keeps the no-op default.

    Example:
        >>> events = CallbackEvents(on_retry=lambda err, n, delay, name: print(n, delay))
    """

    def __init__(
        self,
        on_connect: Optional[Callable[..., Any]] = None,
        on_connect_error: Optional[Callable[..., Any]] = None,
        on_retry: Optional[Callable[..., Any]] = None,
        on_close: Optional[Callable[..., Any]] = None,
        on_error: Optional[Callable[..., Any]] = None,
        on_kill: Optional[Callable[..., Any]] = None,
        on_kill_error: Optional[Callable[..., Any]] = None,
        on_query_retry: Optional[Callable[..., Any]] = None,
    ):
        self._callbacks = {
            "on_connect": on_connect,
            "on_connect_error": on_connect_error,
            "on_retry": on_retry,
            "on_close": on_close,
            "on_error": on_error,
            "on_kill": on_kill,
            "on_kill_error": on_kill_error,
            "on_query_retry": on_query_retry,
        }

    def _fire(self, name: str, *args: Any) -> None:
        callback = self._callbacks.get(name)
        if callable(callback):
            callback(*args)

    def on_connect(self, handle):
        self._fire("on_connect", handle)

    def on_connect_error(self, error):
        self._fire("on_connect_error", error)

    def on_retry(self, error, retries, delay, backoff):
        self._fire("on_retry", error, retries, delay, backoff)

    def on_close(self):
        self._fire("on_close")

    def on_error(self, error):
        self._fire("on_error", error)

    def on_kill(self, zombie):
        self._fire("on_kill", zombie)

    def on_kill_error(self, error):
        self._fire("on_kill_error", error)

    def on_query_retry(self, error, retries, delay, backoff):
        self._fire("on_query_retry", error, retries, delay, backoff)
