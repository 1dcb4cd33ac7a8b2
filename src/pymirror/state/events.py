"""Change notification.

Mutations call :meth:`ChangeNotifier.notify`; the notifier coalesces calls
for the same type within a fixed window into one ``change`` event (carrying
the type name) and one ``change:<type>`` event on the shared
:class:`EventEmitter`.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Coroutine
from typing import Any

from pymirror._constants import DEFAULT_DEBOUNCE_SECONDS

_logger = logging.getLogger(__name__)

CHANGE_EVENT = "change"

Listener = Callable[..., Any]


def change_event(type_name: str) -> str:
    """Type-qualified event name, e.g. ``change:tasks``."""
    return f"{CHANGE_EVENT}:{type_name}"


class EventEmitter:
    """Minimal publish/subscribe registry keyed by event name."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._tasks: set[asyncio.Task[Any]] = set()

    def on(self, event: str, fn: Listener | None = None) -> Any:
        """Register *fn* for *event*.

        Usable directly (``emitter.on("change", fn)``) or as a decorator
        (``@emitter.on("change:tasks")``).
        """
        if fn is not None:
            self._listeners[event].append(fn)
            return fn

        def decorator(func: Listener) -> Listener:
            self._listeners[event].append(func)
            return func

        return decorator

    def off(self, event: str, fn: Listener) -> None:
        """Remove a specific listener; unknown listeners are ignored."""
        listeners = self._listeners.get(event, [])
        if fn in listeners:
            listeners.remove(fn)

    def listeners(self, event: str) -> list[Listener]:
        return list(self._listeners.get(event, []))

    def emit(self, event: str, *args: Any) -> None:
        """Call every listener for *event*.

        A failing listener is logged and does not prevent the remaining
        listeners from running. Coroutine results run as tasks on the
        running loop; without one they are closed unrun and logged.
        """
        for fn in self.listeners(event):
            try:
                result = fn(*args)
            except Exception:
                _logger.exception("Listener for %r failed", event)
                continue
            if asyncio.iscoroutine(result):
                self._schedule(event, result)

    def _schedule(self, event: str, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            _logger.warning("Dropped coroutine listener for %r: no running event loop", event)
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._task_done(event, done))

    def _task_done(self, event: str, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("Listener for %r failed", event, exc_info=exc)


class ChangeNotifier:
    """Per-type coalescing of change events.

    Each type owns at most one pending :class:`asyncio.TimerHandle`. Calls
    arriving while a handle is pending neither reset nor duplicate it; the
    events fire once when the window elapses.
    """

    def __init__(self, emitter: EventEmitter, *, window: float = DEFAULT_DEBOUNCE_SECONDS) -> None:
        self._emitter = emitter
        self._window = window
        self._timers: dict[str, tuple[asyncio.AbstractEventLoop, asyncio.TimerHandle]] = {}

    @property
    def window(self) -> float:
        return self._window

    def notify(self, type_name: str, *, silent: bool = False) -> None:
        if silent:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        pending = self._timers.get(type_name)
        if pending is not None:
            owner, handle = pending
            if owner is loop and not owner.is_closed():
                return
            # Scheduled on a loop that is gone or no longer running; it will never fire.
            _logger.debug("Discarding stale change timer for %s", type_name)
            handle.cancel()
            del self._timers[type_name]

        if loop is None:
            # Outside an event loop there is nothing to coalesce against.
            self._fire(type_name)
            return
        self._timers[type_name] = (loop, loop.call_later(self._window, self._fire, type_name))

    def pending(self, type_name: str) -> bool:
        return type_name in self._timers

    def cancel(self, type_name: str) -> bool:
        """Drop the pending notification for *type_name* without emitting."""
        pending = self._timers.pop(type_name, None)
        if pending is None:
            return False
        pending[1].cancel()
        return True

    def flush(self) -> None:
        """Emit every pending notification immediately."""
        for type_name in list(self._timers):
            pending = self._timers.get(type_name)
            if pending is not None:
                pending[1].cancel()
            self._fire(type_name)

    def close(self) -> None:
        for type_name in list(self._timers):
            self.cancel(type_name)

    def _fire(self, type_name: str) -> None:
        self._timers.pop(type_name, None)
        _logger.debug("Emitting change for %s", type_name)
        self._emitter.emit(CHANGE_EVENT, type_name)
        self._emitter.emit(change_event(type_name))
