"""Callback registration shared by the player adapters, the service and the engine."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from enum import StrEnum, auto
from typing import Any

logger = logging.getLogger(__name__)

# Type alias for callback functions.
Callback = Callable[..., Any]


class ScrobblerEvent(StrEnum):
    """Events produced for whatever UI sits on top of the engine."""

    SESSION_AUTHENTICATED = auto()
    SUBMISSION_SUCCEEDED = auto()
    SUBMISSION_FAILED = auto()
    STATE_CHANGED = auto()


class EventEmitter:
    """Keeps per-event callback lists and dispatches to them.

    Coroutine callbacks are scheduled on the running loop; plain callbacks
    are called directly.  A failing callback is logged and never breaks the
    emitter.
    """

    def __init__(self) -> None:
        self._callbacks: dict[StrEnum, list[Callback]] = {}
        self._callback_tasks: set[asyncio.Task] = set()

    def on(self, event: StrEnum, callback: Callback) -> None:
        """Register a callback for an event (no duplicates)."""
        callbacks = self._callbacks.setdefault(event, [])
        if callback not in callbacks:
            callbacks.append(callback)

    def off(self, event: StrEnum, callback: Callback) -> None:
        """Unregister a callback for an event."""
        try:
            self._callbacks.get(event, []).remove(callback)
        except ValueError:
            pass

    def clear_callbacks(self) -> None:
        self._callbacks.clear()

    def _dispatch(self, event: StrEnum, *args: Any) -> None:
        for cb in list(self._callbacks.get(event, ())):
            try:
                if inspect.iscoroutinefunction(cb):
                    task = asyncio.get_running_loop().create_task(cb(*args))
                    self._callback_tasks.add(task)
                    task.add_done_callback(self._callback_tasks.discard)
                else:
                    cb(*args)
            except Exception:
                logger.exception("Error in %s callback", event)
