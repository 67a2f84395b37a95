"""
Namma Kernel — Named Event Bus

Process-wide broadcast/subscribe by event name. The store announces
"storage-update" (payload: collection name) after each persisted mutation;
the session announces "auth-change". Dispatch is synchronous, in
registration order.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Any]


class EventBus:
    """In-memory named pub/sub."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    def on(self, name: str, handler: EventHandler) -> Callable[[], None]:
        """Register handler for name. Returns an idempotent unsubscribe function."""
        self._handlers.setdefault(name, []).append(handler)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError, KeyError):
                self._handlers[name].remove(handler)

        return _unsubscribe

    def emit(self, name: str, payload: Any = None) -> int:
        """
        Call every handler registered for name. A handler that raises is
        logged and skipped. Returns the number of handlers called.
        """
        handlers = list(self._handlers.get(name, ()))
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("EventBus: handler for %r failed", name)
        return len(handlers)

    def handler_count(self, name: str) -> int:
        return len(self._handlers.get(name, ()))

    def clear(self) -> None:
        self._handlers.clear()
