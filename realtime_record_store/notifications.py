"""
Named-event publish/subscribe used to deliver asynchronous notifications.

Both the event stream connection and the record store own a hub and
expose its ``on``/``off`` to callers.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class NotificationHub:
    """Synchronous in-process notification hub.

    Handlers run in registration order every time their event is emitted.
    A handler that raises is logged and skipped; the remaining handlers for
    the same emission still run. Nothing is recorded, so a handler added
    after an emission never sees it.

    Example:
        >>> hub = NotificationHub()
        >>> _ = hub.on("close", lambda payload: print(payload["reason"]))
        >>> hub.emit("close", {"reason": "cancel"})
        cancel
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def on(self, event_name: str, handler: Handler) -> Handler:
        """Register ``handler`` for ``event_name`` and return it."""
        self._handlers.setdefault(event_name, []).append(handler)
        return handler

    def off(self, event_name: str, handler: Handler) -> None:
        """Remove the first registration equal to ``handler``.

        Removing a handler that is not registered does nothing.
        """
        handlers = self._handlers.get(event_name)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._handlers[event_name]

    def emit(self, event_name: str, payload: Any = None) -> None:
        """Call every handler currently registered for ``event_name``."""
        # Snapshot so handlers can unregister themselves mid-emit
        for handler in list(self._handlers.get(event_name, ())):
            try:
                handler(payload)
            except Exception:
                logger.exception(f"Handler {handler!r} for {event_name!r} failed")

    def listeners(self, event_name: str) -> list[Handler]:
        """Return a copy of the handlers registered for ``event_name``."""
        return list(self._handlers.get(event_name, ()))
