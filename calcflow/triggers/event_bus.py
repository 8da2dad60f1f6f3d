"""In-process pub/sub event bus.

Collections publish record events here; the collection trigger subscribes to
them and the processor publishes execution outcomes.  Subscribers are plain
callables (sync or async).
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

# ── Well-known event names ─────────────────────────────────────────────────
EVENT_RECORD_CREATED      = "collection.record.created"
EVENT_RECORD_UPDATED      = "collection.record.updated"
EVENT_RECORD_DESTROYED    = "collection.record.destroyed"
EVENT_EXECUTION_COMPLETED = "execution.completed"
EVENT_EXECUTION_FAILED    = "execution.failed"


class EventBus:
    """Lightweight, in-process pub/sub bus.

    Usage::

        bus = EventBus()
        bus.subscribe("collection.record.created", on_created)
        await bus.emit("collection.record.created", {"collection": "posts", ...})
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callable]] = {}

    def subscribe(self, event: str, callback: Callable) -> None:
        self._subscribers.setdefault(event, []).append(callback)

    def unsubscribe(self, event: str, callback: Callable) -> None:
        """Remove the first occurrence of *callback* from *event*, if present."""
        callbacks = self._subscribers.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))

    async def emit(self, event: str, data: Any = None) -> None:
        """Emit *event* to all subscribers, passing *data* as the sole argument.

        A failing subscriber is logged and the remaining ones still run.
        """
        # Snapshot: subscribers may (un)subscribe while we iterate
        callbacks = list(self._subscribers.get(event, []))
        for cb in callbacks:
            try:
                result = cb(data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("[EventBus] subscriber raised for event=%r", event)
