"""In-process publish/subscribe for print job lifecycle events.

The queue and the scheduler publish; anything else (log sinks, webhooks,
tests) can subscribe.  Delivery is synchronous in the publishing thread,
so handlers should be quick.  A failing handler is logged and skipped;
it never breaks the scheduler tick that published the event.

Example::

    bus = EventBus()
    bus.subscribe(EventType.JOB_FAILED, lambda e: alert(e.data["error"]))
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


class EventType(enum.Enum):
    """Events emitted over a job's lifetime."""

    JOB_SUBMITTED = "job.submitted"
    JOB_STARTED = "job.started"
    JOB_PRINTING = "job.printing"
    JOB_COMPLETED = "job.completed"
    JOB_FAILED = "job.failed"
    JOB_RETIRED = "job.retired"


@dataclass
class Event:
    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    source: str = ""  # "queue" or "scheduler"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp,
            "source": self.source,
        }


EventHandler = Callable[[Event], None]

_DEFAULT_HISTORY = 500


class EventBus:
    """Thread-safe synchronous event bus with a bounded history.

    A handler registered with ``event_type=None`` receives every event.
    """

    def __init__(self, *, max_history: int = _DEFAULT_HISTORY) -> None:
        self._handlers: dict[EventType | None, list[EventHandler]] = {}
        self._history: deque[Event] = deque(maxlen=max_history)
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType | None, handler: EventHandler) -> None:
        """Register *handler*; subscribing the same handler twice is a no-op."""
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            if any(existing is handler for existing in handlers):
                return
            handlers.append(handler)

    def unsubscribe(self, event_type: EventType | None, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            self._handlers[event_type] = [h for h in handlers if h is not handler]

    def publish(
        self,
        event_or_type: Event | EventType,
        data: dict[str, Any] | None = None,
        source: str = "",
    ) -> Event:
        """Record and dispatch an event.

        Accepts either a built :class:`Event` or an :class:`EventType` plus
        its payload.  Returns the recorded event.
        """
        if isinstance(event_or_type, EventType):
            event = Event(type=event_or_type, data=data or {}, source=source)
        else:
            event = event_or_type

        with self._lock:
            self._history.append(event)
            targets = list(self._handlers.get(event.type, [])) + list(self._handlers.get(None, []))

        # Handlers run outside the lock so they may publish in turn.
        for handler in targets:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %r failed for %s", handler, event.type.value)
        return event

    def recent_events(self, event_type: EventType | None = None, limit: int = 50) -> list[Event]:
        """Return recorded events, newest first."""
        with self._lock:
            events = list(self._history)
        if event_type is not None:
            events = [e for e in events if e.type is event_type]
        events.reverse()
        return events[:limit]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()


__all__ = ["Event", "EventBus", "EventHandler", "EventType"]
