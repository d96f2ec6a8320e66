"""
In-process event publication for committed changes.
"""

import logging
import threading
from collections import Counter
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..core.entities import Event
from ..core.enums import EventType
from ..core.interfaces import EventHandler

logger = logging.getLogger(__name__)


class CallbackEventHandler(EventHandler):
    """Adapts a plain callable into an EventHandler."""

    def __init__(self, callback: Callable[[Event], None],
                 event_types: Optional[Iterable[EventType]] = None):
        self._callback = callback
        self._event_types = {event_type.value for event_type in event_types} if event_types else None

    def handle_event(self, event: Event) -> None:
        self._callback(event)

    def can_handle(self, event_type: str) -> bool:
        return self._event_types is None or event_type in self._event_types


class EventService:
    """Keeps a bounded event history and notifies handlers.

    Handlers run after the change is committed; a failing handler is
    logged and does not affect the publisher.
    """

    def __init__(self, max_events: int = 10000):
        self._max_events = max_events
        self._events: List[Event] = []
        self._handlers: List[EventHandler] = []
        self._lock = threading.RLock()

    def add_event_handler(self, handler: EventHandler) -> None:
        """Add an event handler."""
        with self._lock:
            self._handlers.append(handler)

    def remove_event_handler(self, handler: EventHandler) -> None:
        """Remove an event handler."""
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def publish(self, event_type: EventType, stream_id: str, event_data: Dict[str, Any]) -> Event:
        """Record an event and notify every handler that accepts its type."""
        event = Event(event_type=event_type, stream_id=stream_id, event_data=event_data)

        with self._lock:
            self._events.append(event)
            if len(self._events) > self._max_events:
                self._events = self._events[-self._max_events:]
            handlers = list(self._handlers)

        for handler in handlers:
            if handler.can_handle(event_type.value):
                try:
                    handler.handle_event(event)
                except Exception:
                    logger.exception("Error in event handler %s", handler.__class__.__name__)
        return event

    def get_events(self, stream_id: Optional[str] = None,
                   event_type: Optional[EventType] = None) -> List[Event]:
        """Get recorded events, optionally for one stream and/or type."""
        with self._lock:
            return [
                event for event in self._events
                if (stream_id is None or event.stream_id == stream_id)
                and (event_type is None or event.event_type is event_type)
            ]

    def get_statistics(self) -> Dict[str, Any]:
        """Get event counts by type."""
        with self._lock:
            by_type = Counter(event.event_type.value for event in self._events)
            return {
                'total_events': len(self._events),
                'events_by_type': dict(by_type),
                'event_handlers': len(self._handlers)
            }
