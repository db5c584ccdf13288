"""
Guard events - the record of every configuration write and every check.

EventLog keeps events in memory and fans them out to listeners (the Merkle
audit chain registers itself as one).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("permguard.events")


@dataclass
class GuardEvent:
    name: str  # "AssignRoles", "ScopeFunction", "CheckRejected", ...
    args: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "args": self.args, "timestamp": self.timestamp}


EventListener = Callable[[GuardEvent], None]


class EventLog:
    """In-memory event history with listener fan-out."""

    def __init__(self, max_events: int = 10000):
        self.max_events = max_events
        self._events: List[GuardEvent] = []
        self._listeners: List[EventListener] = []

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, name: str, **args: Any) -> GuardEvent:
        event = GuardEvent(name=name, args=args)
        self._events.append(event)
        if len(self._events) > self.max_events:
            del self._events[: len(self._events) - self.max_events]

        logger.debug(f"Event {name}: {args}")
        for listener in self._listeners:
            listener(event)
        return event

    def events(self, name: Optional[str] = None) -> List[GuardEvent]:
        if name is None:
            return list(self._events)
        return [e for e in self._events if e.name == name]

    def last(self, name: Optional[str] = None) -> Optional[GuardEvent]:
        matching = self.events(name)
        return matching[-1] if matching else None

    def clear(self) -> None:
        self._events.clear()
