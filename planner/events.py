from typing import Callable, Dict, List, NamedTuple
from datetime import datetime

__all__ = [
    'SESSION_RESTORED', 'SESSION_REJECTED', 'SESSION_READY', 'LOGGED_IN',
    'REGISTERED', 'LOGGED_OUT', 'USER_UPDATED', 'SESSION_EVENTS',
    'Event', 'EventBus',
]


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Event, dict], None]]] = {}

    def subscribe(self, name: str, handler: Callable[[Event, dict], None]) -> None:
        if name not in self._subscribers:
            self._subscribers[name] = []
        self._subscribers[name].append(handler)

    def publish(self, name: str, payload: dict) -> int:
        """Notify subscribers in order; returns how many were called."""
        if name not in self._subscribers:
            return 0

        event = Event(
            name=name,
            ts=datetime.now().isoformat(),
            payload=payload
        )

        # copy so a handler may unsubscribe itself
        handlers = list(self._subscribers[name])
        for handler in handlers:
            handler(event, payload)
        return len(handlers)

    def unsubscribe(self, name: str, handler: Callable[[Event, dict], None]) -> None:
        if name in self._subscribers:
            if handler in self._subscribers[name]:
                self._subscribers[name].remove(handler)

    def subscribers(self, name: str) -> int:
        return len(self._subscribers.get(name, []))


SESSION_RESTORED = "SESSION_RESTORED"
SESSION_REJECTED = "SESSION_REJECTED"
SESSION_READY = "SESSION_READY"
LOGGED_IN = "LOGGED_IN"
REGISTERED = "REGISTERED"
LOGGED_OUT = "LOGGED_OUT"
USER_UPDATED = "USER_UPDATED"

SESSION_EVENTS = (
    SESSION_RESTORED,
    SESSION_REJECTED,
    SESSION_READY,
    LOGGED_IN,
    REGISTERED,
    LOGGED_OUT,
    USER_UPDATED,
)
