"""In-process change notifications for signaling rooms.

Publishers call ``publish`` after their write has committed. Subscribers
register a callback per room; callbacks run on the publishing thread, so they
must be thread-safe and quick (typically ``loop.call_soon_threadsafe``).
"""

import itertools
import logging
import threading
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)

RoomEvent = dict[str, Any]
RoomEventCallback = Callable[[RoomEvent], None]


def room_event(snapshot: dict) -> RoomEvent:
    return {"type": "room", "room": snapshot}


def candidate_event(candidate_id: int, side: str, candidate: dict) -> RoomEvent:
    return {"type": "candidate", "side": side, "id": candidate_id, "candidate": candidate}


class RoomEventBus:
    """Fan-out of room events to the subscribers of that room"""

    def __init__(self):
        self._subscribers: dict[str, dict[int, RoomEventCallback]] = {}
        self._tokens = itertools.count(1)
        # Held while delivering, so a subscriber's initial events are never
        # interleaved with live ones
        self._lock = threading.RLock()

    def subscribe(
        self,
        room_id: str,
        callback: RoomEventCallback,
        initial_events: Optional[Callable[[], Iterable[RoomEvent]]] = None,
    ) -> Callable[[], None]:
        """
        Register a callback for a room and return its unsubscribe function.

        ``initial_events`` is loaded and delivered under the bus lock before
        the callback starts receiving live events.
        """
        with self._lock:
            if initial_events is not None:
                for event in initial_events():
                    self._deliver(room_id, callback, event)
            token = next(self._tokens)
            self._subscribers.setdefault(room_id, {})[token] = callback

        logger.debug(f"Subscriber {token} joined room {room_id}")

        def unsubscribe() -> None:
            with self._lock:
                room_subscribers = self._subscribers.get(room_id)
                if room_subscribers is None:
                    return
                room_subscribers.pop(token, None)
                if not room_subscribers:
                    del self._subscribers[room_id]
            logger.debug(f"Subscriber {token} left room {room_id}")

        return unsubscribe

    def publish(self, room_id: str, event: RoomEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(room_id, {}).values())
            for callback in callbacks:
                self._deliver(room_id, callback, event)

    def subscriber_count(self, room_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(room_id, {}))

    @staticmethod
    def _deliver(room_id: str, callback: RoomEventCallback, event: RoomEvent) -> None:
        try:
            callback(event)
        except Exception as e:
            # One broken subscriber must not starve the others
            logger.error(f"❌ Room {room_id} subscriber failed on {event.get('type')} event: {e}")


room_event_bus = RoomEventBus()


def get_room_event_bus() -> RoomEventBus:
    """Dependency injection for the process-wide room event bus"""
    return room_event_bus
