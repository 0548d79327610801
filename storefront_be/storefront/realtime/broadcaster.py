"""Room based fan-out of transient events to connected WebSocket sessions.

Rooms are ``user-<id>`` (one per user) and ``admin-room`` (all admin
sessions). Delivery is fire-and-forget and at-most-once: an event published
to a room nobody has joined is dropped, nothing is queued or replayed. Each
session drains its own FIFO queue, so events published to one room reach a
given session in publish order. There is no ordering across rooms.

The Notification Store is the durable record. This module only shortens the
time until an already-open screen reflects a change.
"""

import asyncio
import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Set

from fastapi.encoders import jsonable_encoder

from storefront.errors import DependencyError

logger = logging.getLogger(__name__)

ADMIN_ROOM = "admin-room"

# Outbound event names
USER_UPDATE = "user-update"
ADMIN_UPDATE = "admin-update"
USER_UPDATED = "user-updated"

# Per-session backlog; a session this far behind starts losing events
SUBSCRIBER_QUEUE_SIZE = 256


def user_room(user_id) -> str:
    return f"user-{user_id}"


def build_envelope(event: str, event_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body = dict(data or {})
    body.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return {"event": event, "payload": {"type": event_type, "data": jsonable_encoder(body)}}


class Broadcaster(Protocol):
    def notify_user(self, user_id, event_type: str, data: Dict[str, Any]) -> None:
        ...

    def notify_admins(self, event_type: str, data: Dict[str, Any], event: str = ADMIN_UPDATE) -> None:
        ...


class Subscriber:
    """Outbound side of one connected session.

    ``deliver`` may be called from any thread; messages are handed to the
    session's event loop and drained in order by the socket's send task.
    The queue is bounded; when a slow client lets it fill up, further
    events for that session are dropped and logged.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None, maxsize: int = SUBSCRIBER_QUEUE_SIZE):
        self.loop = loop or asyncio.get_running_loop()
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.rooms: Set[str] = set()
        self.dropped = 0

    def deliver(self, message: Dict[str, Any]) -> None:
        self.loop.call_soon_threadsafe(self._enqueue, message)

    def _enqueue(self, message: Dict[str, Any]) -> None:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Dropping %s event for a slow session (%d dropped so far)", message.get("event"), self.dropped
            )


class RoomBroadcaster:
    def __init__(self):
        self._rooms: Dict[str, Set[Any]] = defaultdict(set)
        self._lock = threading.Lock()

    def join(self, subscriber, room: str) -> None:
        with self._lock:
            self._rooms[room].add(subscriber)
            subscriber.rooms.add(room)
        logger.info("Session joined room %s", room)

    def leave_all(self, subscriber) -> None:
        with self._lock:
            for room in list(subscriber.rooms):
                members = self._rooms.get(room)
                if members is not None:
                    members.discard(subscriber)
                    if not members:
                        del self._rooms[room]
            subscriber.rooms.clear()

    def room_size(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, ()))

    def connected_count(self) -> int:
        with self._lock:
            return len({s for members in self._rooms.values() for s in members})

    def publish(self, room: str, event: str, event_type: str, data: Optional[Dict[str, Any]] = None) -> int:
        """Send one event to every session in ``room``; returns how many got it."""
        try:
            message = build_envelope(event, event_type, data)
        except (TypeError, ValueError) as exc:
            raise DependencyError(f"Could not encode {event_type} event: {exc}") from exc

        with self._lock:
            members = list(self._rooms.get(room, ()))
        if not members:
            logger.debug("No session in %s, dropping %s/%s", room, event, event_type)
            return 0

        delivered = 0
        for subscriber in members:
            try:
                subscriber.deliver(message)
                delivered += 1
            except RuntimeError as exc:
                # event loop of a half-closed session is already gone
                logger.warning("Dropping %s for a closed session in %s: %s", event, room, exc)
        return delivered

    def notify_user(self, user_id, event_type: str, data: Dict[str, Any]) -> None:
        self.publish(user_room(user_id), USER_UPDATE, event_type, data)

    def notify_admins(self, event_type: str, data: Dict[str, Any], event: str = ADMIN_UPDATE) -> None:
        self.publish(ADMIN_ROOM, event, event_type, data)


room_broadcaster = RoomBroadcaster()


def get_broadcaster() -> RoomBroadcaster:
    return room_broadcaster
