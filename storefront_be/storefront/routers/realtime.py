import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from storefront.realtime.broadcaster import (
    ADMIN_ROOM,
    ADMIN_UPDATE,
    USER_UPDATE,
    USER_UPDATED,
    RoomBroadcaster,
    Subscriber,
    build_envelope,
    get_broadcaster,
    user_room,
)
from storefront.utils.security import Caller, caller_from_token

logger = logging.getLogger(__name__)

router = APIRouter()


def _reply(subscriber: Subscriber, event: str, event_type: str, data: Optional[Dict[str, Any]] = None) -> None:
    subscriber.deliver(build_envelope(event, event_type, data))


def _joined(subscriber: Subscriber) -> None:
    _reply(subscriber, "joined", "rooms", {"rooms": sorted(subscriber.rooms)})


def _relay_admin_action(broadcaster: RoomBroadcaster, message: Dict[str, Any]) -> None:
    action_type = str(message.get("type") or "admin-action")
    data = message.get("data") if isinstance(message.get("data"), dict) else {}
    broadcaster.publish(ADMIN_ROOM, ADMIN_UPDATE, action_type, data)
    if data.get("userId") is not None:
        broadcaster.publish(user_room(data["userId"]), USER_UPDATE, action_type, data)
    if "user" in action_type:
        broadcaster.publish(ADMIN_ROOM, USER_UPDATED, action_type, data)


def handle_inbound(broadcaster: RoomBroadcaster, subscriber: Subscriber, caller: Caller, message: Any) -> None:
    if not isinstance(message, dict) or not message.get("event"):
        _reply(subscriber, "error", "bad-message", {"message": "Expected {\"event\": ..., \"data\": ...}"})
        return
    event = message["event"]
    data = message.get("data")

    if event == "join-user-room":
        if str(data) != str(caller.user_id):
            _reply(subscriber, "error", "forbidden", {"message": "Cannot join another user's room"})
            return
        broadcaster.join(subscriber, user_room(caller.user_id))
        _joined(subscriber)
    elif event == "join-admin-room":
        if not caller.is_admin:
            _reply(subscriber, "error", "forbidden", {"message": "Admin access required"})
            return
        broadcaster.join(subscriber, ADMIN_ROOM)
        _joined(subscriber)
    elif event == "admin-action":
        if not caller.is_admin:
            _reply(subscriber, "error", "forbidden", {"message": "Admin access required"})
            return
        logger.info("Admin action from %s: %s", caller.email, data)
        _relay_admin_action(broadcaster, data if isinstance(data, dict) else {})
    else:
        _reply(subscriber, "error", "unknown-event", {"message": f"Unknown event: {event}"})


async def _pump(websocket: WebSocket, subscriber: Subscriber) -> None:
    while True:
        message = await subscriber.queue.get()
        await websocket.send_json(message)


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(default=None),
    broadcaster: RoomBroadcaster = Depends(get_broadcaster),
):
    caller = await run_in_threadpool(caller_from_token, token)
    if caller is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    subscriber = Subscriber()
    broadcaster.join(subscriber, ADMIN_ROOM if caller.is_admin else user_room(caller.user_id))
    _joined(subscriber)
    sender = asyncio.create_task(_pump(websocket, subscriber))
    logger.info("Realtime session opened for user %s (%s)", caller.user_id, caller.role)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                message = None
            handle_inbound(broadcaster, subscriber, caller, message)
    except WebSocketDisconnect:
        logger.info("Realtime session closed for user %s", caller.user_id)
    finally:
        broadcaster.leave_all(subscriber)
        sender.cancel()
        (outcome,) = await asyncio.gather(sender, return_exceptions=True)
        if isinstance(outcome, Exception):
            logger.warning("Realtime sender for user %s failed: %r", caller.user_id, outcome)
