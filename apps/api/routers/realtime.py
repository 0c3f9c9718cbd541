"""WebSocket channel for presence and chat-room fan-out."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.chat_room import chat_participants
from routers.auth_scope import auth_context_from_claims
from services.presence import PresenceEntry, PresenceHub
from services.session_token import decode_session_token

router = APIRouter()
logger = logging.getLogger(__name__)

AUTH_FAILED_CLOSE_CODE = 4003


def get_presence_hub(websocket: WebSocket) -> PresenceHub:
    return websocket.app.state.presence_hub


def _room_id(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        data = data.get("chatId")
    if isinstance(data, str) and data.strip():
        return data.strip()
    return None


async def _send_error(websocket: WebSocket, detail: str) -> None:
    await websocket.send_json(PresenceHub.envelope("error", {"detail": detail}))


async def _receive_text_frame(websocket: WebSocket) -> Optional[str]:
    """Next text frame, or None for a binary one."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
    return message.get("text")


async def _is_participant(db: AsyncSession, chat_id: str, user_id: str) -> bool:
    result = await db.execute(
        select(chat_participants.c.chat_id).where(
            chat_participants.c.chat_id == chat_id,
            chat_participants.c.user_id == user_id,
        )
    )
    found = result.first() is not None
    # Release the pooled connection; the session lives as long as the socket.
    await db.rollback()
    return found


@router.websocket("/ws")
async def realtime_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticated presence/chat socket.

    Frames are JSON objects {"event": ..., "data": ...}. Client events:
    join-chat(roomId), leave-chat(roomId), send-message({chatId, message}),
    and ping, answered with pong on the same connection. Only participants
    of a chat may join it, and only joined connections may send to it.
    """
    await websocket.accept()
    if not token:
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason="Session token required")
        return
    try:
        auth = auth_context_from_claims(decode_session_token(token))
    except ValueError as exc:
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason=str(exc))
        return

    hub = get_presence_hub(websocket)
    connection_id = uuid.uuid4().hex
    entry = PresenceEntry(
        user_id=auth.user_id,
        username=auth.username or auth.user_id,
        avatar_url=auth.avatar_url,
    )
    await hub.connect(connection_id, websocket, entry)
    try:
        while True:
            raw = await _receive_text_frame(websocket)
            if raw is None:
                await _send_error(websocket, "Frames must be JSON text, not binary")
                continue
            try:
                frame = json.loads(raw)
            except ValueError:
                await _send_error(websocket, "Frames must be valid JSON")
                continue
            if not isinstance(frame, dict):
                await _send_error(websocket, "Frames must be JSON objects")
                continue
            event = frame.get("event")
            data = frame.get("data")

            if event in ("join-chat", "leave-chat"):
                room_id = _room_id(data)
                if room_id is None:
                    await _send_error(websocket, f"{event} requires a chat id")
                    continue
                if event == "leave-chat":
                    hub.leave_room(connection_id, room_id)
                elif await _is_participant(db, room_id, auth.user_id):
                    hub.join_room(connection_id, room_id)
                else:
                    logger.info("Refused join of chat %s by user %s", room_id, auth.user_id)
                    await _send_error(websocket, "Chat not found")
            elif event == "ping":
                await websocket.send_json(PresenceHub.envelope("pong", data))
            elif event == "send-message":
                room_id = _room_id(data)
                if room_id is None or not isinstance(data, dict) or "message" not in data:
                    await _send_error(websocket, "send-message requires chatId and message")
                    continue
                if not hub.is_member(connection_id, room_id):
                    await _send_error(websocket, "Join the chat before sending to it")
                    continue
                await hub.send_to_room(room_id, data["message"])
            else:
                await _send_error(websocket, f"Unknown event {event!r}")
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(connection_id)
