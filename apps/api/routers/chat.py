"""Direct-message chat rooms and their persisted messages."""

import logging
import uuid
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from database import get_db
from models.chat_room import ChatRoom, chat_participants, pair_key
from models.message import Message
from models.user import User
from routers.auth_scope import AuthContext, get_auth_context
from routers.schemas import (
    ChatRoomResponse,
    MessageResponse,
    serialize_chat_room,
    serialize_message,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateChatRequest(BaseModel):
    participant_id: str = Field(min_length=1)


class SendMessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=4000)

    @field_validator("content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("content must not be blank")
        return stripped


async def _room_for_member(db: AsyncSession, chat_id: str, user_id: str) -> ChatRoom:
    result = await db.execute(
        select(ChatRoom)
        .join(chat_participants, chat_participants.c.chat_id == ChatRoom.id)
        .where(ChatRoom.id == chat_id, chat_participants.c.user_id == user_id)
        .options(selectinload(ChatRoom.participants))
    )
    room = result.scalar_one_or_none()
    if not room:
        raise HTTPException(status_code=404, detail="Chat not found")
    return room


async def _room_by_pair(db: AsyncSession, key: str):
    result = await db.execute(
        select(ChatRoom)
        .where(ChatRoom.pair_key == key)
        .options(selectinload(ChatRoom.participants))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@router.get("", response_model=List[ChatRoomResponse])
async def list_chats(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Rooms the caller participates in, most recently active first."""
    result = await db.execute(
        select(ChatRoom)
        .join(chat_participants, chat_participants.c.chat_id == ChatRoom.id)
        .where(chat_participants.c.user_id == auth.user_id)
        .options(selectinload(ChatRoom.participants))
        .order_by(ChatRoom.updated_at.desc())
    )
    return [serialize_chat_room(room) for room in result.scalars().all()]


@router.post("", response_model=ChatRoomResponse)
async def create_chat(
    request: CreateChatRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Return the caller's room with participant_id, creating it on first use."""
    if request.participant_id == auth.user_id:
        raise HTTPException(status_code=422, detail="Cannot start a chat with yourself")

    users_result = await db.execute(
        select(User).where(User.id.in_([auth.user_id, request.participant_id]))
    )
    users = {user.id: user for user in users_result.scalars().all()}
    if auth.user_id not in users:
        raise HTTPException(status_code=404, detail="User not found")
    if request.participant_id not in users:
        raise HTTPException(status_code=404, detail="Participant not found")

    key = pair_key(auth.user_id, request.participant_id)
    existing = await _room_by_pair(db, key)
    if existing:
        return serialize_chat_room(existing)

    now = datetime.now(timezone.utc)
    room = ChatRoom(
        id=str(uuid.uuid4()),
        pair_key=key,
        last_message="",
        created_at=now,
        updated_at=now,
        participants=[users[auth.user_id], users[request.participant_id]],
    )
    db.add(room)
    try:
        await db.commit()
    except IntegrityError:
        # Concurrent create for the same pair won the unique key.
        await db.rollback()
        existing = await _room_by_pair(db, key)
        if existing is None:
            raise
        return serialize_chat_room(existing)
    logger.info("Chat %s created for %s", room.id, key)
    return serialize_chat_room(room)


@router.get("/{chat_id}", response_model=List[MessageResponse])
async def get_messages(
    chat_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Messages in the room, oldest first."""
    await _room_for_member(db, chat_id, auth.user_id)
    result = await db.execute(
        select(Message)
        .where(Message.chat_id == chat_id)
        .options(selectinload(Message.sender))
        .order_by(Message.timestamp)
    )
    return [serialize_message(message) for message in result.scalars().all()]


@router.post("/{chat_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    chat_id: str,
    request: SendMessageRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Persist a message; real-time delivery is a separate socket event."""
    room = await _room_for_member(db, chat_id, auth.user_id)
    sender = next(user for user in room.participants if user.id == auth.user_id)

    now = datetime.now(timezone.utc)
    message = Message(
        id=str(uuid.uuid4()),
        chat_id=room.id,
        sender_id=sender.id,
        sender=sender,
        content=request.content,
        timestamp=now,
    )
    db.add(message)
    room.last_message = request.content
    room.updated_at = now
    await db.commit()
    return serialize_message(message)
