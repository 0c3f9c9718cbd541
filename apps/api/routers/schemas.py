"""Response models shared by the catalog, user and chat routers."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from models.chat_room import ChatRoom
from models.message import Message
from models.user import User
from models.video import Video


class UserSummary(BaseModel):
    id: str
    username: str
    avatar_url: Optional[str] = None


class VideoResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    video_url: str
    thumbnail_url: str
    duration_seconds: Optional[int] = None
    views: int
    likes: List[str]
    creator: Optional[UserSummary] = None
    created_at: Optional[str] = None


class MessageResponse(BaseModel):
    id: str
    chat_id: str
    content: str
    sender: UserSummary
    timestamp: Optional[str] = None


class ChatRoomResponse(BaseModel):
    id: str
    participants: List[UserSummary]
    last_message: str
    updated_at: Optional[str] = None


def serialize_user(user: User) -> UserSummary:
    return UserSummary(id=user.id, username=user.username, avatar_url=user.avatar_url)


def serialize_video(video: Video) -> VideoResponse:
    return VideoResponse(
        id=video.id,
        title=video.title,
        description=video.description,
        video_url=video.video_url,
        thumbnail_url=video.thumbnail_url,
        duration_seconds=video.duration_seconds,
        views=int(video.views or 0),
        likes=sorted(user.id for user in video.liked_by),
        creator=serialize_user(video.creator) if video.creator else None,
        created_at=video.created_at.isoformat() if video.created_at else None,
    )


def serialize_message(message: Message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        chat_id=message.chat_id,
        content=message.content,
        sender=serialize_user(message.sender),
        timestamp=message.timestamp.isoformat() if message.timestamp else None,
    )


def serialize_chat_room(room: ChatRoom) -> ChatRoomResponse:
    return ChatRoomResponse(
        id=room.id,
        participants=[serialize_user(user) for user in room.participants],
        last_message=room.last_message or "",
        updated_at=room.updated_at.isoformat() if room.updated_at else None,
    )
