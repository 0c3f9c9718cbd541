"""User directory, watch history and liked videos."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from database import get_db
from models.user import User
from models.video import Video, video_likes
from models.watch_history import WatchHistoryEntry
from routers.auth_scope import AuthContext, get_auth_context
from routers.schemas import UserSummary, VideoResponse, serialize_user, serialize_video
from routers.videos import video_query

router = APIRouter()


@router.get("", response_model=List[UserSummary])
async def list_users(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Everyone except the caller, for starting a chat."""
    result = await db.execute(
        select(User).where(User.id != auth.user_id).order_by(User.username)
    )
    return [serialize_user(user) for user in result.scalars().all()]


@router.get("/history", response_model=List[VideoResponse])
async def get_watch_history(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Videos the caller has watched, in the order first watched."""
    result = await db.execute(
        select(WatchHistoryEntry)
        .where(WatchHistoryEntry.user_id == auth.user_id)
        .options(
            selectinload(WatchHistoryEntry.video).selectinload(Video.creator),
            selectinload(WatchHistoryEntry.video).selectinload(Video.liked_by),
        )
        .order_by(WatchHistoryEntry.watched_at)
    )
    return [serialize_video(entry.video) for entry in result.scalars().all() if entry.video]


@router.get("/liked", response_model=List[VideoResponse])
async def get_liked_videos(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Videos the caller currently likes, most recently liked first."""
    result = await db.execute(
        video_query()
        .join(video_likes, video_likes.c.video_id == Video.id)
        .where(video_likes.c.user_id == auth.user_id)
        .order_by(video_likes.c.created_at.desc())
    )
    return [serialize_video(video) for video in result.scalars().all()]
