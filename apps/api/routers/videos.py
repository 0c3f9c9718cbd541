"""
Video catalog router: browse, search, upload, like and view tracking.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy import delete, insert, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from config import settings
from database import get_db
from models.user import User
from models.video import Video, video_likes
from models.watch_history import WatchHistoryEntry
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from routers.schemas import VideoResponse, serialize_video
from services.asset_store import AssetStore, get_asset_store
from services.ingestion import (
    IngestionError,
    UploadTooLargeError,
    ingest_video,
    is_image_upload,
    is_video_upload,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def video_query():
    """Select videos with creator and like set eagerly loaded."""
    return select(Video).options(selectinload(Video.creator), selectinload(Video.liked_by))


async def _load_video(db: AsyncSession, video_id: str, refresh: bool = False) -> Video:
    query = video_query().where(Video.id == video_id)
    if refresh:
        query = query.execution_options(populate_existing=True)
    result = await db.execute(query)
    video = result.scalar_one_or_none()
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    return video


async def _load_user(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("", response_model=List[VideoResponse])
async def list_videos(db: AsyncSession = Depends(get_db)):
    """Newest videos first."""
    result = await db.execute(
        video_query().order_by(Video.created_at.desc()).limit(settings.CATALOG_PAGE_SIZE)
    )
    return [serialize_video(video) for video in result.scalars().all()]


@router.get("/search", response_model=List[VideoResponse])
async def search_videos(
    q: Optional[str] = Query(default=None, max_length=200),
    db: AsyncSession = Depends(get_db),
):
    """Case-insensitive match on title and description."""
    query = video_query()
    term = (q or "").strip()
    if term:
        pattern = f"%{term}%"
        query = query.where(or_(Video.title.ilike(pattern), Video.description.ilike(pattern)))
    result = await db.execute(
        query.order_by(Video.created_at.desc()).limit(settings.CATALOG_PAGE_SIZE)
    )
    return [serialize_video(video) for video in result.scalars().all()]


@router.get("/user", response_model=List[VideoResponse])
async def list_user_videos(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Videos uploaded by the authenticated user."""
    result = await db.execute(
        video_query().where(Video.creator_id == auth.user_id).order_by(Video.created_at.desc())
    )
    return [serialize_video(video) for video in result.scalars().all()]


@router.get("/{video_id}", response_model=VideoResponse)
async def get_video(video_id: str, db: AsyncSession = Depends(get_db)):
    return serialize_video(await _load_video(db, video_id))


@router.post("", response_model=VideoResponse, status_code=201)
async def upload_video(
    title: str = Form(..., min_length=1, max_length=200),
    description: Optional[str] = Form(default=None, max_length=5000),
    video: Optional[UploadFile] = File(default=None),
    thumbnail: Optional[UploadFile] = File(default=None),
    _rate_limit: None = Depends(rate_limit("video_upload", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    asset_store: AssetStore = Depends(get_asset_store),
    db: AsyncSession = Depends(get_db),
):
    """Transcode an uploaded video to HLS, publish it and create the catalog entry."""
    if video is None or thumbnail is None:
        logger.info("Upload by %s rejected: missing video or thumbnail part", auth.user_id)
        raise HTTPException(status_code=400, detail="Both video and thumbnail files are required")
    if not is_video_upload(video):
        logger.info("Upload by %s rejected: %s is not a video", auth.user_id, video.filename)
        raise HTTPException(
            status_code=422,
            detail="Unsupported video type. Upload mp4, mov, m4v, webm, avi or mkv.",
        )
    if not is_image_upload(thumbnail):
        logger.info("Upload by %s rejected: %s is not an image", auth.user_id, thumbnail.filename)
        raise HTTPException(status_code=422, detail="Thumbnail must be an image file.")
    await _load_user(db, auth.user_id)

    try:
        entry = await ingest_video(
            db,
            asset_store,
            uploader_id=auth.user_id,
            title=title.strip(),
            description=description,
            video=video,
            thumbnail=thumbnail,
        )
    except UploadTooLargeError as exc:
        logger.warning("Upload by %s rejected: %s", auth.user_id, exc)
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except IngestionError as exc:
        logger.error("Upload by %s failed: %s", auth.user_id, exc.__cause__ or exc)
        raise HTTPException(status_code=500, detail="Error uploading video") from exc

    return serialize_video(await _load_video(db, entry.id, refresh=True))


async def _has_liked(db: AsyncSession, video_id: str, user_id: str) -> bool:
    result = await db.execute(
        select(video_likes.c.video_id).where(
            video_likes.c.video_id == video_id,
            video_likes.c.user_id == user_id,
        )
    )
    return result.first() is not None


@router.post("/{video_id}/like", response_model=VideoResponse)
async def toggle_like(
    video_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Like the video, or remove the like if the user already liked it."""
    await _load_video(db, video_id)
    await _load_user(db, auth.user_id)

    if await _has_liked(db, video_id, auth.user_id):
        await db.execute(
            delete(video_likes).where(
                video_likes.c.video_id == video_id,
                video_likes.c.user_id == auth.user_id,
            )
        )
        await db.commit()
    else:
        try:
            await db.execute(insert(video_likes).values(video_id=video_id, user_id=auth.user_id))
            await db.commit()
        except IntegrityError:
            # A concurrent like for the same pair committed first.
            await db.rollback()
            logger.info("Like of %s by %s already recorded", video_id, auth.user_id)

    return serialize_video(await _load_video(db, video_id, refresh=True))


@router.post("/{video_id}/view", response_model=VideoResponse)
async def track_view(
    video_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Count a view and record the video in the viewer's watch history.

    The counter is incremented on every call; history keeps one row per
    (user, video). The two writes are committed separately.
    """
    await _load_video(db, video_id)
    await _load_user(db, auth.user_id)

    await db.execute(
        update(Video).where(Video.id == video_id).values(views=Video.views + 1)
    )
    await db.commit()

    try:
        await db.execute(
            insert(WatchHistoryEntry).values(user_id=auth.user_id, video_id=video_id)
        )
        await db.commit()
    except IntegrityError:
        # Already in history; keeps the first watched_at.
        await db.rollback()

    return serialize_video(await _load_video(db, video_id, refresh=True))
