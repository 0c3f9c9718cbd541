"""Video ingestion pipeline: stage upload, transcode to HLS, publish, catalog."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.video import Video
from services.asset_store import AssetStore, AssetStoreError, StoredAsset
from services.transcoder import SegmentSet, transcode_to_hls

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
ALLOWED_VIDEO_EXTENSIONS = {".mp4", ".mov", ".m4v", ".webm", ".avi", ".mkv"}
ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}


class IngestionError(RuntimeError):
    """Transcoding, publishing or cataloging failed; nothing was cataloged."""


class UploadTooLargeError(ValueError):
    def __init__(self, field_name: str, max_bytes: int):
        super().__init__(f"{field_name} exceeds the {max_bytes // (1024 * 1024)}MB upload limit.")
        self.field_name = field_name
        self.max_bytes = max_bytes


@dataclass
class MediaAsset:
    """A source file received with an upload request, staged on local disk."""

    path: Path
    original_filename: str
    content_type: Optional[str]
    size_bytes: int


def sanitize_filename(filename: Optional[str], fallback: str) -> str:
    base = os.path.basename(filename or fallback)
    safe = "".join(ch if ch.isalnum() or ch in ("-", "_", ".") else "_" for ch in base)
    return safe or fallback


def is_video_upload(upload: UploadFile) -> bool:
    suffix = Path(upload.filename or "").suffix.lower()
    content_type = (upload.content_type or "").lower()
    return suffix in ALLOWED_VIDEO_EXTENSIONS or content_type.startswith("video/")


def is_image_upload(upload: UploadFile) -> bool:
    suffix = Path(upload.filename or "").suffix.lower()
    content_type = (upload.content_type or "").lower()
    return suffix in ALLOWED_IMAGE_EXTENSIONS or content_type.startswith("image/")


async def stage_upload(
    upload: UploadFile,
    destination: Path,
    *,
    field_name: str,
    max_bytes: int,
) -> MediaAsset:
    """Stream an uploaded part to destination, enforcing max_bytes."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    total_size = 0
    try:
        with destination.open("wb") as out:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > max_bytes:
                    raise UploadTooLargeError(field_name, max_bytes)
                out.write(chunk)
    finally:
        await upload.close()

    return MediaAsset(
        path=destination,
        original_filename=upload.filename or destination.name,
        content_type=upload.content_type or None,
        size_bytes=total_size,
    )


def _release_local_files(work_dir: Path, staged_paths: Iterable[Path]) -> None:
    if work_dir.exists():
        try:
            shutil.rmtree(work_dir)
        except OSError as exc:
            logger.warning("Could not cleanup transcode dir %s: %s", work_dir, exc)
    for path in staged_paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not cleanup staged upload %s: %s", path, exc)


async def _discard_published(asset_store: AssetStore, keys: List[str]) -> None:
    """Best-effort removal of objects published by a failed ingestion."""
    if not keys:
        return
    results = await asyncio.gather(
        *(asset_store.delete_object(key) for key in keys),
        return_exceptions=True,
    )
    for key, result in zip(keys, results):
        if isinstance(result, BaseException):
            logger.warning("Orphaned asset %s left in store: %s", key, result)


async def publish_segment_set(
    asset_store: AssetStore,
    segment_set: SegmentSet,
    namespace: str,
    published_keys: List[str],
) -> StoredAsset:
    """
    Upload every segment in parallel, then the manifest.

    The manifest is only published once all segments are confirmed, so a
    reachable manifest never points at a missing segment. Keys that made it
    into the store are appended to published_keys for compensation.
    """
    segment_results = await asyncio.gather(
        *(
            asset_store.upload_file(segment, f"{namespace}/{segment.name}")
            for segment in segment_set.segments
        ),
        return_exceptions=True,
    )
    failures = [result for result in segment_results if isinstance(result, BaseException)]
    published_keys.extend(
        result.key for result in segment_results if isinstance(result, StoredAsset)
    )
    if failures:
        raise AssetStoreError(
            f"{len(failures)} of {len(segment_set.segments)} segment uploads failed"
        ) from failures[0]

    manifest = await asset_store.upload_file(
        segment_set.manifest_path,
        f"{namespace}/{segment_set.manifest_path.name}",
    )
    published_keys.append(manifest.key)
    return manifest


async def ingest_video(
    db: AsyncSession,
    asset_store: AssetStore,
    *,
    uploader_id: str,
    title: str,
    description: Optional[str],
    video: UploadFile,
    thumbnail: UploadFile,
) -> Video:
    """
    Turn an uploaded video + thumbnail into a published catalog entry.

    Local files (staged parts and the transcode directory) are removed on
    every exit path. Any failure after staging raises IngestionError and
    leaves no catalog row behind.
    """
    batch_id = uuid.uuid4().hex
    upload_root = Path(settings.UPLOAD_DIR)
    work_dir = upload_root / "hls" / batch_id
    incoming_dir = upload_root / "incoming"
    video_path = incoming_dir / f"{batch_id}_{sanitize_filename(video.filename, 'video.mp4')}"
    thumbnail_name = sanitize_filename(thumbnail.filename, "thumbnail.jpg")
    thumbnail_path = incoming_dir / f"{batch_id}_{thumbnail_name}"
    published_keys: List[str] = []

    try:
        await stage_upload(
            video,
            video_path,
            field_name="video",
            max_bytes=settings.MAX_VIDEO_UPLOAD_BYTES,
        )
        await stage_upload(
            thumbnail,
            thumbnail_path,
            field_name="thumbnail",
            max_bytes=settings.MAX_THUMBNAIL_UPLOAD_BYTES,
        )
        logger.info("Ingestion %s started for user=%s title=%r", batch_id, uploader_id, title)

        try:
            work_dir.mkdir(parents=True, exist_ok=False)
            segment_set = await asyncio.to_thread(transcode_to_hls, str(video_path), str(work_dir))

            namespace = f"{settings.ASSET_VIDEO_PREFIX}/{batch_id}"
            manifest = await publish_segment_set(asset_store, segment_set, namespace, published_keys)

            thumbnail_key = f"{settings.ASSET_THUMBNAIL_PREFIX}/{batch_id}{Path(thumbnail_name).suffix.lower()}"
            thumbnail_asset = await asset_store.upload_file(thumbnail_path, thumbnail_key)
            published_keys.append(thumbnail_asset.key)

            entry = Video(
                id=str(uuid.uuid4()),
                creator_id=uploader_id,
                title=title,
                description=description,
                video_url=manifest.url,
                thumbnail_url=thumbnail_asset.url,
                asset_namespace=namespace,
                duration_seconds=int(round(segment_set.duration_seconds)),
                views=0,
            )
            db.add(entry)
            await db.commit()
        except Exception as exc:
            logger.exception("Ingestion %s failed: %s", batch_id, exc)
            await db.rollback()
            await _discard_published(asset_store, published_keys)
            raise IngestionError("Error uploading video") from exc

        logger.info(
            "Ingestion %s published video=%s segments=%d",
            batch_id,
            entry.id,
            len(segment_set.segments),
        )
        return entry
    finally:
        _release_local_files(work_dir, (video_path, thumbnail_path))
