"""S3-compatible asset store client used to publish media behind the CDN."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import settings

logger = logging.getLogger(__name__)

CONTENT_TYPE_BY_EXT = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}


class AssetStoreError(RuntimeError):
    """Raised when the asset store rejects or fails an operation."""


@dataclass
class StoredAsset:
    key: str
    url: str


def _content_type(path: Path) -> str:
    known = CONTENT_TYPE_BY_EXT.get(path.suffix.lower())
    if known:
        return known
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


class AssetStore:
    """Thin async wrapper around a boto3 S3 client."""

    def __init__(
        self,
        bucket: str,
        *,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        public_base_url: str = "",
        client: Any = None,
    ):
        self.bucket = bucket
        self.region = region
        self.public_base_url = public_base_url.rstrip("/")
        self._client = client or boto3.client("s3", region_name=region, endpoint_url=endpoint_url)

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def _upload_sync(self, local_path: Path, key: str) -> None:
        self._client.upload_file(
            str(local_path),
            self.bucket,
            key,
            ExtraArgs={"ContentType": _content_type(local_path)},
        )

    async def upload_file(self, local_path: Path, key: str) -> StoredAsset:
        try:
            await asyncio.to_thread(self._upload_sync, Path(local_path), key)
        except (BotoCoreError, ClientError, OSError) as exc:
            raise AssetStoreError(f"Upload of {key} failed: {exc}") from exc
        return StoredAsset(key=key, url=self.public_url(key))

    async def delete_object(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise AssetStoreError(f"Delete of {key} failed: {exc}") from exc


_default_store: Optional[AssetStore] = None


def get_asset_store() -> AssetStore:
    """FastAPI dependency returning the process-wide asset store."""
    global _default_store
    if _default_store is None:
        _default_store = AssetStore(
            settings.ASSET_STORE_BUCKET,
            region=settings.ASSET_STORE_REGION,
            endpoint_url=settings.ASSET_STORE_ENDPOINT_URL,
            public_base_url=settings.ASSET_PUBLIC_BASE_URL,
        )
    return _default_store
