"""Catalog video model and the user/video like set."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Table, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


# One row per (video, user); the composite key gives set semantics.
video_likes = Table(
    "video_likes",
    Base.metadata,
    Column("video_id", String, ForeignKey("videos.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)


class Video(Base):
    """Published HLS video with its thumbnail and engagement counters."""

    __tablename__ = "videos"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    creator_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    video_url = Column(String, nullable=False)
    thumbnail_url = Column(String, nullable=False)
    asset_namespace = Column(String, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    views = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    creator = relationship("User", back_populates="videos")
    liked_by = relationship("User", secondary=video_likes, back_populates="liked_videos")
