"""User model."""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class User(Base):
    """Registered account that can upload, like, watch and chat."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    password_salt = Column(String, nullable=False)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    videos = relationship("Video", back_populates="creator", cascade="all, delete-orphan")
    liked_videos = relationship("Video", secondary="video_likes", back_populates="liked_by")
    watch_history = relationship(
        "WatchHistoryEntry",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="WatchHistoryEntry.watched_at",
    )
    chat_rooms = relationship("ChatRoom", secondary="chat_participants", back_populates="participants")
