"""Per-user watch history entries."""

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class WatchHistoryEntry(Base):
    """A video the user has watched at least once."""

    __tablename__ = "watch_history"

    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    video_id = Column(String, ForeignKey("videos.id", ondelete="CASCADE"), primary_key=True)
    watched_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="watch_history")
    video = relationship("Video")
