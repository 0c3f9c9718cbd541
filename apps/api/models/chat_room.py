"""Direct-message chat room between two users."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Table, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


chat_participants = Table(
    "chat_participants",
    Base.metadata,
    Column("chat_id", String, ForeignKey("chat_rooms.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


def pair_key(first_user_id: str, second_user_id: str) -> str:
    """Order-independent key for a pair of participants."""
    return ":".join(sorted((first_user_id, second_user_id)))


class ChatRoom(Base):
    """Conversation between an unordered pair of users."""

    __tablename__ = "chat_rooms"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    pair_key = Column(String, unique=True, nullable=False, index=True)
    last_message = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    participants = relationship("User", secondary=chat_participants, back_populates="chat_rooms")
    messages = relationship(
        "Message",
        back_populates="chat",
        cascade="all, delete-orphan",
        order_by="Message.timestamp",
    )
