"""Models package."""

from .user import User
from .video import Video, video_likes
from .watch_history import WatchHistoryEntry
from .chat_room import ChatRoom, chat_participants
from .message import Message
