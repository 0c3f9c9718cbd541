"""Routers package."""

from . import (
    health,
    auth,
    users,
    videos,
    chat,
    realtime,
)
