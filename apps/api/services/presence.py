"""In-process presence tracking and chat-room fan-out for socket connections."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set

logger = logging.getLogger(__name__)

EVENT_USERS_ONLINE = "users:online"
EVENT_USER_CONNECTED = "user:connected"
EVENT_USER_DISCONNECTED = "user:disconnected"
EVENT_RECEIVE_MESSAGE = "receive-message"


class EventSocket(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass(frozen=True)
class PresenceEntry:
    user_id: str
    username: str
    avatar_url: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {"userId": self.user_id, "username": self.username, "avatarUrl": self.avatar_url}


@dataclass
class PresenceState:
    """
    Process-scoped presence tables.

    connections maps connection id to its identity, sockets maps connection id
    to the live socket, rooms maps a chat room id to the connection ids joined
    to it. Nothing here is persisted.
    """

    connections: Dict[str, PresenceEntry] = field(default_factory=dict)
    sockets: Dict[str, EventSocket] = field(default_factory=dict)
    rooms: Dict[str, Set[str]] = field(default_factory=dict)

    def online_users(self) -> List[PresenceEntry]:
        seen: Set[str] = set()
        users: List[PresenceEntry] = []
        for entry in self.connections.values():
            if entry.user_id in seen:
                continue
            seen.add(entry.user_id)
            users.append(entry)
        return users

    def connection_ids_for_user(self, user_id: str) -> List[str]:
        return [cid for cid, entry in self.connections.items() if entry.user_id == user_id]

    def room_members(self, room_id: str) -> Set[str]:
        return set(self.rooms.get(room_id, set()))

    def rooms_for(self, connection_id: str) -> List[str]:
        return [room_id for room_id, members in self.rooms.items() if connection_id in members]

    def clear(self) -> None:
        self.connections.clear()
        self.sockets.clear()
        self.rooms.clear()


class PresenceHub:
    """Registers connections, tracks room membership and fans events out."""

    def __init__(self, state: Optional[PresenceState] = None):
        self.state = state if state is not None else PresenceState()

    @staticmethod
    def envelope(event: str, data: Any) -> Dict[str, Any]:
        return {"event": event, "data": data}

    async def _deliver(self, connection_ids: Iterable[str], event: str, data: Any) -> int:
        # Targets are resolved before the first await; a socket that went away
        # meanwhile is skipped.
        targets = [(cid, self.state.sockets.get(cid)) for cid in list(connection_ids)]
        frame = self.envelope(event, data)
        delivered = 0
        for connection_id, socket in targets:
            if socket is None:
                continue
            try:
                await socket.send_json(frame)
                delivered += 1
            except Exception as exc:
                logger.warning("Dropped %s for connection %s: %s", event, connection_id, exc)
        return delivered

    async def connect(self, connection_id: str, socket: EventSocket, entry: PresenceEntry) -> None:
        first_connection = not self.state.connection_ids_for_user(entry.user_id)
        self.state.connections[connection_id] = entry
        self.state.sockets[connection_id] = socket
        logger.info("Presence connect: connection=%s user=%s", connection_id, entry.user_id)

        snapshot = [user.to_payload() for user in self.state.online_users()]
        await self._deliver(self.state.sockets.keys(), EVENT_USERS_ONLINE, snapshot)
        if first_connection:
            others = [cid for cid in self.state.sockets if cid != connection_id]
            await self._deliver(others, EVENT_USER_CONNECTED, entry.to_payload())

    def join_room(self, connection_id: str, room_id: str) -> None:
        self.state.rooms.setdefault(room_id, set()).add(connection_id)
        logger.info("Connection %s joined chat %s", connection_id, room_id)

    def is_member(self, connection_id: str, room_id: str) -> bool:
        return connection_id in self.state.rooms.get(room_id, ())

    def leave_room(self, connection_id: str, room_id: str) -> None:
        members = self.state.rooms.get(room_id)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self.state.rooms[room_id]
        logger.info("Connection %s left chat %s", connection_id, room_id)

    async def send_to_room(self, room_id: str, message: Any) -> int:
        """Deliver message to every connection currently joined to room_id."""
        return await self._deliver(self.state.room_members(room_id), EVENT_RECEIVE_MESSAGE, message)

    async def disconnect(self, connection_id: str) -> None:
        entry = self.state.connections.pop(connection_id, None)
        self.state.sockets.pop(connection_id, None)
        for room_id in self.state.rooms_for(connection_id):
            self.leave_room(connection_id, room_id)
        if entry is None:
            return
        logger.info("Presence disconnect: connection=%s user=%s", connection_id, entry.user_id)

        if not self.state.connection_ids_for_user(entry.user_id):
            await self._deliver(self.state.sockets.keys(), EVENT_USER_DISCONNECTED, entry.user_id)

    def is_online(self, user_id: str) -> bool:
        return bool(self.state.connection_ids_for_user(user_id))
