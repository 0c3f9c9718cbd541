"""Presence tracking and room fan-out against in-memory sockets."""

from dataclasses import dataclass, field
from typing import Any, Dict, List

import pytest

from services.presence import PresenceEntry, PresenceHub, PresenceState


@dataclass
class _FakeSocket:
    sent: List[Dict[str, Any]] = field(default_factory=list)

    async def send_json(self, data: Any) -> None:
        self.sent.append(data)

    def events(self, name: str) -> List[Any]:
        return [frame["data"] for frame in self.sent if frame["event"] == name]


class _BrokenSocket:
    async def send_json(self, data: Any) -> None:
        raise RuntimeError("socket already closed")


def _online_view(socket: _FakeSocket) -> List[str]:
    """Replay presence events the way a client keeps its online list."""
    online: List[str] = []
    for frame in socket.sent:
        if frame["event"] == "users:online":
            online = [user["userId"] for user in frame["data"]]
        elif frame["event"] == "user:connected":
            if frame["data"]["userId"] not in online:
                online.append(frame["data"]["userId"])
        elif frame["event"] == "user:disconnected":
            online = [user_id for user_id in online if user_id != frame["data"]]
    return online


ALICE = PresenceEntry(user_id="alice", username="Alice", avatar_url="https://avatars.test/a.png")
BOB = PresenceEntry(user_id="bob", username="Bob")
CAROL = PresenceEntry(user_id="carol", username="Carol")


@pytest.mark.asyncio
async def test_connect_snapshot_contains_self_once_and_notifies_others():
    hub = PresenceHub(PresenceState())
    alice, bob = _FakeSocket(), _FakeSocket()

    await hub.connect("c-alice", alice, ALICE)
    await hub.connect("c-bob", bob, BOB)

    bob_snapshot = bob.events("users:online")[-1]
    assert [user["userId"] for user in bob_snapshot].count("bob") == 1
    assert {user["userId"] for user in bob_snapshot} == {"alice", "bob"}
    assert bob.events("user:connected") == []

    assert alice.events("user:connected") == [
        {"userId": "bob", "username": "Bob", "avatarUrl": None}
    ]
    assert alice.events("users:online")[0] == [
        {"userId": "alice", "username": "Alice", "avatarUrl": "https://avatars.test/a.png"}
    ]


@pytest.mark.asyncio
async def test_second_connection_for_same_user_is_listed_once():
    hub = PresenceHub(PresenceState())
    alice, bob_phone, bob_laptop = _FakeSocket(), _FakeSocket(), _FakeSocket()
    await hub.connect("c-alice", alice, ALICE)
    await hub.connect("c-bob-1", bob_phone, BOB)
    await hub.connect("c-bob-2", bob_laptop, BOB)

    assert [user["userId"] for user in bob_laptop.events("users:online")[-1]] == ["alice", "bob"]
    assert len(alice.events("user:connected")) == 1

    await hub.disconnect("c-bob-1")
    assert alice.events("user:disconnected") == []
    assert hub.is_online("bob")

    await hub.disconnect("c-bob-2")
    assert alice.events("user:disconnected") == ["bob"]
    assert not hub.is_online("bob")


@pytest.mark.asyncio
async def test_disconnect_removes_identity_from_every_remaining_view():
    hub = PresenceHub(PresenceState())
    sockets = {"alice": _FakeSocket(), "bob": _FakeSocket(), "carol": _FakeSocket()}
    await hub.connect("c-alice", sockets["alice"], ALICE)
    await hub.connect("c-bob", sockets["bob"], BOB)
    await hub.connect("c-carol", sockets["carol"], CAROL)

    await hub.disconnect("c-bob")

    assert sorted(_online_view(sockets["alice"])) == ["alice", "carol"]
    assert sorted(_online_view(sockets["carol"])) == ["alice", "carol"]
    assert "c-bob" not in hub.state.connections
    assert [entry.user_id for entry in hub.state.online_users()] == ["alice", "carol"]


@pytest.mark.asyncio
async def test_room_fan_out_reaches_only_current_members():
    hub = PresenceHub(PresenceState())
    alice, bob, carol = _FakeSocket(), _FakeSocket(), _FakeSocket()
    await hub.connect("c-alice", alice, ALICE)
    await hub.connect("c-bob", bob, BOB)
    await hub.connect("c-carol", carol, CAROL)

    hub.join_room("c-alice", "room-1")
    hub.join_room("c-bob", "room-1")
    hub.join_room("c-bob", "room-1")
    hub.join_room("c-carol", "room-2")
    assert hub.is_member("c-bob", "room-1")
    assert not hub.is_member("c-carol", "room-1")

    message = {"id": "m1", "content": "hello"}
    delivered = await hub.send_to_room("room-1", message)
    assert delivered == 2
    assert alice.events("receive-message") == [message]
    assert bob.events("receive-message") == [message]
    assert carol.events("receive-message") == []

    hub.leave_room("c-bob", "room-1")
    hub.leave_room("c-bob", "room-1")
    await hub.send_to_room("room-1", {"id": "m2", "content": "still here?"})
    assert len(alice.events("receive-message")) == 2
    assert len(bob.events("receive-message")) == 1


@pytest.mark.asyncio
async def test_send_to_empty_room_delivers_nothing():
    hub = PresenceHub(PresenceState())
    assert await hub.send_to_room("nobody-here", {"content": "echo"}) == 0


@pytest.mark.asyncio
async def test_broken_socket_does_not_block_other_members():
    hub = PresenceHub(PresenceState())
    alice = _FakeSocket()
    await hub.connect("c-alice", alice, ALICE)
    hub.state.connections["c-ghost"] = BOB
    hub.state.sockets["c-ghost"] = _BrokenSocket()
    hub.join_room("c-ghost", "room-1")
    hub.join_room("c-alice", "room-1")

    delivered = await hub.send_to_room("room-1", {"content": "hi"})
    assert delivered == 1
    assert alice.events("receive-message") == [{"content": "hi"}]


@pytest.mark.asyncio
async def test_disconnect_drops_room_membership_and_state_can_be_cleared():
    state = PresenceState()
    hub = PresenceHub(state)
    alice = _FakeSocket()
    await hub.connect("c-alice", alice, ALICE)
    hub.join_room("c-alice", "room-1")
    hub.join_room("c-alice", "room-2")

    await hub.disconnect("c-alice")
    assert state.rooms == {}
    assert await hub.send_to_room("room-1", {"content": "late"}) == 0

    await hub.connect("c-bob", _FakeSocket(), BOB)
    state.clear()
    assert state.connections == {} and state.sockets == {} and state.rooms == {}


@pytest.mark.asyncio
async def test_unknown_disconnect_is_a_noop():
    hub = PresenceHub(PresenceState())
    alice = _FakeSocket()
    await hub.connect("c-alice", alice, ALICE)
    await hub.disconnect("never-connected")
    assert alice.events("user:disconnected") == []
