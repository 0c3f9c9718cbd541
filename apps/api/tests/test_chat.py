import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.future import select

from database import Base, get_db
from main import app
from models.chat_room import ChatRoom
from models.user import User
from services.session_token import create_session_token


ALICE_ID = "alice-id"
BOB_ID = "bob-id"
CAROL_ID = "carol-id"
ALICE_AUTH_HEADER = {"Authorization": f"Bearer {create_session_token(ALICE_ID, 'alice')['token']}"}
BOB_AUTH_HEADER = {"Authorization": f"Bearer {create_session_token(BOB_ID, 'bob')['token']}"}
CAROL_AUTH_HEADER = {"Authorization": f"Bearer {create_session_token(CAROL_ID, 'carol')['token']}"}


@pytest_asyncio.fixture
async def chat_client(tmp_path):
    db_path = tmp_path / "chat.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_maker() as session:
        for user_id, username in ((ALICE_ID, "alice"), (BOB_ID, "bob"), (CAROL_ID, "carol")):
            session.add(
                User(
                    id=user_id,
                    username=username,
                    email=f"{username}@example.com",
                    password_hash="x",
                    password_salt="x",
                )
            )
        await session.commit()

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client, session_maker

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


async def _start_chat(client, headers, participant_id):
    response = await client.post("/api/chat", json={"participant_id": participant_id}, headers=headers)
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_start_chat_returns_existing_room_for_same_pair(chat_client):
    client, session_maker = chat_client
    first = await _start_chat(client, ALICE_AUTH_HEADER, BOB_ID)
    again = await _start_chat(client, ALICE_AUTH_HEADER, BOB_ID)
    reverse = await _start_chat(client, BOB_AUTH_HEADER, ALICE_ID)

    assert first["id"] == again["id"] == reverse["id"]
    assert sorted(p["id"] for p in first["participants"]) == sorted([ALICE_ID, BOB_ID])
    assert first["last_message"] == ""

    async with session_maker() as session:
        rooms = (await session.execute(select(ChatRoom))).scalars().all()
        assert len(rooms) == 1


@pytest.mark.asyncio
async def test_start_chat_validation(chat_client):
    client, _ = chat_client
    with_self = await client.post("/api/chat", json={"participant_id": ALICE_ID}, headers=ALICE_AUTH_HEADER)
    assert with_self.status_code == 422

    unknown = await client.post("/api/chat", json={"participant_id": "ghost"}, headers=ALICE_AUTH_HEADER)
    assert unknown.status_code == 404

    anonymous = await client.post("/api/chat", json={"participant_id": BOB_ID})
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_messages_persist_in_order_and_update_preview(chat_client):
    client, _ = chat_client
    room = await _start_chat(client, ALICE_AUTH_HEADER, BOB_ID)

    first = await client.post(
        f"/api/chat/{room['id']}/messages",
        json={"content": "  hey bob  "},
        headers=ALICE_AUTH_HEADER,
    )
    assert first.status_code == 201
    assert first.json()["content"] == "hey bob"
    assert first.json()["sender"]["id"] == ALICE_ID
    assert first.json()["chat_id"] == room["id"]

    second = await client.post(
        f"/api/chat/{room['id']}/messages",
        json={"content": "hi alice"},
        headers=BOB_AUTH_HEADER,
    )
    assert second.status_code == 201

    history = await client.get(f"/api/chat/{room['id']}", headers=BOB_AUTH_HEADER)
    assert history.status_code == 200
    assert [m["content"] for m in history.json()] == ["hey bob", "hi alice"]

    rooms = await client.get("/api/chat", headers=ALICE_AUTH_HEADER)
    assert rooms.status_code == 200
    assert [r["last_message"] for r in rooms.json()] == ["hi alice"]


@pytest.mark.asyncio
async def test_non_participants_cannot_read_or_post(chat_client):
    client, _ = chat_client
    room = await _start_chat(client, ALICE_AUTH_HEADER, BOB_ID)

    read = await client.get(f"/api/chat/{room['id']}", headers=CAROL_AUTH_HEADER)
    assert read.status_code == 404

    post = await client.post(
        f"/api/chat/{room['id']}/messages",
        json={"content": "let me in"},
        headers=CAROL_AUTH_HEADER,
    )
    assert post.status_code == 404

    carol_rooms = await client.get("/api/chat", headers=CAROL_AUTH_HEADER)
    assert carol_rooms.json() == []


@pytest.mark.asyncio
async def test_blank_message_rejected(chat_client):
    client, _ = chat_client
    room = await _start_chat(client, ALICE_AUTH_HEADER, BOB_ID)
    response = await client.post(
        f"/api/chat/{room['id']}/messages",
        json={"content": "   "},
        headers=ALICE_AUTH_HEADER,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_chat_is_not_found(chat_client):
    client, _ = chat_client
    response = await client.get("/api/chat/missing-room", headers=ALICE_AUTH_HEADER)
    assert response.status_code == 404
