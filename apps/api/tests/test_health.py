from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from main import app


@pytest.mark.asyncio
async def test_health_reports_connected_database(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'health.db'}")
    with patch("database.engine", engine):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            health = await client.get("/health")
            ready = await client.get("/health/ready")
    await engine.dispose()

    assert health.status_code == 200
    assert health.json()["status"] == "ok"
    assert health.json()["database"] == "connected"
    assert ready.json() == {"ready": True}


@pytest.mark.asyncio
async def test_health_reports_disconnected_database(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}")
    with patch("database.engine", engine):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            health = await client.get("/health")
            ready = await client.get("/health/ready")
            live = await client.get("/health/live")
    await engine.dispose()

    assert health.status_code == 200
    assert health.json()["database"] == "disconnected"
    assert ready.status_code == 503
    assert live.json() == {"alive": True}
