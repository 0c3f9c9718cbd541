"""
StreamHub - FastAPI Backend
Main application entry point with health check, API routing and the realtime socket.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from pathlib import Path

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import (
    health,
    auth,
    users,
    videos,
    chat,
    realtime,
)
from services.presence import PresenceHub, PresenceState


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting StreamHub API...")
    validate_security_settings()
    Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    yield
    # Shutdown
    hub: PresenceHub = app.state.presence_hub
    online = len(hub.state.connections)
    hub.state.clear()
    await engine.dispose()
    print(f"👋 Shutting down API (dropped {online} live connections)...")


app = FastAPI(
    title="StreamHub API",
    description="Upload, stream and discuss videos with real-time chat",
    version="1.0.0",
    lifespan=lifespan,
)
app.state.presence_hub = PresenceHub(PresenceState())

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(videos.router, prefix="/api/videos", tags=["Videos"])
app.include_router(chat.router, prefix="/api/chat", tags=["Chat"])
app.include_router(realtime.router, tags=["Realtime"])


@app.get("/")
async def root():
    """API index."""
    return {
        "name": "StreamHub API",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "auth": {
                "signup": "POST /api/auth/signup",
                "login": "POST /api/auth/login",
                "me": "GET /api/auth/me",
            },
            "videos": {
                "list": "GET /api/videos",
                "search": "GET /api/videos/search?q=",
                "mine": "GET /api/videos/user",
                "get": "GET /api/videos/{id}",
                "upload": "POST /api/videos",
                "like": "POST /api/videos/{id}/like",
                "view": "POST /api/videos/{id}/view",
            },
            "users": {
                "list": "GET /api/users",
                "history": "GET /api/users/history",
                "liked": "GET /api/users/liked",
            },
            "chat": {
                "list": "GET /api/chat",
                "create": "POST /api/chat",
                "messages": "GET /api/chat/{chatId}",
                "send": "POST /api/chat/{chatId}/messages",
            },
            "realtime": "WS /ws?token=",
        },
    }
