"""
Authentication router for account signup, login and the current-user profile.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.user import User
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from routers.schemas import UserSummary, serialize_user
from services.passwords import hash_password, verify_password
from services.session_token import create_session_token

router = APIRouter()


class SignupRequest(BaseModel):
    username: str = Field(min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_.-]+$")
    email: str = Field(min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=8, max_length=256)
    avatar_url: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class SessionResponse(BaseModel):
    token: str
    expires_at: int
    user: UserSummary


def _default_avatar(username: str) -> str:
    return f"https://api.dicebear.com/7.x/initials/svg?seed={username}"


def _session_for(user: User) -> SessionResponse:
    session = create_session_token(user.id, user.username, user.avatar_url)
    return SessionResponse(
        token=session["token"],
        expires_at=session["expires_at"],
        user=serialize_user(user),
    )


@router.post("/signup", response_model=SessionResponse, status_code=201)
async def signup(
    request: SignupRequest,
    _rate_limit: None = Depends(rate_limit("auth_signup", limit=20, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    """Create an account and return a session token."""
    email = request.email.strip().lower()
    existing = await db.execute(
        select(User).where(or_(User.email == email, User.username == request.username))
    )
    if existing.scalars().first():
        raise HTTPException(status_code=400, detail="User already exists")

    password_hash, password_salt = hash_password(request.password)
    user = User(
        id=str(uuid.uuid4()),
        username=request.username,
        email=email,
        password_hash=password_hash,
        password_salt=password_salt,
        avatar_url=request.avatar_url or _default_avatar(request.username),
    )
    db.add(user)
    await db.commit()
    return _session_for(user)


@router.post("/login", response_model=SessionResponse)
async def login(
    request: LoginRequest,
    _rate_limit: None = Depends(rate_limit("auth_login", limit=30, window_seconds=900)),
    db: AsyncSession = Depends(get_db),
):
    """Exchange email and password for a session token."""
    result = await db.execute(select(User).where(User.email == request.email.strip().lower()))
    user = result.scalar_one_or_none()
    if not user or not verify_password(request.password, user.password_hash, user.password_salt):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _session_for(user)


@router.get("/me", response_model=UserSummary)
async def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Get the authenticated user's profile."""
    result = await db.execute(select(User).where(User.id == auth.user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return serialize_user(user)
