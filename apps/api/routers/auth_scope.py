"""Authentication dependencies for API user scoping."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from services.session_token import decode_session_token


auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None


def auth_context_from_claims(payload: Dict[str, Any]) -> AuthContext:
    return AuthContext(
        user_id=str(payload.get("sub", "")),
        username=str(payload.get("username", "")) or None,
        avatar_url=str(payload.get("avatar_url", "")) or None,
    )


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> AuthContext:
    """Resolve authenticated user from Bearer session token."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing Bearer session token.")

    try:
        payload = decode_session_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    return auth_context_from_claims(payload)
