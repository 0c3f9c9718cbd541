"""Password hashing with PBKDF2-HMAC-SHA256."""

import base64
import secrets
from typing import Optional, Tuple

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


PBKDF2_ITERATIONS = 390_000


def _kdf(salt: str) -> PBKDF2HMAC:
    return PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt.encode("utf-8"),
        iterations=PBKDF2_ITERATIONS,
    )


def hash_password(password: str, salt: Optional[str] = None) -> Tuple[str, str]:
    """Return (hash, salt) for storage; a fresh salt is generated when omitted."""
    salt = salt or secrets.token_hex(16)
    derived = _kdf(salt).derive(password.encode("utf-8"))
    return base64.urlsafe_b64encode(derived).decode("ascii"), salt


def verify_password(password: str, stored_hash: str, salt: str) -> bool:
    try:
        expected = base64.urlsafe_b64decode(stored_hash.encode("ascii"))
    except (ValueError, TypeError):
        return False
    try:
        _kdf(salt).verify(password.encode("utf-8"), expected)
    except InvalidKey:
        return False
    return True
