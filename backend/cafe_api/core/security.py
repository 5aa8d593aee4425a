"""Security utilities: password hashing, access tokens and refresh tokens."""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt
from jwt.exceptions import ExpiredSignatureError, PyJWTError

from cafe_api.core.config import settings
from cafe_api.core.errors import TokenExpired, TokenInvalid

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hash.

    Uses bcrypt's built-in timing-safe comparison.
    """
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8"),
        )
    except ValueError as e:
        logger.warning(f"Password verification error: {e}")
        return False


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(),
    ).decode("utf-8")


def access_token_ttl() -> timedelta:
    return timedelta(minutes=settings.access_token_expire_minutes)


def refresh_token_ttl() -> timedelta:
    return timedelta(days=settings.refresh_token_expire_days)


def create_access_token(
    staff_id: int,
    role: str,
    session_id: int,
    expires_delta: timedelta | None = None,
    now: datetime | None = None,
) -> str:
    """Create a signed access token bound to a staff session."""
    now = now or datetime.now(timezone.utc)
    expire = now + (expires_delta if expires_delta is not None else access_token_ttl())
    to_encode: dict[str, Any] = {
        "sub": str(staff_id),
        "role": role,
        "sid": session_id,
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": expire,
        "jti": secrets.token_urlsafe(16),
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Raises TokenExpired past ``exp`` and TokenInvalid for anything else that
    does not verify (bad signature, malformed, wrong token type).
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            options={"require": ["exp", "sub", "sid"]},
        )
    except ExpiredSignatureError:
        raise TokenExpired()
    except PyJWTError as e:
        logger.debug(f"JWT decode error: {e}")
        raise TokenInvalid()

    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise TokenInvalid("Wrong token type")
    return payload


def generate_refresh_token() -> str:
    """Opaque, high-entropy refresh token. Only its hash is stored."""
    return secrets.token_urlsafe(48)


def hash_token(token: str) -> str:
    """SHA-256 hex digest used to store and look up refresh tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
