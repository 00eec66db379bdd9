"""Password hashing and JWT helpers."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from passlib.context import CryptContext

from videotube.core.config import settings
from videotube.db.models import User

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    """Check a plaintext password against a stored bcrypt hash."""

    try:
        return pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        # unknown or malformed hash
        return False


def _encode(claims: dict[str, Any], secret: str, lifetime: timedelta, now: datetime | None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        **claims,
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def _decode(token: str, secret: str, token_type: str) -> dict[str, Any]:
    claims: dict[str, Any] = jwt.decode(
        token,
        secret,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["exp", "sub"]},
    )
    if claims.get("type") != token_type:
        raise jwt.InvalidTokenError(f"Expected a {token_type} token")
    return claims


def create_access_token(user: User, *, now: datetime | None = None) -> str:
    """Short-lived token carrying the user's public identity."""

    claims = {
        "sub": str(user.id),
        "email": user.email,
        "username": user.username,
        "full_name": user.full_name,
        "type": ACCESS_TOKEN_TYPE,
    }
    lifetime = timedelta(minutes=settings.access_token_expire_minutes)
    return _encode(claims, settings.access_token_secret, lifetime, now)


def create_refresh_token(user: User, *, now: datetime | None = None) -> str:
    """Long-lived token carrying only the user id."""

    claims = {"sub": str(user.id), "type": REFRESH_TOKEN_TYPE}
    lifetime = timedelta(days=settings.refresh_token_expire_days)
    return _encode(claims, settings.refresh_token_secret, lifetime, now)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify an access token; raises ``jwt.InvalidTokenError`` subclasses."""

    return _decode(token, settings.access_token_secret, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> dict[str, Any]:
    """Verify a refresh token; raises ``jwt.InvalidTokenError`` subclasses."""

    return _decode(token, settings.refresh_token_secret, REFRESH_TOKEN_TYPE)
