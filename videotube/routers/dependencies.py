"""Shared FastAPI dependencies: authenticated caller and media storage."""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import jwt
from fastapi import Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from videotube.core.config import settings
from videotube.core.errors import ApiError
from videotube.core.security import decode_access_token
from videotube.db.models import User
from videotube.db.session import get_session
from videotube.services.media import MediaStorage, build_media_storage

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"


def _extract_access_token(request: Request) -> str | None:
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if token:
        return token
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def get_current_user(request: Request, session: AsyncSession = Depends(get_session)) -> User:
    """Resolve the caller from the access token or reject with 401."""

    token = _extract_access_token(request)
    if not token:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Unauthorized request")

    try:
        claims = decode_access_token(token)
        user_id = int(claims["sub"])
    except (jwt.InvalidTokenError, ValueError) as exc:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Invalid access token") from exc

    user = await session.get(User, user_id)
    if user is None:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Invalid access token")
    return user


async def get_media_storage() -> AsyncIterator[MediaStorage]:
    """Yield a media storage client bound to a request-scoped HTTP client."""

    async with httpx.AsyncClient(timeout=settings.media_timeout_seconds) as client:
        yield build_media_storage(client)
