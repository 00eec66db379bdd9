"""Issue and persist access/refresh token pairs."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import status
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from videotube.core.errors import ApiError
from videotube.core.security import create_access_token, create_refresh_token
from videotube.db.models import User

logger = logging.getLogger(__name__)

TOKEN_REUSED_MESSAGE = "Refresh token is expired or used"


@dataclass(slots=True)
class TokenPair:
    """Freshly signed tokens for one user."""

    access_token: str
    refresh_token: str


async def issue_tokens(session: AsyncSession, user: User, *, replaces: str | None = None) -> TokenPair:
    """Sign a new token pair and store the refresh token on the user row.

    The stored token is overwritten by a single UPDATE. When ``replaces`` is
    given the UPDATE only matches while the row still holds that token, so a
    concurrent rotation of the same token loses and is reported as reuse.
    """

    try:
        pair = TokenPair(access_token=create_access_token(user), refresh_token=create_refresh_token(user))

        stmt = update(User).where(User.id == user.id)
        if replaces is not None:
            stmt = stmt.where(User.refresh_token == replaces)
        result = await session.execute(
            stmt.values(refresh_token=pair.refresh_token).execution_options(synchronize_session=False)
        )
    except Exception as exc:  # noqa: BLE001 - surfaced as a generic 500
        logger.exception("Token generation failed for user %s", user.id)
        raise ApiError(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Something went wrong while generating tokens"
        ) from exc

    if result.rowcount != 1:
        if replaces is not None:
            raise ApiError(status.HTTP_401_UNAUTHORIZED, TOKEN_REUSED_MESSAGE)
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Something went wrong while generating tokens")

    await session.refresh(user)
    return pair


async def revoke_refresh_token(session: AsyncSession, user: User) -> None:
    """Clear the stored refresh token so no outstanding one can be rotated."""

    await session.execute(
        update(User)
        .where(User.id == user.id)
        .values(refresh_token=None)
        .execution_options(synchronize_session=False)
    )
    await session.refresh(user)
