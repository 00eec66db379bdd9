"""Account workflows: registration, login, token refresh and profile edits."""

from __future__ import annotations

import logging
from pathlib import Path

import jwt
from fastapi import status
from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from videotube.core.config import settings
from videotube.core.errors import ApiError
from videotube.core.security import decode_refresh_token, hash_password, verify_password
from videotube.db.models import User
from videotube.services.media import MediaStorage
from videotube.services.tokens import TOKEN_REUSED_MESSAGE, TokenPair, issue_tokens, revoke_refresh_token

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _normalise_email(email: str) -> str:
    """Validate with the same rules as ``EmailStr`` request fields, then lowercase."""

    normalised = email.strip().lower()
    try:
        _email_adapter.validate_python(normalised)
    except ValidationError as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Invalid email address") from exc
    return normalised


async def _find_by_identity(session: AsyncSession, *, username: str | None, email: str | None) -> User | None:
    clauses = []
    if username:
        clauses.append(User.username == username)
    if email:
        clauses.append(User.email == email)
    if not clauses:
        return None
    return await session.scalar(select(User).where(or_(*clauses)).limit(1))


async def register_user(
    session: AsyncSession,
    media: MediaStorage,
    *,
    full_name: str | None,
    email: str | None,
    username: str | None,
    password: str | None,
    avatar_path: Path | None,
    cover_image_path: Path | None = None,
) -> User:
    """Create a user after uploading the avatar (and optional cover image)."""

    if any(_is_blank(field) for field in (full_name, email, username, password)):
        raise ApiError(status.HTTP_400_BAD_REQUEST, "All fields are required")

    username = username.strip().lower()
    email = _normalise_email(email)

    if await _find_by_identity(session, username=username, email=email):
        raise ApiError(status.HTTP_409_CONFLICT, "User with email or username already exists")

    if avatar_path is None:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Avatar file is required")

    avatar = await media.upload(avatar_path)
    if not avatar:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Avatar file is required")
    cover_image = await media.upload(cover_image_path) if cover_image_path else None

    user = User(
        full_name=full_name.strip(),
        email=email,
        username=username,
        password_hash=hash_password(password),
        avatar=avatar.url,
        cover_image=cover_image.url if cover_image else "",
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        # lost a race on the unique index; nothing references the uploads
        for asset in (avatar, cover_image):
            if asset:
                await media.delete(asset.url)
        raise ApiError(status.HTTP_409_CONFLICT, "User with email or username already exists") from exc

    logger.info("Registered user %s", user.username)
    return user


async def login_user(
    session: AsyncSession,
    *,
    email: str | None,
    username: str | None,
    password: str | None,
) -> tuple[User, TokenPair]:
    """Verify credentials and issue a fresh token pair."""

    if _is_blank(username) and _is_blank(email):
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Username or email is required")

    user = await _find_by_identity(
        session,
        username=username.strip().lower() if not _is_blank(username) else None,
        email=email.strip().lower() if not _is_blank(email) else None,
    )
    if user is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, "User does not exist")

    if not password or not verify_password(password, user.password_hash):
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Invalid user credentials")

    tokens = await issue_tokens(session, user)
    logger.info("User %s logged in", user.username)
    return user, tokens


async def logout_user(session: AsyncSession, user: User) -> None:
    await revoke_refresh_token(session, user)
    logger.info("User %s logged out", user.username)


async def refresh_access_token(session: AsyncSession, incoming_refresh_token: str | None) -> TokenPair:
    """Rotate a refresh token into a new pair.

    Only the token currently stored on the user row is accepted; the stored
    value is swapped atomically so a token can be used exactly once.
    """

    if not incoming_refresh_token:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Unauthorized request")

    try:
        claims = decode_refresh_token(incoming_refresh_token)
        user_id = int(claims["sub"])
    except jwt.ExpiredSignatureError as exc:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, TOKEN_REUSED_MESSAGE) from exc
    except (jwt.InvalidTokenError, ValueError) as exc:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Invalid refresh token") from exc

    user = await session.get(User, user_id)
    if user is None:
        raise ApiError(status.HTTP_401_UNAUTHORIZED, "Invalid refresh token")

    if incoming_refresh_token != user.refresh_token:
        logger.warning("Rejected stale refresh token for user %s", user.id)
        raise ApiError(status.HTTP_401_UNAUTHORIZED, TOKEN_REUSED_MESSAGE)

    tokens = await issue_tokens(session, user, replaces=incoming_refresh_token)
    logger.info("Rotated refresh token for user %s", user.id)
    return tokens


async def change_current_password(
    session: AsyncSession,
    user: User,
    *,
    old_password: str | None,
    new_password: str | None,
) -> None:
    if not old_password or not verify_password(old_password, user.password_hash):
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Invalid old password")
    if _is_blank(new_password):
        raise ApiError(status.HTTP_400_BAD_REQUEST, "New password is required")

    user.password_hash = hash_password(new_password)
    await session.flush()


async def update_account_details(
    session: AsyncSession,
    user: User,
    *,
    full_name: str | None,
    email: str | None,
) -> User:
    if _is_blank(full_name) or _is_blank(email):
        raise ApiError(status.HTTP_400_BAD_REQUEST, "All fields are required")

    email = _normalise_email(email)
    taken = await session.scalar(select(User.id).where(User.email == email, User.id != user.id))
    if taken is not None:
        raise ApiError(status.HTTP_409_CONFLICT, "Email is already in use")

    user.full_name = full_name.strip()
    user.email = email
    await session.flush()
    return user


async def _replace_image(
    session: AsyncSession,
    media: MediaStorage,
    user: User,
    local_path: Path | None,
    *,
    field: str,
    label: str,
) -> str | None:
    if local_path is None:
        raise ApiError(status.HTTP_400_BAD_REQUEST, f"{label} file is missing")

    asset = await media.upload(local_path)
    if not asset or not asset.url:
        raise ApiError(status.HTTP_400_BAD_REQUEST, f"Error while uploading {label.lower()}")

    previous = getattr(user, field)
    setattr(user, field, asset.url)
    await session.flush()
    return previous if previous and previous != asset.url else None


async def update_user_avatar(
    session: AsyncSession, media: MediaStorage, user: User, avatar_path: Path | None
) -> str | None:
    """Point the user at a newly uploaded avatar.

    Returns the replaced URL; the caller removes it with
    ``discard_replaced_media`` once the change is committed.
    """

    return await _replace_image(session, media, user, avatar_path, field="avatar", label="Avatar")


async def update_user_cover_image(
    session: AsyncSession, media: MediaStorage, user: User, cover_image_path: Path | None
) -> str | None:
    return await _replace_image(session, media, user, cover_image_path, field="cover_image", label="Cover image")


async def discard_replaced_media(media: MediaStorage, previous_url: str | None) -> None:
    """Delete an image that a committed update no longer references."""

    if settings.delete_replaced_media and previous_url:
        await media.delete(previous_url)
