"""User account, channel profile and watch history endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, File, Form, Request, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from videotube.core.config import settings
from videotube.db.models import User
from videotube.db.session import get_session
from videotube.routers.dependencies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    get_current_user,
    get_media_storage,
)
from videotube.schema.envelope import ApiResponse
from videotube.schema.profile import ChannelProfile, WatchHistoryVideo
from videotube.schema.user import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RefreshTokenRequest,
    TokenPairResponse,
    UpdateAccountRequest,
    UserResponse,
)
from videotube.services import accounts, profiles
from videotube.services.media import MediaStorage, discard_staged, stage_upload
from videotube.services.tokens import TokenPair

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["users"])


def _set_auth_cookies(response: Response, tokens: TokenPair) -> None:
    for name, value in ((ACCESS_TOKEN_COOKIE, tokens.access_token), (REFRESH_TOKEN_COOKIE, tokens.refresh_token)):
        response.set_cookie(name, value, httponly=True, secure=settings.cookie_secure)


def _clear_auth_cookies(response: Response) -> None:
    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(name, httponly=True, secure=settings.cookie_secure)


@router.post("/register", response_model=ApiResponse[UserResponse], status_code=status.HTTP_201_CREATED)
async def register(
    full_name: str = Form("", alias="fullName"),
    email: str = Form(""),
    username: str = Form(""),
    password: str = Form(""),
    avatar: UploadFile | None = File(None),
    cover_image: UploadFile | None = File(None, alias="coverImage"),
    session: AsyncSession = Depends(get_session),
    media: MediaStorage = Depends(get_media_storage),
) -> ApiResponse[UserResponse]:
    avatar_path = await stage_upload(avatar)
    cover_image_path = await stage_upload(cover_image)
    try:
        user = await accounts.register_user(
            session,
            media,
            full_name=full_name,
            email=email,
            username=username,
            password=password,
            avatar_path=avatar_path,
            cover_image_path=cover_image_path,
        )
        await session.commit()
    finally:
        discard_staged(avatar_path, cover_image_path)

    return ApiResponse(
        status_code=status.HTTP_201_CREATED,
        data=UserResponse.model_validate(user),
        message="User registered successfully",
    )


@router.post("/login", response_model=ApiResponse[LoginResponse])
async def login(
    payload: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[LoginResponse]:
    user, tokens = await accounts.login_user(
        session, email=payload.email, username=payload.username, password=payload.password
    )
    await session.commit()

    _set_auth_cookies(response, tokens)
    data = LoginResponse(
        user=UserResponse.model_validate(user),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )
    return ApiResponse(data=data, message="User logged in successfully")


@router.post("/logout", response_model=ApiResponse[dict[str, Any]])
async def logout(
    response: Response,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[dict[str, Any]]:
    await accounts.logout_user(session, current_user)
    await session.commit()

    _clear_auth_cookies(response)
    return ApiResponse(data={}, message="User logged out")


@router.post("/refresh-token", response_model=ApiResponse[TokenPairResponse])
async def refresh_token(
    request: Request,
    response: Response,
    payload: RefreshTokenRequest | None = Body(None),
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[TokenPairResponse]:
    incoming = request.cookies.get(REFRESH_TOKEN_COOKIE) or (payload.refresh_token if payload else None)
    tokens = await accounts.refresh_access_token(session, incoming)
    await session.commit()

    _set_auth_cookies(response, tokens)
    data = TokenPairResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token)
    return ApiResponse(data=data, message="Access token refreshed")


@router.post("/change-password", response_model=ApiResponse[dict[str, Any]])
async def change_password(
    payload: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[dict[str, Any]]:
    await accounts.change_current_password(
        session, current_user, old_password=payload.old_password, new_password=payload.new_password
    )
    await session.commit()
    return ApiResponse(data={}, message="Password changed successfully")


@router.get("/current-user", response_model=ApiResponse[UserResponse])
async def current_user_profile(current_user: User = Depends(get_current_user)) -> ApiResponse[UserResponse]:
    return ApiResponse(data=UserResponse.model_validate(current_user), message="Current user fetched successfully")


@router.patch("/update-account", response_model=ApiResponse[UserResponse])
async def update_account(
    payload: UpdateAccountRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[UserResponse]:
    user = await accounts.update_account_details(
        session, current_user, full_name=payload.full_name, email=payload.email
    )
    await session.commit()
    return ApiResponse(data=UserResponse.model_validate(user), message="Account details updated successfully")


@router.patch("/avatar", response_model=ApiResponse[UserResponse])
async def update_avatar(
    avatar: UploadFile | None = File(None),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    media: MediaStorage = Depends(get_media_storage),
) -> ApiResponse[UserResponse]:
    avatar_path = await stage_upload(avatar)
    try:
        replaced = await accounts.update_user_avatar(session, media, current_user, avatar_path)
        await session.commit()
    finally:
        discard_staged(avatar_path)
    await accounts.discard_replaced_media(media, replaced)
    return ApiResponse(data=UserResponse.model_validate(current_user), message="Avatar updated successfully")


@router.patch("/cover-image", response_model=ApiResponse[UserResponse])
async def update_cover_image(
    cover_image: UploadFile | None = File(None, alias="coverImage"),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    media: MediaStorage = Depends(get_media_storage),
) -> ApiResponse[UserResponse]:
    cover_image_path = await stage_upload(cover_image)
    try:
        replaced = await accounts.update_user_cover_image(session, media, current_user, cover_image_path)
        await session.commit()
    finally:
        discard_staged(cover_image_path)
    await accounts.discard_replaced_media(media, replaced)
    return ApiResponse(data=UserResponse.model_validate(current_user), message="Cover image updated successfully")


@router.get("/c/{username}", response_model=ApiResponse[ChannelProfile])
async def channel_profile(
    username: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[ChannelProfile]:
    profile = await profiles.get_channel_profile(session, username, viewer_id=current_user.id)
    return ApiResponse(data=profile, message="User channel fetched successfully")


@router.get("/history", response_model=ApiResponse[list[WatchHistoryVideo]])
async def watch_history(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> ApiResponse[list[WatchHistoryVideo]]:
    history = await profiles.get_watch_history(session, current_user.id)
    return ApiResponse(data=history, message="Watch history fetched successfully")
