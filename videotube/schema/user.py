"""Pydantic schemas for the user account API."""

from __future__ import annotations

from datetime import datetime

from pydantic import EmailStr

from videotube.schema.envelope import CamelModel


class UserResponse(CamelModel):
    """Public view of a user; never carries the password hash or refresh token."""

    id: int
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: str = ""
    created_at: datetime
    updated_at: datetime


class LoginRequest(CamelModel):
    email: str | None = None
    username: str | None = None
    password: str | None = None


class TokenPairResponse(CamelModel):
    access_token: str
    refresh_token: str


class LoginResponse(TokenPairResponse):
    user: UserResponse


class RefreshTokenRequest(CamelModel):
    refresh_token: str | None = None


class ChangePasswordRequest(CamelModel):
    old_password: str | None = None
    new_password: str | None = None


class UpdateAccountRequest(CamelModel):
    full_name: str | None = None
    email: EmailStr | None = None
