"""Tests for registration, login, refresh rotation and profile edits."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from videotube.core.config import settings
from videotube.core.errors import ApiError
from videotube.core.security import create_refresh_token, verify_password
from videotube.db.models import User
from videotube.services import accounts


async def _register(session, media, staged_file, **overrides) -> User:
    fields = {
        "full_name": "Ana Lee",
        "email": "a@x.com",
        "username": "AnaLee",
        "password": "p1",
        "avatar_path": staged_file(),
    }
    fields.update(overrides)
    return await accounts.register_user(session, media, **fields)


@pytest.mark.asyncio
async def test_register_normalises_and_hashes(session: AsyncSession, media, staged_file) -> None:
    user = await _register(session, media, staged_file)

    assert user.id is not None
    assert user.username == "analee"
    assert user.password_hash != "p1"
    assert verify_password("p1", user.password_hash)
    assert user.avatar == media.uploaded[0]
    assert user.cover_image == ""
    assert user.refresh_token is None


@pytest.mark.asyncio
async def test_register_uploads_optional_cover_image(session: AsyncSession, media, staged_file) -> None:
    user = await _register(session, media, staged_file, cover_image_path=staged_file("cover.png"))

    assert len(media.uploaded) == 2
    assert user.cover_image == media.uploaded[1]


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["full_name", "email", "username", "password"])
async def test_register_requires_every_field(session: AsyncSession, media, staged_file, field: str) -> None:
    with pytest.raises(ApiError) as excinfo:
        await _register(session, media, staged_file, **{field: "   "})
    assert excinfo.value.status_code == 400
    assert media.uploaded == []


@pytest.mark.asyncio
async def test_register_duplicate_username_or_email_conflicts(session: AsyncSession, media, staged_file) -> None:
    await _register(session, media, staged_file)

    with pytest.raises(ApiError) as excinfo:
        await _register(session, media, staged_file, email="other@x.com", username="ANALEE")
    assert excinfo.value.status_code == 409

    with pytest.raises(ApiError) as excinfo:
        await _register(session, media, staged_file, email="A@X.com", username="someone")
    assert excinfo.value.status_code == 409


@pytest.mark.asyncio
async def test_register_requires_avatar(session: AsyncSession, media, staged_file) -> None:
    with pytest.raises(ApiError) as excinfo:
        await _register(session, media, staged_file, avatar_path=None)
    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_register_fails_when_avatar_upload_fails(session: AsyncSession, media, staged_file) -> None:
    media.fail_uploads = True
    with pytest.raises(ApiError) as excinfo:
        await _register(session, media, staged_file)
    assert excinfo.value.status_code == 400
    assert (await session.scalar(select(User).where(User.username == "analee"))) is None


@pytest.mark.asyncio
async def test_login_by_username_or_email(session: AsyncSession, make_user) -> None:
    await make_user("ana", email="ana@x.com", password="p1")

    user, pair = await accounts.login_user(session, email=None, username="Ana", password="p1")
    assert user.username == "ana"
    assert user.refresh_token == pair.refresh_token

    user, _ = await accounts.login_user(session, email="ana@x.com", username=None, password="p1")
    assert user.username == "ana"


@pytest.mark.asyncio
async def test_login_failures(session: AsyncSession, make_user) -> None:
    await make_user("ana", password="p1")

    with pytest.raises(ApiError) as excinfo:
        await accounts.login_user(session, email=None, username=None, password="p1")
    assert excinfo.value.status_code == 400

    with pytest.raises(ApiError) as excinfo:
        await accounts.login_user(session, email=None, username="nobody", password="p1")
    assert excinfo.value.status_code == 404

    with pytest.raises(ApiError) as excinfo:
        await accounts.login_user(session, email=None, username="ana", password="wrong")
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_refresh_rotates_and_rejects_previous_token(session: AsyncSession, make_user) -> None:
    await make_user("ana", password="p1")
    _, first = await accounts.login_user(session, email=None, username="ana", password="p1")

    second = await accounts.refresh_access_token(session, first.refresh_token)
    assert second.refresh_token != first.refresh_token

    with pytest.raises(ApiError) as excinfo:
        await accounts.refresh_access_token(session, first.refresh_token)
    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Refresh token is expired or used"

    third = await accounts.refresh_access_token(session, second.refresh_token)
    assert third.refresh_token != second.refresh_token


@pytest.mark.asyncio
async def test_refresh_rejections(session: AsyncSession, make_user) -> None:
    with pytest.raises(ApiError) as excinfo:
        await accounts.refresh_access_token(session, None)
    assert excinfo.value.message == "Unauthorized request"

    with pytest.raises(ApiError) as excinfo:
        await accounts.refresh_access_token(session, "garbage")
    assert excinfo.value.message == "Invalid refresh token"

    ghost = User(id=999, username="ghost", email="g@x.com", full_name="G", password_hash="x", avatar="a")
    with pytest.raises(ApiError) as excinfo:
        await accounts.refresh_access_token(session, create_refresh_token(ghost))
    assert excinfo.value.message == "Invalid refresh token"

    user = await make_user("ana")
    with pytest.raises(ApiError) as excinfo:
        # signed correctly but never stored on the user
        await accounts.refresh_access_token(session, create_refresh_token(user))
    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Refresh token is expired or used"


@pytest.mark.asyncio
async def test_logout_invalidates_refresh_token(session: AsyncSession, make_user) -> None:
    user = await make_user("ana", password="p1")
    _, pair = await accounts.login_user(session, email=None, username="ana", password="p1")

    await accounts.logout_user(session, user)

    assert user.refresh_token is None
    with pytest.raises(ApiError):
        await accounts.refresh_access_token(session, pair.refresh_token)


@pytest.mark.asyncio
async def test_change_password(session: AsyncSession, make_user) -> None:
    user = await make_user("ana", password="old")

    with pytest.raises(ApiError) as excinfo:
        await accounts.change_current_password(session, user, old_password="nope", new_password="new")
    assert excinfo.value.status_code == 400

    await accounts.change_current_password(session, user, old_password="old", new_password="new")
    assert verify_password("new", user.password_hash)
    assert not verify_password("old", user.password_hash)


@pytest.mark.asyncio
async def test_update_account_details(session: AsyncSession, make_user) -> None:
    user = await make_user("ana")
    await make_user("bob", email="bob@x.com")

    with pytest.raises(ApiError) as excinfo:
        await accounts.update_account_details(session, user, full_name="Ana", email=None)
    assert excinfo.value.status_code == 400

    with pytest.raises(ApiError) as excinfo:
        await accounts.update_account_details(session, user, full_name="Ana", email="BOB@x.com")
    assert excinfo.value.status_code == 409

    updated = await accounts.update_account_details(session, user, full_name="Ana Lee", email="New@X.com")
    assert updated.full_name == "Ana Lee"
    assert updated.email == "new@x.com"


@pytest.mark.asyncio
async def test_update_avatar_returns_replaced_url_without_deleting(
    session: AsyncSession, media, make_user, staged_file
) -> None:
    user = await make_user("ana", avatar="https://media.test/old.png")

    replaced = await accounts.update_user_avatar(session, media, user, staged_file())

    assert user.avatar == media.uploaded[0]
    assert replaced == "https://media.test/old.png"
    # removal waits for the caller's commit
    assert media.deleted == []

    await accounts.discard_replaced_media(media, replaced)
    assert media.deleted == ["https://media.test/old.png"]


@pytest.mark.asyncio
async def test_discard_replaced_media_respects_setting(
    session: AsyncSession, media, make_user, staged_file, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings, "delete_replaced_media", False)
    user = await make_user("ana", cover_image="https://media.test/old-cover.png")

    replaced = await accounts.update_user_cover_image(session, media, user, staged_file("cover.png"))
    await accounts.discard_replaced_media(media, replaced)

    assert user.cover_image == media.uploaded[0]
    assert media.deleted == []


@pytest.mark.asyncio
async def test_update_cover_image_without_previous_has_nothing_to_discard(
    session: AsyncSession, media, make_user, staged_file
) -> None:
    user = await make_user("ana")

    assert await accounts.update_user_cover_image(session, media, user, staged_file()) is None


@pytest.mark.asyncio
async def test_update_images_require_a_successful_upload(session: AsyncSession, media, make_user, staged_file) -> None:
    user = await make_user("ana")

    with pytest.raises(ApiError) as excinfo:
        await accounts.update_user_avatar(session, media, user, None)
    assert excinfo.value.status_code == 400

    media.fail_uploads = True
    with pytest.raises(ApiError) as excinfo:
        await accounts.update_user_cover_image(session, media, user, staged_file())
    assert excinfo.value.status_code == 400
    assert media.deleted == []


@pytest.mark.asyncio
async def test_refresh_rejects_expired_stored_token(session: AsyncSession, make_user) -> None:
    user = await make_user("ana")
    issued = datetime.now(timezone.utc) - timedelta(days=settings.refresh_token_expire_days + 1)
    user.refresh_token = create_refresh_token(user, now=issued)
    await session.flush()

    with pytest.raises(ApiError) as excinfo:
        await accounts.refresh_access_token(session, user.refresh_token)

    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Refresh token is expired or used"


@pytest.mark.asyncio
async def test_register_skips_cover_upload_when_avatar_fails(session: AsyncSession, media, staged_file) -> None:
    media.fail_uploads = True

    with pytest.raises(ApiError) as excinfo:
        await _register(session, media, staged_file, cover_image_path=staged_file("cover.png"))

    assert excinfo.value.status_code == 400
    assert len(media.attempts) == 1


@pytest.mark.asyncio
async def test_register_lost_race_deletes_uploaded_images(
    session: AsyncSession, media, staged_file, monkeypatch: pytest.MonkeyPatch
) -> None:
    await _register(session, media, staged_file)

    async def no_match(*args, **kwargs):
        return None

    # let the duplicate reach the unique index
    monkeypatch.setattr(accounts, "_find_by_identity", no_match)

    with pytest.raises(ApiError) as excinfo:
        await _register(session, media, staged_file, email="other@x.com", cover_image_path=staged_file("cover.png"))

    assert excinfo.value.status_code == 409
    assert media.deleted == media.uploaded[1:]
    assert len(media.deleted) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("email", ["not-an-email", "ana@", "@x.com"])
async def test_register_rejects_malformed_email(session: AsyncSession, media, staged_file, email: str) -> None:
    with pytest.raises(ApiError) as excinfo:
        await _register(session, media, staged_file, email=email)

    assert excinfo.value.status_code == 400
    assert excinfo.value.message == "Invalid email address"
    assert media.uploaded == []


@pytest.mark.asyncio
async def test_update_account_rejects_malformed_email(session: AsyncSession, make_user) -> None:
    user = await make_user("ana")

    with pytest.raises(ApiError) as excinfo:
        await accounts.update_account_details(session, user, full_name="Ana", email="nope")

    assert excinfo.value.status_code == 400
