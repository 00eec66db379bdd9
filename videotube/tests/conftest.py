"""Shared fixtures: in-memory database, fake media storage and an ASGI client."""

from __future__ import annotations

import os

# keep bcrypt fast; must be set before videotube.core.security is imported
os.environ.setdefault("APP_BCRYPT_ROUNDS", "4")

import uuid
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from videotube.core.config import settings
from videotube.core.security import hash_password
from videotube.db.models import Base, User
from videotube.services.media import MediaAsset

pytest_plugins = ("pytest_asyncio",)


def _memory_db_url() -> str:
    return f"sqlite+aiosqlite:///file:videotube_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


class FakeMediaStorage:
    """Stands in for the remote media service; records uploads and deletions."""

    def __init__(self) -> None:
        self.attempts: list[Path] = []
        self.uploaded: list[str] = []
        self.deleted: list[str] = []
        self.fail_uploads = False

    async def upload(self, local_path):
        self.attempts.append(local_path)
        if not local_path:
            return None
        path = Path(local_path)
        path.unlink(missing_ok=True)
        if self.fail_uploads:
            return None
        url = f"https://media.test/{path.name}"
        self.uploaded.append(url)
        return MediaAsset(url=url, public_id=path.stem)

    async def delete(self, url: str) -> bool:
        self.deleted.append(url)
        return True


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(_memory_db_url(), future=True, connect_args={"uri": True})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def media() -> FakeMediaStorage:
    return FakeMediaStorage()


@pytest.fixture
def staged_file(tmp_path: Path):
    """Create a small file on disk, as the router would after staging an upload."""

    def _make(name: str = "avatar.png") -> Path:
        path = tmp_path / f"{uuid.uuid4().hex}-{name}"
        path.write_bytes(b"\x89PNG fake image")
        return path

    return _make


@pytest.fixture
def make_user(session: AsyncSession):
    async def _make(username: str = "ana", *, email: str | None = None, password: str = "secret", **fields) -> User:
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            full_name=fields.pop("full_name", username.title()),
            password_hash=hash_password(password),
            avatar=fields.pop("avatar", f"https://media.test/{username}.png"),
            **fields,
        )
        session.add(user)
        await session.flush()
        return user

    return _make


@pytest_asyncio.fixture
async def client(session_factory, media: FakeMediaStorage, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    from videotube.db.session import get_session
    from videotube.main import create_app
    from videotube.routers.dependencies import get_media_storage

    monkeypatch.setattr(settings, "upload_temp_dir", str(tmp_path / "uploads"))

    app = create_app()

    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_media_storage] = lambda: media

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="https://testserver") as http_client:
        yield http_client
