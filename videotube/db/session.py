import logging
from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from videotube.core.config import settings
from videotube.db.models import Base

logger = logging.getLogger(__name__)


def create_engine(database_url: str | None = None) -> AsyncEngine:
    return create_async_engine(database_url or settings.database_url, echo=False, pool_pre_ping=True)


engine = create_engine()
SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Request-scoped session; routers commit, services only flush."""

    async with SessionLocal() as session:
        yield session


async def init_models(db_engine: AsyncEngine | None = None) -> None:
    """Create any missing users, subscriptions, videos and watch_history tables."""

    db_engine = db_engine or engine
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Ensured %d tables exist", len(Base.metadata.tables))


async def dispose_engine() -> None:
    await engine.dispose()
