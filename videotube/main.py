"""FastAPI app entry point."""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from videotube.core.config import settings
from videotube.core.errors import register_exception_handlers
from videotube.core.logging import configure_logging
from videotube.db.session import dispose_engine, init_models
from videotube.routers import users

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Build FastAPI application."""

    configure_logging()

    app = FastAPI(title="VideoTube", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(users.router)

    @app.on_event("startup")
    async def _startup() -> None:
        Path(settings.upload_temp_dir).mkdir(parents=True, exist_ok=True)
        if settings.create_tables:
            await init_models()
        logger.info("VideoTube API started")

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await dispose_engine()

    @app.get("/healthz", tags=["health"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
