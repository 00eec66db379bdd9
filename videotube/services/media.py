"""Client for the external media storage service."""

from __future__ import annotations

import asyncio
import logging
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path

import httpx
from fastapi import UploadFile

from videotube.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MediaAsset:
    """A file stored remotely by the media service."""

    url: str
    public_id: str | None = None


class MediaStorage:
    """Uploads staged files to the media service and deletes replaced ones."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        upload_url: str,
        delete_url: str | None = None,
        api_key: str | None = None,
    ) -> None:
        self._client = client
        self._upload_url = upload_url
        self._delete_url = delete_url
        self._api_key = api_key

    def _form(self, **fields: str) -> dict[str, str]:
        payload = dict(fields)
        if self._api_key:
            payload["api_key"] = self._api_key
        return payload

    async def upload(self, local_path: str | Path | None) -> MediaAsset | None:
        """Upload a local file; returns ``None`` when the upload failed.

        The local file is removed afterwards whatever the outcome.
        """

        if not local_path:
            return None

        path = Path(local_path)
        try:
            with path.open("rb") as handle:
                response = await self._client.post(
                    self._upload_url,
                    data=self._form(resource_type="auto"),
                    files={"file": (path.name, handle)},
                )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, OSError, ValueError):
            logger.exception("Media upload failed for %s", path.name)
            return None
        finally:
            path.unlink(missing_ok=True)

        if not isinstance(payload, dict):
            payload = {}
        url = payload.get("secure_url") or payload.get("url")
        if not url:
            logger.warning("Media service returned no URL for %s", path.name)
            return None
        return MediaAsset(url=url, public_id=payload.get("public_id"))

    async def delete(self, url: str) -> bool:
        """Remove a previously uploaded asset; returns True when it was deleted."""

        if not self._delete_url or not url:
            return False
        try:
            response = await self._client.post(self._delete_url, data=self._form(url=url))
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Failed to delete media %s: %s", url, exc)
            return False
        return True


def build_media_storage(client: httpx.AsyncClient) -> MediaStorage:
    """Create a storage client configured from settings."""

    return MediaStorage(
        client,
        upload_url=settings.media_upload_url,
        delete_url=settings.media_delete_url,
        api_key=settings.media_api_key,
    )


def _copy_to_disk(upload: UploadFile, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    upload.file.seek(0)
    with target.open("wb") as handle:
        shutil.copyfileobj(upload.file, handle)


async def stage_upload(upload: UploadFile | None) -> Path | None:
    """Copy an incoming multipart file into the temp directory.

    Returns ``None`` when no file (or an unnamed empty part) was sent.
    """

    if upload is None or not upload.filename:
        return None

    suffix = Path(upload.filename).suffix
    target = Path(settings.upload_temp_dir) / f"{uuid.uuid4().hex}{suffix}"
    await asyncio.to_thread(_copy_to_disk, upload, target)
    return target


def discard_staged(*paths: Path | None) -> None:
    """Remove staged files that never reached the media service."""

    for path in paths:
        if path is not None:
            path.unlink(missing_ok=True)
