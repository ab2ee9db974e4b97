"""
Download the published crates.io database export.
"""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiofiles
import httpx
from pydantic import BaseModel, Field, ValidationError

from dbdump.core.config import DEFAULT_DUMP_URL

logger = logging.getLogger(__name__)

DUMP_FILE_NAME = "db-dump.tar.gz"
STATUS_FILE_NAME = "download_status.json"


class DownloadStatus(BaseModel):
    """What was last downloaded, and when."""
    last_pulled: Optional[datetime] = Field(default=None, description="When the export was last downloaded")
    dump_path: Optional[str] = Field(default=None, description="Path to the downloaded archive")
    size: Optional[int] = Field(default=None, description="Size of the archive in bytes")
    etag: Optional[str] = Field(default=None, description="ETag the server sent with the archive")


class DownloadStatusStore:
    """Keeps ``DownloadStatus`` in a JSON file next to the archive."""

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.status_file = data_dir / STATUS_FILE_NAME
        self._status: Optional[DownloadStatus] = None

    def get_status(self) -> DownloadStatus:
        if self._status is None:
            self._status = self._load()
        return self._status

    def _load(self) -> DownloadStatus:
        if not self.status_file.exists():
            return DownloadStatus()
        try:
            data = json.loads(self.status_file.read_text(encoding="utf-8"))
            return DownloadStatus(**data)
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning(f"Ignoring unreadable status file {self.status_file}: {e}")
            return DownloadStatus()

    def _save(self) -> None:
        self.status_file.parent.mkdir(parents=True, exist_ok=True)
        self.status_file.write_text(
            self.get_status().model_dump_json(indent=2, exclude_none=True),
            encoding="utf-8",
        )

    def record_download(self, dump_path: Path, etag: Optional[str] = None) -> DownloadStatus:
        """Record a finished download."""
        self._status = DownloadStatus(
            last_pulled=datetime.now(timezone.utc),
            dump_path=str(dump_path),
            size=dump_path.stat().st_size,
            etag=etag,
        )
        self._save()
        return self._status


async def download_db_dump(
    data_dir: Path,
    url: str = DEFAULT_DUMP_URL,
    attempts: int = 3,
    timeout: float = 60.0,
    retry_delay: float = 1.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Path:
    """
    Download the export archive into ``data_dir``.

    The archive is streamed to a ``.tmp`` file and only moved into place once
    complete, so an interrupted download never leaves a truncated archive
    where the loader would pick it up.

    Args:
        data_dir: Directory to store the archive in
        url: Where to download from
        attempts: How many times to try before giving up
        timeout: HTTP timeout in seconds
        retry_delay: Base delay between attempts; attempt ``n`` waits ``n * retry_delay``
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``

    Returns:
        Path to the downloaded archive
    """
    data_dir.mkdir(parents=True, exist_ok=True)
    dump_path = data_dir / DUMP_FILE_NAME
    tmp_path = data_dir / f"{DUMP_FILE_NAME}.tmp"
    tmp_path.unlink(missing_ok=True)

    etag: Optional[str] = None
    for attempt in range(1, attempts + 1):
        try:
            logger.info(f"Downloading {url} (attempt {attempt}/{attempts})")
            async with httpx.AsyncClient(follow_redirects=True, timeout=timeout, transport=transport) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    etag = response.headers.get("etag")
                    total_size = int(response.headers.get("content-length", 0))
                    downloaded = 0

                    async with aiofiles.open(tmp_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            await f.write(chunk)
                            downloaded += len(chunk)

            if total_size and downloaded != total_size:
                raise httpx.ReadError(f"expected {total_size} bytes, received {downloaded}")
            break
        except httpx.HTTPError as e:
            tmp_path.unlink(missing_ok=True)
            if attempt < attempts:
                logger.warning(f"Download failed (attempt {attempt}/{attempts}): {e}. Retrying...")
                await asyncio.sleep(retry_delay * attempt)
            else:
                logger.error(f"Download of {url} failed after {attempts} attempts: {e}", exc_info=True)
                raise

    tmp_path.replace(dump_path)
    logger.info(f"Export downloaded to {dump_path} ({dump_path.stat().st_size} bytes)")
    DownloadStatusStore(data_dir).record_download(dump_path, etag=etag)
    return dump_path
