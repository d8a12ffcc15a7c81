"""
Local file storage for uploaded documents.

FileAccessor   - resolves an event's fileUrl to an absolute path and reads it.
LocalUploadStore - writes an incoming upload into UPLOAD_DIR under a
                   collision-free name (upload side only).

fileUrl values are plain filesystem paths or file:// URLs. The producer
resolves them to absolute paths before publishing because the consumer runs
with a different working directory.
"""

from __future__ import annotations

import asyncio
import logging
import os
import random
import time
from pathlib import Path
from urllib.parse import unquote, urlparse

from docingest.core.errors import FileAccessError

logger = logging.getLogger(__name__)


class FileAccessor:
    """Resolve and read stored document files. Stateless; safe to share."""

    def resolve(self, file_url: str) -> Path:
        """Return the absolute, normalized path for a locator."""
        try:
            if file_url.startswith("file://"):
                return Path(unquote(urlparse(file_url).path)).resolve()
            return Path(file_url).expanduser().resolve()
        except (OSError, RuntimeError, ValueError) as exc:
            raise FileAccessError(f"Cannot resolve {file_url!r}: {exc}", path=file_url) from exc

    async def read_bytes(self, path: Path) -> bytes:
        """
        Read the whole file off the event loop.
        Missing file, permission problems and other OS errors all surface as
        FileAccessError so the consumer can record a FAILED attempt.
        """
        try:
            return await asyncio.to_thread(Path(path).read_bytes)
        except OSError as exc:
            raise FileAccessError(
                f"Cannot read {path}: {exc.strerror or exc}",
                path=str(path),
            ) from exc


class LocalUploadStore:
    """Persists raw uploads to a local directory shared with the ingestion worker."""

    def __init__(self, upload_dir: str | os.PathLike) -> None:
        self._root = Path(upload_dir)

    def _unique_name(self, suffix: str) -> str:
        return f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}{suffix}"

    async def save(self, data: bytes, suffix: str = ".pdf") -> Path:
        """Write `data` and return the absolute path of the new file."""
        self._root.mkdir(parents=True, exist_ok=True)
        target = (self._root / self._unique_name(suffix)).resolve()
        await asyncio.to_thread(target.write_bytes, data)
        logger.info("Upload stored | path=%s size=%d", target, len(data))
        return target
