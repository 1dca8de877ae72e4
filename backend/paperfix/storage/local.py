"""
Filesystem storage for local development and single-host deployments.

Files live under settings.storage_root at the relative ref path. Blocking
file I/O runs in the default thread executor.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from uuid import UUID

from paperfix.core.config import settings
from paperfix.core.exceptions import StorageReadError
from paperfix.storage.base import StorageProvider, StoredFile, build_ref

logger = logging.getLogger(__name__)


class LocalStorage(StorageProvider):

    def __init__(self, root: str | Path | None = None) -> None:
        self._root = Path(root or settings.storage_root).resolve()

    @property
    def backend_name(self) -> str:
        return "local"

    def _path(self, ref: str) -> Path:
        path = (self._root / ref).resolve()
        # refs are server-built, but never let one escape the root
        if not path.is_relative_to(self._root):
            raise StorageReadError(f"Invalid storage reference: {ref}")
        return path

    @staticmethod
    def _write_sync(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def write(
        self,
        owner_id:     UUID,
        document_id:  UUID,
        filename:     str,
        data:         bytes,
        content_type: str,
    ) -> StoredFile:
        ref = build_ref(owner_id, document_id, filename)
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._write_sync, self._path(ref), data)

        logger.info("Local write ok | ref=%s size=%d", ref, len(data))
        return StoredFile(ref=ref, size_bytes=len(data), content_type=content_type)

    async def read(self, ref: str) -> bytes:
        path = self._path(ref)
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, path.read_bytes)
        except OSError as exc:
            raise StorageReadError(f"Could not read stored file {ref}: {exc}") from exc
