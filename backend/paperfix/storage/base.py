"""
Storage provider interface.

The pipeline only needs two operations:
  write(owner, document, filename, bytes) → StoredFile (with an opaque ref)
  read(ref) → bytes

The ref is built server-side from the owner and document ids, never from
client input, and is the only thing stored on the Document row.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from uuid import UUID

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._\-]")


@dataclass(frozen=True)
class StoredFile:
    ref:          str   # relative path (local) or object key (s3)
    size_bytes:   int
    content_type: str


def sanitize_filename(filename: str) -> str:
    """Basename only, OS/S3-safe characters, capped length."""
    basename = filename.replace("\\", "/").rsplit("/", 1)[-1]
    safe = _UNSAFE_CHARS.sub("_", basename).lstrip(".")
    return safe[:200] or "upload"


def build_ref(owner_id: UUID, document_id: UUID, filename: str) -> str:
    """Pattern: users/<owner_id>/documents/<document_id>/<safe filename>"""
    return f"users/{owner_id}/documents/{document_id}/{sanitize_filename(filename)}"


class StorageProvider(ABC):

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Backend name for logging ("local" or "s3")."""

    @abstractmethod
    async def write(
        self,
        owner_id:     UUID,
        document_id:  UUID,
        filename:     str,
        data:         bytes,
        content_type: str,
    ) -> StoredFile:
        """Persist bytes and return the reference to store on the Document."""

    @abstractmethod
    async def read(self, ref: str) -> bytes:
        """
        Return the stored bytes.

        Raises:
            StorageReadError: the object is missing or unreadable.
        """
