"""
Storage Factory

Selects the backend (local | s3) from config. The rest of the app only
calls get_storage(); it never touches the concrete classes directly.
"""

from __future__ import annotations

from functools import lru_cache

from paperfix.core.config import settings
from paperfix.storage.base import StorageProvider


@lru_cache(maxsize=1)
def get_storage() -> StorageProvider:
    backend = settings.storage_backend.lower()

    if backend == "local":
        from paperfix.storage.local import LocalStorage
        return LocalStorage()

    if backend == "s3":
        from paperfix.storage.s3 import S3Storage
        return S3Storage()

    raise ValueError(
        f"Unknown storage backend: '{backend}'. "
        f"Valid options: 'local', 's3'"
    )
