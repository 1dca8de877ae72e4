"""
Composed FastAPI Dependencies

Route handlers import from here — never from auth/token, db/session,
storage or services directly. Tests override these providers through
app.dependency_overrides.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paperfix.auth.token import TokenPayload, get_current_user
from paperfix.db.session import AsyncSessionLocal, get_db
from paperfix.services.ingestion import IngestionService, TaskPublisher
from paperfix.services.jobs import JobStore
from paperfix.services.retry import RetryController
from paperfix.storage.base import StorageProvider
from paperfix.storage.factory import get_storage


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal


def get_task_publisher() -> TaskPublisher:
    return TaskPublisher()


def get_storage_provider() -> StorageProvider:
    return get_storage()


def get_ingestion_service(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    storage:         Annotated[StorageProvider, Depends(get_storage_provider)],
    publisher:       Annotated[TaskPublisher, Depends(get_task_publisher)],
) -> IngestionService:
    return IngestionService(session_factory, storage, publisher)


def get_job_store(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> JobStore:
    return JobStore(session_factory)


def get_retry_controller(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    publisher:       Annotated[TaskPublisher, Depends(get_task_publisher)],
) -> RetryController:
    # immediate reprocessing runs on a worker, not inside the request
    return RetryController(session_factory, reprocess=publisher.publish_processing_task)


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

CurrentUser = Annotated[TokenPayload,     Depends(get_current_user)]
DB          = Annotated[AsyncSession,     Depends(get_db)]
Ingestion   = Annotated[IngestionService, Depends(get_ingestion_service)]
Jobs        = Annotated[JobStore,         Depends(get_job_store)]
Retry       = Annotated[RetryController,  Depends(get_retry_controller)]
