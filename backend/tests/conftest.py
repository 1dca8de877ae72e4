"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy:
  function-scoped : db_engine, session_factory, owner_id, storage,
                    auth_headers, sample_pdf_bytes, sample_png_bytes

Environment strategy:
  - Every test gets its own SQLite file (aiosqlite) with the full schema;
    claims, persistence and retry run real SQL against it.
  - The extraction service is replaced by a scripted gateway; no network.
  - Tesseract is patched; PDFs are generated in-test with PyMuPDF.
  - JWTs are signed with a test HS256 secret.

How to run:
  pytest                          # all tests
  pytest -m unit                  # unit tests only
  pytest -m integration           # FastAPI stack against a temp database
  pytest backend/tests/unit/test_job_store.py
"""

from __future__ import annotations

import io
import json
import os
import uuid
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any paperfix imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("DATABASE_URL",          "sqlite+aiosqlite:///./paperfix-test.db")
os.environ.setdefault("STORAGE_BACKEND",       "local")
os.environ.setdefault("OPENAI_API_KEY",        "sk-test-key")
os.environ.setdefault("CELERY_BROKER_URL",     "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("JWT_SECRET",            "test-secret-do-not-use")
os.environ.setdefault("JWT_AUDIENCE",          "paperfix-api")
os.environ.setdefault("APP_ENV",               "development")
os.environ.setdefault("STALE_JOB_TIMEOUT_SECONDS", "900")

from sqlalchemy import select  # noqa: E402

from paperfix.auth.token import create_access_token  # noqa: E402
from paperfix.db.session import build_engine, build_session_factory, init_models  # noqa: E402
from paperfix.llm.gateway import GatewayResponse, LLMGateway  # noqa: E402
from paperfix.models.documents import ActionItem, Document, ProcessingJob  # noqa: E402
from paperfix.processing.text import ExtractedText  # noqa: E402
from paperfix.storage.base import StorageProvider, StoredFile, build_ref  # noqa: E402
from paperfix.core.exceptions import StorageReadError  # noqa: E402


# ─────────────────────────────────────────────────────────────────────────────
# Database
# ─────────────────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'paperfix.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


async def create_document(
    session_factory,
    owner_id:   uuid.UUID | None = None,
    *,
    media_type: str              = "image/jpeg",
    language:   str              = "nl",
    filename:   str              = "brief.jpg",
    status:     str              = "PENDING",
    error:      str | None       = None,
    file_ref:   str | None       = None,
    **document_fields: Any,
) -> tuple[uuid.UUID, uuid.UUID]:
    """Insert a Document + ProcessingJob pair; returns (document_id, job_id)."""
    owner_id = owner_id or uuid.uuid4()
    document_id = uuid.uuid4()
    job_id = uuid.uuid4()
    async with session_factory() as session:
        async with session.begin():
            session.add(Document(
                id=document_id,
                owner_id=owner_id,
                file_ref=file_ref or build_ref(owner_id, document_id, filename),
                media_type=media_type,
                original_filename=filename,
                language=language,
                **document_fields,
            ))
            await session.flush()
            session.add(ProcessingJob(
                id=job_id, document_id=document_id, status=status, error=error,
            ))
    return document_id, job_id


async def load_state(session_factory, document_id: uuid.UUID):
    """Fresh read of (document, job, action items) for assertions."""
    async with session_factory() as session:
        doc = await session.get(Document, document_id)
        job = (await session.execute(
            select(ProcessingJob).where(ProcessingJob.document_id == document_id)
        )).scalar_one_or_none()
        items = list((await session.execute(
            select(ActionItem)
            .where(ActionItem.document_id == document_id)
            .order_by(ActionItem.created_at)
        )).scalars().all())
    return doc, job, items


# ─────────────────────────────────────────────────────────────────────────────
# Storage double
# ─────────────────────────────────────────────────────────────────────────────

class InMemoryStorage(StorageProvider):
    """Dict-backed StorageProvider for pipeline and API tests."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    @property
    def backend_name(self) -> str:
        return "memory"

    async def write(self, owner_id, document_id, filename, data, content_type) -> StoredFile:
        ref = build_ref(owner_id, document_id, filename)
        self.objects[ref] = data
        return StoredFile(ref=ref, size_bytes=len(data), content_type=content_type)

    async def read(self, ref: str) -> bytes:
        try:
            return self.objects[ref]
        except KeyError:
            raise StorageReadError(f"Stored file not found: {ref}")


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


# ─────────────────────────────────────────────────────────────────────────────
# Extraction service doubles
# ─────────────────────────────────────────────────────────────────────────────

def extraction_json(**overrides: Any) -> str:
    """A valid model answer; keyword overrides replace top-level keys."""
    payload: dict[str, Any] = {
        "docType":    "BOETE",
        "sender":     "CJIB",
        "summary":    "Je hebt een boete gekregen van 79 euro.",
        "actions":    [{
            "title":       "Betaal boete",
            "description": "Betaal 79 euro aan het CJIB.",
            "deadline":    "2026-01-20",
        }],
        "amountEUR":  79,
        "deadline":   "2026-01-20",
        "confidence": 80,
    }
    payload.update(overrides)
    return json.dumps(payload)


def gateway_response(content: str) -> GatewayResponse:
    return GatewayResponse(
        content=content,
        model_used="test-model",
        input_tokens=1,
        output_tokens=1,
        latency_ms=1.0,
        request_id=str(uuid.uuid4()),
    )


def scripted_gateway(*outputs: str | Exception) -> MagicMock:
    """Gateway whose complete() returns (or raises) the given outputs in order."""
    gateway = MagicMock(spec=LLMGateway)
    gateway.complete = AsyncMock(side_effect=[
        o if isinstance(o, Exception) else gateway_response(o) for o in outputs
    ])
    return gateway


def fixed_text_extractor(text: str, strategy: str = "tesseract") -> MagicMock:
    extractor = MagicMock()
    extractor.extract = AsyncMock(
        return_value=ExtractedText(text=text, strategy_name=strategy, page_count=1)
    )
    return extractor


# ─────────────────────────────────────────────────────────────────────────────
# Auth
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def auth_headers(owner_id) -> dict[str, str]:
    token = create_access_token(owner_id, email="user@example.com")
    return {"Authorization": f"Bearer {token}"}


# ─────────────────────────────────────────────────────────────────────────────
# Sample files
# ─────────────────────────────────────────────────────────────────────────────

def make_pdf(*page_texts: str | None) -> bytes:
    """Build a PDF with one page per argument; None gives a page with no text layer."""
    import fitz

    doc = fitz.open()
    for text in page_texts or (None,):
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def make_png(size: tuple[int, int] = (64, 32)) -> bytes:
    from PIL import Image

    buf = io.BytesIO()
    Image.new("RGB", size, "white").save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    return make_pdf("Belastingdienst aanslag 2025")


@pytest.fixture
def sample_png_bytes() -> bytes:
    return make_png()
