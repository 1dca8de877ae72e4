"""
Integration Tests — Documents, Jobs and Action Items API
════════════════════════════════════════════════════════
These tests exercise the FULL FastAPI routing stack, including:
  - Multipart form parsing and magic-byte validation
  - Dependency injection chain (DB, storage and publisher overridden)
  - Real JWT verification with the test secret
  - Response status codes, headers and structured error bodies

What is mocked vs real
──────────────────────
  ✅ Real: FastAPI routing, request parsing, Pydantic schemas, services,
           SQL against a per-test SQLite database, the pipeline itself
  🔲 Mock: file storage      (InMemoryStorage)
  🔲 Mock: Celery broker     (mock_publisher)
  🔲 Mock: extraction model  (scripted gateway)

How to run
──────────
  pytest -m integration backend/tests/integration/test_documents_api.py -v
"""

from __future__ import annotations

import io
import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from paperfix.auth.dependencies import (
    get_session_factory,
    get_storage_provider,
    get_task_publisher,
)
from paperfix.auth.token import create_access_token
from paperfix.db.session import get_db
from paperfix.llm.extraction import StructuredExtractionClient
from paperfix.main import app
from paperfix.models.documents import ActionItem
from paperfix.services.pipeline import DocumentPipeline
from tests.conftest import (
    create_document,
    extraction_json,
    fixed_text_extractor,
    scripted_gateway,
)


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_publisher():
    publisher = MagicMock()
    publisher.publish_processing_task = AsyncMock(return_value=None)
    return publisher


@pytest_asyncio.fixture
async def client(session_factory, storage, mock_publisher):
    async def _get_db():
        async with session_factory() as session:
            async with session.begin():
                yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_storage_provider] = lambda: storage
    app.dependency_overrides[get_task_publisher] = lambda: mock_publisher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


def _upload(content: bytes, filename: str = "brief.pdf", language: str | None = None) -> dict:
    data = {"language": language} if language else {}
    return {
        "files": {"file": (filename, io.BytesIO(content), "application/octet-stream")},
        "data":  data,
    }


async def _add_action_item(session_factory, document_id) -> uuid.UUID:
    item_id = uuid.uuid4()
    async with session_factory() as session:
        async with session.begin():
            session.add(ActionItem(
                id=item_id, document_id=document_id, title="Betaal boete", description="79 euro",
            ))
    return item_id


# ─────────────────────────────────────────────────────────────────────────────
# Upload → process → read
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestUploadAndRead:

    async def test_upload_returns_202_with_pending_job(
        self, client, auth_headers, mock_publisher, sample_pdf_bytes,
    ):
        resp = await client.post(
            "/api/v1/documents/upload", headers=auth_headers, **_upload(sample_pdf_bytes),
        )

        assert resp.status_code == 202
        body = resp.json()
        assert body["job_status"] == "PENDING"
        assert body["media_type"] == "application/pdf"
        assert resp.headers["X-Document-ID"] == body["document_id"]
        assert resp.headers["Location"] == f"/api/v1/documents/{body['document_id']}"
        mock_publisher.publish_processing_task.assert_awaited_once()

    async def test_upload_requires_auth(self, client, sample_pdf_bytes):
        resp = await client.post("/api/v1/documents/upload", **_upload(sample_pdf_bytes))
        assert resp.status_code in (401, 403)

    async def test_upload_rejects_unsupported_type(self, client, auth_headers):
        resp = await client.post(
            "/api/v1/documents/upload", headers=auth_headers, **_upload(b"just some text", "a.txt"),
        )

        assert resp.status_code == 400
        assert resp.json()["detail"]["error_code"] == "UNSUPPORTED_FILE_TYPE"

    async def test_upload_rejects_unsupported_language(self, client, auth_headers, sample_pdf_bytes):
        resp = await client.post(
            "/api/v1/documents/upload",
            headers=auth_headers,
            **_upload(sample_pdf_bytes, language="de"),
        )

        assert resp.status_code == 400
        assert resp.json()["detail"]["error_code"] == "UNSUPPORTED_LANGUAGE"

    async def test_full_round_trip(
        self, client, auth_headers, session_factory, storage, sample_png_bytes,
    ):
        upload = await client.post(
            "/api/v1/documents/upload",
            headers=auth_headers,
            **_upload(sample_png_bytes, "cjib.png", language="nl"),
        )
        document_id = upload.json()["document_id"]

        pending = await client.get(f"/api/v1/documents/{document_id}", headers=auth_headers)
        assert pending.json()["job"]["status"] == "PENDING"
        assert pending.json()["doc_type"] is None

        pipeline = DocumentPipeline(
            session_factory,
            storage,
            text_extractor=fixed_text_extractor("CJIB 79 euro voor 20 januari 2026"),
            extraction_client=StructuredExtractionClient(gateway=scripted_gateway(extraction_json())),
        )
        await pipeline.process_document(uuid.UUID(document_id))

        resp = await client.get(f"/api/v1/documents/{document_id}", headers=auth_headers)
        body = resp.json()
        assert resp.status_code == 200
        assert body["job"]["status"] == "DONE"
        assert body["doc_type"] == "BOETE"
        assert body["sender"] == "CJIB"
        assert Decimal(str(body["amount"])) == Decimal("79.00")
        assert body["deadline"] == "2026-01-20"
        assert body["confidence"] == 80
        assert [(i["title"], i["status"]) for i in body["action_items"]] == [("Betaal boete", "OPEN")]
        assert body["action_items"][0]["deadline"] == "2026-01-20"

    async def test_other_owner_gets_404(self, client, session_factory):
        doc_id, _ = await create_document(session_factory, uuid.uuid4())
        stranger = {"Authorization": f"Bearer {create_access_token(uuid.uuid4())}"}

        resp = await client.get(f"/api/v1/documents/{doc_id}", headers=stranger)

        assert resp.status_code == 404
        assert resp.json()["detail"]["error_code"] == "DOCUMENT_NOT_FOUND"


# ─────────────────────────────────────────────────────────────────────────────
# Retry
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestRetryEndpoint:

    async def test_failed_job_is_reset(self, client, auth_headers, session_factory, owner_id):
        doc_id, _ = await create_document(
            session_factory, owner_id, status="FAILED", error="Empty LLM output",
        )

        resp = await client.post(f"/api/v1/documents/{doc_id}/retry", headers=auth_headers)

        assert resp.status_code == 200
        assert resp.json() == {
            "document_id": str(doc_id), "job_status": "PENDING", "reprocessed": False,
        }
        detail = await client.get(f"/api/v1/documents/{doc_id}", headers=auth_headers)
        assert detail.json()["job"]["error"] is None

    async def test_reprocess_enqueues_task(
        self, client, auth_headers, session_factory, owner_id, mock_publisher,
    ):
        doc_id, _ = await create_document(session_factory, owner_id, status="FAILED", error="x")

        resp = await client.post(
            f"/api/v1/documents/{doc_id}/retry?reprocess=true", headers=auth_headers,
        )

        assert resp.json()["reprocessed"] is True
        mock_publisher.publish_processing_task.assert_awaited_once_with(doc_id)

    async def test_done_job_conflict(self, client, auth_headers, session_factory, owner_id):
        doc_id, _ = await create_document(session_factory, owner_id, status="DONE")

        resp = await client.post(f"/api/v1/documents/{doc_id}/retry", headers=auth_headers)

        assert resp.status_code == 409
        assert resp.json()["detail"]["error_code"] == "RETRY_NOT_ALLOWED"

    async def test_unknown_document(self, client, auth_headers):
        resp = await client.post(f"/api/v1/documents/{uuid.uuid4()}/retry", headers=auth_headers)

        assert resp.status_code == 404
        assert resp.json()["detail"]["error_code"] == "JOB_NOT_FOUND"


# ─────────────────────────────────────────────────────────────────────────────
# Jobs listing
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestJobsEndpoint:

    async def test_filter_by_status(self, client, auth_headers, session_factory, owner_id):
        _, failed = await create_document(session_factory, owner_id, status="FAILED", error="e")
        await create_document(session_factory, owner_id, status="PENDING")
        await create_document(session_factory, uuid.uuid4(), status="FAILED", error="e")

        resp = await client.get("/api/v1/jobs?status=FAILED", headers=auth_headers)

        assert resp.status_code == 200
        assert [j["job_id"] for j in resp.json()["jobs"]] == [str(failed)]

    async def test_invalid_status_is_validation_error(self, client, auth_headers):
        resp = await client.get("/api/v1/jobs?status=STUCK", headers=auth_headers)

        assert resp.status_code == 422
        assert resp.json()["error_code"] == "VALIDATION_ERROR"


# ─────────────────────────────────────────────────────────────────────────────
# Action items
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestActionItemsEndpoint:

    async def test_mark_done(self, client, auth_headers, session_factory, owner_id):
        doc_id, _ = await create_document(session_factory, owner_id, status="DONE")
        item_id = await _add_action_item(session_factory, doc_id)

        resp = await client.post(f"/api/v1/action-items/{item_id}/done", headers=auth_headers)

        assert resp.status_code == 200
        assert resp.json()["status"] == "DONE"

    async def test_patch_fields(self, client, auth_headers, session_factory, owner_id):
        doc_id, _ = await create_document(session_factory, owner_id, status="DONE")
        item_id = await _add_action_item(session_factory, doc_id)

        resp = await client.patch(
            f"/api/v1/action-items/{item_id}",
            headers=auth_headers,
            json={"deadline": "2026-03-01", "notes": "betaald via app"},
        )

        body = resp.json()
        assert resp.status_code == 200
        assert body["deadline"] == "2026-03-01"
        assert body["notes"] == "betaald via app"
        assert body["title"] == "Betaal boete"

    async def test_patch_null_clears_deadline(self, client, auth_headers, session_factory, owner_id):
        doc_id, _ = await create_document(session_factory, owner_id, status="DONE")
        item_id = await _add_action_item(session_factory, doc_id)
        await client.patch(
            f"/api/v1/action-items/{item_id}", headers=auth_headers, json={"deadline": "2026-03-01"},
        )

        resp = await client.patch(
            f"/api/v1/action-items/{item_id}", headers=auth_headers, json={"deadline": None},
        )

        assert resp.json()["deadline"] is None

    async def test_patch_rejects_bad_deadline(self, client, auth_headers, session_factory, owner_id):
        doc_id, _ = await create_document(session_factory, owner_id, status="DONE")
        item_id = await _add_action_item(session_factory, doc_id)

        resp = await client.patch(
            f"/api/v1/action-items/{item_id}", headers=auth_headers, json={"deadline": "1 maart"},
        )

        assert resp.status_code == 422

    async def test_other_owner_gets_404(self, client, session_factory):
        doc_id, _ = await create_document(session_factory, uuid.uuid4(), status="DONE")
        item_id = await _add_action_item(session_factory, doc_id)
        stranger = {"Authorization": f"Bearer {create_access_token(uuid.uuid4())}"}

        resp = await client.post(f"/api/v1/action-items/{item_id}/done", headers=stranger)

        assert resp.status_code == 404
        assert resp.json()["detail"]["error_code"] == "ACTION_ITEM_NOT_FOUND"


@pytest.mark.integration
class TestOperations:

    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
