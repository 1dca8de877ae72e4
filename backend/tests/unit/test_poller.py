"""
Unit Tests — JobPoller
══════════════════════
  ✅ tick() runs stale reclaim (when enabled) before one job
  ✅ run() stops on the stop event after the in-flight tick
  ✅ a failing tick is logged and does not kill the worker
  ✅ real pipeline: pending jobs drained by concurrent workers exactly once
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from paperfix.llm.extraction import StructuredExtractionClient
from paperfix.services.pipeline import DocumentPipeline, JobOutcome
from paperfix.workers.poller import JobPoller
from tests.conftest import (
    create_document,
    extraction_json,
    fixed_text_extractor,
    load_state,
    scripted_gateway,
)


def _mock_pipeline() -> MagicMock:
    pipeline = MagicMock(spec=DocumentPipeline)
    pipeline.jobs = MagicMock()
    pipeline.jobs.reclaim_stale = AsyncMock(return_value=[])
    pipeline.process_next_pending = AsyncMock(return_value=None)
    return pipeline


@pytest.mark.unit
@pytest.mark.pipeline
class TestJobPoller:

    async def test_tick_reclaims_then_processes(self):
        pipeline = _mock_pipeline()
        pipeline.process_next_pending.return_value = JobOutcome.DONE
        poller = JobPoller(pipeline, concurrency=1, poll_interval_seconds=0, stale_after_seconds=900)

        assert await poller.tick() == JobOutcome.DONE
        pipeline.jobs.reclaim_stale.assert_awaited_once_with(timedelta(seconds=900))

    async def test_tick_without_reclaim(self):
        pipeline = _mock_pipeline()
        poller = JobPoller(pipeline, concurrency=1, poll_interval_seconds=0, stale_after_seconds=0)

        assert await poller.tick() is None
        pipeline.jobs.reclaim_stale.assert_not_awaited()

    async def test_run_stops_on_event(self):
        pipeline = _mock_pipeline()
        stop = asyncio.Event()

        async def _idle():
            stop.set()
            return None

        pipeline.process_next_pending.side_effect = _idle
        poller = JobPoller(pipeline, concurrency=2, poll_interval_seconds=30, stale_after_seconds=0)

        await asyncio.wait_for(poller.run(stop), timeout=5)

        assert pipeline.process_next_pending.await_count >= 1

    async def test_failing_tick_does_not_stop_worker(self):
        pipeline = _mock_pipeline()
        stop = asyncio.Event()
        calls = []

        async def _flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database unavailable")
            stop.set()
            return None

        pipeline.process_next_pending.side_effect = _flaky
        poller = JobPoller(pipeline, concurrency=1, poll_interval_seconds=0.01, stale_after_seconds=0)

        await asyncio.wait_for(poller.run(stop), timeout=5)

        assert len(calls) == 2

    async def test_concurrent_workers_process_each_job_once(self, session_factory, storage):
        doc_ids = []
        for _ in range(3):
            doc_id, _ = await create_document(session_factory)
            doc, _, _ = await load_state(session_factory, doc_id)
            storage.objects[doc.file_ref] = b"\xff\xd8\xff"
            doc_ids.append(doc_id)

        gateway = scripted_gateway(*[extraction_json() for _ in range(3)])
        pipeline = DocumentPipeline(
            session_factory,
            storage,
            text_extractor=fixed_text_extractor("CJIB"),
            extraction_client=StructuredExtractionClient(gateway=gateway),
        )
        stop = asyncio.Event()
        poller = JobPoller(pipeline, concurrency=2, poll_interval_seconds=0.01, stale_after_seconds=0)

        async def _stop_when_drained():
            while await pipeline.jobs.next_pending_job_id() is not None:
                await asyncio.sleep(0.01)
            stop.set()

        await asyncio.wait_for(
            asyncio.gather(poller.run(stop), _stop_when_drained()), timeout=10,
        )

        assert gateway.complete.await_count == 3
        for doc_id in doc_ids:
            _, job, _ = await load_state(session_factory, doc_id)
            assert job.status == "DONE"
