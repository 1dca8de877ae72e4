"""
Polling supervisor — standalone alternative to Celery beat.

    python -m paperfix.workers.poller

Runs `worker_concurrency` asyncio tasks. Each one independently asks the
pipeline for the oldest PENDING job, processes it, and sleeps for
`worker_poll_interval_seconds` when the queue is empty. Concurrent tasks
(and other poller processes) are safe because every job is claimed with
a conditional update.

Shutdown: SIGINT/SIGTERM set the stop event. Each task checks it between
jobs, so an in-flight job always finishes before the process exits.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from paperfix.core.config import settings
from paperfix.core.logging import configure_logging
from paperfix.services.jobs import stale_cutoff_seconds
from paperfix.services.pipeline import DocumentPipeline, JobOutcome

logger = logging.getLogger(__name__)


class JobPoller:
    """
    Usage:
        poller = JobPoller(build_pipeline(), concurrency=2)
        await poller.run(stop_event)
    """

    def __init__(
        self,
        pipeline:              DocumentPipeline,
        concurrency:           int | None   = None,
        poll_interval_seconds: float | None = None,
        stale_after_seconds:   int | None   = None,
    ) -> None:
        self._pipeline = pipeline
        self._concurrency = max(1, concurrency or settings.worker_concurrency)
        self._interval = (
            poll_interval_seconds if poll_interval_seconds is not None
            else settings.worker_poll_interval_seconds
        )
        self._stale_after = stale_cutoff_seconds(
            stale_after_seconds if stale_after_seconds is not None
            else settings.stale_job_timeout_seconds
        )

    async def run(self, stop: asyncio.Event) -> None:
        logger.info(
            "Poller start | workers=%d interval=%.1fs stale_reclaim=%s",
            self._concurrency, self._interval, self._stale_after,
        )
        tasks = [
            asyncio.create_task(self._worker(i, stop), name=f"poller-{i}")
            for i in range(self._concurrency)
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
        logger.info("Poller stopped")

    async def tick(self) -> JobOutcome | None:
        """One polling iteration: optional stale reclaim, then one job."""
        if self._stale_after is not None:
            await self._pipeline.jobs.reclaim_stale(self._stale_after)
        return await self._pipeline.process_next_pending()

    async def _worker(self, index: int, stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                outcome = await self.tick()
            except Exception:
                # DB outage or similar; back off and keep the supervisor alive
                logger.exception("Poll tick failed | worker=%d", index)
                outcome = None

            if outcome is None or outcome == JobOutcome.CLAIM_LOST:
                # idle (or lost a race): wait, waking early on shutdown
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(stop.wait(), timeout=self._interval)


async def _main_async() -> None:
    from paperfix.services.pipeline import build_pipeline

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await JobPoller(build_pipeline()).run(stop)


def main() -> None:
    configure_logging(settings.debug)
    asyncio.run(_main_async())


if __name__ == "__main__":
    main()
