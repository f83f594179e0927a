"""Polling consumer that fires due jobs from the job queue."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import structlog

from eventboard.domain.models import ReminderJob
from eventboard.repos.base import JobQueue

logger = structlog.get_logger(__name__)

JobHandler = Callable[[ReminderJob, datetime], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobWorker:
    """Claims due jobs and hands them to *handler*.

    A job is completed (removed) whether the handler succeeds or raises;
    failures are logged and never retried.
    """

    def __init__(
        self,
        queue: JobQueue,
        handler: JobHandler,
        poll_interval: float = 1.0,
        batch_size: int = 50,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.queue = queue
        self.handler = handler
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_due(self, now: datetime | None = None) -> list[str]:
        """Fire every job due at *now*. Returns the ids of the jobs processed."""
        now = now or self._clock()
        fired: list[str] = []
        while True:
            jobs = await self.queue.claim_due(now, limit=self.batch_size)
            if not jobs:
                break
            for job in jobs:
                try:
                    await self.handler(job, now)
                except Exception:
                    logger.exception("Job failed", job_id=job.id, job_name=job.name)
                finally:
                    await self.queue.complete(job.id)
                fired.append(job.id)
            if len(jobs) < self.batch_size:
                break
        return fired

    async def _loop(self) -> None:
        logger.info("Job worker started", poll_interval=self.poll_interval)
        while not self._stopping.is_set():
            try:
                await self.run_due()
            except Exception:
                logger.exception("Job worker iteration failed")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Job worker stopped")

    def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
