"""Bounded-concurrency consumer loop over a :class:`JobQueue`.

``concurrency`` consumer coroutines each pull one job at a time, so at most
that many jobs are in flight. Success acknowledges the job; any exception
marks it failed and leaves redelivery to the queue.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable

from notification_service.jobs.models import parse_job
from notification_service.jobs.queue import JobQueue, QueuedJob
from notification_service.notification.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


class JobWorkerPool:
    def __init__(
        self,
        queue: JobQueue,
        dispatcher: NotificationDispatcher,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        poll_timeout_s: float = 1.0,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.queue = queue
        self.dispatcher = dispatcher
        self.concurrency = concurrency
        self.poll_timeout_s = poll_timeout_s
        self._stopping = asyncio.Event()

    def stop(self) -> None:
        """Finish in-flight jobs, then return from :meth:`run`."""
        self._stopping.set()

    async def run(self) -> None:
        logger.info("Worker pool started with concurrency %d", self.concurrency)
        consumers = [
            asyncio.create_task(self._consume(slot), name=f"notification-worker-{slot}")
            for slot in range(self.concurrency)
        ]
        try:
            await asyncio.gather(*consumers)
        finally:
            for task in consumers:
                task.cancel()
        logger.info("Worker pool stopped")

    async def _consume(self, slot: int) -> None:
        while not self._stopping.is_set():
            try:
                job = await self.queue.fetch(timeout=self.poll_timeout_s)
            except Exception:
                logger.exception("Worker %d could not fetch from the queue", slot)
                await asyncio.sleep(self.poll_timeout_s)
                continue
            if job is None:
                continue
            await self.process(job)

    async def process(self, job: QueuedJob) -> bool:
        """Run one job and report its outcome to the queue."""
        logger.info("Processing job %s: %s", job.id, job.name)
        try:
            notification = parse_job(job.data)
            await self.dispatcher.dispatch(notification, job_id=job.id)
        except Exception as exc:
            logger.warning("%s has failed with %s", job.id, exc)
            await self._acknowledge(self.queue.fail(job, str(exc)), job)
            return False

        if await self._acknowledge(self.queue.complete(job), job):
            logger.info("%s has completed!", job.id)
        return True

    async def _acknowledge(self, outcome: Awaitable[None], job: QueuedJob) -> bool:
        # The queue keeps an unacknowledged job claimed; it is recovered as stalled.
        try:
            await outcome
        except Exception:
            logger.exception("Could not report the outcome of job %s to the queue", job.id)
            return False
        return True
