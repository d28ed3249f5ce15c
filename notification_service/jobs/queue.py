"""Job queue adapters.

The worker pool only needs a pull/ack interface (:class:`JobQueue`). Two
implementations ship here:

- :class:`RedisJobQueue`: production broker on Redis lists. Jobs move
  ``wait -> active`` atomically with ``BLMOVE``; failed jobs are parked in a
  ``delayed`` sorted set with exponential backoff until ``max_attempts``,
  then land in ``failed``.
- :class:`InMemoryJobQueue`: asyncio-only queue for local runs and tests.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass
class QueuedJob:
    id: str
    name: str
    data: dict[str, Any]
    attempts_made: int = 0


class JobQueue(Protocol):
    async def fetch(self, timeout: float) -> QueuedJob | None: ...

    async def complete(self, job: QueuedJob) -> None: ...

    async def fail(self, job: QueuedJob, error: str) -> None: ...


# ---------------------------------------------------------------------------
# InMemoryJobQueue
# ---------------------------------------------------------------------------

@dataclass
class FailedJob:
    job: QueuedJob
    error: str


class InMemoryJobQueue:
    """In-process queue with the same retry contract as the Redis adapter."""

    def __init__(self, max_attempts: int = 3) -> None:
        self.max_attempts = max_attempts
        self._pending: asyncio.Queue[QueuedJob] = asyncio.Queue()
        self.completed: list[QueuedJob] = []
        self.failed: list[FailedJob] = []

    async def enqueue(self, name: str, data: dict[str, Any], job_id: str | None = None) -> QueuedJob:
        job = QueuedJob(id=job_id or uuid.uuid4().hex, name=name, data=data)
        await self._pending.put(job)
        return job

    async def fetch(self, timeout: float) -> QueuedJob | None:
        try:
            return await asyncio.wait_for(self._pending.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def complete(self, job: QueuedJob) -> None:
        self.completed.append(job)
        self._pending.task_done()

    async def fail(self, job: QueuedJob, error: str) -> None:
        job.attempts_made += 1
        if job.attempts_made < self.max_attempts:
            await self._pending.put(job)
        else:
            self.failed.append(FailedJob(job=job, error=error))
        self._pending.task_done()

    async def join(self) -> None:
        """Wait until every enqueued job has completed or finally failed."""
        await self._pending.join()


# ---------------------------------------------------------------------------
# RedisJobQueue
# ---------------------------------------------------------------------------

class RedisJobQueue:
    """Reliable queue on Redis lists.

    Keys (``<prefix>:<name>`` is abbreviated ``Q``)::

        Q:wait      list of job ids waiting to run
        Q:active    list of job ids currently held by a worker
        Q:claimed   zset of active job ids scored by the time they were fetched
        Q:delayed   zset of job ids scored by their retry time
        Q:failed    list of job ids that exhausted their attempts
        Q:job:<id>  hash with name, data (JSON), attempts_made, last_error

    A job claimed for longer than ``stall_timeout_s`` is assumed lost with its
    worker. It is counted as a failed attempt and goes back to ``wait``, or to
    ``failed`` once its attempts are used up.
    """

    def __init__(
        self,
        redis: Any,
        name: str = "notification-queue",
        *,
        prefix: str = "notifications",
        max_attempts: int = 3,
        backoff_s: float = 5.0,
        stall_timeout_s: float = 300.0,
    ) -> None:
        self.redis = redis
        self.name = name
        self.max_attempts = max_attempts
        self.backoff_s = backoff_s
        self.stall_timeout_s = stall_timeout_s
        base = f"{prefix}:{name}"
        self.wait_key = f"{base}:wait"
        self.active_key = f"{base}:active"
        self.claimed_key = f"{base}:claimed"
        self.delayed_key = f"{base}:delayed"
        self.failed_key = f"{base}:failed"
        self._job_prefix = f"{base}:job:"

    def job_key(self, job_id: str) -> str:
        return f"{self._job_prefix}{job_id}"

    # -- producer -----------------------------------------------------------

    async def enqueue(self, name: str, data: dict[str, Any], job_id: str | None = None) -> str:
        job_id = job_id or uuid.uuid4().hex
        await self.redis.hset(
            self.job_key(job_id),
            mapping={"name": name, "data": json.dumps(data), "attempts_made": 0},
        )
        await self.redis.lpush(self.wait_key, job_id)
        return job_id

    # -- consumer -----------------------------------------------------------

    async def promote_delayed(self, now: float | None = None) -> int:
        """Move delayed jobs whose retry time has passed back to ``wait``."""
        now = time.time() if now is None else now
        due = await self.redis.zrangebyscore(self.delayed_key, "-inf", now)
        promoted = 0
        for raw_id in due:
            # zrem returns 0 when another worker already claimed it
            if await self.redis.zrem(self.delayed_key, raw_id):
                await self.redis.lpush(self.wait_key, raw_id)
                promoted += 1
        return promoted

    async def recover_stalled(self, now: float | None = None) -> int:
        """Requeue jobs whose worker held them past ``stall_timeout_s``."""
        now = time.time() if now is None else now
        stalled = await self.redis.zrangebyscore(self.claimed_key, "-inf", now - self.stall_timeout_s)
        recovered = 0
        for raw_id in stalled:
            if not await self.redis.zrem(self.claimed_key, raw_id):
                continue
            job_id = _text(raw_id)
            key = self.job_key(job_id)
            await self.redis.lrem(self.active_key, 1, job_id)
            attempts = await self.redis.hincrby(key, "attempts_made", 1)
            await self.redis.hset(key, "last_error", "job stalled")
            if attempts < self.max_attempts:
                await self.redis.lpush(self.wait_key, job_id)
                logger.warning("Job %s stalled; requeued after %d attempts", job_id, attempts)
            else:
                await self.redis.lpush(self.failed_key, job_id)
                logger.warning("Job %s stalled and exhausted %d attempts", job_id, attempts)
            recovered += 1
        return recovered

    async def fetch(self, timeout: float) -> QueuedJob | None:
        await self.promote_delayed()
        await self.recover_stalled()
        raw_id = await self.redis.blmove(
            self.wait_key, self.active_key, timeout, "RIGHT", "LEFT"
        )
        if raw_id is None:
            return None

        job_id = _text(raw_id)
        await self.redis.zadd(self.claimed_key, {job_id: time.time()})
        fields = {_text(k): _text(v) for k, v in (await self.redis.hgetall(self.job_key(job_id))).items()}
        if not fields:
            logger.warning("Job %s has no stored payload; dropping it", job_id)
            await self.redis.zrem(self.claimed_key, job_id)
            await self.redis.lrem(self.active_key, 1, job_id)
            return None

        return QueuedJob(
            id=job_id,
            name=fields.get("name", ""),
            data=json.loads(fields.get("data") or "{}"),
            attempts_made=int(fields.get("attempts_made") or 0),
        )

    async def complete(self, job: QueuedJob) -> None:
        await self.redis.lrem(self.active_key, 1, job.id)
        await self.redis.zrem(self.claimed_key, job.id)
        await self.redis.delete(self.job_key(job.id))

    async def fail(self, job: QueuedJob, error: str) -> None:
        key = self.job_key(job.id)
        attempts = await self.redis.hincrby(key, "attempts_made", 1)
        await self.redis.hset(key, "last_error", error)
        await self.redis.lrem(self.active_key, 1, job.id)
        job.attempts_made = attempts
        await self.redis.zrem(self.claimed_key, job.id)

        if attempts < self.max_attempts:
            delay = self.backoff_s * (2 ** (attempts - 1))
            await self.redis.zadd(self.delayed_key, {job.id: time.time() + delay})
            logger.info("Job %s scheduled for retry %d in %.1fs", job.id, attempts, delay)
        else:
            await self.redis.lpush(self.failed_key, job.id)
            logger.warning("Job %s exhausted %d attempts", job.id, attempts)


def _text(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)
