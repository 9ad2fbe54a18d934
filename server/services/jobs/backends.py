"""Durable and in-process storage for generation jobs.

Both backends keep FIFO order for waiting jobs and keep terminal records for
``retention_seconds`` so status polls still answer after completion. Jobs
waiting out a retry backoff sit in a delayed set until they are due.

Redis key schema (``{p}`` = ``<cache prefix>:queue:<queue name>``):
    {p}:wait        -> LIST  job ids waiting (LPUSH in, BLMOVE out)
    {p}:active      -> LIST  job ids being processed
    {p}:delayed     -> ZSET  job id -> due time (retry backoff)
    {p}:lock:{id}   -> STRING held while a worker runs the job (TTL, renewed)
    {p}:job:{id}    -> STRING JobRecord JSON (TTL once terminal)
    {p}:completed   -> ZSET  job id -> finished_at
    {p}:failed      -> ZSET  job id -> finished_at
    {p}:dlq         -> LIST  dead-letter entries JSON

An id in ``{p}:active`` without a lock belongs to a worker that died; see
``reclaim_stalled``.
"""

import asyncio
import heapq
import json
import time
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

from core.cache import CacheService
from core.logging import get_logger
from models.jobs import JobRecord, JobStatus
from services.exceptions import QueueUnavailableError

logger = get_logger(__name__)

DLQ_MAX_ENTRIES = 1000


class QueueBackend(Protocol):
    """Storage contract the queue service and worker are written against."""

    lock_ttl: int

    async def push(self, job: JobRecord) -> None:
        ...

    async def pop(self, timeout: float) -> Optional[JobRecord]:
        ...

    async def save(self, job: JobRecord) -> None:
        ...

    async def load(self, job_id: str) -> Optional[JobRecord]:
        ...

    async def schedule(self, job: JobRecord, delay: float) -> None:
        """Take an active job off the worker and make it due after ``delay``."""
        ...

    async def requeue(self, job: JobRecord) -> None:
        """Move an active or reclaimed job back to the waiting list."""
        ...

    async def extend_lock(self, job_id: str) -> None:
        ...

    async def reclaim_stalled(self) -> List[JobRecord]:
        """Remove and return active jobs no live worker holds."""
        ...

    async def counts(self) -> Dict[str, int]:
        ...

    async def add_dead_letter(self, entry: Dict[str, Any]) -> None:
        ...

    async def dead_letters(self, limit: int = 100) -> List[Dict[str, Any]]:
        ...


def _empty_counts() -> Dict[str, int]:
    return {"waiting": 0, "active": 0, "completed": 0, "failed": 0, "delayed": 0}


class InMemoryQueueBackend:
    """Single-process backend for development and tests."""

    def __init__(self, retention_seconds: int = 3600, lock_ttl: int = 30):
        self.retention_seconds = retention_seconds
        self.lock_ttl = lock_ttl
        self._waiting: "asyncio.Queue[str]" = asyncio.Queue()
        self._delayed: List[Tuple[float, str]] = []
        self._held: Set[str] = set()
        self._jobs: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self._dead_letters: List[Dict[str, Any]] = []

    async def push(self, job: JobRecord) -> None:
        self._jobs[job.id] = job.to_dict()
        self._waiting.put_nowait(job.id)

    async def pop(self, timeout: float) -> Optional[JobRecord]:
        self._promote_due()
        try:
            job_id = await asyncio.wait_for(self._waiting.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
        job = await self.load(job_id)
        if job is not None:
            self._held.add(job_id)
        return job

    async def save(self, job: JobRecord) -> None:
        self._jobs[job.id] = job.to_dict()
        if job.status.is_terminal:
            self._held.discard(job.id)

    async def load(self, job_id: str) -> Optional[JobRecord]:
        self._expire()
        data = self._jobs.get(job_id)
        return JobRecord.from_dict(data) if data else None

    async def schedule(self, job: JobRecord, delay: float) -> None:
        self._held.discard(job.id)
        self._jobs[job.id] = job.to_dict()
        heapq.heappush(self._delayed, (time.time() + delay, job.id))

    async def requeue(self, job: JobRecord) -> None:
        self._held.discard(job.id)
        self._jobs[job.id] = job.to_dict()
        self._waiting.put_nowait(job.id)

    async def extend_lock(self, job_id: str) -> None:
        # Held ids never expire within one process
        return None

    async def reclaim_stalled(self) -> List[JobRecord]:
        return [
            JobRecord.from_dict(data) for job_id, data in self._jobs.items()
            if data["status"] == JobStatus.ACTIVE.value and job_id not in self._held
        ]

    async def counts(self) -> Dict[str, int]:
        self._expire()
        counts = _empty_counts()
        counts["waiting"] = self._waiting.qsize()
        counts["delayed"] = len(self._delayed)
        for data in self._jobs.values():
            status = data["status"]
            if status == JobStatus.ACTIVE.value:
                counts["active"] += 1
            elif status == JobStatus.COMPLETED.value:
                counts["completed"] += 1
            elif status == JobStatus.FAILED.value:
                counts["failed"] += 1
        return counts

    async def add_dead_letter(self, entry: Dict[str, Any]) -> None:
        self._dead_letters.insert(0, entry)
        del self._dead_letters[DLQ_MAX_ENTRIES:]

    async def dead_letters(self, limit: int = 100) -> List[Dict[str, Any]]:
        return self._dead_letters[:limit]

    def _promote_due(self) -> None:
        now = time.time()
        while self._delayed and self._delayed[0][0] <= now:
            _, job_id = heapq.heappop(self._delayed)
            self._waiting.put_nowait(job_id)

    def _expire(self) -> None:
        horizon = time.time() - self.retention_seconds
        expired = [
            job_id for job_id, data in self._jobs.items()
            if data.get("finished_at") and data["finished_at"] < horizon
        ]
        for job_id in expired:
            del self._jobs[job_id]


class RedisQueueBackend:
    """Redis lists and JSON records shared by any number of worker processes.

    Reuses the application's Redis connection from ``CacheService``.
    """

    def __init__(self, cache: CacheService, queue_name: str, retention_seconds: int = 3600,
                 lock_ttl: int = 30):
        self.cache = cache
        self.retention_seconds = retention_seconds
        self.lock_ttl = lock_ttl
        self._prefix = cache.namespaced(f"queue:{queue_name}")

    def _key(self, suffix: str) -> str:
        return f"{self._prefix}:{suffix}"

    def _job_key(self, job_id: str) -> str:
        return self._key(f"job:{job_id}")

    def _lock_key(self, job_id: str) -> str:
        return self._key(f"lock:{job_id}")

    @property
    def redis(self):
        if not self.cache.is_redis_available():
            raise QueueUnavailableError("Redis queue backend is not connected")
        return self.cache.redis

    async def push(self, job: JobRecord) -> None:
        try:
            redis = self.redis
            await redis.set(self._job_key(job.id), json.dumps(job.to_dict(), default=str))
            await redis.lpush(self._key("wait"), job.id)
        except QueueUnavailableError:
            raise
        except Exception as e:
            raise QueueUnavailableError(f"Failed to enqueue job: {e}") from e

    async def pop(self, timeout: float) -> Optional[JobRecord]:
        redis = self.redis
        await self._promote_due(redis)
        job_id = await redis.blmove(self._key("wait"), self._key("active"), timeout,
                                    src="RIGHT", dest="LEFT")
        if job_id is None:
            return None
        await redis.setex(self._lock_key(job_id), self.lock_ttl, "1")
        job = await self.load(job_id)
        if job is None:
            # Record expired or was deleted while waiting
            await redis.lrem(self._key("active"), 0, job_id)
            await redis.delete(self._lock_key(job_id))
            logger.warning("Dropped queued job with no record", job_id=job_id)
        return job

    async def save(self, job: JobRecord) -> None:
        redis = self.redis
        key = self._job_key(job.id)
        await redis.set(key, json.dumps(job.to_dict(), default=str))
        if job.status.is_terminal:
            await redis.lrem(self._key("active"), 0, job.id)
            await redis.delete(self._lock_key(job.id))
            await redis.zadd(self._key(job.status.value), {job.id: job.finished_at or time.time()})
            await redis.expire(key, self.retention_seconds)

    async def load(self, job_id: str) -> Optional[JobRecord]:
        try:
            raw = await self.redis.get(self._job_key(job_id))
        except QueueUnavailableError:
            raise
        except Exception as e:
            raise QueueUnavailableError(f"Failed to load job {job_id}: {e}") from e
        if not raw:
            return None
        return JobRecord.from_dict(json.loads(raw))

    async def schedule(self, job: JobRecord, delay: float) -> None:
        redis = self.redis
        await redis.set(self._job_key(job.id), json.dumps(job.to_dict(), default=str))
        await redis.zadd(self._key("delayed"), {job.id: time.time() + delay})
        await redis.lrem(self._key("active"), 0, job.id)
        await redis.delete(self._lock_key(job.id))

    async def requeue(self, job: JobRecord) -> None:
        redis = self.redis
        await redis.set(self._job_key(job.id), json.dumps(job.to_dict(), default=str))
        await redis.lrem(self._key("active"), 0, job.id)
        await redis.delete(self._lock_key(job.id))
        await redis.lpush(self._key("wait"), job.id)

    async def extend_lock(self, job_id: str) -> None:
        await self.redis.expire(self._lock_key(job_id), self.lock_ttl)

    async def reclaim_stalled(self) -> List[JobRecord]:
        redis = self.redis
        stalled = []
        for job_id in await redis.lrange(self._key("active"), 0, -1):
            if await redis.exists(self._lock_key(job_id)):
                continue
            # LREM decides which process gets to reclaim the id
            if not await redis.lrem(self._key("active"), 0, job_id):
                continue
            job = await self.load(job_id)
            if job is None:
                logger.warning("Dropped stalled job with no record", job_id=job_id)
                continue
            stalled.append(job)
        return stalled

    async def counts(self) -> Dict[str, int]:
        redis = self.redis
        counts = _empty_counts()
        horizon = time.time() - self.retention_seconds
        counts["waiting"] = await redis.llen(self._key("wait"))
        counts["active"] = await redis.llen(self._key("active"))
        counts["delayed"] = await redis.zcard(self._key("delayed"))
        for status in (JobStatus.COMPLETED, JobStatus.FAILED):
            zkey = self._key(status.value)
            await redis.zremrangebyscore(zkey, "-inf", horizon)
            counts[status.value] = await redis.zcard(zkey)
        return counts

    async def add_dead_letter(self, entry: Dict[str, Any]) -> None:
        redis = self.redis
        await redis.lpush(self._key("dlq"), json.dumps(entry, default=str))
        await redis.ltrim(self._key("dlq"), 0, DLQ_MAX_ENTRIES - 1)

    async def dead_letters(self, limit: int = 100) -> List[Dict[str, Any]]:
        raw = await self.redis.lrange(self._key("dlq"), 0, limit - 1)
        return [json.loads(item) for item in raw]

    async def _promote_due(self, redis) -> None:
        delayed = self._key("delayed")
        for job_id in await redis.zrangebyscore(delayed, "-inf", time.time()):
            # ZREM decides which process promotes the id
            if await redis.zrem(delayed, job_id):
                await redis.lpush(self._key("wait"), job_id)
