"""Job queue service: enqueue, status, stats and worker registration."""

import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.logging import get_logger
from models.jobs import JobRecord, RetryPolicy
from services.exceptions import JobNotFoundError, QueueUnavailableError
from .backends import QueueBackend
from .dlq import DLQHandlerProtocol, NullDLQHandler
from .events import JobEventBus
from .worker import JobWorker

logger = get_logger(__name__)


class QueueService:
    """Front door to the job queue.

    Every state change goes through ``update`` so the record is persisted and
    a ``job-updated`` event is published in one place.
    """

    def __init__(self, backend: QueueBackend, events: JobEventBus, name: str = "flashcard-generation",
                 enabled: bool = True, poll_timeout: float = 1.0,
                 dlq: Optional[DLQHandlerProtocol] = None,
                 retry_policy: Optional[RetryPolicy] = None):
        self.backend = backend
        self.events = events
        self.name = name
        self.enabled = enabled
        self.poll_timeout = poll_timeout
        self.dlq = dlq or NullDLQHandler()
        self.retry_policy = retry_policy or RetryPolicy()
        self._worker = None

    async def enqueue(self, payload: Dict[str, Any]) -> str:
        """Record a QUEUED job and return its id without waiting for it."""
        if not self.enabled:
            raise QueueUnavailableError("Job queue is disabled")

        start = time.perf_counter()
        job = JobRecord.create(payload, max_attempts=self.retry_policy.max_attempts)
        try:
            await self.backend.push(job)
        except QueueUnavailableError:
            logger.warning("Queue unavailable, job not recorded", queue=self.name)
            raise
        except Exception as e:
            logger.warning("Queue backend error on enqueue", queue=self.name, error=str(e))
            raise QueueUnavailableError(str(e)) from e

        await self.events.publish(job.id, job.to_event())
        logger.info("Job enqueued", job_id=job.id, queue=self.name,
                    topic=payload.get("topic"), mode=payload.get("mode"),
                    enqueue_ms=round((time.perf_counter() - start) * 1000, 3))
        return job.id

    async def get_status(self, job_id: str) -> JobRecord:
        try:
            job = await self.backend.load(job_id)
        except QueueUnavailableError:
            raise
        except Exception as e:
            raise QueueUnavailableError(str(e)) from e
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def stats(self) -> Dict[str, int]:
        try:
            return await self.backend.counts()
        except QueueUnavailableError:
            raise
        except Exception as e:
            raise QueueUnavailableError(str(e)) from e

    async def dead_letters(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent DLQ entries first. Empty when the DLQ is disabled."""
        if not self.dlq.enabled:
            return []
        try:
            return await self.backend.dead_letters(limit)
        except QueueUnavailableError:
            raise
        except Exception as e:
            raise QueueUnavailableError(str(e)) from e

    async def update(self, job: JobRecord) -> None:
        """Persist a job's new state and publish it."""
        await self.backend.save(job)
        await self.events.publish(job.id, job.to_event())

    async def retry_later(self, job: JobRecord, delay: float) -> None:
        """Persist a job waiting out its backoff and publish it."""
        await self.backend.schedule(job, delay)
        await self.events.publish(job.id, job.to_event())

    async def requeue(self, job: JobRecord) -> None:
        await self.backend.requeue(job)
        await self.events.publish(job.id, job.to_event())

    def init_worker(self, process_fn: Callable[[Any], Awaitable[Any]],
                    concurrency: int = 1) -> JobWorker:
        """Register the job processor. Only one registration per queue."""
        if self._worker is not None:
            raise RuntimeError(f"Worker already initialized for queue {self.name}")
        self._worker = JobWorker(self, process_fn, concurrency=concurrency,
                                 poll_timeout=self.poll_timeout,
                                 retry_policy=self.retry_policy)
        logger.info("Worker registered", queue=self.name, concurrency=concurrency)
        return self._worker

    @property
    def worker(self) -> Optional[JobWorker]:
        return self._worker
