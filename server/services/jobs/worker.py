"""Background worker that drains the job queue."""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING

from core.logging import get_logger, job_log_context, log_execution_time
from models.jobs import JobRecord, RetryPolicy

if TYPE_CHECKING:
    from .queue import QueueService

logger = get_logger(__name__)


class JobContext:
    """What a processor sees of the job it is running."""

    def __init__(self, record: JobRecord, queue: "QueueService"):
        self.record = record
        self._queue = queue

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def payload(self) -> Dict[str, Any]:
        return self.record.payload

    async def update_progress(self, progress: int) -> None:
        self.record.set_progress(progress)
        await self._queue.update(self.record)


class JobWorker:
    """Pulls jobs one at a time per slot and runs the processor.

    The loop survives processor errors (job retried or marked FAILED) and
    backend errors (logged, retried after ``poll_timeout``). A job interrupted
    by ``stop()`` goes back to the waiting list. Jobs left active by a worker
    that died are reclaimed on ``start()`` and every ``stall_interval``.
    """

    def __init__(self, queue: "QueueService", process_fn: Callable[[JobContext], Awaitable[Any]],
                 concurrency: int = 1, poll_timeout: float = 1.0,
                 retry_policy: Optional[RetryPolicy] = None,
                 stall_interval: Optional[float] = None):
        self.queue = queue
        self.process_fn = process_fn
        self.concurrency = concurrency
        self.poll_timeout = poll_timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.stall_interval = stall_interval or queue.backend.lock_ttl
        self._running = False
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Reclaim stalled jobs, then start the worker slots."""
        if self._running:
            logger.warning("Job worker already running", queue=self.queue.name)
            return

        self._running = True
        await self.recover_stalled()
        self._tasks = [
            asyncio.create_task(self._loop(slot), name=f"job-worker-{slot}")
            for slot in range(self.concurrency)
        ]
        self._tasks.append(asyncio.create_task(self._watch_stalled(), name="job-stall-monitor"))
        logger.info("Job worker started", queue=self.queue.name, concurrency=self.concurrency)

    async def stop(self) -> None:
        """Stop the worker slots. Jobs in flight are released back to the queue."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Job worker stopped", queue=self.queue.name)

    async def recover_stalled(self) -> int:
        """Requeue active jobs no worker holds, or fail them if out of attempts."""
        try:
            stalled = await self.queue.backend.reclaim_stalled()
        except Exception as e:
            logger.error("Stalled job check failed", queue=self.queue.name, error=str(e))
            return 0

        for job in stalled:
            with job_log_context(job.id, queue=self.queue.name):
                try:
                    if job.attempts_left:
                        job.requeue()
                        await self.queue.requeue(job)
                        logger.warning("Stalled job requeued", attempts_made=job.attempts_made)
                    else:
                        await self._fail(job, "Job stalled and has no attempts left")
                except Exception as e:
                    logger.error("Failed to recover stalled job", error=str(e))
        return len(stalled)

    async def _watch_stalled(self) -> None:
        while self._running:
            await asyncio.sleep(self.stall_interval)
            await self.recover_stalled()

    async def _loop(self, slot: int) -> None:
        while self._running:
            try:
                await self.process_next()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Worker iteration failed", slot=slot, error=str(e))
                await asyncio.sleep(self.poll_timeout)

    async def process_next(self, timeout: Optional[float] = None) -> Optional[JobRecord]:
        """Pull and run one job. Returns the record after the attempt, or None if idle."""
        job = await self.queue.backend.pop(timeout if timeout is not None else self.poll_timeout)
        if job is None:
            return None
        with job_log_context(job.id, queue=self.queue.name):
            return await self.run(job)

    async def run(self, job: JobRecord) -> JobRecord:
        start_time = time.time()
        job.mark_active()
        heartbeat = asyncio.create_task(self._heartbeat(job.id))

        try:
            await self.queue.update(job)
            result = await self.process_fn(JobContext(job, self.queue))
        except asyncio.CancelledError:
            await self._release(job)
            raise
        except Exception as e:
            await self._handle_failure(job, str(e) or type(e).__name__, type(e).__name__)
            return job
        finally:
            heartbeat.cancel()

        job.mark_completed(result)
        await self.queue.update(job)
        log_execution_time(logger, "job", start_time, time.time(), attempt=job.attempts_made)
        return job

    async def _heartbeat(self, job_id: str) -> None:
        interval = max(self.queue.backend.lock_ttl / 3, 0.05)
        while True:
            await asyncio.sleep(interval)
            try:
                await self.queue.backend.extend_lock(job_id)
            except Exception as e:
                logger.warning("Job lock renewal failed", error=str(e))

    async def _release(self, job: JobRecord) -> None:
        job.release()
        try:
            await self.queue.requeue(job)
        except Exception as e:
            logger.error("Failed to release interrupted job", error=str(e))
            return
        logger.info("Interrupted job released", attempts_made=job.attempts_made)

    async def _handle_failure(self, job: JobRecord, error: str, error_type: str) -> None:
        if job.attempts_left:
            delay = self.retry_policy.calculate_delay(job.attempts_made - 1)
            job.mark_retrying(error)
            await self.queue.retry_later(job, delay)
            logger.warning("Job attempt failed, retrying", attempt=job.attempts_made,
                           max_attempts=job.max_attempts, retry_in=delay,
                           error=error, error_type=error_type)
            return

        await self._fail(job, error)
        logger.error("Job failed", attempts=job.attempts_made, error=error, error_type=error_type)

    async def _fail(self, job: JobRecord, error: str) -> None:
        job.mark_failed(error)
        await self.queue.update(job)
        await self.queue.dlq.add_failed_job(job, error)
