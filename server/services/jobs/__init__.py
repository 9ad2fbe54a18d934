"""Asynchronous generation job queue.

- Durable Redis backend or in-process backend (USE_LOCAL_QUEUE)
- Worker loop with progress checkpoints, retries with backoff and stalled-job recovery
- Per-job status events on JOB_UPDATED_<id>
- Optional dead-letter queue
"""

from core.cache import CacheService
from core.config import Settings
from core.logging import get_logger
from models.jobs import RetryPolicy
from .backends import InMemoryQueueBackend, QueueBackend, RedisQueueBackend
from .dlq import DLQHandler, DLQHandlerProtocol, NullDLQHandler, create_dlq_handler
from .events import InMemoryJobEventBus, JobEventBus, RedisJobEventBus
from .queue import QueueService
from .worker import JobContext, JobWorker

logger = get_logger(__name__)


def _use_redis(settings: Settings) -> bool:
    return not settings.use_local_queue and settings.remote_cache_enabled


def create_queue_backend(settings: Settings, cache: CacheService) -> QueueBackend:
    """Redis backend unless USE_LOCAL_QUEUE is set or Redis is not configured."""
    if _use_redis(settings):
        logger.info("Using Redis job queue", queue=settings.queue_name)
        return RedisQueueBackend(cache, settings.queue_name, settings.job_retention_seconds,
                                 lock_ttl=settings.job_lock_ttl)
    logger.info("Using in-process job queue", queue=settings.queue_name)
    return InMemoryQueueBackend(settings.job_retention_seconds, lock_ttl=settings.job_lock_ttl)


def create_event_bus(settings: Settings, cache: CacheService) -> JobEventBus:
    if _use_redis(settings):
        return RedisJobEventBus(cache)
    return InMemoryJobEventBus()


def create_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.job_attempts,
        initial_delay=settings.job_backoff_delay,
        max_delay=settings.job_backoff_max_delay,
    )


__all__ = [
    # Backends
    "QueueBackend",
    "InMemoryQueueBackend",
    "RedisQueueBackend",
    # Events
    "JobEventBus",
    "InMemoryJobEventBus",
    "RedisJobEventBus",
    # Service / worker
    "QueueService",
    "JobContext",
    "JobWorker",
    # DLQ
    "DLQHandler",
    "NullDLQHandler",
    "DLQHandlerProtocol",
    "create_dlq_handler",
    # Factories
    "create_queue_backend",
    "create_event_bus",
    "create_retry_policy",
]
