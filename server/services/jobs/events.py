"""Per-job status events (``JOB_UPDATED_<job_id>`` channels).

Publishing is best-effort: a lost event never fails a job, since status can
always be polled.
"""

import asyncio
import json
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Protocol, Set

from constants import job_channel
from core.cache import CacheService
from core.logging import get_logger
from services.exceptions import QueueUnavailableError

logger = get_logger(__name__)

Event = Dict[str, Any]


class JobEventBus(Protocol):
    async def publish(self, job_id: str, event: Event) -> None:
        ...

    def subscribe(self, job_id: str):
        """Async context manager yielding an async iterator of events."""
        ...


async def _drain(queue: "asyncio.Queue[Event]") -> AsyncIterator[Event]:
    while True:
        yield await queue.get()


class InMemoryJobEventBus:
    """Fan-out to subscribers inside this process."""

    def __init__(self):
        self._subscribers: Dict[str, Set["asyncio.Queue[Event]"]] = defaultdict(set)

    async def publish(self, job_id: str, event: Event) -> None:
        for queue in list(self._subscribers.get(job_id, ())):
            queue.put_nowait(event)

    @asynccontextmanager
    async def subscribe(self, job_id: str):
        queue: "asyncio.Queue[Event]" = asyncio.Queue()
        self._subscribers[job_id].add(queue)
        try:
            yield _drain(queue)
        finally:
            subscribers = self._subscribers.get(job_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[job_id]

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, ()))


class RedisJobEventBus:
    """Redis pub/sub, so events cross worker and API processes."""

    def __init__(self, cache: CacheService):
        self.cache = cache

    def _channel(self, job_id: str) -> str:
        return self.cache.namespaced(job_channel(job_id))

    async def publish(self, job_id: str, event: Event) -> None:
        if not self.cache.is_redis_available():
            logger.debug("Event not published, Redis unavailable", job_id=job_id)
            return
        try:
            await self.cache.redis.publish(self._channel(job_id), json.dumps(event, default=str))
        except Exception as e:
            logger.warning("Failed to publish job event", job_id=job_id, error=str(e))

    @asynccontextmanager
    async def subscribe(self, job_id: str):
        if not self.cache.is_redis_available():
            raise QueueUnavailableError("Redis pub/sub is not connected")
        pubsub = self.cache.redis.pubsub()
        channel = self._channel(job_id)
        await pubsub.subscribe(channel)

        async def messages() -> AsyncIterator[Event]:
            async for message in pubsub.listen():
                if message.get("type") == "message":
                    yield json.loads(message["data"])

        try:
            yield messages()
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
