"""Health check utilities for the /health endpoint.

Reports uptime plus the state of each dependency the generation pipeline
degrades around: remote cache, job queue, providers and circuit breakers.
"""
import time
from typing import Dict, Any, TYPE_CHECKING

from core.logging import get_logger

if TYPE_CHECKING:
    from core.config import Settings
    from core.cache import CacheService
    from services.adapters.manager import AdapterManager
    from services.jobs.queue import QueueService
    from services.resilience.circuit_breaker import CircuitBreakerRegistry

logger = get_logger(__name__)

# Set by the app lifespan
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Mark the moment the service began accepting requests."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Seconds since set_startup_time, 0 before it was called."""
    return time.time() - _startup_time if _startup_time else 0.0


async def check_queue(queue: "QueueService") -> Dict[str, Any]:
    """Queue counts, or the error that prevented reading them."""
    try:
        return {"healthy": True, "enabled": queue.enabled, "counts": await queue.stats()}
    except Exception as e:
        logger.warning("Queue health check failed", error=str(e))
        return {"healthy": False, "enabled": queue.enabled, "error": str(e)}


async def get_health_status(
    cache: "CacheService",
    queue: "QueueService",
    adapters: "AdapterManager",
    breakers: "CircuitBreakerRegistry",
    settings: "Settings"
) -> Dict[str, Any]:
    """Aggregate dependency checks into the /health report.

    Overall status is "healthy" when at least one provider is available and
    the queue answers, "degraded" otherwise. A missing remote cache never
    degrades status since the local tier keeps serving.
    """
    cache_healthy = await cache.ping()
    queue_status = await check_queue(queue)
    adapter_status = await adapters.status()

    any_adapter = any(adapter_status.values())
    overall_status = "healthy" if (any_adapter and queue_status["healthy"]) else "degraded"

    return {
        "status": overall_status,
        "uptime_seconds": round(get_uptime(), 1),
        "checks": {
            "remote_cache": cache_healthy,
            "queue": queue_status,
            "adapters": adapter_status,
        },
        "priority": adapters.priority(),
        "breakers": breakers.stats(),
        "features": {
            "redis": settings.redis_enabled,
            "local_queue": settings.use_local_queue,
            "worker": settings.worker_enabled,
            "dlq": settings.dlq_enabled,
            "web_search": bool(settings.serper_api_key),
        },
    }
