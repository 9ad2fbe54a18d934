"""Dead Letter Queue (DLQ) handler for failed generation jobs.

Optional, enabled with ``DLQ_ENABLED``. When enabled, jobs that used up all
their attempts are stored with their payload and last error for inspection.

Usage:
    dlq = create_dlq_handler(backend, enabled=settings.dlq_enabled)
    await dlq.add_failed_job(job, error)
"""

import time
import uuid
from typing import Any, Dict, Protocol, TYPE_CHECKING

from core.logging import get_logger
from models.jobs import JobRecord

if TYPE_CHECKING:
    from .backends import QueueBackend

logger = get_logger(__name__)


class DLQHandlerProtocol(Protocol):
    """Protocol for DLQ handlers (enables duck typing)."""

    async def add_failed_job(self, job: JobRecord, error: str) -> bool:
        ...

    @property
    def enabled(self) -> bool:
        ...


class NullDLQHandler:
    """No-op DLQ handler when DLQ is disabled.

    This follows the Null Object pattern - all operations succeed silently.
    """

    @property
    def enabled(self) -> bool:
        return False

    async def add_failed_job(self, job: JobRecord, error: str) -> bool:
        logger.debug("DLQ disabled, skipping failed job storage", job_id=job.id, error=error)
        return True


class DLQHandler:
    """Active DLQ handler writing entries through the queue backend."""

    def __init__(self, backend: "QueueBackend"):
        self.backend = backend

    @property
    def enabled(self) -> bool:
        return True

    @staticmethod
    def build_entry(job: JobRecord, error: str) -> Dict[str, Any]:
        return {
            "id": str(uuid.uuid4()),
            "job_id": job.id,
            "payload": job.payload,
            "error": error,
            "attempts": job.attempts_made,
            "created_at": job.created_at,
            "failed_at": time.time(),
        }

    async def add_failed_job(self, job: JobRecord, error: str) -> bool:
        """Add a failed job to the Dead Letter Queue.

        Returns:
            True if stored, False otherwise
        """
        entry = self.build_entry(job, error)
        try:
            await self.backend.add_dead_letter(entry)
        except Exception as e:
            logger.error("Exception adding job to DLQ", job_id=job.id, error=str(e))
            return False
        logger.info("Job added to DLQ", entry_id=entry["id"], job_id=job.id,
                    topic=job.payload.get("topic"))
        return True


def create_dlq_handler(backend: "QueueBackend", enabled: bool = False) -> DLQHandlerProtocol:
    """DLQHandler if enabled, NullDLQHandler otherwise."""
    if enabled:
        logger.info("DLQ enabled")
        return DLQHandler(backend)
    logger.debug("DLQ disabled")
    return NullDLQHandler()
