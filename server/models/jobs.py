"""Job records persisted by the queue backends.

Plain dataclasses so records round-trip through Redis as JSON.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class JobStatus(str, Enum):
    """Job lifecycle.

    State transitions:
        QUEUED -> ACTIVE -> COMPLETED
                         -> FAILED
                         -> QUEUED  (retry after backoff, or released on shutdown)
    """
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class RetryPolicy:
    """Attempts and exponential backoff for failed jobs.

    Delay formula: min(initial_delay * (backoff_multiplier ^ retry), max_delay)
    """
    max_attempts: int = 1
    initial_delay: float = 2.0       # seconds
    max_delay: float = 60.0          # seconds
    backoff_multiplier: float = 2.0

    def calculate_delay(self, retry: int) -> float:
        """Delay before retry number ``retry`` (0 for the first retry)."""
        delay = self.initial_delay * (self.backoff_multiplier ** retry)
        return min(delay, self.max_delay)


@dataclass
class JobRecord:
    """State of one generation job."""
    id: str
    payload: Dict[str, Any]
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    attempts_made: int = 0
    max_attempts: int = 1
    last_error: Optional[str] = None

    @classmethod
    def create(cls, payload: Dict[str, Any], max_attempts: int = 1) -> "JobRecord":
        return cls(id=str(uuid.uuid4()), payload=dict(payload), max_attempts=max(1, max_attempts))

    @property
    def attempts_left(self) -> int:
        return max(0, self.max_attempts - self.attempts_made)

    def mark_active(self) -> None:
        now = time.time()
        self.status = JobStatus.ACTIVE
        self.attempts_made += 1
        self.started_at = now
        self.updated_at = now

    def mark_completed(self, result: Any) -> None:
        now = time.time()
        self.status = JobStatus.COMPLETED
        self.progress = 100
        self.result = result
        self.error = None
        self.finished_at = now
        self.updated_at = now

    def mark_failed(self, error: str) -> None:
        now = time.time()
        self.status = JobStatus.FAILED
        self.progress = 0
        self.error = error
        self.finished_at = now
        self.updated_at = now

    def mark_retrying(self, error: str) -> None:
        """Back to QUEUED after a failed attempt that has attempts left."""
        self._reset()
        self.last_error = error

    def release(self) -> None:
        """Hand an interrupted attempt back without counting it."""
        self._reset()
        self.attempts_made = max(0, self.attempts_made - 1)

    def requeue(self) -> None:
        """Put a stalled job back in line. The stalled attempt still counts."""
        self._reset()

    def _reset(self) -> None:
        self.status = JobStatus.QUEUED
        self.progress = 0
        self.started_at = None
        self.updated_at = time.time()

    def set_progress(self, progress: int) -> None:
        self.progress = max(0, min(100, int(progress)))
        self.updated_at = time.time()

    def to_event(self) -> Dict[str, Any]:
        """Shape published on every transition and returned by status queries."""
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "result": self.result,
            "error": self.error,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "payload": self.payload,
            "status": self.status.value,
            "progress": self.progress,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "attempts_made": self.attempts_made,
            "max_attempts": self.max_attempts,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobRecord":
        """Create from dict."""
        return cls(
            id=data["id"],
            payload=data.get("payload", {}),
            status=JobStatus(data.get("status", JobStatus.QUEUED.value)),
            progress=data.get("progress", 0),
            result=data.get("result"),
            error=data.get("error"),
            created_at=data.get("created_at", time.time()),
            updated_at=data.get("updated_at", time.time()),
            started_at=data.get("started_at"),
            finished_at=data.get("finished_at"),
            attempts_made=data.get("attempts_made", 0),
            max_attempts=data.get("max_attempts", 1),
            last_error=data.get("last_error"),
        )
