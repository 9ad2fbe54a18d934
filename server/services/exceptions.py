"""Orchestration exception hierarchy."""

from typing import Dict, Iterable


class OrchestrationError(Exception):
    """Base exception for all orchestration errors."""


class AdapterUnavailableError(OrchestrationError):
    """A single provider was unregistered or failed its availability probe."""

    def __init__(self, adapter_name: str, reason: str = "not available"):
        self.adapter_name = adapter_name
        self.reason = reason
        super().__init__(f"[{adapter_name}] {reason}")


class NoAdapterAvailableError(OrchestrationError):
    """Every candidate provider was unavailable."""

    def __init__(self, tried: Iterable[str], registered: Iterable[str]):
        self.tried = list(tried)
        self.registered = list(registered)
        super().__init__(
            f"No LLM adapter available. Tried: {', '.join(self.tried) or '(none)'}. "
            f"Registered: {', '.join(self.registered) or '(none)'}"
        )


class AllAdaptersFailedError(OrchestrationError):
    """Every candidate provider was unavailable or failed during execution."""

    def __init__(self, errors: Dict[str, Exception]):
        self.errors = dict(errors)
        detail = "; ".join(f"{name}: {err}" for name, err in self.errors.items())
        super().__init__(f"All LLM adapters failed ({detail or 'no candidates'})")

    def as_detail(self) -> Dict[str, str]:
        """Per-provider error messages for API responses."""
        return {name: str(err) for name, err in self.errors.items()}


class CircuitOpenError(OrchestrationError):
    """A circuit breaker rejected the call without invoking it."""

    def __init__(self, breaker_name: str):
        self.breaker_name = breaker_name
        super().__init__(f"Circuit '{breaker_name}' is open")


class CircuitTimeoutError(OrchestrationError):
    """A call through a circuit breaker exceeded its timeout."""

    def __init__(self, breaker_name: str, timeout: float):
        self.breaker_name = breaker_name
        self.timeout = timeout
        super().__init__(f"Circuit '{breaker_name}' timed out after {timeout}s")


class CacheBackendDegradedError(OrchestrationError):
    """Remote cache tier unreachable. Logged, never surfaced to callers."""


class QueueUnavailableError(OrchestrationError):
    """The job queue backend could not accept work."""


class JobNotFoundError(OrchestrationError):
    """Status lookup for an unknown or expired job id."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")
