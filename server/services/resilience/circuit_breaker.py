"""Named circuit breakers for network-bound operations.

Each operation name gets its own breaker, created on first use and kept for
the process lifetime. A breaker runs the action under a hard timeout and
tracks outcomes in a rolling time window.

State transitions:
    CLOSED -> OPEN        failure percentage in window >= threshold
    OPEN -> HALF_OPEN     first call after reset_timeout
    HALF_OPEN -> CLOSED   trial call succeeded (window cleared)
    HALF_OPEN -> OPEN     trial call failed (reset timer restarted)

Usage:
    registry = CircuitBreakerRegistry.from_settings(settings)
    cards = await registry.run(
        "llm:ollama:generate_flashcards",
        lambda: adapter.generate_flashcards(topic, count),
        options=registry.options_for("llm"),
    )
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Tuple

from constants import BREAKER_GROUP_LLM, BREAKER_GROUP_SEARCH
from core.config import Settings
from core.logging import get_logger, log_breaker_transition
from services.exceptions import CircuitOpenError, CircuitTimeoutError

logger = get_logger(__name__)

Action = Callable[[], Awaitable[Any]]


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerOptions:
    """Breaker tuning. Applied when the breaker is created."""
    timeout: float = 10.0
    error_threshold_percentage: float = 50.0
    reset_timeout: float = 30.0
    rolling_window: float = 10.0
    volume_threshold: int = 1
    # Value, or callable receiving the exception. None means no fallback.
    fallback: Optional[Any] = None

    @property
    def has_fallback(self) -> bool:
        return self.fallback is not None

    def resolve_fallback(self, error: Exception) -> Any:
        if callable(self.fallback):
            return self.fallback(error)
        return self.fallback


class CircuitBreaker:
    """Failure-rate breaker for one named operation."""

    def __init__(self, name: str, options: BreakerOptions,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.options = options
        self._clock = clock
        self.state = BreakerState.CLOSED
        self.opened_at: Optional[float] = None
        self._outcomes: Deque[Tuple[float, bool]] = deque()
        self._trial_in_flight = False
        self._rejected = 0

    async def call(self, action: Action) -> Any:
        trial = False
        if self.state == BreakerState.OPEN:
            if self._clock() - self.opened_at >= self.options.reset_timeout:
                self._transition(BreakerState.HALF_OPEN)
            else:
                return self._reject()

        if self.state == BreakerState.HALF_OPEN:
            if self._trial_in_flight:
                return self._reject()
            self._trial_in_flight = True
            trial = True

        try:
            result = await asyncio.wait_for(action(), timeout=self.options.timeout)
        except asyncio.TimeoutError:
            return self._on_failure(CircuitTimeoutError(self.name, self.options.timeout), trial)
        except Exception as e:
            return self._on_failure(e, trial)
        finally:
            if trial:
                self._trial_in_flight = False

        self._on_success(trial)
        return result

    def _reject(self) -> Any:
        self._rejected += 1
        error = CircuitOpenError(self.name)
        logger.debug("Circuit breaker rejected call", breaker=self.name, state=self.state.value)
        if self.options.has_fallback:
            return self.options.resolve_fallback(error)
        raise error

    def _on_success(self, trial: bool) -> None:
        if trial:
            self._outcomes.clear()
            self.opened_at = None
            self._transition(BreakerState.CLOSED)
            return
        # Calls admitted before the breaker opened do not count against the new state
        if self.state == BreakerState.CLOSED:
            self._record(True)

    def _on_failure(self, error: Exception, trial: bool) -> Any:
        logger.warning("Circuit breaker call failed", breaker=self.name,
                       error=str(error), error_type=type(error).__name__, trial=trial)
        if trial:
            self._open()
        elif self.state == BreakerState.CLOSED:
            self._record(False)
            if self._should_trip():
                self._open()

        if self.options.has_fallback:
            return self.options.resolve_fallback(error)
        raise error

    def _record(self, success: bool) -> None:
        now = self._clock()
        self._outcomes.append((now, success))
        self._prune(now)

    def _prune(self, now: float) -> None:
        horizon = now - self.options.rolling_window
        while self._outcomes and self._outcomes[0][0] < horizon:
            self._outcomes.popleft()

    def _counts(self) -> Tuple[int, int]:
        self._prune(self._clock())
        failures = sum(1 for _, ok in self._outcomes if not ok)
        return len(self._outcomes) - failures, failures

    def _should_trip(self) -> bool:
        successes, failures = self._counts()
        total = successes + failures
        if total == 0 or total < self.options.volume_threshold:
            return False
        return failures * 100.0 / total >= self.options.error_threshold_percentage

    def _open(self) -> None:
        self.opened_at = self._clock()
        self._transition(BreakerState.OPEN)

    def _transition(self, new_state: BreakerState) -> None:
        if new_state == self.state:
            return
        old_state = self.state
        self.state = new_state
        log_breaker_transition(logger, self.name, old_state.value, new_state.value,
                               reset_timeout=self.options.reset_timeout)

    def stats(self) -> Dict[str, Any]:
        successes, failures = self._counts()
        return {
            "state": self.state.value,
            "successes": successes,
            "failures": failures,
            "rejected": self._rejected,
            "opened_at": self.opened_at,
        }


class CircuitBreakerRegistry:
    """Lazily creates and reuses one breaker per operation name."""

    def __init__(self, option_groups: Optional[Dict[str, BreakerOptions]] = None,
                 default_options: Optional[BreakerOptions] = None,
                 clock: Callable[[], float] = time.monotonic):
        self._groups = dict(option_groups or {})
        self._default = default_options or BreakerOptions()
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "CircuitBreakerRegistry":
        groups = {
            BREAKER_GROUP_LLM: BreakerOptions(
                timeout=settings.breaker_llm_timeout,
                error_threshold_percentage=settings.breaker_llm_error_threshold,
                reset_timeout=settings.breaker_llm_reset_timeout,
                rolling_window=settings.breaker_rolling_window,
            ),
            BREAKER_GROUP_SEARCH: BreakerOptions(
                timeout=settings.breaker_search_timeout,
                error_threshold_percentage=settings.breaker_search_error_threshold,
                reset_timeout=settings.breaker_search_reset_timeout,
                rolling_window=settings.breaker_rolling_window,
            ),
        }
        return cls(option_groups=groups, **kwargs)

    def options_for(self, group: str) -> BreakerOptions:
        return self._groups.get(group, self._default)

    def get(self, name: str, options: Optional[BreakerOptions] = None) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name, options or self._default, clock=self._clock)
            self._breakers[name] = breaker
            logger.debug("Circuit breaker created", breaker=name,
                         timeout=breaker.options.timeout,
                         error_threshold=breaker.options.error_threshold_percentage)
        return breaker

    async def run(self, name: str, action: Action,
                  options: Optional[BreakerOptions] = None) -> Any:
        """Run ``action`` through the breaker named ``name``."""
        return await self.get(name, options).call(action)

    def stats(self) -> Dict[str, Dict[str, Any]]:
        return {name: breaker.stats() for name, breaker in self._breakers.items()}
