"""Tests for breaker state transitions, timeouts and fallbacks."""

import asyncio

import pytest

from services.exceptions import CircuitOpenError, CircuitTimeoutError
from services.resilience import BreakerOptions, BreakerState, CircuitBreaker, CircuitBreakerRegistry


def _ok(value="ok"):
    async def action():
        return value
    return action


def _boom(message="boom"):
    async def action():
        raise RuntimeError(message)
    return action


@pytest.fixture
def options():
    return BreakerOptions(timeout=1.0, error_threshold_percentage=50,
                          reset_timeout=30, rolling_window=10)


class TestCircuitBreaker:

    async def test_success_passes_through(self, options, clock):
        breaker = CircuitBreaker("op", options, clock=clock)

        assert await breaker.call(_ok("value")) == "value"
        assert breaker.state == BreakerState.CLOSED

    async def test_opens_at_threshold_and_rejects(self, options, clock):
        breaker = CircuitBreaker("op", options, clock=clock)
        await breaker.call(_ok())
        with pytest.raises(RuntimeError):
            await breaker.call(_boom())

        assert breaker.state == BreakerState.OPEN

        calls = []

        async def tracked():
            calls.append(1)
            return "ran"

        with pytest.raises(CircuitOpenError):
            await breaker.call(tracked)
        assert calls == []
        assert breaker.stats()["rejected"] == 1

    async def test_stays_closed_below_threshold(self, clock):
        breaker = CircuitBreaker("op", BreakerOptions(error_threshold_percentage=60), clock=clock)
        await breaker.call(_ok())
        await breaker.call(_ok())
        with pytest.raises(RuntimeError):
            await breaker.call(_boom())

        assert breaker.state == BreakerState.CLOSED

    async def test_old_outcomes_leave_the_window(self, clock):
        breaker = CircuitBreaker("op", BreakerOptions(rolling_window=10, volume_threshold=2),
                                 clock=clock)
        with pytest.raises(RuntimeError):
            await breaker.call(_boom())
        clock.advance(11)
        with pytest.raises(RuntimeError):
            await breaker.call(_boom())

        # Only one failure inside the window, below the volume threshold
        assert breaker.state == BreakerState.CLOSED

    async def test_half_open_success_closes(self, options, clock):
        breaker = CircuitBreaker("op", options, clock=clock)
        with pytest.raises(RuntimeError):
            await breaker.call(_boom())
        clock.advance(30)

        assert await breaker.call(_ok("trial")) == "trial"
        assert breaker.state == BreakerState.CLOSED
        assert breaker.stats()["failures"] == 0

    async def test_half_open_failure_reopens(self, options, clock):
        breaker = CircuitBreaker("op", options, clock=clock)
        with pytest.raises(RuntimeError):
            await breaker.call(_boom())
        clock.advance(31)

        with pytest.raises(RuntimeError):
            await breaker.call(_boom("trial failed"))
        assert breaker.state == BreakerState.OPEN
        assert breaker.opened_at == clock()

    async def test_half_open_admits_one_trial(self, options, clock):
        breaker = CircuitBreaker("op", options, clock=clock)
        with pytest.raises(RuntimeError):
            await breaker.call(_boom())
        clock.advance(30)

        release = asyncio.Event()

        async def slow():
            await release.wait()
            return "trial"

        trial = asyncio.create_task(breaker.call(slow))
        await asyncio.sleep(0)
        with pytest.raises(CircuitOpenError):
            await breaker.call(_ok())

        release.set()
        assert await trial == "trial"
        assert breaker.state == BreakerState.CLOSED

    async def test_late_failure_does_not_extend_cooldown(self, options, clock):
        breaker = CircuitBreaker("op", options, clock=clock)
        release = asyncio.Event()

        async def slow_failure():
            await release.wait()
            raise RuntimeError("late")

        in_flight = asyncio.create_task(breaker.call(slow_failure))
        await asyncio.sleep(0)
        with pytest.raises(RuntimeError):
            await breaker.call(_boom())
        assert breaker.state == BreakerState.OPEN
        opened_at = breaker.opened_at

        clock.advance(20)
        release.set()
        with pytest.raises(RuntimeError):
            await in_flight

        assert breaker.opened_at == opened_at
        clock.advance(10)
        assert await breaker.call(_ok("trial")) == "trial"
        assert breaker.state == BreakerState.CLOSED

    async def test_late_failure_leaves_half_open_trial_alone(self, options, clock):
        breaker = CircuitBreaker("op", options, clock=clock)
        stale_release = asyncio.Event()
        trial_release = asyncio.Event()

        async def slow_failure():
            await stale_release.wait()
            raise RuntimeError("late")

        async def slow_trial():
            await trial_release.wait()
            return "trial"

        stale = asyncio.create_task(breaker.call(slow_failure))
        await asyncio.sleep(0)
        with pytest.raises(RuntimeError):
            await breaker.call(_boom())
        clock.advance(30)

        trial = asyncio.create_task(breaker.call(slow_trial))
        await asyncio.sleep(0)
        assert breaker.state == BreakerState.HALF_OPEN

        stale_release.set()
        with pytest.raises(RuntimeError):
            await stale
        assert breaker.state == BreakerState.HALF_OPEN

        trial_release.set()
        assert await trial == "trial"
        assert breaker.state == BreakerState.CLOSED

    async def test_timeout_counts_as_failure(self, clock):
        breaker = CircuitBreaker("op", BreakerOptions(timeout=0.01), clock=clock)

        async def hang():
            await asyncio.sleep(1)

        with pytest.raises(CircuitTimeoutError):
            await breaker.call(hang)
        assert breaker.state == BreakerState.OPEN

    async def test_fallback_value_on_failure_and_rejection(self, clock):
        breaker = CircuitBreaker("op", BreakerOptions(fallback=[]), clock=clock)

        assert await breaker.call(_boom()) == []
        assert breaker.state == BreakerState.OPEN
        assert await breaker.call(_ok()) == []

    async def test_fallback_callable_receives_error(self, clock):
        breaker = CircuitBreaker("op", BreakerOptions(fallback=lambda e: type(e).__name__),
                                 clock=clock)

        assert await breaker.call(_boom()) == "RuntimeError"
        assert await breaker.call(_ok()) == "CircuitOpenError"


class TestCircuitBreakerRegistry:

    async def test_breakers_are_per_name(self, clock):
        registry = CircuitBreakerRegistry(clock=clock)
        with pytest.raises(RuntimeError):
            await registry.run("llm:a:op", _boom())

        assert await registry.run("llm:b:op", _ok("b")) == "b"
        assert registry.get("llm:a:op").state == BreakerState.OPEN
        assert registry.get("llm:b:op").state == BreakerState.CLOSED

    def test_options_fixed_at_creation(self):
        registry = CircuitBreakerRegistry()
        first = registry.get("op", BreakerOptions(timeout=1))
        again = registry.get("op", BreakerOptions(timeout=99))

        assert first is again
        assert again.options.timeout == 1

    def test_groups_from_settings(self, settings):
        registry = CircuitBreakerRegistry.from_settings(settings)

        assert registry.options_for("llm").timeout == settings.breaker_llm_timeout
        assert registry.options_for("search").timeout == settings.breaker_search_timeout
        assert registry.options_for("unknown") == BreakerOptions()
