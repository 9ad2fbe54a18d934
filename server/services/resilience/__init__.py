"""Resilience primitives for provider and tool calls."""

from .circuit_breaker import (
    BreakerOptions,
    BreakerState,
    CircuitBreaker,
    CircuitBreakerRegistry,
)

__all__ = [
    "BreakerOptions",
    "BreakerState",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
]
