"""
Circuit breaker guarding calls to third-party review sources.

When the review source keeps failing, queue processing would otherwise burn
every retry of every queued business against a dead endpoint. The breaker
opens after repeated failures and lets one probe through after a cool-down.

States:
- CLOSED: requests pass through
- OPEN: requests rejected with CircuitBreakerOpenError
- HALF_OPEN: probing whether the source recovered

Usage:
    breaker = get_circuit_breaker("geoscraper", failure_threshold=5)

    if not breaker.can_execute():
        raise CircuitBreakerOpenError(breaker.name, breaker.time_until_recovery())
    try:
        data = await call_source()
        await breaker.record_success()
    except ReviewSourceUnavailableError:
        await breaker.record_failure()
        raise
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from localdirectory.core.exceptions import CircuitBreakerOpenError
from localdirectory.monitoring.metrics import (
    record_circuit_breaker_failure,
    update_circuit_breaker_state,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """
    Failure counter with a timed cool-down for one external service.

    Args:
        name: Service identifier, also used as the metrics label
        failure_threshold: Consecutive failures that open the circuit
        recovery_timeout: Seconds an open circuit waits before probing
        success_threshold: Probe successes needed to close again
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    success_threshold: int = 2

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _opened_at: Optional[float] = field(default=None, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    @property
    def state(self) -> CircuitState:
        """Current state; an expired open circuit reports half-open."""
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if time.monotonic() - self._opened_at >= self.recovery_timeout:
                self._transition(CircuitState.HALF_OPEN)
                self._success_count = 0
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def can_execute(self) -> bool:
        """Check if a request may be sent."""
        return self.state != CircuitState.OPEN

    def time_until_recovery(self) -> float:
        """Seconds left before an open circuit lets a probe through."""
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        elapsed = time.monotonic() - self._opened_at
        return max(0.0, self.recovery_timeout - elapsed)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        logger.info(
            "circuit_breaker_transition",
            name=self.name,
            from_state=self._state.value,
            to_state=new_state.value,
        )
        self._state = new_state
        update_circuit_breaker_state(self.name, new_state.value)

    async def record_success(self) -> None:
        """Record a successful call."""
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    self._failure_count = 0
                    self._success_count = 0
                    self._opened_at = None
                    self._transition(CircuitState.CLOSED)
            else:
                self._failure_count = 0

    async def record_failure(self) -> None:
        """Record a failed call, opening the circuit when warranted."""
        async with self._lock:
            self._failure_count += 1
            record_circuit_breaker_failure(self.name)

            if self._state == CircuitState.HALF_OPEN:
                self._opened_at = time.monotonic()
                self._transition(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._opened_at = time.monotonic()
                logger.warning(
                    "circuit_breaker_opened",
                    name=self.name,
                    failure_count=self._failure_count,
                    recovery_timeout=self.recovery_timeout,
                )
                self._transition(CircuitState.OPEN)

    def reset(self) -> None:
        """Force the circuit closed."""
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = None
        self._transition(CircuitState.CLOSED)

    def __call__(
        self, func: Callable[..., Awaitable[T]]
    ) -> Callable[..., Awaitable[T]]:
        """Wrap an async callable so every call goes through the breaker."""

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            if not self.can_execute():
                raise CircuitBreakerOpenError(self.name, self.time_until_recovery())
            try:
                result = await func(*args, **kwargs)
            except Exception:
                await self.record_failure()
                raise
            await self.record_success()
            return result

        return wrapper


# =============================================================================
# Registry
# =============================================================================


_circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    name: str,
    failure_threshold: int = 5,
    recovery_timeout: float = 60.0,
) -> CircuitBreaker:
    """Get or create the shared circuit breaker for a service."""
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(
            name=name,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )
    return _circuit_breakers[name]


def get_all_circuit_breakers() -> dict[str, CircuitBreaker]:
    """Snapshot of all registered circuit breakers."""
    return _circuit_breakers.copy()


def reset_all_circuit_breakers() -> None:
    """Reset all circuit breakers to closed state."""
    for breaker in _circuit_breakers.values():
        breaker.reset()
