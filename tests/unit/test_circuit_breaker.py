"""
Tests for the review source circuit breaker.
"""

import pytest

from localdirectory.core.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    get_all_circuit_breakers,
    get_circuit_breaker,
)
from localdirectory.core.exceptions import CircuitBreakerOpenError


class TestCircuitBreaker:
    """Tests for CircuitBreaker state transitions."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(name="test-open", failure_threshold=3, recovery_timeout=60)

        for _ in range(2):
            await breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

        await breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert not breaker.can_execute()
        assert 0 < breaker.time_until_recovery() <= 60

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self):
        breaker = CircuitBreaker(name="test-reset", failure_threshold=3)

        await breaker.record_failure()
        await breaker.record_failure()
        await breaker.record_success()

        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_then_closed(self):
        breaker = CircuitBreaker(
            name="test-recover", failure_threshold=1, recovery_timeout=0, success_threshold=2
        )

        await breaker.record_failure()
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.can_execute()

        await breaker.record_success()
        assert breaker.state == CircuitState.HALF_OPEN
        await breaker.record_success()

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failure_while_half_open_reopens(self):
        breaker = CircuitBreaker(name="test-reopen", failure_threshold=1, recovery_timeout=0)

        await breaker.record_failure()
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.recovery_timeout = 60
        await breaker.record_failure()

        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_decorator(self):
        breaker = CircuitBreaker(name="test-decorator", failure_threshold=1, recovery_timeout=60)

        @breaker
        async def flaky():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            await flaky()
        with pytest.raises(CircuitBreakerOpenError):
            await flaky()

    def test_reset(self):
        breaker = CircuitBreaker(name="test-force", failure_threshold=1)
        breaker._failure_count = 7

        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0


class TestRegistry:
    """Tests for the named breaker registry."""

    def test_same_name_same_breaker(self):
        assert get_circuit_breaker("registry-test") is get_circuit_breaker("registry-test")

    def test_get_all(self):
        breaker = get_circuit_breaker("registry-listed")

        assert get_all_circuit_breakers()["registry-listed"] is breaker
