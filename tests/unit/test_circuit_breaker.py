"""Unit tests for the circuit breaker.

Tests state transitions, failure counting, recovery probes, the
monitoring-period reset and concurrent probe handling.
"""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from capture_resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    create_circuit_breaker,
)
from capture_resilience.errors import CircuitOpenError
from tests.conftest import FakeClock


class Backend:
    """Async operation whose outcome is switched by the test."""

    def __init__(self) -> None:
        self.calls = 0
        self.healthy = False

    async def __call__(self, value: str = "ok") -> str:
        self.calls += 1
        if not self.healthy:
            raise ConnectionError("backend down")
        return value


@pytest.fixture
def backend() -> Backend:
    return Backend()


@pytest.fixture
def breaker(backend: Backend, clock: FakeClock) -> CircuitBreaker[str]:
    config = CircuitBreakerConfig(failure_threshold=3, reset_timeout=10.0, monitoring_period=60.0)
    return CircuitBreaker(backend, config, name="upload", clock=clock)


async def _fail(breaker: CircuitBreaker[str], times: int) -> None:
    for _ in range(times):
        with pytest.raises(ConnectionError):
            await breaker()


class TestCircuitBreakerConfig:
    """Tests for circuit breaker configuration."""

    def test_defaults(self) -> None:
        config = CircuitBreakerConfig()
        assert config.failure_threshold == 5
        assert config.reset_timeout == 60.0
        assert config.monitoring_period == 300.0

    def test_config_is_frozen(self) -> None:
        """Config dataclass is immutable."""
        config = CircuitBreakerConfig()
        with pytest.raises(AttributeError):
            config.failure_threshold = 10  # type: ignore[misc]

    def test_invalid_threshold(self) -> None:
        with pytest.raises(ValueError, match="failure_threshold"):
            CircuitBreakerConfig(failure_threshold=0)


class TestClosedState:
    """Tests for normal operation."""

    @pytest.mark.asyncio
    async def test_passes_through_result(
        self, breaker: CircuitBreaker[str], backend: Backend
    ) -> None:
        backend.healthy = True
        assert await breaker("shot.png") == "shot.png"
        assert breaker.state is CircuitState.CLOSED
        assert breaker.is_closed is True

    @pytest.mark.asyncio
    async def test_failure_propagates_unchanged(self, breaker: CircuitBreaker[str]) -> None:
        with pytest.raises(ConnectionError, match="backend down"):
            await breaker()
        assert breaker.failure_count == 1
        assert breaker.state is CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_at_threshold(self, breaker: CircuitBreaker[str]) -> None:
        await _fail(breaker, 2)
        assert breaker.state is CircuitState.CLOSED

        await _fail(breaker, 1)
        assert breaker.state is CircuitState.OPEN
        assert breaker.is_open is True
        assert breaker.failure_count == 3

    @pytest.mark.asyncio
    async def test_success_does_not_reset_count(
        self, breaker: CircuitBreaker[str], backend: Backend
    ) -> None:
        """Failures are cumulative, not consecutive."""
        await _fail(breaker, 2)
        backend.healthy = True
        await breaker()
        assert breaker.failure_count == 2

        backend.healthy = False
        await _fail(breaker, 1)
        assert breaker.state is CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_monitoring_period_clears_count(
        self, breaker: CircuitBreaker[str], backend: Backend, clock: FakeClock
    ) -> None:
        await _fail(breaker, 2)
        clock.advance(61.0)

        backend.healthy = True
        await breaker()
        assert breaker.failure_count == 0

        backend.healthy = False
        await _fail(breaker, 2)
        assert breaker.state is CircuitState.CLOSED


class TestOpenState:
    """Tests for rejection while open."""

    @pytest.mark.asyncio
    async def test_rejects_without_calling(
        self, breaker: CircuitBreaker[str], backend: Backend, clock: FakeClock
    ) -> None:
        await _fail(breaker, 3)
        clock.advance(4.0)

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker()

        assert backend.calls == 3
        assert exc_info.value.time_until_retry == pytest.approx(6.0)
        assert exc_info.value.retryable is False
        assert "upload" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_still_open_at_exact_timeout(
        self, breaker: CircuitBreaker[str], clock: FakeClock
    ) -> None:
        await _fail(breaker, 3)
        clock.advance(10.0)

        with pytest.raises(CircuitOpenError):
            await breaker()

    @pytest.mark.asyncio
    async def test_time_until_retry(self, breaker: CircuitBreaker[str], clock: FakeClock) -> None:
        assert breaker.time_until_retry() == 0.0
        await _fail(breaker, 3)
        clock.advance(3.0)
        assert breaker.time_until_retry() == pytest.approx(7.0)


class TestHalfOpenState:
    """Tests for recovery probes."""

    @pytest.mark.asyncio
    async def test_successful_probe_closes(
        self, breaker: CircuitBreaker[str], backend: Backend, clock: FakeClock
    ) -> None:
        await _fail(breaker, 3)
        clock.advance(10.5)
        backend.healthy = True

        assert await breaker() == "ok"
        assert breaker.state is CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_failed_probe_reopens(
        self, breaker: CircuitBreaker[str], backend: Backend, clock: FakeClock
    ) -> None:
        await _fail(breaker, 3)
        clock.advance(10.5)

        await _fail(breaker, 1)
        assert breaker.state is CircuitState.OPEN
        assert breaker.failure_count == 4

        # Reset timeout restarts from the probe failure
        clock.advance(5.0)
        with pytest.raises(CircuitOpenError):
            await breaker()
        assert backend.calls == 4

    @pytest.mark.asyncio
    async def test_only_one_probe_at_a_time(self, clock: FakeClock) -> None:
        release = asyncio.Event()
        calls = 0

        async def slow_backend() -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ConnectionError("down")
            await release.wait()
            return "ok"

        guarded = create_circuit_breaker(
            slow_backend, failure_threshold=1, reset_timeout=1.0, clock=clock
        )
        with pytest.raises(ConnectionError):
            await guarded()
        clock.advance(2.0)

        probe = asyncio.create_task(guarded())
        await asyncio.sleep(0)
        assert guarded.state is CircuitState.HALF_OPEN

        with pytest.raises(CircuitOpenError):
            await guarded()

        release.set()
        assert await probe == "ok"
        assert guarded.state is CircuitState.CLOSED
        assert calls == 2

    @pytest.mark.asyncio
    async def test_cancelled_probe_reopens(self, clock: FakeClock) -> None:
        started = asyncio.Event()
        calls = 0

        async def hanging_backend() -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ConnectionError("down")
            started.set()
            await asyncio.Event().wait()
            return "never"

        guarded = create_circuit_breaker(
            hanging_backend, failure_threshold=1, reset_timeout=1.0, clock=clock
        )
        with pytest.raises(ConnectionError):
            await guarded()
        clock.advance(2.0)

        probe = asyncio.create_task(guarded())
        await started.wait()
        probe.cancel()
        with pytest.raises(asyncio.CancelledError):
            await probe

        assert guarded.state is CircuitState.OPEN


class TestBreakerMisc:
    """Tests for reset, naming and logging."""

    @pytest.mark.asyncio
    async def test_manual_reset(self, breaker: CircuitBreaker[str], backend: Backend) -> None:
        await _fail(breaker, 3)
        await breaker.reset()
        assert breaker.state is CircuitState.CLOSED
        assert breaker.failure_count == 0

        backend.healthy = True
        assert await breaker() == "ok"

    def test_default_name_from_operation(self) -> None:
        async def upload_file() -> None:
            return None

        guarded = create_circuit_breaker(upload_file)
        assert "upload_file" in guarded.name
        assert guarded.__name__ == "upload_file"

    @pytest.mark.asyncio
    async def test_open_transition_logged(
        self, breaker: CircuitBreaker[str], caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="capture_resilience.circuit_breaker"):
            await _fail(breaker, 3)
        assert any("OPENED" in record.getMessage() for record in caplog.records)

    @pytest.mark.asyncio
    async def test_forwards_arguments_to_operation(self, clock: FakeClock) -> None:
        operation = AsyncMock(side_effect=[ConnectionError("down"), "ok"])
        guarded = CircuitBreaker(operation, CircuitBreakerConfig(failure_threshold=2), clock=clock)

        with pytest.raises(ConnectionError):
            await guarded("a.png", quality=80)
        assert await guarded("b.png") == "ok"

        operation.assert_awaited_with("b.png")
        assert operation.await_count == 2
        assert guarded.failure_count == 1
        assert guarded.state is CircuitState.CLOSED
