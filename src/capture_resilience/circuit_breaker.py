"""Circuit breaker for a single wrapped async operation.

The circuit breaker has three states:
- CLOSED: Normal operation, failures are counted
- OPEN: Circuit tripped, calls fail immediately without running
- HALF_OPEN: Reset timeout elapsed, one probe call is let through

The failure count is cumulative rather than consecutive: a success in
CLOSED leaves it alone, and it only drops back to zero when the
monitoring period passes without a failure or a probe succeeds.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

from .errors import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


class CircuitState(Enum):
    """Possible states for a circuit breaker."""

    CLOSED = "closed"  # Normal operation - calls allowed
    OPEN = "open"  # Circuit tripped - calls rejected
    HALF_OPEN = "half_open"  # Testing recovery - one probe call


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Thresholds for one circuit breaker.

    Attributes:
        failure_threshold: Failures within the monitoring period that open the circuit.
        reset_timeout: Seconds after the last failure before a probe is allowed.
        monitoring_period: Seconds without failures after which the count resets.
    """

    failure_threshold: int = 5
    reset_timeout: float = 60.0
    monitoring_period: float = 300.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {self.failure_threshold}")
        if self.reset_timeout < 0:
            raise ValueError(f"reset_timeout must be >= 0, got {self.reset_timeout}")
        if self.monitoring_period < 0:
            raise ValueError(f"monitoring_period must be >= 0, got {self.monitoring_period}")


class CircuitBreaker(Generic[T]):
    """Three-state breaker bound to one async operation.

    Calling the breaker calls the operation (same arguments, same result)
    unless the circuit is open.

    Usage:
        guarded = CircuitBreaker(upload_file, CircuitBreakerConfig(failure_threshold=3))
        try:
            await guarded(path)
        except CircuitOpenError as e:
            logger.info("upload paused for %.1fs", e.time_until_retry)

    Args:
        operation: The async callable to protect.
        config: Thresholds. Uses CircuitBreakerConfig() if None.
        name: Label used in logs and rejection errors.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        operation: Callable[..., Awaitable[T]],
        config: CircuitBreakerConfig | None = None,
        *,
        name: str | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._operation = operation
        self._config = config or CircuitBreakerConfig()
        self._name = name or getattr(operation, "__qualname__", repr(operation))
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._probe_in_flight = False

        # Concurrency protection
        self._lock = asyncio.Lock()

        functools.update_wrapper(self, operation, updated=())

    @property
    def name(self) -> str:
        """Return the circuit name."""
        return self._name

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    @property
    def state(self) -> CircuitState:
        """Return the current circuit state."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Return the current failure count."""
        return self._failure_count

    @property
    def is_open(self) -> bool:
        """Check if circuit is currently open (blocking calls)."""
        return self._state == CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        """Check if circuit is currently closed (normal operation)."""
        return self._state == CircuitState.CLOSED

    def time_until_retry(self) -> float:
        """Get seconds until the circuit will admit a probe."""
        if self._state != CircuitState.OPEN or self._last_failure_time is None:
            return 0.0
        elapsed = self._clock() - self._last_failure_time
        return max(0.0, self._config.reset_timeout - elapsed)

    async def __call__(self, *args: Any, **kwargs: Any) -> T:
        probing = await self._before_call()
        try:
            result = await self._operation(*args, **kwargs)
        except asyncio.CancelledError:
            # A cancelled probe says nothing about the operation's health
            if probing:
                async with self._lock:
                    self._probe_in_flight = False
                    self._state = CircuitState.OPEN
            raise
        except Exception:
            await self._record_failure(probing)
            raise
        await self._record_success(probing)
        return result

    async def _before_call(self) -> bool:
        """Admit or reject a call. Returns True if the call is a probe."""
        async with self._lock:
            now = self._clock()

            if (
                self._last_failure_time is not None
                and now - self._last_failure_time > self._config.monitoring_period
                and self._failure_count
            ):
                logger.debug(
                    "Circuit %s monitoring period elapsed, clearing %d failures",
                    self._name,
                    self._failure_count,
                )
                self._failure_count = 0

            if self._state == CircuitState.CLOSED:
                return False

            if self._state == CircuitState.OPEN:
                if self._should_attempt_recovery(now):
                    self._transition_to_half_open()
                    self._probe_in_flight = True
                    return True
                raise CircuitOpenError(
                    self._name, self._failure_count, self.time_until_retry()
                )

            # HALF_OPEN: a probe is already running
            if self._probe_in_flight:
                raise CircuitOpenError(self._name, self._failure_count, 0.0)
            self._probe_in_flight = True
            return True

    def _should_attempt_recovery(self, now: float) -> bool:
        if self._last_failure_time is None:
            return True
        return now - self._last_failure_time > self._config.reset_timeout

    async def _record_failure(self, probing: bool) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()
            if probing:
                self._probe_in_flight = False

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to_open(from_half_open=True)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self._config.failure_threshold
            ):
                self._transition_to_open()
            else:
                logger.debug(
                    "Circuit %s failure %d/%d",
                    self._name,
                    self._failure_count,
                    self._config.failure_threshold,
                )

    async def _record_success(self, probing: bool) -> None:
        async with self._lock:
            if probing:
                self._probe_in_flight = False
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to_closed()

    def _transition_to_open(self, from_half_open: bool = False) -> None:
        self._state = CircuitState.OPEN
        if from_half_open:
            logger.warning(
                "Circuit %s probe failed, re-opening (failures=%d)",
                self._name,
                self._failure_count,
            )
        else:
            logger.warning(
                "Circuit %s OPENED due to repeated failures (failures=%d, threshold=%d)",
                self._name,
                self._failure_count,
                self._config.failure_threshold,
            )

    def _transition_to_half_open(self) -> None:
        self._state = CircuitState.HALF_OPEN
        logger.info("Circuit %s moving to HALF_OPEN state", self._name)

    def _transition_to_closed(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        logger.info("Circuit %s reset to CLOSED state", self._name)

    async def reset(self) -> None:
        """Manually reset the circuit to closed state."""
        async with self._lock:
            if self._state != CircuitState.CLOSED or self._failure_count:
                logger.info("Circuit %s manually reset to CLOSED", self._name)
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
            self._probe_in_flight = False


def create_circuit_breaker(
    operation: Callable[..., Awaitable[T]],
    failure_threshold: int = 5,
    reset_timeout: float = 60.0,
    monitoring_period: float = 300.0,
    *,
    name: str | None = None,
    clock: Clock = time.monotonic,
) -> CircuitBreaker[T]:
    """Wrap ``operation`` in a CircuitBreaker with the given thresholds."""
    config = CircuitBreakerConfig(
        failure_threshold=failure_threshold,
        reset_timeout=reset_timeout,
        monitoring_period=monitoring_period,
    )
    return CircuitBreaker(operation, config, name=name, clock=clock)
