"""Injectable facade over the resilience components.

ErrorHandler bundles a classifier, a reporter, a retry executor and a
policy table behind the interface capture services call. Create one per
application (or per test) and pass it to whoever needs it.
"""

from __future__ import annotations

import functools
import time
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from .circuit_breaker import CircuitBreaker, Clock, create_circuit_breaker
from .classifier import ErrorClassifier
from .errors import ClassifiedError, ErrorCategory
from .policy import PolicyTable, RetryPolicy
from .rate_limiter import create_rate_limiter
from .reporter import ContextLike, ErrorReport, ErrorReporter, LogSink
from .retry import RetryExecutor, ShouldRetry, SleepFunc

T = TypeVar("T")


class ErrorHandler:
    """Entry point for resilient execution.

    Usage:
        handler = ErrorHandler()
        html = await handler.execute_with_named_policy(
            lambda: page.content(), "browser", context={"job_id": job.id}
        )
        safe_upload = handler.wrap_with_error_handling(upload, {"job_id": job.id})

    Args:
        classifier: Failure classifier. Defaults to ErrorClassifier().
        reporter: Diagnostic reporter. Defaults to one logging via ``sink``.
        policies: Named retry presets. Defaults to the built-in table.
        sink: Log sink for the default reporter.
        sleep: Async sleep used for backoff and rate-limit waits.
        clock: Monotonic time source for breakers and limiters.
    """

    def __init__(
        self,
        classifier: ErrorClassifier | None = None,
        reporter: ErrorReporter | None = None,
        policies: PolicyTable | None = None,
        *,
        sink: LogSink | None = None,
        sleep: SleepFunc | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.classifier = classifier or ErrorClassifier()
        self.reporter = reporter or ErrorReporter(sink=sink, classifier=self.classifier)
        self.policies = policies or PolicyTable()
        self.executor = RetryExecutor(
            classifier=self.classifier,
            reporter=self.reporter,
            policies=self.policies,
            sleep=sleep,
        )
        self._sleep = sleep
        self._clock = clock

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        options: RetryPolicy | Mapping[str, Any] | None = None,
        context: ContextLike = None,
        *,
        should_retry: ShouldRetry | None = None,
    ) -> T:
        """Run ``operation`` with retries, raising its final failure.

        ``options`` may be a RetryPolicy or a strategy mapping
        (``max_attempts``, ``delay_ms``, ``backoff_multiplier``, ``max_delay_ms``).
        """
        policy = _coerce_policy(options)
        return await self.executor.execute(operation, policy, should_retry, context)

    async def execute_with_named_policy(
        self,
        operation: Callable[[], Awaitable[T]],
        policy_name: str,
        context: ContextLike = None,
    ) -> T:
        """Run ``operation`` with the preset registered as ``policy_name``."""
        return await self.executor.execute_with_named_policy(operation, policy_name, context)

    def wrap_with_retry(
        self,
        operation: Callable[..., Awaitable[T]],
        policy: RetryPolicy | Mapping[str, Any] | None = None,
        context: ContextLike = None,
    ) -> Callable[..., Awaitable[T]]:
        """Return ``operation`` with every call retried under ``policy``."""
        return self.executor.wrap(operation, _coerce_policy(policy), context=context)

    def wrap_with_error_handling(
        self,
        operation: Callable[..., Awaitable[T]],
        context: ContextLike = None,
    ) -> Callable[..., Awaitable[T]]:
        """Return ``operation`` with failures logged, then re-raised unchanged."""

        @functools.wraps(operation)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await operation(*args, **kwargs)
            except Exception as exc:
                self.handle_error(exc, context)
                raise

        return wrapper

    def classify(self, error: BaseException) -> ErrorCategory:
        """Return the category of ``error``."""
        return self.classifier.categorize(error)

    def classify_error(self, error: BaseException) -> ClassifiedError:
        return self.classifier.classify(error)

    def handle_error(self, error: BaseException, context: ContextLike = None) -> ErrorReport:
        """Log ``error`` at the severity its category calls for."""
        return self.reporter.handle(error, context)

    def create_error(
        self,
        message: str,
        category: ErrorCategory,
        context: Mapping[str, Any] | None = None,
        retryable: bool = True,
        status_code: int | None = None,
    ) -> ClassifiedError:
        """Build a pre-classified error for an operation to raise."""
        return ClassifiedError(
            message,
            category,
            retryable=retryable,
            status_code=status_code,
            context=context,
        )

    def create_circuit_breaker(
        self,
        operation: Callable[..., Awaitable[T]],
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        monitoring_period: float = 300.0,
        *,
        name: str | None = None,
    ) -> CircuitBreaker[T]:
        """Wrap ``operation`` in a circuit breaker using this handler's clock."""
        return create_circuit_breaker(
            operation,
            failure_threshold,
            reset_timeout,
            monitoring_period,
            name=name,
            clock=self._clock,
        )

    def create_rate_limiter(
        self, requests_per_window: int, window: float
    ) -> Callable[[], Awaitable[None]]:
        """Return an ``acquire()`` coroutine function for a new rate limiter."""
        return create_rate_limiter(
            requests_per_window, window, clock=self._clock, sleep=self._sleep
        )


def _coerce_policy(options: RetryPolicy | Mapping[str, Any] | None) -> RetryPolicy | None:
    if options is None or isinstance(options, RetryPolicy):
        return options
    return RetryPolicy.from_mapping(options)
