"""Retry with exponential backoff for async operations.

Attempts run strictly one after another. Between attempts the current
task sleeps for the policy's backoff delay, leaving the event loop free
for other work. Once the policy is exhausted, or a failure is judged not
worth retrying, the original exception propagates to the caller after
being reported.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Mapping, TypeVar

from .classifier import ErrorClassifier
from .context import ErrorContext
from .policy import DEFAULT_POLICY, PolicyTable, RetryPolicy
from .reporter import ContextLike, ErrorReporter

logger = logging.getLogger(__name__)

T = TypeVar("T")

ShouldRetry = Callable[[BaseException, int], bool]
SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Outcome of a retried operation: a value or the final failure."""

    value: T | None = None
    error: BaseException | None = None
    attempts: int = 0
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, or raise the failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


class RetryExecutor:
    """Runs async operations under a RetryPolicy.

    Usage:
        executor = RetryExecutor()
        page = await executor.execute(lambda: fetch(url), policy)
        shot = await executor.execute_with_named_policy(capture, "browser")

    Args:
        classifier: Decides retryability when no predicate is given.
        reporter: Receives terminal failures and retry diagnostics.
        policies: Named presets for execute_with_named_policy.
        sleep: Async sleep used for backoff. Defaults to asyncio.sleep.
    """

    def __init__(
        self,
        classifier: ErrorClassifier | None = None,
        reporter: ErrorReporter | None = None,
        policies: PolicyTable | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        self.classifier = classifier or ErrorClassifier()
        self.reporter = reporter or ErrorReporter(classifier=self.classifier)
        self.policies = policies or PolicyTable()
        self._sleep = sleep or asyncio.sleep

    def default_should_retry(self, error: BaseException, attempt: int) -> bool:
        """Retry whatever the classifier considers transient."""
        return self.classifier.is_retryable(error)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
        should_retry: ShouldRetry | None = None,
        context: ContextLike = None,
    ) -> OperationResult[T]:
        """Execute ``operation`` with retries and return an OperationResult.

        Never raises for operation failures; cancellation still propagates.
        """
        policy = policy or DEFAULT_POLICY
        predicate = should_retry or self.default_should_retry
        ctx = ErrorContext.build(context)
        start = time.perf_counter()

        for attempt in range(1, policy.max_attempts + 1):
            try:
                value = await operation()
            except Exception as exc:
                if attempt == policy.max_attempts or not predicate(exc, attempt):
                    self.reporter.report_terminal(
                        exc, ErrorContext.build(ctx, retry_count=attempt - 1)
                    )
                    return OperationResult(
                        error=exc,
                        attempts=attempt,
                        elapsed=time.perf_counter() - start,
                    )

                delay = policy.delay_for(attempt)
                self.reporter.sink.warning(
                    "Operation failed, retrying",
                    exc,
                    {
                        "attempt": attempt,
                        "max_attempts": policy.max_attempts,
                        "next_retry_in": delay,
                        "category": self.classifier.categorize(exc).value,
                        **ErrorContext.build(ctx, retry_count=attempt - 1).to_dict(),
                    },
                )
                await self._sleep(delay)
            else:
                if attempt > 1:
                    logger.debug("Operation succeeded on attempt %d", attempt)
                return OperationResult(
                    value=value,
                    attempts=attempt,
                    elapsed=time.perf_counter() - start,
                )

        raise AssertionError("unreachable: retry loop exited without a result")

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
        should_retry: ShouldRetry | None = None,
        context: ContextLike = None,
    ) -> T:
        """Execute ``operation`` with retries.

        Returns:
            The operation's result from the first successful attempt.

        Raises:
            Exception: The last attempt's exception, unchanged, once retries
                are exhausted or the failure is not retryable.
        """
        result = await self.run(operation, policy, should_retry, context)
        return result.unwrap()

    async def execute_with_named_policy(
        self,
        operation: Callable[[], Awaitable[T]],
        policy_name: str,
        context: ContextLike = None,
    ) -> T:
        """Execute ``operation`` with a preset policy looked up by name.

        Raises:
            UnknownPolicyError: If ``policy_name`` is not a known preset. The
                operation is not invoked in that case.
        """
        policy = self.policies.get(policy_name)
        return await self.execute(operation, policy, context=context)

    def wrap(
        self,
        operation: Callable[..., Awaitable[T]],
        policy: RetryPolicy | None = None,
        should_retry: ShouldRetry | None = None,
        context: ContextLike = None,
    ) -> Callable[..., Awaitable[T]]:
        """Return a callable with the same signature that retries each call."""

        @functools.wraps(operation)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await self.execute(
                lambda: operation(*args, **kwargs), policy, should_retry, context
            )

        return wrapper


def wrap_with_retry(
    operation: Callable[..., Awaitable[T]],
    policy: RetryPolicy | Mapping[str, Any] | None = None,
    *,
    executor: RetryExecutor | None = None,
    context: ContextLike = None,
) -> Callable[..., Awaitable[T]]:
    """Wrap ``operation`` so every call is retried under ``policy``."""
    if policy is not None and not isinstance(policy, RetryPolicy):
        policy = RetryPolicy.from_mapping(policy)
    return (executor or RetryExecutor()).wrap(operation, policy, context=context)
