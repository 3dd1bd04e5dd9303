"""Error taxonomy and exception classes for resilient execution.

Every failure that passes through the resilience core is coerced into
exactly one ErrorCategory. Operations that already know what went wrong
raise a ClassifiedError so the classifier preserves their verdict.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class ErrorCategory(Enum):
    """Semantic categories a failure can be assigned to."""

    NETWORK = "NETWORK_ERROR"
    SELECTOR_NOT_FOUND = "SELECTOR_NOT_FOUND"
    BROWSER_CRASH = "BROWSER_CRASH"
    TIMEOUT = "TIMEOUT_ERROR"
    UPLOAD = "UPLOAD_ERROR"
    PARSING = "PARSING_ERROR"
    AUTHENTICATION = "AUTHENTICATION_ERROR"


class ResilienceError(Exception):
    """Base exception for configuration errors raised by this package."""

    pass


class PolicyError(ResilienceError, ValueError):
    """Raised when a retry policy has out-of-range values."""

    pass


class UnknownPolicyError(ResilienceError, KeyError):
    """Raised when a named retry policy does not exist."""

    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        super().__init__(name)

    def __str__(self) -> str:
        return f"Unknown retry policy '{self.name}' (available: {', '.join(self.available)})"


class ClassifiedError(Exception):
    """A failure carrying an explicit category and retryability verdict.

    Attributes are fixed at construction; assigning to them afterwards
    raises AttributeError.

    Attributes:
        category: Semantic category of the failure.
        retryable: Whether the retry executor may try again.
        status_code: Optional numeric status (HTTP or similar).
        context: Read-only mapping describing the circumstances.
        cause: The underlying exception, if this wraps one.
    """

    _frozen = False

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        *,
        retryable: bool = True,
        status_code: int | None = None,
        context: Mapping[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.retryable = retryable
        self.status_code = status_code
        self.context = MappingProxyType(dict(context or {}))
        self.cause = cause
        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        # Exception machinery (__traceback__, __cause__, ...) stays writable.
        if self._frozen and not name.startswith("__"):
            raise AttributeError(f"{type(self).__name__}.{name} is read-only")
        super().__setattr__(name, value)

    def __reduce__(self) -> tuple[Any, ...]:
        state = dict(self.__dict__)
        state["context"] = dict(self.context)
        return (_restore_classified, (type(self), self.args, state))


class CircuitOpenError(ClassifiedError):
    """Raised when a circuit breaker rejects a call without invoking it."""

    def __init__(self, name: str, failures: int, time_until_retry: float) -> None:
        super().__init__(
            f"Circuit breaker {name} is OPEN. Retry in {time_until_retry:.1f}s",
            ErrorCategory.NETWORK,
            retryable=False,
            context={
                "breaker": name,
                "state": "open",
                "failures": failures,
                "time_until_retry": time_until_retry,
            },
        )

    @property
    def time_until_retry(self) -> float:
        """Seconds until the breaker will admit a probe call."""
        return float(self.context["time_until_retry"])


def _restore_classified(
    cls: type[ClassifiedError], args: tuple[Any, ...], state: dict[str, Any]
) -> ClassifiedError:
    """Rebuild a ClassifiedError (or subclass) from pickled state."""
    error = cls.__new__(cls, *args)
    state["context"] = MappingProxyType(state["context"])
    error.__dict__.update(state)
    return error
