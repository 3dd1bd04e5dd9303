"""Failure classification.

Maps an arbitrary exception onto one ErrorCategory and decides whether
it is worth retrying. Pre-classified errors keep their own verdict;
everything else is judged from its type and message.

Keyword families are checked in priority order and the first match wins:

1. network   -> NETWORK
2. timeout   -> TIMEOUT
3. browser   -> BROWSER_CRASH
4. selector  -> SELECTOR_NOT_FOUND
5. upload    -> UPLOAD
6. parsing   -> PARSING
7. auth      -> AUTHENTICATION

Unmatched failures default to NETWORK.
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

import httpx

from .errors import ClassifiedError, ErrorCategory

NETWORK_KEYWORDS = (
    "network",
    "connection",
    "timeout",
    "econnreset",
    "enotfound",
    "econnrefused",
    "socket",
    "dns",
    "reset",
    "refused",
    "fetch",
    "request failed",
)
TIMEOUT_KEYWORDS = ("timed out", "deadline exceeded")
BROWSER_KEYWORDS = ("browser", "page", "target closed")
SELECTOR_KEYWORDS = ("selector", "element not found", "waiting for selector")
UPLOAD_KEYWORDS = ("upload", "drive", "storage")
PARSING_KEYWORDS = ("parse", "json", "csv")
AUTH_KEYWORDS = ("auth", "permission", "unauthorized")
USER_ERROR_KEYWORDS = (
    "validation",
    "invalid",
    "bad request",
    "unauthorized",
    "forbidden",
    "not found",
    "conflict",
)

_KEYWORD_FAMILIES: tuple[tuple[tuple[str, ...], ErrorCategory], ...] = (
    (BROWSER_KEYWORDS, ErrorCategory.BROWSER_CRASH),
    (SELECTOR_KEYWORDS, ErrorCategory.SELECTOR_NOT_FOUND),
    (UPLOAD_KEYWORDS, ErrorCategory.UPLOAD),
    (PARSING_KEYWORDS, ErrorCategory.PARSING),
    (AUTH_KEYWORDS, ErrorCategory.AUTHENTICATION),
)

_FATAL_CATEGORIES = frozenset({ErrorCategory.AUTHENTICATION, ErrorCategory.PARSING})

_TIMEOUT_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    asyncio.TimeoutError,
    httpx.TimeoutException,
)


def _message(error: BaseException) -> str:
    return str(error).lower()


def _contains_any(message: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in message for keyword in keywords)


class ErrorClassifier:
    """Assigns categories and retryability to failures.

    Usage:
        classifier = ErrorClassifier()
        classified = classifier.classify(exc)
        if classified.retryable:
            ...
    """

    def is_network_error(self, error: BaseException) -> bool:
        """Check if error looks like a transport-level failure."""
        if isinstance(error, httpx.TransportError) and not isinstance(
            error, httpx.TimeoutException
        ):
            return True
        return isinstance(error, ConnectionError) or _contains_any(
            _message(error), NETWORK_KEYWORDS
        )

    def is_timeout_error(self, error: BaseException) -> bool:
        """Check if error is timeout-related."""
        if isinstance(error, _TIMEOUT_TYPES) or type(error).__name__ == "TimeoutError":
            return True
        message = _message(error)
        return "timeout" in message or _contains_any(message, TIMEOUT_KEYWORDS)

    def is_user_error(self, error: BaseException) -> bool:
        """Check if error was caused by bad input rather than a transient fault."""
        return _contains_any(_message(error), USER_ERROR_KEYWORDS)

    def categorize(self, error: BaseException) -> ErrorCategory:
        """Return the category of ``error``."""
        if isinstance(error, ClassifiedError):
            return error.category

        status = _status_code(error)
        if status is not None:
            by_status = _category_for_status(status)
            if by_status is not None:
                return by_status

        if self.is_network_error(error):
            return ErrorCategory.NETWORK
        if self.is_timeout_error(error):
            return ErrorCategory.TIMEOUT

        message = _message(error)
        for keywords, category in _KEYWORD_FAMILIES:
            if _contains_any(message, keywords):
                return category

        return ErrorCategory.NETWORK

    def is_retryable(self, error: BaseException) -> bool:
        """Decide whether a retry could plausibly succeed."""
        if isinstance(error, ClassifiedError):
            return error.retryable
        if isinstance(error, asyncio.CancelledError):
            return False

        status = _status_code(error)
        if status is not None:
            return _status_is_retryable(status)

        if self.is_network_error(error) or self.is_timeout_error(error):
            return True
        if self.is_user_error(error):
            return False
        return self.categorize(error) not in _FATAL_CATEGORIES

    def classify(
        self,
        error: BaseException,
        context: Mapping[str, Any] | None = None,
    ) -> ClassifiedError:
        """Wrap ``error`` in a ClassifiedError.

        Already-classified errors are returned unchanged, so classifying
        twice yields the same verdict.
        """
        if isinstance(error, ClassifiedError):
            return error
        return ClassifiedError(
            str(error) or type(error).__name__,
            self.categorize(error),
            retryable=self.is_retryable(error),
            status_code=_status_code(error),
            context=context,
            cause=error,
        )


def _status_code(error: BaseException) -> int | None:
    # Other exceptions with a status_code attribute go through the message rules
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def _category_for_status(status: int) -> ErrorCategory | None:
    if status in (401, 403):
        return ErrorCategory.AUTHENTICATION
    if status in (408, 504):
        return ErrorCategory.TIMEOUT
    if status == 429 or status >= 500:
        return ErrorCategory.NETWORK
    return None


def _status_is_retryable(status: int) -> bool:
    return status in (408, 429) or status >= 500
