"""Capture Resilience.

This package wraps unreliable async operations (network calls, browser
automation steps, uploads) with retry-with-backoff, failure
classification, circuit breakers and rate limiting, and turns terminal
failures into structured diagnostic records.
"""

from __future__ import annotations

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    create_circuit_breaker,
)
from .classifier import ErrorClassifier
from .config import ResilienceConfig, find_config_file, load_config, resolve_config
from .context import ErrorContext
from .errors import (
    CircuitOpenError,
    ClassifiedError,
    ErrorCategory,
    PolicyError,
    ResilienceError,
    UnknownPolicyError,
)
from .handler import ErrorHandler
from .policy import DEFAULT_POLICIES, DEFAULT_POLICY, PolicyTable, RetryPolicy
from .rate_limiter import RateLimiter, create_rate_limiter
from .reporter import ErrorReport, ErrorReporter, LoggerSink, LogSink
from .retry import OperationResult, RetryExecutor, wrap_with_retry

__all__ = [
    # Errors
    "ErrorCategory",
    "ClassifiedError",
    "CircuitOpenError",
    "ResilienceError",
    "PolicyError",
    "UnknownPolicyError",
    # Classification
    "ErrorClassifier",
    # Retry
    "RetryPolicy",
    "PolicyTable",
    "DEFAULT_POLICY",
    "DEFAULT_POLICIES",
    "RetryExecutor",
    "OperationResult",
    "wrap_with_retry",
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "create_circuit_breaker",
    # Rate limiting
    "RateLimiter",
    "create_rate_limiter",
    # Reporting
    "ErrorContext",
    "ErrorReport",
    "ErrorReporter",
    "LogSink",
    "LoggerSink",
    # Facade
    "ErrorHandler",
    # Config
    "ResilienceConfig",
    "load_config",
    "find_config_file",
    "resolve_config",
]
