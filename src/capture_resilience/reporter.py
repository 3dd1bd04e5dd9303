"""Structured diagnostics for failed operations.

ErrorReporter turns a failure plus its operation context into an
ErrorReport and hands it to a log sink. The sink is any object with
``debug/info/warning/error(message, error=None, context=None)``;
LoggerSink adapts a standard library logger.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Mapping, Protocol

from pydantic import BaseModel, ConfigDict, Field

from .classifier import ErrorClassifier
from .context import ErrorContext
from .errors import ErrorCategory

logger = logging.getLogger(__name__)

ContextLike = ErrorContext | Mapping[str, Any] | None
Fields = Mapping[str, Any] | None

_CRITICAL = frozenset({ErrorCategory.AUTHENTICATION, ErrorCategory.PARSING})


class LogSink(Protocol):
    """Structured logging collaborator."""

    def debug(
        self, message: str, error: BaseException | None = None, context: Fields = None
    ) -> None: ...

    def info(
        self, message: str, error: BaseException | None = None, context: Fields = None
    ) -> None: ...

    def warning(
        self, message: str, error: BaseException | None = None, context: Fields = None
    ) -> None: ...

    def error(
        self, message: str, error: BaseException | None = None, context: Fields = None
    ) -> None: ...


class LoggerSink:
    """LogSink backed by a ``logging.Logger``.

    Structured fields are attached to the record as ``record.context``;
    errors logged at error level carry ``exc_info``.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def _emit(
        self,
        level: int,
        message: str,
        error: BaseException | None,
        context: Fields,
    ) -> None:
        fields = dict(context or {})
        if error is not None:
            fields.setdefault("error", str(error))
        exc_info = error if error is not None and level >= logging.ERROR else None
        self._log.log(level, message, exc_info=exc_info, extra={"context": fields})

    def debug(
        self, message: str, error: BaseException | None = None, context: Fields = None
    ) -> None:
        self._emit(logging.DEBUG, message, error, context)

    def info(
        self, message: str, error: BaseException | None = None, context: Fields = None
    ) -> None:
        self._emit(logging.INFO, message, error, context)

    def warning(
        self, message: str, error: BaseException | None = None, context: Fields = None
    ) -> None:
        self._emit(logging.WARNING, message, error, context)

    def error(
        self, message: str, error: BaseException | None = None, context: Fields = None
    ) -> None:
        self._emit(logging.ERROR, message, error, context)


class ErrorReport(BaseModel):
    """Diagnostic record for one failure, ready for external logging."""

    model_config = ConfigDict(frozen=True)

    message: str
    error_type: str
    category: ErrorCategory
    retryable: bool
    status_code: int | None = None
    severity: Literal["error", "warning"]
    action: Literal["job_error", "unhandled_error", "handled_error"]
    job_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)

    def to_log_fields(self) -> dict[str, Any]:
        """Flatten for a log sink's context mapping."""
        fields = self.model_dump(exclude={"message"})
        fields["category"] = self.category.value
        return fields


class ErrorReporter:
    """Builds ErrorReports and routes them to a LogSink.

    Args:
        sink: Where records go. Defaults to a LoggerSink on this module's logger.
        classifier: Used to categorise failures. Defaults to ErrorClassifier().
    """

    def __init__(
        self,
        sink: LogSink | None = None,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        self.sink: LogSink = sink or LoggerSink()
        self.classifier = classifier or ErrorClassifier()

    def build_report(
        self,
        error: BaseException,
        context: ContextLike = None,
        *,
        action: Literal["job_error", "unhandled_error", "handled_error"] | None = None,
    ) -> ErrorReport:
        """Classify ``error`` and combine it with the operation context."""
        ctx = ErrorContext.build(context)
        classified = self.classifier.classify(error)
        severity: Literal["error", "warning"] = (
            "warning"
            if classified.retryable and classified.category not in _CRITICAL
            else "error"
        )
        if action is None:
            action = "job_error" if ctx.has_job else "unhandled_error"
        return ErrorReport(
            message=str(error) or type(error).__name__,
            error_type=type(error).__name__,
            category=classified.category,
            retryable=classified.retryable,
            status_code=classified.status_code,
            severity=severity,
            action=action,
            job_id=ctx.job_id if ctx.has_job else None,
            context=ctx.to_dict(),
        )

    def report_terminal(self, error: BaseException, context: ContextLike = None) -> ErrorReport:
        """Record a failure that is about to propagate to the caller."""
        report = self.build_report(error, context)
        if report.action == "job_error":
            self.sink.error("Processing job failed", error, report.to_log_fields())
        else:
            self.sink.error("Unhandled error", error, report.to_log_fields())
        return report

    def handle(self, error: BaseException, context: ContextLike = None) -> ErrorReport:
        """Log a failure at a severity chosen by its classification.

        Authentication and parsing failures are critical. Other retryable
        failures are warnings, the rest are errors. Category-specific
        advice follows the main record.
        """
        report = self.build_report(error, context, action="handled_error")
        fields = report.to_log_fields()

        if report.category in _CRITICAL:
            self.sink.error("Critical error occurred", error, fields)
        elif report.retryable:
            self.sink.warning("Retryable error occurred", error, fields)
        else:
            self.sink.error("Non-retryable error occurred", error, fields)

        self._advise(report)
        return report

    def _advise(self, report: ErrorReport) -> None:
        ctx = report.context
        if report.category is ErrorCategory.BROWSER_CRASH:
            self.sink.warning(
                "Browser crash detected, may need to restart browser session",
                context={"context": ctx},
            )
        elif report.category is ErrorCategory.SELECTOR_NOT_FOUND:
            self.sink.info(
                "Consider updating selector or adding fallback selectors",
                context={"selector": ctx.get("selector"), "url": ctx.get("url")},
            )
        elif report.category is ErrorCategory.UPLOAD:
            self.sink.warning(
                "Upload failed, file should be available locally",
                context={"context": ctx},
            )
        elif report.category is ErrorCategory.AUTHENTICATION:
            self.sink.error(
                "Authentication error requires immediate attention",
                context={"context": ctx},
            )

