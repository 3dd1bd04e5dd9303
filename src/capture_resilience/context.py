"""Per-call operation context attached to diagnostics."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Mapping

UNKNOWN = "unknown"
DEFAULT_DEVICE_TYPE = "Desktop"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ErrorContext:
    """Circumstances of the operation that failed.

    Every field is optional at the call site; absent values fall back to
    placeholder sentinels so diagnostic records always have the same shape.

    Attributes:
        job_id: Identifier of the capture job.
        url: Target URL being processed.
        selector: DOM selector involved, if any.
        device_type: Device profile name.
        retry_count: Retries performed before this record was made.
        timestamp: When the record was made.
        extra: Any other caller-supplied keys.
    """

    job_id: str = UNKNOWN
    url: str = UNKNOWN
    selector: str = UNKNOWN
    device_type: str = DEFAULT_DEVICE_TYPE
    retry_count: int = 0
    timestamp: datetime = field(default_factory=_utcnow)
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def has_job(self) -> bool:
        """True when the context names a real job."""
        return self.job_id != UNKNOWN

    @classmethod
    def build(
        cls,
        partial: ErrorContext | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> ErrorContext:
        """Merge a partial mapping (and keyword overrides) over the defaults.

        Keys that are not ErrorContext fields are collected into ``extra``.
        camelCase keys (``jobId``, ``deviceType``, ``retryCount``) are accepted.
        """
        if isinstance(partial, ErrorContext):
            data: dict[str, Any] = partial.as_fields()
        else:
            data = {_normalize_key(k): v for k, v in (partial or {}).items()}
        data.update({_normalize_key(k): v for k, v in overrides.items()})

        names = {f.name for f in fields(cls)}
        known = {k: v for k, v in data.items() if k in names and v is not None}
        if "timestamp" in known:
            known["timestamp"] = _coerce_timestamp(known["timestamp"])
        extra = dict(known.pop("extra", {}) or {})
        extra.update({k: v for k, v in data.items() if k not in names})
        return cls(**known, extra=extra)

    def as_fields(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def to_dict(self) -> dict[str, Any]:
        """Flatten into a JSON-friendly mapping for log records."""
        data = self.as_fields()
        extra = dict(data.pop("extra"))
        stamp = self.timestamp
        data["timestamp"] = stamp.isoformat() if isinstance(stamp, datetime) else str(stamp)
        data.update(extra)
        return data


_CAMEL_KEYS = {
    "jobId": "job_id",
    "deviceType": "device_type",
    "retryCount": "retry_count",
}


def _normalize_key(key: str) -> str:
    return _CAMEL_KEYS.get(key, key)


def _coerce_timestamp(value: Any) -> datetime:
    """Accept a datetime, epoch seconds or an ISO 8601 string."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, timezone.utc)
        except (OverflowError, OSError, ValueError):
            return _utcnow()
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return _utcnow()
    return _utcnow()
