"""Retry policies and the named preset table.

Each class of unreliable operation (network calls, selector waits,
browser sessions, uploads) gets its own tuned backoff policy. Callers
pick one by name or construct a custom RetryPolicy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Mapping

from .errors import PolicyError, UnknownPolicyError


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff policy governing one retry sequence.

    The delay before attempt ``n + 1`` is
    ``min(initial_delay * backoff_multiplier ** (n - 1), max_delay)``.

    Attributes:
        max_attempts: Total attempts, including the first one.
        initial_delay: Seconds to wait before the second attempt.
        backoff_multiplier: Growth factor applied per attempt.
        max_delay: Upper bound on any single delay, in seconds.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 10.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise PolicyError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0:
            raise PolicyError(f"initial_delay must be >= 0, got {self.initial_delay}")
        if self.backoff_multiplier < 1:
            raise PolicyError(
                f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}"
            )
        if self.max_delay < self.initial_delay:
            raise PolicyError(
                f"max_delay ({self.max_delay}) must be >= initial_delay ({self.initial_delay})"
            )

    def delay_for(self, attempt: int) -> float:
        """Return the delay in seconds after failed attempt ``attempt`` (1-based)."""
        if attempt < 1:
            return 0.0
        delay = self.initial_delay * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay)

    def schedule(self) -> list[float]:
        """Return every delay a permanently failing operation would see."""
        return [self.delay_for(attempt) for attempt in range(1, self.max_attempts)]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RetryPolicy:
        """Build a policy from a strategy table entry.

        Accepts ``{max_attempts, delay_ms, backoff_multiplier, max_delay_ms}``
        (camelCase spellings also work). Delays are given in milliseconds.
        """
        max_delay_ms = _pick(data, "max_delay_ms", "maxDelayMs", default=None)
        try:
            max_attempts = int(_pick(data, "max_attempts", "maxAttempts", default=3))
            initial_delay = float(_pick(data, "delay_ms", "delayMs", default=1000)) / 1000
            multiplier = float(_pick(data, "backoff_multiplier", "backoffMultiplier", default=2))
            max_delay = (
                float(max_delay_ms) / 1000 if max_delay_ms is not None else max(initial_delay, 10.0)
            )
        except (TypeError, ValueError) as exc:
            raise PolicyError(f"Invalid retry strategy {dict(data)!r}: {exc}") from exc

        return cls(
            max_attempts=max_attempts,
            initial_delay=initial_delay,
            backoff_multiplier=multiplier,
            max_delay=max_delay,
        )

    def to_mapping(self) -> dict[str, Any]:
        """Inverse of from_mapping, in milliseconds."""
        return {
            "max_attempts": self.max_attempts,
            "delay_ms": round(self.initial_delay * 1000),
            "backoff_multiplier": self.backoff_multiplier,
            "max_delay_ms": round(self.max_delay * 1000),
        }


def _pick(data: Mapping[str, Any], *keys: str, default: Any) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return default


DEFAULT_POLICY = RetryPolicy()

# Presets per operation class
DEFAULT_POLICIES: dict[str, RetryPolicy] = {
    "network": RetryPolicy(
        max_attempts=5, initial_delay=1.0, backoff_multiplier=2.0, max_delay=10.0
    ),
    "selector": RetryPolicy(
        max_attempts=3, initial_delay=2.0, backoff_multiplier=1.5, max_delay=8.0
    ),
    # Fixed delay
    "browser": RetryPolicy(
        max_attempts=2, initial_delay=5.0, backoff_multiplier=1.0, max_delay=5.0
    ),
    "upload": RetryPolicy(
        max_attempts=4, initial_delay=1.5, backoff_multiplier=2.0, max_delay=12.0
    ),
}


class PolicyTable:
    """Named retry policies keyed by operation class.

    Usage:
        table = PolicyTable.with_overrides({"network": RetryPolicy(max_attempts=2)})
        policy = table.get("network")
    """

    def __init__(self, policies: Mapping[str, RetryPolicy] | None = None) -> None:
        self._policies: dict[str, RetryPolicy] = dict(
            DEFAULT_POLICIES if policies is None else policies
        )

    @classmethod
    def with_overrides(cls, overrides: Mapping[str, RetryPolicy]) -> PolicyTable:
        """Start from the built-in presets and replace or add entries."""
        merged = dict(DEFAULT_POLICIES)
        merged.update(overrides)
        return cls(merged)

    def get(self, name: str) -> RetryPolicy:
        """Look up a policy by name.

        Raises:
            UnknownPolicyError: If no policy is registered under ``name``.
        """
        try:
            return self._policies[name]
        except KeyError:
            raise UnknownPolicyError(name, sorted(self._policies)) from None

    def names(self) -> list[str]:
        return sorted(self._policies)

    def items(self) -> Iterator[tuple[str, RetryPolicy]]:
        return iter(sorted(self._policies.items()))

    def __contains__(self, name: object) -> bool:
        return name in self._policies

    def __len__(self) -> int:
        return len(self._policies)
