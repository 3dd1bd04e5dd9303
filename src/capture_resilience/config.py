"""Resilience configuration loaded from TOML.

Looks for ``.capture/resilience.toml``:

    [retry_strategies.network]
    max_attempts = 5
    delay_ms = 1000
    backoff_multiplier = 2
    max_delay_ms = 10000

    [circuit_breaker]
    failure_threshold = 5
    reset_timeout_ms = 60000
    monitoring_period_ms = 300000

    [rate_limit]
    requests_per_window = 10
    window_ms = 1000

Strategies in the file override or extend the built-in presets.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from .handler import ErrorHandler
from .policy import DEFAULT_POLICIES, PolicyTable, RetryPolicy
from .rate_limiter import RateLimiter
from .reporter import LogSink

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CONFIG_DIR = ".capture"
_CONFIG_FILE = "resilience.toml"


@dataclass(frozen=True)
class RateLimitConfig:
    """Default rate limiter settings."""

    requests_per_window: int = 10
    window: float = 1.0


@dataclass(frozen=True)
class ResilienceConfig:
    """Effective retry, breaker and rate-limit settings."""

    retry_strategies: dict[str, RetryPolicy] = field(
        default_factory=lambda: dict(DEFAULT_POLICIES)
    )
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    def policy_table(self) -> PolicyTable:
        return PolicyTable(self.retry_strategies)

    def build_handler(self, sink: LogSink | None = None) -> ErrorHandler:
        """Create an ErrorHandler wired to these retry strategies."""
        return ErrorHandler(policies=self.policy_table(), sink=sink)

    def create_circuit_breaker(
        self, operation: Callable[..., Awaitable[T]], name: str | None = None
    ) -> CircuitBreaker[T]:
        """Wrap ``operation`` in a breaker using the configured thresholds."""
        return CircuitBreaker(operation, self.circuit_breaker, name=name)

    def create_rate_limiter(self) -> RateLimiter:
        return RateLimiter(self.rate_limit.requests_per_window, self.rate_limit.window)


def load_config(path: Path) -> ResilienceConfig:
    """Load config from a TOML file.

    Args:
        path: Path to the TOML file.

    Returns:
        Parsed ResilienceConfig.

    Raises:
        FileNotFoundError: If the file is missing.
        ValueError: On invalid, empty, or corrupt TOML.
        PolicyError: If a retry strategy has out-of-range values.
    """
    if not path.exists():
        msg = f"Resilience config not found: {path}"
        raise FileNotFoundError(msg)

    content = path.read_text(encoding="utf-8")
    if not content.strip():
        msg = f"Config file is empty: {path}"
        raise ValueError(msg)

    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise ValueError(msg) from exc

    config = parse_config(data)
    logger.debug(
        "Loaded resilience config from %s (%d strategies)", path, len(config.retry_strategies)
    )
    return config


def parse_config(data: dict[str, Any]) -> ResilienceConfig:
    """Parse raw TOML data into a ResilienceConfig.

    Unknown sections and keys are ignored for forward compatibility.
    """
    strategies_data = _table(data, "retry_strategies")
    breaker_data = _table(data, "circuit_breaker")
    rate_data = _table(data, "rate_limit")

    strategies = dict(DEFAULT_POLICIES)
    for name, entry in strategies_data.items():
        if not isinstance(entry, dict):
            msg = f"[retry_strategies.{name}] must be a table"
            raise ValueError(msg)
        strategies[name] = RetryPolicy.from_mapping(entry)

    defaults = CircuitBreakerConfig()
    breaker = CircuitBreakerConfig(
        failure_threshold=int(breaker_data.get("failure_threshold", defaults.failure_threshold)),
        reset_timeout=_seconds(breaker_data, "reset_timeout_ms", defaults.reset_timeout),
        monitoring_period=_seconds(
            breaker_data, "monitoring_period_ms", defaults.monitoring_period
        ),
    )

    rate_defaults = RateLimitConfig()
    rate_limit = RateLimitConfig(
        requests_per_window=int(
            rate_data.get("requests_per_window", rate_defaults.requests_per_window)
        ),
        window=_seconds(rate_data, "window_ms", rate_defaults.window),
    )
    if rate_limit.requests_per_window < 1 or rate_limit.window <= 0:
        msg = "rate_limit.requests_per_window must be >= 1 and window_ms > 0"
        raise ValueError(msg)

    return ResilienceConfig(
        retry_strategies=strategies,
        circuit_breaker=breaker,
        rate_limit=rate_limit,
    )


def _table(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        msg = f"[{name}] section must be a table"
        raise ValueError(msg)
    return section


def _seconds(section: dict[str, Any], key: str, default: float) -> float:
    if key not in section:
        return default
    return float(section[key]) / 1000


def find_config_file(start: Path | None = None) -> Path | None:
    """Walk up from start to find the nearest .capture/resilience.toml.

    Args:
        start: Starting directory. Defaults to cwd.

    Returns:
        Path to the config file, or None if not found.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / _CONFIG_DIR / _CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def resolve_config(path: str | Path | None = None) -> ResilienceConfig:
    """Load an explicit config file, a discovered one, or the defaults."""
    if path is not None:
        return load_config(Path(path))
    discovered = find_config_file()
    if discovered is None:
        return ResilienceConfig()
    return load_config(discovered)
