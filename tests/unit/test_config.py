"""Tests for resilience.toml loading and discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from capture_resilience.circuit_breaker import CircuitBreaker
from capture_resilience.config import (
    RateLimitConfig,
    ResilienceConfig,
    find_config_file,
    load_config,
    parse_config,
    resolve_config,
)
from capture_resilience.errors import PolicyError
from capture_resilience.handler import ErrorHandler
from capture_resilience.policy import DEFAULT_POLICIES, RetryPolicy
from capture_resilience.rate_limiter import RateLimiter


FULL_CONFIG = """\
[retry_strategies.network]
max_attempts = 6
delay_ms = 500
backoff_multiplier = 3
max_delay_ms = 20000

[retry_strategies.ocr]
max_attempts = 2
delay_ms = 250

[circuit_breaker]
failure_threshold = 3
reset_timeout_ms = 30000
monitoring_period_ms = 120000

[rate_limit]
requests_per_window = 20
window_ms = 2000
"""


def _write(tmp_path: Path, content: str) -> Path:
    config_dir = tmp_path / ".capture"
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / "resilience.toml"
    path.write_text(content, encoding="utf-8")
    return path


class TestLoadConfig:
    """Tests for load_config()."""

    def test_full_config(self, tmp_path: Path) -> None:
        config = load_config(_write(tmp_path, FULL_CONFIG))

        assert config.retry_strategies["network"] == RetryPolicy(
            max_attempts=6, initial_delay=0.5, backoff_multiplier=3.0, max_delay=20.0
        )
        assert config.retry_strategies["ocr"].max_attempts == 2
        assert config.retry_strategies["ocr"].initial_delay == 0.25
        assert config.retry_strategies["upload"] is DEFAULT_POLICIES["upload"]
        assert config.circuit_breaker.failure_threshold == 3
        assert config.circuit_breaker.reset_timeout == 30.0
        assert config.circuit_breaker.monitoring_period == 120.0
        assert config.rate_limit == RateLimitConfig(requests_per_window=20, window=2.0)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.toml")

    def test_empty_file(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="empty"):
            load_config(_write(tmp_path, "   \n"))

    def test_invalid_toml(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Invalid TOML"):
            load_config(_write(tmp_path, "[retry_strategies\n"))

    def test_invalid_strategy_values(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "[retry_strategies.network]\nmax_attempts = 0\n")
        with pytest.raises(PolicyError):
            load_config(path)


class TestParseConfig:
    """Tests for parse_config()."""

    def test_empty_mapping_gives_defaults(self) -> None:
        config = parse_config({})
        assert config == ResilienceConfig()
        assert config.retry_strategies == DEFAULT_POLICIES

    def test_section_must_be_table(self) -> None:
        with pytest.raises(ValueError, match=r"\[circuit_breaker\]"):
            parse_config({"circuit_breaker": 5})

    def test_strategy_must_be_table(self) -> None:
        with pytest.raises(ValueError, match=r"\[retry_strategies.network\]"):
            parse_config({"retry_strategies": {"network": 3}})

    def test_invalid_rate_limit(self) -> None:
        with pytest.raises(ValueError, match="rate_limit"):
            parse_config({"rate_limit": {"requests_per_window": 0}})

    def test_unknown_sections_ignored(self) -> None:
        assert parse_config({"telemetry": {"enabled": True}}) == ResilienceConfig()


class TestDiscovery:
    """Tests for find_config_file() and resolve_config()."""

    def test_finds_in_parent(self, tmp_path: Path) -> None:
        expected = _write(tmp_path, FULL_CONFIG)
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == expected.resolve()

    def test_not_found(self, tmp_path: Path) -> None:
        assert find_config_file(tmp_path) is None

    def test_resolve_explicit_path(self, tmp_path: Path) -> None:
        path = _write(tmp_path, FULL_CONFIG)
        assert resolve_config(str(path)).circuit_breaker.failure_threshold == 3

    def test_resolve_defaults_when_absent(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        assert resolve_config() == ResilienceConfig()


class TestResilienceConfig:
    """Tests for building components from config."""

    def test_build_handler_uses_strategies(self, tmp_path: Path) -> None:
        config = load_config(_write(tmp_path, FULL_CONFIG))
        handler = config.build_handler()
        assert isinstance(handler, ErrorHandler)
        assert handler.policies.get("ocr").initial_delay == 0.25

    def test_create_components(self) -> None:
        config = ResilienceConfig()

        async def op() -> None:
            return None

        breaker = config.create_circuit_breaker(op, name="upload")
        assert isinstance(breaker, CircuitBreaker)
        assert breaker.name == "upload"
        assert breaker.config == config.circuit_breaker

        limiter = config.create_rate_limiter()
        assert isinstance(limiter, RateLimiter)
        assert limiter.requests_per_window == 10
        assert limiter.window == 1.0
