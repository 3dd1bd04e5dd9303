"""Root conftest.py for pytest configuration.

Adds project root to sys.path so test modules can import helpers by
dotted path (tests.conftest.FakeClock).

Provides deterministic time (a fake monotonic clock plus a sleep that
advances it) and a log sink that records every call.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import pytest

project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that records delays and advances a FakeClock instead of waiting."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.clock.advance(seconds)


@dataclass
class SinkRecord:
    level: str
    message: str
    error: BaseException | None
    context: dict[str, Any] = field(default_factory=dict)


class RecordingSink:
    """LogSink that keeps every record in memory."""

    def __init__(self) -> None:
        self.records: list[SinkRecord] = []

    def _add(
        self,
        level: str,
        message: str,
        error: BaseException | None,
        context: Mapping[str, Any] | None,
    ) -> None:
        self.records.append(SinkRecord(level, message, error, dict(context or {})))

    def debug(self, message: str, error: BaseException | None = None, context: Any = None) -> None:
        self._add("debug", message, error, context)

    def info(self, message: str, error: BaseException | None = None, context: Any = None) -> None:
        self._add("info", message, error, context)

    def warning(
        self, message: str, error: BaseException | None = None, context: Any = None
    ) -> None:
        self._add("warning", message, error, context)

    def error(self, message: str, error: BaseException | None = None, context: Any = None) -> None:
        self._add("error", message, error, context)

    def at(self, level: str) -> list[SinkRecord]:
        return [record for record in self.records if record.level == level]

    def messages(self, level: str | None = None) -> list[str]:
        return [r.message for r in self.records if level is None or r.level == level]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
