"""Shared test fixtures for procmon."""

import io
from collections.abc import Iterable

import pytest
from click.testing import CliRunner
from rich.console import Console

from procmon.collector import ProcessEntry, ProcessInfo, ProcessStats, SampleProviderError
from procmon.history import BYTES_PER_MB, ProcessSample


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def console(monkeypatch) -> Console:
    """Send Rich console output to a buffer instead of the terminal."""
    buffered = Console(file=io.StringIO(), width=120, highlight=False)
    monkeypatch.setattr("procmon.logging._console", buffered)
    return buffered


def make_entry(
    pid: int = 100,
    ppid: int | None = 1,
    name: str = "python",
    cmd: str | None = "python app.py",
) -> ProcessEntry:
    """Create a ProcessEntry for testing."""
    return ProcessEntry(pid=pid, ppid=ppid, name=name, cmd=cmd)


def make_info(
    pid: int = 100,
    ppid: int | None = 1,
    name: str = "python",
    cmd: str | None = "python app.py",
    cpu: float = 10.0,
    memory_mb: float = 50.0,
    timestamp_ms: int = 1_000,
) -> ProcessInfo:
    """Create a ProcessInfo for testing with memory given in MB."""
    return ProcessInfo(
        pid=pid,
        ppid=ppid,
        name=name,
        cmd=cmd,
        cpu=cpu,
        memory_bytes=int(memory_mb * BYTES_PER_MB),
        timestamp_ms=timestamp_ms,
    )


def make_sample(
    pid: int = 100,
    cpu: float = 10.0,
    memory_mb: float = 50.0,
    timestamp_ms: int = 1_000,
) -> ProcessSample:
    """Create a ProcessSample for testing with memory given in MB."""
    return ProcessSample(
        pid=pid,
        cpu_percent=cpu,
        memory_bytes=int(memory_mb * BYTES_PER_MB),
        timestamp_ms=timestamp_ms,
    )


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now: int = 1_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeProvider:
    """Sample provider returning canned readings.

    readings maps pid -> (cpu_percent, memory_mb). PIDs without a reading
    are treated as exited.
    """

    def __init__(self, readings: dict[int, tuple[float, float]] | None = None) -> None:
        self.readings = readings or {}
        self.calls: list[list[int]] = []
        self.error: Exception | None = None
        self.timestamp_ms = 1_000

    def fail_with(self, message: str = "provider down") -> None:
        self.error = SampleProviderError(message)

    def get_stats(self, pids: Iterable[int]) -> dict[int, ProcessStats]:
        wanted = list(pids)
        self.calls.append(wanted)
        if self.error is not None:
            raise self.error
        return {
            pid: ProcessStats(
                pid=pid,
                cpu_percent=self.readings[pid][0],
                memory_bytes=int(self.readings[pid][1] * BYTES_PER_MB),
                elapsed_ms=0,
                timestamp_ms=self.timestamp_ms,
            )
            for pid in wanted
            if pid in self.readings
        }
