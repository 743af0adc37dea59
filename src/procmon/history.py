# src/procmon/history.py
"""Bounded per-process history.

Converts a stream of point samples into rolling statistics per PID:
sample count, CPU and memory windows (last N values), peaks and averages.
Records outlive their processes so the end-of-session summary can include
processes that exited mid-session.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from procmon.identity import extract_script_path, format_script_name
from procmon.ringbuffer import RingBuffer

DEFAULT_WINDOW_SIZE = 100
BYTES_PER_MB = 1024 * 1024

# Width used for the cached display name of a tracked process
DISPLAY_NAME_LENGTH = 59


@dataclass(frozen=True)
class ProcessSample:
    """One point-in-time CPU/memory reading for a process."""

    pid: int
    cpu_percent: float
    memory_bytes: int
    timestamp_ms: int

    @property
    def memory_mb(self) -> float:
        return self.memory_bytes / BYTES_PER_MB


@dataclass(frozen=True)
class ProcessIdentity:
    """Who a process is, computed once when it is first seen."""

    pid: int
    raw_command_line: str | None
    display_name: str
    resolved_script_path: str | None = None

    @classmethod
    def from_command(
        cls,
        pid: int,
        command_line: str | None,
        process_name: str,
        max_length: int = DISPLAY_NAME_LENGTH,
    ) -> ProcessIdentity:
        """Resolve identity from a raw command line, falling back to the process name."""
        script = extract_script_path(command_line)
        display = format_script_name(script, max_length) if script else process_name
        return cls(
            pid=pid,
            raw_command_line=command_line,
            display_name=display,
            resolved_script_path=script,
        )


def average(values: Iterable[float]) -> float:
    """Arithmetic mean of the retained values (0.0 when empty).

    Once a window has evicted entries the evicted values no longer count.
    """
    items = list(values)
    if not items:
        return 0.0
    return sum(items) / len(items)


@dataclass(frozen=True)
class RecordView:
    """Immutable view of a HistoryRecord for presentation and export."""

    identity: ProcessIdentity
    sample_count: int
    cpu_window: tuple[float, ...]
    memory_window: tuple[float, ...]
    peak_cpu: float
    peak_memory_mb: float

    @property
    def pid(self) -> int:
        return self.identity.pid

    @property
    def avg_cpu(self) -> float:
        return average(self.cpu_window)

    @property
    def avg_memory_mb(self) -> float:
        return average(self.memory_window)


@dataclass
class HistoryRecord:
    """Rolling history for one tracked process."""

    identity: ProcessIdentity
    window_size: int = DEFAULT_WINDOW_SIZE
    sample_count: int = 0
    peak_cpu: float = 0.0
    peak_memory_mb: float = 0.0
    cpu_window: RingBuffer = field(init=False)
    memory_window: RingBuffer = field(init=False)

    def __post_init__(self) -> None:
        self.cpu_window = RingBuffer(self.window_size)
        self.memory_window = RingBuffer(self.window_size)

    @property
    def pid(self) -> int:
        return self.identity.pid

    def add(self, sample: ProcessSample) -> None:
        """Append one sample to both windows and update peaks."""
        memory_mb = sample.memory_mb
        self.sample_count += 1
        # Both windows get exactly one entry per sample so they evict in lockstep
        self.cpu_window.push(sample.cpu_percent)
        self.memory_window.push(memory_mb)
        self.peak_cpu = max(self.peak_cpu, sample.cpu_percent)
        self.peak_memory_mb = max(self.peak_memory_mb, memory_mb)

    @property
    def avg_cpu(self) -> float:
        return average(self.cpu_window.values)

    @property
    def avg_memory_mb(self) -> float:
        return average(self.memory_window.values)

    def view(self) -> RecordView:
        return RecordView(
            identity=self.identity,
            sample_count=self.sample_count,
            cpu_window=self.cpu_window.freeze(),
            memory_window=self.memory_window.freeze(),
            peak_cpu=self.peak_cpu,
            peak_memory_mb=self.peak_memory_mb,
        )


IdentitySource = ProcessIdentity | Callable[[], ProcessIdentity]


class HistoryStore:
    """Per-process rolling history for one monitoring session.

    Records are created on first sighting and never removed, so a process
    that exits keeps its record for the final summary.
    """

    def __init__(self, window_size: int = DEFAULT_WINDOW_SIZE) -> None:
        self.window_size = window_size
        self._records: dict[int, HistoryRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, pid: object) -> bool:
        return pid in self._records

    def get(self, pid: int) -> HistoryRecord | None:
        return self._records.get(pid)

    def record(self, pid: int, identity: IdentitySource, sample: ProcessSample) -> HistoryRecord:
        """Add a sample for pid, creating its record on first sighting.

        Args:
            pid: Process ID the sample belongs to
            identity: The process identity, or a zero-argument callable producing
                it. A callable is only invoked when the record is created, so
                identity resolution happens once per tracked process.
            sample: The reading to append

        Returns:
            The updated record.
        """
        rec = self._records.get(pid)
        if rec is None:
            resolved = identity() if callable(identity) else identity
            rec = HistoryRecord(identity=resolved, window_size=self.window_size)
            self._records[pid] = rec
        rec.add(sample)
        return rec

    def display_names(self) -> dict[int, str]:
        """Map of pid to cached display name for every record."""
        return {pid: rec.identity.display_name for pid, rec in self._records.items()}

    def identities(self) -> dict[int, ProcessIdentity]:
        """Map of pid to cached identity for every record."""
        return {pid: rec.identity for pid, rec in self._records.items()}

    def snapshot(self) -> tuple[RecordView, ...]:
        """Immutable views of all records in first-seen order."""
        return tuple(rec.view() for rec in self._records.values())


@dataclass
class TraceHistory:
    """Unbounded history for single-process trace mode.

    Unlike HistoryRecord nothing is evicted: trace mode keeps every sample
    for the final graphs and the CSV export.
    """

    pid: int
    name: str
    cmd: str | None
    start_time_ms: int
    timestamps: list[int] = field(default_factory=list)
    cpu_history: list[float] = field(default_factory=list)
    memory_history: list[float] = field(default_factory=list)
    peak_cpu: float = 0.0
    peak_memory_mb: float = 0.0

    def __len__(self) -> int:
        return len(self.timestamps)

    def add(self, sample: ProcessSample) -> None:
        memory_mb = sample.memory_mb
        self.timestamps.append(sample.timestamp_ms)
        self.cpu_history.append(sample.cpu_percent)
        self.memory_history.append(memory_mb)
        self.peak_cpu = max(self.peak_cpu, sample.cpu_percent)
        self.peak_memory_mb = max(self.peak_memory_mb, memory_mb)

    @property
    def avg_cpu(self) -> float:
        return average(self.cpu_history)

    @property
    def avg_memory_mb(self) -> float:
        return average(self.memory_history)

    @property
    def duration_ms(self) -> int:
        """Time from trace start to the last sample."""
        if not self.timestamps:
            return 0
        return self.timestamps[-1] - self.start_time_ms
