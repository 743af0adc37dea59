# src/procmon/collector.py
"""Process listing and CPU/memory sampling via psutil.

This is the adapter between the OS and the history core:
- list_processes(): pid, parent pid, name and command line for every visible process
- PsutilSampleProvider: instantaneous CPU/memory readings for a set of PIDs
- CommandLineResolver: cached command lines for entries the lister left blank

Processes that exit or deny access between listing and sampling are
silently skipped; callers treat a missing PID as "skip this tick".
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

import psutil
import structlog

from procmon.history import BYTES_PER_MB

log = structlog.get_logger()

COMMAND_LINE_CACHE_TTL = 5.0  # seconds

PROCESS_PRESETS: dict[str, list[str]] = {
    "python": ["python", "python.exe", "python3", "python3.exe", "pythonw", "pythonw.exe"],
    "node": ["node", "node.exe", "nodejs", "nodejs.exe"],
    "java": ["java", "java.exe", "javaw", "javaw.exe"],
    "go": ["go", "go.exe"],
    "rust": ["rustc", "rustc.exe", "cargo", "cargo.exe"],
    "ruby": ["ruby", "ruby.exe", "rubyw", "rubyw.exe"],
    "php": ["php", "php.exe", "php-cgi", "php-cgi.exe"],
    "bun": ["bun", "bun.exe"],
    "deno": ["deno", "deno.exe"],
    # Docker matches every process; PIDs are narrowed to container PIDs later
    "docker": [],
}

_SKIPPED = (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess)


class SampleProviderError(RuntimeError):
    """The whole sampling call failed (permissions, missing platform support)."""


@dataclass(frozen=True)
class ProcessEntry:
    """One row of the OS process table."""

    pid: int
    ppid: int | None
    name: str
    cmd: str | None = None


@dataclass(frozen=True)
class ProcessStats:
    """Instantaneous utilization reading for one process."""

    pid: int
    cpu_percent: float
    memory_bytes: int
    elapsed_ms: int
    timestamp_ms: int


@dataclass(frozen=True)
class ProcessInfo:
    """A filtered process with its reading for the current tick."""

    pid: int
    ppid: int | None
    name: str
    cmd: str | None
    cpu: float
    memory_bytes: int
    timestamp_ms: int

    @property
    def memory_mb(self) -> float:
        return self.memory_bytes / BYTES_PER_MB


class SampleProvider(Protocol):
    """Anything that can turn a set of PIDs into utilization readings."""

    def get_stats(self, pids: Iterable[int]) -> dict[int, ProcessStats]: ...


def now_ms() -> int:
    """Wall clock in integer milliseconds."""
    return int(time.time() * 1000)


def join_command_line(args: Sequence[str]) -> str | None:
    """Join argv into one string, double-quoting arguments that contain spaces."""
    if not args:
        return None
    return " ".join(f'"{arg}"' if " " in arg and '"' not in arg else arg for arg in args)


def list_processes() -> list[ProcessEntry]:
    """List every visible process.

    Command lines that cannot be read (access denied) are left as None.
    """
    entries: list[ProcessEntry] = []
    for proc in psutil.process_iter(attrs=["pid", "ppid", "name", "cmdline"]):
        try:
            info = proc.info
            entries.append(
                ProcessEntry(
                    pid=info["pid"],
                    ppid=info.get("ppid"),
                    name=info.get("name") or "",
                    cmd=join_command_line(info.get("cmdline") or []),
                )
            )
        except _SKIPPED:
            continue
    return entries


def find_process(pid: int) -> ProcessEntry | None:
    """Look up a single process, or None if it does not exist or is inaccessible."""
    try:
        proc = psutil.Process(pid)
        with proc.oneshot():
            name = proc.name()
            ppid = proc.ppid()
            try:
                cmd = join_command_line(proc.cmdline())
            except psutil.AccessDenied:
                cmd = None
    except _SKIPPED:
        return None
    return ProcessEntry(pid=pid, ppid=ppid, name=name, cmd=cmd)


def _read_all_command_lines() -> dict[int, str]:
    result: dict[int, str] = {}
    for proc in psutil.process_iter(attrs=["pid", "cmdline"]):
        try:
            cmd = join_command_line(proc.info.get("cmdline") or [])
        except _SKIPPED:
            continue
        if cmd:
            result[proc.info["pid"]] = cmd
    return result


class CommandLineResolver:
    """Command lines by PID, re-read from the OS at most once per TTL.

    A failed refresh keeps serving the previous cache.
    """

    def __init__(
        self,
        ttl: float = COMMAND_LINE_CACHE_TTL,
        fetch: Callable[[], dict[int, str]] = _read_all_command_lines,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._fetch = fetch
        self._clock = clock
        self._cache: dict[int, str] = {}
        self._fetched_at: float | None = None

    def command_lines(self) -> dict[int, str]:
        now = self._clock()
        fresh = self._fetched_at is not None and now - self._fetched_at < self.ttl
        if fresh and self._cache:
            return self._cache
        try:
            self._cache = self._fetch()
            self._fetched_at = now
        except Exception as e:
            log.warning("command_line_refresh_failed", error=str(e))
        return self._cache

    def get(self, pid: int) -> str | None:
        return self.command_lines().get(pid)


class PsutilSampleProvider:
    """Sample provider backed by psutil.

    psutil measures CPU between two calls on the same Process object, so
    handles are kept across ticks. The first reading of a new PID is 0.0.
    """

    def __init__(self) -> None:
        self._handles: dict[int, psutil.Process] = {}

    def get_stats(self, pids: Iterable[int]) -> dict[int, ProcessStats]:
        wanted = set(pids)
        stats: dict[int, ProcessStats] = {}
        timestamp = now_ms()

        # Forget processes no longer asked for so a reused PID starts fresh
        for stale in set(self._handles) - wanted:
            del self._handles[stale]

        for pid in wanted:
            try:
                proc = self._handles.get(pid)
                if proc is None:
                    proc = psutil.Process(pid)
                    self._handles[pid] = proc
                with proc.oneshot():
                    cpu = proc.cpu_percent(interval=None)
                    rss = proc.memory_info().rss
                    created = proc.create_time()
            except _SKIPPED:
                self._handles.pop(pid, None)
                continue
            except OSError as e:
                raise SampleProviderError(f"Failed to sample PID {pid}: {e}") from e

            stats[pid] = ProcessStats(
                pid=pid,
                cpu_percent=max(0.0, cpu or 0.0),
                memory_bytes=max(0, rss),
                elapsed_ms=max(0, timestamp - int(created * 1000)),
                timestamp_ms=timestamp,
            )
        return stats


def get_process_names(process_type: str) -> list[str]:
    """Executable names for a process type preset, or the type itself."""
    key = process_type.lower()
    if key in PROCESS_PRESETS:
        return list(PROCESS_PRESETS[key])
    return [key, f"{key}.exe"]


def matches_process_names(name: str, process_names: Sequence[str]) -> bool:
    """Case-insensitive equality or prefix match. An empty list matches everything."""
    if not process_names:
        return True
    lower = name.lower()
    return any(lower == n.lower() or lower.startswith(n.lower()) for n in process_names)


def matches_filter(cmd: str | None, filter_pattern: str | None) -> bool:
    """Case-insensitive substring match on the command line.

    Processes whose command line is unknown are not excluded.
    """
    if not filter_pattern or not cmd:
        return True
    return filter_pattern.lower() in cmd.lower()


def filter_processes(
    entries: Iterable[ProcessEntry],
    process_names: Sequence[str],
    filter_pattern: str | None = None,
    resolver: CommandLineResolver | None = None,
) -> list[ProcessEntry]:
    """Select entries matching the process names and the command filter.

    When a resolver is given, entries without a command line get one from it
    before the filter is applied.
    """
    selected = [e for e in entries if matches_process_names(e.name, process_names)]

    if resolver is not None and any(e.cmd is None for e in selected):
        cmd_lines = resolver.command_lines()
        selected = [
            e if e.cmd is not None else ProcessEntry(e.pid, e.ppid, e.name, cmd_lines.get(e.pid))
            for e in selected
        ]

    return [e for e in selected if matches_filter(e.cmd, filter_pattern)]


def merge_stats(
    entries: Iterable[ProcessEntry],
    stats: dict[int, ProcessStats],
) -> list[ProcessInfo]:
    """Pair entries with their readings, dropping entries without one."""
    processes: list[ProcessInfo] = []
    for entry in entries:
        stat = stats.get(entry.pid)
        if stat is None:
            continue
        processes.append(
            ProcessInfo(
                pid=entry.pid,
                ppid=entry.ppid,
                name=entry.name,
                cmd=entry.cmd,
                cpu=stat.cpu_percent,
                memory_bytes=stat.memory_bytes,
                timestamp_ms=stat.timestamp_ms,
            )
        )
    return processes
