"""JSON session export and CSV trace export."""

from __future__ import annotations

import csv
import json
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

import structlog

from procmon.formatting import format_iso_utc, round2
from procmon.history import RecordView, TraceHistory

log = structlog.get_logger()


def _file_stamp(now: datetime) -> str:
    """UTC timestamp safe for filenames, e.g. 2026-01-31T14-05-09."""
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")


def build_export_data(
    records: Iterable[RecordView],
    process_type: str,
    filter_pattern: str | None,
    start_time_ms: int,
    now: datetime | None = None,
) -> dict:
    """Build the JSON export document for a monitoring session.

    Averages cover the retained window; all floats are rounded to 2 decimals.
    """
    now = now or datetime.now(timezone.utc)
    now_ms = int(now.timestamp() * 1000)

    processes = [
        {
            "pid": rec.pid,
            "name": rec.identity.display_name,
            "cmd": rec.identity.raw_command_line,
            "samples": rec.sample_count,
            "avgCPU": round2(rec.avg_cpu),
            "peakCPU": round2(rec.peak_cpu),
            "avgMemoryMB": round2(rec.avg_memory_mb),
            "peakMemoryMB": round2(rec.peak_memory_mb),
            "cpuHistory": [round2(v) for v in rec.cpu_window],
            "memoryHistory": [round2(v) for v in rec.memory_window],
        }
        for rec in records
    ]

    return {
        "timestamp": format_iso_utc(now),
        "processType": process_type,
        "filterPattern": filter_pattern,
        "duration": max(0, now_ms - start_time_ms),
        "processes": processes,
    }


def export_to_json(
    records: Iterable[RecordView],
    process_type: str,
    filter_pattern: str | None,
    start_time_ms: int,
    directory: Path | None = None,
    now: datetime | None = None,
) -> Path | None:
    """Write the session export to procmon-<stamp>.json.

    Returns:
        The written path, or None if the file could not be written.
    """
    now = now or datetime.now(timezone.utc)
    data = build_export_data(records, process_type, filter_pattern, start_time_ms, now)
    path = (directory or Path.cwd()) / f"procmon-{_file_stamp(now)}.json"

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2))
    except OSError as e:
        log.error("export_failed", path=str(path), error=str(e))
        return None

    log.info("export_written", path=str(path), processes=len(data["processes"]))
    return path


def export_trace_to_csv(
    trace: TraceHistory,
    directory: Path | None = None,
    now: datetime | None = None,
) -> Path | None:
    """Write every trace sample to trace-<pid>-<stamp>.csv.

    Returns:
        The written path, or None if the file could not be written.
    """
    now = now or datetime.now(timezone.utc)
    path = (directory or Path.cwd()) / f"trace-{trace.pid}-{_file_stamp(now)}.csv"

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="") as f:
            writer = csv.writer(f, lineterminator="\n")
            writer.writerow(["timestamp", "elapsed_ms", "cpu_percent", "memory_mb"])
            for ts, cpu, mem in zip(trace.timestamps, trace.cpu_history, trace.memory_history):
                writer.writerow([ts, ts - trace.start_time_ms, f"{cpu:.2f}", f"{mem:.2f}"])
    except OSError as e:
        log.error("export_failed", path=str(path), error=str(e))
        return None

    log.info("export_written", path=str(path), samples=len(trace))
    return path
