# src/procmon/alerts.py
"""Threshold alerts with per-process, per-kind cooldown.

A process above a threshold alerts once, then stays quiet for that kind
until the cooldown has elapsed. CPU and memory cooldowns are independent.
Every fired alert is appended to the session's alert log.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum

import structlog

from procmon.collector import ProcessInfo

log = structlog.get_logger()

ALERT_COOLDOWN_MS = 30_000


class AlertKind(str, Enum):
    """Resource an alert threshold applies to."""

    CPU = "cpu"
    MEMORY = "memory"


@dataclass(frozen=True)
class AlertConfig:
    """Thresholds for one session. A None threshold disables that kind."""

    cpu_threshold: float | None = None  # Percent
    memory_threshold_mb: float | None = None  # MB

    @property
    def enabled(self) -> bool:
        return self.cpu_threshold is not None or self.memory_threshold_mb is not None

    def thresholds(self) -> list[tuple[AlertKind, float]]:
        """Configured (kind, threshold) pairs, CPU first."""
        pairs: list[tuple[AlertKind, float]] = []
        if self.cpu_threshold is not None:
            pairs.append((AlertKind.CPU, self.cpu_threshold))
        if self.memory_threshold_mb is not None:
            pairs.append((AlertKind.MEMORY, self.memory_threshold_mb))
        return pairs


@dataclass(frozen=True)
class AlertEvent:
    """A threshold crossing that fired."""

    timestamp_ms: int
    pid: int
    display_name: str
    kind: AlertKind
    observed_value: float
    threshold: float

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        return {
            "timestamp": self.timestamp_ms,
            "pid": self.pid,
            "name": self.display_name,
            "type": self.kind.value,
            "value": self.observed_value,
            "threshold": self.threshold,
        }


@dataclass(frozen=True)
class AlertSummary:
    """Alert counts for one process over the session."""

    pid: int
    display_name: str
    cpu_alerts: int
    memory_alerts: int

    @property
    def total(self) -> int:
        return self.cpu_alerts + self.memory_alerts


def _observed(proc: ProcessInfo, kind: AlertKind) -> float:
    if kind is AlertKind.CPU:
        return proc.cpu
    return proc.memory_mb


class AlertEngine:
    """Evaluates thresholds and owns the suppression state and alert log."""

    def __init__(
        self,
        cooldown_ms: int = ALERT_COOLDOWN_MS,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Initialize alert engine.

        Args:
            cooldown_ms: Minimum time between two alerts of the same kind for
                the same process
            clock: Returns current time in ms; defaults to the wall clock
        """
        self.cooldown_ms = cooldown_ms
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._last_fired: dict[tuple[int, AlertKind], int] = {}
        self._log: list[AlertEvent] = []

    @property
    def history(self) -> tuple[AlertEvent, ...]:
        """Every alert fired this session, oldest first."""
        return tuple(self._log)

    def __len__(self) -> int:
        return len(self._log)

    def check(
        self,
        processes: Iterable[ProcessInfo],
        config: AlertConfig,
        display_names: Mapping[int, str],
        now_ms: int | None = None,
    ) -> list[AlertEvent]:
        """Evaluate thresholds for this tick.

        Args:
            processes: Current readings
            config: Thresholds; kinds without a threshold are skipped
            display_names: Cached display names by pid (falls back to process name)
            now_ms: Evaluation time; defaults to the engine clock

        Returns:
            Alerts fired by this call only.
        """
        thresholds = config.thresholds()
        if not thresholds:
            return []

        now = self._clock() if now_ms is None else now_ms
        fired: list[AlertEvent] = []

        for proc in processes:
            for kind, threshold in thresholds:
                value = _observed(proc, kind)
                if not value > threshold:
                    continue

                key = (proc.pid, kind)
                last = self._last_fired.get(key)
                if last is not None and now - last <= self.cooldown_ms:
                    continue

                event = AlertEvent(
                    timestamp_ms=now,
                    pid=proc.pid,
                    display_name=display_names.get(proc.pid) or proc.name,
                    kind=kind,
                    observed_value=value,
                    threshold=threshold,
                )
                fired.append(event)
                self._log.append(event)
                self._last_fired[key] = now
                log.info(
                    "alert_fired",
                    pid=proc.pid,
                    kind=kind.value,
                    value=round(value, 2),
                    threshold=threshold,
                )

        return fired

    def summarize(self) -> list[AlertSummary]:
        """Alert counts grouped by process, in order of each process's first alert."""
        grouped: dict[int, list[AlertEvent]] = {}
        for event in self._log:
            grouped.setdefault(event.pid, []).append(event)

        return [
            AlertSummary(
                pid=pid,
                display_name=events[0].display_name,
                cpu_alerts=sum(1 for e in events if e.kind is AlertKind.CPU),
                memory_alerts=sum(1 for e in events if e.kind is AlertKind.MEMORY),
            )
            for pid, events in grouped.items()
        ]

    def clear(self) -> None:
        """Forget the alert log and all cooldowns."""
        self._log.clear()
        self._last_fired.clear()
