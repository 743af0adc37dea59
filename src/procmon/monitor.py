"""Poll loops for watch mode and trace mode.

Each tick: list processes, filter, sample, update history, check alerts,
build the tree when requested, publish a snapshot for the dashboard and
redraw the terminal view. All cross-tick state lives in a MonitorSession
owned by the Monitor.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import TypeVar

import psutil
import structlog
from rich.console import Console
from rich.live import Live

from procmon import display
from procmon import logging as console_log
from procmon.alerts import AlertConfig, AlertEngine, AlertEvent
from procmon.collector import (
    CommandLineResolver,
    ProcessEntry,
    ProcessInfo,
    PsutilSampleProvider,
    SampleProvider,
    SampleProviderError,
    filter_processes,
    get_process_names,
    list_processes,
    merge_stats,
    now_ms,
)
from procmon.config import Config
from procmon.docker import DockerInspector, format_container_name
from procmon.export import export_to_json, export_trace_to_csv
from procmon.formatting import format_duration
from procmon.history import (
    HistoryStore,
    ProcessIdentity,
    ProcessSample,
    RecordView,
    TraceHistory,
)
from procmon.tree import TreeNode, build_tree

log = structlog.get_logger()

T = TypeVar("T")

# Failures that skip one tick instead of ending the session
_TICK_ERRORS = (SampleProviderError, psutil.Error, OSError)


@dataclass
class MonitorOptions:
    """What to watch and which extras to run for one watch session."""

    process_type: str
    filter_pattern: str | None = None
    interval_ms: int = 2000
    export_on_exit: bool = False
    web_port: int | None = None
    tree_view: bool = False
    alerts: AlertConfig = field(default_factory=AlertConfig)
    docker_only: bool = False


@dataclass
class TraceOptions:
    """Target and cadence for one trace session."""

    pid: int
    interval_ms: int = 2000
    export_on_exit: bool = False


@dataclass(frozen=True)
class MonitorSnapshot:
    """Immutable view of the session after one tick."""

    timestamp_ms: int
    process_type: str
    filter_pattern: str | None
    start_time_ms: int
    processes: tuple[ProcessInfo, ...] = ()
    records: tuple[RecordView, ...] = ()
    alerts: tuple[AlertEvent, ...] = ()

    @property
    def uptime_ms(self) -> int:
        return max(0, self.timestamp_ms - self.start_time_ms)

    def display_name(self, pid: int, fallback: str) -> str:
        for rec in self.records:
            if rec.pid == pid:
                return rec.identity.display_name
        return fallback


class SnapshotPublisher:
    """Single-writer handoff of the latest snapshot to concurrent readers.

    The loop replaces the snapshot in one assignment; readers never see a
    half-updated view.
    """

    def __init__(self, initial: MonitorSnapshot | None = None) -> None:
        self._current = initial

    @property
    def current(self) -> MonitorSnapshot | None:
        return self._current

    def publish(self, snapshot: MonitorSnapshot) -> None:
        self._current = snapshot


def _identity(proc: ProcessInfo, labels: Mapping[int, str]) -> ProcessIdentity:
    label = labels.get(proc.pid)
    if label is not None:
        return ProcessIdentity(pid=proc.pid, raw_command_line=proc.cmd, display_name=label)
    return ProcessIdentity.from_command(proc.pid, proc.cmd, proc.name)


class MonitorSession:
    """History and alert state for one watch session."""

    def __init__(
        self,
        window_size: int = 100,
        cooldown_ms: int = 30_000,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.clock = clock
        self.history = HistoryStore(window_size)
        self.alerts = AlertEngine(cooldown_ms=cooldown_ms, clock=clock)
        self.start_time_ms = clock()

    def ingest(
        self,
        processes: list[ProcessInfo],
        labels: Mapping[int, str] | None = None,
    ) -> None:
        """Append this tick's readings to each process's history.

        Args:
            processes: This tick's readings
            labels: Display names that replace script detection for a pid
                (container names in docker mode)
        """
        labels = labels or {}
        for proc in processes:
            sample = ProcessSample(
                pid=proc.pid,
                cpu_percent=proc.cpu,
                memory_bytes=proc.memory_bytes,
                timestamp_ms=proc.timestamp_ms,
            )
            self.history.record(proc.pid, lambda p=proc: _identity(p, labels), sample)

    @property
    def elapsed_ms(self) -> int:
        return max(0, self.clock() - self.start_time_ms)


@dataclass(frozen=True)
class TickResult:
    """Outcome of one poll tick."""

    processes: list[ProcessInfo]
    alerts: list[AlertEvent]
    tree: list[TreeNode] | None
    snapshot: MonitorSnapshot


def _install_signal_handlers(handler: Callable[[signal.Signals], None]) -> list[signal.Signals]:
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, lambda s=sig: handler(s))
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops and non-main threads cannot install handlers
            pass
    return installed


def _remove_signal_handlers(installed: list[signal.Signals]) -> None:
    loop = asyncio.get_running_loop()
    for sig in installed:
        loop.remove_signal_handler(sig)


class TickAbandoned(Exception):
    """Shutdown was requested while a tick was still in flight."""


async def _unless_shutdown(coro: Awaitable[T], shutdown_event: asyncio.Event) -> T:
    """Await coro, cancelling it as soon as shutdown_event is set.

    A blocking call already handed to a worker thread runs to completion in
    the background, but its result is discarded.

    Raises:
        TickAbandoned: If shutdown was requested first.
    """
    task = asyncio.ensure_future(coro)
    waiter = asyncio.ensure_future(shutdown_event.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        abandoned = not task.done()
        if abandoned:
            task.cancel()
    if abandoned:
        raise TickAbandoned
    return task.result()


class Monitor:
    """Watch-mode poll loop."""

    def __init__(
        self,
        options: MonitorOptions,
        config: Config | None = None,
        provider: SampleProvider | None = None,
        lister: Callable[[], list[ProcessEntry]] = list_processes,
        resolver: CommandLineResolver | None = None,
        docker: DockerInspector | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.options = options
        self.config = config or Config()
        self.provider = provider or PsutilSampleProvider()
        self._lister = lister
        self._resolver = resolver or CommandLineResolver()
        self._docker = docker or (DockerInspector() if options.docker_only else None)
        self._clock = clock
        self._process_names = get_process_names(options.process_type)

        self.session = MonitorSession(
            window_size=self.config.history.window_size,
            cooldown_ms=self.config.alerts.cooldown_ms,
            clock=clock,
        )
        self.publisher = SnapshotPublisher(self._snapshot([]))
        self._shutdown_event = asyncio.Event()
        self._web = None

    def _snapshot(self, processes: list[ProcessInfo]) -> MonitorSnapshot:
        return MonitorSnapshot(
            timestamp_ms=self._clock(),
            process_type=self.options.process_type,
            filter_pattern=self.options.filter_pattern,
            start_time_ms=self.session.start_time_ms,
            processes=tuple(processes),
            records=self.session.history.snapshot(),
            alerts=self.session.alerts.history,
        )

    def request_stop(self) -> None:
        """Stop after the current tick; no new tick starts."""
        self._shutdown_event.set()

    def _handle_signal(self, sig: signal.Signals) -> None:
        log.info("signal_received", signal=sig.name)
        console_log.signal_received(sig.name)
        self._shutdown_event.set()

    async def tick(self) -> TickResult:
        """Run one poll tick.

        Raises:
            SampleProviderError: If listing or sampling failed as a whole.
        """
        entries = await asyncio.to_thread(self._lister)
        selected = filter_processes(
            entries, self._process_names, self.options.filter_pattern, self._resolver
        )

        labels: dict[int, str] = {}
        if self._docker is not None:
            containers = await asyncio.to_thread(self._docker.get_containers)
            labels = {c.pid: format_container_name(c) for c in containers}
            selected = [e for e in selected if e.pid in labels]

        stats = await asyncio.to_thread(self.provider.get_stats, [e.pid for e in selected])
        processes = merge_stats(selected, stats)

        self.session.ingest(processes, labels)
        fired = self.session.alerts.check(
            processes,
            self.options.alerts,
            self.session.history.display_names(),
            now_ms=self._clock(),
        )

        roots = None
        if self.options.tree_view:
            roots = build_tree(
                processes,
                {e.pid: e.ppid for e in entries},
                self.session.history.identities(),
            )

        snapshot = self._snapshot(processes)
        self.publisher.publish(snapshot)
        return TickResult(processes=processes, alerts=fired, tree=roots, snapshot=snapshot)

    async def _start_web(self) -> None:
        from procmon.web import DashboardServer

        web = self.config.web
        self._web = DashboardServer(
            self.publisher,
            host=web.host,
            port=self.options.web_port,
            refresh_seconds=web.refresh_seconds,
        )
        try:
            await self._web.start()
        except OSError as e:
            # Monitoring continues without the dashboard
            log.error("dashboard_start_failed", port=self.options.web_port, error=str(e))
            console_log.error(f"Web UI failed to start: {e}")
            self._web = None
            return
        console_log.dashboard_listening(self._web.url)

    async def _stop_web(self) -> None:
        if self._web is not None:
            await self._web.stop()
            self._web = None
            console_log.dashboard_stopped()

    def _announce(self) -> None:
        alerts = self.options.alerts
        if alerts.cpu_threshold is not None:
            console_log.alert_threshold("CPU", f"{alerts.cpu_threshold:g}%")
        if alerts.memory_threshold_mb is not None:
            console_log.alert_threshold("Memory", f"{alerts.memory_threshold_mb:g} MB")

    async def run(self) -> MonitorSession:
        """Poll until SIGINT/SIGTERM or request_stop(), then print the summaries.

        Returns:
            The finished session.
        """
        log.info(
            "monitor_started",
            process_type=self.options.process_type,
            filter=self.options.filter_pattern,
            interval_ms=self.options.interval_ms,
        )
        self._announce()
        if self.options.web_port is not None:
            await self._start_web()

        installed = _install_signal_handlers(self._handle_signal)
        console = console_log.get_console()
        interval = self.options.interval_ms / 1000
        loop = asyncio.get_running_loop()

        try:
            with Live(console=console, auto_refresh=False) as live:
                while not self._shutdown_event.is_set():
                    iteration_start = loop.time()
                    try:
                        result = await _unless_shutdown(self.tick(), self._shutdown_event)
                    except TickAbandoned:
                        log.info("tick_abandoned")
                        break
                    except _TICK_ERRORS as e:
                        log.warning("sample_failed", error=str(e))
                        console_log.sample_failed(str(e))
                    else:
                        self._report_alerts(result.alerts)
                        view = display.render_monitor(
                            result.snapshot, result.tree, self.config.display
                        )
                        live.update(view, refresh=True)

                    elapsed = loop.time() - iteration_start
                    sleep_time = max(0.0, interval - elapsed)
                    try:
                        await asyncio.wait_for(self._shutdown_event.wait(), timeout=sleep_time)
                    except asyncio.TimeoutError:
                        pass
        finally:
            _remove_signal_handlers(installed)

        self._finish(console)
        await self._stop_web()
        log.info(
            "monitor_stopped",
            processes=len(self.session.history),
            alerts=len(self.session.alerts),
        )
        return self.session

    def _report_alerts(self, alerts: list[AlertEvent]) -> None:
        for alert in alerts:
            console_log.alert_fired(alert)
        if alerts and self.config.alerts.bell:
            console_log.bell()

    def _finish(self, console: Console) -> None:
        records = self.session.history.snapshot()
        console.print(display.render_summary(records))
        if self.options.alerts.enabled:
            console.print(
                display.render_alert_summary(
                    self.session.alerts.summarize(), len(self.session.alerts)
                )
            )
        console_log.monitor_stopped(format_duration(self.session.elapsed_ms))

        if self.options.export_on_exit:
            path = export_to_json(
                records,
                self.options.process_type,
                self.options.filter_pattern,
                self.session.start_time_ms,
                self.config.export_dir,
            )
            if path is None:
                console_log.export_failed("could not write export file")
            else:
                console_log.export_written(str(path))


class Tracer:
    """Trace-mode poll loop for a single PID with unbounded history."""

    def __init__(
        self,
        options: TraceOptions,
        target: ProcessEntry,
        config: Config | None = None,
        provider: SampleProvider | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.options = options
        self.config = config or Config()
        self.provider = provider or PsutilSampleProvider()
        self._clock = clock
        self.trace = TraceHistory(
            pid=target.pid,
            name=target.name,
            cmd=target.cmd,
            start_time_ms=clock(),
        )
        self.exited = False
        self._shutdown_event = asyncio.Event()

    def request_stop(self) -> None:
        self._shutdown_event.set()

    def _handle_signal(self, sig: signal.Signals) -> None:
        log.info("signal_received", signal=sig.name)
        console_log.signal_received(sig.name)
        self._shutdown_event.set()

    async def tick(self) -> bool:
        """Take one sample. Returns False once the process has exited."""
        pid = self.options.pid
        stats = await asyncio.to_thread(self.provider.get_stats, [pid])
        stat = stats.get(pid)
        if stat is None:
            self.exited = True
            return False
        self.trace.add(
            ProcessSample(
                pid=pid,
                cpu_percent=stat.cpu_percent,
                memory_bytes=stat.memory_bytes,
                timestamp_ms=stat.timestamp_ms,
            )
        )
        return True

    async def run(self) -> TraceHistory:
        """Sample until the process exits or a signal arrives, then print graphs."""
        log.info("trace_started", pid=self.options.pid, interval_ms=self.options.interval_ms)
        installed = _install_signal_handlers(self._handle_signal)
        console = console_log.get_console()
        interval = self.options.interval_ms / 1000
        loop = asyncio.get_running_loop()

        try:
            with Live(console=console, auto_refresh=False) as live:
                while not self._shutdown_event.is_set():
                    iteration_start = loop.time()
                    try:
                        alive = await _unless_shutdown(self.tick(), self._shutdown_event)
                    except TickAbandoned:
                        log.info("tick_abandoned", pid=self.options.pid)
                        break
                    except _TICK_ERRORS as e:
                        log.warning("sample_failed", error=str(e))
                        console_log.sample_failed(str(e))
                        alive = True
                    if not alive:
                        break
                    live.update(
                        display.render_trace_view(
                            self.trace,
                            self.options.interval_ms,
                            self._clock(),
                            self.config.display,
                        ),
                        refresh=True,
                    )

                    elapsed = loop.time() - iteration_start
                    sleep_time = max(0.0, interval - elapsed)
                    try:
                        await asyncio.wait_for(self._shutdown_event.wait(), timeout=sleep_time)
                    except asyncio.TimeoutError:
                        pass
        finally:
            _remove_signal_handlers(installed)

        if self.exited:
            console_log.process_exited(self.options.pid)
        console.print(display.render_trace_summary(self.trace, self.config.display))
        console_log.trace_stopped(self.options.pid, format_duration(self.trace.duration_ms))

        if self.options.export_on_exit:
            path = export_trace_to_csv(self.trace, self.config.export_dir)
            if path is None:
                console_log.export_failed("could not write trace file")
            else:
                console_log.export_written(str(path))

        log.info("trace_stopped", pid=self.options.pid, samples=len(self.trace))
        return self.trace
