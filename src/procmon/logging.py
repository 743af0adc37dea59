"""Centralized console logging with Rich formatting.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Level-based styling
3. Core log functions (log, info, warn, error)
4. Domain-specific helpers (monitor_started, alert_fired, export_written, etc.)
5. Structlog configuration (configure)

Console output uses Rich markup for colors. JSON file output via structlog
remains separate (machine-parseable, no colors).
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from rich.console import Console
from rich.markup import escape

if TYPE_CHECKING:
    from procmon.alerts import AlertEvent
    from procmon.config import Config

# Rich console for colorful human-readable output
_console = Console(highlight=False)


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output.

    Use via autocomplete: Icon.<TAB> to see all available icons.
    """

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    WAIT = "⏳"
    SAVE = "💾"
    SIGNAL = "⚡"
    ALERT = "[bold white on red] ALERT [/]"
    WEB = "[green]⬤[/]"
    DOCKER = "🐳"


# ─────────────────────────────────────────────────────────────────────────────
# Level Styles
# ─────────────────────────────────────────────────────────────────────────────

_LEVEL_STYLES = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


def get_console() -> Console:
    """Shared Rich console used by logging and the terminal views."""
    return _console


def log(level: str, msg: str, icon: str = "") -> None:
    """Print a log message with timestamp and level.

    Args:
        level: Log level (info, warn, error)
        msg: Message to print (can include Rich markup)
        icon: Optional icon to show after level (e.g., Icon.OK)
    """
    ts = datetime.now().strftime("%H:%M:%S")
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    _console.print(f"[dim]{ts}[/] {lvl}{icon_part} {msg}")


def info(msg: str, icon: str = "") -> None:
    """Log an info message."""
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    """Log a warning message."""
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    """Log an error message."""
    log("error", msg, icon)


# ─────────────────────────────────────────────────────────────────────────────
# Domain Helpers
# ─────────────────────────────────────────────────────────────────────────────


def monitor_starting() -> None:
    """Log poll loop about to start."""
    info("[dim]Starting monitor...[/]", Icon.WAIT)


def monitor_stopped(duration: str) -> None:
    """Log monitoring session finished."""
    info(f"Monitored for [bold]{duration}[/]", Icon.OK)


def trace_started(pid: int, name: str) -> None:
    """Log trace mode started."""
    info(f"Tracing PID [cyan]{pid}[/]: {escape(name)}")
    info("[dim]Press Ctrl+C to stop and see full graphs[/]")


def trace_stopped(pid: int, duration: str) -> None:
    """Log trace mode finished."""
    info(f"Traced PID [cyan]{pid}[/] for [bold]{duration}[/]", Icon.OK)


def process_exited(pid: int) -> None:
    """Log traced process exited."""
    warn(f"Process [cyan]{pid}[/] has exited")


def signal_received(name: str) -> None:
    """Log signal received."""
    info(f"Received [bold]{name}[/]", Icon.SIGNAL)


def alert_threshold(kind: str, value: str) -> None:
    """Log a configured alert threshold."""
    warn(f"Alert: {kind} threshold set to [bold]{value}[/]")


def alert_fired(alert: AlertEvent) -> None:
    """Log a fired alert with its value and threshold."""
    if alert.kind.value == "cpu":
        label, value, threshold = "CPU", f"{alert.observed_value:.1f}%", f"{alert.threshold:g}%"
    else:
        label = "MEM"
        value = f"{alert.observed_value:.1f} MB"
        threshold = f"{alert.threshold:g} MB"
    _console.print(
        f"{Icon.ALERT} [dim]{datetime.fromtimestamp(alert.timestamp_ms / 1000):%H:%M:%S}[/] "
        f"[yellow]{label}[/] [white]{escape(alert.display_name)}[/] (PID {alert.pid}) "
        f"exceeded threshold: [red]{value}[/] > [dim]{threshold}[/]"
    )


def bell() -> None:
    """Ring the terminal bell."""
    _console.bell()


def export_written(path: str) -> None:
    """Log export file written."""
    info(f"Exported to [green]{escape(path)}[/]", Icon.SAVE)


def export_failed(error_msg: str) -> None:
    """Log export failure."""
    error(f"Failed to export: {escape(error_msg)}", Icon.FAIL)


def dashboard_listening(url: str) -> None:
    """Log web dashboard ready."""
    info(f"Web UI started at [cyan]{url}[/]", Icon.WEB)
    info(f"[dim]API endpoint: {url}/api/processes[/]")


def dashboard_stopped() -> None:
    """Log web dashboard stopped."""
    info("Web UI stopped")


def docker_status(count: int) -> None:
    """Log number of running containers."""
    if count == 0:
        warn("No running Docker containers found", Icon.DOCKER)
    else:
        info(f"Found [cyan]{count}[/] running container(s)", Icon.DOCKER)


def docker_unavailable() -> None:
    """Log Docker not available."""
    error("Docker is not available or not running", Icon.FAIL)


def sample_failed(error_msg: str) -> None:
    """Log sample collection failed (non-fatal, retried next tick)."""
    warn(f"Sample failed: {escape(error_msg)}")


def config_created(path: str) -> None:
    """Log config file created."""
    info(f"Created config at [cyan]{path}[/]")


# ─────────────────────────────────────────────────────────────────────────────
# Structlog Configuration
# ─────────────────────────────────────────────────────────────────────────────


def _add_source(source: str) -> structlog.types.Processor:
    """Create a processor that adds a source field to log events."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["source"] = source
        return event_dict

    return processor


def configure(config: Config, source: str = "monitor") -> None:
    """Configure structlog to write JSON Lines to the rotating session log.

    Console output is handled by Rich (see log functions above); structlog
    only writes to the JSON file for machine parsing.

    Args:
        config: Application config with paths and rotation settings
        source: Value of the "source" field on every record
    """
    config.state_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        config.log_path,
        maxBytes=config.system.log_max_bytes,
        backupCount=config.system.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.INFO)

    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(logging.INFO)
    stdlib_root.handlers.clear()

    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                structlog.processors.add_log_level,
                _add_source(source),
                structlog.processors.format_exc_info,
            ],
        )
    )
    stdlib_root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            _add_source(source),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
