"""Rich renderables for the terminal views.

Every function here is pure: it takes session data and returns something
``Console.print`` or ``Live.update`` can draw. Nothing writes to the
terminal directly.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from rich.console import Group, RenderableType
from rich.table import Table
from rich.text import Text

from procmon import charts
from procmon.alerts import AlertSummary
from procmon.config import DisplayConfig
from procmon.formatting import format_cpu, format_memory, format_memory_mb
from procmon.history import RecordView, TraceHistory, average
from procmon.identity import format_command, format_script_name
from procmon.tree import TreeNode, flatten_tree, is_last_sibling, tree_prefix

if TYPE_CHECKING:
    from procmon.monitor import MonitorSnapshot

BAR_WIDTH = 10
TRACE_BAR_WIDTH = 20


def _banner(title: str, style: str, tag: str | None = None) -> Text:
    text = Text(f" {title} ", style=style)
    if tag:
        text.append(f" [{tag}]", style="bright_black")
    return text


def _header(snapshot: MonitorSnapshot, title: str) -> list[RenderableType]:
    lines: list[RenderableType] = [Text(""), _banner(title, "black on cyan", snapshot.process_type)]
    if snapshot.filter_pattern:
        lines.append(Text(f'  Filter: "{snapshot.filter_pattern}"', style="bright_black"))
    lines.append(Text(""))
    return lines


def _waiting() -> list[RenderableType]:
    return [
        Text("  No matching processes found.", style="yellow"),
        Text("  Waiting for processes to start...", style="bright_black"),
    ]


def _footer(count: int) -> Text:
    return Text(f"  {count} process(es) | Press Ctrl+C to stop", style="bright_black")


def render_table(snapshot: MonitorSnapshot, cfg: DisplayConfig | None = None) -> RenderableType:
    """Flat process table with bars, trend arrows and per-row memory sparklines."""
    cfg = cfg or DisplayConfig()
    lines = _header(snapshot, "Process Monitor")
    if not snapshot.processes:
        return Group(*lines, *_waiting())

    records = {rec.pid: rec for rec in snapshot.records}
    max_memory = max([p.memory_mb for p in snapshot.processes] + [100.0])

    table = Table(box=None, padding=(0, 1), pad_edge=False, header_style="bold")
    table.add_column("PID", width=7)
    table.add_column("SCRIPT/PROCESS", width=cfg.name_width, no_wrap=True)
    table.add_column("CPU", width=9)
    table.add_column("CPU BAR", width=BAR_WIDTH + 2)
    table.add_column("MEMORY", width=11)
    table.add_column("MEM BAR", width=BAR_WIDTH + 2)
    table.add_column("TREND")

    for proc in snapshot.processes:
        rec = records.get(proc.pid)
        memory = rec.memory_window if rec else ()
        previous = memory[-2] if len(memory) > 1 else proc.memory_mb
        script = rec.identity.resolved_script_path if rec else None
        if script:
            name = format_script_name(script, cfg.name_width)
        else:
            name = (rec.identity.display_name if rec else proc.name)[: cfg.name_width]

        table.add_row(
            str(proc.pid),
            Text(name),
            Text(
                format_cpu(proc.cpu), style=charts.cpu_style(proc.cpu, cfg.cpu_warn, cfg.cpu_high)
            ),
            charts.colored_cpu_bar(proc.cpu, BAR_WIDTH, cfg.cpu_warn, cfg.cpu_high),
            Text(
                format_memory(proc.memory_bytes),
                style=charts.memory_style(proc.memory_mb, cfg.memory_warn_mb, cfg.memory_high_mb),
            ),
            charts.colored_memory_bar(
                proc.memory_mb, max_memory, BAR_WIDTH, cfg.memory_warn_mb, cfg.memory_high_mb
            ),
            charts.trend_indicator(proc.memory_mb, previous),
        )
        if len(memory) > 1:
            table.add_row("", charts.colored_sparkline(memory, cfg.sparkline_points))

    return Group(*lines, table, Text(""), _footer(len(snapshot.processes)))


def render_tree(
    snapshot: MonitorSnapshot,
    roots: Sequence[TreeNode],
    cfg: DisplayConfig | None = None,
) -> RenderableType:
    """Process forest, children indented under their parents."""
    cfg = cfg or DisplayConfig()
    lines = _header(snapshot, "Process Tree")
    if not roots:
        return Group(*lines, *_waiting())

    table = Table(box=None, padding=(0, 1), pad_edge=False, header_style="bold")
    table.add_column("PID", width=7)
    table.add_column("PROCESS TREE", width=cfg.name_width + 10, no_wrap=True)
    table.add_column("CPU", width=9)
    table.add_column("MEMORY", width=11)

    flat = flatten_tree(roots)
    for index, node in enumerate(flat):
        prefix = tree_prefix(node, is_last_sibling(flat, index))
        name = Text(prefix, style="bright_black")
        name.append(node.display_name)
        table.add_row(
            str(node.pid),
            name,
            Text(
                format_cpu(node.cpu_percent),
                style=charts.cpu_style(node.cpu_percent, cfg.cpu_warn, cfg.cpu_high),
            ),
            Text(
                format_memory_mb(node.memory_mb),
                style=charts.memory_style(node.memory_mb, cfg.memory_warn_mb, cfg.memory_high_mb),
            ),
        )

    footer = Text(
        f"  {len(flat)} process(es) in {len(roots)} tree(s) | Press Ctrl+C to stop",
        style="bright_black",
    )
    return Group(*lines, table, Text(""), footer)


def render_monitor(
    snapshot: MonitorSnapshot,
    roots: Sequence[TreeNode] | None = None,
    cfg: DisplayConfig | None = None,
) -> RenderableType:
    """Live watch view: the tree when one was built, the flat table otherwise."""
    if roots is not None:
        return render_tree(snapshot, roots, cfg)
    return render_table(snapshot, cfg)


def render_summary(records: Sequence[RecordView]) -> RenderableType:
    """End-of-session table of every process seen, including exited ones."""
    lines: list[RenderableType] = [
        Text(""),
        _banner("Session Summary", "black on magenta"),
        Text(""),
    ]
    if not records:
        return Group(*lines, Text("  No processes were monitored.", style="bright_black"))

    table = Table(box=None, padding=(0, 1), pad_edge=False, header_style="bold")
    table.add_column("PID")
    table.add_column("SCRIPT/PROCESS", no_wrap=True)
    for column in ("SAMPLES", "AVG CPU", "PEAK CPU", "AVG MEM", "PEAK MEM"):
        table.add_column(column)

    for rec in records:
        table.add_row(
            str(rec.pid),
            Text(rec.identity.display_name[:46]),
            str(rec.sample_count),
            format_cpu(rec.avg_cpu),
            format_cpu(rec.peak_cpu),
            format_memory_mb(rec.avg_memory_mb),
            format_memory_mb(rec.peak_memory_mb),
        )
    return Group(*lines, table, Text(""))


def render_alert_summary(summaries: Sequence[AlertSummary], total: int) -> RenderableType:
    """Alert counts per process for the session."""
    lines: list[RenderableType] = [Text(""), _banner("Alerts Summary", "white on red"), Text("")]
    if not summaries:
        return Group(*lines, Text("  No alerts triggered during this session.", style="green"))

    table = Table(box=None, padding=(0, 1), pad_edge=False, header_style="bold")
    table.add_column("PID", width=7)
    table.add_column("PROCESS", width=35, no_wrap=True)
    table.add_column("CPU ALERTS", width=11)
    table.add_column("MEM ALERTS", width=11)

    for summary in summaries:
        table.add_row(
            str(summary.pid),
            Text(summary.display_name[:34]),
            Text(str(summary.cpu_alerts), style="red" if summary.cpu_alerts else ""),
            Text(str(summary.memory_alerts), style="red" if summary.memory_alerts else ""),
        )
    return Group(*lines, table, Text(""), Text(f"  Total alerts: {total}", style="bright_black"))


def render_trace_view(
    trace: TraceHistory,
    interval_ms: int,
    now_ms: int,
    cfg: DisplayConfig | None = None,
) -> RenderableType:
    """Live trace view: current reading, running statistics, recent sparklines."""
    cfg = cfg or DisplayConfig()
    samples = len(trace)
    elapsed = (now_ms - trace.start_time_ms) / 1000 if samples else 0
    cpu = trace.cpu_history[-1] if samples else 0.0
    mem = trace.memory_history[-1] if samples else 0.0
    recent_cpu = trace.cpu_history[-cfg.trace_sparkline_points :]
    recent_mem = trace.memory_history[-cfg.trace_sparkline_points :]

    cpu_line = Text("    CPU:    ")
    cpu_line.append(f"{cpu:6.1f}%", style=charts.cpu_style(cpu, cfg.cpu_warn, cfg.cpu_high))
    cpu_line.append("  ")
    cpu_line.append(charts.colored_cpu_bar(cpu, TRACE_BAR_WIDTH, cfg.cpu_warn, cfg.cpu_high))

    mem_line = Text("    Memory: ")
    mem_line.append(
        f"{mem:.1f} MB".rjust(10),
        style=charts.memory_style(mem, cfg.memory_warn_mb, cfg.memory_high_mb),
    )
    mem_line.append("  ")
    mem_line.append(
        charts.colored_memory_bar(
            mem,
            max(trace.peak_memory_mb, 100),
            TRACE_BAR_WIDTH,
            cfg.memory_warn_mb,
            cfg.memory_high_mb,
        )
    )

    recent_header = Text("  Recent History", style="bold")
    recent_header.append(f" (last {len(recent_cpu)} samples)", style="bright_black")

    return Group(
        Text(""),
        _banner("PID Trace", "black on magenta", str(trace.pid)),
        Text(f"  {trace.name}", style="cyan"),
        Text(f"  {format_command(trace.cmd, 80)}", style="bright_black"),
        Text(""),
        Text("  Current", style="bold"),
        cpu_line,
        mem_line,
        Text(""),
        Text("  Statistics", style="bold"),
        Text(f"    Samples: {samples}  |  Elapsed: {elapsed:.0f}s  |  Interval: {interval_ms}ms"),
        Text(f"    CPU:     avg {trace.avg_cpu:.1f}%  |  peak {trace.peak_cpu:.1f}%"),
        Text(
            f"    Memory:  avg {trace.avg_memory_mb:.1f} MB  |  peak {trace.peak_memory_mb:.1f} MB"
        ),
        Text(""),
        recent_header,
        Text("    CPU:    ").append(
            charts.colored_sparkline(recent_cpu, cfg.trace_sparkline_points)
        ),
        Text("    Memory: ").append(
            charts.colored_sparkline(recent_mem, cfg.trace_sparkline_points)
        ),
        Text(""),
        Text("  Press Ctrl+C to stop and see full graphs", style="bright_black"),
    )


def render_trace_summary(trace: TraceHistory, cfg: DisplayConfig | None = None) -> RenderableType:
    """Final trace statistics followed by full-length CPU and memory graphs."""
    cfg = cfg or DisplayConfig()
    if not trace.cpu_history:
        return Text("  No data collected.", style="yellow")

    cpu = trace.cpu_history
    mem = trace.memory_history
    min_mem, max_mem = min(mem), max(mem)
    rule = Text("  " + "─" * (cfg.graph_width + 10), style="bright_black")

    lines: list[RenderableType] = [
        Text(""),
        _banner("Trace Summary", "black on magenta"),
        Text(""),
        Text(f"  PID: {trace.pid}", style="cyan"),
        Text(f"  Process: {trace.name}", style="cyan"),
    ]
    if trace.cmd:
        command = trace.cmd if len(trace.cmd) <= 90 else "..." + trace.cmd[-87:]
        lines.append(Text(f"  Command: {command}", style="bright_black"))

    lines += [
        Text(""),
        Text("  Statistics", style="bold"),
        Text("  " + "─" * 50, style="bright_black"),
        Text(f"    Total Samples:  {len(trace)}"),
        Text(f"    Duration:       {trace.duration_ms / 1000:.1f}s"),
        Text(""),
        Text(
            f"    CPU:    min {min(cpu):6.1f}%  avg {average(cpu):6.1f}%  max {max(cpu):6.1f}%"
        ),
        Text(
            f"    Memory: min {min_mem:6.1f} MB  avg {average(mem):6.1f} MB  "
            f"max {max_mem:6.1f} MB"
        ),
        Text(""),
        Text("  CPU Usage (%)", style="bold"),
        rule,
        *charts.graph_lines(
            cpu, cfg.graph_width, cfg.graph_height, 0, max(max(cpu), 100), "%"
        ),
        Text(""),
        Text("  Memory Usage (MB)", style="bold"),
        rule,
        *charts.graph_lines(
            mem, cfg.graph_width, cfg.graph_height, max(0, min_mem - 10), max_mem + 10, " MB"
        ),
        Text(""),
    ]
    return Group(*lines)
