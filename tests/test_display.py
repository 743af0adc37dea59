"""Tests for terminal renderables."""

import io

from rich.console import Console

from procmon.alerts import AlertSummary
from procmon.display import (
    render_alert_summary,
    render_monitor,
    render_summary,
    render_trace_summary,
    render_trace_view,
)
from procmon.history import HistoryStore, ProcessIdentity, TraceHistory
from procmon.monitor import MonitorSnapshot
from procmon.tree import build_tree
from tests.conftest import make_info, make_sample


def render(renderable) -> str:
    console = Console(file=io.StringIO(), width=160, color_system=None)
    console.print(renderable)
    return console.file.getvalue()


def make_snapshot(processes, samples_per_process=1, filter_pattern=None):
    store = HistoryStore()
    for proc in processes:
        identity = ProcessIdentity.from_command(proc.pid, proc.cmd, proc.name)
        for i in range(samples_per_process):
            store.record(proc.pid, identity, make_sample(pid=proc.pid, memory_mb=50.0 + i * 10))
    return MonitorSnapshot(
        timestamp_ms=5_000,
        process_type="python",
        filter_pattern=filter_pattern,
        start_time_ms=0,
        processes=tuple(processes),
        records=store.snapshot(),
    )


def make_trace(samples=5):
    trace = TraceHistory(pid=7, name="node", cmd="node /srv/server.js --port 80", start_time_ms=0)
    for i in range(samples):
        trace.add(make_sample(pid=7, cpu=10.0 * i, memory_mb=100.0 + i, timestamp_ms=i * 1000))
    return trace


class TestMonitorTable:
    """Tests for the flat watch view."""

    def test_rows_show_script_and_values(self):
        snapshot = make_snapshot(
            [make_info(pid=123, cmd="python /srv/api/main.py", cpu=42.0, memory_mb=150.0)],
            filter_pattern="api",
        )
        output = render(render_monitor(snapshot))

        assert "Process Monitor" in output
        assert 'Filter: "api"' in output
        assert "123" in output
        assert "/srv/api/main.py" in output
        assert "42.0%" in output
        assert "150.0 MB" in output
        assert "1 process(es)" in output

    def test_process_name_without_script(self):
        snapshot = make_snapshot([make_info(pid=5, name="python3", cmd="python3 -m http.server")])
        assert "python3" in render(render_monitor(snapshot))

    def test_sparkline_row_after_two_samples(self):
        snapshot = make_snapshot([make_info(pid=5, cmd="python /a.py")], samples_per_process=3)
        assert "█" in render(render_monitor(snapshot))

    def test_waiting_when_empty(self):
        output = render(render_monitor(make_snapshot([])))
        assert "No matching processes found." in output
        assert "Waiting for processes to start..." in output


class TestMonitorTree:
    """Tests for the tree watch view."""

    def test_children_indented(self):
        parent = make_info(pid=10, ppid=1, cmd="python /srv/main.py", cpu=5.0)
        child = make_info(pid=20, ppid=10, cmd="python /srv/worker.py", cpu=1.0)
        snapshot = make_snapshot([parent, child])
        roots = build_tree([parent, child], {10: 1, 20: 10})

        output = render(render_monitor(snapshot, roots))

        assert "Process Tree" in output
        assert "└─ /srv/worker.py" in output
        assert "2 process(es) in 1 tree(s)" in output

    def test_empty_tree_waits(self):
        output = render(render_monitor(make_snapshot([]), []))
        assert "No matching processes found." in output


class TestSummaries:
    """Tests for end-of-session output."""

    def test_session_summary(self):
        processes = [make_info(pid=10, cmd="python /srv/job.py")]
        snapshot = make_snapshot(processes, samples_per_process=2)
        output = render(render_summary(snapshot.records))

        assert "Session Summary" in output
        assert "/srv/job.py" in output
        assert "AVG CPU" in output

    def test_empty_session_summary(self):
        assert "No processes were monitored." in render(render_summary([]))

    def test_alert_summary(self):
        summaries = [
            AlertSummary(pid=10, display_name="/srv/job.py", cpu_alerts=2, memory_alerts=1)
        ]
        output = render(render_alert_summary(summaries, 3))

        assert "Alerts Summary" in output
        assert "/srv/job.py" in output
        assert "Total alerts: 3" in output

    def test_no_alerts(self):
        output = render(render_alert_summary([], 0))
        assert "No alerts triggered during this session." in output


class TestTraceViews:
    """Tests for trace mode output."""

    def test_live_view(self):
        output = render(render_trace_view(make_trace(), interval_ms=1000, now_ms=4_000))

        assert "PID Trace" in output
        assert "node /srv/server.js --port 80" in output
        assert "Samples: 5" in output
        assert "Elapsed: 4s" in output
        assert "Interval: 1000ms" in output
        assert "peak 40.0%" in output

    def test_summary_graphs(self):
        output = render(render_trace_summary(make_trace(samples=100)))

        assert "Trace Summary" in output
        assert "Total Samples:  100" in output
        assert "CPU Usage (%)" in output
        assert "Memory Usage (MB)" in output
        assert "100 samples" in output

    def test_long_command_truncated_from_start(self):
        trace = make_trace()
        trace.cmd = "node " + "x" * 200 + " --tail"
        output = render(render_trace_summary(trace))
        assert "Command: ..." in output
        assert "--tail" in output

    def test_summary_without_samples(self):
        trace = TraceHistory(pid=7, name="node", cmd=None, start_time_ms=0)
        assert "No data collected." in render(render_trace_summary(trace))


class TestBracketedNames:
    """Names containing square brackets are shown literally."""

    LABEL = "[abc123de] web"

    def make_labelled_snapshot(self):
        proc = make_info(pid=7, name="node", cmd="node /srv/server.js", memory_mb=64.0)
        identity = ProcessIdentity(pid=7, raw_command_line=proc.cmd, display_name=self.LABEL)
        store = HistoryStore()
        store.record(7, identity, make_sample(pid=7, memory_mb=64.0))
        return MonitorSnapshot(
            timestamp_ms=5_000,
            process_type="docker",
            filter_pattern=None,
            start_time_ms=0,
            processes=(proc,),
            records=store.snapshot(),
        )

    def test_container_label_in_table(self):
        output = render(render_monitor(self.make_labelled_snapshot()))
        assert self.LABEL in output

    def test_container_label_in_session_summary(self):
        output = render(render_summary(self.make_labelled_snapshot().records))
        assert self.LABEL in output

    def test_container_label_in_alert_summary(self):
        summaries = [AlertSummary(pid=7, display_name=self.LABEL, cpu_alerts=1, memory_alerts=0)]
        assert self.LABEL in render(render_alert_summary(summaries, 1))

    def test_closing_tag_in_script_path(self):
        snapshot = make_snapshot([make_info(pid=9, cmd="python /srv/[/bold]/run.py")])

        assert "/srv/[/bold]/run.py" in render(render_monitor(snapshot))
        assert "/srv/[/bold]/run.py" in render(render_summary(snapshot.records))

    def test_trace_name_and_command(self):
        trace = TraceHistory(pid=7, name="[x] node", cmd="node [red]app.js", start_time_ms=0)
        trace.add(make_sample(pid=7))

        assert "[x] node" in render(render_trace_view(trace, interval_ms=1000, now_ms=1_000))
        output = render(render_trace_summary(trace))
        assert "Process: [x] node" in output
        assert "Command: node [red]app.js" in output
