# tests/test_history.py
"""Tests for per-process history."""

import pytest

from procmon.history import (
    BYTES_PER_MB,
    HistoryRecord,
    HistoryStore,
    ProcessIdentity,
    ProcessSample,
    TraceHistory,
    average,
)
from tests.conftest import make_sample


def identity(pid: int = 100, cmd: str | None = "python /srv/app.py", name: str = "python"):
    return ProcessIdentity.from_command(pid, cmd, name)


class TestProcessIdentity:
    """Tests for identity resolution."""

    def test_script_becomes_display_name(self):
        ident = identity(cmd="python /srv/app.py")
        assert ident.display_name == "/srv/app.py"
        assert ident.resolved_script_path == "/srv/app.py"
        assert ident.raw_command_line == "python /srv/app.py"

    def test_falls_back_to_process_name(self):
        ident = identity(cmd="python -m pytest", name="python3")
        assert ident.display_name == "python3"
        assert ident.resolved_script_path is None

    def test_missing_command_line(self):
        ident = identity(cmd=None, name="node")
        assert ident.display_name == "node"

    def test_long_script_truncated_to_59(self):
        path = "/" + "d" * 80 + "/main.py"
        ident = identity(cmd=f"python {path}")
        assert len(ident.display_name) == 59
        assert ident.display_name.endswith("/main.py")


class TestHistoryRecord:
    """Tests for a single rolling record."""

    def test_windows_slide_at_capacity(self):
        """150 samples keep only the last 100 memory values."""
        rec = HistoryRecord(identity=identity())
        for i in range(1, 151):
            rec.add(
                ProcessSample(
                    pid=100, cpu_percent=0.0, memory_bytes=i * BYTES_PER_MB, timestamp_ms=i
                )
            )

        assert rec.memory_window.values == [float(i) for i in range(51, 151)]
        assert rec.sample_count == 150
        assert len(rec.cpu_window) == len(rec.memory_window) == 100

    def test_peaks_survive_eviction(self):
        rec = HistoryRecord(identity=identity(), window_size=2)
        rec.add(make_sample(cpu=90.0, memory_mb=800.0))
        rec.add(make_sample(cpu=10.0, memory_mb=100.0))
        rec.add(make_sample(cpu=20.0, memory_mb=200.0))

        assert rec.peak_cpu == 90.0
        assert rec.peak_memory_mb == pytest.approx(800.0)
        assert rec.avg_cpu == pytest.approx(15.0)
        assert rec.avg_memory_mb == pytest.approx(150.0)

    def test_view_is_frozen_copy(self):
        rec = HistoryRecord(identity=identity())
        rec.add(make_sample(cpu=5.0))
        view = rec.view()
        rec.add(make_sample(cpu=7.0))

        assert view.cpu_window == (5.0,)
        assert view.sample_count == 1
        assert view.pid == 100


class TestHistoryStore:
    """Tests for the session-wide store."""

    def test_first_sighting_creates_record(self):
        store = HistoryStore()
        store.record(100, identity(), make_sample())
        assert 100 in store
        assert len(store) == 1

    def test_identity_callable_runs_once(self):
        store = HistoryStore()
        calls = []

        def resolve():
            calls.append(1)
            return identity()

        for _ in range(3):
            store.record(100, resolve, make_sample())

        assert len(calls) == 1
        assert store.get(100).sample_count == 3

    def test_identity_cached_for_lifetime(self):
        """A later command line change does not rename the record."""
        store = HistoryStore()
        store.record(100, identity(cmd="python /a.py"), make_sample())
        store.record(100, identity(cmd="python /b.py"), make_sample())
        assert store.get(100).identity.display_name == "/a.py"

    def test_records_survive_process_exit(self):
        store = HistoryStore()
        store.record(1, identity(pid=1), make_sample(pid=1))
        store.record(2, identity(pid=2), make_sample(pid=2))
        # pid 1 not seen again
        store.record(2, identity(pid=2), make_sample(pid=2))

        snapshot = store.snapshot()
        assert [v.pid for v in snapshot] == [1, 2]
        assert [v.sample_count for v in snapshot] == [1, 2]

    def test_window_size_applies_to_new_records(self):
        store = HistoryStore(window_size=3)
        for i in range(5):
            store.record(100, identity(), make_sample(cpu=float(i)))
        assert store.get(100).cpu_window.values == [2.0, 3.0, 4.0]

    def test_display_names(self):
        store = HistoryStore()
        store.record(1, identity(pid=1, cmd="node /x/server.js", name="node"), make_sample(pid=1))
        assert store.display_names() == {1: "/x/server.js"}

    def test_identities_are_the_cached_ones(self):
        store = HistoryStore()
        first = identity(pid=1, cmd="node /x/server.js", name="node")
        store.record(1, first, make_sample(pid=1))
        store.record(1, identity(pid=1, cmd="node /y.js", name="node"), make_sample(pid=1))
        assert store.identities() == {1: first}

    def test_get_unknown_pid(self):
        assert HistoryStore().get(42) is None


class TestTraceHistory:
    """Tests for unbounded trace history."""

    def test_keeps_every_sample(self):
        trace = TraceHistory(pid=7, name="python", cmd=None, start_time_ms=0)
        for i in range(250):
            trace.add(make_sample(pid=7, cpu=float(i), memory_mb=10.0, timestamp_ms=i * 100))

        assert len(trace) == 250
        assert trace.peak_cpu == 249.0
        assert trace.duration_ms == 24_900
        assert trace.avg_memory_mb == pytest.approx(10.0)

    def test_empty_trace(self):
        trace = TraceHistory(pid=7, name="python", cmd=None, start_time_ms=500)
        assert trace.duration_ms == 0
        assert trace.avg_cpu == 0.0


def test_average_of_empty_is_zero():
    assert average([]) == 0.0
    assert average([1.0, 3.0]) == 2.0
