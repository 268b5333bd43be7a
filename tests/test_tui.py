"""Tests for the TUI module."""

from __future__ import annotations

import io
import os
from unittest.mock import MagicMock
from unittest.mock import patch

import pytest
from rich.console import Console

from lazyactions.app import RunMonitor
from lazyactions.constants import MAX_IDLE_SECONDS
from lazyactions.events import AppEvent
from lazyactions.events import EventQueue
from lazyactions.events import EventType
from lazyactions.exceptions import CommandFailedError
from lazyactions.models import LogLine
from lazyactions.models import RunStatus
from lazyactions.tui import GH_BLUE
from lazyactions.tui import GH_GREEN
from lazyactions.tui import STATUS_STYLES
from lazyactions.tui import KeyReader
from lazyactions.tui import RunMonitorTUI
from lazyactions.tui import decode_key
from lazyactions.tui import split_sequences
from tests.conftest import ManualExecutor
from tests.conftest import make_job
from tests.conftest import make_run


def load(monitor: RunMonitor, source: MagicMock, executor: ManualExecutor, events: EventQueue, runs: list) -> None:
    source.fetch_runs.return_value = tuple(runs)
    monitor.scheduler.request()
    executor.run_all()
    for event in events.drain():
        monitor.dispatch(event)


def render(tui: RunMonitorTUI) -> str:
    """Render the full layout to plain text."""
    console = Console(file=io.StringIO(), width=140, height=40, color_system=None)
    console.print(tui._make_layout())
    return console.file.getvalue()  # type: ignore[attr-defined]


@pytest.fixture
def tui(monitor: RunMonitor, events: EventQueue) -> RunMonitorTUI:
    console = Console(file=io.StringIO(), width=140, height=40)
    return RunMonitorTUI(monitor, events, console=console)


class TestColors:
    """Tests for status styling."""

    def test_every_status_styled(self) -> None:
        assert set(STATUS_STYLES) == set(RunStatus)

    def test_success_is_green(self) -> None:
        assert STATUS_STYLES[RunStatus.SUCCESS][1] == GH_GREEN
        assert GH_BLUE == "#58a6ff"


class TestDecodeKey:
    """Tests for decode_key."""

    @pytest.mark.parametrize(
        ("sequence", "expected"),
        [
            ("\x1b[A", "up"),
            ("\x1b[B", "down"),
            ("\x1b[C", "right"),
            ("\x1b[D", "left"),
            ("\x1bOA", "up"),
            ("\x1b[5~", "pageup"),
            ("\x1b[6~", "pagedown"),
            ("\x1b[H", "home"),
            ("\x1b[F", "end"),
            ("\x1b", "escape"),
            ("\r", "enter"),
            ("\n", "enter"),
            ("\x7f", "backspace"),
            ("\x03", "ctrl+c"),
            ("\x15", "ctrl+u"),
            ("\x04", "ctrl+d"),
            ("j", "j"),
            ("G", "G"),
            ("?", "?"),
            (" ", " "),
        ],
    )
    def test_known(self, sequence: str, expected: str) -> None:
        assert decode_key(sequence) == expected

    @pytest.mark.parametrize("sequence", ["\x1b[99~", "\x01", ""])
    def test_unknown(self, sequence: str) -> None:
        assert decode_key(sequence) is None


class TestSplitSequences:
    """Tests for split_sequences."""

    def test_plain_keys(self) -> None:
        assert split_sequences("jk") == (["j", "k"], "")

    def test_arrow_keys_read_together(self) -> None:
        assert split_sequences("\x1b[A\x1b[Bj") == (["\x1b[A", "\x1b[B", "j"], "")

    def test_ss3_and_tilde_sequences(self) -> None:
        assert split_sequences("\x1bOA\x1b[6~") == (["\x1bOA", "\x1b[6~"], "")

    def test_escape_before_another_key(self) -> None:
        assert split_sequences("\x1bj") == (["\x1b", "j"], "")

    @pytest.mark.parametrize("tail", ["\x1b", "\x1b[", "\x1b[5", "\x1bO"])
    def test_incomplete_tail_kept(self, tail: str) -> None:
        assert split_sequences("j" + tail) == (["j"], tail)


class TestKeyReader:
    """Tests for KeyReader on real file descriptors."""

    def test_run_posts_keys_until_eof(self) -> None:
        read_fd, write_fd = os.pipe()
        try:
            os.write(write_fd, "jj\x1b[6~\r\x1b[A".encode())
            os.close(write_fd)
            events = EventQueue()
            KeyReader(events, read_fd).run()
        finally:
            os.close(read_fd)
        keys = [event.key for event in events.drain()]
        assert keys == ["j", "j", "pagedown", "enter", "up"]

    def test_lone_escape_at_eof(self) -> None:
        read_fd, write_fd = os.pipe()
        try:
            os.write(write_fd, b"\x1b")
            os.close(write_fd)
            events = EventQueue()
            KeyReader(events, read_fd).run()
        finally:
            os.close(read_fd)
        assert [event.key for event in events.drain()] == ["escape"]

    def test_multibyte_character(self) -> None:
        read_fd, write_fd = os.pipe()
        try:
            os.write(write_fd, "é".encode())
            os.close(write_fd)
            events = EventQueue()
            KeyReader(events, read_fd).run()
        finally:
            os.close(read_fd)
        assert [event.key for event in events.drain()] == ["é"]

    @pytest.mark.skipif(not hasattr(os, "openpty"), reason="requires a pseudo-terminal")
    def test_arrow_key_on_terminal(self) -> None:
        """One Up arrow typed into a cbreak terminal is one "up" key."""
        tty = pytest.importorskip("tty")
        master, slave = os.openpty()
        events = EventQueue()
        reader = KeyReader(events, slave)
        try:
            tty.setcbreak(slave)
            reader.start()
            os.write(master, b"\x1b[A")
            first = events.get(timeout=5.0)
            os.write(master, b"\x1b")
            second = events.get(timeout=5.0)
        finally:
            reader.stop()
            reader.join(timeout=5.0)
            os.close(master)
            os.close(slave)
        assert (first.event_type, first.key) == (EventType.KEY, "up")
        assert (second.event_type, second.key) == (EventType.KEY, "escape")
        assert events.drain() == []

    def test_stop(self) -> None:
        read_fd, write_fd = os.pipe()
        try:
            os.write(write_fd, b"j")
            events = EventQueue()
            reader = KeyReader(events, read_fd)
            reader.stop()
            reader.run()
        finally:
            os.close(read_fd)
            os.close(write_fd)
        assert events.drain() == []


class TestPanels:
    """Tests for the panel builders."""

    def test_waiting_for_first_refresh(self, tui: RunMonitorTUI) -> None:
        output = render(tui)
        assert "octo/repo" in output
        assert "Initializing..." in output
        assert "Waiting for the first refresh" in output

    def test_run_table(
        self,
        tui: RunMonitorTUI,
        source: MagicMock,
        executor: ManualExecutor,
        events: EventQueue,
    ) -> None:
        load(
            tui.monitor,
            source,
            executor,
            events,
            [
                make_run(1, workflow="Build", title="[skip ci] Bump version", duration=187.0),
                make_run(2, workflow="Lint", status=RunStatus.FAILURE, actor="bob"),
            ],
        )
        output = render(tui)
        assert "Runs (2/2)" in output
        assert "Build" in output
        assert "[skip ci] Bump version" in output
        assert "3m 07s" in output
        assert "bob" in output
        assert "Updated" in output

    def test_no_match(
        self,
        tui: RunMonitorTUI,
        source: MagicMock,
        executor: ManualExecutor,
        events: EventQueue,
    ) -> None:
        load(tui.monitor, source, executor, events, [make_run(1, branch="dev")])
        tui.monitor.dispatch(AppEvent.key_pressed("b"))
        output = render(tui)
        assert "No runs match the active filters" in output
        assert "branch=main" in output

    def test_only_viewport_rows_rendered(
        self,
        tui: RunMonitorTUI,
        source: MagicMock,
        executor: ManualExecutor,
        events: EventQueue,
    ) -> None:
        runs = [make_run(i, workflow=f"wf-{i:03d}") for i in range(1, 101)]
        load(tui.monitor, source, executor, events, runs)
        tui.monitor.dispatch(AppEvent.resized(140, 40))
        output = render(tui)
        assert "wf-001" in output
        assert "wf-031" in output
        assert "wf-032" not in output
        assert "1-31 of 100" in output

    def test_details_with_log(
        self,
        tui: RunMonitorTUI,
        source: MagicMock,
        executor: ManualExecutor,
        events: EventQueue,
    ) -> None:
        source.fetch_log.return_value = (
            LogLine("build", "Run tests", "collected 12 items"),
            LogLine("build", "Run tests", "12 passed"),
        )
        load(tui.monitor, source, executor, events, [make_run(1, workflow="CI", number=17)])
        tui.monitor.dispatch(AppEvent.key_pressed("enter"))
        assert "Loading log..." in render(tui)
        executor.run_all()
        for event in events.drain():
            tui.monitor.dispatch(event)
        output = render(tui)
        assert "CI #17" in output
        assert "build › Run tests" in output
        assert "12 passed" in output
        assert "line 1-2/2" in output

    def test_details_with_error(
        self,
        tui: RunMonitorTUI,
        source: MagicMock,
        executor: ManualExecutor,
        events: EventQueue,
    ) -> None:
        source.fetch_log.side_effect = CommandFailedError("gh run view 1 --log", 1, "HTTP 404")
        load(tui.monitor, source, executor, events, [make_run(1)])
        tui.monitor.dispatch(AppEvent.key_pressed("enter"))
        executor.run_all()
        for event in events.drain():
            tui.monitor.dispatch(event)
        output = render(tui)
        assert "Could not load the log" in output
        assert "HTTP 404" in output
        assert "Press r to retry" in output

    def test_details_jobs(
        self,
        tui: RunMonitorTUI,
        source: MagicMock,
        executor: ManualExecutor,
        events: EventQueue,
    ) -> None:
        source.fetch_jobs.return_value = (
            make_job(1, "lint", duration=42.0),
            make_job(2, "test (3.12)", status=RunStatus.FAILURE, duration=187.0),
            make_job(3, "deploy", status=RunStatus.QUEUED, ts=None),
        )
        load(tui.monitor, source, executor, events, [make_run(1)])
        tui.monitor.dispatch(AppEvent.key_pressed("enter"))
        assert "Loading jobs..." in render(tui)
        executor.run_all()
        for event in events.drain():
            tui.monitor.dispatch(event)
        output = render(tui)
        assert "Jobs (2/3 done)" in output
        assert "test (3.12)" in output
        assert "3m 07s" in output
        assert "deploy" in output

    def test_jobs_shown_when_log_fails(
        self,
        tui: RunMonitorTUI,
        source: MagicMock,
        executor: ManualExecutor,
        events: EventQueue,
    ) -> None:
        source.fetch_jobs.return_value = (
            make_job(1, "build", status=RunStatus.IN_PROGRESS, duration=None),
        )
        source.fetch_log.side_effect = CommandFailedError(
            "gh run view 1 --log", 1, "run 1 is still in progress"
        )
        load(tui.monitor, source, executor, events, [make_run(1, status=RunStatus.IN_PROGRESS)])
        tui.monitor.dispatch(AppEvent.key_pressed("enter"))
        executor.run_all()
        for event in events.drain():
            tui.monitor.dispatch(event)
        output = render(tui)
        assert "Jobs (0/1 done)" in output
        assert "build" in output
        assert "Could not load the log" in output

    def test_many_jobs_truncated(
        self,
        tui: RunMonitorTUI,
        source: MagicMock,
        executor: ManualExecutor,
        events: EventQueue,
    ) -> None:
        source.fetch_jobs.return_value = tuple(make_job(i, f"job-{i:02d}") for i in range(1, 11))
        load(tui.monitor, source, executor, events, [make_run(1)])
        tui.monitor.dispatch(AppEvent.key_pressed("enter"))
        executor.run_all()
        for event in events.drain():
            tui.monitor.dispatch(event)
        output = render(tui)
        assert "job-05" in output
        assert "job-06" not in output
        assert "+5 more" in output

    def test_help(self, tui: RunMonitorTUI) -> None:
        tui.monitor.dispatch(AppEvent.key_pressed("?"))
        output = render(tui)
        assert "Keyboard Shortcuts" in output
        assert "Toggle current-branch filter" in output

    def test_refresh_failure_in_header(
        self,
        tui: RunMonitorTUI,
        source: MagicMock,
        executor: ManualExecutor,
        events: EventQueue,
    ) -> None:
        source.fetch_runs.side_effect = CommandFailedError("gh api", 1, "HTTP 502")
        load(tui.monitor, source, executor, events, [])
        assert "Refresh failed" in render(tui)

    def test_footer_notice(self, tui: RunMonitorTUI) -> None:
        tui.monitor.dispatch(AppEvent.key_pressed("o"))
        assert "No run selected" in render(tui)


class TestLoop:
    """Tests for the event loop."""

    def test_next_timeout(
        self, tui: RunMonitorTUI, executor: ManualExecutor, events: EventQueue
    ) -> None:
        assert tui._next_timeout() == 0.0
        tui.monitor.dispatch(AppEvent.tick())
        assert tui._next_timeout() == MAX_IDLE_SECONDS

    def test_loop_redraws_until_quit(
        self,
        tui: RunMonitorTUI,
        source: MagicMock,
        executor: ManualExecutor,
        events: EventQueue,
    ) -> None:
        load(tui.monitor, source, executor, events, [make_run(1), make_run(2)])
        events.post(AppEvent.key_pressed("j"))
        events.post(AppEvent.key_pressed("q"))
        live = MagicMock()
        tui._loop(live)
        assert live.update.call_count == 1
        assert not tui.monitor.running

    def test_keys_do_not_starve_refresh(
        self, tui: RunMonitorTUI, executor: ManualExecutor, events: EventQueue
    ) -> None:
        events.post(AppEvent.key_pressed("z"))
        events.post(AppEvent.key_pressed("q"))
        tui._loop(MagicMock())
        assert tui.monitor.scheduler.generation == 1

    def test_resize_signal_posts_event(self, tui: RunMonitorTUI, events: EventQueue) -> None:
        tui._post_resize()
        (event,) = events.drain()
        assert event.event_type == EventType.RESIZE
        assert (event.width, event.height) == (140, 40)

    def test_run_outside_terminal(self, monitor: RunMonitor, events: EventQueue) -> None:
        console = MagicMock()
        console.is_terminal = False
        RunMonitorTUI(monitor, events, console=console).run()
        assert not monitor.running
        console.print.assert_called_once()

    def test_run_simple_mode(self, monitor: RunMonitor, events: EventQueue) -> None:
        console = MagicMock()
        console.size.height = 40
        tui = RunMonitorTUI(monitor, events, console=console)
        events.post(AppEvent.key_pressed("?"))
        events.post(AppEvent.key_pressed("q"))
        with patch.dict("sys.modules", {"termios": None}):
            console.is_terminal = True
            tui.run()
        assert not monitor.running
