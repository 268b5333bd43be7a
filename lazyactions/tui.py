"""Rich TUI for monitoring GitHub Actions runs."""

from __future__ import annotations

import codecs
import logging
import os
import select
import signal
import sys
import threading
from datetime import datetime

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from lazyactions.app import RefreshState
from lazyactions.app import RunMonitor
from lazyactions.constants import DETAILS_INFO_ROWS
from lazyactions.constants import ESCAPE_SEQUENCE_TIMEOUT
from lazyactions.constants import FOOTER_ROWS
from lazyactions.constants import HEADER_ROWS
from lazyactions.constants import KEY_POLL_SECONDS
from lazyactions.constants import MAX_IDLE_SECONDS
from lazyactions.events import AppEvent
from lazyactions.events import EventQueue
from lazyactions.events import EventType
from lazyactions.models import DetailsState
from lazyactions.models import Run
from lazyactions.models import RunStatus
from lazyactions.models import format_duration
from lazyactions.state.navigation import DetailsView
from lazyactions.utils import format_age

logger = logging.getLogger(__name__)

# GitHub Primer colors
GH_BLUE = "#58a6ff"
GH_GREEN = "#3fb950"
GH_RED = "#f85149"
GH_YELLOW = "#d29922"

STATUS_STYLES: dict[RunStatus, tuple[str, str]] = {
    RunStatus.QUEUED: ("◌", "dim"),
    RunStatus.IN_PROGRESS: ("●", GH_YELLOW),
    RunStatus.SUCCESS: ("✓", GH_GREEN),
    RunStatus.FAILURE: ("✗", GH_RED),
    RunStatus.CANCELLED: ("⊘", "dim"),
}

# Escape sequences (after ESC) mapped to key names
ESCAPE_SEQUENCES: dict[str, str] = {
    "[A": "up",
    "[B": "down",
    "[C": "right",
    "[D": "left",
    "OA": "up",
    "OB": "down",
    "OC": "right",
    "OD": "left",
    "[5~": "pageup",
    "[6~": "pagedown",
    "[H": "home",
    "[F": "end",
    "OH": "home",
    "OF": "end",
    "[1~": "home",
    "[4~": "end",
}

CONTROL_KEYS: dict[str, str] = {
    "\r": "enter",
    "\n": "enter",
    "\x7f": "backspace",
    "\b": "backspace",
    "\x03": "ctrl+c",
    "\x04": "ctrl+d",
    "\x15": "ctrl+u",
    "\x1b": "escape",
}


def decode_key(sequence: str) -> str | None:
    """
    Translate raw terminal input into a key name.

    Args:
        sequence: One character, or ESC followed by the rest of an escape
            sequence.

    Returns:
        ``"up"``, ``"enter"``, ``"escape"``... for special keys, the character
        itself for printable keys, or None for unrecognized sequences.
    """
    if sequence.startswith("\x1b") and len(sequence) > 1:
        return ESCAPE_SEQUENCES.get(sequence[1:])
    if sequence in CONTROL_KEYS:
        return CONTROL_KEYS[sequence]
    if len(sequence) == 1 and sequence.isprintable():
        return sequence
    return None


def split_sequences(text: str) -> tuple[list[str], str]:
    """
    Split raw terminal input into one string per key.

    Args:
        text: Decoded input, possibly several keys read at once.

    Returns:
        The complete key sequences in order, and a trailing remainder that
        may be the start of an escape sequence whose tail has not arrived.
    """
    sequences: list[str] = []
    i = 0
    while i < len(text):
        if text[i] != "\x1b":
            sequences.append(text[i])
            i += 1
            continue
        if i + 1 == len(text):
            break
        introducer = text[i + 1]
        if introducer == "O":
            if i + 2 == len(text):
                break
            sequences.append(text[i : i + 3])
            i += 3
        elif introducer == "[":
            # CSI: parameter bytes, then one final byte in @..~
            end = i + 2
            while end < len(text) and not "@" <= text[end] <= "~":
                end += 1
            if end == len(text):
                break
            sequences.append(text[i : end + 1])
            i = end + 1
        else:
            sequences.append("\x1b")
            i += 1
    return sequences, text[i:]


class KeyReader(threading.Thread):
    """Background thread turning terminal input into KEY events.

    Input is read from the file descriptor directly, so everything a single
    keypress sends (``ESC [ A`` for Up) is seen at once instead of being held
    back in a text stream's buffer. The terminal must already be in cbreak
    mode.
    """

    def __init__(self, events: EventQueue, fd: int | None = None) -> None:
        super().__init__(name="lazyactions-keys", daemon=True)
        self._events = events
        self._fd = sys.stdin.fileno() if fd is None else fd
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def _ready(self, timeout: float) -> bool:
        return bool(select.select([self._fd], [], [], timeout)[0])

    def _fill(self) -> bool:
        """Append all available input to the buffer; False at end of input."""
        try:
            data = os.read(self._fd, 1024)
        except OSError as e:
            # A pty whose other side closed reports EIO instead of EOF
            logger.debug("Keyboard input closed: %s", e)
            return False
        if not data:
            return False
        self._buffer += self._decoder.decode(data)
        return True

    def _post(self, sequence: str) -> None:
        key = decode_key(sequence)
        if key is not None:
            self._events.post(AppEvent.key_pressed(key))

    def _post_complete(self) -> None:
        sequences, self._buffer = split_sequences(self._buffer)
        for sequence in sequences:
            self._post(sequence)

    def run(self) -> None:
        while not self._stop_event.is_set():
            if not self._ready(KEY_POLL_SECONDS):
                continue
            if not self._fill():
                break
            self._post_complete()
            # A trailing ESC is either the Escape key or a sequence cut in two
            while self._buffer and self._ready(ESCAPE_SEQUENCE_TIMEOUT) and self._fill():
                self._post_complete()
            if self._buffer:
                self._post(self._buffer)
                self._buffer = ""


class RunMonitorTUI:
    """
    Rich TUI for monitoring GitHub Actions runs.

    Keyboard Controls:
        q / Ctrl+c: Quit
        ?: Show help
        r: Refresh now (retry the log in the details view if it failed)
        o: Open the run in a browser

        Run list:
        Up/Down (k/j): Move selection
        PgUp/PgDn, Home/End (g/G): Jump
        Enter: Open run details (jobs and log)
        b / u / l: Toggle branch, user and latest-per-workflow filters

        Details:
        Esc / Left (h): Back to the list
        Up/Down (k/j): Scroll log by a line
        PgUp / PgDn / Right: Scroll log by a page
        g / G: Jump to top/bottom of log

    Attributes:
        monitor: The state engine being displayed.
        events: The queue the monitor's events arrive on.
    """

    def __init__(
        self,
        monitor: RunMonitor,
        events: EventQueue,
        console: Console | None = None,
    ) -> None:
        self.monitor = monitor
        self.events = events
        self.console = console or Console()

    # -------------------------------------------------------------------------
    # Panels
    # -------------------------------------------------------------------------

    def _make_header(self) -> Panel:
        """Create the header with repository, filters and refresh status."""
        monitor = self.monitor
        header = Text()
        header.append("lazyactions", style=f"bold {GH_BLUE}")
        header.append("  │  ", style="dim")
        header.append(monitor.context.name, style="bold")
        header.append("  │  ", style="dim")
        header.append("Filters: ", style="dim")
        header.append(monitor.filters.describe(monitor.context))
        header.append("  │  ", style="dim")

        status_styles = {
            RefreshState.IDLE: "dim",
            RefreshState.FETCHING: GH_YELLOW,
            RefreshState.OK: GH_GREEN,
            RefreshState.FAILED: f"bold {GH_RED}",
        }
        header.append(monitor.status.describe(), style=status_styles[monitor.status.state])

        border = GH_RED if monitor.status.state == RefreshState.FAILED else GH_BLUE
        return Panel(header, border_style=border, padding=(0, 1))

    def _format_run_duration(self, run: Run, now: datetime) -> Text:
        if run.duration is not None:
            return Text(format_duration(run.duration))
        if run.status == RunStatus.IN_PROGRESS:
            elapsed = (now - run.started_at).total_seconds()
            return Text(format_duration(elapsed), style=GH_YELLOW)
        return Text("-", style="dim")

    def _make_runs_table(self) -> Panel:
        """Create the run table for the rows inside the viewport."""
        monitor = self.monitor
        total = len(monitor.visible)
        title = f"Runs ({total}/{len(monitor.store)})"

        if total == 0:
            if monitor.status.last_success is None:
                message = "[dim]Waiting for the first refresh...[/dim]"
            elif monitor.filters.active:
                message = "[dim]No runs match the active filters[/dim]"
            else:
                message = "[dim]No workflow runs found[/dim]"
            return Panel(message, title=title, border_style=GH_BLUE)

        table = Table(box=None, expand=True, show_header=True, header_style="bold", pad_edge=False)
        table.add_column("", width=1, no_wrap=True)
        table.add_column("Workflow", ratio=2, no_wrap=True)
        table.add_column("Branch", ratio=2, no_wrap=True)
        table.add_column("Actor", ratio=1, no_wrap=True)
        table.add_column("Title", ratio=3, no_wrap=True)
        table.add_column("Started", justify="right", no_wrap=True)
        table.add_column("Duration", justify="right", no_wrap=True)

        now = monitor.clock.wall()
        selected = monitor.navigator.selected_index
        window = monitor.visible_window()
        for index, run in window:
            icon, icon_style = STATUS_STYLES[run.status]
            table.add_row(
                Text(icon, style=icon_style),
                Text(run.workflow),
                Text(run.branch),
                Text(run.actor),
                Text(run.title),
                format_age(run.started_at, now),
                self._format_run_duration(run, now),
                style="reverse" if index == selected else None,
            )

        subtitle = None
        if window and total > len(window):
            subtitle = f"[dim]{window[0][0] + 1}-{window[-1][0] + 1} of {total}[/dim]"
        return Panel(table, title=title, subtitle=subtitle, border_style=GH_BLUE, padding=0)

    def _make_run_info_panel(self, run: Run) -> Panel:
        """Create the summary of the run whose details are open."""
        icon, icon_style = STATUS_STYLES[run.status]
        info = Table(show_header=False, box=None, padding=(0, 2))
        info.add_column("Field", style="dim")
        info.add_column("Value")
        info.add_row("Status", Text(f"{icon} {run.status.value.replace('_', ' ')}", style=icon_style))
        branch = Text(run.branch)
        if run.event:
            branch.append(f"  ({run.event})", style="dim")
        info.add_row("Branch", branch)
        info.add_row("Actor", Text(run.actor))
        started = run.started_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")
        info.add_row("Started", f"{started}  [dim]duration {format_duration(run.duration)}[/dim]")
        info.add_row("Run ID", str(run.run_id))
        if run.url:
            info.add_row("URL", Text(run.url, style="dim", overflow="ellipsis", no_wrap=True))

        title = Text(run.workflow, style="bold")
        if run.number is not None:
            title.append(f" #{run.number}", style="bold")
        if run.title:
            title.append(f": {run.title}")
        border = GH_BLUE if icon_style == "dim" else icon_style
        return Panel(info, title=title, border_style=border)

    def _make_jobs_panel(self) -> Panel:
        """Create the job list of the run whose details are open."""
        monitor = self.monitor
        blob = monitor.details_blob
        if blob is None or blob.state == DetailsState.LOADING:
            return Panel("[dim]Loading jobs...[/dim]", title="Jobs", border_style=GH_BLUE)
        if not blob.jobs:
            message = "No jobs reported" if blob.state == DetailsState.READY else "Jobs unavailable"
            return Panel(f"[dim]{message}[/dim]", title="Jobs", border_style=GH_BLUE)

        table = Table(show_header=False, box=None, padding=(0, 1), expand=True, pad_edge=False)
        table.add_column("", width=1, no_wrap=True)
        table.add_column("Job", ratio=1, no_wrap=True)
        table.add_column("Duration", justify="right", no_wrap=True)

        now = monitor.clock.wall()
        rows = DETAILS_INFO_ROWS - 2
        shown = blob.jobs if len(blob.jobs) <= rows else blob.jobs[: rows - 1]
        for job in shown:
            icon, icon_style = STATUS_STYLES[job.status]
            if job.duration is not None:
                duration = Text(format_duration(job.duration))
            elif job.started_at is not None:
                elapsed = (now - job.started_at).total_seconds()
                duration = Text(format_duration(elapsed), style=GH_YELLOW)
            else:
                duration = Text("-", style="dim")
            table.add_row(Text(icon, style=icon_style), Text(job.name), duration)
        if len(shown) < len(blob.jobs):
            table.add_row("", Text(f"+{len(blob.jobs) - len(shown)} more", style="dim"), "")

        finished = sum(1 for job in blob.jobs if job.status.is_terminal)
        failed = any(job.status == RunStatus.FAILURE for job in blob.jobs)
        title = f"Jobs ({finished}/{len(blob.jobs)} done)"
        return Panel(table, title=title, border_style=GH_RED if failed else GH_BLUE)

    def _make_log_panel(self) -> Panel:
        """Create the log panel for the open run."""
        monitor = self.monitor
        blob = monitor.details_blob
        subtitle = "[dim]↑/↓ scroll | PgUp/PgDn page | g/G top/bottom | Esc back[/dim]"

        if blob is None or blob.state == DetailsState.LOADING:
            return Panel("[dim]Loading log...[/dim]", title="Log", border_style=GH_BLUE)

        if blob.state == DetailsState.FAILED:
            message = blob.error.message if blob.error is not None else "unknown error"
            content = Text()
            content.append("Could not load the log\n", style=f"bold {GH_RED}")
            content.append(message + "\n\n", style=GH_RED)
            content.append("Press r to retry", style="dim")
            return Panel(content, title="Log", subtitle=subtitle, border_style=GH_RED)

        lines = blob.lines
        if not lines:
            return Panel("[dim]Log is empty[/dim]", title="Log", border_style=GH_BLUE)

        view = monitor.navigator.view
        log_scroll = view.log_scroll if isinstance(view, DetailsView) else 0
        visible_lines = lines[log_scroll : log_scroll + monitor.navigator.log_viewport]

        # Exactly one row per log line; the log viewport is counted in rows
        content = Text(
            "\n".join(line.message for line in visible_lines),
            no_wrap=True,
            overflow="ellipsis",
        )

        end = log_scroll + len(visible_lines)
        title = Text("Log")
        top = visible_lines[0]
        if top.job:
            title.append(f" · {top.job} › {top.step}", style=f"bold {GH_BLUE}")
        title.append(f" [line {log_scroll + 1}-{end}/{len(lines)}]")
        return Panel(content, title=title, subtitle=subtitle, border_style="cyan")

    def _make_help_panel(self) -> Panel:
        """Create the help overlay panel."""
        help_text = Table(show_header=False, box=None, padding=(0, 2))
        help_text.add_column("Key", style="bold cyan")
        help_text.add_column("Action")

        help_text.add_row("", "[bold]General[/bold]")
        help_text.add_row("q / Ctrl+c", "Quit")
        help_text.add_row("?", "Toggle this help")
        help_text.add_row("r", "Refresh now (retry a failed log in details)")
        help_text.add_row("o", "Open the run in a browser")
        help_text.add_row("", "")
        help_text.add_row("", "[bold]Run List[/bold]")
        help_text.add_row("↑ / ↓  (k / j)", "Select previous/next run")
        help_text.add_row("PgUp / PgDn", "Select by page")
        help_text.add_row("Home / End  (g / G)", "Select first/last run")
        help_text.add_row("Enter", "Open run details (jobs and log)")
        help_text.add_row("b", "Toggle current-branch filter")
        help_text.add_row("u", "Toggle current-user filter")
        help_text.add_row("l", "Toggle latest-run-per-workflow filter")
        help_text.add_row("", "")
        help_text.add_row("", "[bold]Details[/bold]")
        help_text.add_row("Esc / ←  (h)", "Back to the run list")
        help_text.add_row("↑ / ↓  (k / j)", "Scroll log by a line")
        help_text.add_row("PgUp / PgDn / →", "Scroll log by a page")
        help_text.add_row("g / G", "Jump to top/bottom of log")

        return Panel(
            help_text,
            title="[bold]Keyboard Shortcuts[/bold]",
            subtitle="Press any key to close",
            border_style="cyan",
        )

    def _make_footer(self) -> Panel:
        """Create the footer with key hints or the current notice."""
        monitor = self.monitor
        footer = Text()
        if monitor.notice:
            footer.append(monitor.notice, style=GH_YELLOW)
            footer.append("  │  ", style="dim")

        if monitor.navigator.in_details:
            footer.append("Details", style="bold cyan")
            footer.append(" (Esc back)", style="dim")
        else:
            footer.append("Enter", style="bold")
            footer.append("=details  ", style="dim")
            for key, label, enabled in (
                ("b", "branch", monitor.filters.branch_only),
                ("u", "user", monitor.filters.user_only),
                ("l", "latest", monitor.filters.latest_only),
            ):
                footer.append(key, style="bold")
                footer.append(f"={label}:", style="dim")
                footer.append("ON " if enabled else "OFF ", style=GH_GREEN if enabled else "dim")
                footer.append(" ")

        footer.append("  │  ", style="dim")
        footer.append(f"Refresh: {monitor.scheduler.interval:g}s", style="dim")
        footer.append("  │  ", style="dim")
        footer.append("?", style="bold")
        footer.append("=help  ", style="dim")
        footer.append("q", style="bold")
        footer.append("=quit", style="dim")
        return Panel(footer, border_style=GH_BLUE, padding=(0, 1))

    def _make_layout(self) -> Layout:
        """Create the complete TUI layout."""
        monitor = self.monitor
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=HEADER_ROWS),
            Layout(name="body"),
            Layout(name="footer", size=FOOTER_ROWS),
        )
        layout["header"].update(self._make_header())
        layout["footer"].update(self._make_footer())

        run = monitor.details_run
        if monitor.show_help:
            layout["body"].update(self._make_help_panel())
        elif run is not None:
            layout["body"].split_column(
                Layout(name="summary", size=DETAILS_INFO_ROWS),
                Layout(name="log"),
            )
            layout["summary"].split_row(
                Layout(name="info", ratio=3),
                Layout(name="jobs", ratio=2),
            )
            layout["info"].update(self._make_run_info_panel(run))
            layout["jobs"].update(self._make_jobs_panel())
            layout["log"].update(self._make_log_panel())
        else:
            layout["body"].update(self._make_runs_table())
        return layout

    # -------------------------------------------------------------------------
    # Main loop
    # -------------------------------------------------------------------------

    def _next_timeout(self) -> float:
        due = self.monitor.scheduler.seconds_until_due()
        return MAX_IDLE_SECONDS if due is None else min(due, MAX_IDLE_SECONDS)

    def _post_resize(self, *_: object) -> None:
        width, height = self.console.size
        self.events.post(AppEvent.resized(width, height))

    def _loop(self, live: Live) -> None:
        """Consume events until the monitor stops running."""
        while self.monitor.running:
            event = self.events.get(timeout=self._next_timeout())
            changed = self.monitor.dispatch(event)
            # Steady input would otherwise starve the refresh timer
            if event.event_type != EventType.TICK and self._next_timeout() == 0:
                changed = self.monitor.dispatch(AppEvent.tick()) or changed
            if changed and self.monitor.running:
                live.update(self._make_layout(), refresh=True)

    def run(self) -> None:
        """
        Run the TUI main loop.

        Blocks until the user quits. Background fetches are cancelled
        before returning.
        """
        # Check if we're in a terminal that supports the TUI
        if not self.console.is_terminal:
            self.console.print(
                "[yellow]Warning:[/yellow] Not running in an interactive terminal.",
            )
            self.monitor.quit()
            return

        try:
            import termios
            import tty
        except ImportError:
            # termios/tty not available (Windows without WSL)
            self._run_simple()
            return

        fd = sys.stdin.fileno()
        old_settings = termios.tcgetattr(fd)
        reader = KeyReader(self.events, fd)
        previous_handler = signal.signal(signal.SIGWINCH, self._post_resize)

        try:
            tty.setcbreak(fd)
            reader.start()
            self.monitor.resize(self.console.size.height)
            self.monitor.dispatch(AppEvent.tick())

            with Live(
                self._make_layout(),
                console=self.console,
                auto_refresh=False,
                screen=True,
            ) as live:
                self._loop(live)

        except KeyboardInterrupt:
            pass  # Clean exit on Ctrl+C
        finally:
            reader.stop()
            self.monitor.quit()
            signal.signal(signal.SIGWINCH, previous_handler)
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)

    def _run_simple(self) -> None:
        """
        Non-interactive loop for environments without termios.

        Redraws on every change and exits on Ctrl+C.
        """
        self.console.print("[yellow]Running in simple mode (no keyboard input)[/yellow]")
        self.console.print("Press Ctrl+C to exit\n")
        self.monitor.resize(self.console.size.height)

        try:
            while self.monitor.running:
                event = self.events.get(timeout=self._next_timeout())
                if self.monitor.dispatch(event):
                    self.console.clear()
                    self.console.print(self._make_layout())
        except KeyboardInterrupt:
            pass
        finally:
            self.monitor.quit()
