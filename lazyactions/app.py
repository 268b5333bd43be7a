"""Event dispatcher: applies events to the monitor's state.

``RunMonitor`` owns the run store, the filter set, the navigation state and
the refresh scheduler. Each call to ``dispatch`` applies exactly one event
and reports whether anything visible changed. It performs no I/O of its own
besides asking the scheduler to start background work, so it can be driven
synchronously in tests.
"""

from __future__ import annotations

import logging
import webbrowser
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import replace
from datetime import datetime
from enum import Enum

from lazyactions.config import MonitorConfig
from lazyactions.constants import DETAILS_CHROME_ROWS
from lazyactions.constants import LIST_CHROME_ROWS
from lazyactions.events import AppEvent
from lazyactions.events import EventType
from lazyactions.models import DetailsBlob
from lazyactions.models import DetailsState
from lazyactions.models import RepoContext
from lazyactions.models import Run
from lazyactions.scheduler import RefreshScheduler
from lazyactions.state.clock import Clock
from lazyactions.state.clock import get_clock
from lazyactions.state.filters import FilterSet
from lazyactions.state.filters import apply_filters
from lazyactions.state.navigation import Navigator
from lazyactions.state.run_store import RunStore

logger = logging.getLogger(__name__)

QUIT_KEYS = frozenset({"q", "Q", "ctrl+c"})
CLOSE_KEYS = frozenset({"escape", "left", "h", "backspace"})
FILTER_KEYS = {"b": "branch_only", "u": "user_only", "l": "latest_only"}


class RefreshState(Enum):
    """Outcome of the most recent run fetch."""

    IDLE = "idle"
    FETCHING = "fetching"
    OK = "ok"
    FAILED = "failed"


@dataclass(frozen=True)
class RefreshStatus:
    """What the header shows about refreshing.

    Attributes:
        state: Current refresh state.
        message: Error text when FAILED.
        last_success: Wall-clock time of the last applied snapshot.
    """

    state: RefreshState = RefreshState.IDLE
    message: str = ""
    last_success: datetime | None = None

    def describe(self) -> str:
        if self.state == RefreshState.FETCHING:
            return "Fetching..."
        if self.state == RefreshState.FAILED:
            return f"Refresh failed: {self.message}"
        if self.last_success is not None:
            return f"Updated {self.last_success.astimezone().strftime('%H:%M:%S')}"
        return "Initializing..."


class RunMonitor:
    """
    State engine of the run monitor.

    Attributes:
        context: Repository, branch and user resolved at startup.
        filters: The active filter set.
        store: Last reconciled runs and their logs.
        navigator: Selection, scroll and view state.
        scheduler: Background fetch scheduler.
        status: Refresh status for the header.
        visible: Runs after filtering, in display order.
        running: False once the user quit.
        show_help: Whether the help overlay is shown.
        notice: One-off message shown in the footer until the next key.
        clock: Time source for refresh timestamps and run ages.
    """

    def __init__(
        self,
        context: RepoContext,
        config: MonitorConfig,
        scheduler: RefreshScheduler,
        clock: Clock | None = None,
        open_url: Callable[[str], bool] = webbrowser.open,
    ) -> None:
        self.context = context
        self.config = config
        self.filters: FilterSet = config.filters
        self.store = RunStore()
        self.navigator = Navigator()
        self.scheduler = scheduler
        self.status = RefreshStatus()
        self.visible: tuple[Run, ...] = ()
        self.running = True
        self.show_help = False
        self.notice: str | None = None
        self.clock = clock or get_clock()
        self._open_url = open_url

    # -------------------------------------------------------------------------
    # Queries used by the renderer
    # -------------------------------------------------------------------------

    @property
    def selected_run(self) -> Run | None:
        run_id = self.navigator.selected_id
        return self.store.get(run_id) if run_id is not None else None

    @property
    def details_run(self) -> Run | None:
        run_id = self.navigator.details_run_id
        return self.store.get(run_id) if run_id is not None else None

    @property
    def details_blob(self) -> DetailsBlob | None:
        run_id = self.navigator.details_run_id
        return self.store.details_for(run_id) if run_id is not None else None

    def visible_window(self) -> list[tuple[int, Run]]:
        """(index, run) pairs inside the list viewport."""
        return [(i, self.visible[i]) for i in self.navigator.window()]

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def dispatch(self, event: AppEvent) -> bool:
        """
        Apply one event.

        Args:
            event: The event to apply.

        Returns:
            True if a redraw is needed.
        """
        if not self.running:
            return False
        if event.event_type == EventType.KEY and event.key is not None:
            return self._handle_key(event.key)
        if event.event_type == EventType.TICK:
            return self._handle_tick()
        if event.event_type == EventType.RESIZE and event.height is not None:
            return self.resize(event.height)
        if event.event_type == EventType.RUNS_FETCHED and event.generation is not None:
            return self._handle_runs_fetched(event)
        if event.event_type == EventType.LOG_FETCHED and event.run_id is not None:
            return self._handle_log_fetched(event)
        return False

    def quit(self) -> None:
        """Cancel background work and stop the loop."""
        if not self.running:
            return
        logger.info("Quitting")
        self.scheduler.shutdown()
        self.running = False

    def resize(self, height: int) -> bool:
        """
        Adapt viewports to a terminal ``height`` rows tall.

        Returns:
            Always True: the layout depends on the terminal size even when
            no offset had to move.
        """
        self.navigator.resize(
            height - LIST_CHROME_ROWS,
            height - DETAILS_CHROME_ROWS,
            self._log_length(),
        )
        return True

    def _handle_tick(self) -> bool:
        if self.scheduler.tick():
            return self._set_status(replace(self.status, state=RefreshState.FETCHING))
        return False

    def _handle_runs_fetched(self, event: AppEvent) -> bool:
        if event.generation is None or not self.scheduler.complete(event.generation):
            return False
        if event.error is not None:
            logger.warning("Refresh failed: %s", event.error.message)
            return self._set_status(
                replace(self.status, state=RefreshState.FAILED, message=event.error.message)
            )
        result = self.store.reconcile(event.runs or ())
        if result.changed:
            self._refresh_visible()
        self.status = RefreshStatus(state=RefreshState.OK, last_success=self.clock.wall())
        return True

    def _handle_log_fetched(self, event: AppEvent) -> bool:
        if event.run_id is None or not self.scheduler.complete_log(event.run_id):
            return False
        if event.error is not None:
            logger.warning("Log fetch for run %d failed: %s", event.run_id, event.error.message)
        changed = self.store.resolve_details(
            event.run_id, lines=event.lines, error=event.error, jobs=event.jobs
        )
        return changed and self.navigator.details_run_id == event.run_id

    def _refresh_visible(self) -> bool:
        """Recompute the visible sequence and re-clamp navigation."""
        self.visible = apply_filters(self.store, self.filters, self.context)
        return self.navigator.sync([run.run_id for run in self.visible], self.store.ids())

    def _set_status(self, status: RefreshStatus) -> bool:
        if status == self.status:
            return False
        self.status = status
        return True

    def _log_length(self) -> int:
        blob = self.details_blob
        if blob is None or blob.state != DetailsState.READY:
            return 0
        return len(blob.lines)

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    def _handle_key(self, key: str) -> bool:
        """Apply a keypress; see the help panel for the bindings."""
        had_notice = self.notice is not None
        self.notice = None

        if key in QUIT_KEYS:
            self.quit()
            return True

        # Any key closes help
        if self.show_help:
            self.show_help = False
            return True
        if key == "?":
            self.show_help = True
            return True

        if key == "o":
            self._open_selected()
            return True

        if self.navigator.in_details:
            return self._handle_details_key(key) or had_notice
        return self._handle_list_key(key) or had_notice

    def _handle_list_key(self, key: str) -> bool:
        if key in ("up", "k"):
            return self.navigator.move(-1)
        if key in ("down", "j"):
            return self.navigator.move(1)
        if key == "pageup":
            return self.navigator.page(-1)
        if key == "pagedown":
            return self.navigator.page(1)
        if key in ("home", "g"):
            return self.navigator.move(-len(self.visible))
        if key in ("end", "G"):
            return self.navigator.move(len(self.visible))
        if key == "enter":
            return self._open_details()
        if key in FILTER_KEYS:
            self.filters = self.filters.toggle(FILTER_KEYS[key])
            logger.debug("Filters now: %s", self.filters.describe(self.context))
            self._refresh_visible()
            return True
        if key == "r":
            return self._request_refresh()
        return False

    def _handle_details_key(self, key: str) -> bool:
        length = self._log_length()
        if key in CLOSE_KEYS:
            return self.navigator.close()
        if key in ("up", "k"):
            return self.navigator.scroll_log(-1, length)
        if key in ("down", "j"):
            return self.navigator.scroll_log(1, length)
        if key in ("pagedown", "right", " ", "ctrl+d"):
            return self.navigator.scroll_log(self.navigator.log_viewport, length)
        if key in ("pageup", "ctrl+u"):
            return self.navigator.scroll_log(-self.navigator.log_viewport, length)
        if key in ("home", "g"):
            return self.navigator.log_top()
        if key in ("end", "G"):
            return self.navigator.log_bottom(length)
        if key == "r":
            blob = self.details_blob
            if blob is not None and blob.state == DetailsState.FAILED:
                return self._load_details(blob.run_id)
            return self._request_refresh()
        return False

    def _open_details(self) -> bool:
        run_id = self.navigator.open_details()
        if run_id is None:
            return False
        self._load_details(run_id)
        return True

    def _load_details(self, run_id: int) -> bool:
        """Start a log fetch if the run's log is absent or failed."""
        if self.store.begin_details(run_id):
            self.scheduler.fetch_log(run_id)
            return True
        return False

    def _request_refresh(self) -> bool:
        if self.scheduler.request():
            return self._set_status(replace(self.status, state=RefreshState.FETCHING))
        return False

    def _open_selected(self) -> None:
        run = self.details_run or self.selected_run
        if run is None or not run.url:
            self.notice = "No run selected"
            return
        if self._open_url(run.url):
            self.notice = f"Opened {run.url}"
        else:
            self.notice = "Could not open a browser"
