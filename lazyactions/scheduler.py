"""Background refresh scheduling.

The scheduler decides when to fetch, runs fetches on a worker thread and
posts their results to the event queue. It never touches the run store:
the foreground loop applies results when it consumes the events.

Guarantees:
    - At most one run fetch is in flight; a tick that fires meanwhile is
      dropped, not queued.
    - The next periodic fetch is due ``interval`` seconds after the previous
      one completed, so a slow ``gh`` lowers the polling rate.
    - All external commands share one worker thread, so two never run at
      the same time.
    - A cancelled fetch's result is never accepted.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Protocol

from lazyactions.constants import DEFAULT_REFRESH_INTERVAL
from lazyactions.events import AppEvent
from lazyactions.events import EventQueue
from lazyactions.exceptions import FetchError
from lazyactions.gh_cli import CancelToken
from lazyactions.gh_cli import FetchHints
from lazyactions.models import Job
from lazyactions.models import LogLine
from lazyactions.models import Run
from lazyactions.state.clock import Clock
from lazyactions.state.clock import get_clock

logger = logging.getLogger(__name__)


class RunSource(Protocol):
    """The part of the data source adapter the scheduler uses."""

    def fetch_runs(
        self, hints: FetchHints | None = None, cancel: CancelToken | None = None
    ) -> tuple[Run, ...]: ...

    def fetch_jobs(self, run_id: int, cancel: CancelToken | None = None) -> tuple[Job, ...]: ...

    def fetch_log(self, run_id: int, cancel: CancelToken | None = None) -> tuple[LogLine, ...]: ...


@dataclass(frozen=True)
class PendingFetch:
    """A run fetch that has been submitted and not yet completed."""

    generation: int
    token: CancelToken


class RefreshScheduler:
    """
    Drives periodic and manual run fetches.

    Attributes:
        interval: Seconds between the end of one fetch and the next.
        hints: Parameters passed to every run fetch.
    """

    def __init__(
        self,
        source: RunSource,
        events: EventQueue,
        interval: float = DEFAULT_REFRESH_INTERVAL,
        hints: FetchHints | None = None,
        executor: Executor | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.interval = interval
        self.hints = hints or FetchHints()
        self._source = source
        self._events = events
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="lazyactions-fetch"
        )
        self._clock = clock or get_clock()
        self._generation = 0
        self._pending: PendingFetch | None = None
        self._log_tokens: dict[int, CancelToken] = {}
        self._next_due = self._clock.monotonic()
        self._closed = False

    @property
    def in_flight(self) -> bool:
        return self._pending is not None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def closed(self) -> bool:
        return self._closed

    def log_in_flight(self, run_id: int) -> bool:
        return run_id in self._log_tokens

    def seconds_until_due(self) -> float | None:
        """Seconds until the next periodic fetch, or None while one is in flight."""
        if self._pending is not None or self._closed:
            return None
        return max(0.0, self._next_due - self._clock.monotonic())

    # -------------------------------------------------------------------------
    # Run fetches
    # -------------------------------------------------------------------------

    def tick(self) -> bool:
        """
        Start a periodic fetch if one is due.

        Returns:
            True if a fetch was started. A tick while a fetch is in flight
            is coalesced into nothing.
        """
        if self._closed:
            return False
        if self._pending is not None:
            logger.debug("Refresh tick coalesced; generation %d in flight", self._generation)
            return False
        if self._clock.monotonic() < self._next_due:
            return False
        self._start()
        return True

    def request(self) -> bool:
        """
        Start a fetch now, cancelling any stale one still in flight.

        Returns:
            True if a fetch was started.
        """
        if self._closed:
            return False
        if self._pending is not None:
            logger.info("Cancelling stale refresh generation %d", self._pending.generation)
            self._pending.token.cancel()
        self._start()
        return True

    def complete(self, generation: int) -> bool:
        """
        Acknowledge a RUNS_FETCHED event.

        Args:
            generation: The generation carried by the event.

        Returns:
            True if the result belongs to the current fetch and should be
            applied; False for cancelled or superseded fetches.
        """
        pending = self._pending
        if self._closed or pending is None or pending.generation != generation:
            logger.debug("Discarding result of stale refresh generation %d", generation)
            return False
        self._pending = None
        self._next_due = self._clock.monotonic() + self.interval
        return True

    def _start(self) -> None:
        self._generation += 1
        pending = PendingFetch(generation=self._generation, token=CancelToken())
        self._pending = pending
        logger.debug("Starting refresh generation %d", pending.generation)
        self._executor.submit(self._fetch_runs, pending)

    def _fetch_runs(self, pending: PendingFetch) -> None:
        """Worker-thread body of a run fetch."""
        try:
            runs = self._source.fetch_runs(self.hints, cancel=pending.token)
        except FetchError as e:
            self._events.post(AppEvent.runs_fetched(pending.generation, error=e))
        except Exception as e:
            logger.exception("Unexpected error during refresh generation %d", pending.generation)
            self._events.post(
                AppEvent.runs_fetched(pending.generation, error=FetchError("refresh", cause=e))
            )
        else:
            self._events.post(AppEvent.runs_fetched(pending.generation, runs=runs))

    # -------------------------------------------------------------------------
    # Log fetches
    # -------------------------------------------------------------------------

    def fetch_log(self, run_id: int) -> bool:
        """
        Start fetching the jobs and log of a run.

        Returns:
            True if a fetch was started, False if one is already in flight
            for this run or the scheduler is shut down.
        """
        if self._closed or run_id in self._log_tokens:
            return False
        token = CancelToken()
        self._log_tokens[run_id] = token
        logger.debug("Fetching log of run %d", run_id)
        self._executor.submit(self._fetch_log, run_id, token)
        return True

    def complete_log(self, run_id: int) -> bool:
        """Acknowledge a LOG_FETCHED event; False if it was not expected."""
        return self._log_tokens.pop(run_id, None) is not None and not self._closed

    def _fetch_log(self, run_id: int, token: CancelToken) -> None:
        """Worker-thread body of a details fetch: the jobs, then the log."""
        jobs: tuple[Job, ...] = ()
        try:
            jobs = self._source.fetch_jobs(run_id, cancel=token)
            lines = self._source.fetch_log(run_id, cancel=token)
        except FetchError as e:
            self._events.post(AppEvent.log_fetched(run_id, jobs=jobs, error=e))
        except Exception as e:
            logger.exception("Unexpected error fetching details of run %d", run_id)
            self._events.post(
                AppEvent.log_fetched(run_id, jobs=jobs, error=FetchError("log", cause=e))
            )
        else:
            self._events.post(AppEvent.log_fetched(run_id, lines=lines, jobs=jobs))

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    def shutdown(self) -> None:
        """Cancel everything in flight and stop the worker."""
        if self._closed:
            return
        self._closed = True
        if self._pending is not None:
            self._pending.token.cancel()
            self._pending = None
        for token in self._log_tokens.values():
            token.cancel()
        self._log_tokens.clear()
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.debug("Refresh scheduler shut down")
