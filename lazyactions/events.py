"""Events consumed by the monitor's single control loop.

Keyboard input, terminal resizes, timer ticks and background fetch results
all travel through one ``EventQueue`` as immutable ``AppEvent`` values and
are applied in the order the loop observes them.
"""

from __future__ import annotations

import queue
from dataclasses import dataclass
from enum import Enum

from lazyactions.exceptions import FetchError
from lazyactions.models import Job
from lazyactions.models import LogLine
from lazyactions.models import Run


class EventType(Enum):
    """Kinds of events handled by the dispatcher."""

    KEY = "key"
    RESIZE = "resize"
    TICK = "tick"
    RUNS_FETCHED = "runs_fetched"
    LOG_FETCHED = "log_fetched"


@dataclass(frozen=True)
class AppEvent:
    """
    A single event.

    Only the fields relevant to ``event_type`` are set.

    Attributes:
        event_type: What happened.
        key: Normalized key name for KEY events (``"up"``, ``"enter"``, ``"q"``...).
        width: Terminal width for RESIZE events.
        height: Terminal height for RESIZE events.
        generation: Fetch generation for RUNS_FETCHED events.
        run_id: Run the log belongs to for LOG_FETCHED events.
        runs: Fetched snapshot on success.
        lines: Fetched log on success.
        jobs: Jobs of the run, whenever they could be fetched.
        error: Failure of the fetch, if any.
    """

    event_type: EventType
    key: str | None = None
    width: int | None = None
    height: int | None = None
    generation: int | None = None
    run_id: int | None = None
    runs: tuple[Run, ...] | None = None
    lines: tuple[LogLine, ...] | None = None
    jobs: tuple[Job, ...] = ()
    error: FetchError | None = None

    @classmethod
    def key_pressed(cls, key: str) -> AppEvent:
        return cls(EventType.KEY, key=key)

    @classmethod
    def resized(cls, width: int, height: int) -> AppEvent:
        return cls(EventType.RESIZE, width=width, height=height)

    @classmethod
    def tick(cls) -> AppEvent:
        return cls(EventType.TICK)

    @classmethod
    def runs_fetched(
        cls,
        generation: int,
        runs: tuple[Run, ...] | None = None,
        error: FetchError | None = None,
    ) -> AppEvent:
        return cls(EventType.RUNS_FETCHED, generation=generation, runs=runs, error=error)

    @classmethod
    def log_fetched(
        cls,
        run_id: int,
        lines: tuple[LogLine, ...] | None = None,
        jobs: tuple[Job, ...] = (),
        error: FetchError | None = None,
    ) -> AppEvent:
        return cls(EventType.LOG_FETCHED, run_id=run_id, lines=lines, jobs=jobs, error=error)


class EventQueue:
    """Thread-safe FIFO of events with a single consumer.

    Producers (key reader thread, fetch workers, the SIGWINCH handler) call
    ``post``; the control loop calls ``get``, which turns a timeout into a
    TICK event. ``post`` is safe to call from a signal handler that
    interrupts ``get`` on the same thread.
    """

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[AppEvent] = queue.SimpleQueue()

    def post(self, event: AppEvent) -> None:
        self._queue.put(event)

    def get(self, timeout: float | None = None) -> AppEvent:
        """Wait for the next event, or return a TICK after ``timeout`` seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return AppEvent.tick()

    def drain(self) -> list[AppEvent]:
        """Return all immediately available events without waiting."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def __len__(self) -> int:
        return self._queue.qsize()
