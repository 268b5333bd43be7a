"""Shared test fixtures for lazyactions tests."""

from __future__ import annotations

from collections.abc import Callable
from collections.abc import Generator
from concurrent.futures import Executor
from concurrent.futures import Future
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import Any
from unittest.mock import MagicMock

import pytest

from lazyactions.app import RunMonitor
from lazyactions.config import MonitorConfig
from lazyactions.events import EventQueue
from lazyactions.models import Job
from lazyactions.models import LogLine
from lazyactions.models import RepoContext
from lazyactions.models import Run
from lazyactions.models import RunStatus
from lazyactions.scheduler import RefreshScheduler
from lazyactions.state.clock import FrozenClock

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_run(
    run_id: int,
    workflow: str = "CI",
    branch: str = "main",
    actor: str = "alice",
    status: RunStatus = RunStatus.SUCCESS,
    ts: float = 0.0,
    **kwargs: Any,
) -> Run:
    """Create a Run started ``ts`` seconds after ``BASE_TIME``."""
    return Run(
        run_id=run_id,
        workflow=workflow,
        branch=branch,
        actor=actor,
        status=status,
        started_at=BASE_TIME + timedelta(seconds=ts),
        **kwargs,
    )


def make_job(
    job_id: int,
    name: str = "build",
    status: RunStatus = RunStatus.SUCCESS,
    ts: float | None = 0.0,
    duration: float | None = 60.0,
) -> Job:
    """Create a Job started ``ts`` seconds after ``BASE_TIME``; None means not started."""
    started_at = None if ts is None else BASE_TIME + timedelta(seconds=ts)
    completed_at = None
    if started_at is not None and duration is not None:
        completed_at = started_at + timedelta(seconds=duration)
    return Job(job_id, name, status, started_at=started_at, completed_at=completed_at)


def make_api_run(run_id: int, **overrides: Any) -> dict[str, Any]:
    """Create one entry of the ``workflow_runs`` array returned by the API."""
    payload: dict[str, Any] = {
        "id": run_id,
        "name": "CI",
        "head_branch": "main",
        "status": "completed",
        "conclusion": "success",
        "actor": {"login": "alice"},
        "run_started_at": "2024-01-01T10:00:00Z",
        "created_at": "2024-01-01T09:59:50Z",
        "updated_at": "2024-01-01T10:03:07Z",
        "display_title": "Fix the build",
        "event": "push",
        "html_url": f"https://github.com/octo/repo/actions/runs/{run_id}",
        "run_number": run_id,
    }
    payload.update(overrides)
    return payload


class ManualExecutor(Executor):
    """Executor that queues submissions until the test runs them."""

    def __init__(self) -> None:
        self.pending: list[tuple[Future[Any], Callable[..., Any], tuple[Any, ...]]] = []
        self.shutdown_called = False

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future[Any]:
        future: Future[Any] = Future()
        self.pending.append((future, fn, args))
        return future

    def run_next(self) -> None:
        """Run the oldest queued submission."""
        future, fn, args = self.pending.pop(0)
        future.set_result(fn(*args))

    def run_all(self) -> None:
        while self.pending:
            self.run_next()

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        self.shutdown_called = True
        if cancel_futures:
            self.pending.clear()


@pytest.fixture
def clock() -> FrozenClock:
    """A clock frozen at 2024-01-01 UTC with monotonic time 0."""
    return FrozenClock(frozen_monotonic=0.0, frozen_wall=BASE_TIME)


@pytest.fixture
def context() -> RepoContext:
    """The repository context used by filter and monitor tests."""
    return RepoContext(name="octo/repo", branch="main", user="alice")


@pytest.fixture
def events() -> EventQueue:
    return EventQueue()


@pytest.fixture
def executor() -> ManualExecutor:
    return ManualExecutor()


@pytest.fixture
def source() -> MagicMock:
    """A run source returning no runs, one job and a one-line log."""
    source = MagicMock()
    source.fetch_runs.return_value = ()
    source.fetch_jobs.return_value = (make_job(11),)
    source.fetch_log.return_value = (LogLine("build", "Run tests", "ok"),)
    return source


@pytest.fixture
def scheduler(
    source: MagicMock, events: EventQueue, executor: ManualExecutor, clock: FrozenClock
) -> Generator[RefreshScheduler, None, None]:
    scheduler = RefreshScheduler(source, events, interval=5.0, executor=executor, clock=clock)
    yield scheduler
    scheduler.shutdown()


@pytest.fixture
def open_url() -> MagicMock:
    return MagicMock(return_value=True)


@pytest.fixture
def monitor(
    context: RepoContext,
    scheduler: RefreshScheduler,
    clock: FrozenClock,
    open_url: MagicMock,
) -> RunMonitor:
    return RunMonitor(context, MonitorConfig(), scheduler, clock=clock, open_url=open_url)
