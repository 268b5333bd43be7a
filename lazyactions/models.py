"""Data models for GitHub Actions runs, their jobs and their logs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import NamedTuple

from lazyactions.exceptions import FetchError


class RunStatus(Enum):
    """Lifecycle state of a workflow run."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether the run has finished (successfully or not)."""
        return self in (RunStatus.SUCCESS, RunStatus.FAILURE, RunStatus.CANCELLED)


@dataclass(frozen=True)
class Run:
    """
    One workflow run as reported by GitHub.

    Runs are immutable values; two runs with the same ``run_id`` describe the
    same logical execution, and equality of all fields means nothing changed
    between two fetches.

    Attributes:
        run_id: Stable GitHub identifier of the run.
        workflow: Workflow display name.
        branch: Head branch the run was triggered for.
        actor: Login of the user who triggered the run.
        status: Current lifecycle state.
        started_at: When the run started (timezone aware).
        duration: Wall time in seconds, only set once the run is terminal.
        title: Commit message or PR title shown by GitHub.
        event: Triggering event (push, pull_request, ...).
        url: Web page of the run.
        number: Per-workflow run number.
    """

    run_id: int
    workflow: str
    branch: str
    actor: str
    status: RunStatus
    started_at: datetime
    duration: float | None = None
    title: str = ""
    event: str = ""
    url: str = ""
    number: int | None = None


class LogLine(NamedTuple):
    """A single line of a run log.

    Attributes:
        job: Job the line belongs to (empty if unknown).
        step: Step within the job (empty if unknown).
        message: The log text with the GitHub timestamp prefix removed.
    """

    job: str
    step: str
    message: str


@dataclass(frozen=True)
class Job:
    """One job of a workflow run.

    Attributes:
        job_id: GitHub identifier of the job.
        name: Job display name.
        status: Lifecycle state, mapped like a run's.
        started_at: When the job started, None while queued.
        completed_at: When the job finished, None until terminal.
    """

    job_id: int
    name: str
    status: RunStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return max(0.0, (self.completed_at - self.started_at).total_seconds())


class DetailsState(Enum):
    """Loading state of a run's jobs and log."""

    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class DetailsBlob:
    """Lazily fetched jobs and log content for one run.

    Jobs are fetched before the log, so a FAILED blob may still carry the
    jobs when only the log could not be loaded (GitHub serves no log for a
    run that is still in progress).

    Attributes:
        run_id: Run the details belong to.
        state: Loading state.
        lines: Log lines, populated once READY.
        jobs: The run's jobs, in the order GitHub lists them.
        error: The fetch failure, populated once FAILED.
    """

    run_id: int
    state: DetailsState
    lines: tuple[LogLine, ...] = ()
    jobs: tuple[Job, ...] = ()
    error: FetchError | None = None

    @classmethod
    def loading(cls, run_id: int) -> DetailsBlob:
        return cls(run_id=run_id, state=DetailsState.LOADING)

    @classmethod
    def ready(
        cls, run_id: int, lines: tuple[LogLine, ...], jobs: tuple[Job, ...] = ()
    ) -> DetailsBlob:
        return cls(run_id=run_id, state=DetailsState.READY, lines=lines, jobs=jobs)

    @classmethod
    def failed(cls, run_id: int, error: FetchError, jobs: tuple[Job, ...] = ()) -> DetailsBlob:
        return cls(run_id=run_id, state=DetailsState.FAILED, jobs=jobs, error=error)


@dataclass(frozen=True)
class RepoContext:
    """Facts about the working repository, resolved once at startup.

    Attributes:
        name: ``owner/name`` of the GitHub repository.
        branch: Currently checked-out branch.
        user: Login of the authenticated GitHub user.
    """

    name: str
    branch: str
    user: str


def format_duration(seconds: float | None) -> str:
    """
    Format a duration in seconds as a compact human-readable string.

    Args:
        seconds: Duration in seconds, or None when unknown.

    Returns:
        Strings like ``"45s"``, ``"3m 07s"`` or ``"2h 05m"``; ``"-"`` for None.
    """
    if seconds is None:
        return "-"
    total = max(0, int(seconds))
    if total < 60:
        return f"{total}s"
    minutes, secs = divmod(total, 60)
    if minutes < 60:
        return f"{minutes}m {secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m"
