"""Adapter around the GitHub CLI and git.

Every operation here is a synchronous translation from an external command
to typed records; there is no state and no retry. Callers that must not
block (the refresh scheduler) run these methods on a worker thread and pass
a ``CancelToken`` so the child process can be killed from the foreground.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

from lazyactions.constants import COMMAND_TIMEOUT_SECONDS
from lazyactions.constants import DEFAULT_RUN_LIMIT
from lazyactions.constants import GH_AUTH_EXIT_CODE
from lazyactions.constants import GH_EXECUTABLE
from lazyactions.constants import GIT_EXECUTABLE
from lazyactions.constants import MAX_LOG_LINES
from lazyactions.exceptions import CommandFailedError
from lazyactions.exceptions import FetchCancelledError
from lazyactions.exceptions import MalformedOutputError
from lazyactions.exceptions import NotAuthenticatedError
from lazyactions.exceptions import RepositoryNotFoundError
from lazyactions.exceptions import ToolNotFoundError
from lazyactions.models import Job
from lazyactions.models import LogLine
from lazyactions.models import RepoContext
from lazyactions.models import Run
from lazyactions.models import RunStatus
from lazyactions.utils import parse_timestamp
from lazyactions.utils import strip_log_timestamp

logger = logging.getLogger(__name__)

# GitHub "status" values that mean the run has not started executing yet
_WAITING_STATUSES = frozenset({"queued", "waiting", "requested", "pending"})

# Conclusions of completed runs that are not failures
_CANCELLED_CONCLUSIONS = frozenset({"cancelled", "skipped"})

_GH_ENV = {"GH_PROMPT_DISABLED": "1", "GH_NO_UPDATE_NOTIFIER": "1", "NO_COLOR": "1"}


class CancelToken:
    """Cancellation handle for one external command invocation.

    The worker running the command attaches the child process; ``cancel``
    may be called from any thread and kills the process if it is running.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._process: subprocess.Popen[str] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            process = self._process
        if process is not None and process.poll() is None:
            logger.debug("Killing cancelled process %d", process.pid)
            process.kill()

    def attach(self, process: subprocess.Popen[str]) -> None:
        with self._lock:
            self._process = process
            cancelled = self._cancelled
        if cancelled:
            process.kill()

    def detach(self) -> None:
        with self._lock:
            self._process = None


@dataclass(frozen=True)
class FetchHints:
    """Server-side narrowing of a run fetch.

    Attributes:
        limit: Number of most recent runs to request.
        branch: Only request runs of this branch.
        actor: Only request runs triggered by this user.
    """

    limit: int = DEFAULT_RUN_LIMIT
    branch: str | None = None
    actor: str | None = None

    def query(self) -> str:
        params: dict[str, Any] = {"per_page": self.limit}
        if self.branch:
            params["branch"] = self.branch
        if self.actor:
            params["actor"] = self.actor
        return urlencode(params)


def map_status(status: str | None, conclusion: str | None) -> RunStatus:
    """
    Collapse GitHub's status/conclusion pair into a ``RunStatus``.

    Args:
        status: The run's ``status`` field.
        conclusion: The run's ``conclusion`` field (set once completed).

    Returns:
        The corresponding run status.
    """
    if status == "completed":
        if conclusion == "success":
            return RunStatus.SUCCESS
        if conclusion in _CANCELLED_CONCLUSIONS:
            return RunStatus.CANCELLED
        return RunStatus.FAILURE
    if status in _WAITING_STATUSES:
        return RunStatus.QUEUED
    return RunStatus.IN_PROGRESS


def parse_run(payload: dict[str, Any]) -> Run:
    """
    Build a ``Run`` from one entry of the ``workflow_runs`` API array.

    Raises:
        KeyError: If the id is missing.
        ValueError: If no start timestamp can be parsed.
    """
    status = map_status(payload.get("status"), payload.get("conclusion"))
    started_at = parse_timestamp(payload.get("run_started_at")) or parse_timestamp(
        payload.get("created_at")
    )
    if started_at is None:
        raise ValueError(f"run {payload.get('id')} has no start time")

    duration = None
    if status.is_terminal:
        updated_at = parse_timestamp(payload.get("updated_at"))
        if updated_at is not None:
            duration = max(0.0, (updated_at - started_at).total_seconds())

    actor = payload.get("actor") or payload.get("triggering_actor") or {}
    return Run(
        run_id=int(payload["id"]),
        workflow=payload.get("name") or "",
        branch=payload.get("head_branch") or "",
        actor=actor.get("login") or "",
        status=status,
        started_at=started_at,
        duration=duration,
        title=payload.get("display_title") or "",
        event=payload.get("event") or "",
        url=payload.get("html_url") or "",
        number=payload.get("run_number"),
    )


def parse_runs(text: str, command: str) -> tuple[Run, ...]:
    """
    Parse the JSON body of the runs endpoint.

    Raises:
        MalformedOutputError: If the body is not the expected shape.
    """
    try:
        body = json.loads(text)
        return tuple(parse_run(entry) for entry in body["workflow_runs"])
    except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
        raise MalformedOutputError(command, cause=e) from e


def parse_job(payload: dict[str, Any]) -> Job:
    """
    Build a ``Job`` from one entry of ``gh run view --json jobs``.

    GitHub reports ``0001-01-01T00:00:00Z`` for timestamps that are not set
    yet; those become None.

    Raises:
        KeyError: If the id is missing.
    """
    status = map_status(payload.get("status"), payload.get("conclusion"))
    started_at = parse_timestamp(payload.get("startedAt"))
    completed_at = parse_timestamp(payload.get("completedAt"))
    if started_at is not None and started_at.year <= 1:
        started_at = None
    if completed_at is not None and (completed_at.year <= 1 or not status.is_terminal):
        completed_at = None
    return Job(
        job_id=int(payload["databaseId"]),
        name=payload.get("name") or "",
        status=status,
        started_at=started_at,
        completed_at=completed_at,
    )


def parse_jobs(text: str, command: str) -> tuple[Job, ...]:
    """
    Parse the JSON printed by ``gh run view <id> --json jobs``.

    Raises:
        MalformedOutputError: If the output is not the expected shape.
    """
    try:
        body = json.loads(text)
        return tuple(parse_job(entry) for entry in body["jobs"])
    except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
        raise MalformedOutputError(command, cause=e) from e


def parse_log(text: str, max_lines: int = MAX_LOG_LINES) -> tuple[LogLine, ...]:
    """
    Split ``gh run view --log`` output into log lines.

    Each line has the form ``job<TAB>step<TAB>timestamp message``. Lines that
    do not follow it are kept verbatim with empty job and step. Only the last
    ``max_lines`` lines are returned.
    """
    raw_lines = text.splitlines()
    if len(raw_lines) > max_lines:
        raw_lines = raw_lines[-max_lines:]
    lines = []
    for raw in raw_lines:
        parts = raw.split("\t", 2)
        if len(parts) == 3:
            lines.append(LogLine(parts[0], parts[1], strip_log_timestamp(parts[2])))
        else:
            lines.append(LogLine("", "", raw))
    return tuple(lines)


class GhCli:
    """
    Client for the ``gh`` and ``git`` executables.

    Attributes:
        cwd: Working directory the commands run in (the monitored repository).
        timeout: Seconds before a command is killed.
    """

    def __init__(
        self,
        cwd: Path | None = None,
        gh_executable: str = GH_EXECUTABLE,
        git_executable: str = GIT_EXECUTABLE,
        timeout: float = COMMAND_TIMEOUT_SECONDS,
    ) -> None:
        self.cwd = cwd or Path.cwd()
        self.gh_executable = gh_executable
        self.git_executable = git_executable
        self.timeout = timeout

    def _run(
        self,
        executable: str,
        args: list[str],
        cancel: CancelToken | None = None,
    ) -> str:
        """
        Run a command and return its stdout.

        Raises:
            ToolNotFoundError: The executable does not exist.
            NotAuthenticatedError: gh reported missing authentication.
            CommandFailedError: Non-zero exit status or timeout.
            FetchCancelledError: ``cancel`` fired while the command ran.
        """
        command = " ".join([executable, *args])
        if cancel is not None and cancel.cancelled:
            raise FetchCancelledError(command)

        logger.debug("Running %s", command)
        try:
            process = subprocess.Popen(
                [executable, *args],
                cwd=self.cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env={**os.environ, **_GH_ENV},
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(command) from e

        if cancel is not None:
            cancel.attach(process)
        try:
            stdout, stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            _, stderr = process.communicate()
            raise CommandFailedError(
                command,
                None,
                stderr,
                message=f"`{command}` timed out after {self.timeout:g}s",
            ) from None
        finally:
            if cancel is not None:
                cancel.detach()

        if cancel is not None and cancel.cancelled:
            raise FetchCancelledError(command)
        if process.returncode != 0:
            if executable == self.gh_executable and (
                process.returncode == GH_AUTH_EXIT_CODE or "gh auth login" in stderr
            ):
                raise NotAuthenticatedError(command)
            raise CommandFailedError(command, process.returncode, stderr)
        return stdout

    def _gh(self, *args: str, cancel: CancelToken | None = None) -> str:
        return self._run(self.gh_executable, list(args), cancel)

    def _git(self, *args: str) -> str:
        return self._run(self.git_executable, list(args))

    # -------------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------------

    def check_auth(self) -> None:
        """
        Verify that gh is installed and logged in.

        Raises:
            ToolNotFoundError: gh is not installed.
            NotAuthenticatedError: gh is not logged in.
        """
        try:
            self._gh("auth", "status")
        except CommandFailedError as e:
            raise NotAuthenticatedError(e.command) from e

    def fetch_current_branch(self) -> str:
        """Return the checked-out branch (``HEAD`` when detached)."""
        try:
            return self._git("rev-parse", "--abbrev-ref", "HEAD").strip()
        except CommandFailedError as e:
            raise RepositoryNotFoundError(
                str(self.cwd), f"{self.cwd} is not inside a git repository"
            ) from e

    def fetch_repo_name(self) -> str:
        """Return ``owner/name`` of the GitHub repository gh resolves for ``cwd``."""
        try:
            name = self._gh("repo", "view", "--json", "nameWithOwner", "--jq", ".nameWithOwner")
        except CommandFailedError as e:
            raise RepositoryNotFoundError(
                str(self.cwd), f"No GitHub repository found for {self.cwd}: {e.stderr}"
            ) from e
        return name.strip()

    def fetch_current_user(self) -> str:
        """Return the login of the authenticated user."""
        return self._gh("api", "user", "--jq", ".login").strip()

    def resolve_context(self) -> RepoContext:
        """
        Resolve everything the monitor needs to know once, before starting.

        Raises:
            StartupError: If gh or git is missing, gh is not authenticated, or
                the working directory is not a GitHub repository.
        """
        self.check_auth()
        branch = self.fetch_current_branch()
        name = self.fetch_repo_name()
        user = self.fetch_current_user()
        logger.info("Monitoring %s (branch %s, user %s)", name, branch, user)
        return RepoContext(name=name, branch=branch, user=user)

    # -------------------------------------------------------------------------
    # Fetches
    # -------------------------------------------------------------------------

    def fetch_runs(
        self,
        hints: FetchHints | None = None,
        cancel: CancelToken | None = None,
    ) -> tuple[Run, ...]:
        """
        Fetch the most recent workflow runs, newest first.

        Args:
            hints: Page size and optional server-side narrowing.
            cancel: Handle that aborts the command.

        Raises:
            FetchError: On any failure.
        """
        hints = hints or FetchHints()
        path = f"repos/{{owner}}/{{repo}}/actions/runs?{hints.query()}"
        args = ["api", "-H", "Accept: application/vnd.github+json", path]
        text = self._gh(*args, cancel=cancel)
        return parse_runs(text, " ".join([self.gh_executable, *args]))

    def fetch_log(self, run_id: int, cancel: CancelToken | None = None) -> tuple[LogLine, ...]:
        """
        Fetch the log of one run.

        Args:
            run_id: The run whose log to fetch.
            cancel: Handle that aborts the command.

        Raises:
            FetchError: On any failure, including runs still in progress for
                which GitHub does not serve logs yet.
        """
        return parse_log(self._gh("run", "view", str(run_id), "--log", cancel=cancel))

    def fetch_jobs(self, run_id: int, cancel: CancelToken | None = None) -> tuple[Job, ...]:
        """
        Fetch the jobs of one run with their status and timing.

        Unlike the log, jobs are available while the run is still in progress.

        Raises:
            FetchError: On any failure.
        """
        args = ["run", "view", str(run_id), "--json", "jobs"]
        text = self._gh(*args, cancel=cancel)
        return parse_jobs(text, " ".join([self.gh_executable, *args]))
