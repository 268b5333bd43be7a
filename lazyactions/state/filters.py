"""Filter engine mapping the run store to the visible run sequence.

Filtering is a pure function of the stored runs, the active filter set and
the repository context; it never fetches and never mutates its input.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import replace

from lazyactions.models import RepoContext
from lazyactions.models import Run

FILTER_NAMES: tuple[str, ...] = ("branch_only", "user_only", "latest_only")


@dataclass(frozen=True)
class FilterSet:
    """Independently toggleable run filters.

    Attributes:
        branch_only: Keep runs on the checked-out branch.
        user_only: Keep runs triggered by the authenticated user.
        latest_only: Keep the most recent run of each workflow.
    """

    branch_only: bool = False
    user_only: bool = False
    latest_only: bool = False

    def toggle(self, name: str) -> FilterSet:
        """Return a copy with filter ``name`` flipped.

        Raises:
            ValueError: If ``name`` is not a known filter.
        """
        if name not in FILTER_NAMES:
            raise ValueError(f"Unknown filter: {name}")
        return replace(self, **{name: not getattr(self, name)})

    @property
    def active(self) -> bool:
        return self.branch_only or self.user_only or self.latest_only

    def describe(self, context: RepoContext) -> str:
        """Human-readable summary such as ``"branch=main, latest"``."""
        parts = []
        if self.branch_only:
            parts.append(f"branch={context.branch}")
        if self.user_only:
            parts.append(f"user={context.user}")
        if self.latest_only:
            parts.append("latest")
        return ", ".join(parts) if parts else "none"


def _recency_key(run: Run) -> tuple[float, int]:
    return (run.started_at.timestamp(), run.run_id)


def latest_per_workflow(runs: Iterable[Run]) -> tuple[Run, ...]:
    """
    Keep only the most recent run of each workflow.

    The most recent run is the one with the latest start time; equal start
    times are broken by the larger run id. The result is ordered newest first
    using the same key, so it is deterministic regardless of input order.

    Args:
        runs: Candidate runs.

    Returns:
        One run per distinct workflow name, newest first.
    """
    latest: dict[str, Run] = {}
    for run in runs:
        current = latest.get(run.workflow)
        if current is None or _recency_key(run) > _recency_key(current):
            latest[run.workflow] = run
    return tuple(sorted(latest.values(), key=_recency_key, reverse=True))


def apply_filters(
    runs: Iterable[Run],
    filters: FilterSet,
    context: RepoContext,
) -> tuple[Run, ...]:
    """
    Compute the visible run sequence.

    Branch and user filters are AND-combined and preserve input order;
    latest-only is applied last and reorders newest first.

    Args:
        runs: Runs in store order.
        filters: The active filter set.
        context: Branch and user the filters compare against.

    Returns:
        The visible runs.
    """
    visible: Iterable[Run] = runs
    if filters.branch_only:
        visible = [r for r in visible if r.branch == context.branch]
    if filters.user_only:
        visible = [r for r in visible if r.actor == context.user]
    if filters.latest_only:
        return latest_per_workflow(visible)
    return tuple(visible)
