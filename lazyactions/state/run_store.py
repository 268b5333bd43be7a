"""Run store: the single source of truth for which runs exist.

The store holds the last successfully fetched snapshot keyed by run id, in
fetch order, together with a side table of lazily fetched run logs. It is
owned by the foreground event loop; background fetches never touch it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from collections.abc import Iterator
from dataclasses import dataclass
from dataclasses import field

from lazyactions.constants import MAX_DISPLAYED_RUNS
from lazyactions.exceptions import FetchError
from lazyactions.models import DetailsBlob
from lazyactions.models import DetailsState
from lazyactions.models import Job
from lazyactions.models import LogLine
from lazyactions.models import Run

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Identifiers affected by one reconciliation.

    Attributes:
        added: Runs present only in the new snapshot.
        removed: Runs present only in the previous snapshot.
        updated: Runs present in both whose fields changed.
    """

    added: frozenset[int] = field(default_factory=frozenset)
    removed: frozenset[int] = field(default_factory=frozenset)
    updated: frozenset[int] = field(default_factory=frozenset)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed or self.updated)


class RunStore:
    """
    Latest reconciled set of runs plus per-run log state.

    Attributes:
        max_runs: Upper bound on stored runs; later entries of an oversized
            snapshot are dropped.
    """

    def __init__(self, max_runs: int = MAX_DISPLAYED_RUNS) -> None:
        self.max_runs = max_runs
        self._runs: dict[int, Run] = {}
        self._details: dict[int, DetailsBlob] = {}

    def __len__(self) -> int:
        return len(self._runs)

    def __iter__(self) -> Iterator[Run]:
        return iter(self._runs.values())

    def __contains__(self, run_id: object) -> bool:
        return run_id in self._runs

    def get(self, run_id: int) -> Run | None:
        return self._runs.get(run_id)

    def ids(self) -> frozenset[int]:
        return frozenset(self._runs)

    def reconcile(self, snapshot: Iterable[Run]) -> ReconcileResult:
        """
        Replace the stored runs with a new snapshot.

        The new mapping is built completely before it is swapped in, so a
        reader never sees a partially applied snapshot. If a snapshot repeats
        an id, its first occurrence wins.

        Args:
            snapshot: Runs in fetch order.

        Returns:
            The added, removed and updated identifiers.
        """
        incoming: dict[int, Run] = {}
        for run in snapshot:
            if len(incoming) >= self.max_runs:
                break
            if run.run_id in incoming:
                logger.debug("Duplicate run id %d in snapshot; keeping first", run.run_id)
                continue
            incoming[run.run_id] = run

        previous = self._runs
        added = frozenset(incoming.keys() - previous.keys())
        removed = frozenset(previous.keys() - incoming.keys())
        updated = frozenset(
            run_id
            for run_id in incoming.keys() & previous.keys()
            if incoming[run_id] != previous[run_id]
        )

        self._runs = incoming
        for run_id in removed:
            self._details.pop(run_id, None)

        result = ReconcileResult(added=added, removed=removed, updated=updated)
        if result.changed:
            logger.debug(
                "Reconciled %d runs: %d added, %d removed, %d updated",
                len(incoming),
                len(added),
                len(removed),
                len(updated),
            )
        return result

    # -------------------------------------------------------------------------
    # Details blobs
    # -------------------------------------------------------------------------

    def details_for(self, run_id: int) -> DetailsBlob | None:
        """Return the log state of a run, or None if it was never requested."""
        return self._details.get(run_id)

    def begin_details(self, run_id: int) -> bool:
        """
        Mark a run's log as loading if it needs to be fetched.

        Args:
            run_id: The run whose details are being opened.

        Returns:
            True if the caller must issue a log fetch, False if the log is
            already loaded or loading, or the run is unknown.
        """
        if run_id not in self._runs:
            return False
        blob = self._details.get(run_id)
        if blob is not None and blob.state != DetailsState.FAILED:
            return False
        self._details[run_id] = DetailsBlob.loading(run_id)
        return True

    def resolve_details(
        self,
        run_id: int,
        lines: tuple[LogLine, ...] | None = None,
        error: FetchError | None = None,
        jobs: tuple[Job, ...] = (),
    ) -> bool:
        """
        Record the outcome of a details fetch.

        Results for runs that have since left the store, or that no longer
        have a fetch pending, are discarded.

        Args:
            run_id: The run the log belongs to.
            lines: The fetched lines on success.
            error: The failure otherwise.
            jobs: The run's jobs, kept even when the log fetch failed.

        Returns:
            True if the stored state changed.
        """
        blob = self._details.get(run_id)
        if run_id not in self._runs or blob is None or blob.state != DetailsState.LOADING:
            logger.debug("Discarding log result for run %d", run_id)
            return False
        if error is not None:
            self._details[run_id] = DetailsBlob.failed(run_id, error, jobs)
        else:
            self._details[run_id] = DetailsBlob.ready(run_id, lines or (), jobs)
        return True
