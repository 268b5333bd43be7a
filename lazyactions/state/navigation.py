"""Navigation state machine for the run list and the details/log view.

The view is a tagged variant: either a ``ListView`` holding the selection and
list scroll offset, or a ``DetailsView`` holding the open run and the log
scroll offset, with the list state it came from kept as ``parent`` so closing
the details restores it. This makes combinations such as "log scroll while in
the list" unrepresentable.

Selection is tracked by position in the visible sequence but re-anchored on
the run identifier whenever the sequence changes, so a refresh that moves the
selected run to another row keeps it selected.
"""

from __future__ import annotations

from collections.abc import Collection
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import replace
from typing import Union

from lazyactions.constants import DEFAULT_VIEWPORT_HEIGHT
from lazyactions.utils import clamp


@dataclass(frozen=True)
class ListView:
    """The run table.

    Attributes:
        selected: Index into the visible sequence, None when it is empty.
        scroll: Index of the first row shown.
    """

    selected: int | None = None
    scroll: int = 0


@dataclass(frozen=True)
class DetailsView:
    """The details/log panel of one run.

    Attributes:
        run_id: The run whose details are shown.
        parent: The list state to return to.
        log_scroll: Index of the first log line shown.
    """

    run_id: int
    parent: ListView
    log_scroll: int = 0


View = Union[ListView, DetailsView]


class Navigator:
    """
    Owns the current view and applies navigation transitions.

    Every transition method returns True when the view changed, which the
    dispatcher uses to decide whether a redraw is needed.

    Attributes:
        view: The current view.
        viewport: Number of run rows the list can show.
        log_viewport: Number of log lines the details panel can show.
    """

    def __init__(
        self,
        viewport: int = DEFAULT_VIEWPORT_HEIGHT,
        log_viewport: int = DEFAULT_VIEWPORT_HEIGHT,
    ) -> None:
        self.view: View = ListView()
        self.viewport = max(1, viewport)
        self.log_viewport = max(1, log_viewport)
        self._visible_ids: tuple[int, ...] = ()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def in_details(self) -> bool:
        return isinstance(self.view, DetailsView)

    @property
    def list_view(self) -> ListView:
        """The list state, whether shown or underneath the details view."""
        return self.view.parent if isinstance(self.view, DetailsView) else self.view

    @property
    def selected_index(self) -> int | None:
        return self.list_view.selected

    @property
    def selected_id(self) -> int | None:
        index = self.list_view.selected
        if index is None or index >= len(self._visible_ids):
            return None
        return self._visible_ids[index]

    @property
    def details_run_id(self) -> int | None:
        return self.view.run_id if isinstance(self.view, DetailsView) else None

    def window(self) -> range:
        """Indices of the visible sequence that fall inside the list viewport."""
        scroll = self.list_view.scroll
        return range(scroll, min(scroll + self.viewport, len(self._visible_ids)))

    # -------------------------------------------------------------------------
    # List transitions
    # -------------------------------------------------------------------------

    def move(self, delta: int) -> bool:
        """Move the selection by ``delta`` rows, clamped, without wrapping."""
        if not isinstance(self.view, ListView) or self.view.selected is None:
            return False
        target = clamp(self.view.selected + delta, 0, len(self._visible_ids) - 1)
        return self._set_view(self._scrolled(ListView(target, self.view.scroll)))

    def page(self, pages: int) -> bool:
        return self.move(pages * self.viewport)

    def open_details(self) -> int | None:
        """
        Enter the details view for the selected run.

        Returns:
            The run id that was opened, or None if nothing is selected or the
            details view is already open.
        """
        if not isinstance(self.view, ListView):
            return None
        run_id = self.selected_id
        if run_id is None:
            return None
        self.view = DetailsView(run_id=run_id, parent=self.view)
        return run_id

    # -------------------------------------------------------------------------
    # Details transitions
    # -------------------------------------------------------------------------

    def close(self) -> bool:
        """Return from the details view to the list, selection preserved."""
        if not isinstance(self.view, DetailsView):
            return False
        self.view = self.view.parent
        return True

    def scroll_log(self, delta: int, log_length: int) -> bool:
        """
        Scroll the log by ``delta`` lines.

        Args:
            delta: Lines to move; negative scrolls towards the top.
            log_length: Number of loaded log lines.
        """
        if not isinstance(self.view, DetailsView):
            return False
        max_scroll = max(0, log_length - self.log_viewport)
        target = clamp(self.view.log_scroll + delta, 0, max_scroll)
        return self._set_view(replace(self.view, log_scroll=target))

    def log_top(self) -> bool:
        if not isinstance(self.view, DetailsView):
            return False
        return self._set_view(replace(self.view, log_scroll=0))

    def log_bottom(self, log_length: int) -> bool:
        if not isinstance(self.view, DetailsView):
            return False
        return self._set_view(
            replace(self.view, log_scroll=max(0, log_length - self.log_viewport))
        )

    # -------------------------------------------------------------------------
    # External changes
    # -------------------------------------------------------------------------

    def sync(self, visible_ids: Sequence[int], store_ids: Collection[int]) -> bool:
        """
        Re-clamp navigation after the visible sequence changed.

        The selected run keeps its selection wherever it moved. If it is gone,
        the selection stays at the same position clamped to the new length,
        or becomes None when nothing is visible. The details view is left when
        its run disappeared from the store or nothing is visible.

        While details are open the list selection is anchored on the open run,
        not on whatever row the selection last landed on. If the open run is
        filtered out of the visible sequence but still stored, the details stay
        open over the nearest row, and the selection returns to the open run as
        soon as a later refresh makes it visible again.

        Args:
            visible_ids: Identifiers of the new visible sequence, in order.
            store_ids: Identifiers currently held by the run store.

        Returns:
            True if the view changed.
        """
        if isinstance(self.view, DetailsView):
            previous_id: int | None = self.view.run_id
        else:
            previous_id = self.selected_id
        self._visible_ids = tuple(visible_ids)
        current = self.list_view

        if not self._visible_ids:
            selected = None
        elif previous_id is not None and previous_id in self._visible_ids:
            selected = self._visible_ids.index(previous_id)
        elif current.selected is None:
            selected = 0
        else:
            selected = clamp(current.selected, 0, len(self._visible_ids) - 1)
        list_view = self._scrolled(ListView(selected, current.scroll))

        if isinstance(self.view, DetailsView):
            if selected is None or self.view.run_id not in store_ids:
                return self._set_view(list_view)
            return self._set_view(replace(self.view, parent=list_view))
        return self._set_view(list_view)

    def resize(self, viewport: int, log_viewport: int, log_length: int = 0) -> bool:
        """Adopt new viewport heights and re-clamp scroll offsets."""
        self.viewport = max(1, viewport)
        self.log_viewport = max(1, log_viewport)
        list_view = self._scrolled(self.list_view)
        if isinstance(self.view, DetailsView):
            max_scroll = max(0, log_length - self.log_viewport)
            return self._set_view(
                replace(
                    self.view,
                    parent=list_view,
                    log_scroll=clamp(self.view.log_scroll, 0, max_scroll),
                )
            )
        return self._set_view(list_view)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _scrolled(self, list_view: ListView) -> ListView:
        """Adjust the scroll offset so the selection sits inside the viewport."""
        if list_view.selected is None:
            return ListView(None, 0)
        selected = list_view.selected
        scroll = list_view.scroll
        if selected < scroll:
            scroll = selected
        elif selected >= scroll + self.viewport:
            scroll = selected - self.viewport + 1
        scroll = clamp(scroll, 0, max(0, len(self._visible_ids) - self.viewport))
        return ListView(selected, scroll)

    def _set_view(self, view: View) -> bool:
        if view == self.view:
            return False
        self.view = view
        return True
