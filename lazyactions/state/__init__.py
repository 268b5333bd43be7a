"""In-memory session state: run store, filters, navigation and clock."""

from lazyactions.state.clock import Clock
from lazyactions.state.clock import FrozenClock
from lazyactions.state.clock import SystemClock
from lazyactions.state.clock import get_clock
from lazyactions.state.clock import reset_clock
from lazyactions.state.clock import set_clock
from lazyactions.state.filters import FilterSet
from lazyactions.state.filters import apply_filters
from lazyactions.state.navigation import DetailsView
from lazyactions.state.navigation import ListView
from lazyactions.state.navigation import Navigator
from lazyactions.state.run_store import ReconcileResult
from lazyactions.state.run_store import RunStore

__all__ = [
    "Clock",
    "DetailsView",
    "FilterSet",
    "FrozenClock",
    "ListView",
    "Navigator",
    "ReconcileResult",
    "RunStore",
    "SystemClock",
    "apply_filters",
    "get_clock",
    "reset_clock",
    "set_clock",
]
