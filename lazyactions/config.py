"""Session configuration for the monitor."""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field

from lazyactions.constants import DEFAULT_REFRESH_INTERVAL
from lazyactions.constants import DEFAULT_RUN_LIMIT
from lazyactions.constants import MAX_REFRESH_INTERVAL
from lazyactions.constants import MAX_RUN_LIMIT
from lazyactions.constants import MIN_REFRESH_INTERVAL
from lazyactions.exceptions import ConfigurationError
from lazyactions.state.filters import FilterSet


@dataclass(frozen=True)
class MonitorConfig:
    """
    Validated settings for one monitoring session.

    Attributes:
        interval: Seconds between the end of a fetch and the next one.
        limit: Number of recent runs requested per fetch.
        filters: Initial filter set, seeded from the command line.

    Raises:
        ConfigurationError: If a value is out of range.
    """

    interval: float = DEFAULT_REFRESH_INTERVAL
    limit: int = DEFAULT_RUN_LIMIT
    filters: FilterSet = field(default_factory=FilterSet)

    def __post_init__(self) -> None:
        if not MIN_REFRESH_INTERVAL <= self.interval <= MAX_REFRESH_INTERVAL:
            raise ConfigurationError(
                "interval",
                f"Refresh interval must be between {MIN_REFRESH_INTERVAL:g} and "
                f"{MAX_REFRESH_INTERVAL:g} seconds, got {self.interval:g}",
            )
        if not 1 <= self.limit <= MAX_RUN_LIMIT:
            raise ConfigurationError(
                "limit",
                f"Run limit must be between 1 and {MAX_RUN_LIMIT}, got {self.limit}",
            )
