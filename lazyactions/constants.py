"""Centralized constants for lazyactions.

This module consolidates configuration constants and magic numbers
used across multiple modules to ensure consistency and make tuning easier.
"""

# =============================================================================
# Refresh Interval Configuration
# =============================================================================

#: Minimum refresh interval in seconds (fastest)
MIN_REFRESH_INTERVAL: float = 2.0

#: Maximum refresh interval in seconds (slowest)
MAX_REFRESH_INTERVAL: float = 300.0

#: Default refresh interval in seconds, measured from the end of the previous fetch
DEFAULT_REFRESH_INTERVAL: float = 5.0

#: Longest the event loop waits for input before emitting a timer tick
MAX_IDLE_SECONDS: float = 1.0

# =============================================================================
# Fetch Limits
# =============================================================================

#: Default number of runs requested per fetch
DEFAULT_RUN_LIMIT: int = 30

#: Largest page size accepted by the GitHub runs endpoint
MAX_RUN_LIMIT: int = 100

#: Upper bound on runs kept in the store (oldest dropped first)
MAX_DISPLAYED_RUNS: int = 300

#: Only the last N lines of a run log are kept in memory
MAX_LOG_LINES: int = 10_000

#: Seconds before an external command is killed and reported as failed
COMMAND_TIMEOUT_SECONDS: float = 60.0

# =============================================================================
# Navigation
# =============================================================================

#: Viewport height used until the renderer reports the real terminal size
DEFAULT_VIEWPORT_HEIGHT: int = 20

# =============================================================================
# External Tools
# =============================================================================

#: GitHub CLI executable
GH_EXECUTABLE: str = "gh"

#: Git executable
GIT_EXECUTABLE: str = "git"

#: Exit code gh uses when authentication is required
GH_AUTH_EXIT_CODE: int = 4

# =============================================================================
# Screen Layout
# =============================================================================

#: Height of the header and footer panels
HEADER_ROWS: int = 3
FOOTER_ROWS: int = 3

#: Height of the run summary and job panels shown above the log
DETAILS_INFO_ROWS: int = 8

#: Terminal rows not available to run rows (header, footer, table border and heading)
LIST_CHROME_ROWS: int = HEADER_ROWS + FOOTER_ROWS + 3

#: Terminal rows not available to log lines (header, footer, summary, log border)
DETAILS_CHROME_ROWS: int = HEADER_ROWS + FOOTER_ROWS + DETAILS_INFO_ROWS + 2

# =============================================================================
# Keyboard Input
# =============================================================================

#: Seconds to wait for the rest of an escape sequence before treating ESC as a key
ESCAPE_SEQUENCE_TIMEOUT: float = 0.03

#: Seconds the key reader blocks before re-checking whether it should stop
KEY_POLL_SECONDS: float = 0.1
