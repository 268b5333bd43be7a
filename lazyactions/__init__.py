"""lazyactions: A terminal UI for monitoring GitHub Actions runs."""

import logging
from importlib.metadata import version

from lazyactions.models import DetailsBlob
from lazyactions.models import DetailsState
from lazyactions.models import Job
from lazyactions.models import LogLine
from lazyactions.models import RepoContext
from lazyactions.models import Run
from lazyactions.models import RunStatus
from lazyactions.models import format_duration

__version__ = version("lazyactions")

# The TUI owns the terminal; records go nowhere unless --log-file is given
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "DetailsBlob",
    "DetailsState",
    "Job",
    "LogLine",
    "RepoContext",
    "Run",
    "RunStatus",
    "format_duration",
]
