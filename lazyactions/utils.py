"""Shared utility functions for lazyactions.

This module consolidates small helpers used across multiple modules
to avoid duplication and ensure consistent behavior.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from datetime import timezone

logger = logging.getLogger(__name__)

# GitHub log lines start with an RFC 3339 timestamp carrying 7 fractional digits
_LOG_TIMESTAMP_RE = re.compile(r"^\ufeff?\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z ?")


def clamp(value: int, low: int, high: int) -> int:
    """Clamp ``value`` into ``[low, high]``; ``low`` wins if the range is empty."""
    return max(low, min(value, high))


def parse_timestamp(value: str | None) -> datetime | None:
    """
    Parse a GitHub API timestamp.

    Args:
        value: An ISO 8601 string such as ``"2024-05-01T12:00:00Z"``.

    Returns:
        A timezone-aware datetime, or None if the value is empty or invalid.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable timestamp %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def strip_log_timestamp(text: str) -> str:
    """Remove the leading timestamp GitHub adds to every log line."""
    return _LOG_TIMESTAMP_RE.sub("", text, count=1)


def format_age(moment: datetime, now: datetime | None = None) -> str:
    """
    Format how long ago ``moment`` was.

    Args:
        moment: A timezone-aware datetime.
        now: Reference time; defaults to the current UTC time.

    Returns:
        Strings like ``"just now"``, ``"12m ago"``, ``"3h ago"`` or ``"2d ago"``.
    """
    now = now or datetime.now(timezone.utc)
    seconds = int((now - moment).total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"
