"""
modules/tool_usage/time_tool.py
--------------------------------
Wall-clock "HH:MM" helpers shared by scheduling and parsing code.

parse_hhmm is deliberately permissive: anything it cannot read becomes
00:00 (0 minutes) instead of raising.
"""

from __future__ import annotations

import re
from typing import Optional

MINUTES_PER_DAY: int = 24 * 60

_HHMM_RE = re.compile(r"(\d{1,2})\s*[:：]\s*(\d{1,2})")


def parse_hhmm(value: Optional[str]) -> int:
    """Convert "HH:MM" to minutes since midnight; unparsable → 0."""
    if not value:
        return 0
    match = _HHMM_RE.search(str(value))
    if not match:
        return 0
    hours, minutes = int(match.group(1)), int(match.group(2))
    return hours * 60 + minutes


def format_hhmm(minutes: int) -> str:
    """
    Minutes from the day's midnight → "HH:MM". Past midnight the hour keeps
    counting ("24:05", "25:30"), so later stops never read as earlier ones.
    """
    minutes = max(0, int(minutes))
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def extract_hhmm(value: Optional[str]) -> Optional[str]:
    """Return the first "HH:MM" found in *value*, normalised, or None."""
    if not value:
        return None
    match = _HHMM_RE.search(str(value))
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def split_time_range(
    value: Optional[str],
    default_start: str = "09:00",
    default_end: str = "10:00",
) -> tuple[str, str]:
    """
    Split a "HH:MM - HH:MM" range into (start, end).

    A missing or malformed range (either side) yields the default pair.
    """
    if not value:
        return default_start, default_end
    left, sep, right = str(value).partition("-")
    start, end = extract_hhmm(left), extract_hhmm(right)
    if not sep or start is None or end is None:
        return default_start, default_end
    return start, end
