"""Shared utilities for the session dashboard.

Scalar guards used by record validation, JSON file reading and the
formatting helpers used by derived views.
"""

import json
import logging
import math
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def as_string(value: Any) -> str | None:
    """Return value if it is a str, else None."""
    return value if isinstance(value, str) else None


def as_finite_number(value: Any) -> float | None:
    """Return value if it is a finite int/float (bools excluded), else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def clamp_string(value: Any, max_len: int) -> str | None:
    """Trim a string and cut it to max_len characters.

    Returns None for non-strings and for strings that are empty after trimming.
    """
    if not isinstance(value, str):
        return None
    s = value.strip()
    if not s:
        return None
    return s[:max_len]


def read_json_file(path: str | Path) -> Any | None:
    """Read and parse a JSON file.

    Missing files and half-written or otherwise unparseable content return
    None; concurrent writers are expected.
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        logger.debug("Skipping unreadable JSON file %s", path)
        return None


def current_time_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def format_iso_no_ms(ts_ms: float) -> str:
    """Format an epoch-milliseconds timestamp as ISO 8601 UTC without milliseconds.

    Example:
        format_iso_no_ms(0) -> '1970-01-01T00:00:00Z'
    """
    dt = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)
    return dt.strftime('%Y-%m-%dT%H:%M:%SZ')


def format_elapsed(ms: float) -> str:
    """Render a duration using its two largest units.

    Examples:
        format_elapsed(42_000) -> '42s'
        format_elapsed(312_000) -> '5m12s'
        format_elapsed(5_400_000) -> '1h30m'
        format_elapsed(183_600_000) -> '2d3h'
    """
    total_seconds = max(0, int(ms // 1000))
    seconds = total_seconds % 60
    total_minutes = total_seconds // 60
    minutes = total_minutes % 60
    total_hours = total_minutes // 60
    hours = total_hours % 24
    days = total_hours // 24

    if days > 0:
        return f"{days}d{hours}h" if hours > 0 else f"{days}d"
    if total_hours > 0:
        return f"{total_hours}h{minutes}m" if minutes > 0 else f"{total_hours}h"
    if total_minutes > 0:
        return f"{total_minutes}m{seconds}s" if seconds > 0 else f"{total_minutes}m"
    return f"{seconds}s"


def format_timeline(start_ms: float | None, end_ms: float) -> str:
    """Format '<start ISO>: <elapsed>' or '' when there is no start time."""
    if start_ms is None:
        return ""
    return f"{format_iso_no_ms(start_ms)}: {format_elapsed(end_ms - start_ms)}"


def format_token_count(value: Any) -> str:
    """Format a token counter with thousands separators.

    Non-numeric and non-finite values render as '0'; negatives clamp to 0.
    """
    number = as_finite_number(value)
    if number is None:
        return "0"
    # round half up, not half to even
    return f"{max(0, math.floor(number + 0.5)):,}"
