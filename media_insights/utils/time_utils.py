"""
Time helpers.

All timestamps in the index are epoch milliseconds.
"""

import math
import time
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from media_insights.core.constants import MAX_SINCE_DAYS

_HOUR_MS = 60 * 60 * 1000
_DAY_MS = 24 * _HOUR_MS


def now_ms() -> int:
    return int(time.time() * 1000)


def event_timestamp(event: Optional[Mapping[str, Any]]) -> int:
    """Epoch-ms timestamp of a log event or row; 0 when missing or not numeric."""
    try:
        return int(event.get("timestamp") or 0)
    except (TypeError, ValueError, AttributeError):
        return 0


def timestamp_to_duration(timestamp: Optional[int], now: Optional[int] = None) -> str:
    """
    Convert an absolute timestamp to the relative `since` value of the log API.

    Under one day old the age is expressed in hours (rounded up, minimum
    one hour), otherwise in days (rounded up, capped at 90).

    Examples:
        >>> timestamp_to_duration(None)
        '90d'
        >>> timestamp_to_duration(now_ms() - 90 * 60 * 1000)
        '2h'
    """
    if not timestamp:
        return f"{MAX_SINCE_DAYS}d"

    age = max(0, (now if now is not None else now_ms()) - int(timestamp))
    if age < _DAY_MS:
        hours = max(1, math.ceil(age / _HOUR_MS))
        return f"{hours}h"

    days = min(math.ceil(age / _DAY_MS), MAX_SINCE_DAYS)
    return f"{days}d"


def format_elapsed(seconds: float) -> str:
    """Build duration label, e.g. `3.2s`."""
    return f"{seconds:.1f}s"


def to_iso(timestamp: Optional[int]) -> str:
    if not timestamp:
        return "never"
    return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).isoformat()
