"""Wall-clock helpers for turn deadlines.

All timestamps are naive UTC datetimes (what the DateTime columns store);
``to_iso`` adds the ``Z`` suffix when they leave the server.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Optional


def now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def deadline_after(seconds, start: Optional[datetime] = None) -> datetime:
    return (start or now()) + timedelta(seconds=seconds)


def is_expired(deadline: Optional[datetime], at: Optional[datetime] = None) -> bool:
    if deadline is None:
        return False
    return (at or now()) > deadline


def seconds_remaining(deadline: Optional[datetime], at: Optional[datetime] = None) -> Optional[int]:
    if deadline is None:
        return None
    delta = (deadline - (at or now())).total_seconds()
    return max(0, math.floor(delta))


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() + 'Z'


def parse_iso(value) -> Optional[datetime]:
    """Parse a client-supplied ISO timestamp; raises ValueError on garbage."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
