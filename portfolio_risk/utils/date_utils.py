"""Date manipulation utilities"""

import math
from datetime import datetime, timezone
from typing import Optional

SECONDS_PER_DAY = 86_400


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def whole_days_between(earlier: datetime, later: Optional[datetime] = None) -> int:
    """Whole elapsed days from earlier to later (default: now), never negative"""
    later = as_utc(later) if later is not None else utc_now()
    elapsed = (later - as_utc(earlier)).total_seconds()
    return max(0, math.floor(elapsed / SECONDS_PER_DAY))
