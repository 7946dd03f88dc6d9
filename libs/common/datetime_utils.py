"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from libs.common.datetime_utils import utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    Always use this for timestamps in the database.
    """
    return datetime.now(timezone.utc)


def start_of_day(moment: datetime, tz_name: Optional[str] = None) -> datetime:
    """Midnight of ``moment``'s calendar day in ``tz_name``, returned in UTC."""
    local = moment.astimezone(ZoneInfo(tz_name)) if tz_name else moment
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc)


def start_of_month(moment: datetime, tz_name: Optional[str] = None) -> datetime:
    local = moment.astimezone(ZoneInfo(tz_name)) if tz_name else moment
    first = local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return first.astimezone(timezone.utc)
