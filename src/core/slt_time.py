"""Second Life Time (SLT) formatting helpers (core domain).

SLT is US Pacific time, so PST/PDT switches are handled by the zone database.
"""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

SLT_ZONE = "America/Los_Angeles"
TIME_FORMAT = "%H:%M:%S"
DATE_TIME_FORMAT = "%b %d, %H:%M:%S"


def to_slt(moment: datetime, zone: str = SLT_ZONE) -> datetime:
    """Convert a timestamp to SLT. Naive values are treated as UTC."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(zone))


def format_slt(moment: datetime, zone: str = SLT_ZONE) -> str:
    return to_slt(moment, zone).strftime(TIME_FORMAT)


def format_slt_with_date(moment: datetime, zone: str = SLT_ZONE) -> str:
    return to_slt(moment, zone).strftime(DATE_TIME_FORMAT)
