"""
Streak Engine — Local-Day Resolver
====================================

What:  Turns a reference instant and an IANA zone into "yesterday" in that zone:
       its calendar date and the UTC instants where it starts and ends.
Why:   A user's streak day is their own calendar day. Near DST transitions that
       day lasts 23 or 25 hours, so it must come from the zone's calendar
       (zoneinfo) and never from subtracting 24 hours.
How:   Pure functions, no I/O. Unknown zones fall back to the default zone
       with a warning; this is never reported as a job failure.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

UTC_ZONE = ZoneInfo("UTC")


@dataclass(frozen=True)
class LocalDayRange:
    """
    One calendar day in a zone, as a half-open UTC range [start_utc, end_utc).

    local_date is what gets stored as last_completed_local_date.
    """
    local_date: date
    start_utc: datetime
    end_utc: datetime
    zone: str

    def contains(self, instant: datetime) -> bool:
        return self.start_utc <= _as_utc(instant) < self.end_utc

    @property
    def duration(self) -> timedelta:
        return self.end_utc - self.start_utc


def _as_utc(instant: datetime) -> datetime:
    # Naive instants are taken to be UTC, which is how the store hands them back
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


@lru_cache(maxsize=512)
def _load_zone(name: str) -> Optional[ZoneInfo]:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def resolve_zone(name: Optional[str], default: str = "UTC") -> ZoneInfo:
    """
    Look up an IANA zone, falling back to `default` (then UTC) when it is
    missing or unknown.
    """
    candidate = (name or "").strip()
    if candidate:
        zone = _load_zone(candidate)
        if zone is not None:
            return zone
        logger.warning("Unknown time zone %r, falling back to %s", candidate, default)
    return _load_zone(default) or UTC_ZONE


def local_day_range(day: date, zone: ZoneInfo) -> LocalDayRange:
    """
    UTC bounds of calendar `day` in `zone`.

    Local midnight is built with fold=0. If midnight falls in a DST gap
    (zones that spring forward at 00:00) that maps to the first instant
    the day actually has.
    """
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return LocalDayRange(
        local_date=day,
        start_utc=start.astimezone(timezone.utc),
        end_utc=end.astimezone(timezone.utc),
        zone=zone.key,
    )


def resolve_yesterday(
    now: datetime,
    zone_name: Optional[str],
    default_zone: str = "UTC",
) -> LocalDayRange:
    """
    The day before `now`'s calendar date in `zone_name`.

    Returns the range [start of yesterday, start of today) in local time,
    expressed as UTC instants.
    """
    zone = resolve_zone(zone_name, default_zone)
    local_today = _as_utc(now).astimezone(zone).date()
    return local_day_range(local_today - timedelta(days=1), zone)


def utc_yesterday(now: datetime) -> LocalDayRange:
    """Yesterday on the fixed UTC calendar, shared by every circle in a run."""
    return resolve_yesterday(now, "UTC")
