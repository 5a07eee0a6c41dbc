"""Timezone-aware date helpers shared by the parser and the recurrence engine.

Every calendar step goes through the local wall clock of the target zone:
an instant is projected into the zone, the day/week/month/year step is
applied to the naive wall time, and the result is projected back to UTC.
"""
import calendar
from datetime import date, datetime, time, timedelta, timezone
import logging
import urllib.parse
import zoneinfo

from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

WEEKDAYS = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']

# recurrence pattern value -> relativedelta keyword
_STEP_UNITS = {
    'daily': 'days',
    'weekly': 'weeks',
    'monthly': 'months',
    'yearly': 'years',
}


def now_utc() -> datetime:
    """Return timezone-aware current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Return dt as an aware UTC datetime; naive values are assumed to be UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_utc(dt: datetime | None) -> str | None:
    """Canonical ISO string with a trailing 'Z', or None."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat().replace('+00:00', 'Z')


def is_valid_timezone(tz_name: str | None) -> bool:
    if not tz_name or not isinstance(tz_name, str):
        return False
    try:
        zoneinfo.ZoneInfo(tz_name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        return False
    return True


def normalize_timezone(tz_name: str | None, default: str = 'UTC') -> str:
    """Return a valid IANA zone name, falling back to ``default``.

    URL-encoded names (e.g. ``Australia%2FMelbourne``) are tolerated.
    """
    if isinstance(tz_name, str):
        tz_name = urllib.parse.unquote(tz_name).strip()
    if is_valid_timezone(tz_name):
        return tz_name
    if tz_name:
        logger.warning('invalid timezone %r; falling back to %s', tz_name, default)
    return default


def get_zone(tz_name: str) -> zoneinfo.ZoneInfo:
    return zoneinfo.ZoneInfo(tz_name)


def to_local(instant: datetime, tz_name: str) -> datetime:
    """Project an instant onto the naive wall clock of ``tz_name``."""
    return ensure_utc(instant).astimezone(get_zone(tz_name)).replace(tzinfo=None)


def from_local(wall: datetime, tz_name: str) -> datetime:
    """Interpret a naive wall-clock datetime in ``tz_name`` and return UTC.

    Ambiguous wall times (DST fall-back) resolve to the first occurrence;
    wall times inside a spring-forward gap are shifted by the zone offset.
    """
    if wall.tzinfo is not None:
        wall = wall.replace(tzinfo=None)
    return wall.replace(tzinfo=get_zone(tz_name)).astimezone(timezone.utc)


def add_interval(instant: datetime, pattern, count: int, tz_name: str) -> datetime | None:
    """Step ``instant`` by ``count`` units of the recurrence pattern.

    Returns None for patterns without a stepping rule (``none``, ``custom``).
    Month and year steps clamp to the last valid day of the target month.
    """
    unit = _STEP_UNITS.get(pattern)
    if unit is None:
        return None
    wall = to_local(instant, tz_name)
    return from_local(wall + relativedelta(**{unit: count}), tz_name)


def start_of_day(instant: datetime, tz_name: str) -> datetime:
    """Local midnight of the day containing ``instant``, as UTC."""
    wall = to_local(instant, tz_name)
    return from_local(datetime.combine(wall.date(), time.min), tz_name)


def end_of_day_local(day: date, tz_name: str) -> datetime:
    """23:59:59.999 local time on ``day``, as UTC."""
    return from_local(datetime.combine(day, time(23, 59, 59, 999000)), tz_name)


def local_tomorrow_at(now: datetime, tz_name: str, hour: int, minute: int = 0) -> datetime:
    """Tomorrow (local to ``tz_name``) at hour:minute, as UTC."""
    tomorrow = to_local(now, tz_name).date() + timedelta(days=1)
    return from_local(datetime.combine(tomorrow, time(hour, minute)), tz_name)


def next_weekday(weekday_name: str, tz_name: str, now: datetime) -> datetime | None:
    """Next occurrence of the weekday strictly after today, at local midnight.

    If today already is that weekday the result is one week out.
    """
    name = weekday_name.lower().rstrip('s')
    if name not in WEEKDAYS:
        return None
    today = to_local(now, tz_name).date()
    diff = WEEKDAYS.index(name) - today.weekday()
    if diff <= 0:
        diff += 7
    return from_local(datetime.combine(today + timedelta(days=diff), time.min), tz_name)


def next_day_of_month(day: int, tz_name: str, now: datetime) -> datetime | None:
    """Next local date with day-of-month ``day`` on or after today, at local midnight.

    Short months clamp to their last day (the 31st in April is April 30).
    """
    if not 1 <= day <= 31:
        return None
    today = to_local(now, tz_name).date()
    year, month = today.year, today.month
    while True:
        candidate = date(year, month, min(day, calendar.monthrange(year, month)[1]))
        if candidate >= today:
            return from_local(datetime.combine(candidate, time.min), tz_name)
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)


def format_in_timezone(dt, tz_name: str | None, fmt: str = '%Y-%m-%d %H:%M:%S') -> str:
    """Format a datetime into the named timezone. Unknown zones format in UTC."""
    if dt is None:
        return ''
    if isinstance(dt, str):
        return dt
    return ensure_utc(dt).astimezone(get_zone(normalize_timezone(tz_name))).strftime(fmt)


def format_clock(dt: datetime, tz_name: str) -> str:
    """12-hour clock label such as '8:00 AM' in the given zone."""
    local = ensure_utc(dt).astimezone(get_zone(tz_name))
    hour = local.hour % 12 or 12
    return f"{hour}:{local.minute:02d} {'AM' if local.hour < 12 else 'PM'}"
