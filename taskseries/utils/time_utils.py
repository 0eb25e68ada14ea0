from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


EPOCH_UTC = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)

# One day of slack on each side so any zone offset still fits in a datetime.
MIN_EPOCH_MS = (datetime(1, 1, 2, tzinfo=timezone.utc) - EPOCH_UTC) // _ONE_MS
MAX_EPOCH_MS = (datetime(9999, 12, 30, tzinfo=timezone.utc) - EPOCH_UTC) // _ONE_MS


def now_ms() -> int:
    # Stored timestamps are epoch milliseconds.
    return datetime_to_ms(datetime.now(timezone.utc))


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name, raising ValueError for unknown zones."""
    try:
        return ZoneInfo(str(name))
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: '{name}'") from e


def datetime_to_ms(dt: datetime) -> int:
    """Epoch milliseconds for an aware datetime (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt - EPOCH_UTC) // _ONE_MS


def ms_to_utc(ms: int) -> datetime:
    return EPOCH_UTC + timedelta(milliseconds=int(ms))


def ms_to_local(ms: int, tz_name: str) -> datetime:
    return ms_to_utc(ms).astimezone(get_zone(tz_name))


def combine_local_date_and_time(date_ms: int, time_ms: int, tz_name: str) -> int:
    """Take the local calendar date of `date_ms` and the local time-of-day of `time_ms`."""
    tz = get_zone(tz_name)
    d = ms_to_local(date_ms, tz_name).date()
    t = ms_to_local(time_ms, tz_name).time()
    return datetime_to_ms(datetime.combine(d, t, tzinfo=tz))
