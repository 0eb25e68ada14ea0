"""Occurrence generation for recurring tasks.

All calendar arithmetic happens in "neutral" space: the rule's local wall
clock expressed as a naive datetime. dateutil's rrule therefore never sees a
timezone, and daylight-saving transitions cannot shift the time of day.
Results are converted back to true epoch milliseconds at the end.
"""

from __future__ import annotations

import logging
from datetime import MAXYEAR, datetime
from itertools import islice
from typing import Any, Mapping, Optional, Union

from dateutil.rrule import DAILY, FR, MO, MONTHLY, SA, SU, TH, TU, WE, WEEKLY, rrule

from .schemas import RecurrenceRule
from .utils.time_utils import MAX_EPOCH_MS, MIN_EPOCH_MS, datetime_to_ms, get_zone, ms_to_utc


logger = logging.getLogger("taskseries.recurrence")

# Safety ceiling applied to every rule, with or without count/end_date.
MAX_OCCURRENCES = 200

# Indexed by 0=Sunday .. 6=Saturday.
_WEEKDAYS = (SU, MO, TU, WE, TH, FR, SA)

_RRULE_FREQ = {
    "daily": DAILY,
    "weekly": WEEKLY,
    "monthly": MONTHLY,
}


class RecurrenceError(ValueError):
    pass


RuleLike = Union[RecurrenceRule, Mapping[str, Any]]


def coerce_rule(rule: RuleLike) -> RecurrenceRule:
    if isinstance(rule, RecurrenceRule):
        return rule
    try:
        return RecurrenceRule.model_validate(dict(rule))
    except ValueError as e:
        raise RecurrenceError(f"Invalid recurrence rule: {e}") from e


def to_neutral_anchor(ms: int, tz_name: str) -> datetime:
    """Epoch ms -> naive datetime holding the wall-clock time in `tz_name`."""
    tz = get_zone(tz_name)
    return ms_to_utc(ms).astimezone(tz).replace(tzinfo=None)


def from_neutral_anchor(dt: datetime, tz_name: str) -> int:
    """Naive wall-clock datetime in `tz_name` -> epoch ms."""
    tz = get_zone(tz_name)
    return datetime_to_ms(dt.replace(tzinfo=tz))


def _sunday_based_weekday(day: int):
    return _WEEKDAYS[int(day)]


def _clamped_month_day_kwargs(day: int) -> dict[str, Any]:
    """rrule kwargs selecting `day` of each month, or its last day when shorter.

    Days 29-31 are expressed as "the last existing day among 28..day".
    """
    if day <= 28:
        return {"bymonthday": day}
    return {"bymonthday": tuple(range(28, day + 1)), "bysetpos": -1}


def _build_rrule(anchor: datetime, rule: RecurrenceRule, *, until: Optional[datetime], count: Optional[int]) -> rrule:
    kwargs: dict[str, Any] = {
        "dtstart": anchor,
        "interval": int(rule.interval or 1),
    }
    if count is not None:
        kwargs["count"] = count
    if until is not None:
        kwargs["until"] = until

    if rule.frequency == "weekly" and rule.days_of_week:
        kwargs["byweekday"] = tuple(_sunday_based_weekday(d) for d in rule.days_of_week)

    if rule.frequency == "monthly":
        if rule.day_of_month is not None:
            kwargs.update(_clamped_month_day_kwargs(rule.day_of_month))
        elif rule.week_and_day_of_month is not None:
            wd = rule.week_and_day_of_month
            kwargs["byweekday"] = _sunday_based_weekday(wd.day_of_week)(+wd.week_of_month)
        else:
            kwargs.update(_clamped_month_day_kwargs(anchor.day))

    return rrule(_RRULE_FREQ[rule.frequency], **kwargs)


def _expand_rrule(
    anchor: datetime,
    rule: RecurrenceRule,
    *,
    until: Optional[datetime],
    count: Optional[int],
    ceiling: int,
) -> list[datetime]:
    # rrule truncates dtstart to whole seconds; carry the sub-second part separately.
    base = anchor.replace(microsecond=0)
    expanded = islice(_build_rrule(base, rule, until=until, count=count), ceiling)
    return [dt.replace(microsecond=anchor.microsecond) for dt in expanded]


def _safe_date(year: int, month: int, day: int, like: datetime) -> Optional[datetime]:
    try:
        return like.replace(year=year, month=month, day=day)
    except ValueError:
        # Feb 29 on a non-leap year, and similar.
        return None


def _generate_yearly(anchor: datetime, rule: RecurrenceRule, tz_name: str, ceiling: int) -> list[datetime]:
    step = int(rule.interval or 1)
    out: list[datetime] = []

    if rule.count:
        for i in range(min(int(rule.count), ceiling)):
            year = anchor.year + i * step
            if year > MAXYEAR:
                break
            occ = _safe_date(year, anchor.month, anchor.day, anchor)
            if occ is not None:
                out.append(occ)
        return out

    if rule.end_date is not None:
        year = anchor.year
        while len(out) < ceiling and year <= MAXYEAR:
            occ = _safe_date(year, anchor.month, anchor.day, anchor)
            if occ is not None:
                if from_neutral_anchor(occ, tz_name) > int(rule.end_date):
                    break
                out.append(occ)
            year += step
        return out

    return [anchor]


def generate_occurrences(
    anchor_start_time: int,
    rule: RuleLike,
    *,
    max_occurrences: int = MAX_OCCURRENCES,
) -> list[int]:
    """Expand `rule` from `anchor_start_time` into ordered epoch-ms start times.

    Pure function of its inputs. The result never holds more than
    `max_occurrences` entries. Calendar dates that do not exist for a rule
    (Feb 29 on non-leap years for yearly rules, a fifth weekday in a month
    with four) are dropped rather than substituted.
    """
    r = coerce_rule(rule)
    if not r.timezone:
        raise RecurrenceError("Recurrence rule requires a timezone")

    tz_name = r.timezone
    ceiling = max(1, int(max_occurrences))
    if not MIN_EPOCH_MS <= int(anchor_start_time) <= MAX_EPOCH_MS:
        raise RecurrenceError("Start time is outside the supported date range")

    try:
        anchor = to_neutral_anchor(int(anchor_start_time), tz_name)

        if r.frequency == "yearly":
            neutral = _generate_yearly(anchor, r, tz_name, ceiling)
        elif r.count:
            neutral = _expand_rrule(anchor, r, until=None, count=min(int(r.count), ceiling), ceiling=ceiling)
        elif r.end_date is not None:
            # A far-future end date is bounded by the ceiling, not by datetime's range.
            bounded_end = min(max(int(r.end_date), MIN_EPOCH_MS), MAX_EPOCH_MS)
            until = to_neutral_anchor(bounded_end, tz_name)
            neutral = _expand_rrule(anchor, r, until=until, count=None, ceiling=ceiling)
        else:
            neutral = [anchor]

        result = [from_neutral_anchor(dt, tz_name) for dt in neutral]
    except OverflowError as e:
        raise RecurrenceError("Recurrence reaches outside the supported date range") from e

    # Occurrences past the supported range are dropped like those past end_date.
    limit = MAX_EPOCH_MS if r.end_date is None else min(int(r.end_date), MAX_EPOCH_MS)
    result = [t for t in result if t <= limit]
    logger.debug(
        "Generated %d occurrence(s) for %s rule (interval=%s, tz=%s)",
        len(result),
        r.frequency,
        r.interval,
        tz_name,
    )
    return result


def rules_equal(a: Optional[RuleLike], b: Optional[RuleLike]) -> bool:
    """Compare two rules for the purpose of detecting a no-op recurrence edit."""
    if a is None or b is None:
        return a is None and b is None

    ra = coerce_rule(a)
    rb = coerce_rule(b)

    for field in ("frequency", "interval", "end_date", "count", "day_of_month", "timezone"):
        if getattr(ra, field) != getattr(rb, field):
            return False

    if set(ra.days_of_week or []) != set(rb.days_of_week or []):
        return False

    wa = ra.week_and_day_of_month
    wb = rb.week_and_day_of_month
    if wa is None or wb is None:
        return wa is None and wb is None
    return wa.week_of_month == wb.week_of_month and wa.day_of_week == wb.day_of_week
