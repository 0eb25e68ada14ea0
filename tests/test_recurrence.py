from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from taskseries.recurrence import (
    MAX_OCCURRENCES,
    RecurrenceError,
    coerce_rule,
    from_neutral_anchor,
    generate_occurrences,
    rules_equal,
    to_neutral_anchor,
)
from taskseries.utils.time_utils import datetime_to_ms, ms_to_local


def ms(tz: str, *args) -> int:
    return datetime_to_ms(datetime(*args, tzinfo=ZoneInfo(tz)))


def local(values, tz: str):
    return [ms_to_local(v, tz).replace(tzinfo=None) for v in values]


def test_daily_count_produces_consecutive_days():
    anchor = ms("UTC", 2025, 1, 1, 9, 0)
    out = generate_occurrences(anchor, {"frequency": "daily", "count": 5, "timezone": "UTC"})
    assert out == [anchor + i * 86_400_000 for i in range(5)]


def test_daily_interval_skips_days():
    anchor = ms("UTC", 2025, 1, 1, 9, 0)
    out = generate_occurrences(anchor, {"frequency": "daily", "interval": 3, "count": 3, "timezone": "UTC"})
    assert local(out, "UTC") == [
        datetime(2025, 1, 1, 9, 0),
        datetime(2025, 1, 4, 9, 0),
        datetime(2025, 1, 7, 9, 0),
    ]


def test_weekly_days_of_week_mon_wed_fri():
    # 2025-01-06 is a Monday.
    anchor = ms("Europe/Berlin", 2025, 1, 6, 8, 30)
    rule = {"frequency": "weekly", "days_of_week": [5, 1, 3], "count": 6, "timezone": "Europe/Berlin"}
    out = generate_occurrences(anchor, rule)
    assert local(out, "Europe/Berlin") == [
        datetime(2025, 1, 6, 8, 30),
        datetime(2025, 1, 8, 8, 30),
        datetime(2025, 1, 10, 8, 30),
        datetime(2025, 1, 13, 8, 30),
        datetime(2025, 1, 15, 8, 30),
        datetime(2025, 1, 17, 8, 30),
    ]


def test_weekly_without_days_repeats_anchor_weekday_every_other_week():
    anchor = ms("UTC", 2025, 1, 7, 12, 0)
    out = generate_occurrences(anchor, {"frequency": "weekly", "interval": 2, "count": 3, "timezone": "UTC"})
    assert local(out, "UTC") == [
        datetime(2025, 1, 7, 12, 0),
        datetime(2025, 1, 21, 12, 0),
        datetime(2025, 2, 4, 12, 0),
    ]


def test_single_day_of_week_alias_is_accepted():
    anchor = ms("UTC", 2025, 1, 6, 9, 0)
    out = generate_occurrences(anchor, {"frequency": "weekly", "day_of_week": 1, "count": 2, "timezone": "UTC"})
    assert local(out, "UTC") == [datetime(2025, 1, 6, 9, 0), datetime(2025, 1, 13, 9, 0)]


def test_monthly_day_31_clamps_to_month_end():
    anchor = ms("UTC", 2025, 1, 31, 10, 0)
    rule = {"frequency": "monthly", "day_of_month": 31, "count": 4, "timezone": "UTC"}
    out = generate_occurrences(anchor, rule)
    assert local(out, "UTC") == [
        datetime(2025, 1, 31, 10, 0),
        datetime(2025, 2, 28, 10, 0),
        datetime(2025, 3, 31, 10, 0),
        datetime(2025, 4, 30, 10, 0),
    ]


def test_monthly_without_refinement_follows_anchor_day():
    anchor = ms("UTC", 2024, 1, 30, 10, 0)
    out = generate_occurrences(anchor, {"frequency": "monthly", "count": 3, "timezone": "UTC"})
    # 2024 is a leap year.
    assert local(out, "UTC") == [
        datetime(2024, 1, 30, 10, 0),
        datetime(2024, 2, 29, 10, 0),
        datetime(2024, 3, 30, 10, 0),
    ]


def test_monthly_second_tuesday():
    anchor = ms("UTC", 2025, 1, 14, 18, 0)
    rule = {
        "frequency": "monthly",
        "week_and_day_of_month": {"week_of_month": 2, "day_of_week": 2},
        "count": 3,
        "timezone": "UTC",
    }
    out = generate_occurrences(anchor, rule)
    assert local(out, "UTC") == [
        datetime(2025, 1, 14, 18, 0),
        datetime(2025, 2, 11, 18, 0),
        datetime(2025, 3, 11, 18, 0),
    ]


def test_monthly_fifth_weekday_skips_short_months():
    # Fifth Friday: Jan 31 2025, then none until May 30 2025.
    anchor = ms("UTC", 2025, 1, 31, 9, 0)
    rule = {
        "frequency": "monthly",
        "week_and_day_of_month": {"week_of_month": 5, "day_of_week": 5},
        "count": 2,
        "timezone": "UTC",
    }
    out = generate_occurrences(anchor, rule)
    assert local(out, "UTC") == [datetime(2025, 1, 31, 9, 0), datetime(2025, 5, 30, 9, 0)]


def test_yearly_feb_29_skips_non_leap_years():
    anchor = ms("UTC", 2024, 2, 29, 7, 0)
    out = generate_occurrences(anchor, {"frequency": "yearly", "count": 5, "timezone": "UTC"})
    assert local(out, "UTC") == [datetime(2024, 2, 29, 7, 0), datetime(2028, 2, 29, 7, 0)]


def test_yearly_end_date_is_inclusive():
    anchor = ms("UTC", 2025, 6, 1, 7, 0)
    end = ms("UTC", 2027, 6, 1, 7, 0)
    out = generate_occurrences(anchor, {"frequency": "yearly", "end_date": end, "timezone": "UTC"})
    assert local(out, "UTC") == [
        datetime(2025, 6, 1, 7, 0),
        datetime(2026, 6, 1, 7, 0),
        datetime(2027, 6, 1, 7, 0),
    ]


def test_daily_end_date_is_inclusive():
    anchor = ms("UTC", 2025, 1, 1, 9, 0)
    end = ms("UTC", 2025, 1, 3, 9, 0)
    out = generate_occurrences(anchor, {"frequency": "daily", "end_date": end, "timezone": "UTC"})
    assert len(out) == 3
    assert out[-1] == end
    assert all(t <= end for t in out)


def test_end_date_before_anchor_produces_nothing():
    anchor = ms("UTC", 2025, 1, 10, 9, 0)
    end = ms("UTC", 2025, 1, 1, 9, 0)
    assert generate_occurrences(anchor, {"frequency": "daily", "end_date": end, "timezone": "UTC"}) == []


def test_rule_without_terminal_condition_yields_anchor_only():
    anchor = ms("UTC", 2025, 1, 1, 9, 0)
    for freq in ("daily", "weekly", "monthly", "yearly"):
        assert generate_occurrences(anchor, {"frequency": freq, "timezone": "UTC"}) == [anchor]


def test_local_time_of_day_survives_dst_transition():
    # US spring-forward: 2025-03-09.
    tz = "America/New_York"
    anchor = ms(tz, 2025, 3, 8, 9, 0)
    out = generate_occurrences(anchor, {"frequency": "daily", "count": 3, "timezone": tz})
    assert [ms_to_local(t, tz).hour for t in out] == [9, 9, 9]
    assert out[1] - out[0] == int(timedelta(hours=23) / timedelta(milliseconds=1))
    assert out[2] - out[1] == 86_400_000


def test_count_is_capped_by_ceiling():
    anchor = ms("UTC", 2025, 1, 1, 9, 0)
    out = generate_occurrences(anchor, {"frequency": "daily", "count": 5000, "timezone": "UTC"})
    assert len(out) == MAX_OCCURRENCES

    out = generate_occurrences(anchor, {"frequency": "daily", "count": 50, "timezone": "UTC"}, max_occurrences=7)
    assert len(out) == 7


def test_far_end_date_is_capped_by_ceiling():
    anchor = ms("UTC", 2025, 1, 1, 9, 0)
    end = ms("UTC", 2100, 1, 1, 0, 0)
    out = generate_occurrences(anchor, {"frequency": "daily", "end_date": end, "timezone": "UTC"})
    assert len(out) == MAX_OCCURRENCES


def test_end_date_beyond_datetime_range_is_capped_by_ceiling():
    anchor = ms("UTC", 2025, 1, 1, 9, 0)
    for frequency in ("daily", "weekly", "monthly", "yearly"):
        rule = {"frequency": frequency, "end_date": 300_000_000_000_000, "timezone": "UTC"}
        out = generate_occurrences(anchor, rule)
        assert out[0] == anchor
        assert len(out) == MAX_OCCURRENCES


@pytest.mark.parametrize("anchor", [300_000_000_000_000, -300_000_000_000_000])
def test_anchor_outside_supported_range_is_rejected(anchor):
    with pytest.raises(RecurrenceError, match="supported date range"):
        generate_occurrences(anchor, {"frequency": "daily", "count": 3, "timezone": "UTC"})


def test_occurrences_stop_at_end_of_supported_range():
    anchor = ms("UTC", 9999, 12, 27, 9, 0)
    out = generate_occurrences(anchor, {"frequency": "daily", "count": 10, "timezone": "UTC"})
    assert local(out, "UTC") == [
        datetime(9999, 12, 27, 9, 0),
        datetime(9999, 12, 28, 9, 0),
        datetime(9999, 12, 29, 9, 0),
    ]


def test_same_input_gives_same_output():
    anchor = ms("America/New_York", 2025, 3, 3, 8, 30)
    rule = {"frequency": "weekly", "days_of_week": [1, 4], "count": 12, "timezone": "America/New_York"}
    first = generate_occurrences(anchor, rule)
    second = generate_occurrences(anchor, dict(rule))
    assert first == second
    assert len(first) == 12


def test_sub_second_anchor_is_preserved():
    anchor = ms("UTC", 2025, 1, 1, 9, 0) + 123
    out = generate_occurrences(anchor, {"frequency": "daily", "count": 2, "timezone": "UTC"})
    assert out == [anchor, anchor + 86_400_000]


def test_output_is_strictly_increasing_and_starts_at_or_after_anchor():
    anchor = ms("Asia/Tokyo", 2025, 2, 3, 23, 15)
    rule = {"frequency": "weekly", "days_of_week": [0, 2, 4, 6], "count": 20, "timezone": "Asia/Tokyo"}
    out = generate_occurrences(anchor, rule)
    assert out[0] >= anchor
    assert all(a < b for a, b in zip(out, out[1:]))


def test_missing_timezone_is_rejected():
    with pytest.raises(RecurrenceError, match="requires a timezone"):
        generate_occurrences(0, {"frequency": "daily", "count": 3})


def test_unknown_timezone_is_rejected():
    with pytest.raises(RecurrenceError, match="Unknown timezone"):
        generate_occurrences(0, {"frequency": "daily", "count": 3, "timezone": "Mars/Olympus"})


@pytest.mark.parametrize(
    "rule, message",
    [
        ({"frequency": "daily", "count": 2, "end_date": 10, "timezone": "UTC"}, "mutually exclusive"),
        (
            {
                "frequency": "monthly",
                "day_of_month": 3,
                "week_and_day_of_month": {"week_of_month": 1, "day_of_week": 1},
                "timezone": "UTC",
            },
            "mutually exclusive",
        ),
        ({"frequency": "hourly", "timezone": "UTC"}, "Invalid recurrence rule"),
        ({"frequency": "daily", "interval": 0, "timezone": "UTC"}, "Invalid recurrence rule"),
        ({"frequency": "weekly", "days_of_week": [7], "timezone": "UTC"}, "between 0"),
    ],
)
def test_invalid_rules_are_rejected(rule, message):
    with pytest.raises(RecurrenceError, match=message):
        coerce_rule(rule)


def test_zero_count_means_unset():
    assert coerce_rule({"frequency": "daily", "count": 0, "timezone": "UTC"}).count is None


def test_neutral_anchor_round_trip():
    tz = "Europe/Berlin"
    t = ms(tz, 2025, 7, 1, 6, 45)
    neutral = to_neutral_anchor(t, tz)
    assert neutral == datetime(2025, 7, 1, 6, 45)
    assert from_neutral_anchor(neutral, tz) == t


def test_rules_equal_ignores_weekday_order_and_zero_count():
    a = {"frequency": "weekly", "days_of_week": [1, 3], "count": 4, "timezone": "UTC"}
    b = {"frequency": "weekly", "days_of_week": [3, 1], "count": 4, "timezone": "UTC", "interval": 1}
    assert rules_equal(a, b)

    c = {"frequency": "daily", "count": 0, "timezone": "UTC"}
    d = {"frequency": "daily", "timezone": "UTC"}
    assert rules_equal(c, d)


def test_rules_equal_detects_differences():
    base = {"frequency": "monthly", "week_and_day_of_month": {"week_of_month": 2, "day_of_week": 2}, "timezone": "UTC"}
    assert not rules_equal(base, {**base, "timezone": "Europe/Berlin"})
    assert not rules_equal(base, {**base, "week_and_day_of_month": {"week_of_month": 3, "day_of_week": 2}})
    assert not rules_equal(base, {**base, "interval": 2})
    assert not rules_equal(base, None)
    assert rules_equal(None, None)
