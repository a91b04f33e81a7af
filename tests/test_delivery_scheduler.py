from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from scripts.delivery_scheduler import (
    DeliveryDate,
    Frequency,
    InvalidBound,
    InvalidFrequency,
    InvalidTimestamp,
    SchedulingError,
    SchedulingRequest,
    compute_delivery_schedule,
    deliveries_in_range,
    format_delivery_date,
    generate_schedule,
    next_delivery_after,
    next_upcoming_delivery,
    parse_reference_timestamp,
    resolve_total_deliveries,
    schedule_summary,
)

IST = ZoneInfo("Asia/Kolkata")


def days_of(schedule):
    return [d.date for d in schedule]


def july(*days):
    return [date(2025, 7, d) for d in days]


# ─────────────────────────────────────────────────────────────
# Facade scenarios
# ─────────────────────────────────────────────────────────────

def test_before_cutoff_gap_pattern():
    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=datetime(2025, 7, 16, 14, 0),
        frequency=Frequency.MONTHLY,
        delivery_count=5,
    ))

    assert days_of(schedule) == july(17, 19, 21, 23, 25)
    assert [d.sequence_index for d in schedule] == [1, 2, 3, 4, 5]
    assert schedule[0].scheduled_at == datetime(2025, 7, 17, 8, 0)


def test_after_cutoff_gap_pattern_skips_sunday():
    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=datetime(2025, 7, 16, 20, 0),
        frequency="weekly",
        delivery_count=3,
    ))

    # 18, 20 (Sun) -> 21, then 22 from the candidate progression
    assert days_of(schedule) == july(18, 21, 22)
    assert [d.is_sunday_shifted for d in schedule] == [False, True, False]


def test_saturday_reference_shifts_baseline_to_monday():
    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=datetime(2025, 7, 19, 14, 0),
        frequency="daily",
        delivery_count=3,
    ))

    assert schedule[0].scheduled_at == datetime(2025, 7, 21, 8, 0)
    assert schedule[0].is_sunday_shifted
    assert days_of(schedule) == july(21, 22, 23)


def test_daily_skips_sunday_without_repeating_monday():
    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=datetime(2025, 7, 16, 14, 0),
        frequency="daily",
        delivery_count=6,
    ))

    assert days_of(schedule) == july(17, 18, 19, 21, 22, 23)
    assert schedule[3].is_sunday_shifted
    assert not any(d.is_sunday_shifted for i, d in enumerate(schedule) if i != 3)


def test_customized_uses_gap_pattern():
    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=datetime(2025, 7, 16, 9, 30),
        frequency="customized",
        delivery_count=4,
    ))
    assert days_of(schedule) == july(17, 19, 21, 23)


def test_aware_timestamp_keeps_zone():
    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=datetime(2025, 7, 16, 19, 0, tzinfo=IST),
        frequency="daily",
        delivery_count=1,
    ))
    assert schedule[0].scheduled_at == datetime(2025, 7, 18, 8, 0, tzinfo=IST)


def test_iso_string_reference_is_read_in_its_own_offset():
    # 13:30 UTC is before the cutoff in UTC terms
    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp="2025-07-16T13:30:00+00:00",
        frequency="daily",
        delivery_count=1,
    ))
    assert schedule[0].date == date(2025, 7, 17)


def test_months_bound_spans_calendar_month():
    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=datetime(2025, 7, 16, 14, 0),
        frequency="monthly",
        duration_months=1,
    ))

    assert len(schedule) == 16
    assert schedule[0].date == date(2025, 7, 17)
    assert schedule[-1].date == date(2025, 8, 16)


def test_determinism():
    request = SchedulingRequest(
        reference_timestamp=datetime(2025, 7, 16, 18, 0, tzinfo=IST),
        frequency="daily",
        duration_months=2,
    )
    assert compute_delivery_schedule(request) == compute_delivery_schedule(request)


# ─────────────────────────────────────────────────────────────
# Invariants across many references
# ─────────────────────────────────────────────────────────────

REFERENCES = [
    datetime(2025, 7, 14, 0, 0) + timedelta(hours=h)
    for h in range(0, 24 * 7, 5)
]


@pytest.mark.parametrize("frequency", list(Frequency))
@pytest.mark.parametrize("reference", REFERENCES)
def test_no_sunday_and_strictly_increasing(reference, frequency):
    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=reference,
        frequency=frequency,
        delivery_count=90,
    ))

    assert len(schedule) == 90
    assert all(d.date.weekday() != 6 for d in schedule)
    assert [d.sequence_index for d in schedule] == list(range(1, 91))
    assert all(a.date < b.date for a, b in zip(schedule, schedule[1:]))


@pytest.mark.parametrize("frequency", list(Frequency))
def test_months_bound_never_sunday(frequency):
    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=datetime(2025, 1, 30, 12, 0),
        frequency=frequency,
        duration_months=6,
    ))
    assert schedule
    assert all(d.date.weekday() != 6 for d in schedule)


# ─────────────────────────────────────────────────────────────
# Generator / totals
# ─────────────────────────────────────────────────────────────

@pytest.mark.parametrize("total", [0, -3])
def test_empty_bound_returns_empty_schedule(total):
    assert generate_schedule(datetime(2025, 7, 17, 8, 0), "daily", total) == []


def test_generate_schedule_accepts_plain_date():
    schedule = generate_schedule(date(2025, 7, 17), "weekly", 2)
    assert schedule[0] == DeliveryDate(
        date=date(2025, 7, 17),
        sequence_index=1,
        is_sunday_shifted=False,
        scheduled_at=datetime(2025, 7, 17, 8, 0),
    )


def test_total_deliveries_daily_month_excludes_sundays():
    # Jul 17 .. Aug 17 inclusive is 32 days, five of them Sundays
    assert resolve_total_deliveries(datetime(2025, 7, 17, 8, 0), "daily", duration_months=1) == 27


def test_total_deliveries_gap_month():
    assert resolve_total_deliveries(datetime(2025, 7, 17, 8, 0), "weekly", duration_months=1) == 16


def test_total_deliveries_clamps_month_end():
    # Jan 31 + 1 month = Feb 28
    assert resolve_total_deliveries(datetime(2025, 1, 31, 8, 0), "weekly", duration_months=1) == 15


def test_total_deliveries_count_passthrough():
    assert resolve_total_deliveries(datetime(2025, 7, 17, 8, 0), "daily", delivery_count=12) == 12


# ─────────────────────────────────────────────────────────────
# Rejected input
# ─────────────────────────────────────────────────────────────

@pytest.mark.parametrize("frequency", ["fortnightly", "", None, 7, "dailyish"])
def test_invalid_frequency(frequency):
    with pytest.raises(InvalidFrequency):
        compute_delivery_schedule(SchedulingRequest(
            reference_timestamp=datetime(2025, 7, 16, 14, 0),
            frequency=frequency,
            delivery_count=3,
        ))


def test_frequency_parse_is_case_insensitive():
    assert Frequency.parse(" Weekly ") is Frequency.WEEKLY
    assert Frequency.parse(Frequency.DAILY) is Frequency.DAILY


@pytest.mark.parametrize(
    "count, months",
    [
        (None, None),
        (5, 1),
        (0, None),
        (-2, None),
        (None, 0),
        (True, None),
        (2.5, None),
    ],
)
def test_invalid_bound(count, months):
    with pytest.raises(InvalidBound):
        compute_delivery_schedule(SchedulingRequest(
            reference_timestamp=datetime(2025, 7, 16, 14, 0),
            frequency="daily",
            delivery_count=count,
            duration_months=months,
        ))


@pytest.mark.parametrize("reference", [None, "not-a-date", "2025-13-45T10:00", date(2025, 7, 16), 1752660000])
def test_invalid_timestamp(reference):
    with pytest.raises(InvalidTimestamp):
        compute_delivery_schedule(SchedulingRequest(
            reference_timestamp=reference,
            frequency="daily",
            delivery_count=3,
        ))


def test_errors_are_value_errors():
    assert issubclass(SchedulingError, ValueError)
    for error in (InvalidFrequency, InvalidBound, InvalidTimestamp):
        assert issubclass(error, SchedulingError)


def test_parse_reference_timestamp_attaches_default_zone():
    parsed = parse_reference_timestamp("2025-07-16T14:00:00", default_tz=IST)
    assert parsed == datetime(2025, 7, 16, 14, 0, tzinfo=IST)

    aware = parse_reference_timestamp("2025-07-16T14:00:00+00:00", default_tz=IST)
    assert aware.utcoffset() == timedelta(0)


# ─────────────────────────────────────────────────────────────
# Queries
# ─────────────────────────────────────────────────────────────

@pytest.fixture()
def daily_schedule():
    return compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=datetime(2025, 7, 16, 14, 0),
        frequency="daily",
        delivery_count=10,
    ))


def test_deliveries_in_range_is_inclusive(daily_schedule):
    in_range = deliveries_in_range(daily_schedule, date(2025, 7, 19), datetime(2025, 7, 22, 23, 0))
    assert days_of(in_range) == july(19, 21, 22)


def test_next_upcoming_delivery(daily_schedule):
    assert next_upcoming_delivery(daily_schedule, date(2025, 7, 20)).date == date(2025, 7, 21)
    assert next_upcoming_delivery(daily_schedule, date(2025, 7, 17)).sequence_index == 1
    assert next_upcoming_delivery(daily_schedule, date(2025, 9, 1)) is None


def test_next_delivery_after_follows_shifted_gap_candidate():
    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=datetime(2025, 7, 16, 20, 0),
        frequency="weekly",
        delivery_count=3,
    ))

    # Jul 21 stands in for Sunday the 20th, so the next candidate is the 22nd
    assert next_delivery_after(schedule[1], "weekly") == schedule[2]


def test_next_delivery_after_shifted_baseline_counts_from_monday():
    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=datetime(2025, 7, 19, 14, 0),
        frequency="monthly",
        delivery_count=2,
    ))

    assert days_of(schedule) == july(21, 23)
    assert next_delivery_after(schedule[0], "monthly") == schedule[1]


@pytest.mark.parametrize("frequency", list(Frequency))
@pytest.mark.parametrize("reference", [
    datetime(2025, 7, 16, 14, 0),
    datetime(2025, 7, 18, 19, 0),
    datetime(2025, 7, 19, 14, 0),
    datetime(2025, 7, 25, 9, 0),
    datetime(2025, 12, 31, 18, 0),
])
def test_next_delivery_after_matches_generated_schedule(reference, frequency):
    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=reference,
        frequency=frequency,
        delivery_count=20,
    ))

    for previous, expected in zip(schedule, schedule[1:]):
        assert next_delivery_after(previous, frequency) == expected


def test_generate_schedule_from_sunday_baseline_matches_facade():
    direct = generate_schedule(datetime(2025, 7, 20, 8, 0), "weekly", 3)

    assert days_of(direct) == july(21, 23, 25)
    assert direct[0].is_sunday_shifted
    assert next_delivery_after(direct[0], "weekly") == direct[1]


def test_format_delivery_date():
    assert format_delivery_date(date(2025, 7, 17)) == "Thursday, July 17, 2025"
    assert format_delivery_date(datetime(2025, 7, 21, 8, 0)) == "Monday, July 21, 2025"


def test_schedule_summary(daily_schedule):
    assert schedule_summary(daily_schedule) == {
        "first_delivery": "2025-07-17",
        "last_delivery": "2025-07-28",
        "total_deliveries": 10,
    }
    assert schedule_summary([]) == {"first_delivery": None, "last_delivery": None, "total_deliveries": 0}
