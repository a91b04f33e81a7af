"""
Delivery Schedule Builder for juice-ops-suite

Turns an order/reactivation timestamp into the full, ordered list of
subscription delivery days.

Rules:
- First delivery follows the 6 PM cutoff in delivery_calendar.resolve_cutoff()
- Daily subscriptions: one delivery per day, never on Sunday
- Weekly / monthly / customized subscriptions: every other day (1-day gap),
  each candidate day moved off Sunday independently
- A schedule is bounded either by a delivery count or by a duration in months

Everything here is pure: no clock, no database, no network. Callers pass the
reference timestamp explicitly and persist the result themselves
(see services/delivery_schedule_service.py).
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, time
from enum import Enum
from itertools import islice
from typing import Dict, Iterator, List, Optional, Tuple
import logging

from dateutil.relativedelta import relativedelta

from scripts.delivery_calendar import (
    DELIVERY_START_HOUR,
    DELIVERY_START_MINUTE,
    add_days,
    avoid_sunday,
    is_sunday,
    resolve_cutoff,
)


# ─────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────

class SchedulingError(ValueError):
    """Base class for rejected scheduling requests."""


class InvalidFrequency(SchedulingError):
    pass


class InvalidBound(SchedulingError):
    pass


class InvalidTimestamp(SchedulingError):
    pass


# ─────────────────────────────────────────────────────────────
# Value Types
# ─────────────────────────────────────────────────────────────

class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOMIZED = "customized"

    @classmethod
    def parse(cls, value) -> "Frequency":
        """
        Accepts a Frequency or one of its literals (case-insensitive).
        Anything else is rejected; there is no fallback frequency.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InvalidFrequency(f"Delivery frequency must be a string, got {value!r}")
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidFrequency(f"Unrecognized delivery frequency: {value!r}") from None

    @property
    def step_days(self) -> int:
        # daily = no gap, everything else = 1-day gap
        return 1 if self is Frequency.DAILY else 2


@dataclass(frozen=True)
class SchedulingRequest:
    reference_timestamp: datetime
    frequency: Frequency
    delivery_count: Optional[int] = None
    duration_months: Optional[int] = None


@dataclass(frozen=True)
class DeliveryDate:
    date: date
    sequence_index: int
    is_sunday_shifted: bool
    scheduled_at: datetime


# ─────────────────────────────────────────────────────────────
# Input Validation
# ─────────────────────────────────────────────────────────────

def parse_reference_timestamp(value, default_tz=None) -> datetime:
    """
    Accepts a datetime or an ISO-8601 string.

    Naive values are given default_tz when one is passed, otherwise they are
    read as local wall-clock time. A missing value is an error: the current
    time is never substituted.
    """
    if value is None:
        raise InvalidTimestamp("A reference timestamp is required.")

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            raise InvalidTimestamp(f"Unparseable reference timestamp: {value!r}") from None
    else:
        raise InvalidTimestamp(
            f"Reference timestamp must be a datetime or ISO-8601 string, got {type(value).__name__}"
        )

    if parsed.tzinfo is None and default_tz is not None:
        parsed = parsed.replace(tzinfo=default_tz)

    return parsed


def validate_bound(delivery_count: Optional[int], duration_months: Optional[int]) -> None:
    supplied = [v for v in (delivery_count, duration_months) if v is not None]
    if len(supplied) != 1:
        raise InvalidBound("Exactly one of delivery_count / duration_months must be supplied.")

    value = supplied[0]
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidBound(f"Delivery bound must be a positive integer, got {value!r}")


# ─────────────────────────────────────────────────────────────
# Pattern Generation
# ─────────────────────────────────────────────────────────────

def _as_delivery_start(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time(DELIVERY_START_HOUR, DELIVERY_START_MINUTE))


def _pattern_anchor(slot: datetime, shifted: bool, sequence_index: int, frequency: Frequency) -> datetime:
    """
    Day the following candidate is counted from.

    daily: the slot just filled, so a Sunday moved onto Monday never produces
           a second Monday delivery.
    gap:   the previous CANDIDATE, independent of any Sunday shift. The first
           slot is the pattern's own anchor (the baseline, already off Sunday).
    """
    if frequency is Frequency.DAILY or sequence_index == 1 or not shifted:
        return slot
    return add_days(slot, -1)


def _iter_delivery_slots(baseline: datetime, frequency: Frequency) -> Iterator[Tuple[datetime, bool]]:
    """Endless (slot, was_shifted) stream for a frequency."""
    shifted = is_sunday(baseline)
    slot = avoid_sunday(baseline)
    sequence_index = 1
    while True:
        yield slot, shifted

        candidate = add_days(_pattern_anchor(slot, shifted, sequence_index, frequency), frequency.step_days)
        shifted = is_sunday(candidate)
        slot = avoid_sunday(candidate)
        sequence_index += 1


def resolve_total_deliveries(
    baseline,
    frequency,
    delivery_count: Optional[int] = None,
    duration_months: Optional[int] = None,
) -> int:
    """
    A count bound is used as is. A months bound counts the pattern's
    deliveries from the baseline through baseline + N calendar months
    (inclusive; Jan 31 + 1 month = Feb 28/29).
    """
    validate_bound(delivery_count, duration_months)
    frequency = Frequency.parse(frequency)

    if delivery_count is not None:
        return delivery_count

    start = _as_delivery_start(baseline)
    end_day = (start + relativedelta(months=duration_months)).date()

    total = 0
    for slot, _ in _iter_delivery_slots(start, frequency):
        if slot.date() > end_day:
            break
        total += 1

    logging.debug(
        f"resolve_total_deliveries({start.date()}, {frequency.value}, months={duration_months}) "
        f"-> {total} through {end_day}"
    )
    return total


def generate_schedule(baseline, frequency, total_deliveries: int) -> List[DeliveryDate]:
    """
    Returns exactly total_deliveries DeliveryDate entries starting at baseline.
    total_deliveries <= 0 returns an empty list.
    """
    frequency = Frequency.parse(frequency)
    if total_deliveries <= 0:
        return []

    start = _as_delivery_start(baseline)
    slots = islice(_iter_delivery_slots(start, frequency), total_deliveries)

    schedule = [
        DeliveryDate(
            date=slot.date(),
            sequence_index=index,
            is_sunday_shifted=shifted,
            scheduled_at=slot,
        )
        for index, (slot, shifted) in enumerate(slots, start=1)
    ]

    logging.debug(
        f"generate_schedule({start.date()}, {frequency.value}, {total_deliveries}) "
        f"-> {schedule[0].date} .. {schedule[-1].date}"
    )
    return schedule


# ─────────────────────────────────────────────────────────────
# Facade
# ─────────────────────────────────────────────────────────────

def compute_delivery_schedule(request: SchedulingRequest) -> List[DeliveryDate]:
    """
    Full schedule for a subscription created/reactivated at
    request.reference_timestamp.

    1. cutoff → baseline day
    2. baseline moved off Sunday
    3. bound resolved to a delivery count
    4. pattern generated from the baseline

    Invalid input raises a SchedulingError subclass before anything is computed.
    """
    reference = parse_reference_timestamp(request.reference_timestamp)
    frequency = Frequency.parse(request.frequency)
    validate_bound(request.delivery_count, request.duration_months)

    decision = resolve_cutoff(reference)
    baseline = avoid_sunday(decision.baseline_date)

    total = resolve_total_deliveries(
        baseline,
        frequency,
        delivery_count=request.delivery_count,
        duration_months=request.duration_months,
    )
    schedule = generate_schedule(baseline, frequency, total)

    if schedule and is_sunday(decision.baseline_date):
        schedule[0] = replace(schedule[0], is_sunday_shifted=True)

    logging.debug(
        f"[scheduler] {frequency.value} schedule from {reference.isoformat()}: "
        f"{len(schedule)} deliveries (after_cutoff={decision.is_after_cutoff})"
    )
    return schedule


# ─────────────────────────────────────────────────────────────
# Schedule Queries (reports, reminders, admin tools)
# ─────────────────────────────────────────────────────────────

def _as_day(value) -> date:
    return value.date() if isinstance(value, datetime) else value


def deliveries_in_range(schedule: List[DeliveryDate], start, end) -> List[DeliveryDate]:
    """Deliveries whose day falls within [start, end], both inclusive."""
    start_day, end_day = _as_day(start), _as_day(end)
    return [d for d in schedule if start_day <= d.date <= end_day]


def next_upcoming_delivery(schedule: List[DeliveryDate], today) -> Optional[DeliveryDate]:
    """First delivery on or after today, or None once the schedule is used up."""
    today = _as_day(today)
    for delivery in schedule:
        if delivery.date >= today:
            return delivery
    return None


def next_delivery_after(previous: DeliveryDate, frequency) -> DeliveryDate:
    """
    The delivery that generate_schedule would emit right after `previous`.

    Used to extend a persisted schedule one slot at a time without
    regenerating it from the baseline.
    """
    frequency = Frequency.parse(frequency)

    anchor = _pattern_anchor(
        _as_delivery_start(previous.scheduled_at),
        previous.is_sunday_shifted,
        previous.sequence_index,
        frequency,
    )
    candidate = add_days(anchor, frequency.step_days)
    slot = avoid_sunday(candidate)

    return DeliveryDate(
        date=slot.date(),
        sequence_index=previous.sequence_index + 1,
        is_sunday_shifted=is_sunday(candidate),
        scheduled_at=slot,
    )


def format_delivery_date(value) -> str:
    # Thursday, July 17, 2025
    d = _as_day(value)
    return f"{d:%A}, {d:%B} {d.day}, {d.year}"


def schedule_summary(schedule: List[DeliveryDate]) -> Dict:
    if not schedule:
        return {"first_delivery": None, "last_delivery": None, "total_deliveries": 0}
    return {
        "first_delivery": schedule[0].date.isoformat(),
        "last_delivery": schedule[-1].date.isoformat(),
        "total_deliveries": len(schedule),
    }
