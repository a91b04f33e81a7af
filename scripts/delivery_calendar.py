"""
Delivery Calendar Utilities for juice-ops-suite

This module defines the delivery-day calendar for subscription orders.

IMPORTANT:
- Sundays are never delivery days. A date landing on Sunday moves to Monday.
- Orders (or reactivations) placed at or after 6:00 PM local time start one
  day later than orders placed before 6:00 PM.
- Deliveries start at 8:00 AM local time.
- All times are read in the timestamp's OWN time zone. Attaching the store
  zone to naive timestamps is the caller's job (see DELIVERY_TIMEZONE).

Examples of first delivery days:
    • Wed 2:00 PM  → Thu 8:00 AM
    • Wed 8:00 PM  → Fri 8:00 AM
    • Sat 2:00 PM  → Sun → Mon 8:00 AM

This file intentionally handles only calendar-day logic.
delivery_scheduler.py builds full subscription schedules on top of it.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging

# ----------------------------
# 1. Static Calendar Data
# ----------------------------

# Orders at or after this local hour miss next-day delivery
CUTOFF_HOUR = 18

# Delivery runs start at 08:00 local time
DELIVERY_START_HOUR = 8
DELIVERY_START_MINUTE = 0

SUNDAY = 6  # date.weekday()


@dataclass(frozen=True)
class CutoffDecision:
    is_after_cutoff: bool
    baseline_date: datetime


# ----------------------------
# 2. Day Arithmetic
# ----------------------------

def is_sunday(d) -> bool:
    """
    Returns True if d falls on a Sunday in its own local time.
    Works for both date and datetime values.
    """
    return d.weekday() == SUNDAY


def add_days(d, n: int):
    """Returns a new date/datetime n calendar days after d (n may be 0)."""
    return d + timedelta(days=n)


def at_hour(d: datetime, hour: int, minute: int = 0) -> datetime:
    """Same calendar day as d, with the time set to hour:minute:00.000."""
    return d.replace(hour=hour, minute=minute, second=0, microsecond=0)


# ----------------------------
# 3. Delivery Day Rules
# ----------------------------

def avoid_sunday(d):
    """
    Moves a Sunday to the following Monday; any other day is returned as is.
    A single pass is enough since Sunday + 1 is always Monday.
    """
    if is_sunday(d):
        shifted = add_days(d, 1)
        logging.debug(f"avoid_sunday({d}) -> {shifted}")
        return shifted
    return d


def resolve_cutoff(reference: datetime) -> CutoffDecision:
    """
    Decides the baseline delivery day for an order/reactivation timestamp.

    Before 6 PM  → tomorrow at 08:00
    6 PM onwards → day after tomorrow at 08:00

    The Sunday rule is NOT applied here; callers compose it with avoid_sunday().
    """
    is_after_cutoff = reference.hour >= CUTOFF_HOUR
    offset = 2 if is_after_cutoff else 1

    baseline = at_hour(add_days(reference, offset), DELIVERY_START_HOUR, DELIVERY_START_MINUTE)

    logging.debug(
        f"resolve_cutoff({reference.isoformat()}) -> "
        f"after_cutoff={is_after_cutoff}, baseline={baseline.isoformat()}"
    )
    return CutoffDecision(is_after_cutoff=is_after_cutoff, baseline_date=baseline)
