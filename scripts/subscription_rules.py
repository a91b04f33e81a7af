"""
Subscription pause / reactivation rules.

- A subscription can be paused only with at least 24 hours' notice before
  its next delivery.
- A paused subscription can be reactivated within 3 calendar months of the
  pause; after that a new subscription is required.
- Renewal reminders go out in the last 5 days before the subscription ends.

The clock is always passed in (`now`), never read here.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import logging
import math

from dateutil.relativedelta import relativedelta

PAUSE_NOTICE_HOURS = 24
REACTIVATION_WINDOW_MONTHS = 3


@dataclass(frozen=True)
class PauseDecision:
    can_pause: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class ReactivationDecision:
    can_reactivate: bool
    reason: Optional[str] = None
    days_left: int = 0


def _days_until(moment: datetime, now: datetime) -> int:
    return math.ceil((moment - now).total_seconds() / 86400)


def can_pause_subscription(next_delivery_at: datetime, now: datetime) -> PauseDecision:
    hours_until_delivery = (next_delivery_at - now).total_seconds() / 3600

    if hours_until_delivery < PAUSE_NOTICE_HOURS:
        return PauseDecision(
            can_pause=False,
            reason=(
                f"Cannot pause subscription. Next delivery is in {round(hours_until_delivery)} hours. "
                f"Minimum {PAUSE_NOTICE_HOURS} hours notice required."
            ),
        )

    return PauseDecision(can_pause=True)


def reactivation_deadline(paused_at: datetime) -> datetime:
    return paused_at + relativedelta(months=REACTIVATION_WINDOW_MONTHS)


def can_reactivate_subscription(paused_at: datetime, now: datetime) -> ReactivationDecision:
    deadline = reactivation_deadline(paused_at)
    days_left = _days_until(deadline, now)

    if days_left <= 0:
        logging.info(f"[rules] Reactivation window closed on {deadline.date()} (paused {paused_at.date()})")
        return ReactivationDecision(
            can_reactivate=False,
            reason="Reactivation period has expired. Please create a new subscription.",
            days_left=0,
        )

    return ReactivationDecision(can_reactivate=True, days_left=days_left)


def subscription_end_date(start: datetime, duration_months: int) -> datetime:
    return start + relativedelta(months=duration_months)


# ─────────────────────────────────────────────────────────────
# Renewal / Expiry
# ─────────────────────────────────────────────────────────────

RENEWAL_NOTIFICATION_DAYS = 5


@dataclass(frozen=True)
class RenewalNotice:
    needs_notification: bool
    days_left: int


@dataclass(frozen=True)
class ExpiryStatus:
    status: str  # active | expiring_soon | expired
    days_left: int
    message: str


def is_subscription_expired(paused_at: datetime, now: datetime) -> bool:
    """A paused subscription expires once its reactivation window has closed."""
    return not can_reactivate_subscription(paused_at, now).can_reactivate


def needs_renewal_notification(end_date: datetime, now: datetime) -> RenewalNotice:
    days_left = _days_until(end_date, now)
    return RenewalNotice(
        needs_notification=0 < days_left <= RENEWAL_NOTIFICATION_DAYS,
        days_left=max(0, days_left),
    )


def subscription_expiry_status(end_date: datetime, now: datetime) -> ExpiryStatus:
    days_left = _days_until(end_date, now)

    if days_left < 0:
        return ExpiryStatus(
            status="expired",
            days_left=0,
            message="Your subscription has expired. Please renew to continue receiving deliveries.",
        )

    if days_left <= RENEWAL_NOTIFICATION_DAYS:
        plural = "s" if days_left != 1 else ""
        return ExpiryStatus(
            status="expiring_soon",
            days_left=days_left,
            message=f"Your subscription expires in {days_left} day{plural}. Renew now to avoid interruption.",
        )

    return ExpiryStatus(
        status="active",
        days_left=days_left,
        message=f"Your subscription is active for {days_left} more days.",
    )
