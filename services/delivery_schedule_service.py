"""
Delivery schedule persistence.

Reads subscriptions from Supabase, asks scripts.delivery_scheduler for the
schedule and writes it back as `subscription_deliveries` rows.

Does NOT depend on argparse, and never reads the clock: every entrypoint
takes the reference time (and "now" for row bookkeeping) explicitly.
"""

import os
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from scripts.delivery_scheduler import (
    DeliveryDate,
    Frequency,
    SchedulingRequest,
    compute_delivery_schedule,
    next_delivery_after,
    next_upcoming_delivery,
    parse_reference_timestamp,
    schedule_summary,
)
from scripts.subscription_rules import (
    can_pause_subscription,
    can_reactivate_subscription,
    is_subscription_expired,
    needs_renewal_notification,
    reactivation_deadline,
    subscription_end_date,
    subscription_expiry_status,
)

DELIVERY_TIMEZONE = ZoneInfo(os.getenv("DELIVERY_TIMEZONE", "Asia/Kolkata"))

SUBSCRIPTIONS_TABLE = "user_subscriptions"
DELIVERIES_TABLE = "subscription_deliveries"


def _local(value) -> datetime:
    return parse_reference_timestamp(value, default_tz=DELIVERY_TIMEZONE)


# ─────────────────────────────────────────────────────────────
# Row Mapping
# ─────────────────────────────────────────────────────────────

def build_scheduling_request(
    subscription: Dict,
    reference_at,
    *,
    delivery_count: Optional[int] = None,
) -> SchedulingRequest:
    """
    Map a user_subscriptions row onto a SchedulingRequest.

    With delivery_count the schedule is count-bound (reactivation of the
    remaining deliveries); otherwise it spans the row's subscription_duration
    in months.
    """
    reference = _local(reference_at)

    return SchedulingRequest(
        reference_timestamp=reference,
        frequency=subscription.get("delivery_frequency"),
        delivery_count=delivery_count,
        duration_months=None if delivery_count is not None else subscription.get("subscription_duration"),
    )


def build_delivery_rows(
    subscription_id: str,
    schedule: List[DeliveryDate],
    items,
    now: datetime,
) -> List[Dict]:
    now_iso = now.isoformat()
    return [
        {
            "subscription_id": subscription_id,
            "delivery_date": delivery.scheduled_at.isoformat(),
            "sequence_index": delivery.sequence_index,
            "is_sunday_shifted": delivery.is_sunday_shifted,
            "status": "scheduled",
            "items": items or [],
            "created_at": now_iso,
            "updated_at": now_iso,
        }
        for delivery in schedule
    ]


def delivery_from_row(row: Dict) -> DeliveryDate:
    scheduled_at = _local(row["delivery_date"])
    return DeliveryDate(
        date=scheduled_at.date(),
        sequence_index=row.get("sequence_index") or 1,
        is_sunday_shifted=bool(row.get("is_sunday_shifted")),
        scheduled_at=scheduled_at,
    )


# ─────────────────────────────────────────────────────────────
# Store Helpers
# ─────────────────────────────────────────────────────────────

def fetch_subscription(client, subscription_id: str) -> Dict:
    resp = client.table(SUBSCRIPTIONS_TABLE) \
        .select("*") \
        .eq("id", subscription_id) \
        .execute()

    if not resp.data:
        raise LookupError(f"Subscription '{subscription_id}' not found")

    return resp.data[0]


def fetch_subscriptions_by_status(client, status: str) -> List[Dict]:
    resp = client.table(SUBSCRIPTIONS_TABLE) \
        .select("*") \
        .eq("status", status) \
        .execute()

    return resp.data or []


def fetch_deliveries(client, subscription_id: str, status: Optional[str] = None) -> List[Dict]:
    """Delivery rows of a subscription, oldest first."""
    query = client.table(DELIVERIES_TABLE) \
        .select("*") \
        .eq("subscription_id", subscription_id)

    if status is not None:
        query = query.eq("status", status)

    rows = query.execute().data or []
    return sorted(rows, key=lambda r: _local(r["delivery_date"]))


def scheduled_delivery_ids(client, subscription_id: str, since: Optional[datetime] = None) -> List:
    query = client.table(DELIVERIES_TABLE) \
        .select("id") \
        .eq("subscription_id", subscription_id) \
        .eq("status", "scheduled")

    if since is not None:
        query = query.gte("delivery_date", since.isoformat())

    return [row["id"] for row in query.execute().data or []]


def delete_deliveries(client, delivery_ids: List):
    if not delivery_ids:
        return

    client.table(DELIVERIES_TABLE) \
        .delete() \
        .in_("id", delivery_ids) \
        .execute()


def update_subscription(client, subscription_id: str, payload: Dict):
    client.table(SUBSCRIPTIONS_TABLE) \
        .update(payload) \
        .eq("id", subscription_id) \
        .execute()


def _replace_schedule(
    client,
    subscription: Dict,
    schedule: List[DeliveryDate],
    superseded_ids: List,
    now: datetime,
    extra_updates: Optional[Dict] = None,
):
    """
    Insert the new rows, then drop the superseded ones.

    If the insert fails the old rows are still in place and the error
    propagates to the caller.
    """
    subscription_id = subscription["id"]

    rows = build_delivery_rows(subscription_id, schedule, subscription.get("selected_juices"), now)
    if rows:
        client.table(DELIVERIES_TABLE).insert(rows).execute()

    delete_deliveries(client, superseded_ids)

    payload = {
        "next_delivery_date": schedule[0].scheduled_at.isoformat() if schedule else None,
        "updated_at": now.isoformat(),
    }
    if extra_updates:
        payload.update(extra_updates)

    update_subscription(client, subscription_id, payload)


# ─────────────────────────────────────────────────────────────
# Entrypoints
# ─────────────────────────────────────────────────────────────

def regenerate_subscription_schedule(
    client,
    subscription_id: str,
    reference_at,
    now: datetime,
    *,
    delivery_count: Optional[int] = None,
) -> Dict:
    """
    Replace the scheduled deliveries of a subscription with a fresh schedule
    computed from reference_at.

    Every scheduled row from the earlier of `now` and the first new delivery
    onward is superseded, so a past reference_at (re-running an old order)
    never leaves two deliveries on the same day.

    Returns structured result metadata.
    """
    now = _local(now)
    subscription = fetch_subscription(client, subscription_id)

    request = build_scheduling_request(subscription, reference_at, delivery_count=delivery_count)
    schedule = compute_delivery_schedule(request)

    since = min(now, schedule[0].scheduled_at) if schedule else now
    superseded = scheduled_delivery_ids(client, subscription_id, since=since)

    _replace_schedule(client, subscription, schedule, superseded, now)

    logging.info(
        f"[schedule] Subscription {subscription_id}: {len(schedule)} deliveries "
        f"({request.frequency} from {request.reference_timestamp.isoformat()}), "
        f"{len(superseded)} superseded"
    )

    return {"subscription_id": subscription_id, **schedule_summary(schedule)}


def pause_subscription(client, subscription_id: str, paused_at, reason: Optional[str] = None) -> Dict:
    """
    Pause an active subscription with at least 24 hours' notice before its
    next delivery.

    Scheduled rows are left as they are; reactivation re-plans them.
    """
    paused_at = _local(paused_at)
    subscription = fetch_subscription(client, subscription_id)

    if subscription.get("status") != "active":
        raise ValueError(f"Subscription '{subscription_id}' is not active (status={subscription.get('status')!r})")

    next_delivery = subscription.get("next_delivery_date")
    if next_delivery:
        decision = can_pause_subscription(_local(next_delivery), paused_at)
        if not decision.can_pause:
            raise ValueError(decision.reason)

    deadline = reactivation_deadline(paused_at)

    update_subscription(client, subscription_id, {
        "status": "paused",
        "paused_at": paused_at.isoformat(),
        "pause_reason": reason or "User requested pause",
        "reactivation_deadline": deadline.isoformat(),
        "updated_at": paused_at.isoformat(),
    })

    logging.info(f"[schedule] Subscription {subscription_id} paused until at most {deadline.date()}")

    return {
        "subscription_id": subscription_id,
        "paused_at": paused_at.isoformat(),
        "reactivation_deadline": deadline.isoformat(),
    }


def reactivate_subscription(client, subscription_id: str, reactivated_at) -> Dict:
    """
    Resume a paused subscription: its remaining scheduled deliveries are
    re-planned from the reactivation time under the usual cutoff rule.
    """
    reactivated_at = _local(reactivated_at)
    subscription = fetch_subscription(client, subscription_id)

    if subscription.get("status") != "paused":
        raise ValueError(f"Subscription '{subscription_id}' is not paused (status={subscription.get('status')!r})")

    paused_at = _local(subscription.get("paused_at"))
    decision = can_reactivate_subscription(paused_at, reactivated_at)
    if not decision.can_reactivate:
        raise ValueError(decision.reason)

    # all pending rows move, including the ones that fell due during the pause
    superseded = scheduled_delivery_ids(client, subscription_id)
    if not superseded:
        raise ValueError(f"Subscription '{subscription_id}' has no remaining deliveries to reschedule")

    request = build_scheduling_request(subscription, reactivated_at, delivery_count=len(superseded))
    schedule = compute_delivery_schedule(request)

    _replace_schedule(
        client,
        subscription,
        schedule,
        superseded,
        reactivated_at,
        extra_updates={"status": "active", "paused_at": None, "reactivation_deadline": None},
    )

    logging.info(
        f"[schedule] Subscription {subscription_id} reactivated: {len(superseded)} deliveries "
        f"rescheduled, {decision.days_left} days were left in the window"
    )

    return {
        "subscription_id": subscription_id,
        "reactivated_at": reactivated_at.isoformat(),
        **schedule_summary(schedule),
    }


# ─────────────────────────────────────────────────────────────
# Daily Maintenance
# ─────────────────────────────────────────────────────────────

def _subscription_end(subscription: Dict, history: List[DeliveryDate]) -> Optional[datetime]:
    if subscription.get("subscription_end_date"):
        return _local(subscription["subscription_end_date"])

    duration = subscription.get("subscription_duration")
    if duration and history:
        return subscription_end_date(history[0].scheduled_at, duration)

    return None


def _advance_subscription(client, subscription: Dict, now: datetime) -> str:
    """
    Move next_delivery_date past today for one due subscription.

    Returns what happened: "advanced", "extended" or "completed".
    """
    subscription_id = subscription["id"]
    tomorrow = now.date() + timedelta(days=1)

    rows = fetch_deliveries(client, subscription_id)
    history = [delivery_from_row(r) for r in rows]
    pending = [delivery_from_row(r) for r in rows if r.get("status") == "scheduled"]

    upcoming = next_upcoming_delivery(pending, tomorrow)
    outcome = "advanced"

    if upcoming is None and history:
        frequency = Frequency.parse(subscription.get("delivery_frequency"))
        end_at = _subscription_end(subscription, history)

        candidate = next_delivery_after(history[-1], frequency)
        while candidate.date < tomorrow:
            candidate = next_delivery_after(candidate, frequency)

        if end_at is not None and candidate.scheduled_at <= end_at:
            client.table(DELIVERIES_TABLE) \
                .insert(build_delivery_rows(subscription_id, [candidate], subscription.get("selected_juices"), now)) \
                .execute()
            upcoming = candidate
            outcome = "extended"

    if upcoming is None:
        update_subscription(client, subscription_id, {
            "status": "completed",
            "next_delivery_date": None,
            "updated_at": now.isoformat(),
        })
        return "completed"

    update_subscription(client, subscription_id, {
        "next_delivery_date": upcoming.scheduled_at.isoformat(),
        "updated_at": now.isoformat(),
    })
    return outcome


def advance_due_subscriptions(client, now) -> Dict:
    """
    Nightly pass over the subscriptions.

    - Paused subscriptions whose reactivation window has closed expire and
      lose their remaining scheduled deliveries.
    - Active subscriptions whose next delivery is today or overdue get the
      next scheduled delivery after today. When none is left the pattern is
      extended up to the subscription end date; past it the subscription
      is completed.
    """
    now = _local(now)
    counts = {"advanced": 0, "extended": 0, "completed": 0, "expired": 0}

    for subscription in fetch_subscriptions_by_status(client, "paused"):
        if not subscription.get("paused_at"):
            continue
        if is_subscription_expired(_local(subscription["paused_at"]), now):
            delete_deliveries(client, scheduled_delivery_ids(client, subscription["id"]))
            update_subscription(client, subscription["id"], {
                "status": "expired",
                "next_delivery_date": None,
                "updated_at": now.isoformat(),
            })
            counts["expired"] += 1

    for subscription in fetch_subscriptions_by_status(client, "active"):
        next_delivery = subscription.get("next_delivery_date")
        if not next_delivery or _local(next_delivery).date() > now.date():
            continue

        counts[_advance_subscription(client, subscription, now)] += 1

    logging.info(
        f"[schedule] Advance pass {now.date()}: {counts['advanced']} advanced, "
        f"{counts['extended']} extended, {counts['completed']} completed, {counts['expired']} expired"
    )
    return counts


def collect_renewal_notices(client, now) -> Dict:
    """
    Active subscriptions ending within the renewal window that have not been
    reminded yet. Each one is flagged renewal_notification_sent.
    """
    now = _local(now)
    notices = []

    for subscription in fetch_subscriptions_by_status(client, "active"):
        if subscription.get("renewal_notification_sent") or not subscription.get("subscription_end_date"):
            continue

        end_at = _local(subscription["subscription_end_date"])
        if not needs_renewal_notification(end_at, now).needs_notification:
            continue

        status = subscription_expiry_status(end_at, now)
        notices.append({
            "subscription_id": subscription["id"],
            "user_id": subscription.get("user_id"),
            "subscription_end_date": end_at.isoformat(),
            "days_left": status.days_left,
            "message": status.message,
        })

        update_subscription(client, subscription["id"], {
            "renewal_notification_sent": True,
            "updated_at": now.isoformat(),
        })

    logging.info(f"[schedule] Renewal check {now.date()}: {len(notices)} subscriptions to remind")

    return {"count": len(notices), "notices": notices}
