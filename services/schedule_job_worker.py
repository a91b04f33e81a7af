#!/usr/bin/env python3
"""
Async Schedule Job Worker

Polls Supabase (schedule_jobs) for queued jobs,
claims them atomically via RPC,
executes delivery-schedule services,
updates status + result metadata.

Every job runs against a single clock reading taken when it is picked up;
that instant is stored on the job as `processed_at` and handed to the
executor, so a job's bookkeeping and its scheduling agree on "now".
"""

import os
import asyncio
import logging
from datetime import datetime

from dotenv import load_dotenv

from services.supabase_client import get_supabase
from services.delivery_schedule_service import (
    DELIVERY_TIMEZONE,
    advance_due_subscriptions,
    collect_renewal_notices,
    pause_subscription,
    reactivate_subscription,
    regenerate_subscription_schedule,
)


# ─────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────

load_dotenv()

POLL_INTERVAL_SECONDS = int(os.getenv("SCHEDULE_WORKER_POLL_INTERVAL", "5"))

JOBS_TABLE = "schedule_jobs"
CLAIM_RPC = "claim_next_schedule_job"


class JobRejected(ValueError):
    """The job's parameters can never succeed; retrying will not help."""


# ─────────────────────────────────────────────────────────────
# Job Dispatcher
# ─────────────────────────────────────────────────────────────

def _require_subscription_id(job_type: str, parameters: dict) -> str:
    subscription_id = parameters.get("subscription_id")
    if not subscription_id:
        raise JobRejected(f"{job_type} job requires 'subscription_id'")
    return subscription_id


def execute_regenerate_schedule(parameters: dict, now: datetime):
    """
    The reference time is the job's `reference_at` when given (admin re-run of
    an order), otherwise the moment the worker picked the job up.
    """
    subscription_id = _require_subscription_id("regenerate_schedule", parameters)

    return regenerate_subscription_schedule(
        get_supabase(),
        subscription_id,
        parameters.get("reference_at") or now,
        now,
        delivery_count=parameters.get("delivery_count"),
    )


def execute_pause_subscription(parameters: dict, now: datetime):
    subscription_id = _require_subscription_id("pause_subscription", parameters)
    return pause_subscription(get_supabase(), subscription_id, now, reason=parameters.get("reason"))


def execute_reactivate_subscription(parameters: dict, now: datetime):
    subscription_id = _require_subscription_id("reactivate_subscription", parameters)
    return reactivate_subscription(get_supabase(), subscription_id, parameters.get("reactivated_at") or now)


def execute_advance_deliveries(parameters: dict, now: datetime):
    return advance_due_subscriptions(get_supabase(), now)


def execute_renewal_check(parameters: dict, now: datetime):
    return collect_renewal_notices(get_supabase(), now)


JOB_EXECUTORS = {
    "regenerate_schedule": execute_regenerate_schedule,
    "pause_subscription": execute_pause_subscription,
    "reactivate_subscription": execute_reactivate_subscription,
    "advance_deliveries": execute_advance_deliveries,
    "renewal_check": execute_renewal_check,
}

# Input errors (SchedulingError, rule violations, unknown ids): the job is
# marked rejected instead of failed.
REJECTED_ERRORS = (ValueError, LookupError)


# ─────────────────────────────────────────────────────────────
# Job Lifecycle Helpers
# ─────────────────────────────────────────────────────────────

def claim_next_job():
    """
    Atomically claim the next queued job via RPC.
    """
    resp = get_supabase().rpc(CLAIM_RPC).execute()

    return resp.data[0] if resp.data else None


def update_job(job_id: str, payload: dict):
    get_supabase().table(JOBS_TABLE) \
        .update(payload) \
        .eq("id", job_id) \
        .execute()


def job_started_payload(job_type: str, now: datetime) -> dict:
    return {
        "status": "running",
        "started_at": now.isoformat(),
        "processed_at": now.isoformat(),
        "job_type": job_type,
    }


def job_finished_payload(job_type: str, now: datetime, *, result=None, error: Exception = None) -> dict:
    finished_at = datetime.now(DELIVERY_TIMEZONE).isoformat()

    if error is None:
        return {
            "status": "success",
            "completed_at": finished_at,
            "result": {"job_type": job_type, "processed_at": now.isoformat(), **(result or {})},
        }

    return {
        "status": "rejected" if isinstance(error, REJECTED_ERRORS) else "failed",
        "completed_at": finished_at,
        "error": str(error),
        "error_type": type(error).__name__,
    }


# ─────────────────────────────────────────────────────────────
# Worker Loop
# ─────────────────────────────────────────────────────────────

async def process_job(job: dict, now: datetime = None):
    job_id = job["id"]
    job_type = job.get("job_type")
    parameters = job.get("parameters") or {}
    now = now or datetime.now(DELIVERY_TIMEZONE)

    logging.info(f"[worker] Processing job {job_id} ({job_type}) at {now.isoformat()}")

    try:
        update_job(job_id, job_started_payload(job_type, now))

        executor = JOB_EXECUTORS.get(job_type)
        if not executor:
            raise JobRejected(f"No executor registered for job_type='{job_type}'")

        result = executor(parameters, now)

        update_job(job_id, job_finished_payload(job_type, now, result=result))
        logging.info(f"[worker] Job {job_id} completed successfully.")

    except REJECTED_ERRORS as e:
        logging.warning(f"[worker] Job {job_id} rejected: {e}")
        update_job(job_id, job_finished_payload(job_type, now, error=e))

    except Exception as e:
        logging.exception(f"[worker] Job {job_id} failed.")
        update_job(job_id, job_finished_payload(job_type, now, error=e))


async def worker_loop():
    logging.info("🚚 Schedule Job Worker started.")

    while True:
        try:
            job = claim_next_job()

            if job:
                await process_job(job)
            else:
                await asyncio.sleep(POLL_INTERVAL_SECONDS)

        except Exception:
            logging.exception("[worker] Unexpected error in worker loop.")
            await asyncio.sleep(POLL_INTERVAL_SECONDS)


# ─────────────────────────────────────────────────────────────
# Entrypoint
# ─────────────────────────────────────────────────────────────

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(worker_loop())
