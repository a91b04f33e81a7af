#!/usr/bin/env python3
"""
Delivery Schedule Report (one subscription, full schedule)

This script:
- Takes an order/reactivation timestamp, a frequency and a bound
  (--count deliveries or --months of subscription)
- Applies the 6 PM cutoff + no-Sunday rules via delivery_scheduler
- Writes a CSV:
    First rows: Reference | <timestamp>, Frequency | <frequency>
    (+ Window | <from> | <to> when --from/--to narrow the report)
    Then columns:
      #, Date, Day, Delivery Window Start, Sunday Shifted
- Builds a matching PDF (unless --no-pdf)
- Emails both through Mailtrap when --email is given
- Supports: --dry-run, --from / --to date window

Run from the repo root:
    python -m scripts.delivery_schedule_report --reference 2025-07-16T14:00 --frequency monthly --months 1
"""

import os
import csv
import logging
import argparse
import base64
from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import requests
from dotenv import load_dotenv

from scripts.delivery_schedule_pdf import generate_delivery_schedule_pdf
from scripts.delivery_scheduler import (
    Frequency,
    SchedulingRequest,
    compute_delivery_schedule,
    deliveries_in_range,
    format_delivery_date,
    parse_reference_timestamp,
    schedule_summary,
)

CSV_HEADER = [
    "#",
    "Date",
    "Day",
    "Delivery Window Start",
    "Sunday Shifted",
]

""" MAILTRAP EMAIL DELIVERY """

MAILTRAP_SEND_URL = "https://send.api.mailtrap.io/api/send"

ATTACHMENT_TYPES = {
    ".csv": "text/csv",
    ".pdf": "application/pdf",
}


def validate_env_for_mailtrap():
    required = ["MAILTRAP_API_TOKEN", "EMAIL_SENDER", "EMAIL_RECIPIENTS"]
    missing = [var for var in required if not os.getenv(var)]
    if missing:
        raise EnvironmentError(f"Missing Mailtrap environment variables: {', '.join(missing)}")


def prepare_mailtrap_attachments(filepaths):
    attachments = []
    for fp in map(Path, filepaths):
        if not fp.exists():
            logging.warning(f"Attachment missing: {fp}")
            continue
        attachments.append({
            "filename": fp.name,
            "content": base64.b64encode(fp.read_bytes()).decode("utf-8"),
            "type": ATTACHMENT_TYPES.get(fp.suffix, "application/octet-stream"),
            "disposition": "attachment",
        })
    return attachments


def build_schedule_email(reference: datetime, frequency: Frequency, summary, window=None):
    """Subject + HTML body announcing a delivery schedule."""
    subject = f"🥤 Delivery Schedule — {frequency.value.title()} from {format_delivery_date(reference)}"

    if not summary["total_deliveries"]:
        body = "<p>No deliveries fall in the requested window.</p>"
    else:
        body = (
            f"<p><strong>{summary['total_deliveries']}</strong> deliveries, "
            f"{format_delivery_date(date.fromisoformat(summary['first_delivery']))} to "
            f"{format_delivery_date(date.fromisoformat(summary['last_delivery']))}.</p>"
        )

    if window:
        body += f"<p>Window: {window[0].isoformat()} to {window[1].isoformat()}.</p>"

    return subject, body + "<p>The full schedule is attached.</p>"


def send_mailtrap_email(subject, html_body, attachments=None):
    validate_env_for_mailtrap()

    to_addresses = [
        {"email": r.strip()}
        for r in os.getenv("EMAIL_RECIPIENTS", "").split(",")
        if r.strip()
    ]

    payload = {
        "from": {"email": os.getenv("EMAIL_SENDER"), "name": "Delivery Schedule"},
        "to": to_addresses,
        "subject": subject,
        "html": html_body,
    }
    if attachments:
        payload["attachments"] = attachments

    response = requests.post(
        MAILTRAP_SEND_URL,
        headers={
            "Authorization": f"Bearer {os.getenv('MAILTRAP_API_TOKEN')}",
            "Content-Type": "application/json",
        },
        json=payload,
    )

    if response.status_code != 200:
        logging.error(f"Mailtrap error {response.status_code}: {response.text}")
        raise RuntimeError("Mailtrap email failed.")

    logging.info(f"📧 Delivery schedule email sent to {len(to_addresses)} recipient(s).")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generate a subscription delivery schedule (6 PM cutoff, no Sundays).")
    parser.add_argument("--reference", required=True, help="Order/reactivation timestamp (ISO-8601).")
    parser.add_argument(
        "--frequency",
        required=True,
        choices=[f.value for f in Frequency],
        help="Subscription delivery frequency.",
    )
    bound = parser.add_mutually_exclusive_group(required=True)
    bound.add_argument("--count", type=int, help="Number of deliveries to schedule.")
    bound.add_argument("--months", type=int, help="Subscription duration in months.")
    parser.add_argument(
        "--timezone",
        default=os.getenv("DELIVERY_TIMEZONE", "Asia/Kolkata"),
        help="Zone applied to a --reference without offset.",
    )
    parser.add_argument("--from", dest="window_start", type=date.fromisoformat, help="Only report deliveries on/after this day (YYYY-MM-DD).")
    parser.add_argument("--to", dest="window_end", type=date.fromisoformat, help="Only report deliveries on/before this day (YYYY-MM-DD).")
    parser.add_argument("--output-dir", default="output", help="Directory for CSV/PDF output.")
    parser.add_argument("--no-pdf", action="store_true", help="Skip PDF generation.")
    parser.add_argument("--email", action="store_true", help="Email the CSV/PDF through Mailtrap.")
    parser.add_argument("--dry-run", action="store_true", help="Log the schedule without writing files or sending email.")

    args = parser.parse_args(argv)
    if args.window_start and args.window_end and args.window_start > args.window_end:
        parser.error("--from must not be after --to")
    return args


def build_report_rows(schedule):
    return [
        {
            "sequence_index": d.sequence_index,
            "date": d.date.isoformat(),
            "weekday": d.date.strftime("%A"),
            "scheduled_at": d.scheduled_at.strftime("%Y-%m-%d %H:%M %Z").strip(),
            "sunday_shifted": d.is_sunday_shifted,
        }
        for d in schedule
    ]


def write_csv(filename, rows, reference: datetime, frequency: Frequency, window=None):
    with open(filename, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)

        writer.writerow(["Reference", reference.isoformat()])
        writer.writerow(["Frequency", frequency.value])
        if window:
            writer.writerow(["Window", window[0].isoformat(), window[1].isoformat()])
        writer.writerow([])

        writer.writerow(CSV_HEADER)
        for r in rows:
            writer.writerow([
                r["sequence_index"],
                r["date"],
                r["weekday"],
                r["scheduled_at"],
                "yes" if r["sunday_shifted"] else "",
            ])

    logging.info(f"CSV written: {filename}")
    return filename


def main(argv=None):
    load_dotenv()

    args = parse_args(argv)

    reference = parse_reference_timestamp(args.reference, default_tz=ZoneInfo(args.timezone))
    frequency = Frequency.parse(args.frequency)

    schedule = compute_delivery_schedule(SchedulingRequest(
        reference_timestamp=reference,
        frequency=frequency,
        delivery_count=args.count,
        duration_months=args.months,
    ))

    # === OPTIONAL DATE WINDOW ===
    window = None
    if schedule and (args.window_start or args.window_end):
        window = (args.window_start or schedule[0].date, args.window_end or schedule[-1].date)
        schedule = deliveries_in_range(schedule, *window)

    summary = schedule_summary(schedule)
    rows = build_report_rows(schedule)

    logging.info(
        f"Schedule for {reference.isoformat()} ({frequency.value}): "
        f"{summary['total_deliveries']} deliveries, {summary['first_delivery']} → {summary['last_delivery']}"
    )

    if args.dry_run:
        for d in schedule:
            moved = " (moved from Sunday)" if d.is_sunday_shifted else ""
            logging.info(f"  {d.sequence_index:3d}. {format_delivery_date(d.date)}{moved}")
        logging.info("Dry run — no files written.")
        return summary

    out_dir = Path(args.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    stamp = reference.strftime("%Y%m%d_%H%M")
    csv_path = out_dir / f"delivery_schedule_{frequency.value}_{stamp}.csv"
    write_csv(csv_path, rows, reference, frequency, window=window)

    attachments_paths = [str(csv_path)]

    # === PDF GENERATION ===
    if not args.no_pdf:
        pdf_path = out_dir / f"delivery_schedule_{frequency.value}_{stamp}.pdf"
        subtitle = (
            f"Reference {reference.strftime('%B %d, %Y %H:%M %Z').strip()} · "
            f"{summary['total_deliveries']} deliveries"
        )
        if window:
            subtitle += f" · {window[0].isoformat()} to {window[1].isoformat()}"

        generate_delivery_schedule_pdf(
            rows=rows,
            output_path=pdf_path,
            report_title=f"Delivery Schedule — {frequency.value.title()} Subscription",
            subtitle=subtitle,
        )
        logging.info(f"PDF written: {pdf_path}")
        attachments_paths.append(str(pdf_path))

    # === MAILTRAP EMAIL DELIVERY ===
    if args.email:
        subject, html_body = build_schedule_email(reference, frequency, summary, window)
        send_mailtrap_email(subject, html_body, prepare_mailtrap_attachments(attachments_paths))

    return summary


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
