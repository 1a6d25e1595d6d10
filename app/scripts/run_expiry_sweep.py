#!/usr/bin/env python3
"""
Run the daily membership sweep: advance notices, then expiry of lapsed students.

Usage (cron, once a day):
    uv run python app/scripts/run_expiry_sweep.py

    # Evaluate as if it were another moment (ISO 8601, UTC assumed when naive):
    uv run python app/scripts/run_expiry_sweep.py --now 2026-11-01T00:00:00
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path

if __package__ in (None, ""):
    repo_root = Path(__file__).resolve().parents[2]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.services.enrollment import build_enrollment_adapter
from app.services.expiry_sweep import run_expiry_sweep
from app.services.notifications import NotificationDispatcher


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Send expiry notices and expire lapsed memberships",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--now", default="", help="Override the current time (ISO 8601)")
    return parser.parse_args()


def _parse_now(raw: str) -> datetime | None:
    if not raw:
        return None
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def main() -> int:
    args = parse_args()
    settings = get_settings()
    configure_logging(settings)

    try:
        now = _parse_now(args.now)
    except ValueError:
        print(f"Error: invalid --now value: {args.now}", file=sys.stderr)
        return 2

    with SessionLocal() as db:
        report = run_expiry_sweep(
            db,
            settings,
            build_enrollment_adapter(settings, db),
            NotificationDispatcher(settings),
            now=now,
        )

    print(
        {
            "ok": not report.failed_user_ids,
            "notices_sent": report.notices_sent,
            "expired": report.expired,
            "skipped": report.skipped,
            "failed_user_ids": report.failed_user_ids,
        }
    )
    return 0 if not report.failed_user_ids else 1


if __name__ == "__main__":
    raise SystemExit(main())
