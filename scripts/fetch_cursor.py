"""
Cursor Usage Fetcher
====================

Pulls per-user daily usage from the Cursor Admin API and writes dated
snapshots with normalized dates:

    data/cursor/YYYY/MM/DD/daily_activity_{day}.json           (yesterday, one day)
    data/cursor/YYYY/MM/DD/weekly-report_{start}_{end}.json     (last 7 days)
    data/cursor/YYYY/MM/monthly_activity_{start}_{end}.json     (current month to date)
    data/cursor/team-members.json                              (--members; overwritten each run)

Each file is ``{"meta": {...}, "data": [...]}``.

Usage:
    python scripts/fetch_cursor.py                      # weekly
    python scripts/fetch_cursor.py --period daily --period monthly
    python scripts/fetch_cursor.py --members
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_DIR))

load_dotenv(BASE_DIR / ".env")

from integrations.cursor_admin import CursorAdminClient
from scripts.lib.errors import APIError, ConfigError, DataError
from scripts.lib.logger import setup_logger
from scripts.lib.snapshot_loaders import normalize_record_timestamps
from scripts.lib.utils import atomic_write_json

logger = setup_logger("fetch_cursor")

DATA_DIR = Path(os.getenv("DATA_DIR", BASE_DIR / "data"))
PERIODS = ("daily", "weekly", "monthly")
TEAM_MEMBERS_FILE = "team-members.json"


def period_range(period: str, today: date) -> Tuple[date, date]:
    if period == "daily":
        day = today - timedelta(days=1)
        return day, day
    if period == "weekly":
        return today - timedelta(days=7), today
    if period == "monthly":
        return today.replace(day=1), today
    raise ValueError(f"Unknown period {period!r}; expected one of {PERIODS}")


def activity_snapshot_path(data_dir: Path, period: str, start: date, end: date) -> Path:
    cursor_dir = Path(data_dir) / "cursor"
    if period == "daily":
        return cursor_dir / end.strftime("%Y/%m/%d") / f"daily_activity_{end.isoformat()}.json"
    if period == "weekly":
        return (cursor_dir / end.strftime("%Y/%m/%d")
                / f"weekly-report_{start.isoformat()}_{end.isoformat()}.json")
    return (cursor_dir / start.strftime("%Y/%m")
            / f"monthly_activity_{start.isoformat()}_{end.isoformat()}.json")


async def fetch_activity(client: CursorAdminClient, data_dir: Path, period: str,
                         now: datetime) -> Path:
    start, end = period_range(period, now.date())
    rows = await client.get_daily_usage(start, end)
    records = [normalize_record_timestamps(row) for row in rows if isinstance(row, dict)]

    payload = {
        "meta": {
            "fetched_at": now.isoformat(),
            "period": period,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "record_count": len(records),
        },
        "data": records,
    }
    path = activity_snapshot_path(data_dir, period, start, end)
    if not atomic_write_json(payload, path):
        raise DataError(f"Could not write snapshot {path}", code="WRITE_FAILED")
    logger.info("Saved %s Cursor activity: %d records -> %s", period, len(records), path)
    return path


async def fetch_members(client: CursorAdminClient, data_dir: Path, now: datetime) -> Path:
    members = [m for m in await client.get_members() if isinstance(m, dict)]
    payload = {
        "meta": {"fetched_at": now.isoformat(), "member_count": len(members)},
        "teamMembers": members,
    }
    path = Path(data_dir) / "cursor" / TEAM_MEMBERS_FILE
    if not atomic_write_json(payload, path):
        raise DataError(f"Could not write snapshot {path}", code="WRITE_FAILED")
    logger.info("Saved %d Cursor team members -> %s", len(members), path)
    return path


async def run_cursor_fetch(
    periods: Iterable[str] = ("weekly",),
    data_dir: Path = DATA_DIR,
    now: Optional[datetime] = None,
    client: Optional[CursorAdminClient] = None,
    include_members: bool = False,
) -> Dict[str, str]:
    """Fetch each requested period (and the member list); returns ``{kind: path}``."""
    now = now or datetime.now(timezone.utc)
    owns_client = client is None
    if owns_client:
        delay_ms = int(os.getenv("CURSOR_REQUEST_DELAY_MS", "0"))
        client = CursorAdminClient.from_env(delay_ms=delay_ms)

    written: Dict[str, str] = {}
    try:
        for period in periods:
            written[period] = str(await fetch_activity(client, Path(data_dir), period, now))
        if include_members:
            written["members"] = str(await fetch_members(client, Path(data_dir), now))
    finally:
        if owns_client:
            await client.close()
    return written


def main():
    parser = argparse.ArgumentParser(description="Fetch Cursor usage activity")
    parser.add_argument("--period", action="append", choices=PERIODS,
                        help="Period to fetch (repeatable, default: weekly)")
    parser.add_argument("--members", action="store_true", help="Also fetch the team member list")
    args = parser.parse_args()

    try:
        written = asyncio.run(run_cursor_fetch(periods=args.period or ["weekly"],
                                               include_members=args.members))
    except ConfigError as e:
        logger.error("%s. %s", e, e.hint or "")
        sys.exit(2)
    except (APIError, DataError) as e:
        logger.error("Cursor fetch failed: %s", e, exc_info=True)
        sys.exit(1)

    for kind, path in written.items():
        logger.info("%s snapshot: %s", kind, path)


if __name__ == "__main__":
    main()
