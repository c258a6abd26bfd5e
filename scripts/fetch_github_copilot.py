"""
GitHub Copilot Data Fetcher
===========================

Pulls Copilot seat assignments and org usage metrics for one organization and
writes dated snapshots:

    data/github/YYYY/MM/DD/copilot-seats_{org}_{start}_to_{end}.json
    data/github/metrics/YYYY/MM/DD/copilot-metrics_{org}_{since}_to_{until}.json

Seats are enriched with display names from the GitHub profile API through a
NameCache (``data/github-name-cache.json``) that is loaded once per run and
saved once at the end. The ``Login,Name`` CSV next to it is refreshed without
overwriting names someone typed in by hand.

Usage:
    python scripts/fetch_github_copilot.py                # seats + 7 days of metrics
    python scripts/fetch_github_copilot.py --days 28
    python scripts/fetch_github_copilot.py --skip-metrics
"""
from __future__ import annotations

import argparse
import csv
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_DIR))

load_dotenv(BASE_DIR / ".env")

from integrations.github_copilot import GitHubCopilotClient
from scripts.lib.errors import APIError, ConfigError, DataError
from scripts.lib.logger import setup_logger
from scripts.lib.name_cache import NameCache
from scripts.lib.utils import atomic_write_json, atomic_write_text, first_env, render_csv

logger = setup_logger("fetch_github_copilot")

DATA_DIR = Path(os.getenv("DATA_DIR", BASE_DIR / "data"))
NAME_CACHE_FILE = "github-name-cache.json"
LOGIN_NAMES_FILE = "github-login-names.csv"

ORG_ENV_VARS = ("ORG", "GH_ORG", "GITHUB_ORG")
TOKEN_ENV_VARS = ("GH_TOKEN", "GITHUB_TOKEN")


# ---------------------------------------------------------------------------
# Snapshot paths
# ---------------------------------------------------------------------------

def _dated_dir(root: Path, now: datetime) -> Path:
    return root / now.strftime("%Y") / now.strftime("%m") / now.strftime("%d")


def seats_snapshot_path(data_dir: Path, org: str, start: str, end: str,
                        now: datetime) -> Path:
    return _dated_dir(data_dir / "github", now) / f"copilot-seats_{org}_{start}_to_{end}.json"


def metrics_snapshot_path(data_dir: Path, org: str, since: str, until: str,
                          now: datetime) -> Path:
    return (_dated_dir(data_dir / "github" / "metrics", now)
            / f"copilot-metrics_{org}_{since}_to_{until}.json")


def _write_snapshot(path: Path, payload: dict) -> Path:
    if not atomic_write_json(payload, path):
        raise DataError(f"Could not write snapshot {path}", code="WRITE_FAILED")
    logger.info("Saved %s", path)
    return path


# ---------------------------------------------------------------------------
# Name enrichment
# ---------------------------------------------------------------------------

def enrich_seat_names(client: GitHubCopilotClient, seats: List[dict], cache: NameCache,
                      now: Optional[datetime] = None) -> int:
    """Set ``assignee.enriched_name`` on each seat; returns how many got a name."""
    looked_up = enriched = 0
    for seat in seats:
        assignee = seat.get("assignee") or {}
        login = assignee.get("login")
        if not login:
            continue
        if cache.needs_lookup(login):
            looked_up += 1
            try:
                profile = client.fetch_user(login)
                cache.record(login, (profile or {}).get("name"), now=now)
            except APIError as e:
                logger.warning("Profile lookup failed for %s: %s", login, e)
                cache.record(login, None, status="error", now=now)
        name = cache.get_name(login)
        if name:
            assignee["enriched_name"] = name
            enriched += 1
    logger.info("Enriched %d/%d seats with display names (%d profile lookups)",
                enriched, len(seats), looked_up)
    return enriched


def read_login_names(path: Path) -> Dict[str, str]:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        reader = csv.reader(f)
        next(reader, None)
        return {row[0].strip(): (row[1].strip() if len(row) > 1 else "")
                for row in reader if row and row[0].strip()}


def merge_login_names(existing: Dict[str, str], cache: NameCache,
                      logins: Iterable[str]) -> Dict[str, str]:
    """Add cache names for new or blank logins; never replace a non-empty name."""
    merged = dict(existing)
    for login in logins:
        if merged.get(login):
            continue
        merged[login] = cache.get_name(login) or ""
    return merged


def write_login_names(path: Path, names: Dict[str, str]) -> Path:
    rows = ([login, names[login]] for login in sorted(names, key=str.lower))
    return atomic_write_text(render_csv(["Login", "Name"], rows), path)


# ---------------------------------------------------------------------------
# Fetch steps
# ---------------------------------------------------------------------------

def fetch_seats(client: GitHubCopilotClient, data_dir: Path, cache: NameCache,
                now: datetime, days: int = 7) -> Path:
    result = client.fetch_seats()
    seats = result["seats"]
    enrich_seat_names(client, seats, cache, now=now)

    start = (now - timedelta(days=days)).date().isoformat()
    end = now.date().isoformat()
    payload = {
        "meta": {
            "org": client.org,
            "fetched_at": now.isoformat(),
            "total_seats": result.get("total_seats", len(seats)),
            "window_start": start,
            "window_end": end,
        },
        "seats": seats,
    }
    return _write_snapshot(seats_snapshot_path(data_dir, client.org, start, end, now), payload)


def fetch_metrics(client: GitHubCopilotClient, data_dir: Path, now: datetime,
                  days: int = 7) -> Path:
    since = (now - timedelta(days=days)).date().isoformat()
    until = now.date().isoformat()
    data = client.fetch_org_metrics(since=since, until=until)
    payload = {
        "meta": {
            "org": client.org,
            "fetched_at": now.isoformat(),
            "since": since,
            "until": until,
            "days": len(data),
        },
        "data": data,
    }
    return _write_snapshot(metrics_snapshot_path(data_dir, client.org, since, until, now),
                           payload)


def run_github_fetch(
    org: Optional[str] = None,
    token: Optional[str] = None,
    data_dir: Path = DATA_DIR,
    days: int = 7,
    include_seats: bool = True,
    include_metrics: bool = True,
    now: Optional[datetime] = None,
    client: Optional[GitHubCopilotClient] = None,
) -> Dict[str, str]:
    """
    Fetch seats and/or metrics. Returns ``{"seats": path, "metrics": path}``
    for whatever was written.
    """
    org = org or first_env(ORG_ENV_VARS)
    token = token or first_env(TOKEN_ENV_VARS)
    if client is None:
        if not org or not token:
            raise ConfigError("GitHub organization or token is not configured",
                              hint="Set GH_TOKEN (or GITHUB_TOKEN) and GH_ORG in .env")
        delay_ms = int(os.getenv("GITHUB_REQUEST_DELAY_MS", "0"))
        client = GitHubCopilotClient(token, org, delay_ms=delay_ms)

    now = now or datetime.now(timezone.utc)
    data_dir = Path(data_dir)
    written: Dict[str, str] = {}

    if include_metrics:
        written["metrics"] = str(fetch_metrics(client, data_dir, now, days=days))

    if include_seats:
        cache = NameCache.load(data_dir / NAME_CACHE_FILE)
        try:
            seats_path = fetch_seats(client, data_dir, cache, now, days=days)
            written["seats"] = str(seats_path)
            login_path = data_dir / LOGIN_NAMES_FILE
            logins = [login for login in cache.entries]
            write_login_names(login_path, merge_login_names(
                read_login_names(login_path), cache, logins))
        finally:
            cache.save()

    return written


def main():
    parser = argparse.ArgumentParser(description="Fetch GitHub Copilot seats and metrics")
    parser.add_argument("--org", help="GitHub organization (default: GH_ORG)")
    parser.add_argument("--days", type=int, default=7, help="Metrics window in days")
    parser.add_argument("--skip-seats", action="store_true", help="Do not fetch seats")
    parser.add_argument("--skip-metrics", action="store_true", help="Do not fetch metrics")
    args = parser.parse_args()

    try:
        written = run_github_fetch(
            org=args.org, days=args.days,
            include_seats=not args.skip_seats, include_metrics=not args.skip_metrics,
        )
    except ConfigError as e:
        logger.error("%s. %s", e, e.hint or "")
        sys.exit(2)
    except (APIError, DataError) as e:
        logger.error("GitHub fetch failed: %s", e, exc_info=True)
        sys.exit(1)

    for kind, path in written.items():
        logger.info("%s snapshot: %s", kind, path)


if __name__ == "__main__":
    main()
