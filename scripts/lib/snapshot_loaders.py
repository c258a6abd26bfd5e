"""
Snapshot Loaders
================

Parse on-disk roster, user-lookup, seat, metrics and activity files into the
typed records in ``models.metrics_models``.

Rules shared by every loader:
  - a malformed row is logged and skipped, never fatal for the file;
  - a wholly unparseable file raises (ConfigError for roster/lookup,
    SnapshotParseError for platform snapshots) so the caller can decide
    whether that category is optional;
  - epoch timestamps may be seconds or milliseconds (values below 1e12 are
    seconds) and are always normalized to aware UTC datetimes / UTC days.
"""
from __future__ import annotations

import csv
import json
import math
import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from models.metrics_models import (
    NUMERIC_FIELDS,
    ActivityRecord,
    ActivitySnapshot,
    AssigningTeam,
    LookupUser,
    MetricsSnapshot,
    RosterPerson,
    SeatRecord,
    SeatSnapshot,
)
from scripts.lib.errors import ConfigError, RowParseError, SnapshotParseError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

MILLIS_THRESHOLD = 1e12
TRUTHY = {"true", "1", "yes", "y"}

_DIGITS = re.compile(r"^\d{10,}$")
_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

ROSTER_HINT = "Set ORG_DATA_PATH or place the roster at data/<org>/direct-reports.json"
LOOKUP_HINT = "Set USER_LOOKUP_PATH or place the lookup table at data/user-lookup-table.csv"


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

def _from_epoch(value: float) -> Optional[datetime]:
    if math.isnan(value) or math.isinf(value):
        return None
    millis = value if value >= MILLIS_THRESHOLD else value * 1000
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse any supported timestamp representation into an aware UTC datetime.

    Accepts epoch seconds/milliseconds (numbers or digit strings of 10+ digits),
    plain ``YYYY-MM-DD`` days (midnight UTC) and ISO-8601 strings. Returns None
    for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return _from_epoch(float(value))
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if _DIGITS.match(text):
        return _from_epoch(float(text))
    if _DAY.match(text):
        text += "T00:00:00+00:00"
    elif text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_day(value: Any) -> Optional[date]:
    parsed = parse_timestamp(value)
    return parsed.date() if parsed else None


def _looks_like_timestamp(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value >= 1e9
    return isinstance(value, str) and bool(_DIGITS.match(value.strip()))


def normalize_record_timestamps(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of an upstream record with epoch values rewritten.

    Keys named ``date`` (or ending in ``date``) become ``YYYY-MM-DD``; other
    epoch-looking values on keys mentioning time/date/at become ISO instants.
    """
    out = dict(record)
    for key, value in record.items():
        lowered = key.lower()
        is_date_key = lowered == "date" or lowered.endswith("date")
        is_time_key = is_date_key or "time" in lowered or lowered.endswith("at")
        if not is_time_key or not _looks_like_timestamp(value):
            continue
        parsed = parse_timestamp(value)
        if parsed is None:
            continue
        out[key] = parsed.date().isoformat() if is_date_key else parsed.isoformat()
    return out


def normalize_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in TRUTHY


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return int(number)


def _read_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            return json.load(f)
    except FileNotFoundError:
        raise SnapshotParseError(f"Snapshot not found: {path}", source=str(path)) from None
    except (OSError, json.JSONDecodeError) as e:
        raise SnapshotParseError(f"Cannot parse {path}: {e}", source=str(path)) from e


def _meta_and_rows(payload: Any, path: Path, *keys: str) -> tuple[Dict[str, Any], List[Any]]:
    if isinstance(payload, list):
        return {}, payload
    if not isinstance(payload, dict):
        raise SnapshotParseError(f"Unexpected top-level JSON in {path}", source=str(path))
    meta = payload.get("meta") if isinstance(payload.get("meta"), dict) else {}
    for key in keys:
        rows = payload.get(key)
        if isinstance(rows, list):
            return meta, rows
    raise SnapshotParseError(
        f"{path} has no {' / '.join(keys)} list", source=str(path),
    )


# ---------------------------------------------------------------------------
# Roster & user lookup (required inputs)
# ---------------------------------------------------------------------------

def _roster_node(raw: Any) -> RosterPerson:
    if not isinstance(raw, dict):
        return RosterPerson()
    reports = raw.get("directReports") or raw.get("direct_reports") or []
    return RosterPerson(
        name=str(raw.get("name") or "").strip(),
        username=raw.get("username") or None,
        title=raw.get("title") or None,
        direct_reports=[_roster_node(r) for r in reports if isinstance(r, dict)],
    )


def load_roster(path: str | Path) -> List[RosterPerson]:
    """Load the org chart. Raises ConfigError when missing or malformed."""
    path = Path(path)
    try:
        payload = _read_json(path)
    except SnapshotParseError as e:
        raise ConfigError(e.message, config_path=str(path), hint=ROSTER_HINT) from e

    if not isinstance(payload, dict) or not isinstance(payload.get("organization"), list):
        raise ConfigError(
            "Invalid organizational data structure: expected an 'organization' list",
            config_path=str(path), hint=ROSTER_HINT,
        )

    roots = [_roster_node(node) for node in payload["organization"]]
    logger.info("Loaded roster %s (%d top-level entries)", path, len(roots))
    return roots


def load_user_lookup(path: str | Path) -> List[LookupUser]:
    """
    Load the curated lookup CSV.

    Columns (fixed order, header row skipped):
        name, email, githubLogin, role, hasCopilot, hasCursor
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"User lookup table not found: {path}",
                          config_path=str(path), hint=LOOKUP_HINT)

    users: List[LookupUser] = []
    try:
        with open(path, "r", encoding="utf-8-sig", newline="") as f:
            reader = csv.reader(f)
            next(reader, None)
            for line_no, row in enumerate(reader, start=2):
                if not row or not any(cell.strip() for cell in row):
                    continue
                try:
                    users.append(_lookup_row(row, line_no))
                except RowParseError as e:
                    logger.warning("%s: %s", path.name, e)
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise ConfigError(f"Cannot read user lookup table {path}: {e}",
                          config_path=str(path), hint=LOOKUP_HINT) from e

    logger.info("Loaded %d users from %s", len(users), path)
    return users


def _lookup_row(row: List[str], line_no: int) -> LookupUser:
    cells = [cell.strip() for cell in row] + [""] * (6 - len(row))
    name, email, login, role, copilot, cursor = cells[:6]
    if not name:
        raise RowParseError(f"line {line_no} has no name; skipped", row=line_no)
    return LookupUser(
        name=name,
        email=email,
        github_login=login,
        role=role,
        has_copilot=normalize_bool(copilot),
        has_cursor=normalize_bool(cursor),
    )


# ---------------------------------------------------------------------------
# Platform snapshots (optional inputs)
# ---------------------------------------------------------------------------

def load_seats(path: str | Path) -> SeatSnapshot:
    """Load a Copilot seat snapshot. Seats with bad timestamps are kept, inactive."""
    path = Path(path)
    meta, rows = _meta_and_rows(_read_json(path), path, "seats", "data")

    seats: List[SeatRecord] = []
    seen = set()
    for index, raw in enumerate(rows):
        try:
            seat = _seat_row(raw, index)
        except RowParseError as e:
            logger.warning("%s: %s", path.name, e)
            continue
        if seat.login in seen:
            logger.warning("%s: duplicate seat for login '%s' at row %d; skipped",
                           path.name, seat.login, index)
            continue
        seen.add(seat.login)
        seats.append(seat)

    logger.info("Loaded %d seats from %s", len(seats), path)
    return SeatSnapshot(meta=meta, seats=seats, source=str(path))


def _seat_row(raw: Any, index: int) -> SeatRecord:
    if not isinstance(raw, dict):
        raise RowParseError(f"row {index} is not an object; skipped", row=index)
    assignee = raw.get("assignee") if isinstance(raw.get("assignee"), dict) else {}
    login = str(assignee.get("login") or "").strip()
    if not login:
        raise RowParseError(f"row {index} has no assignee.login; skipped", row=index)

    raw_ts = raw.get("last_activity_at")
    last_activity = parse_timestamp(raw_ts)
    if raw_ts not in (None, "") and last_activity is None:
        logger.warning("Unparseable last_activity_at %r for %s; treated as inactive",
                       raw_ts, login)

    team = raw.get("assigning_team")
    return SeatRecord(
        login=login,
        last_activity_at=last_activity,
        last_activity_editor=raw.get("last_activity_editor") or None,
        enriched_name=assignee.get("enriched_name") or assignee.get("name") or None,
        assigning_team=AssigningTeam(
            slug=team.get("slug"),
            name=team.get("name"),
            description=team.get("description"),
        ) if isinstance(team, dict) and team.get("slug") else None,
    )


def load_metrics(path: str | Path) -> MetricsSnapshot:
    path = Path(path)
    meta, rows = _meta_and_rows(_read_json(path), path, "data", "metrics")
    days = [row for row in rows if isinstance(row, dict)]
    if len(days) != len(rows):
        logger.warning("%s: skipped %d non-object metrics entries",
                       path.name, len(rows) - len(days))
    logger.info("Loaded %d metrics days from %s", len(days), path)
    return MetricsSnapshot(meta=meta, days=days, source=str(path))


def load_activity(path: str | Path) -> ActivitySnapshot:
    """Load a Cursor daily/weekly/monthly activity snapshot."""
    path = Path(path)
    meta, rows = _meta_and_rows(_read_json(path), path, "data", "records")

    records: List[ActivityRecord] = []
    for index, raw in enumerate(rows):
        try:
            records.append(activity_record_from_raw(raw, index))
        except RowParseError as e:
            logger.warning("%s: %s", path.name, e)

    logger.info("Loaded %d activity records from %s", len(records), path)
    return ActivitySnapshot(meta=meta, records=records, source=str(path))


def activity_record_from_raw(raw: Any, index: int = 0) -> ActivityRecord:
    if not isinstance(raw, dict):
        raise RowParseError(f"row {index} is not an object; skipped", row=index)
    day = parse_day(raw.get("date"))
    if day is None:
        raise RowParseError(f"row {index} has unparseable date {raw.get('date')!r}; skipped",
                            row=index)
    return ActivityRecord(
        day=day,
        user_id=str(raw.get("userId") or "UNKNOWN"),
        email=str(raw.get("email") or "").strip(),
        is_active=normalize_bool(raw.get("isActive")),
        counters={field: _to_int(raw.get(field, 0)) for field in NUMERIC_FIELDS},
    )


def load_activity_rows(path: str | Path) -> List[Dict[str, Any]]:
    """Raw activity rows with epoch dates normalized, for column-preserving exports."""
    path = Path(path)
    _, rows = _meta_and_rows(_read_json(path), path, "data", "records")
    return [normalize_record_timestamps(row) for row in rows if isinstance(row, dict)]


def load_team_members(path: str | Path) -> List[Dict[str, Any]]:
    path = Path(path)
    _, members = _meta_and_rows(_read_json(path), path, "teamMembers", "members")
    return [m for m in members if isinstance(m, dict)]


def load_optional(loader, path: Optional[Path], platform: str):
    """
    Run a platform loader, absorbing a missing/unparseable file.

    Returns (snapshot or None, error message or None).
    """
    if path is None:
        return None, f"No {platform} snapshot found"
    try:
        return loader(path), None
    except SnapshotParseError as e:
        logger.warning("%s data unavailable: %s", platform, e)
        return None, e.message
