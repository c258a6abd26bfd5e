"""
Snapshot file discovery.

Fetch runs write dated snapshots into a date-partitioned tree, e.g.::

    data/github/2025/06/14/copilot-seats_acme_2025-06-07_to_2025-06-14.json
    data/github/metrics/2025/06/14/copilot-metrics_acme_2025-05-16_to_2025-06-14.json
    data/cursor/2025/06/14/daily_activity_2025-06-14.json
    data/cursor/2025/06/monthly_activity_2025-06-01_2025-06-30.json
    data/cursor/2025/06/14/weekly-report_2025-06-07_2025-06-14.json
    data/acme/direct-reports.json
    data/user-lookup-table.csv

Lookup is two-tier: the strict, org-scoped convention first (latest by path,
which sorts by the embedded zero-padded dates), then a loose search of the
whole data root preferring the most recently modified match. The loose tier
covers deployments where the configured org slug differs from the one baked
into historical filenames.
"""
from __future__ import annotations

import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Tuple

from models.metrics_models import FreshnessWarning
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_MAX_DEPTH = 8
DEFAULT_STALE_AFTER_DAYS = 7

_DATE = r"\d{4}-\d{2}-\d{2}"
_ORG_SLUG = r"[A-Za-z0-9][A-Za-z0-9-]*"


class Category(NamedTuple):
    subdir: Tuple[str, ...]     # strict search root, relative to data root ("{org}" substituted)
    strict: str                 # filename regex; "{org}" substituted
    loose: str                  # filename regex for the fallback search
    strict_depth: int = DEFAULT_MAX_DEPTH
    label: str = ""


CATEGORIES: Dict[str, Category] = {
    "seats": Category(
        subdir=("github",),
        strict=rf"copilot-seats_{{org}}_{_DATE}_to_{_DATE}\.json",
        loose=r"copilot-seats_.+\.json",
        label="GitHub seat",
    ),
    "org-metrics": Category(
        subdir=("github", "metrics"),
        strict=rf"copilot-metrics_{{org}}_{_DATE}_to_{_DATE}\.json",
        loose=r"copilot-metrics_.+\.json",
        label="GitHub metrics",
    ),
    "roster": Category(
        subdir=("{org}",),
        strict=r"direct-reports\.json",
        loose=r"direct-reports\.json",
        strict_depth=0,
        label="Roster",
    ),
    "user-lookup": Category(
        subdir=(),
        strict=r"user-lookup-table\.csv",
        loose=r".*lookup.*\.csv",
        strict_depth=0,
        label="User lookup",
    ),
    "daily-activity": Category(
        subdir=("cursor",),
        strict=rf"daily_activity_{_DATE}\.json",
        loose=rf"(daily_)?activity_{_DATE}\.json",
        label="Cursor daily",
    ),
    "monthly-activity": Category(
        subdir=("cursor",),
        strict=rf"monthly_activity_{_DATE}_{_DATE}\.json",
        loose=r"monthly[-_](activity|report)_.+\.json",
        label="Cursor monthly",
    ),
    "weekly-activity": Category(
        subdir=("cursor",),
        strict=rf"weekly-report_{_DATE}_{_DATE}\.json",
        loose=r"weekly-report_.+\.json",
        label="Cursor weekly",
    ),
    "team-members": Category(
        subdir=("cursor",),
        strict=r"team-members\.json",
        loose=r"team-members\.json",
        strict_depth=0,
        label="Cursor team members",
    ),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _category(name: str) -> Category:
    try:
        return CATEGORIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown snapshot category {name!r}; expected one of {sorted(CATEGORIES)}"
        ) from None


def _walk_matching(root: Path, pattern: re.Pattern, max_depth: int) -> List[Path]:
    """Collect files under root whose name fully matches pattern, depth-bounded."""
    if not root.is_dir():
        return []

    def _on_error(err: OSError) -> None:
        logger.debug("Skipping unreadable directory %s: %s", err.filename, err)

    base_depth = len(root.parts)
    matches: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        depth = len(Path(dirpath).parts) - base_depth
        if depth >= max_depth:
            dirnames[:] = []
        dirnames.sort()
        for filename in filenames:
            if pattern.fullmatch(filename):
                matches.append(Path(dirpath) / filename)
    return matches


def _strict_root(root: Path, category: Category, org: Optional[str]) -> Optional[Path]:
    parts = []
    for part in category.subdir:
        if "{org}" in part:
            if not org:
                return None
            part = part.replace("{org}", org)
        parts.append(part)
    return root.joinpath(*parts)


def _strict_pattern(category: Category, org: Optional[str]) -> re.Pattern:
    org_regex = re.escape(org) if org else _ORG_SLUG
    return re.compile(category.strict.replace("{org}", org_regex))


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def find_all(
    category: str,
    root_dir: str | Path,
    org: Optional[str] = None,
    include_legacy: bool = False,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> List[Path]:
    """
    All strict-convention files for a category, sorted by path (oldest first).

    With ``include_legacy`` the fallback naming is searched too, anywhere
    under root_dir within max_depth; legacy-only files come first.
    """
    cat = _category(category)
    root = Path(root_dir)
    strict_root = _strict_root(root, cat, org)
    strict: List[Path] = []
    if strict_root is not None:
        strict = sorted(
            _walk_matching(strict_root, _strict_pattern(cat, org), cat.strict_depth),
            key=str,
        )
    if not include_legacy:
        return strict

    seen = set(strict)
    legacy = sorted(
        (p for p in _walk_matching(root, re.compile(cat.loose), max_depth) if p not in seen),
        key=str,
    )
    if legacy:
        logger.info("Including %d legacy %s file(s)", len(legacy), category)
    return legacy + strict


def find_latest(
    category: str,
    root_dir: str | Path,
    org: Optional[str] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Optional[Path]:
    """
    Locate the most relevant snapshot for a category.

    Args:
        category: One of CATEGORIES.
        root_dir: Data root (e.g. ``data/``).
        org: Organization slug for org-scoped conventions.
        max_depth: Directory depth bound for the fallback walk.

    Returns:
        Path to the chosen file, or None when nothing matches anywhere.
    """
    cat = _category(category)
    root = Path(root_dir)

    strict = find_all(category, root, org)
    if strict:
        chosen = strict[-1]
        logger.debug("Latest %s snapshot: %s", category, chosen)
        return chosen

    loose = _walk_matching(root, re.compile(cat.loose), max_depth)
    if not loose:
        logger.info("No %s snapshot found under %s", category, root)
        return None

    chosen = max(loose, key=lambda p: (_mtime(p), str(p)))
    logger.warning(
        "No %s file matched the expected naming convention%s; using fallback %s",
        category, f" for org '{org}'" if org else "", chosen,
    )
    return chosen


def find_freshness_warning(
    path: str | Path,
    max_age_days: int = DEFAULT_STALE_AFTER_DAYS,
    now: Optional[datetime] = None,
    label: str = "",
) -> Optional[FreshnessWarning]:
    """Return a warning when the file is older than max_age_days. Never raises."""
    path = Path(path)
    now = now or datetime.now(timezone.utc)
    try:
        modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    except OSError as e:
        logger.debug("Cannot stat %s for freshness: %s", path, e)
        return None

    age_days = (now - modified).total_seconds() / 86400
    if age_days <= max_age_days:
        return None

    subject = f"{label} data" if label else "Data"
    message = f"{subject} is stale ({age_days:.1f} days old): {path.name}"
    logger.warning(message)
    return FreshnessWarning(
        path=str(path), age_days=round(age_days, 1),
        max_age_days=max_age_days, message=message,
    )


def category_label(category: str) -> str:
    return _category(category).label or category
