"""
AI Metrics Hub — Report Generation
====================================

Entry points the CLI, the one-shot pipeline and the API call. Each takes a
ReportOptions bag and returns a ReportResult (or the cancelled sentinel when
an interactive overwrite prompt is declined).

Reports:
    active-users       cross-platform activity for roster members (md + csv)
    ai-tooling         tool access adoption by role (md)
    copilot-activity   Copilot seats, teams and acceptance rates (md + csv)
    recent-activity    window totals and daily Cursor series (md)
    cursor-summaries   Cursor window and monthly CSVs, raw activity + member exports

Missing roster/lookup inputs are fatal (ConfigError). A missing or broken
platform snapshot only blanks that platform's sections.

Usage:
    python scripts/generate_reports.py active-users
    python scripts/generate_reports.py all --days 14 --yes
"""
from __future__ import annotations

import argparse
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_DIR))

load_dotenv(BASE_DIR / ".env")

from models.metrics_models import (
    LookupUser,
    ReportOptions,
    ReportResult,
    RosterPerson,
)
from scripts.lib.activity_aggregator import (
    acceptance_metrics,
    active_users_stats,
    adoption_stats,
    monthly_summary,
    recent_activity_stats,
    seat_analysis,
    window_summary,
)
from scripts.lib.errors import ConfigError, PartialDataError
from scripts.lib.file_discovery import (
    category_label,
    find_all,
    find_freshness_warning,
    find_latest,
)
from scripts.lib.identity_reconciler import filter_in_scope, flatten_roster, link_platform_activity
from scripts.lib.logger import setup_logger
from scripts.lib.name_matching import NameGroupTable, load_equivalence_groups
from scripts.lib.prompt import confirm_overwrite as prompt_confirm_overwrite
from scripts.lib.report_renderer import (
    ConfirmOverwrite,
    render_active_users_csv,
    render_activity_export_csv,
    render_active_users_markdown,
    render_copilot_activity_csv,
    render_copilot_activity_markdown,
    render_monthly_csv,
    render_recent_activity_markdown,
    render_team_members_csv,
    render_tooling_adoption_markdown,
    render_window_csv,
    write_report_artifacts,
)
from scripts.lib.snapshot_loaders import (
    LOOKUP_HINT,
    ROSTER_HINT,
    load_activity,
    load_activity_rows,
    load_metrics,
    load_optional,
    load_roster,
    load_seats,
    load_team_members,
    load_user_lookup,
)
from scripts.lib.utils import first_env

logger = setup_logger("generate_reports")

ORG_ENV_VARS = ("ORG", "GH_ORG", "GITHUB_ORG")
DEFAULT_NAME_GROUPS = BASE_DIR / "configs" / "name-groups.json"
CURSOR_EXPORT_FILES = (
    "cursor_daily_activity.csv", "cursor_monthly_activity.csv", "cursor_team_members.csv",
)


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

def _env_path(name: str) -> Optional[Path]:
    value = os.getenv(name)
    return Path(value) if value else None


def default_report_options(**overrides) -> ReportOptions:
    """ReportOptions from the environment, with keyword overrides on top."""
    values = {
        "lookback_days": int(os.getenv("LOOKBACK_DAYS", "7")),
        "data_directory": _env_path("DATA_DIR") or BASE_DIR / "data",
        "output_directory": _env_path("OUTPUT_DIR") or BASE_DIR / "reports",
        "roster_path": _env_path("ORG_DATA_PATH"),
        "lookup_path": _env_path("USER_LOOKUP_PATH"),
        "name_groups_path": _env_path("NAME_GROUPS_PATH") or DEFAULT_NAME_GROUPS,
        "org": first_env(ORG_ENV_VARS),
        "stale_after_days": int(os.getenv("STALE_AFTER_DAYS", "7")),
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return ReportOptions(**values)


# ---------------------------------------------------------------------------
# Input resolution
# ---------------------------------------------------------------------------

def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return now if now.tzinfo else now.replace(tzinfo=timezone.utc)


def _required_path(options: ReportOptions, category: str, explicit: Optional[Path],
                   hint: str) -> Path:
    path = explicit or find_latest(category, options.data_directory, options.org)
    if path is None or not Path(path).is_file():
        raise ConfigError(
            f"{category_label(category)} file not found"
            + (f": {explicit}" if explicit else f" under {options.data_directory}"),
            config_path=str(explicit) if explicit else None, hint=hint,
        )
    return Path(path)


def _identity_inputs(options: ReportOptions) -> Tuple[
        List[RosterPerson], List[LookupUser], NameGroupTable, Dict[str, str]]:
    roster_path = _required_path(options, "roster", options.roster_path, ROSTER_HINT)
    lookup_path = _required_path(options, "user-lookup", options.lookup_path, LOOKUP_HINT)
    roots = load_roster(roster_path)
    users = load_user_lookup(lookup_path)
    table = load_equivalence_groups(options.name_groups_path)
    return roots, users, table, {"Roster": str(roster_path), "User lookup": str(lookup_path)}


def _latest_snapshot(options: ReportOptions, categories: Tuple[str, ...], loader,
                     platform: str, now: datetime, warnings: List[str]):
    """
    Load the newest snapshot of the first category that has one.

    Missing/broken files and staleness become warnings; returns (snapshot or None, path).
    """
    path = None
    for category in categories:
        path = find_latest(category, options.data_directory, options.org)
        if path is not None:
            break
    if path is None:
        warnings.append(f"No {platform} snapshot found under {options.data_directory}; "
                        f"{platform} sections show no data")
        return None, None

    stale = find_freshness_warning(path, options.stale_after_days, now,
                                   label=category_label(category))
    if stale:
        warnings.append(stale.message)

    snapshot, error = load_optional(loader, path, platform)
    if error:
        warnings.append(f"{platform} snapshot unusable ({error}); {platform} sections "
                        f"show no data")
    return snapshot, str(path)


def _finish(options: ReportOptions, artifacts: Dict[str, str], now: datetime,
            confirm_overwrite: Optional[ConfirmOverwrite], stats: dict,
            warnings: List[str]) -> ReportResult:
    written = write_report_artifacts(
        options.output_directory, artifacts, now,
        confirm_overwrite=confirm_overwrite or prompt_confirm_overwrite,
        skip_confirmation=options.skip_confirmation,
    )
    if written is None:
        return ReportResult.cancelled_result()
    (canonical, stamped), rest = written[0], written[1:]
    return ReportResult(
        output_path=str(canonical),
        timestamped_path=str(stamped),
        extra_paths=[str(p) for pair in rest for p in pair],
        stats=stats,
        warnings=warnings,
    )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def generate_active_users_report(options: ReportOptions, now: Optional[datetime] = None,
                                 confirm_overwrite: Optional[ConfirmOverwrite] = None
                                 ) -> ReportResult:
    """Roster members active in Copilot or Cursor over the lookback window."""
    now = _now(now)
    warnings: List[str] = []
    roots, users, table, sources = _identity_inputs(options)
    index = flatten_roster(roots)

    seats, seat_path = _latest_snapshot(options, ("seats",), load_seats,
                                        "GitHub Copilot", now, warnings)
    activity, activity_path = _latest_snapshot(options, ("weekly-activity",), load_activity,
                                               "Cursor", now, warnings)
    sources["GitHub seats"] = seat_path
    sources["Cursor weekly activity"] = activity_path

    reconciled = link_platform_activity(
        users, index, table,
        seats=seats.seats if seats else (),
        activity=activity.records if activity else (),
    )
    stats = active_users_stats(reconciled, index.total_people, now,
                               options.lookback_days, seats, activity)
    logger.info("Active users: %d of %d roster people (%.1f%%)",
                stats.active_in_either, stats.total_roster_people, stats.active_percentage)

    artifacts = {
        "active-users.md": render_active_users_markdown(stats, now, sources, warnings),
        "active-users.csv": render_active_users_csv(stats),
    }
    return _finish(options, artifacts, now, confirm_overwrite,
                   stats.model_dump(mode="json", exclude={"users"}), warnings)


def generate_tooling_adoption_report(options: ReportOptions, now: Optional[datetime] = None,
                                     confirm_overwrite: Optional[ConfirmOverwrite] = None
                                     ) -> ReportResult:
    now = _now(now)
    roots, users, table, _ = _identity_inputs(options)
    index = flatten_roster(roots)
    stats = adoption_stats(filter_in_scope(users, index, table))
    markdown = render_tooling_adoption_markdown(stats, now, index.total_people)
    return _finish(options, {"ai-tooling-adoption.md": markdown}, now, confirm_overwrite,
                   stats.model_dump(mode="json"), [])


def generate_copilot_activity_report(options: ReportOptions, now: Optional[datetime] = None,
                                     confirm_overwrite: Optional[ConfirmOverwrite] = None
                                     ) -> ReportResult:
    """Seat activity, team rollups and acceptance rates for the organization."""
    now = _now(now)
    warnings: List[str] = []
    seats, seat_path = _latest_snapshot(options, ("seats",), load_seats,
                                        "GitHub Copilot", now, warnings)
    if seats is None:
        raise PartialDataError(
            "GitHub Copilot",
            "No usable Copilot seat snapshot; run scripts/fetch_github_copilot.py",
        )
    metrics, metrics_path = _latest_snapshot(options, ("org-metrics",), load_metrics,
                                             "GitHub metrics", now, warnings)

    lookup_users: List[LookupUser] = []
    lookup_path = options.lookup_path or find_latest("user-lookup", options.data_directory)
    if lookup_path and Path(lookup_path).is_file():
        try:
            lookup_users = load_user_lookup(lookup_path)
        except ConfigError as e:
            warnings.append(f"Lookup names unavailable: {e.message}")

    analysis = seat_analysis(seats, now, options.lookback_days, lookup_users)
    acceptance = acceptance_metrics(metrics) if metrics else None
    sources = {"Seat snapshot": seat_path, "Metrics snapshot": metrics_path}
    artifacts = {
        "github-copilot-activity.md": render_copilot_activity_markdown(
            analysis, acceptance, now, options.org, sources, warnings),
        "github-copilot-activity.csv": render_copilot_activity_csv(analysis),
    }
    stats = {
        "seats": analysis.model_dump(mode="json", exclude={"active", "inactive"}),
        "acceptance": acceptance.model_dump(mode="json") if acceptance else None,
    }
    return _finish(options, artifacts, now, confirm_overwrite, stats, warnings)


def generate_recent_activity_report(options: ReportOptions, now: Optional[datetime] = None,
                                    confirm_overwrite: Optional[ConfirmOverwrite] = None
                                    ) -> ReportResult:
    now = _now(now)
    warnings: List[str] = []
    seats, _ = _latest_snapshot(options, ("seats",), load_seats,
                                "GitHub Copilot", now, warnings)
    activity, _ = _latest_snapshot(options, ("weekly-activity", "daily-activity"),
                                   load_activity, "Cursor", now, warnings)
    stats = recent_activity_stats(now, options.lookback_days, seats, activity)
    markdown = render_recent_activity_markdown(stats, now, warnings)
    return _finish(options, {"recent-activity.md": markdown}, now, confirm_overwrite,
                   stats.model_dump(mode="json"), warnings)


def _optional_export(options: ReportOptions, category: str, loader, renderer,
                     filename: str, artifacts: Dict[str, str], warnings: List[str]) -> None:
    """Add a raw CSV export when the latest file of a category exists and has rows."""
    path = find_latest(category, options.data_directory, options.org)
    if path is None:
        return
    label = category_label(category)
    rows, error = load_optional(loader, path, label)
    if error:
        warnings.append(f"{label} export skipped: {error}")
    elif rows:
        artifacts[filename] = renderer(rows)
    else:
        logger.info("%s file %s has no rows; %s not written", label, path, filename)


def generate_cursor_summaries(options: ReportOptions, now: Optional[datetime] = None,
                              confirm_overwrite: Optional[ConfirmOverwrite] = None
                              ) -> ReportResult:
    """
    Cursor window usage CSV, monthly summary CSV and raw exports.

    The window comes from the latest monthly file (weekly/daily when no
    monthly file exists); the monthly summary reads every monthly file,
    legacy names included, so overlapping fetches accumulate.
    """
    now = _now(now)
    warnings: List[str] = []
    activity, _ = _latest_snapshot(
        options, ("monthly-activity", "weekly-activity", "daily-activity"),
        load_activity, "Cursor", now, warnings)

    monthly_records = []
    for path in find_all("monthly-activity", options.data_directory, include_legacy=True):
        snapshot, error = load_optional(load_activity, path, "Cursor monthly")
        if error:
            warnings.append(f"Skipped {path}: {error}")
            continue
        monthly_records.extend(snapshot.records)

    if activity is None and not monthly_records:
        raise PartialDataError("Cursor", "No Cursor activity snapshots; run scripts/fetch_cursor.py")

    window = window_summary(activity.records if activity else [])
    monthly = monthly_summary(monthly_records)
    artifacts = {
        "cursor_window_usage.csv": render_window_csv(window),
        "cursor_monthly_activity_summary.csv": render_monthly_csv(monthly),
    }
    _optional_export(options, "daily-activity", load_activity_rows, render_activity_export_csv,
                     "cursor_daily_activity.csv", artifacts, warnings)
    _optional_export(options, "monthly-activity", load_activity_rows,
                     render_activity_export_csv, "cursor_monthly_activity.csv",
                     artifacts, warnings)
    _optional_export(options, "team-members", load_team_members, render_team_members_csv,
                     "cursor_team_members.csv", artifacts, warnings)

    stats = {
        "window_start": window.window_start.isoformat() if window.window_start else None,
        "window_end": window.window_end.isoformat() if window.window_end else None,
        "window_days": window.window_days,
        "window_users": len(window.rows),
        "monthly_rows": len(monthly),
        "exports": sorted(name for name in artifacts if name in CURSOR_EXPORT_FILES),
    }
    return _finish(options, artifacts, now, confirm_overwrite, stats, warnings)


REPORTS: Dict[str, Callable[..., ReportResult]] = {
    "active-users": generate_active_users_report,
    "ai-tooling": generate_tooling_adoption_report,
    "copilot-activity": generate_copilot_activity_report,
    "recent-activity": generate_recent_activity_report,
    "cursor-summaries": generate_cursor_summaries,
}

# Canonical files each report writes into the output directory.
REPORT_FILES: Dict[str, Tuple[str, ...]] = {
    "active-users": ("active-users.md", "active-users.csv"),
    "ai-tooling": ("ai-tooling-adoption.md",),
    "copilot-activity": ("github-copilot-activity.md", "github-copilot-activity.csv"),
    "recent-activity": ("recent-activity.md",),
    "cursor-summaries": ("cursor_window_usage.csv", "cursor_monthly_activity_summary.csv",
                         *CURSOR_EXPORT_FILES),
}


def generate_all_reports(options: ReportOptions, now: Optional[datetime] = None,
                         confirm_overwrite: Optional[ConfirmOverwrite] = None
                         ) -> Dict[str, ReportResult]:
    """
    Run every report with one shared ``now``.

    A report lacking its platform data is recorded as unsuccessful; a missing
    roster or lookup table still raises ConfigError.
    """
    now = _now(now)
    results: Dict[str, ReportResult] = {}
    for name, generate in REPORTS.items():
        try:
            results[name] = generate(options, now=now, confirm_overwrite=confirm_overwrite)
        except PartialDataError as e:
            logger.warning("Skipping %s report: %s", name, e.message)
            results[name] = ReportResult(success=False, warnings=[e.message])
    return results


def main():
    parser = argparse.ArgumentParser(description="Generate AI tool usage reports")
    parser.add_argument("report", choices=[*REPORTS, "all"], help="Report to generate")
    parser.add_argument("--days", type=int, help="Lookback window in days (default: 7)")
    parser.add_argument("--data-dir", type=Path, help="Snapshot root (default: data/)")
    parser.add_argument("--output-dir", type=Path, help="Report output (default: reports/)")
    parser.add_argument("--roster", type=Path, help="Roster JSON (direct-reports.json)")
    parser.add_argument("--lookup", type=Path, help="User lookup CSV")
    parser.add_argument("--org", help="Organization slug")
    parser.add_argument("--yes", action="store_true", help="Overwrite without prompting")
    args = parser.parse_args()

    options = default_report_options(
        lookback_days=args.days, data_directory=args.data_dir,
        output_directory=args.output_dir, roster_path=args.roster,
        lookup_path=args.lookup, org=args.org, skip_confirmation=args.yes,
    )

    try:
        if args.report == "all":
            results = generate_all_reports(options)
        else:
            results = {args.report: REPORTS[args.report](options)}
    except ConfigError as e:
        logger.error("%s", e)
        if e.hint:
            logger.error("Hint: %s", e.hint)
        sys.exit(2)
    except PartialDataError as e:
        logger.error("%s", e)
        sys.exit(1)

    for name, result in results.items():
        if result.cancelled:
            logger.info("%s: cancelled", name)
        elif not result.success:
            logger.warning("%s: not generated (%s)", name, "; ".join(result.warnings))
        else:
            logger.info("%s: %s", name, result.output_path)
            for warning in result.warnings:
                logger.warning("  %s", warning)


if __name__ == "__main__":
    main()
