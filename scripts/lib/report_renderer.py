"""
Report Renderer
===============

Turns aggregate statistics into Markdown and CSV text, and writes each
artifact twice: a canonical fixed-name file (overwritten every run) and a
timestamped copy (history). Content is rendered once and the same string is
written to both paths.

Markdown section order is fixed so consecutive runs diff cleanly:
executive summary → detailed breakdown → team breakdown → per-user detail →
analysis notes.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from models.metrics_models import (
    NUMERIC_FIELDS,
    AcceptanceStats,
    ActiveUsersStats,
    AdoptionStats,
    MonthlySummaryRow,
    RecentActivityStats,
    SeatAnalysis,
    TeamRollup,
    WindowSummary,
)
from scripts.lib.logger import setup_logger
from scripts.lib.utils import atomic_write_text, render_csv

logger = setup_logger(__name__)

ConfirmOverwrite = Callable[[Path], bool]

NO_DATA = "_No data available._"
MAX_ACTIVE_MEMBERS_LISTED = 10
MAX_INACTIVE_MEMBERS_LISTED = 5

WINDOW_HEADER = [
    "userId", "email", "windowStart", "windowEnd", "windowDays", "presentDays",
    "daysActive", "presenceRate", "activeRate", "avgLinesAddedPerActiveDay",
    *NUMERIC_FIELDS,
]
MONTHLY_HEADER = [
    "userId", "email", "month", "daysActive", "totalDays", "activeRate",
    "avgLinesAddedPerActiveDay", *NUMERIC_FIELDS,
]
# Raw activity exports: these first, any other keys after them alphabetically.
ACTIVITY_EXPORT_COLUMNS = [
    "date", "userId", "email", "isActive", *NUMERIC_FIELDS,
    "mostUsedModel", "applyMostUsedExtension", "tabMostUsedExtension", "clientVersion",
]
TEAM_MEMBER_HEADER = ["id", "name", "email", "role"]


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def timestamp_slug(now: datetime) -> str:
    """Filesystem-safe ISO instant, e.g. ``2025-06-14T09-30-00-000Z``."""
    moment = now.astimezone(timezone.utc) if now.tzinfo else now
    return moment.strftime("%Y-%m-%dT%H-%M-%S-") + f"{moment.microsecond // 1000:03d}Z"


def _fmt_day(value: Optional[datetime | date]) -> str:
    if value is None:
        return "never"
    return value.strftime("%Y-%m-%d")


def _fmt_instant(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def _md_cell(value) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def _md_table(header: Sequence[str], rows: Iterable[Sequence]) -> List[str]:
    lines = [
        "| " + " | ".join(header) + " |",
        "|" + "|".join("---" for _ in header) + "|",
    ]
    for row in rows:
        lines.append("| " + " | ".join(_md_cell(v) for v in row) + " |")
    return lines


def _header(title: str, now: datetime, lookback_days: Optional[int] = None,
            cutoff: Optional[datetime] = None) -> List[str]:
    lines = [f"# {title}", "", f"**Generated:** {now.isoformat()}  "]
    if lookback_days is not None:
        since = f" (since {_fmt_day(cutoff)})" if cutoff else ""
        lines.append(f"**Lookback window:** last {lookback_days} days{since}  ")
    lines.append("")
    return lines


def _warnings_section(warnings: Sequence[str]) -> List[str]:
    if not warnings:
        return ["- No data freshness or availability warnings."]
    return [f"- ⚠️ {w}" for w in warnings]


# ---------------------------------------------------------------------------
# Active users (cross-platform)
# ---------------------------------------------------------------------------

def _team_table(teams: List[TeamRollup]) -> List[str]:
    return _md_table(
        ["Team", "Seats", "Active", "Inactive", "Active %"],
        ([t.name, t.total, t.active, t.inactive, f"{t.percentage}%"] for t in teams),
    )


def render_active_users_markdown(
    stats: ActiveUsersStats,
    now: datetime,
    sources: Dict[str, Optional[str]],
    warnings: Sequence[str] = (),
) -> str:
    n = stats.lookback_days
    lines = _header("Active AI Tool Users Report", now, n, stats.cutoff)

    lines += [
        "## Executive Summary",
        "",
        f"**Total R&D people:** {stats.total_roster_people}  ",
        f"**R&D people with access to AI coding tools:** {stats.users_with_tools}  ",
        f"**People active in either tool in the last {n} days:** {stats.active_in_either}  ",
        "",
        f"**In total {stats.active_percentage:.1f}% of R&D were active users "
        f"in the last {n} days.**",
        "",
        "## Detailed Summary",
        "",
        f"- **Lookup users resolved to the roster:** {stats.users_in_lookup}",
        f"- **Users with Copilot access:** {stats.copilot_users}",
        f"- **Users with Cursor access:** {stats.cursor_users}",
        f"- **Users without AI tools:** {stats.users_without_tools}",
        "",
        "### GitHub Copilot Activity",
        "",
    ]
    if stats.copilot_available:
        lines.append(f"- **Active Copilot users (last {n} days):** {stats.active_copilot_users}")
    else:
        lines.append(NO_DATA)
    lines += ["", "### Cursor Activity", ""]
    if stats.cursor_available:
        lines.append(f"- **Active Cursor users (last {n} days):** {stats.active_cursor_users}")
    else:
        lines.append(NO_DATA)
    lines += [
        "",
        "### Individual Contributors",
        "",
        f"- **Individual contributors:** {stats.individual_contributors}",
        f"- **Active in the last {n} days:** {stats.individual_contributors_active}",
        "",
        f"**{stats.individual_contributors_percentage:.1f}% of individual contributors "
        f"were active users in the last {n} days.**",
        "",
        "## Team Breakdown (GitHub Copilot)",
        "",
    ]
    if not stats.copilot_available:
        lines.append(NO_DATA)
    elif not stats.teams:
        lines.append("_No seats are assigned through teams._")
    else:
        lines += _team_table(stats.teams)

    lines += ["", "## User Detail", ""]
    if stats.users:
        lines += _md_table(
            ["Name", "Role", "Copilot", "Cursor", "Last Copilot Activity", "Last Cursor Activity"],
            (
                [u.name, u.role or "-", u.copilot_status, u.cursor_status,
                 _fmt_day(u.copilot_last_activity), _fmt_day(u.cursor_last_activity)]
                for u in stats.users
            ),
        )
    else:
        lines.append("_No lookup users matched the roster._")

    lines += ["", "## Analysis Details", ""]
    for label, path in sources.items():
        lines.append(f"- **{label}:** {path or 'not found'}")
    lines += [""] + _warnings_section(warnings)
    lines += [
        "",
        "## Notes",
        "",
        "- Copilot activity is based on each seat's last recorded activity timestamp.",
        "- Cursor activity is based on the latest weekly activity report.",
        "- Lookup names are matched to the roster by exact name, or by identical "
        "surname with an equal or nickname-equivalent first name.",
        "- Individual contributors exclude roles containing manager, VP or director.",
        "",
    ]
    return "\n".join(lines)


def render_active_users_csv(stats: ActiveUsersStats) -> str:
    header = [
        "name", "role", "email", "githubLogin", "hasCopilot", "hasCursor",
        "copilotStatus", "copilotLastActivity", "cursorStatus", "cursorLastActivity",
        "activeInEither",
    ]
    rows = (
        [u.name, u.role, u.email, u.github_login, u.has_copilot, u.has_cursor,
         u.copilot_status, _fmt_instant(u.copilot_last_activity),
         u.cursor_status, _fmt_instant(u.cursor_last_activity), u.active_in_either]
        for u in stats.users
    )
    return render_csv(header, rows)


# ---------------------------------------------------------------------------
# Tooling adoption
# ---------------------------------------------------------------------------

def render_tooling_adoption_markdown(stats: AdoptionStats, now: datetime,
                                     total_roster_people: int) -> str:
    lines = _header("AI Tooling Adoption Report", now)
    lines += [
        "## Executive Summary",
        "",
        f"Total R&D workforce in the roster: {total_roster_people}  ",
        f"People analyzed (lookup users resolved to the roster): {stats.total_people}",
        "",
        f"- **GitHub Copilot:** {stats.copilot_adoption} people ({stats.copilot_percentage:.1f}%)",
        f"- **Cursor:** {stats.cursor_adoption} people ({stats.cursor_percentage:.1f}%)",
        f"- **Any AI Tool:** {stats.any_tool_adoption} people ({stats.any_tool_percentage:.1f}%)",
        "",
        "## Adoption by Role",
        "",
    ]
    if stats.by_role:
        lines += _md_table(
            ["Role", "With Tools", "Total", "Adoption %"],
            ([role, r.with_tools, r.total, f"{r.percentage:.1f}%"]
             for role, r in stats.by_role.items()),
        )
    else:
        lines.append(NO_DATA)
    lines += ["", "## Recommendations", ""]
    lines += [f"- {rec}" for rec in stats.recommendations]
    lines.append("")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# GitHub Copilot activity
# ---------------------------------------------------------------------------

def render_copilot_activity_markdown(
    analysis: SeatAnalysis,
    acceptance: Optional[AcceptanceStats],
    now: datetime,
    org: Optional[str],
    sources: Dict[str, Optional[str]],
    warnings: Sequence[str] = (),
) -> str:
    n = analysis.lookback_days
    lines = _header("GitHub Copilot Activity Report", now, n, analysis.cutoff)
    lines += [
        "## Report Details",
        "",
        f"- **Organization:** {org or 'unknown'}",
    ]
    for label, path in sources.items():
        lines.append(f"- **{label}:** {path or 'not found'}")
    lines += _warnings_section(warnings)
    lines += [
        "",
        "## Breakdown",
        "",
        f"- **Total seats:** {analysis.total_seats}",
        f"- **Active in the last {n} days:** {analysis.active_count} "
        f"({analysis.active_percentage}%)",
        f"- **Inactive:** {analysis.inactive_count}",
        "",
        "## Copilot Metrics",
        "",
    ]
    if acceptance is None:
        lines.append(NO_DATA)
    else:
        lines += [
            f"- **Period:** {acceptance.period_start or '?'} to {acceptance.period_end or '?'} "
            f"({acceptance.days_covered} days)",
            f"- **Suggestions shown:** {acceptance.total_code_suggestions}",
            f"- **Suggestions accepted:** {acceptance.total_code_acceptances}",
            f"- **Acceptance rate:** {acceptance.acceptance_rate:.2f}%",
            f"- **Lines suggested:** {acceptance.total_code_lines_suggested}",
            f"- **Lines accepted:** {acceptance.total_code_lines_accepted}",
            f"- **Line acceptance rate:** {acceptance.line_acceptance_rate:.2f}%",
        ]

    lines += ["", "## Team Breakdown", ""]
    if not analysis.teams:
        lines.append("_No seats are assigned through teams._")
    for team in analysis.teams:
        lines += [f"### {team.name}", ""]
        if team.description:
            lines += [team.description, ""]
        lines.append(f"- **Seats:** {team.total} | **Active:** {team.active} "
                     f"| **Inactive:** {team.inactive} | **Active %:** {team.percentage}%")
        if team.active_members and len(team.active_members) <= MAX_ACTIVE_MEMBERS_LISTED:
            lines.append(f"- **Active members:** {', '.join(team.active_members)}")
        if team.inactive_members and len(team.inactive_members) <= MAX_INACTIVE_MEMBERS_LISTED:
            lines.append(f"- **Inactive members:** {', '.join(team.inactive_members)}")
        lines.append("")

    lines += ["## Inactive Users Detail", ""]
    if analysis.inactive:
        lines += _md_table(
            ["Login", "Name", "Team", "Last Activity", "Days Since", "Editor"],
            (
                [s.login, s.display_name, s.team or "-", _fmt_day(s.last_activity_at),
                 "-" if s.days_since_last_activity is None else s.days_since_last_activity,
                 s.last_activity_editor or "-"]
                for s in analysis.inactive
            ),
        )
    else:
        lines.append("_Every seat was active in the window._")
    lines.append("")
    return "\n".join(lines)


def render_copilot_activity_csv(analysis: SeatAnalysis) -> str:
    header = ["login", "displayName", "team", "status", "lastActivityAt",
              "daysSinceLastActivity", "lastActivityEditor"]
    rows = (
        [s.login, s.display_name, s.team or "", "active" if s.is_active else "inactive",
         _fmt_instant(s.last_activity_at),
         "" if s.days_since_last_activity is None else s.days_since_last_activity,
         s.last_activity_editor or ""]
        for s in analysis.active + analysis.inactive
    )
    return render_csv(header, rows)


# ---------------------------------------------------------------------------
# Recent activity
# ---------------------------------------------------------------------------

def render_recent_activity_markdown(stats: RecentActivityStats, now: datetime,
                                    warnings: Sequence[str] = ()) -> str:
    n = stats.lookback_days
    lines = _header("Recent AI Tool Activity", now, n, stats.cutoff)
    lines += ["## Summary", "", "### GitHub Copilot", ""]
    if stats.copilot_available:
        lines.append(f"- **Active seats:** {stats.copilot_active_seats} of "
                     f"{stats.copilot_total_seats}")
    else:
        lines.append(NO_DATA)
    lines += ["", "### Cursor", ""]
    if stats.cursor_available:
        lines += [
            f"- **Active users:** {stats.cursor_active_users} of {stats.cursor_total_users}",
            f"- **Requests (composer + chat):** {stats.total_requests}",
            f"- **Lines added:** {stats.lines_added}",
            f"- **Accepted lines added:** {stats.accepted_lines_added}",
        ]
    else:
        lines.append(NO_DATA)
    lines += ["", "## Daily Cursor Activity", ""]
    if stats.daily:
        lines += _md_table(
            ["Date", "Active Users", "Requests", "Lines Added"],
            ([p.day.isoformat(), p.active_users, p.requests, p.lines_added]
             for p in stats.daily),
        )
    else:
        lines.append(NO_DATA)
    lines += ["", "## Analysis Details", ""] + _warnings_section(warnings) + [""]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Cursor CSV summaries
# ---------------------------------------------------------------------------

def render_window_csv(summary: WindowSummary) -> str:
    start = summary.window_start.isoformat() if summary.window_start else ""
    end = summary.window_end.isoformat() if summary.window_end else ""
    rows = (
        [r.user_id, r.email, start, end, summary.window_days, r.present_days,
         r.days_active, r.presence_rate, r.active_rate, r.avg_lines_added_per_active_day,
         *(r.counters[f] for f in NUMERIC_FIELDS)]
        for r in summary.rows
    )
    return render_csv(WINDOW_HEADER, rows)


def render_monthly_csv(rows: List[MonthlySummaryRow]) -> str:
    return render_csv(MONTHLY_HEADER, (
        [r.user_id, r.email, r.month, r.days_active, r.total_days, r.active_rate,
         r.avg_lines_added_per_active_day,
         *(r.counters[f] for f in NUMERIC_FIELDS)]
        for r in rows
    ))


def activity_export_columns(rows: Iterable[dict]) -> List[str]:
    extra = sorted({key for row in rows for key in row} - set(ACTIVITY_EXPORT_COLUMNS))
    return [*ACTIVITY_EXPORT_COLUMNS, *extra]


def render_activity_export_csv(rows: List[dict]) -> str:
    columns = activity_export_columns(rows)
    return render_csv(columns, ([row.get(c) for c in columns] for row in rows))


def render_team_members_csv(members: List[dict]) -> str:
    return render_csv(TEAM_MEMBER_HEADER,
                      ([m.get(c) for c in TEAM_MEMBER_HEADER] for m in members))


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------

def timestamped_path(canonical: Path, now: datetime) -> Path:
    return canonical.with_name(f"{canonical.stem}_{timestamp_slug(now)}{canonical.suffix}")


def write_report_artifacts(
    output_dir: str | Path,
    artifacts: Dict[str, str],
    now: datetime,
    confirm_overwrite: Optional[ConfirmOverwrite] = None,
    skip_confirmation: bool = False,
) -> Optional[List[Tuple[Path, Path]]]:
    """
    Write each ``{filename: content}`` artifact to its canonical and timestamped path.

    Existing canonical files are only replaced when ``confirm_overwrite``
    approves (or ``skip_confirmation`` is set). Any refusal cancels the whole
    report before a single file is written; the return value is then None.
    """
    output_dir = Path(output_dir)
    targets = [(output_dir / name, content) for name, content in artifacts.items()]

    if not skip_confirmation and confirm_overwrite is not None:
        for canonical, _ in targets:
            if canonical.exists() and not confirm_overwrite(canonical):
                logger.info("Overwrite of %s declined; report cancelled", canonical)
                return None

    written: List[Tuple[Path, Path]] = []
    for canonical, content in targets:
        stamped = timestamped_path(canonical, now)
        atomic_write_text(content, canonical)
        atomic_write_text(content, stamped)
        logger.info("Wrote %s (+ %s)", canonical, stamped.name)
        written.append((canonical, stamped))
    return written
