"""
Activity Aggregator
===================

Pure statistics over loaded snapshots, parameterized by a lookback window and
an explicit ``now``:

  - seat / Cursor activity classification against a start-of-day cutoff
  - per-team rollups of Copilot seats
  - Copilot acceptance rates (suggestion-based and line-based, kept separate)
  - Cursor window and monthly summaries with derived rates
  - cross-platform active-user, adoption and recent-activity statistics

Nothing here reads the clock, touches the filesystem or caches between calls,
so the same inputs and ``now`` always yield identical numbers.
"""
from __future__ import annotations

import math
import re
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from models.metrics_models import (
    NUMERIC_FIELDS,
    AcceptanceStats,
    ActiveUsersStats,
    ActivityClassification,
    ActivityRecord,
    ActivitySnapshot,
    AdoptionStats,
    DailyActivityPoint,
    LookupUser,
    MetricsSnapshot,
    MonthlySummaryRow,
    RecentActivityStats,
    RoleAdoption,
    SeatActivity,
    SeatAnalysis,
    SeatRecord,
    SeatSnapshot,
    TeamRollup,
    UserActivityRow,
    WindowSummary,
    WindowUserRow,
    zero_counters,
)
from scripts.lib.identity_reconciler import ReconciledUser

DEFAULT_LOOKBACK_DAYS = 7

ACCEPTANCE_COUNTERS = (
    "total_code_suggestions",
    "total_code_acceptances",
    "total_code_lines_suggested",
    "total_code_lines_accepted",
)

MANAGEMENT_ROLE_MARKERS = ("manager", "vp", "director")
MANAGEMENT_ROLE_PATTERN = re.compile(
    r"\b(?:" + "|".join(MANAGEMENT_ROLE_MARKERS) + r")s?\b", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _quantize(numerator: float, denominator: float, places: int) -> Decimal:
    if not denominator:
        return Decimal(0).quantize(Decimal(1).scaleb(-places))
    value = Decimal(str(numerator)) / Decimal(str(denominator))
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def percentage(part: float, whole: float, places: int = 0):
    """part/whole × 100 rounded half-up; 0 when whole is 0. int when places == 0."""
    value = _quantize(part * 100, whole, places)
    return int(value) if places == 0 else float(value)


def fixed_ratio(numerator: float, denominator: float, places: int = 4) -> str:
    """Ratio as a fixed-point string, e.g. ``"0.4286"``; zero when denominator is 0."""
    return str(_quantize(numerator, denominator, places))


def _to_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if math.isnan(value) or math.isinf(value):
        return 0
    return int(value)


def is_individual_contributor(role: str) -> bool:
    return not MANAGEMENT_ROLE_PATTERN.search(role or "")


def day_start(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def compute_cutoff(now: datetime, lookback_days: int = DEFAULT_LOOKBACK_DAYS) -> datetime:
    """``now - lookback_days``, snapped to 00:00 UTC."""
    moment = _as_utc(now) - timedelta(days=lookback_days)
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def days_since(now: datetime, moment: Optional[datetime]) -> Optional[int]:
    if moment is None:
        return None
    return math.floor((_as_utc(now) - _as_utc(moment)).total_seconds() / 86400)


def classify_seat(seat: SeatRecord, cutoff: datetime, now: datetime) -> ActivityClassification:
    last = seat.last_activity_at
    return ActivityClassification(
        is_active=last is not None and _as_utc(last) >= cutoff,
        days_since_last_activity=days_since(now, last),
        last_activity_at=last,
    )


def classify_seats(seats: Iterable[SeatRecord], cutoff: datetime,
                   now: datetime) -> Dict[str, ActivityClassification]:
    return {seat.login: classify_seat(seat, cutoff, now) for seat in seats}


def classify_activity(records: Iterable[ActivityRecord], cutoff: datetime,
                      now: datetime) -> Dict[str, ActivityClassification]:
    """
    Classify Cursor users keyed by lowercased email.

    Active iff at least one record flagged active on or after the cutoff day;
    the latest such record is the user's last activity.
    """
    cutoff_day = cutoff.date()
    latest: Dict[str, Optional[date]] = {}
    for record in records:
        key = record.email.lower()
        if not key:
            continue
        latest.setdefault(key, None)
        if record.is_active and record.day >= cutoff_day:
            if latest[key] is None or record.day > latest[key]:
                latest[key] = record.day

    result: Dict[str, ActivityClassification] = {}
    for key, day in latest.items():
        last = day_start(day) if day else None
        result[key] = ActivityClassification(
            is_active=day is not None,
            days_since_last_activity=days_since(now, last),
            last_activity_at=last,
        )
    return result


# ---------------------------------------------------------------------------
# Copilot seats
# ---------------------------------------------------------------------------

def seat_display_name(seat: SeatRecord, names_by_login: Dict[str, str]) -> str:
    return names_by_login.get(seat.login) or seat.enriched_name or seat.login


def team_rollups(
    seats: Iterable[SeatRecord],
    classifications: Dict[str, ActivityClassification],
    names_by_login: Optional[Dict[str, str]] = None,
) -> List[TeamRollup]:
    """Per-team active/inactive split; seats without a team are left out."""
    names_by_login = names_by_login or {}
    teams: Dict[str, TeamRollup] = {}
    for seat in seats:
        team = seat.assigning_team
        if team is None or not team.slug:
            continue
        rollup = teams.get(team.slug)
        if rollup is None:
            rollup = teams[team.slug] = TeamRollup(
                slug=team.slug, name=team.name or team.slug,
                description=team.description or "",
            )
        rollup.total += 1
        display = seat_display_name(seat, names_by_login)
        classification = classifications.get(seat.login)
        if classification is not None and classification.is_active:
            rollup.active += 1
            rollup.active_members.append(display)
        else:
            rollup.inactive += 1
            rollup.inactive_members.append(display)

    for rollup in teams.values():
        rollup.percentage = percentage(rollup.active, rollup.total)
        rollup.active_members.sort(key=str.lower)
        rollup.inactive_members.sort(key=str.lower)
    return [teams[slug] for slug in sorted(teams)]


def seat_analysis(
    snapshot: SeatSnapshot,
    now: datetime,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    lookup_users: Iterable[LookupUser] = (),
) -> SeatAnalysis:
    """Active/inactive seat lists plus team rollups for one seat snapshot."""
    cutoff = compute_cutoff(now, lookback_days)
    names_by_login = {u.github_login: u.name for u in lookup_users if u.github_login}
    classifications = classify_seats(snapshot.seats, cutoff, now)

    active: List[SeatActivity] = []
    inactive: List[SeatActivity] = []
    for seat in snapshot.seats:
        c = classifications[seat.login]
        row = SeatActivity(
            login=seat.login,
            display_name=seat_display_name(seat, names_by_login),
            team=seat.assigning_team.name or seat.assigning_team.slug
            if seat.assigning_team else None,
            is_active=c.is_active,
            last_activity_at=c.last_activity_at,
            days_since_last_activity=c.days_since_last_activity,
            last_activity_editor=seat.last_activity_editor,
        )
        (active if c.is_active else inactive).append(row)

    # Most recent first; never-active seats last.
    def _recency(row: SeatActivity) -> Tuple[int, float, str]:
        if row.last_activity_at is None:
            return (1, 0.0, row.login)
        return (0, -row.last_activity_at.timestamp(), row.login)

    active.sort(key=_recency)
    inactive.sort(key=_recency)

    total = len(snapshot.seats)
    return SeatAnalysis(
        lookback_days=lookback_days,
        cutoff=cutoff,
        total_seats=total,
        active_count=len(active),
        inactive_count=len(inactive),
        active_percentage=percentage(len(active), total),
        active=active,
        inactive=inactive,
        teams=team_rollups(snapshot.seats, classifications, names_by_login),
    )


# ---------------------------------------------------------------------------
# Copilot acceptance metrics
# ---------------------------------------------------------------------------

def _counter_nodes(node: Any) -> Iterator[Dict[str, Any]]:
    """Yield every dict carrying acceptance counters, however deeply nested."""
    if isinstance(node, dict):
        if any(key in node for key in ACCEPTANCE_COUNTERS):
            yield node
            return
        for value in node.values():
            yield from _counter_nodes(value)
    elif isinstance(node, list):
        for item in node:
            yield from _counter_nodes(item)


def acceptance_metrics(snapshot: MetricsSnapshot) -> AcceptanceStats:
    """
    Sum completion counters across every day/editor/model/language entry.

    Suggestion-count and line-based rates are reported side by side; each is
    0.0 when its denominator is 0.
    """
    totals = dict.fromkeys(ACCEPTANCE_COUNTERS, 0)
    dates: List[str] = []
    for day in snapshot.days:
        if day.get("date"):
            dates.append(str(day["date"]))
        for node in _counter_nodes(day.get("copilot_ide_code_completions")):
            for key in ACCEPTANCE_COUNTERS:
                totals[key] += max(_to_count(node.get(key)), 0)

    def _rate(accepted: int, suggested: int) -> float:
        return min(max(percentage(accepted, suggested, places=2), 0.0), 100.0)

    dates.sort()
    return AcceptanceStats(
        **totals,
        acceptance_rate=_rate(totals["total_code_acceptances"], totals["total_code_suggestions"]),
        line_acceptance_rate=_rate(totals["total_code_lines_accepted"],
                                   totals["total_code_lines_suggested"]),
        period_start=snapshot.meta.get("since") or (dates[0] if dates else None),
        period_end=snapshot.meta.get("until") or (dates[-1] if dates else None),
        days_covered=len(snapshot.days),
    )


# ---------------------------------------------------------------------------
# Cursor window & monthly summaries
# ---------------------------------------------------------------------------

def dedupe_records(records: Iterable[ActivityRecord]) -> List[ActivityRecord]:
    """One record per (user, day); later records replace earlier ones."""
    by_key: Dict[Tuple[str, date], ActivityRecord] = {}
    for record in records:
        by_key[(record.user_id, record.day)] = record
    return list(by_key.values())


def _sum_counters(target: Dict[str, int], record: ActivityRecord) -> None:
    for field_name in NUMERIC_FIELDS:
        target[field_name] += record.counters.get(field_name, 0)


def window_summary(records: Iterable[ActivityRecord]) -> WindowSummary:
    """
    Per-user presence/activity over the window actually covered by the data.

    The window runs from the earliest to the latest observed day, inclusive.
    """
    records = dedupe_records(records)
    if not records:
        return WindowSummary()

    start = min(r.day for r in records)
    end = max(r.day for r in records)
    window_days = (end - start).days + 1

    present: Dict[str, set] = defaultdict(set)
    active: Dict[str, set] = defaultdict(set)
    emails: Dict[str, str] = {}
    counters: Dict[str, Dict[str, int]] = defaultdict(zero_counters)
    for record in records:
        present[record.user_id].add(record.day)
        if record.is_active:
            active[record.user_id].add(record.day)
        if record.email and not emails.get(record.user_id):
            emails[record.user_id] = record.email
        _sum_counters(counters[record.user_id], record)

    rows = []
    for user_id in sorted(present):
        days_active = len(active[user_id])
        rows.append(WindowUserRow(
            user_id=user_id,
            email=emails.get(user_id, ""),
            present_days=len(present[user_id]),
            days_active=days_active,
            presence_rate=fixed_ratio(len(present[user_id]), window_days),
            active_rate=fixed_ratio(days_active, window_days),
            avg_lines_added_per_active_day=fixed_ratio(
                counters[user_id]["totalLinesAdded"], days_active, places=2),
            counters=counters[user_id],
        ))
    return WindowSummary(window_start=start, window_end=end,
                         window_days=window_days, rows=rows)


def monthly_summary(records: Iterable[ActivityRecord]) -> List[MonthlySummaryRow]:
    """Bucket by (user, calendar month) regardless of which file a row came from."""
    buckets: Dict[Tuple[str, str], MonthlySummaryRow] = {}
    days: Dict[Tuple[str, str], set] = defaultdict(set)
    active_days: Dict[Tuple[str, str], set] = defaultdict(set)

    for record in dedupe_records(records):
        key = (record.user_id, record.day.strftime("%Y-%m"))
        row = buckets.get(key)
        if row is None:
            row = buckets[key] = MonthlySummaryRow(user_id=key[0], month=key[1])
        if record.email and not row.email:
            row.email = record.email
        days[key].add(record.day)
        if record.is_active:
            active_days[key].add(record.day)
        _sum_counters(row.counters, record)

    for key, row in buckets.items():
        row.total_days = len(days[key])
        row.days_active = len(active_days[key])
        row.active_rate = fixed_ratio(row.days_active, row.total_days)
        row.avg_lines_added_per_active_day = fixed_ratio(
            row.counters["totalLinesAdded"], row.days_active, places=2)
    return [buckets[key] for key in sorted(buckets)]


# ---------------------------------------------------------------------------
# Cross-platform statistics
# ---------------------------------------------------------------------------

def _copilot_status(user: ReconciledUser, available: bool,
                    classes: Dict[str, ActivityClassification]) -> Tuple[str, Optional[datetime]]:
    if not user.user.has_copilot:
        return "no access", None
    if not available:
        return "no data", None
    c = classes.get(user.user.github_login) if user.user.github_login else None
    if c is None:
        return "no seat", None
    return ("active" if c.is_active else "inactive"), c.last_activity_at


def _cursor_status(user: ReconciledUser, available: bool,
                   classes: Dict[str, ActivityClassification]) -> Tuple[str, Optional[datetime]]:
    if not user.user.has_cursor:
        return "no access", None
    if not available:
        return "no data", None
    c = classes.get(user.user.email.lower()) if user.user.email else None
    if c is None:
        return "no activity", None
    return ("active" if c.is_active else "inactive"), c.last_activity_at


def active_users_stats(
    reconciled: List[ReconciledUser],
    total_roster_people: int,
    now: datetime,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    seats: Optional[SeatSnapshot] = None,
    activity: Optional[ActivitySnapshot] = None,
) -> ActiveUsersStats:
    """
    Cross-platform activity for in-scope users.

    A platform whose snapshot is None is reported as unavailable: its users get
    status "no data" and contribute zero active users.
    """
    cutoff = compute_cutoff(now, lookback_days)
    seat_classes = classify_seats(seats.seats, cutoff, now) if seats else {}
    cursor_classes = classify_activity(activity.records, cutoff, now) if activity else {}

    rows: List[UserActivityRow] = []
    for item in reconciled:
        user = item.user
        copilot_status, copilot_last = _copilot_status(item, seats is not None, seat_classes)
        cursor_status, cursor_last = _cursor_status(item, activity is not None, cursor_classes)
        rows.append(UserActivityRow(
            name=user.name,
            role=user.role,
            email=user.email,
            github_login=user.github_login,
            has_copilot=user.has_copilot,
            has_cursor=user.has_cursor,
            copilot_status=copilot_status,
            cursor_status=cursor_status,
            copilot_last_activity=copilot_last,
            cursor_last_activity=cursor_last,
            active_in_either=copilot_status == "active" or cursor_status == "active",
            is_individual_contributor=is_individual_contributor(user.role),
        ))
    rows.sort(key=lambda r: (r.name.lower(), r.github_login))

    active_in_either = sum(1 for r in rows if r.active_in_either)
    with_tools = sum(1 for r in rows if r.has_copilot or r.has_cursor)
    ics = [r for r in rows if r.is_individual_contributor]
    ics_active = sum(1 for r in ics if r.active_in_either)

    teams: List[TeamRollup] = []
    if seats is not None:
        names_by_login = {r.github_login: r.name for r in rows if r.github_login}
        teams = team_rollups(seats.seats, seat_classes, names_by_login)

    return ActiveUsersStats(
        lookback_days=lookback_days,
        cutoff=cutoff,
        total_roster_people=total_roster_people,
        users_in_lookup=len(rows),
        users_with_tools=with_tools,
        users_without_tools=len(rows) - with_tools,
        active_in_either=active_in_either,
        active_percentage=percentage(active_in_either, total_roster_people, places=1),
        copilot_users=sum(1 for r in rows if r.has_copilot),
        cursor_users=sum(1 for r in rows if r.has_cursor),
        active_copilot_users=sum(1 for r in rows if r.copilot_status == "active"),
        active_cursor_users=sum(1 for r in rows if r.cursor_status == "active"),
        copilot_available=seats is not None,
        cursor_available=activity is not None,
        individual_contributors=len(ics),
        individual_contributors_active=ics_active,
        individual_contributors_percentage=percentage(ics_active, len(ics), places=1),
        teams=teams,
        users=rows,
    )


def adoption_stats(users: List[LookupUser]) -> AdoptionStats:
    """Tool access across in-scope users, overall and by role."""
    total = len(users)
    copilot = sum(1 for u in users if u.has_copilot)
    cursor = sum(1 for u in users if u.has_cursor)
    any_tool = sum(1 for u in users if u.has_any_tool)

    by_role: Dict[str, RoleAdoption] = {}
    for user in users:
        role = user.role.strip() or "Unspecified"
        entry = by_role.setdefault(role, RoleAdoption())
        entry.total += 1
        if user.has_any_tool:
            entry.with_tools += 1
    for entry in by_role.values():
        entry.percentage = percentage(entry.with_tools, entry.total, places=1)

    stats = AdoptionStats(
        total_people=total,
        copilot_adoption=copilot,
        cursor_adoption=cursor,
        any_tool_adoption=any_tool,
        copilot_percentage=percentage(copilot, total, places=1),
        cursor_percentage=percentage(cursor, total, places=1),
        any_tool_percentage=percentage(any_tool, total, places=1),
        by_role={role: by_role[role] for role in sorted(by_role, key=str.lower)},
    )
    stats.recommendations = adoption_recommendations(stats)
    return stats


def adoption_recommendations(stats: AdoptionStats) -> List[str]:
    recommendations = []
    if stats.any_tool_percentage < 50:
        recommendations.append(
            "Less than half of the organization has access to an AI coding tool; "
            "consider expanding access."
        )
    if stats.copilot_percentage > stats.cursor_percentage * 2:
        recommendations.append(
            "Cursor adoption is lagging GitHub Copilot; consider a Cursor enablement push."
        )
    if not recommendations:
        recommendations.append("Adoption is balanced across tools; keep monitoring usage.")
    return recommendations


def recent_activity_stats(
    now: datetime,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    seats: Optional[SeatSnapshot] = None,
    activity: Optional[ActivitySnapshot] = None,
) -> RecentActivityStats:
    """Window totals and a daily series for whatever platforms have data."""
    cutoff = compute_cutoff(now, lookback_days)
    stats = RecentActivityStats(lookback_days=lookback_days, cutoff=cutoff)

    if seats is not None:
        classes = classify_seats(seats.seats, cutoff, now)
        stats.copilot_available = True
        stats.copilot_total_seats = len(seats.seats)
        stats.copilot_active_seats = sum(1 for c in classes.values() if c.is_active)

    if activity is not None:
        stats.cursor_available = True
        cutoff_day = cutoff.date()
        records = [r for r in dedupe_records(activity.records) if r.day >= cutoff_day]
        stats.cursor_total_users = len({r.user_id for r in activity.records})
        stats.cursor_active_users = len({r.user_id for r in records if r.is_active})

        daily: Dict[date, DailyActivityPoint] = {}
        daily_users: Dict[date, set] = defaultdict(set)
        for record in records:
            stats.total_requests += record.total_requests
            stats.lines_added += record.lines_added
            stats.accepted_lines_added += record.counters.get("acceptedLinesAdded", 0)
            point = daily.setdefault(record.day, DailyActivityPoint(day=record.day))
            point.requests += record.total_requests
            point.lines_added += record.lines_added
            if record.is_active:
                daily_users[record.day].add(record.user_id)
        for day, point in daily.items():
            point.active_users = len(daily_users[day])
        stats.daily = [daily[day] for day in sorted(daily)]

    return stats
