"""
AI Metrics Hub — Snapshot & Report Models
============================================

Typed records for everything read from disk (roster, user lookup, seat,
metrics and activity snapshots) and everything derived from them. Loaders
apply defaults at the boundary so downstream code never re-checks optionality.
"""
from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# Cursor per-user daily counters, in CSV column order.
NUMERIC_FIELDS = (
    "totalLinesAdded",
    "totalLinesDeleted",
    "acceptedLinesAdded",
    "acceptedLinesDeleted",
    "totalApplies",
    "totalAccepts",
    "totalRejects",
    "totalTabsShown",
    "totalTabsAccepted",
    "composerRequests",
    "chatRequests",
    "agentRequests",
    "cmdkUsages",
    "subscriptionIncludedReqs",
    "apiKeyReqs",
    "usageBasedReqs",
    "bugbotUsages",
)


def zero_counters() -> Dict[str, int]:
    return {field: 0 for field in NUMERIC_FIELDS}


# ─── Inputs ─────────────────────────────────────────────────

class RosterPerson(BaseModel):
    name: str = ""
    username: Optional[str] = None
    title: Optional[str] = None
    direct_reports: List[RosterPerson] = Field(default_factory=list)


class LookupUser(BaseModel):
    name: str
    email: str = ""
    github_login: str = ""
    role: str = ""
    has_copilot: bool = False
    has_cursor: bool = False

    @property
    def has_any_tool(self) -> bool:
        return self.has_copilot or self.has_cursor


class AssigningTeam(BaseModel):
    slug: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None


class SeatRecord(BaseModel):
    login: str
    last_activity_at: Optional[datetime] = None
    last_activity_editor: Optional[str] = None
    enriched_name: Optional[str] = None
    assigning_team: Optional[AssigningTeam] = None


class SeatSnapshot(BaseModel):
    meta: Dict[str, Any] = Field(default_factory=dict)
    seats: List[SeatRecord] = Field(default_factory=list)
    source: Optional[str] = None


class ActivityRecord(BaseModel):
    day: date
    user_id: str = "UNKNOWN"
    email: str = ""
    is_active: bool = False
    counters: Dict[str, int] = Field(default_factory=zero_counters)

    @property
    def lines_added(self) -> int:
        return self.counters.get("totalLinesAdded", 0)

    @property
    def total_requests(self) -> int:
        return self.counters.get("composerRequests", 0) + self.counters.get("chatRequests", 0)


class ActivitySnapshot(BaseModel):
    meta: Dict[str, Any] = Field(default_factory=dict)
    records: List[ActivityRecord] = Field(default_factory=list)
    source: Optional[str] = None


class MetricsSnapshot(BaseModel):
    meta: Dict[str, Any] = Field(default_factory=dict)
    days: List[Dict[str, Any]] = Field(default_factory=list)
    source: Optional[str] = None


class FreshnessWarning(BaseModel):
    path: str
    age_days: float
    max_age_days: int
    message: str


# ─── Derived ────────────────────────────────────────────────

class ActivityClassification(BaseModel):
    is_active: bool = False
    days_since_last_activity: Optional[int] = None
    last_activity_at: Optional[datetime] = None


class TeamRollup(BaseModel):
    slug: str
    name: str = ""
    description: str = ""
    total: int = 0
    active: int = 0
    inactive: int = 0
    percentage: int = 0
    active_members: List[str] = Field(default_factory=list)
    inactive_members: List[str] = Field(default_factory=list)


class AcceptanceStats(BaseModel):
    total_code_suggestions: int = 0
    total_code_acceptances: int = 0
    total_code_lines_suggested: int = 0
    total_code_lines_accepted: int = 0
    acceptance_rate: float = 0.0
    line_acceptance_rate: float = 0.0
    period_start: Optional[str] = None
    period_end: Optional[str] = None
    days_covered: int = 0


class SeatActivity(BaseModel):
    login: str
    display_name: str
    team: Optional[str] = None
    is_active: bool = False
    last_activity_at: Optional[datetime] = None
    days_since_last_activity: Optional[int] = None
    last_activity_editor: Optional[str] = None


class SeatAnalysis(BaseModel):
    lookback_days: int
    cutoff: datetime
    total_seats: int = 0
    active_count: int = 0
    inactive_count: int = 0
    active_percentage: int = 0
    active: List[SeatActivity] = Field(default_factory=list)
    inactive: List[SeatActivity] = Field(default_factory=list)
    teams: List[TeamRollup] = Field(default_factory=list)


class WindowUserRow(BaseModel):
    user_id: str
    email: str = ""
    present_days: int = 0
    days_active: int = 0
    presence_rate: str = "0.0000"
    active_rate: str = "0.0000"
    avg_lines_added_per_active_day: str = "0.00"
    counters: Dict[str, int] = Field(default_factory=zero_counters)


class WindowSummary(BaseModel):
    window_start: Optional[date] = None
    window_end: Optional[date] = None
    window_days: int = 0
    rows: List[WindowUserRow] = Field(default_factory=list)


class MonthlySummaryRow(BaseModel):
    user_id: str
    email: str = ""
    month: str
    total_days: int = 0
    days_active: int = 0
    active_rate: str = "0.0000"
    avg_lines_added_per_active_day: str = "0.00"
    counters: Dict[str, int] = Field(default_factory=zero_counters)


class UserActivityRow(BaseModel):
    name: str
    role: str = ""
    email: str = ""
    github_login: str = ""
    has_copilot: bool = False
    has_cursor: bool = False
    copilot_status: str = "no access"
    cursor_status: str = "no access"
    copilot_last_activity: Optional[datetime] = None
    cursor_last_activity: Optional[datetime] = None
    active_in_either: bool = False
    is_individual_contributor: bool = True


class ActiveUsersStats(BaseModel):
    lookback_days: int
    cutoff: datetime
    total_roster_people: int = 0
    users_in_lookup: int = 0
    users_with_tools: int = 0
    users_without_tools: int = 0
    active_in_either: int = 0
    active_percentage: float = 0.0
    copilot_users: int = 0
    cursor_users: int = 0
    active_copilot_users: int = 0
    active_cursor_users: int = 0
    copilot_available: bool = False
    cursor_available: bool = False
    individual_contributors: int = 0
    individual_contributors_active: int = 0
    individual_contributors_percentage: float = 0.0
    teams: List[TeamRollup] = Field(default_factory=list)
    users: List[UserActivityRow] = Field(default_factory=list)


class RoleAdoption(BaseModel):
    total: int = 0
    with_tools: int = 0
    percentage: float = 0.0


class AdoptionStats(BaseModel):
    total_people: int = 0
    copilot_adoption: int = 0
    cursor_adoption: int = 0
    any_tool_adoption: int = 0
    copilot_percentage: float = 0.0
    cursor_percentage: float = 0.0
    any_tool_percentage: float = 0.0
    by_role: Dict[str, RoleAdoption] = Field(default_factory=dict)
    recommendations: List[str] = Field(default_factory=list)


class DailyActivityPoint(BaseModel):
    day: date
    active_users: int = 0
    requests: int = 0
    lines_added: int = 0


class RecentActivityStats(BaseModel):
    lookback_days: int
    cutoff: datetime
    copilot_available: bool = False
    copilot_total_seats: int = 0
    copilot_active_seats: int = 0
    cursor_available: bool = False
    cursor_total_users: int = 0
    cursor_active_users: int = 0
    total_requests: int = 0
    lines_added: int = 0
    accepted_lines_added: int = 0
    daily: List[DailyActivityPoint] = Field(default_factory=list)


# ─── Report I/O ─────────────────────────────────────────────

class ReportOptions(BaseModel):
    lookback_days: int = Field(7, ge=1)
    data_directory: Path = Path("data")
    output_directory: Path = Path("reports")
    roster_path: Optional[Path] = None
    lookup_path: Optional[Path] = None
    name_groups_path: Optional[Path] = None
    org: Optional[str] = None
    skip_confirmation: bool = False
    stale_after_days: int = 7


class ReportResult(BaseModel):
    success: bool = True
    cancelled: bool = False
    output_path: Optional[str] = None
    timestamped_path: Optional[str] = None
    extra_paths: List[str] = Field(default_factory=list)
    stats: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def cancelled_result(cls) -> ReportResult:
        return cls(success=False, cancelled=True)


RosterPerson.model_rebuild()
