"""Tests for activity classification and aggregate statistics."""

from datetime import date, datetime, timedelta, timezone

import pytest

from models.metrics_models import (
    ActivityRecord,
    ActivitySnapshot,
    AssigningTeam,
    LookupUser,
    MetricsSnapshot,
    SeatRecord,
    SeatSnapshot,
)
from scripts.lib.activity_aggregator import (
    acceptance_metrics,
    active_users_stats,
    adoption_stats,
    classify_activity,
    classify_seat,
    compute_cutoff,
    fixed_ratio,
    is_individual_contributor,
    monthly_summary,
    percentage,
    recent_activity_stats,
    seat_analysis,
    window_summary,
)
from scripts.lib.identity_reconciler import ReconciledUser

from conftest import NOW


def _record(day, user_id="u1", email="u1@acme.io", active=True, **counters):
    record = ActivityRecord(day=day, user_id=user_id, email=email, is_active=active)
    record.counters.update(counters)
    return record


def _completions(suggested, accepted, lines_suggested=0, lines_accepted=0):
    return {"editors": [{"name": "vscode", "models": [{"languages": [{
        "name": "python",
        "total_code_suggestions": suggested,
        "total_code_acceptances": accepted,
        "total_code_lines_suggested": lines_suggested,
        "total_code_lines_accepted": lines_accepted,
    }]}]}]}


class TestRounding:
    @pytest.mark.parametrize("part,whole,places,expected", [
        (1, 200, 0, 1),
        (5, 8, 0, 63),
        (1, 8, 1, 12.5),
        (2, 3, 1, 66.7),
        (1, 3, 0, 33),
        (7, 0, 1, 0.0),
    ])
    def test_percentage_rounds_half_up(self, part, whole, places, expected):
        assert percentage(part, whole, places) == expected

    def test_integer_percentage_type(self):
        assert isinstance(percentage(1, 3), int)

    def test_fixed_ratio(self):
        assert fixed_ratio(3, 7) == "0.4286"
        assert fixed_ratio(5, 0) == "0.0000"
        assert fixed_ratio(45, 2, places=2) == "22.50"


class TestClassification:
    def test_cutoff_snaps_to_midnight(self):
        assert compute_cutoff(NOW, 7) == datetime(2025, 6, 7, tzinfo=timezone.utc)

    def test_activity_at_cutoff_counts(self):
        cutoff = compute_cutoff(NOW, 7)
        assert classify_seat(SeatRecord(login="a", last_activity_at=cutoff), cutoff, NOW).is_active
        before = cutoff - timedelta(seconds=1)
        assert not classify_seat(SeatRecord(login="a", last_activity_at=before),
                                 cutoff, NOW).is_active

    def test_never_active_seat(self):
        c = classify_seat(SeatRecord(login="a"), compute_cutoff(NOW, 7), NOW)
        assert not c.is_active
        assert c.days_since_last_activity is None

    def test_days_since_is_floored(self):
        seat = SeatRecord(login="a", last_activity_at=NOW - timedelta(days=10, hours=5))
        c = classify_seat(seat, compute_cutoff(NOW, 7), NOW)
        assert c.days_since_last_activity == 10

    def test_cursor_needs_an_active_row_in_window(self):
        cutoff = compute_cutoff(NOW, 7)
        records = [
            _record(date(2025, 6, 1), email="Old@acme.io"),
            _record(date(2025, 6, 12), email="idle@acme.io", active=False),
            _record(date(2025, 6, 9), email="busy@acme.io"),
            _record(date(2025, 6, 13), email="busy@acme.io"),
        ]
        classes = classify_activity(records, cutoff, NOW)
        assert not classes["old@acme.io"].is_active
        assert not classes["idle@acme.io"].is_active
        assert classes["busy@acme.io"].is_active
        assert classes["busy@acme.io"].last_activity_at == datetime(2025, 6, 13,
                                                                    tzinfo=timezone.utc)


class TestSeatAnalysis:
    def test_teams_and_split(self):
        platform = AssigningTeam(slug="platform", name="Platform")
        snapshot = SeatSnapshot(seats=[
            SeatRecord(login="a", last_activity_at=NOW - timedelta(days=1), assigning_team=platform),
            SeatRecord(login="b", last_activity_at=NOW - timedelta(days=20), assigning_team=platform),
            SeatRecord(login="c"),
        ])
        analysis = seat_analysis(snapshot, NOW, 7, [LookupUser(name="Ann", github_login="a")])
        assert analysis.total_seats == 3
        assert analysis.active_count == 1
        assert analysis.active_percentage == 33
        assert [s.login for s in analysis.inactive] == ["b", "c"]
        team = analysis.teams[0]
        assert (team.total, team.active, team.inactive, team.percentage) == (2, 1, 1, 50)
        assert team.active_members == ["Ann"]


class TestAcceptanceMetrics:
    def test_sums_nested_counters(self):
        snapshot = MetricsSnapshot(meta={"since": "2025-06-01", "until": "2025-06-14"}, days=[
            {"date": "2025-06-12", "copilot_ide_code_completions": _completions(60, 30, 40, 10)},
            {"date": "2025-06-13", "copilot_ide_code_completions": _completions(40, 10, 10, 10)},
        ])
        stats = acceptance_metrics(snapshot)
        assert stats.total_code_suggestions == 100
        assert stats.total_code_acceptances == 40
        assert stats.acceptance_rate == 40.0
        assert stats.line_acceptance_rate == 40.0
        assert (stats.period_start, stats.period_end, stats.days_covered) == \
            ("2025-06-01", "2025-06-14", 2)

    def test_zero_denominator_is_zero(self):
        snapshot = MetricsSnapshot(days=[
            {"date": "2025-06-13", "copilot_ide_code_completions": _completions(0, 0)},
        ])
        stats = acceptance_metrics(snapshot)
        assert stats.acceptance_rate == 0.0
        assert stats.line_acceptance_rate == 0.0
        assert stats.period_start == "2025-06-13"

    def test_missing_and_garbage_counters(self):
        snapshot = MetricsSnapshot(days=[
            {"date": "2025-06-13"},
            {"date": "2025-06-14", "copilot_ide_code_completions": _completions("x", -5)},
        ])
        stats = acceptance_metrics(snapshot)
        assert stats.total_code_suggestions == 0
        assert stats.acceptance_rate == 0.0


class TestCursorSummaries:
    def test_window_is_derived_from_observed_days(self):
        records = [
            _record(date(2025, 6, 8), totalLinesAdded=5),
            _record(date(2025, 6, 8), totalLinesAdded=10),
            _record(date(2025, 6, 10), active=False),
            _record(date(2025, 6, 9), user_id="u2", email="u2@acme.io"),
        ]
        summary = window_summary(records)
        assert (summary.window_start, summary.window_end) == (date(2025, 6, 8), date(2025, 6, 10))
        assert summary.window_days == 3
        u1 = summary.rows[0]
        assert u1.user_id == "u1"
        assert (u1.present_days, u1.days_active) == (2, 1)
        assert u1.presence_rate == "0.6667"
        assert u1.active_rate == "0.3333"
        assert u1.counters["totalLinesAdded"] == 10
        assert u1.avg_lines_added_per_active_day == "10.00"

    def test_empty_window(self):
        summary = window_summary([])
        assert summary.window_start is None
        assert summary.rows == []

    def test_monthly_buckets_by_calendar_month(self):
        records = [
            _record(date(2025, 5, 30), chatRequests=2),
            _record(date(2025, 6, 2), chatRequests=1),
            _record(date(2025, 6, 3), active=False),
        ]
        rows = monthly_summary(records)
        assert [(r.month, r.total_days, r.days_active) for r in rows] == \
            [("2025-05", 1, 1), ("2025-06", 2, 1)]
        assert rows[1].active_rate == "0.5000"
        assert rows[0].counters["chatRequests"] == 2

    def test_monthly_average_lines_per_active_day(self):
        records = [
            _record(date(2025, 6, 2), totalLinesAdded=30),
            _record(date(2025, 6, 3), totalLinesAdded=15),
            _record(date(2025, 6, 4), active=False, totalLinesAdded=5),
            _record(date(2025, 6, 4), user_id="u2", email="u2@acme.io", active=False,
                    totalLinesAdded=9),
        ]
        u1, u2 = monthly_summary(records)
        assert u1.avg_lines_added_per_active_day == "25.00"
        assert u2.days_active == 0
        assert u2.avg_lines_added_per_active_day == "0.00"

    def test_overlapping_monthly_files_count_each_day_once(self):
        earlier_file = [
            _record(date(2025, 6, 1), totalLinesAdded=10),
            _record(date(2025, 6, 2), active=False, totalLinesAdded=1),
        ]
        later_file = [
            _record(date(2025, 6, 2), totalLinesAdded=20),
            _record(date(2025, 6, 3), totalLinesAdded=30),
        ]
        (row,) = monthly_summary(earlier_file + later_file)
        assert (row.total_days, row.days_active) == (3, 3)
        assert row.counters["totalLinesAdded"] == 60
        assert row.active_rate == "1.0000"


class TestCrossPlatformStats:
    def _reconciled(self):
        return [
            ReconciledUser(user=LookupUser(name="Bob Chen", email="bob@acme.io",
                                           github_login="bchen", role="Engineer",
                                           has_copilot=True, has_cursor=True)),
            ReconciledUser(user=LookupUser(name="Dee Lead", email="dee@acme.io",
                                           github_login="dlead", role="Engineering Manager",
                                           has_copilot=True)),
            ReconciledUser(user=LookupUser(name="No Tools", role="Engineer")),
        ]

    def test_statuses_and_percentages(self):
        seats = SeatSnapshot(seats=[
            SeatRecord(login="bchen", last_activity_at=NOW - timedelta(days=30)),
        ])
        activity = ActivitySnapshot(records=[_record(date(2025, 6, 12), email="BOB@acme.io")])
        stats = active_users_stats(self._reconciled(), 4, NOW, 7, seats, activity)

        rows = {r.name: r for r in stats.users}
        assert rows["Bob Chen"].copilot_status == "inactive"
        assert rows["Bob Chen"].cursor_status == "active"
        assert rows["Dee Lead"].copilot_status == "no seat"
        assert rows["Dee Lead"].cursor_status == "no access"
        assert stats.active_in_either == 1
        assert stats.active_percentage == 25.0
        assert stats.users_without_tools == 1
        assert stats.individual_contributors == 2
        assert stats.individual_contributors_percentage == 50.0

    def test_missing_platform_reports_no_data(self):
        stats = active_users_stats(self._reconciled(), 3, NOW, 7, None, None)
        assert not stats.copilot_available and not stats.cursor_available
        assert {r.copilot_status for r in stats.users if r.has_copilot} == {"no data"}
        assert stats.active_in_either == 0
        assert stats.active_percentage == 0.0

    def test_same_inputs_same_numbers(self):
        seats = SeatSnapshot(seats=[SeatRecord(login="bchen", last_activity_at=NOW)])
        first = active_users_stats(self._reconciled(), 3, NOW, 7, seats, None)
        second = active_users_stats(self._reconciled(), 3, NOW, 7, seats, None)
        assert first.model_dump() == second.model_dump()

    def test_individual_contributor_roles(self):
        assert is_individual_contributor("Senior Engineer")
        assert not is_individual_contributor("VP Engineering")
        assert not is_individual_contributor("Director of Platform")
        assert not is_individual_contributor("Engineering Managers")
        assert is_individual_contributor("Directory Services Engineer")
        assert is_individual_contributor("")

    def test_adoption_by_role(self):
        users = [r.user for r in self._reconciled()]
        stats = adoption_stats(users)
        assert stats.total_people == 3
        assert stats.any_tool_adoption == 2
        assert stats.any_tool_percentage == 66.7
        assert stats.by_role["Engineer"].total == 2
        assert stats.by_role["Engineer"].percentage == 50.0
        assert stats.recommendations

    def test_recent_activity_series(self):
        activity = ActivitySnapshot(records=[
            _record(date(2025, 6, 12), chatRequests=2, composerRequests=1, totalLinesAdded=7),
            _record(date(2025, 6, 12), user_id="u2", email="u2@acme.io", active=False),
            _record(date(2025, 5, 1), user_id="u3", email="u3@acme.io"),
        ])
        stats = recent_activity_stats(NOW, 7, None, activity)
        assert stats.cursor_total_users == 3
        assert stats.cursor_active_users == 1
        assert stats.total_requests == 3
        assert len(stats.daily) == 1
        assert stats.daily[0].active_users == 1
