"""End-to-end tests for the report entry points against a temp data tree."""

import os
from datetime import timedelta
from unittest.mock import patch

import pytest

from scripts.generate_reports import (
    default_report_options,
    generate_active_users_report,
    generate_all_reports,
    generate_copilot_activity_report,
    generate_cursor_summaries,
)
from scripts.lib.errors import ConfigError, PartialDataError

from conftest import NOW, write_json, write_seats


class TestActiveUsersReport:
    def test_nickname_user_active_three_days_ago(self, options, data_dir):
        write_seats(data_dir, 3)
        result = generate_active_users_report(options, now=NOW)

        assert result.success
        assert result.stats["total_roster_people"] == 1
        assert result.stats["active_in_either"] == 1
        assert result.stats["active_percentage"] == 100.0
        md = (options.output_directory / "active-users.md").read_text(encoding="utf-8")
        assert "In total 100.0% of R&D were active users in the last 7 days." in md
        assert (options.output_directory / "active-users.csv").exists()
        assert any("Cursor" in w for w in result.warnings)

    def test_user_inactive_ten_days_ago(self, options, data_dir):
        write_seats(data_dir, 10)
        result = generate_active_users_report(options, now=NOW)
        assert result.stats["active_percentage"] == 0.0

        copilot = generate_copilot_activity_report(options, now=NOW)
        csv_lines = (options.output_directory / "github-copilot-activity.csv") \
            .read_text(encoding="utf-8").splitlines()
        row = csv_lines[1].split(",")
        assert row[:4] == ["bchen", "Bob Chen", "", "inactive"]
        assert row[5] == "10"
        assert copilot.stats["seats"]["inactive_count"] == 1

    def test_stale_snapshot_still_reports_with_warning(self, options, data_dir):
        path = write_seats(data_dir, 3)
        stale = (NOW - timedelta(days=30)).timestamp()
        os.utime(path, (stale, stale))

        result = generate_active_users_report(options, now=NOW)
        assert result.success
        assert any("stale (30.0 days old)" in w for w in result.warnings)
        md = (options.output_directory / "active-users.md").read_text(encoding="utf-8")
        assert "stale (30.0 days old)" in md

    def test_missing_roster_is_a_config_error(self, options, tmp_path):
        options = options.model_copy(update={"roster_path": tmp_path / "missing.json"})
        with pytest.raises(ConfigError) as exc:
            generate_active_users_report(options, now=NOW)
        assert "ORG_DATA_PATH" in exc.value.hint

    def test_declined_overwrite_returns_cancelled(self, options, data_dir):
        write_seats(data_dir, 3)
        out = options.output_directory
        out.mkdir()
        (out / "active-users.md").write_text("previous")
        options = options.model_copy(update={"skip_confirmation": False})

        result = generate_active_users_report(options, now=NOW,
                                              confirm_overwrite=lambda path: False)
        assert result.cancelled
        assert not result.success
        assert (out / "active-users.md").read_text() == "previous"
        assert not (out / "active-users.csv").exists()


class TestCopilotActivityReport:
    def test_requires_seat_snapshot(self, options):
        with pytest.raises(PartialDataError):
            generate_copilot_activity_report(options, now=NOW)

    def test_includes_acceptance_metrics(self, options, data_dir):
        write_seats(data_dir, 1)
        write_json(
            data_dir / "github/metrics/2025/06/14/copilot-metrics_acme_2025-06-07_to_2025-06-14.json",
            {"meta": {"since": "2025-06-07", "until": "2025-06-14"}, "data": [{
                "date": "2025-06-13",
                "copilot_ide_code_completions": {"editors": [{"models": [{"languages": [{
                    "total_code_suggestions": 100, "total_code_acceptances": 40,
                }]}]}]},
            }]},
        )
        result = generate_copilot_activity_report(options, now=NOW)
        assert result.stats["acceptance"]["acceptance_rate"] == 40.0
        md = (options.output_directory / "github-copilot-activity.md").read_text(encoding="utf-8")
        assert "**Acceptance rate:** 40.00%" in md


class TestCursorSummaries:
    def _monthly(self, data_dir, name, rows, folder="cursor/2025/06"):
        write_json(data_dir / folder / name, {"data": rows})

    def test_window_comes_from_latest_monthly_file(self, options, data_dir):
        self._monthly(data_dir, "monthly_activity_2025-06-01_2025-06-14.json", [
            {"date": "2025-06-02", "userId": "u1", "email": "a@acme.io", "isActive": True},
            {"date": "2025-06-11", "userId": "u1", "email": "a@acme.io", "isActive": False},
        ])
        write_json(data_dir / "cursor/2025/06/14/weekly-report_2025-06-07_2025-06-14.json", {
            "data": [{"date": "2025-06-12", "userId": "u9", "isActive": True}],
        })
        result = generate_cursor_summaries(options, now=NOW)
        assert result.stats["window_start"] == "2025-06-02"
        assert result.stats["window_days"] == 10
        assert result.stats["monthly_rows"] == 1
        window = (options.output_directory / "cursor_window_usage.csv").read_text(encoding="utf-8")
        assert window.splitlines()[1].startswith("u1,a@acme.io,2025-06-02,2025-06-11,10,2,1,")

    def test_window_falls_back_to_weekly_without_monthly(self, options, data_dir):
        write_json(data_dir / "cursor/2025/06/14/weekly-report_2025-06-07_2025-06-14.json", {
            "data": [
                {"date": "2025-06-10", "userId": "u1", "email": "a@acme.io", "isActive": True},
                {"date": "2025-06-12", "userId": "u1", "email": "a@acme.io", "isActive": False},
            ],
        })
        result = generate_cursor_summaries(options, now=NOW)
        assert result.stats["window_days"] == 3
        assert result.stats["monthly_rows"] == 0

    def test_legacy_monthly_files_are_summarized(self, options, data_dir):
        self._monthly(data_dir, "monthly-activity_2025-05-01_2025-05-31.json", [
            {"date": "2025-05-20", "userId": "u1", "isActive": True, "totalLinesAdded": 8},
        ], folder="cursor/monthly-activity")
        result = generate_cursor_summaries(options, now=NOW)
        assert result.stats["monthly_rows"] == 1
        summary = (options.output_directory / "cursor_monthly_activity_summary.csv"
                   ).read_text(encoding="utf-8")
        assert summary.splitlines()[1].startswith("u1,,2025-05,1,1,1.0000,8.00,8,")

    def test_overlapping_monthly_files_accumulate(self, options, data_dir):
        self._monthly(data_dir, "monthly_activity_2025-06-01_2025-06-07.json", [
            {"date": "2025-06-03", "userId": "u1", "isActive": False, "totalLinesAdded": 1},
            {"date": "2025-06-05", "userId": "u1", "isActive": True, "totalLinesAdded": 4},
        ])
        self._monthly(data_dir, "monthly_activity_2025-06-01_2025-06-14.json", [
            {"date": "2025-06-03", "userId": "u1", "isActive": True, "totalLinesAdded": 6},
            {"date": "2025-06-10", "userId": "u1", "isActive": True, "totalLinesAdded": 10},
        ])
        generate_cursor_summaries(options, now=NOW)
        summary = (options.output_directory / "cursor_monthly_activity_summary.csv"
                   ).read_text(encoding="utf-8")
        lines = summary.lstrip("\ufeff").splitlines()
        assert len(lines) == 2
        assert lines[1].startswith("u1,,2025-06,3,3,1.0000,6.67,20,")

    def test_raw_activity_and_member_exports(self, options, data_dir):
        write_json(data_dir / "cursor/2025/06/13/daily_activity_2025-06-13.json", {
            "data": [{"date": 1749772800000, "userId": "u1", "email": "a@acme.io",
                      "isActive": True, "zeta": "x", "mostUsedModel": "gpt, large"}],
        })
        write_json(data_dir / "cursor/team-members.json", {
            "teamMembers": [{"name": "Ann", "email": "a@acme.io", "role": "member"}],
        })
        result = generate_cursor_summaries(options, now=NOW)
        assert result.stats["exports"] == ["cursor_daily_activity.csv", "cursor_team_members.csv"]

        daily = (options.output_directory / "cursor_daily_activity.csv").read_text(encoding="utf-8")
        header, row = daily.lstrip("\ufeff").splitlines()
        columns = header.split(",")
        assert columns[:4] == ["date", "userId", "email", "isActive"]
        assert columns[-1] == "zeta"
        values = dict(zip(columns, row.split(",")))
        assert values["date"] == "2025-06-13"
        assert values["mostUsedModel"] == "gpt  large"

        members = (options.output_directory / "cursor_team_members.csv").read_text(encoding="utf-8")
        assert members.lstrip("\ufeff").splitlines() == [
            "id,name,email,role", ",Ann,a@acme.io,member",
        ]

    def test_no_cursor_data(self, options):
        with pytest.raises(PartialDataError):
            generate_cursor_summaries(options, now=NOW)


class TestGenerateAll:
    def test_partial_platform_data(self, options, data_dir):
        write_seats(data_dir, 2)
        results = generate_all_reports(options, now=NOW)
        assert results["active-users"].success
        assert results["ai-tooling"].success
        assert results["copilot-activity"].success
        assert results["recent-activity"].success
        assert not results["cursor-summaries"].success
        assert (options.output_directory / "ai-tooling-adoption.md").exists()


class TestDefaultOptions:
    def test_environment_and_overrides(self, tmp_path):
        with patch.dict("os.environ", {
            "LOOKBACK_DAYS": "14", "DATA_DIR": str(tmp_path), "GH_ORG": "acme", "ORG": "",
        }, clear=False):
            options = default_report_options(output_directory=tmp_path / "out", org=None)
        assert options.lookback_days == 14
        assert options.data_directory == tmp_path
        assert options.output_directory == tmp_path / "out"
        assert options.org == "acme"
