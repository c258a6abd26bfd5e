"""Tests for Markdown/CSV rendering and report file writing."""

from datetime import date, timedelta

from models.metrics_models import (
    ActiveUsersStats,
    MonthlySummaryRow,
    SeatRecord,
    SeatSnapshot,
    UserActivityRow,
)
from scripts.lib.activity_aggregator import compute_cutoff, seat_analysis
from scripts.lib.report_renderer import (
    MONTHLY_HEADER,
    NO_DATA,
    render_active_users_csv,
    render_active_users_markdown,
    render_copilot_activity_markdown,
    render_monthly_csv,
    timestamp_slug,
    timestamped_path,
    write_report_artifacts,
)

from conftest import NOW


def _stats(**overrides):
    values = dict(
        lookback_days=7, cutoff=compute_cutoff(NOW, 7), total_roster_people=4,
        active_in_either=1, active_percentage=25.0, copilot_available=True,
        users=[UserActivityRow(name="Bob, Jr", role="Engineer", has_copilot=True,
                               copilot_status="active", copilot_last_activity=NOW)],
    )
    values.update(overrides)
    return ActiveUsersStats(**values)


class TestActiveUsersMarkdown:
    def test_sections_in_fixed_order(self):
        md = render_active_users_markdown(_stats(), NOW, {"Roster": "roster.json"})
        headings = [line for line in md.splitlines() if line.startswith("#")]
        assert headings == [
            "# Active AI Tool Users Report",
            "## Executive Summary",
            "## Detailed Summary",
            "### GitHub Copilot Activity",
            "### Cursor Activity",
            "### Individual Contributors",
            "## Team Breakdown (GitHub Copilot)",
            "## User Detail",
            "## Analysis Details",
            "## Notes",
        ]
        assert "In total 25.0% of R&D were active users in the last 7 days." in md

    def test_unavailable_platform_shows_placeholder(self):
        md = render_active_users_markdown(_stats(), NOW, {}, ["Cursor data missing"])
        cursor_section = md.split("### Cursor Activity")[1].split("###")[0]
        assert NO_DATA in cursor_section
        assert "⚠️ Cursor data missing" in md


class TestCsv:
    def test_bom_header_and_sanitized_fields(self):
        csv_text = render_active_users_csv(_stats())
        assert csv_text.startswith("\ufeffname,role,email,githubLogin")
        assert csv_text.endswith("\n")
        row = csv_text.splitlines()[1].split(",")
        assert row[0] == "Bob  Jr"
        assert row[4] == "true"

    def test_monthly_header(self):
        rows = [MonthlySummaryRow(user_id="u1", month="2025-06", total_days=2)]
        lines = render_monthly_csv(rows).lstrip("\ufeff").splitlines()
        assert lines[0].split(",") == MONTHLY_HEADER
        assert lines[1].startswith("u1,,2025-06,0,2,0.0000,0.00,")


class TestCopilotMarkdown:
    def test_section_order_and_no_metrics(self):
        snapshot = SeatSnapshot(seats=[
            SeatRecord(login="old", last_activity_at=NOW - timedelta(days=10)),
        ])
        analysis = seat_analysis(snapshot, NOW, 7)
        md = render_copilot_activity_markdown(analysis, None, NOW, "acme", {})
        headings = [line for line in md.splitlines() if line.startswith("## ")]
        assert headings == ["## Report Details", "## Breakdown", "## Copilot Metrics",
                            "## Team Breakdown", "## Inactive Users Detail"]
        assert NO_DATA in md.split("## Copilot Metrics")[1].split("##")[0]
        assert "| old | old | - | 2025-06-04 | 10 | - |" in md


class TestWriting:
    def test_timestamp_slug(self):
        assert timestamp_slug(NOW.replace(microsecond=123456)) == "2025-06-14T12-00-00-123Z"

    def test_canonical_and_timestamped_copies_match(self, tmp_path):
        written = write_report_artifacts(tmp_path, {"report.md": "# Hi\n"}, NOW)
        (canonical, stamped), = written
        assert canonical == tmp_path / "report.md"
        assert stamped == timestamped_path(canonical, NOW)
        assert stamped.name == "report_2025-06-14T12-00-00-000Z.md"
        assert canonical.read_text() == stamped.read_text() == "# Hi\n"

    def test_declined_overwrite_writes_nothing(self, tmp_path):
        (tmp_path / "a.md").write_text("old")
        asked = []

        def decline(path):
            asked.append(path.name)
            return False

        result = write_report_artifacts(tmp_path, {"new.csv": "x", "a.md": "new"}, NOW,
                                        confirm_overwrite=decline)
        assert result is None
        assert asked == ["a.md"]
        assert (tmp_path / "a.md").read_text() == "old"
        assert not (tmp_path / "new.csv").exists()

    def test_skip_confirmation_overwrites(self, tmp_path):
        (tmp_path / "a.md").write_text("old")
        write_report_artifacts(tmp_path, {"a.md": "new"}, NOW,
                               confirm_overwrite=lambda p: False, skip_confirmation=True)
        assert (tmp_path / "a.md").read_text() == "new"
