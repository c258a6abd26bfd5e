"""Shared fixtures: a fixed clock and helpers that lay out a data directory."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from models.metrics_models import ReportOptions

NOW = datetime(2025, 6, 14, 12, 0, tzinfo=timezone.utc)
ORG = "acme"


def write_json(path: Path, payload) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def seat(login, last_activity_at=None, team=None, name=None, editor="vscode"):
    entry = {
        "assignee": {"login": login},
        "last_activity_at": last_activity_at,
        "last_activity_editor": editor,
    }
    if name:
        entry["assignee"]["enriched_name"] = name
    if team:
        entry["assigning_team"] = {"slug": team, "name": team.title(), "description": ""}
    return entry


def iso_days_ago(days: float) -> str:
    return (NOW - timedelta(days=days)).isoformat()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def name_groups(tmp_path):
    return write_json(tmp_path / "name-groups.json",
                      [["robert", "bob", "rob"], ["michael", "mike"]])


@pytest.fixture
def roster_file(tmp_path):
    return write_json(tmp_path / "direct-reports.json", {
        "organization": [
            {"name": "Robert Chen", "title": "Engineer", "directReports": []},
        ],
    })


@pytest.fixture
def lookup_file(tmp_path):
    path = tmp_path / "user-lookup-table.csv"
    path.write_text(
        "\ufeffname,email,githubLogin,role,hasCopilot,hasCursor\n"
        "Bob Chen,bob@acme.io,bchen,Engineer,true,false\n",
        encoding="utf-8",
    )
    return path


def seats_path(data_dir: Path) -> Path:
    return (data_dir / "github" / "2025" / "06" / "14"
            / f"copilot-seats_{ORG}_2025-06-07_to_2025-06-14.json")


@pytest.fixture
def options(tmp_path, data_dir, roster_file, lookup_file, name_groups):
    return ReportOptions(
        data_directory=data_dir,
        output_directory=tmp_path / "reports",
        roster_path=roster_file,
        lookup_path=lookup_file,
        name_groups_path=name_groups,
        org=ORG,
        skip_confirmation=True,
    )


def write_seats(data_dir: Path, days_ago: float, login: str = "bchen") -> Path:
    return write_json(seats_path(data_dir), {
        "meta": {"org": ORG},
        "seats": [seat(login, iso_days_ago(days_ago))],
    })
