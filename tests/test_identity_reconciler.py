"""Tests for roster flattening and cross-namespace identity matching."""

from datetime import date

from models.metrics_models import ActivityRecord, LookupUser, RosterPerson, SeatRecord
from scripts.lib.identity_reconciler import (
    filter_in_scope,
    flatten_roster,
    fuzzy_name_match,
    link_platform_activity,
    match_roster_name,
)
from scripts.lib.name_matching import NameGroupTable

TABLE = NameGroupTable([["robert", "bob", "rob"], ["michael", "mike"]])


def _roster(*names):
    return [RosterPerson(name=n) for n in names]


class TestFlattenRoster:
    def test_counts_every_node(self):
        roots = [RosterPerson(name="Ada Boss", direct_reports=[
            RosterPerson(name="Grace Dev", direct_reports=[RosterPerson(name="Linus T")]),
            RosterPerson(name=""),
        ])]
        index = flatten_roster(roots)
        assert index.total_people == 4
        assert index.names == {"ada boss", "grace dev", "linus t"}

    def test_cycle_is_visited_once(self):
        boss = RosterPerson(name="Ada Boss")
        report = RosterPerson(name="Grace Dev")
        boss.direct_reports.append(report)
        report.direct_reports.append(boss)
        index = flatten_roster([boss])
        assert index.total_people == 2


class TestFuzzyNameMatch:
    def test_nickname_with_same_surname(self):
        assert fuzzy_name_match("Mike Smith", "Michael Smith", TABLE)
        assert fuzzy_name_match("Bob Chen", "Robert Chen", TABLE)

    def test_surname_must_agree(self):
        assert not fuzzy_name_match("Mike Smith", "Michael Jones", TABLE)

    def test_single_token_never_fuzzy(self):
        assert not fuzzy_name_match("Mike", "Michael", TABLE)


class TestMatchRosterName:
    def test_exact_after_normalization(self):
        index = flatten_roster(_roster("José Núñez"))
        assert match_roster_name(LookupUser(name="jose nunez"), index, TABLE) == "jose nunez"

    def test_fuzzy_resolution(self):
        index = flatten_roster(_roster("Michael Jones", "Michael Smith"))
        user = LookupUser(name="Mike Smith")
        assert match_roster_name(user, index, TABLE) == "michael smith"

    def test_out_of_scope(self):
        index = flatten_roster(_roster("Michael Jones"))
        users = [LookupUser(name="Mike Smith"), LookupUser(name="Michael Jones")]
        assert [u.name for u in filter_in_scope(users, index, TABLE)] == ["Michael Jones"]


class TestLinkPlatformActivity:
    def test_links_by_login_and_email(self):
        index = flatten_roster(_roster("Robert Chen", "Ana Ruiz"))
        users = [
            LookupUser(name="Bob Chen", email="Bob@Acme.io", github_login="bchen"),
            LookupUser(name="Ana Ruiz"),
            LookupUser(name="Outsider Person", github_login="out"),
        ]
        seats = [SeatRecord(login="bchen"), SeatRecord(login="out")]
        activity = [ActivityRecord(day=date(2025, 6, 13), email="bob@acme.io")]
        linked = link_platform_activity(users, index, TABLE, seats, activity)

        assert [r.user.name for r in linked] == ["Bob Chen", "Ana Ruiz"]
        bob, ana = linked
        assert bob.roster_name == "robert chen"
        assert bob.seat.login == "bchen"
        assert len(bob.activity) == 1
        assert ana.seat is None and ana.activity == []
