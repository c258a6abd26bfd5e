"""Tests for name normalization and nickname groups."""

import json

import pytest

from scripts.lib.errors import ConfigError
from scripts.lib.name_matching import (
    NameGroupTable,
    are_variations,
    canonical_form_of,
    load_equivalence_groups,
    normalize,
)


class TestNormalize:
    def test_strips_accents_case_and_whitespace(self):
        assert normalize("  José ") == "jose"
        assert normalize("ÅSA") == "asa"

    def test_empty_and_none(self):
        assert normalize(None) == ""
        assert normalize("") == ""


class TestNameGroupTable:
    def test_group_lookup_is_normalized(self):
        table = NameGroupTable([["Robert", "Bob"]])
        assert table.group_of("BOB") == ("robert", "bob")
        assert table.group_of("alice") is None

    def test_overlapping_groups_rejected(self):
        with pytest.raises(ConfigError):
            NameGroupTable([["robert", "bob"], ["bob", "bobby"]])


class TestAreVariations:
    def setup_method(self):
        self.table = NameGroupTable([["robert", "bob", "rob"], ["william", "bill"]])

    def test_reflexive_and_symmetric(self):
        for a, b in [("Bob", "Robert"), ("rob", "BOB"), ("Bill", "william")]:
            assert are_variations(a, a, self.table)
            assert are_variations(a, b, self.table)
            assert are_variations(b, a, self.table)

    def test_different_groups_do_not_match(self):
        assert not are_variations("bob", "bill", self.table)

    def test_unknown_names_match_only_themselves(self):
        assert are_variations("Zoë", "zoe", self.table)
        assert not are_variations("zoe", "zara", self.table)

    def test_empty_never_matches(self):
        assert not are_variations("", "", self.table)
        assert not are_variations(None, "bob", self.table)

    def test_canonical_form(self):
        assert canonical_form_of("Bob", self.table) == "robert"
        assert canonical_form_of("Zara", self.table) == "Zara"


class TestLoadEquivalenceGroups:
    def test_loads_valid_file(self, tmp_path):
        path = tmp_path / "groups.json"
        path.write_text(json.dumps([["robert", "bob"], ["michael", "mike"]]))
        table = load_equivalence_groups(path)
        assert len(table) == 2
        assert are_variations("mike", "Michael", table)

    def test_missing_file_degrades_to_exact_matching(self, tmp_path):
        table = load_equivalence_groups(tmp_path / "nope.json")
        assert len(table) == 0
        assert not are_variations("bob", "robert", table)

    def test_overlapping_groups_degrade_to_empty_table(self, tmp_path):
        path = tmp_path / "groups.json"
        path.write_text(json.dumps([["robert", "bob"], ["bob", "bobby"]]))
        assert len(load_equivalence_groups(path)) == 0

    @pytest.mark.parametrize("content", ['{"robert": ["bob"]}', "[[1, 2]]", "not json"])
    def test_malformed_file_degrades_to_empty_table(self, tmp_path, content):
        path = tmp_path / "groups.json"
        path.write_text(content)
        assert len(load_equivalence_groups(path)) == 0

    def test_none_source(self):
        assert len(load_equivalence_groups(None)) == 0
