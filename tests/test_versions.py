"""Tests for tolerant version parsing and comparison."""

from __future__ import annotations

import pytest

from site_upgrade.versions import (
    NAMING_THRESHOLD,
    Relation,
    compare,
    equivalent,
    less_recent_than,
    more_recent_than,
    parse_version,
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseVersion:
    def test_full_version(self):
        v = parse_version("0.4.2")
        assert v.core == (0, 4, 2)
        assert v.qualifier == ""
        assert not v.undefined

    def test_leading_v_and_missing_patch(self):
        assert parse_version("v1.2").core == (1, 2, 0)

    def test_qualifier_kept_apart(self):
        v = parse_version("0.6.0-rc1")
        assert v.core == (0, 6, 0)
        assert v.qualifier == "-rc1"

    def test_git_describe_output(self):
        v = parse_version("0.5.3-4-g1a2b3c4")
        assert v.core == (0, 5, 3)
        assert v.qualifier == "-4-g1a2b3c4"

    def test_local_build_label(self):
        v = parse_version("0.6.0+build.7")
        assert v.core == (0, 6, 0)
        assert v.qualifier == "+build.7"

    def test_single_component_padded(self):
        assert parse_version("2").core == (2, 0, 0)

    def test_non_canonical_spelling_normalised(self):
        v = parse_version("0.06.0rc1")
        assert v.core == (0, 6, 0)
        assert v.qualifier == "rc1"

    @pytest.mark.parametrize("token", ["", "   ", "latest", "0.0.0"])
    def test_undefined_tokens(self, token):
        assert parse_version(token).undefined


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------


class TestCompare:
    @pytest.mark.parametrize(
        "a,b,expected",
        [
            ("0.4.2", "0.6.0", Relation.LESS),
            ("0.6.0", "0.4.2", Relation.MORE),
            ("0.6.0", "0.6.0", Relation.EQUAL),
            ("0.6.0", "0.6.0-rc1", Relation.EQUIVALENT),
            ("0.6.0-rc1", "0.6.0", Relation.EQUIVALENT),
            ("1.0.0", "0.10.0", Relation.MORE),
            ("0.10.0", "0.9.9", Relation.MORE),
            ("v0.6.0", "0.6.0", Relation.EQUIVALENT),
            ("0.6.0+build.7", "0.6.0", Relation.EQUIVALENT),
            ("0.5.3-4-g1a2b3c4", "0.5.3", Relation.EQUIVALENT),
        ],
    )
    def test_relations(self, a, b, expected):
        assert compare(a, b) is expected

    def test_undefined_is_equivalent_to_anything(self):
        assert compare("", "0.6.0") is Relation.EQUIVALENT
        assert compare("0.6.0", "garbage") is Relation.EQUIVALENT

    def test_surrounding_whitespace_ignored(self):
        assert compare(" 0.6.0 ", "0.6.0") is Relation.EQUAL

    def test_predicates(self):
        assert less_recent_than("0.4.2", NAMING_THRESHOLD)
        assert not less_recent_than("0.5.0", NAMING_THRESHOLD)
        assert more_recent_than("0.6.0", "0.5.3-4-g1a2b3c4")
        assert equivalent("0.6.0", "0.6.0-rc1")
        assert not equivalent("0.6.0", "0.6.0")

    def test_relations_are_antisymmetric(self):
        pairs = [("0.4.2", "0.6.0"), ("0.5.0", "0.5.1"), ("1.2", "1.10")]
        for a, b in pairs:
            assert less_recent_than(a, b)
            assert more_recent_than(b, a)
