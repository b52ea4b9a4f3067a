"""
Tests for year range parsing and the rule filter predicates.
"""

import logging
from datetime import datetime

import pytest

from annotation_api.database import Comment, Rule, RuleVote
from annotation_api.errors import ValidationError
from annotation_api.filters import (
    NULL_SENTINEL, build_rule_predicates, matches_all, not_deleted
)
from annotation_api.geometry import casefold, geometries_intersect, lists_overlap, parse_polygon
from annotation_api.models import RuleFilter, YearRange

from tests.helpers import FAR_SQUARE, SQUARE


def _rule(**fields):
    """Transient rule with every filterable field defaulted."""
    defaults = dict(
        taxon_key=1,
        dataset_key="ds-1",
        ruleset_id=None,
        project_id=None,
        annotation="NATIVE",
        basis_of_record=None,
        basis_of_record_negated=False,
        year_range=None,
        geometry=None,
        created_by="alice",
    )
    defaults.update(fields)
    if defaults["year_range"] is not None:
        defaults["year_from"], defaults["year_to"] = YearRange.parse(defaults["year_range"])
    return Rule(**defaults)


def _matches(rule, **filters):
    return matches_all(build_rule_predicates(RuleFilter(**filters)), rule)


class TestYearRange:
    """Tests for parsing and comparing year ranges."""

    @pytest.mark.parametrize("text,expected", [
        ("1000,2025", YearRange(1000, 2025)),
        ("*,1990", YearRange(None, 1990)),
        ("1000,*", YearRange(1000, None)),
        ("*,*", YearRange(None, None)),
        (" 1900 , 2000 ", YearRange(1900, 2000)),
    ])
    def test_parse(self, text, expected):
        assert YearRange.parse(text) == expected

    @pytest.mark.parametrize("text", ["", "2000", "2000,2010,2020", "abc,2000", "2000,", "2010,2000"])
    def test_parse_rejects_malformed(self, text):
        with pytest.raises(ValidationError):
            YearRange.parse(text)

    def test_str_uses_wildcards(self):
        assert str(YearRange(None, 1990)) == "*,1990"
        assert str(YearRange(2000, 2023)) == "2000,2023"

    def test_overlap_is_inclusive(self):
        stored = YearRange(2000, 2023)
        assert stored.overlaps(YearRange(2023, 2030))
        assert stored.overlaps(YearRange(1990, 2000))
        assert not stored.overlaps(YearRange(2024, None))
        assert not stored.overlaps(YearRange(None, 1999))

    def test_unbounded_overlaps_everything(self):
        assert YearRange(None, None).overlaps(YearRange(1, 2))


class TestGeometryHelpers:
    """Tests for WKT parsing and the SQL helper functions."""

    def test_parse_polygon(self):
        assert parse_polygon(SQUARE).geom_type == "Polygon"

    def test_parse_multipolygon(self):
        shape = parse_polygon("MULTIPOLYGON(((0 0, 0 1, 1 1, 0 0)), ((5 5, 5 6, 6 6, 5 5)))")
        assert shape.geom_type == "MultiPolygon"

    @pytest.mark.parametrize("text", ["POLYGON((0 0, 1 1", "not wkt", "POINT(1 2)"])
    def test_parse_rejects(self, text):
        with pytest.raises(ValidationError):
            parse_polygon(text)

    def test_intersection(self):
        assert geometries_intersect(SQUARE, "POLYGON((0.5 0.5, 0.5 2, 2 2, 2 0.5, 0.5 0.5))")
        assert not geometries_intersect(SQUARE, FAR_SQUARE)
        assert not geometries_intersect(None, SQUARE)

    def test_unreadable_stored_geometry_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="annotation_api.geometry"):
            assert not geometries_intersect("POLYGON((garbage", SQUARE)
        assert "Stored geometry is not valid WKT: POLYGON((garbage" in caplog.text

    def test_lists_overlap_accepts_json(self):
        assert lists_overlap('["A", "B"]', ["B"])
        assert not lists_overlap('["A"]', '["C"]')
        assert not lists_overlap(None, ["A"])


class TestPredicates:
    """Tests for the per-field predicate semantics."""

    def test_empty_filter_builds_nothing(self):
        assert build_rule_predicates(RuleFilter()) == []

    def test_one_predicate_per_present_field(self):
        predicates = build_rule_predicates(RuleFilter(
            taxon_key=1, created_by="alice", basis_of_record=["FOSSIL_SPECIMEN"]
        ))
        assert [p.field for p in predicates] == ["taxon_key", "basis_of_record", "created_by"]

    def test_equality_fields(self):
        rule = _rule(taxon_key=5, ruleset_id=7, project_id=3)
        assert _matches(rule, taxon_key=5, ruleset_id=7, project_id=3)
        assert not _matches(rule, taxon_key=6)
        assert not _matches(rule, project_id=4)

    def test_dataset_key_null_sentinel(self):
        assert _matches(_rule(dataset_key=None), dataset_key=NULL_SENTINEL)
        assert not _matches(_rule(dataset_key="ds-1"), dataset_key=NULL_SENTINEL)

    def test_basis_of_record_overlap(self):
        rule = _rule(basis_of_record=["PRESERVED_SPECIMEN", "HUMAN_OBSERVATION"])
        assert _matches(rule, basis_of_record=["HUMAN_OBSERVATION", "FOSSIL_SPECIMEN"])
        assert not _matches(rule, basis_of_record=["MACHINE_OBSERVATION"])

    def test_empty_basis_of_record_disables_filter(self):
        assert build_rule_predicates(RuleFilter(basis_of_record=[])) == []
        assert _matches(_rule(basis_of_record=None), basis_of_record=[])

    def test_null_basis_of_record_never_overlaps(self):
        assert not _matches(_rule(basis_of_record=None), basis_of_record=["FOSSIL_SPECIMEN"])

    def test_negated_flag_is_matched_not_applied(self):
        rule = _rule(
            basis_of_record=["FOSSIL_SPECIMEN", "PRESERVED_SPECIMEN"],
            basis_of_record_negated=True,
        )
        assert _matches(rule, basis_of_record=["FOSSIL_SPECIMEN"], basis_of_record_negated=True)
        assert not _matches(rule, basis_of_record=["FOSSIL_SPECIMEN"], basis_of_record_negated=False)
        # The flag does not turn the overlap into a non-overlap
        assert not _matches(rule, basis_of_record=["HUMAN_OBSERVATION"], basis_of_record_negated=True)

    def test_year_range(self):
        rule = _rule(year_range="2000,2023")
        assert _matches(rule, year_range="2010,*")
        assert _matches(rule, year_range="*,2000")
        assert not _matches(rule, year_range="*,1999")
        assert not _matches(rule, year_range=NULL_SENTINEL)

    def test_open_stored_year_range(self):
        rule = _rule(year_range="*,1990")
        assert _matches(rule, year_range="1000,1500")
        assert not _matches(rule, year_range="1991,*")

    def test_year_range_null_sentinel(self):
        assert _matches(_rule(year_range=None), year_range=NULL_SENTINEL)
        assert not _matches(_rule(year_range=None), year_range="1900,2000")

    def test_malformed_year_range_raises(self):
        with pytest.raises(ValidationError):
            build_rule_predicates(RuleFilter(year_range="nineteen,2000"))

    def test_geometry(self):
        assert _matches(_rule(geometry=SQUARE), geometry="POLYGON((0.5 0.5, 0.5 3, 3 3, 0.5 0.5))")
        assert not _matches(_rule(geometry=SQUARE), geometry=FAR_SQUARE)
        assert not _matches(_rule(geometry=None), geometry=SQUARE)

    def test_unparsable_geometry_raises(self):
        with pytest.raises(ValidationError):
            build_rule_predicates(RuleFilter(geometry="POLYGON((oops))"))

    def test_voting_membership(self):
        rule = _rule()
        rule.votes = [
            RuleVote(username="bob", stance="SUPPORT"),
            RuleVote(username="carol", stance="CONTEST"),
        ]
        assert _matches(rule, supported_by="bob")
        assert not _matches(rule, supported_by="carol")
        assert _matches(rule, contested_by="carol")
        assert not _matches(rule, contested_by="bob")

    def test_comment_is_case_insensitive_and_skips_deleted(self):
        rule = _rule()
        rule.comments = [
            Comment(comment="Clearly an ESCAPED garden plant", created_by="bob"),
            Comment(
                comment="hidden remark",
                created_by="bob",
                deleted=datetime(2024, 1, 1),
                deleted_by="bob",
            ),
        ]
        assert _matches(rule, comment="escaped")
        assert not _matches(rule, comment="hidden")

    def test_comment_folds_non_ascii_case(self):
        rule = _rule()
        rule.comments = [Comment(comment="Seen near ÅLESUND harbour", created_by="bob")]
        assert _matches(rule, comment="ålesund")
        assert casefold("STRASSE") == casefold("straße")

    def test_not_deleted(self):
        predicate = not_deleted()
        assert predicate.matches(_rule())
