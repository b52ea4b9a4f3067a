"""
Rule filter predicates.

Each present filter field becomes one ``Predicate``: the field it tests,
a SQLAlchemy clause for the store, and an in-memory test with the same
semantics. Predicates combine with AND; a field that is absent adds no
predicate and so never narrows a result.
"""

import json
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List

from sqlalchemy import and_, func, or_, true
from sqlalchemy.sql.elements import ColumnElement

from annotation_api.database import Comment, Rule, RuleVote
from annotation_api.geometry import (
    SQL_CASEFOLD, SQL_INTERSECTS, SQL_OVERLAPS, casefold, geometries_intersect, lists_overlap,
    parse_polygon,
)
from annotation_api.models import RuleFilter, VoteStance, YearRange


logger = logging.getLogger(__name__)

# Query value meaning "the rule has no value for this field"
NULL_SENTINEL = "null"


@dataclass(frozen=True)
class Predicate:
    """A single filter condition on rules."""

    field: str
    clause: ColumnElement
    test: Callable[[Rule], bool]

    def matches(self, rule: Rule) -> bool:
        return bool(self.test(rule))


def compose(predicates: Iterable[Predicate]) -> ColumnElement:
    """AND the clauses together; no predicates matches everything."""
    return and_(true(), *[p.clause for p in predicates])


def matches_all(predicates: Iterable[Predicate], rule: Rule) -> bool:
    return all(p.matches(rule) for p in predicates)


def not_deleted() -> Predicate:
    return Predicate("deleted", Rule.deleted.is_(None), lambda r: r.deleted is None)


# =============================================================================
# Per-field predicates
# =============================================================================


def _equals(field: str, value) -> Predicate:
    column = getattr(Rule, field)
    return Predicate(field, column == value, lambda r: getattr(r, field) == value)


def _dataset_key(value: str) -> Predicate:
    if value == NULL_SENTINEL:
        return Predicate(
            "dataset_key", Rule.dataset_key.is_(None), lambda r: r.dataset_key is None
        )
    return _equals("dataset_key", value)


def _basis_of_record(values: List[str]) -> Predicate:
    encoded = json.dumps(values)
    return Predicate(
        "basis_of_record",
        getattr(func, SQL_OVERLAPS)(Rule.basis_of_record, encoded) == 1,
        lambda r: lists_overlap(r.basis_of_record, values),
    )


def _year_range(value: str) -> Predicate:
    if value == NULL_SENTINEL:
        return Predicate(
            "year_range", Rule.year_range.is_(None), lambda r: r.year_range is None
        )

    wanted = YearRange.parse(value)
    conditions = [Rule.year_range.isnot(None)]
    if wanted.upper is not None:
        conditions.append(or_(Rule.year_from.is_(None), Rule.year_from <= wanted.upper))
    if wanted.lower is not None:
        conditions.append(or_(Rule.year_to.is_(None), Rule.year_to >= wanted.lower))

    def test(rule: Rule) -> bool:
        if rule.year_range is None:
            return False
        return YearRange.parse(rule.year_range).overlaps(wanted)

    return Predicate("year_range", and_(*conditions), test)


def _geometry(value: str) -> Predicate:
    parse_polygon(value)
    return Predicate(
        "geometry",
        and_(
            Rule.geometry.isnot(None),
            getattr(func, SQL_INTERSECTS)(Rule.geometry, value) == 1,
        ),
        lambda r: geometries_intersect(r.geometry, value),
    )


def _voted(field: str, username: str, stance: VoteStance) -> Predicate:
    return Predicate(
        field,
        Rule.votes.any(and_(RuleVote.username == username, RuleVote.stance == stance.value)),
        lambda r: any(v.username == username and v.stance == stance.value for v in r.votes),
    )


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _comment(text: str) -> Predicate:
    """Case-insensitive substring match on the rule's non-deleted comments."""
    needle = casefold(text)
    pattern = f"%{_escape_like(needle)}%"
    return Predicate(
        "comment",
        Rule.comments.any(and_(
            Comment.deleted.is_(None),
            getattr(func, SQL_CASEFOLD)(Comment.comment).like(pattern, escape="\\"),
        )),
        lambda r: any(
            c.deleted is None and needle in casefold(c.comment) for c in r.comments
        ),
    )


# =============================================================================
# Builder
# =============================================================================


def build_rule_predicates(rule_filter: RuleFilter) -> List[Predicate]:
    """
    Translate a filter into predicates, one per present field.

    Raises:
        ValidationError: malformed yearRange or geometry
    """
    f = rule_filter
    predicates: List[Predicate] = []

    if f.taxon_key is not None:
        predicates.append(_equals("taxon_key", f.taxon_key))
    if f.dataset_key is not None:
        predicates.append(_dataset_key(f.dataset_key))
    if f.ruleset_id is not None:
        predicates.append(_equals("ruleset_id", f.ruleset_id))
    if f.project_id is not None:
        predicates.append(_equals("project_id", f.project_id))

    # An empty list disables the filter
    if f.basis_of_record:
        predicates.append(_basis_of_record(f.basis_of_record))
    # Matches the stored flag; does not invert the overlap test
    if f.basis_of_record_negated is not None:
        predicates.append(_equals("basis_of_record_negated", f.basis_of_record_negated))

    if f.year_range is not None:
        predicates.append(_year_range(f.year_range))
    if f.geometry is not None:
        predicates.append(_geometry(f.geometry))

    if f.created_by is not None:
        predicates.append(_equals("created_by", f.created_by))
    if f.supported_by is not None:
        predicates.append(_voted("supported_by", f.supported_by, VoteStance.SUPPORT))
    if f.contested_by is not None:
        predicates.append(_voted("contested_by", f.contested_by, VoteStance.CONTEST))

    if f.comment:
        predicates.append(_comment(f.comment))

    logger.debug(f"Built rule predicates: {[p.field for p in predicates]}")
    return predicates
