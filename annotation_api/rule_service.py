"""
Rule store: persisted rule CRUD and filtered listing.

Rules are never removed; deleting one sets ``deleted``/``deleted_by`` and
the rule stays readable by id while dropping out of listings.
"""

import logging
from typing import List

from sqlalchemy.orm import Session

from annotation_api.auth import AuthContext
from annotation_api.config import get_settings
from annotation_api.database import Project, Rule, utcnow
from annotation_api.errors import InvalidStateError, NotFoundError
from annotation_api.filters import build_rule_predicates, compose, not_deleted
from annotation_api.geometry import parse_polygon
from annotation_api.guard import assert_creator_or_admin
from annotation_api.models import RuleFilter, RuleRequest, YearRange


logger = logging.getLogger(__name__)


class RuleService:
    """Create, read, update, delete and search annotation rules."""

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()

    # =========================================================================
    # Queries
    # =========================================================================

    def list_rules(self, rule_filter: RuleFilter) -> List[Rule]:
        """
        List non-deleted rules matching every present filter field.

        Results are in id order; offset and limit apply after filtering.
        """
        predicates = [not_deleted(), *build_rule_predicates(rule_filter)]
        return (
            self.db.query(Rule)
            .filter(compose(predicates))
            .order_by(Rule.id)
            .offset(rule_filter.offset)
            .limit(rule_filter.limit)
            .all()
        )

    def get_rule(self, rule_id: int) -> Rule:
        """Get a rule by id, including logically deleted ones."""
        rule = self.db.query(Rule).filter(Rule.id == rule_id).first()
        if not rule:
            raise NotFoundError(f"Rule not found with id: {rule_id}")
        return rule

    def get_active_rule(self, rule_id: int, action: str) -> Rule:
        """Get a rule that may still be changed."""
        rule = self.get_rule(rule_id)
        if rule.deleted is not None:
            raise InvalidStateError(f"Cannot {action} a deleted rule")
        return rule

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_rule(self, request: RuleRequest, auth: AuthContext) -> Rule:
        """Create a rule owned by the acting user."""
        rule = Rule(created_by=auth.username)
        self._apply(rule, request)

        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)

        logger.info(f"Rule {rule.id} created by {auth.username}")
        return rule

    def update_rule(self, rule_id: int, request: RuleRequest, auth: AuthContext) -> Rule:
        """
        Replace a rule's settable fields.

        Votes and the creator are kept. Only the creator or an
        administrator may update, and never a deleted rule.
        """
        rule = self.get_active_rule(rule_id, "update")
        assert_creator_or_admin(rule.created_by, auth)

        self._apply(rule, request)
        rule.modified = utcnow()
        rule.modified_by = auth.username

        self.db.commit()
        self.db.refresh(rule)

        logger.info(f"Rule {rule.id} updated by {auth.username}")
        return rule

    def delete_rule(self, rule_id: int, auth: AuthContext) -> Rule:
        """Logically delete a rule. Deleting twice keeps the first marker."""
        rule = self.get_rule(rule_id)
        assert_creator_or_admin(rule.created_by, auth)

        if rule.deleted is None:
            rule.deleted = utcnow()
            rule.deleted_by = auth.username
            self.db.commit()
            self.db.refresh(rule)
            logger.info(f"Rule {rule.id} deleted by {auth.username}")

        return rule

    def delete_by_project(self, project_id: int, username: str) -> int:
        """
        Logically delete every rule in a project.

        Called once the project deletion itself has been authorized, so
        there is no per-rule check. Runs in the caller's transaction.
        """
        count = (
            self.db.query(Rule)
            .filter(Rule.project_id == project_id, Rule.deleted.is_(None))
            .update(
                {Rule.deleted: utcnow(), Rule.deleted_by: username},
                synchronize_session="fetch",
            )
        )
        logger.info(f"Cascade deleted {count} rules of project {project_id}")
        return count

    # =========================================================================
    # Helpers
    # =========================================================================

    def _apply(self, rule: Rule, request: RuleRequest) -> None:
        """Copy the request's settable fields onto the rule, validating them."""
        if request.project_id is not None:
            self._check_project(request.project_id)

        if request.year_range is not None:
            years = YearRange.parse(request.year_range)
            rule.year_range = str(years)
            rule.year_from, rule.year_to = years
        else:
            rule.year_range = rule.year_from = rule.year_to = None

        if request.geometry is not None:
            parse_polygon(request.geometry)
            rule.geometry = request.geometry.strip()
        else:
            rule.geometry = None

        rule.taxon_key = request.taxon_key
        rule.dataset_key = request.dataset_key
        rule.ruleset_id = request.ruleset_id
        rule.project_id = request.project_id
        rule.annotation = request.annotation.value
        rule.basis_of_record = (
            list(request.basis_of_record) if request.basis_of_record is not None else None
        )
        rule.basis_of_record_negated = request.basis_of_record_negated

    def _check_project(self, project_id: int) -> None:
        project = self.db.query(Project).filter(Project.id == project_id).first()
        if not project:
            raise NotFoundError(f"Project not found with id: {project_id}")
        if project.deleted is not None:
            raise InvalidStateError(f"Cannot add rules to deleted project {project_id}")
