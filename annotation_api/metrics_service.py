"""
Aggregate metrics over annotation rules and projects.
"""

import logging

from sqlalchemy import distinct, func, or_, select
from sqlalchemy.orm import Session

from annotation_api.database import Project, ProjectMember, Rule
from annotation_api.filters import build_rule_predicates, compose, not_deleted
from annotation_api.models import MetricsFilter, RuleFilter, RuleMetricsResponse


logger = logging.getLogger(__name__)


class MetricsService:
    """Counts of rules, datasets, taxa and projects for a scope."""

    def __init__(self, db: Session):
        self.db = db

    def metrics(self, metrics_filter: MetricsFilter) -> RuleMetricsResponse:
        """
        Compute metrics for the rules in scope.

        ``ruleCount``, ``datasetCount`` and ``taxonCount`` cover non-deleted
        rules matching the scope and, when a username is given, created by
        that user. ``projectCount`` counts live projects the user created
        or is a member of; with any scope field present, only projects
        holding a rule in scope count. Without a username it is 0.

        Always returns a result, with zero counts when nothing matches.
        """
        f = metrics_filter
        scope = RuleFilter(
            taxon_key=f.taxon_key,
            dataset_key=f.dataset_key,
            ruleset_id=f.ruleset_id,
            project_id=f.project_id,
        )
        scope_predicates = [not_deleted(), *build_rule_predicates(scope)]

        rule_predicates = list(scope_predicates)
        if f.username is not None:
            rule_predicates += build_rule_predicates(RuleFilter(created_by=f.username))

        rule_count, dataset_count, taxon_count = self.db.query(
            func.count(Rule.id),
            func.count(distinct(Rule.dataset_key)),
            func.count(distinct(Rule.taxon_key)),
        ).filter(compose(rule_predicates)).one()

        project_count = 0
        if f.username is not None:
            project_query = self.db.query(func.count(distinct(Project.id))).filter(
                Project.deleted.is_(None),
                or_(
                    Project.created_by == f.username,
                    Project.member_rows.any(ProjectMember.username == f.username),
                ),
            )
            if len(scope_predicates) > 1:
                project_query = project_query.filter(
                    Project.id.in_(select(Rule.project_id).where(compose(scope_predicates)))
                )
            project_count = project_query.scalar() or 0

        return RuleMetricsResponse(
            username=f.username,
            rule_count=rule_count or 0,
            dataset_count=dataset_count or 0,
            taxon_count=taxon_count or 0,
            project_count=project_count,
        )
