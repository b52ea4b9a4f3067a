"""
API routes for annotation rules, their votes, comments and metrics.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from annotation_api.auth import AuthContext, require_user
from annotation_api.comment_service import CommentService
from annotation_api.config import get_settings
from annotation_api.database import Comment, Rule, get_db
from annotation_api.metrics_service import MetricsService
from annotation_api.models import (
    CommentRequest, CommentResponse, MetricsFilter, RuleFilter, RuleMetricsResponse,
    RuleRequest, RuleResponse,
)
from annotation_api.rule_service import RuleService
from annotation_api.voting_service import VotingService


router = APIRouter(prefix="/rule", tags=["Occurrence annotation rules"])

settings = get_settings()


def rule_filter_params(
    taxon_key: Optional[int] = Query(default=None, alias="taxonKey", description="Filters by taxonKey"),
    dataset_key: Optional[str] = Query(
        default=None, alias="datasetKey",
        description="Filters by dataset key. Use 'null' to find rules with no datasetKey"
    ),
    context_key: Optional[str] = Query(
        default=None, alias="contextKey", description="Alternative name for datasetKey"
    ),
    ruleset_id: Optional[int] = Query(default=None, alias="rulesetId", description="Filters by ruleset"),
    project_id: Optional[int] = Query(default=None, alias="projectId", description="Filters by project"),
    basis_of_record: Optional[List[str]] = Query(
        default=None, alias="basisOfRecord",
        description="Rules whose basis of record overlaps any of these values (repeatable)"
    ),
    basis_of_record_negated: Optional[bool] = Query(
        default=None, alias="basisOfRecordNegated",
        description="Rules whose basisOfRecordNegated flag equals this value"
    ),
    year_range: Optional[str] = Query(
        default=None, alias="yearRange",
        description="Rules overlapping a year range, e.g. '1000,2025', '*,1990', '1000,*'. "
                    "Use 'null' to find rules with no yearRange"
    ),
    geometry: Optional[str] = Query(
        default=None, description="WKT polygon; rules whose geometry intersects it"
    ),
    created_by: Optional[str] = Query(default=None, alias="createdBy"),
    supported_by: Optional[str] = Query(default=None, alias="supportedBy"),
    contested_by: Optional[str] = Query(default=None, alias="contestedBy"),
    comment: Optional[str] = Query(
        default=None, description="Rules with a non-deleted comment containing this text"
    ),
    limit: int = Query(default=settings.default_page_size, ge=0, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
) -> RuleFilter:
    """Collect the optional rule filters from the query string."""
    return RuleFilter(
        taxon_key=taxon_key,
        dataset_key=dataset_key if dataset_key is not None else context_key,
        ruleset_id=ruleset_id,
        project_id=project_id,
        basis_of_record=basis_of_record,
        basis_of_record_negated=basis_of_record_negated,
        year_range=year_range,
        geometry=geometry,
        created_by=created_by,
        supported_by=supported_by,
        contested_by=contested_by,
        comment=comment,
        limit=limit,
        offset=offset,
    )


# =============================================================================
# Listing
# =============================================================================


@router.get("", response_model=List[RuleResponse])
def list_rules(
    rule_filter: RuleFilter = Depends(rule_filter_params),
    db: Session = Depends(get_db)
) -> List[RuleResponse]:
    """
    List rules that are not deleted.

    Every filter is optional and they combine with AND; an omitted filter
    never restricts the results.
    """
    rules = RuleService(db).list_rules(rule_filter)
    return [_rule_to_response(r) for r in rules]


@router.get("/my", response_model=List[RuleResponse])
def list_my_rules(
    rule_filter: RuleFilter = Depends(rule_filter_params),
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> List[RuleResponse]:
    """Rules created by the calling user."""
    return _list_for_user(db, rule_filter, created_by=auth.username)


@router.get("/supported", response_model=List[RuleResponse])
def list_supported_rules(
    rule_filter: RuleFilter = Depends(rule_filter_params),
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> List[RuleResponse]:
    """Rules the calling user supports."""
    return _list_for_user(db, rule_filter, supported_by=auth.username)


@router.get("/contested", response_model=List[RuleResponse])
def list_contested_rules(
    rule_filter: RuleFilter = Depends(rule_filter_params),
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> List[RuleResponse]:
    """Rules the calling user contests."""
    return _list_for_user(db, rule_filter, contested_by=auth.username)


# =============================================================================
# Metrics
# =============================================================================


@router.get("/metrics", response_model=RuleMetricsResponse)
def get_metrics(
    username: Optional[str] = Query(
        default=None, description="Counts rules created by, and projects of, this user"
    ),
    taxon_key: Optional[int] = Query(default=None, alias="taxonKey"),
    dataset_key: Optional[str] = Query(default=None, alias="datasetKey"),
    ruleset_id: Optional[int] = Query(default=None, alias="rulesetId"),
    project_id: Optional[int] = Query(default=None, alias="projectId"),
    db: Session = Depends(get_db)
) -> RuleMetricsResponse:
    """Aggregate counts of rules, datasets, taxa and projects for a scope."""
    return MetricsService(db).metrics(MetricsFilter(
        username=username,
        taxon_key=taxon_key,
        dataset_key=dataset_key,
        ruleset_id=ruleset_id,
        project_id=project_id,
    ))


# =============================================================================
# Single rule
# =============================================================================


@router.get("/{rule_id}", response_model=RuleResponse)
def get_rule(rule_id: int, db: Session = Depends(get_db)) -> RuleResponse:
    """Get a single rule (may be deleted)."""
    return _rule_to_response(RuleService(db).get_rule(rule_id))


@router.post("", response_model=RuleResponse)
def create_rule(
    request: RuleRequest,
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> RuleResponse:
    """Create a new rule owned by the caller."""
    return _rule_to_response(RuleService(db).create_rule(request, auth))


@router.put("/{rule_id}", response_model=RuleResponse)
def update_rule(
    rule_id: int,
    request: RuleRequest,
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> RuleResponse:
    """Update an existing rule. Only its creator or an administrator may."""
    return _rule_to_response(RuleService(db).update_rule(rule_id, request, auth))


@router.delete("/{rule_id}", response_model=RuleResponse)
def delete_rule(
    rule_id: int,
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> RuleResponse:
    """Logically delete a rule. Only its creator or an administrator may."""
    return _rule_to_response(RuleService(db).delete_rule(rule_id, auth))


# =============================================================================
# Votes
# =============================================================================


@router.post("/{rule_id}/support", response_model=RuleResponse)
def support_rule(
    rule_id: int,
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> RuleResponse:
    """Support a rule, replacing any contest by the caller."""
    return _rule_to_response(VotingService(db).support(rule_id, auth))


@router.post("/{rule_id}/removeSupport", response_model=RuleResponse)
def remove_support(
    rule_id: int,
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> RuleResponse:
    """Withdraw the caller's support, if any."""
    return _rule_to_response(VotingService(db).remove_support(rule_id, auth))


@router.post("/{rule_id}/contest", response_model=RuleResponse)
def contest_rule(
    rule_id: int,
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> RuleResponse:
    """Contest a rule, replacing any support by the caller."""
    return _rule_to_response(VotingService(db).contest(rule_id, auth))


@router.post("/{rule_id}/removeContest", response_model=RuleResponse)
def remove_contest(
    rule_id: int,
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> RuleResponse:
    """Withdraw the caller's contest, if any."""
    return _rule_to_response(VotingService(db).remove_contest(rule_id, auth))


# =============================================================================
# Comments
# =============================================================================


@router.get("/{rule_id}/comment", response_model=List[CommentResponse])
def list_comments(rule_id: int, db: Session = Depends(get_db)) -> List[CommentResponse]:
    """List all non-deleted comments for a rule."""
    return [_comment_to_response(c) for c in CommentService(db).list_comments(rule_id)]


@router.post("/{rule_id}/comment", response_model=CommentResponse)
def add_comment(
    rule_id: int,
    request: CommentRequest,
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> CommentResponse:
    """Add a comment to a rule."""
    return _comment_to_response(CommentService(db).add_comment(rule_id, request, auth))


@router.delete("/{rule_id}/comment/{comment_id}", response_model=CommentResponse)
def delete_comment(
    rule_id: int,
    comment_id: int,
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db)
) -> CommentResponse:
    """Logically delete a comment. Only its author or an administrator may."""
    return _comment_to_response(CommentService(db).delete_comment(rule_id, comment_id, auth))


# =============================================================================
# Helper Functions
# =============================================================================


def _list_for_user(db: Session, rule_filter: RuleFilter, **user_fields) -> List[RuleResponse]:
    """List with exactly one of createdBy/supportedBy/contestedBy set to the caller."""
    scoped = rule_filter.model_copy(update={
        "created_by": None,
        "supported_by": None,
        "contested_by": None,
        **user_fields,
    })
    return [_rule_to_response(r) for r in RuleService(db).list_rules(scoped)]


def _rule_to_response(rule: Rule) -> RuleResponse:
    """Convert database Rule to response model."""
    return RuleResponse.model_validate(rule)


def _comment_to_response(comment: Comment) -> CommentResponse:
    """Convert database Comment to response model."""
    return CommentResponse.model_validate(comment)
