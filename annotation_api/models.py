"""
Pydantic models for annotation API requests and responses.

The wire format uses camelCase (``taxonKey``, ``basisOfRecord``); request
bodies also accept the snake_case field names.
"""

from datetime import datetime
from enum import Enum
from typing import List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from annotation_api.errors import ValidationError


# =============================================================================
# Enums
# =============================================================================


class AnnotationType(str, Enum):
    """What a rule asserts about the occurrences in its scope."""
    NATIVE = "NATIVE"
    INTRODUCED = "INTRODUCED"
    MANAGED = "MANAGED"          # Cultivated or captive
    FORMER = "FORMER"            # Historic range, no longer present
    SUSPICIOUS = "SUSPICIOUS"    # Likely a data error
    VAGRANT = "VAGRANT"          # Occasional visitor outside the usual range
    OTHER = "OTHER"


class VoteStance(str, Enum):
    """A user's position on a rule."""
    SUPPORT = "SUPPORT"
    CONTEST = "CONTEST"


class VoteAction(str, Enum):
    """Voting operations a user can perform on a rule."""
    SUPPORT = "support"
    CONTEST = "contest"
    REMOVE_SUPPORT = "removeSupport"
    REMOVE_CONTEST = "removeContest"


# =============================================================================
# Year ranges
# =============================================================================


WILDCARD = "*"


class YearRange(NamedTuple):
    """An inclusive year range; ``None`` on either side means unbounded."""

    lower: Optional[int]
    upper: Optional[int]

    @classmethod
    def parse(cls, text: str) -> "YearRange":
        """
        Parse ``"<lo>,<hi>"`` where each side is a year or ``*``.

        Raises:
            ValidationError: on anything else, or when lo > hi
        """
        parts = text.split(",") if text else []
        if len(parts) != 2:
            raise ValidationError(
                f"Invalid yearRange {text!r}: expected '<from>,<to>' e.g. '1900,2000' or '*,1990'"
            )
        bounds = []
        for part in parts:
            part = part.strip()
            if part == WILDCARD:
                bounds.append(None)
                continue
            try:
                bounds.append(int(part))
            except ValueError:
                raise ValidationError(
                    f"Invalid yearRange {text!r}: {part!r} is not a year or '*'"
                ) from None
        lower, upper = bounds
        if lower is not None and upper is not None and lower > upper:
            raise ValidationError(f"Invalid yearRange {text!r}: start is after end")
        return cls(lower, upper)

    def overlaps(self, other: "YearRange") -> bool:
        if self.lower is not None and other.upper is not None and self.lower > other.upper:
            return False
        if self.upper is not None and other.lower is not None and self.upper < other.lower:
            return False
        return True

    def __str__(self) -> str:
        lo = WILDCARD if self.lower is None else str(self.lower)
        hi = WILDCARD if self.upper is None else str(self.upper)
        return f"{lo},{hi}"


# =============================================================================
# Filters
# =============================================================================


class RuleFilter(BaseModel):
    """
    Optional, independent filters for listing rules.

    Every field left as ``None`` imposes no constraint.
    """

    taxon_key: Optional[int] = None
    dataset_key: Optional[str] = None      # "null" = rules without a dataset
    ruleset_id: Optional[int] = None
    project_id: Optional[int] = None
    basis_of_record: Optional[List[str]] = None
    basis_of_record_negated: Optional[bool] = None
    year_range: Optional[str] = None       # "lo,hi" with '*' wildcards, or "null"
    geometry: Optional[str] = None         # WKT
    created_by: Optional[str] = None
    supported_by: Optional[str] = None
    contested_by: Optional[str] = None
    comment: Optional[str] = None

    limit: int = Field(default=100, ge=0)
    offset: int = Field(default=0, ge=0)


class MetricsFilter(BaseModel):
    """Scope for aggregate rule metrics."""

    username: Optional[str] = None
    taxon_key: Optional[int] = None
    dataset_key: Optional[str] = None
    ruleset_id: Optional[int] = None
    project_id: Optional[int] = None


# =============================================================================
# Request Models
# =============================================================================


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RuleRequest(CamelModel):
    """
    Request to create or replace a rule.

    Any ``createdBy`` in the body is ignored; the acting user is recorded.
    """

    taxon_key: Optional[int] = Field(default=None, description="GBIF taxon key")
    dataset_key: Optional[str] = Field(default=None, description="Dataset the rule applies to")
    ruleset_id: Optional[int] = None
    project_id: Optional[int] = None

    annotation: AnnotationType = Field(..., description="What the rule asserts")

    basis_of_record: Optional[List[str]] = Field(
        default=None,
        description="Record types the rule applies to, e.g. PRESERVED_SPECIMEN"
    )
    basis_of_record_negated: bool = Field(
        default=False,
        description="When true the rule applies to all record types except those listed"
    )
    year_range: Optional[str] = Field(
        default=None,
        description="Inclusive year range, e.g. '1900,2000', '*,1990' or '1000,*'"
    )
    geometry: Optional[str] = Field(default=None, description="WKT polygon")


class CommentRequest(CamelModel):
    """Request to add a comment to a rule."""

    comment: str = Field(..., min_length=1, max_length=10000)


class ProjectCreateRequest(CamelModel):
    """Request to create a project. The creator becomes its only member."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class ProjectUpdateRequest(CamelModel):
    """Request to replace a project's details and membership."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    members: List[str] = Field(default_factory=list)


# =============================================================================
# Response Models
# =============================================================================


class RuleResponse(CamelModel):
    """Response containing a single rule and its current votes."""

    id: int
    taxon_key: Optional[int] = None
    dataset_key: Optional[str] = None
    ruleset_id: Optional[int] = None
    project_id: Optional[int] = None

    annotation: AnnotationType
    basis_of_record: Optional[List[str]] = None
    basis_of_record_negated: bool = False
    year_range: Optional[str] = None
    geometry: Optional[str] = None

    supported_by: List[str] = Field(default_factory=list)
    contested_by: List[str] = Field(default_factory=list)

    created: datetime
    created_by: str
    modified: Optional[datetime] = None
    modified_by: Optional[str] = None
    deleted: Optional[datetime] = None
    deleted_by: Optional[str] = None


class CommentResponse(CamelModel):
    """Response containing a single comment."""

    id: int
    rule_id: int
    comment: str
    created: datetime
    created_by: str
    deleted: Optional[datetime] = None
    deleted_by: Optional[str] = None


class ProjectResponse(CamelModel):
    """Response containing a single project."""

    id: int
    name: str
    description: Optional[str] = None
    members: List[str] = Field(default_factory=list)
    created: datetime
    created_by: str
    modified: Optional[datetime] = None
    modified_by: Optional[str] = None
    deleted: Optional[datetime] = None
    deleted_by: Optional[str] = None


class RuleMetricsResponse(CamelModel):
    """Aggregate counts over the rules matching a scope."""

    username: Optional[str] = None
    rule_count: int = 0
    dataset_count: int = 0
    taxon_count: int = 0
    project_count: int = 0


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    database_connected: bool
    rules_count: int = 0
    projects_count: int = 0
