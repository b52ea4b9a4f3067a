"""
Database models and session management for the annotation service.

Uses SQLAlchemy with SQLite for the standalone service. The spatial and
array-overlap predicates run as SQL functions registered on each
connection (see ``annotation_api.geometry``).
"""

from datetime import datetime, UTC
from typing import Optional, List

from sqlalchemy import (
    Integer, String, Text, DateTime, Boolean, ForeignKey, Index, JSON,
    UniqueConstraint, create_engine, event
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import (
    DeclarativeBase, relationship, sessionmaker, Mapped, mapped_column
)

from annotation_api.config import get_settings
from annotation_api.errors import ConfigurationError
from annotation_api.geometry import register_sql_functions
from annotation_api.models import VoteStance


# =============================================================================
# Database Setup
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def configure_engine(engine: Engine) -> Engine:
    """Register the rule query functions on every new SQLite connection."""
    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _register_functions(dbapi_conn, connection_record):
            register_sql_functions(dbapi_conn)
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    return engine


def get_engine(database_url: Optional[str] = None):
    """
    Create database engine.

    Raises:
        ConfigurationError: the URL is not a SQLite database. The rule filters
            call SQL functions that only get registered on SQLite connections.
    """
    settings = get_settings()
    url = make_url(database_url or settings.database_url)
    if url.get_backend_name() != "sqlite":
        raise ConfigurationError(
            f"Unsupported database backend {url.get_backend_name()!r}: "
            f"ANNOTATION_DATABASE_URL must be a sqlite URL"
        )
    return configure_engine(create_engine(
        url,
        connect_args={"check_same_thread": False},
        echo=settings.debug
    ))


engine = get_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Optional[Engine] = None):
    """Initialize database tables."""
    Base.metadata.create_all(bind=bind or engine)


def utcnow() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Database Models
# =============================================================================


class Project(Base):
    """
    A named group of rules with its own membership.

    Any member may edit the project; deleting it logically deletes
    every rule scoped to it.
    """

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    created_by: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    modified: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    modified_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    deleted: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    member_rows: Mapped[List["ProjectMember"]] = relationship(
        "ProjectMember",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectMember.id",
        lazy="selectin",
    )

    @property
    def members(self) -> List[str]:
        return [m.username for m in self.member_rows]


class ProjectMember(Base):
    """A username listed as a member of a project."""

    __tablename__ = "project_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), index=True, nullable=False
    )
    username: Mapped[str] = mapped_column(String(255), index=True, nullable=False)

    project: Mapped["Project"] = relationship("Project", back_populates="member_rows")

    __table_args__ = (
        UniqueConstraint('project_id', 'username', name='uq_project_member'),
    )


class Rule(Base):
    """
    An annotation rule flagging occurrences in a scope.

    The scope is the conjunction of taxon, dataset, basis of record,
    year range and geometry; any of them may be unset.
    """

    __tablename__ = "rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # Scope
    taxon_key: Mapped[Optional[int]] = mapped_column(Integer, index=True, nullable=True)
    dataset_key: Mapped[Optional[str]] = mapped_column(String(255), index=True, nullable=True)
    ruleset_id: Mapped[Optional[int]] = mapped_column(Integer, index=True, nullable=True)
    project_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("projects.id"), index=True, nullable=True
    )

    annotation: Mapped[str] = mapped_column(String(50), nullable=False)

    # Constraints. NULL and [] are different values for basis_of_record.
    basis_of_record: Mapped[Optional[List[str]]] = mapped_column(
        JSON(none_as_null=True), nullable=True
    )
    basis_of_record_negated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # "lo,hi" as submitted plus the parsed bounds (NULL = unbounded)
    year_range: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    year_from: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    year_to: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    geometry: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # WKT

    # Provenance
    created: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    created_by: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    modified: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    modified_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    deleted: Mapped[Optional[datetime]] = mapped_column(DateTime, index=True, nullable=True)
    deleted_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Relationships
    votes: Mapped[List["RuleVote"]] = relationship(
        "RuleVote", back_populates="rule", cascade="all, delete-orphan", lazy="selectin"
    )
    comments: Mapped[List["Comment"]] = relationship("Comment", back_populates="rule")

    __table_args__ = (
        Index('ix_rules_project_deleted', 'project_id', 'deleted'),
    )

    def _voters(self, stance: VoteStance) -> List[str]:
        return sorted(v.username for v in self.votes if v.stance == stance.value)

    @property
    def supported_by(self) -> List[str]:
        return self._voters(VoteStance.SUPPORT)

    @property
    def contested_by(self) -> List[str]:
        return self._voters(VoteStance.CONTEST)


class RuleVote(Base):
    """
    A user's support for, or contest of, a rule.

    One row per (rule, user): a user can never both support and
    contest the same rule.
    """

    __tablename__ = "rule_votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    rule_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rules.id", ondelete="CASCADE"), index=True, nullable=False
    )
    username: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    stance: Mapped[str] = mapped_column(String(10), nullable=False)

    created: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    rule: Mapped["Rule"] = relationship("Rule", back_populates="votes")

    __table_args__ = (
        UniqueConstraint('rule_id', 'username', name='uq_rule_voter'),
        Index('ix_rule_votes_user_stance', 'username', 'stance'),
    )


class Comment(Base):
    """A discussion comment on a rule."""

    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    rule_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rules.id", ondelete="CASCADE"), index=True, nullable=False
    )
    comment: Mapped[str] = mapped_column(Text, nullable=False)

    created: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    deleted: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    rule: Mapped["Rule"] = relationship("Rule", back_populates="comments")
