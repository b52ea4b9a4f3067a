"""
Pytest configuration and shared fixtures for annotation API tests.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from annotation_api.app import app
from annotation_api.auth import AuthContext
from annotation_api.database import Base, configure_engine, get_db
from annotation_api.models import ProjectCreateRequest, RuleRequest
from annotation_api.project_service import ProjectService
from annotation_api.rule_service import RuleService


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session in a test."""
    engine = configure_engine(create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    ))
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    """Create test client with database dependency override."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def alice():
    return AuthContext(username="alice", roles=frozenset({"USER"}))


@pytest.fixture
def bob():
    return AuthContext(username="bob", roles=frozenset({"USER"}))


@pytest.fixture
def admin():
    return AuthContext(username="root", roles=frozenset({"USER", "REGISTRY_ADMIN"}))


@pytest.fixture
def make_rule(db):
    """Create a rule through the service; keyword args are RuleRequest fields."""

    def _make(auth, **fields):
        fields.setdefault("annotation", "NATIVE")
        return RuleService(db).create_rule(RuleRequest(**fields), auth)

    return _make


@pytest.fixture
def make_project(db):
    def _make(auth, name="Test Project", description=None):
        request = ProjectCreateRequest(name=name, description=description)
        return ProjectService(db).create_project(request, auth)

    return _make
