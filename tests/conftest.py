"""Shared fixtures: in-memory SQLite database and an API client bound to it."""
import os

# Keep the app from touching a real database or upload directory on import
os.environ.setdefault("PMBOARD_DATABASE_URL", "sqlite://")
os.environ.setdefault("PMBOARD_CREATE_TABLES", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pmboard_core import crud, schemas
from pmboard_core.api.main import app
from pmboard_core.database import build_engine, get_db
from pmboard_core.models import Base
from pmboard_core.storage import AttachmentStorage, get_storage


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    """In-memory database shared by every session of one test."""
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    """A session for calling crud/positions directly."""
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# API FIXTURES
# =============================================================================

@pytest.fixture
def storage(tmp_path):
    return AttachmentStorage(tmp_path / "uploads", "/uploads")


@pytest.fixture
def client(session_factory, storage):
    """TestClient with one fresh session per request, like production."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# MODEL FIXTURES
# =============================================================================

@pytest.fixture
def project(db):
    return crud.create_project(db, name="Test Project", description="A project for tests")


@pytest.fixture
def make_feature(db, project):
    """Create a feature in the test project."""
    def _make(title, status="BACKLOG", **fields):
        return crud.create_feature(db, project.id, schemas.FeatureCreate(title=title, status=status, **fields))
    return _make
