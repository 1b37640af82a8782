"""
Shared pytest fixtures for the CapEx Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - thresholds: default engine settings
    - make_project: API helper that creates a project and returns its JSON
"""

import pytest

from capex import create_app
from capex.models import db as _db
from capex.services.completion_engine import ThresholdSettings


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def thresholds():
    return ThresholdSettings()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_project(client):
    """Create a project via the API and return the response JSON."""

    def _make(**payload):
        payload.setdefault("project_name", "Test Project")
        res = client.post("/api/v1/projects", json=payload)
        assert res.status_code == 201, res.get_json()
        return res.get_json()

    return _make
