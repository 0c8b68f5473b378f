"""
Shared pytest fixtures for the construction progress engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project: Pre-created Project entity
    - units: Three units (A-101, A-102, A-103) on that project
"""

import pytest

from buildtrack import create_app
from buildtrack.models import db as _db
from buildtrack.services import project_service


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


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


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project():
    """Create and return a test Project (business-day calendar)."""
    return project_service.create_project({"name": "Harbour View Residences", "code": "HVR"})


@pytest.fixture()
def units(project):
    """Three apartments on the test project."""
    return project_service.create_units(project.id, ["A-101", "A-102", "A-103"])


# ── Template payloads ────────────────────────────────────────────────────


@pytest.fixture()
def simple_phases():
    """Two phases, three activities, one dependency."""
    return [
        {
            "name": "Structure", "order": 0, "percentageOfTotal": 40,
            "stages": [{
                "name": "Foundation", "order": 0,
                "activities": [
                    {"name": "Excavation", "order": 0, "weight": 1, "scope": "GENERAL"},
                ],
            }],
        },
        {
            "name": "Finishes", "order": 1, "percentageOfTotal": 60,
            "stages": [{
                "name": "Interior", "order": 0,
                "activities": [
                    {"name": "Plastering", "order": 0, "weight": 1},
                    {"name": "Painting", "order": 1, "weight": 1, "dependencies": ["Plastering"]},
                ],
            }],
        },
    ]
