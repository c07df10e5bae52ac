"""
Shared pytest fixtures for the StoryDesk test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project / subproject / storyline / story: pre-created hierarchy
    - make_stakeholder: factory inserting registry rows directly
"""

from datetime import datetime, timedelta, timezone

import pytest

from storydesk import create_app
from storydesk.models import db as _db
from storydesk.models.narrative import Story, Storyline
from storydesk.models.project import Project
from storydesk.models.stakeholder import Stakeholder


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


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project() -> Project:
    p = Project(name="Harbour Redevelopment")
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def other_project() -> Project:
    p = Project(name="Riverside Campus")
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def subproject(project: Project) -> Project:
    sub = Project(name="Phase 1", parent_id=project.id)
    _db.session.add(sub)
    _db.session.commit()
    return sub


@pytest.fixture()
def storyline(project: Project) -> Storyline:
    s = Storyline(project_id=project.id, title="Land acquisition", content="")
    _db.session.add(s)
    _db.session.commit()
    return s


@pytest.fixture()
def story(subproject: Project) -> Story:
    s = Story(subproject_id=subproject.id, story_name="Kick-off", content="First meeting")
    _db.session.add(s)
    _db.session.commit()
    return s


@pytest.fixture()
def make_stakeholder():
    """Insert a Stakeholder row directly, bypassing name-uniqueness checks.

    Successive rows get strictly increasing ``created_at`` so that
    "earliest created" is deterministic.
    """
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(project_id: int, name: str, **kw) -> Stakeholder:
        counter["n"] += 1
        kw.setdefault("created_at", base + timedelta(minutes=counter["n"]))
        s = Stakeholder(project_id=project_id, name=name, **kw)
        _db.session.add(s)
        _db.session.commit()
        return s

    return _make
