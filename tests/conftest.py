"""
Shared pytest fixtures for the Strategy Planner test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org / other_org: Pre-created organizations
    - headers / other_headers: X-Tenant-ID + X-User-ID request headers
    - make_strategy / make_project / make_action: direct-to-DB builders
    - recorder: a notify callback that records every event
"""

import pytest

from stratplan import create_app
from stratplan.models import db as _db
from stratplan.models.action import Action
from stratplan.models.organization import Organization
from stratplan.models.strategy import Project, Strategy


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


# ── Organizations ────────────────────────────────────────────────────────


def _make_org(slug, plan="free"):
    org = Organization(name=slug.replace("-", " ").title(), slug=slug, plan=plan)
    _db.session.add(org)
    _db.session.commit()
    return org


@pytest.fixture()
def org():
    return _make_org("acme")


@pytest.fixture()
def other_org():
    return _make_org("globex")


@pytest.fixture()
def headers(org):
    return {"X-Tenant-ID": str(org.id), "X-User-ID": "u-lead"}


@pytest.fixture()
def other_headers(other_org):
    return {"X-Tenant-ID": str(other_org.id), "X-User-ID": "u-other"}


# ── Hierarchy builders (bypass the service layer) ────────────────────────


@pytest.fixture()
def make_strategy(org):
    def _make(title="Grow revenue", status="Active", progress=0, tenant_id=None):
        strategy = Strategy(
            tenant_id=tenant_id or org.id, title=title, status=status, progress=progress,
        )
        _db.session.add(strategy)
        _db.session.commit()
        return strategy

    return _make


@pytest.fixture()
def make_project(org):
    def _make(strategy, title="Launch EU", status="OT", progress=0, leaders=None, **kw):
        project = Project(
            tenant_id=strategy.tenant_id,
            strategy_id=strategy.id,
            title=title,
            status=status,
            progress=progress,
            accountable_leaders=leaders if leaders is not None else ["u-lead"],
            **kw,
        )
        _db.session.add(project)
        _db.session.commit()
        return project

    return _make


@pytest.fixture()
def make_action(org):
    def _make(project=None, strategy=None, title="Ship it", status="not_started", **kw):
        strategy_id = strategy.id if strategy is not None else project.strategy_id
        tenant_id = strategy.tenant_id if strategy is not None else project.tenant_id
        action = Action(
            tenant_id=tenant_id,
            strategy_id=strategy_id,
            project_id=project.id if project is not None else None,
            title=title,
            status=status,
            **kw,
        )
        _db.session.add(action)
        _db.session.commit()
        return action

    return _make


# ── Notify recorder ──────────────────────────────────────────────────────


class NotifyRecorder:
    """Notify callback that keeps every call for later assertions."""

    def __init__(self):
        self.events = []

    def __call__(self, event_type, entity_id, title, old_value, new_value, recipient_ids):
        self.events.append({
            "event_type": event_type,
            "entity_id": entity_id,
            "title": title,
            "old_value": old_value,
            "new_value": new_value,
            "recipient_ids": list(recipient_ids),
        })

    def of_type(self, event_type):
        return [e for e in self.events if e["event_type"] == event_type]


@pytest.fixture()
def recorder():
    return NotifyRecorder()
