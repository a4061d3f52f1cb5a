"""
Shared pytest fixtures for the Site Progress Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test app context, change-feed reset and table recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user / auth_header: profile + identity factory and bearer headers
    - admin, dept_head, pm, ls, pending_user: one profile per role
    - make_project / make_report: service-level factories
"""

import pytest

from sitetrack import create_app
from sitetrack.models import db as _db
from sitetrack.models.auth import Identity, User
from sitetrack.services.jwt_service import generate_access_token
from sitetrack.services.realtime import feed
from sitetrack.utils.crypto import hash_password

TEST_PASSWORD = "secret123"


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
    """Per-test: open app context, drop live subscriptions, recreate tables."""
    with app.app_context():
        feed.reset()
        yield
        feed.reset()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users ────────────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Create an Identity (password login) and its profile."""

    def _make(uid, name=None, role=None, email=None, password=TEST_PASSWORD):
        email = email or f"{uid}@example.com"
        _db.session.add(Identity(
            uid=uid, email=email, password_hash=hash_password(password),
            display_name=name or uid, provider="password",
        ))
        user = User(id=uid, email=email, name=name or uid, role=role)
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def auth_header():
    def _header(uid):
        return {"Authorization": f"Bearer {generate_access_token(uid)}"}
    return _header


@pytest.fixture()
def admin(make_user):
    return make_user("admin1", "Ada Admin", "Admin")


@pytest.fixture()
def dept_head(make_user):
    return make_user("dh1", "Dana Head", "DepartmentHead")


@pytest.fixture()
def pm(make_user):
    return make_user("pm1", "Pat Manager", "ProjectManager")


@pytest.fixture()
def ls(make_user):
    return make_user("ls1", "Lee Supervisor", "LeadSupervisor")


@pytest.fixture()
def pending_user(make_user):
    return make_user("new1", "Nia Newcomer", None)


# ── Projects & reports ───────────────────────────────────────────────────


@pytest.fixture()
def make_project(admin):
    from sitetrack.services import project_service

    def _make(name="Alpha", managers=(), supervisors=(), start="01/01/2025", end="31/12/2025", **extra):
        data = {
            "name": name,
            "constructionStartDate": start,
            "plannedAcceptanceDate": end,
            "projectManagerIds": list(managers),
            "leadSupervisorIds": list(supervisors),
            **extra,
        }
        return project_service.create_project(admin, data)

    return _make


@pytest.fixture()
def make_report():
    from sitetrack.services import report_service

    def _make(author, project_id, date="10/03/2025", tasks="Poured foundation", images=None):
        return report_service.add_report(
            author, project_id, {"date": date, "tasks": tasks, "images": images or []},
        )

    return _make
