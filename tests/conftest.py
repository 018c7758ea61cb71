"""
Shared pytest fixtures for the SMS micro-coaching test suite.

Provides:
    - app: Flask application (session-scoped, in-memory SQLite)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org / admin / auth_headers: paid organization with a logged-in admin
    - unpaid_headers: admin of an organization without a subscription
    - make_cohort / make_learner / enroll / make_lesson: row factories
"""

from datetime import date

import pytest

from microcoach import create_app
from microcoach.models import db as _db
from microcoach.models.cohort import Cohort, CohortUser, Learner, Lesson
from microcoach.models.organization import AdminUser, Organization
from microcoach.services.jwt_service import generate_access_token
from microcoach.utils.crypto import hash_password

TODAY = date(2026, 3, 10)


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
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Auth fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def org():
    o = Organization(name="Acme Support", contact_email="ops@acme.com",
                     timezone="Europe/London", is_paid=True, plan="gold")
    _db.session.add(o)
    _db.session.commit()
    return o


@pytest.fixture()
def admin(org):
    a = AdminUser(email="admin@acme.com", password_hash=hash_password("Passw0rd!"),
                  organization_id=org.id)
    _db.session.add(a)
    _db.session.commit()
    return a


@pytest.fixture()
def auth_headers(admin):
    token = generate_access_token(admin.id, admin.organization_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def other_org():
    o = Organization(name="Globex", contact_email="ops@globex.com", is_paid=True)
    _db.session.add(o)
    _db.session.commit()
    return o


@pytest.fixture()
def unpaid_headers():
    o = Organization(name="Initech", contact_email="ops@initech.com", is_paid=False)
    _db.session.add(o)
    _db.session.flush()
    a = AdminUser(email="admin@initech.com", password_hash=hash_password("Passw0rd!"),
                  organization_id=o.id)
    _db.session.add(a)
    _db.session.commit()
    return {"Authorization": f"Bearer {generate_access_token(a.id, o.id)}"}


# ── Row factories ────────────────────────────────────────────────────────


@pytest.fixture()
def make_cohort(org):
    def _make(name="Wave 1", role_level="agent", start_date=TODAY, duration_days=5,
              organization=None):
        c = Cohort(
            organization_id=(organization or org).id,
            name=name,
            role_level=role_level,
            start_date=start_date,
            duration_days=duration_days,
        )
        _db.session.add(c)
        _db.session.commit()
        return c
    return _make


@pytest.fixture()
def make_learner():
    counter = {"n": 0}

    def _make(name=None, phone_number=None, role_level="agent", status="active"):
        counter["n"] += 1
        n = counter["n"]
        learner = Learner(
            name=name or f"Learner {n:02d}",
            phone_number=phone_number or f"+1555000{n:04d}",
            role_level=role_level,
            status=status,
        )
        _db.session.add(learner)
        _db.session.commit()
        return learner
    return _make


@pytest.fixture()
def enroll():
    def _enroll(cohort, learner):
        cu = CohortUser(cohort_id=cohort.id, user_id=learner.id)
        _db.session.add(cu)
        _db.session.commit()
        return cu
    return _enroll


@pytest.fixture()
def make_lesson():
    def _make(role_level="agent", day_number=1, title=None):
        lesson = Lesson(
            role_level=role_level,
            day_number=day_number,
            title=title or f"Lesson {day_number}",
            lesson_text=f"Body of lesson {day_number}.",
            action_text=f"Do thing {day_number}.",
            reflection_question=f"How did thing {day_number} go?",
        )
        _db.session.add(lesson)
        _db.session.commit()
        return lesson
    return _make
