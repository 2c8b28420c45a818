"""
Pytest fixtures for labloan tests.

Provides an in-memory database, a deterministic clock, a recording notifier,
material factories and bearer-token headers per role.
"""

from datetime import date, datetime

import pytest

from labloan import create_app
from labloan.categories import MaterialRef
from labloan.extensions import db
from labloan.services import stock_ledger
from labloan.services.concurrency import atomic
from labloan.services.identity_service import Identity
from labloan.time_utils import FixedClock


START = datetime(2025, 3, 10, 9, 0, 0)
PICKUP = date(2025, 3, 12)
RETURN_DUE = date(2025, 3, 14)


class RecordingNotifier:
    """Keeps every notification in memory; can be told to fail."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def notify(self, user_id, kind, message):
        if self.fail:
            raise RuntimeError("notification backend down")
        self.sent.append((user_id, kind, message))

    def kinds_for(self, user_id):
        return [kind for uid, kind, _ in self.sent if uid == user_id]

    def reset(self):
        self.sent.clear()
        self.fail = False


_clock = FixedClock(START)
_notifier = RecordingNotifier()


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SECRET_KEY': 'test-secret',
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SCHEDULER_ENABLED': False,
        },
        notifier=_notifier,
        clock=_clock,
    )

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function', autouse=True)
def clock():
    """Clock frozen at 2025-03-10 09:00 UTC at the start of every test."""
    _clock.set(START)
    return _clock


@pytest.fixture(scope='function', autouse=True)
def notifier():
    _notifier.reset()
    yield _notifier
    _notifier.reset()


# =============================================================================
# IDENTITIES
# =============================================================================


@pytest.fixture
def student():
    return Identity(user_id=101, role="student", name="Ana Ruiz")


@pytest.fixture
def other_student():
    return Identity(user_id=102, role="student", name="Luis Peña")


@pytest.fixture
def instructor():
    return Identity(user_id=201, role="instructor", name="Dr. Salas")


@pytest.fixture
def storekeeper():
    return Identity(user_id=301, role="storekeeper", stock_access=True)


@pytest.fixture
def storekeeper_readonly():
    return Identity(user_id=302, role="storekeeper", stock_access=False)


@pytest.fixture
def admin():
    return Identity(user_id=401, role="admin")


@pytest.fixture
def headers_for(app):
    """Build Authorization headers for an Identity."""
    resolver = app.extensions["labloan"]["identity_resolver"]

    def _headers(identity):
        return {"Authorization": f"Bearer {resolver.issue(identity)}"}

    return _headers


# =============================================================================
# MATERIALS
# =============================================================================


@pytest.fixture
def make_material(db_session):
    """Register a material with opening stock; returns its MaterialRef."""

    def _make(category, name, quantity):
        with atomic(db_session):
            material = stock_ledger.create_material(db_session, category, name, quantity)
            ref = MaterialRef(category, material.id)
        return ref

    return _make


@pytest.fixture
def ethanol(make_material):
    """liquid: 100 ml"""
    return make_material("liquid", "Ethanol 96%", 100)


@pytest.fixture
def sodium_chloride(make_material):
    """solid: 500 g"""
    return make_material("solid", "Sodium chloride", 500)


@pytest.fixture
def microscope(make_material):
    """equipment: 2 units"""
    return make_material("equipment", "Microscope", 2)


@pytest.fixture
def beaker(make_material):
    """lab_item: 10 units"""
    return make_material("lab_item", "Beaker 250 ml", 10)
