"""Shared fixtures: local-time factory, in-memory session store and a temporary SQLite database."""

from datetime import date, datetime, time

import pytest

from tracker.clock import LOCAL_TZ
from tracker.models import Break, Session, SessionStatus

DAY = date(2026, 3, 9)


def at(hour, minute=0, day=DAY):
    """Aware local timestamp on the test day."""
    return LOCAL_TZ.localize(datetime.combine(day, time(hour, minute)))


def make_session(**overrides):
    """An ended 08:00-17:00 day with one 12:00-12:45 break."""
    values = dict(
        id=1,
        driver_id=7,
        date=DAY,
        start_time=at(8),
        end_time=at(17),
        status=SessionStatus.ENDED,
        route_number='R1',
        positive_deliveries=40,
        negative_deliveries=2,
        positive_pickups=5,
        negative_pickups=1,
        start_km=100.0,
        end_km=250.5,
        breaks=[Break(at(12), at(12, 45))],
    )
    values.update(overrides)
    return Session(**values)


class FakeClock:
    """Returns scripted timestamps; repeats the last one when exhausted."""

    def __init__(self, *times):
        self.times = list(times)

    def __call__(self):
        if len(self.times) > 1:
            return self.times.pop(0)
        return self.times[0]


class InMemorySessionStore:
    """Dict-backed store with the same interface as SqliteSessionStore."""

    def __init__(self, fail_audit=False):
        self.sessions = {}
        self.audit_entries = []
        self.fail_audit = fail_audit
        self.next_id = 1

    def get_session(self, session_id):
        session = self.sessions.get(session_id)
        return session.copy() if session else None

    def get_session_for_driver_on(self, driver_id, day):
        for session in self.sessions.values():
            if session.driver_id == driver_id and session.date == day:
                return session.copy()
        return None

    def save_session(self, session):
        session = session.copy()
        if session.is_temporary:
            session.id = self.next_id
            self.next_id += 1
        self.sessions[session.id] = session
        return session.copy()

    def append_audit_entries(self, entries):
        if self.fail_audit:
            raise RuntimeError('audit table unavailable')
        self.audit_entries.extend(entries)


@pytest.fixture
def memory_store():
    return InMemorySessionStore()


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh SQLite database file per test."""
    import database.db as db_module

    monkeypatch.setattr(db_module, 'DB_FILE', str(tmp_path / 'tracker.db'))
    db_module.init_database()
    return db_module


@pytest.fixture
def driver_id(db):
    from dashboard.auth import hash_password
    return db.create_user('Dana Driver', 'dana', hash_password('secret'), 'driver')


@pytest.fixture
def admin_id(db):
    from dashboard.auth import hash_password
    return db.create_user('Alex Admin', 'alex', hash_password('admin-pass'), 'admin')
