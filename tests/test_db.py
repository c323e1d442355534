"""SQLite session store."""

from datetime import date

import pytest

from conftest import DAY, at, make_session
from tracker.audit import build_audit_entries
from tracker.clock import get_local_date, get_local_now
from tracker.errors import StorageError
from tracker.models import Break, SessionStatus


@pytest.fixture
def store(db):
    return db.SqliteSessionStore()


def test_insert_assigns_id_and_totals(store, driver_id):
    saved = store.save_session(make_session(id='temp-1', driver_id=driver_id))

    assert isinstance(saved.id, int)
    assert not saved.is_temporary
    assert saved.totals.deliveries == 42
    assert saved.totals.total_km == 150.5

    loaded = store.get_session(saved.id)
    assert loaded.start_time == at(8)
    assert loaded.end_time == at(17)
    assert loaded.date == DAY
    assert loaded.status == SessionStatus.ENDED
    assert loaded.breaks == [Break(at(12), at(12, 45))]


def test_update_existing(store, driver_id):
    saved = store.save_session(make_session(id='temp-1', driver_id=driver_id))
    saved.positive_pickups = 9

    updated = store.save_session(saved)

    assert updated.id == saved.id
    assert updated.totals.pickups == 10


def test_update_missing_session(store, driver_id):
    with pytest.raises(StorageError):
        store.save_session(make_session(id=999, driver_id=driver_id))


def test_one_session_per_driver_per_day(store, driver_id):
    store.save_session(make_session(id='temp-1', driver_id=driver_id))

    with pytest.raises(StorageError):
        store.save_session(make_session(id='temp-2', driver_id=driver_id))


def test_session_for_driver_on_date(store, driver_id):
    store.save_session(make_session(id='temp-1', driver_id=driver_id))

    assert store.get_session_for_driver_on(driver_id, DAY) is not None
    assert store.get_session_for_driver_on(driver_id, date(2026, 3, 10)) is None


def test_open_session_for_today(store, driver_id):
    today = get_local_date()
    now = get_local_now()
    store.save_session(make_session(id='temp-1', driver_id=driver_id, date=today,
                                    start_time=now, end_time=None, breaks=[],
                                    status=SessionStatus.WORKING))

    session = store.load_open_session_for_driver_today(driver_id)

    assert session is not None
    assert session.status == SessionStatus.WORKING


def test_list_sessions_newest_first(store, driver_id, admin_id):
    for day in (date(2026, 3, 7), date(2026, 3, 9), date(2026, 3, 8)):
        store.save_session(make_session(id='temp-1', driver_id=driver_id, date=day, breaks=[]))

    sessions = store.list_sessions(driver_id=driver_id, start_date=date(2026, 3, 8))

    assert [s.date for s in sessions] == [date(2026, 3, 9), date(2026, 3, 8)]
    assert store.list_sessions(driver_id=admin_id) == []


def test_audit_history(store, driver_id, admin_id):
    before = store.save_session(make_session(id='temp-1', driver_id=driver_id))
    after = make_session(id=before.id, driver_id=driver_id, route_number='R2', end_km=300.0)
    store.append_audit_entries(build_audit_entries(before, after, admin_id, at(18)))

    history = store.get_session_history(before.id)

    assert {h['field_name'] for h in history} == {'route_number', 'end_km'}
    assert history[0]['editor_name'] == 'Alex Admin'

    audit = store.get_audit_history(editor_id=admin_id)
    assert len(audit) == 2
    assert audit[0]['driver_name'] == 'Dana Driver'
    assert store.get_audit_history(editor_id=driver_id) == []

    stats = store.get_edit_statistics()
    assert stats['total_edits'] == 2
    assert stats['admin_edit_counts'][0]['count'] == 2


def test_users(db, driver_id, admin_id):
    drivers = db.list_users('driver')

    assert [u['username'] for u in drivers] == ['dana']
    assert 'password_hash' not in drivers[0]
    assert db.get_user_by_username('alex')['role'] == 'admin'
    assert db.get_user(999) is None
