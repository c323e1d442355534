"""Pandas aggregations over stored sessions."""

from datetime import date

import pytest

from conftest import DAY, make_session
from dashboard.aggregations import (
    EXPORT_COLUMNS,
    export_sessions_csv,
    get_daily_overview,
    get_driver_performance,
    sessions_frame,
)


@pytest.fixture
def store(db, driver_id):
    store = db.SqliteSessionStore()
    store.save_session(make_session(id='temp-1', driver_id=driver_id))
    store.save_session(make_session(id='temp-2', driver_id=driver_id, date=date(2026, 3, 8),
                                    start_km=None, breaks=[]))
    return store


def test_sessions_frame_has_metrics():
    frame = sessions_frame([make_session()], {7: 'Dana'})

    row = frame.iloc[0]
    assert row['driver'] == 'Dana'
    assert row['work_hours'] == 8.25
    assert row['deliveries'] == 42


def test_empty_frame_keeps_columns():
    frame = sessions_frame([])

    assert frame.empty
    assert set(EXPORT_COLUMNS) <= set(frame.columns)


def test_daily_overview(store):
    overview = get_daily_overview(store, DAY)

    assert overview['status_counts'] == {'working': 0, 'on-break': 0, 'ended': 1}
    assert overview['total_deliveries'] == 42
    assert overview['total_km'] == 150.5
    assert overview['total_break_hours'] == 0.75


def test_driver_performance_handles_unknown_distance(store, driver_id):
    report = get_driver_performance(store, driver_id, days=7, end_date=DAY)

    assert report['summary']['total_days'] == 2
    assert report['summary']['total_km'] == 150.5
    assert [row['total_km'] for row in report['sessions']] == [150.5, None]
    assert 'password_hash' not in report['driver']


def test_export_is_oldest_first(store):
    csv_text = export_sessions_csv(store, date(2026, 3, 1), date(2026, 3, 31))

    lines = csv_text.strip().splitlines()
    assert lines[0].split(',') == EXPORT_COLUMNS
    assert lines[1].startswith('2026-03-08,Dana Driver')
    assert lines[2].startswith('2026-03-09,Dana Driver')
