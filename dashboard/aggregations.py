"""
Transport Tracker Dashboard - Data Aggregation Layer
Driver performance, daily overview and CSV export built on stored sessions.
"""

from dataclasses import asdict
from datetime import date, timedelta
from typing import Dict, List, Optional

import pandas as pd

from database.db import SqliteSessionStore, get_user, list_users
from tracker.clock import get_local_date
from tracker.metrics import calculate_time_metrics, calculate_totals, session_performance, summarize_performance
from tracker.models import Session, SessionStatus

EXPORT_COLUMNS = [
    'date', 'driver', 'route_number', 'status', 'start_time', 'end_time',
    'positive_deliveries', 'negative_deliveries', 'deliveries',
    'positive_pickups', 'negative_pickups', 'pickups',
    'delivery_comments', 'pickup_comments',
    'start_km', 'end_km', 'total_km',
    'work_hours', 'break_hours', 'total_hours',
]


def sessions_frame(sessions: List[Session], driver_names: Optional[Dict] = None) -> pd.DataFrame:
    """One row per session with its derived metrics."""
    driver_names = driver_names or {}
    rows = []
    for session in sessions:
        perf = asdict(session_performance(session))
        totals = calculate_totals(session)
        perf.update({
            'driver_id': session.driver_id,
            'driver': driver_names.get(session.driver_id, str(session.driver_id)),
            'status': session.status.value,
            'start_time': session.start_time.isoformat() if session.start_time else None,
            'end_time': session.end_time.isoformat() if session.end_time else None,
            'deliveries': totals.deliveries,
            'pickups': totals.pickups,
            'delivery_comments': session.delivery_comments,
            'pickup_comments': session.pickup_comments,
            'start_km': session.start_km,
            'end_km': session.end_km,
        })
        rows.append(perf)

    if not rows:
        return pd.DataFrame(columns=EXPORT_COLUMNS + ['driver_id', 'session_id'])
    return pd.DataFrame(rows)


def _records(frame: pd.DataFrame) -> List[Dict]:
    """JSON-safe rows (NaN becomes None)."""
    return frame.astype(object).where(frame.notna(), None).to_dict(orient='records')


def _driver_names() -> Dict:
    return {u['id']: u['name'] for u in list_users()}


# ============================================
# DRIVER PERFORMANCE
# ============================================

def get_driver_performance(store: SqliteSessionStore, driver_id: int, days: int = 30,
                           end_date: date = None) -> Dict:
    """Totals and per-day rows for a driver over the last N days."""
    end_date = end_date or get_local_date()
    start_date = end_date - timedelta(days=days - 1)
    sessions = store.list_sessions(driver_id=driver_id, start_date=start_date, end_date=end_date)

    driver = get_user(driver_id)
    if driver:
        driver.pop('password_hash', None)

    frame = sessions_frame(sessions)
    return {
        'driver': driver,
        'start': str(start_date),
        'end': str(end_date),
        'summary': summarize_performance(sessions).to_dict(),
        'sessions': _records(frame.drop(columns=['driver', 'driver_id'], errors='ignore')),
    }


# ============================================
# DAILY OVERVIEW (ADMIN)
# ============================================

def get_daily_overview(store: SqliteSessionStore, day: date = None) -> Dict:
    """Status counts and per-driver rows for one calendar day."""
    day = day or get_local_date()
    sessions = store.list_sessions(start_date=day, end_date=day)
    frame = sessions_frame(sessions, _driver_names())

    status_counts = {status.value: 0 for status in SessionStatus if status != SessionStatus.NOT_STARTED}
    if not frame.empty:
        for status, count in frame.groupby('status').size().items():
            status_counts[status] = int(count)

    total_break_hours = 0.0
    for session in sessions:
        total_break_hours += calculate_time_metrics(session).break_time

    return {
        'date': str(day),
        'status_counts': status_counts,
        'total_deliveries': int(frame['deliveries'].sum()) if not frame.empty else 0,
        'total_pickups': int(frame['pickups'].sum()) if not frame.empty else 0,
        'total_km': round(float(frame['total_km'].fillna(0).sum()), 1) if not frame.empty else 0.0,
        'total_break_hours': round(total_break_hours, 2),
        'sessions': _records(frame),
    }


# ============================================
# EXPORT
# ============================================

def export_sessions_csv(store: SqliteSessionStore, start_date: date, end_date: date,
                        driver_id: int = None) -> str:
    """CSV of sessions in a date range, oldest first."""
    sessions = store.list_sessions(driver_id=driver_id, start_date=start_date, end_date=end_date)
    frame = sessions_frame(sessions, _driver_names())
    if not frame.empty:
        frame = frame.sort_values(['date', 'driver'])
    return frame.reindex(columns=EXPORT_COLUMNS).to_csv(index=False)
