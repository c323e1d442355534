"""
Transport Tracker - Session Metrics
Work/break/total time and delivery/pickup/distance totals.
"""

from dataclasses import dataclass, asdict, replace
from typing import Dict, Iterable, List, Optional

from tracker.models import Session, DerivedTotals
from tracker.validation import as_number

SECONDS_PER_HOUR = 60 * 60
DISTANCE_DECIMALS = 2


@dataclass
class TimeMetrics:
    """Durations of one session, in fractional hours."""
    total_time: float = 0.0
    break_time: float = 0.0
    work_time: float = 0.0

    def to_dict(self) -> Dict:
        return asdict(self)


def calculate_time_metrics(session: Session) -> TimeMetrics:
    """Total, break and work time. All zero until the day has both a start and an end."""
    if session.start_time is None or session.end_time is None:
        return TimeMetrics()

    total_seconds = (session.end_time - session.start_time).total_seconds()
    break_seconds = sum(
        (brk.end - brk.start).total_seconds()
        for brk in session.breaks
        if brk.is_complete
    )
    work_seconds = total_seconds - break_seconds

    return TimeMetrics(
        total_time=total_seconds / SECONDS_PER_HOUR,
        break_time=break_seconds / SECONDS_PER_HOUR,
        work_time=work_seconds / SECONDS_PER_HOUR,
    )


def calculate_distance(start_km: Optional[float], end_km: Optional[float]) -> Optional[float]:
    """Distance driven rounded to two decimals, None when a reading is missing or not a number."""
    start, end = as_number(start_km), as_number(end_km)
    if start is None or end is None:
        return None
    return round(end - start, DISTANCE_DECIMALS)


def calculate_totals(session: Session) -> DerivedTotals:
    """Derive delivery, pickup and distance totals from the signed values."""
    return DerivedTotals(
        deliveries=(session.positive_deliveries or 0) + (session.negative_deliveries or 0),
        pickups=(session.positive_pickups or 0) + (session.negative_pickups or 0),
        total_km=calculate_distance(session.start_km, session.end_km),
    )


def with_totals(session: Session) -> Session:
    """Copy of the session with its derived totals recomputed."""
    return replace(session, totals=calculate_totals(session))


# ============================================
# MULTI-SESSION PERFORMANCE
# ============================================

@dataclass
class SessionPerformance:
    """Per-day row of a driver's performance report."""
    session_id: object
    date: str
    route_number: Optional[str]
    positive_deliveries: int
    negative_deliveries: int
    positive_pickups: int
    negative_pickups: int
    work_hours: float
    break_hours: float
    total_hours: float
    total_km: Optional[float]


@dataclass
class PerformanceSummary:
    """Aggregate performance over a set of sessions."""
    total_deliveries: int = 0
    total_positive_deliveries: int = 0
    total_negative_deliveries: int = 0
    total_pickups: int = 0
    total_positive_pickups: int = 0
    total_negative_pickups: int = 0
    total_work_hours: float = 0.0
    total_break_hours: float = 0.0
    total_hours: float = 0.0
    avg_work_hours: float = 0.0
    avg_break_hours: float = 0.0
    total_km: float = 0.0
    total_days: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


def session_performance(session: Session) -> SessionPerformance:
    metrics = calculate_time_metrics(session)
    totals = calculate_totals(session)
    return SessionPerformance(
        session_id=session.id,
        date=session.date.isoformat(),
        route_number=session.route_number,
        positive_deliveries=session.positive_deliveries or 0,
        negative_deliveries=session.negative_deliveries or 0,
        positive_pickups=session.positive_pickups or 0,
        negative_pickups=session.negative_pickups or 0,
        work_hours=round(metrics.work_time, 2),
        break_hours=round(metrics.break_time, 2),
        total_hours=round(metrics.total_time, 2),
        total_km=totals.total_km,
    )


def summarize_performance(sessions: Iterable[Session]) -> PerformanceSummary:
    """Sum counters, hours and distance over sessions; averages are per day."""
    rows: List[SessionPerformance] = [session_performance(s) for s in sessions]
    if not rows:
        return PerformanceSummary()

    summary = PerformanceSummary(total_days=len(rows))
    for row in rows:
        summary.total_positive_deliveries += row.positive_deliveries
        summary.total_negative_deliveries += row.negative_deliveries
        summary.total_positive_pickups += row.positive_pickups
        summary.total_negative_pickups += row.negative_pickups
        summary.total_work_hours += row.work_hours
        summary.total_break_hours += row.break_hours
        summary.total_hours += row.total_hours
        summary.total_km += row.total_km or 0

    summary.total_deliveries = summary.total_positive_deliveries + summary.total_negative_deliveries
    summary.total_pickups = summary.total_positive_pickups + summary.total_negative_pickups
    summary.avg_work_hours = round(summary.total_work_hours / summary.total_days, 1)
    summary.avg_break_hours = round(summary.total_break_hours / summary.total_days, 1)
    summary.total_work_hours = round(summary.total_work_hours, 1)
    summary.total_break_hours = round(summary.total_break_hours, 1)
    summary.total_hours = round(summary.total_hours, 1)
    summary.total_km = round(summary.total_km, 1)
    return summary
