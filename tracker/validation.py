"""
Transport Tracker - Session Validation
Collects every rule a session breaks before it may be persisted.
"""

import math
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from tracker.models import Break, Session, SessionStatus

MILEAGE_NOT_NUMERIC = 'Mileage values must be valid numbers'
MILEAGE_ORDER = 'Ending KM must be greater than starting KM'
NEGATIVE_DELIVERIES = 'Delivery counts cannot be negative'
NEGATIVE_PICKUPS = 'Pickup counts cannot be negative'
MULTIPLE_OPEN_BREAKS = 'Only one break can be open at a time'
SESSION_TIME_ORDER = 'End time must be after start time'
ON_BREAK_WITHOUT_OPEN_BREAK = 'A session on break must have an open break'


def as_number(value) -> Optional[float]:
    """Float value of a reading, or None when it is not a usable number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    else:
        try:
            number = float(Decimal(str(value).strip()))
        except (InvalidOperation, ValueError):
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def intervals_overlap(a: Break, b: Break) -> bool:
    """Strict overlap test. An open break extends indefinitely."""
    if a.start is None or b.start is None:
        return False
    a_before_b_ends = b.end is None or a.start < b.end
    b_before_a_ends = a.end is None or b.start < a.end
    return a_before_b_ends and b_before_a_ends


def _check_mileage(session: Session) -> List[str]:
    if session.start_km is None or session.end_km is None:
        return []

    start_km = as_number(session.start_km)
    end_km = as_number(session.end_km)
    if start_km is None or end_km is None:
        return [MILEAGE_NOT_NUMERIC]
    if end_km < start_km:
        return [MILEAGE_ORDER]
    return []


def _check_session_times(session: Session) -> List[str]:
    if session.start_time is None or session.end_time is None:
        return []
    if session.end_time <= session.start_time:
        return [SESSION_TIME_ORDER]
    return []


def _check_status(session: Session, open_breaks: int) -> List[str]:
    """On break means exactly one open break; any other state means none."""
    if session.status == SessionStatus.ON_BREAK:
        return [] if open_breaks else [ON_BREAK_WITHOUT_OPEN_BREAK]
    if open_breaks:
        return [f'An open break is not allowed when status is {session.status.value}']
    return []


def _check_counts(session: Session) -> List[str]:
    errors = []
    if (session.positive_deliveries or 0) < 0 or (session.negative_deliveries or 0) < 0:
        errors.append(NEGATIVE_DELIVERIES)
    if (session.positive_pickups or 0) < 0 or (session.negative_pickups or 0) < 0:
        errors.append(NEGATIVE_PICKUPS)
    return errors


def _check_break(session: Session, position: int, brk: Break) -> List[str]:
    errors = []
    if brk.is_complete and brk.end <= brk.start:
        errors.append(f'Break {position}: End time must be after start time')

    if session.start_time is not None:
        bounds = [t for t in (brk.start, brk.end) if t is not None]
        before_start = any(t < session.start_time for t in bounds)
        after_end = session.end_time is not None and any(t > session.end_time for t in bounds)
        if before_start or after_end:
            errors.append(f'Break {position}: Break times must be within work period')
    return errors


def _check_overlaps(breaks: List[Break]) -> List[str]:
    errors = []
    for i in range(len(breaks)):
        for j in range(i + 1, len(breaks)):
            if intervals_overlap(breaks[i], breaks[j]):
                errors.append(f'Breaks {i + 1} and {j + 1}: Breaks cannot overlap')
    return errors


def validate_session(session: Session) -> List[str]:
    """
    Validate a candidate session.
    Returns the list of violation messages, empty when the session may be saved.
    """
    errors = []
    errors.extend(_check_session_times(session))
    errors.extend(_check_mileage(session))
    errors.extend(_check_counts(session))

    breaks = session.breaks or []
    for idx, brk in enumerate(breaks):
        errors.extend(_check_break(session, idx + 1, brk))

    open_breaks = sum(1 for brk in breaks if brk.is_open)
    if open_breaks > 1:
        errors.append(MULTIPLE_OPEN_BREAKS)
    errors.extend(_check_status(session, open_breaks))

    errors.extend(_check_overlaps(breaks))
    return errors
