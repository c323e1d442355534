"""
Transport Tracker - Break Editing
Retroactive edits to the bounds of a break, checked against the work period
and every sibling break.
"""

from dataclasses import dataclass, field, replace
from datetime import time
from typing import Dict, List, Optional, Union

from tracker.clock import time_on_date
from tracker.models import Break, BreakBound, Session
from tracker.validation import intervals_overlap

TimeValue = Union[str, time, None]


@dataclass
class BreakEditResult:
    """Outcome of a break edit. `breaks` holds the updated sequence when valid."""
    is_valid: bool
    error: Optional[str] = None
    breaks: List[Break] = field(default_factory=list)


def _reject(message: str) -> BreakEditResult:
    return BreakEditResult(is_valid=False, error=message)


def edit_break_times(breaks: List[Break], break_index: int,
                     changes: Dict[Union[BreakBound, str], TimeValue],
                     session: Session) -> BreakEditResult:
    """
    Move one or both bounds of breaks[break_index] to times of day on the
    session's date. Both bounds are applied before any check runs.
    """
    if not changes or any(not value for value in changes.values()):
        return _reject('Time is required')

    if break_index < 0 or break_index >= len(breaks):
        return _reject('Break not found')

    if not breaks[break_index].is_complete:
        return _reject('Break is still in progress')

    resolved = {}
    for bound, value in changes.items():
        try:
            bound = BreakBound(bound)
        except ValueError:
            return _reject(f'Unknown break field: {bound}')
        try:
            resolved[bound.value] = time_on_date(value, session.date)
        except ValueError:
            return _reject('Time must be in HH:MM format')

    updated = replace(breaks[break_index], **resolved)

    if updated.is_complete and updated.end <= updated.start:
        return _reject('End time must be after start time')

    if session.start_time is not None and session.end_time is not None:
        for moved in resolved.values():
            if moved < session.start_time or moved > session.end_time:
                return _reject('Break time must be within work period')

    for idx, other in enumerate(breaks):
        if idx == break_index:
            continue
        if intervals_overlap(updated, other):
            return _reject(f'Break overlaps with break {idx + 1}')

    new_breaks = list(breaks)
    new_breaks[break_index] = updated
    return BreakEditResult(is_valid=True, breaks=new_breaks)


def edit_break_time(breaks: List[Break], break_index: int, bound: Union[BreakBound, str],
                    new_time: TimeValue, session: Session) -> BreakEditResult:
    """Set the start or end of breaks[break_index] to a time of day on the session's date."""
    return edit_break_times(breaks, break_index, {bound: new_time}, session)
