"""
Transport Tracker - Session Lifecycle
Work-day state machine: not-started -> working <-> on-break -> ended.

The module-level transition functions are pure: they take a snapshot and
return a TransitionResult holding either a new snapshot or the guard/
validation errors, never touching the input. SessionService wires them to a
session store:

    store.get_session_for_driver_on(driver_id, day) -> Session | None
    store.save_session(session) -> Session          (raises StorageError)
    store.append_audit_entries(entries) -> None
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from tracker.audit import AUDITED_FIELDS, build_audit_entries
from tracker.breaks import edit_break_times
from tracker.clock import get_local_now
from tracker.errors import AuditWriteError
from tracker.metrics import with_totals
from tracker.models import (
    Break,
    EndOfDayReport,
    Session,
    SessionStatus,
    new_temp_id,
)
from tracker.validation import validate_session

# Guard messages
DAY_IN_PROGRESS = 'A work day is already in progress'
DAY_ALREADY_ENDED = 'Work day has already ended for today'
DAY_NOT_STARTED = 'Start the work day first'
BREAK_IN_PROGRESS = 'A break is already in progress'
NO_OPEN_BREAK = 'No break in progress'
END_BREAK_FIRST = 'End the current break before ending the day'

# Fields an admin may set directly; derived totals are never among them
EDITABLE_FIELDS = set(AUDITED_FIELDS)


def current_state(session: Optional[Session]) -> SessionStatus:
    if session is None:
        return SessionStatus.NOT_STARTED
    return session.status


@dataclass
class TransitionResult:
    """
    Outcome of a lifecycle operation.
    On rejection `session` is the unchanged prior snapshot.
    """
    ok: bool
    session: Optional[Session] = None
    errors: List[str] = field(default_factory=list)

    @property
    def state(self) -> SessionStatus:
        return current_state(self.session)


def _rejected(session: Optional[Session], *errors: str) -> TransitionResult:
    return TransitionResult(ok=False, session=session, errors=list(errors))


def _checked(prior: Optional[Session], candidate: Session) -> TransitionResult:
    """Validate, then recompute totals; a failing candidate leaves the prior snapshot in place."""
    errors = validate_session(candidate)
    if errors:
        return _rejected(prior, *errors)
    return TransitionResult(ok=True, session=with_totals(candidate))


def _guard_state(session: Optional[Session], allowed: SessionStatus, otherwise: str) -> Optional[str]:
    state = current_state(session)
    if state == allowed:
        return None
    if state == SessionStatus.NOT_STARTED:
        return DAY_NOT_STARTED
    if state == SessionStatus.ENDED:
        return DAY_ALREADY_ENDED
    return otherwise


# ============================================
# TRANSITIONS
# ============================================

def start_day(driver_id, existing: Optional[Session], now: datetime,
              start_km: Optional[float] = None) -> TransitionResult:
    """Open a new work day. Only one session per driver per calendar day."""
    if existing is not None:
        if existing.status == SessionStatus.ENDED:
            return _rejected(existing, DAY_ALREADY_ENDED)
        return _rejected(existing, DAY_IN_PROGRESS)

    session = Session(
        id=new_temp_id(),
        driver_id=driver_id,
        date=now.date(),
        start_time=now,
        status=SessionStatus.WORKING,
        start_km=start_km,
    )
    return _checked(None, session)


def start_break(session: Optional[Session], now: datetime) -> TransitionResult:
    error = _guard_state(session, SessionStatus.WORKING, BREAK_IN_PROGRESS)
    if error:
        return _rejected(session, error)
    if session.open_break_index is not None:
        return _rejected(session, BREAK_IN_PROGRESS)

    candidate = replace(
        session,
        status=SessionStatus.ON_BREAK,
        breaks=list(session.breaks) + [Break(start=now)],
    )
    return _checked(session, candidate)


def end_break(session: Optional[Session], now: datetime) -> TransitionResult:
    error = _guard_state(session, SessionStatus.ON_BREAK, NO_OPEN_BREAK)
    if error:
        return _rejected(session, error)
    idx = session.open_break_index
    if idx is None:
        return _rejected(session, NO_OPEN_BREAK)

    breaks = list(session.breaks)
    breaks[idx] = replace(breaks[idx], end=now)
    candidate = replace(session, status=SessionStatus.WORKING, breaks=breaks)
    return _checked(session, candidate)


def end_day(session: Optional[Session], report: EndOfDayReport, now: datetime) -> TransitionResult:
    """Close the day with the driver's end-of-day report."""
    error = _guard_state(session, SessionStatus.WORKING, END_BREAK_FIRST)
    if error:
        return _rejected(session, error)

    candidate = replace(
        session,
        end_time=now,
        status=SessionStatus.ENDED,
        route_number=report.route_number,
        positive_deliveries=report.positive_deliveries or 0,
        negative_deliveries=report.negative_deliveries or 0,
        positive_pickups=report.positive_pickups or 0,
        negative_pickups=report.negative_pickups or 0,
        delivery_comments=report.delivery_comments,
        pickup_comments=report.pickup_comments,
        end_km=report.end_km,
    )
    return _checked(session, candidate)


def edit_break(session: Optional[Session], break_index: int,
               changes: Dict[str, Any]) -> TransitionResult:
    """Retroactively move the bounds of a break, e.g. {'start': '12:05'}."""
    if session is None:
        return _rejected(session, DAY_NOT_STARTED)

    result = edit_break_times(session.breaks, break_index, changes, session)
    if not result.is_valid:
        return _rejected(session, result.error)
    return _checked(session, replace(session, breaks=result.breaks))


def apply_admin_edit(session: Session, changes: Dict[str, Any]) -> TransitionResult:
    """Apply typed field changes from an admin. Status only moves if it is edited."""
    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        return _rejected(session, *[f'Field cannot be edited: {name}' for name in unknown])

    updates = dict(changes)
    if 'status' in updates:
        try:
            updates['status'] = SessionStatus(updates['status'])
        except ValueError:
            return _rejected(session, f"Invalid status: {updates['status']}")
        if updates['status'] == SessionStatus.NOT_STARTED:
            return _rejected(session, f"Invalid status: {updates['status'].value}")
    if 'breaks' in updates:
        updates['breaks'] = list(updates['breaks'])

    return _checked(session, replace(session, **updates))


# ============================================
# ORCHESTRATION
# ============================================

@dataclass
class SessionContext:
    """A driver's loaded session for today, passed into every operation."""
    driver_id: Union[int, str]
    session: Optional[Session] = None

    @property
    def state(self) -> SessionStatus:
        return current_state(self.session)


class SessionService:
    """Runs lifecycle transitions and persists the ones that succeed."""

    def __init__(self, store, clock: Callable[[], datetime] = get_local_now):
        self.store = store
        self.clock = clock

    def load_context(self, driver_id) -> SessionContext:
        """Load today's session for a driver (None before the day starts)."""
        today = self.clock().date()
        return SessionContext(driver_id, self.store.get_session_for_driver_on(driver_id, today))

    def _persist(self, ctx: SessionContext, result: TransitionResult) -> TransitionResult:
        if not result.ok:
            return result
        saved = self.store.save_session(result.session)
        ctx.session = saved
        return replace(result, session=saved)

    def start_day(self, ctx: SessionContext, start_km: Optional[float] = None) -> TransitionResult:
        result = self._persist(ctx, start_day(ctx.driver_id, ctx.session, self.clock(), start_km))
        if result.ok:
            print(f"[Session] Driver {ctx.driver_id} started work day (session {result.session.id})")
        return result

    def start_break(self, ctx: SessionContext) -> TransitionResult:
        return self._persist(ctx, start_break(ctx.session, self.clock()))

    def end_break(self, ctx: SessionContext) -> TransitionResult:
        return self._persist(ctx, end_break(ctx.session, self.clock()))

    def end_day(self, ctx: SessionContext, report: EndOfDayReport) -> TransitionResult:
        result = self._persist(ctx, end_day(ctx.session, report, self.clock()))
        if result.ok:
            print(f"[Session] Driver {ctx.driver_id} ended work day (session {result.session.id})")
        return result

    def edit_break(self, ctx: SessionContext, break_index: int, bound: str, new_time) -> TransitionResult:
        return self.edit_break_times(ctx, break_index, {bound: new_time})

    def edit_break_times(self, ctx: SessionContext, break_index: int,
                         changes: Dict[str, Any]) -> TransitionResult:
        return self._persist(ctx, edit_break(ctx.session, break_index, changes))

    def admin_edit(self, session: Session, changes: Dict[str, Any], admin_id) -> TransitionResult:
        """
        Validate and save an admin edit, then append one audit entry per changed field.
        The audit append is not atomic with the save; if it fails the save stands and
        AuditWriteError is raised.
        """
        result = apply_admin_edit(session, changes)
        if not result.ok:
            return result

        entries = build_audit_entries(session, result.session, admin_id, self.clock())
        saved = self.store.save_session(result.session)

        if entries:
            try:
                self.store.append_audit_entries(entries)
            except Exception as e:
                print(f"[Audit] FAILED to record {len(entries)} edits to session {saved.id} by {admin_id}: {e}")
                raise AuditWriteError(saved, entries, e) from e
            print(f"[Audit] Session {saved.id}: {len(entries)} field(s) edited by {admin_id}")

        return replace(result, session=saved)
