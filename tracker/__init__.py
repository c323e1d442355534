"""
Transport Tracker - Session Engine Package
"""

from .models import (
    AuditEntry,
    Break,
    BreakBound,
    DerivedTotals,
    EndOfDayReport,
    Session,
    SessionStatus,
)
from .metrics import (
    TimeMetrics,
    calculate_time_metrics,
    calculate_totals,
    with_totals,
    summarize_performance,
)
from .validation import validate_session
from .breaks import BreakEditResult, edit_break_time, edit_break_times
from .audit import build_audit_entries, diff_sessions
from .lifecycle import (
    SessionContext,
    SessionService,
    TransitionResult,
    apply_admin_edit,
    edit_break,
    end_break,
    end_day,
    start_break,
    start_day,
)
from .errors import AuditWriteError, StorageError

__all__ = [
    'AuditEntry',
    'Break',
    'BreakBound',
    'DerivedTotals',
    'EndOfDayReport',
    'Session',
    'SessionStatus',
    'TimeMetrics',
    'calculate_time_metrics',
    'calculate_totals',
    'with_totals',
    'summarize_performance',
    'validate_session',
    'BreakEditResult',
    'edit_break_time',
    'edit_break_times',
    'build_audit_entries',
    'diff_sessions',
    'SessionContext',
    'SessionService',
    'TransitionResult',
    'apply_admin_edit',
    'edit_break',
    'end_break',
    'end_day',
    'start_break',
    'start_day',
    'AuditWriteError',
    'StorageError',
]
