"""
Transport Tracker - Audit Trail
Field-level diff between two session snapshots, one entry per changed field.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Tuple

from tracker.clock import get_local_now
from tracker.models import AuditEntry, Session, serialize_breaks

# Fields an admin may change, in the order entries are emitted
AUDITED_FIELDS = [
    'route_number',
    'positive_deliveries',
    'negative_deliveries',
    'positive_pickups',
    'negative_pickups',
    'delivery_comments',
    'pickup_comments',
    'start_km',
    'end_km',
    'start_time',
    'end_time',
    'status',
    'breaks',
]


def serialize_value(value: Any) -> Optional[str]:
    """Text form of a field value as stored in the audit log."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, list):
        return serialize_breaks(value)
    return str(value)


def diff_sessions(before: Session, after: Session) -> List[Tuple[str, Optional[str], Optional[str]]]:
    """(field, old, new) for every audited field whose serialised value differs."""
    changes = []
    for field_name in AUDITED_FIELDS:
        old_value = serialize_value(getattr(before, field_name))
        new_value = serialize_value(getattr(after, field_name))
        if old_value != new_value:
            changes.append((field_name, old_value, new_value))
    return changes


def build_audit_entries(before: Session, after: Session, edited_by,
                        edited_at: Optional[datetime] = None) -> List[AuditEntry]:
    """Audit entries for an admin edit. Empty when nothing changed."""
    edited_at = edited_at or get_local_now()
    return [
        AuditEntry(
            session_id=before.id,
            edited_by=edited_by,
            field_name=field_name,
            old_value=old_value,
            new_value=new_value,
            edited_at=edited_at,
        )
        for field_name, old_value, new_value in diff_sessions(before, after)
    ]
