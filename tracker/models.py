"""
Transport Tracker - Data Model
Session, Break and AuditEntry records plus their storage serialisation.
"""

import json
import time
from copy import deepcopy
from dataclasses import dataclass, field, asdict
from datetime import datetime, date
from enum import Enum
from typing import Dict, List, Optional, Union, Any


# ============================================
# ENUMS
# ============================================

class SessionStatus(str, Enum):
    """Lifecycle state of a driver's work day."""
    NOT_STARTED = 'not-started'
    WORKING = 'working'
    ON_BREAK = 'on-break'
    ENDED = 'ended'


class BreakBound(str, Enum):
    """Which end of a break is being edited."""
    START = 'start'
    END = 'end'


TEMP_ID_PREFIX = 'temp-'


def new_temp_id() -> str:
    """Placeholder id used before the first successful save."""
    return f"{TEMP_ID_PREFIX}{int(time.time() * 1000)}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_ts(value: Union[str, datetime, None]) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


# ============================================
# DATA CLASSES
# ============================================

@dataclass
class Break:
    """A rest interval inside a session. `end` is None while the break is ongoing."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.start is not None and self.end is None

    @property
    def is_complete(self) -> bool:
        return self.start is not None and self.end is not None

    def to_dict(self) -> Dict:
        return {'start': _iso(self.start), 'end': _iso(self.end)}

    @classmethod
    def from_dict(cls, data: Dict) -> 'Break':
        return cls(start=_parse_ts(data.get('start')), end=_parse_ts(data.get('end')))


def serialize_breaks(breaks: List[Break]) -> str:
    """Serialise a break sequence as a JSON list of {start, end} pairs."""
    return json.dumps([b.to_dict() for b in breaks])


def deserialize_breaks(raw: Union[str, List, None]) -> List[Break]:
    if not raw:
        return []
    items = json.loads(raw) if isinstance(raw, str) else raw
    return [Break.from_dict(item) for item in items]


@dataclass
class DerivedTotals:
    """Totals recomputed from the signed counters and odometer readings.

    total_km is None when either odometer reading is missing.
    """
    deliveries: int = 0
    pickups: int = 0
    total_km: Optional[float] = None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class EndOfDayReport:
    """Values a driver submits when ending the day."""
    route_number: Optional[str] = None
    positive_deliveries: int = 0
    negative_deliveries: int = 0
    positive_pickups: int = 0
    negative_pickups: int = 0
    delivery_comments: Optional[str] = None
    pickup_comments: Optional[str] = None
    end_km: Optional[float] = None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Session:
    """One driver's work day."""
    id: Union[int, str]
    driver_id: Union[int, str]
    date: date
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: SessionStatus = SessionStatus.WORKING
    route_number: Optional[str] = None
    positive_deliveries: int = 0
    negative_deliveries: int = 0
    positive_pickups: int = 0
    negative_pickups: int = 0
    delivery_comments: Optional[str] = None
    pickup_comments: Optional[str] = None
    start_km: Optional[float] = None
    end_km: Optional[float] = None
    breaks: List[Break] = field(default_factory=list)
    totals: DerivedTotals = field(default_factory=DerivedTotals)

    @property
    def is_temporary(self) -> bool:
        return isinstance(self.id, str) and self.id.startswith(TEMP_ID_PREFIX)

    @property
    def open_break_index(self) -> Optional[int]:
        """Index of the most recent open break, if any."""
        for idx in range(len(self.breaks) - 1, -1, -1):
            if self.breaks[idx].is_open:
                return idx
        return None

    def copy(self) -> 'Session':
        return deepcopy(self)

    def to_record(self) -> Dict[str, Any]:
        """Flatten to the persisted shape (timestamps kept as datetimes)."""
        return {
            'id': self.id,
            'user_id': self.driver_id,
            'session_date': self.date,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'status': self.status.value,
            'route_number': self.route_number,
            'positive_deliveries': self.positive_deliveries,
            'negative_deliveries': self.negative_deliveries,
            'positive_pickups': self.positive_pickups,
            'negative_pickups': self.negative_pickups,
            'delivery_comments': self.delivery_comments,
            'pickup_comments': self.pickup_comments,
            'start_km': self.start_km,
            'end_km': self.end_km,
            'deliveries': self.totals.deliveries,
            'pickups': self.totals.pickups,
            'total_km': self.totals.total_km,
            'breaks': serialize_breaks(self.breaks),
        }

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> 'Session':
        session_date = row['session_date']
        if isinstance(session_date, str):
            session_date = date.fromisoformat(session_date)
        return cls(
            id=row['id'],
            driver_id=row['user_id'],
            date=session_date,
            start_time=_parse_ts(row.get('start_time')),
            end_time=_parse_ts(row.get('end_time')),
            status=SessionStatus(row['status']),
            route_number=row.get('route_number'),
            positive_deliveries=row.get('positive_deliveries') or 0,
            negative_deliveries=row.get('negative_deliveries') or 0,
            positive_pickups=row.get('positive_pickups') or 0,
            negative_pickups=row.get('negative_pickups') or 0,
            delivery_comments=row.get('delivery_comments'),
            pickup_comments=row.get('pickup_comments'),
            start_km=row.get('start_km'),
            end_km=row.get('end_km'),
            breaks=deserialize_breaks(row.get('breaks')),
            totals=DerivedTotals(
                deliveries=row.get('deliveries') or 0,
                pickups=row.get('pickups') or 0,
                total_km=row.get('total_km'),
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view for API responses."""
        record = self.to_record()
        record['driver_id'] = record.pop('user_id')
        record['date'] = self.date.isoformat()
        record['start_time'] = _iso(self.start_time)
        record['end_time'] = _iso(self.end_time)
        record['breaks'] = [b.to_dict() for b in self.breaks]
        del record['session_date']
        return record


@dataclass(frozen=True)
class AuditEntry:
    """One field-level change made by an admin. Values are stored as text."""
    session_id: Union[int, str]
    edited_by: Union[int, str]
    field_name: str
    old_value: Optional[str]
    new_value: Optional[str]
    edited_at: datetime

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['edited_at'] = _iso(self.edited_at)
        return data
