"""
Transport Tracker - Form Input Parsing
Turns raw form values (strings from the client) into the strict numeric
types the session engine works with, collecting readable errors.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from tracker.clock import time_on_date
from tracker.models import Break, EndOfDayReport, Session, SessionStatus
from tracker.validation import MILEAGE_ORDER, as_number

MAX_COUNT = 9999
MAX_KM = 9999999
MAX_ROUTE_LENGTH = 50
MAX_COMMENT_LENGTH = 500
HIGH_COUNT_WARNING = 100
ROUTE_PATTERN = re.compile(r'^[a-zA-Z0-9\s\-#]+$')


@dataclass
class FieldResult:
    """Outcome of parsing one form field."""
    is_valid: bool
    error: Optional[str] = None
    value: Any = None


@dataclass
class FormResult:
    """Outcome of parsing a whole form."""
    errors: List[str] = field(default_factory=list)
    clean_data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == '')


def parse_count(value, field_name: str) -> FieldResult:
    """Delivery/pickup counter. Blank means zero."""
    if _is_blank(value):
        return FieldResult(True, value=0)

    number = as_number(value)
    if number is None or number != int(number):
        return FieldResult(False, f'{field_name} must be a valid number', 0)
    number = int(number)
    if number < 0:
        return FieldResult(False, f'{field_name} cannot be negative', 0)
    if number > MAX_COUNT:
        return FieldResult(False, f'{field_name} seems unusually high (max {MAX_COUNT})', 0)
    return FieldResult(True, value=number)


def parse_mileage(value, field_name: str) -> FieldResult:
    """Odometer reading. Blank means not recorded."""
    if _is_blank(value):
        return FieldResult(True, value=None)

    number = as_number(value)
    if number is None:
        return FieldResult(False, f'{field_name} must be a valid number')
    if number < 0:
        return FieldResult(False, f'{field_name} cannot be negative')
    if number > MAX_KM:
        return FieldResult(False, f'{field_name} seems unusually high')
    return FieldResult(True, value=number)


def validate_route_number(route_number) -> FieldResult:
    if _is_blank(route_number):
        return FieldResult(False, 'Route number is required')

    trimmed = str(route_number).strip()
    if len(trimmed) > MAX_ROUTE_LENGTH:
        return FieldResult(False, f'Route number is too long (max {MAX_ROUTE_LENGTH} characters)')
    if not ROUTE_PATTERN.match(trimmed):
        return FieldResult(False, 'Route number contains invalid characters')
    return FieldResult(True, value=trimmed)


def validate_comment(comment, field_name: str) -> FieldResult:
    """Comments are optional; blank becomes None."""
    if _is_blank(comment):
        return FieldResult(True, value=None)

    trimmed = str(comment).strip()
    if len(trimmed) > MAX_COMMENT_LENGTH:
        return FieldResult(False, f'{field_name} is too long (max {MAX_COMMENT_LENGTH} characters)')
    return FieldResult(True, value=trimmed)


def sanitize_text(text) -> str:
    """Strip angle brackets, collapse whitespace, cap length."""
    if not text:
        return ''
    cleaned = re.sub(r'[<>]', '', str(text).strip())
    cleaned = re.sub(r'\s+', ' ', cleaned)
    return cleaned[:MAX_COMMENT_LENGTH]


def comments_recommended(negative_count) -> bool:
    """A failed delivery/pickup should come with a comment."""
    number = as_number(negative_count)
    return number is not None and number > 0


# (form key, label)
_COUNT_FIELDS = [
    ('positive_deliveries', 'Positive deliveries'),
    ('negative_deliveries', 'Negative deliveries'),
    ('positive_pickups', 'Positive pickups'),
    ('negative_pickups', 'Negative pickups'),
]
_COMMENT_FIELDS = [
    ('delivery_comments', 'Delivery comments'),
    ('pickup_comments', 'Pickup comments'),
]


def parse_end_of_day_form(form: Dict[str, Any], start_km=None) -> FormResult:
    """
    Validate the end-of-day form.
    `start_km` is the reading recorded at start of day, used for the ordering check.
    """
    result = FormResult()

    route = validate_route_number(form.get('route_number'))
    if route.is_valid:
        result.clean_data['route_number'] = route.value
    else:
        result.errors.append(route.error)

    for key, label in _COUNT_FIELDS:
        parsed = parse_count(form.get(key), label)
        if parsed.is_valid:
            result.clean_data[key] = parsed.value
        else:
            result.errors.append(parsed.error)

    for key, label in _COMMENT_FIELDS:
        parsed = validate_comment(sanitize_text(form.get(key)), label)
        if parsed.is_valid:
            result.clean_data[key] = parsed.value
        else:
            result.errors.append(parsed.error)

    end_km = parse_mileage(form.get('end_km'), 'Ending KM')
    if end_km.is_valid:
        result.clean_data['end_km'] = end_km.value
    else:
        result.errors.append(end_km.error)

    if start_km is not None and result.clean_data.get('end_km') is not None:
        if start_km >= result.clean_data['end_km']:
            result.errors.append(MILEAGE_ORDER)

    return result


def report_from_form(result: FormResult) -> EndOfDayReport:
    data = result.clean_data
    return EndOfDayReport(
        route_number=data.get('route_number'),
        positive_deliveries=data.get('positive_deliveries', 0),
        negative_deliveries=data.get('negative_deliveries', 0),
        positive_pickups=data.get('positive_pickups', 0),
        negative_pickups=data.get('negative_pickups', 0),
        delivery_comments=data.get('delivery_comments'),
        pickup_comments=data.get('pickup_comments'),
        end_km=data.get('end_km'),
    )


def field_warning(field_name: str, value, context: Optional[Dict] = None) -> Optional[str]:
    """Advisory warning for an otherwise valid value."""
    context = context or {}
    if field_name in dict(_COUNT_FIELDS):
        parsed = parse_count(value, field_name)
        if parsed.is_valid and parsed.value > HIGH_COUNT_WARNING:
            return 'This seems like a high number. Please double-check.'
    elif field_name == 'end_km':
        parsed = parse_mileage(value, field_name)
        start_km = as_number(context.get('start_km'))
        if parsed.is_valid and parsed.value is not None and start_km is not None:
            distance = parsed.value - start_km
            if distance > 1000:
                return 'Distance driven seems very high. Please verify.'
            if distance < 1:
                return 'Very short distance. Is this correct?'
    return None


def end_of_day_notices(form: Dict[str, Any], start_km=None) -> Dict[str, Any]:
    """Advisory warnings per field and which comment boxes should be filled in."""
    warnings = {}
    for key, _ in _COUNT_FIELDS:
        warning = field_warning(key, form.get(key))
        if warning:
            warnings[key] = warning
    warning = field_warning('end_km', form.get('end_km'), {'start_km': start_km})
    if warning:
        warnings['end_km'] = warning

    return {
        'warnings': warnings,
        'comments_recommended': {
            'delivery_comments': comments_recommended(form.get('negative_deliveries')),
            'pickup_comments': comments_recommended(form.get('negative_pickups')),
        },
    }


def format_errors(errors: List[str]) -> str:
    """Single message for display."""
    if not errors:
        return ''
    if len(errors) == 1:
        return errors[0]
    return 'Please fix the following issues:\n• ' + '\n• '.join(errors)


def _parse_clock_time(value, session: Session, label: str, result: FormResult):
    try:
        return time_on_date(value, session.date)
    except ValueError:
        result.errors.append(f'{label} must be in HH:MM format')
        return None


def parse_admin_edit_form(form: Dict[str, Any], session: Session) -> FormResult:
    """
    Validate an admin correction of a session. Only keys present in the form
    are changed; times are HH:MM on the session's date.
    """
    result = FormResult()

    if 'route_number' in form:
        route = validate_route_number(sanitize_text(form['route_number']))
        if route.is_valid:
            result.clean_data['route_number'] = route.value
        else:
            result.errors.append(route.error)

    for key, label in _COUNT_FIELDS:
        if key in form:
            parsed = parse_count(form[key], label)
            if parsed.is_valid:
                result.clean_data[key] = parsed.value
            else:
                result.errors.append(parsed.error)

    for key, label in _COMMENT_FIELDS:
        if key in form:
            parsed = validate_comment(sanitize_text(form[key]), label)
            if parsed.is_valid:
                result.clean_data[key] = parsed.value
            else:
                result.errors.append(parsed.error)

    for key, label in (('start_km', 'Starting KM'), ('end_km', 'Ending KM')):
        if key in form:
            parsed = parse_mileage(form[key], label)
            if parsed.is_valid:
                result.clean_data[key] = parsed.value
            else:
                result.errors.append(parsed.error)

    for key, label in (('start_time', 'Start time'), ('end_time', 'End time')):
        if not _is_blank(form.get(key)):
            resolved = _parse_clock_time(form[key], session, label, result)
            if resolved is not None:
                result.clean_data[key] = resolved

    if not _is_blank(form.get('status')):
        try:
            result.clean_data['status'] = SessionStatus(form['status'])
        except ValueError:
            result.errors.append(f"Invalid status: {form['status']}")

    if form.get('breaks') is not None:
        breaks = []
        for idx, item in enumerate(form['breaks']):
            label = f'Break {idx + 1}'
            start = end = None
            if not _is_blank(item.get('start')):
                start = _parse_clock_time(item['start'], session, f'{label} start', result)
            if not _is_blank(item.get('end')):
                end = _parse_clock_time(item['end'], session, f'{label} end', result)
            breaks.append(Break(start=start, end=end))
        result.clean_data['breaks'] = breaks

    return result
