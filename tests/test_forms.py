"""Form input parsing for the end-of-day report and admin corrections."""

from conftest import at, make_session
from tracker.forms import (
    MAX_COUNT,
    comments_recommended,
    end_of_day_notices,
    field_warning,
    format_errors,
    parse_admin_edit_form,
    parse_count,
    parse_end_of_day_form,
    parse_mileage,
    report_from_form,
    sanitize_text,
    validate_route_number,
)
from tracker.models import Break, SessionStatus
from tracker.validation import MILEAGE_ORDER


def end_of_day_form(**overrides):
    form = {
        'route_number': 'R-12',
        'positive_deliveries': '38',
        'negative_deliveries': '2',
        'positive_pickups': '6',
        'negative_pickups': '',
        'delivery_comments': '  Two customers absent ',
        'pickup_comments': None,
        'end_km': '1250.5',
    }
    form.update(overrides)
    return form


def test_valid_end_of_day_form():
    result = parse_end_of_day_form(end_of_day_form(), start_km=1100)

    assert result.is_valid
    report = report_from_form(result)
    assert report.route_number == 'R-12'
    assert report.positive_deliveries == 38
    assert report.negative_pickups == 0
    assert report.delivery_comments == 'Two customers absent'
    assert report.pickup_comments is None
    assert report.end_km == 1250.5


def test_end_of_day_errors_are_collected():
    result = parse_end_of_day_form(end_of_day_form(route_number='', positive_deliveries='-1',
                                                   end_km='lots'))

    assert not result.is_valid
    assert 'Route number is required' in result.errors
    assert 'Positive deliveries cannot be negative' in result.errors
    assert 'Ending KM must be a valid number' in result.errors


def test_end_km_must_exceed_start_km():
    result = parse_end_of_day_form(end_of_day_form(end_km='1000'), start_km=1100)

    assert result.errors == [MILEAGE_ORDER]


def test_end_of_day_comments_are_sanitized():
    result = parse_end_of_day_form(end_of_day_form(delivery_comments='Dog  <b>at gate</b>'), start_km=1100)

    assert result.clean_data['delivery_comments'] == 'Dog bat gate/b'


def test_end_of_day_notices():
    notices = end_of_day_notices(end_of_day_form(positive_deliveries='150', end_km='1100.5'), start_km=1100)

    assert notices['warnings'] == {
        'positive_deliveries': 'This seems like a high number. Please double-check.',
        'end_km': 'Very short distance. Is this correct?',
    }
    assert notices['comments_recommended'] == {'delivery_comments': True, 'pickup_comments': False}


def test_parse_count():
    assert parse_count('', 'Pickups').value == 0
    assert parse_count('12', 'Pickups').value == 12
    assert parse_count(12.0, 'Pickups').value == 12
    assert parse_count('1.5', 'Pickups').error == 'Pickups must be a valid number'
    assert not parse_count(str(MAX_COUNT + 1), 'Pickups').is_valid


def test_parse_mileage():
    assert parse_mileage(None, 'Starting KM').value is None
    assert parse_mileage(' 12.75 ', 'Starting KM').value == 12.75
    assert parse_mileage('-4', 'Starting KM').error == 'Starting KM cannot be negative'


def test_route_number_rules():
    assert validate_route_number(' #42 ').value == '#42'
    assert validate_route_number('R1; DROP').error == 'Route number contains invalid characters'
    assert not validate_route_number('R' * 51).is_valid


def test_sanitize_text():
    assert sanitize_text('  late <b>  truck ') == 'late b truck'
    assert sanitize_text(None) == ''


def test_comments_recommended():
    assert comments_recommended('2')
    assert not comments_recommended(0)


def test_field_warnings():
    assert field_warning('positive_deliveries', '150') is not None
    assert field_warning('positive_deliveries', '15') is None
    assert field_warning('end_km', '2500', {'start_km': 100}) == 'Distance driven seems very high. Please verify.'


def test_format_errors():
    assert format_errors([]) == ''
    assert format_errors(['one']) == 'one'
    assert format_errors(['one', 'two']) == 'Please fix the following issues:\n• one\n• two'


def test_admin_form_only_touches_present_keys():
    session = make_session()

    result = parse_admin_edit_form({'route_number': 'R2', 'end_km': '300'}, session)

    assert result.is_valid
    assert result.clean_data == {'route_number': 'R2', 'end_km': 300.0}


def test_admin_form_times_and_breaks():
    session = make_session()

    result = parse_admin_edit_form({
        'start_time': '07:45',
        'status': 'ended',
        'breaks': [{'start': '12:00', 'end': '12:30'}, {'start': '15:00', 'end': None}],
    }, session)

    assert result.is_valid
    assert result.clean_data['start_time'] == at(7, 45)
    assert result.clean_data['status'] == SessionStatus.ENDED
    assert result.clean_data['breaks'] == [Break(at(12), at(12, 30)), Break(at(15), None)]


def test_admin_form_bad_values():
    session = make_session()

    result = parse_admin_edit_form({'end_time': '25:99', 'status': 'paused'}, session)

    assert 'End time must be in HH:MM format' in result.errors
    assert 'Invalid status: paused' in result.errors
