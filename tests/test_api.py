"""REST API end to end against a temporary database."""

from datetime import datetime, time, timedelta

import pytest
from fastapi.testclient import TestClient

from tracker.clock import LOCAL_TZ, get_local_date
from tracker.lifecycle import DAY_IN_PROGRESS
from tracker.validation import MILEAGE_ORDER


class StepClock:
    """Advances a fixed step on every call."""

    def __init__(self, start, step=timedelta(minutes=5)):
        self.current = start - step
        self.step = step

    def __call__(self):
        self.current += self.step
        return self.current


@pytest.fixture
def client(db, driver_id, admin_id, monkeypatch):
    from dashboard import api

    start = LOCAL_TZ.localize(datetime.combine(get_local_date(), time(6)))
    monkeypatch.setattr(api.service, 'clock', StepClock(start))
    return TestClient(api.app)


def login(client, username, password):
    response = client.post('/api/auth/login', json={'username': username, 'password': password})
    assert response.status_code == 200
    return {'Authorization': f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def driver(client):
    return login(client, 'dana', 'secret')


@pytest.fixture
def admin(client):
    return login(client, 'alex', 'admin-pass')


def work_full_day(client, driver):
    assert client.post('/api/sessions/start', json={'start_km': '100'}, headers=driver).status_code == 200
    assert client.post('/api/sessions/break/start', headers=driver).status_code == 200
    assert client.post('/api/sessions/break/end', headers=driver).status_code == 200
    response = client.post('/api/sessions/end', headers=driver, json={
        'route_number': 'R7',
        'positive_deliveries': '30',
        'negative_deliveries': 2,
        'positive_pickups': '4',
        'negative_pickups': '0',
        'delivery_comments': 'Two refused',
        'end_km': '180',
    })
    assert response.status_code == 200
    return response.json()['session']


def test_health(client):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.json()['database'] == 'ok'


def test_login_rejects_bad_password(client):
    response = client.post('/api/auth/login', json={'username': 'dana', 'password': 'nope'})

    assert response.status_code == 401


def test_requires_token(client):
    assert client.get('/api/sessions/today').status_code == 401


def test_driver_cannot_use_admin_endpoints(client, driver):
    assert client.get('/api/admin/sessions', headers=driver).status_code == 403


def test_today_before_starting(client, driver):
    body = client.get('/api/sessions/today', headers=driver).json()

    assert body['status'] == 'not-started'
    assert body['session'] is None


def test_full_day(client, driver):
    session = work_full_day(client, driver)

    assert session['status'] == 'ended'
    assert session['deliveries'] == 32
    assert session['total_km'] == 80.0
    assert len(session['breaks']) == 1
    assert session['metrics']['break_time'] == pytest.approx(10 / 60)

    today = client.get('/api/sessions/today', headers=driver).json()
    assert today['status'] == 'ended'


def test_start_twice_is_a_conflict(client, driver):
    client.post('/api/sessions/start', json={}, headers=driver)

    response = client.post('/api/sessions/start', json={}, headers=driver)

    assert response.status_code == 409
    assert response.json()['detail'] == {'errors': [DAY_IN_PROGRESS], 'status': 'working'}


def test_end_of_day_form_errors(client, driver):
    client.post('/api/sessions/start', json={'start_km': '200'}, headers=driver)

    response = client.post('/api/sessions/end', headers=driver,
                           json={'route_number': 'R7', 'end_km': '100'})

    assert response.status_code == 400
    assert response.json()['detail']['errors'] == [MILEAGE_ORDER]
    assert response.json()['detail']['message'] == MILEAGE_ORDER


def test_edit_break(client, driver):
    work_full_day(client, driver)

    ok = client.put('/api/sessions/today/breaks/0', json={'start': '06:10'}, headers=driver)
    assert ok.status_code == 200
    assert ok.json()['session']['breaks'][0]['start'].startswith(f'{get_local_date()}T06:10')

    outside = client.put('/api/sessions/today/breaks/0', json={'start': '05:00'}, headers=driver)
    assert outside.status_code == 400
    assert outside.json()['detail']['errors'] == ['Break time must be within work period']


def test_admin_edit_is_audited(client, driver, admin):
    session = work_full_day(client, driver)

    response = client.put(f"/api/admin/sessions/{session['id']}", json={'route_number': 'R2'}, headers=admin)

    assert response.status_code == 200
    assert response.json()['session']['route_number'] == 'R2'

    history = client.get(f"/api/admin/sessions/{session['id']}/history", headers=admin).json()
    assert history['count'] == 1
    assert history['history'][0]['field_name'] == 'route_number'
    assert history['history'][0]['old_value'] == 'R7'

    stats = client.get('/api/admin/audit/stats', headers=admin).json()
    assert stats['total_edits'] == 1


def test_admin_edit_validation(client, driver, admin):
    session = work_full_day(client, driver)

    response = client.put(f"/api/admin/sessions/{session['id']}", json={'start_km': '500'}, headers=admin)

    assert response.status_code == 400
    assert response.json()['detail']['errors'] == [MILEAGE_ORDER]
    history = client.get(f"/api/admin/sessions/{session['id']}/history", headers=admin).json()
    assert history['count'] == 0


def test_admin_edit_missing_session(client, admin):
    response = client.put('/api/admin/sessions/999', json={'route_number': 'R2'}, headers=admin)

    assert response.status_code == 404


def test_overview_and_performance(client, driver, admin, driver_id):
    work_full_day(client, driver)

    overview = client.get('/api/admin/overview', headers=admin).json()
    assert overview['status_counts']['ended'] == 1
    assert overview['total_deliveries'] == 32
    assert overview['sessions'][0]['driver'] == 'Dana Driver'

    mine = client.get('/api/performance', headers=driver).json()
    assert mine['summary']['total_days'] == 1
    assert 'password_hash' not in mine['driver']

    theirs = client.get(f'/api/performance/{driver_id}', headers=admin)
    assert theirs.status_code == 200
    assert client.get('/api/performance/999', headers=admin).status_code == 404


def test_export_csv(client, driver, admin):
    work_full_day(client, driver)
    today = get_local_date()

    response = client.get(f'/api/export/csv?start={today}&end={today}', headers=admin)

    assert response.status_code == 200
    assert response.headers['content-type'].startswith('text/csv')
    lines = response.text.strip().splitlines()
    assert lines[0].startswith('date,driver,route_number')
    assert len(lines) == 2


def test_user_management(client, admin):
    payload = {'name': 'Sam Driver', 'username': 'sam', 'password': 'pw', 'role': 'driver'}

    created = client.post('/api/admin/users', json=payload, headers=admin)
    assert created.status_code == 201
    assert 'password_hash' not in created.json()

    assert client.post('/api/admin/users', json=payload, headers=admin).status_code == 409

    drivers = client.get('/api/admin/users?role=driver', headers=admin).json()
    assert {u['username'] for u in drivers['users']} == {'dana', 'sam'}


def test_end_of_day_returns_notices(client, driver):
    body = {'route_number': 'R7', 'negative_deliveries': '2', 'end_km': '100.5'}
    client.post('/api/sessions/start', json={'start_km': '100'}, headers=driver)

    check = client.post('/api/sessions/end/check', json=body, headers=driver).json()
    assert check['valid']
    assert check['warnings'] == {'end_km': 'Very short distance. Is this correct?'}
    assert check['comments_recommended']['delivery_comments']
    assert client.get('/api/sessions/today', headers=driver).json()['status'] == 'working'

    ended = client.post('/api/sessions/end', json=body, headers=driver).json()
    assert ended['status'] == 'ended'
    assert ended['comments_recommended'] == {'delivery_comments': True, 'pickup_comments': False}
    assert ended['session']['display']['end_time'] != ''


def test_end_of_day_check_collects_errors(client, driver):
    client.post('/api/sessions/start', json={'start_km': '200'}, headers=driver)

    check = client.post('/api/sessions/end/check', json={'end_km': '100'}, headers=driver).json()

    assert not check['valid']
    assert check['errors'] == ['Route number is required', MILEAGE_ORDER]
    assert check['message'].startswith('Please fix the following issues:')
