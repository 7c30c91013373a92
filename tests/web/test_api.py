import pytest

from ridesync.domain.credentials import Credentials
from ridesync.models.ride import Ride

CLOUD_URL = "https://cloud.test"

DEVICE_CODE_BODY = {
    "success": True,
    "data": {
        "device_code": "device-code",
        "user_code": "ABCD-1234",
        "verification_uri": "https://link.test/device",
        "expires_in": 600,
        "interval": 5,
    },
}


@pytest.fixture
def logged_in(container):
    container.get('credential_repository').save_credentials(Credentials(
        access_token="access-1", refresh_token="refresh-1", user_id="u1", email="rider@example.com",
    ))


def test_health(client):
    response = client.get('/api/health')

    assert response.status_code == 200
    assert response.get_json()['status'] == 'ok'


def test_auth_status_logged_out(client):
    data = client.get('/api/auth/status').get_json()

    assert data['is_logged_in'] is False
    assert data['device_id']
    assert data['device_auth']['stage'] == 'idle'


def test_device_login_start_queues_polling(client, requests_mock, mocker):
    queue_poll = mocker.patch('ridesync.web.api.queue_device_poll')
    requests_mock.post(f"{CLOUD_URL}/auth/device/code", json=DEVICE_CODE_BODY)

    data = client.post('/api/auth/device/start').get_json()

    assert data['stage'] == 'waiting_for_user'
    assert data['user_code'] == 'ABCD-1234'
    queue_poll.assert_called_once()


def test_device_login_start_failure_does_not_poll(client, requests_mock, mocker):
    queue_poll = mocker.patch('ridesync.web.api.queue_device_poll')
    requests_mock.post(f"{CLOUD_URL}/auth/device/code", status_code=500, json={"success": False, "error": "down"})

    data = client.post('/api/auth/device/start').get_json()

    assert data['stage'] == 'error'
    assert data['message'] == 'down'
    queue_poll.assert_not_called()


def test_device_login_cancel(client, requests_mock, mocker):
    mocker.patch('ridesync.web.api.queue_device_poll')
    requests_mock.post(f"{CLOUD_URL}/auth/device/code", json=DEVICE_CODE_BODY)
    client.post('/api/auth/device/start')

    data = client.post('/api/auth/device/cancel').get_json()

    assert data['stage'] == 'idle'


@pytest.mark.usefixtures("logged_in")
def test_logout_clears_session(client, requests_mock, container):
    requests_mock.post(f"{CLOUD_URL}/auth/logout", json={"success": True})

    assert client.post('/api/auth/logout').status_code == 200
    assert container.get('credential_repository').is_logged_in() is False


@pytest.mark.usefixtures("logged_in")
def test_sync_uploads_pending_ride(client, requests_mock, container):
    container.get('record_repository').add(Ride(timestamp=1000, duration_ms=60000))
    requests_mock.post(f"{CLOUD_URL}/sync/ride", json={"success": True})

    response = client.post('/api/sync')

    data = response.get_json()
    assert response.status_code == 200
    assert data['success'] is True
    assert data['summary']['synced'] == 1
    assert data['state']['pending_count'] == 0
    assert data['state']['status'] == 'success'


def test_sync_when_logged_out(client, container):
    container.get('record_repository').add(Ride(timestamp=1000, duration_ms=60000))

    data = client.post('/api/sync').get_json()

    assert data['success'] is False
    assert data['state']['needs_login'] is True
    assert client.get('/api/sync/state').get_json()['pending_count'] == 1


def test_sync_rejected_while_running(client, container):
    sync_service = container.get('sync_service')
    sync_service._pass_lock.acquire()
    try:
        response = client.post('/api/sync')
    finally:
        sync_service._pass_lock.release()

    assert response.status_code == 409
    assert response.get_json()['summary']['rejected'] is True


@pytest.mark.usefixtures("logged_in")
def test_retry_failed_and_acknowledge_revocation(client, requests_mock, container):
    container.get('record_repository').add(Ride(timestamp=1000, duration_ms=60000))
    requests_mock.post(f"{CLOUD_URL}/sync/ride", status_code=500, json={"success": False})
    client.post('/api/sync')

    assert client.post('/api/sync/retry-failed').get_json()['requeued'] == 1
    assert client.post('/api/sync/device-revoked/acknowledge').get_json()['device_revoked'] is False


def test_auto_sync_preference(client):
    assert client.put('/api/preferences/auto-sync', json={'enabled': True}).get_json() == {'enabled': True}
    assert client.get('/api/preferences/auto-sync').get_json() == {'enabled': True}

    response = client.put('/api/preferences/auto-sync', json={'enabled': 'yes'})
    assert response.status_code == 400
    assert response.get_json()['success'] is False


def test_ride_lifecycle(client):
    response = client.post('/api/rides/start')
    assert response.status_code == 201
    assert response.get_json()['resumed'] is False

    start = client.get('/api/rides/current').get_json()['started_at']
    samples = [{'timestamp_ms': start + i * 1000, 'balance_right': 52, 'power': 180, 'zone': 'optimal'}
               for i in range(1, 6)]
    assert client.post('/api/rides/samples', json={'samples': samples}).get_json() == {'accepted': 5}
    assert client.get('/api/rides/current').get_json()['sample_count'] == 5

    response = client.post('/api/rides/finish', json={'saved_manually': True})
    ride = response.get_json()['ride']
    assert response.status_code == 201
    assert ride['sync_status'] == 'pending'
    assert ride['saved_manually'] is True
    assert ride['power_avg'] == 180

    assert client.post(f"/api/rides/{ride['id']}/rating", json={'rating': 4}).get_json()['rating'] == 4
    detail = client.get(f"/api/rides/{ride['id']}").get_json()
    assert detail['rating'] == 4
    assert 'snapshots' in detail
    assert [r['id'] for r in client.get('/api/rides').get_json()] == [ride['id']]


def test_second_start_conflicts(client):
    client.post('/api/rides/start')
    try:
        response = client.post('/api/rides/start')
        assert response.status_code == 409
    finally:
        client.post('/api/rides/discard')


def test_finish_without_samples(client):
    client.post('/api/rides/start')

    response = client.post('/api/rides/finish')

    assert response.status_code == 200
    assert response.get_json()['ride'] is None


def test_invalid_sample_is_rejected(client):
    client.post('/api/rides/start')
    try:
        response = client.post('/api/rides/samples', json={'timestamp_ms': 1, 'balance_right': 50, 'zone': 'purple'})
        assert response.status_code == 400
    finally:
        client.post('/api/rides/discard')


def test_unknown_ride_is_404(client):
    assert client.get('/api/rides/999').status_code == 404


def test_invalid_rating(client, container):
    ride = container.get('record_repository').add(Ride(timestamp=1000, duration_ms=1000))

    assert client.post(f"/api/rides/{ride.id}/rating", json={'rating': 9}).status_code == 400


def test_drill_results(client):
    response = client.post('/api/drills', json={
        'drill_id': 'balance_focus', 'drill_name': 'Balance focus', 'duration_ms': 60000,
        'score': 70, 'time_in_target_ms': 30000, 'completed': True,
    })

    assert response.status_code == 201
    assert response.get_json()['sync_status'] == 'pending'
    assert len(client.get('/api/drills').get_json()) == 1
    assert client.post('/api/drills', json={'drill_name': 'x'}).status_code == 400


def test_achievements_unlock_once(client):
    first = client.post('/api/achievements', json={'achievement_id': 'first_ride', 'unlocked_at': 5000})
    again = client.post('/api/achievements', json={'achievement_id': 'first_ride'})

    assert first.status_code == 201
    assert again.status_code == 200
    assert len(client.get('/api/achievements').get_json()) == 1


def test_device_login_can_be_started_twice(client, requests_mock, mocker):
    queue_poll = mocker.patch('ridesync.web.api.queue_device_poll')
    requests_mock.post(f"{CLOUD_URL}/auth/device/code", json=DEVICE_CODE_BODY)
    client.post('/api/auth/device/start')

    response = client.post('/api/auth/device/start')

    assert response.status_code == 200
    assert response.get_json()['stage'] == 'waiting_for_user'
    assert queue_poll.call_count == 2


def test_dashboard_settings_saved_locally_when_logged_out(client):
    response = client.put('/api/preferences/settings', json={'balance_threshold': 4, 'te_alert_sound': True})

    data = response.get_json()
    assert response.status_code == 200
    assert data['uploaded'] is False
    assert data['settings']['balance_threshold'] == 4
    assert client.get('/api/preferences/settings').get_json()['settings']['te_alert_sound'] is True


def test_dashboard_settings_rejects_bad_values(client):
    assert client.put('/api/preferences/settings', json={'ps_minimum': 'lots'}).status_code == 400


@pytest.mark.usefixtures("logged_in")
def test_dashboard_settings_upload_and_pull(client, requests_mock):
    upload = requests_mock.put(f"{CLOUD_URL}/settings", json={"success": True})
    requests_mock.get(f"{CLOUD_URL}/settings", json={"success": True, "data": {"settings": {"ps_minimum": 12}}})

    assert client.put('/api/preferences/settings', json={'ps_minimum': 25}).get_json()['uploaded'] is True
    assert upload.last_request.json()['ps_minimum'] == 25

    data = client.post('/api/preferences/settings/pull').get_json()
    assert data['fetched'] is True
    assert data['settings']['ps_minimum'] == 12
