from ridesync.domain.credentials import Credentials
from ridesync.models.ride import Ride

CLOUD_URL = "https://cloud.test"


def test_init_db(runner):
    result = runner.invoke(args=['init-db'])

    assert 'Database initialized' in result.output


def test_status_logged_out(runner, container):
    container.get('record_repository').add(Ride(timestamp=1000, duration_ms=1000))

    result = runner.invoke(args=['status'])

    assert 'Logged in: no' in result.output
    assert 'Pending: 1 rides, 0 drills, 0 achievements' in result.output
    assert 'Last sync: never' in result.output


def test_sync_command(runner, container, requests_mock):
    container.get('credential_repository').save_credentials(Credentials(
        access_token="access-1", refresh_token="refresh-1", user_id="u1", email="rider@example.com",
    ))
    container.get('record_repository').add(Ride(timestamp=1000, duration_ms=1000))
    requests_mock.post(f"{CLOUD_URL}/sync/ride", json={"success": True})

    result = runner.invoke(args=['sync'])

    assert 'Synced 1, failed 0' in result.output


def test_sync_command_logged_out(runner):
    result = runner.invoke(args=['sync'])

    assert "Login required" in result.output


def test_login_reports_start_failure(runner, requests_mock):
    requests_mock.post(f"{CLOUD_URL}/auth/device/code", status_code=503, json={"success": False, "error": "maintenance"})

    result = runner.invoke(args=['login'])

    assert result.exit_code == 1
    assert 'Could not start login: maintenance' in result.output


def test_retry_failed_command(runner):
    result = runner.invoke(args=['retry-failed'])

    assert 'Re-queued 0 records' in result.output
