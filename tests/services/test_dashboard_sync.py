import pytest
import requests

from ridesync.clients.cloud_client import CloudClient
from ridesync.domain.credentials import Credentials
from ridesync.models.preference_repository import CLOUD_SETTING_DEFAULTS
from ridesync.models.ride import Ride
from ridesync.models.sync_status import RecordKind, SyncStatus
from ridesync.services.auth_service import AuthService
from ridesync.services.sync_service import SyncService

CLOUD_URL = "https://cloud.test"

REVOKED_BODY = {"success": False, "error": "Device not found or access revoked", "code": "DEVICE_REVOKED"}

CLOUD_SETTINGS = {
    "balance_threshold": 7,
    "te_optimal_min": 65,
    "alerts_enabled": False,
    "balance_alert_trigger": "ATTENTION_AND_PROBLEM",
    "te_alert_trigger": "SOMETIMES",
    "auto_sync_enabled": False,
    "updated_at": "2026-01-01 10:00:00",
}


@pytest.fixture
def sync_service(record_repository, credential_repository, preference_repository, clock):
    cloud_client = CloudClient(CLOUD_URL, timeout=5)
    auth_service = AuthService(cloud_client, credential_repository)
    return SyncService(record_repository, credential_repository, cloud_client, auth_service,
                       preference_repository, clock=clock)


@pytest.fixture
def logged_in(credential_repository):
    credential_repository.save_credentials(Credentials(
        access_token="access-1", refresh_token="refresh-1", user_id="u1", email="rider@example.com",
    ))


@pytest.fixture
def settings_route(requests_mock):
    return requests_mock.get(f"{CLOUD_URL}/settings", json={"success": True, "data": {"settings": CLOUD_SETTINGS}})


@pytest.mark.usefixtures("logged_in", "settings_route")
def test_fetch_settings_applies_known_keys(sync_service, preference_repository):
    assert sync_service.fetch_settings() is True

    settings = preference_repository.get_cloud_settings()
    assert settings["balance_threshold"] == 7
    assert settings["te_optimal_min"] == 65
    assert settings["alerts_enabled"] is False
    assert settings["balance_alert_trigger"] == "ATTENTION_AND_PROBLEM"
    assert settings["te_alert_trigger"] == "PROBLEM_ONLY"
    assert settings["ps_minimum"] == CLOUD_SETTING_DEFAULTS["ps_minimum"]
    assert "updated_at" not in settings
    assert preference_repository.is_auto_sync_enabled() is False


@pytest.mark.usefixtures("logged_in")
def test_fetch_settings_refreshes_once_on_401(sync_service, requests_mock, credential_repository):
    requests_mock.get(f"{CLOUD_URL}/settings", [
        {"status_code": 401, "json": {"success": False, "error": "Token expired"}},
        {"json": {"success": True, "data": {"settings": {"ps_minimum": 25}}}},
    ])
    refresh_route = requests_mock.post(f"{CLOUD_URL}/auth/refresh",
                                       json={"success": True, "data": {"access_token": "access-2"}})

    assert sync_service.fetch_settings() is True
    assert refresh_route.call_count == 1
    assert requests_mock.request_history[-1].headers["Authorization"] == "Bearer access-2"
    assert credential_repository.get_access_token() == "access-2"


def test_settings_need_login(sync_service, requests_mock):
    assert sync_service.fetch_settings() is False
    assert sync_service.upload_settings() is False
    assert requests_mock.call_count == 0


@pytest.mark.usefixtures("logged_in")
def test_upload_settings_sends_local_values(sync_service, requests_mock, preference_repository):
    preference_repository.apply_cloud_settings({"balance_threshold": 3, "ps_alert_sound": True})
    route = requests_mock.put(f"{CLOUD_URL}/settings", json={"success": True})

    assert sync_service.upload_settings() is True

    body = route.last_request.json()
    assert body["balance_threshold"] == 3
    assert body["ps_alert_sound"] is True
    assert set(body) == set(CLOUD_SETTING_DEFAULTS)
    assert route.last_request.headers["X-Device-ID"]


@pytest.mark.usefixtures("logged_in")
def test_upload_settings_transport_error(sync_service, requests_mock):
    requests_mock.put(f"{CLOUD_URL}/settings", exc=requests.exceptions.ConnectionError)

    assert sync_service.upload_settings() is False


@pytest.mark.usefixtures("logged_in", "settings_route")
def test_requested_sync_runs_a_pass(sync_service, record_repository, requests_mock):
    ride = record_repository.add(Ride(timestamp=1000, duration_ms=1000))
    requests_mock.get(f"{CLOUD_URL}/sync/check-request",
                      json={"success": True, "data": {"syncRequested": True, "requestedAt": 5}})
    requests_mock.post(f"{CLOUD_URL}/sync/ride", json={"success": True})

    assert sync_service.check_sync_request() is True
    assert record_repository.get(RecordKind.RIDE, ride.id).sync_status == SyncStatus.SYNCED.value


@pytest.mark.usefixtures("logged_in", "settings_route")
def test_no_request_means_no_pass(sync_service, record_repository, requests_mock, preference_repository):
    record_repository.add(Ride(timestamp=1000, duration_ms=1000))
    requests_mock.get(f"{CLOUD_URL}/sync/check-request", json={"success": True, "data": {"syncRequested": False}})

    assert sync_service.check_sync_request() is False
    assert record_repository.pending_counts()["ride"] == 1
    # Settings are pulled on every heartbeat
    assert preference_repository.get_cloud_settings()["balance_threshold"] == 7


@pytest.mark.usefixtures("logged_in", "settings_route")
def test_heartbeat_detects_revocation(sync_service, requests_mock, credential_repository):
    requests_mock.get(f"{CLOUD_URL}/sync/check-request", status_code=403, json=REVOKED_BODY)

    assert sync_service.check_sync_request() is False
    assert credential_repository.is_logged_in() is False
    assert sync_service.state.device_revoked is True


def test_heartbeat_skipped_when_logged_out(sync_service, requests_mock):
    assert sync_service.check_sync_request() is False
    assert requests_mock.call_count == 0
