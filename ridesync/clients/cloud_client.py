"""Client for the cycling companion cloud API."""

import logging

from ridesync.services.api_client import APIClient

log = logging.getLogger(__name__)

DEVICE_REVOKED = 'DEVICE_REVOKED'

# Server-side batch limits
MAX_ACHIEVEMENTS_PER_BATCH = 100


class CloudClient(APIClient):
    """Endpoints used by device login and record sync."""

    def __init__(self, base_url, timeout=30, device_name='Karoo'):
        super().__init__(base_url, timeout=timeout)
        self.device_name = device_name

    @staticmethod
    def _auth_headers(access_token, device_id):
        return {
            'Authorization': f'Bearer {access_token}',
            'X-Device-ID': device_id,
        }

    # Device login

    def request_device_code(self, device_id):
        return self.request('POST', '/auth/device/code', json={
            'device_id': device_id,
            'device_name': self.device_name,
        })

    def poll_device_token(self, device_code, device_id):
        return self.request('POST', '/auth/device/token', json={
            'device_code': device_code,
            'device_id': device_id,
        })

    def refresh_token(self, refresh_token, device_id):
        return self.request(
            'POST', '/auth/refresh',
            headers={'X-Device-ID': device_id},
            json={'refresh_token': refresh_token},
        )

    def logout(self, refresh_token, device_id):
        return self.request(
            'POST', '/auth/logout',
            headers={'X-Device-ID': device_id},
            json={'refresh_token': refresh_token},
        )

    # Record sync

    def sync_ride(self, access_token, device_id, ride_payload):
        return self.request('POST', '/sync/ride', headers=self._auth_headers(access_token, device_id), json=ride_payload)

    def sync_ride_full(self, access_token, device_id, ride_payload, snapshots):
        """Upload a ride together with its per-minute snapshots."""
        return self.request(
            'POST', '/sync/ride-full',
            headers=self._auth_headers(access_token, device_id),
            json={'ride': ride_payload, 'snapshots': snapshots},
        )

    def sync_drill(self, access_token, device_id, drill_payload):
        return self.request('POST', '/sync/drill', headers=self._auth_headers(access_token, device_id), json=drill_payload)

    def sync_achievements(self, access_token, device_id, achievement_payloads):
        if len(achievement_payloads) > MAX_ACHIEVEMENTS_PER_BATCH:
            raise ValueError(f"At most {MAX_ACHIEVEMENTS_PER_BATCH} achievements per batch")
        return self.request(
            'POST', '/sync/achievements',
            headers=self._auth_headers(access_token, device_id),
            json={'achievements': achievement_payloads},
        )

    # Dashboard requests and settings

    def check_sync_request(self, access_token, device_id):
        """Heartbeat: also tells whether a sync was requested from the web dashboard."""
        return self.request('GET', '/sync/check-request', headers=self._auth_headers(access_token, device_id))

    def get_settings(self, access_token, device_id):
        return self.request('GET', '/settings', headers=self._auth_headers(access_token, device_id))

    def update_settings(self, access_token, device_id, settings):
        return self.request('PUT', '/settings', headers=self._auth_headers(access_token, device_id), json=settings)
