"""Session management: token refresh, logout and device revocation."""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ridesync.clients.cloud_client import DEVICE_REVOKED
from ridesync.services.api_client import TransportError

logger = logging.getLogger(__name__)


class RefreshResult(str, Enum):
    REFRESHED = 'refreshed'
    # Device access was revoked; credentials have been cleared
    REVOKED = 'revoked'
    # Server rejected the refresh token; credentials have been cleared
    REJECTED = 'rejected'
    # No answer from the server; credentials are kept
    UNAVAILABLE = 'unavailable'


@dataclass(frozen=True)
class AuthStatus:
    is_logged_in: bool
    device_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None

    def to_dict(self):
        return {
            'is_logged_in': self.is_logged_in,
            'device_id': self.device_id,
            'email': self.email,
            'name': self.name,
            'picture': self.picture,
        }


class AuthService:
    """Keeps the stored session usable and tears it down when it is not."""

    def __init__(self, cloud_client, credential_repository):
        self.cloud_client = cloud_client
        self.credential_repository = credential_repository
        self._refresh_lock = threading.Lock()

    def status(self):
        profile = self.credential_repository.get_profile()
        device_id = self.credential_repository.get_or_create_device_id()
        if profile is None:
            return AuthStatus(is_logged_in=False, device_id=device_id)
        return AuthStatus(
            is_logged_in=True,
            device_id=device_id,
            email=profile.email,
            name=profile.display_name,
            picture=profile.picture,
        )

    def refresh_access_token(self):
        """Exchange the stored refresh token for a new access token.

        Concurrent callers are serialized so only one refresh is in flight.

        Returns:
            RefreshResult
        """
        with self._refresh_lock:
            refresh_token = self.credential_repository.get_refresh_token()
            if not refresh_token:
                logger.info("No refresh token stored")
                return RefreshResult.REJECTED

            device_id = self.credential_repository.get_or_create_device_id()
            try:
                response = self.cloud_client.refresh_token(refresh_token, device_id)
            except TransportError as e:
                logger.warning(f"Token refresh failed: {e.message}")
                return RefreshResult.UNAVAILABLE

            access_token = (response.data or {}).get('access_token') if response.success else None
            if access_token:
                if not self.credential_repository.update_access_token(access_token):
                    return RefreshResult.REJECTED
                logger.info("Access token refreshed")
                return RefreshResult.REFRESHED

            if response.code == DEVICE_REVOKED:
                self.handle_device_revoked()
                return RefreshResult.REVOKED

            if response.status_code >= 500 or response.body is None:
                logger.warning(f"Token refresh unavailable (HTTP {response.status_code})")
                return RefreshResult.UNAVAILABLE

            logger.warning(f"Refresh token rejected: {response.error or response.status_code}")
            self.credential_repository.clear()
            return RefreshResult.REJECTED

    def handle_device_revoked(self):
        """Forget the credentials after the server revoked this device."""
        logger.warning("Device access revoked by the server, clearing credentials")
        self.credential_repository.clear()

    def logout(self):
        """Revoke the session server-side (best effort) and clear local credentials."""
        refresh_token = self.credential_repository.get_refresh_token()
        if refresh_token:
            device_id = self.credential_repository.get_or_create_device_id()
            try:
                response = self.cloud_client.logout(refresh_token, device_id)
                if not response.ok:
                    logger.warning(f"Server logout returned HTTP {response.status_code}")
            except TransportError as e:
                logger.warning(f"Server logout failed: {e.message}")
        self.credential_repository.clear()
