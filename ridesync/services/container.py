"""Service container for dependency injection."""

import logging
import threading
from typing import Any, Dict

from flask import current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'ridesync'


class ServiceContainer:
    """Container for application services.

    One container is created per application and stored on
    `app.extensions`; services are built lazily on first use.
    """

    def __init__(self, app):
        """Initialize the service container.

        Args:
            app: Flask application the services belong to
        """
        self.app = app
        self._services: Dict[str, Any] = {}
        # Reentrant: builders resolve their own dependencies through get()
        self._lock = threading.RLock()

    def register(self, name: str, service: Any) -> None:
        """Register a service in the container, replacing any lazy default.

        Args:
            name: Name of the service
            service: The service instance
        """
        with self._lock:
            self._services[name] = service

    def get(self, name: str) -> Any:
        """Get a service from the container by name.

        Args:
            name: Name of the service

        Returns:
            The service instance

        Raises:
            KeyError: If no such service exists
        """
        with self._lock:
            if name in self._services:
                return self._services[name]

            init_method = getattr(self, f"_init_{name}", None)
            if init_method is None:
                raise KeyError(f"Unknown service {name}")
            service = init_method()
            self._services[name] = service
            return service

    def _init_cipher(self):
        from ridesync.services.token_encryption import TokenEncryption, load_encryption_key
        return TokenEncryption(load_encryption_key(self.app.config, self.app.instance_path))

    def _init_credential_repository(self):
        from ridesync.extensions import db
        from ridesync.models.credential_repository import SqlAlchemyCredentialRepository
        return SqlAlchemyCredentialRepository(db, cipher=self.get('cipher'))

    def _init_preference_repository(self):
        from ridesync.extensions import db
        from ridesync.models.preference_repository import SqlAlchemyPreferenceRepository
        return SqlAlchemyPreferenceRepository(db)

    def _init_record_repository(self):
        from ridesync.extensions import db
        from ridesync.models.record_repository import SqlAlchemyRecordRepository
        return SqlAlchemyRecordRepository(db)

    def _init_checkpoint_repository(self):
        from ridesync.extensions import db
        from ridesync.models.checkpoint_repository import SqlAlchemyCheckpointRepository
        return SqlAlchemyCheckpointRepository(db)

    def _init_cloud_client(self):
        from ridesync.clients.cloud_client import CloudClient
        return CloudClient(
            self.app.config['CLOUD_API_URL'],
            timeout=self.app.config.get('CLOUD_TIMEOUT', 30),
            device_name=self.app.config.get('DEVICE_NAME', 'Karoo'),
        )

    def _init_auth_service(self):
        from ridesync.services.auth_service import AuthService
        return AuthService(self.get('cloud_client'), self.get('credential_repository'))

    def _init_device_auth_service(self):
        from ridesync.services.device_auth_service import DeviceAuthService
        return DeviceAuthService(self.get('cloud_client'), self.get('credential_repository'))

    def _init_sync_service(self):
        from ridesync.services.sync_service import SyncService
        return SyncService(
            self.get('record_repository'),
            self.get('credential_repository'),
            self.get('cloud_client'),
            self.get('auth_service'),
            self.get('preference_repository'),
        )

    def _init_accumulator(self):
        from ridesync.domain.ride_accumulator import LiveRideAccumulator
        return LiveRideAccumulator()

    def _init_checkpoint_manager(self):
        from ridesync.services.checkpoint_service import CheckpointManager
        return CheckpointManager(
            self.get('checkpoint_repository'),
            self.get('accumulator'),
            tick_interval_ms=self.app.config.get('CHECKPOINT_INTERVAL_MS', 60000),
            context_factory=self.app.app_context,
        )

    def _init_recording_service(self):
        from ridesync.services.recording_service import RecordingService
        return RecordingService(
            self.get('record_repository'),
            self.get('accumulator'),
            self.get('checkpoint_manager'),
            on_record_saved=self._on_record_saved,
        )

    def _on_record_saved(self, kind):
        from ridesync.tasks.sync_tasks import queue_auto_sync
        if self.app.config.get('AUTO_SYNC_ENABLED', True):
            queue_auto_sync(self)

    def shutdown(self):
        """Stop background work and save the live ride, if any."""
        if 'recording_service' in self._services:
            with self.app.app_context():
                try:
                    self._services['recording_service'].shutdown()
                except Exception as e:
                    logger.error(f"Error saving live ride on shutdown: {str(e)}")
        if 'device_auth_service' in self._services:
            self._services['device_auth_service'].cancel()


def init_container(app):
    container = ServiceContainer(app)
    app.extensions[EXTENSION_KEY] = container
    return container


def get_container(app=None):
    """Return the container of the given app, or of the current app."""
    app = app or current_app
    return app.extensions[EXTENSION_KEY]
