"""Background sync and device-login tasks."""

import logging

from ridesync.domain.sync_decider import SyncConditions, decide
from ridesync.tasks.executor import async_task
from ridesync.utils.clock import now_ms

logger = logging.getLogger(__name__)


def sync_conditions(container, now=None):
    """Current inputs for the automatic sync decision."""
    app = container.app
    recording_service = container.get('recording_service')
    return SyncConditions(
        is_logged_in=container.get('credential_repository').is_logged_in(),
        is_recording=recording_service.is_recording,
        last_sync_ms=container.get('preference_repository').get_last_sync_timestamp(),
        now_ms=now_ms() if now is None else now,
        pending_counts=container.get('record_repository').pending_counts(),
        cooldown_ms=app.config.get('SYNC_COOLDOWN_MS', 60000),
    )


def run_scheduled_sync(container):
    """Run a sync pass if the automatic sync rules allow it.

    Returns:
        Tuple of (SyncDecision, SyncSummary or None)
    """
    with container.app.app_context():
        preferences = container.get('preference_repository')
        if not preferences.is_auto_sync_enabled(container.app.config.get('AUTO_SYNC_ENABLED', True)):
            logger.debug("Auto sync disabled")
            return None, None

        decision = decide(sync_conditions(container))
        if not decision.should_sync:
            logger.debug(f"Scheduled sync skipped: {decision.kind.value}")
            return decision, None

        summary = container.get('sync_service').sync_all()
        return decision, summary


@async_task
def queue_auto_sync(container):
    """Run the automatic sync check off the caller's thread."""
    try:
        return run_scheduled_sync(container)
    except Exception as e:
        logger.error(f"Auto sync failed: {str(e)}")
        raise


@async_task
def queue_device_poll(container):
    """Poll for device login approval and sync right after a successful login."""
    with container.app.app_context():
        try:
            credentials = container.get('device_auth_service').poll()
        except Exception as e:
            logger.error(f"Device login polling failed: {str(e)}")
            raise
        if credentials is None:
            return None

        sync_service = container.get('sync_service')
        sync_service.clear_device_revoked_flag()
        sync_service.sync_all()
        return credentials


def run_sync_request_check(container):
    """Heartbeat tick: pull settings and honour a sync requested from the dashboard.

    Returns:
        True when a requested pass was run
    """
    with container.app.app_context():
        if container.get('recording_service').is_recording:
            logger.debug("Ride in progress, skipping sync request check")
            return False
        return container.get('sync_service').check_sync_request()
