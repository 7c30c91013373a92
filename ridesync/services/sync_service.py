"""Outbound synchronization of locally stored records."""

import logging
import threading
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Dict, Optional

from ridesync.clients.cloud_client import DEVICE_REVOKED, MAX_ACHIEVEMENTS_PER_BATCH
from ridesync.models.sync_status import RecordKind, SyncStatus
from ridesync.services.api_client import TransportError
from ridesync.services.auth_service import RefreshResult
from ridesync.utils.clock import now_ms

logger = logging.getLogger(__name__)


class SyncStatusKind(str, Enum):
    IDLE = 'idle'
    SYNCING = 'syncing'
    SUCCESS = 'success'
    FAILED = 'failed'


class UploadOutcome(Enum):
    SYNCED = 'synced'
    FAILED = 'failed'
    TOKEN_EXPIRED = 'token_expired'
    REVOKED = 'revoked'


@dataclass
class SyncSummary:
    """Result of one sync pass."""

    synced: int = 0
    failed: int = 0
    # Another pass was already running; nothing was attempted
    rejected: bool = False
    device_revoked: bool = False
    needs_login: bool = False
    synced_by_kind: Dict[str, int] = field(default_factory=dict)
    failed_by_kind: Dict[str, int] = field(default_factory=dict)

    @property
    def aborted(self):
        return self.device_revoked or self.needs_login

    def to_dict(self):
        data = asdict(self)
        data['aborted'] = self.aborted
        return data


@dataclass(frozen=True)
class SyncState:
    """What the UI shows about sync."""

    status: SyncStatusKind = SyncStatusKind.IDLE
    pending_count: int = 0
    last_sync_timestamp: int = 0
    error_message: Optional[str] = None
    device_revoked: bool = False
    needs_login: bool = False

    def to_dict(self):
        data = asdict(self)
        data['status'] = self.status.value
        return data


def classify(response):
    """Map a cloud response to an upload outcome."""
    if response.success:
        return UploadOutcome.SYNCED
    if response.code == DEVICE_REVOKED:
        return UploadOutcome.REVOKED
    if response.status_code == 401:
        return UploadOutcome.TOKEN_EXPIRED
    return UploadOutcome.FAILED


class SyncService:
    """Uploads pending and failed records with at-least-once delivery.

    Only one pass runs at a time; a call made while a pass is running is
    rejected immediately. Within a kind, records go oldest first. A failing
    record never blocks the rest, except for device revocation or a rejected
    refresh token, which end the pass.
    """

    KIND_ORDER = (RecordKind.RIDE, RecordKind.DRILL, RecordKind.ACHIEVEMENT)

    def __init__(self, record_repository, credential_repository, cloud_client, auth_service,
                 preference_repository, clock=None):
        self.record_repository = record_repository
        self.credential_repository = credential_repository
        self.cloud_client = cloud_client
        self.auth_service = auth_service
        self.preference_repository = preference_repository
        self.clock = clock or now_ms
        self._pass_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._state = SyncState()

    @property
    def state(self):
        with self._state_lock:
            return self._state

    @property
    def is_syncing(self):
        return self._pass_lock.locked()

    def _update_state(self, **changes):
        with self._state_lock:
            self._state = replace(self._state, **changes)
            return self._state

    def refresh_state(self):
        """Recompute the pending count and last sync time from storage."""
        return self._update_state(
            pending_count=sum(self.record_repository.pending_counts().values()),
            last_sync_timestamp=self.preference_repository.get_last_sync_timestamp(),
        )

    def clear_device_revoked_flag(self):
        return self._update_state(device_revoked=False)

    def retry_failed(self):
        """Manually re-queue every failed record. Waits for a running pass to finish."""
        with self._pass_lock:
            count = self.record_repository.retry_failed()
        self.refresh_state()
        return count

    def check_sync_request(self):
        """Heartbeat to the cloud; runs a pass when the web dashboard asked for one.

        Also pulls the dashboard settings on every call.

        Returns:
            True when a requested sync pass was run
        """
        if not self.credential_repository.is_logged_in():
            return False

        self.fetch_settings()

        response = self._authorized_call(self.cloud_client.check_sync_request)
        if response is None or not response.success:
            return False
        if not (response.data or {}).get('syncRequested'):
            return False

        logger.info("Sync requested from the web dashboard")
        summary = self.sync_all()
        return not summary.rejected

    def fetch_settings(self):
        """Pull the dashboard settings and store them locally.

        Returns:
            True when settings were received and applied
        """
        response = self._authorized_call(self.cloud_client.get_settings)
        if response is None or not response.success:
            return False
        settings = (response.data or {}).get('settings')
        if not isinstance(settings, dict):
            return False
        try:
            count = self.preference_repository.apply_cloud_settings(settings)
        except (TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed cloud settings: {e}")
            return False
        logger.info(f"Applied {count} settings from the cloud")
        return True

    def upload_settings(self):
        """Push the local dashboard settings to the cloud.

        Returns:
            True when the cloud accepted them
        """
        settings = self.preference_repository.get_cloud_settings()
        response = self._authorized_call(
            lambda access_token, device_id: self.cloud_client.update_settings(access_token, device_id, settings)
        )
        uploaded = response is not None and response.success
        if not uploaded:
            logger.warning("Settings upload failed")
        return uploaded

    def _authorized_call(self, call):
        """Run call(access_token, device_id) with one silent refresh on 401.

        Device revocation clears the session and raises the revoked flag.

        Returns:
            CloudResponse, or None when no usable session or no response
        """
        if not self.credential_repository.is_logged_in():
            return None
        if not self.credential_repository.get_access_token():
            if self._refresh() is not RefreshResult.REFRESHED:
                return None
        device_id = self.credential_repository.get_or_create_device_id()

        try:
            response = call(self.credential_repository.get_access_token(), device_id)
            if response.status_code == 401 and response.code != DEVICE_REVOKED:
                if self._refresh() is not RefreshResult.REFRESHED:
                    return None
                response = call(self.credential_repository.get_access_token(), device_id)
        except TransportError as e:
            logger.warning(f"Cloud request failed: {e.message}")
            return None

        if response.code == DEVICE_REVOKED:
            self.auth_service.handle_device_revoked()
            self._update_state(status=SyncStatusKind.FAILED, error_message="Device access revoked",
                               device_revoked=True)
            return None
        return response

    def _refresh(self):
        result = self.auth_service.refresh_access_token()
        if result is RefreshResult.REVOKED:
            self._update_state(status=SyncStatusKind.FAILED, error_message="Device access revoked",
                               device_revoked=True)
        elif result is RefreshResult.REJECTED:
            self._update_state(status=SyncStatusKind.FAILED, error_message="Login required", needs_login=True)
        return result

    def sync_all(self):
        """Run one sync pass over every kind.

        Returns:
            SyncSummary
        """
        if not self._pass_lock.acquire(blocking=False):
            logger.info("Sync already in progress, rejecting new pass")
            return SyncSummary(rejected=True)
        try:
            return self._run_pass()
        finally:
            self._pass_lock.release()

    def _run_pass(self):
        summary = SyncSummary()

        if not self.credential_repository.is_logged_in():
            logger.info("Not logged in, skipping sync")
            summary.needs_login = True
            self._finish(summary)
            return summary

        self._update_state(status=SyncStatusKind.SYNCING, error_message=None, needs_login=False)

        if not self.credential_repository.get_access_token():
            result = self.auth_service.refresh_access_token()
            if result is not RefreshResult.REFRESHED:
                self._apply_refresh_failure(result, summary)
                self._finish(summary, error_message=None if summary.aborted else "Cloud unavailable")
                return summary

        device_id = self.credential_repository.get_or_create_device_id()
        logger.info(f"Starting sync pass, pending: {self.record_repository.pending_counts()}")

        for kind in self.KIND_ORDER:
            records = self.record_repository.get_needing_sync(kind)
            if kind is RecordKind.ACHIEVEMENT:
                units = [records[i:i + MAX_ACHIEVEMENTS_PER_BATCH]
                         for i in range(0, len(records), MAX_ACHIEVEMENTS_PER_BATCH)]
            else:
                units = [[record] for record in records]

            for unit in units:
                self._sync_unit(kind, unit, device_id, summary)
                if summary.aborted:
                    break
            if summary.aborted:
                break

        self._finish(summary)
        logger.info(
            f"Sync pass finished: {summary.synced} synced, {summary.failed} failed"
            f"{', device revoked' if summary.device_revoked else ''}"
            f"{', login required' if summary.needs_login else ''}"
        )
        return summary

    def _apply_refresh_failure(self, result, summary):
        if result is RefreshResult.REVOKED:
            summary.device_revoked = True
        elif result is RefreshResult.REJECTED:
            summary.needs_login = True

    def _sync_unit(self, kind, records, device_id, summary):
        """Attempt one upload (a single record, or one achievement batch)."""
        for record in records:
            if record.sync_status == SyncStatus.FAILED.value:
                self.record_repository.requeue(kind, record.id)

        outcome = self._attempt(kind, records, device_id)

        if outcome is UploadOutcome.TOKEN_EXPIRED:
            result = self.auth_service.refresh_access_token()
            if result is RefreshResult.REFRESHED:
                outcome = self._attempt(kind, records, device_id)
                if outcome is UploadOutcome.TOKEN_EXPIRED:
                    outcome = UploadOutcome.FAILED
            elif result is RefreshResult.REVOKED:
                summary.device_revoked = True
                return
            else:
                self._apply_refresh_failure(result, summary)
                outcome = UploadOutcome.FAILED

        if outcome is UploadOutcome.REVOKED:
            self.auth_service.handle_device_revoked()
            summary.device_revoked = True
            return

        now = self.clock()
        if outcome is UploadOutcome.SYNCED:
            for record in records:
                self.record_repository.mark_synced(kind, record.id, now)
            summary.synced += len(records)
            summary.synced_by_kind[kind.value] = summary.synced_by_kind.get(kind.value, 0) + len(records)
        else:
            for record in records:
                self.record_repository.mark_failed(kind, record.id, now)
            summary.failed += len(records)
            summary.failed_by_kind[kind.value] = summary.failed_by_kind.get(kind.value, 0) + len(records)

    def _attempt(self, kind, records, device_id):
        access_token = self.credential_repository.get_access_token()
        if not access_token:
            return UploadOutcome.TOKEN_EXPIRED
        try:
            response = self._upload(kind, records, access_token, device_id)
        except TransportError as e:
            logger.warning(f"Upload of {kind.value} failed: {e.message}")
            return UploadOutcome.FAILED
        except (KeyError, ValueError) as e:
            logger.error(f"Could not build {kind.value} payload: {e}")
            return UploadOutcome.FAILED

        outcome = classify(response)
        if outcome is UploadOutcome.FAILED:
            logger.warning(
                f"Upload of {kind.value} {[r.id for r in records]} rejected: "
                f"HTTP {response.status_code} {response.error or ''}".rstrip()
            )
        return outcome

    def _upload(self, kind, records, access_token, device_id):
        if kind is RecordKind.RIDE:
            ride = records[0]
            snapshots = ride.snapshots_payload()
            if snapshots:
                return self.cloud_client.sync_ride_full(access_token, device_id, ride.to_sync_payload(), snapshots)
            return self.cloud_client.sync_ride(access_token, device_id, ride.to_sync_payload())
        if kind is RecordKind.DRILL:
            return self.cloud_client.sync_drill(access_token, device_id, records[0].to_sync_payload())
        return self.cloud_client.sync_achievements(
            access_token, device_id, [record.to_sync_payload() for record in records]
        )

    def _finish(self, summary, error_message=None):
        if summary.synced > 0:
            self.preference_repository.set_last_sync_timestamp(self.clock())

        if summary.device_revoked:
            status, error_message = SyncStatusKind.FAILED, "Device access revoked"
        elif summary.needs_login:
            status, error_message = SyncStatusKind.FAILED, "Login required"
        elif error_message:
            status = SyncStatusKind.FAILED
        elif summary.failed:
            status, error_message = SyncStatusKind.FAILED, f"{summary.failed} records failed to sync"
        else:
            status = SyncStatusKind.SUCCESS

        self._update_state(
            status=status,
            error_message=error_message,
            device_revoked=self.state.device_revoked or summary.device_revoked,
            needs_login=summary.needs_login,
            pending_count=sum(self.record_repository.pending_counts().values()),
            last_sync_timestamp=self.preference_repository.get_last_sync_timestamp(),
        )
