"""Sync status shared by every record that is uploaded to the cloud."""

from enum import Enum

from ridesync.extensions import db


class SyncStatus(str, Enum):
    PENDING = 'pending'
    SYNCED = 'synced'
    FAILED = 'failed'


# PENDING -> SYNCED | FAILED as the outcome of one attempt, FAILED -> PENDING on retry.
ALLOWED_TRANSITIONS = {
    SyncStatus.PENDING: frozenset({SyncStatus.SYNCED, SyncStatus.FAILED}),
    SyncStatus.FAILED: frozenset({SyncStatus.PENDING}),
    SyncStatus.SYNCED: frozenset(),
}


class RecordKind(str, Enum):
    """Kinds of syncable records, in upload order."""

    RIDE = 'ride'
    DRILL = 'drill'
    ACHIEVEMENT = 'achievement'


class SyncableMixin:
    """Columns every syncable record carries."""

    sync_status = db.Column(db.String(20), nullable=False, default=SyncStatus.PENDING.value, index=True)
    last_sync_attempt = db.Column(db.BigInteger, nullable=False, default=0)

    @property
    def status(self):
        return SyncStatus(self.sync_status)

    def sync_fields(self):
        return {
            'sync_status': self.sync_status,
            'last_sync_attempt': self.last_sync_attempt,
        }
