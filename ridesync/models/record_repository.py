"""Repository for rides, drill results and achievements."""

import logging

from ridesync.errors import InvalidStatusTransition, ResourceNotFoundError
from ridesync.extensions import db
from ridesync.models.achievement import Achievement
from ridesync.models.drill_result import DrillResult
from ridesync.models.ride import Ride
from ridesync.models.sync_status import ALLOWED_TRANSITIONS, RecordKind, SyncStatus

logger = logging.getLogger(__name__)

MODELS = {
    RecordKind.RIDE: Ride,
    RecordKind.DRILL: DrillResult,
    RecordKind.ACHIEVEMENT: Achievement,
}

# Column that defines creation order for each kind
ORDER_COLUMNS = {
    RecordKind.RIDE: Ride.timestamp,
    RecordKind.DRILL: DrillResult.timestamp,
    RecordKind.ACHIEVEMENT: Achievement.unlocked_at,
}

NEEDS_SYNC = (SyncStatus.PENDING.value, SyncStatus.FAILED.value)


def kind_of(record):
    for kind, model in MODELS.items():
        if isinstance(record, model):
            return kind
    raise TypeError(f"Not a syncable record: {record!r}")


class SqlAlchemyRecordRepository:
    """Durable store for syncable records.

    Records are never deleted here; only their sync fields change, and only
    along pending -> synced | failed, failed -> pending.
    """

    def __init__(self, db_instance=None):
        """Initialize the repository."""
        self.db = db_instance or db

    def add(self, record):
        """Insert a new record. New records always start out pending.

        Args:
            record: Ride, DrillResult or Achievement instance

        Returns:
            The persisted record
        """
        kind = kind_of(record)
        record.sync_status = SyncStatus.PENDING.value
        record.last_sync_attempt = 0
        try:
            self.db.session.add(record)
            self.db.session.commit()
            logger.info(f"Stored {kind.value} {record.id} as pending")
            return record
        except Exception as e:
            self.db.session.rollback()
            logger.error(f"Error storing {kind.value}: {str(e)}")
            raise

    def get(self, kind, record_id):
        return self.db.session.get(MODELS[RecordKind(kind)], record_id)

    def get_or_404(self, kind, record_id):
        record = self.get(kind, record_id)
        if record is None:
            raise ResourceNotFoundError(f"{RecordKind(kind).value} {record_id} not found")
        return record

    def get_needing_sync(self, kind):
        """Pending and failed records of a kind, oldest first.

        Args:
            kind: RecordKind

        Returns:
            List of records ordered by creation timestamp, then id
        """
        kind = RecordKind(kind)
        model = MODELS[kind]
        return (
            self.db.session.query(model)
            .filter(model.sync_status.in_(NEEDS_SYNC))
            .order_by(ORDER_COLUMNS[kind].asc(), model.id.asc())
            .all()
        )

    def _transition(self, kind, record_id, target, now_ms=None):
        record = self.get_or_404(kind, record_id)
        current = SyncStatus(record.sync_status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransition(
                f"{RecordKind(kind).value} {record_id}: {current.value} -> {target.value} is not allowed"
            )
        record.sync_status = target.value
        if now_ms is not None:
            record.last_sync_attempt = now_ms
        try:
            self.db.session.commit()
        except Exception as e:
            self.db.session.rollback()
            logger.error(f"Error updating sync status of {RecordKind(kind).value} {record_id}: {str(e)}")
            raise
        return record

    def mark_synced(self, kind, record_id, now_ms):
        return self._transition(kind, record_id, SyncStatus.SYNCED, now_ms)

    def mark_failed(self, kind, record_id, now_ms):
        return self._transition(kind, record_id, SyncStatus.FAILED, now_ms)

    def requeue(self, kind, record_id):
        """Move a failed record back to pending before another attempt."""
        return self._transition(kind, record_id, SyncStatus.PENDING)

    def retry_failed(self, kind=None):
        """Move every failed record (of one kind, or all kinds) back to pending.

        Returns:
            Number of records re-queued
        """
        kinds = [RecordKind(kind)] if kind else list(RecordKind)
        count = 0
        try:
            for k in kinds:
                model = MODELS[k]
                count += (
                    self.db.session.query(model)
                    .filter(model.sync_status == SyncStatus.FAILED.value)
                    .update({model.sync_status: SyncStatus.PENDING.value})
                )
            self.db.session.commit()
        except Exception as e:
            self.db.session.rollback()
            logger.error(f"Error re-queuing failed records: {str(e)}")
            raise
        if count:
            logger.info(f"Re-queued {count} failed records")
        return count

    def count_by_status(self, kind, status):
        model = MODELS[RecordKind(kind)]
        return self.db.session.query(model).filter(model.sync_status == SyncStatus(status).value).count()

    def pending_counts(self):
        """Number of records needing sync, per kind."""
        counts = {}
        for kind, model in MODELS.items():
            counts[kind.value] = self.db.session.query(model).filter(model.sync_status.in_(NEEDS_SYNC)).count()
        return counts

    def list_rides(self, limit=50):
        return self.db.session.query(Ride).order_by(Ride.timestamp.desc()).limit(limit).all()

    def list_drill_results(self, limit=50):
        return self.db.session.query(DrillResult).order_by(DrillResult.timestamp.desc()).limit(limit).all()

    def list_achievements(self):
        return self.db.session.query(Achievement).order_by(Achievement.unlocked_at.asc()).all()

    def get_achievement(self, achievement_id):
        return self.db.session.query(Achievement).filter_by(achievement_id=achievement_id).first()

    def update_ride_rating(self, ride_id, rating):
        """Set the local rating of a ride. Sync fields are left untouched."""
        ride = self.get_or_404(RecordKind.RIDE, ride_id)
        ride.rating = rating
        try:
            self.db.session.commit()
        except Exception as e:
            self.db.session.rollback()
            logger.error(f"Error rating ride {ride_id}: {str(e)}")
            raise
        return ride
