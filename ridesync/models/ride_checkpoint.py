"""Model for the crash-recovery checkpoint slot."""

from ridesync.extensions import db

CHECKPOINT_SLOT_ID = 1


class RideCheckpoint(db.Model):
    """Snapshot of an in-progress ride. At most one row (id=1) ever exists."""

    __tablename__ = 'ride_checkpoint'

    id = db.Column(db.Integer, primary_key=True, default=CHECKPOINT_SLOT_ID)
    ride_start_time_ms = db.Column(db.BigInteger, nullable=False)
    last_checkpoint_ms = db.Column(db.BigInteger, nullable=False)
    sample_count = db.Column(db.Integer, nullable=False, default=0)
    accumulators_json = db.Column(db.Text, nullable=False)
    snapshots_json = db.Column(db.Text, nullable=False, default='[]')
    was_recording = db.Column(db.Boolean, nullable=False, default=True)

    def __repr__(self):
        """Return string representation."""
        return f'<RideCheckpoint started={self.ride_start_time_ms} at={self.last_checkpoint_ms}>'
