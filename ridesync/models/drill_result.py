"""Model for completed drills."""

from datetime import datetime, timezone

from ridesync.extensions import db
from ridesync.models.sync_status import SyncableMixin


class DrillResult(SyncableMixin, db.Model):
    """Outcome of one guided drill."""

    __tablename__ = 'drill_results'

    id = db.Column(db.Integer, primary_key=True)
    drill_id = db.Column(db.String(64), nullable=False)
    drill_name = db.Column(db.String(255), nullable=False)
    timestamp = db.Column(db.BigInteger, nullable=False, index=True)
    duration_ms = db.Column(db.BigInteger, nullable=False, default=0)
    score = db.Column(db.Float, nullable=False, default=0.0)
    time_in_target_ms = db.Column(db.BigInteger, nullable=False, default=0)
    time_in_target_percent = db.Column(db.Float, nullable=False, default=0.0)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    phase_scores_json = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        """Return string representation."""
        return f'<DrillResult {self.drill_id} at {self.timestamp}>'

    def to_sync_payload(self):
        return {
            'drill_id': self.drill_id,
            'drill_name': self.drill_name,
            'timestamp': self.timestamp,
            'duration_ms': self.duration_ms,
            'score': self.score,
            'time_in_target_ms': self.time_in_target_ms,
            'time_in_target_percent': self.time_in_target_percent,
            'completed': self.completed,
            'phase_scores_json': self.phase_scores_json,
        }

    def to_dict(self):
        return {'id': self.id, **self.to_sync_payload(), **self.sync_fields()}
