"""Model for completed rides."""

import json
from datetime import datetime, timezone

from ridesync.extensions import db
from ridesync.models.sync_status import SyncableMixin


class Ride(SyncableMixin, db.Model):
    """A finished ride with its summary metrics."""

    __tablename__ = 'rides'

    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.BigInteger, nullable=False, index=True)
    duration_ms = db.Column(db.BigInteger, nullable=False, default=0)

    # Pedaling technique
    balance_left = db.Column(db.Integer, nullable=False, default=50)
    balance_right = db.Column(db.Integer, nullable=False, default=50)
    te_left = db.Column(db.Integer, nullable=False, default=0)
    te_right = db.Column(db.Integer, nullable=False, default=0)
    ps_left = db.Column(db.Integer, nullable=False, default=0)
    ps_right = db.Column(db.Integer, nullable=False, default=0)
    zone_optimal = db.Column(db.Integer, nullable=False, default=0)
    zone_attention = db.Column(db.Integer, nullable=False, default=0)
    zone_problem = db.Column(db.Integer, nullable=False, default=0)
    score = db.Column(db.Integer, nullable=False, default=0)

    # Extended metrics
    power_avg = db.Column(db.Integer, nullable=False, default=0)
    power_max = db.Column(db.Integer, nullable=False, default=0)
    cadence_avg = db.Column(db.Integer, nullable=False, default=0)
    hr_avg = db.Column(db.Integer, nullable=False, default=0)
    hr_max = db.Column(db.Integer, nullable=False, default=0)
    speed_avg_kmh = db.Column(db.Float, nullable=False, default=0.0)
    distance_km = db.Column(db.Float, nullable=False, default=0.0)
    elevation_gain = db.Column(db.Integer, nullable=False, default=0)
    elevation_loss = db.Column(db.Integer, nullable=False, default=0)
    grade_avg = db.Column(db.Float, nullable=False, default=0.0)
    grade_max = db.Column(db.Float, nullable=False, default=0.0)
    normalized_power = db.Column(db.Integer, nullable=False, default=0)
    energy_kj = db.Column(db.Integer, nullable=False, default=0)

    snapshots_json = db.Column(db.Text, nullable=True)
    saved_manually = db.Column(db.Boolean, nullable=False, default=False)

    # Local annotation, never uploaded
    rating = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        """Return string representation."""
        return f'<Ride {self.id} at {self.timestamp}>'

    @property
    def snapshots(self):
        """Per-minute snapshots as a list of dicts."""
        if not self.snapshots_json:
            return []
        return json.loads(self.snapshots_json)

    def to_sync_payload(self):
        """Ride body for the cloud sync endpoints."""
        return {
            'timestamp': self.timestamp,
            'duration': self.duration_ms,
            'balance_left_avg': self.balance_left,
            'balance_right_avg': self.balance_right,
            'te_left_avg': self.te_left,
            'te_right_avg': self.te_right,
            'ps_left_avg': self.ps_left,
            'ps_right_avg': self.ps_right,
            'optimal_pct': self.zone_optimal,
            'attention_pct': self.zone_attention,
            'problem_pct': self.zone_problem,
            'score': self.score,
            'power_avg': self.power_avg,
            'power_max': self.power_max,
            'cadence_avg': self.cadence_avg,
            'hr_avg': self.hr_avg,
            'hr_max': self.hr_max,
            'speed_avg': self.speed_avg_kmh,
            'distance_km': self.distance_km,
            'elevation_gain': self.elevation_gain,
            'elevation_loss': self.elevation_loss,
            'grade_avg': self.grade_avg,
            'grade_max': self.grade_max,
            'normalized_power': self.normalized_power,
            'energy_kj': self.energy_kj,
        }

    def snapshots_payload(self):
        return [
            {
                'minute_index': s['minute_index'],
                'timestamp': s['timestamp'],
                'balance_left': s['balance_left'],
                'balance_right': s['balance_right'],
                'te_left': s['te_left'],
                'te_right': s['te_right'],
                'ps_left': s['ps_left'],
                'ps_right': s['ps_right'],
                'power_avg': s['power_avg'],
                'cadence_avg': s['cadence_avg'],
                'hr_avg': s['hr_avg'],
                'zone_status': s['zone_status'],
            }
            for s in self.snapshots
        ]

    def to_dict(self, include_snapshots=False):
        data = {'id': self.id, **self.to_sync_payload()}
        data['saved_manually'] = self.saved_manually
        data['rating'] = self.rating
        data['snapshot_count'] = len(self.snapshots)
        data.update(self.sync_fields())
        if include_snapshots:
            data['snapshots'] = self.snapshots
        return data
