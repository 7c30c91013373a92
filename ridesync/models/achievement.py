"""Model for unlocked achievements."""

from datetime import datetime, timezone

from ridesync.extensions import db
from ridesync.models.sync_status import SyncableMixin


class Achievement(SyncableMixin, db.Model):
    """An achievement unlocked on this device."""

    __tablename__ = 'achievements'

    id = db.Column(db.Integer, primary_key=True)
    achievement_id = db.Column(db.String(64), nullable=False, unique=True)
    unlocked_at = db.Column(db.BigInteger, nullable=False, index=True)
    progress = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        """Return string representation."""
        return f'<Achievement {self.achievement_id}>'

    # Creation order for sync purposes
    @property
    def timestamp(self):
        return self.unlocked_at

    def to_sync_payload(self):
        return {
            'achievement_id': self.achievement_id,
            'unlocked_at': self.unlocked_at,
        }

    def to_dict(self):
        return {'id': self.id, **self.to_sync_payload(), 'progress': self.progress, **self.sync_fields()}
