"""Repository for the single ride checkpoint slot."""

import logging

from ridesync.errors import CheckpointError
from ridesync.extensions import db
from ridesync.models.ride_checkpoint import CHECKPOINT_SLOT_ID, RideCheckpoint

logger = logging.getLogger(__name__)


class SqlAlchemyCheckpointRepository:

    def __init__(self, db_instance=None):
        self.db = db_instance or db

    def get(self):
        return self.db.session.get(RideCheckpoint, CHECKPOINT_SLOT_ID)

    def exists(self):
        return self.get() is not None

    def save(self, checkpoint):
        """Replace the checkpoint slot with the given checkpoint."""
        checkpoint.id = CHECKPOINT_SLOT_ID
        try:
            self.db.session.merge(checkpoint)
            self.db.session.commit()
        except Exception as e:
            self.db.session.rollback()
            logger.error(f"Error saving checkpoint: {str(e)}")
            raise CheckpointError("Could not save checkpoint", details=str(e))

    def clear(self):
        try:
            deleted = self.db.session.query(RideCheckpoint).filter_by(id=CHECKPOINT_SLOT_ID).delete()
            self.db.session.commit()
            return deleted > 0
        except Exception as e:
            self.db.session.rollback()
            logger.error(f"Error clearing checkpoint: {str(e)}")
            raise CheckpointError("Could not clear checkpoint", details=str(e))
