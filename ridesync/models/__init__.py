"""Database models for the local record store."""

from ridesync.models.sync_status import SyncStatus, RecordKind
from ridesync.models.credential import CredentialEntry
from ridesync.models.preference import Preference
from ridesync.models.ride import Ride
from ridesync.models.drill_result import DrillResult
from ridesync.models.achievement import Achievement
from ridesync.models.ride_checkpoint import RideCheckpoint

__all__ = [
    'SyncStatus',
    'RecordKind',
    'CredentialEntry',
    'Preference',
    'Ride',
    'DrillResult',
    'Achievement',
    'RideCheckpoint',
]
