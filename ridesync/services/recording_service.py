"""Recording flow: live ride lifecycle, drill results and achievements."""

import json
import logging
import threading

from ridesync.errors import RideStateError, ValidationError
from ridesync.models.achievement import Achievement
from ridesync.models.drill_result import DrillResult
from ridesync.models.ride import Ride
from ridesync.models.sync_status import RecordKind
from ridesync.utils.clock import now_ms

logger = logging.getLogger(__name__)


class RecordingService:
    """Owns the live ride and creates the records that later get synced.

    A crash checkpoint is evaluated before the first ride of the process can
    start; a restored ride simply continues recording.
    """

    def __init__(self, record_repository, accumulator, checkpoint_manager,
                 score_fn=None, on_record_saved=None, clock=None):
        """Initialize the service.

        Args:
            record_repository: SqlAlchemyRecordRepository
            accumulator: LiveRideAccumulator shared with the checkpoint manager
            checkpoint_manager: CheckpointManager
            score_fn: Optional callable computing a ride score from a Ride
            on_record_saved: Optional callable invoked with the record kind after
                a new record is stored (used to trigger auto-sync)
            clock: Callable returning epoch milliseconds
        """
        self.record_repository = record_repository
        self.accumulator = accumulator
        self.checkpoint_manager = checkpoint_manager
        self.score_fn = score_fn
        self.on_record_saved = on_record_saved
        self.clock = clock or now_ms
        self._lock = threading.RLock()
        self._recording = False
        self._paused = False

    @property
    def is_recording(self):
        return self._recording

    @property
    def is_paused(self):
        return self._paused

    def status(self):
        return {
            'recording': self._recording,
            'paused': self._paused,
            'sample_count': self.accumulator.sample_count,
            'started_at': self.accumulator.start_time_ms if self._recording else None,
        }

    def recover(self):
        """Evaluate the crash checkpoint. Returns True when a ride was resumed."""
        with self._lock:
            if self.checkpoint_manager.restore_checked:
                return False
            decision = self.checkpoint_manager.try_restore(self.clock())
            if decision.restore:
                self._recording = True
                self._paused = False
                self.checkpoint_manager.start_periodic_checkpoints(lambda: self._recording and not self._paused)
            return decision.restore

    def start_ride(self):
        """Begin recording a ride.

        Returns:
            True when an interrupted ride was resumed instead of starting a new one

        Raises:
            RideStateError: If a ride is already being recorded
        """
        with self._lock:
            if self.recover():
                logger.info("Resumed interrupted ride")
                return True
            if self._recording:
                raise RideStateError("A ride is already being recorded")

            start = self.clock()
            self.accumulator.start(start)
            self.checkpoint_manager.mark_ride_started(start)
            self._recording = True
            self._paused = False
            self.checkpoint_manager.start_periodic_checkpoints(lambda: self._recording and not self._paused)
            logger.info(f"Ride started at {start}")
            return False

    def on_sample(self, sample):
        """Sensor callback. Samples outside an active, unpaused ride are ignored."""
        if not self._recording or self._paused:
            return False
        self.accumulator.add_sample(sample)
        return True

    def pause_ride(self):
        with self._lock:
            if not self._recording:
                raise RideStateError("No ride is being recorded")
            if self._paused:
                return
            self._paused = True
            # Keep what we have: nobody knows whether the ride will be resumed
            if self.accumulator.sample_count > 0:
                self.checkpoint_manager.save_checkpoint(was_recording=True)
            logger.info("Ride paused")

    def resume_ride(self):
        with self._lock:
            if not self._recording:
                raise RideStateError("No ride is being recorded")
            self._paused = False
            logger.info("Ride resumed")

    def finish_ride(self, saved_manually=False):
        """End the ride normally: store it as pending and drop the checkpoint.

        Returns:
            The stored Ride, or None when the ride had no samples
        """
        with self._lock:
            if not self._recording:
                raise RideStateError("No ride is being recorded")
            self.checkpoint_manager.stop_periodic_checkpoints()
            self._recording = False
            self._paused = False

            summary = self.accumulator.summarize(self.clock())
            if summary.sample_count == 0:
                logger.info("Ride had no samples, nothing stored")
                self.checkpoint_manager.clear_checkpoint()
                return None

            ride = Ride(**summary.metrics)
            ride.saved_manually = saved_manually
            ride.snapshots_json = json.dumps([s.to_dict() for s in summary.snapshots])
            if self.score_fn is not None:
                ride.score = int(self.score_fn(ride))

            self.record_repository.add(ride)
            self.checkpoint_manager.clear_checkpoint()
            logger.info(f"Ride {ride.id} stored: {summary.sample_count} samples, {len(summary.snapshots)} snapshots")

        self._notify(RecordKind.RIDE)
        return ride

    def discard_ride(self):
        with self._lock:
            if not self._recording:
                raise RideStateError("No ride is being recorded")
            self.checkpoint_manager.stop_periodic_checkpoints()
            self._recording = False
            self._paused = False
            self.checkpoint_manager.clear_checkpoint()
            logger.info("Ride discarded")

    def shutdown(self):
        """Stop the checkpoint tick and save the live ride one last time."""
        self.checkpoint_manager.stop_periodic_checkpoints()
        return self.checkpoint_manager.emergency_save(self._recording)

    def rate_ride(self, ride_id, rating):
        if not isinstance(rating, int) or isinstance(rating, bool) or not 0 <= rating <= 5:
            raise ValidationError("Rating must be an integer between 0 and 5")
        return self.record_repository.update_ride_rating(ride_id, rating)

    def record_drill_result(self, drill_id, drill_name, duration_ms, score, time_in_target_ms,
                            completed, phase_scores=None, timestamp=None):
        """Store the outcome of a finished drill as pending."""
        if not drill_id or not drill_name:
            raise ValidationError("drill_id and drill_name are required")
        duration_ms = int(duration_ms)
        time_in_target_ms = int(time_in_target_ms)
        percent = (time_in_target_ms * 100.0 / duration_ms) if duration_ms > 0 else 0.0
        result = DrillResult(
            drill_id=drill_id,
            drill_name=drill_name,
            timestamp=timestamp or self.clock(),
            duration_ms=duration_ms,
            score=float(score),
            time_in_target_ms=time_in_target_ms,
            time_in_target_percent=round(percent, 1),
            completed=bool(completed),
            phase_scores_json=json.dumps(phase_scores) if phase_scores is not None else None,
        )
        self.record_repository.add(result)
        self._notify(RecordKind.DRILL)
        return result

    def unlock_achievement(self, achievement_id, unlocked_at=None, progress=100):
        """Store an achievement unlock. Unlocking twice keeps the first record.

        Returns:
            Tuple of (Achievement, created)
        """
        if not achievement_id:
            raise ValidationError("achievement_id is required")
        existing = self.record_repository.get_achievement(achievement_id)
        if existing is not None:
            return existing, False
        achievement = Achievement(
            achievement_id=achievement_id,
            unlocked_at=unlocked_at or self.clock(),
            progress=progress,
        )
        self.record_repository.add(achievement)
        logger.info(f"Achievement {achievement_id} unlocked")
        self._notify(RecordKind.ACHIEVEMENT)
        return achievement, True

    def _notify(self, kind):
        if self.on_record_saved is None:
            return
        try:
            self.on_record_saved(kind)
        except Exception as e:
            # The record is stored; a failed trigger only delays its upload
            logger.error(f"Post-save hook failed for {kind.value}: {e}")
