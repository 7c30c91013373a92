"""Crash-recovery checkpoints for the ride being recorded."""

import contextlib
import json
import logging
import threading

from ridesync.domain.checkpoint_decider import (
    CHECKPOINT_INTERVAL_MS,
    RestoreDecision,
    should_restore_checkpoint,
    should_save_checkpoint,
)
from ridesync.domain.ride_accumulator import AccumulatorState, RideSnapshot
from ridesync.errors import CheckpointError
from ridesync.models.ride_checkpoint import RideCheckpoint
from ridesync.utils.clock import now_ms

logger = logging.getLogger(__name__)


class CheckpointManager:
    """Persists the live ride periodically and restores it after a crash.

    The save/restore rules live in `ridesync.domain.checkpoint_decider`; this
    class feeds them live inputs and performs the I/O.
    """

    def __init__(self, checkpoint_repository, accumulator, clock=None,
                 tick_interval_ms=CHECKPOINT_INTERVAL_MS, context_factory=None):
        """Initialize the manager.

        Args:
            checkpoint_repository: SqlAlchemyCheckpointRepository
            accumulator: LiveRideAccumulator of the current ride
            clock: Callable returning epoch milliseconds
            tick_interval_ms: How often the background thread evaluates a save
            context_factory: Callable returning a context manager (an app
                context) entered around each background tick
        """
        self.checkpoint_repository = checkpoint_repository
        self.accumulator = accumulator
        self.clock = clock or now_ms
        self.tick_interval_ms = tick_interval_ms
        self.context_factory = context_factory or contextlib.nullcontext
        self.last_checkpoint_ms = 0
        self._restore_checked = False
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def restore_checked(self):
        return self._restore_checked

    def mark_ride_started(self, start_time_ms):
        """The interval for the first checkpoint counts from the ride start."""
        self.last_checkpoint_ms = start_time_ms

    def save_if_needed(self, is_recording, now=None):
        """Evaluate the save rule against live state and save when it says so.

        Returns:
            SaveDecision
        """
        now = self.clock() if now is None else now
        decision = should_save_checkpoint(
            self.last_checkpoint_ms, now, self.accumulator.sample_count, is_recording
        )
        if decision.save:
            self.save_checkpoint(was_recording=True, now=now)
        else:
            logger.debug(f"Checkpoint skipped: {decision.reason}")
        return decision

    def save_checkpoint(self, was_recording=True, now=None):
        """Write the full accumulator and snapshot payload to the checkpoint slot.

        Raises:
            CheckpointError: If the slot cannot be written
        """
        now = self.clock() if now is None else now
        with self._lock:
            state, snapshots = self.accumulator.export_state()
            checkpoint = RideCheckpoint(
                ride_start_time_ms=state.start_time_ms,
                last_checkpoint_ms=now,
                sample_count=state.sample_count,
                accumulators_json=json.dumps(state.to_dict()),
                snapshots_json=json.dumps([s.to_dict() for s in snapshots]),
                was_recording=was_recording,
            )
            self.checkpoint_repository.save(checkpoint)
            self.last_checkpoint_ms = now
        logger.info(f"Checkpoint saved: {state.sample_count} samples, {len(snapshots)} snapshots")

    def try_restore(self, now=None):
        """Restore the live ride from a checkpoint left by an abnormal exit.

        Runs the restore rule once per process. Checkpoints that are not
        restored (stale, not recording, undecodable) are deleted.

        Returns:
            RestoreDecision
        """
        now = self.clock() if now is None else now
        self._restore_checked = True
        checkpoint = self.checkpoint_repository.get()

        decision = should_restore_checkpoint(
            checkpoint is not None,
            checkpoint.was_recording if checkpoint else False,
            checkpoint.last_checkpoint_ms if checkpoint else 0,
            now,
        )
        if not decision.restore:
            if checkpoint is not None:
                logger.info(f"Discarding checkpoint: {decision.reason}")
                self.checkpoint_repository.clear()
            return decision

        try:
            state = AccumulatorState.from_dict(json.loads(checkpoint.accumulators_json))
            snapshots = [RideSnapshot.from_dict(s) for s in json.loads(checkpoint.snapshots_json or '[]')]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Checkpoint is corrupt, discarding it: {e}")
            self.checkpoint_repository.clear()
            return RestoreDecision(False, "corrupt_checkpoint")

        self.accumulator.restore(state, snapshots)
        self.last_checkpoint_ms = now
        logger.info(
            f"Restored ride started at {state.start_time_ms} with {state.sample_count} samples "
            f"from checkpoint taken at {checkpoint.last_checkpoint_ms}"
        )
        return decision

    def clear_checkpoint(self):
        with self._lock:
            if self.checkpoint_repository.clear():
                logger.info("Checkpoint cleared")

    def emergency_save(self, is_recording):
        """Best-effort save on shutdown, regardless of the interval."""
        if not is_recording or self.accumulator.sample_count == 0:
            return False
        try:
            self.save_checkpoint(was_recording=True)
            return True
        except CheckpointError as e:
            logger.error(f"Emergency checkpoint failed: {e.message}")
            return False

    def start_periodic_checkpoints(self, is_recording):
        """Start the background tick.

        Args:
            is_recording: Callable returning whether a ride is being recorded
        """
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(is_recording, self._stop_event), name='checkpoint-tick', daemon=True
        )
        self._thread.start()
        logger.debug("Periodic checkpoints started")

    def stop_periodic_checkpoints(self):
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        self._thread = None

    def _run(self, is_recording, stop_event):
        while not stop_event.wait(self.tick_interval_ms / 1000.0):
            try:
                with self.context_factory():
                    self.save_if_needed(is_recording())
            except CheckpointError as e:
                # The ride keeps recording; the next tick tries again
                logger.error(f"Periodic checkpoint failed: {e.message}")
