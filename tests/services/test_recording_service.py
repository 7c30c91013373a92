import json

import pytest

from ridesync.domain.ride_accumulator import LiveRideAccumulator, RideSample, ZoneStatus
from ridesync.errors import RideStateError, ValidationError
from ridesync.models.sync_status import RecordKind, SyncStatus
from ridesync.services.checkpoint_service import CheckpointManager
from ridesync.services.recording_service import RecordingService

START = 1_700_000_000_000


@pytest.fixture
def accumulator():
    return LiveRideAccumulator()


@pytest.fixture
def checkpoint_manager(checkpoint_repository, accumulator, clock):
    return CheckpointManager(checkpoint_repository, accumulator, clock=clock, tick_interval_ms=3_600_000)


@pytest.fixture
def on_saved(mocker):
    return mocker.Mock()


@pytest.fixture
def recording_service(record_repository, accumulator, checkpoint_manager, clock, on_saved):
    service = RecordingService(record_repository, accumulator, checkpoint_manager,
                               score_fn=lambda ride: 87, on_record_saved=on_saved, clock=clock)
    yield service
    checkpoint_manager.stop_periodic_checkpoints()


def ride_samples(service, clock, count, zone=ZoneStatus.OPTIMAL):
    for _ in range(count):
        clock.advance(1000)
        service.on_sample(RideSample(timestamp_ms=clock.now, balance_right=51, power=210, zone=zone))


def test_full_ride_is_stored_pending_and_checkpoint_cleared(recording_service, clock, checkpoint_repository,
                                                           record_repository, on_saved):
    assert recording_service.start_ride() is False
    ride_samples(recording_service, clock, 90)
    recording_service.checkpoint_manager.save_if_needed(True)
    assert checkpoint_repository.exists()

    ride = recording_service.finish_ride()

    assert ride.sync_status == SyncStatus.PENDING.value
    assert ride.duration_ms == 90_000
    assert ride.score == 87
    assert ride.power_avg == 210
    assert ride.zone_optimal == 100
    assert len(json.loads(ride.snapshots_json)) == 2
    assert not checkpoint_repository.exists()
    assert record_repository.pending_counts()["ride"] == 1
    on_saved.assert_called_once_with(RecordKind.RIDE)
    assert not recording_service.is_recording


def test_cannot_start_twice(recording_service):
    recording_service.start_ride()
    with pytest.raises(RideStateError):
        recording_service.start_ride()


def test_finish_without_ride(recording_service):
    with pytest.raises(RideStateError):
        recording_service.finish_ride()


def test_empty_ride_is_not_stored(recording_service, record_repository, on_saved):
    recording_service.start_ride()
    assert recording_service.finish_ride() is None
    assert record_repository.pending_counts()["ride"] == 0
    on_saved.assert_not_called()


def test_samples_ignored_when_idle_or_paused(recording_service, clock, checkpoint_repository):
    assert recording_service.on_sample(RideSample(timestamp_ms=clock.now, balance_right=50)) is False

    recording_service.start_ride()
    ride_samples(recording_service, clock, 3)
    recording_service.pause_ride()

    assert checkpoint_repository.get().sample_count == 3
    assert recording_service.on_sample(RideSample(timestamp_ms=clock.now, balance_right=50)) is False

    recording_service.resume_ride()
    assert recording_service.on_sample(RideSample(timestamp_ms=clock.now, balance_right=50)) is True


def test_crashed_ride_resumes_on_start(record_repository, checkpoint_repository, clock):
    # First process: record and checkpoint, then "crash"
    first_acc = LiveRideAccumulator()
    first_manager = CheckpointManager(checkpoint_repository, first_acc, clock=clock, tick_interval_ms=3_600_000)
    first = RecordingService(record_repository, first_acc, first_manager, clock=clock)
    first.start_ride()
    ride_samples(first, clock, 30)
    first_manager.save_checkpoint()
    first_manager.stop_periodic_checkpoints()

    # Second process
    clock.advance(5 * 60 * 1000)
    acc = LiveRideAccumulator()
    manager = CheckpointManager(checkpoint_repository, acc, clock=clock, tick_interval_ms=3_600_000)
    second = RecordingService(record_repository, acc, manager, clock=clock)
    try:
        assert second.start_ride() is True
        assert second.is_recording
        assert acc.sample_count == 30
        ride_samples(second, clock, 5)
        ride = second.finish_ride()
    finally:
        manager.stop_periodic_checkpoints()

    assert ride is not None
    assert not checkpoint_repository.exists()


def test_recover_runs_once(recording_service, checkpoint_manager, mocker):
    spy = mocker.spy(checkpoint_manager, "try_restore")
    recording_service.recover()
    recording_service.recover()
    recording_service.start_ride()
    assert spy.call_count == 1


def test_shutdown_saves_live_ride(recording_service, clock, checkpoint_repository):
    recording_service.start_ride()
    ride_samples(recording_service, clock, 4)

    assert recording_service.shutdown() is True
    assert checkpoint_repository.get().sample_count == 4


def test_discard(recording_service, clock, checkpoint_repository, record_repository):
    recording_service.start_ride()
    ride_samples(recording_service, clock, 20)
    recording_service.pause_ride()

    recording_service.discard_ride()

    assert not checkpoint_repository.exists()
    assert record_repository.pending_counts()["ride"] == 0


def test_rate_ride_validation(recording_service, clock):
    recording_service.start_ride()
    ride_samples(recording_service, clock, 2)
    ride = recording_service.finish_ride()

    assert recording_service.rate_ride(ride.id, 5).rating == 5
    with pytest.raises(ValidationError):
        recording_service.rate_ride(ride.id, 6)


def test_drill_result(recording_service, on_saved):
    result = recording_service.record_drill_result(
        drill_id="balance_focus", drill_name="Balance focus", duration_ms=120_000, score=82.5,
        time_in_target_ms=90_000, completed=True, phase_scores=[80, 85],
    )

    assert result.sync_status == SyncStatus.PENDING.value
    assert result.time_in_target_percent == 75.0
    assert json.loads(result.phase_scores_json) == [80, 85]
    on_saved.assert_called_once_with(RecordKind.DRILL)


def test_achievement_unlocked_once(recording_service, record_repository):
    first, created = recording_service.unlock_achievement("first_ride")
    again, created_again = recording_service.unlock_achievement("first_ride")

    assert created and not created_again
    assert first.id == again.id
    assert record_repository.pending_counts()["achievement"] == 1


def test_failing_hook_does_not_lose_record(recording_service, on_saved, record_repository):
    on_saved.side_effect = RuntimeError("executor gone")

    recording_service.unlock_achievement("streak_3")

    assert record_repository.get_achievement("streak_3") is not None
