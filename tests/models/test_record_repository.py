import pytest

from ridesync.errors import InvalidStatusTransition, ResourceNotFoundError
from ridesync.models.achievement import Achievement
from ridesync.models.drill_result import DrillResult
from ridesync.models.ride import Ride
from ridesync.models.sync_status import RecordKind, SyncStatus


def make_ride(timestamp, **kwargs):
    return Ride(timestamp=timestamp, duration_ms=60_000, **kwargs)


def test_new_records_start_pending(record_repository):
    ride = make_ride(1000, sync_status=SyncStatus.SYNCED.value, last_sync_attempt=5)
    record_repository.add(ride)

    assert ride.sync_status == SyncStatus.PENDING.value
    assert ride.last_sync_attempt == 0


def test_needing_sync_is_oldest_first_and_skips_synced(record_repository):
    late = record_repository.add(make_ride(3000))
    early = record_repository.add(make_ride(1000))
    done = record_repository.add(make_ride(2000))
    record_repository.mark_synced(RecordKind.RIDE, done.id, 10)
    failed = record_repository.add(make_ride(2500))
    record_repository.mark_failed(RecordKind.RIDE, failed.id, 10)

    ids = [r.id for r in record_repository.get_needing_sync(RecordKind.RIDE)]
    assert ids == [early.id, failed.id, late.id]


def test_same_timestamp_orders_by_id(record_repository):
    first = record_repository.add(make_ride(1000))
    second = record_repository.add(make_ride(1000))
    ids = [r.id for r in record_repository.get_needing_sync(RecordKind.RIDE)]
    assert ids == [first.id, second.id]


def test_mark_synced_records_attempt_time(record_repository):
    ride = record_repository.add(make_ride(1000))
    record_repository.mark_synced(RecordKind.RIDE, ride.id, 42)

    stored = record_repository.get(RecordKind.RIDE, ride.id)
    assert stored.sync_status == SyncStatus.SYNCED.value
    assert stored.last_sync_attempt == 42


def test_synced_is_terminal(record_repository):
    ride = record_repository.add(make_ride(1000))
    record_repository.mark_synced(RecordKind.RIDE, ride.id, 1)

    with pytest.raises(InvalidStatusTransition):
        record_repository.mark_failed(RecordKind.RIDE, ride.id, 2)
    with pytest.raises(InvalidStatusTransition):
        record_repository.requeue(RecordKind.RIDE, ride.id)


def test_failed_must_be_requeued_before_next_outcome(record_repository):
    ride = record_repository.add(make_ride(1000))
    record_repository.mark_failed(RecordKind.RIDE, ride.id, 1)

    with pytest.raises(InvalidStatusTransition):
        record_repository.mark_synced(RecordKind.RIDE, ride.id, 2)

    record_repository.requeue(RecordKind.RIDE, ride.id)
    record_repository.mark_synced(RecordKind.RIDE, ride.id, 3)
    assert record_repository.get(RecordKind.RIDE, ride.id).sync_status == SyncStatus.SYNCED.value


def test_retry_failed_across_kinds(record_repository):
    ride = record_repository.add(make_ride(1000))
    drill = record_repository.add(DrillResult(drill_id="d1", drill_name="Balance", timestamp=1000))
    record_repository.mark_failed(RecordKind.RIDE, ride.id, 1)
    record_repository.mark_failed(RecordKind.DRILL, drill.id, 1)

    assert record_repository.retry_failed() == 2
    assert record_repository.count_by_status(RecordKind.RIDE, SyncStatus.PENDING) == 1
    assert record_repository.count_by_status(RecordKind.DRILL, SyncStatus.FAILED) == 0


def test_pending_counts(record_repository):
    record_repository.add(make_ride(1000))
    record_repository.add(Achievement(achievement_id="first_ride", unlocked_at=1000))

    assert record_repository.pending_counts() == {"ride": 1, "drill": 0, "achievement": 1}


def test_rating_does_not_touch_sync_fields(record_repository):
    ride = record_repository.add(make_ride(1000))
    record_repository.mark_synced(RecordKind.RIDE, ride.id, 7)

    record_repository.update_ride_rating(ride.id, 4)

    stored = record_repository.get(RecordKind.RIDE, ride.id)
    assert stored.rating == 4
    assert stored.sync_status == SyncStatus.SYNCED.value
    assert stored.last_sync_attempt == 7


def test_missing_record(record_repository):
    with pytest.raises(ResourceNotFoundError):
        record_repository.mark_synced(RecordKind.RIDE, 999, 1)


def test_ride_payload_uses_cloud_field_names():
    ride = make_ride(1000, balance_left=49, balance_right=51, zone_optimal=80)
    payload = ride.to_sync_payload()
    assert payload["duration"] == 60_000
    assert payload["balance_left_avg"] == 49
    assert payload["optimal_pct"] == 80
    assert "rating" not in payload
