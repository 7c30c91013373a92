from ridesync.models.ride_checkpoint import RideCheckpoint


def make_checkpoint(at, samples=10):
    return RideCheckpoint(
        ride_start_time_ms=1000,
        last_checkpoint_ms=at,
        sample_count=samples,
        accumulators_json="{}",
        snapshots_json="[]",
        was_recording=True,
    )


def test_single_slot_is_replaced(checkpoint_repository, db):
    checkpoint_repository.save(make_checkpoint(2000, samples=10))
    checkpoint_repository.save(make_checkpoint(3000, samples=20))

    assert db.session.query(RideCheckpoint).count() == 1
    stored = checkpoint_repository.get()
    assert stored.last_checkpoint_ms == 3000
    assert stored.sample_count == 20


def test_clear(checkpoint_repository):
    checkpoint_repository.save(make_checkpoint(2000))

    assert checkpoint_repository.clear() is True
    assert checkpoint_repository.exists() is False
    assert checkpoint_repository.clear() is False
