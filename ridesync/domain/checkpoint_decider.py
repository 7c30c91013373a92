"""Pure decisions for ride crash-recovery checkpoints.

No I/O and no clock access: every input is passed in, so the rules can be
tested with plain values.
"""

from dataclasses import dataclass

CHECKPOINT_INTERVAL_MS = 60_000
MIN_SAMPLES_FOR_CHECKPOINT = 10
STALE_CHECKPOINT_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class SaveDecision:
    save: bool
    reason: str


@dataclass(frozen=True)
class RestoreDecision:
    restore: bool
    reason: str


def should_save_checkpoint(last_checkpoint_ms, now_ms, sample_count, is_recording):
    """Decide whether the live ride should be checkpointed now.

    Rules are evaluated in order; the first match wins.

    Args:
        last_checkpoint_ms: When the previous checkpoint (or ride start) happened
        now_ms: Current wall-clock time
        sample_count: Samples accumulated so far in this ride
        is_recording: Whether a ride is currently being recorded

    Returns:
        SaveDecision with one of the reasons not_recording, too_few_samples,
        interval_not_reached, interval_elapsed
    """
    if not is_recording:
        return SaveDecision(False, "not_recording")
    if sample_count < MIN_SAMPLES_FOR_CHECKPOINT:
        return SaveDecision(False, "too_few_samples")
    # A clock that jumped backwards yields a negative value and never saves
    if now_ms - last_checkpoint_ms < CHECKPOINT_INTERVAL_MS:
        return SaveDecision(False, "interval_not_reached")
    return SaveDecision(True, "interval_elapsed")


def should_restore_checkpoint(checkpoint_exists, was_recording, last_checkpoint_ms, now_ms):
    """Decide whether a checkpoint found at startup should be restored.

    Returns:
        RestoreDecision with one of the reasons no_checkpoint, not_recording,
        stale_checkpoint (exactly 24h is stale), valid_checkpoint
    """
    if not checkpoint_exists:
        return RestoreDecision(False, "no_checkpoint")
    if not was_recording:
        return RestoreDecision(False, "not_recording")
    if now_ms - last_checkpoint_ms >= STALE_CHECKPOINT_MS:
        return RestoreDecision(False, "stale_checkpoint")
    return RestoreDecision(True, "valid_checkpoint")
