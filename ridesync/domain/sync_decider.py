"""Decide whether an automatic sync pass should run right now."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

DEFAULT_COOLDOWN_MS = 60_000


class SyncDecisionKind(str, Enum):
    NOT_LOGGED_IN = 'not_logged_in'
    RECORDING = 'recording'
    COOLDOWN = 'cooldown'
    NOTHING_PENDING = 'nothing_pending'
    SYNC = 'sync'


@dataclass(frozen=True)
class SyncConditions:
    is_logged_in: bool
    is_recording: bool
    last_sync_ms: int
    now_ms: int
    pending_counts: Dict[str, int] = field(default_factory=dict)
    cooldown_ms: int = DEFAULT_COOLDOWN_MS

    @property
    def total_pending(self):
        return sum(self.pending_counts.values())


@dataclass(frozen=True)
class SyncDecision:
    kind: SyncDecisionKind
    remaining_seconds: int = 0
    pending_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def should_sync(self):
        return self.kind is SyncDecisionKind.SYNC


def decide(conditions):
    """Pure decision for automatic (scheduled or post-ride) sync.

    Checks run in order: login, active recording, cooldown since the last
    sync, and whether anything is waiting to be uploaded.
    """
    if not conditions.is_logged_in:
        return SyncDecision(SyncDecisionKind.NOT_LOGGED_IN)
    if conditions.is_recording:
        return SyncDecision(SyncDecisionKind.RECORDING)

    elapsed = conditions.now_ms - conditions.last_sync_ms
    if conditions.last_sync_ms > 0 and 0 <= elapsed < conditions.cooldown_ms:
        remaining = math.ceil((conditions.cooldown_ms - elapsed) / 1000)
        return SyncDecision(SyncDecisionKind.COOLDOWN, remaining_seconds=remaining)

    if conditions.total_pending == 0:
        return SyncDecision(SyncDecisionKind.NOTHING_PENDING)
    return SyncDecision(SyncDecisionKind.SYNC, pending_counts=dict(conditions.pending_counts))
