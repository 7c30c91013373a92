"""Running accumulation of one live ride.

Samples arrive from the sensor pipeline; the accumulator keeps sums for the
ride summary, groups samples into per-minute snapshots and can export and
re-import its full state for crash-recovery checkpoints.
"""

import threading
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import List

MINUTE_MS = 60_000
# Caps the gap credited to a zone so a paused sensor does not inflate it
MAX_ELAPSED_MS = 2_000


class ZoneStatus(str, Enum):
    OPTIMAL = 'OPTIMAL'
    ATTENTION = 'ATTENTION'
    PROBLEM = 'PROBLEM'


@dataclass(frozen=True)
class RideSample:
    """One reading from the sensor pipeline. Zone classification is done upstream."""

    timestamp_ms: int
    balance_right: float
    te_left: float = 0.0
    te_right: float = 0.0
    ps_left: float = 0.0
    ps_right: float = 0.0
    zone: ZoneStatus = ZoneStatus.OPTIMAL
    power: int = 0
    cadence: int = 0
    heart_rate: int = 0
    speed_kmh: float = 0.0
    distance_km: float = 0.0
    elevation_gain: float = 0.0
    elevation_loss: float = 0.0
    grade: float = 0.0
    normalized_power: int = 0
    energy_kj: float = 0.0

    @property
    def balance_left(self):
        return 100.0 - self.balance_right

    @classmethod
    def from_dict(cls, data):
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if 'zone' in values:
            values['zone'] = ZoneStatus(str(values['zone']).upper())
        return cls(**values)


@dataclass(frozen=True)
class RideSnapshot:
    minute_index: int
    timestamp: int
    balance_left: int
    balance_right: int
    te_left: int
    te_right: int
    ps_left: int
    ps_right: int
    power_avg: int
    cadence_avg: int
    hr_avg: int
    zone_status: str

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(**{f.name: data[f.name] for f in fields(cls)})


@dataclass
class AccumulatorState:
    """Every running sum of a live ride, serializable for checkpoints."""

    start_time_ms: int = 0
    last_update_time_ms: int = 0
    sample_count: int = 0
    balance_left_sum: float = 0.0
    balance_right_sum: float = 0.0
    te_left_sum: float = 0.0
    te_right_sum: float = 0.0
    ps_left_sum: float = 0.0
    ps_right_sum: float = 0.0

    power_sum: int = 0
    power_max: int = 0
    power_sample_count: int = 0
    cadence_sum: int = 0
    cadence_sample_count: int = 0
    heart_rate_sum: int = 0
    heart_rate_max: int = 0
    heart_rate_sample_count: int = 0
    speed_sum: float = 0.0
    speed_sample_count: int = 0
    last_distance: float = 0.0
    last_elevation_gain: float = 0.0
    last_elevation_loss: float = 0.0
    grade_sum: float = 0.0
    grade_max: float = 0.0
    grade_sample_count: int = 0
    last_normalized_power: int = 0
    last_energy: float = 0.0

    time_optimal_ms: int = 0
    time_attention_ms: int = 0
    time_problem_ms: int = 0

    # Current, not yet closed minute
    current_minute: int = 0
    minute_sample_count: int = 0
    minute_balance_left_sum: float = 0.0
    minute_balance_right_sum: float = 0.0
    minute_te_left_sum: float = 0.0
    minute_te_right_sum: float = 0.0
    minute_ps_left_sum: float = 0.0
    minute_ps_right_sum: float = 0.0
    minute_power_sum: int = 0
    minute_cadence_sum: int = 0
    minute_heart_rate_sum: int = 0
    minute_time_optimal_ms: int = 0
    minute_time_attention_ms: int = 0
    minute_time_problem_ms: int = 0

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        """Build a state from a decoded checkpoint.

        Raises:
            KeyError: If a required field is missing
            TypeError, ValueError: If a field has the wrong type
        """
        values = {}
        for f in fields(cls):
            raw = data[f.name]
            values[f.name] = float(raw) if f.type is float else int(raw)
        return cls(**values)


def _avg(total, count):
    return total / count if count else 0


def zone_percentages(optimal_ms, attention_ms, problem_ms):
    """Whole-number zone percentages that always add up to 100.

    Uses the largest remainder method. All zeros when no time was recorded.
    """
    total = optimal_ms + attention_ms + problem_ms
    if total <= 0:
        return 0, 0, 0
    exact = [optimal_ms * 100.0 / total, attention_ms * 100.0 / total, problem_ms * 100.0 / total]
    floored = [int(v) for v in exact]
    remainder = 100 - sum(floored)
    by_fraction = sorted(range(3), key=lambda i: exact[i] - floored[i], reverse=True)
    for i in by_fraction[:remainder]:
        floored[i] += 1
    return tuple(floored)


@dataclass
class RideSummary:
    start_time_ms: int
    end_time_ms: int
    sample_count: int
    metrics: dict
    snapshots: List[RideSnapshot] = field(default_factory=list)


class LiveRideAccumulator:
    """Thread-safe accumulator for the ride currently being recorded."""

    def __init__(self):
        self._lock = threading.RLock()
        self._state = AccumulatorState()
        self._snapshots = []

    def start(self, start_time_ms):
        with self._lock:
            self._state = AccumulatorState(start_time_ms=start_time_ms, last_update_time_ms=start_time_ms)
            self._snapshots = []

    @property
    def sample_count(self):
        with self._lock:
            return self._state.sample_count

    @property
    def start_time_ms(self):
        with self._lock:
            return self._state.start_time_ms

    def add_sample(self, sample):
        with self._lock:
            s = self._state
            elapsed = max(0, min(sample.timestamp_ms - s.last_update_time_ms, MAX_ELAPSED_MS))
            s.last_update_time_ms = max(s.last_update_time_ms, sample.timestamp_ms)

            minute = max(0, (sample.timestamp_ms - s.start_time_ms) // MINUTE_MS)
            if minute > s.current_minute:
                self._close_minute(sample.timestamp_ms)
                s.current_minute = minute

            s.sample_count += 1
            s.balance_left_sum += sample.balance_left
            s.balance_right_sum += sample.balance_right
            s.te_left_sum += sample.te_left
            s.te_right_sum += sample.te_right
            s.ps_left_sum += sample.ps_left
            s.ps_right_sum += sample.ps_right

            if sample.power > 0:
                s.power_sum += sample.power
                s.power_sample_count += 1
                s.power_max = max(s.power_max, sample.power)
            if sample.cadence > 0:
                s.cadence_sum += sample.cadence
                s.cadence_sample_count += 1
            if sample.heart_rate > 0:
                s.heart_rate_sum += sample.heart_rate
                s.heart_rate_sample_count += 1
                s.heart_rate_max = max(s.heart_rate_max, sample.heart_rate)
            if sample.speed_kmh > 0:
                s.speed_sum += sample.speed_kmh
                s.speed_sample_count += 1

            # Cumulative values reported by the head unit: keep the latest
            if sample.distance_km > 0:
                s.last_distance = sample.distance_km
            if sample.elevation_gain > 0:
                s.last_elevation_gain = sample.elevation_gain
            if sample.elevation_loss > 0:
                s.last_elevation_loss = sample.elevation_loss
            if sample.normalized_power > 0:
                s.last_normalized_power = sample.normalized_power
            if sample.energy_kj > 0:
                s.last_energy = sample.energy_kj
            if sample.grade != 0:
                s.grade_sum += abs(sample.grade)
                s.grade_sample_count += 1
                s.grade_max = max(s.grade_max, abs(sample.grade))

            s.minute_sample_count += 1
            s.minute_balance_left_sum += sample.balance_left
            s.minute_balance_right_sum += sample.balance_right
            s.minute_te_left_sum += sample.te_left
            s.minute_te_right_sum += sample.te_right
            s.minute_ps_left_sum += sample.ps_left
            s.minute_ps_right_sum += sample.ps_right
            s.minute_power_sum += sample.power
            s.minute_cadence_sum += sample.cadence
            s.minute_heart_rate_sum += sample.heart_rate

            if sample.zone is ZoneStatus.OPTIMAL:
                s.time_optimal_ms += elapsed
                s.minute_time_optimal_ms += elapsed
            elif sample.zone is ZoneStatus.ATTENTION:
                s.time_attention_ms += elapsed
                s.minute_time_attention_ms += elapsed
            else:
                s.time_problem_ms += elapsed
                s.minute_time_problem_ms += elapsed

    def _close_minute(self, timestamp_ms):
        s = self._state
        if s.minute_sample_count == 0:
            return
        n = s.minute_sample_count
        if s.minute_time_optimal_ms >= s.minute_time_attention_ms and s.minute_time_optimal_ms >= s.minute_time_problem_ms:
            dominant = ZoneStatus.OPTIMAL
        elif s.minute_time_attention_ms >= s.minute_time_problem_ms:
            dominant = ZoneStatus.ATTENTION
        else:
            dominant = ZoneStatus.PROBLEM
        self._snapshots.append(RideSnapshot(
            minute_index=s.current_minute,
            timestamp=timestamp_ms,
            balance_left=round(s.minute_balance_left_sum / n),
            balance_right=round(s.minute_balance_right_sum / n),
            te_left=round(s.minute_te_left_sum / n),
            te_right=round(s.minute_te_right_sum / n),
            ps_left=round(s.minute_ps_left_sum / n),
            ps_right=round(s.minute_ps_right_sum / n),
            power_avg=s.minute_power_sum // n,
            cadence_avg=s.minute_cadence_sum // n,
            hr_avg=s.minute_heart_rate_sum // n,
            zone_status=dominant.value,
        ))
        s.minute_sample_count = 0
        s.minute_balance_left_sum = s.minute_balance_right_sum = 0.0
        s.minute_te_left_sum = s.minute_te_right_sum = 0.0
        s.minute_ps_left_sum = s.minute_ps_right_sum = 0.0
        s.minute_power_sum = s.minute_cadence_sum = s.minute_heart_rate_sum = 0
        s.minute_time_optimal_ms = s.minute_time_attention_ms = s.minute_time_problem_ms = 0

    def export_state(self):
        """Copy of the running state plus the closed snapshots, for checkpoints."""
        with self._lock:
            return AccumulatorState(**self._state.to_dict()), list(self._snapshots)

    def restore(self, state, snapshots):
        with self._lock:
            self._state = AccumulatorState(**state.to_dict())
            self._snapshots = list(snapshots)

    def summarize(self, end_time_ms):
        """Close the running minute and compute the ride fields."""
        with self._lock:
            s = self._state
            self._close_minute(end_time_ms)
            n = s.sample_count
            optimal, attention, problem = zone_percentages(
                s.time_optimal_ms, s.time_attention_ms, s.time_problem_ms
            )
            ride_fields = {
                'timestamp': end_time_ms,
                'duration_ms': max(0, end_time_ms - s.start_time_ms),
                'balance_left': round(_avg(s.balance_left_sum, n)) if n else 50,
                'balance_right': round(_avg(s.balance_right_sum, n)) if n else 50,
                'te_left': round(_avg(s.te_left_sum, n)),
                'te_right': round(_avg(s.te_right_sum, n)),
                'ps_left': round(_avg(s.ps_left_sum, n)),
                'ps_right': round(_avg(s.ps_right_sum, n)),
                'zone_optimal': optimal,
                'zone_attention': attention,
                'zone_problem': problem,
                'power_avg': int(_avg(s.power_sum, s.power_sample_count)),
                'power_max': s.power_max,
                'cadence_avg': int(_avg(s.cadence_sum, s.cadence_sample_count)),
                'hr_avg': int(_avg(s.heart_rate_sum, s.heart_rate_sample_count)),
                'hr_max': s.heart_rate_max,
                'speed_avg_kmh': round(_avg(s.speed_sum, s.speed_sample_count), 1),
                'distance_km': round(s.last_distance, 2),
                'elevation_gain': round(s.last_elevation_gain),
                'elevation_loss': round(s.last_elevation_loss),
                'grade_avg': round(_avg(s.grade_sum, s.grade_sample_count), 1),
                'grade_max': round(s.grade_max, 1),
                'normalized_power': s.last_normalized_power,
                'energy_kj': round(s.last_energy),
            }
            return RideSummary(
                start_time_ms=s.start_time_ms,
                end_time_ms=end_time_ms,
                sample_count=n,
                metrics=ride_fields,
                snapshots=list(self._snapshots),
            )
