#!/usr/bin/env python
"""
Heart Rate Recovery Module
Post-exercise heart rate recovery (HRR), session heart rate summaries,
baseline comparisons and streaming recovery tracking.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np

from ecg_constants import (
    HRR_INTERVAL_MS,
    HRR_MAX_POINTS,
    HR_RISE_THRESHOLD_PCT,
    HR_RECOVERY_THRESHOLD_PCT,
    HR_BASELINE_THRESHOLD_PCT,
    HR_PEAK_SETTLE_MS,
    RECOVERY_WINDOW_MS,
    RECOVERY_STEP_MS,
    RECOVERY_SIMILARITY,
)
from ecg_types import (
    ActivitySegment,
    ECGMetrics,
    HeartRateSample,
    HRRPoint,
    Number,
    RawSample,
    samples_in_segment,
)
from ecg_validation import ECGValidationError, order_samples
from signal_processing import round_half_up

logger = logging.getLogger(__name__)


def heart_rate_at_or_after(hr: Sequence[HeartRateSample], timestamp: Number) -> Optional[int]:
    """Value of the first reading at or after timestamp (hr must be ordered)."""
    for sample in hr:
        if sample.timestamp >= timestamp:
            return sample.value
    return None


def peak_heart_rate(hr: Sequence[HeartRateSample],
                    segment: Optional[ActivitySegment]) -> Optional[int]:
    """Highest reported heart rate inside the segment, None when there is none."""
    if segment is None:
        return None
    values = [s.value for s in samples_in_segment(hr, segment)]
    return max(values) if values else None


def baseline_heart_rate(hr: Sequence[HeartRateSample],
                        segment: Optional[ActivitySegment]) -> Optional[int]:
    """Rounded mean reported heart rate inside the (rest) segment."""
    if segment is None:
        return None
    values = [s.value for s in samples_in_segment(hr, segment)]
    if not values:
        return None
    return round_half_up(sum(values) / len(values))


def segment_heart_rate_stats(hr: Sequence[HeartRateSample],
                             segment: ActivitySegment) -> Optional[Dict[str, int]]:
    """{min, max, mean, count} of the reported heart rate in a segment."""
    values = [s.value for s in samples_in_segment(hr, segment)]
    if not values:
        return None
    return {
        'min': min(values),
        'max': max(values),
        'mean': round_half_up(sum(values) / len(values)),
        'count': len(values),
    }


def compute_hrr(hr: Sequence[HeartRateSample],
                exercise: Optional[ActivitySegment],
                recovery: Optional[ActivitySegment],
                interval_ms: Number = HRR_INTERVAL_MS,
                max_points: int = HRR_MAX_POINTS) -> List[HRRPoint]:
    """
    Heart rate recovery at fixed offsets into the recovery phase.

    For i in 0..max_points-1, the offset t = recovery.start + i * interval_ms
    is sampled while t <= recovery.end. The heart rate at t is the first
    reading at or after t; HRR is the exercise peak minus that rate.

    Args:
        hr: Reported heart rate stream
        exercise: Exercise segment (peak window, inclusive)
        recovery: Recovery segment

    Returns:
        List of HRRPoint, time in seconds since recovery start. Empty when
        either segment is missing.
    """
    if exercise is None or recovery is None:
        return []

    ordered = order_samples(hr)
    peak = peak_heart_rate(ordered, exercise)

    # Whole-second cadences keep integer times
    whole_seconds = interval_ms % 1000 == 0

    points = []
    for i in range(max_points):
        t = recovery.start + i * interval_ms
        if t > recovery.end:
            break
        value = heart_rate_at_or_after(ordered, t)
        hrr = peak - value if peak is not None and value is not None else None
        offset = int(i * interval_ms // 1000) if whole_seconds else i * interval_ms / 1000
        points.append(HRRPoint(time=offset, hr=value, hrr=hrr))

    logger.debug("HRR: peak=%s, %d points", peak, len(points))
    return points


# ==============================================================================
# COMPARISONS
# ==============================================================================

def _average(values: Sequence[Number]) -> float:
    return float(np.mean(values)) if len(values) else 0.0


def percent_change(baseline: Number, current: Number) -> float:
    """(current - baseline) / baseline * 100, 0 for a zero baseline."""
    if baseline == 0:
        return 0.0
    return (current - baseline) / baseline * 100.0


def compare_average_heart_rate(baseline_hr: Sequence[HeartRateSample],
                               session_hr: Sequence[HeartRateSample]) -> Dict[str, float]:
    """Mean heart rate of a baseline recording against a session."""
    avg_baseline = _average([s.value for s in baseline_hr])
    avg_session = _average([s.value for s in session_hr])
    return {
        'average_baseline_hr': avg_baseline,
        'average_session_hr': avg_session,
        'difference': avg_session - avg_baseline,
    }


@dataclass
class MetricsComparison:
    """Change of segment metrics against a baseline."""
    heart_rate_elevation: int  # bpm above baseline, never negative
    hrv_change_percent: float


def compare_metrics(baseline: ECGMetrics, current: ECGMetrics) -> MetricsComparison:
    """Heart rate elevation and HRV change of `current` relative to `baseline`."""
    if baseline.avg_heart_rate == 0 or current.avg_heart_rate == 0:
        elevation = 0
    else:
        elevation = max(0, current.avg_heart_rate - baseline.avg_heart_rate)
    return MetricsComparison(
        heart_rate_elevation=elevation,
        hrv_change_percent=percent_change(baseline.heart_rate_variability,
                                          current.heart_rate_variability),
    )


# ==============================================================================
# CALIBRATION AND RECOVERY PREDICTION
# ==============================================================================

@dataclass
class BaseMetrics:
    """Amplitude statistics of a calibration recording."""
    mean: float
    variance: float
    standard_deviation: float
    min: float
    max: float
    range: float


@dataclass
class RecoveryPeriod:
    start: Number  # ms
    end: Number  # ms


def calculate_base_metrics(samples: Sequence[RawSample]) -> BaseMetrics:
    """
    Calibration statistics of a resting ECG recording.

    Raises:
        ECGValidationError: if no samples are given
    """
    if not samples:
        raise ECGValidationError("Calibration data is empty")
    values = np.array([s.value for s in samples], dtype=float)
    low, high = float(np.min(values)), float(np.max(values))
    return BaseMetrics(
        mean=float(np.mean(values)),
        variance=float(np.var(values)),
        standard_deviation=float(np.std(values)),
        min=low,
        max=high,
        range=high - low,
    )


def _relative_difference(current: float, baseline: float) -> float:
    if current == baseline:
        return 0.0
    if baseline == 0:
        return 1.0
    return abs(current - baseline) / abs(baseline)


def predict_recovery_periods(ecg: Sequence[RawSample],
                             base: BaseMetrics,
                             window_ms: Number = RECOVERY_WINDOW_MS,
                             step_ms: Number = RECOVERY_STEP_MS,
                             similarity: float = RECOVERY_SIMILARITY) -> List[RecoveryPeriod]:
    """
    Periods whose amplitude statistics match the calibration baseline.

    Windows of `window_ms` slide by `step_ms`. A window is similar when its
    mean and variance are both within `similarity` (relative) of the
    baseline. Runs of similar windows merge into one period.
    """
    ordered = order_samples(ecg)
    if not ordered:
        return []

    timestamps = np.array([s.timestamp for s in ordered], dtype=float)
    values = np.array([s.value for s in ordered], dtype=float)
    last = timestamps[-1]

    periods: List[RecoveryPeriod] = []
    current: Optional[RecoveryPeriod] = None
    window_start = ordered[0].timestamp
    while window_start + window_ms <= last:
        window_end = window_start + window_ms
        mask = (timestamps >= window_start) & (timestamps < window_end)
        if np.any(mask):
            window = values[mask]
            similar = (_relative_difference(float(np.mean(window)), base.mean) <= similarity and
                       _relative_difference(float(np.var(window)), base.variance) <= similarity)
            if similar:
                if current is None:
                    current = RecoveryPeriod(window_start, window_end)
                else:
                    current.end = window_end
            elif current is not None:
                periods.append(current)
                current = None
        window_start += step_ms

    if current is not None:
        periods.append(current)
    return periods


# ==============================================================================
# STREAMING RECOVERY TRACKER
# ==============================================================================

class RecoveryStatus(Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class RecoveryTracker:
    """
    Follows a live heart rate against a resting baseline.

    Exercise starts once the rate rises HR_RISE_THRESHOLD_PCT over baseline.
    The peak is tracked from then on. Recovery starts when, more than
    HR_PEAK_SETTLE_MS after the peak, the rate has dropped
    HR_RECOVERY_THRESHOLD_PCT below it, and completes once the rate is
    within HR_BASELINE_THRESHOLD_PCT of baseline.
    """

    def __init__(self,
                 rise_pct: float = HR_RISE_THRESHOLD_PCT,
                 recovery_pct: float = HR_RECOVERY_THRESHOLD_PCT,
                 baseline_pct: float = HR_BASELINE_THRESHOLD_PCT,
                 settle_ms: Number = HR_PEAK_SETTLE_MS):
        self.rise_pct = rise_pct
        self.recovery_pct = recovery_pct
        self.baseline_pct = baseline_pct
        self.settle_ms = settle_ms
        self.baseline_heart_rate = 0
        self.baseline_time: Optional[Number] = None
        self._reset_tracking()

    def _reset_tracking(self):
        self.exercise_start_time: Optional[Number] = None
        self.peak_heart_rate = 0
        self.peak_heart_rate_time: Optional[Number] = None
        self.recovery_start_time: Optional[Number] = None
        self.recovery_time: Optional[Number] = None  # ms from recovery start to baseline
        self.status = RecoveryStatus.NOT_STARTED

    def set_baseline(self, heart_rate: int, timestamp: Number):
        """Set the resting rate and clear any tracking in progress."""
        self.baseline_heart_rate = heart_rate
        self.baseline_time = timestamp
        self._reset_tracking()
        logger.debug("Baseline heart rate %d bpm at %s", heart_rate, timestamp)

    def update(self, heart_rate: int, timestamp: Number) -> RecoveryStatus:
        """Feed one heart rate reading; zero readings are ignored."""
        if heart_rate == 0 or self.baseline_time is None or self.baseline_heart_rate <= 0:
            return self.status

        baseline = self.baseline_heart_rate
        if self.exercise_start_time is None:
            if percent_change(baseline, heart_rate) >= self.rise_pct:
                self.exercise_start_time = timestamp
                self.status = RecoveryStatus.NOT_STARTED
                logger.debug("Exercise started at %s (%d bpm)", timestamp, heart_rate)

        if self.exercise_start_time is None:
            return self.status

        if heart_rate > self.peak_heart_rate:
            self.peak_heart_rate = heart_rate
            self.peak_heart_rate_time = timestamp

        if (self.recovery_start_time is None and self.peak_heart_rate > 0
                and timestamp - self.peak_heart_rate_time > self.settle_ms):
            drop = (self.peak_heart_rate - heart_rate) / self.peak_heart_rate * 100.0
            if drop >= self.recovery_pct:
                self.recovery_start_time = timestamp
                self.status = RecoveryStatus.IN_PROGRESS
                logger.debug("Recovery started at %s (%.1f%% below peak)", timestamp, drop)

        if self.recovery_start_time is not None and self.recovery_time is None:
            if abs(percent_change(baseline, heart_rate)) <= self.baseline_pct:
                self.recovery_time = timestamp - self.recovery_start_time
                self.status = RecoveryStatus.COMPLETED
                logger.debug("Recovery completed in %.1f s", self.recovery_time / 1000.0)

        return self.status
