#!/usr/bin/env python
"""
Heart Rate Recovery Tests
HRR points, baseline comparisons, recovery prediction and the streaming
recovery tracker.
"""

import math
import pytest
import sys
import os

# Add the project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ecg_types import ActivitySegment, ActivityType, ECGMetrics, HeartRateSample, RawSample
from ecg_validation import ECGValidationError
from heart_rate_recovery import (
    RecoveryPeriod,
    RecoveryStatus,
    RecoveryTracker,
    baseline_heart_rate,
    calculate_base_metrics,
    compare_average_heart_rate,
    compare_metrics,
    compute_hrr,
    heart_rate_at_or_after,
    peak_heart_rate,
    percent_change,
    predict_recovery_periods,
    segment_heart_rate_stats,
)

EXERCISE = ActivitySegment(ActivityType.EXERCISE, 0, 10000)
RECOVERY = ActivitySegment(ActivityType.RECOVERY, 10000, 100000)


def _recovery_stream():
    """Exercise peaking at 150, then every second from 120 back toward 100."""
    hr = [HeartRateSample(0, 100), HeartRateSample(5000, 150), HeartRateSample(10000, 120)]
    for t in range(11000, 100001, 1000):
        hr.append(HeartRateSample(t, 120 - (t - 10000) // 4500))
    return hr


def test_hrr_points():
    points = compute_hrr(_recovery_stream(), EXERCISE, RECOVERY, interval_ms=30000, max_points=5)

    # 130000 is past the recovery end
    assert len(points) == 4
    assert [p.time for p in points] == [0, 30, 60, 90]
    assert [p.hr for p in points] == [120, 114, 107, 100]
    assert [p.hrr for p in points] == [30, 36, 43, 50]
    for p in points:
        assert p.hrr == 150 - p.hr


def test_hrr_times_are_whole_seconds():
    points = compute_hrr(_recovery_stream(), EXERCISE, RECOVERY, interval_ms=30000.0)
    assert all(type(p.time) is int for p in points)
    assert points[1].to_dict() == {'time': 30, 'hr': 114, 'hrr': 36}

    # Sub-second cadence keeps fractional seconds
    points = compute_hrr(_recovery_stream(), EXERCISE, RECOVERY, interval_ms=1500, max_points=3)
    assert [p.time for p in points] == [0.0, 1.5, 3.0]


def test_hrr_unordered_input():
    hr = _recovery_stream()
    assert compute_hrr(list(reversed(hr)), EXERCISE, RECOVERY) == compute_hrr(hr, EXERCISE, RECOVERY)


def test_hrr_missing_readings():
    recovery = ActivitySegment(ActivityType.RECOVERY, 10000, 200000)
    points = compute_hrr(_recovery_stream(), EXERCISE, recovery)

    assert len(points) == 5
    assert points[-1].time == 120
    assert points[-1].hr is None
    assert points[-1].hrr is None

    # No exercise readings: no peak
    hr = [s for s in _recovery_stream() if s.timestamp > 10000]
    points = compute_hrr(hr, EXERCISE, RECOVERY)
    assert points[0].hr == 120
    assert all(p.hrr is None for p in points)


def test_hrr_missing_segment():
    assert compute_hrr(_recovery_stream(), None, RECOVERY) == []
    assert compute_hrr(_recovery_stream(), EXERCISE, None) == []


def test_heart_rate_helpers():
    hr = _recovery_stream()
    assert heart_rate_at_or_after(hr, 4000) == 150
    assert heart_rate_at_or_after(hr, 5000) == 150
    assert heart_rate_at_or_after(hr, 100001) is None

    assert peak_heart_rate(hr, EXERCISE) == 150
    assert peak_heart_rate(hr, None) is None
    assert baseline_heart_rate(hr, EXERCISE) == 123
    assert baseline_heart_rate(hr, ActivitySegment(ActivityType.REST, 200000, 300000)) is None

    stats = segment_heart_rate_stats(hr, EXERCISE)
    assert stats == {'min': 100, 'max': 150, 'mean': 123, 'count': 3}


def test_percent_change():
    assert percent_change(100, 110) == pytest.approx(10.0)
    assert percent_change(80, 60) == pytest.approx(-25.0)
    assert percent_change(0, 50) == 0.0


def test_compare_average_heart_rate():
    baseline = [HeartRateSample(0, 60), HeartRateSample(1000, 70)]
    session = [HeartRateSample(0, 80), HeartRateSample(1000, 90)]
    result = compare_average_heart_rate(baseline, session)
    assert result == {'average_baseline_hr': 65.0, 'average_session_hr': 85.0, 'difference': 20.0}

    empty = compare_average_heart_rate([], [])
    assert empty['difference'] == 0.0


def test_compare_metrics():
    baseline = ECGMetrics(avg_heart_rate=60, heart_rate_variability=40)
    exercise = ECGMetrics(avg_heart_rate=90, heart_rate_variability=30)

    comparison = compare_metrics(baseline, exercise)
    assert comparison.heart_rate_elevation == 30
    assert comparison.hrv_change_percent == pytest.approx(-25.0)

    # Never negative
    assert compare_metrics(exercise, baseline).heart_rate_elevation == 0

    # Missing data on either side
    assert compare_metrics(ECGMetrics(), exercise).heart_rate_elevation == 0
    assert compare_metrics(ECGMetrics(), exercise).hrv_change_percent == 0.0
    assert compare_metrics(baseline, ECGMetrics()).heart_rate_elevation == 0


def test_calculate_base_metrics():
    base = calculate_base_metrics([RawSample(i, v) for i, v in enumerate([1, 2, 3, 4])])
    assert base.mean == pytest.approx(2.5)
    assert base.variance == pytest.approx(1.25)
    assert base.standard_deviation == pytest.approx(math.sqrt(1.25))
    assert (base.min, base.max, base.range) == (1.0, 4.0, 3.0)

    with pytest.raises(ECGValidationError):
        calculate_base_metrics([])


def _square_wave(start_index, count, amplitude, step=100):
    return [RawSample((start_index + i) * step, 500.0 + (amplitude if i % 2 == 0 else -amplitude))
            for i in range(count)]


def test_predict_recovery_periods():
    calibration = _square_wave(0, 300, 100.0)
    base = calculate_base_metrics(calibration)

    # 40 s of exercise-level dispersion, then 80 s back at baseline
    ecg = _square_wave(0, 400, 300.0) + _square_wave(400, 800, 100.0)
    periods = predict_recovery_periods(ecg, base)

    assert periods == [RecoveryPeriod(40000, 110000)]
    assert predict_recovery_periods([], base) == []
    assert predict_recovery_periods(_square_wave(0, 400, 300.0), base) == []


def test_recovery_tracker():
    tracker = RecoveryTracker()

    # No baseline yet
    assert tracker.update(100, 0) == RecoveryStatus.NOT_STARTED
    assert tracker.exercise_start_time is None

    tracker.set_baseline(60, 0)
    assert tracker.update(62, 1000) == RecoveryStatus.NOT_STARTED
    assert tracker.exercise_start_time is None

    tracker.update(67, 2000)
    assert tracker.exercise_start_time == 2000

    tracker.update(100, 3000)
    assert tracker.peak_heart_rate == 100
    assert tracker.peak_heart_rate_time == 3000

    # Within the settle time after the peak
    assert tracker.update(90, 6000) == RecoveryStatus.NOT_STARTED

    assert tracker.update(94, 9000) == RecoveryStatus.IN_PROGRESS
    assert tracker.recovery_start_time == 9000

    # Zero readings are dropouts
    assert tracker.update(0, 10000) == RecoveryStatus.IN_PROGRESS

    assert tracker.update(70, 20000) == RecoveryStatus.IN_PROGRESS
    assert tracker.update(61, 40000) == RecoveryStatus.COMPLETED
    assert tracker.recovery_time == 31000

    tracker.set_baseline(58, 50000)
    assert tracker.status == RecoveryStatus.NOT_STARTED
    assert tracker.peak_heart_rate == 0


if __name__ == "__main__":
    test_hrr_points()
    test_recovery_tracker()
    print("✓ Heart rate recovery tests passed")
