#!/usr/bin/env python
"""
End-to-End Pipeline Test
Synthetic strap session -> recording session -> persisted record -> report,
plus the streaming recovery tracker over the same heart rate stream.
"""

import tempfile
import numpy as np
import sys
import os

import matplotlib
matplotlib.use('Agg')

# Add the project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from examples.generate_ecg_data import ECGGenerator
from advanced_analysis import SegmentMetricsCalculator
from ecg_io import load_record, save_record
from ecg_presets import get_preset
from ecg_session import RecordingSession
from ecg_types import ActivityType
from heart_rate_recovery import RecoveryStatus, RecoveryTracker, compare_metrics
from session_report import generate_quick_report
from signal_processing import detect_peaks


def _run_session(ecg, hr, bounds, params=None):
    session = RecordingSession(params=params)
    session.add_ecg_samples(ecg)
    session.add_heart_rate(hr)
    session.start_phase(now=bounds['rest'][0])
    for phase in ('rest', 'exercise', 'recovery'):
        session.next_phase(now=bounds[phase][1])
    return session


def test_generator():
    gen = ECGGenerator(seed=0)
    ecg = gen.generate_ecg(duration=2, start_timestamp=1000)
    assert len(ecg) == 260
    assert ecg[0].timestamp == 1000
    assert ecg[1].timestamp == 1008
    assert ecg[13].timestamp == 1100

    hr = gen.generate_heart_rate(start=0, duration=60, start_bpm=60, end_bpm=120)
    assert len(hr) == 61
    assert (hr[0].value, hr[30].value, hr[-1].value) == (60, 90, 120)
    assert hr[-1].timestamp == 60000

    # Same seed, same signal
    assert ECGGenerator(seed=5).generate_ecg(duration=1) == ECGGenerator(seed=5).generate_ecg(duration=1)

    sine = gen.generate_sine_ecg(duration=10, heart_rate=72)
    values = [s.value for s in sine]
    assert len(sine) == 1300
    assert 130 < max(values) < 170
    assert min(values) < -30


def test_full_pipeline():
    print("Testing full session pipeline")
    print("=" * 40)

    gen = ECGGenerator(seed=12)
    ecg, hr, bounds = gen.generate_session()
    session = _run_session(ecg, hr, bounds)
    record = session.build_record('athlete-3', notes='interval test')

    rest, exercise = record.rest_metrics, record.exercise_metrics
    print(f"   Rest: {rest.avg_heart_rate} bpm, HRV {rest.heart_rate_variability} ms")
    print(f"   Exercise: {exercise.avg_heart_rate} bpm, max {exercise.max_heart_rate}")

    comparison = compare_metrics(rest, exercise)
    assert comparison.heart_rate_elevation > 20

    # Reported rates agree with the beats actually in the ECG
    rr_calculator = SegmentMetricsCalculator(get_preset('ecg_only'))
    rest_segment = record.segment(ActivityType.REST)
    from_rr = rr_calculator.compute_segment(record.ecg, record.hr, rest_segment)
    assert abs(from_rr.avg_heart_rate - rest.avg_heart_rate) <= 2

    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, 'session.json')
        save_record(path, record)
        loaded = load_record(path)

    assert loaded.rest_metrics == record.rest_metrics
    assert loaded.hrr_points == record.hrr_points
    assert loaded.activity_segments == record.activity_segments

    report = generate_quick_report(loaded)
    assert "Base HR: 65 bpm" in report
    assert "Peak HR: 140 bpm" in report
    print("   ✓ Record persisted and reported")


def test_ecg_only_session():
    gen = ECGGenerator(seed=13)
    ecg, hr, bounds = gen.generate_session(rest_s=30, exercise_s=20, recovery_s=30)
    session = _run_session(ecg, [], bounds, params=get_preset('ecg_only'))

    rest = session.segment_metrics(ActivityType.REST)
    assert abs(rest.avg_heart_rate - 65) <= 2
    assert rest.total_beats == len(rest.r_peaks)

    peaks = detect_peaks(ecg)
    assert np.all(np.diff(peaks) > 0)


def test_recovery_tracker_on_stream():
    gen = ECGGenerator(seed=14)
    _, hr, bounds = gen.generate_session(rest_s=20, exercise_s=20, recovery_s=120,
                                         recovery_tau_s=20)
    start = bounds['rest'][0]

    tracker = RecoveryTracker()
    tracker.set_baseline(65, start)
    statuses = [tracker.update(s.value, s.timestamp) for s in hr]

    assert tracker.exercise_start_time == start + 22000
    assert tracker.peak_heart_rate == 140
    assert tracker.peak_heart_rate_time == start + 40000
    assert tracker.recovery_start_time == start + 46000
    assert tracker.recovery_time == 73000
    assert statuses[-1] == RecoveryStatus.COMPLETED


if __name__ == "__main__":
    test_full_pipeline()
    test_recovery_tracker_on_stream()
    print("✓ Pipeline tests passed")
