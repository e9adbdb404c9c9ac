#!/usr/bin/env python
"""
Peak Detection and RR Interval Tests
R-peak detection, refractory handling, RR extraction and artifact filtering.
"""

import numpy as np
import pytest
import sys
import os

# Add the project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from examples.generate_ecg_data import ECGGenerator
from ecg_presets import PeakDetectionParameters, ThresholdMode
from ecg_types import RawSample
from ecg_validation import ECGValidationError
from signal_processing import (
    ECGSignalProcessor,
    detect_peaks,
    extract_rr_intervals,
    filter_artifacts,
    round_half_up,
    upper_median,
)


def _spikes(n, spikes, step=50):
    """Flat trace with {index: amplitude} spikes, one sample every `step` ms."""
    values = [0.0] * n
    for index, amplitude in spikes.items():
        values[index] = amplitude
    return [RawSample(i * step, v) for i, v in enumerate(values)]


def test_rounding_helpers():
    assert round_half_up(2.5) == 3
    assert round_half_up(2.4) == 2
    assert round_half_up(-2.5) == -2
    assert upper_median([4, 1, 3, 2]) == 3
    assert upper_median([5]) == 5
    assert upper_median([]) == 0


def test_invalid_sample_rate():
    with pytest.raises(ECGValidationError):
        ECGSignalProcessor(0)
    with pytest.raises(ECGValidationError):
        ECGSignalProcessor(float('nan'))


def test_refractory_samples():
    assert ECGSignalProcessor(130).refractory_samples == 33
    assert ECGSignalProcessor(20).refractory_samples == 5
    assert ECGSignalProcessor(10).refractory_samples == 3


def test_too_few_samples():
    processor = ECGSignalProcessor(20)
    assert processor.detect_r_peaks(_spikes(9, {4: 1000.0})) == []
    assert processor.detect_r_peaks([]) == []


def test_constant_signal_has_no_peaks():
    samples = [RawSample(i * 8, 100.0) for i in range(200)]
    assert detect_peaks(samples) == []


def test_adaptive_threshold():
    processor = ECGSignalProcessor(20)
    values = np.array([s.value for s in _spikes(20, {5: 1000.0, 14: 1000.0})])
    threshold, snr = processor.compute_threshold(values)

    # mean 100, std 300, IQR 0 -> lowest SNR tier
    assert snr == 0.0
    assert threshold == pytest.approx(850.0)

    fixed, _ = processor.compute_threshold(values, 'fixed')
    assert fixed == pytest.approx(340.0)


def test_detect_isolated_spikes():
    processor = ECGSignalProcessor(20)
    samples = _spikes(20, {5: 1000.0, 14: 1000.0})
    assert processor.detect_r_peaks(samples) == [250, 700]
    assert processor.detect_r_peaks(samples, method='fixed') == [250, 700]


def test_unknown_method():
    processor = ECGSignalProcessor(20)
    with pytest.raises(ValueError):
        processor.detect_r_peaks(_spikes(20, {5: 1000.0}), method='wavelet')


def test_refractory_keeps_taller_peak():
    processor = ECGSignalProcessor(20)

    # Second candidate 4 samples later (< 5) and taller: replaces the first
    assert processor.detect_r_peaks(_spikes(20, {5: 800.0, 9: 1000.0})) == [450]

    # Second candidate smaller: first stays
    assert processor.detect_r_peaks(_spikes(20, {5: 1000.0, 9: 800.0})) == [250]

    # Exactly one refractory period apart: both accepted
    assert processor.detect_r_peaks(_spikes(20, {5: 1000.0, 10: 1000.0})) == [250, 500]


def test_plateau_counts_once():
    processor = ECGSignalProcessor(20)
    samples = _spikes(40, {6: 900.0, 7: 900.0, 15: 900.0})
    assert processor.detect_r_peaks(samples) == [300, 750]


def test_synthetic_peaks_ordered_and_spaced():
    gen = ECGGenerator(seed=11)
    ecg = gen.generate_ecg(duration=20, heart_rate=90, rate_variability=0.05)
    peaks = detect_peaks(ecg)

    assert len(peaks) > 20
    gaps = np.diff(peaks)
    assert np.all(gaps > 0), "Peaks must be strictly increasing"
    assert np.all(gaps >= 250), "Peaks closer than the refractory period"


def test_unordered_and_duplicate_input():
    gen = ECGGenerator(seed=5)
    ecg = gen.generate_ecg(duration=10, heart_rate=72)
    expected = detect_peaks(ecg)

    shuffled = [ecg[i] for i in np.random.default_rng(0).permutation(len(ecg))]
    assert detect_peaks(shuffled) == expected

    # A late duplicate of an existing timestamp is ignored
    duplicated = ecg + [RawSample(ecg[100].timestamp, 5000.0)]
    assert detect_peaks(duplicated) == expected


def test_detection_is_idempotent():
    ecg = ECGGenerator(seed=2).generate_ecg(duration=10, heart_rate=80)
    processor = ECGSignalProcessor()
    assert processor.detect_r_peaks(ecg) == processor.detect_r_peaks(ecg)


def test_preprocessing():
    gen = ECGGenerator(seed=9)
    ecg = gen.generate_ecg(duration=10, heart_rate=72)
    processor = ECGSignalProcessor()

    plain = processor.detect_r_peaks(ecg)
    filtered = processor.detect_r_peaks(ecg, preprocess=True)
    assert abs(len(filtered) - len(plain)) <= 1

    # Too short for zero-phase filtering: returned unchanged
    short = np.arange(12, dtype=float)
    assert np.array_equal(processor.remove_baseline_wander(short), short)

    flat = processor.remove_baseline_wander(np.full(200, 50.0), method='median')
    assert np.allclose(flat, 0.0)

    with pytest.raises(ValueError):
        processor.remove_baseline_wander(short, method='wavelet')


def test_fixed_threshold_preset():
    params = PeakDetectionParameters(threshold_mode=ThresholdMode.FIXED)
    processor = ECGSignalProcessor(20, params)
    assert processor.detect_r_peaks(_spikes(20, {5: 1.0, 14: 1.0})) == [250, 700]


def test_rr_physiological_bounds():
    peaks = [0, 800, 900, 2500, 3300]
    # 100 ms (>220 bpm) and 1600 ms (<40 bpm) are dropped
    assert extract_rr_intervals(peaks) == [800, 800]

    assert extract_rr_intervals([0, 273]) == [273]
    assert extract_rr_intervals([0, 272]) == []
    assert extract_rr_intervals([0, 1500]) == [1500]
    assert extract_rr_intervals([0, 1501]) == []
    assert extract_rr_intervals([]) == []
    assert extract_rr_intervals([100]) == []

    for rr in extract_rr_intervals(list(np.cumsum([300, 250, 700, 1600, 1200, 280]))):
        assert 40 <= 60000.0 / rr <= 220


def test_filter_artifacts():
    assert filter_artifacts([800, 810, 1200, 805, 790]) == [800, 810, 805, 790]

    # Off from only one neighbour: kept
    assert filter_artifacts([800, 1000, 1200]) == [800, 1000, 1200]

    # Neighbours are the original ones, not the filtered ones
    assert filter_artifacts([800, 1200, 800, 1200, 800]) == [800, 800]

    # First and last always kept
    assert filter_artifacts([2000, 800, 800, 800, 300]) == [2000, 800, 800, 800, 300]

    short = [800, 1500]
    result = filter_artifacts(short)
    assert result == short
    assert result is not short


def test_calculate_heart_rate():
    processor = ECGSignalProcessor()
    assert processor.calculate_heart_rate([800, 1000, 600]) == 78
    assert processor.calculate_heart_rate([800, 1000, 600], method='median') == 75
    assert processor.calculate_heart_rate([]) == 0
    with pytest.raises(ValueError):
        processor.calculate_heart_rate([800], method='mode')


def test_end_to_end_72_bpm():
    """5 s at 72 bpm: about six beats and an RR-derived rate near 72."""
    gen = ECGGenerator(seed=42)
    ecg = gen.generate_ecg(duration=5, heart_rate=72, noise_level=20)

    processor = ECGSignalProcessor(gen.sample_rate)
    peaks = processor.detect_r_peaks(ecg)
    print(f"Detected {len(peaks)} peaks")
    assert 5 <= len(peaks) <= 7

    rr = extract_rr_intervals(peaks)
    heart_rate = processor.calculate_heart_rate(rr)
    assert abs(heart_rate - 72) <= 5


def test_end_to_end_sine_simulator_72_bpm():
    """Piecewise-sine simulator beats at 72 bpm through the adaptive detector."""
    gen = ECGGenerator(seed=42)
    ecg = gen.generate_sine_ecg(duration=5, heart_rate=72)

    processor = ECGSignalProcessor(gen.sample_rate)
    peaks = processor.detect_r_peaks(ecg)
    assert 5 <= len(peaks) <= 7
    assert np.all(np.diff(peaks) >= 250)

    rr = extract_rr_intervals(peaks)
    assert len(rr) == len(peaks) - 1
    assert abs(processor.calculate_heart_rate(rr) - 72) <= 5


if __name__ == "__main__":
    test_end_to_end_72_bpm()
    test_synthetic_peaks_ordered_and_spaced()
    print("✓ Signal processing tests passed")
