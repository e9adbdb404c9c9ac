#!/usr/bin/env python
"""
ECG Signal Processing Module
R-peak detection, RR-interval extraction and artifact rejection for a
single-lead chest-strap ECG stream.
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy import signal as sig
from scipy.ndimage import median_filter

from ecg_constants import (
    DEFAULT_SAMPLE_RATE_HZ,
    BASELINE_WANDER_CUTOFF_HZ,
    BASELINE_WANDER_FILTER_ORDER,
    PEAK_NEIGHBORHOOD_SAMPLES,
    QUARTILE_LOW,
    QUARTILE_HIGH,
    MIN_RR_INTERVAL_MS,
    MAX_RR_INTERVAL_MS,
    ARTIFACT_TOLERANCE,
)
from ecg_presets import PeakDetectionParameters, ThresholdMode
from ecg_types import Number, RawSample
from ecg_validation import ECGValidationError, order_samples

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from minus infinity."""
    return int(math.floor(value + 0.5))


def upper_median(values: Sequence[Number]) -> Number:
    """Element at n // 2 of the sorted values (0 for empty input)."""
    if len(values) == 0:
        return 0
    return sorted(values)[len(values) // 2]


class ECGSignalProcessor:
    """Threshold-based R-peak detection over timestamped samples."""

    def __init__(self,
                 sample_rate: float = DEFAULT_SAMPLE_RATE_HZ,
                 params: Optional[PeakDetectionParameters] = None):
        """
        Initialize ECG signal processor.

        Args:
            sample_rate: Sampling rate in Hz
            params: Peak detection settings (defaults to the adaptive detector)
        """
        if isinstance(sample_rate, bool) or not isinstance(sample_rate, (int, float)) \
                or not math.isfinite(sample_rate) or sample_rate <= 0:
            raise ECGValidationError(f"Sample rate must be positive number, got {sample_rate}")
        self.sample_rate = sample_rate
        self.nyquist = sample_rate / 2.0
        self.params = params or PeakDetectionParameters()

    @property
    def refractory_samples(self) -> int:
        return self.params.refractory_samples(self.sample_rate)

    def remove_baseline_wander(self,
                               ecg_signal: np.ndarray,
                               cutoff_freq: Optional[float] = None,
                               method: str = 'highpass') -> np.ndarray:
        """
        Remove baseline wander from ECG signal.

        Baseline wander is low-frequency drift caused by respiration and
        strap movement against the skin.

        Args:
            ecg_signal: ECG signal array
            cutoff_freq: Cutoff frequency in Hz (default: BASELINE_WANDER_CUTOFF_HZ)
            method: 'highpass' or 'median'

        Returns:
            Baseline-corrected ECG signal. Signals too short for zero-phase
            filtering are returned unchanged.
        """
        ecg_signal = np.asarray(ecg_signal, dtype=float)
        if cutoff_freq is None:
            cutoff_freq = BASELINE_WANDER_CUTOFF_HZ

        if method == 'highpass':
            # High-pass Butterworth filter
            b, a = sig.butter(BASELINE_WANDER_FILTER_ORDER, cutoff_freq / self.nyquist, btype='high')
            if len(ecg_signal) <= 3 * max(len(a), len(b)):
                logger.debug("Skipping baseline removal: %d samples too short for filtfilt",
                             len(ecg_signal))
                return ecg_signal.copy()
            return sig.filtfilt(b, a, ecg_signal)

        elif method == 'median':
            # Median filter for baseline estimation
            window_size = int(0.2 * self.sample_rate)  # 200ms window
            if window_size % 2 == 0:
                window_size += 1
            baseline = median_filter(ecg_signal, size=window_size)
            return ecg_signal - baseline

        else:
            raise ValueError(f"Unknown baseline removal method: {method}")

    def compute_threshold(self,
                          values: np.ndarray,
                          method: Optional[str] = None) -> Tuple[float, float]:
        """
        Amplitude threshold for R-peak candidates.

        Adaptive: mean + k * std, where k depends on SNR = IQR / std
        (k = 2.5 below 1.5, 2.0 below 2.5, otherwise 1.5). Quartiles are the
        sorted values at floor(0.25 n) and floor(0.75 n).
        Fixed: mean + 0.8 * std.

        Returns:
            Tuple of (threshold, snr). snr is 0 for the fixed method and
            for constant signals.
        """
        mode = self._resolve_method(method)
        mean = float(np.mean(values))
        std = float(np.std(values))

        if mode == ThresholdMode.FIXED:
            return mean + self.params.fixed_factor * std, 0.0

        ordered = np.sort(values)
        n = len(ordered)
        q1 = ordered[int(n * QUARTILE_LOW)]
        q3 = ordered[int(n * QUARTILE_HIGH)]
        snr = float(q3 - q1) / std if std > 0 else 0.0

        low_tier, high_tier = self.params.snr_tiers
        low_mult, mid_mult, high_mult = self.params.multipliers
        if snr < low_tier:
            multiplier = low_mult
        elif snr < high_tier:
            multiplier = mid_mult
        else:
            multiplier = high_mult

        logger.debug("Signal stats: mean=%.2f std=%.2f snr=%.2f multiplier=%.1f",
                     mean, std, snr, multiplier)
        return mean + multiplier * std, snr

    def detect_r_peaks(self,
                       samples: Sequence[RawSample],
                       method: Optional[str] = None,
                       preprocess: bool = False) -> List[Number]:
        """
        Detect R-peaks in a slice of raw samples.

        ALGORITHM STEPS:
        1. Order samples by timestamp (duplicates keep the first arrival)
        2. Optionally high-pass the values to remove baseline wander
        3. Amplitude threshold (see compute_threshold)
        4. Candidates: local maxima over two samples each side that exceed
           the threshold (strictly above the left side, at least equal to
           the right side)
        5. Refractory period: a candidate within 250 ms of the last accepted
           peak replaces it only when taller

        Args:
            samples: Raw ECG samples
            method: 'adaptive' or 'fixed' (default from params)
            preprocess: Apply remove_baseline_wander before thresholding

        Returns:
            Strictly increasing list of R-peak timestamps. Fewer than 10
            samples yields an empty list.
        """
        mode = self._resolve_method(method)
        ordered = order_samples(samples)
        n = len(ordered)
        if n < self.params.min_samples:
            return []

        values = np.array([s.value for s in ordered], dtype=float)
        if preprocess:
            values = self.remove_baseline_wander(values)

        threshold, _ = self.compute_threshold(values, mode.value)
        candidates = self._candidate_indices(values, threshold)
        peak_indices = self._apply_refractory(values, candidates)

        logger.debug("Detected %d R-peaks from %d candidates (%d samples, threshold %.2f)",
                     len(peak_indices), len(candidates), n, threshold)
        return [ordered[i].timestamp for i in peak_indices]

    def _resolve_method(self, method: Optional[str]) -> ThresholdMode:
        if method is None:
            return self.params.threshold_mode
        try:
            return ThresholdMode(method)
        except ValueError:
            raise ValueError(f"Unknown R-peak detection method: {method}")

    @staticmethod
    def _candidate_indices(values: np.ndarray, threshold: float) -> np.ndarray:
        k = PEAK_NEIGHBORHOOD_SAMPLES
        n = len(values)
        if n < 2 * k + 1:
            return np.array([], dtype=int)
        centre = values[k:n - k]
        is_peak = (
            (centre > values[0:n - 2 * k]) &
            (centre > values[1:n - 2 * k + 1]) &
            (centre >= values[3:n - 1]) &
            (centre >= values[4:n]) &
            (centre > threshold)
        )
        return np.nonzero(is_peak)[0] + k

    def _apply_refractory(self, values: np.ndarray, candidates: np.ndarray) -> List[int]:
        refractory = self.refractory_samples
        accepted: List[int] = []
        for i in candidates:
            i = int(i)
            if not accepted or i - accepted[-1] >= refractory:
                accepted.append(i)
            elif values[i] > values[accepted[-1]]:
                accepted[-1] = i
        return accepted

    def calculate_heart_rate(self,
                             rr_intervals: Sequence[Number],
                             method: str = 'average') -> int:
        """
        Heart rate from RR intervals.

        Args:
            rr_intervals: RR intervals in ms
            method: 'average' (mean of instantaneous rates) or 'median'
                (60000 / median RR, as the live monitor reports it)

        Returns:
            Heart rate in bpm, rounded; 0 without intervals
        """
        if len(rr_intervals) == 0:
            return 0
        if method == 'average':
            return round_half_up(float(np.mean(instantaneous_heart_rates(rr_intervals))))
        elif method == 'median':
            median_rr = upper_median(rr_intervals)
            return round_half_up(60000.0 / median_rr) if median_rr > 0 else 0
        else:
            raise ValueError(f"Unknown heart rate method: {method}")


def extract_rr_intervals(peaks: Sequence[Number],
                         min_rr: float = MIN_RR_INTERVAL_MS,
                         max_rr: float = MAX_RR_INTERVAL_MS) -> List[Number]:
    """
    Consecutive peak differences within the physiological range.

    Intervals implying a rate above 220 bpm or below 40 bpm are dropped.
    """
    rr = [b - a for a, b in zip(peaks[:-1], peaks[1:])]
    kept = [interval for interval in rr if min_rr <= interval <= max_rr]
    if len(kept) < len(rr):
        logger.debug("Dropped %d of %d RR intervals outside [%.0f, %.0f] ms",
                     len(rr) - len(kept), len(rr), min_rr, max_rr)
    return kept


def filter_artifacts(rr_intervals: Sequence[Number],
                     tolerance: float = ARTIFACT_TOLERANCE) -> List[Number]:
    """
    Drop isolated ectopic or missed-beat intervals.

    An interior interval is removed when it differs from BOTH of its
    original neighbours by more than `tolerance` of that neighbour. The
    first and last intervals are always kept. Fewer than three intervals
    are returned unchanged.
    """
    rr = list(rr_intervals)
    if len(rr) < 3:
        return rr

    kept = [rr[0]]
    for prev, current, nxt in zip(rr[:-2], rr[1:-1], rr[2:]):
        off_prev = abs(current - prev) > tolerance * prev
        off_next = abs(current - nxt) > tolerance * nxt
        if not (off_prev and off_next):
            kept.append(current)
    kept.append(rr[-1])
    return kept


def instantaneous_heart_rates(rr_intervals: Sequence[Number]) -> List[float]:
    """Beat-to-beat rates in bpm (60000 / rr)."""
    return [60000.0 / rr for rr in rr_intervals if rr > 0]


# Convenience functions
def create_signal_processor(sample_rate: float = DEFAULT_SAMPLE_RATE_HZ,
                            params: Optional[PeakDetectionParameters] = None) -> ECGSignalProcessor:
    """Create ECG signal processor."""
    return ECGSignalProcessor(sample_rate, params)


def detect_peaks(samples: Sequence[RawSample],
                 sample_rate: float = DEFAULT_SAMPLE_RATE_HZ,
                 method: Optional[str] = None) -> List[Number]:
    """Quick R-peak detection."""
    return ECGSignalProcessor(sample_rate).detect_r_peaks(samples, method=method)


if __name__ == "__main__":
    # Example usage
    from examples.generate_ecg_data import ECGGenerator

    gen = ECGGenerator(seed=7)
    ecg = gen.generate_ecg(duration=10, heart_rate=72)

    processor = ECGSignalProcessor(gen.sample_rate)
    peaks = processor.detect_r_peaks(ecg)
    rr = extract_rr_intervals(peaks)

    print("Testing ECG Signal Processing...")
    print(f"  Detected {len(peaks)} R-peaks in {len(ecg)} samples")
    print(f"  RR intervals: {len(rr)} (after artifact filter: {len(filter_artifacts(rr))})")
    print(f"  Average heart rate: {processor.calculate_heart_rate(rr)} bpm")
