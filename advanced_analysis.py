#!/usr/bin/env python
"""
Segment Metrics Module
Heart rate, heart rate variability (RMSSD) and beat statistics for one
activity segment, plus the rolling snapshot shown by the live monitor.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from ecg_constants import HEART_RATE_SOURCE_RR, LIVE_ANALYSIS_WINDOW_SAMPLES
from ecg_presets import AnalysisParameters, HRVParameters, get_preset
from ecg_types import (
    ActivitySegment,
    ECGMetrics,
    HeartRateSample,
    Number,
    RawSample,
    samples_in_segment,
)
from ecg_validation import order_samples
from signal_processing import (
    ECGSignalProcessor,
    extract_rr_intervals,
    filter_artifacts,
    instantaneous_heart_rates,
    round_half_up,
    upper_median,
)

logger = logging.getLogger(__name__)


@dataclass
class LiveSnapshot:
    """Most recent beat statistics for the live monitor."""
    heart_rate: int = 0  # bpm, from the median RR interval
    heart_rate_variability: int = 0  # RMSSD, ms
    r_peaks: List[Number] = field(default_factory=list)
    timestamp: Optional[Number] = None  # latest sample in the window


class HRVAnalyzer:
    """Heart Rate Variability analysis."""

    def __init__(self, params: Optional[HRVParameters] = None):
        self.params = params or HRVParameters()

    def rmssd(self, rr_intervals: Sequence[Number], apply_filter: Optional[bool] = None) -> float:
        """
        Root mean square of successive differences.

        The intervals are first passed through the artifact filter. At least
        MIN_RR_INTERVALS filtered intervals are required, otherwise 0. Only
        the most recent HRV_WINDOW_SIZE intervals contribute.

        Args:
            rr_intervals: RR intervals in ms, oldest first
            apply_filter: Override params.filter_artifacts

        Returns:
            RMSSD in ms (unrounded, >= 0)
        """
        if apply_filter is None:
            apply_filter = self.params.filter_artifacts
        rr = list(rr_intervals)
        if apply_filter:
            rr = filter_artifacts(rr, self.params.artifact_tolerance)

        if len(rr) < self.params.min_intervals:
            logger.debug("HRV unavailable: %d filtered RR intervals", len(rr))
            return 0.0

        recent = np.asarray(rr[-self.params.window_size:], dtype=float)
        successive_diffs = np.diff(recent)
        if len(successive_diffs) == 0:
            return 0.0
        rmssd = float(np.sqrt(np.mean(successive_diffs ** 2)))
        logger.debug("RMSSD %.2f ms from %d intervals", rmssd, len(successive_diffs))
        return rmssd


class SegmentMetricsCalculator:
    """Computes ECGMetrics for a slice of the ECG and heart rate streams."""

    def __init__(self, params: Optional[AnalysisParameters] = None):
        self.params = params or get_preset('default')
        self.processor = ECGSignalProcessor(self.params.sample_rate, self.params.peaks)
        self.hrv_analyzer = HRVAnalyzer(self.params.hrv)

    def compute_metrics(self,
                        ecg: Sequence[RawSample],
                        hr: Optional[Sequence[HeartRateSample]] = None) -> ECGMetrics:
        """
        Metrics for one segment.

        Args:
            ecg: Raw ECG samples of the segment
            hr: Reported heart rate samples of the segment (used when the
                heart rate source is 'reported')

        Returns:
            ECGMetrics; all zero when fewer than METRICS_MIN_SAMPLES ECG
            samples are available
        """
        ecg = order_samples(ecg)
        if len(ecg) < self.params.metrics_min_samples:
            logger.debug("Not enough ECG data for metrics: %d samples", len(ecg))
            return ECGMetrics.empty()

        peaks = self.processor.detect_r_peaks(ecg)
        rr = extract_rr_intervals(peaks)
        hrv = round_half_up(self.hrv_analyzer.rmssd(rr))

        if self.params.heart_rate_source == HEART_RATE_SOURCE_RR:
            rates = instantaneous_heart_rates(rr)
            duration = ecg[-1].timestamp - ecg[0].timestamp
            total_beats = len(peaks)
        else:
            hr_samples = order_samples(hr or [])
            rates = [s.value for s in hr_samples]
            duration = hr_samples[-1].timestamp - hr_samples[0].timestamp if hr_samples else 0
            total_beats = None

        if rates:
            avg_heart_rate = round_half_up(float(np.mean(rates)))
            metrics = ECGMetrics(
                avg_heart_rate=avg_heart_rate,
                median_heart_rate=round_half_up(upper_median(rates)),
                min_heart_rate=round_half_up(min(rates)),
                max_heart_rate=round_half_up(max(rates)),
                heart_rate_variability=hrv,
                rr_intervals=rr,
                r_peaks=peaks,
                total_beats=total_beats if total_beats is not None
                else round_half_up(avg_heart_rate * duration / 60000.0),
                duration=duration,
            )
        else:
            metrics = ECGMetrics(
                heart_rate_variability=hrv,
                rr_intervals=rr,
                r_peaks=peaks,
                total_beats=total_beats or 0,
                duration=duration,
            )

        logger.debug("Segment metrics: avg=%d bpm hrv=%d ms peaks=%d rr=%d",
                     metrics.avg_heart_rate, metrics.heart_rate_variability,
                     len(peaks), len(rr))
        return metrics

    def compute_segment(self,
                        ecg: Sequence[RawSample],
                        hr: Sequence[HeartRateSample],
                        segment: ActivitySegment) -> ECGMetrics:
        """Slice both streams to the segment window and compute metrics."""
        return self.compute_metrics(samples_in_segment(ecg, segment),
                                    samples_in_segment(hr, segment))

    def live_snapshot(self,
                      ecg: Sequence[RawSample],
                      window: int = LIVE_ANALYSIS_WINDOW_SAMPLES) -> LiveSnapshot:
        """
        Analyse the most recent `window` samples.

        Heart rate is 60000 / median RR. HRV here skips the artifact filter,
        and needs MIN_RR_INTERVALS detected peaks.
        """
        ecg = order_samples(ecg)
        if len(ecg) < self.params.metrics_min_samples:
            return LiveSnapshot()

        recent = ecg[-window:]
        peaks = self.processor.detect_r_peaks(recent)
        rr = extract_rr_intervals(peaks)
        heart_rate = self.processor.calculate_heart_rate(rr, method='median')
        hrv = 0
        if len(peaks) >= self.params.hrv.min_intervals:
            hrv = round_half_up(self.hrv_analyzer.rmssd(rr, apply_filter=False))
        return LiveSnapshot(heart_rate=heart_rate,
                            heart_rate_variability=hrv,
                            r_peaks=peaks,
                            timestamp=recent[-1].timestamp)


# Convenience functions
def compute_metrics(ecg: Sequence[RawSample],
                    hr: Optional[Sequence[HeartRateSample]] = None,
                    params: Optional[AnalysisParameters] = None) -> ECGMetrics:
    """Segment metrics with the given (or default) parameters."""
    return SegmentMetricsCalculator(params).compute_metrics(ecg, hr)


def calculate_rmssd(rr_intervals: Sequence[Number]) -> float:
    """RMSSD with default HRV parameters."""
    return HRVAnalyzer().rmssd(rr_intervals)


if __name__ == "__main__":
    from examples.generate_ecg_data import ECGGenerator

    gen = ECGGenerator(seed=3)
    ecg = gen.generate_ecg(duration=60, heart_rate=75)
    hr = gen.generate_heart_rate(start=ecg[0].timestamp, duration=60, start_bpm=75, end_bpm=75)

    metrics = SegmentMetricsCalculator().compute_metrics(ecg, hr)
    print("Segment Metrics:")
    print(f"  Average HR: {metrics.avg_heart_rate} bpm")
    print(f"  HRV (RMSSD): {metrics.heart_rate_variability} ms")
    print(f"  Beats: {metrics.total_beats} over {metrics.duration / 1000:.0f} s")

    snapshot = SegmentMetricsCalculator().live_snapshot(ecg)
    print(f"\nLive: {snapshot.heart_rate} bpm, {len(snapshot.r_peaks)} peaks in window")
