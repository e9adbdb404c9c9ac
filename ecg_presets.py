#!/usr/bin/env python
"""
Analysis Parameter Presets
Bundles the constants in ecg_constants into named parameter sets so the
pipeline has one parameterized implementation per component.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Tuple

from ecg_constants import (
    DEFAULT_SAMPLE_RATE_HZ,
    PEAK_DETECTION_MIN_SAMPLES,
    PEAK_REFRACTORY_MS,
    ADAPTIVE_SNR_LOW,
    ADAPTIVE_SNR_HIGH,
    ADAPTIVE_MULTIPLIER_LOW_SNR,
    ADAPTIVE_MULTIPLIER_MID_SNR,
    ADAPTIVE_MULTIPLIER_HIGH_SNR,
    FIXED_THRESHOLD_FACTOR,
    MIN_RR_INTERVALS,
    HRV_WINDOW_SIZE,
    ARTIFACT_TOLERANCE,
    METRICS_MIN_SAMPLES,
    HEART_RATE_SOURCE_REPORTED,
    HEART_RATE_SOURCE_RR,
    QUALITY_RAW_THRESHOLDS,
    QUALITY_NORMALIZED_THRESHOLDS,
    QUALITY_WINDOW_S,
    PHASE_MIN_REST_TEST_MS,
    PHASE_MIN_EXERCISE_TEST_MS,
    PHASE_MIN_REST_PRODUCTION_MS,
    PHASE_MIN_EXERCISE_PRODUCTION_MS,
    PHASE_MIN_RECOVERY_MS,
    REST_SETTLING_TRIM_MS,
)


class ThresholdMode(Enum):
    """R-peak amplitude threshold strategies."""
    ADAPTIVE = "adaptive"  # mean + SNR-tiered multiplier * std
    FIXED = "fixed"  # mean + fixed factor * std


@dataclass(frozen=True)
class PeakDetectionParameters:
    """R-peak detector settings."""
    threshold_mode: ThresholdMode = ThresholdMode.ADAPTIVE
    min_samples: int = PEAK_DETECTION_MIN_SAMPLES
    refractory_ms: float = PEAK_REFRACTORY_MS
    snr_tiers: Tuple[float, float] = (ADAPTIVE_SNR_LOW, ADAPTIVE_SNR_HIGH)
    multipliers: Tuple[float, float, float] = (ADAPTIVE_MULTIPLIER_LOW_SNR,
                                               ADAPTIVE_MULTIPLIER_MID_SNR,
                                               ADAPTIVE_MULTIPLIER_HIGH_SNR)
    fixed_factor: float = FIXED_THRESHOLD_FACTOR

    def refractory_samples(self, sample_rate: float) -> int:
        """Refractory period converted to samples (round half up)."""
        return int(self.refractory_ms / 1000.0 * sample_rate + 0.5)


@dataclass(frozen=True)
class HRVParameters:
    """RMSSD settings."""
    window_size: int = HRV_WINDOW_SIZE
    min_intervals: int = MIN_RR_INTERVALS
    artifact_tolerance: float = ARTIFACT_TOLERANCE
    filter_artifacts: bool = True


@dataclass(frozen=True)
class QualityParameters:
    """Dispersion-based quality tiers."""
    thresholds: Tuple[float, float, float] = QUALITY_RAW_THRESHOLDS
    four_tier: bool = True  # False: excellent / good / poor
    window_s: Optional[float] = QUALITY_WINDOW_S


@dataclass(frozen=True)
class PhaseDurations:
    """Minimum phase durations and the rest settling trim (ms)."""
    rest_ms: int = PHASE_MIN_REST_TEST_MS
    exercise_ms: int = PHASE_MIN_EXERCISE_TEST_MS
    recovery_ms: int = PHASE_MIN_RECOVERY_MS
    rest_trim_ms: int = REST_SETTLING_TRIM_MS

    def minimum_for(self, phase: str) -> int:
        return {'rest': self.rest_ms,
                'exercise': self.exercise_ms,
                'recovery': self.recovery_ms}.get(phase, 0)


@dataclass(frozen=True)
class AnalysisParameters:
    """Complete parameter set for one recording session."""
    sample_rate: float = DEFAULT_SAMPLE_RATE_HZ
    heart_rate_source: str = HEART_RATE_SOURCE_REPORTED
    metrics_min_samples: int = METRICS_MIN_SAMPLES
    peaks: PeakDetectionParameters = field(default_factory=PeakDetectionParameters)
    hrv: HRVParameters = field(default_factory=HRVParameters)
    quality: QualityParameters = field(default_factory=QualityParameters)
    phases: PhaseDurations = field(default_factory=PhaseDurations)

    def __post_init__(self):
        if self.heart_rate_source not in (HEART_RATE_SOURCE_REPORTED, HEART_RATE_SOURCE_RR):
            raise ValueError(f"Unknown heart rate source: {self.heart_rate_source}")
        if not self.sample_rate > 0:
            raise ValueError(f"Sample rate must be positive, got {self.sample_rate}")


ANALYSIS_PRESETS: Dict[str, AnalysisParameters] = {
    # Raw strap units, adaptive peaks, reported HR for rate statistics
    'default': AnalysisParameters(),

    # No reported HR stream: rates derived from RR intervals
    'ecg_only': AnalysisParameters(heart_rate_source=HEART_RATE_SOURCE_RR),

    # Normalized amplitudes (mV-like)
    'normalized': AnalysisParameters(
        peaks=PeakDetectionParameters(threshold_mode=ThresholdMode.FIXED),
        quality=QualityParameters(thresholds=QUALITY_NORMALIZED_THRESHOLDS),
    ),

    # Full protocol: 3 min rest, 6 min exercise
    'production': AnalysisParameters(
        phases=PhaseDurations(rest_ms=PHASE_MIN_REST_PRODUCTION_MS,
                              exercise_ms=PHASE_MIN_EXERCISE_PRODUCTION_MS),
    ),
}


def get_preset(name: str = 'default', **overrides) -> AnalysisParameters:
    """
    Look up a named preset, optionally overriding top-level fields.

    Args:
        name: Key of ANALYSIS_PRESETS
        **overrides: AnalysisParameters fields to replace

    Returns:
        AnalysisParameters

    Example:
        >>> params = get_preset('ecg_only', sample_rate=250)
    """
    try:
        preset = ANALYSIS_PRESETS[name]
    except KeyError:
        raise ValueError(
            f"Unknown preset '{name}'. Available: {', '.join(sorted(ANALYSIS_PRESETS))}")
    return replace(preset, **overrides) if overrides else preset
