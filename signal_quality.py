#!/usr/bin/env python
"""
ECG Signal Quality Module
Rates a window of raw samples as excellent / good / fair / poor, either from
amplitude dispersion or from a trained classifier over signal features.
"""

import json
import logging
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Union

import numpy as np
from scipy import signal as sig, stats

from ecg_constants import (
    DEFAULT_SAMPLE_RATE_HZ,
    QUALITY_QRS_BAND_HZ,
    QUALITY_FULL_BAND_HZ,
    QUALITY_FEATURE_COUNT,
)
from ecg_presets import QualityParameters
from ecg_types import QualityRating, RawSample
from ecg_validation import order_samples

logger = logging.getLogger(__name__)

# Classifier output index -> rating
CLASS_RATINGS = {
    0: QualityRating.POOR,
    1: QualityRating.GOOD,
    2: QualityRating.EXCELLENT,
}

FEATURE_NAMES = [
    'mean', 'std', 'skewness', 'kurtosis',
    'range', 'zero_crossings', 'rms', 'peak_to_peak',
    'mean_std_ratio',
    'num_peaks', 'mean_peak_height', 'peak_height_std',
    'mean_peak_interval', 'std_peak_interval',
    'dominant_frequency', 'spectral_entropy', 'hos_index', 'qrs_power_ratio',
]


class SignalQualityScorer:
    """Standard-deviation tiers over the most recent window."""

    def __init__(self,
                 sample_rate: float = DEFAULT_SAMPLE_RATE_HZ,
                 params: Optional[QualityParameters] = None):
        self.sample_rate = sample_rate
        self.params = params or QualityParameters()

    def recent_values(self, samples: Sequence[RawSample]) -> np.ndarray:
        ordered = order_samples(samples)
        if self.params.window_s is not None:
            window = int(self.sample_rate * self.params.window_s)
            if len(ordered) > window:
                ordered = ordered[-window:]
        return np.array([s.value for s in ordered], dtype=float)

    def score(self, samples: Sequence[RawSample]) -> QualityRating:
        """
        Rate a slice of samples.

        Empty input is poor. Otherwise the population standard deviation of
        the most recent window is compared against the tier thresholds,
        lower is better. With three tiers, 'fair' is folded into 'poor'.
        """
        values = self.recent_values(samples)
        if len(values) == 0:
            return QualityRating.POOR
        return self.rate_std(float(np.std(values)))

    def rate_std(self, std: float) -> QualityRating:
        excellent, good, fair = self.params.thresholds
        if std < excellent:
            return QualityRating.EXCELLENT
        if std < good:
            return QualityRating.GOOD
        if self.params.four_tier and std < fair:
            return QualityRating.FAIR
        return QualityRating.POOR


def extract_quality_features(values: np.ndarray, sample_rate: float) -> np.ndarray:
    """
    Eighteen statistical and spectral features of one window.

    Raises:
        ValueError: for empty or constant windows
    """
    values = np.asarray(values, dtype=float)
    n = len(values)
    if n == 0:
        raise ValueError("Empty signal")

    mean = float(np.mean(values))
    std = float(np.std(values))
    if std == 0:
        raise ValueError("Constant signal has no quality features")

    skewness = float(stats.skew(values))
    kurtosis = float(stats.kurtosis(values, fisher=False))
    signal_range = float(np.max(values) - np.min(values))
    signs = np.sign(values)
    zero_crossings = int(np.count_nonzero(signs[1:] != signs[:-1]))
    rms = float(np.sqrt(np.mean(values ** 2)))
    mean_std_ratio = mean / (std + 1e-7)

    # Local maxima above the mean
    interior = values[1:-1]
    peak_mask = (interior > values[:-2]) & (interior > values[2:]) & (interior > mean)
    peaks = np.nonzero(peak_mask)[0] + 1
    heights = values[peaks]
    mean_height = float(np.mean(heights)) if len(heights) else 0.0
    height_std = float(np.std(heights)) if len(heights) else 0.0
    intervals = np.diff(peaks)
    mean_interval = float(np.mean(intervals)) if len(intervals) else 0.0
    std_interval = float(np.std(intervals)) if len(intervals) else 0.0

    # Spectrum
    frequencies, psd = sig.welch(values, fs=sample_rate, nperseg=min(256, n))
    dominant_freq = float(frequencies[np.argmax(psd)])
    total_power = float(np.sum(psd))
    if total_power > 0:
        p = psd / total_power
        p = p[p > 0]
        spectral_entropy = float(-np.sum(p * np.log2(p)))
    else:
        spectral_entropy = 0.0
    qrs_lo, qrs_hi = QUALITY_QRS_BAND_HZ
    full_lo, full_hi = QUALITY_FULL_BAND_HZ
    qrs_power = float(np.sum(psd[(frequencies >= qrs_lo) & (frequencies <= qrs_hi)]))
    full_power = float(np.sum(psd[(frequencies >= full_lo) & (frequencies <= full_hi)]))
    qrs_ratio = qrs_power / (full_power + 1e-7)

    hos_index = abs(skewness * kurtosis) / 5.0

    features = np.array([
        mean, std, skewness, kurtosis,
        signal_range, zero_crossings, rms, signal_range,
        mean_std_ratio,
        len(peaks), mean_height, height_std,
        mean_interval, std_interval,
        dominant_freq, spectral_entropy, hos_index, qrs_ratio,
    ], dtype=float)
    if not np.all(np.isfinite(features)):
        raise ValueError("Non-finite quality feature")
    return features


def load_scaler(source: Union[str, Path, Dict]) -> Dict[str, np.ndarray]:
    """Feature scaler from a {'mean': [...], 'scale': [...]} mapping or JSON file."""
    if isinstance(source, (str, Path)):
        with open(source, 'r') as f:
            source = json.load(f)
    mean = np.asarray(source['mean'], dtype=float)
    scale = np.asarray(source['scale'], dtype=float)
    if mean.shape != (QUALITY_FEATURE_COUNT,) or scale.shape != (QUALITY_FEATURE_COUNT,):
        raise ValueError(f"Scaler must hold {QUALITY_FEATURE_COUNT} means and scales")
    return {'mean': mean, 'scale': scale}


class FeatureSignalQualityScorer:
    """
    Classifier-backed quality rating.

    The classifier is any object with predict(features) returning per-class
    scores, or a callable doing the same. Features are standardized with
    the scaler first. Whenever no model is configured, the window is empty,
    or feature extraction / prediction fails, the 3-tier dispersion scorer
    is used instead.
    """

    def __init__(self,
                 classifier=None,
                 scaler: Optional[Union[str, Path, Dict]] = None,
                 sample_rate: float = DEFAULT_SAMPLE_RATE_HZ,
                 params: Optional[QualityParameters] = None):
        self.classifier = classifier
        self.scaler = load_scaler(scaler) if scaler is not None else None
        self.sample_rate = sample_rate
        params = params or QualityParameters()
        self.params = params
        self.fallback = SignalQualityScorer(
            sample_rate, QualityParameters(thresholds=params.thresholds,
                                           four_tier=False,
                                           window_s=params.window_s))

    @property
    def is_model_loaded(self) -> bool:
        return self.classifier is not None and self.scaler is not None

    def score(self, samples: Sequence[RawSample]) -> QualityRating:
        values = self.fallback.recent_values(samples)
        if not self.is_model_loaded or len(values) == 0:
            return self.fallback.score(samples)

        try:
            features = extract_quality_features(values, self.sample_rate)
            scaled = (features - self.scaler['mean']) / self.scaler['scale']
            class_index = self._predict_class(scaled)
        except Exception as e:
            logger.warning("Feature quality scoring failed, using dispersion tiers: %s", e)
            return self.fallback.score(samples)

        return CLASS_RATINGS.get(class_index, QualityRating.POOR)

    def _predict_class(self, features: np.ndarray) -> int:
        batch = features.reshape(1, -1)
        predict: Callable = getattr(self.classifier, 'predict', self.classifier)
        scores = np.asarray(predict(batch))
        if scores.ndim == 0:
            return int(scores)
        scores = scores.reshape(-1) if scores.ndim == 1 else scores[0]
        if scores.size == 1:
            return int(scores[0])
        return int(np.argmax(scores))


# Convenience functions
def score_quality(samples: Sequence[RawSample],
                  sample_rate: float = DEFAULT_SAMPLE_RATE_HZ,
                  params: Optional[QualityParameters] = None) -> QualityRating:
    """Quick dispersion-based quality rating."""
    return SignalQualityScorer(sample_rate, params).score(samples)


def worst_rating(ratings: Sequence[QualityRating]) -> QualityRating:
    """Lowest tier among ratings (poor for an empty sequence)."""
    if not ratings:
        return QualityRating.POOR
    return max(ratings, key=lambda r: r.rank)
