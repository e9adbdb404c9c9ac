#!/usr/bin/env python
"""
ECG Sample Validation Module
Validates streamed samples at the ingestion boundary and defines the single
ordering policy every analysis function applies to its input.
"""

import logging
import math
import warnings
from typing import Dict, Iterable, List, Optional, Sequence, Type, Union

from ecg_types import HeartRateSample, RawSample

logger = logging.getLogger(__name__)

Sample = Union[RawSample, HeartRateSample]


class ECGValidationError(Exception):
    """Custom exception for ECG validation errors."""
    pass


class ECGWarning(UserWarning):
    """Custom warning for ECG validation issues."""
    pass


def _is_finite_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


class ECGValidator:
    """
    Ingestion-time validation of sensor samples.

    In strict mode every violation raises ECGValidationError. Otherwise a
    violation emits ECGWarning and the offending sample is dropped.
    """

    def __init__(self, strict_mode: bool = False):
        """Initialize validator."""
        self.strict_mode = strict_mode
        self.validation_results = {}

    def validate_sample_rate(self, sample_rate: float) -> float:
        """Sample rate must be a positive finite number (always raises)."""
        if not _is_finite_number(sample_rate) or sample_rate <= 0:
            raise ECGValidationError(f"Sample rate must be positive number, got {sample_rate}")
        return sample_rate

    def validate_samples(self, samples: Iterable) -> List[RawSample]:
        """
        Validate raw ECG samples.

        Args:
            samples: RawSample objects, {'timestamp', 'value'} dicts or
                (timestamp, value) pairs

        Returns:
            Accepted samples as RawSample, in arrival order
        """
        return self._validate(samples, RawSample, 'ecg')

    def validate_heart_rate_samples(self, samples: Iterable) -> List[HeartRateSample]:
        """Validate reported heart rate samples; negative rates are rejected."""
        return self._validate(samples, HeartRateSample, 'hr')

    def _validate(self, samples: Iterable, cls: Type, kind: str) -> List:
        accepted = []
        rejected = 0
        for item in samples:
            try:
                sample = _coerce(item, cls)
            except (KeyError, TypeError, ValueError) as e:
                self._handle_validation_issue(f"Malformed {kind} sample {item!r}: {e}")
                rejected += 1
                continue

            problem = self._check(sample, kind)
            if problem:
                self._handle_validation_issue(problem)
                rejected += 1
                continue
            accepted.append(sample)

        self.validation_results = {'kind': kind, 'accepted': len(accepted), 'rejected': rejected}
        if rejected:
            logger.debug("Rejected %d of %d %s samples", rejected, rejected + len(accepted), kind)
        return accepted

    @staticmethod
    def _check(sample: Sample, kind: str) -> Optional[str]:
        if not _is_finite_number(sample.timestamp):
            return f"Non-finite {kind} timestamp: {sample.timestamp!r}"
        if sample.timestamp < 0:
            return f"Negative {kind} timestamp: {sample.timestamp}"
        if not _is_finite_number(sample.value):
            return f"Non-finite {kind} value at {sample.timestamp}: {sample.value!r}"
        if kind == 'hr' and sample.value < 0:
            return f"Negative heart rate at {sample.timestamp}: {sample.value}"
        return None

    def _handle_validation_issue(self, message: str):
        """Handle validation issues based on strict mode setting."""
        if self.strict_mode:
            raise ECGValidationError(message)
        else:
            warnings.warn(message, ECGWarning)

    def get_validation_report(self) -> str:
        """Get a formatted summary of the last validation call."""
        if not self.validation_results:
            return "No validation performed yet."

        report = "ECG Validation Report\n" + "=" * 30 + "\n"
        for key, value in self.validation_results.items():
            report += f"{key.replace('_', ' ').title():.<20} {value}\n"
        return report


def _coerce(item, cls: Type) -> Sample:
    if isinstance(item, cls):
        return item
    if isinstance(item, dict):
        return cls(item['timestamp'], item['value'])
    timestamp, value = item
    return cls(timestamp, value)


def order_samples(samples: Sequence[Sample]) -> List[Sample]:
    """
    Stable sort by timestamp; repeated timestamps keep the first arrival.

    Every analysis function passes its input through this, so output peak
    and sample sequences are strictly increasing in time.
    """
    ordered = sorted(samples, key=lambda s: s.timestamp)
    unique = []
    last = None
    for sample in ordered:
        if unique and sample.timestamp == last:
            continue
        unique.append(sample)
        last = sample.timestamp
    return unique


# Convenience functions for quick validation
def quick_validate(samples: Iterable, kind: str = 'ecg') -> List[Sample]:
    """Lenient validation: warn about and drop invalid samples."""
    validator = ECGValidator(strict_mode=False)
    if kind == 'hr':
        return validator.validate_heart_rate_samples(samples)
    return validator.validate_samples(samples)


def strict_validate(samples: Iterable, kind: str = 'ecg') -> List[Sample]:
    """Strict validation that raises on the first invalid sample."""
    validator = ECGValidator(strict_mode=True)
    if kind == 'hr':
        return validator.validate_heart_rate_samples(samples)
    return validator.validate_samples(samples)


def validation_summary(samples: Iterable, kind: str = 'ecg') -> Dict[str, int]:
    """Accepted / rejected counts without raising or warning."""
    validator = ECGValidator(strict_mode=False)
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', ECGWarning)
        if kind == 'hr':
            validator.validate_heart_rate_samples(samples)
        else:
            validator.validate_samples(samples)
    return {'accepted': validator.validation_results['accepted'],
            'rejected': validator.validation_results['rejected']}
