#!/usr/bin/env python
"""
Session Data Model
Samples, activity segments, per-segment metrics and the persisted record.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, TypeVar, Union

Number = Union[int, float]


@dataclass(frozen=True)
class RawSample:
    """One raw ECG reading."""
    timestamp: Number  # ms since epoch
    value: Number  # raw sensor amplitude

    def to_dict(self) -> Dict:
        return {'timestamp': self.timestamp, 'value': self.value}


@dataclass(frozen=True)
class HeartRateSample:
    """One reported heart rate."""
    timestamp: Number  # ms since epoch
    value: int  # bpm

    def to_dict(self) -> Dict:
        return {'timestamp': self.timestamp, 'value': self.value}


class ActivityType(Enum):
    """Session phases that produce a recorded segment."""
    REST = "rest"
    EXERCISE = "exercise"
    RECOVERY = "recovery"


@dataclass(frozen=True)
class ActivitySegment:
    """A closed time window of one session phase."""
    type: ActivityType
    start: Number  # ms
    end: Number  # ms

    def __post_init__(self):
        if not self.start < self.end:
            raise ValueError(
                f"Segment start must precede end, got {self.start} >= {self.end}")

    @property
    def duration(self) -> Number:
        return self.end - self.start

    def contains(self, timestamp: Number) -> bool:
        return self.start <= timestamp <= self.end

    def to_dict(self) -> Dict:
        return {'type': self.type.value, 'start': self.start, 'end': self.end}

    @classmethod
    def from_dict(cls, data: Dict) -> 'ActivitySegment':
        return cls(ActivityType(data['type']), data['start'], data['end'])


@dataclass
class ECGMetrics:
    """Metrics computed for one activity segment."""
    avg_heart_rate: int = 0
    median_heart_rate: int = 0
    min_heart_rate: int = 0
    max_heart_rate: int = 0
    heart_rate_variability: int = 0  # RMSSD, ms
    rr_intervals: List[Number] = field(default_factory=list)  # ms
    r_peaks: List[Number] = field(default_factory=list)  # timestamps, ms
    total_beats: int = 0
    duration: Number = 0  # ms

    # Persisted key -> attribute
    _KEYS = (
        ('avgHeartRate', 'avg_heart_rate'),
        ('medianHeartRate', 'median_heart_rate'),
        ('minHeartRate', 'min_heart_rate'),
        ('maxHeartRate', 'max_heart_rate'),
        ('heartRateVariability', 'heart_rate_variability'),
        ('rrIntervals', 'rr_intervals'),
        ('rPeaks', 'r_peaks'),
        ('totalBeats', 'total_beats'),
        ('duration', 'duration'),
    )

    @classmethod
    def empty(cls) -> 'ECGMetrics':
        """Metrics for a segment without enough data."""
        return cls()

    def to_dict(self) -> Dict:
        data = {}
        for key, attr in self._KEYS:
            value = getattr(self, attr)
            data[key] = list(value) if isinstance(value, list) else value
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'ECGMetrics':
        kwargs = {attr: data[key] for key, attr in cls._KEYS if key in data}
        return cls(**kwargs)


@dataclass(frozen=True)
class HRRPoint:
    """Heart rate recovery at a fixed offset into recovery."""
    time: Number  # seconds since recovery start
    hr: Optional[int]
    hrr: Optional[int]

    def to_dict(self) -> Dict:
        return {'time': self.time, 'hr': self.hr, 'hrr': self.hrr}

    @classmethod
    def from_dict(cls, data: Dict) -> 'HRRPoint':
        return cls(data['time'], data.get('hr'), data.get('hrr'))


class QualityRating(Enum):
    """Coarse ECG signal quality tiers, best first."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

    @property
    def rank(self) -> int:
        """0 for excellent, larger is worse."""
        return _QUALITY_ORDER.index(self)


_QUALITY_ORDER = [QualityRating.EXCELLENT, QualityRating.GOOD,
                  QualityRating.FAIR, QualityRating.POOR]


@dataclass
class SessionRecord:
    """A completed rest/exercise/recovery session, ready to persist."""
    user_id: str
    datetime: str  # ISO-8601
    ecg: List[RawSample]
    hr: List[HeartRateSample]
    rest_metrics: ECGMetrics
    exercise_metrics: ECGMetrics
    recovery_metrics: ECGMetrics
    activity_segments: List[ActivitySegment]
    hrr_points: List[HRRPoint] = field(default_factory=list)
    notes: str = ""

    # Display only, not persisted
    signal_quality: Dict[str, QualityRating] = field(default_factory=dict)

    def metrics_for(self, activity: ActivityType) -> ECGMetrics:
        return {
            ActivityType.REST: self.rest_metrics,
            ActivityType.EXERCISE: self.exercise_metrics,
            ActivityType.RECOVERY: self.recovery_metrics,
        }[activity]

    def segment(self, activity: ActivityType) -> Optional[ActivitySegment]:
        for seg in self.activity_segments:
            if seg.type == activity:
                return seg
        return None

    def to_dict(self) -> Dict:
        return {
            'user_id': self.user_id,
            'datetime': self.datetime,
            'ecg': [s.to_dict() for s in self.ecg],
            'hr': [s.to_dict() for s in self.hr],
            'rest_metrics': self.rest_metrics.to_dict(),
            'exercise_metrics': self.exercise_metrics.to_dict(),
            'recovery_metrics': self.recovery_metrics.to_dict(),
            'activity_segments': [s.to_dict() for s in self.activity_segments],
            'hrr_points': [p.to_dict() for p in self.hrr_points],
            'notes': self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'SessionRecord':
        return cls(
            user_id=data['user_id'],
            datetime=data['datetime'],
            ecg=[RawSample(d['timestamp'], d['value']) for d in data.get('ecg', [])],
            hr=[HeartRateSample(d['timestamp'], d['value']) for d in data.get('hr', [])],
            rest_metrics=ECGMetrics.from_dict(data['rest_metrics']),
            exercise_metrics=ECGMetrics.from_dict(data['exercise_metrics']),
            recovery_metrics=ECGMetrics.from_dict(data['recovery_metrics']),
            activity_segments=[ActivitySegment.from_dict(d)
                               for d in data.get('activity_segments', [])],
            hrr_points=[HRRPoint.from_dict(d) for d in data.get('hrr_points') or []],
            notes=data.get('notes') or "",
        )


T = TypeVar('T', RawSample, HeartRateSample)


def samples_in_segment(samples: Iterable[T], segment: ActivitySegment) -> List[T]:
    """Samples whose timestamp falls inside the segment (inclusive)."""
    return [s for s in samples if segment.contains(s.timestamp)]


def sample_values(samples: Sequence[Union[RawSample, HeartRateSample]]) -> List[Number]:
    return [s.value for s in samples]
