#!/usr/bin/env python
"""
ECG Recording Session Module
Phase segmentation (rest -> exercise -> recovery), bounded sample logs and
the session object that turns streamed samples into a SessionRecord.
"""

import logging
import math
import time
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from advanced_analysis import SegmentMetricsCalculator
from ecg_constants import HR_LOG_CAPACITY, SAMPLE_LOG_RETENTION_S
from ecg_presets import AnalysisParameters, PhaseDurations, get_preset
from ecg_types import (
    ActivitySegment,
    ActivityType,
    ECGMetrics,
    HeartRateSample,
    HRRPoint,
    Number,
    QualityRating,
    RawSample,
    SessionRecord,
    samples_in_segment,
)
from ecg_validation import ECGValidator
from heart_rate_recovery import (
    baseline_heart_rate,
    compute_hrr,
    peak_heart_rate,
    segment_heart_rate_stats,
)
from signal_quality import SignalQualityScorer

logger = logging.getLogger(__name__)


class PhaseTransitionError(Exception):
    """Raised when a phase is started or closed out of order."""
    pass


class SessionPhase(Enum):
    REST = "rest"
    EXERCISE = "exercise"
    RECOVERY = "recovery"
    DONE = "done"

    @property
    def activity(self) -> Optional[ActivityType]:
        if self is SessionPhase.DONE:
            return None
        return ActivityType(self.value)


_NEXT_PHASE = {
    SessionPhase.REST: SessionPhase.EXERCISE,
    SessionPhase.EXERCISE: SessionPhase.RECOVERY,
    SessionPhase.RECOVERY: SessionPhase.DONE,
}


class PhaseSegmenter:
    """
    Linear rest -> exercise -> recovery state machine.

    Closing a phase appends an ActivitySegment ending at `now`; the next
    phase starts at the same instant. A closed rest phase drops its first
    rest_trim_ms (electrode settling). A rest phase no longer than that is
    not recorded and stays open.
    """

    def __init__(self, durations: Optional[PhaseDurations] = None):
        self.durations = durations or PhaseDurations()
        self.reset()

    def reset(self):
        """Begin a new record: back to an unstarted rest phase."""
        self.phase = SessionPhase.REST
        self.phase_start: Optional[Number] = None
        self.session_start: Optional[Number] = None
        self._segments: List[ActivitySegment] = []

    @property
    def started(self) -> bool:
        return self.phase_start is not None

    @property
    def done(self) -> bool:
        return self.phase is SessionPhase.DONE

    @property
    def segments(self) -> Tuple[ActivitySegment, ...]:
        return tuple(self._segments)

    def segment(self, activity: ActivityType) -> Optional[ActivitySegment]:
        for seg in self._segments:
            if seg.type == activity:
                return seg
        return None

    def start(self, now: Number):
        """Start the phase clock of the first phase."""
        if self.done:
            raise PhaseTransitionError("Session is complete; reset() to record again")
        if self.started:
            raise PhaseTransitionError(f"Phase '{self.phase.value}' already started")
        self.phase_start = now
        self.session_start = now
        logger.debug("Phase %s started at %s", self.phase.value, now)

    def elapsed(self, now: Number) -> Number:
        if not self.started:
            return 0
        return now - self.phase_start

    def minimum_duration(self) -> Number:
        return self.durations.minimum_for(self.phase.value)

    def can_advance(self, now: Number) -> bool:
        if not self.started or self.done:
            return False
        if self.phase is SessionPhase.RECOVERY:
            return True
        return self.elapsed(now) >= self.minimum_duration()

    def advance(self, now: Number, force: bool = False) -> Optional[ActivitySegment]:
        """
        Close the current phase at `now`.

        Args:
            now: Closing timestamp (ms)
            force: Skip the minimum-duration check

        Returns:
            The recorded segment, or None when a too-short rest phase is
            left open

        Raises:
            PhaseTransitionError: before start, after completion, when `now`
                is not after the phase start, or before the minimum duration
        """
        if self.done:
            raise PhaseTransitionError("Session is already complete")
        if not self.started:
            raise PhaseTransitionError(f"Phase '{self.phase.value}' has not been started")
        if now <= self.phase_start:
            raise PhaseTransitionError(
                f"Phase end {now} must be after phase start {self.phase_start}")
        if not force and not self.can_advance(now):
            raise PhaseTransitionError(
                f"Phase '{self.phase.value}' needs {self.minimum_duration()} ms, "
                f"{self.elapsed(now)} ms elapsed")

        segment_start = self.phase_start
        if self.phase is SessionPhase.REST:
            trim = self.durations.rest_trim_ms
            if now - segment_start <= trim:
                logger.debug("Rest of %s ms not recorded (needs more than %s ms)",
                             now - segment_start, trim)
                return None
            segment_start += trim

        segment = ActivitySegment(self.phase.activity, segment_start, now)
        self._segments.append(segment)

        self.phase = _NEXT_PHASE[self.phase]
        self.phase_start = None if self.done else now
        logger.debug("Closed %s segment [%s, %s]; now in %s",
                     segment.type.value, segment.start, segment.end, self.phase.value)
        return segment


class SampleLog:
    """Append-only sample log with a capacity bound; oldest samples are evicted."""

    def __init__(self, capacity: int, name: str = 'samples'):
        if capacity <= 0:
            raise ValueError(f"Capacity must be positive, got {capacity}")
        self.name = name
        self.capacity = capacity
        self.evicted = 0
        self._samples = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._samples)

    def extend(self, samples: Iterable):
        samples = list(samples)
        overflow = len(self._samples) + len(samples) - self.capacity
        self._samples.extend(samples)
        if overflow > 0:
            self.evicted += overflow
            logger.warning("%s log full (%d): evicted %d oldest samples",
                           self.name, self.capacity, overflow)

    def append(self, sample):
        self.extend([sample])

    def snapshot(self) -> tuple:
        return tuple(self._samples)

    def between(self, start: Number, end: Number) -> tuple:
        """Samples with start <= timestamp <= end, in arrival order."""
        return tuple(s for s in self._samples if start <= s.timestamp <= end)

    def clear(self):
        self._samples.clear()


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class RecordingSession:
    """
    One chest-strap recording: ingestion, phase control and pull-based
    analysis over immutable snapshots of the sample logs.
    """

    def __init__(self,
                 params: Optional[AnalysisParameters] = None,
                 clock: Callable[[], Number] = _epoch_ms,
                 strict: bool = False,
                 quality_scorer=None,
                 ecg_capacity: Optional[int] = None,
                 hr_capacity: int = HR_LOG_CAPACITY):
        self.params = params or get_preset('default')
        self.clock = clock
        self.validator = ECGValidator(strict_mode=strict)
        self.validator.validate_sample_rate(self.params.sample_rate)
        self.segmenter = PhaseSegmenter(self.params.phases)
        self.calculator = SegmentMetricsCalculator(self.params)
        self.quality_scorer = quality_scorer or SignalQualityScorer(self.params.sample_rate,
                                                                    self.params.quality)
        if ecg_capacity is None:
            ecg_capacity = int(math.ceil(self.params.sample_rate * SAMPLE_LOG_RETENTION_S))
        self.ecg_log = SampleLog(ecg_capacity, 'ECG')
        self.hr_log = SampleLog(hr_capacity, 'HR')
        self.stopped = False

    # -- ingestion ---------------------------------------------------------

    def add_ecg_samples(self, samples: Iterable) -> int:
        """Validate and append raw ECG samples; returns how many were kept."""
        if self.stopped:
            logger.debug("Session stopped; ignoring ECG samples")
            return 0
        accepted = self.validator.validate_samples(samples)
        self.ecg_log.extend(accepted)
        return len(accepted)

    def add_heart_rate(self, samples) -> int:
        """Validate and append reported heart rate samples (one or many)."""
        if self.stopped:
            logger.debug("Session stopped; ignoring heart rate samples")
            return 0
        if isinstance(samples, HeartRateSample):
            samples = [samples]
        accepted = self.validator.validate_heart_rate_samples(samples)
        self.hr_log.extend(accepted)
        return len(accepted)

    def stop(self):
        self.stopped = True

    # -- phases ------------------------------------------------------------

    @property
    def phase(self) -> SessionPhase:
        return self.segmenter.phase

    @property
    def done(self) -> bool:
        return self.segmenter.done

    def start_phase(self, now: Optional[Number] = None):
        self.segmenter.start(self.clock() if now is None else now)

    def can_advance(self, now: Optional[Number] = None) -> bool:
        return self.segmenter.can_advance(self.clock() if now is None else now)

    def next_phase(self, now: Optional[Number] = None, force: bool = False) -> Optional[ActivitySegment]:
        return self.segmenter.advance(self.clock() if now is None else now, force=force)

    def reset(self):
        """Start a new record on the same sensor stream."""
        self.segmenter.reset()
        self.stopped = False

    # -- analysis ----------------------------------------------------------

    def _segment_data(self, activity: ActivityType):
        segment = self.segmenter.segment(activity)
        if segment is None:
            return None, (), ()
        return (segment,
                self.ecg_log.between(segment.start, segment.end),
                self.hr_log.between(segment.start, segment.end))

    def segment_metrics(self, activity: ActivityType) -> ECGMetrics:
        segment, ecg, hr = self._segment_data(activity)
        if segment is None:
            return ECGMetrics.empty()
        return self.calculator.compute_metrics(ecg, hr)

    def segment_quality(self, activity: ActivityType) -> Optional[QualityRating]:
        """Quality of a recorded segment; None without a segment or data."""
        segment, ecg, _ = self._segment_data(activity)
        if segment is None or not ecg:
            return None
        return self.quality_scorer.score(ecg)

    def overall_quality(self) -> Optional[QualityRating]:
        """Quality over the ECG of all recorded segments."""
        segments = self.segmenter.segments
        if not segments:
            return None
        snapshot = self.ecg_log.snapshot()
        data = []
        for segment in segments:
            data.extend(samples_in_segment(snapshot, segment))
        return self.quality_scorer.score(data)

    def segment_stats(self, activity: ActivityType) -> Optional[Dict[str, int]]:
        segment = self.segmenter.segment(activity)
        if segment is None:
            return None
        return segment_heart_rate_stats(self.hr_log.snapshot(), segment)

    def baseline_heart_rate(self) -> Optional[int]:
        return baseline_heart_rate(self.hr_log.snapshot(),
                                   self.segmenter.segment(ActivityType.REST))

    def peak_heart_rate(self) -> Optional[int]:
        return peak_heart_rate(self.hr_log.snapshot(),
                               self.segmenter.segment(ActivityType.EXERCISE))

    def hrr_points(self) -> List[HRRPoint]:
        return compute_hrr(self.hr_log.snapshot(),
                           self.segmenter.segment(ActivityType.EXERCISE),
                           self.segmenter.segment(ActivityType.RECOVERY))

    def build_record(self,
                     user_id: str,
                     notes: str = "",
                     when: Optional[datetime] = None) -> SessionRecord:
        """
        Assemble the persisted record of a completed session.

        Samples are restricted to [earliest segment start, latest segment end].

        Raises:
            PhaseTransitionError: if the session is not done
        """
        if not self.done:
            raise PhaseTransitionError(
                f"Session still in '{self.phase.value}'; finish recovery first")
        segments = self.segmenter.segments
        if segments:
            overall_start = min(s.start for s in segments)
            overall_end = max(s.end for s in segments)
            ecg = list(self.ecg_log.between(overall_start, overall_end))
            hr = list(self.hr_log.between(overall_start, overall_end))
        else:
            ecg, hr = [], []

        quality = {}
        for activity in ActivityType:
            rating = self.segment_quality(activity)
            if rating is not None:
                quality[activity.value] = rating
        overall = self.overall_quality()
        if overall is not None:
            quality['overall'] = overall

        when = when or datetime.now(timezone.utc)
        record = SessionRecord(
            user_id=user_id,
            datetime=when.isoformat(),
            ecg=ecg,
            hr=hr,
            rest_metrics=self.segment_metrics(ActivityType.REST),
            exercise_metrics=self.segment_metrics(ActivityType.EXERCISE),
            recovery_metrics=self.segment_metrics(ActivityType.RECOVERY),
            activity_segments=list(segments),
            hrr_points=self.hrr_points(),
            notes=notes,
            signal_quality=quality,
        )
        logger.info("Built record for %s: %d ECG samples, %d segments",
                    user_id, len(ecg), len(segments))
        return record
