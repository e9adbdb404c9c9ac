#!/usr/bin/env python
"""
ECG Session Analysis Constants

All numerical constants used by the chest-strap session pipeline, with the
physiological reasoning or sensor calibration each one comes from. Analysis
code takes these as defaults; `ecg_presets` bundles them into named
parameter sets.

Units:
- Time: milliseconds (ms) unless the name says seconds (S)
- Frequency: Hertz (Hz)
- Heart rate: beats per minute (bpm)
- Amplitude: raw sensor units (signed 24-bit, microvolt-like scale)
"""

# ==============================================================================
# SENSOR
# ==============================================================================
# Chest-strap ECG stream (PMD measurement service) runs at 130 Hz.
# Reported heart rate (GATT Heart Rate Measurement) arrives at ~1 Hz.
DEFAULT_SAMPLE_RATE_HZ = 130
HEART_RATE_REPORT_INTERVAL_MS = 1000

# ==============================================================================
# R-PEAK DETECTION
# ==============================================================================

# Below this many samples a window cannot hold a beat; return no peaks.
PEAK_DETECTION_MIN_SAMPLES = 10

# Refractory period between accepted R-peaks.
# 250 ms is the shortest plausible beat-to-beat gap (240 bpm).
PEAK_REFRACTORY_MS = 250

# Local-maximum test looks this many samples to each side.
PEAK_NEIGHBORHOOD_SAMPLES = 2

# Adaptive threshold = mean + multiplier * std.
# Signal-to-noise estimate is IQR / std: spiky QRS trains have a small IQR
# relative to their spread, so a low ratio asks for a higher multiplier.
ADAPTIVE_SNR_LOW = 1.5
ADAPTIVE_SNR_HIGH = 2.5
ADAPTIVE_MULTIPLIER_LOW_SNR = 2.5
ADAPTIVE_MULTIPLIER_MID_SNR = 2.0
ADAPTIVE_MULTIPLIER_HIGH_SNR = 1.5

# Quartile positions used for the IQR (index into the sorted values).
QUARTILE_LOW = 0.25
QUARTILE_HIGH = 0.75

# Fixed-threshold variant for normalized amplitude units.
FIXED_THRESHOLD_FACTOR = 0.8

# Baseline wander high-pass (optional preprocessing).
# 0.5 Hz keeps QRS energy while removing respiration drift.
BASELINE_WANDER_CUTOFF_HZ = 0.5
BASELINE_WANDER_FILTER_ORDER = 4

# ==============================================================================
# RR INTERVALS AND HRV
# ==============================================================================

# Physiological heart rate bounds. RR intervals implying a rate outside
# this range are dropped, never clamped.
MIN_HEART_RATE_BPM = 40
MAX_HEART_RATE_BPM = 220
MIN_RR_INTERVAL_MS = 60000.0 / MAX_HEART_RATE_BPM  # ~273 ms
MAX_RR_INTERVAL_MS = 60000.0 / MIN_HEART_RATE_BPM  # 1500 ms

# Interior RR interval is an artifact when it differs from both neighbours
# by more than this fraction of each neighbour.
ARTIFACT_TOLERANCE = 0.2

# RMSSD needs at least this many filtered intervals, and uses only the
# most recent window of them.
MIN_RR_INTERVALS = 5
HRV_WINDOW_SIZE = 8

# ==============================================================================
# SEGMENT METRICS
# ==============================================================================

# Fewer ECG samples than this in a segment yields all-zero metrics.
METRICS_MIN_SAMPLES = 50

# Live monitor analyses only the most recent samples (~2.3 s at 130 Hz).
LIVE_ANALYSIS_WINDOW_SAMPLES = 300

# Where the segment heart-rate statistics come from.
HEART_RATE_SOURCE_REPORTED = 'reported'
HEART_RATE_SOURCE_RR = 'rr'

# ==============================================================================
# SIGNAL QUALITY
# ==============================================================================

# Population standard deviation cutoffs, raw sensor units.
# Calibrated on the deployed strap; excellent < good < fair < poor.
QUALITY_RAW_THRESHOLDS = (300.0, 400.0, 500.0)

# Same tier structure for normalized (mV-like) amplitudes.
QUALITY_NORMALIZED_THRESHOLDS = (0.1, 0.2, 0.5)

# Score only the most recent window to ignore stale noisy data.
QUALITY_WINDOW_S = 5.0

# Feature scorer: QRS band and full band for the spectral power ratio.
QUALITY_QRS_BAND_HZ = (5.0, 15.0)
QUALITY_FULL_BAND_HZ = (0.0, 45.0)
QUALITY_FEATURE_COUNT = 18

# ==============================================================================
# SESSION PHASES
# ==============================================================================

# Minimum time in a phase before it may be closed.
# Test durations keep demo sessions short; production durations follow the
# intended 3 min rest / 6 min exercise protocol. Recovery has no minimum.
PHASE_MIN_REST_TEST_MS = 10 * 1000
PHASE_MIN_EXERCISE_TEST_MS = 15 * 1000
PHASE_MIN_REST_PRODUCTION_MS = 3 * 60 * 1000
PHASE_MIN_EXERCISE_PRODUCTION_MS = 6 * 60 * 1000
PHASE_MIN_RECOVERY_MS = 0

# First seconds of rest are electrode settling noise and are trimmed.
# A rest phase no longer than this is not recorded at all.
REST_SETTLING_TRIM_MS = 10 * 1000

# ==============================================================================
# HEART RATE RECOVERY
# ==============================================================================

# HRR sampled every 30 s from recovery start: 0, 30, 60, 90, 120 s.
HRR_INTERVAL_MS = 30 * 1000
HRR_MAX_POINTS = 5

# Streaming recovery tracker (percentages of baseline / peak).
HR_RISE_THRESHOLD_PCT = 10.0  # rise over baseline that marks exercise start
HR_RECOVERY_THRESHOLD_PCT = 5.0  # drop from peak that marks recovery start
HR_BASELINE_THRESHOLD_PCT = 2.0  # distance from baseline that counts as recovered
HR_PEAK_SETTLE_MS = 5000  # wait after the peak before looking for recovery

# Recovery-period prediction against a calibration baseline.
RECOVERY_WINDOW_MS = 30 * 1000
RECOVERY_STEP_MS = 10 * 1000
RECOVERY_SIMILARITY = 0.1

# ==============================================================================
# BUFFERS
# ==============================================================================

# Retention of a recording session's sample logs (2 h; ECG at the session
# sample rate, HR at 1 Hz).
SAMPLE_LOG_RETENTION_S = 60 * 60 * 2
HR_LOG_CAPACITY = SAMPLE_LOG_RETENTION_S

# ==============================================================================
# DISPLAY
# ==============================================================================

PHASE_COLORS = {
    'rest': '#a5b4fc',
    'exercise': '#bbf7d0',
    'recovery': '#fdba74',
}
SIGNAL_COLOR = '#0080FF'
PEAK_MARKER_COLOR = '#D32F2F'
