#!/usr/bin/env python
"""
ECG Data Generation for Testing and Examples
Generates chest-strap style ECG and heart rate streams (raw sensor units,
millisecond timestamps) for development and testing.
"""

import math
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import matplotlib.pyplot as plt

from ecg_constants import DEFAULT_SAMPLE_RATE_HZ, HEART_RATE_REPORT_INTERVAL_MS
from ecg_types import HeartRateSample, RawSample

# PQRST wave parameters: (offset from R in s, amplitude in raw units, width in s)
PQRST_WAVES = {
    'p': (-0.15, 100.0, 0.025),
    'q': (-0.035, -100.0, 0.01),
    'r': (0.0, 1000.0, 0.01),
    's': (0.035, -150.0, 0.012),
    't': (0.25, 250.0, 0.04),
}


class ECGGenerator:
    """Generate synthetic strap recordings for testing and development."""

    def __init__(self, sample_rate: float = DEFAULT_SAMPLE_RATE_HZ, seed: Optional[int] = None):
        """
        Initialize ECG generator.

        Args:
            sample_rate: Sampling frequency in Hz
            seed: Seed for reproducible noise and rate variation
        """
        self.sample_rate = sample_rate
        self.rng = np.random.default_rng(seed)

    def timestamps(self, n_samples: int, start_timestamp: float = 0) -> List[int]:
        """Integer millisecond timestamps at the sample rate."""
        step = 1000.0 / self.sample_rate
        return [int(math.floor(start_timestamp + i * step + 0.5)) for i in range(n_samples)]

    def generate_ecg(self,
                     duration: float = 10.0,
                     heart_rate: float = 72,
                     noise_level: float = 20.0,
                     start_timestamp: float = 0,
                     first_beat: float = 0.3,
                     rate_variability: float = 0.0) -> List[RawSample]:
        """
        Generate a constant-rate ECG trace.

        Args:
            duration: Signal duration in seconds
            heart_rate: Heart rate in beats per minute
            noise_level: Gaussian noise standard deviation (raw units)
            start_timestamp: Timestamp of the first sample (ms)
            first_beat: Time of the first R wave (s)
            rate_variability: Relative jitter of each RR interval (0.05 = ±5%)

        Returns:
            List of RawSample
        """
        return self._generate(duration, lambda t: heart_rate, noise_level,
                              start_timestamp, first_beat, rate_variability)

    def generate_ecg_profile(self,
                             duration: float,
                             rate_fn: Callable[[float], float],
                             noise_level: float = 20.0,
                             start_timestamp: float = 0,
                             first_beat: float = 0.3) -> List[RawSample]:
        """ECG whose rate follows rate_fn(t seconds) -> bpm."""
        return self._generate(duration, rate_fn, noise_level, start_timestamp, first_beat, 0.0)

    def _generate(self, duration, rate_fn, noise_level, start_timestamp, first_beat, rate_variability):
        n_samples = int(duration * self.sample_rate)
        t = np.arange(n_samples) / self.sample_rate

        signal = np.zeros(n_samples)
        for beat_time in self._beat_times(duration, rate_fn, first_beat, rate_variability):
            signal += self._generate_pqrst_complex(beat_time, t)

        if noise_level > 0:
            signal += self.rng.normal(0, noise_level, n_samples)

        return [RawSample(ts, float(v))
                for ts, v in zip(self.timestamps(n_samples, start_timestamp), signal)]

    def _beat_times(self, duration, rate_fn, first_beat, rate_variability) -> List[float]:
        beats = []
        beat = first_beat
        while beat < duration:
            beats.append(beat)
            rr = 60.0 / rate_fn(beat)
            if rate_variability > 0:
                rr *= 1.0 + self.rng.uniform(-rate_variability, rate_variability)
            beat += rr
        return beats

    def _generate_pqrst_complex(self, beat_time: float, t: np.ndarray) -> np.ndarray:
        """Generate a single PQRST complex."""
        signal = np.zeros(len(t))
        for offset, amplitude, width in PQRST_WAVES.values():
            signal += self._gaussian_wave(t, beat_time + offset, amplitude, width)
        return signal

    def _gaussian_wave(self, t: np.ndarray, center: float, amplitude: float, width: float) -> np.ndarray:
        """Generate Gaussian wave centered at specific time."""
        return amplitude * np.exp(-0.5 * ((t - center) / width) ** 2)

    def generate_sine_ecg(self,
                          duration: float = 10.0,
                          heart_rate: float = 72,
                          start_timestamp: float = 0,
                          hr_variability: float = 5.0) -> List[RawSample]:
        """
        Sensor-simulator morphology built beat by beat from sine pieces.

        Each beat spans round(60 / hr * sample_rate) samples, hr drawn
        uniformly within ±hr_variability of heart_rate. By beat phase:
        P bump below 0.1, Q ramp 0.2-0.22, R sine 0.22-0.28 (~150),
        S dip 0.28-0.35, flat ST 0.35-0.45, T wave 0.45-0.7. A slow
        0.2 Hz baseline sine and ±2 uniform noise are added on top.
        """
        n_samples = int(duration * self.sample_rate)
        values = np.zeros(n_samples)

        index = 0
        while index < n_samples:
            beat_hr = heart_rate + self.rng.uniform(-1, 1) * hr_variability
            beat_len = int(math.floor(60.0 / beat_hr * self.sample_rate + 0.5))
            r_amplitude = 150 + self.rng.uniform(-10, 10)
            t_amplitude = 35 + self.rng.uniform(-5, 5)
            for beat_index in range(min(beat_len, n_samples - index)):
                values[index] = self._sine_beat_value(beat_index / beat_len, r_amplitude, t_amplitude)
                index += 1

        wander = 5 * np.sin(2 * np.pi * np.arange(n_samples) / (self.sample_rate * 5))
        values = values + wander + self.rng.uniform(-2, 2, n_samples)
        return [RawSample(ts, float(v))
                for ts, v in zip(self.timestamps(n_samples, start_timestamp), values)]

    @staticmethod
    def _sine_beat_value(phase: float, r_amplitude: float, t_amplitude: float) -> float:
        if phase < 0.1:
            return 25 * math.sin(phase * math.pi / 0.1)
        if phase < 0.2:
            return 0.0
        if phase < 0.22:
            return -30 * (phase - 0.2) / 0.02
        if phase < 0.28:
            return r_amplitude * math.sin((phase - 0.22) * math.pi / 0.06)
        if phase < 0.35:
            return -40 * math.sin((phase - 0.28) * math.pi / 0.07)
        if phase < 0.45:
            return 5.0
        if phase < 0.7:
            t_phase = (phase - 0.45) / 0.25
            if t_phase < 0.6:
                return t_amplitude * math.sin(t_phase * math.pi / 0.6)
            return t_amplitude * math.sin((1 - (t_phase - 0.6) / 0.4) * math.pi / 2)
        return 0.0

    def generate_heart_rate(self,
                            start: float = 0,
                            duration: float = 60.0,
                            start_bpm: float = 70,
                            end_bpm: Optional[float] = None,
                            interval_ms: float = HEART_RATE_REPORT_INTERVAL_MS) -> List[HeartRateSample]:
        """Reported heart rate, linear from start_bpm to end_bpm, every interval_ms (inclusive)."""
        if end_bpm is None:
            end_bpm = start_bpm
        n = int(duration * 1000 // interval_ms) + 1
        rates = np.linspace(start_bpm, end_bpm, n)
        return [HeartRateSample(int(start + i * interval_ms), int(math.floor(r + 0.5)))
                for i, r in enumerate(rates)]

    def generate_session(self,
                         rest_s: float = 20.0,
                         exercise_s: float = 20.0,
                         recovery_s: float = 60.0,
                         rest_bpm: float = 65,
                         peak_bpm: float = 140,
                         start_timestamp: float = 1_700_000_000_000,
                         recovery_tau_s: float = 40.0,
                         noise_level: float = 20.0
                         ) -> Tuple[List[RawSample], List[HeartRateSample], Dict[str, Tuple[int, int]]]:
        """
        Full rest -> exercise -> recovery recording.

        Rest is flat at rest_bpm, exercise ramps linearly to peak_bpm and
        recovery decays exponentially back toward rest_bpm.

        Returns:
            Tuple of (ecg, hr, boundaries); boundaries maps phase name to its
            (start, end) timestamps in ms
        """
        rest_end = rest_s
        exercise_end = rest_s + exercise_s
        total = exercise_end + recovery_s

        def rate(t: float) -> float:
            if t < rest_end:
                return rest_bpm
            if t < exercise_end:
                return rest_bpm + (peak_bpm - rest_bpm) * (t - rest_end) / exercise_s
            return rest_bpm + (peak_bpm - rest_bpm) * math.exp(-(t - exercise_end) / recovery_tau_s)

        ecg = self.generate_ecg_profile(total, rate, noise_level, start_timestamp)
        hr = [HeartRateSample(int(start_timestamp + k * HEART_RATE_REPORT_INTERVAL_MS),
                              int(math.floor(rate(k * HEART_RATE_REPORT_INTERVAL_MS / 1000.0) + 0.5)))
              for k in range(int(total * 1000 // HEART_RATE_REPORT_INTERVAL_MS) + 1)]

        ms = lambda s: int(start_timestamp + s * 1000)
        boundaries = {
            'rest': (ms(0), ms(rest_end)),
            'exercise': (ms(rest_end), ms(exercise_end)),
            'recovery': (ms(exercise_end), ms(total)),
        }
        return ecg, hr, boundaries


if __name__ == "__main__":
    # Generate and plot example ECG
    generator = ECGGenerator(seed=0)
    ecg = generator.generate_ecg(duration=10, heart_rate=72)

    values = np.array([s.value for s in ecg])
    print(f"Generated {len(ecg)} samples at {generator.sample_rate} Hz")
    print(f"Amplitude range: {values.min():.0f} to {values.max():.0f}")

    plt.figure(figsize=(12, 4))
    plt.plot([(s.timestamp - ecg[0].timestamp) / 1000.0 for s in ecg], values)
    plt.xlabel('Time (s)')
    plt.ylabel('Amplitude (raw)')
    plt.grid(True)
    plt.tight_layout()
    plt.show()
