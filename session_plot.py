#!/usr/bin/env python
"""
Session Plotting Module
Heart rate by phase, heart rate recovery and ECG strip charts.
"""

from typing import Optional, Sequence, Tuple

import numpy as np
import matplotlib.pyplot as plt
import matplotlib.patches as patches

from ecg_constants import PHASE_COLORS, SIGNAL_COLOR, PEAK_MARKER_COLOR
from ecg_types import ActivitySegment, HeartRateSample, HRRPoint, Number, RawSample
from ecg_validation import order_samples


class SessionPlotter:
    """Charts for a recorded session."""

    def __init__(self, style: str = 'screen'):
        """
        Initialize session plotter.

        Args:
            style: Plot style ('screen' or 'print')
        """
        self.style = style

        # Style configurations
        self.styles = {
            'screen': {
                'signal_color': SIGNAL_COLOR,
                'peak_color': PEAK_MARKER_COLOR,
                'hr_color': '#1E293B',
                'grid_color': '#CCCCCC',
                'text_color': '#333333',
                'phase_alpha': 0.5,
            },
            'print': {
                'signal_color': '#000000',
                'peak_color': '#000000',
                'hr_color': '#000000',
                'grid_color': '#666666',
                'text_color': '#000000',
                'phase_alpha': 0.3,
            },
        }
        self.current_style = self.styles.get(style, self.styles['screen'])

    def _format_axes(self, ax: plt.Axes):
        ax.grid(True, color=self.current_style['grid_color'], linewidth=0.5, alpha=0.7)
        ax.spines['top'].set_visible(False)
        ax.spines['right'].set_visible(False)
        ax.tick_params(colors=self.current_style['text_color'], labelsize=8)

    def plot_heart_rate_phases(self,
                               hr: Sequence[HeartRateSample],
                               segments: Sequence[ActivitySegment],
                               title: Optional[str] = "Heart Rate by Phase",
                               origin: Optional[Number] = None,
                               figsize: Tuple[float, float] = (12, 4)) -> plt.Figure:
        """
        Reported heart rate over time with each phase shaded.

        Args:
            hr: Heart rate samples
            segments: Recorded activity segments
            title: Plot title
            origin: Timestamp shown as t = 0 (default: first sample or segment)
            figsize: Figure size

        Returns:
            matplotlib Figure object
        """
        hr = order_samples(hr)
        fig, ax = plt.subplots(figsize=figsize)

        if origin is None:
            candidates = [s.timestamp for s in hr[:1]] + [seg.start for seg in segments]
            origin = min(candidates) if candidates else 0

        for seg in segments:
            color = PHASE_COLORS.get(seg.type.value, '#DDDDDD')
            ax.add_patch(patches.Rectangle(
                ((seg.start - origin) / 1000.0, 0), seg.duration / 1000.0, 1,
                transform=ax.get_xaxis_transform(),
                facecolor=color, alpha=self.current_style['phase_alpha'],
                edgecolor='none', label=seg.type.value.capitalize()))

        if hr:
            times = np.array([(s.timestamp - origin) / 1000.0 for s in hr])
            values = np.array([s.value for s in hr])
            ax.plot(times, values, color=self.current_style['hr_color'], linewidth=1.2)
            ax.set_ylim(max(0, values.min() - 10), values.max() + 10)
        else:
            ax.text(0.5, 0.5, 'No heart rate data', transform=ax.transAxes,
                    ha='center', va='center', color=self.current_style['text_color'])

        if segments:
            ax.set_xlim(min(0, (min(s.start for s in segments) - origin) / 1000.0),
                        (max(s.end for s in segments) - origin) / 1000.0)
            ax.legend(loc='upper right', fontsize=8)

        ax.set_xlabel('Time (s)', fontsize=9)
        ax.set_ylabel('Heart Rate (bpm)', fontsize=9)
        if title:
            ax.set_title(title, fontsize=12, fontweight='bold')
        self._format_axes(ax)
        plt.tight_layout()
        return fig

    def plot_hrr(self,
                 points: Sequence[HRRPoint],
                 title: Optional[str] = "Heart Rate Recovery",
                 figsize: Tuple[float, float] = (8, 4)) -> plt.Figure:
        """HR and HRR at each recovery offset; missing values are skipped."""
        fig, ax = plt.subplots(figsize=figsize)

        hr_points = [(p.time, p.hr) for p in points if p.hr is not None]
        hrr_points = [(p.time, p.hrr) for p in points if p.hrr is not None]
        if hr_points:
            t, v = zip(*hr_points)
            ax.plot(t, v, marker='o', color=self.current_style['hr_color'], label='HR (bpm)')
        if hrr_points:
            t, v = zip(*hrr_points)
            ax.bar(t, v, width=6, color=PHASE_COLORS['recovery'], alpha=0.8, label='HRR (bpm)')
        if not points:
            ax.text(0.5, 0.5, 'No recovery data', transform=ax.transAxes,
                    ha='center', va='center', color=self.current_style['text_color'])
        else:
            ax.set_xticks([p.time for p in points])
            ax.legend(loc='upper right', fontsize=8)

        ax.set_xlabel('Time since recovery start (s)', fontsize=9)
        ax.set_ylabel('bpm', fontsize=9)
        if title:
            ax.set_title(title, fontsize=12, fontweight='bold')
        self._format_axes(ax)
        plt.tight_layout()
        return fig

    def plot_ecg_strip(self,
                       samples: Sequence[RawSample],
                       peaks: Optional[Sequence[Number]] = None,
                       title: Optional[str] = None,
                       duration: Optional[float] = None,
                       figsize: Tuple[float, float] = (12, 3)) -> plt.Figure:
        """
        Raw ECG trace with optional R-peak markers.

        Args:
            samples: Raw ECG samples
            peaks: R-peak timestamps to mark
            title: Plot title
            duration: Seconds to show from the first sample (None for all)
            figsize: Figure size
        """
        samples = order_samples(samples)
        fig, ax = plt.subplots(figsize=figsize)

        if samples:
            origin = samples[0].timestamp
            times = np.array([(s.timestamp - origin) / 1000.0 for s in samples])
            values = np.array([s.value for s in samples], dtype=float)
            if duration is not None:
                keep = times <= duration
                times, values = times[keep], values[keep]
            ax.plot(times, values, color=self.current_style['signal_color'], linewidth=0.8)

            if peaks:
                lookup = {s.timestamp: s.value for s in samples}
                marks = [((p - origin) / 1000.0, lookup[p]) for p in peaks
                         if p in lookup and (duration is None or (p - origin) / 1000.0 <= duration)]
                if marks:
                    t, v = zip(*marks)
                    ax.plot(t, v, 'v', color=self.current_style['peak_color'], markersize=6,
                            label=f'R-peaks ({len(marks)})')
                    ax.legend(loc='upper right', fontsize=8)

        ax.set_xlabel('Time (s)', fontsize=9)
        ax.set_ylabel('ECG (raw units)', fontsize=9)
        if title:
            ax.set_title(title, fontsize=12, fontweight='bold')
        self._format_axes(ax)
        plt.tight_layout()
        return fig


# Convenience functions
def plot_session_heart_rate(hr: Sequence[HeartRateSample],
                            segments: Sequence[ActivitySegment],
                            **kwargs) -> plt.Figure:
    """Quick function for the phase heart rate chart."""
    return SessionPlotter().plot_heart_rate_phases(hr, segments, **kwargs)


def plot_ecg(samples: Sequence[RawSample],
             peaks: Optional[Sequence[Number]] = None,
             **kwargs) -> plt.Figure:
    """Quick function for an ECG strip."""
    return SessionPlotter().plot_ecg_strip(samples, peaks, **kwargs)


if __name__ == "__main__":
    from examples.generate_ecg_data import ECGGenerator
    from signal_processing import detect_peaks

    gen = ECGGenerator(seed=1)
    ecg = gen.generate_ecg(duration=10, heart_rate=75)
    plot_ecg(ecg, detect_peaks(ecg), title="ECG Strip")
    plt.show()
