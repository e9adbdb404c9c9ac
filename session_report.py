#!/usr/bin/env python
"""
Session Report Generation Module
Text and PDF summaries of a completed rest / exercise / recovery session.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

import matplotlib.pyplot as plt
from matplotlib.backends.backend_pdf import PdfPages

from ecg_types import ActivityType, ECGMetrics, HRRPoint, QualityRating, SessionRecord
from heart_rate_recovery import baseline_heart_rate, peak_heart_rate, segment_heart_rate_stats
from session_plot import SessionPlotter

PHASE_LABELS = {
    ActivityType.REST: "Rest",
    ActivityType.EXERCISE: "Exercise",
    ActivityType.RECOVERY: "Recovery",
}


def format_duration(ms: float) -> str:
    """m:ss"""
    minutes = int(ms // 60000)
    seconds = int((ms % 60000) // 1000)
    return f"{minutes}:{seconds:02d}"


def _or_dash(value) -> str:
    return "--" if value is None else str(value)


@dataclass
class SegmentSummary:
    """Per-phase figures shown in the report."""
    activity: ActivityType
    duration: float  # ms
    metrics: ECGMetrics
    hr_stats: Optional[Dict[str, int]] = None
    signal_quality: Optional[QualityRating] = None


@dataclass
class SessionSummary:
    """Everything the text report needs, derived from a record."""
    user_id: str
    datetime: str
    baseline_hr: Optional[int]
    peak_hr: Optional[int]
    segments: List[SegmentSummary] = None
    hrr_points: List[HRRPoint] = None
    overall_quality: Optional[QualityRating] = None
    notes: str = ""

    def __post_init__(self):
        if self.segments is None:
            self.segments = []
        if self.hrr_points is None:
            self.hrr_points = []


class SessionReportGenerator:
    """Generate session summary reports."""

    def __init__(self):
        self.plotter = SessionPlotter()

    def summarize(self, record: SessionRecord) -> SessionSummary:
        segments = []
        for seg in record.activity_segments:
            quality = record.signal_quality.get(seg.type.value)
            segments.append(SegmentSummary(
                activity=seg.type,
                duration=seg.duration,
                metrics=record.metrics_for(seg.type),
                hr_stats=segment_heart_rate_stats(record.hr, seg),
                signal_quality=quality,
            ))
        return SessionSummary(
            user_id=record.user_id,
            datetime=record.datetime,
            baseline_hr=baseline_heart_rate(record.hr, record.segment(ActivityType.REST)),
            peak_hr=peak_heart_rate(record.hr, record.segment(ActivityType.EXERCISE)),
            segments=segments,
            hrr_points=list(record.hrr_points),
            overall_quality=record.signal_quality.get('overall'),
            notes=record.notes,
        )

    def generate_text_report(self, record: SessionRecord) -> str:
        """Generate formatted text report."""
        summary = self.summarize(record)

        report = []
        report.append("=" * 80)
        report.append("HEART RATE SESSION REPORT")
        report.append("=" * 80)
        report.append("")

        report.append("SESSION INFORMATION:")
        report.append("-" * 80)
        report.append(f"User ID: {summary.user_id}")
        report.append(f"Recorded: {summary.datetime}")
        report.append(f"ECG Samples: {len(record.ecg)}")
        report.append(f"Heart Rate Readings: {len(record.hr)}")
        if summary.overall_quality is not None:
            report.append(f"Signal Quality: {summary.overall_quality.value}")
        report.append("")

        report.append("SUMMARY:")
        report.append("-" * 80)
        report.append(f"Base HR: {_or_dash(summary.baseline_hr)} bpm")
        report.append(f"Peak HR: {_or_dash(summary.peak_hr)} bpm")
        report.append("")

        for seg in summary.segments:
            label = PHASE_LABELS.get(seg.activity, seg.activity.value)
            report.append(f"{label.upper()}:")
            report.append("-" * 80)
            report.append(f"Duration: {format_duration(seg.duration)}")
            if seg.hr_stats:
                report.append(f"Heart Rate: {seg.hr_stats['mean']} bpm "
                              f"(min {seg.hr_stats['min']}, max {seg.hr_stats['max']}, "
                              f"{seg.hr_stats['count']} readings)")
            m = seg.metrics
            report.append(f"Avg / Median HR: {m.avg_heart_rate} / {m.median_heart_rate} bpm")
            report.append(f"HRV (RMSSD): {m.heart_rate_variability} ms")
            report.append(f"Total Beats: {m.total_beats}")
            if seg.signal_quality is not None:
                report.append(f"Signal Quality: {seg.signal_quality.value}")
            report.append("")

        report.append("HEART RATE RECOVERY:")
        report.append("-" * 80)
        if summary.hrr_points:
            report.append(f"{'Time (s)':<12}{'HR (bpm)':<12}{'HRR (bpm)':<12}")
            for point in summary.hrr_points:
                time_label = f"{point.time:g}"
                report.append(f"{time_label:<12}{_or_dash(point.hr):<12}{_or_dash(point.hrr):<12}")
        else:
            report.append("No recovery data")
        report.append("")

        if summary.notes:
            report.append("NOTES:")
            report.append("-" * 80)
            report.append(summary.notes)
            report.append("")

        report.append("DISCLAIMER:")
        report.append("-" * 80)
        report.append("Consumer chest-strap measurements. Not a medical device.")
        report.append("")
        report.append(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        report.append("=" * 80)

        return '\n'.join(report)

    def generate_pdf_report(self, filepath: str, record: SessionRecord):
        """
        PDF with the phase heart rate chart, the HRR chart and the text report.

        Args:
            filepath: Output PDF file path
            record: Completed session record
        """
        with PdfPages(filepath) as pdf:
            fig = self.plotter.plot_heart_rate_phases(record.hr, record.activity_segments)
            pdf.savefig(fig, bbox_inches='tight')
            plt.close(fig)

            if record.hrr_points:
                fig = self.plotter.plot_hrr(record.hrr_points)
                pdf.savefig(fig, bbox_inches='tight')
                plt.close(fig)

            fig = plt.figure(figsize=(8.5, 11))
            ax = fig.add_subplot(111)
            ax.axis('off')
            ax.text(0.05, 0.95, self.generate_text_report(record),
                    transform=ax.transAxes,
                    fontsize=8,
                    verticalalignment='top',
                    fontfamily='monospace')
            pdf.savefig(fig, bbox_inches='tight')
            plt.close(fig)

            d = pdf.infodict()
            d['Title'] = 'Heart Rate Session Report'
            d['Subject'] = f'User: {record.user_id}'
            d['CreationDate'] = datetime.now()


# Convenience functions
def generate_quick_report(record: SessionRecord) -> str:
    """Generate quick text report."""
    return SessionReportGenerator().generate_text_report(record)


def generate_full_report(record: SessionRecord, output_path: str = 'session_report.pdf'):
    """Generate complete PDF report."""
    SessionReportGenerator().generate_pdf_report(output_path, record)
