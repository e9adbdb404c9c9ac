#!/usr/bin/env python
"""
Persistence, Report and Plot Tests
JSON / numpy session records, sample CSV dumps, the text and PDF reports
and the session charts.
"""

import tempfile
import pytest
import sys
import os

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

# Add the project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from examples.generate_ecg_data import ECGGenerator
from ecg_io import (
    ECGFileReader,
    load_record,
    read_samples_csv,
    record_from_json,
    record_to_json,
    save_record,
    write_samples_csv,
)
from ecg_types import (
    ActivitySegment,
    ActivityType,
    ECGMetrics,
    HeartRateSample,
    HRRPoint,
    QualityRating,
    RawSample,
    SessionRecord,
)
from session_plot import SessionPlotter, plot_ecg, plot_session_heart_rate
from session_report import (
    SessionReportGenerator,
    format_duration,
    generate_full_report,
    generate_quick_report,
)
from signal_processing import detect_peaks


@pytest.fixture
def record():
    return SessionRecord(
        user_id='user-7',
        datetime='2024-01-01T00:00:00+00:00',
        ecg=[RawSample(0, 1.5), RawSample(8, -2), RawSample(15, 340)],
        hr=[HeartRateSample(0, 60), HeartRateSample(1000, 61), HeartRateSample(2000, 95),
            HeartRateSample(3000, 80)],
        rest_metrics=ECGMetrics(avg_heart_rate=60, median_heart_rate=61, min_heart_rate=60,
                                max_heart_rate=61, heart_rate_variability=42,
                                rr_intervals=[800, 810], r_peaks=[100, 900, 1710],
                                total_beats=1, duration=1000),
        exercise_metrics=ECGMetrics(),
        recovery_metrics=ECGMetrics(),
        activity_segments=[ActivitySegment(ActivityType.REST, 0, 1000),
                           ActivitySegment(ActivityType.RECOVERY, 1000, 3000)],
        hrr_points=[HRRPoint(0, 95, 0), HRRPoint(30, None, None)],
        notes='Strap re-wetted before exercise',
    )


def test_json_round_trip(record):
    text = record_to_json(record)
    assert '"avgHeartRate": 60' in text
    assert '"rPeaks": [100, 900, 1710]' in text

    assert record_from_json(text) == record


def test_json_rejects_nan(record):
    record.ecg.append(RawSample(23, float('nan')))
    with pytest.raises(ValueError):
        record_to_json(record)


def test_record_files(record):
    with tempfile.TemporaryDirectory() as tmpdir:
        json_path = os.path.join(tmpdir, 'session.json')
        npz_path = os.path.join(tmpdir, 'session.npz')

        save_record(json_path, record)
        assert load_record(json_path) == record

        save_record(npz_path, record)
        assert ECGFileReader.read_record_numpy(npz_path) == record
        assert load_record(npz_path) == record

        other = os.path.join(tmpdir, 'session.dat')
        save_record(other, record, format='json')
        assert ECGFileReader.read_record_json(other) == record

        with pytest.raises(ValueError):
            save_record(os.path.join(tmpdir, 'session.txt'), record)
        with pytest.raises(ValueError):
            save_record(json_path, record, format='xml')
        with pytest.raises(ValueError):
            load_record(other)


def test_sample_csv():
    hr = [HeartRateSample(1000 * i, 60 + i) for i in range(5)]
    ecg = ECGGenerator(seed=1).generate_ecg(duration=1)

    with tempfile.TemporaryDirectory() as tmpdir:
        hr_path = os.path.join(tmpdir, 'hr.csv')
        write_samples_csv(hr_path, hr)
        assert read_samples_csv(hr_path, kind='hr') == hr

        ecg_path = os.path.join(tmpdir, 'ecg.csv')
        write_samples_csv(ecg_path, ecg)
        loaded = read_samples_csv(ecg_path)
        assert len(loaded) == len(ecg)
        assert loaded[10].timestamp == ecg[10].timestamp
        assert loaded[10].value == pytest.approx(ecg[10].value)

        commented = os.path.join(tmpdir, 'commented.csv')
        with open(commented, 'w') as f:
            f.write("timestamp,value\n# strap connected\n0,12\n8,-3.5\n")
        assert read_samples_csv(commented) == [RawSample(0, 12), RawSample(8, -3.5)]

        bad = os.path.join(tmpdir, 'bad.csv')
        with open(bad, 'w') as f:
            f.write("time,ecg\n0,1\n")
        with pytest.raises(ValueError):
            read_samples_csv(bad)
        with pytest.raises(ValueError):
            read_samples_csv(hr_path, kind='spo2')


def test_format_duration():
    assert format_duration(0) == "0:00"
    assert format_duration(65000) == "1:05"
    assert format_duration(360000) == "6:00"


def test_text_report(record):
    record.signal_quality = {'rest': QualityRating.GOOD, 'overall': QualityRating.FAIR}
    report = generate_quick_report(record)

    assert "HEART RATE SESSION REPORT" in report
    assert "User ID: user-7" in report
    assert "Signal Quality: fair" in report
    assert "Base HR: 61 bpm" in report
    # No exercise segment
    assert "Peak HR: -- bpm" in report
    assert "REST:" in report
    assert "RECOVERY:" in report
    assert "EXERCISE:" not in report
    assert "HRV (RMSSD): 42 ms" in report
    assert "Strap re-wetted before exercise" in report

    hrr_lines = report.split("HEART RATE RECOVERY:")[1].splitlines()
    assert hrr_lines[2].split() == ['Time', '(s)', 'HR', '(bpm)', 'HRR', '(bpm)']
    assert hrr_lines[3].split() == ['0', '95', '0']
    assert hrr_lines[4].split() == ['30', '--', '--']

    summary = SessionReportGenerator().summarize(record)
    assert summary.baseline_hr == 61
    assert summary.peak_hr is None
    assert summary.segments[0].hr_stats == {'min': 60, 'max': 61, 'mean': 61, 'count': 2}


def test_report_without_recovery(record):
    record.hrr_points = []
    record.notes = ""
    report = generate_quick_report(record)
    assert "No recovery data" in report
    assert "NOTES:" not in report


def test_pdf_report(record):
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, 'report.pdf')
        generate_full_report(record, path)
        assert os.path.getsize(path) > 0


def test_plots(record):
    ecg = ECGGenerator(seed=4).generate_ecg(duration=5)

    fig = plot_session_heart_rate(record.hr, record.activity_segments)
    assert isinstance(fig, plt.Figure)
    plt.close(fig)

    fig = plot_ecg(ecg, detect_peaks(ecg), title="Strip", duration=3)
    assert isinstance(fig, plt.Figure)
    plt.close(fig)

    plotter = SessionPlotter(style='print')
    assert plotter.current_style['signal_color'] == '#000000'
    for fig in (plotter.plot_hrr(record.hrr_points),
                plotter.plot_hrr([]),
                plotter.plot_heart_rate_phases([], [])):
        assert isinstance(fig, plt.Figure)
        plt.close(fig)


if __name__ == "__main__":
    print("Run with pytest")
