#!/usr/bin/env python
"""
ECG Session I/O Module
Session records as JSON (the persisted document) or compressed numpy, and
raw sensor dumps as timestamp,value CSV.
"""

import csv
import json
import logging
from typing import Iterable, List, Optional, Union

import numpy as np

from ecg_types import HeartRateSample, RawSample, SessionRecord

logger = logging.getLogger(__name__)

SAMPLE_CSV_HEADER = ['timestamp', 'value']


def _number(text: Union[str, float]):
    value = float(text)
    return int(value) if value.is_integer() else value


def record_to_json(record: SessionRecord, indent: Optional[int] = None) -> str:
    """Serialize a record; NaN or infinity anywhere raises ValueError."""
    return json.dumps(record.to_dict(), indent=indent, allow_nan=False)


def record_from_json(text: str) -> SessionRecord:
    return SessionRecord.from_dict(json.loads(text))


class ECGFileReader:
    """Read session data from supported file formats."""

    @staticmethod
    def read_samples_csv(filepath: str, kind: str = 'ecg') -> List[Union[RawSample, HeartRateSample]]:
        """
        Read a sensor dump.

        CSV Format:
        Row 1: timestamp,value
        Rows 2+: one sample per row; rows starting with '#' are comments

        Args:
            filepath: Path to CSV file
            kind: 'ecg' for RawSample rows, 'hr' for HeartRateSample rows
        """
        if kind not in ('ecg', 'hr'):
            raise ValueError(f"Unknown sample kind: {kind}")
        cls = HeartRateSample if kind == 'hr' else RawSample

        samples = []
        with open(filepath, 'r', newline='') as f:
            reader = csv.reader(f)
            header = next(reader, None)
            if header is None:
                return samples
            if [h.strip().lower() for h in header[:2]] != SAMPLE_CSV_HEADER:
                raise ValueError(f"Expected header 'timestamp,value' in {filepath}, got {header}")

            for row in reader:
                if not row or row[0].startswith('#'):
                    continue
                value = _number(row[1])
                if kind == 'hr':
                    value = int(round(value))
                samples.append(cls(_number(row[0]), value))

        logger.debug("Read %d %s samples from %s", len(samples), kind, filepath)
        return samples

    @staticmethod
    def read_record_json(filepath: str) -> SessionRecord:
        with open(filepath, 'r') as f:
            return SessionRecord.from_dict(json.load(f))

    @staticmethod
    def read_record_numpy(filepath: str) -> SessionRecord:
        """
        Read a record written by ECGFileWriter.write_record_numpy.

        The .npz holds 'ecg' and 'hr' arrays of (timestamp, value) rows and
        the remaining fields as a JSON string under 'record'.
        """
        with np.load(filepath, allow_pickle=False) as data:
            document = json.loads(str(data['record']))
            document['ecg'] = [{'timestamp': _number(t), 'value': _number(v)}
                               for t, v in data['ecg'].reshape(-1, 2)]
            document['hr'] = [{'timestamp': _number(t), 'value': int(v)}
                              for t, v in data['hr'].reshape(-1, 2)]
        return SessionRecord.from_dict(document)

    @staticmethod
    def auto_detect_format(filepath: str) -> SessionRecord:
        filepath_lower = filepath.lower()
        if filepath_lower.endswith('.json'):
            return ECGFileReader.read_record_json(filepath)
        elif filepath_lower.endswith('.npz'):
            return ECGFileReader.read_record_numpy(filepath)
        else:
            raise ValueError(f"Unknown or unsupported file format: {filepath}")


class ECGFileWriter:
    """Write session data to supported file formats."""

    @staticmethod
    def write_samples_csv(filepath: str, samples: Iterable[Union[RawSample, HeartRateSample]]):
        with open(filepath, 'w', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(SAMPLE_CSV_HEADER)
            for sample in samples:
                writer.writerow([sample.timestamp, sample.value])

    @staticmethod
    def write_record_json(filepath: str, record: SessionRecord, indent: Optional[int] = 2):
        text = record_to_json(record, indent=indent)
        with open(filepath, 'w') as f:
            f.write(text)

    @staticmethod
    def write_record_numpy(filepath: str, record: SessionRecord):
        document = record.to_dict()
        ecg = np.array([[s.timestamp, s.value] for s in record.ecg], dtype=float).reshape(-1, 2)
        hr = np.array([[s.timestamp, s.value] for s in record.hr], dtype=float).reshape(-1, 2)
        del document['ecg'], document['hr']
        np.savez_compressed(
            filepath,
            ecg=ecg,
            hr=hr,
            record=np.array(json.dumps(document, allow_nan=False)),
        )


# Convenience functions
def load_record(filepath: str) -> SessionRecord:
    """Load a session record (format from extension)."""
    return ECGFileReader.auto_detect_format(filepath)


def save_record(filepath: str, record: SessionRecord, format: Optional[str] = None):
    """
    Save a session record.

    Args:
        filepath: Output file path
        record: Completed session record
        format: 'json' or 'numpy'. Auto-detect from the extension if None.
    """
    if format is None:
        filepath_lower = filepath.lower()
        if filepath_lower.endswith('.json'):
            format = 'json'
        elif filepath_lower.endswith('.npz'):
            format = 'numpy'
        else:
            raise ValueError(f"Cannot infer record format from: {filepath}")

    writer = ECGFileWriter()
    if format == 'json':
        writer.write_record_json(filepath, record)
    elif format == 'numpy':
        writer.write_record_numpy(filepath, record)
    else:
        raise ValueError(f"Unknown format: {format}")


def read_samples_csv(filepath: str, kind: str = 'ecg') -> List[Union[RawSample, HeartRateSample]]:
    return ECGFileReader.read_samples_csv(filepath, kind)


def write_samples_csv(filepath: str, samples: Iterable[Union[RawSample, HeartRateSample]]):
    ECGFileWriter.write_samples_csv(filepath, samples)
