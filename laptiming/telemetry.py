"""
Telemetry Conversion for GPS Lap Timing

This module converts between typed telemetry values and the tabular and
plain-dict forms used by analytics and by callers: samples to pandas
DataFrames, and laps/analyses to JSON-ready dictionaries.
"""

from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .models import (
    GeoPoint,
    LapComparison,
    LapRecord,
    SectorAnalysis,
    SessionMetrics,
    TelemetrySample,
    TrackAnalysis,
)
from . import utils

SAMPLE_COLUMNS = [
    "timestamp_ms",
    "lat",
    "lng",
    "elevation",
    "speed_kmh",
    "throttle_pct",
    "brake_pct",
    "rpm",
    "lateral_g",
    "accuracy_m",
]


def samples_to_frame(samples: Sequence[TelemetrySample]) -> pd.DataFrame:
    """
    Convert samples to a DataFrame with one row per sample.

    Missing optional channels become NaN so that numeric operations work
    column-wise.

    Args:
        samples: Telemetry samples.

    Returns:
        DataFrame with SAMPLE_COLUMNS, float dtype except timestamp_ms.
    """
    rows = [
        (
            s.timestamp_ms,
            s.position.lat,
            s.position.lng,
            s.position.elevation,
            s.speed_kmh,
            s.throttle_pct,
            s.brake_pct,
            s.rpm,
            s.lateral_g,
            s.accuracy_m,
        )
        for s in samples
    ]
    df = pd.DataFrame(rows, columns=SAMPLE_COLUMNS)
    float_columns = SAMPLE_COLUMNS[1:]
    df[float_columns] = df[float_columns].astype(float)
    df["timestamp_ms"] = df["timestamp_ms"].astype(np.int64)
    return df


def _optional_float(record: Dict, key: str) -> Optional[float]:
    value = record.get(key)
    if value is None:
        return None
    return float(value)


def sample_from_dict(record: Dict) -> TelemetrySample:
    """
    Build a TelemetrySample from a plain dictionary.

    Expects ``timestamp_ms``, ``lat``, ``lng`` and ``speed_kmh``; optional
    channels may be absent or None.

    Raises:
        KeyError: If a required key is missing.
        ValueError: If a value cannot be converted to a number.
    """
    return TelemetrySample(
        timestamp_ms=int(record["timestamp_ms"]),
        position=GeoPoint(
            float(record["lat"]),
            float(record["lng"]),
            _optional_float(record, "elevation"),
        ),
        speed_kmh=float(record["speed_kmh"]),
        throttle_pct=_optional_float(record, "throttle_pct"),
        brake_pct=_optional_float(record, "brake_pct"),
        rpm=_optional_float(record, "rpm"),
        lateral_g=_optional_float(record, "lateral_g"),
        accuracy_m=_optional_float(record, "accuracy_m"),
    )


def sample_to_dict(sample: TelemetrySample) -> Dict:
    return {
        "timestamp_ms": sample.timestamp_ms,
        "lat": sample.position.lat,
        "lng": sample.position.lng,
        "elevation": sample.position.elevation,
        "speed_kmh": utils.round_float(sample.speed_kmh),
        "throttle_pct": utils.round_float(sample.throttle_pct),
        "brake_pct": utils.round_float(sample.brake_pct),
        "rpm": utils.round_float(sample.rpm),
        "lateral_g": utils.round_float(sample.lateral_g),
        "accuracy_m": utils.round_float(sample.accuracy_m),
    }


def lap_to_dict(lap: LapRecord, include_samples: bool = False) -> Dict:
    """
    Convert a lap record to a JSON-ready dictionary.

    Args:
        lap: Closed lap.
        include_samples: Also serialize the sample buffer. Default False.

    Returns:
        Dictionary with lap timing, validity and sector results.
    """
    record = {
        "lap_number": lap.lap_number,
        "track_id": lap.track_id,
        "start_ts": lap.start_ts,
        "end_ts": lap.end_ts,
        "lap_time_ms": lap.lap_time_ms,
        "distance_m": utils.round_float(lap.distance_m, 2),
        "max_speed_kmh": utils.round_float(lap.max_speed_kmh, 2),
        "avg_speed_kmh": utils.round_float(lap.avg_speed_kmh, 2),
        "is_valid": lap.is_valid,
        "invalid_reason": lap.invalid_reason,
        "partial": lap.partial,
        "sample_count": len(lap.samples),
        "sectors": [
            {
                "ordinal": sector.ordinal,
                "time_ms": sector.time_ms,
                "max_speed_kmh": utils.round_float(sector.max_speed_kmh, 2),
                "distance_m": utils.round_float(sector.distance_m, 2),
                "interpolated": sector.interpolated,
            }
            for sector in lap.sectors
        ],
    }
    if include_samples:
        record["samples"] = [sample_to_dict(s) for s in lap.samples]
    return record


def analysis_to_dict(analysis: TrackAnalysis) -> Dict:
    return {
        "track_id": analysis.track_id,
        "total_laps": analysis.total_laps,
        "valid_laps": analysis.valid_laps,
        "best_lap_number": analysis.best_lap_number,
        "best_lap_time_ms": analysis.best_lap_time_ms,
        "avg_lap_time_ms": utils.round_float(analysis.avg_lap_time_ms, 1),
        "consistency_rating": utils.round_float(analysis.consistency_rating, 2),
        "degraded": analysis.degraded,
    }


def sector_analysis_to_dict(analysis: SectorAnalysis) -> Dict:
    return {
        "theoretical_best_ms": analysis.theoretical_best_ms,
        "sectors": [
            {
                "ordinal": s.ordinal,
                "best_time_ms": s.best_time_ms,
                "best_lap_number": s.best_lap_number,
                "avg_time_ms": utils.round_float(s.avg_time_ms, 1),
                "best_speed_kmh": utils.round_float(s.best_speed_kmh, 2),
                "avg_speed_kmh": utils.round_float(s.avg_speed_kmh, 2),
                "consistency_rating": utils.round_float(s.consistency_rating, 2),
            }
            for s in analysis.sectors
        ],
    }


def metrics_to_dict(metrics: SessionMetrics) -> Dict:
    return {
        "sample_count": metrics.sample_count,
        "total_distance_m": utils.round_float(metrics.total_distance_m, 2),
        "total_time_s": utils.round_float(metrics.total_time_s),
        "avg_speed_kmh": utils.round_float(metrics.avg_speed_kmh, 2),
        "max_speed_kmh": utils.round_float(metrics.max_speed_kmh, 2),
        "throttle_samples": metrics.throttle_samples,
        "brake_samples": metrics.brake_samples,
        "cornering_samples": metrics.cornering_samples,
        "throttle_time_s": utils.round_float(metrics.throttle_time_s),
        "brake_time_s": utils.round_float(metrics.brake_time_s),
        "cornering_time_s": utils.round_float(metrics.cornering_time_s),
        "avg_rpm": utils.round_float(metrics.avg_rpm, 1),
        "max_rpm": utils.round_float(metrics.max_rpm, 1),
    }


def comparison_to_dict(comparison: LapComparison) -> Dict:
    return {
        "lap_a": comparison.lap_a_number,
        "lap_b": comparison.lap_b_number,
        "time_difference_ms": comparison.time_difference_ms,
        "bucket_m": comparison.bucket_m,
        "buckets": [
            {
                "distance_m": utils.round_float(b.distance_m, 2),
                "speed_delta_kmh": utils.round_float(b.speed_delta_kmh),
                "throttle_delta_pct": utils.round_float(b.throttle_delta_pct),
                "lateral_offset_m": utils.round_float(b.lateral_offset_m),
                "time_delta_ms": utils.round_float(b.time_delta_ms, 1),
            }
            for b in comparison.buckets
        ],
    }


def laps_to_records(laps: Sequence[LapRecord]) -> List[Dict]:
    return [lap_to_dict(lap) for lap in laps]
