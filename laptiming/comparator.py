"""
Lap Comparison for GPS Lap Timing

This module aligns two laps on a common cumulative-distance axis and
reports how lap B differs from lap A along it: speed, throttle, lateral
offset of the driven line and accumulated time. It also builds time delta
traces of a set of laps against the fastest one.
"""

import logging
from typing import List, Sequence

import numpy as np

from .analytics import best_lap, valid_laps_or_all
from .constants import COMPARISON_BUCKET_M
from .errors import InsufficientData
from .models import ComparisonBucket, DeltaTrace, GeoPoint, LapComparison, LapRecord
from . import geo
from . import telemetry

logger = logging.getLogger(__name__)


class _DistanceProfile:
    """Channels of one lap indexed by cumulative distance."""

    def __init__(self, lap: LapRecord):
        if len(lap.samples) < 2:
            raise InsufficientData(f"lap {lap.lap_number} has fewer than 2 samples")

        df = telemetry.samples_to_frame(lap.samples)
        distance = geo.path_distances_m([s.position for s in lap.samples])

        # np.interp needs strictly increasing x; drop stationary repeats
        keep = np.concatenate(([True], np.diff(distance) > 0))
        df = df[keep].reset_index(drop=True)
        self.distance = distance[keep]
        self.total_m = float(self.distance[-1])
        if self.total_m <= 0:
            raise InsufficientData(f"lap {lap.lap_number} covers no distance")

        self.elapsed = (df["timestamp_ms"] - df["timestamp_ms"].iloc[0]).to_numpy(dtype=float)
        self.speed = df["speed_kmh"].to_numpy(dtype=float)
        self.lat = df["lat"].to_numpy(dtype=float)
        self.lng = df["lng"].to_numpy(dtype=float)

        throttle = df["throttle_pct"].to_numpy(dtype=float)
        has_throttle = np.isfinite(throttle)
        self.throttle_distance = self.distance[has_throttle]
        self.throttle = throttle[has_throttle]

    def at(self, values: np.ndarray, axis: np.ndarray) -> np.ndarray:
        return np.interp(axis, self.distance, values)

    def throttle_at(self, axis: np.ndarray):
        if self.throttle.size == 0:
            return None
        return np.interp(axis, self.throttle_distance, self.throttle)

    def position_at(self, distance_m: float) -> GeoPoint:
        d = min(max(distance_m, 0.0), self.total_m)
        idx = int(np.clip(np.searchsorted(self.distance, d, side="right") - 1, 0, len(self.distance) - 2))
        fraction = (d - self.distance[idx]) / (self.distance[idx + 1] - self.distance[idx])
        return geo.interpolate_point(
            GeoPoint(float(self.lat[idx]), float(self.lng[idx])),
            GeoPoint(float(self.lat[idx + 1]), float(self.lng[idx + 1])),
            float(fraction),
        )


def compare(lap_a: LapRecord, lap_b: LapRecord, bucket_m: float = COMPARISON_BUCKET_M) -> LapComparison:
    """
    Compare lap B against lap A on a common distance axis.

    Both laps are resampled at fixed distance steps from 0 up to the
    shorter lap's total distance; buckets beyond it are omitted. All deltas
    are B minus A. The lateral offset is the distance from B's position to
    A's local path segment around the same distance.

    Args:
        lap_a: Reference lap.
        lap_b: Compared lap.
        bucket_m: Distance step in metres. Default 10.

    Returns:
        LapComparison with per-bucket deltas and the signed lap time
        difference (positive means B is slower).

    Raises:
        InsufficientData: If either lap has fewer than 2 samples or covers
            no distance.
        ValueError: If bucket_m is not positive.
    """
    if not bucket_m > 0:
        raise ValueError("bucket_m must be positive")

    profile_a = _DistanceProfile(lap_a)
    profile_b = _DistanceProfile(lap_b)

    common = min(profile_a.total_m, profile_b.total_m)
    axis = np.arange(0.0, common + bucket_m, bucket_m)
    axis = axis[axis <= common]

    speed_delta = profile_b.at(profile_b.speed, axis) - profile_a.at(profile_a.speed, axis)
    time_delta = profile_b.at(profile_b.elapsed, axis) - profile_a.at(profile_a.elapsed, axis)

    throttle_a = profile_a.throttle_at(axis)
    throttle_b = profile_b.throttle_at(axis)
    throttle_delta = None if throttle_a is None or throttle_b is None else throttle_b - throttle_a

    half = bucket_m / 2.0
    buckets = []
    for idx, distance in enumerate(axis):
        distance = float(distance)
        position_b = profile_b.position_at(distance)
        offset = geo.distance_to_segment_m(
            position_b,
            profile_a.position_at(distance - half),
            profile_a.position_at(distance + half),
        )
        buckets.append(ComparisonBucket(
            distance_m=distance,
            speed_delta_kmh=float(speed_delta[idx]),
            throttle_delta_pct=None if throttle_delta is None else float(throttle_delta[idx]),
            lateral_offset_m=float(offset),
            time_delta_ms=float(time_delta[idx]),
        ))

    return LapComparison(
        lap_a_number=lap_a.lap_number,
        lap_b_number=lap_b.lap_number,
        time_difference_ms=int(lap_b.lap_time_ms) - int(lap_a.lap_time_ms),
        bucket_m=float(bucket_m),
        buckets=tuple(buckets),
    )


def delta_traces(laps: Sequence[LapRecord], bucket_m: float = COMPARISON_BUCKET_M) -> List[DeltaTrace]:
    """
    Build time delta traces comparing each lap to the fastest lap.

    Uses valid laps (all laps in degraded mode). Laps that cannot be
    compared are skipped.

    Returns:
        One DeltaTrace per non-reference lap, in lap order; empty when
        fewer than two laps are available.
    """
    used, _ = valid_laps_or_all(laps)
    if len(used) < 2:
        return []

    reference = best_lap(used)
    traces = []
    for lap in sorted(used, key=lambda l: l.lap_number):
        if lap is reference:
            continue
        try:
            comparison = compare(reference, lap, bucket_m)
        except InsufficientData as exc:
            logger.debug("Skipping delta trace for lap %d: %s", lap.lap_number, exc)
            continue
        traces.append(DeltaTrace(
            lap_number=lap.lap_number,
            reference_lap=reference.lap_number,
            lap_time_ms=lap.lap_time_ms,
            reference_time_ms=reference.lap_time_ms,
            distances_m=tuple(b.distance_m for b in comparison.buckets),
            time_deltas_ms=tuple(b.time_delta_ms for b in comparison.buckets),
        ))
    return traces
