"""Shared fixtures: a synthetic circular circuit and lap builders."""

import math

import pytest

from laptiming.catalog import TrackCatalog
from laptiming.constants import EARTH_RADIUS_M
from laptiming.models import (
    GeoPoint,
    LapRecord,
    SectorBoundary,
    SectorResult,
    StartFinishLine,
    TelemetrySample,
    TrackGeometry,
)
from laptiming.tracks import BUILTIN_TRACKS

CIRCUIT_ID = "test-circuit"
CENTRE = GeoPoint(52.0, -1.0)
RADIUS_M = 200.0


def offset_point(origin: GeoPoint, east_m: float, north_m: float) -> GeoPoint:
    lat = origin.lat + math.degrees(north_m / EARTH_RADIUS_M)
    lng = origin.lng + math.degrees(east_m / (EARTH_RADIUS_M * math.cos(math.radians(origin.lat))))
    return GeoPoint(lat, lng)


def circuit_position(phase: float, origin: GeoPoint = CENTRE, bearing: float = 0.0,
                     radius_m: float = RADIUS_M) -> GeoPoint:
    """
    Point on a circle tangent to ``origin`` and heading along ``bearing``
    at phase 0. Increasing phase drives anticlockwise.
    """
    theta = math.radians(bearing)
    hx, hy = math.sin(theta), math.cos(theta)
    lx, ly = -hy, hx
    side = radius_m * (1.0 - math.cos(phase))
    ahead = radius_m * math.sin(phase)
    return offset_point(origin, lx * side + hx * ahead, ly * side + hy * ahead)


def circuit_samples(period_ms: int, start_ms: int = -500, end_ms: int = 90000, step_ms: int = 50,
                    origin: GeoPoint = CENTRE, bearing: float = 0.0, radius_m: float = RADIUS_M,
                    direction: int = 1, throttle_pct=None, lateral_g=None, line_samples: bool = True):
    """
    Samples of laps around the synthetic circuit at constant speed.

    With ``line_samples``, every multiple of ``period_ms`` in range is also
    included as a timestamp, so the vehicle sits exactly on ``origin`` at
    those instants.
    """
    timestamps = set(range(start_ms, end_ms + 1, step_ms))
    if line_samples:
        timestamps.update(k * period_ms for k in range(0, end_ms // period_ms + 1) if k * period_ms >= start_ms)
    speed = 2.0 * math.pi * radius_m / (period_ms / 1000.0) * 3.6

    samples = []
    for ts in sorted(timestamps):
        phase = direction * 2.0 * math.pi * (ts % period_ms) / period_ms
        samples.append(TelemetrySample(
            timestamp_ms=ts,
            position=circuit_position(phase, origin, bearing, radius_m),
            speed_kmh=speed,
            throttle_pct=throttle_pct,
            lateral_g=lateral_g,
        ))
    return samples


def single_lap(lap_number: int, period_ms: int, step_ms: int = 100, throttle_pct=None) -> LapRecord:
    """A closed lap of exactly one loop of the circuit."""
    samples = tuple(circuit_samples(period_ms, start_ms=0, end_ms=period_ms, step_ms=step_ms,
                                    throttle_pct=throttle_pct))
    distance = 2.0 * math.pi * RADIUS_M
    return LapRecord(
        lap_number=lap_number,
        track_id=CIRCUIT_ID,
        start_ts=samples[0].timestamp_ms,
        end_ts=samples[-1].timestamp_ms,
        lap_time_ms=period_ms,
        samples=samples,
        distance_m=distance,
        max_speed_kmh=samples[0].speed_kmh,
        avg_speed_kmh=samples[0].speed_kmh,
        is_valid=True,
    )


def make_lap(lap_number: int, lap_time_ms: int, is_valid: bool = True,
             sector_times=(), track_id: str = CIRCUIT_ID) -> LapRecord:
    """A lap record without samples, for analytics over lap times."""
    sectors = tuple(
        SectorResult(ordinal=idx + 1, time_ms=t, max_speed_kmh=150.0 + idx, distance_m=500.0)
        for idx, t in enumerate(sector_times)
    )
    return LapRecord(
        lap_number=lap_number,
        track_id=track_id,
        start_ts=0,
        end_ts=lap_time_ms,
        lap_time_ms=lap_time_ms,
        samples=(),
        distance_m=1500.0,
        max_speed_kmh=160.0,
        avg_speed_kmh=90.0,
        is_valid=is_valid,
        sectors=sectors,
        invalid_reason=None if is_valid else "too_short",
    )


def build_circuit_track(track_id: str = CIRCUIT_ID, boundary: GeoPoint = None,
                        origin: GeoPoint = CENTRE, bearing: float = 0.0,
                        width_m: float = 20.0) -> TrackGeometry:
    """Circuit track whose start/finish line crosses ``origin`` square to ``bearing``."""
    opposite = boundary or circuit_position(math.pi, origin, bearing)
    half = math.pi * RADIUS_M
    theta = math.radians(bearing)
    # unit vector to the left of the direction of travel
    lx, ly = -math.cos(theta), math.sin(theta)
    edge = width_m / 2.0
    return TrackGeometry(
        id=track_id,
        name="Test Circuit",
        start_finish=StartFinishLine(
            point1=offset_point(origin, lx * edge, ly * edge),
            point2=offset_point(origin, -lx * edge, -ly * edge),
            bearing_deg=bearing,
            width_m=width_m,
        ),
        sectors=(
            SectorBoundary(1, origin, opposite, half, "Out"),
            SectorBoundary(2, opposite, origin, half, "Back"),
        ),
        outline=tuple(circuit_position(2.0 * math.pi * k / 24, origin, bearing) for k in range(24)),
    )


@pytest.fixture
def circuit_track() -> TrackGeometry:
    return build_circuit_track()


@pytest.fixture
def circuit_catalog(circuit_track) -> TrackCatalog:
    return TrackCatalog.load([circuit_track, *BUILTIN_TRACKS])
