"""
Geodesy Helpers for GPS Lap Timing

This module provides the distance and direction primitives used by every
other layer: great-circle distance, initial bearing, point-to-segment
distance and a local planar projection.

All functions are pure. Distance queries never raise on bad input: NaN or
infinite coordinates produce ``math.inf`` so that a corrupt fix can never
look close to anything.
"""

import math
from typing import Sequence, Tuple

import numpy as np

from .constants import EARTH_RADIUS_M
from .models import GeoPoint
from . import utils


def _finite_point(point: GeoPoint) -> bool:
    return point is not None and utils.is_finite(point.lat) and utils.is_finite(point.lng)


def haversine_m(lat1, lon1, lat2, lon2):
    """
    Calculate the great-circle distance between two points on Earth.

    Uses the Haversine formula to compute distance along the surface of a
    sphere. Accepts scalars or numpy arrays (element-wise).

    Args:
        lat1, lon1: Latitude and longitude of first point in degrees.
        lat2, lon2: Latitude and longitude of second point in degrees.

    Returns:
        Distance in meters between the two points.
    """
    lat1_rad, lon1_rad = np.deg2rad(lat1), np.deg2rad(lon1)
    lat2_rad, lon2_rad = np.deg2rad(lat2), np.deg2rad(lon2)

    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    a = np.sin(dlat / 2) ** 2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon / 2) ** 2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def haversine_distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """
    Great-circle distance in metres between two GeoPoints.

    Symmetric, and zero for identical points. Returns ``math.inf`` if either
    point has a non-finite coordinate.
    """
    if not (_finite_point(a) and _finite_point(b)):
        return math.inf
    if a.lat == b.lat and a.lng == b.lng:
        return 0.0
    return float(haversine_m(a.lat, a.lng, b.lat, b.lng))


def bearing_deg(a: GeoPoint, b: GeoPoint) -> float:
    """
    Initial bearing from a to b, in degrees within [0, 360).

    Returns NaN for non-finite input. Identical points give 0.0.
    """
    if not (_finite_point(a) and _finite_point(b)):
        return math.nan
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlon = math.radians(b.lng - a.lng)

    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    bearing = math.degrees(math.atan2(y, x)) % 360.0
    # -0.0 % 360 and tiny negatives can round up to 360.0
    return 0.0 if bearing >= 360.0 else bearing


def angle_difference_deg(a: float, b: float) -> float:
    """Smallest absolute difference between two bearings, in [0, 180]."""
    diff = abs(a - b) % 360.0
    return 360.0 - diff if diff > 180.0 else diff


def latlon_to_xy(lat, lon, ref_lat_rad: float, ref_lon_rad: float) -> Tuple:
    """
    Convert latitude/longitude to local Cartesian coordinates (x, y).

    Uses a simple equirectangular projection approximation, suitable for
    track-scale distances (< 10 km) where Earth's curvature can be
    approximated as flat. Accepts scalars or numpy arrays.

    Args:
        lat: Latitude values in degrees.
        lon: Longitude values in degrees.
        ref_lat_rad: Reference latitude in radians.
        ref_lon_rad: Reference longitude in radians.

    Returns:
        Tuple of (x_m, y_m) in meters, where x is east and y is north.
    """
    lat_rad = np.deg2rad(lat)
    lon_rad = np.deg2rad(lon)

    x = (lon_rad - ref_lon_rad) * np.cos(ref_lat_rad) * EARTH_RADIUS_M
    y = (lat_rad - ref_lat_rad) * EARTH_RADIUS_M

    return x, y


def to_local_xy(point: GeoPoint, origin: GeoPoint) -> Tuple[float, float]:
    """Project a point onto a local east/north plane centred on origin."""
    x, y = latlon_to_xy(point.lat, point.lng, math.radians(origin.lat), math.radians(origin.lng))
    return float(x), float(y)


def _segment_projection(p: GeoPoint, seg_start: GeoPoint, seg_end: GeoPoint):
    """Return (t, distance) of the planar projection of p on the segment."""
    sx, sy = to_local_xy(seg_start, p)
    ex, ey = to_local_xy(seg_end, p)
    dx, dy = ex - sx, ey - sy
    length_sq = dx * dx + dy * dy

    if length_sq == 0.0:
        return 0.0, math.hypot(sx, sy)

    # p sits at the origin of the local plane
    t = utils.clamp(-(sx * dx + sy * dy) / length_sq, 0.0, 1.0)
    return t, math.hypot(sx + t * dx, sy + t * dy)


def distance_to_segment_m(p: GeoPoint, seg_start: GeoPoint, seg_end: GeoPoint) -> float:
    """
    Distance in metres from a point to a line segment.

    Perpendicular distance when the projection falls inside the segment,
    endpoint distance otherwise. A zero-length segment degrades to point
    distance. Planar approximation, valid at track scale.

    Returns:
        Distance in metres, or ``math.inf`` for non-finite input.
    """
    if not (_finite_point(p) and _finite_point(seg_start) and _finite_point(seg_end)):
        return math.inf
    return _segment_projection(p, seg_start, seg_end)[1]


def project_fraction(p: GeoPoint, seg_start: GeoPoint, seg_end: GeoPoint) -> float:
    """Fraction in [0, 1] along the segment of the point's projection."""
    if not (_finite_point(p) and _finite_point(seg_start) and _finite_point(seg_end)):
        return 0.0
    return _segment_projection(p, seg_start, seg_end)[0]


def signed_offset_m(p: GeoPoint, origin: GeoPoint, bearing: float) -> float:
    """
    Signed distance of p from origin along the given bearing.

    Positive when p lies ahead of origin in the bearing direction, negative
    behind it. NaN for non-finite input.
    """
    if not (_finite_point(p) and _finite_point(origin)) or not utils.is_finite(bearing):
        return math.nan
    x, y = to_local_xy(p, origin)
    theta = math.radians(bearing)
    return x * math.sin(theta) + y * math.cos(theta)


def destination_point(origin: GeoPoint, bearing: float, distance_m: float) -> GeoPoint:
    """
    Point reached from origin after travelling distance_m along bearing.

    Used for dead reckoning a fix forward in time.
    """
    lat1 = math.radians(origin.lat)
    lon1 = math.radians(origin.lng)
    theta = math.radians(bearing)
    delta = distance_m / EARTH_RADIUS_M

    lat2 = math.asin(
        math.sin(lat1) * math.cos(delta) + math.cos(lat1) * math.sin(delta) * math.cos(theta)
    )
    lon2 = lon1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(lat1),
        math.cos(delta) - math.sin(lat1) * math.sin(lat2),
    )
    lng = (math.degrees(lon2) + 540.0) % 360.0 - 180.0
    return GeoPoint(math.degrees(lat2), lng, origin.elevation)


def interpolate_point(a: GeoPoint, b: GeoPoint, fraction: float) -> GeoPoint:
    """Linear interpolation between two nearby points."""
    return GeoPoint(
        a.lat + (b.lat - a.lat) * fraction,
        a.lng + (b.lng - a.lng) * fraction,
    )


def segment_distances_m(p: GeoPoint, lats: np.ndarray, lngs: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Distance from a point to every segment of a polyline, vectorised.

    Same planar approximation as distance_to_segment_m, with segment i
    running from vertex i to vertex i + 1.

    Args:
        p: Query point.
        lats: Polyline latitudes in degrees.
        lngs: Polyline longitudes in degrees.

    Returns:
        Tuple of (fractions, distances), each of length len(lats) - 1.
        Non-finite segments get an infinite distance.
    """
    if len(lats) < 2 or not _finite_point(p):
        return np.zeros(max(len(lats) - 1, 0)), np.full(max(len(lats) - 1, 0), np.inf)

    xs, ys = latlon_to_xy(np.asarray(lats, dtype=float), np.asarray(lngs, dtype=float),
                          math.radians(p.lat), math.radians(p.lng))
    sx, sy = xs[:-1], ys[:-1]
    dx, dy = xs[1:] - sx, ys[1:] - sy
    length_sq = dx * dx + dy * dy

    with np.errstate(invalid="ignore", divide="ignore"):
        t = np.where(length_sq > 0, -(sx * dx + sy * dy) / np.where(length_sq > 0, length_sq, 1.0), 0.0)
    t = np.clip(t, 0.0, 1.0)
    distances = np.hypot(sx + t * dx, sy + t * dy)
    distances = np.where(np.isfinite(distances), distances, np.inf)
    t = np.where(np.isfinite(t), t, 0.0)
    return t, distances


def path_distances_m(points: Sequence[GeoPoint]) -> np.ndarray:
    """
    Cumulative haversine distance along a sequence of points.

    Args:
        points: Ordered positions.

    Returns:
        Array of the same length as points, starting at 0.0.
    """
    if len(points) == 0:
        return np.zeros(0)
    lats = np.array([p.lat for p in points], dtype=float)
    lngs = np.array([p.lng for p in points], dtype=float)
    segments = haversine_m(lats[:-1], lngs[:-1], lats[1:], lngs[1:])
    return np.concatenate(([0.0], np.cumsum(segments)))
