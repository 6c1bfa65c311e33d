"""
Sector Splitting for GPS Lap Timing

This module partitions a closed lap's sample buffer into the track's
configured sectors and computes per-sector time, top speed and distance.

Boundaries are located in buffer order. The first sector starts at the lap
start, the last ends at the lap end, and neighbouring sectors share their
boundary, so sector times always add up to the lap time.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .constants import BOUNDARY_TOLERANCE_M
from .models import GeoPoint, SectorBoundary, SectorResult, TelemetrySample
from . import geo
from . import utils

logger = logging.getLogger(__name__)


def match_boundary(point: GeoPoint, lats: np.ndarray, lngs: np.ndarray,
                   start_segment: int = 0) -> Optional[Tuple[int, float, float]]:
    """
    Find the buffer segment closest to a boundary point.

    Args:
        point: Boundary point.
        lats: Buffer latitudes.
        lngs: Buffer longitudes.
        start_segment: First segment index to consider.

    Returns:
        Tuple of (segment_index, fraction, distance_m), or None if there is
        no segment at or after start_segment.
    """
    if len(lats) - 1 <= start_segment:
        return None
    fractions, distances = geo.segment_distances_m(point, lats[start_segment:], lngs[start_segment:])
    if not np.isfinite(distances).any():
        return None
    best = int(np.argmin(distances))
    return start_segment + best, float(fractions[best]), float(distances[best])


def _nominal_fractions(sectors: Sequence[SectorBoundary]) -> List[float]:
    """Cumulative share of nominal length at each internal boundary."""
    lengths = [max(sector.length_m, 0.0) for sector in sectors]
    total = sum(lengths)
    if total <= 0:
        return [k / len(sectors) for k in range(1, len(sectors))]
    return [sum(lengths[:k]) / total for k in range(1, len(sectors))]


def split_sectors(samples: Sequence[TelemetrySample], sectors: Sequence[SectorBoundary],
                  boundary_tolerance_m: float = BOUNDARY_TOLERANCE_M) -> Tuple[SectorResult, ...]:
    """
    Split a lap buffer into sectors and time each one.

    Each internal boundary (end of sector k, start of sector k + 1) is
    matched to the closest buffer segment by point-to-segment distance, and
    the boundary time is interpolated along that segment. When neither
    boundary point is within tolerance, the boundary time falls back to the
    lap time split proportionally over the nominal sector lengths and the
    adjacent sectors are flagged as interpolated.

    Args:
        samples: Closed lap buffer in timestamp order.
        sectors: Ordered, contiguous sector boundaries of the track.
        boundary_tolerance_m: Maximum match distance. Default 50 m.

    Returns:
        One SectorResult per sector, or an empty tuple when the buffer has
        fewer than 2 samples or the track has no sectors.
    """
    if len(samples) < 2 or not sectors:
        return ()

    lats = np.array([s.position.lat for s in samples], dtype=float)
    lngs = np.array([s.position.lng for s in samples], dtype=float)
    times = np.array([s.timestamp_ms for s in samples], dtype=float)
    speeds = np.array([s.speed_kmh for s in samples], dtype=float)
    cumulative = geo.path_distances_m([s.position for s in samples])

    lap_start, lap_end = times[0], times[-1]
    lap_distance = float(cumulative[-1])
    last_segment = len(samples) - 2

    # Each boundary: (time_ms, distance_m, segment_index, interpolated)
    boundaries = [(lap_start, 0.0, 0, False)]
    search_from = 0

    for k, fraction in enumerate(_nominal_fractions(sectors), start=1):
        candidates = [
            match_boundary(point, lats, lngs, search_from)
            for point in (sectors[k - 1].end, sectors[k].start)
        ]
        candidates = [c for c in candidates if c is not None and c[2] <= boundary_tolerance_m]

        prev_time, prev_distance = boundaries[-1][0], boundaries[-1][1]
        if candidates:
            segment, t, _ = min(candidates, key=lambda c: c[2])
            time_ms = times[segment] + t * (times[segment + 1] - times[segment])
            distance = cumulative[segment] + t * (cumulative[segment + 1] - cumulative[segment])
            interpolated = False
        else:
            time_ms = lap_start + (lap_end - lap_start) * fraction
            distance = lap_distance * fraction
            segment = int(np.clip(np.searchsorted(cumulative, distance, side="right") - 1,
                                  0, last_segment))
            interpolated = True
            logger.debug("Sector boundary %d unmatched, interpolating at %.0f%% of lap",
                         k, fraction * 100)

        boundaries.append((max(time_ms, prev_time), max(distance, prev_distance), segment, interpolated))
        search_from = segment

    boundaries.append((lap_end, lap_distance, last_segment, False))

    # Round boundary times once so that sector times sum to the lap time exactly
    boundary_ms = [utils.round_ms(b[0]) for b in boundaries]
    boundary_ms = list(np.maximum.accumulate(boundary_ms))

    results = []
    for k, sector in enumerate(sectors):
        lower, upper = boundaries[k], boundaries[k + 1]
        first_idx = lower[2] if k > 0 else 0
        last_idx = upper[2] + 1 if k < len(sectors) - 1 else len(samples) - 1
        slice_speeds = speeds[first_idx:last_idx + 1]

        results.append(SectorResult(
            ordinal=sector.ordinal,
            time_ms=int(boundary_ms[k + 1] - boundary_ms[k]),
            max_speed_kmh=float(slice_speeds.max()) if slice_speeds.size else 0.0,
            distance_m=float(upper[1] - lower[1]),
            interpolated=bool(lower[3] or upper[3]),
        ))

    return tuple(results)
