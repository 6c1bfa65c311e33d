"""
Track Catalog for GPS Lap Timing

This module holds the validated, read-only set of TrackGeometry records and
answers position queries against it: nearest start/finish lines, whether a
fix lies on a track outline, and whether it is near a start/finish line.

A catalog is built once at startup and may be shared between sessions
without locking; nothing in it is mutated after load.
"""

import logging
from types import MappingProxyType
from typing import Iterable, Iterator, List, Optional, Tuple

from .constants import NEAR_START_FINISH_TOLERANCE_M, ON_TRACK_TOLERANCE_M
from .errors import InvalidGeometry
from .models import GeoPoint, TrackGeometry
from . import geo
from . import utils

logger = logging.getLogger(__name__)


def _check_point(track_id: str, point: GeoPoint, label: str) -> None:
    if point is None or not (utils.is_finite(point.lat) and utils.is_finite(point.lng)):
        raise InvalidGeometry(track_id, f"{label} has non-finite coordinates")
    if not (-90.0 <= point.lat <= 90.0 and -180.0 <= point.lng <= 180.0):
        raise InvalidGeometry(track_id, f"{label} is outside WGS84 bounds")


def validate_track(track: TrackGeometry) -> None:
    """
    Check a TrackGeometry against the catalog invariants.

    Args:
        track: Track to validate.

    Raises:
        InvalidGeometry: If the track has fewer than 2 sectors, sectors out
            of order, fewer than 3 outline points, or a malformed
            start/finish line.
    """
    if not track.id:
        raise InvalidGeometry(track.id, "missing track id")

    line = track.start_finish
    if line is None:
        raise InvalidGeometry(track.id, "missing start/finish line")
    _check_point(track.id, line.point1, "start/finish point1")
    _check_point(track.id, line.point2, "start/finish point2")
    if line.point1.lat == line.point2.lat and line.point1.lng == line.point2.lng:
        raise InvalidGeometry(track.id, "start/finish endpoints coincide")
    if not utils.is_finite(line.bearing_deg):
        raise InvalidGeometry(track.id, "start/finish bearing is not finite")
    if not utils.is_finite(line.width_m) or line.width_m <= 0:
        raise InvalidGeometry(track.id, "start/finish width must be positive")

    if len(track.sectors) < 2:
        raise InvalidGeometry(track.id, f"needs at least 2 sectors, got {len(track.sectors)}")
    ordinals = [sector.ordinal for sector in track.sectors]
    if ordinals != sorted(ordinals) or len(set(ordinals)) != len(ordinals):
        raise InvalidGeometry(track.id, "sector ordinals must be unique and ascending")
    for sector in track.sectors:
        _check_point(track.id, sector.start, f"sector {sector.ordinal} start")
        _check_point(track.id, sector.end, f"sector {sector.ordinal} end")
        if not utils.is_finite(sector.length_m) or sector.length_m <= 0:
            raise InvalidGeometry(track.id, f"sector {sector.ordinal} length must be positive")

    if len(track.outline) < 3:
        raise InvalidGeometry(track.id, f"outline needs at least 3 points, got {len(track.outline)}")
    for idx, point in enumerate(track.outline):
        _check_point(track.id, point, f"outline point {idx}")


class TrackCatalog:
    """
    Immutable index of track geometries keyed by track id.

    Use ``TrackCatalog.load`` to build one; it validates every track and
    rejects the whole load on the first invalid geometry.
    """

    def __init__(self, tracks: Iterable[TrackGeometry] = ()):
        index = {}
        for track in tracks:
            validate_track(track)
            if track.id in index:
                raise InvalidGeometry(track.id, "duplicate track id")
            index[track.id] = track
        self._tracks = MappingProxyType(index)
        logger.info("Loaded track catalog with %d track(s)", len(index))

    @classmethod
    def load(cls, tracks: Iterable[TrackGeometry]) -> "TrackCatalog":
        return cls(tracks)

    def __len__(self) -> int:
        return len(self._tracks)

    def __iter__(self) -> Iterator[TrackGeometry]:
        return iter(self._tracks.values())

    def __contains__(self, track_id) -> bool:
        return track_id in self._tracks

    def ids(self) -> List[str]:
        return list(self._tracks.keys())

    def get(self, track_id: str) -> Optional[TrackGeometry]:
        return self._tracks.get(track_id)

    def distance_to_start_finish_m(self, pos: GeoPoint, track: TrackGeometry) -> float:
        """Distance from pos to the track's start/finish line segment."""
        line = track.start_finish
        return geo.distance_to_segment_m(pos, line.point1, line.point2)

    def nearest_tracks(self, pos: GeoPoint, limit: int = 5) -> List[Tuple[str, float]]:
        """
        Find the tracks whose start/finish line is closest to a position.

        Args:
            pos: Query position.
            limit: Maximum number of tracks to return.

        Returns:
            Up to ``limit`` (track_id, distance_m) tuples sorted by ascending
            distance, ties broken by track id. Empty for a non-finite position.
        """
        if limit <= 0:
            return []

        results = []
        for track in self._tracks.values():
            distance = self.distance_to_start_finish_m(pos, track)
            if distance == float("inf"):
                continue
            results.append((track.id, distance))

        results.sort(key=lambda item: (item[1], item[0]))
        return results[:limit]

    def is_position_on_track(self, pos: GeoPoint, track_id: str,
                             tolerance_m: float = ON_TRACK_TOLERANCE_M) -> bool:
        """
        Check whether a position lies within tolerance of a track outline.

        The outline is treated as a closed polyline.
        """
        track = self.get(track_id)
        if track is None:
            return False

        outline = track.outline
        for idx, start in enumerate(outline):
            end = outline[(idx + 1) % len(outline)]
            if geo.distance_to_segment_m(pos, start, end) <= tolerance_m:
                return True
        return False

    def is_near_start_finish(self, pos: GeoPoint, track_id: str,
                             tolerance_m: float = NEAR_START_FINISH_TOLERANCE_M) -> bool:
        track = self.get(track_id)
        if track is None:
            return False
        return self.distance_to_start_finish_m(pos, track) <= tolerance_m
