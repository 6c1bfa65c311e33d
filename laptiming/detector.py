"""
Track Detection for GPS Lap Timing

This module ranks catalog tracks as candidates for an unlabelled telemetry
stream. Detection is a stateless, repeatable query: callers re-run it on
each new fix until the top candidate clears their acceptance threshold and
then commit the session to that track.
"""

import logging
from typing import List, Optional

from .catalog import TrackCatalog
from .constants import (
    ACCURACY_FACTOR_MAX,
    ACCURACY_FACTOR_MIN,
    ACCURACY_REFERENCE_M,
    DETECTION_ACCEPT_THRESHOLD,
    DETECTION_MAX_CONFIDENCE_DISTANCE_M,
    DETECTION_RADIUS_M,
)
from .errors import TrackNotBound
from .models import Candidate, GeoPoint, TelemetrySample
from . import geo
from . import utils

logger = logging.getLogger(__name__)


def accuracy_factor(accuracy_m: Optional[float]) -> float:
    """
    Confidence multiplier for a GPS fix of the given accuracy.

    Args:
        accuracy_m: Horizontal accuracy in metres, or None when unknown.

    Returns:
        clamp(100 / accuracy_m, 0.1, 1.0), or 1.0 when accuracy is unknown
        or not a positive number.
    """
    if not utils.is_finite(accuracy_m) or accuracy_m <= 0:
        return 1.0
    return utils.clamp(ACCURACY_REFERENCE_M / accuracy_m, ACCURACY_FACTOR_MIN, ACCURACY_FACTOR_MAX)


def distance_confidence(distance_m: float,
                        max_distance_m: float = DETECTION_MAX_CONFIDENCE_DISTANCE_M) -> float:
    """Linear confidence falling from 1 at the line to 0 at max_distance_m."""
    return max(0.0, (max_distance_m - distance_m) / max_distance_m)


class TrackDetector:
    """
    Ranks tracks of a catalog by how likely a position belongs to them.

    Args:
        catalog: Track catalog to search.
        max_confidence_distance_m: Distance at which confidence reaches 0.
        detection_radius_m: Tracks farther than this are excluded.
    """

    def __init__(self, catalog: TrackCatalog,
                 max_confidence_distance_m: float = DETECTION_MAX_CONFIDENCE_DISTANCE_M,
                 detection_radius_m: float = DETECTION_RADIUS_M):
        self.catalog = catalog
        self.max_confidence_distance_m = max_confidence_distance_m
        self.detection_radius_m = detection_radius_m

    def detect(self, pos: GeoPoint, accuracy_m: Optional[float] = None) -> List[Candidate]:
        """
        Rank candidate tracks for a position.

        Args:
            pos: Current position.
            accuracy_m: GPS horizontal accuracy in metres, if known.

        Returns:
            Candidates within the detection radius, sorted by descending
            confidence with ties broken by ascending distance.
        """
        factor = accuracy_factor(accuracy_m)
        candidates = []

        for track in self.catalog:
            distance = self.catalog.distance_to_start_finish_m(pos, track)
            if distance > self.detection_radius_m:
                continue
            confidence = distance_confidence(distance, self.max_confidence_distance_m) * factor
            candidates.append(Candidate(track.id, confidence, distance))

        candidates.sort(key=lambda c: (-c.confidence, c.distance_m, c.track_id))
        return candidates

    def detect_sample(self, sample: TelemetrySample,
                      previous: Optional[TelemetrySample] = None,
                      lookahead_ms: int = 0) -> List[Candidate]:
        """
        Rank candidates for a telemetry sample, optionally dead reckoning.

        When a previous sample and a positive lookahead are given, the
        position is projected forward along the movement bearing by the
        distance covered at the sample's speed during the lookahead.
        """
        pos = sample.position
        if previous is not None and lookahead_ms > 0:
            bearing = geo.bearing_deg(previous.position, sample.position)
            if utils.is_finite(bearing) and utils.is_finite(sample.speed_kmh):
                travelled_m = sample.speed_kmh / 3.6 * lookahead_ms / 1000.0
                pos = geo.destination_point(sample.position, bearing, travelled_m)
        return self.detect(pos, sample.accuracy_m)

    def bind(self, pos: GeoPoint, accuracy_m: Optional[float] = None,
             threshold: float = DETECTION_ACCEPT_THRESHOLD) -> Candidate:
        """
        Return the top candidate if its confidence clears the threshold.

        Raises:
            TrackNotBound: If no candidate reaches the threshold yet.
        """
        candidates = self.detect(pos, accuracy_m)
        if not candidates or candidates[0].confidence < threshold:
            best = candidates[0].confidence if candidates else 0.0
            raise TrackNotBound(
                f"best candidate confidence {best:.3f} below threshold {threshold:.3f}"
            )
        logger.info("Detected track %s (confidence %.3f, %.1f m)",
                    candidates[0].track_id, candidates[0].confidence, candidates[0].distance_m)
        return candidates[0]
