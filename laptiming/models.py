"""
Data Model for GPS Lap Timing

Plain immutable value types passed between the catalog, detector, segmenter
and analytics layers. Nothing here has behavior beyond small derived
properties; every record can be turned into a plain dict with
``dataclasses.asdict`` for persistence.

Units: timestamps in milliseconds, distances in metres, speeds in km/h,
angles in degrees (0 = north, clockwise), coordinates in WGS84 degrees.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float
    elevation: Optional[float] = None


@dataclass(frozen=True)
class StartFinishLine:
    """
    Start/finish line for crossing detection.

    Attributes:
        point1: One end of the line.
        point2: Other end of the line.
        bearing_deg: Racing direction across the line (perpendicular to it).
        width_m: Nominal line width in metres.
    """
    point1: GeoPoint
    point2: GeoPoint
    bearing_deg: float
    width_m: float

    @property
    def centre(self) -> GeoPoint:
        return GeoPoint(
            (self.point1.lat + self.point2.lat) / 2.0,
            (self.point1.lng + self.point2.lng) / 2.0,
        )


@dataclass(frozen=True)
class SectorBoundary:
    """A configured sector: ordinal, start and end points, nominal length."""
    ordinal: int
    start: GeoPoint
    end: GeoPoint
    length_m: float
    name: str = ""


@dataclass(frozen=True)
class TrackGeometry:
    """
    Static description of a circuit.

    Sectors are ordered and contiguous along the racing direction. Created
    once from configuration and never mutated.
    """
    id: str
    name: str
    start_finish: StartFinishLine
    sectors: Tuple[SectorBoundary, ...]
    outline: Tuple[GeoPoint, ...]

    @property
    def nominal_length_m(self) -> float:
        return float(sum(sector.length_m for sector in self.sectors))


@dataclass(frozen=True)
class TelemetrySample:
    """
    One telemetry reading from an external source.

    Optional channels are None when the source does not provide them.
    ``accuracy_m`` is the horizontal GPS accuracy, when known.
    """
    timestamp_ms: int
    position: GeoPoint
    speed_kmh: float
    throttle_pct: Optional[float] = None
    brake_pct: Optional[float] = None
    rpm: Optional[float] = None
    lateral_g: Optional[float] = None
    accuracy_m: Optional[float] = None


@dataclass(frozen=True)
class SectorResult:
    """
    Timing of one sector within a lap.

    ``interpolated`` is True when a boundary could not be matched against
    the samples and the time was estimated from nominal sector lengths.
    """
    ordinal: int
    time_ms: int
    max_speed_kmh: float
    distance_m: float
    interpolated: bool = False


@dataclass(frozen=True)
class LapRecord:
    """
    A closed lap. Immutable; derived statistics are pure functions of samples.

    Attributes:
        lap_number: 1-based lap number within the session.
        track_id: Track the lap was recorded on.
        start_ts: Timestamp (ms) of the opening crossing sample.
        end_ts: Timestamp (ms) of the closing crossing sample.
        lap_time_ms: end_ts - start_ts.
        samples: Lap buffer, opening and closing crossing samples included.
        distance_m: Summed haversine distance over the buffer.
        max_speed_kmh: Highest sample speed.
        avg_speed_kmh: Mean sample speed.
        is_valid: Result of the validity rule.
        sectors: Per-sector results, empty if the track has none.
        invalid_reason: Why the lap failed validation, None when valid.
        partial: True for an in-progress lap flushed at session stop.
    """
    lap_number: int
    track_id: str
    start_ts: int
    end_ts: int
    lap_time_ms: int
    samples: Tuple[TelemetrySample, ...]
    distance_m: float
    max_speed_kmh: float
    avg_speed_kmh: float
    is_valid: bool
    sectors: Tuple[SectorResult, ...] = ()
    invalid_reason: Optional[str] = None
    partial: bool = False


@dataclass(frozen=True)
class Candidate:
    track_id: str
    confidence: float
    distance_m: float


@dataclass(frozen=True)
class SessionMetrics:
    """
    Whole-session aggregates.

    Mode counters count samples in which the mode was active; the matching
    ``*_time_s`` values scale that share of samples by the session duration.
    """
    sample_count: int
    total_distance_m: float
    total_time_s: float
    avg_speed_kmh: float
    max_speed_kmh: float
    throttle_samples: int
    brake_samples: int
    cornering_samples: int
    throttle_time_s: float
    brake_time_s: float
    cornering_time_s: float
    avg_rpm: Optional[float] = None
    max_rpm: Optional[float] = None


@dataclass(frozen=True)
class TrackAnalysis:
    """
    Aggregate over a set of laps for one track.

    ``degraded`` is True when no lap was valid and all laps were used.
    """
    track_id: Optional[str]
    total_laps: int
    valid_laps: int
    best_lap_number: int
    best_lap_time_ms: int
    avg_lap_time_ms: float
    consistency_rating: float
    degraded: bool = False


@dataclass(frozen=True)
class SectorStats:
    ordinal: int
    best_time_ms: int
    best_lap_number: int
    avg_time_ms: float
    best_speed_kmh: float
    avg_speed_kmh: float
    consistency_rating: float


@dataclass(frozen=True)
class SectorAnalysis:
    sectors: Tuple[SectorStats, ...]
    theoretical_best_ms: int


@dataclass(frozen=True)
class ComparisonBucket:
    """
    Deltas at one point of the common distance axis, all as B minus A.

    ``throttle_delta_pct`` is None when either lap has no throttle data at
    this distance.
    """
    distance_m: float
    speed_delta_kmh: float
    throttle_delta_pct: Optional[float]
    lateral_offset_m: float
    time_delta_ms: float


@dataclass(frozen=True)
class LapComparison:
    lap_a_number: int
    lap_b_number: int
    time_difference_ms: int
    bucket_m: float
    buckets: Tuple[ComparisonBucket, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DeltaTrace:
    """Time delta of one lap against a reference lap, along distance."""
    lap_number: int
    reference_lap: int
    lap_time_ms: int
    reference_time_ms: int
    distances_m: Tuple[float, ...]
    time_deltas_ms: Tuple[float, ...]
