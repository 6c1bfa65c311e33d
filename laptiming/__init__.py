"""
GPS Lap Timing Package

Track detection, lap segmentation, sector splitting and lap analytics for
GPS telemetry streams. This module re-exports the public API of the
individual submodules.
"""

# Import data model
from .models import (
    GeoPoint,
    StartFinishLine,
    SectorBoundary,
    TrackGeometry,
    TelemetrySample,
    SectorResult,
    LapRecord,
    Candidate,
    SessionMetrics,
    TrackAnalysis,
    SectorStats,
    SectorAnalysis,
    ComparisonBucket,
    LapComparison,
    DeltaTrace,
)

# Import errors
from .errors import (
    LapTimingError,
    InvalidGeometry,
    SampleError,
    NonMonotonicSample,
    DegenerateSample,
    TrackNotBound,
    NoValidLaps,
    InsufficientData,
)

# Import configuration
from .constants import SegmenterConfig

# Import geodesy functions
from .geo import (
    haversine_m,
    haversine_distance_m,
    bearing_deg,
    distance_to_segment_m,
)

# Import catalog and detection
from .catalog import TrackCatalog, validate_track
from .detector import TrackDetector
from .tracks import BUILTIN_TRACKS, builtin_catalog

# Import segmentation
from .segmenter import LapSegmenter, SegmenterState, lap_validity
from .sectors import split_sectors

# Import analytics and comparison
from .analytics import (
    session_metrics,
    consistency_rating,
    track_analysis,
    sector_analysis,
    lap_time_trend,
    consistency_trend,
)
from .comparator import compare, delta_traces

# Import session assembly
from .session import TrackSession, build_session_payload

__all__ = [
    # Data model
    "GeoPoint",
    "StartFinishLine",
    "SectorBoundary",
    "TrackGeometry",
    "TelemetrySample",
    "SectorResult",
    "LapRecord",
    "Candidate",
    "SessionMetrics",
    "TrackAnalysis",
    "SectorStats",
    "SectorAnalysis",
    "ComparisonBucket",
    "LapComparison",
    "DeltaTrace",
    # Errors
    "LapTimingError",
    "InvalidGeometry",
    "SampleError",
    "NonMonotonicSample",
    "DegenerateSample",
    "TrackNotBound",
    "NoValidLaps",
    "InsufficientData",
    # Configuration
    "SegmenterConfig",
    # Geodesy
    "haversine_m",
    "haversine_distance_m",
    "bearing_deg",
    "distance_to_segment_m",
    # Catalog and detection
    "TrackCatalog",
    "validate_track",
    "TrackDetector",
    "BUILTIN_TRACKS",
    "builtin_catalog",
    # Segmentation
    "LapSegmenter",
    "SegmenterState",
    "lap_validity",
    "split_sectors",
    # Analytics and comparison
    "session_metrics",
    "consistency_rating",
    "track_analysis",
    "sector_analysis",
    "lap_time_trend",
    "consistency_trend",
    "compare",
    "delta_traces",
    # Session
    "TrackSession",
    "build_session_payload",
]
