"""
Constants for GPS Lap Timing

This module defines the default tolerances and thresholds used throughout
the track detection and lap segmentation pipeline, and the SegmenterConfig
container that groups the segmenter knobs.
"""

from dataclasses import dataclass

# Geodesy
EARTH_RADIUS_M = 6371000.0

# Track detection
DETECTION_MAX_CONFIDENCE_DISTANCE_M = 1000.0
DETECTION_RADIUS_M = 10000.0
DETECTION_ACCEPT_THRESHOLD = 0.8
ACCURACY_REFERENCE_M = 100.0
ACCURACY_FACTOR_MIN = 0.1
ACCURACY_FACTOR_MAX = 1.0

# Start/finish crossing
LINE_TOLERANCE_M = 30.0
MIN_LAP_TIME_MS = 15000
MAX_BEARING_DEVIATION_DEG = 90.0

# Lap validity (thresholds are inclusive)
MIN_VALID_SAMPLES = 5
MIN_VALID_DISTANCE_M = 100.0
MIN_VALID_DISTANCE_FLOOR_M = 10.0
MIN_VALID_AVG_SPEED_KMH = 5.0

# Sector splitting
BOUNDARY_TOLERANCE_M = 50.0

# Track catalog queries
ON_TRACK_TOLERANCE_M = 50.0
NEAR_START_FINISH_TOLERANCE_M = 30.0

# Session metrics mode thresholds
THROTTLE_ACTIVE_PCT = 10.0
BRAKE_ACTIVE_PCT = 10.0
CORNERING_LATERAL_G = 0.5

# Lap comparison
COMPARISON_BUCKET_M = 10.0

# Trend detection
TREND_MIN_LAPS = 3
TREND_THRESHOLD_FRACTION = 0.02
CONSISTENCY_TREND_MIN_LAPS = 6
CONSISTENCY_TREND_POINTS = 5.0


@dataclass(frozen=True)
class SegmenterConfig:
    """
    Tunable parameters for a LapSegmenter.

    Attributes:
        line_tolerance_m: Maximum distance from the start/finish line for a
            sample to count as a crossing.
        min_lap_time_ms: Debounce window after a crossing during which no
            further crossing may fire.
        min_valid_distance_m: Minimum lap distance for a valid lap. May be
            lowered to 10 m for short circuits.
        min_valid_samples: Minimum samples in a valid lap.
        min_valid_avg_speed_kmh: Minimum average speed of a valid lap.
        boundary_tolerance_m: Sector boundary matching tolerance.
        max_bearing_deviation_deg: Allowed deviation between movement bearing
            and the configured line bearing.
    """
    line_tolerance_m: float = LINE_TOLERANCE_M
    min_lap_time_ms: int = MIN_LAP_TIME_MS
    min_valid_distance_m: float = MIN_VALID_DISTANCE_M
    min_valid_samples: int = MIN_VALID_SAMPLES
    min_valid_avg_speed_kmh: float = MIN_VALID_AVG_SPEED_KMH
    boundary_tolerance_m: float = BOUNDARY_TOLERANCE_M
    max_bearing_deviation_deg: float = MAX_BEARING_DEVIATION_DEG

    def __post_init__(self):
        if self.line_tolerance_m <= 0:
            raise ValueError("line_tolerance_m must be positive")
        if self.boundary_tolerance_m <= 0:
            raise ValueError("boundary_tolerance_m must be positive")
        if self.min_lap_time_ms < 0:
            raise ValueError("min_lap_time_ms must not be negative")
        if self.min_valid_distance_m < MIN_VALID_DISTANCE_FLOOR_M:
            raise ValueError(
                f"min_valid_distance_m must be at least {MIN_VALID_DISTANCE_FLOOR_M} m"
            )
        if self.min_valid_samples < 1:
            raise ValueError("min_valid_samples must be at least 1")
