"""
Error Types for GPS Lap Timing

Catalog load failures are fatal. Per-sample failures are recoverable: the
segmenter skips the sample, records the error and carries on. Analytics
either degrade (documented fallback) or raise a typed error.

Each error carries a short ``user_message`` that a presentation layer can
show as-is.
"""

from typing import Optional


class LapTimingError(Exception):
    """Base class for all lap timing errors."""

    user_message = "lap timing error"


class InvalidGeometry(LapTimingError, ValueError):
    """A TrackGeometry is malformed and cannot be used for crossing detection."""

    user_message = "invalid track geometry"

    def __init__(self, track_id: Optional[str], reason: str):
        self.track_id = track_id
        self.reason = reason
        super().__init__(f"track {track_id!r}: {reason}")


class SampleError(LapTimingError, ValueError):
    """A single telemetry sample was rejected and skipped."""

    user_message = "telemetry sample skipped"

    def __init__(self, timestamp_ms: int, reason: str):
        self.timestamp_ms = timestamp_ms
        self.reason = reason
        super().__init__(f"sample at {timestamp_ms} ms: {reason}")


class NonMonotonicSample(SampleError):
    """Sample timestamp is not strictly greater than the previous one."""

    def __init__(self, timestamp_ms: int, previous_ms: int):
        self.previous_ms = previous_ms
        super().__init__(
            timestamp_ms,
            f"timestamp not after previous sample ({previous_ms} ms)",
        )


class DegenerateSample(SampleError):
    """Sample has NaN/infinite coordinates or an impossible speed."""


class TrackNotBound(LapTimingError):
    """No track has been bound to the session yet."""

    user_message = "track not detected"


class NoValidLaps(LapTimingError):
    """
    No lap in the set passed validation.

    Used as a diagnostic: track_analysis logs it and falls back to all laps
    instead of raising.
    """

    user_message = "no valid laps"


class InsufficientData(LapTimingError, ValueError):
    """Not enough samples or laps to compute the requested result."""

    user_message = "insufficient data for comparison"
