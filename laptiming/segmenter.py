"""
Lap Segmentation for GPS Lap Timing

This module turns a live or replayed telemetry stream for one track into
closed LapRecords by detecting start/finish crossings.

States:
    IDLE    no track bound
    ARMED   track bound, waiting for the first crossing
    IN_LAP  accumulating the current lap buffer

A crossing is the step between two consecutive samples that goes from
behind the line to on or past it; the first sample at or past the line is
the crossing sample. A crossing closes the current lap and seeds the next
buffer with the crossing sample, so the segmenter stays IN_LAP until
``stop()`` returns it to IDLE.

A stream whose first sample already sits on or just past the line starts
a provisional lap there, kept only if the next sample moves in the line
direction.

Samples must arrive in timestamp order; each stream gets its own
segmenter instance.
"""

import logging
from enum import Enum
from typing import Callable, List, Optional, Sequence

import numpy as np

from .constants import SegmenterConfig
from .errors import DegenerateSample, NonMonotonicSample, SampleError, TrackNotBound
from .models import LapRecord, TelemetrySample, TrackGeometry
from .sectors import split_sectors
from . import geo
from . import utils

logger = logging.getLogger(__name__)

LapListener = Callable[[LapRecord], None]
ErrorListener = Callable[[SampleError], None]

INVALID_TOO_FEW_SAMPLES = "too_few_samples"
INVALID_TOO_SHORT = "too_short"
INVALID_TOO_SLOW = "too_slow"
INVALID_PARTIAL = "partial"


class SegmenterState(Enum):
    IDLE = "idle"
    ARMED = "armed"
    IN_LAP = "in_lap"


def lap_validity(sample_count: int, distance_m: float, avg_speed_kmh: float,
                 config: SegmenterConfig) -> Optional[str]:
    """
    Apply the lap validity rule.

    A lap is valid iff it has at least ``min_valid_samples`` samples, covers
    at least ``min_valid_distance_m`` and averages at least
    ``min_valid_avg_speed_kmh``. All thresholds are inclusive.

    Returns:
        None for a valid lap, otherwise the first failing reason.
    """
    if sample_count < config.min_valid_samples:
        return INVALID_TOO_FEW_SAMPLES
    if distance_m < config.min_valid_distance_m:
        return INVALID_TOO_SHORT
    if avg_speed_kmh < config.min_valid_avg_speed_kmh:
        return INVALID_TOO_SLOW
    return None


def check_sample(sample: TelemetrySample, previous: Optional[TelemetrySample]) -> Optional[SampleError]:
    """
    Validate one sample against the previously accepted one.

    Returns:
        The error describing why the sample must be skipped, or None.
    """
    pos = sample.position
    if pos is None or not (utils.is_finite(pos.lat) and utils.is_finite(pos.lng)):
        return DegenerateSample(sample.timestamp_ms, "non-finite coordinates")
    if not utils.is_finite(sample.speed_kmh) or sample.speed_kmh < 0:
        return DegenerateSample(sample.timestamp_ms, f"invalid speed {sample.speed_kmh!r}")
    if previous is not None and sample.timestamp_ms <= previous.timestamp_ms:
        return NonMonotonicSample(sample.timestamp_ms, previous.timestamp_ms)
    return None


def _unsubscriber(listeners: list, callback) -> Callable[[], None]:
    def unsubscribe() -> None:
        if callback in listeners:
            listeners.remove(callback)
    return unsubscribe


class LapSegmenter:
    """
    Start/finish crossing state machine for one telemetry stream.

    Args:
        track: Track to bind immediately. If omitted, call ``bind`` before
            feeding samples.
        config: Tolerances and thresholds. Defaults to SegmenterConfig().
    """

    def __init__(self, track: Optional[TrackGeometry] = None,
                 config: Optional[SegmenterConfig] = None):
        self.config = config or SegmenterConfig()
        self._track: Optional[TrackGeometry] = None
        self._state = SegmenterState.IDLE
        self._lap_listeners: List[LapListener] = []
        self._error_listeners: List[ErrorListener] = []
        self._laps: List[LapRecord] = []
        self._errors: List[SampleError] = []
        self._reset_stream()
        if track is not None:
            self.bind(track)

    def _reset_stream(self) -> None:
        self._last_sample: Optional[TelemetrySample] = None
        self._last_crossing_ts: Optional[int] = None
        self._pending_start: Optional[TelemetrySample] = None
        self._buffer: List[TelemetrySample] = []
        self._distance_m = 0.0
        self._max_speed_kmh = 0.0
        self._lap_number = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> SegmenterState:
        return self._state

    @property
    def track(self) -> Optional[TrackGeometry]:
        return self._track

    @property
    def laps(self) -> tuple:
        return tuple(self._laps)

    @property
    def errors(self) -> tuple:
        return tuple(self._errors)

    @property
    def current_samples(self) -> tuple:
        return tuple(self._buffer)

    @property
    def current_distance_m(self) -> float:
        return self._distance_m

    @property
    def current_max_speed_kmh(self) -> float:
        return self._max_speed_kmh

    @property
    def best_lap(self) -> Optional[LapRecord]:
        valid = [lap for lap in self._laps if lap.is_valid]
        if not valid:
            return None
        return min(valid, key=lambda lap: (lap.lap_time_ms, lap.lap_number))

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_lap(self, callback: LapListener) -> Callable[[], None]:
        """Subscribe to closed laps. Returns a function that unsubscribes."""
        self._lap_listeners.append(callback)
        return _unsubscriber(self._lap_listeners, callback)

    def on_error(self, callback: ErrorListener) -> Callable[[], None]:
        """Subscribe to skipped-sample errors. Returns a function that unsubscribes."""
        self._error_listeners.append(callback)
        return _unsubscriber(self._error_listeners, callback)

    def _notify(self, listeners, payload) -> None:
        for callback in list(listeners):
            try:
                callback(payload)
            except Exception:
                logger.exception("Segmenter listener %r failed", callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def bind(self, track: TrackGeometry) -> None:
        """
        Bind a track and arm the segmenter.

        Raises:
            RuntimeError: If a track is already bound; call ``stop`` first.
        """
        if self._state is not SegmenterState.IDLE:
            raise RuntimeError(f"segmenter already bound to track {self._track.id!r}")
        self._track = track
        self._reset_stream()
        self._state = SegmenterState.ARMED
        logger.info("Segmenter armed on track %s", track.id)

    def stop(self, flush_partial: bool = False) -> Optional[LapRecord]:
        """
        Stop the stream and return to IDLE.

        Args:
            flush_partial: If True, emit the in-progress lap buffer as an
                invalid partial lap; otherwise discard it.

        Returns:
            The flushed partial lap, or None.
        """
        partial = None
        if self._state is SegmenterState.IN_LAP and flush_partial and self._buffer:
            partial = self._close_lap(partial=True)
        elif self._buffer:
            logger.info("Discarding in-progress lap with %d sample(s)", len(self._buffer))

        self._state = SegmenterState.IDLE
        self._track = None
        self._reset_stream()
        return partial

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def feed(self, sample: TelemetrySample) -> Optional[LapRecord]:
        """
        Ingest one sample.

        Out-of-order and degenerate samples are skipped: the error is
        recorded in ``errors``, logged and sent to error listeners, and the
        stream carries on.

        Returns:
            The LapRecord closed by this sample, or None.

        Raises:
            TrackNotBound: If no track is bound.
        """
        if self._state is SegmenterState.IDLE:
            raise TrackNotBound("bind a track before feeding samples")

        error = check_sample(sample, self._last_sample)
        if error is not None:
            self._errors.append(error)
            logger.warning("Skipping telemetry sample: %s", error)
            self._notify(self._error_listeners, error)
            return None

        lap = None

        if self._state is SegmenterState.ARMED:
            pending, self._pending_start = self._pending_start, None
            if self._last_sample is None:
                if self._starts_on_line(sample):
                    self._pending_start = sample
            elif pending is not None and self._heading_matches(pending, sample):
                logger.debug("Stream started on the start/finish line at %d ms", pending.timestamp_ms)
                self._start_lap(pending)
                self._append(sample)
                self._state = SegmenterState.IN_LAP
            elif self._is_crossing(sample):
                self._start_lap(sample)
                self._state = SegmenterState.IN_LAP
        else:
            self._append(sample)
            if self._is_crossing(sample):
                lap = self._close_lap(partial=False)
                self._start_lap(sample)

        self._last_sample = sample
        return lap

    def feed_many(self, samples: Sequence[TelemetrySample]) -> List[LapRecord]:
        """Feed samples in order and return the laps they closed."""
        closed = []
        for sample in samples:
            lap = self.feed(sample)
            if lap is not None:
                closed.append(lap)
        return closed

    def _heading_matches(self, previous: TelemetrySample, sample: TelemetrySample) -> bool:
        """True if the movement from previous to sample follows the line bearing."""
        if previous.position.lat == sample.position.lat and previous.position.lng == sample.position.lng:
            return False
        heading = geo.bearing_deg(previous.position, sample.position)
        deviation = geo.angle_difference_deg(heading, self._track.start_finish.bearing_deg)
        return deviation <= self.config.max_bearing_deviation_deg

    def _starts_on_line(self, sample: TelemetrySample) -> bool:
        """True if a first sample lies on or just past the line, within tolerance."""
        line = self._track.start_finish
        if geo.distance_to_segment_m(sample.position, line.point1, line.point2) > self.config.line_tolerance_m:
            return False
        return geo.signed_offset_m(sample.position, line.centre, line.bearing_deg) >= 0.0

    def _is_crossing(self, sample: TelemetrySample) -> bool:
        """
        Decide whether the step from the previous sample crosses the line.

        The vehicle must move from behind the line to on or past it, with a
        movement bearing within the allowed deviation of the line bearing,
        and the step must pass within tolerance of the line: either end
        sample or the point where the step meets the line is close enough.
        Crossings within the debounce window of the previous crossing are
        ignored.
        """
        previous = self._last_sample
        if previous is None:
            return False
        if (self._last_crossing_ts is not None
                and sample.timestamp_ms - self._last_crossing_ts < self.config.min_lap_time_ms):
            return False

        line = self._track.start_finish
        centre = line.centre
        before = geo.signed_offset_m(previous.position, centre, line.bearing_deg)
        after = geo.signed_offset_m(sample.position, centre, line.bearing_deg)
        if not (before < 0.0 <= after):
            return False
        if not self._heading_matches(previous, sample):
            return False

        fraction = -before / (after - before)
        meet = geo.interpolate_point(previous.position, sample.position, fraction)
        distance = min(
            geo.distance_to_segment_m(point, line.point1, line.point2)
            for point in (previous.position, meet, sample.position)
        )
        if distance > self.config.line_tolerance_m:
            return False

        logger.debug("Start/finish crossing at %d ms (%.1f m from line, %.0f%% across, %.0f%% into step)",
                     sample.timestamp_ms, distance,
                     geo.project_fraction(meet, line.point1, line.point2) * 100, fraction * 100)
        return True

    def _start_lap(self, sample: TelemetrySample) -> None:
        self._buffer = [sample]
        self._distance_m = 0.0
        self._max_speed_kmh = float(sample.speed_kmh)
        self._last_crossing_ts = sample.timestamp_ms

    def _append(self, sample: TelemetrySample) -> None:
        if self._buffer:
            self._distance_m += geo.haversine_distance_m(self._buffer[-1].position, sample.position)
        self._buffer.append(sample)
        self._max_speed_kmh = max(self._max_speed_kmh, float(sample.speed_kmh))

    def _close_lap(self, partial: bool) -> LapRecord:
        samples = tuple(self._buffer)
        self._lap_number += 1

        avg_speed = float(np.mean([s.speed_kmh for s in samples]))
        if partial:
            reason = INVALID_PARTIAL
            sectors = ()
        else:
            reason = lap_validity(len(samples), self._distance_m, avg_speed, self.config)
            sectors = split_sectors(samples, self._track.sectors, self.config.boundary_tolerance_m)

        lap = LapRecord(
            lap_number=self._lap_number,
            track_id=self._track.id,
            start_ts=samples[0].timestamp_ms,
            end_ts=samples[-1].timestamp_ms,
            lap_time_ms=samples[-1].timestamp_ms - samples[0].timestamp_ms,
            samples=samples,
            distance_m=self._distance_m,
            max_speed_kmh=self._max_speed_kmh,
            avg_speed_kmh=avg_speed,
            is_valid=reason is None,
            sectors=sectors,
            invalid_reason=reason,
            partial=partial,
        )

        self._laps.append(lap)
        if lap.is_valid:
            logger.info("Lap %d closed on %s: %.3f s, %.0f m",
                        lap.lap_number, lap.track_id, lap.lap_time_ms / 1000.0, lap.distance_m)
        else:
            logger.info("Lap %d closed on %s but invalid (%s)",
                        lap.lap_number, lap.track_id, reason)
        self._notify(self._lap_listeners, lap)
        return lap
