"""
Session Builder for GPS Lap Timing

This module ties the pipeline together for one telemetry stream: it binds
an unlabelled stream to a catalog track with the TrackDetector, feeds the
stream through a LapSegmenter, and exposes the analytics over the laps it
closes. ``build_session_payload`` runs a complete replayed stream and
returns plain dictionaries ready for a JSON response or an external store.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence

from . import analytics
from . import comparator
from . import telemetry
from .catalog import TrackCatalog
from .constants import DETECTION_ACCEPT_THRESHOLD, SegmenterConfig
from .detector import TrackDetector
from .errors import InsufficientData, SampleError, TrackNotBound
from .models import LapRecord, TelemetrySample, TrackAnalysis
from .segmenter import ErrorListener, LapSegmenter, check_sample

logger = logging.getLogger(__name__)


class TrackSession:
    """
    One telemetry stream from detection to analysis.

    Until a track is bound, each sample is run through the detector; the
    first sample whose top candidate reaches ``acceptance_threshold`` binds
    the session, and that sample is the first one the segmenter sees.

    Args:
        catalog: Tracks to detect against.
        config: Segmenter configuration.
        acceptance_threshold: Confidence needed to commit to a track.
        track_id: Bind this track immediately instead of detecting.
        lookahead_ms: Dead-reckoning horizon used during detection.

    Raises:
        TrackNotBound: If track_id is given but not in the catalog.
    """

    def __init__(self, catalog: TrackCatalog, config: Optional[SegmenterConfig] = None,
                 acceptance_threshold: float = DETECTION_ACCEPT_THRESHOLD,
                 track_id: Optional[str] = None, lookahead_ms: int = 0):
        self.catalog = catalog
        self.detector = TrackDetector(catalog)
        self.segmenter = LapSegmenter(config=config)
        self.acceptance_threshold = acceptance_threshold
        self.lookahead_ms = lookahead_ms
        self._previous: Optional[TelemetrySample] = None
        self._samples: List[TelemetrySample] = []
        self._track_id: Optional[str] = None
        # samples skipped before a track was bound
        self._errors: List[SampleError] = []
        self._error_listeners: List[ErrorListener] = []

        if track_id is not None:
            self.bind(track_id)

    @property
    def track_id(self) -> Optional[str]:
        return self._track_id

    @property
    def is_bound(self) -> bool:
        return self._track_id is not None

    @property
    def laps(self) -> tuple:
        return self.segmenter.laps

    @property
    def errors(self) -> tuple:
        """Every skipped sample, before and after binding, in stream order."""
        return tuple(self._errors) + self.segmenter.errors

    @property
    def samples(self) -> tuple:
        """Every accepted sample of the session, including pre-binding ones."""
        return tuple(self._samples)

    def on_lap(self, callback: Callable[[LapRecord], None]) -> Callable[[], None]:
        return self.segmenter.on_lap(callback)

    def on_error(self, callback: ErrorListener) -> Callable[[], None]:
        """Subscribe to skipped samples for the whole session. Returns an unsubscribe function."""
        self._error_listeners.append(callback)
        unsubscribe_segmenter = self.segmenter.on_error(callback)

        def unsubscribe() -> None:
            if callback in self._error_listeners:
                self._error_listeners.remove(callback)
            unsubscribe_segmenter()
        return unsubscribe

    def _reject(self, error: SampleError) -> None:
        self._errors.append(error)
        logger.warning("Skipping telemetry sample before track binding: %s", error)
        for callback in list(self._error_listeners):
            try:
                callback(error)
            except Exception:
                logger.exception("Session error listener %r failed", callback)

    def bind(self, track_id: str) -> None:
        track = self.catalog.get(track_id)
        if track is None:
            raise TrackNotBound(f"unknown track {track_id!r}")
        self.segmenter.bind(track)
        self._track_id = track_id
        logger.info("Session bound to track %s", track_id)

    def _try_bind(self, sample: TelemetrySample) -> None:
        candidates = self.detector.detect_sample(sample, self._previous, self.lookahead_ms)
        if candidates and candidates[0].confidence >= self.acceptance_threshold:
            self.bind(candidates[0].track_id)

    def feed(self, sample: TelemetrySample) -> Optional[LapRecord]:
        """
        Ingest one sample, detecting the track first if needed.

        Returns:
            The lap closed by this sample, or None.
        """
        if not self.is_bound:
            error = check_sample(sample, self._previous)
            if error is not None:
                self._reject(error)
                return None
            self._try_bind(sample)
            if not self.is_bound:
                self._previous = sample
                self._samples.append(sample)
                return None

        errors_before = len(self.segmenter.errors)
        lap = self.segmenter.feed(sample)
        if len(self.segmenter.errors) == errors_before:
            self._previous = sample
            self._samples.append(sample)
        return lap

    def feed_many(self, samples: Sequence[TelemetrySample]) -> List[LapRecord]:
        closed = []
        for sample in samples:
            lap = self.feed(sample)
            if lap is not None:
                closed.append(lap)
        return closed

    def stop(self, flush_partial: bool = False) -> Optional[LapRecord]:
        """Stop the segmenter, optionally flushing the in-progress lap."""
        if not self.is_bound:
            return None
        partial = self.segmenter.stop(flush_partial=flush_partial)
        self._track_id = None
        return partial

    def analysis(self) -> TrackAnalysis:
        """
        Track analysis over the laps closed so far.

        Raises:
            TrackNotBound: If the session never bound a track.
            InsufficientData: If no lap has been closed yet.
        """
        if not self.is_bound and not self.laps:
            raise TrackNotBound("no track detected for this session")
        return analytics.track_analysis(self.laps)


def build_session_payload(samples: Sequence[TelemetrySample], catalog: TrackCatalog,
                          track_id: Optional[str] = None,
                          config: Optional[SegmenterConfig] = None,
                          flush_partial: bool = False) -> Dict:
    """
    Build a complete session payload from a replayed stream.

    Main entry point for offline analysis:
    1. Detects the track (unless track_id is given)
    2. Segments the stream into laps
    3. Computes session metrics
    4. Computes track and sector analysis when laps exist
    5. Builds delta traces against the fastest lap

    Args:
        samples: Session samples in timestamp order.
        catalog: Tracks to detect against.
        track_id: Skip detection and bind this track.
        config: Segmenter configuration.
        flush_partial: Emit the trailing in-progress lap as a partial lap.

    Returns:
        Dictionary containing:
        - track_id: bound track
        - laps: list of lap dictionaries
        - analysis: track analysis dictionary, or None without laps
        - sector_analysis: sector statistics, or None without sectors
        - metrics: session metrics dictionary
        - lap_deltas: delta traces against the fastest lap
        - errors: skipped-sample messages

    Raises:
        TrackNotBound: If no track could be detected.
    """
    session = TrackSession(catalog, config=config, track_id=track_id)
    session.feed_many(samples)

    bound_track = session.track_id
    if bound_track is None:
        raise TrackNotBound("no catalog track matched the session samples")
    session.stop(flush_partial=flush_partial)

    laps = list(session.laps)
    accepted = session.samples
    duration_s = (accepted[-1].timestamp_ms - accepted[0].timestamp_ms) / 1000.0 if accepted else 0.0

    analysis = None
    sectors = None
    if laps:
        analysis = telemetry.analysis_to_dict(analytics.track_analysis(laps))
        try:
            sectors = telemetry.sector_analysis_to_dict(analytics.sector_analysis(laps))
        except InsufficientData:
            sectors = None

    return {
        "track_id": bound_track,
        "laps": telemetry.laps_to_records(laps),
        "analysis": analysis,
        "sector_analysis": sectors,
        "metrics": telemetry.metrics_to_dict(analytics.session_metrics(accepted, duration_s)),
        "lap_deltas": [
            {
                "lap_number": trace.lap_number,
                "reference_lap": trace.reference_lap,
                "lap_time_ms": trace.lap_time_ms,
                "reference_time_ms": trace.reference_time_ms,
                "trace": [
                    {"distance_m": d, "time_delta_ms": t}
                    for d, t in zip(trace.distances_m, trace.time_deltas_ms)
                ],
            }
            for trace in comparator.delta_traces(laps)
        ],
        "errors": [str(error) for error in session.errors],
    }
