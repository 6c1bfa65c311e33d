"""
Lap Analytics for GPS Lap Timing

This module computes session-level aggregates from raw samples and
track-level aggregates from closed laps: best and mean lap time, the
consistency rating, per-sector statistics and simple trends.

Every function is a pure function of its inputs, so results are
reproducible for a fixed lap set and safe to call from any thread.
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from .constants import (
    BRAKE_ACTIVE_PCT,
    CONSISTENCY_TREND_MIN_LAPS,
    CONSISTENCY_TREND_POINTS,
    CORNERING_LATERAL_G,
    THROTTLE_ACTIVE_PCT,
    TREND_MIN_LAPS,
    TREND_THRESHOLD_FRACTION,
)
from .errors import InsufficientData, NoValidLaps
from .models import (
    LapRecord,
    SectorAnalysis,
    SectorStats,
    SessionMetrics,
    TelemetrySample,
    TrackAnalysis,
)
from . import geo
from . import telemetry
from . import utils

logger = logging.getLogger(__name__)

TREND_IMPROVING = "improving"
TREND_DECLINING = "declining"
TREND_STABLE = "stable"


def session_metrics(samples: Sequence[TelemetrySample], duration_s: float) -> SessionMetrics:
    """
    Aggregate a whole session's samples.

    Time-in-mode counters count samples in which the mode was active
    (throttle > 10 %, brake > 10 %, |lateral_g| > 0.5) rather than summing
    wall time, so irregular sampling does not skew them. The matching
    ``*_time_s`` values scale each counter's share of samples by the
    session duration.

    Args:
        samples: Session samples in timestamp order.
        duration_s: Session duration in seconds.

    Returns:
        SessionMetrics; all zeros for an empty sample list.
    """
    df = telemetry.samples_to_frame(samples)
    count = len(df)
    duration_s = float(duration_s) if utils.is_finite(duration_s) and duration_s > 0 else 0.0

    if count == 0:
        return SessionMetrics(
            sample_count=0, total_distance_m=0.0, total_time_s=duration_s,
            avg_speed_kmh=0.0, max_speed_kmh=0.0,
            throttle_samples=0, brake_samples=0, cornering_samples=0,
            throttle_time_s=0.0, brake_time_s=0.0, cornering_time_s=0.0,
        )

    distances = geo.haversine_m(df["lat"].shift(), df["lng"].shift(), df["lat"], df["lng"])
    total_distance = float(np.nansum(distances))

    throttle_samples = int((df["throttle_pct"].fillna(0) > THROTTLE_ACTIVE_PCT).sum())
    brake_samples = int((df["brake_pct"].fillna(0) > BRAKE_ACTIVE_PCT).sum())
    cornering_samples = int((df["lateral_g"].abs().fillna(0) > CORNERING_LATERAL_G).sum())

    rpm = df["rpm"].dropna()
    share = duration_s / count

    return SessionMetrics(
        sample_count=count,
        total_distance_m=total_distance,
        total_time_s=duration_s,
        avg_speed_kmh=float(df["speed_kmh"].mean()),
        max_speed_kmh=float(df["speed_kmh"].max()),
        throttle_samples=throttle_samples,
        brake_samples=brake_samples,
        cornering_samples=cornering_samples,
        throttle_time_s=throttle_samples * share,
        brake_time_s=brake_samples * share,
        cornering_time_s=cornering_samples * share,
        avg_rpm=float(rpm.mean()) if not rpm.empty else None,
        max_rpm=float(rpm.max()) if not rpm.empty else None,
    )


def consistency_rating(lap_times_ms: Sequence[float]) -> float:
    """
    Score lap time repeatability on a 0-100 scale.

    rating = 100 - 1000 * (population stddev / mean), clamped to [0, 100].
    Identical lap times score 100.

    Raises:
        InsufficientData: If lap_times_ms is empty.
    """
    if len(lap_times_ms) == 0:
        raise InsufficientData("consistency needs at least one lap time")

    times = np.asarray(lap_times_ms, dtype=float)
    std = float(np.std(times))
    if std == 0.0:
        return 100.0
    mean = float(np.mean(times))
    if mean <= 0.0:
        return 0.0
    return utils.clamp(100.0 - 1000.0 * (std / mean), 0.0, 100.0)


def valid_laps_or_all(laps: Sequence[LapRecord]):
    """
    Return (laps used for analysis, degraded flag).

    Degraded mode: when no lap is valid, every lap is used instead and the
    NoValidLaps condition is logged as a warning.
    """
    valid = [lap for lap in laps if lap.is_valid]
    if valid:
        return valid, False
    logger.warning("%s: using all %d lap(s) for analysis",
                   NoValidLaps.user_message, len(laps))
    return list(laps), True


def best_lap(laps: Sequence[LapRecord]) -> Optional[LapRecord]:
    """Fastest lap, lowest lap number first on ties; None for no laps."""
    if not laps:
        return None
    return min(laps, key=lambda lap: (lap.lap_time_ms, lap.lap_number))


def track_analysis(laps: Sequence[LapRecord]) -> TrackAnalysis:
    """
    Aggregate a set of laps for one track.

    Only valid laps are used unless none is valid, in which case all laps
    are used and the result is flagged ``degraded``.

    Args:
        laps: Closed laps, typically a session or a track history.

    Returns:
        TrackAnalysis with best and mean lap time and consistency rating.

    Raises:
        InsufficientData: If laps is empty.
    """
    if not laps:
        raise InsufficientData("no laps to analyse")

    used, degraded = valid_laps_or_all(laps)
    times = np.array([lap.lap_time_ms for lap in used], dtype=float)
    best = best_lap(used)
    track_ids = {lap.track_id for lap in laps}

    return TrackAnalysis(
        track_id=track_ids.pop() if len(track_ids) == 1 else None,
        total_laps=len(laps),
        valid_laps=sum(1 for lap in laps if lap.is_valid),
        best_lap_number=best.lap_number,
        best_lap_time_ms=int(best.lap_time_ms),
        avg_lap_time_ms=float(np.mean(times)),
        consistency_rating=consistency_rating(times),
        degraded=degraded,
    )


def sector_analysis(laps: Sequence[LapRecord]) -> SectorAnalysis:
    """
    Per-sector best/mean times across laps and the theoretical best lap.

    Uses the same valid-or-all lap selection as track_analysis. Sectors whose
    time was interpolated still count; callers that need measured times only
    can filter the laps' sectors beforehand.

    Raises:
        InsufficientData: If no lap carries sector results.
    """
    used, _ = valid_laps_or_all(laps)
    by_ordinal: Dict[int, List] = {}
    for lap in used:
        for sector in lap.sectors:
            by_ordinal.setdefault(sector.ordinal, []).append((lap.lap_number, sector))

    if not by_ordinal:
        raise InsufficientData("no sector results to analyse")

    stats = []
    for ordinal in sorted(by_ordinal):
        entries = by_ordinal[ordinal]
        times = np.array([s.time_ms for _, s in entries], dtype=float)
        speeds = np.array([s.max_speed_kmh for _, s in entries], dtype=float)
        best_number, best_sector = min(entries, key=lambda e: (e[1].time_ms, e[0]))
        stats.append(SectorStats(
            ordinal=ordinal,
            best_time_ms=int(best_sector.time_ms),
            best_lap_number=best_number,
            avg_time_ms=float(times.mean()),
            best_speed_kmh=float(speeds.max()),
            avg_speed_kmh=float(speeds.mean()),
            consistency_rating=consistency_rating(times),
        ))

    return SectorAnalysis(
        sectors=tuple(stats),
        theoretical_best_ms=int(sum(s.best_time_ms for s in stats)),
    )


def _half_means(values: np.ndarray):
    half = len(values) // 2
    return values[:half], values[half:]


def lap_time_trend(lap_times_ms: Sequence[float]) -> str:
    """
    Classify a lap time series as improving, declining or stable.

    Compares the mean of the second half with the first half; a change of
    more than 2 % of the first-half mean counts. Lower lap times are an
    improvement. Fewer than 3 laps are always stable.
    """
    if len(lap_times_ms) < TREND_MIN_LAPS:
        return TREND_STABLE
    first, second = _half_means(np.asarray(lap_times_ms, dtype=float))
    first_avg, second_avg = float(first.mean()), float(second.mean())
    threshold = first_avg * TREND_THRESHOLD_FRACTION
    difference = second_avg - first_avg
    if difference < -threshold:
        return TREND_IMPROVING
    if difference > threshold:
        return TREND_DECLINING
    return TREND_STABLE


def consistency_trend(lap_times_ms: Sequence[float]) -> str:
    """Compare consistency of the first and second half of a lap series."""
    if len(lap_times_ms) < CONSISTENCY_TREND_MIN_LAPS:
        return TREND_STABLE
    first, second = _half_means(np.asarray(lap_times_ms, dtype=float))
    first_rating, second_rating = consistency_rating(first), consistency_rating(second)
    if second_rating > first_rating + CONSISTENCY_TREND_POINTS:
        return TREND_IMPROVING
    if second_rating < first_rating - CONSISTENCY_TREND_POINTS:
        return TREND_DECLINING
    return TREND_STABLE
