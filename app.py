"""
FastAPI Web Application for GPS Lap Timing

This module provides a REST API over the lap timing engine: listing the
built-in tracks, detecting the track for a position, and segmenting and
analysing uploaded telemetry sessions.
"""

import logging
from typing import Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Query

from laptiming import comparator, telemetry
from laptiming.constants import DETECTION_ACCEPT_THRESHOLD
from laptiming.detector import TrackDetector
from laptiming.errors import InsufficientData, InvalidGeometry, TrackNotBound
from laptiming.models import GeoPoint
from laptiming.session import TrackSession, build_session_payload
from laptiming.tracks import builtin_catalog


# ============================================================================
# APPLICATION SETUP
# ============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI()

# Built-in catalog, shared read-only by every request
catalog = builtin_catalog()
detector = TrackDetector(catalog)


# ============================================================================
# PAYLOAD PARSING
# ============================================================================

def parse_samples(payload: Dict) -> list:
    """
    Convert the ``samples`` list of a request body into TelemetrySamples.

    Args:
        payload: Request body with a ``samples`` list of sample dictionaries.

    Returns:
        List of TelemetrySample objects in the order received.

    Raises:
        HTTPException: If samples are missing or malformed (status 400).
    """
    records = payload.get("samples")
    if not isinstance(records, list):
        raise HTTPException(status_code=400, detail="'samples' must be a list")

    samples = []
    for idx, record in enumerate(records):
        if not isinstance(record, dict):
            raise HTTPException(status_code=400, detail=f"sample {idx} must be an object")
        try:
            samples.append(telemetry.sample_from_dict(record))
        except KeyError as exc:
            raise HTTPException(status_code=400, detail=f"sample {idx} is missing {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=f"sample {idx} is invalid: {exc}") from exc
    return samples


def parse_position(payload: Dict) -> GeoPoint:
    try:
        return GeoPoint(float(payload["lat"]), float(payload["lng"]))
    except KeyError as exc:
        raise HTTPException(status_code=400, detail=f"missing {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"invalid position: {exc}") from exc


def check_track_id(track_id: Optional[str]) -> None:
    if track_id is not None and track_id not in catalog:
        raise HTTPException(status_code=404, detail=f"Unknown track: {track_id}")


def raise_for_error(exc: Exception) -> None:
    """
    Translate a lap timing error into an HTTPException.

    Raises:
        HTTPException: 422 for missing track or data, 400 for bad input.
    """
    if isinstance(exc, (TrackNotBound, InsufficientData)):
        raise HTTPException(status_code=422, detail=f"{exc.user_message}: {exc}") from exc
    if isinstance(exc, InvalidGeometry):
        raise HTTPException(status_code=400, detail=f"{exc.user_message}: {exc}") from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


# ============================================================================
# API ROUTES - TRACK CATALOG
# ============================================================================

@app.get("/api/tracks")
def get_tracks() -> List[Dict]:
    """
    Get the list of built-in tracks.

    Returns:
        List of dictionaries with track id, name, nominal length, sector
        count and start/finish line.
    """
    tracks = []
    for track in catalog:
        line = track.start_finish
        tracks.append({
            "id": track.id,
            "name": track.name,
            "nominal_length_m": track.nominal_length_m,
            "sector_count": len(track.sectors),
            "start_finish": {
                "point1": {"lat": line.point1.lat, "lng": line.point1.lng},
                "point2": {"lat": line.point2.lat, "lng": line.point2.lng},
                "bearing_deg": line.bearing_deg,
                "width_m": line.width_m,
            },
        })
    tracks.sort(key=lambda t: t["id"])
    return tracks


@app.get("/api/tracks/nearest")
def get_nearest_tracks(lat: float = Query(..., description="Latitude in degrees"),
                       lng: float = Query(..., description="Longitude in degrees"),
                       limit: int = Query(5, ge=1, description="Maximum tracks to return")):
    """
    Get the tracks whose start/finish line is closest to a position.

    Args:
        lat: Query latitude.
        lng: Query longitude.
        limit: Maximum number of tracks. Default 5.

    Returns:
        List of dictionaries with 'track_id' and 'distance_m', nearest first.
    """
    nearest = catalog.nearest_tracks(GeoPoint(lat, lng), limit=limit)
    return [{"track_id": track_id, "distance_m": round(distance, 1)} for track_id, distance in nearest]


# ============================================================================
# API ROUTES - DETECTION
# ============================================================================

@app.post("/api/detect")
def detect_track(payload: Dict = Body(...)):
    """
    Rank candidate tracks for a GPS fix.

    The request body holds ``lat``, ``lng`` and an optional ``accuracy_m``.

    Returns:
        Dictionary containing:
        - candidates: ranked candidates with confidence and distance
        - track_id: top candidate if it clears the acceptance threshold,
          otherwise None

    Raises:
        HTTPException: If the position is missing or malformed (status 400).
    """
    position = parse_position(payload)
    accuracy = payload.get("accuracy_m")
    try:
        accuracy = float(accuracy) if accuracy is not None else None
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"invalid accuracy_m: {exc}") from exc

    candidates = detector.detect(position, accuracy)
    accepted = None
    if candidates and candidates[0].confidence >= DETECTION_ACCEPT_THRESHOLD:
        accepted = candidates[0].track_id

    return {
        "candidates": [
            {
                "track_id": c.track_id,
                "confidence": round(c.confidence, 4),
                "distance_m": round(c.distance_m, 1),
            }
            for c in candidates
        ],
        "track_id": accepted,
    }


# ============================================================================
# API ROUTES - SESSION ANALYSIS
# ============================================================================

@app.post("/api/session")
def analyse_session(payload: Dict = Body(...)):
    """
    Segment and analyse an uploaded telemetry session.

    The request body holds ``samples`` (list of sample dictionaries with
    timestamp_ms, lat, lng, speed_kmh and optional channels), an optional
    ``track_id`` to skip detection and an optional ``flush_partial`` flag.

    Returns:
        Dictionary containing the complete session payload: track_id, laps,
        analysis, sector_analysis, metrics, lap_deltas and errors.

    Raises:
        HTTPException: 400 for malformed samples, 404 for an unknown track,
        422 if no track is detected.
    """
    samples = parse_samples(payload)
    track_id = payload.get("track_id")
    check_track_id(track_id)

    try:
        return build_session_payload(
            samples,
            catalog,
            track_id=track_id,
            flush_partial=bool(payload.get("flush_partial", False)),
        )
    except (TrackNotBound, InsufficientData, InvalidGeometry) as exc:
        raise_for_error(exc)


@app.post("/api/compare")
def compare_laps(payload: Dict = Body(...)):
    """
    Compare two laps of an uploaded session on a common distance axis.

    The request body holds ``samples``, ``lap_a`` and ``lap_b`` (lap
    numbers), and optional ``track_id`` and ``bucket_m``.

    Returns:
        Dictionary with the signed lap time difference (B minus A) and the
        per-bucket speed, throttle, lateral offset and time deltas.

    Raises:
        HTTPException: 400 for malformed input, 404 if a lap is not found,
        422 if no track is detected or a lap is too short to compare.
    """
    samples = parse_samples(payload)
    track_id = payload.get("track_id")
    check_track_id(track_id)

    try:
        lap_a_number = int(payload["lap_a"])
        lap_b_number = int(payload["lap_b"])
        bucket_m = float(payload.get("bucket_m", 10.0))
    except KeyError as exc:
        raise HTTPException(status_code=400, detail=f"missing {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"invalid lap selection: {exc}") from exc

    try:
        session = TrackSession(catalog, track_id=track_id)
        session.feed_many(samples)
        if session.track_id is None:
            raise TrackNotBound("no catalog track matched the session samples")
        laps = {lap.lap_number: lap for lap in session.laps}

        for number in (lap_a_number, lap_b_number):
            if number not in laps:
                raise HTTPException(status_code=404, detail=f"Lap {number} not found")

        result = comparator.compare(laps[lap_a_number], laps[lap_b_number], bucket_m)
    except (TrackNotBound, InsufficientData, InvalidGeometry) as exc:
        raise_for_error(exc)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return telemetry.comparison_to_dict(result)


# ============================================================================
# RUN INSTRUCTIONS
# ============================================================================
# Run with: uvicorn app:app --reload
