from dataclasses import replace

import pytest

from laptiming.errors import NonMonotonicSample, TrackNotBound
from laptiming.models import GeoPoint
from laptiming.session import TrackSession, build_session_payload

from conftest import CENTRE, CIRCUIT_ID, circuit_samples, offset_point

PERIOD_MS = 83456


def test_session_detects_and_segments(circuit_catalog):
    session = TrackSession(circuit_catalog)
    assert not session.is_bound

    laps = session.feed_many(circuit_samples(PERIOD_MS))

    assert session.track_id == CIRCUIT_ID
    assert [lap.lap_time_ms for lap in laps] == [83456]
    assert session.analysis().best_lap_time_ms == 83456


def test_analysis_before_binding_raises(circuit_catalog):
    session = TrackSession(circuit_catalog)
    with pytest.raises(TrackNotBound):
        session.analysis()


def test_session_waits_until_confident(circuit_catalog):
    session = TrackSession(circuit_catalog)
    far = circuit_samples(PERIOD_MS, start_ms=0, end_ms=2000, origin=offset_point(CENTRE, 0.0, -600.0))
    session.feed_many(far)
    assert not session.is_bound
    assert len(session.samples) == len(far)


def test_rejections_before_binding_are_reported(circuit_catalog):
    session = TrackSession(circuit_catalog)
    received = []
    session.on_error(received.append)
    far = circuit_samples(PERIOD_MS, start_ms=0, end_ms=100, origin=offset_point(CENTRE, 0.0, -600.0))

    session.feed(far[1])
    session.feed(far[0])

    assert not session.is_bound
    assert len(session.errors) == 1
    assert isinstance(session.errors[0], NonMonotonicSample)
    assert received == list(session.errors)
    assert session.samples == (far[1],)


def test_explicit_track_skips_detection(circuit_catalog):
    session = TrackSession(circuit_catalog, track_id=CIRCUIT_ID)
    assert session.is_bound
    with pytest.raises(TrackNotBound):
        TrackSession(circuit_catalog, track_id="nowhere")


def test_payload_contents(circuit_catalog):
    samples = circuit_samples(20000, end_ms=65000, step_ms=100, throttle_pct=50.0)
    payload = build_session_payload(samples, circuit_catalog)

    assert payload["track_id"] == CIRCUIT_ID
    assert [lap["lap_time_ms"] for lap in payload["laps"]] == [20000, 20000, 20000]
    assert payload["analysis"]["consistency_rating"] == 100.0
    assert payload["analysis"]["best_lap_number"] == 1
    assert payload["sector_analysis"]["theoretical_best_ms"] <= 20000
    assert payload["metrics"]["sample_count"] == len(samples)
    assert payload["metrics"]["throttle_samples"] == len(samples)
    assert len(payload["lap_deltas"]) == 2
    assert payload["errors"] == []


def test_payload_reports_skipped_samples(circuit_catalog):
    samples = circuit_samples(PERIOD_MS)
    samples.insert(500, replace(samples[490]))
    payload = build_session_payload(samples, circuit_catalog)
    assert len(payload["errors"]) == 1
    assert payload["laps"][0]["lap_time_ms"] == 83456


def test_payload_flushes_partial_lap(circuit_catalog):
    payload = build_session_payload(circuit_samples(PERIOD_MS), circuit_catalog, flush_partial=True)
    assert [lap["partial"] for lap in payload["laps"]] == [False, True]
    assert payload["analysis"]["valid_laps"] == 1


def test_payload_without_track_raises(circuit_catalog):
    samples = circuit_samples(PERIOD_MS, origin=offset_point(CENTRE, 0.0, -50000.0))
    with pytest.raises(TrackNotBound):
        build_session_payload(samples, circuit_catalog)


def test_payload_reports_samples_skipped_before_binding(circuit_catalog):
    samples = circuit_samples(PERIOD_MS)
    samples[0] = replace(samples[0], position=GeoPoint(float("nan"), samples[0].position.lng))
    payload = build_session_payload(samples, circuit_catalog)
    assert payload["errors"] == ["sample at -500 ms: non-finite coordinates"]
    assert [lap["lap_time_ms"] for lap in payload["laps"]] == [83456]
