import math

import numpy as np
import pytest

from laptiming.sectors import match_boundary, split_sectors
from laptiming.segmenter import LapSegmenter

from conftest import CENTRE, build_circuit_track, circuit_position, circuit_samples, offset_point

PERIOD_MS = 83456


def closed_lap(track):
    return LapSegmenter(track).feed_many(circuit_samples(PERIOD_MS))[0]


def test_sector_times_sum_to_lap_time(circuit_track):
    lap = closed_lap(circuit_track)
    assert len(lap.sectors) == 2
    assert sum(s.time_ms for s in lap.sectors) == lap.lap_time_ms


def test_matched_boundary_splits_at_half_lap(circuit_track):
    lap = closed_lap(circuit_track)
    first, second = lap.sectors
    assert [first.ordinal, second.ordinal] == [1, 2]
    assert first.time_ms == pytest.approx(PERIOD_MS / 2, abs=50)
    assert not first.interpolated and not second.interpolated
    assert first.distance_m == pytest.approx(math.pi * 200.0, rel=0.01)
    assert first.distance_m + second.distance_m == pytest.approx(lap.distance_m, rel=1e-6)
    assert first.max_speed_kmh == pytest.approx(lap.max_speed_kmh)


def test_unmatched_boundary_falls_back_to_nominal_lengths():
    track = build_circuit_track(boundary=offset_point(CENTRE, 5000.0, 5000.0))
    lap = closed_lap(track)
    assert [s.interpolated for s in lap.sectors] == [True, True]
    assert [s.time_ms for s in lap.sectors] == [41728, 41728]


def test_short_buffer_has_no_sectors(circuit_track):
    samples = circuit_samples(PERIOD_MS, start_ms=0, end_ms=0)
    assert split_sectors(samples, circuit_track.sectors) == ()


def test_match_boundary_returns_closest_segment():
    samples = circuit_samples(PERIOD_MS, start_ms=0, end_ms=PERIOD_MS, step_ms=1000)
    lats = np.array([s.position.lat for s in samples])
    lngs = np.array([s.position.lng for s in samples])

    segment, fraction, distance = match_boundary(circuit_position(math.pi), lats, lngs)
    assert samples[segment].timestamp_ms <= PERIOD_MS / 2 <= samples[segment + 1].timestamp_ms
    assert 0.0 <= fraction <= 1.0
    assert distance < 1.0


def test_match_boundary_respects_search_start():
    samples = circuit_samples(PERIOD_MS, start_ms=0, end_ms=PERIOD_MS, step_ms=1000)
    lats = np.array([s.position.lat for s in samples])
    lngs = np.array([s.position.lng for s in samples])
    assert match_boundary(CENTRE, lats, lngs, start_segment=len(samples) - 1) is None
    segment, _, _ = match_boundary(CENTRE, lats, lngs, start_segment=10)
    assert segment >= 10
