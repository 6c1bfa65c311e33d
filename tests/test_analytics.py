import math

import pytest

from laptiming import analytics
from laptiming.errors import InsufficientData
from laptiming.models import GeoPoint, TelemetrySample

from conftest import CIRCUIT_ID, circuit_samples, make_lap


class TestConsistencyRating:
    def test_identical_times_score_100(self):
        assert analytics.consistency_rating([90000, 90000, 90000]) == 100.0

    def test_single_lap_scores_100(self):
        assert analytics.consistency_rating([90000]) == 100.0

    def test_known_value(self):
        # population stddev 500 over mean 90500
        expected = 100.0 - 1000.0 * 500.0 / 90500.0
        assert analytics.consistency_rating([90000, 91000]) == pytest.approx(expected)

    def test_clamped_to_zero(self):
        assert analytics.consistency_rating([30000, 90000, 150000]) == 0.0

    def test_bounds(self):
        for times in ([1, 2, 3], [80000, 80100], [60000, 61000, 59000, 70000]):
            assert 0.0 <= analytics.consistency_rating(times) <= 100.0

    def test_empty_raises(self):
        with pytest.raises(InsufficientData):
            analytics.consistency_rating([])


class TestTrackAnalysis:
    def test_uses_valid_laps_only(self):
        laps = [
            make_lap(1, 95000),
            make_lap(2, 60000, is_valid=False),
            make_lap(3, 91000),
            make_lap(4, 93000),
        ]
        analysis = analytics.track_analysis(laps)
        assert analysis.track_id == CIRCUIT_ID
        assert analysis.total_laps == 4
        assert analysis.valid_laps == 3
        assert analysis.best_lap_number == 3
        assert analysis.best_lap_time_ms == 91000
        assert analysis.avg_lap_time_ms == pytest.approx(93000.0)
        assert not analysis.degraded

    def test_degraded_when_no_valid_laps(self, caplog):
        laps = [make_lap(1, 95000, is_valid=False), make_lap(2, 90000, is_valid=False)]
        with caplog.at_level("WARNING"):
            analysis = analytics.track_analysis(laps)
        assert analysis.degraded
        assert analysis.valid_laps == 0
        assert analysis.best_lap_number == 2
        assert "no valid laps" in caplog.text

    def test_best_lap_tie_goes_to_earliest(self):
        analysis = analytics.track_analysis([make_lap(1, 90000), make_lap(2, 90000)])
        assert analysis.best_lap_number == 1
        assert analysis.consistency_rating == 100.0

    def test_mixed_tracks_have_no_track_id(self):
        laps = [make_lap(1, 90000), make_lap(2, 91000, track_id="other")]
        assert analytics.track_analysis(laps).track_id is None

    def test_empty_raises(self):
        with pytest.raises(InsufficientData):
            analytics.track_analysis([])

    def test_is_reproducible(self):
        laps = [make_lap(1, 95000), make_lap(2, 91000)]
        assert analytics.track_analysis(laps) == analytics.track_analysis(list(laps))


def test_sector_analysis_theoretical_best():
    laps = [
        make_lap(1, 90000, sector_times=(30000, 31000, 29000)),
        make_lap(2, 89000, sector_times=(29500, 31500, 28000)),
        make_lap(3, 88000, is_valid=False, sector_times=(20000, 20000, 20000)),
    ]
    result = analytics.sector_analysis(laps)

    assert [s.ordinal for s in result.sectors] == [1, 2, 3]
    assert [s.best_time_ms for s in result.sectors] == [29500, 31000, 28000]
    assert [s.best_lap_number for s in result.sectors] == [2, 1, 2]
    assert result.theoretical_best_ms == 29500 + 31000 + 28000
    assert result.sectors[0].avg_time_ms == pytest.approx(29750.0)


def test_sector_analysis_without_sectors_raises():
    with pytest.raises(InsufficientData):
        analytics.sector_analysis([make_lap(1, 90000)])


class TestSessionMetrics:
    def test_counts_and_distance(self):
        samples = circuit_samples(20000, start_ms=0, end_ms=20000, step_ms=100,
                                  throttle_pct=60.0, lateral_g=0.8)
        metrics = analytics.session_metrics(samples, 20.0)

        assert metrics.sample_count == len(samples)
        assert metrics.total_distance_m == pytest.approx(2 * math.pi * 200.0, rel=1e-3)
        assert metrics.throttle_samples == len(samples)
        assert metrics.brake_samples == 0
        assert metrics.cornering_samples == len(samples)
        assert metrics.throttle_time_s == pytest.approx(20.0)
        assert metrics.max_speed_kmh == pytest.approx(samples[0].speed_kmh)
        assert metrics.avg_rpm is None

    def test_mode_thresholds_are_exclusive(self):
        samples = [
            TelemetrySample(0, GeoPoint(52.0, -1.0), 50.0, throttle_pct=10.0, brake_pct=11.0, rpm=4000.0),
            TelemetrySample(100, GeoPoint(52.0001, -1.0), 60.0, throttle_pct=11.0, brake_pct=0.0, rpm=6000.0),
        ]
        metrics = analytics.session_metrics(samples, 0.1)
        assert metrics.throttle_samples == 1
        assert metrics.brake_samples == 1
        assert metrics.avg_speed_kmh == pytest.approx(55.0)
        assert metrics.avg_rpm == pytest.approx(5000.0)
        assert metrics.max_rpm == pytest.approx(6000.0)

    def test_empty_session(self):
        metrics = analytics.session_metrics([], 0.0)
        assert metrics.sample_count == 0
        assert metrics.total_distance_m == 0.0


@pytest.mark.parametrize("times, expected", [
    ([95000, 94000, 90000, 89000], analytics.TREND_IMPROVING),
    ([89000, 90000, 94000, 95000], analytics.TREND_DECLINING),
    ([90000, 90100, 90000, 90100], analytics.TREND_STABLE),
    ([95000, 85000], analytics.TREND_STABLE),
])
def test_lap_time_trend(times, expected):
    assert analytics.lap_time_trend(times) == expected


def test_consistency_trend():
    erratic_then_steady = [80000, 100000, 85000, 90000, 90000, 90000]
    assert analytics.consistency_trend(erratic_then_steady) == analytics.TREND_IMPROVING
    assert analytics.consistency_trend(list(reversed(erratic_then_steady))) == analytics.TREND_DECLINING
    assert analytics.consistency_trend([90000] * 5) == analytics.TREND_STABLE
