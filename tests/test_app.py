import pytest
from fastapi.testclient import TestClient

from app import app
from laptiming.telemetry import sample_to_dict
from laptiming.tracks import SILVERSTONE

from conftest import circuit_samples

PERIOD_MS = 83456


@pytest.fixture
def client():
    return TestClient(app)


def silverstone_records(end_ms=2 * PERIOD_MS + 5000):
    samples = circuit_samples(
        PERIOD_MS,
        end_ms=end_ms,
        step_ms=250,
        origin=SILVERSTONE.start_finish.centre,
        bearing=SILVERSTONE.start_finish.bearing_deg,
    )
    return [sample_to_dict(s) for s in samples]


def test_list_tracks(client):
    response = client.get("/api/tracks")
    assert response.status_code == 200
    ids = [track["id"] for track in response.json()]
    assert ids == sorted(["silverstone-gp", "spa-francorchamps", "monza"])


def test_nearest_tracks(client):
    centre = SILVERSTONE.start_finish.centre
    response = client.get("/api/tracks/nearest", params={"lat": centre.lat, "lng": centre.lng, "limit": 2})
    assert response.status_code == 200
    body = response.json()
    assert len(body) == 2
    assert body[0]["track_id"] == "silverstone-gp"
    assert body[0]["distance_m"] == pytest.approx(0.0, abs=0.1)


def test_detect_track(client):
    centre = SILVERSTONE.start_finish.centre
    response = client.post("/api/detect", json={"lat": centre.lat, "lng": centre.lng, "accuracy_m": 5.0})
    assert response.status_code == 200
    body = response.json()
    assert body["track_id"] == "silverstone-gp"
    assert body["candidates"][0]["confidence"] == pytest.approx(1.0)


def test_detect_far_away_binds_nothing(client):
    response = client.post("/api/detect", json={"lat": 0.0, "lng": 0.0})
    assert response.status_code == 200
    assert response.json() == {"candidates": [], "track_id": None}


def test_detect_requires_position(client):
    assert client.post("/api/detect", json={"lat": 52.0}).status_code == 400


def test_session_endpoint(client):
    response = client.post("/api/session", json={"samples": silverstone_records()})
    assert response.status_code == 200
    body = response.json()
    assert body["track_id"] == "silverstone-gp"
    assert [lap["lap_time_ms"] for lap in body["laps"]] == [PERIOD_MS, PERIOD_MS]
    assert all(lap["is_valid"] for lap in body["laps"])


def test_session_without_track_is_unprocessable(client):
    records = [
        {"timestamp_ms": i * 1000, "lat": 0.0, "lng": 0.001 * i, "speed_kmh": 50.0}
        for i in range(10)
    ]
    response = client.post("/api/session", json={"samples": records})
    assert response.status_code == 422
    assert "track not detected" in response.json()["detail"]


def test_session_rejects_malformed_samples(client):
    response = client.post("/api/session", json={"samples": [{"timestamp_ms": 0, "lat": 1.0}]})
    assert response.status_code == 400
    response = client.post("/api/session", json={"samples": "nope"})
    assert response.status_code == 400


def test_session_unknown_track(client):
    response = client.post("/api/session", json={"samples": [], "track_id": "nowhere"})
    assert response.status_code == 404


def test_compare_endpoint(client):
    response = client.post("/api/compare", json={
        "samples": silverstone_records(),
        "lap_a": 1,
        "lap_b": 2,
        "bucket_m": 20.0,
    })
    assert response.status_code == 200
    body = response.json()
    assert body["time_difference_ms"] == 0
    assert body["bucket_m"] == 20.0
    assert body["buckets"][0]["distance_m"] == 0.0


def test_compare_missing_lap(client):
    response = client.post("/api/compare", json={"samples": silverstone_records(), "lap_a": 1, "lap_b": 7})
    assert response.status_code == 404


def test_compare_requires_lap_numbers(client):
    response = client.post("/api/compare", json={"samples": silverstone_records(end_ms=1000)})
    assert response.status_code == 400
