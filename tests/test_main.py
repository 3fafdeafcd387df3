"""Tests for the FastAPI surface."""

import pytest
from fastapi.testclient import TestClient

from constellation_tracker import main
from tests.test_tracker import loaded_tracker


@pytest.fixture
def client(monkeypatch):
    tracker = loaded_tracker("IRIDIUM 106", "IRIDIUM 162")
    monkeypatch.setattr(main, "tracker", tracker)
    # no context manager: the lifespan (and its live loop) stays off
    return TestClient(main.app), tracker


class TestApi:
    def test_state(self, client):
        http, _ = client
        state = http.get("/api/state").json()
        assert [s["number"] for s in state["satellites"]] == ["106", "162"]
        assert state["circle_radius_m"] == 2_400_000
        assert state["user"] is None

    def test_location_and_coverage(self, client):
        http, tracker = client
        pos = tracker.session.objects[0].current_position
        response = http.post("/api/location", json={"latitude": pos.lat, "longitude": pos.lng})
        assert response.status_code == 200
        state = response.json()
        assert state["covering"] == ["Iridium 106"]
        assert len(state["coverage_lines"]) == 1

    def test_bad_location(self, client):
        http, _ = client
        response = http.post("/api/location", json={"latitude": 123.0, "longitude": 0.0})
        assert response.status_code == 422

    def test_view(self, client):
        http, _ = client
        state = http.post("/api/view", json={"longitude": 360.0}).json()
        assert state["center_lng"] == 360.0
        assert all(180 <= s["lng"] <= 540 for s in state["satellites"])

    def test_flags(self, client):
        http, tracker = client
        http.post("/api/flags", json={"show_spares": True})
        assert tracker.session.show_spares is True
        assert tracker.session.show_coverage is True

    def test_select_toggle(self, client):
        http, _ = client
        assert http.post("/api/select/106").json() == {"selected": "106"}
        assert http.post("/api/select/106").json() == {"selected": None}
        assert http.post("/api/select/999").status_code == 404
        http.post("/api/select/106")
        assert http.delete("/api/select").json() == {"selected": None}

    def test_satellite_info(self, client):
        http, _ = client
        info = http.get("/api/satellites/106").json()
        assert info["name"] == "Iridium 106"
        assert info["params"]["inclination_deg"] == 51.6439
        assert http.get("/api/satellites/999").status_code == 404

    def test_refresh(self, client):
        http, _ = client
        assert http.post("/api/refresh").json() == {"staged": 2}

    def test_select_by_index(self, client):
        http, tracker = client
        assert http.post("/api/select/index/1").json() == {"selected": "162", "index": 1}
        assert tracker.snapshot()["satellites"][1]["highlighted"] is True
        assert http.post("/api/select/index/1").json() == {"selected": None, "index": None}
        assert http.post("/api/select/index/7").status_code == 404


def test_shared_number_is_a_conflict(monkeypatch):
    monkeypatch.setattr(main, "tracker", loaded_tracker("DUMMY A", "DUMMY B"))
    http = TestClient(main.app)
    assert http.post("/api/select/Unknown").status_code == 409
    assert http.post("/api/select/index/0").json() == {"selected": "Unknown", "index": 0}


class TestWebSocket:
    def test_pushes_state_on_connect_and_after_each_tick(self, client):
        http, tracker = client
        with http.websocket_connect("/ws") as ws:
            first = ws.receive_json()
            assert [s["visible"] for s in first["satellites"]] == [True, False]

            tracker.session.show_spares = True
            tracker.scheduler.tick()
            second = ws.receive_json()
            assert [s["visible"] for s in second["satellites"]] == [True, True]


class TestLifespan:
    def test_crashed_tracker_is_logged(self, client, monkeypatch, caplog):
        _, tracker = client

        async def crash():
            raise RuntimeError("tracker exploded")

        monkeypatch.setattr(tracker, "run", crash)
        with TestClient(main.app) as http:
            assert http.get("/api/state").status_code == 200
        assert "Tracker stopped unexpectedly" in caplog.text
        assert "tracker exploded" in caplog.text
