"""Tests for the HTTP API."""

import os
import tempfile

from fastapi.testclient import TestClient

from gridlog.api import app, get_processor, init_storage

from packet_helpers import SESSION_UID


def _header(frame=1):
    return {"session_uid": SESSION_UID, "session_time": 1.0, "frame_identifier": frame}


def _participants(names):
    return {
        "packet_type": "participants",
        "header": _header(),
        "num_active_cars": len(names),
        "participants": [{"name": n} for n in names],
    }


def _history(car_idx, lap_times, frame=2):
    return {
        "packet_type": "session_history",
        "header": _header(frame),
        "car_idx": car_idx,
        "lap_history": [{"lap_time_ms": t, "sector1_time_ms": 30000} for t in lap_times],
    }


class TestAPI:

    def setup_method(self):
        init_storage(os.path.join(tempfile.mkdtemp(), "api.db"))
        self.client = TestClient(app)

    def _setup_league(self):
        r = self.client.post("/drivers", json={"id": "drv_alice", "name": "Alice", "steam_id": "alice_gt"})
        assert r.status_code == 200
        r = self.client.post("/drivers", json={"id": "drv_bob", "name": "Bob", "steam_id": "bob_gt"})
        assert r.status_code == 200
        r = self.client.post("/seasons", json={"id": "s2024", "name": "League", "year": 2024, "is_active": True})
        assert r.status_code == 200
        r = self.client.post("/events", json={"season_id": "s2024", "track_name": "Melbourne"})
        assert r.status_code == 200
        return r.json()["event"]["id"]

    def test_health(self):
        r = self.client.get("/health")
        assert r.status_code == 200
        assert r.json() == {"ok": True}

    def test_config(self):
        r = self.client.get("/config")
        assert r.status_code == 200
        assert "flush_dedupe" in r.json()

    def test_drivers_listed(self):
        self._setup_league()
        r = self.client.get("/drivers")
        assert [d["id"] for d in r.json()["drivers"]] == ["drv_alice", "drv_bob"]

    def test_packets_ignored_before_start(self):
        self._setup_league()
        r = self.client.post("/udp/packet", json=_participants(["alice_gt"]))
        assert r.status_code == 200
        assert r.json()["status"] == "ignored"

    def test_live_flow_to_analytics(self):
        event_id = self._setup_league()
        r = self.client.post("/udp/start")
        assert r.status_code == 200
        assert r.json()["season_id"] == "s2024"
        assert r.json()["event_id"] == event_id

        r = self.client.post("/udp/packet", json=_participants(["alice_gt", "bob_gt"]))
        assert r.json()["applied"] == 2

        self.client.post("/udp/packet", json=_history(0, [92000], frame=2))
        self.client.post("/udp/packet", json=_history(0, [92000, 90500, 91200, 0], frame=3))
        self.client.post("/udp/packet", json=_history(1, [93000, 92500], frame=3))

        status = self.client.get("/udp/status").json()
        assert status["pending_fragments"] == 3
        assert status["mappings"] == {"0": "drv_alice", "1": "drv_bob"}

        r = self.client.post("/udp/flush")
        assert r.status_code == 200
        assert r.json()["written"] == 5

        r = self.client.get(f"/sessions/{SESSION_UID}/drivers/drv_alice/laps")
        assert r.status_code == 200
        laps = r.json()["laps"]
        assert [l["lap_number"] for l in laps] == [1, 2, 3]
        assert laps[1]["lap_time"] == "1:30.500"

        r = self.client.get(f"/sessions/{SESSION_UID}/drivers/drv_alice/analytics")
        assert r.status_code == 200
        pace = r.json()["analytics"]["pace"]
        assert pace["fastest_lap"] == 90500
        assert pace["average_lap"] == 91233
        assert pace["fastest_lap_number"] == 2

    def test_second_flush_writes_nothing(self):
        self._setup_league()
        self.client.post("/udp/start")
        self.client.post("/udp/packet", json=_participants(["alice_gt"]))
        self.client.post("/udp/packet", json=_history(0, [90000]))
        assert self.client.post("/udp/flush").json()["written"] == 1
        assert self.client.post("/udp/flush").json()["written"] == 0

    def test_reset_drops_session_state(self):
        self._setup_league()
        self.client.post("/udp/start")
        self.client.post("/udp/packet", json=_participants(["alice_gt"]))
        self.client.post("/udp/packet", json=_history(0, [90000]))

        r = self.client.post("/udp/reset")
        assert r.status_code == 200
        assert r.json()["running"] is True
        assert r.json()["mappings"] == {}
        assert r.json()["pending_fragments"] == 0
        assert self.client.post("/udp/flush").json()["written"] == 0

    def test_bad_packet_rejected(self):
        r = self.client.post("/udp/packet", json={"packet_type": "car_telemetry", "header": _header()})
        assert r.status_code == 400
        data = r.json()
        assert data["error"]["code"] == 400
        assert data["error"]["type"] == "http_error"
        assert data["error"]["details"]["code"] == "bad_packet"

    def test_flush_failure_maps_to_503(self):
        self._setup_league()
        self.client.post("/udp/start")
        self.client.post("/udp/packet", json=_participants(["alice_gt"]))
        self.client.post("/udp/packet", json=_history(0, [90000]))

        processor = get_processor()

        def broken(records):
            raise RuntimeError("disk full")

        processor.storage.bulk_insert_lap_records = broken

        r = self.client.post("/udp/flush")
        assert r.status_code == 503
        assert r.json()["error"]["details"]["code"] == "flush_failed"
        assert processor.pending_fragment_count == 1

    def test_activate_unknown_season(self):
        r = self.client.post("/seasons/nope/activate")
        assert r.status_code == 404
        assert r.json()["error"]["code"] == 404

    def test_set_unknown_event(self):
        r = self.client.put("/udp/event", json={"event_id": "evt_missing"})
        assert r.status_code == 404

    def test_set_season_and_event(self):
        event_id = self._setup_league()
        assert self.client.put("/udp/season", json={"season_id": "s2024"}).status_code == 200
        assert self.client.put("/udp/event", json={"event_id": event_id}).status_code == 200
        status = self.client.get("/udp/status").json()
        assert status["season_id"] == "s2024"
        assert status["event_id"] == event_id

    def test_missing_laps_404(self):
        r = self.client.get("/sessions/1/drivers/drv_x/laps")
        assert r.status_code == 404

    def test_race_analytics_endpoint(self):
        body = {
            "lap_data": [
                {"lap_number": 1, "lap_time_ms": 92000},
                {"lapNumber": 2, "lapTimeInMs": 90500},
                {"lap_number": 3, "lap_time_ms": 91200},
            ],
            "driver": {"grid_position": 5, "race_position": 2},
        }
        r = self.client.post("/analytics/race", json=body)
        assert r.status_code == 200
        analytics = r.json()["analytics"]
        assert analytics["pace"]["fastest_lap_number"] == 2
        assert analytics["positions_gained"] == 3

    def test_race_analytics_without_valid_laps(self):
        r = self.client.post("/analytics/race", json={"lap_data": [{"lap_number": 1, "lap_time_ms": 0}]})
        assert r.status_code == 200
        assert r.json()["analytics"] is None

    def test_compare_endpoint(self):
        body = {
            "target_laps": [{"lap_number": 1, "lap_time_ms": 90000}, {"lap_number": 2, "lap_time_ms": 91000}],
            "comparison_laps": [{"lap_number": 1, "lap_time_ms": 89000}, {"lap_number": 2, "lap_time_ms": 90000}],
        }
        r = self.client.post("/analytics/compare", json=body)
        assert r.status_code == 200
        assert [d["delta_seconds"] for d in r.json()["deltas"]] == [1.0, 2.0]

    def test_tire_wear_compare_endpoint(self):
        body = {
            "target_laps": [{"lap_number": 1, "car_damage_data": {"tyres_wear": [1, 1, 1, 1]}}],
            "comparison_laps": [{"lap_number": 1, "carDamageData": {"tyres_wear": [3, 3, 3, 3]}}],
        }
        r = self.client.post("/analytics/tire-wear/compare", json=body)
        assert r.status_code == 200
        row = r.json()["laps"][0]
        assert row["target_average_wear"] == 1.0
        assert row["comparison_average_wear"] == 3.0
