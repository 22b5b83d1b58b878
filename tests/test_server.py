"""
Server Tests — REST routes and the WebSocket command channel.

The client is used without a ``with`` block so the background game loop
never starts; ticks are driven by hand where a test needs them.
"""

import sys
import os
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import server
from controller import Phase


@pytest.fixture
def client():
    server.ctrl.exit_session()
    yield TestClient(server.app)
    server.ctrl.exit_session()


class TestRest:

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "OK", "session": "setup"}

    def test_start_requires_name(self, client):
        assert client.post("/api/start", json={"name": "  "}).status_code == 400

    def test_start_then_score_then_leaderboard(self, client):
        player = client.post("/api/start", json={"name": "Rita"}).json()["player"]
        resp = client.post("/api/score", json={"playerId": player["id"], "role": "thrower",
                                               "difficulty": "hard", "score": 6,
                                               "result": "win"})
        assert resp.status_code == 200
        rows = client.get("/api/leaderboard",
                          params={"role": "thrower", "difficulty": "hard"}).json()
        row = next(r for r in rows if r["player_id"] == player["id"])
        assert row["total_score"] == 6 and row["wins"] == 1

    def test_score_validation(self, client):
        resp = client.post("/api/score", json={"playerId": 1, "role": "nobody"})
        assert resp.status_code == 400

    def test_leaderboard_limit_bounds(self, client):
        assert client.get("/api/leaderboard", params={"limit": 0}).status_code == 422

    def test_mechanics(self, client):
        rows = client.get("/api/mechanics").json()
        assert rows and {"id", "title", "content"} <= set(rows[0])


class TestWebSocket:

    def test_init_message(self, client):
        with client.websocket_connect("/ws") as ws:
            init = ws.receive_json()
        assert init["type"] == "init"
        assert init["court_width"] > init["court_height"]
        assert "thrower" in init["roles"]

    def test_start_get_state_exit(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "start", "role": "dodger", "humans": 2,
                          "difficulty": "medium", "name": "Kai"})
            ws.send_json({"cmd": "get_state"})
            state = ws.receive_json()
            assert state["type"] == "state"
            assert state["data"]["phase"] == "running"
            assert sum(d["human"] for d in state["data"]["dodgers"]) == 2

            ws.send_json({"cmd": "exit"})
            ws.send_json({"cmd": "get_state"})
            assert ws.receive_json()["data"]["phase"] == "setup"

    def test_bad_start_reports_error(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "start", "role": "dodger", "difficulty": "impossible"})
            msg = ws.receive_json()
        assert msg["type"] == "error"
        assert server.ctrl.phase is Phase.SETUP

    def test_key_events_update_held_keys(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"cmd": "key_down", "key": "W"})
            ws.send_json({"cmd": "get_state"})
            ws.receive_json()
            assert server.held_keys.get("w") is True
            ws.send_json({"cmd": "key_up", "key": "w"})
            ws.send_json({"cmd": "get_state"})
            ws.receive_json()
            assert server.held_keys.get("w") is False


class TestFrame:

    def test_frame_message_drains_events(self, client):
        server.ctrl.exit_session()
        server._handle_start({"role": "thrower", "difficulty": "easy", "name": "Lee"})
        frame = server._build_frame_message()
        assert '"type":"frame"' in frame
        assert "init_session" in frame
        assert server.ctrl.pending_events == []
