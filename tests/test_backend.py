"""
Backend Tests — in-memory store and the httpx client against a mock transport.
"""

import sys
import os
import json
import httpx
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from backend import MECHANICS, BackendError, HttpBackend, LocalBackend


# ── LocalBackend ──────────────────────────────────────────

class TestLocalBackend:

    def test_create_player_assigns_increasing_ids(self):
        store = LocalBackend()
        a, b = store.create_player("Ana"), store.create_player("  Bo ")
        assert b > a
        assert store.get_player(b)["name"] == "Bo"

    def test_blank_name_rejected(self):
        with pytest.raises(BackendError):
            LocalBackend().create_player("   ")

    @pytest.mark.parametrize("args", [
        (None, "dodger", "easy", 1),
        (1, "referee", "easy", 1),
        (1, "dodger", "insane", 1),
        (99, "dodger", "easy", 1),
    ])
    def test_submit_validation(self, args):
        store = LocalBackend()
        store.create_player("Ana")
        with pytest.raises(BackendError):
            store.submit_result(*args)

    def test_submit_upserts_totals(self):
        store = LocalBackend()
        pid = store.create_player("Ana")
        store.submit_result(pid, "thrower", "easy", 3, "win")
        store.submit_result(pid, "thrower", "easy", 2, "loss")
        store.submit_result(pid, "thrower", "hard", 7, "win")
        [row] = store.fetch_leaderboard("thrower", "easy")
        assert row["total_score"] == 5
        assert row["games_played"] == 2
        assert (row["wins"], row["losses"]) == (1, 1)

    def test_leaderboard_sorted_and_limited(self):
        store = LocalBackend()
        for name, score in [("low", 1), ("high", 9), ("mid", 4)]:
            store.submit_result(store.create_player(name), "dodger", "easy", score, "loss")
        rows = store.fetch_leaderboard("dodger", "easy", limit=2)
        assert [r["name"] for r in rows] == ["high", "mid"]

    def test_mechanics(self):
        store = LocalBackend()
        assert len(store.fetch_mechanics()) == len(MECHANICS)
        assert store.mechanics_rows()[0]["id"] == 1
        assert set(store.fetch_mechanics()[0]) == {"title", "body"}


# ── HttpBackend ───────────────────────────────────────────

def make_http(handler) -> HttpBackend:
    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://arena.test")
    return HttpBackend("http://arena.test", client=client)


class TestHttpBackend:

    def test_create_player(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"player": {"id": 42, "name": "Ana"}})

        assert make_http(handler).create_player("Ana") == 42
        assert seen == {"path": "/api/start", "body": {"name": "Ana"}}

    def test_create_player_without_id_fails(self):
        backend = make_http(lambda request: httpx.Response(200, json={"player": {}}))
        with pytest.raises(BackendError):
            backend.create_player("Ana")

    def test_submit_result_body(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})

        make_http(handler).submit_result(7, "dodger", "medium", 3, "loss")
        assert seen == {"playerId": 7, "role": "dodger", "difficulty": "medium",
                        "score": 3, "result": "loss"}

    def test_http_status_error_wrapped(self):
        backend = make_http(lambda request: httpx.Response(400, json={"error": "bad"}))
        with pytest.raises(BackendError, match="400"):
            backend.submit_result(7, "dodger", "easy", 1)

    def test_transport_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(BackendError):
            make_http(handler).fetch_mechanics()

    def test_invalid_json_wrapped(self):
        backend = make_http(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(BackendError, match="invalid JSON"):
            backend.fetch_mechanics()

    def test_fetch_mechanics_maps_content_to_body(self):
        rows = [{"id": 1, "title": "Scoring", "content": "Hit dodgers."}]
        backend = make_http(lambda request: httpx.Response(200, json=rows))
        assert backend.fetch_mechanics() == [{"title": "Scoring", "body": "Hit dodgers."}]

    def test_fetch_leaderboard_query(self):
        seen = {}

        def handler(request):
            seen.update(dict(request.url.params))
            return httpx.Response(200, json=[{"name": "Ana", "total_score": 5,
                                              "games_played": 2, "wins": 1}])

        rows = make_http(handler).fetch_leaderboard("thrower", "hard", 5)
        assert seen == {"role": "thrower", "difficulty": "hard", "limit": "5"}
        assert rows[0]["total_score"] == 5
