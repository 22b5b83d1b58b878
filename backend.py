"""
Backend collaborators: player registry, score submission, leaderboard.

Two interchangeable implementations of the same four calls:
  - HttpBackend  : talks to the REST API over HTTP (httpx)
  - LocalBackend : in-memory store, used by server.py and by tests

The game core only ever catches ``BackendError`` from these calls.
"""

import itertools
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

VALID_ROLES = ("dodger", "thrower")
VALID_DIFFICULTIES = ("easy", "medium", "hard")
VALID_RESULTS = ("win", "loss")

MECHANICS = [
    ("Game Objective",
     "Dodgers must avoid balls thrown by throwers. Throwers aim to hit dodgers with balls."),
    ("Controls",
     "Thrower 1: WASD to move, R/F to aim, Space to throw, Q/E abilities. "
     "Thrower 2: Arrows to move, comma/period to aim, Enter to throw, N/M abilities. "
     "Dodgers: WASD for player 1, IJKL for player 2, Arrows for player 3, TFGH for player 4."),
    ("Scoring",
     "Human throwers earn a point for each dodger hit. Human dodgers earn a point "
     "for every AI ball that flies past them."),
    ("Abilities",
     "Each human has two abilities with two uses each: speed boost, shield, "
     "freeze opponents or rapid fire. Abilities cool down for three seconds."),
    ("Winning",
     "The round ends when every dodger has been hit."),
]


class BackendError(Exception):
    """A collaborator call failed (network, HTTP status or bad request)."""


# ──────────────────────────────────────────────────────────────────────────────
# In-memory backend
# ──────────────────────────────────────────────────────────────────────────────

class LocalBackend:
    """Process-local stand-in for the REST backend."""

    def __init__(self):
        self._ids = itertools.count(1)
        self._players: dict[int, dict] = {}
        self._stats: dict[tuple, dict] = {}

    def create_player(self, name: str) -> int:
        name = (name or "").strip()
        if not name:
            raise BackendError("name is required")
        pid = next(self._ids)
        self._players[pid] = {"id": pid, "name": name}
        logger.info("[API] created player %d (%s)", pid, name)
        return pid

    def get_player(self, player_id) -> Optional[dict]:
        return self._players.get(player_id)

    def submit_result(self, player_id, role: str, difficulty: str, score: int,
                      result: Optional[str] = None) -> dict:
        if not player_id:
            raise BackendError("playerId required")
        if role not in VALID_ROLES:
            raise BackendError("invalid role")
        if difficulty not in VALID_DIFFICULTIES:
            raise BackendError("invalid difficulty")
        if player_id not in self._players:
            raise BackendError("player not found")

        key = (player_id, role, difficulty)
        row = self._stats.setdefault(key, {
            "total_score": 0, "games_played": 0, "wins": 0, "losses": 0,
        })
        row["total_score"] += int(score)
        row["games_played"] += 1
        if result == "win":
            row["wins"] += 1
        elif result == "loss":
            row["losses"] += 1
        return {"ok": True, "message": "Score saved successfully"}

    def mechanics_rows(self) -> list:
        return [{"id": i, "title": t, "content": c}
                for i, (t, c) in enumerate(MECHANICS, start=1)]

    def fetch_mechanics(self) -> list:
        return [{"title": t, "body": c} for t, c in MECHANICS]

    def fetch_leaderboard(self, role: str = "dodger", difficulty: str = "easy",
                          limit: int = 10) -> list:
        rows = []
        for (pid, r, d), stats in self._stats.items():
            if r != role or d != difficulty:
                continue
            rows.append({
                "player_id": pid,
                "name": self._players[pid]["name"],
                **stats,
            })
        rows.sort(key=lambda row: row["total_score"], reverse=True)
        return rows[:max(0, int(limit))]


# ──────────────────────────────────────────────────────────────────────────────
# HTTP backend
# ──────────────────────────────────────────────────────────────────────────────

class HttpBackend:
    """Client for the REST API (``/api/start``, ``/api/score``, ...)."""

    def __init__(self, base_url: str, timeout: float = 5.0,
                 client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs):
        try:
            resp = self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            raise BackendError(
                f"{method} {path} -> {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise BackendError(f"{method} {path} failed: {exc}") from exc
        except ValueError as exc:
            raise BackendError(f"{method} {path} returned invalid JSON") from exc

    def create_player(self, name: str):
        data = self._request("POST", "/api/start", json={"name": name})
        player = data.get("player") or {}
        if "id" not in player:
            raise BackendError("/api/start response has no player id")
        return player["id"]

    def submit_result(self, player_id, role: str, difficulty: str, score: int,
                      result: Optional[str] = None) -> dict:
        return self._request("POST", "/api/score", json={
            "playerId": player_id,
            "role": role,
            "difficulty": difficulty,
            "score": int(score),
            "result": result,
        })

    def fetch_mechanics(self) -> list:
        rows = self._request("GET", "/api/mechanics")
        return [{"title": r.get("title", ""), "body": r.get("content", "")} for r in rows]

    def fetch_leaderboard(self, role: str = "dodger", difficulty: str = "easy",
                          limit: int = 10) -> list:
        rows = self._request("GET", "/api/leaderboard", params={
            "role": role, "difficulty": difficulty, "limit": limit,
        })
        return [{
            "name": r.get("name"),
            "total_score": r.get("total_score", 0),
            "games_played": r.get("games_played", 0),
            "wins": r.get("wins", 0),
        } for r in rows]
