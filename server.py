"""
Dodge Arena Web Server — Layer 3 (FastAPI + WebSocket)

Runs the fixed-rate game loop, relays browser key events into the
controller and broadcasts one JSON frame per tick.  Also serves the
player / score / leaderboard REST routes on top of an in-memory store.
"""

import asyncio
import json
import logging
import os
import random
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from backend import VALID_DIFFICULTIES, VALID_ROLES, BackendError, LocalBackend
from config import ConfigError, GameConfig
from controller import DodgeController
from controls import InputSnapshot
from physics import BALL_RADIUS, COURT_HEIGHT, COURT_WIDTH, HIT_RADIUS, PLAYER_RADIUS

logger = logging.getLogger(__name__)

# ── Controller + store ──────────────────────────────────────────────────────

store = LocalBackend()

_seed = os.environ.get("DODGE_SEED")
ctrl = DodgeController(backend=store,
                       rng=random.Random(int(_seed)) if _seed else None)


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(game_loop())
    yield
    task.cancel()


app = FastAPI(lifespan=lifespan)

# ── Client / input state ────────────────────────────────────────────────────

clients: list[WebSocket] = []
held_keys: dict[str, bool] = {}

# ── Async game loop ─────────────────────────────────────────────────────────

TARGET_FPS = 60
FRAME_DT = 1.0 / TARGET_FPS
MAX_FRAME_DT = 0.05


async def game_loop():
    """Main game loop running at ~60 fps."""
    last_time = time.perf_counter()

    while True:
        now = time.perf_counter()
        dt = now - last_time
        last_time = now

        # Clamp dt to avoid spiral-of-death
        if dt > MAX_FRAME_DT:
            dt = MAX_FRAME_DT

        ctrl.step(dt, InputSnapshot.from_keys(held_keys))

        if clients:
            frame_msg = _build_frame_message()
            dead: list[WebSocket] = []
            for ws in clients:
                try:
                    await ws.send_text(frame_msg)
                except Exception:
                    dead.append(ws)
            for ws in dead:
                if ws in clients:
                    clients.remove(ws)
        else:
            ctrl.pending_events.clear()

        # Sleep to maintain target FPS
        elapsed = time.perf_counter() - now
        sleep_time = FRAME_DT - elapsed
        if sleep_time > 0:
            await asyncio.sleep(sleep_time)
        else:
            await asyncio.sleep(0)


def _build_frame_message() -> str:
    """Serialize current state into a JSON frame message."""
    events = list(ctrl.pending_events)
    ctrl.pending_events.clear()

    frame = {
        "type": "frame",
        "state": ctrl.get_state(),
        "events": events,
        "sounds": [ev.get("type", "") for ev in ctrl.physics_events],
        "status": ctrl.status_msg,
        "info": ctrl.info_msg,
    }
    return json.dumps(frame, separators=(',', ':'))


# ── WebSocket commands ──────────────────────────────────────────────────────

def _handle_start(msg: dict) -> Optional[str]:
    """Start a session from a ``start`` command. Returns an error text or None."""
    try:
        config = GameConfig.from_dict(msg)
        ctrl.start_session(config)
    except ConfigError as exc:
        logger.warning("[WS] rejected start: %s", exc)
        return str(exc)
    held_keys.clear()
    return None


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    clients.append(ws)

    await ws.send_text(json.dumps({
        "type": "init",
        "court_width": COURT_WIDTH,
        "court_height": COURT_HEIGHT,
        "player_radius": PLAYER_RADIUS,
        "ball_radius": BALL_RADIUS,
        "hit_radius": HIT_RADIUS,
        "difficulties": list(VALID_DIFFICULTIES),
        "roles": list(VALID_ROLES),
    }))

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue

            cmd = msg.get("cmd", "")
            if cmd == "key_down":
                held_keys[str(msg.get("key", "")).lower()] = True
            elif cmd == "key_up":
                held_keys[str(msg.get("key", "")).lower()] = False
            elif cmd == "start":
                error = _handle_start(msg)
                if error:
                    await ws.send_text(json.dumps({"type": "error", "msg": error}))
            elif cmd == "exit":
                ctrl.exit_session()
                held_keys.clear()
            elif cmd == "get_state":
                await ws.send_text(json.dumps({"type": "state", "data": ctrl.get_state()}))
    except WebSocketDisconnect:
        pass
    finally:
        if ws in clients:
            clients.remove(ws)
        held_keys.clear()


# ── REST: players, scores, leaderboard ──────────────────────────────────────

class StartRequest(BaseModel):
    name: str = ""


class ScoreRequest(BaseModel):
    playerId: Optional[int] = None
    role: str = "dodger"
    difficulty: str = "easy"
    score: int = 0
    result: Optional[str] = None


@app.post("/api/start")
async def api_start(req: StartRequest):
    if not req.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    pid = store.create_player(req.name)
    return {"player": store.get_player(pid)}


@app.get("/api/mechanics")
async def api_mechanics():
    return store.mechanics_rows()


@app.get("/api/leaderboard")
async def api_leaderboard(role: str = "dodger", difficulty: str = "easy",
                          limit: int = Query(10, ge=1, le=100)):
    return store.fetch_leaderboard(role, difficulty, limit)


@app.post("/api/score")
async def api_score(req: ScoreRequest):
    try:
        return store.submit_result(req.playerId, req.role, req.difficulty,
                                   req.score, req.result)
    except BackendError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/health")
async def api_health():
    return {"status": "OK", "session": ctrl.phase.value}


# ── Static files + root route (frontend is optional) ────────────────────────

if os.path.isdir("static"):
    app.mount("/static", StaticFiles(directory="static"), name="static")

    @app.get("/")
    async def root():
        return FileResponse("static/index.html")


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(message)s")
    uvicorn.run("server:app", host="0.0.0.0", port=int(os.environ.get("PORT", 8000)),
                reload=False)
