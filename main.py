"""
Dodge Arena Desktop -- Ursina host (3-Tier Architecture)
Layer 3: Ursina rendering / keyboard.
Layer 2: controller.py (DodgeController)
Layer 1: physics.py (ArenaPhysics)

Menu: T/G pick thrower or dodger side, 1-4 humans, Z/X/C difficulty,
Enter to start.  Esc leaves a running game.
"""

import logging
import math
import os

from ursina import (
    Ursina, Entity, Text, camera, color, destroy, held_keys,
    time as ursina_time,
)

from backend import HttpBackend, LocalBackend
from config import ConfigError, GameConfig, MAX_HUMAN_DODGERS, MAX_HUMAN_THROWERS
from controller import DodgeController, Phase, DEFAULT_INFO_MSG
from controls import InputSnapshot
from physics import BALL_RADIUS, COURT_HEIGHT, COURT_WIDTH, PLAYER_RADIUS

logger = logging.getLogger(__name__)

# ── Layer 2: controller instance ──────────────────────────────────────────────
_backend_url = os.environ.get("DODGE_BACKEND_URL")
backend = HttpBackend(_backend_url) if _backend_url else LocalBackend()
ctrl = DodgeController(backend=backend)

# ── Court → world mapping (1 world unit = 100 court units, y flipped) ─────────
SCALE = 0.01


def _to_world(x: float, y: float):
    return (x - COURT_WIDTH / 2) * SCALE, -(y - COURT_HEIGHT / 2) * SCALE


# ──────────────────────────────────────────
# Ursina App
# ──────────────────────────────────────────

app = Ursina(borderless=False, title="Dodge Arena", size=(1280, 800))
camera.orthographic = True
camera.fov = COURT_HEIGHT * SCALE

court = Entity(model="quad", color=color.hsv(210, 0.5, 0.35),
               scale=(COURT_WIDTH * SCALE, COURT_HEIGHT * SCALE), z=1)
midline = Entity(model="quad", color=color.white, scale=(COURT_WIDTH * SCALE, 0.03), z=0.5)

# ── Entities (L3 owns these) ──────────────────────────────────────────────────
player_entities: dict[str, Entity] = {}
obstacle_entities: list[Entity] = []
ball_entity = None
aim_entities: dict[str, Entity] = {}

# ── Menu selections ───────────────────────────────────────────────────────────
menu = {"role": "thrower", "humans": 1, "difficulty": "easy"}

# ── UI ────────────────────────────────────────────────────────────────────────
info_text = Text(text=DEFAULT_INFO_MSG, position=(-0.85, 0.48), scale=1.0, color=color.white)
status_text = Text(text="", position=(-0.85, 0.44), scale=1.0, color=color.light_gray)
result_text = Text(text="", origin=(0, 0), scale=2.0, color=color.yellow)


def _menu_text() -> str:
    return (f"Side: {menu['role']}  Humans: {menu['humans']}  Difficulty: {menu['difficulty']}"
            f"   [T/G] side  [1-4] humans  [Z/X/C] difficulty  [Enter] start")


# ──────────────────────────────────────────
# Scene building
# ──────────────────────────────────────────

def _clear_scene():
    global ball_entity
    for ent in [*player_entities.values(), *obstacle_entities, *aim_entities.values()]:
        destroy(ent)
    player_entities.clear()
    obstacle_entities.clear()
    aim_entities.clear()
    if ball_entity is not None:
        destroy(ball_entity)
        ball_entity = None


def _build_scene():
    _clear_scene()
    for p in ctrl.entities():
        player_entities[p.id] = Entity(
            model="circle", color=color.hex(p.color),
            scale=PLAYER_RADIUS * 2 * SCALE, position=_to_world(p.x, p.y),
        )
    for ob in ctrl.obstacles:
        obstacle_entities.append(Entity(
            model="quad", color=color.gray,
            scale=(ob.width * SCALE, ob.height * SCALE),
            position=_to_world(ob.x + ob.width / 2, ob.y + ob.height / 2),
        ))


def _sync_scene():
    global ball_entity
    for p in ctrl.entities():
        ent = player_entities.get(p.id)
        if ent is None:
            continue
        ent.enabled = p.alive
        ent.position = _to_world(p.x, p.y)
        ent.alpha = 0.5 if p.frozen else 1.0

    for ob, ent in zip(ctrl.obstacles, obstacle_entities):
        ent.position = _to_world(ob.x + ob.width / 2, ob.y + ob.height / 2)

    if ctrl.ball is not None:
        if ball_entity is None:
            ball_entity = Entity(model="circle", color=color.yellow,
                                 scale=BALL_RADIUS * 2 * SCALE)
        ball_entity.position = _to_world(ctrl.ball.x, ctrl.ball.y)
    elif ball_entity is not None:
        destroy(ball_entity)
        ball_entity = None

    for t in ctrl.throwers:
        guide = aim_entities.get(t.id)
        if guide is None:
            continue
        guide.position = _to_world(t.x, t.y)
        guide.rotation_z = math.degrees(t.aim_angle)   # clockwise, matches the y-down court


# ──────────────────────────────────────────
# Controller event dispatcher (L2 → L3)
# ──────────────────────────────────────────

def _handle_controller_event(ev: dict):
    t = ev["type"]
    if t == "init_session":
        result_text.text = ""
        _build_scene()
    elif t == "clear_session":
        _clear_scene()
        result_text.text = ""
    elif t == "aim_guide":
        aim_entities[ev["thrower"]] = Entity(
            model="quad", color=color.white, origin=(-0.5, 0),
            scale=(1.2, 0.02), z=-0.1,
        )
    elif t == "clear_aim":
        guide = aim_entities.pop(ev["thrower"], None)
        if guide is not None:
            destroy(guide)
    elif t == "show_result":
        result_text.text = f"{ev['msg']}  [Enter] menu"


# ──────────────────────────────────────────
# Input handler
# ──────────────────────────────────────────

def input(key):
    if ctrl.phase is Phase.RUNNING:
        if key == "escape":
            ctrl.exit_session()
        return

    if ctrl.phase is Phase.ENDED:
        if key == "enter":
            ctrl.exit_session()
        return

    if key == "t":
        menu["role"] = "thrower"
        menu["humans"] = min(menu["humans"], MAX_HUMAN_THROWERS)
    elif key == "g":
        menu["role"] = "dodger"
    elif key in ("1", "2", "3", "4"):
        limit = MAX_HUMAN_THROWERS if menu["role"] == "thrower" else MAX_HUMAN_DODGERS
        menu["humans"] = min(int(key), limit)
    elif key in ("z", "x", "c"):
        menu["difficulty"] = {"z": "easy", "x": "medium", "c": "hard"}[key]
    elif key == "enter":
        try:
            ctrl.start_session(GameConfig(role=menu["role"], humans=menu["humans"],
                                          difficulty=menu["difficulty"]))
        except ConfigError as exc:
            status_text.text = f"Config error: {exc}"


# ──────────────────────────────────────────
# Update loop
# ──────────────────────────────────────────

def update():
    dt = min(ursina_time.dt, 0.05)
    ctrl.step(dt, InputSnapshot.from_keys(held_keys))

    for ev in ctrl.pending_events:
        _handle_controller_event(ev)
    ctrl.pending_events.clear()

    if ctrl.phase is Phase.SETUP:
        info_text.text = _menu_text()
        return

    info_text.text = ctrl.info_msg
    status_text.text = ctrl.status_msg
    _sync_scene()


# ──────────────────────────────────────────
# Run
# ──────────────────────────────────────────

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(message)s")
    app.run()
