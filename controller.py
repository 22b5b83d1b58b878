"""
DodgeController — Layer 2 (Game Logic)

Owns the session state, the per-tick simulation order and the turn rules.
Communicates with Layer 3 (server.py / main.py) via two queues:
  - pending_events  : rendering commands (init_session, spawn_ball, show_result, …)
  - physics_events  : obstacle bounces, for sounds / effects

Layer 3 calls:
  ctrl.start_session(config)   — validate, build teams, start running
  ctrl.step(dt, snapshot)      — advance one tick with the keys held this frame
  ctrl.exit_session()          — back to setup, nothing submitted
  ctrl.pending_events          — list of dicts to consume and act on
  ctrl.get_state()             — plain-dict view for drawing / broadcasting
"""

import enum
import itertools
import logging
import math
import random
from typing import Optional

import numpy as np

from ai import aim_at_random_dodger, update_ai_dodger, update_ai_thrower, wants_to_throw
from backend import BackendError
from config import GameConfig
from controls import DODGER_BINDINGS, THROWER_BINDINGS, InputController, InputSnapshot
from difficulty import build_obstacles, resolve_difficulty
from entities import (
    SPEED_BOOST_FACTOR, AbilityType, Dodger, Thrower,
    make_ai_dodger, make_ai_thrower, make_human_dodger, make_human_thrower,
)
from physics import (
    COURT_HEIGHT, COURT_WIDTH, THROW_OFFSET, ArenaPhysics, Projectile,
    aim_direction, normalize,
)
from scheduler import ScheduledActionQueue

logger = logging.getLogger(__name__)

DEFAULT_INFO_MSG = "Choose thrower or dodger, pick a difficulty and start."

_THROWER_LEGEND = ("Throwers: P1 WASD move, R/F aim, Space throw, Q/E abilities.  "
                   "P2 Arrows move, ,/. aim, Enter throw, N/M abilities.")
_DODGER_LEGEND = "Dodgers: D1 WASD+Q/E, D2 IJKL+U/O, D3 Arrows+N/M, D4 TFGH+R/Y."

_HUMAN_COLORS = ["#4ac0e6", "#7fe36a", "#ffd86b", "#c88cff"]


class Phase(enum.Enum):
    SETUP = "setup"
    RUNNING = "running"
    ENDED = "ended"


class DodgeController:
    """Layer 2: session state machine + simulation orchestration."""

    # ── Class-level constants ─────────────────────────────────────────────────
    DODGER_COUNT       = 4
    AI_THROWERS_DODGER_MODE = 2
    AI_THROW_DELAY     = (0.6, 1.3)     # s, wind-up before an AI throw
    RAPID_FIRE_DELAY   = 0.3
    TURN_WATCH_INTERVAL = 0.7
    ABILITY_COOLDOWN   = 3.0
    AIM_RATE           = math.radians(90.0)   # rad / s
    THROWER_MARGIN_Y   = 60.0

    EFFECT_DURATION = {
        AbilityType.SPEED_BOOST: 3.0,
        AbilityType.SHIELD:      3.0,
        AbilityType.FREEZE:      2.0,
        AbilityType.RAPID_FIRE:  3.0,
    }
    THROWER_ABILITIES = [AbilityType.RAPID_FIRE, AbilityType.FREEZE]
    DODGER_ABILITIES  = [AbilityType.SHIELD, AbilityType.SPEED_BOOST]

    # ── Constructor ───────────────────────────────────────────────────────────

    def __init__(self, backend=None, rng: Optional[random.Random] = None,
                 court_width: float = COURT_WIDTH, court_height: float = COURT_HEIGHT):
        self.backend = backend
        self.rng = rng or random.Random()
        self.physics = ArenaPhysics(court_width, court_height, rng=self.rng)
        self.input = InputController()
        self.scheduler = ScheduledActionQueue()
        self._entity_ids = itertools.count(1)

        # Session
        self.phase = Phase.SETUP
        self.generation = 0
        self.clock = 0.0
        self.tick_count = 0
        self.config: Optional[GameConfig] = None
        self.policy = None
        self.player_id = None
        self.result_submitted = False

        # Teams / world
        self.throwers: list[Thrower] = []
        self.dodgers: list[Dodger] = []
        self.obstacles: list = []

        # Turn + flight
        self.ball: Optional[Projectile] = None
        self.ball_in_flight = False
        self.current_thrower_index = 0
        self.throws_resolved = 0
        self._last_ball_id = 0

        self.score = 0

        # Status / info messages (L3 reads these to update text)
        self.status_msg = ""
        self.info_msg = DEFAULT_INFO_MSG

        # Event queues
        self.pending_events: list[dict] = []   # L3 rendering commands
        self.physics_events: list[dict] = []   # bounces

    # ── Read-only views ───────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self.phase is Phase.RUNNING

    @property
    def current_thrower(self) -> Optional[Thrower]:
        if not self.throwers:
            return None
        return self.throwers[self.current_thrower_index]

    @property
    def alive_dodgers(self) -> list:
        return [d for d in self.dodgers if d.alive]

    def entities(self) -> list:
        return [*self.throwers, *self.dodgers]

    # ──────────────────────────────────────────────────────────────────────────
    # Session lifecycle
    # ──────────────────────────────────────────────────────────────────────────

    def start_session(self, config: GameConfig) -> None:
        """Set up and start a new session. Raises ConfigError on bad choices."""
        config.validate()
        policy = resolve_difficulty(config.difficulty)

        self._teardown()
        self.config = config
        self.policy = policy
        self.player_id = self._create_player(config.player_name)

        self.throwers, self.dodgers = self._build_teams(config, policy)
        self.obstacles = build_obstacles(policy, config.features.obstacles,
                                         self.physics.court_width, self.physics.court_height)

        self.phase = Phase.RUNNING
        self.pending_events.append({"type": "init_session"})
        self.info_msg = _THROWER_LEGEND if config.role == "thrower" else _DODGER_LEGEND
        self._refresh_status()
        logger.info("[GAME] session %d started: role=%s difficulty=%s humans=%d obstacles=%d",
                    self.generation, config.role, config.difficulty, config.humans,
                    len(self.obstacles))

        if not self.current_thrower.is_human:
            self._schedule_ai_throw()
        self._schedule_turn_watch()

    def exit_session(self) -> None:
        """Leave to the menu without submitting anything."""
        if self.phase is Phase.SETUP:
            return
        logger.info("[GAME] session %d exited (score %d)", self.generation, self.score)
        self._teardown()
        self.throwers, self.dodgers, self.obstacles = [], [], []
        self.config = None
        self.phase = Phase.SETUP
        self.pending_events.append({"type": "clear_session"})
        self.info_msg = DEFAULT_INFO_MSG
        self.status_msg = ""

    def _teardown(self) -> None:
        # Bumping the generation turns every queued action into a no-op
        self.generation += 1
        self.scheduler.clear()
        self.input.reset()
        self.clock = 0.0
        self.tick_count = 0
        self.ball = None
        self.ball_in_flight = False
        self.current_thrower_index = 0
        self.throws_resolved = 0
        self.score = 0
        self.player_id = None
        self.result_submitted = False

    def _create_player(self, name: str):
        if self.backend is None:
            return None
        try:
            return self.backend.create_player(name)
        except BackendError as exc:
            logger.warning("[GAME] player create failed, playing locally: %s", exc)
            return None

    def _build_teams(self, config: GameConfig, policy) -> tuple:
        w, h = self.physics.court_width, self.physics.court_height
        ids = self._entity_ids
        thrower_kit = self.THROWER_ABILITIES if config.features.abilities else []
        dodger_kit = self.DODGER_ABILITIES if config.features.abilities else []

        def thrower_slot(i):
            side = "top" if i % 2 == 0 else "bottom"
            y = self.THROWER_MARGIN_Y if side == "top" else h - self.THROWER_MARGIN_Y
            return w * (0.4 + 0.2 * i), y, side

        throwers, dodgers = [], []
        if config.role == "thrower":
            for i in range(config.humans):
                x, y, side = thrower_slot(i)
                name = "You" if i == 0 else f"You {i + 1}"
                throwers.append(make_human_thrower(
                    name, THROWER_BINDINGS[i], x, y, side=side,
                    color=_HUMAN_COLORS[i], abilities=thrower_kit, ids=ids))
            if config.humans == 1:
                x, y, side = thrower_slot(1)
                throwers.append(make_ai_thrower("AI-Thrower", policy, x, y, side=side, ids=ids))
            for i in range(self.DODGER_COUNT):
                dodgers.append(make_ai_dodger(f"AI-Dodger-{i + 1}", policy,
                                              w * (0.25 + i * 0.15), h * 0.5, ids=ids))
        else:
            for i in range(self.DODGER_COUNT):
                x = w * (0.25 + i * 0.15)
                if i < config.humans:
                    dodgers.append(make_human_dodger(
                        f"You{i + 1}", DODGER_BINDINGS[i], x, h * 0.5,
                        color=_HUMAN_COLORS[i], abilities=dodger_kit, ids=ids))
                else:
                    dodgers.append(make_ai_dodger(f"AI-Dodger-{i + 1}", policy, x, h * 0.5,
                                                  color="#ff7b7b", ids=ids))
            for i in range(self.AI_THROWERS_DODGER_MODE):
                x, y, side = thrower_slot(i)
                throwers.append(make_ai_thrower(f"AI-T{i + 1}", policy, x, y, side=side,
                                                ids=ids))
        return throwers, dodgers

    # ──────────────────────────────────────────────────────────────────────────
    # Main loop
    # ──────────────────────────────────────────────────────────────────────────

    def step(self, dt: float, snapshot: Optional[InputSnapshot] = None) -> None:
        """Advance one tick. Called every frame by L3; never raises."""
        if self.phase is not Phase.RUNNING:
            return
        try:
            self._tick(dt, snapshot if snapshot is not None else InputSnapshot())
        except Exception:
            logger.exception("[GAME] tick %d failed; continuing", self.tick_count)

    def _tick(self, dt: float, snapshot: InputSnapshot) -> None:
        self.tick_count += 1
        self.clock += dt
        self.physics_events.clear()

        self.scheduler.drain(self.clock, self.generation)

        intents = self.input.read(snapshot, self.entities())
        self._apply_human_intents(intents, dt)                       # 1
        self._update_ai_throwers(dt)                                 # 2
        self._update_ai_dodgers(dt)                                  # 3
        self.physics.update_obstacles(self.obstacles, dt)            # 4
        self._update_ball(dt)                                        # 5-9
        for ent in self.entities():                                  # 10
            for ability in ent.abilities:
                ability.tick(dt)

        self.physics_events.extend(self.physics.events)
        self.physics.events.clear()

    # ──────────────────────────────────────────────────────────────────────────
    # Humans
    # ──────────────────────────────────────────────────────────────────────────

    def _apply_human_intents(self, intents: dict, dt: float) -> None:
        for idx, t in enumerate(self.throwers):
            intent = intents.get(t.id)
            if intent is None or not t.alive:
                continue
            self._apply_ability_keys(t, intent)
            if t.frozen:
                continue
            self._move_human(t, intent, dt, self.physics.lane_for(t.side))
            if intent.aim:
                t.aim_angle += intent.aim * self.AIM_RATE * dt
                t.clamp_aim()
            self._handle_throw_key(idx, t, intent)

        band = self.physics.dodger_band()
        for d in self.dodgers:
            intent = intents.get(d.id)
            if intent is None or not d.alive:
                continue
            self._apply_ability_keys(d, intent)
            if not d.frozen:
                self._move_human(d, intent, dt, band)

    def _apply_ability_keys(self, ent, intent) -> None:
        for slot, pressed in enumerate(intent.abilities):
            if pressed:
                self.activate_ability(ent, slot)

    def _move_human(self, ent, intent, dt: float, y_range) -> None:
        if not (intent.move_x or intent.move_y):
            return
        step = ent.move_speed * dt
        self.physics.try_move(ent, ent.x + intent.move_x * step, ent.y + intent.move_y * step,
                              y_range, self.obstacles)

    def _handle_throw_key(self, idx: int, t: Thrower, intent) -> None:
        if self.config.features.throw_style == "instant":
            if intent.throw.pressed:
                self.attempt_throw(idx, aim_direction(t.aim_angle))
            return

        if intent.throw.pressed and self._may_throw(idx):
            t.aiming = True
            self.pending_events.append({"type": "aim_guide", "thrower": t.id})
        elif intent.throw.released and t.aiming:
            t.aiming = False
            self.pending_events.append({"type": "clear_aim", "thrower": t.id})
            self.attempt_throw(idx, aim_direction(t.aim_angle))

    # ──────────────────────────────────────────────────────────────────────────
    # Throwing
    # ──────────────────────────────────────────────────────────────────────────

    def _may_throw(self, index: int) -> bool:
        return (self.phase is Phase.RUNNING and not self.ball_in_flight
                and index == self.current_thrower_index)

    def attempt_throw(self, index: int, direction) -> bool:
        """Launch a ball for thrower ``index``. Out-of-turn or mid-flight → False."""
        if not self._may_throw(index):
            return False
        if not 0 <= index < len(self.throwers):
            return False
        t = self.throwers[index]
        if not t.alive or t.frozen:
            return False
        unit = normalize(float(direction[0]), float(direction[1]))
        if unit is None:
            logger.debug("[GAME] %s: zero-length throw skipped", t.name)
            return False

        self._last_ball_id += 1
        start = np.array([t.x, t.y]) + np.array(unit) * THROW_OFFSET
        self.ball = Projectile(id=self._last_ball_id, position=start, direction=unit,
                               speed=self.policy.fast_ball_speed, owner_index=index)
        self.ball_in_flight = True
        self.pending_events.append({"type": "spawn_ball", "ball": self.ball.id, "owner": t.id})
        return True

    def _rapid_rethrow(self, index: int) -> None:
        if not self._may_throw(index):
            return
        t = self.throwers[index]
        if not t.rapid_fire:
            return
        if t.is_human:
            self.attempt_throw(index, aim_direction(t.aim_angle))
        else:
            direction = aim_at_random_dodger(t, self.dodgers, self.rng)
            if direction is not None:
                self.attempt_throw(index, direction)

    def resolve_throw(self, hit: bool) -> None:
        """Finish the current flight: score, rotate the turn, maybe end the session."""
        ball = self.ball
        if ball is None:
            return
        owner = self.throwers[ball.owner_index]
        if hit and owner.is_human:
            self.score += 1
            self.pending_events.append({"type": "score", "score": self.score})

        for d in self.dodgers:
            d.scored_this_ball = False
        self.ball = None
        self.ball_in_flight = False
        self.throws_resolved += 1
        # Rapid fire holds the turn with the owner until the effect expires
        keep_turn = owner.rapid_fire and owner.alive
        if not keep_turn:
            self.current_thrower_index = (self.current_thrower_index + 1) % len(self.throwers)
        self.pending_events.append({"type": "ball_resolved", "ball": ball.id, "hit": hit})

        if keep_turn:
            index = ball.owner_index
            self.scheduler.schedule(self.clock + self.RAPID_FIRE_DELAY, self.generation,
                                    "rapid_fire", lambda: self._rapid_rethrow(index),
                                    owner=owner.id)
        elif not self.current_thrower.is_human:
            self._schedule_ai_throw()
        self._refresh_status()

        if not self.alive_dodgers:
            self._end_session()

    # ──────────────────────────────────────────────────────────────────────────
    # Ball
    # ──────────────────────────────────────────────────────────────────────────

    def _update_ball(self, dt: float) -> None:
        ball = self.ball
        if ball is None:
            return
        self.physics.advance(ball, dt)
        if self.obstacles:
            self.physics.deflect(ball, self.obstacles)

        hit = self.physics.find_hit(ball, self.dodgers)
        if hit is not None:
            victim = self.dodgers[hit]
            victim.alive = False
            self.pending_events.append({"type": "dodger_hit", "dodger": victim.id})
            self.resolve_throw(hit=True)
            return

        if self.config.features.credit_dodges:
            self._credit_passes(ball)

        if self.physics.out_of_bounds(ball):
            self.resolve_throw(hit=False)

    def _credit_passes(self, ball: Projectile) -> None:
        """One point per human dodger an AI ball flies past, once per ball."""
        owner = self.throwers[ball.owner_index]
        if owner.is_human:
            return
        for d in self.dodgers:
            if not d.alive or not d.is_human or d.scored_this_ball:
                continue
            passed = ball.y > d.y if owner.side == "top" else ball.y < d.y
            if passed:
                d.scored_this_ball = True
                self.score += 1
                self.pending_events.append({"type": "score", "score": self.score,
                                            "dodger": d.id})

    # ──────────────────────────────────────────────────────────────────────────
    # AI
    # ──────────────────────────────────────────────────────────────────────────

    def _update_ai_throwers(self, dt: float) -> None:
        for idx, t in enumerate(self.throwers):
            if t.is_human or not t.alive or t.frozen:
                continue
            update_ai_thrower(t, dt, self.rng, self.physics, self.obstacles)
            if (idx == self.current_thrower_index and not self.ball_in_flight
                    and not self._windup_pending(t) and wants_to_throw(self.rng)):
                self._ai_throw(idx)

    def _update_ai_dodgers(self, dt: float) -> None:
        for d in self.dodgers:
            if d.is_human or not d.alive or d.frozen:
                continue
            update_ai_dodger(d, self.ball, self.clock, dt, self.rng,
                             self.physics, self.obstacles)

    def _windup_pending(self, t: Thrower) -> bool:
        return bool(self.scheduler.pending("ai_throw", owner=t.id))

    def _schedule_ai_throw(self) -> None:
        idx = self.current_thrower_index
        t = self.throwers[idx]
        delay = self.rng.uniform(*self.AI_THROW_DELAY)
        self.scheduler.schedule(self.clock + delay, self.generation, "ai_throw",
                                lambda: self._ai_throw(idx), owner=t.id)

    def _ai_throw(self, idx: int) -> None:
        if not self._may_throw(idx):
            return
        t = self.throwers[idx]
        if t.is_human or t.frozen:
            return
        direction = aim_at_random_dodger(t, self.dodgers, self.rng)
        if direction is None:
            return
        if self.attempt_throw(idx, direction):
            logger.debug("[AI] %s threw ball %d", t.name, self.ball.id)

    def _schedule_turn_watch(self) -> None:
        self.scheduler.schedule(self.clock + self.TURN_WATCH_INTERVAL, self.generation,
                                "turn_watch", self._turn_watch)

    def _turn_watch(self) -> None:
        """Re-arm a wind-up if an AI thrower sits on an idle turn."""
        if self.phase is not Phase.RUNNING:
            return
        t = self.current_thrower
        if not t.is_human and not self.ball_in_flight and not self._windup_pending(t):
            self._schedule_ai_throw()
        self._schedule_turn_watch()

    # ──────────────────────────────────────────────────────────────────────────
    # Abilities
    # ──────────────────────────────────────────────────────────────────────────

    def activate_ability(self, ent, slot: int) -> bool:
        """Try slot ``slot`` of ``ent``. False when spent, cooling down or unusable."""
        if self.phase is not Phase.RUNNING or not self.config.features.abilities:
            return False
        if not ent.alive or not 0 <= slot < len(ent.abilities):
            return False
        ability = ent.abilities[slot]
        if not self._effect_applies(ent, ability.type):
            return False
        if not ability.consume(self.ABILITY_COOLDOWN):
            return False

        self._apply_effect(ent, ability.type)
        self.pending_events.append({"type": "ability_used", "entity": ent.id,
                                    "ability": ability.type.value, "uses": ability.uses})
        return True

    @staticmethod
    def _effect_applies(ent, kind: AbilityType) -> bool:
        if kind is AbilityType.SHIELD:
            return isinstance(ent, Dodger)
        if kind is AbilityType.RAPID_FIRE:
            return isinstance(ent, Thrower)
        return True

    def _apply_effect(self, ent, kind: AbilityType) -> None:
        until = self.clock + self.EFFECT_DURATION[kind]
        if kind is AbilityType.SPEED_BOOST:
            ent.boost_multiplier = SPEED_BOOST_FACTOR
            targets = [ent]
        elif kind is AbilityType.SHIELD:
            ent.shielded = True
            targets = [ent]
        elif kind is AbilityType.RAPID_FIRE:
            ent.rapid_fire = True
            targets = [ent]
        else:
            targets = self.dodgers if isinstance(ent, Thrower) else self.throwers
            targets = [o for o in targets if o.alive]
            for o in targets:
                o.frozen = True
                if isinstance(o, Thrower):
                    o.aiming = False

        for o in targets:
            o.effect_until[kind.value] = max(o.effect_until.get(kind.value, 0.0), until)
        self.scheduler.schedule(until, self.generation, "effect_expiry",
                                lambda: self._expire_effect(targets, kind), owner=ent.id)

    def _expire_effect(self, targets: list, kind: AbilityType) -> None:
        if self.phase is not Phase.RUNNING:
            return
        for o in targets:
            # A later activation pushed the expiry out
            if o.effect_until.get(kind.value, 0.0) > self.clock:
                continue
            o.effect_until.pop(kind.value, None)
            if kind is AbilityType.SPEED_BOOST:
                o.boost_multiplier = 1.0
            elif kind is AbilityType.SHIELD:
                o.shielded = False
            elif kind is AbilityType.RAPID_FIRE:
                o.rapid_fire = False
            else:
                o.frozen = False

    # ──────────────────────────────────────────────────────────────────────────
    # End of session
    # ──────────────────────────────────────────────────────────────────────────

    def _end_session(self) -> None:
        self.phase = Phase.ENDED
        result = "win" if self.config.role == "thrower" else "loss"
        msg = f"Game over! Your score: {self.score}"
        self.pending_events.append({"type": "show_result", "msg": msg,
                                    "score": self.score, "result": result})
        self.status_msg = msg
        logger.info("[GAME] session %d ended: %s score=%d", self.generation, result, self.score)
        self._submit_result(result)

    def _submit_result(self, result: str) -> None:
        if self.result_submitted:
            return
        self.result_submitted = True
        if self.backend is None or self.player_id is None:
            logger.info("[GAME] no player id; score not submitted")
            return
        try:
            self.backend.submit_result(self.player_id, self.config.role,
                                       self.config.difficulty, self.score, result)
        except BackendError as exc:
            logger.warning("[GAME] score submit failed: %s", exc)

    # ──────────────────────────────────────────────────────────────────────────
    # HUD text + state export
    # ──────────────────────────────────────────────────────────────────────────

    def _refresh_status(self) -> None:
        t = self.current_thrower
        who = "-" if t is None else ("Human" if t.is_human else t.name)
        self.status_msg = (f"Turn: {who}    Dodgers Remaining: {len(self.alive_dodgers)}"
                           f"    Score: {self.score}")

    def get_state(self) -> dict:
        """Plain-dict snapshot for hosts (rounded for the wire)."""
        def player(p):
            row = {
                "id": p.id, "name": p.name, "x": round(p.x, 2), "y": round(p.y, 2),
                "human": p.is_human, "alive": p.alive, "color": p.color,
                "frozen": p.frozen,
                "abilities": [{"type": a.type.value, "uses": a.uses,
                               "cooldown": round(a.cooldown, 2)} for a in p.abilities],
            }
            if isinstance(p, Thrower):
                row.update(side=p.side, aim=round(math.degrees(p.aim_angle), 1),
                           aiming=p.aiming, rapid_fire=p.rapid_fire)
            else:
                row.update(shielded=p.shielded)
            return row

        ball = None
        if self.ball is not None:
            ball = {"id": self.ball.id, "x": round(self.ball.x, 2), "y": round(self.ball.y, 2)}

        return {
            "phase": self.phase.value,
            "role": self.config.role if self.config else None,
            "difficulty": self.config.difficulty if self.config else None,
            "score": self.score,
            "turn": self.current_thrower_index,
            "throwers": [player(t) for t in self.throwers],
            "dodgers": [player(d) for d in self.dodgers],
            "obstacles": [{"x": round(o.x, 2), "y": round(o.y, 2),
                           "w": o.width, "h": o.height, "kind": o.kind.value}
                          for o in self.obstacles],
            "ball": ball,
        }
