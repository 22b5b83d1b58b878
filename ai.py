"""
AI Controller
Per-tick decisions for AI dodgers and AI throwers.

Nothing in here raises: a decision that cannot be made this tick (no target,
zero-length aim, blocked move) is simply skipped.
"""

import random
from typing import List, Optional, Tuple

from entities import Dodger, Thrower
from physics import COURT_MARGIN, ArenaPhysics, Obstacle, Projectile, normalize

# Dodger tuning (distances in court units, scaled by the entity's speed multiplier)
IDLE_WANDER_SPEED = 60.0      # units / s, peak of the random idle jitter
DODGE_PROXIMITY = 120.0       # lateral distance at which a ball is a threat
DODGE_STEP = 80.0
FUMBLE_STEP = 30.0
FUMBLE_CHANCE = 0.4           # chance a failed reaction still moves one step
CENTER_DRIFT = 0.02

# Thrower tuning
THROWER_WANDER_SPEED = 120.0
WANDER_REVERSE_CHANCE = 0.02  # per tick
THROW_CHANCE = 0.01           # per tick, only while holding an idle turn


def update_ai_dodger(d: Dodger, ball: Optional[Projectile], now: float, dt: float,
                     rng: random.Random, physics: ArenaPhysics,
                     obstacles: List[Obstacle]) -> None:
    band = physics.dodger_band()
    speed = d.speed_multiplier * d.boost_multiplier

    if ball is None:
        dx = (rng.random() - 0.5) * IDLE_WANDER_SPEED * dt * speed
        dy = (rng.random() - 0.5) * IDLE_WANDER_SPEED * dt * speed
        physics.try_move(d, d.x + dx, d.y + dy, band, obstacles)
        return

    if now - d.last_reaction < d.reaction_ms / 1000.0:
        return
    d.last_reaction = now

    if rng.random() > d.success_probability:
        # Bungled dodge: sometimes a random step, usually frozen in place
        if rng.random() < FUMBLE_CHANCE:
            step = FUMBLE_STEP * speed * (-1 if rng.random() < 0.5 else 1)
            physics.try_move(d, d.x + step, d.y, band, obstacles)
        return

    if abs(ball.x - d.x) < DODGE_PROXIMITY:
        left_space = d.x - COURT_MARGIN
        right_space = (physics.court_width - COURT_MARGIN) - d.x
        direction = 1 if right_space > left_space else -1
        physics.try_move(d, d.x + direction * DODGE_STEP * speed, d.y, band, obstacles)
    else:
        drift = (physics.court_width / 2 - d.x) * CENTER_DRIFT * speed
        physics.try_move(d, d.x + drift, d.y, band, obstacles)


def update_ai_thrower(t: Thrower, dt: float, rng: random.Random,
                      physics: ArenaPhysics, obstacles: List[Obstacle]) -> None:
    """Lateral wander with occasional reversals; bounces off court edges and obstacles."""
    if rng.random() < WANDER_REVERSE_CHANCE:
        t.wander_dir = -t.wander_dir

    step = t.wander_dir * THROWER_WANDER_SPEED * t.speed_multiplier * t.boost_multiplier * dt
    nx = t.x + step
    if nx < COURT_MARGIN or nx > physics.court_width - COURT_MARGIN:
        t.wander_dir = -t.wander_dir
    if not physics.try_move(t, nx, t.y, physics.lane_for(t.side), obstacles):
        t.wander_dir = -t.wander_dir


def wants_to_throw(rng: random.Random) -> bool:
    return rng.random() < THROW_CHANCE


def aim_at_random_dodger(t: Thrower, dodgers: List[Dodger],
                         rng: random.Random) -> Optional[Tuple[float, float]]:
    """Unit direction toward a random living, unshielded dodger, or None."""
    targets = [d for d in dodgers if d.alive and not d.shielded]
    if not targets:
        return None
    target = rng.choice(targets)
    return normalize(target.x - t.x, target.y - t.y)
