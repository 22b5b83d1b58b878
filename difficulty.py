"""
Difficulty Policy
Maps a tier name to AI tuning, obstacle presence and ball speed.
This table is the only place those numbers live.
"""

from dataclasses import dataclass
from typing import List

from config import ConfigError
from physics import COURT_HEIGHT, COURT_WIDTH, Obstacle, ObstacleKind


@dataclass(frozen=True)
class DifficultyPolicy:
    name: str
    reaction_ms: int              # how often an AI dodger may re-evaluate
    success_probability: float    # chance a re-evaluation produces a good dodge
    speed_multiplier: float
    has_obstacles: bool
    fast_ball_speed: float        # court units per second


DIFFICULTY_TABLE = {
    "easy":   DifficultyPolicy("easy",   reaction_ms=900, success_probability=0.45,
                               speed_multiplier=0.8,  has_obstacles=False, fast_ball_speed=400.0),
    "medium": DifficultyPolicy("medium", reaction_ms=500, success_probability=0.70,
                               speed_multiplier=1.0,  has_obstacles=True,  fast_ball_speed=480.0),
    "hard":   DifficultyPolicy("hard",   reaction_ms=250, success_probability=0.90,
                               speed_multiplier=1.25, has_obstacles=True,  fast_ball_speed=560.0),
}


def resolve_difficulty(name: str) -> DifficultyPolicy:
    """Look up a tier; unknown names are a configuration error."""
    try:
        return DIFFICULTY_TABLE[name]
    except KeyError:
        raise ConfigError(
            f"unknown difficulty '{name}' (expected one of {tuple(DIFFICULTY_TABLE)})"
        ) from None


# Layout as (x, y, w, h, kind, vx) in court fractions / units per second.
# Kept clear of the starting spots of throwers and dodgers.
_OBSTACLE_LAYOUT = [
    (0.10, 0.33, 0.06, 0.03, ObstacleKind.STATIC, 0.0),
    (0.84, 0.46, 0.04, 0.06, ObstacleKind.STATIC, 0.0),
    (0.45, 0.66, 0.07, 0.025, ObstacleKind.MOVING, 90.0),
]


def build_obstacles(policy: DifficultyPolicy, enabled=None,
                    court_width: float = COURT_WIDTH,
                    court_height: float = COURT_HEIGHT) -> List[Obstacle]:
    """Obstacles for a new session. ``enabled`` overrides the tier's default."""
    use = policy.has_obstacles if enabled is None else enabled
    if not use:
        return []
    obstacles = []
    for fx, fy, fw, fh, kind, vx in _OBSTACLE_LAYOUT:
        obstacles.append(Obstacle(
            x=fx * court_width, y=fy * court_height,
            width=fw * court_width, height=fh * court_height,
            kind=kind, vx=vx * policy.speed_multiplier,
        ))
    return obstacles
