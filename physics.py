"""
Dodge Arena Physics — Layer 1
Court geometry, collision tests, projectile and obstacle motion.
"""

import enum
import math
import random
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

# ──────────────────────────────────────────────
# Constants (court units, y grows downward)
# ──────────────────────────────────────────────
COURT_WIDTH: float = 1280.0
COURT_HEIGHT: float = 800.0
COURT_MARGIN: float = 30.0          # players never closer than this to the edge

PLAYER_RADIUS: float = 14.0
BALL_RADIUS: float = 10.0
HIT_RADIUS: float = 26.0            # ball-vs-dodger distance threshold
OUT_OF_BOUNDS_PAD: float = 40.0     # ball is out once this far past an edge
THROW_OFFSET: float = 30.0          # ball spawns this far in front of the thrower

# Dodger band and thrower lanes, as fractions of COURT_HEIGHT
DODGER_BAND: Tuple[float, float] = (0.4, 0.6)
TOP_LANE: Tuple[float, float] = (0.0, 0.3)
BOTTOM_LANE: Tuple[float, float] = (0.7, 1.0)

# ── Runtime-editable behavior constants ───────────────────────────────────────
# Read by name every call, so hosts can tweak them live via:
#   import physics as _phys;  _phys.BOUNCE_JITTER = 0.3
BOUNCE_JITTER: float = 0.2          # max random perturbation per component on deflection
BOUNCE_NUDGE: float = 1.0           # extra clearance after pushing the ball off an obstacle

EPS: float = 1e-9


# ──────────────────────────────────────────────
# Geometry helpers
# ──────────────────────────────────────────────

def clamp(x: float, lo: float, hi: float) -> float:
    """Clamp value between low and high bounds"""
    return lo if x < lo else hi if x > hi else x


def normalize(x: float, y: float) -> Optional[Tuple[float, float]]:
    """Unit vector of (x, y), or None for a zero-length vector."""
    length = math.hypot(x, y)
    if length < EPS:
        return None
    return x / length, y / length


def circle_hit(ax: float, ay: float, bx: float, by: float,
               threshold_radius: float) -> bool:
    """True when the two points are strictly closer than ``threshold_radius``."""
    return math.hypot(ax - bx, ay - by) < threshold_radius


def closest_point_on_rect(px: float, py: float, rect: "Obstacle") -> Tuple[float, float]:
    """Clamp (px, py) into the rectangle's extent."""
    return (clamp(px, rect.x, rect.x + rect.width),
            clamp(py, rect.y, rect.y + rect.height))


def circle_hits_rect(px: float, py: float, radius: float, rect: "Obstacle") -> bool:
    cx, cy = closest_point_on_rect(px, py, rect)
    return circle_hit(px, py, cx, cy, radius)


def blocked_by_obstacles(px: float, py: float, radius: float,
                         obstacles: List["Obstacle"]) -> bool:
    return any(circle_hits_rect(px, py, radius, ob) for ob in obstacles)


def aim_direction(angle: float) -> Tuple[float, float]:
    """Screen-space unit vector for an aim angle in radians (0 = right, +90° = down)."""
    return math.cos(angle), math.sin(angle)


# ──────────────────────────────────────────────
# Records
# ──────────────────────────────────────────────

class ObstacleKind(enum.Enum):
    STATIC = "static"
    MOVING = "moving"


@dataclass
class Obstacle:
    """Axis-aligned rectangle; moving obstacles slide horizontally."""
    x: float
    y: float
    width: float
    height: float
    kind: ObstacleKind = ObstacleKind.STATIC
    vx: float = 0.0


@dataclass
class Projectile:
    """The single ball in flight."""
    id: int
    position: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    direction: np.ndarray = field(default_factory=lambda: np.array([0.0, 1.0]))
    speed: float = 400.0
    owner_index: int = 0

    def __post_init__(self):
        self.position = np.array(self.position, dtype=float)
        self.direction = np.array(self.direction, dtype=float)

    @property
    def x(self) -> float:
        return float(self.position[0])

    @property
    def y(self) -> float:
        return float(self.position[1])


# ──────────────────────────────────────────────
# Engine
# ──────────────────────────────────────────────

class ArenaPhysics:
    """Moves obstacles and the projectile; reports what happened in ``events``."""

    def __init__(self, court_width: float = COURT_WIDTH, court_height: float = COURT_HEIGHT,
                 rng: Optional[random.Random] = None):
        self.court_width = court_width
        self.court_height = court_height
        self.rng = rng or random.Random()
        self.events: list = []

    # ── Obstacles ────────────────────────────
    def update_obstacles(self, obstacles: List[Obstacle], dt: float) -> None:
        for ob in obstacles:
            if ob.kind is not ObstacleKind.MOVING:
                continue
            ob.x += ob.vx * dt
            if ob.x < 0.0:
                ob.x = 0.0
                ob.vx = abs(ob.vx)
            elif ob.x + ob.width > self.court_width:
                ob.x = self.court_width - ob.width
                ob.vx = -abs(ob.vx)

    # ── Projectile ───────────────────────────
    @staticmethod
    def advance(ball: Projectile, dt: float) -> None:
        ball.position = ball.position + ball.speed * ball.direction * dt

    def deflect(self, ball: Projectile, obstacles: List[Obstacle]) -> bool:
        """Bounce the ball off the first obstacle it overlaps. Returns True on bounce."""
        for ob in obstacles:
            cx, cy = closest_point_on_rect(ball.x, ball.y, ob)
            if not circle_hit(ball.x, ball.y, cx, cy, BALL_RADIUS):
                continue

            jitter = BOUNCE_JITTER
            nx = -ball.direction[0] + self.rng.uniform(-jitter, jitter)
            ny = -ball.direction[1] + self.rng.uniform(-jitter, jitter)
            unit = normalize(nx, ny)
            if unit is None:
                unit = (-float(ball.direction[0]), -float(ball.direction[1]))
            ball.direction = np.array(unit, dtype=float)

            # Push the ball clear of the rectangle so it cannot re-trap next tick
            away = normalize(ball.x - cx, ball.y - cy)
            if away is None:
                away = unit
            clearance = BALL_RADIUS + BOUNCE_NUDGE
            ball.position = np.array([cx + away[0] * clearance,
                                      cy + away[1] * clearance])
            self.events.append({"type": "ball_obstacle", "ball": ball.id})
            return True
        return False

    def out_of_bounds(self, ball: Projectile) -> bool:
        pad = OUT_OF_BOUNDS_PAD
        return (ball.y > self.court_height + pad or ball.y < -pad or
                ball.x > self.court_width + pad or ball.x < -pad)

    def find_hit(self, ball: Projectile, dodgers: list) -> Optional[int]:
        """Index of the first living, unshielded dodger within HIT_RADIUS."""
        for i, d in enumerate(dodgers):
            if not d.alive or d.shielded:
                continue
            if circle_hit(ball.x, ball.y, d.x, d.y, HIT_RADIUS):
                return i
        return None

    # ── Player motion helpers ────────────────
    def lane_for(self, side: str) -> Tuple[float, float]:
        lo, hi = TOP_LANE if side == "top" else BOTTOM_LANE
        return (max(COURT_MARGIN, lo * self.court_height),
                min(self.court_height - COURT_MARGIN, hi * self.court_height))

    def dodger_band(self) -> Tuple[float, float]:
        return DODGER_BAND[0] * self.court_height, DODGER_BAND[1] * self.court_height

    def try_move(self, entity, nx: float, ny: float, y_range: Tuple[float, float],
                 obstacles: List[Obstacle]) -> bool:
        """Clamp the target into the court and apply it unless an obstacle blocks it."""
        nx = clamp(nx, COURT_MARGIN, self.court_width - COURT_MARGIN)
        ny = clamp(ny, y_range[0], y_range[1])
        if obstacles and blocked_by_obstacles(nx, ny, PLAYER_RADIUS, obstacles):
            return False
        entity.x, entity.y = nx, ny
        return True
