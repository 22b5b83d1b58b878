"""
Entity Model
Throwers, dodgers and their abilities as plain dataclass records.
"""

import enum
import math
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from controls import KeyBindings
from difficulty import DifficultyPolicy

ABILITY_USES = 2
BASE_MOVE_SPEED = 300.0        # human movement, court units / s
SPEED_BOOST_FACTOR = 1.8

# Forward-facing aim arcs (radians), screen space: 0 = right, +pi/2 = down
TOP_AIM_ARC = (math.radians(45.0), math.radians(135.0))
BOTTOM_AIM_ARC = (math.radians(-135.0), math.radians(-45.0))



class Control(enum.Enum):
    HUMAN = "human"
    AI = "ai"


class AbilityType(enum.Enum):
    SPEED_BOOST = "speed_boost"
    SHIELD = "temporary_shield"
    FREEZE = "freeze_opponents"
    RAPID_FIRE = "rapid_fire"


@dataclass
class Ability:
    type: AbilityType
    uses: int = ABILITY_USES
    cooldown: float = 0.0      # seconds until usable again

    def ready(self) -> bool:
        return self.uses > 0 and self.cooldown <= 0.0

    def consume(self, cooldown: float) -> bool:
        """Spend one use. Returns False (and changes nothing) when not ready."""
        if not self.ready():
            return False
        self.uses -= 1
        self.cooldown = cooldown
        return True

    def tick(self, dt: float) -> None:
        if self.cooldown > 0.0:
            self.cooldown = max(0.0, self.cooldown - dt)


@dataclass
class Player:
    id: str
    name: str
    x: float
    y: float
    control: Control = Control.AI
    alive: bool = True
    color: str = "#ffffff"
    bindings: Optional[KeyBindings] = None
    abilities: List[Ability] = field(default_factory=list)

    # Transient modifiers
    frozen: bool = False
    boost_multiplier: float = 1.0

    # Difficulty parameters, copied in at team build
    reaction_ms: int = 0
    success_probability: float = 1.0
    speed_multiplier: float = 1.0

    # Expiry clock stamps of running effects, keyed by AbilityType.value
    effect_until: dict = field(default_factory=dict)

    @property
    def is_human(self) -> bool:
        return self.control is Control.HUMAN

    @property
    def move_speed(self) -> float:
        return BASE_MOVE_SPEED * self.speed_multiplier * self.boost_multiplier


@dataclass
class Thrower(Player):
    side: str = "top"
    aim_angle: float = math.pi / 2
    rapid_fire: bool = False
    aiming: bool = False          # throw key held, aim guide visible
    wander_dir: int = 1

    @property
    def aim_arc(self):
        return TOP_AIM_ARC if self.side == "top" else BOTTOM_AIM_ARC

    def clamp_aim(self) -> None:
        lo, hi = self.aim_arc
        self.aim_angle = min(hi, max(lo, self.aim_angle))


@dataclass
class Dodger(Player):
    last_reaction: float = -math.inf     # controller clock, seconds
    scored_this_ball: bool = False
    shielded: bool = False


# ── Factories ─────────────────────────────────────────────────────────────────
# Ids come from the caller's counter (one per controller); without one the
# name is used, which is enough for standalone entities.

def _new_id(prefix: str, name: str, ids: Optional[Iterator[int]]) -> str:
    if ids is None:
        return f"{prefix}-{name}"
    return f"{prefix}-{next(ids)}"


def _apply_policy(p: Player, policy: DifficultyPolicy) -> None:
    p.reaction_ms = policy.reaction_ms
    p.success_probability = policy.success_probability
    p.speed_multiplier = policy.speed_multiplier


def _default_aim(side: str) -> float:
    return math.pi / 2 if side == "top" else -math.pi / 2


def make_human_thrower(name: str, bindings: KeyBindings, x: float, y: float,
                       side: str = "top", color: str = "#4ac0e6",
                       abilities: Optional[List[AbilityType]] = None,
                       ids: Optional[Iterator[int]] = None) -> Thrower:
    return Thrower(
        id=_new_id("human-throw", name, ids), name=name, x=x, y=y,
        control=Control.HUMAN, color=color, bindings=bindings,
        abilities=[Ability(t) for t in (abilities or [])],
        side=side, aim_angle=_default_aim(side),
    )


def make_ai_thrower(name: str, policy: DifficultyPolicy, x: float, y: float,
                    side: str = "top", color: str = "#f59b42",
                    ids: Optional[Iterator[int]] = None) -> Thrower:
    t = Thrower(id=_new_id("ai-throw", name, ids), name=name, x=x, y=y, color=color,
                side=side, aim_angle=_default_aim(side))
    _apply_policy(t, policy)
    return t


def make_human_dodger(name: str, bindings: KeyBindings, x: float, y: float,
                      color: str = "#4ac0e6",
                      abilities: Optional[List[AbilityType]] = None,
                      ids: Optional[Iterator[int]] = None) -> Dodger:
    return Dodger(
        id=_new_id("human-dod", name, ids), name=name, x=x, y=y,
        control=Control.HUMAN, color=color, bindings=bindings,
        abilities=[Ability(t) for t in (abilities or [])],
    )


def make_ai_dodger(name: str, policy: DifficultyPolicy, x: float, y: float,
                   color: str = "#ff6b6b", ids: Optional[Iterator[int]] = None) -> Dodger:
    d = Dodger(id=_new_id("ai-dod", name, ids), name=name, x=x, y=y, color=color)
    _apply_policy(d, policy)
    return d
