"""
Input Controller
Turns raw held-key state into per-entity intents once per tick.

Hosts hand the controller an ``InputSnapshot`` (the set of keys held this
frame).  Edge detection is a pure function of the previous and current
snapshot, so nothing here cares which host produced the keys.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Tuple


@dataclass(frozen=True)
class KeyBindings:
    """Logical action → key name (Ursina / browser key names, lower-case)."""
    up: str
    down: str
    left: str
    right: str
    aim_up: Optional[str] = None
    aim_down: Optional[str] = None
    throw: Optional[str] = None
    ability_1: Optional[str] = None
    ability_2: Optional[str] = None

    def keys(self) -> Tuple[str, ...]:
        return tuple(k for k in (self.up, self.down, self.left, self.right,
                                 self.aim_up, self.aim_down, self.throw,
                                 self.ability_1, self.ability_2) if k)


# Disjoint sets so several humans can share one keyboard.
THROWER_BINDINGS = (
    KeyBindings(up="w", down="s", left="a", right="d",
                aim_up="r", aim_down="f", throw="space",
                ability_1="q", ability_2="e"),
    KeyBindings(up="up arrow", down="down arrow", left="left arrow", right="right arrow",
                aim_up=",", aim_down=".", throw="enter",
                ability_1="n", ability_2="m"),
)

DODGER_BINDINGS = (
    KeyBindings(up="w", down="s", left="a", right="d", ability_1="q", ability_2="e"),
    KeyBindings(up="i", down="k", left="j", right="l", ability_1="u", ability_2="o"),
    KeyBindings(up="up arrow", down="down arrow", left="left arrow", right="right arrow",
                ability_1="n", ability_2="m"),
    KeyBindings(up="t", down="g", left="f", right="h", ability_1="r", ability_2="y"),
)


@dataclass(frozen=True)
class InputSnapshot:
    held: frozenset = frozenset()

    @classmethod
    def from_keys(cls, keys) -> "InputSnapshot":
        """Accept an iterable of key names or a key → truthy mapping (``held_keys``)."""
        if isinstance(keys, Mapping):
            return cls(frozenset(k for k, v in keys.items() if v))
        return cls(frozenset(keys))

    def is_held(self, key: Optional[str]) -> bool:
        return bool(key) and key in self.held


@dataclass(frozen=True)
class KeyEdge:
    pressed: bool = False     # went down this tick
    held: bool = False
    released: bool = False    # went up this tick


def edge(prev: InputSnapshot, curr: InputSnapshot, key: Optional[str]) -> KeyEdge:
    was, now = prev.is_held(key), curr.is_held(key)
    return KeyEdge(pressed=now and not was, held=now, released=was and not now)


@dataclass
class Intent:
    """What one human-controlled entity wants to do this tick."""
    move_x: int = 0
    move_y: int = 0
    aim: int = 0
    throw: KeyEdge = field(default_factory=KeyEdge)
    abilities: Tuple[bool, bool] = (False, False)


def intent_for(bindings: KeyBindings, prev: InputSnapshot, curr: InputSnapshot) -> Intent:
    move_x = int(curr.is_held(bindings.right)) - int(curr.is_held(bindings.left))
    move_y = int(curr.is_held(bindings.down)) - int(curr.is_held(bindings.up))
    aim = int(curr.is_held(bindings.aim_up)) - int(curr.is_held(bindings.aim_down))
    return Intent(
        move_x=move_x,
        move_y=move_y,
        aim=aim,
        throw=edge(prev, curr, bindings.throw),
        abilities=(edge(prev, curr, bindings.ability_1).pressed,
                   edge(prev, curr, bindings.ability_2).pressed),
    )


class InputController:
    """Keeps the previous snapshot and produces intents for the bound entities."""

    def __init__(self):
        self._prev = InputSnapshot()

    def reset(self) -> None:
        self._prev = InputSnapshot()

    def read(self, snapshot: InputSnapshot,
             entities: Iterable) -> Dict[str, Intent]:
        intents = {}
        for ent in entities:
            if ent.bindings is None:
                continue
            intents[ent.id] = intent_for(ent.bindings, self._prev, snapshot)
        self._prev = snapshot
        return intents
