"""Session configuration: roles, feature flags and validation."""

from dataclasses import dataclass, field
from typing import Optional

ROLES = ("thrower", "dodger")
THROW_STYLES = ("aim", "instant")

MAX_HUMAN_THROWERS = 2
MAX_HUMAN_DODGERS = 4


class ConfigError(ValueError):
    """Raised when a session cannot be set up from the given choices."""


@dataclass
class FeatureFlags:
    """Switches that select between the game variants.

    obstacles:     None follows the difficulty tier, True/False overrides it.
    abilities:     humans get ability slots.
    throw_style:   "aim" = hold throw to show the guide, release to commit;
                   "instant" = throw on key press.
    credit_dodges: human dodgers earn a point for every AI ball that passes them.
    """
    obstacles: Optional[bool] = None
    abilities: bool = True
    throw_style: str = "aim"
    credit_dodges: bool = True


@dataclass
class GameConfig:
    role: str = "thrower"            # which team the humans control
    difficulty: str = "easy"
    humans: int = 1
    player_name: str = "Player"
    features: FeatureFlags = field(default_factory=FeatureFlags)

    def validate(self) -> None:
        # difficulty.py imports ConfigError from here
        from difficulty import DIFFICULTY_TABLE

        if self.role not in ROLES:
            raise ConfigError(f"unknown role '{self.role}' (expected one of {ROLES})")
        if self.difficulty not in DIFFICULTY_TABLE:
            raise ConfigError(
                f"unknown difficulty '{self.difficulty}' "
                f"(expected one of {tuple(DIFFICULTY_TABLE)})"
            )
        limit = MAX_HUMAN_THROWERS if self.role == "thrower" else MAX_HUMAN_DODGERS
        if not 1 <= int(self.humans) <= limit:
            raise ConfigError(f"{self.role} mode supports 1-{limit} humans, got {self.humans}")
        if self.features.throw_style not in THROW_STYLES:
            raise ConfigError(f"unknown throw style '{self.features.throw_style}'")

    @classmethod
    def from_dict(cls, data: dict) -> "GameConfig":
        """Build from a loose JSON-ish dict (WebSocket ``start`` command)."""
        try:
            humans = int(data.get("humans", 1))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"humans must be an integer: {exc}") from exc
        obstacles = data.get("obstacles")
        features = FeatureFlags(
            obstacles=None if obstacles is None else bool(obstacles),
            abilities=bool(data.get("abilities", True)),
            throw_style=str(data.get("throw_style", "aim")),
            credit_dodges=bool(data.get("credit_dodges", True)),
        )
        return cls(
            role=str(data.get("role", "thrower")),
            difficulty=str(data.get("difficulty", "easy")),
            humans=humans,
            player_name=str(data.get("name") or "Player"),
            features=features,
        )
