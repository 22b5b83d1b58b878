"""
Tests for the Difficulty Policy and session configuration.
"""

import sys
import os
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config import ConfigError, FeatureFlags, GameConfig
from difficulty import DIFFICULTY_TABLE, build_obstacles, resolve_difficulty
from physics import COURT_HEIGHT, COURT_WIDTH, ObstacleKind


class TestDifficultyTable:
    """Lower tiers react slower and succeed less often."""

    def test_tiers_present(self):
        assert set(DIFFICULTY_TABLE) == {"easy", "medium", "hard"}

    def test_reaction_gets_faster(self):
        e, m, h = (DIFFICULTY_TABLE[k] for k in ("easy", "medium", "hard"))
        assert e.reaction_ms > m.reaction_ms > h.reaction_ms

    def test_success_probability_increases(self):
        e, m, h = (DIFFICULTY_TABLE[k] for k in ("easy", "medium", "hard"))
        assert e.success_probability < m.success_probability < h.success_probability
        for p in (e, m, h):
            assert 0.0 <= p.success_probability <= 1.0

    def test_ball_and_movement_speed_increase(self):
        e, m, h = (DIFFICULTY_TABLE[k] for k in ("easy", "medium", "hard"))
        assert e.fast_ball_speed < m.fast_ball_speed < h.fast_ball_speed
        assert e.speed_multiplier < m.speed_multiplier < h.speed_multiplier

    def test_resolve_known(self):
        assert resolve_difficulty("hard").reaction_ms == 250

    def test_resolve_unknown_raises(self):
        with pytest.raises(ConfigError):
            resolve_difficulty("nightmare")


class TestObstacleLayout:

    def test_easy_has_no_obstacles(self):
        assert build_obstacles(resolve_difficulty("easy")) == []

    def test_override_enables_obstacles(self):
        obstacles = build_obstacles(resolve_difficulty("easy"), enabled=True)
        assert len(obstacles) > 0

    def test_override_disables_obstacles(self):
        assert build_obstacles(resolve_difficulty("hard"), enabled=False) == []

    def test_hard_layout_inside_court_with_one_moving(self):
        obstacles = build_obstacles(resolve_difficulty("hard"))
        kinds = [ob.kind for ob in obstacles]
        assert kinds.count(ObstacleKind.MOVING) == 1
        for ob in obstacles:
            assert 0 <= ob.x and ob.x + ob.width <= COURT_WIDTH
            assert 0 <= ob.y and ob.y + ob.height <= COURT_HEIGHT


class TestGameConfig:

    def test_default_is_valid(self):
        GameConfig().validate()

    @pytest.mark.parametrize("kwargs", [
        {"role": "referee"},
        {"difficulty": "insane"},
        {"role": "thrower", "humans": 3},
        {"role": "dodger", "humans": 5},
        {"humans": 0},
        {"features": FeatureFlags(throw_style="lob")},
    ])
    def test_invalid_choices_raise(self, kwargs):
        with pytest.raises(ConfigError):
            GameConfig(**kwargs).validate()

    def test_from_dict(self):
        cfg = GameConfig.from_dict({"role": "dodger", "difficulty": "medium", "humans": "3",
                                    "name": "Ana", "throw_style": "instant"})
        assert cfg.role == "dodger"
        assert cfg.humans == 3
        assert cfg.player_name == "Ana"
        assert cfg.features.throw_style == "instant"
        assert cfg.features.obstacles is None

    def test_from_dict_bad_humans(self):
        with pytest.raises(ConfigError):
            GameConfig.from_dict({"humans": "many"})
