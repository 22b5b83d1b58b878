"""
AI Controller Tests — dodger reactions and thrower wandering under scripted randomness.
"""

import sys
import os
import math
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from ai import (
    DODGE_STEP, aim_at_random_dodger, update_ai_dodger, update_ai_thrower, wants_to_throw,
)
from difficulty import DIFFICULTY_TABLE
from entities import make_ai_dodger, make_ai_thrower
from physics import COURT_MARGIN, COURT_WIDTH, ArenaPhysics, Obstacle, Projectile


class ScriptedRng:
    """random.Random stand-in that replays fixed values for random()."""

    def __init__(self, *values, default=0.5):
        self.values = list(values)
        self.default = default

    def random(self):
        return self.values.pop(0) if self.values else self.default

    def uniform(self, a, b):
        return a + (b - a) * self.random()

    def choice(self, seq):
        return seq[0]


EASY = DIFFICULTY_TABLE["easy"]
HARD = DIFFICULTY_TABLE["hard"]


@pytest.fixture
def physics():
    return ArenaPhysics()


def incoming_ball(x, y=100.0):
    return Projectile(1, position=[x, y], direction=[0.0, 1.0])


class TestAIDodger:

    def test_successful_dodge_steps_toward_open_side(self, physics):
        d = make_ai_dodger("d", EASY, 400, 400)
        update_ai_dodger(d, incoming_ball(420), 10.0, 1 / 60, ScriptedRng(0.1), physics, [])
        assert d.x == pytest.approx(400 + DODGE_STEP * EASY.speed_multiplier)
        assert d.last_reaction == 10.0

    def test_dodge_goes_left_near_right_wall(self, physics):
        d = make_ai_dodger("d", EASY, COURT_WIDTH - 100, 400)
        update_ai_dodger(d, incoming_ball(COURT_WIDTH - 100), 10.0, 1 / 60,
                         ScriptedRng(0.1), physics, [])
        assert d.x < COURT_WIDTH - 100

    def test_reaction_is_rate_limited(self, physics):
        d = make_ai_dodger("d", EASY, 400, 400)
        rng = ScriptedRng(0.1, 0.1)
        update_ai_dodger(d, incoming_ball(420), 10.0, 1 / 60, rng, physics, [])
        x_after_first = d.x
        update_ai_dodger(d, incoming_ball(x_after_first), 10.0 + EASY.reaction_ms / 2000,
                         1 / 60, rng, physics, [])
        assert d.x == x_after_first

    def test_failed_roll_usually_stands_still(self, physics):
        d = make_ai_dodger("d", EASY, 400, 400)
        update_ai_dodger(d, incoming_ball(400), 10.0, 1 / 60,
                         ScriptedRng(0.99, 0.9), physics, [])
        assert (d.x, d.y) == (400, 400)
        assert d.last_reaction == 10.0

    def test_failed_roll_can_fumble_one_step(self, physics):
        d = make_ai_dodger("d", EASY, 400, 400)
        update_ai_dodger(d, incoming_ball(400), 10.0, 1 / 60,
                         ScriptedRng(0.99, 0.1, 0.9), physics, [])
        assert d.x > 400

    def test_far_ball_drifts_toward_center(self, physics):
        d = make_ai_dodger("d", HARD, 200, 400)
        update_ai_dodger(d, incoming_ball(1000), 10.0, 1 / 60, ScriptedRng(0.1), physics, [])
        assert 200 < d.x < COURT_WIDTH / 2

    def test_idle_wander_stays_in_band(self, physics):
        d = make_ai_dodger("d", EASY, 400, physics.dodger_band()[0])
        lo, hi = physics.dodger_band()
        for _ in range(200):
            update_ai_dodger(d, None, 0.0, 0.5, ScriptedRng(0.0, 0.0), physics, [])
        assert lo <= d.y <= hi
        assert d.x >= COURT_MARGIN

    def test_blocked_dodge_leaves_position(self, physics):
        d = make_ai_dodger("d", EASY, 400, 400)
        wall = Obstacle(420, 380, 100, 40)
        update_ai_dodger(d, incoming_ball(400), 10.0, 1 / 60, ScriptedRng(0.1), physics, [wall])
        assert d.x == 400


class TestAIThrower:

    def test_wander_moves_laterally_in_lane(self, physics):
        t = make_ai_thrower("t", EASY, 400, 60)
        update_ai_thrower(t, 0.1, ScriptedRng(0.5), physics, [])
        assert t.x > 400
        assert t.y == 60

    def test_reverses_at_court_edge(self, physics):
        t = make_ai_thrower("t", EASY, COURT_WIDTH - COURT_MARGIN - 1, 60)
        update_ai_thrower(t, 0.1, ScriptedRng(0.5), physics, [])
        assert t.wander_dir == -1
        assert t.x == COURT_WIDTH - COURT_MARGIN

    def test_reverses_on_obstacle(self, physics):
        t = make_ai_thrower("t", EASY, 400, 60)
        wall = Obstacle(410, 40, 40, 40)
        update_ai_thrower(t, 0.1, ScriptedRng(0.5), physics, [wall])
        assert t.x == 400
        assert t.wander_dir == -1

    def test_wants_to_throw_is_rare(self):
        assert wants_to_throw(ScriptedRng(0.001))
        assert not wants_to_throw(ScriptedRng(0.5))


class TestAiming:

    def test_aims_at_living_unshielded_dodger(self):
        t = make_ai_thrower("t", EASY, 100, 100)
        dead = make_ai_dodger("a", EASY, 100, 0)
        dead.alive = False
        shielded = make_ai_dodger("b", EASY, 0, 100)
        shielded.shielded = True
        target = make_ai_dodger("c", EASY, 100, 400)
        dx, dy = aim_at_random_dodger(t, [dead, shielded, target], ScriptedRng())
        assert dx == pytest.approx(0.0)
        assert dy == pytest.approx(1.0)
        assert math.hypot(dx, dy) == pytest.approx(1.0)

    def test_no_target_returns_none(self):
        t = make_ai_thrower("t", EASY, 100, 100)
        gone = make_ai_dodger("a", EASY, 100, 400)
        gone.alive = False
        assert aim_at_random_dodger(t, [gone], ScriptedRng()) is None

    def test_target_on_thrower_returns_none(self):
        t = make_ai_thrower("t", EASY, 100, 100)
        assert aim_at_random_dodger(t, [make_ai_dodger("a", EASY, 100, 100)],
                                    ScriptedRng()) is None
