"""Tests for game rules: evolution, rarity, placement and milestones."""

import json
import math
import random

import pytest

from droplets_api import game


class TestEvolution:
    """Test level_for_waters."""

    @pytest.mark.parametrize(
        ("waters", "level"),
        [(0, 1), (2, 1), (3, 2), (9, 2), (10, 3), (24, 3), (25, 4), (49, 4), (50, 5), (500, 5)],
    )
    def test_thresholds(self, waters, level):
        assert game.level_for_waters(waters) == level

    def test_never_lowers_level(self):
        """A creation generated at level 3 stays level 3 with few waters."""
        assert game.level_for_waters(1, current_level=3) == 3

    def test_capped_at_max(self):
        assert game.level_for_waters(10_000, current_level=5) == game.MAX_LEVEL


class TestRarity:
    """Test legendary rolls and palettes."""

    def test_legendary_palette(self):
        palette = json.loads(game.color_palette(True, random.Random(1)))
        assert palette == game.LEGENDARY_PALETTE

    def test_default_palette_when_roll_misses(self):
        rng = random.Random()
        rng.random = lambda: 0.99  # type: ignore[method-assign]

        assert json.loads(game.color_palette(False, rng)) == game.DEFAULT_PALETTE
        assert game.roll_legendary(rng) is False

    def test_colored_palette_when_roll_hits(self):
        rng = random.Random(7)
        rng.random = lambda: 0.0  # type: ignore[method-assign]

        palette = json.loads(game.color_palette(False, rng))

        assert palette["hasColor"] is True
        assert game.roll_legendary(rng) is True

    def test_name_shape(self):
        name = game.character_name(random.Random(3))
        assert any(name.startswith(prefix) for prefix in game.NAME_PREFIXES)
        assert any(name.endswith(suffix) for suffix in game.NAME_SUFFIXES)


class TestPlacement:
    """Test spawn positions and overlap repair."""

    def test_spawn_inside_ground_band(self):
        rng = random.Random(11)
        for _ in range(100):
            x, y = game.spawn_position(rng)
            assert 0 <= x <= game.WORLD_WIDTH
            assert game.GROUND_Y_START <= y <= game.GROUND_Y_START + game.GROUND_HEIGHT

    def test_spread_positions_keep_minimum_spacing(self):
        positions = game.spread_positions(6, random.Random(5))

        assert len(positions) == 6
        for i, a in enumerate(positions):
            for b in positions[i + 1 :]:
                assert math.dist(a, b) >= game.MIN_SPACING

    def test_spread_positions_fall_back_when_crowded(self):
        """More characters than fit still all get a position."""
        assert len(game.spread_positions(200, random.Random(5))) == 200


class TestMilestones:
    """Test milestone helpers."""

    def test_status(self):
        status = game.milestones_status(500)

        assert [m["unlocked"] for m in status] == [True, True, False, False, False]
        assert status[0] == {
            "threshold": 100,
            "type": "streams",
            "name": "Flowing Waters",
            "unlocked": True,
        }

    def test_crossed_only_once(self):
        assert [m.threshold for m in game.crossed_milestones(100, 0)] == [100]
        assert game.crossed_milestones(101, 100) == []
        assert [m.threshold for m in game.crossed_milestones(1000, 100)] == [500, 1000]

    def test_next_phase_cycles(self):
        assert game.next_phase("dawn") == "day"
        assert game.next_phase("night") == "dawn"
        assert game.next_phase("unknown") == "dawn"
