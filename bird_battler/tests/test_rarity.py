from __future__ import annotations

import pytest

from bird_battler.core.models import rarity_index
from bird_battler.core.rarity import catch_bonus, max_craft_rarity, rarity_for_score, roll_rarity
from bird_battler.core.rng import DeterministicRNG, ScriptedRNG


def test_craft_ceiling_steps_every_five_levels():
    assert max_craft_rarity(0) == "UNCOMMON"
    assert max_craft_rarity(4) == "UNCOMMON"
    assert max_craft_rarity(5) == "RARE"
    assert max_craft_rarity(19) == "LEGENDARY"
    assert max_craft_rarity(20) == "MYTHIC"
    assert max_craft_rarity(500) == "MYTHIC"


@pytest.mark.parametrize("level", [0, 3, 5, 12, 40, 250])
def test_craft_rolls_never_exceed_the_ceiling(level: int):
    rng = DeterministicRNG.from_seed(f"craft-{level}")
    ceiling = rarity_index(max_craft_rarity(level))
    for _ in range(500):
        assert rarity_index(roll_rarity(rng, level, "CRAFT")) <= ceiling


def test_thresholds_are_strictly_above():
    assert rarity_for_score(550) == "COMMON"
    assert rarity_for_score(550.5) == "UNCOMMON"
    assert rarity_for_score(1600) == "LEGENDARY"
    assert rarity_for_score(1600.1) == "MYTHIC"


def test_catch_bonus_is_cumulative_per_tier():
    assert catch_bonus(1.0) == 0
    assert catch_bonus(2.0) == 20
    assert catch_bonus(3.5) == 60
    assert catch_bonus(5.0) == 410


def test_catch_context_adds_skill_bonus_without_clamp():
    # 0.999 * 800 = 799.2; +410 for a perfect catch lands in EPIC.
    assert roll_rarity(ScriptedRNG([0.999]), 0, "CATCH", multiplier=5.0) == "EPIC"
    assert roll_rarity(ScriptedRNG([0.999]), 0, "CRAFT", multiplier=5.0) == "UNCOMMON"


def test_drop_context_takes_the_raw_score():
    assert roll_rarity(ScriptedRNG([0.0]), -1, "DROP") == "COMMON"
    assert roll_rarity(ScriptedRNG([0.8]), 100, "DROP") == "RARE"
