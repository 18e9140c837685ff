from __future__ import annotations

import logging
import threading

import pytest

from bird_battler.core.generator import build_gear
from bird_battler.core.idle import IdleLoop, IntervalTickSource, ManualTickSource, hunter_yield, tick
from bird_battler.core.inventory import add_consumable, equip_gear, socket_gem, use_consumable
from bird_battler.core.models import Gem, GemBuff, GemBuffType, PlayerState
from bird_battler.core.persistence import create_default_player_state
from bird_battler.core.rng import DeterministicRNG, ScriptedRNG
from bird_battler.core.roster import assign_hunter, choose_starter


def _hunter(species: str = "eagle") -> PlayerState:
    state = create_default_player_state(31)
    state = choose_starter(state, species, DeterministicRNG.from_seed(31)).state
    state.feathers = 0
    return assign_hunter(state, state.selected_creature_id).state


def _hunting_eagle() -> PlayerState:
    return _hunter("eagle")


def _with_gem(buff: GemBuffType, value: float) -> PlayerState:
    state = _hunting_eagle()
    bird = state.selected_creature_id
    state.gear["gear_beak"] = build_gear("beak", "MYTHIC", ScriptedRNG([0.0]), gear_id="gear_beak")
    state.gems["gem_find"] = Gem(id="gem_find", name="Find Gem", rarity="COMMON", buffs=[GemBuff(type=buff, value=value, rarity="COMMON")])
    state = equip_gear(state, bird, "gear_beak").state
    return socket_gem(state, "gear_beak", 0, "gem_find").state


def test_hunter_yield_scales_with_rarity_and_level() -> None:
    assert hunter_yield(1.0, "UNCOMMON", 1, 0.0, 1.0) == pytest.approx(1.8)
    assert hunter_yield(1.0, "COMMON", 2, 50.0, 2.0) == pytest.approx(6.0)


def test_fractional_feathers_carry_between_ticks() -> None:
    state = _hunting_eagle()
    rng = DeterministicRNG.from_seed(1)

    first = tick(state, rng)
    assert first.ok is True
    assert first.payload.hunters == 1
    assert first.payload.feathers == 1
    assert first.state.idle_carry == pytest.approx(0.8)

    second = tick(first.state, rng)
    assert second.payload.feathers == 2
    assert second.state.feathers == 3
    assert second.state.idle_carry == pytest.approx(0.6)
    assert second.state.lifetime.total_feathers == 3


def test_nobody_hunting_earns_nothing() -> None:
    state = create_default_player_state(31)
    result = tick(state, DeterministicRNG.from_seed(1))
    assert result.ok is True
    assert result.payload.hunters == 0
    assert result.state.feathers == 0


def test_hunting_speed_buff_multiplies_and_decays() -> None:
    state = _hunting_eagle()
    add_consumable(state, "HUNTING_SPEED", "RARE")
    state = use_consumable(state, "HUNTING_SPEED", "RARE").state

    result = tick(state, DeterministicRNG.from_seed(1))
    assert result.payload.multiplier == 2.5
    assert result.payload.feathers == 4
    assert result.state.active_buffs[0].remaining == 119


def test_manual_source_drives_an_exact_number_of_ticks() -> None:
    calls: list[int] = []
    loop = IdleLoop(ManualTickSource(5), lambda: calls.append(1))
    assert loop.run() == 5
    assert len(calls) == 5


def test_interval_source_stops_the_background_loop() -> None:
    ticked = threading.Event()
    source = IntervalTickSource(0.01)
    loop = IdleLoop(source, ticked.set)

    loop.start()
    assert ticked.wait(2.0) is True
    loop.stop(timeout=2.0)
    assert source.stopped is True
    count = loop.ticks
    assert source.wait() is False
    assert loop.ticks == count


def test_diamond_hunt_chance_rolls_once_per_tick() -> None:
    state = _with_gem("DIAMOND_HUNT_CHANCE", 50)

    lucky = tick(state, ScriptedRNG([0.3]))
    assert lucky.payload.diamonds == 1
    assert lucky.state.diamonds == state.diamonds + 1

    unlucky = tick(state, ScriptedRNG([0.7]))
    assert unlucky.payload.diamonds == 0
    assert unlucky.state.diamonds == state.diamonds


def test_item_find_chance_adds_a_consumable() -> None:
    state = _with_gem("ITEM_FIND_CHANCE", 10)

    found = tick(state, ScriptedRNG([0.05]))
    assert found.payload.consumable is not None
    assert found.payload.consumable[0] == "HUNTING_SPEED"
    assert sum(stack.count for stack in found.state.consumables) == 1

    missed = tick(state, ScriptedRNG([0.2]))
    assert missed.payload.consumable is None
    assert missed.state.consumables == state.consumables


def test_rot_eater_finds_items_without_gems() -> None:
    state = _hunter("vulture")

    assert tick(state, ScriptedRNG([0.01])).payload.consumable is not None
    assert tick(state, ScriptedRNG([0.03])).payload.consumable is None


def test_gem_finds_need_gem_crafting() -> None:
    state = _with_gem("GEM_FIND_CHANCE", 10)

    locked = tick(state, ScriptedRNG([0.05]))
    assert locked.payload.gem_id is None
    assert sorted(locked.state.gems) == ["gem_find"]

    state.unlocks.add("gem_crafting")
    unlocked = tick(state, ScriptedRNG([0.05]))
    assert unlocked.payload.gem_id is not None
    assert unlocked.payload.gem_id in unlocked.state.gems
    assert unlocked.state.gems[unlocked.payload.gem_id].socketed_in is None
    assert len(unlocked.state.gems) == 2


def test_hyper_metabolism_sometimes_doubles_the_haul() -> None:
    state = _hunter("hummingbird")

    def earned(rng: ScriptedRNG) -> float:
        result = tick(state, rng)
        return result.state.feathers + result.state.idle_carry

    assert earned(ScriptedRNG([0.05])) == pytest.approx(2 * earned(ScriptedRNG([0.5])))


def test_keen_eye_turns_up_scrap() -> None:
    state = _hunter("hawk")

    found = tick(state, ScriptedRNG([0.01]))
    assert found.payload.scrap == 1
    assert found.state.scrap == state.scrap + 1
    assert tick(state, ScriptedRNG([0.5])).state.scrap == state.scrap


def test_wisdom_grants_xp_and_can_level_up() -> None:
    state = _hunter("owl")
    bird = state.selected_creature_id

    taught = tick(state, ScriptedRNG([0.1]))
    assert taught.payload.xp_gains == {bird: 1}
    assert taught.state.creatures[bird].xp == state.creatures[bird].xp + 1
    assert tick(state, ScriptedRNG([0.9])).payload.xp_gains == {}

    state.creatures[bird].xp = state.creatures[bird].xp_to_next - 1
    promoted = tick(state, ScriptedRNG([0.1]))
    assert promoted.payload.level_ups == [bird]
    assert promoted.state.creatures[bird].level == state.creatures[bird].level + 1


def test_a_failing_tick_does_not_stop_the_loop(caplog: pytest.LogCaptureFixture) -> None:
    calls: list[int] = []

    def flaky() -> None:
        calls.append(1)
        if len(calls) == 1:
            raise OSError("disk full")

    loop = IdleLoop(ManualTickSource(3), flaky)
    with caplog.at_level(logging.ERROR, logger="bird_battler.core.idle"):
        assert loop.run() == 2
    assert len(calls) == 3
    assert loop.failures == 1
    assert "disk full" in caplog.text
