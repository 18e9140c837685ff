from __future__ import annotations

from bird_battler.core.battle import auto_battle, start_battle
from bird_battler.core.idle import tick
from bird_battler.core.persistence import create_default_player_state, player_rng, sync_rng
from bird_battler.core.rewards import apply_battle_result
from bird_battler.core.roster import assign_hunter, choose_starter


def _campaign(seed: int, battles: int = 4, ticks: int = 20):
    state = create_default_player_state(seed)
    rng = player_rng(state)
    state = choose_starter(state, "hawk", rng).state
    logs = []
    for _ in range(battles):
        battle = auto_battle(start_battle(state, rng).payload, rng)
        logs.append(list(battle.log))
        state = apply_battle_result(state, battle, rng).state
    state = assign_hunter(state, state.selected_creature_id).state
    for _ in range(ticks):
        state = tick(state, rng).state
    sync_rng(state, rng)
    return state, logs


def test_same_seed_produces_identical_campaigns():
    state_a, logs_a = _campaign(777)
    state_b, logs_b = _campaign(777)

    assert logs_a == logs_b
    assert state_a.model_dump(mode="json") == state_b.model_dump(mode="json")
    assert (state_a.rng_state, state_a.rng_calls) == (state_b.rng_state, state_b.rng_calls)


def test_different_seeds_diverge():
    _, logs_a = _campaign(777)
    _, logs_b = _campaign(778)
    assert logs_a != logs_b


def test_reloaded_rng_continues_the_stream():
    state, _ = _campaign(5, battles=1, ticks=0)
    resumed = player_rng(state)
    fresh = player_rng(create_default_player_state(5))
    for _ in range(state.rng_calls):
        fresh.next_float()
    assert [resumed.next_float() for _ in range(5)] == [fresh.next_float() for _ in range(5)]
