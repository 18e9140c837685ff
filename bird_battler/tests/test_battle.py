from __future__ import annotations

from bird_battler.core.battle import (
    BattleState,
    auto_battle,
    begin_battle,
    can_use_move,
    opponent_turn,
    pass_turn,
    player_turn,
    start_battle,
)
from bird_battler.core.combat import build_combatant
from bird_battler.core.generator import generate_creature
from bird_battler.core.loader import default_content
from bird_battler.core.models import HIGH, PlayerState
from bird_battler.core.persistence import create_default_player_state
from bird_battler.core.rewards import BattleRewards, apply_battle_result
from bird_battler.core.rng import DeterministicRNG, ScriptedRNG
from bird_battler.core.roster import assign_hunter, choose_starter


def _starter(species: str = "eagle", seed: int = 11) -> PlayerState:
    state = create_default_player_state(seed)
    return choose_starter(state, species, DeterministicRNG.from_seed(seed)).state


def _duel(phase: str = "player_turn") -> BattleState:
    content = default_content()
    eagle = content.template_by_id["eagle"]
    player = generate_creature(eagle, "COMMON", ScriptedRNG([0.0]), content, instance_id="bird_a")
    wild = generate_creature(eagle, "COMMON", ScriptedRNG([0.0]), content, instance_id="wild_a")
    return BattleState(
        phase=phase,
        player=build_combatant(player, content=content),
        opponent=build_combatant(wild, content=content),
    )


def test_ties_in_speed_favour_the_player():
    battle = begin_battle(_duel(phase="setup"))
    assert battle.phase == "player_turn"


def test_faster_opponent_moves_first():
    battle = _duel(phase="setup")
    battle = battle.model_copy(update={"opponent": battle.opponent.model_copy(update={"speed": 99})})
    assert begin_battle(battle).phase == "opponent_turn"


def test_player_turn_pays_energy_and_flips_turn():
    battle = _duel()
    outcome = player_turn(battle, "peck", 0, ScriptedRNG([0.0]))

    assert outcome.ok is True
    assert outcome.result.damage == 30
    assert outcome.battle.opponent.current_hp == battle.opponent.max_hp - 30
    assert outcome.battle.phase == "opponent_turn"
    # 5 paid, 5 regenerated at the end of the turn, capped at max.
    assert outcome.battle.player.current_energy == battle.player.max_energy
    assert battle.opponent.current_hp == battle.opponent.max_hp


def test_cooldowns_are_wall_clock_based():
    battle = _duel()
    after = player_turn(battle, "peck", 0, ScriptedRNG([0.0])).battle
    back = after.model_copy(update={"phase": "player_turn"})

    ok, reason = can_use_move(back, "player", "peck", 500)
    assert ok is False and "cooldown" in reason
    assert can_use_move(back, "player", "peck", 1000) == (True, "")


def test_height_moves_need_the_top_altitude():
    battle = _duel()
    rejected = player_turn(battle, "dive", 0, ScriptedRNG([0.0]))
    assert rejected.ok is False
    assert rejected.battle is battle

    climbed = player_turn(battle, "dive", 0, ScriptedRNG([0.0, 0.9]), desired_altitude=HIGH)
    assert climbed.ok is True
    assert climbed.battle.player.altitude == HIGH


def test_shield_halves_the_next_hit_and_is_consumed():
    battle = _duel()
    shielded = battle.opponent.model_copy(update={"status_effects": {"shield"}})
    battle = battle.model_copy(update={"opponent": shielded})

    outcome = player_turn(battle, "peck", 0, ScriptedRNG([0.0]))
    assert outcome.result.damage == 15
    assert "shield" not in outcome.battle.opponent.status_effects


def test_dodge_makes_the_next_attack_miss():
    battle = _duel()
    dodging = battle.opponent.model_copy(update={"status_effects": {"dodge"}})
    battle = battle.model_copy(update={"opponent": dodging})

    outcome = player_turn(battle, "peck", 0, ScriptedRNG([0.0]))
    assert outcome.ok is True
    assert outcome.result.hit is False
    assert outcome.battle.opponent.current_hp == battle.opponent.max_hp
    assert "dodge" not in outcome.battle.opponent.status_effects


def test_knockout_ends_the_battle_immediately():
    battle = _duel()
    battle = battle.model_copy(update={"opponent": battle.opponent.model_copy(update={"current_hp": 10})})

    outcome = player_turn(battle, "peck", 0, ScriptedRNG([0.0]))
    assert outcome.battle.phase == "resolved"
    assert outcome.battle.winner == "player"
    assert outcome.battle.opponent.current_hp == 0
    assert outcome.battle.rewards is not None

    late = player_turn(outcome.battle, "peck", 5000, ScriptedRNG([0.0]))
    assert late.ok is False


def test_bleed_ticks_on_the_bleeding_side():
    battle = _duel()
    bleeding = battle.player.model_copy(update={"status_effects": {"bleed"}})
    battle = battle.model_copy(update={"player": bleeding})

    outcome = pass_turn(battle, "player", ScriptedRNG([0.0]))
    assert outcome.battle.player.current_hp == battle.player.max_hp - (battle.player.max_hp * 5 // 100)
    assert outcome.battle.phase == "opponent_turn"


def test_opponent_turn_without_advisor_uses_local_heuristic():
    battle = _duel(phase="opponent_turn")
    outcome = opponent_turn(battle, 0, ScriptedRNG([0.0]))

    assert outcome.ok is True
    assert outcome.used_fallback is False
    assert outcome.move_id == "screech"
    assert outcome.battle.phase == "player_turn"


def test_start_battle_leaves_the_player_state_untouched():
    state = _starter()
    result = start_battle(state, DeterministicRNG.from_seed(3))

    assert result.ok is True
    assert result.state is state
    battle = result.payload
    assert battle.zone == 1
    assert battle.player.creature_id == state.selected_creature_id
    assert battle.phase in ("player_turn", "opponent_turn")


def test_hunting_birds_cannot_battle():
    state = _starter()
    state = assign_hunter(state, state.selected_creature_id).state
    result = start_battle(state, DeterministicRNG.from_seed(3))
    assert result.ok is False
    assert result.state is state


def test_auto_battle_always_resolves():
    state = _starter(seed=21)
    rng = DeterministicRNG.from_seed(21)
    battle = start_battle(state, rng).payload
    final = auto_battle(battle, rng)

    assert final.phase == "resolved"
    assert final.winner in ("player", "opponent")
    assert (final.rewards is not None) == (final.winner == "player")


def test_battle_xp_rolls_over_two_levels():
    state = _starter()
    creature = state.creatures[state.selected_creature_id]
    content = default_content()
    battle = BattleState(
        phase="resolved",
        zone=5,
        winner="player",
        player=build_combatant(creature, content=content),
        opponent=build_combatant(creature.model_copy(update={"id": "wild_x"}), content=content),
        rewards=BattleRewards(xp=250, feathers=10),
    )

    result = apply_battle_result(state, battle, ScriptedRNG([0.0]))
    leveled = result.state.creatures[creature.id]
    assert result.ok is True
    assert leveled.level == 3
    assert leveled.xp == 250 - 100 - 150
    assert leveled.xp_to_next == 225
    assert leveled.stat_points == 2
    assert result.state.feathers == state.feathers + 10
    assert result.state.lifetime.battles_won == 1


def test_defeat_grants_nothing():
    state = _starter()
    battle = _duel().model_copy(update={"phase": "resolved", "winner": "opponent"})
    result = apply_battle_result(state, battle, ScriptedRNG([0.0]))
    assert result.ok is True
    assert result.state is state


def test_unfinished_battle_cannot_be_settled():
    state = _starter()
    result = apply_battle_result(state, _duel(), ScriptedRNG([0.0]))
    assert result.ok is False
    assert result.state is state
