from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Literal

from pydantic import Field

from .advisory import (
    DEFAULT_ADVISORY_TIMEOUT,
    AdvisorAnswer,
    AdvisoryChoice,
    AdvisoryContext,
    LocalAdvisor,
    OpponentAdvisor,
    consult_advisor,
    settle_advice,
)
from .combat import Combatant, CombatResult, build_combatant, heal_amount, resolve
from .generator import create_opponent
from .inventory import equipped_gear
from .loader import ContentBundle, resolve_content
from .models import ALTITUDES, HIGH, ActionResult, Move, PlayerState, StrictModel, accepted, rejected
from .rewards import BattleRewards, RewardContext, calculate_rewards, reward_context_for
from .rng import RandomSource

logger = logging.getLogger(__name__)

BattlePhase = Literal["setup", "player_turn", "opponent_turn", "resolved"]
Side = Literal["player", "opponent"]

MAX_LOG_ENTRIES = 50
RECENT_LOG_LINES = 5


class BattleState(StrictModel):
    phase: BattlePhase = "setup"
    zone: int = Field(default=1, ge=1)
    turn: int = Field(default=0, ge=0)
    player: Combatant
    opponent: Combatant
    cooldowns: dict[str, int] = Field(default_factory=dict)
    winner: Side | None = None
    reward_context: RewardContext = Field(default_factory=RewardContext)
    rewards: BattleRewards | None = None
    log: list[str] = Field(default_factory=list)

    @property
    def active_side(self) -> Side | None:
        if self.phase == "player_turn":
            return "player"
        if self.phase == "opponent_turn":
            return "opponent"
        return None

    def combatant(self, side: Side) -> Combatant:
        return self.player if side == "player" else self.opponent

    def add_log(self, line: str) -> None:
        self.log.append(line)
        if len(self.log) > MAX_LOG_ENTRIES:
            del self.log[: len(self.log) - MAX_LOG_ENTRIES]


@dataclass(slots=True)
class TurnOutcome:
    battle: BattleState
    ok: bool
    message: str = ""
    move_id: str | None = None
    result: CombatResult | None = None
    used_fallback: bool = False


def _other(side: Side) -> Side:
    return "opponent" if side == "player" else "player"


def _cooldown_key(side: Side, move_id: str) -> str:
    return f"{side}:{move_id}"


def start_battle(
    state: PlayerState,
    rng: RandomSource,
    creature_id: str | None = None,
    zone: int | None = None,
    content: ContentBundle | None = None,
) -> ActionResult:
    """Set up a battle for a roster creature. The player state is left untouched."""
    bundle = resolve_content(content)
    creature_id = creature_id or state.selected_creature_id
    creature = state.creatures.get(creature_id) if creature_id else None
    if creature is None:
        return rejected(state, "Select a bird first.")
    if creature.id in state.hunting_ids:
        return rejected(state, f"{creature.name} is out hunting.")

    battle_zone = state.highest_zone if zone is None else max(1, min(int(zone), state.highest_zone))
    progress = state.zone_progress if battle_zone == state.highest_zone else []
    opponent = create_opponent(battle_zone, progress, rng, bundle)
    player = build_combatant(creature, equipped_gear(state, creature), content=bundle)
    battle = BattleState(
        zone=battle_zone,
        player=player,
        opponent=opponent,
        reward_context=reward_context_for(state, creature.id),
    )
    battle = begin_battle(battle)
    return accepted(state, f"A wild {opponent.rarity.lower()} {opponent.name} appears!", battle)


def begin_battle(battle: BattleState) -> BattleState:
    if battle.phase != "setup":
        return battle
    first: Side = "player" if battle.player.speed >= battle.opponent.speed else "opponent"
    updated = battle.model_copy(deep=True)
    updated.phase = "player_turn" if first == "player" else "opponent_turn"
    updated.add_log(f"{updated.combatant(first).name} moves first.")
    return updated


def move_ready(battle: BattleState, side: Side, move: Move, now_ms: int) -> bool:
    return now_ms >= battle.cooldowns.get(_cooldown_key(side, move.id), 0)


def legal_moves(battle: BattleState, side: Side, now_ms: int, altitude: int | None = None) -> list[Move]:
    combatant = battle.combatant(side)
    height = combatant.altitude if altitude is None else altitude
    return [
        move
        for move in combatant.moves
        if combatant.current_energy >= move.cost
        and move_ready(battle, side, move, now_ms)
        and (not move.requires_height or height == HIGH)
    ]


def can_use_move(
    battle: BattleState, side: Side, move_id: str, now_ms: int, altitude: int | None = None
) -> tuple[bool, str]:
    if battle.phase == "resolved":
        return False, "The battle is over."
    if battle.active_side != side:
        return False, "It is not your turn."
    combatant = battle.combatant(side)
    move = combatant.move_by_id(move_id)
    if move is None:
        return False, "Unknown move."
    if altitude is not None and altitude not in ALTITUDES:
        return False, "Invalid altitude."
    if combatant.current_energy < move.cost:
        return False, "Not enough energy."
    if not move_ready(battle, side, move, now_ms):
        return False, f"{move.name} is on cooldown."
    height = combatant.altitude if altitude is None else altitude
    if move.requires_height and height != HIGH:
        return False, f"{move.name} needs high altitude."
    return True, ""


def _finish(battle: BattleState, winner: Side, rng: RandomSource, content: ContentBundle) -> None:
    battle.phase = "resolved"
    battle.winner = winner
    if winner == "player":
        battle.rewards = calculate_rewards(battle.opponent, battle.reward_context, rng, content)
        battle.add_log(f"{battle.player.name} wins!")
    else:
        battle.add_log(f"{battle.player.name} was defeated.")
    logger.debug("Battle resolved after %s turns; winner=%s.", battle.turn, winner)


def _apply_regen(combatant: Combatant, content: ContentBundle) -> list[str]:
    table = content.balance.combat
    lines: list[str] = []
    regen = table.energy_regen
    if combatant.passive.kind == "hyper_metabolism":
        regen *= table.hyper_metabolism_rate
    regen += table.altitude_energy.get(combatant.altitude, 0.0)
    combatant.current_energy = max(0.0, min(float(combatant.max_energy), combatant.current_energy + regen))

    if combatant.passive.kind == "rot_eater" and combatant.current_hp < combatant.max_hp:
        heal = math.ceil(combatant.max_hp * table.rot_eater_heal)
        combatant.current_hp = min(combatant.max_hp, combatant.current_hp + heal)
        lines.append(f"{combatant.name} scavenges {heal} HP.")

    if "bleed" in combatant.status_effects:
        bleed = math.floor(combatant.max_hp * table.bleed_tick)
        combatant.current_hp = max(0, combatant.current_hp - bleed)
        lines.append(f"{combatant.name} bleeds for {bleed}.")
    return lines


def _end_turn(battle: BattleState, side: Side, rng: RandomSource, content: ContentBundle) -> None:
    actor = battle.combatant(side)
    for line in _apply_regen(actor, content):
        battle.add_log(line)
    if not actor.alive:
        _finish(battle, _other(side), rng, content)
        return
    battle.phase = "opponent_turn" if side == "player" else "player_turn"


def _execute(
    battle: BattleState,
    side: Side,
    move: Move,
    now_ms: int,
    rng: RandomSource,
    desired_altitude: int | None,
    multiplier: float,
    content: ContentBundle,
) -> tuple[BattleState, CombatResult]:
    table = content.balance.combat
    updated = battle.model_copy(deep=True)
    actor = updated.combatant(side)
    target = updated.combatant(_other(side))

    actor.current_energy = max(0.0, actor.current_energy - move.cost)
    if desired_altitude is not None:
        actor.altitude = desired_altitude
    updated.cooldowns[_cooldown_key(side, move.id)] = now_ms + move.cooldown_ms
    updated.turn += 1

    if move.type == "HEAL":
        amount = heal_amount(actor, move, multiplier)
        actor.current_hp = min(actor.max_hp, actor.current_hp + amount)
        updated.add_log(f"{actor.name} used {move.name} and heals {amount}.")
        result = CombatResult(hit=True)
    elif move.type == "DEFENSE":
        actor.status_effects.add(move.effect or "shield")
        updated.add_log(f"{actor.name} used {move.name}.")
        result = CombatResult(hit=True)
    elif "dodge" in target.status_effects:
        target.status_effects.discard("dodge")
        updated.add_log(f"{target.name} dodged {move.name}!")
        result = CombatResult(hit=False)
    else:
        result = resolve(actor, target, move, multiplier, rng, content)
        if not result.hit:
            updated.add_log(f"{actor.name} used {move.name} but missed.")
        else:
            damage = result.damage
            if target.is_defending:
                damage = math.floor(damage * table.shield_factor)
                target.status_effects.discard("shield")
            target.current_hp = max(0, target.current_hp - damage)
            result = CombatResult(hit=True, damage=damage, is_crit=result.is_crit, applied_bleed=result.applied_bleed)
            crit = " Critical!" if result.is_crit else ""
            updated.add_log(f"{actor.name} used {move.name}! -{damage}.{crit}")
            if target.alive:
                if move.type == "DRAIN" and damage > 0:
                    drained = math.floor(damage * table.drain_factor)
                    actor.current_hp = min(actor.max_hp, actor.current_hp + drained)
                if result.applied_bleed:
                    target.status_effects.add("bleed")

    if not target.alive:
        _finish(updated, side, rng, content)
    else:
        _end_turn(updated, side, rng, content)
    return updated, result


def player_turn(
    battle: BattleState,
    move_id: str,
    now_ms: int,
    rng: RandomSource,
    desired_altitude: int | None = None,
    multiplier: float = 1.0,
    content: ContentBundle | None = None,
) -> TurnOutcome:
    ok, reason = can_use_move(battle, "player", move_id, now_ms, desired_altitude)
    if not ok:
        return TurnOutcome(battle=battle, ok=False, message=reason)
    move = battle.player.move_by_id(move_id)
    updated, result = _execute(battle, "player", move, now_ms, rng, desired_altitude, multiplier, resolve_content(content))
    return TurnOutcome(battle=updated, ok=True, message=updated.log[-1], move_id=move_id, result=result)


def advisory_context(battle: BattleState, side: Side, now_ms: int) -> AdvisoryContext:
    return AdvisoryContext(
        turn=battle.turn,
        zone=battle.zone,
        actor=battle.combatant(side),
        target=battle.combatant(_other(side)),
        legal_move_ids=[move.id for move in legal_moves(battle, side, now_ms, altitude=HIGH)],
        recent_log=battle.log[-RECENT_LOG_LINES:],
    )


def opponent_turn(
    battle: BattleState,
    now_ms: int,
    rng: RandomSource,
    advisor: OpponentAdvisor | None = None,
    timeout: float = DEFAULT_ADVISORY_TIMEOUT,
    content: ContentBundle | None = None,
    answer: AdvisorAnswer | None = None,
) -> TurnOutcome:
    """Play the opponent's turn.

    Without an external advisor the local heuristic chooses directly; with one
    the call is time-bounded and falls back to a random legal move. An
    ``answer`` fetched beforehand with ``ask_advisor`` is settled without
    calling the advisor again.
    """
    if battle.phase != "opponent_turn":
        return TurnOutcome(battle=battle, ok=False, message="It is not the opponent's turn.")

    bundle = resolve_content(content)
    context = advisory_context(battle, "opponent", now_ms)
    if answer is not None:
        choice, used_fallback = settle_advice(answer.choice, context, rng)
    elif advisor is None:
        choice, used_fallback = LocalAdvisor(rng).choose(context), False
    else:
        choice, used_fallback = consult_advisor(advisor, context, rng, timeout)

    if choice is None:
        outcome = pass_turn(battle, "opponent", rng, bundle)
        outcome.used_fallback = used_fallback
        return outcome

    ok, _ = can_use_move(battle, "opponent", choice.move_id, now_ms, choice.desired_altitude)
    if not ok:
        # The advisor may pick a height move without asking to climb.
        choice = AdvisoryChoice(move_id=choice.move_id, desired_altitude=HIGH)
    return _play_choice(battle, choice, now_ms, rng, used_fallback, bundle)


def _play_choice(
    battle: BattleState,
    choice: AdvisoryChoice,
    now_ms: int,
    rng: RandomSource,
    used_fallback: bool,
    content: ContentBundle,
) -> TurnOutcome:
    ok, reason = can_use_move(battle, "opponent", choice.move_id, now_ms, choice.desired_altitude)
    if not ok:
        outcome = pass_turn(battle, "opponent", rng, content)
        outcome.message = reason
        outcome.used_fallback = True
        return outcome
    move = battle.opponent.move_by_id(choice.move_id)
    updated, result = _execute(battle, "opponent", move, now_ms, rng, choice.desired_altitude, 1.0, content)
    return TurnOutcome(
        battle=updated,
        ok=True,
        message=updated.log[-1],
        move_id=move.id,
        result=result,
        used_fallback=used_fallback,
    )


def pass_turn(
    battle: BattleState,
    side: Side,
    rng: RandomSource,
    content: ContentBundle | None = None,
) -> TurnOutcome:
    """Skip a turn, usually for lack of energy. Regen still applies."""
    if battle.active_side != side:
        return TurnOutcome(battle=battle, ok=False, message="It is not your turn.")
    updated = battle.model_copy(deep=True)
    updated.turn += 1
    updated.add_log(f"{updated.combatant(side).name} rests.")
    _end_turn(updated, side, rng, resolve_content(content))
    return TurnOutcome(battle=updated, ok=True, message=f"{updated.combatant(side).name} rests.")


def call_stalemate(battle: BattleState, rng: RandomSource, content: ContentBundle | None = None) -> BattleState:
    """End a battle that ran out of turns. The player loses."""
    updated = battle.model_copy(deep=True)
    _finish(updated, "opponent", rng, resolve_content(content))
    return updated


def autoplay_player_turn(
    battle: BattleState,
    now_ms: int,
    rng: RandomSource,
    content: ContentBundle | None = None,
) -> TurnOutcome:
    """Play the player's turn with the local heuristic, resting when nothing is usable."""
    bundle = resolve_content(content)
    choice = LocalAdvisor(rng).choose(advisory_context(battle, "player", now_ms))
    if choice is not None:
        altitude = HIGH if battle.player.move_by_id(choice.move_id).requires_height else None
        outcome = player_turn(battle, choice.move_id, now_ms, rng, altitude, content=bundle)
        if outcome.ok:
            return outcome
    return pass_turn(battle, "player", rng, bundle)


def auto_battle(
    battle: BattleState,
    rng: RandomSource,
    advisor: OpponentAdvisor | None = None,
    turn_ms: int = 1000,
    max_turns: int = 200,
    content: ContentBundle | None = None,
) -> BattleState:
    """Run a battle to the end with both sides on the local heuristic.

    A stalemate past ``max_turns`` counts as a loss for the player.
    """
    bundle = resolve_content(content)
    current = begin_battle(battle)
    now_ms = 0
    while current.phase != "resolved":
        if current.turn >= max_turns:
            current = call_stalemate(current, rng, bundle)
            break
        now_ms += turn_ms
        if current.phase == "player_turn":
            outcome = autoplay_player_turn(current, now_ms, rng, bundle)
        else:
            outcome = opponent_turn(current, now_ms, rng, advisor, content=bundle)
        current = outcome.battle
    return current
