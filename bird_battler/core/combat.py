from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Literal

from pydantic import Field

from .loader import ContentBundle, resolve_content
from .models import (
    HIGH,
    LOW,
    CreatureInstance,
    EnemyModifier,
    Gear,
    Move,
    Passive,
    Rarity,
    StrictModel,
)
from .rng import RandomSource

StatusEffect = Literal["bleed", "shield", "dodge"]

DAMAGING_MOVE_TYPES = frozenset({"ATTACK", "SPECIAL", "DRAIN"})


@dataclass(slots=True)
class ScaledStats:
    max_hp: int
    max_energy: int
    attack: int
    defense: int
    speed: int


@dataclass(slots=True)
class CombatResult:
    hit: bool
    damage: int = 0
    is_crit: bool = False
    applied_bleed: bool = False


class Combatant(StrictModel):
    creature_id: str = Field(min_length=1)
    template_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    rarity: Rarity
    level: int = Field(default=1, ge=1)
    passive: Passive
    moves: list[Move] = Field(min_length=1)
    max_hp: int = Field(ge=1)
    current_hp: int
    max_energy: int = Field(ge=1)
    current_energy: float
    attack: int
    defense: int
    speed: int
    altitude: int = Field(default=LOW, ge=0, le=2)
    status_effects: set[StatusEffect] = Field(default_factory=set)
    crit_chance: float = Field(default=0.0, ge=0)
    bleed_bonus: float = Field(default=0.0, ge=0)
    has_claws: bool = False
    modifier: EnemyModifier | None = None

    @property
    def is_defending(self) -> bool:
        return "shield" in self.status_effects

    @property
    def alive(self) -> bool:
        return self.current_hp > 0

    def move_by_id(self, move_id: str) -> Move | None:
        return next((move for move in self.moves if move.id == move_id), None)


def _gear_bonuses(gear_items: Iterable[Gear]) -> dict[str, int]:
    totals = {"HP": 0, "NRG": 0, "ATK": 0, "DEF": 0, "SPD": 0}
    for gear in gear_items:
        totals["ATK"] += gear.attack_bonus
        if gear.prefix is not None and gear.prefix.type == "QUALITY":
            totals["ATK"] += gear.prefix.value
        for bonus in gear.stat_bonuses:
            totals[bonus.stat] += bonus.value
    return totals


def scaled_stats(
    creature: CreatureInstance,
    level: int,
    is_enemy: bool = False,
    gear_items: Iterable[Gear] = (),
    content: ContentBundle | None = None,
) -> ScaledStats:
    table = resolve_content(content).balance.combat
    growth = table.enemy_growth if is_enemy else table.player_growth
    scale = 1 + level * growth
    if is_enemy:
        scale *= 1 + (level - 1) * table.enemy_level_growth

    bonus = _gear_bonuses(gear_items)
    return ScaledStats(
        max_hp=max(1, math.floor(creature.hp * scale) + bonus["HP"]),
        max_energy=max(1, math.floor(creature.energy * scale) + bonus["NRG"]),
        attack=math.floor(creature.attack * scale) + bonus["ATK"],
        defense=math.floor(creature.defense * scale) + bonus["DEF"],
        speed=math.floor(creature.speed * scale) + bonus["SPD"],
    )


def build_combatant(
    creature: CreatureInstance,
    gear_items: Iterable[Gear] = (),
    level: int | None = None,
    is_enemy: bool = False,
    content: ContentBundle | None = None,
) -> Combatant:
    gear_list = list(gear_items)
    effective_level = creature.level if level is None else max(1, int(level))
    stats = scaled_stats(creature, effective_level, is_enemy=is_enemy, gear_items=gear_list, content=content)
    crit = sum(gear.prefix.value for gear in gear_list if gear.prefix is not None and gear.prefix.type == "GREAT")
    bleed = sum(gear.prefix.value for gear in gear_list if gear.prefix is not None and gear.prefix.type == "SHARP")
    return Combatant(
        creature_id=creature.id,
        template_id=creature.template_id,
        name=creature.name,
        rarity=creature.rarity,
        level=effective_level,
        passive=creature.passive,
        moves=[move.model_copy() for move in creature.moves],
        max_hp=stats.max_hp,
        current_hp=stats.max_hp,
        max_energy=stats.max_energy,
        current_energy=float(stats.max_energy),
        attack=stats.attack,
        defense=stats.defense,
        speed=stats.speed,
        crit_chance=float(crit),
        bleed_bonus=float(bleed),
        has_claws=any(gear.type == "claws" for gear in gear_list),
    )


def hit_chance(attacker: Combatant, defender: Combatant, move: Move, multiplier: float, content: ContentBundle | None = None) -> float:
    table = resolve_content(content).balance.combat
    accuracy = float(move.accuracy)
    if move.type in DAMAGING_MOVE_TYPES and defender.speed > attacker.speed and attacker.passive.kind != "keen_eye":
        accuracy -= min(table.evasion_cap, (defender.speed - attacker.speed) * table.evasion_per_speed)
    if multiplier >= table.skill_threshold:
        accuracy += table.skill_accuracy_bonus
    return accuracy


def resolve(
    attacker: Combatant,
    defender: Combatant,
    move: Move,
    multiplier: float,
    rng: RandomSource,
    content: ContentBundle | None = None,
) -> CombatResult:
    """Compute one move exchange without touching either combatant.

    Heal and defense moves always land for zero damage; the battle layer
    applies their effect.
    """
    table = resolve_content(content).balance.combat
    if move.type not in DAMAGING_MOVE_TYPES:
        return CombatResult(hit=True)

    accuracy = hit_chance(attacker, defender, move, multiplier, content)
    if accuracy <= 0 or not rng.next_float() * 100 < accuracy:
        return CombatResult(hit=False)

    damage = move.power * attacker.attack / max(1, defender.defense)
    is_crit = False
    if attacker.crit_chance > 0 and rng.next_float() * 100 < attacker.crit_chance:
        is_crit = True
        damage *= table.crit_multiplier
    if attacker.passive.kind == "predator" and defender.current_hp < defender.max_hp * table.predator_threshold:
        damage *= table.predator_multiplier
    if attacker.altitude > defender.altitude:
        damage *= table.altitude_multiplier
    damage *= max(0.0, multiplier)
    if attacker.altitude == HIGH and rng.chance(table.high_altitude_chance):
        damage *= table.high_altitude_multiplier

    applied_bleed = False
    if attacker.bleed_bonus > 0:
        applied_bleed = rng.next_float() * 100 < table.bleed_base_chance + attacker.bleed_bonus
    elif attacker.has_claws:
        applied_bleed = rng.chance(table.claws_bleed_chance)

    final = math.floor(damage) if math.isfinite(damage) else 0
    return CombatResult(hit=True, damage=max(0, final), is_crit=is_crit, applied_bleed=applied_bleed)


def heal_amount(attacker: Combatant, move: Move, multiplier: float) -> int:
    return max(1, math.floor(move.power * max(0.0, multiplier) * max(0, attacker.attack) / 100))
