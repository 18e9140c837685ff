from __future__ import annotations

import math
import uuid
from dataclasses import dataclass

from .combat import Combatant, build_combatant
from .loader import ContentBundle, resolve_content
from .models import (
    CONSUMABLE_TYPES,
    GEM_BUFF_TYPES,
    LOW,
    RARITY_ORDER,
    STAT_KEYS,
    ConsumableType,
    CreatureInstance,
    CreatureTemplate,
    Gear,
    GearPrefix,
    GearType,
    Gem,
    GemBuff,
    Rarity,
    RollContext,
    StatBonus,
    StatKey,
    rarity_at,
    rarity_index,
)
from .rarity import roll_multiplier, roll_rarity, tier_name
from .rng import RandomSource, WeightedEntry

PREFIX_TYPES = ("QUALITY", "SHARP", "GREAT")


@dataclass(slots=True)
class StatOption:
    stat: StatKey
    value: int
    rarity: Rarity


def fresh_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def xp_threshold(level: int, content: ContentBundle | None = None) -> int:
    leveling = resolve_content(content).balance.leveling
    return max(1, math.floor(leveling.base_xp * leveling.growth ** (max(1, level) - 1)))


def generate_creature(
    template: CreatureTemplate,
    rarity: Rarity,
    rng: RandomSource,
    content: ContentBundle | None = None,
    instance_id: str | None = None,
) -> CreatureInstance:
    bundle = resolve_content(content)
    multiplier = roll_multiplier(rng, rarity, bundle)
    ranges = template.base_stats

    def roll_stat(low: int, high: int) -> int:
        return math.floor(rng.randint(low, high) * multiplier)

    return CreatureInstance(
        id=instance_id or fresh_id("bird"),
        template_id=template.id,
        name=template.name,
        species=template.species,
        rarity=rarity,
        hp=max(1, roll_stat(ranges.hp.min, ranges.hp.max)),
        energy=max(1, roll_stat(ranges.energy.min, ranges.energy.max)),
        attack=roll_stat(ranges.attack.min, ranges.attack.max),
        defense=roll_stat(ranges.defense.min, ranges.defense.max),
        speed=roll_stat(ranges.speed.min, ranges.speed.max),
        moves=[move.model_copy() for move in template.moves],
        passive=template.passive.model_copy(),
        hunting=template.hunting.model_copy(),
        level=1,
        xp=0,
        xp_to_next=xp_threshold(1, bundle),
        stat_points=0,
    )


def catch_creature_roll(
    rng: RandomSource,
    catch_level: int,
    multiplier: float,
    content: ContentBundle | None = None,
    instance_id: str | None = None,
) -> CreatureInstance:
    bundle = resolve_content(content)
    template = rng.pick(bundle.templates)
    rarity = roll_rarity(rng, catch_level, "CATCH", multiplier, bundle)
    return generate_creature(template, rarity, rng, bundle, instance_id=instance_id)


def roll_prefix(rarity: Rarity, rng: RandomSource, content: ContentBundle | None = None) -> GearPrefix | None:
    table = resolve_content(content).balance.gear
    if not rng.chance(table.prefix_chance):
        return None
    prefix_type = rng.pick(PREFIX_TYPES)
    value_range = table.prefix_ranges[prefix_type]
    tier_mult = 1 + rarity_index(rarity) * table.prefix_tier_scale
    return GearPrefix(type=prefix_type, value=math.floor(rng.uniform(value_range.min, value_range.max) * tier_mult))


def roll_stat_bonuses(
    rarity: Rarity,
    rng: RandomSource,
    level: int = 0,
    content: ContentBundle | None = None,
) -> list[StatBonus]:
    table = resolve_content(content).balance.gear
    item_index = rarity_index(rarity)
    if item_index == 0:
        return []

    count = min(table.stat_bonus_max, int(rng.next_float() * item_index) + 1)
    drop_chance = max(0.0, table.tier_drop_base - level * table.tier_drop_per_level)
    bonuses: list[StatBonus] = []
    for _ in range(count):
        bonus_index = item_index - 1 if rng.chance(drop_chance) else item_index
        bonus_rarity = rarity_at(bonus_index)
        stat = rng.pick(STAT_KEYS)
        value_range = table.stat_bonus_ranges[bonus_rarity]
        quality = min(1.0, rng.next_float() + level * table.stat_bonus_level_luck)
        bonuses.append(
            StatBonus(
                stat=stat,
                value=math.floor(value_range.min + quality * (value_range.max - value_range.min)),
                rarity=bonus_rarity,
            )
        )
    return bonuses


def roll_socket_count(rarity: Rarity, rng: RandomSource, content: ContentBundle | None = None) -> int:
    table = resolve_content(content).balance.gear
    capacity = table.socket_capacity[rarity]
    if capacity <= 0:
        return 0
    roll = rng.next_float()
    if roll < table.socket_full_chance:
        return capacity
    if roll < table.socket_full_chance + table.socket_reduced_chance:
        return max(1, capacity - 1)
    return 0


def build_gear(
    gear_type: GearType,
    rarity: Rarity,
    rng: RandomSource,
    level: int = 0,
    content: ContentBundle | None = None,
    gear_id: str | None = None,
) -> Gear:
    bundle = resolve_content(content)
    table = bundle.balance.gear
    multiplier = roll_multiplier(rng, rarity, bundle)
    level_mult = 1 + level * table.level_scale
    attack_bonus = math.floor(table.base_attack[gear_type] * level_mult * multiplier)

    prefix = roll_prefix(rarity, rng, bundle)
    stat_bonuses = roll_stat_bonuses(rarity, rng, level, bundle)
    socket_count = roll_socket_count(rarity, rng, bundle)

    name = f"{tier_name(rarity, bundle)} {table.names[gear_type]}"
    if prefix is not None:
        name = f"{prefix.type.capitalize()} {name}"
    return Gear(
        id=gear_id or fresh_id("gear"),
        name=name,
        type=gear_type,
        rarity=rarity,
        attack_bonus=attack_bonus,
        prefix=prefix,
        stat_bonuses=stat_bonuses,
        sockets=[None] * socket_count,
    )


def generate_gear(
    gear_type: GearType,
    rng: RandomSource,
    level: int = 0,
    content: ContentBundle | None = None,
    gear_id: str | None = None,
) -> Gear:
    rarity = roll_rarity(rng, level, "CRAFT", content=content)
    return build_gear(gear_type, rarity, rng, level, content, gear_id=gear_id)


def roll_gem_buff(rarity: Rarity, rng: RandomSource, level: int = 0, content: ContentBundle | None = None) -> GemBuff:
    table = resolve_content(content).balance.gems
    buff_rarity = rarity_at(rarity_index(rarity) - int(rng.next_float() * 2))
    buff_type = rng.pick(GEM_BUFF_TYPES)
    level_mult = 1 + level * table.level_scale
    if buff_type in table.rare_kinds:
        value_range = table.rare_ranges[buff_rarity]
        value = round(rng.uniform(value_range.min, value_range.max) * level_mult, 1)
    else:
        value_range = table.common_ranges[buff_rarity]
        value = float(math.floor(rng.uniform(value_range.min, value_range.max) * level_mult))
    return GemBuff(type=buff_type, value=value, rarity=buff_rarity)


def build_gem(
    rarity: Rarity,
    rng: RandomSource,
    level: int = 0,
    content: ContentBundle | None = None,
    gem_id: str | None = None,
) -> Gem:
    bundle = resolve_content(content)
    max_buffs = bundle.balance.gems.max_buffs
    count = max(1, min(max_buffs, rarity_index(rarity) // 2 + 1))
    return Gem(
        id=gem_id or fresh_id("gem"),
        name=f"{tier_name(rarity, bundle)} Gem",
        rarity=rarity,
        buffs=[roll_gem_buff(rarity, rng, level, bundle) for _ in range(count)],
    )


def generate_gem(
    rng: RandomSource,
    level: int = 0,
    content: ContentBundle | None = None,
    gem_id: str | None = None,
    context: RollContext = "CRAFT",
) -> Gem:
    rarity = roll_rarity(rng, level, context, content=content)
    return build_gem(rarity, rng, level, content, gem_id=gem_id)


def roll_consumable_type(rng: RandomSource) -> ConsumableType:
    return CONSUMABLE_TYPES[0] if rng.next_float() < 0.5 else CONSUMABLE_TYPES[1]


def roll_consumable(
    rng: RandomSource,
    level: int = 0,
    context: RollContext = "DROP",
    content: ContentBundle | None = None,
) -> tuple[ConsumableType, Rarity]:
    return roll_consumable_type(rng), roll_rarity(rng, level, context, content=content)


def roll_stat_options(rng: RandomSource, content: ContentBundle | None = None) -> list[StatOption]:
    leveling = resolve_content(content).balance.leveling
    options: list[StatOption] = []
    for _ in range(leveling.stat_option_count):
        stat = rng.pick(STAT_KEYS)
        roll = rng.next_float()
        rarity = next((odds.rarity for odds in leveling.option_odds if roll < odds.below), RARITY_ORDER[0])
        ranges = leveling.pool_option_ranges if stat in ("HP", "NRG") else leveling.core_option_ranges
        value_range = ranges[rarity]
        options.append(StatOption(stat=stat, value=rng.randint(value_range.min, value_range.max), rarity=rarity))
    return options


def required_rarities(zone: int, content: ContentBundle | None = None) -> list[Rarity]:
    zones = resolve_content(content).balance.zones
    return list(zones[max(1, min(len(zones), int(zone))) - 1])


def roll_opponent_rarity(
    zone: int,
    progress: list[Rarity],
    rng: RandomSource,
    content: ContentBundle | None = None,
) -> Rarity:
    bundle = resolve_content(content)
    table = bundle.balance.opponents
    pool = RARITY_ORDER[: min(len(RARITY_ORDER) - 1, max(1, zone)) + 1]
    rarity = rng.pick_weighted([WeightedEntry(value=r, weight=table.rarity_weights[rarity_index(r)]) for r in pool])

    missing = [r for r in required_rarities(zone, bundle) if r not in progress and r in pool]
    if missing and rng.chance(table.force_missing_chance):
        rarity = rng.pick(missing)
    return rarity


def create_opponent(
    zone: int,
    progress: list[Rarity],
    rng: RandomSource,
    content: ContentBundle | None = None,
) -> Combatant:
    bundle = resolve_content(content)
    table = bundle.balance.opponents
    level = max(1, int(zone))
    template = rng.pick(bundle.templates)
    rarity = roll_opponent_rarity(level, progress, rng, bundle)
    creature = generate_creature(template, rarity, rng, bundle, instance_id=fresh_id("wild"))
    opponent = build_combatant(creature, level=level, is_enemy=True, content=bundle)

    if not rng.chance(table.modifier_chance):
        return opponent

    modifier = rng.pick(list(table.modifiers))
    multipliers = dict(table.modifiers[modifier])
    if modifier in table.random_stat_modifiers and table.random_stat_multipliers:
        stat = rng.pick(list(table.random_stat_multipliers))
        multipliers[stat] = table.random_stat_multipliers[stat]

    max_hp = math.floor(opponent.max_hp * multipliers.get("hp", 1.0))
    return opponent.model_copy(
        update={
            "max_hp": max_hp,
            "current_hp": max_hp,
            "attack": math.floor(opponent.attack * multipliers.get("attack", 1.0)),
            "defense": math.floor(opponent.defense * multipliers.get("defense", 1.0)),
            "speed": math.floor(opponent.speed * multipliers.get("speed", 1.0)),
            "altitude": LOW,
            "modifier": modifier,
        }
    )
