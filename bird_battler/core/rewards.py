from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import Field

from .combat import Combatant
from .generator import build_gem, required_rarities, roll_consumable, roll_consumable_type, xp_threshold
from .inventory import add_consumable, buff_multiplier, decay_buff, gem_buff_totals
from .loader import ContentBundle, resolve_content
from .models import (
    ActionResult,
    ConsumableType,
    CreatureInstance,
    Gem,
    PlayerState,
    Rarity,
    StrictModel,
    accepted,
    rarity_index,
    rejected,
)
from .persistence import allocate_id, clone_state, grant_feathers, grant_scrap
from .rarity import roll_rarity
from .rng import RandomSource

if TYPE_CHECKING:
    from .battle import BattleState

logger = logging.getLogger(__name__)


class ConsumableDrop(StrictModel):
    type: ConsumableType
    rarity: Rarity


class RewardContext(StrictModel):
    """Snapshot of the player-side modifiers taken when a battle starts."""

    player_level: int = Field(default=1, ge=1)
    gem_buffs: dict[str, float] = Field(default_factory=dict)
    battle_multiplier: float = Field(default=1.0, gt=0)
    meta_levels: dict[str, int] = Field(default_factory=dict)
    scrap_chance_level: int = Field(default=0, ge=0)
    gem_crafting_unlocked: bool = False


class BattleRewards(StrictModel):
    xp: int = Field(default=0, ge=0)
    feathers: int = Field(default=0, ge=0)
    scrap: int = Field(default=0, ge=0)
    diamonds: int = Field(default=0, ge=0)
    gem: Gem | None = None
    consumable: ConsumableDrop | None = None


@dataclass(slots=True)
class LevelUpReport:
    levels_gained: int = 0
    new_level: int = 1
    stat_points_gained: int = 0


@dataclass(slots=True)
class ZoneOutcome:
    counted: bool = False
    satisfied: Rarity | None = None
    advanced: bool = False
    new_zone: int = 1
    clear_feathers: int = 0
    clear_scrap: int = 0
    clear_consumable: ConsumableDrop | None = None
    progress: list[Rarity] = field(default_factory=list)


def meta_multiplier(level: int, content: ContentBundle | None = None) -> float:
    return 1 + max(0, level) * resolve_content(content).balance.rewards.meta_rate


def reward_context_for(state: PlayerState, creature_id: str) -> RewardContext:
    creature = state.creatures.get(creature_id)
    return RewardContext(
        player_level=creature.level if creature else 1,
        gem_buffs=dict(gem_buff_totals(state, creature_id)),
        battle_multiplier=buff_multiplier(state, "BATTLE_REWARD"),
        meta_levels=dict(state.meta_shop),
        scrap_chance_level=state.upgrade_level("scrap_chance"),
        gem_crafting_unlocked=state.is_unlocked("gem_crafting"),
    )


def calculate_rewards(
    opponent: Combatant,
    context: RewardContext,
    rng: RandomSource,
    content: ContentBundle | None = None,
) -> BattleRewards:
    bundle = resolve_content(content)
    table = bundle.balance.rewards
    rarity = opponent.rarity
    rarity_mult = bundle.balance.tier(rarity).min_mult
    enemy_level = opponent.level
    modifier_mults = table.modifier_multipliers.get(opponent.modifier, {}) if opponent.modifier else {}
    guaranteed = table.guaranteed_drops.get(opponent.modifier) if opponent.modifier else None
    buffs = context.gem_buffs

    def meta(boost_id: str) -> float:
        return meta_multiplier(context.meta_levels.get(boost_id, 0), bundle)

    xp = math.floor(
        table.base_xp
        * (1 + enemy_level * table.xp_level_scale)
        * rarity_mult
        * modifier_mults.get("xp", 1.0)
        * (1 + buffs.get("XP_BONUS", 0.0) / 100)
    )
    feathers = math.floor(
        table.base_feathers
        * (1 + enemy_level * table.feather_level_scale)
        * rarity_mult
        * modifier_mults.get("feathers", 1.0)
        * (1 + buffs.get("FEATHER_BONUS", 0.0) / 100)
        * context.battle_multiplier
        * meta("feather_boost")
    )

    scrap = 0
    scrap_entry = table.scrap[rarity]
    scrap_chance = scrap_entry.chance * (1 + buffs.get("SCRAP_BONUS", 0.0) / 100)
    scrap_chance += context.scrap_chance_level * table.scrap_chance_per_level
    if guaranteed == "scrap" or rng.chance(scrap_chance):
        level_scale = (1 + enemy_level * table.scrap_enemy_scale) * (1 + context.player_level * table.scrap_player_scale)
        scrap = math.floor(
            rng.uniform(scrap_entry.min, scrap_entry.max)
            * level_scale
            * modifier_mults.get("scrap", 1.0)
            * context.battle_multiplier
            * meta("scrap_boost")
        )

    diamond_chance = (table.diamond_base_chance + buffs.get("DIAMOND_BATTLE_CHANCE", 0.0)) * meta("diamond_boost")
    diamonds = 1 if rng.next_float() * 100 < diamond_chance else 0

    gem = None
    if guaranteed == "gem" or context.gem_crafting_unlocked:
        gem_chance = (table.gem_base_chance + table.gem_rarity_bonus.get(rarity, 0.0) + buffs.get("GEM_FIND_CHANCE", 0.0)) * meta(
            "gem_drop_boost"
        )
        if guaranteed == "gem" or rng.next_float() * 100 < gem_chance:
            gem_level = 0 if rarity_index(rarity) == 0 else 2
            gem = build_gem(roll_rarity(rng, gem_level, "CRAFT", content=bundle), rng, content=bundle)

    consumable = None
    consumable_chance = (table.consumable_chance[rarity] + buffs.get("ITEM_FIND_CHANCE", 0.0)) * meta("item_drop_boost")
    if guaranteed == "consumable" or rng.next_float() * 100 < consumable_chance:
        drop_type, drop_rarity = roll_consumable(rng, 0, "DROP", bundle)
        consumable = ConsumableDrop(type=drop_type, rarity=drop_rarity)

    return BattleRewards(
        xp=xp,
        feathers=feathers,
        scrap=scrap,
        diamonds=diamonds,
        gem=gem,
        consumable=consumable,
    )


def apply_xp(creature: CreatureInstance, amount: int, content: ContentBundle | None = None) -> LevelUpReport:
    """Add xp in place, rolling any overflow through successive levels."""
    bundle = resolve_content(content)
    points_per_level = bundle.balance.leveling.stat_points_per_level
    report = LevelUpReport(new_level=creature.level)
    xp = creature.xp + max(0, int(amount))
    level = creature.level
    threshold = creature.xp_to_next
    while xp >= threshold:
        xp -= threshold
        level += 1
        threshold = xp_threshold(level, bundle)
        report.levels_gained += 1

    if report.levels_gained:
        report.stat_points_gained = report.levels_gained * points_per_level
        creature.stat_points += report.stat_points_gained
    creature.level = level
    creature.xp_to_next = threshold
    creature.xp = xp
    report.new_level = level
    return report


def satisfied_rarity(progress: list[Rarity], required: list[Rarity], opponent_rarity: Rarity) -> Rarity | None:
    if opponent_rarity in required and opponent_rarity not in progress:
        return opponent_rarity
    ceiling = rarity_index(opponent_rarity)
    return next(
        (rarity for rarity in required if rarity not in progress and rarity_index(rarity) <= ceiling),
        None,
    )


def record_zone_victory(
    state: PlayerState,
    zone: int,
    opponent_rarity: Rarity,
    rng: RandomSource,
    content: ContentBundle | None = None,
) -> ZoneOutcome:
    """Count a victory towards zone progress, in place.

    Victories fought in any zone other than the current frontier are ignored,
    so a stale report can never advance the zone twice.
    """
    bundle = resolve_content(content)
    outcome = ZoneOutcome(new_zone=state.highest_zone, progress=list(state.zone_progress))
    if int(zone) != state.highest_zone:
        return outcome

    required = required_rarities(zone, bundle)
    outcome.counted = True
    outcome.satisfied = satisfied_rarity(state.zone_progress, required, opponent_rarity)
    if outcome.satisfied is not None:
        state.zone_progress = [r for r in required if r in state.zone_progress or r == outcome.satisfied]

    if all(rarity in state.zone_progress for rarity in required):
        table = bundle.balance.rewards
        cleared = state.highest_zone
        state.highest_zone = cleared + 1
        state.zone_progress = []
        state.lifetime.highest_zone_reached = max(state.lifetime.highest_zone_reached, state.highest_zone)

        outcome.advanced = True
        outcome.clear_feathers = cleared * table.zone_clear_feathers
        outcome.clear_scrap = cleared * table.zone_clear_scrap
        grant_feathers(state, outcome.clear_feathers)
        grant_scrap(state, outcome.clear_scrap)
        drop_type = roll_consumable_type(rng)
        drop_rarity = roll_rarity(rng, cleared * table.zone_clear_roll_scale, "CRAFT", content=bundle)
        add_consumable(state, drop_type, drop_rarity)
        outcome.clear_consumable = ConsumableDrop(type=drop_type, rarity=drop_rarity)
        logger.info("Zone %s cleared; advancing to zone %s.", cleared, state.highest_zone)

    outcome.new_zone = state.highest_zone
    outcome.progress = list(state.zone_progress)
    return outcome


def report_zone_victory(
    state: PlayerState,
    zone: int,
    opponent_rarity: Rarity,
    rng: RandomSource,
    content: ContentBundle | None = None,
) -> ActionResult:
    new_state = clone_state(state)
    outcome = record_zone_victory(new_state, zone, opponent_rarity, rng, content)
    if not outcome.counted:
        return rejected(state, f"Victory in zone {zone} does not count towards zone {state.highest_zone}.")
    return accepted(new_state, "Zone progress recorded.", outcome)


@dataclass(slots=True)
class BattleSettlement:
    rewards: BattleRewards
    level_up: LevelUpReport | None
    zone: ZoneOutcome


def apply_battle_result(
    state: PlayerState,
    battle: "BattleState",
    rng: RandomSource,
    content: ContentBundle | None = None,
) -> ActionResult:
    """Fold a finished battle into the player state in a single step."""
    if battle.phase != "resolved":
        return rejected(state, "Battle is still running.")
    if battle.winner != "player" or battle.rewards is None:
        return accepted(state, "Defeat. No rewards.")

    bundle = resolve_content(content)
    rewards = battle.rewards
    new_state = clone_state(state)
    grant_feathers(new_state, rewards.feathers)
    grant_scrap(new_state, rewards.scrap)
    new_state.diamonds += rewards.diamonds
    new_state.lifetime.battles_won += 1

    if rewards.gem is not None:
        gem_id = allocate_id(new_state, "gem")
        new_state.gems[gem_id] = rewards.gem.model_copy(update={"id": gem_id, "socketed_in": None})
    if rewards.consumable is not None:
        add_consumable(new_state, rewards.consumable.type, rewards.consumable.rarity)

    level_up = None
    creature = new_state.creatures.get(battle.player.creature_id)
    if creature is not None:
        level_up = apply_xp(creature, rewards.xp, bundle)
        if level_up.levels_gained:
            logger.info("%s reached level %s.", creature.name, creature.level)

    decay_buff(new_state, "BATTLE_REWARD")
    zone = record_zone_victory(new_state, battle.zone, battle.opponent.rarity, rng, bundle)
    return accepted(new_state, "Victory.", BattleSettlement(rewards=rewards, level_up=level_up, zone=zone))
