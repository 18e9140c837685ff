from __future__ import annotations

import math

from .crafting import remove_gear
from .generator import StatOption, catch_creature_roll, generate_creature, roll_stat_options
from .loader import ContentBundle, resolve_content
from .models import ActionResult, CreatureInstance, PlayerState, Rarity, accepted, rejected
from .persistence import allocate_id, clone_state
from .rng import RandomSource

STARTER_RARITY: Rarity = "UNCOMMON"
STARTER_FEATHERS = 100
STARTER_SCRAP = 10
PERFECT_CATCH_MULTIPLIER = 5.0

STAT_FIELDS = {"HP": "hp", "NRG": "energy", "ATK": "attack", "DEF": "defense", "SPD": "speed"}


def roster_capacity(state: PlayerState, content: ContentBundle | None = None) -> int:
    base = resolve_content(content).balance.economy.roster_base_capacity
    return base + state.upgrade_level("roster_capacity")


def release_value(rarity: Rarity, level: int = 0, content: ContentBundle | None = None) -> int:
    bundle = resolve_content(content)
    economy = bundle.balance.economy
    min_mult = bundle.balance.tier(rarity).min_mult
    return math.floor(
        economy.recruit_feathers
        * (economy.release_base_ratio + min_mult * economy.release_rarity_ratio)
        * (1 + level * economy.release_level_ratio)
    )


def choose_starter(
    state: PlayerState,
    template_id: str,
    rng: RandomSource,
    content: ContentBundle | None = None,
) -> ActionResult:
    bundle = resolve_content(content)
    if state.creatures:
        return rejected(state, "A starter has already been chosen.")
    template = bundle.template_by_id.get(template_id)
    if template is None:
        return rejected(state, f"Unknown species '{template_id}'.")

    new_state = clone_state(state)
    creature = generate_creature(template, STARTER_RARITY, rng, bundle, instance_id=allocate_id(new_state, "bird"))
    new_state.creatures[creature.id] = creature
    new_state.selected_creature_id = creature.id
    new_state.feathers += STARTER_FEATHERS
    new_state.scrap += STARTER_SCRAP
    new_state.lifetime.total_catches += 1
    return accepted(new_state, f"{creature.name} joins the flock.", creature)


def can_catch(state: PlayerState, content: ContentBundle | None = None) -> tuple[bool, str]:
    if state.pending_catch is not None:
        return False, "Keep or release the last catch first."
    if len(state.creatures) >= roster_capacity(state, content):
        return False, "Roster is full."
    cost = resolve_content(content).balance.economy.recruit_feathers
    if state.feathers < cost:
        return False, f"Need {cost} feathers."
    return True, "Ready."


def catch_creature(
    state: PlayerState,
    rng: RandomSource,
    multiplier: float = 1.0,
    content: ContentBundle | None = None,
) -> ActionResult:
    """Scan for a wild bird. ``multiplier`` is the catch minigame result.

    The catch waits in ``pending_catch`` until it is kept or discarded.
    """
    bundle = resolve_content(content)
    ok, reason = can_catch(state, bundle)
    if not ok:
        return rejected(state, reason)

    new_state = clone_state(state)
    new_state.feathers -= bundle.balance.economy.recruit_feathers
    creature = catch_creature_roll(
        rng,
        new_state.upgrade_level("catch_rarity"),
        multiplier,
        bundle,
        instance_id=allocate_id(new_state, "bird"),
    )
    new_state.pending_catch = creature

    lifetime = new_state.lifetime
    if multiplier >= PERFECT_CATCH_MULTIPLIER:
        lifetime.current_perfect_catch_streak += 1
        lifetime.max_perfect_catch_streak = max(lifetime.max_perfect_catch_streak, lifetime.current_perfect_catch_streak)
    else:
        lifetime.current_perfect_catch_streak = 0
    return accepted(new_state, f"Caught a {creature.rarity.lower()} {creature.name}!", creature)


def keep_catch(state: PlayerState, content: ContentBundle | None = None) -> ActionResult:
    creature = state.pending_catch
    if creature is None:
        return rejected(state, "Nothing to keep.")
    if len(state.creatures) >= roster_capacity(state, content):
        return rejected(state, "Roster is full.")

    new_state = clone_state(state)
    kept = new_state.pending_catch
    new_state.pending_catch = None
    new_state.creatures[kept.id] = kept
    if new_state.selected_creature_id is None:
        new_state.selected_creature_id = kept.id
    new_state.lifetime.total_catches += 1
    return accepted(new_state, f"{kept.name} joins the flock.", kept)


def discard_catch(state: PlayerState, content: ContentBundle | None = None) -> ActionResult:
    creature = state.pending_catch
    if creature is None:
        return rejected(state, "Nothing to release.")
    refund = release_value(creature.rarity, 0, content)
    new_state = clone_state(state)
    new_state.pending_catch = None
    new_state.feathers += refund
    return accepted(new_state, f"Released {creature.name} for {refund} feathers.", refund)


def release_creature(state: PlayerState, creature_id: str, content: ContentBundle | None = None) -> ActionResult:
    if creature_id not in state.creatures:
        return rejected(state, "Unknown bird.")
    bundle = resolve_content(content)
    new_state = clone_state(state)
    creature = new_state.creatures[creature_id]

    refund = release_value(creature.rarity, creature.level, bundle)
    new_state.feathers += refund
    scrap_refund = 0
    # Equipped gear is salvaged with the bird; remove_gear credits the refund.
    for gear_id in creature.gear.ids():
        gear = new_state.gear.get(gear_id)
        if gear is not None:
            feathers, scrap = remove_gear(new_state, gear, bundle)
            refund += feathers
            scrap_refund += scrap

    del new_state.creatures[creature_id]
    new_state.hunting_ids = [hunter for hunter in new_state.hunting_ids if hunter != creature_id]
    if new_state.selected_creature_id == creature_id:
        new_state.selected_creature_id = next(iter(new_state.creatures), None)
    return accepted(new_state, f"Released {creature.name}.", (refund, scrap_refund))


def select_creature(state: PlayerState, creature_id: str) -> ActionResult:
    if creature_id not in state.creatures:
        return rejected(state, "Unknown bird.")
    if state.selected_creature_id == creature_id:
        return rejected(state, "Already selected.")
    new_state = clone_state(state)
    new_state.selected_creature_id = creature_id
    return accepted(new_state, f"{new_state.creatures[creature_id].name} is ready to fight.")


def assign_hunter(state: PlayerState, creature_id: str) -> ActionResult:
    if creature_id not in state.creatures:
        return rejected(state, "Unknown bird.")
    if creature_id in state.hunting_ids:
        return rejected(state, "Already hunting.")
    new_state = clone_state(state)
    new_state.hunting_ids.append(creature_id)
    return accepted(new_state, f"{new_state.creatures[creature_id].name} heads out to hunt.")


def recall_hunter(state: PlayerState, creature_id: str) -> ActionResult:
    if creature_id not in state.hunting_ids:
        return rejected(state, "Not hunting.")
    new_state = clone_state(state)
    new_state.hunting_ids = [hunter for hunter in new_state.hunting_ids if hunter != creature_id]
    return accepted(new_state, "Hunter recalled.")


def roll_level_up_options(
    state: PlayerState,
    creature_id: str,
    rng: RandomSource,
    content: ContentBundle | None = None,
) -> list[StatOption]:
    creature = state.creatures.get(creature_id)
    if creature is None or creature.stat_points <= 0:
        return []
    return roll_stat_options(rng, content)


def apply_stat_option(state: PlayerState, creature_id: str, option: StatOption) -> ActionResult:
    """Spend one stat point on a rolled option."""
    creature = state.creatures.get(creature_id)
    if creature is None:
        return rejected(state, "Unknown bird.")
    if creature.stat_points <= 0:
        return rejected(state, "No stat points to spend.")
    field_name = STAT_FIELDS.get(option.stat)
    if field_name is None or option.value < 0:
        return rejected(state, "Invalid stat option.")

    new_state = clone_state(state)
    target: CreatureInstance = new_state.creatures[creature_id]
    setattr(target, field_name, getattr(target, field_name) + option.value)
    target.stat_points -= 1
    return accepted(new_state, f"{target.name} gains +{option.value} {option.stat}.", target)
