from __future__ import annotations

import math

from .generator import generate_gear, generate_gem
from .inventory import detach_gear
from .loader import ContentBundle, resolve_content
from .models import ActionResult, Cost, Gear, GearType, Gem, PlayerState, Rarity, accepted, rejected
from .persistence import allocate_id, can_afford, clone_state, spend
from .rng import RandomSource

CRAFT_UNLOCKS: dict[str, str] = {
    "beak": "workshop",
    "claws": "claw_crafting",
    "gem": "gem_crafting",
}


def gear_cost(content: ContentBundle | None = None) -> Cost:
    return resolve_content(content).balance.economy.craft_gear


def gem_cost(content: ContentBundle | None = None) -> Cost:
    return resolve_content(content).balance.economy.craft_gem


def _missing(state: PlayerState, cost: Cost) -> str:
    parts = []
    if state.feathers < cost.feathers:
        parts.append(f"{cost.feathers} feathers")
    if state.scrap < cost.scrap:
        parts.append(f"{cost.scrap} scrap")
    if state.diamonds < cost.diamonds:
        parts.append(f"{cost.diamonds} diamonds")
    return "Need " + " and ".join(parts) + "."


def can_craft_gear(state: PlayerState, gear_type: GearType, content: ContentBundle | None = None) -> tuple[bool, str]:
    unlock_id = CRAFT_UNLOCKS[gear_type]
    if not state.is_unlocked(unlock_id):
        return False, f"Unlock {unlock_id.replace('_', ' ')} first."
    cost = gear_cost(content)
    if not can_afford(state, cost):
        return False, _missing(state, cost)
    return True, "Ready."


def can_craft_gem(state: PlayerState, content: ContentBundle | None = None) -> tuple[bool, str]:
    if not state.is_unlocked(CRAFT_UNLOCKS["gem"]):
        return False, "Unlock gem crafting first."
    cost = gem_cost(content)
    if not can_afford(state, cost):
        return False, _missing(state, cost)
    return True, "Ready."


def craft_gear(
    state: PlayerState,
    gear_type: GearType,
    rng: RandomSource,
    content: ContentBundle | None = None,
) -> ActionResult:
    """Pay the crafting cost and add a freshly rolled item to the inventory."""
    bundle = resolve_content(content)
    ok, reason = can_craft_gear(state, gear_type, bundle)
    if not ok:
        return rejected(state, reason)

    new_state = clone_state(state)
    spend(new_state, gear_cost(bundle))
    gear = generate_gear(
        gear_type,
        rng,
        level=new_state.upgrade_level("craft_rarity"),
        content=bundle,
        gear_id=allocate_id(new_state, "gear"),
    )
    new_state.gear[gear.id] = gear
    new_state.lifetime.total_crafts += 1
    return accepted(new_state, f"Crafted {gear.name}.", gear)


def craft_gem(state: PlayerState, rng: RandomSource, content: ContentBundle | None = None) -> ActionResult:
    bundle = resolve_content(content)
    ok, reason = can_craft_gem(state, bundle)
    if not ok:
        return rejected(state, reason)

    new_state = clone_state(state)
    spend(new_state, gem_cost(bundle))
    gem = generate_gem(
        rng,
        level=new_state.upgrade_level("gem_rarity"),
        content=bundle,
        gem_id=allocate_id(new_state, "gem"),
    )
    new_state.gems[gem.id] = gem
    new_state.lifetime.total_crafts += 1
    return accepted(new_state, f"Crafted {gem.name}.", gem)


def salvage_refund(cost: Cost, rarity: Rarity, content: ContentBundle | None = None) -> tuple[int, int]:
    bundle = resolve_content(content)
    economy = bundle.balance.economy
    feathers = math.floor(cost.feathers * economy.salvage_feather_ratio)
    scrap = math.floor(cost.scrap * economy.salvage_scrap_ratio * bundle.balance.tier(rarity).min_mult)
    return feathers, scrap


def remove_gear(state: PlayerState, gear: Gear, content: ContentBundle) -> tuple[int, int]:
    """Delete ``gear`` from the state in place, freeing its gems. Returns the refund."""
    detach_gear(state, gear)
    for gem_id in gear.sockets:
        if gem_id and gem_id in state.gems:
            state.gems[gem_id].socketed_in = None
    del state.gear[gear.id]
    feathers, scrap = salvage_refund(content.balance.economy.craft_gear, gear.rarity, content)
    state.feathers += feathers
    state.scrap += scrap
    return feathers, scrap


def salvage_gear(state: PlayerState, gear_id: str, content: ContentBundle | None = None) -> ActionResult:
    if gear_id not in state.gear:
        return rejected(state, "Unknown gear.")
    bundle = resolve_content(content)
    new_state = clone_state(state)
    gear = new_state.gear[gear_id]
    feathers, scrap = remove_gear(new_state, gear, bundle)
    return accepted(new_state, f"Salvaged {gear.name} for {feathers} feathers and {scrap} scrap.", (feathers, scrap))


def salvage_gem(state: PlayerState, gem_id: str, content: ContentBundle | None = None) -> ActionResult:
    if gem_id not in state.gems:
        return rejected(state, "Unknown gem.")
    bundle = resolve_content(content)
    new_state = clone_state(state)
    gem: Gem = new_state.gems.pop(gem_id)
    if gem.socketed_in is not None:
        holder = new_state.gear.get(gem.socketed_in.gear_id)
        if holder is not None and gem.socketed_in.index < len(holder.sockets):
            holder.sockets[gem.socketed_in.index] = None
    feathers, scrap = salvage_refund(bundle.balance.economy.craft_gem, gem.rarity, bundle)
    new_state.feathers += feathers
    new_state.scrap += scrap
    return accepted(new_state, f"Salvaged {gem.name} for {feathers} feathers and {scrap} scrap.", (feathers, scrap))


def salvage_gems(state: PlayerState, gem_ids: list[str], content: ContentBundle | None = None) -> ActionResult:
    """Batch salvage of loose gems. Unknown or socketed ids are skipped."""
    targets = [gem_id for gem_id in dict.fromkeys(gem_ids) if gem_id in state.gems and state.gems[gem_id].socketed_in is None]
    if not targets:
        return rejected(state, "No loose gems selected.")
    bundle = resolve_content(content)
    new_state = clone_state(state)
    total_feathers = 0
    total_scrap = 0
    for gem_id in targets:
        gem = new_state.gems.pop(gem_id)
        feathers, scrap = salvage_refund(bundle.balance.economy.craft_gem, gem.rarity, bundle)
        total_feathers += feathers
        total_scrap += scrap
    new_state.feathers += total_feathers
    new_state.scrap += total_scrap
    return accepted(new_state, f"Salvaged {len(targets)} gems.", (total_feathers, total_scrap))
