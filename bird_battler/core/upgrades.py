from __future__ import annotations

import math

from .loader import ContentBundle, resolve_content
from .models import ActionResult, Cost, PlayerState, accepted, rejected
from .persistence import can_afford, clone_state, spend


def upgrade_cost(upgrade_id: str, level: int, content: ContentBundle | None = None) -> Cost | None:
    definition = resolve_content(content).upgrade_by_id.get(upgrade_id)
    if definition is None or level >= definition.max_level:
        return None
    scale = definition.cost_multiplier ** max(0, level)
    base = definition.base_cost
    return Cost(
        feathers=math.floor(base.feathers * scale),
        scrap=math.floor(base.scrap * scale),
        diamonds=math.floor(base.diamonds * scale),
    )


def next_upgrade_cost(state: PlayerState, upgrade_id: str, content: ContentBundle | None = None) -> Cost | None:
    return upgrade_cost(upgrade_id, state.upgrade_level(upgrade_id), content)


def can_buy_upgrade(state: PlayerState, upgrade_id: str, content: ContentBundle | None = None) -> tuple[bool, str]:
    bundle = resolve_content(content)
    if upgrade_id not in bundle.upgrade_by_id:
        return False, "Unknown upgrade."
    if not state.is_unlocked("upgrades"):
        return False, "Unlock the upgrades lab first."
    cost = next_upgrade_cost(state, upgrade_id, bundle)
    if cost is None:
        return False, "Already maxed."
    if not can_afford(state, cost):
        return False, f"Need {cost.feathers} feathers, {cost.scrap} scrap and {cost.diamonds} diamonds."
    return True, "Ready."


def buy_upgrade(state: PlayerState, upgrade_id: str, content: ContentBundle | None = None) -> ActionResult:
    bundle = resolve_content(content)
    ok, reason = can_buy_upgrade(state, upgrade_id, bundle)
    if not ok:
        return rejected(state, reason)
    cost = next_upgrade_cost(state, upgrade_id, bundle)
    new_state = clone_state(state)
    spend(new_state, cost)
    new_state.upgrades[upgrade_id] = new_state.upgrade_level(upgrade_id) + 1
    definition = bundle.upgrade_by_id[upgrade_id]
    return accepted(new_state, f"{definition.name} is now level {new_state.upgrades[upgrade_id]}.", cost)


def meta_cost(boost_id: str, level: int, content: ContentBundle | None = None) -> int | None:
    item = resolve_content(content).meta_item_by_id.get(boost_id)
    if item is None:
        return None
    return item.base_cost + max(0, level) * item.cost_scale


def can_buy_meta_upgrade(state: PlayerState, boost_id: str, content: ContentBundle | None = None) -> tuple[bool, str]:
    cost = meta_cost(boost_id, state.meta_level(boost_id), content)
    if cost is None:
        return False, "Unknown boost."
    if state.ap < cost:
        return False, f"Need {cost} AP."
    return True, "Ready."


def buy_meta_upgrade(state: PlayerState, boost_id: str, content: ContentBundle | None = None) -> ActionResult:
    ok, reason = can_buy_meta_upgrade(state, boost_id, content)
    if not ok:
        return rejected(state, reason)
    cost = meta_cost(boost_id, state.meta_level(boost_id), content)
    new_state = clone_state(state)
    new_state.ap -= cost
    new_state.meta_shop[boost_id] = new_state.meta_level(boost_id) + 1
    return accepted(new_state, f"Boost level {new_state.meta_shop[boost_id]}.", cost)


def can_unlock(state: PlayerState, unlock_id: str, content: ContentBundle | None = None) -> tuple[bool, str]:
    definition = resolve_content(content).unlock_by_id.get(unlock_id)
    if definition is None:
        return False, "Unknown feature."
    if state.is_unlocked(unlock_id):
        return False, "Already unlocked."
    if not can_afford(state, definition.cost):
        return False, f"Need {definition.cost.feathers} feathers and {definition.cost.scrap} scrap."
    return True, "Ready."


def unlock_feature(state: PlayerState, unlock_id: str, content: ContentBundle | None = None) -> ActionResult:
    """Pay for a gated feature. Unlocking achievements snapshots lifetime stats as baselines."""
    bundle = resolve_content(content)
    ok, reason = can_unlock(state, unlock_id, bundle)
    if not ok:
        return rejected(state, reason)
    definition = bundle.unlock_by_id[unlock_id]
    new_state = clone_state(state)
    spend(new_state, definition.cost)
    new_state.unlocks.add(unlock_id)
    if unlock_id == "achievements":
        new_state.achievement_baselines = new_state.lifetime.model_dump()
        new_state.lifetime.system_unlocked = 1
    return accepted(new_state, f"{definition.name} unlocked.")
