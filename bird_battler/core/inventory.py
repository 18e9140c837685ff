from __future__ import annotations

from collections import defaultdict

from .loader import ContentBundle, resolve_content
from .models import (
    ActionResult,
    ActiveBuff,
    ConsumableStack,
    ConsumableType,
    CreatureInstance,
    Gear,
    GearType,
    Gem,
    PlayerState,
    Rarity,
    SocketRef,
    accepted,
    rejected,
)
from .persistence import clone_state


def equipped_gear(state: PlayerState, creature: CreatureInstance) -> list[Gear]:
    return [state.gear[gear_id] for gear_id in creature.gear.ids() if gear_id in state.gear]


def unequipped_gear(state: PlayerState) -> list[Gear]:
    return [gear for gear in state.gear.values() if gear.owner_id is None]


def loose_gems(state: PlayerState) -> list[Gem]:
    return [gem for gem in state.gems.values() if gem.socketed_in is None]


def socketed_gems(state: PlayerState, gear: Gear) -> list[Gem]:
    return [state.gems[gem_id] for gem_id in gear.sockets if gem_id and gem_id in state.gems]


def gem_buff_totals(state: PlayerState, creature_id: str) -> dict[str, float]:
    """Sum gem buffs socketed into the creature's equipped gear."""
    totals: dict[str, float] = defaultdict(float)
    creature = state.creatures.get(creature_id)
    if creature is None:
        return totals
    for gear in equipped_gear(state, creature):
        for gem in socketed_gems(state, gear):
            for buff in gem.buffs:
                totals[buff.type] += buff.value
    return totals


def consumable_count(state: PlayerState, consumable_type: ConsumableType, rarity: Rarity) -> int:
    stack = _find_stack(state, consumable_type, rarity)
    return stack.count if stack else 0


def _find_stack(state: PlayerState, consumable_type: ConsumableType, rarity: Rarity) -> ConsumableStack | None:
    return next(
        (stack for stack in state.consumables if stack.type == consumable_type and stack.rarity == rarity),
        None,
    )


def add_consumable(state: PlayerState, consumable_type: ConsumableType, rarity: Rarity, count: int = 1) -> None:
    stack = _find_stack(state, consumable_type, rarity)
    if stack is None:
        state.consumables.append(ConsumableStack(type=consumable_type, rarity=rarity, count=max(0, count)))
    else:
        stack.count += max(0, count)


def active_buff(state: PlayerState, consumable_type: ConsumableType) -> ActiveBuff | None:
    return next((buff for buff in state.active_buffs if buff.type == consumable_type), None)


def buff_multiplier(state: PlayerState, consumable_type: ConsumableType) -> float:
    buff = active_buff(state, consumable_type)
    return buff.multiplier if buff is not None and buff.remaining > 0 else 1.0


def decay_buff(state: PlayerState, consumable_type: ConsumableType) -> None:
    kept: list[ActiveBuff] = []
    for buff in state.active_buffs:
        if buff.type == consumable_type:
            buff.remaining = max(0, buff.remaining - 1)
            if buff.remaining == 0:
                continue
        kept.append(buff)
    state.active_buffs = kept


def use_consumable(
    state: PlayerState,
    consumable_type: ConsumableType,
    rarity: Rarity,
    content: ContentBundle | None = None,
) -> ActionResult:
    current = active_buff(state, consumable_type)
    if current is not None and current.rarity != rarity:
        return rejected(state, f"A {current.rarity.lower()} buff of this type is already active.")
    if consumable_count(state, consumable_type, rarity) <= 0:
        return rejected(state, "None left.")

    entry = resolve_content(content).balance.consumables.entries[consumable_type][rarity]
    new_state = clone_state(state)
    stack = _find_stack(new_state, consumable_type, rarity)
    stack.count -= 1
    new_state.consumables = [item for item in new_state.consumables if item.count > 0]

    buff = active_buff(new_state, consumable_type)
    if buff is not None:
        buff.remaining += entry.duration
    else:
        buff = ActiveBuff(type=consumable_type, rarity=rarity, multiplier=entry.multiplier, remaining=entry.duration)
        new_state.active_buffs.append(buff)
    return accepted(new_state, "Buff active.", buff)


def detach_gear(state: PlayerState, gear: Gear) -> None:
    owner = state.creatures.get(gear.owner_id) if gear.owner_id else None
    if owner is not None and owner.gear.get(gear.type) == gear.id:
        setattr(owner.gear, gear.type, None)
    gear.owner_id = None
    gear.slot = None


def equip_gear(state: PlayerState, creature_id: str, gear_id: str) -> ActionResult:
    creature = state.creatures.get(creature_id)
    gear = state.gear.get(gear_id)
    if creature is None or gear is None:
        return rejected(state, "Unknown creature or gear.")
    if gear.owner_id == creature_id:
        return rejected(state, "Already equipped.")

    new_state = clone_state(state)
    creature = new_state.creatures[creature_id]
    gear = new_state.gear[gear_id]
    detach_gear(new_state, gear)

    previous_id = creature.gear.get(gear.type)
    if previous_id and previous_id in new_state.gear:
        detach_gear(new_state, new_state.gear[previous_id])

    setattr(creature.gear, gear.type, gear.id)
    gear.owner_id = creature.id
    gear.slot = gear.type
    return accepted(new_state, f"Equipped {gear.name}.", gear)


def unequip_gear(state: PlayerState, creature_id: str, slot: GearType) -> ActionResult:
    creature = state.creatures.get(creature_id)
    if creature is None:
        return rejected(state, "Unknown creature.")
    gear_id = creature.gear.get(slot)
    if not gear_id:
        return rejected(state, "Slot is empty.")

    new_state = clone_state(state)
    gear = new_state.gear.get(gear_id)
    if gear is None:
        setattr(new_state.creatures[creature_id].gear, slot, None)
        return accepted(new_state, "Cleared dangling slot.")
    detach_gear(new_state, gear)
    return accepted(new_state, f"Unequipped {gear.name}.", gear)


def socket_gem(state: PlayerState, gear_id: str, socket_index: int, gem_id: str) -> ActionResult:
    gear = state.gear.get(gear_id)
    gem = state.gems.get(gem_id)
    if gear is None or gem is None:
        return rejected(state, "Unknown gear or gem.")
    if not 0 <= socket_index < len(gear.sockets):
        return rejected(state, "No such socket.")
    if gem.socketed_in is not None:
        return rejected(state, "Gem is already socketed.")

    new_state = clone_state(state)
    gear = new_state.gear[gear_id]
    previous_id = gear.sockets[socket_index]
    if previous_id and previous_id in new_state.gems:
        new_state.gems[previous_id].socketed_in = None

    gear.sockets[socket_index] = gem_id
    new_state.gems[gem_id].socketed_in = SocketRef(gear_id=gear_id, index=socket_index)
    return accepted(new_state, "Gem socketed.", new_state.gems[gem_id])


def unsocket_gem(state: PlayerState, gear_id: str, socket_index: int) -> ActionResult:
    gear = state.gear.get(gear_id)
    if gear is None or not 0 <= socket_index < len(gear.sockets):
        return rejected(state, "No such socket.")
    gem_id = gear.sockets[socket_index]
    if not gem_id:
        return rejected(state, "Socket is empty.")

    new_state = clone_state(state)
    new_state.gear[gear_id].sockets[socket_index] = None
    gem = new_state.gems.get(gem_id)
    if gem is None:
        return accepted(new_state, "Cleared dangling socket.")
    gem.socketed_in = None
    return accepted(new_state, "Gem removed.", gem)
