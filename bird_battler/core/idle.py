"""Idle hunting accrual and the loop that drives it."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Callable, Protocol

from .generator import build_gem, roll_consumable_type
from .inventory import add_consumable, buff_multiplier, decay_buff, gem_buff_totals
from .loader import ContentBundle, resolve_content
from .models import ActionResult, ConsumableType, PlayerState, Rarity, accepted
from .persistence import allocate_id, clone_state, grant_feathers, grant_scrap
from .rarity import roll_rarity
from .rewards import apply_xp, meta_multiplier
from .rng import RandomSource

logger = logging.getLogger(__name__)

IDLE_DROP_LEVEL = -1


@dataclass(slots=True)
class TickReport:
    hunters: int = 0
    multiplier: float = 1.0
    feathers: int = 0
    scrap: int = 0
    diamonds: int = 0
    consumable: tuple[ConsumableType, Rarity] | None = None
    gem_id: str | None = None
    xp_gains: dict[str, int] = field(default_factory=dict)
    level_ups: list[str] = field(default_factory=list)


def hunter_yield(
    base_rate: float,
    rarity: Rarity,
    level: int,
    hunt_bonus_pct: float,
    multiplier: float,
    content: ContentBundle | None = None,
) -> float:
    bundle = resolve_content(content)
    rarity_mult = bundle.balance.tier(rarity).min_mult
    level_mult = 1 + level * bundle.balance.idle.level_scale
    return base_rate * rarity_mult * level_mult * multiplier * (1 + hunt_bonus_pct / 100)


def tick(state: PlayerState, rng: RandomSource, content: ContentBundle | None = None) -> ActionResult:
    """Apply one idle interval to every hunting bird.

    Always succeeds. Fractional feathers carry over between ticks.
    """
    bundle = resolve_content(content)
    table = bundle.balance.idle
    new_state = clone_state(state)
    multiplier = buff_multiplier(new_state, "HUNTING_SPEED")
    report = TickReport(multiplier=multiplier)

    income = 0.0
    diamond_chance = 0.0
    item_chance = 0.0
    gem_chance = 0.0
    for creature_id in new_state.hunting_ids:
        creature = new_state.creatures.get(creature_id)
        if creature is None:
            continue
        report.hunters += 1
        buffs = gem_buff_totals(new_state, creature_id)
        diamond_chance += buffs.get("DIAMOND_HUNT_CHANCE", 0.0) / 100
        item_chance += buffs.get("ITEM_FIND_CHANCE", 0.0) / 100
        gem_chance += buffs.get("GEM_FIND_CHANCE", 0.0) / 100

        earned = hunter_yield(
            creature.hunting.base_rate,
            creature.rarity,
            creature.level,
            buffs.get("HUNT_BONUS", 0.0),
            multiplier,
            bundle,
        )
        kind = creature.passive.kind
        if kind == "hyper_metabolism":
            if rng.chance(table.double_yield_chance):
                earned *= 2
        elif kind == "keen_eye":
            if rng.chance(table.scrap_find_chance):
                report.scrap += 1
        elif kind == "wisdom":
            earned *= table.wisdom_income
            if rng.chance(table.wisdom_xp_chance):
                gain = max(1, math.floor(creature.level * table.wisdom_xp_per_level))
                level_up = apply_xp(creature, gain, bundle)
                report.xp_gains[creature.id] = gain
                if level_up.levels_gained:
                    report.level_ups.append(creature.id)
        elif kind == "rot_eater":
            item_chance += table.rot_eater_item_chance
        income += earned

    income *= meta_multiplier(new_state.meta_level("feather_boost"), bundle)
    report.scrap = math.floor(report.scrap * meta_multiplier(new_state.meta_level("scrap_boost"), bundle))
    diamond_chance *= meta_multiplier(new_state.meta_level("diamond_boost"), bundle)
    item_chance *= meta_multiplier(new_state.meta_level("item_drop_boost"), bundle)
    gem_chance *= meta_multiplier(new_state.meta_level("gem_drop_boost"), bundle)

    total = new_state.idle_carry + income
    report.feathers = math.floor(total)
    new_state.idle_carry = total - report.feathers
    grant_feathers(new_state, report.feathers)
    grant_scrap(new_state, report.scrap)

    if diamond_chance > 0 and rng.next_float() < diamond_chance * multiplier:
        report.diamonds = 1
        new_state.diamonds += 1
    if item_chance > 0 and rng.next_float() < item_chance * multiplier:
        drop_type = roll_consumable_type(rng)
        drop_rarity = roll_rarity(rng, IDLE_DROP_LEVEL, "DROP", content=bundle)
        add_consumable(new_state, drop_type, drop_rarity)
        report.consumable = (drop_type, drop_rarity)
    if new_state.is_unlocked("gem_crafting") and gem_chance > 0 and rng.next_float() < gem_chance * multiplier:
        gem = build_gem(roll_rarity(rng, 0, "CRAFT", content=bundle), rng, content=bundle, gem_id=allocate_id(new_state, "gem"))
        new_state.gems[gem.id] = gem
        report.gem_id = gem.id

    decay_buff(new_state, "HUNTING_SPEED")
    logger.debug(
        "Idle tick: hunters=%s feathers=%s scrap=%s diamonds=%s",
        report.hunters,
        report.feathers,
        report.scrap,
        report.diamonds,
    )
    return accepted(new_state, f"+{report.feathers} feathers", report)


class TickSource(Protocol):
    def wait(self) -> bool:
        """Block until the next tick is due. Returns False once the source is stopped."""
        ...

    def stop(self) -> None: ...


class ManualTickSource:
    """Releases exactly ``ticks`` ticks, then stops. For tests and batch runs."""

    def __init__(self, ticks: int) -> None:
        self.remaining = max(0, int(ticks))
        self._stopped = False

    def wait(self) -> bool:
        if self._stopped or self.remaining <= 0:
            return False
        self.remaining -= 1
        return True

    def stop(self) -> None:
        self._stopped = True


class IntervalTickSource:
    """Wall-clock ticks every ``interval`` seconds until stopped."""

    def __init__(self, interval: float = 1.0) -> None:
        self.interval = max(0.01, float(interval))
        self._stop_event = threading.Event()

    def wait(self) -> bool:
        return not self._stop_event.wait(self.interval)

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()


class IdleLoop:
    """Call ``on_tick`` once per tick delivered by ``source``."""

    def __init__(self, source: TickSource, on_tick: Callable[[], object]) -> None:
        self.source = source
        self.on_tick = on_tick
        self.ticks = 0
        self.failures = 0
        self._thread: threading.Thread | None = None

    def run(self) -> int:
        """Tick until the source stops. A failing tick is logged and skipped."""
        while self.source.wait():
            try:
                self.on_tick()
            except Exception:  # noqa: BLE001
                self.failures += 1
                logger.exception("Idle tick %s failed; the loop keeps running.", self.ticks + self.failures)
                continue
            self.ticks += 1
        return self.ticks

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._thread = threading.Thread(target=self.run, name="idle-loop", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        self.source.stop()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
