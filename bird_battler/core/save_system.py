from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from .models import (
    GEAR_SLOTS,
    RARITY_ORDER,
    SAVE_VERSION,
    UNLOCK_IDS,
    ActiveBuff,
    ConsumableStack,
    CreatureInstance,
    Gear,
    GearPrefix,
    Gem,
    GemBuff,
    HuntingProfile,
    LifetimeStats,
    Move,
    Passive,
    PlayerState,
    SaveData,
    StatBonus,
)

logger = logging.getLogger(__name__)

DEFAULT_SLOT_COUNT = 3
MIN_SLOT_COUNT = 3
MAX_SLOT_COUNT = 5

LEGACY_UPGRADE_KEYS = {
    "scrap_chance_level": "scrap_chance",
    "catch_rarity_level": "catch_rarity",
    "craft_rarity_level": "craft_rarity",
    "gem_rarity_level": "gem_rarity",
    "roster_capacity_level": "roster_capacity",
}
LEGACY_META_KEYS = ("feather_boost", "scrap_boost", "diamond_boost", "item_drop_boost", "gem_drop_boost")
LEGACY_PREFIXES = ("QUALITY", "SHARP", "GREAT")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def normalize_slot_count(slot_count: int) -> int:
    return max(MIN_SLOT_COUNT, min(MAX_SLOT_COUNT, int(slot_count)))


@dataclass(slots=True)
class SlotSummary:
    slot: int
    occupied: bool
    slot_name: str
    feathers: int = 0
    scrap: int = 0
    diamonds: int = 0
    creature_count: int = 0
    best_level: int = 0
    highest_zone: int = 1
    last_played: str | None = None


def _coerce_dict(value: Any, default: dict[str, Any] | None = None) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {} if default is None else dict(default)


def _coerce_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list) else []


def _coerce_int(value: Any, default: int = 0, minimum: int | None = 0) -> int:
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        number = default
    if minimum is not None:
        number = max(minimum, number)
    return number


def _snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _snake_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {_snake_case(str(key)): _snake_keys(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_snake_keys(item) for item in value]
    return value


def _legacy_gear(player: dict[str, Any]) -> list[dict[str, Any]]:
    inventory = _coerce_dict(player.get("inventory"))
    gear = [entry for entry in _coerce_list(inventory.get("gear")) if isinstance(entry, dict)]
    for bird in _coerce_list(player.get("birds")):
        slots = _coerce_dict(_coerce_dict(bird).get("gear"))
        gear.extend(entry for entry in slots.values() if isinstance(entry, dict))
    return gear


def _migrate_v0_to_v1(payload: dict[str, Any]) -> dict[str, Any]:
    """Wrap a legacy camelCase save in the ``player`` envelope with snake_case keys."""
    legacy = dict(payload.get("player", payload))
    legacy.pop("saveVersion", None)
    legacy.pop("save_version", None)
    player = _snake_keys(legacy)
    for gear in _legacy_gear(player):
        if gear.get("effect_value") and not gear.get("param_value"):
            gear["param_value"] = gear["effect_value"]
        gear.pop("effect_value", None)
    return {"save_version": 1, "player": player}


def _migrate_v1_to_v2(payload: dict[str, Any]) -> dict[str, Any]:
    player = _coerce_dict(payload.get("player"))
    for gear in _legacy_gear(player):
        gear["stat_bonuses"] = _coerce_list(gear.get("stat_bonuses"))
        gear["sockets"] = _coerce_list(gear.get("sockets"))
    inventory = _coerce_dict(player.get("inventory"))
    inventory["consumables"] = _coerce_list(inventory.get("consumables"))
    inventory["gems"] = _coerce_list(inventory.get("gems"))
    inventory["gear"] = _coerce_list(inventory.get("gear"))
    player["inventory"] = inventory
    player["active_buffs"] = _coerce_list(player.get("active_buffs"))
    upgrades = _coerce_dict(player.get("upgrades"))
    upgrades.setdefault("gem_rarity_level", 0)
    player["upgrades"] = upgrades
    payload["player"] = player
    payload["save_version"] = 2
    return payload


def _migrate_v2_to_v3(payload: dict[str, Any]) -> dict[str, Any]:
    player = _coerce_dict(payload.get("player"))
    player["ap"] = _coerce_int(player.get("ap"))
    player["completed_achievement_ids"] = _coerce_list(player.get("completed_achievement_ids"))
    unlocks = _coerce_dict(player.get("unlocks"))
    lifetime = _coerce_dict(player.get("lifetime_stats"))
    if not lifetime:
        lifetime = {
            "total_feathers": _coerce_int(player.get("feathers")),
            "total_scrap": _coerce_int(player.get("scrap")),
            "total_crafts": 0,
            "total_catches": len(_coerce_list(player.get("birds"))),
            "battles_won": 0,
            "highest_zone_reached": _coerce_int(player.get("highest_zone"), 1, 1),
            "max_perfect_catch_streak": 0,
            "system_unlocked": 1 if unlocks.get("achievements") else 0,
        }
    lifetime.setdefault("max_perfect_catch_streak", 0)
    lifetime.setdefault("system_unlocked", 1 if unlocks.get("achievements") else 0)
    player["lifetime_stats"] = lifetime
    player["achievement_baselines"] = _coerce_dict(player.get("achievement_baselines"))
    shop = _coerce_dict(player.get("ap_shop"))
    for key in LEGACY_META_KEYS:
        shop.setdefault(key, 0)
    player["ap_shop"] = shop
    payload["player"] = player
    payload["save_version"] = 3
    return payload


def _migrate_v3_to_v4(payload: dict[str, Any]) -> dict[str, Any]:
    player = _coerce_dict(payload.get("player"))
    unlocks = _coerce_dict(player.get("unlocks"))
    if unlocks.pop("beak_crafting", False) and not unlocks.get("workshop"):
        unlocks["workshop"] = True
    for unlock_id in UNLOCK_IDS:
        unlocks[unlock_id] = bool(unlocks.get(unlock_id, False))
    player["unlocks"] = unlocks
    player["current_zone_progress"] = _coerce_list(player.get("current_zone_progress"))
    payload["player"] = player
    payload["save_version"] = 4
    return payload


class _IdStore:
    def __init__(self) -> None:
        self.taken: set[str] = set()
        self.counter = 0

    def claim(self, raw_id: Any, prefix: str) -> str:
        candidate = str(raw_id) if raw_id else ""
        while not candidate or candidate in self.taken:
            self.counter += 1
            candidate = f"{prefix}_legacy_{self.counter:05d}"
        self.taken.add(candidate)
        return candidate


def _normalize_gem(raw: dict[str, Any], ids: _IdStore, socket: dict[str, Any] | None) -> dict[str, Any] | None:
    buffs = []
    for buff in _coerce_list(raw.get("buffs"))[:2]:
        buff = _coerce_dict(buff)
        buff_type = buff.get("type", buff.get("stat"))
        if buff_type is None:
            continue
        buffs.append({"type": buff_type, "value": max(0.0, float(buff.get("value", 0) or 0)), "rarity": buff.get("rarity", "COMMON")})
    if not buffs:
        return None
    return {
        "id": ids.claim(raw.get("id"), "gem"),
        "name": str(raw.get("name") or "Gem"),
        "rarity": raw.get("rarity", "COMMON"),
        "buffs": buffs,
        "socketed_in": socket,
    }


def _migrate_v4_to_v5(payload: dict[str, Any]) -> dict[str, Any]:
    """Move embedded gear and gems into id-keyed stores with back-references."""
    from .loader import default_content

    legacy = _coerce_dict(payload.get("player"))
    if "creatures" in legacy:
        payload["save_version"] = 5
        return payload

    templates = default_content().template_by_id
    ids = _IdStore()
    gear_store: dict[str, dict[str, Any]] = {}
    gem_store: dict[str, dict[str, Any]] = {}

    def adopt_gear(raw: Any, owner_id: str | None = None) -> str | None:
        raw = _coerce_dict(raw)
        gear_type = str(raw.get("type", "")).lower()
        if gear_type not in GEAR_SLOTS:
            return None
        gear_id = ids.claim(raw.get("id"), "gear")
        prefix = None
        if raw.get("prefix") in LEGACY_PREFIXES:
            prefix = {"type": raw["prefix"], "value": _coerce_int(raw.get("param_value"))}
        elif isinstance(raw.get("prefix"), dict):
            prefix = raw["prefix"]
        sockets: list[str | None] = []
        for index, socketed in enumerate(_coerce_list(raw.get("sockets"))[:3]):
            gem = _normalize_gem(socketed, ids, {"gear_id": gear_id, "index": index}) if isinstance(socketed, dict) else None
            if gem is not None:
                gem_store[gem["id"]] = gem
            sockets.append(gem["id"] if gem else None)
        gear_store[gear_id] = {
            "id": gear_id,
            "name": str(raw.get("name") or gear_type.title()),
            "type": gear_type,
            "rarity": raw.get("rarity", "COMMON"),
            "attack_bonus": _coerce_int(raw.get("attack_bonus")),
            "prefix": prefix,
            "stat_bonuses": _coerce_list(raw.get("stat_bonuses"))[:3],
            "sockets": sockets,
            "owner_id": owner_id,
            "slot": gear_type if owner_id else None,
        }
        return gear_id

    creatures: dict[str, dict[str, Any]] = {}
    for bird in _coerce_list(legacy.get("birds")):
        bird = _coerce_dict(bird)
        template = templates.get(str(bird.get("id", "")))
        slots = _coerce_dict(bird.get("gear"))
        if template is None:
            for raw in slots.values():
                adopt_gear(raw)
            continue
        creature_id = ids.claim(bird.get("instance_id"), "bird")
        xp_to_next = _coerce_int(bird.get("xp_to_next_level"), 100, 1)
        gear_ids = {}
        for slot in GEAR_SLOTS:
            raw = slots.get(slot)
            gear_id = adopt_gear(raw, owner_id=creature_id) if raw else None
            if gear_id and gear_store[gear_id]["type"] != slot:
                gear_store[gear_id].update(owner_id=None, slot=None)
                gear_id = None
            gear_ids[slot] = gear_id
        creatures[creature_id] = {
            "id": creature_id,
            "template_id": template.id,
            "name": str(bird.get("name") or template.name),
            "species": str(bird.get("species") or template.species),
            "rarity": bird.get("rarity", "COMMON"),
            "hp": _coerce_int(bird.get("base_hp"), 1, 1),
            "energy": _coerce_int(bird.get("base_energy"), 1, 1),
            "attack": _coerce_int(bird.get("base_attack")),
            "defense": _coerce_int(bird.get("base_defense")),
            "speed": _coerce_int(bird.get("base_speed")),
            "moves": [move.model_dump(mode="json") for move in template.moves],
            "passive": template.passive.model_dump(mode="json"),
            "hunting": template.hunting.model_dump(mode="json"),
            "level": _coerce_int(bird.get("level"), 1, 1),
            "xp": min(_coerce_int(bird.get("xp")), xp_to_next - 1),
            "xp_to_next": xp_to_next,
            "stat_points": _coerce_int(bird.get("stat_points")),
            "gear": gear_ids,
        }

    inventory = _coerce_dict(legacy.get("inventory"))
    for raw in _coerce_list(inventory.get("gear")):
        adopt_gear(raw)
    for raw in _coerce_list(inventory.get("gems")):
        gem = _normalize_gem(_coerce_dict(raw), ids, None)
        if gem is not None:
            gem_store[gem["id"]] = gem

    upgrades = _coerce_dict(legacy.get("upgrades"))
    unlocks = _coerce_dict(legacy.get("unlocks"))
    selected = legacy.get("selected_bird_id")
    progress = [rarity for rarity in _coerce_list(legacy.get("current_zone_progress")) if rarity in RARITY_ORDER]
    player = {
        "feathers": _coerce_int(legacy.get("feathers")),
        "scrap": _coerce_int(legacy.get("scrap")),
        "diamonds": _coerce_int(legacy.get("diamonds")),
        "ap": _coerce_int(legacy.get("ap")),
        "creatures": creatures,
        "selected_creature_id": selected if selected in creatures else next(iter(creatures), None),
        "hunting_ids": [hunter for hunter in _coerce_list(legacy.get("hunting_bird_ids")) if hunter in creatures],
        "gear": gear_store,
        "gems": gem_store,
        "consumables": _coerce_list(inventory.get("consumables")),
        "active_buffs": _coerce_list(legacy.get("active_buffs")),
        "upgrades": {new: _coerce_int(upgrades.get(old)) for old, new in LEGACY_UPGRADE_KEYS.items()},
        "meta_shop": {key: _coerce_int(value) for key, value in _coerce_dict(legacy.get("ap_shop")).items() if key in LEGACY_META_KEYS},
        "unlocks": sorted(unlock_id for unlock_id in UNLOCK_IDS if unlocks.get(unlock_id)),
        "lifetime": _coerce_dict(legacy.get("lifetime_stats")),
        "achievement_baselines": {
            key: _coerce_int(value) for key, value in _coerce_dict(legacy.get("achievement_baselines")).items()
        },
        "completed_achievements": sorted({str(entry) for entry in _coerce_list(legacy.get("completed_achievement_ids"))}),
        "highest_zone": _coerce_int(legacy.get("highest_zone"), 1, 1),
        "zone_progress": progress,
    }
    lifetime = {key: _coerce_int(value) for key, value in player["lifetime"].items() if key in LifetimeStats.model_fields}
    player["lifetime"] = lifetime
    lifetime["highest_zone_reached"] = max(_coerce_int(lifetime.get("highest_zone_reached"), 1, 1), player["highest_zone"])
    lifetime["system_unlocked"] = min(1, lifetime.get("system_unlocked", 0))
    return {"save_version": 5, "player": player}


MIGRATION_STEPS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    0: _migrate_v0_to_v1,
    1: _migrate_v1_to_v2,
    2: _migrate_v2_to_v3,
    3: _migrate_v3_to_v4,
    4: _migrate_v4_to_v5,
}


def migrate_save(payload: Any) -> dict[str, Any]:
    state = _coerce_dict(payload)
    if "player" not in state:
        state = {"save_version": 0, "player": state} if state.get("save_version") is None else {**state, "player": {}}

    version_raw = state.get("save_version")
    try:
        version = int(version_raw) if version_raw is not None else 0
    except (TypeError, ValueError):
        version = 0
    if version < 0:
        version = 0
    if version > SAVE_VERSION:
        version = SAVE_VERSION

    while version < SAVE_VERSION:
        step = MIGRATION_STEPS.get(version)
        if step is None:
            raise ValueError(f"No migration step defined from version {version}.")
        state = step(state)
        version = int(state.get("save_version", version + 1))
    state["save_version"] = SAVE_VERSION
    return state


def _known_fields(model: type[BaseModel], raw: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in raw.items() if key in model.model_fields}


def _valid_dump(model: type[BaseModel], raw: Any) -> dict[str, Any] | None:
    try:
        return model.model_validate(raw).model_dump(mode="json")
    except ValidationError:
        return None


def _valid_items(model: type[BaseModel], raw: Any, limit: int | None = None) -> list[dict[str, Any]]:
    items = [item for item in (_valid_dump(model, entry) for entry in _coerce_list(raw)) if item is not None]
    return items[:limit] if limit is not None else items


def _rarity(value: Any) -> str:
    return value if value in RARITY_ORDER else RARITY_ORDER[0]


def _repair_gear(key: str, raw: dict[str, Any]) -> dict[str, Any]:
    gear_type = str(raw.get("type", "")).lower()
    gear = _known_fields(Gear, raw)
    gear.update(
        id=key,
        type=gear_type,
        name=str(raw.get("name") or gear_type.title() or "Gear"),
        rarity=_rarity(raw.get("rarity")),
        attack_bonus=_coerce_int(raw.get("attack_bonus")),
        prefix=_valid_dump(GearPrefix, raw.get("prefix")),
        stat_bonuses=_valid_items(StatBonus, raw.get("stat_bonuses"), 3),
        sockets=[entry if isinstance(entry, str) and entry else None for entry in _coerce_list(raw.get("sockets"))[:3]],
        # Ownership is rebuilt from the creature side in _relink.
        owner_id=None,
        slot=None,
    )
    return gear


def _repair_gem(key: str, raw: dict[str, Any]) -> dict[str, Any]:
    buffs = []
    for buff in _coerce_list(raw.get("buffs")):
        buff = _coerce_dict(buff)
        buffs.append({"type": buff.get("type", buff.get("stat")), "value": buff.get("value", 0), "rarity": _rarity(buff.get("rarity"))})
    return {
        "id": key,
        "name": str(raw.get("name") or "Gem"),
        "rarity": _rarity(raw.get("rarity")),
        "buffs": _valid_items(GemBuff, buffs, 2),
        "socketed_in": None,
    }


def _repair_creature(key: str, raw: dict[str, Any], templates: dict[str, Any]) -> dict[str, Any]:
    creature = _known_fields(CreatureInstance, raw)
    template = templates.get(str(raw.get("template_id", "")))
    moves = _valid_items(Move, raw.get("moves"))
    if template is not None:
        moves = moves or [move.model_dump(mode="json") for move in template.moves]
        for field_name, model in (("passive", Passive), ("hunting", HuntingProfile)):
            creature[field_name] = _valid_dump(model, raw.get(field_name)) or getattr(template, field_name).model_dump(mode="json")
        creature["name"] = str(raw.get("name") or template.name)
        creature["species"] = str(raw.get("species") or template.species)
        for stat in ("hp", "energy", "attack", "defense", "speed"):
            floor = 1 if stat in ("hp", "energy") else 0
            creature[stat] = _coerce_int(raw.get(stat), getattr(template.base_stats, stat).min, floor)
    xp_to_next = _coerce_int(raw.get("xp_to_next"), 100, 1)
    slots = _coerce_dict(raw.get("gear"))
    creature.update(
        id=key,
        moves=moves,
        rarity=_rarity(raw.get("rarity")),
        level=_coerce_int(raw.get("level"), 1, 1),
        xp=min(_coerce_int(raw.get("xp")), xp_to_next - 1),
        xp_to_next=xp_to_next,
        stat_points=_coerce_int(raw.get("stat_points")),
        gear={slot: slots.get(slot) if isinstance(slots.get(slot), str) else None for slot in GEAR_SLOTS},
    )
    return creature


def _repair_store(
    raw_store: Any,
    model: type[BaseModel],
    repair: Callable[[str, dict[str, Any]], dict[str, Any]],
    label: str,
) -> dict[str, dict[str, Any]]:
    store: dict[str, dict[str, Any]] = {}
    for key, raw in _coerce_dict(raw_store).items():
        record = _valid_dump(model, repair(str(key), _coerce_dict(raw))) if isinstance(raw, dict) else None
        if record is None:
            logger.warning("Dropping unreadable %s '%s' from the save.", label, key)
            continue
        store[str(key)] = record
    return store


def _relink(player: dict[str, Any]) -> None:
    """Rebuild gear ownership and gem sockets from the creature and gear sides."""
    creatures, gear_store, gems = player["creatures"], player["gear"], player["gems"]
    for gear in gear_store.values():
        gear.update(owner_id=None, slot=None)
    for creature_id, creature in creatures.items():
        for slot in GEAR_SLOTS:
            gear = gear_store.get(creature["gear"][slot])
            if gear is None or gear["type"] != slot or gear["owner_id"] is not None:
                creature["gear"][slot] = None
                continue
            gear.update(owner_id=creature_id, slot=slot)

    for gem in gems.values():
        gem["socketed_in"] = None
    for gear_id, gear in gear_store.items():
        for index, gem_id in enumerate(gear["sockets"]):
            gem = gems.get(gem_id) if gem_id else None
            if gem is None or gem["socketed_in"] is not None:
                gear["sockets"][index] = None
                continue
            gem["socketed_in"] = {"gear_id": gear_id, "index": index}


def repair_save(payload: dict[str, Any]) -> dict[str, Any]:
    """Drop or default partly-shaped records so one bad entry never costs the whole save.

    Runs on every load after ``migrate_save``. Records that cannot be repaired
    are dropped with a warning; bad top-level values fall back to defaults.
    """
    from .loader import default_content

    templates = default_content().template_by_id
    player = dict(_coerce_dict(payload.get("player")))
    player["creatures"] = _repair_store(
        player.get("creatures"), CreatureInstance, lambda key, raw: _repair_creature(key, raw, templates), "creature"
    )
    player["gear"] = _repair_store(player.get("gear"), Gear, _repair_gear, "gear")
    player["gems"] = _repair_store(player.get("gems"), Gem, _repair_gem, "gem")
    _relink(player)

    pending = player.get("pending_catch")
    if pending is not None:
        pending = _coerce_dict(pending)
        player["pending_catch"] = _valid_dump(CreatureInstance, _repair_creature(str(pending.get("id") or "pending"), pending, templates))

    player["consumables"] = _valid_items(ConsumableStack, player.get("consumables"))
    player["active_buffs"] = _valid_items(ActiveBuff, player.get("active_buffs"))
    creatures = player["creatures"]
    player["hunting_ids"] = [hunter for hunter in _coerce_list(player.get("hunting_ids")) if hunter in creatures]
    if player.get("selected_creature_id") not in creatures:
        player["selected_creature_id"] = next(iter(creatures), None)
    player["zone_progress"] = [rarity for rarity in _coerce_list(player.get("zone_progress")) if rarity in RARITY_ORDER]
    for key in ("upgrades", "meta_shop", "achievement_baselines"):
        player[key] = {str(name): _coerce_int(level) for name, level in _coerce_dict(player.get(key)).items()}
    raw_lifetime = _coerce_dict(player.get("lifetime"))
    lifetime = {key: _coerce_int(value) for key, value in raw_lifetime.items() if key in LifetimeStats.model_fields}
    lifetime["highest_zone_reached"] = max(1, lifetime.get("highest_zone_reached", 1))
    lifetime["system_unlocked"] = min(1, lifetime.get("system_unlocked", 0))
    player["lifetime"] = lifetime

    # Whatever still fails is a top-level value; fall back to its default.
    for _ in range(len(PlayerState.model_fields)):
        try:
            PlayerState.model_validate(player)
            break
        except ValidationError as exc:
            bad = {error["loc"][0] for error in exc.errors() if error["loc"] and error["loc"][0] in player}
            if not bad:
                raise
            logger.warning("Resetting unreadable save fields to defaults: %s.", ", ".join(sorted(map(str, bad))))
            for key in bad:
                player.pop(key)
    return {**payload, "player": player}


class SlotStorage:
    """Save slots on disk plus a ``meta.json`` index. ``load`` never raises on bad data."""

    def __init__(self, saves_dir: Path, slot_count: int = DEFAULT_SLOT_COUNT, base_seed: int | str = 1337) -> None:
        self.saves_dir = saves_dir
        self.slot_count = normalize_slot_count(slot_count)
        self.slot_ids = tuple(range(1, self.slot_count + 1))
        self.base_seed = base_seed
        self.meta_path = self.saves_dir / "meta.json"
        self.saves_dir.mkdir(parents=True, exist_ok=True)
        if not self.meta_path.exists():
            self._write_meta({"last_slot": None, "slot_count": self.slot_count, "slots": {}})

    def _check_slot(self, slot: int) -> int:
        if slot not in self.slot_ids:
            raise ValueError(f"Slot {slot} is outside 1..{self.slot_count}.")
        return slot

    def _slot_path(self, slot: int) -> Path:
        return self.saves_dir / f"slot{self._check_slot(slot)}.json"

    def _slot_seed(self, slot: int) -> str:
        return f"{self.base_seed}:slot{slot}"

    def _default_slot_meta(self, slot: int) -> dict[str, Any]:
        return {"slot_name": f"Slot {slot}", "last_played": None}

    def _read_meta(self) -> dict[str, Any]:
        if not self.meta_path.exists():
            return {"last_slot": None, "slot_count": self.slot_count, "slots": {}}
        try:
            payload = json.loads(self.meta_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        payload.setdefault("last_slot", None)
        payload["slot_count"] = normalize_slot_count(payload.get("slot_count", self.slot_count))
        if not isinstance(payload.get("slots"), dict):
            payload["slots"] = {}
        return payload

    def _write_meta(self, payload: dict[str, Any]) -> None:
        self.meta_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def slot_exists(self, slot: int) -> bool:
        return self._slot_path(slot).exists()

    def _fresh_state(self, slot: int) -> PlayerState:
        from .persistence import create_default_player_state

        return create_default_player_state(base_seed=self._slot_seed(slot))

    def load(self, slot: int) -> PlayerState:
        from .persistence import load_save_data

        path = self._slot_path(slot)
        if not path.exists():
            state = self._fresh_state(slot)
            self.save(slot, state)
            return state
        try:
            data = load_save_data(path)
        except (OSError, ValueError, TypeError, KeyError) as exc:
            logger.warning("Save slot %s is unreadable (%s); starting fresh.", slot, exc)
            self._quarantine(path)
            state = self._fresh_state(slot)
            self.save(slot, state)
            return state
        self._touch_meta_slot(slot, data.player)
        return data.player

    def _quarantine(self, path: Path) -> None:
        backup = path.with_suffix(".corrupt.json")
        try:
            path.replace(backup)
        except OSError as exc:
            logger.warning("Could not move corrupt save %s aside: %s", path.name, exc)

    def save(self, slot: int, state: PlayerState) -> None:
        from .persistence import save_save_data

        save_save_data(self._slot_path(slot), SaveData(save_version=SAVE_VERSION, player=state))
        self._touch_meta_slot(slot, state)

    def reset(self, slot: int) -> None:
        self._slot_path(slot).unlink(missing_ok=True)
        meta = self._read_meta()
        meta["slots"].pop(str(slot), None)
        if meta.get("last_slot") == slot:
            meta["last_slot"] = None
        self._write_meta(meta)

    def rename_slot(self, slot: int, name: str) -> None:
        self._check_slot(slot)
        clean = name.strip()
        if not clean:
            raise ValueError("Slot name cannot be empty.")
        meta = self._read_meta()
        entry = meta["slots"].setdefault(str(slot), self._default_slot_meta(slot))
        entry["slot_name"] = clean[:32]
        self._write_meta(meta)

    def last_slot(self) -> int | None:
        value = self._read_meta().get("last_slot")
        if isinstance(value, int) and value in self.slot_ids:
            return value
        return None

    def _touch_meta_slot(self, slot: int, state: PlayerState | None = None) -> None:
        meta = self._read_meta()
        entry = meta["slots"].setdefault(str(slot), self._default_slot_meta(slot))
        entry["last_played"] = datetime.now(timezone.utc).isoformat()
        entry.setdefault("slot_name", f"Slot {slot}")
        meta["last_slot"] = slot
        self._write_meta(meta)

    def preview(self, slot: int) -> SlotSummary | None:
        from .persistence import load_save_data

        path = self._slot_path(slot)
        if not path.exists():
            return None
        slot_meta = _coerce_dict(self._read_meta()["slots"].get(str(slot)), default=self._default_slot_meta(slot))
        try:
            player = load_save_data(path).player
        except (OSError, ValueError, TypeError, KeyError):
            return None
        return SlotSummary(
            slot=slot,
            occupied=True,
            slot_name=str(slot_meta.get("slot_name", f"Slot {slot}")),
            feathers=player.feathers,
            scrap=player.scrap,
            diamonds=player.diamonds,
            creature_count=len(player.creatures),
            best_level=max((creature.level for creature in player.creatures.values()), default=0),
            highest_zone=player.highest_zone,
            last_played=slot_meta.get("last_played"),
        )

    def list_slots(self) -> list[SlotSummary]:
        summaries: list[SlotSummary] = []
        slots_meta = self._read_meta()["slots"]
        for slot in self.slot_ids:
            summary = self.preview(slot)
            if summary is None:
                slot_meta = _coerce_dict(slots_meta.get(str(slot)), default=self._default_slot_meta(slot))
                summary = SlotSummary(
                    slot=slot,
                    occupied=False,
                    slot_name=str(slot_meta.get("slot_name", f"Slot {slot}")),
                    last_played=slot_meta.get("last_played"),
                )
            summaries.append(summary)
        return summaries
