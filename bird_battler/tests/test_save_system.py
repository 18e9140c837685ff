from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from bird_battler.core.loader import default_content
from bird_battler.core.models import SAVE_VERSION
from bird_battler.core.persistence import create_default_player_state, load_save_data
from bird_battler.core.rng import DeterministicRNG
from bird_battler.core.roster import choose_starter
from bird_battler.core.save_system import SlotStorage, migrate_save


def _legacy_payload() -> dict:
    return {
        "feathers": 420,
        "scrap": 33,
        "diamonds": 2,
        "highestZone": 3,
        "selectedBirdId": "b-1",
        "huntingBirdIds": ["b-1", "ghost"],
        "birds": [
            {
                "id": "eagle",
                "instanceId": "b-1",
                "name": "Eagle",
                "species": "Sky Hunter",
                "rarity": "RARE",
                "baseHp": 150,
                "baseEnergy": 140,
                "baseAttack": 15,
                "baseDefense": 7,
                "baseSpeed": 9,
                "level": 4,
                "xp": 30,
                "xpToNextLevel": 337,
                "gear": {
                    "beak": {
                        "id": "g-1",
                        "name": "Sharp Rare Beak",
                        "type": "BEAK",
                        "rarity": "RARE",
                        "attackBonus": 20,
                        "prefix": "SHARP",
                        "effectValue": 3,
                        "sockets": [
                            {"id": "gem-1", "name": "Gem", "rarity": "COMMON", "buffs": [{"stat": "XP_BONUS", "value": 5, "rarity": "COMMON"}]}
                        ],
                    }
                },
            },
            {"id": "dodo", "instanceId": "b-2", "gear": {"claws": {"id": "g-2", "type": "CLAWS", "rarity": "COMMON"}}},
        ],
        "inventory": {
            "gear": [{"id": "g-3", "name": "Claws", "type": "CLAWS", "rarity": "UNCOMMON", "attackBonus": 12}],
            "consumables": [{"type": "HUNTING_SPEED", "rarity": "COMMON", "count": 2}],
        },
        "unlocks": {"beakCrafting": True, "clawCrafting": True},
        "upgrades": {"scrapChanceLevel": 4, "catchRarityLevel": 1},
        "apShop": {"featherBoost": 2, "retiredBoost": 9},
    }


def test_legacy_save_migrates_to_current_version() -> None:
    migrated = migrate_save(_legacy_payload())
    assert migrated["save_version"] == SAVE_VERSION
    player = migrated["player"]

    assert list(player["creatures"]) == ["b-1"]
    bird = player["creatures"]["b-1"]
    assert (bird["template_id"], bird["hp"], bird["level"], bird["xp"]) == ("eagle", 150, 4, 30)
    assert bird["gear"] == {"beak": "g-1", "claws": None}

    beak = player["gear"]["g-1"]
    assert beak["type"] == "beak"
    assert beak["prefix"] == {"type": "SHARP", "value": 3}
    assert (beak["owner_id"], beak["slot"]) == ("b-1", "beak")
    assert beak["sockets"] == ["gem-1"]
    assert player["gems"]["gem-1"]["buffs"][0]["type"] == "XP_BONUS"
    assert player["gems"]["gem-1"]["socketed_in"] == {"gear_id": "g-1", "index": 0}

    # The unknown species is dropped but its gear is kept.
    assert player["gear"]["g-2"]["owner_id"] is None
    assert player["gear"]["g-3"]["attack_bonus"] == 12

    assert player["unlocks"] == ["claw_crafting", "workshop"]
    assert player["upgrades"]["scrap_chance"] == 4
    assert player["upgrades"]["catch_rarity"] == 1
    assert player["meta_shop"]["feather_boost"] == 2
    assert "retired_boost" not in player["meta_shop"]
    assert player["hunting_ids"] == ["b-1"]
    assert player["selected_creature_id"] == "b-1"
    assert player["lifetime"]["total_feathers"] == 420
    assert player["lifetime"]["highest_zone_reached"] == 3


def test_storage_loads_a_legacy_slot_file(tmp_path: Path) -> None:
    storage = SlotStorage(tmp_path / "saves")
    (tmp_path / "saves" / "slot1.json").write_text(json.dumps(_legacy_payload()), encoding="utf-8")

    state = storage.load(1)
    assert state.feathers == 420
    assert state.is_unlocked("workshop")
    assert state.creatures["b-1"].gear.beak == "g-1"
    assert state.consumables[0].count == 2

    storage.save(1, state)
    stored = json.loads((tmp_path / "saves" / "slot1.json").read_text(encoding="utf-8"))
    assert stored["save_version"] == SAVE_VERSION
    assert load_save_data(tmp_path / "saves" / "slot1.json").player == state


def test_current_saves_pass_through_unchanged(tmp_path: Path) -> None:
    storage = SlotStorage(tmp_path / "saves")
    state = create_default_player_state(7)
    state.feathers = 12
    storage.save(2, state)
    assert storage.load(2) == state


def test_empty_slot_starts_fresh_with_a_slot_seed(tmp_path: Path) -> None:
    storage = SlotStorage(tmp_path / "saves", base_seed=2026)
    state = storage.load(3)
    assert state.base_seed == "2026:slot3"
    assert state.creatures == {}
    assert storage.slot_exists(3) is True


def test_corrupt_slot_is_moved_aside(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    storage = SlotStorage(tmp_path / "saves")
    (tmp_path / "saves" / "slot1.json").write_text("{not json", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="bird_battler.core.save_system"):
        state = storage.load(1)
    assert state.feathers == 0
    assert (tmp_path / "saves" / "slot1.corrupt.json").read_text(encoding="utf-8") == "{not json"
    assert "unreadable" in caplog.text
    assert storage.preview(1) is not None


def test_bad_top_level_values_fall_back_to_defaults(tmp_path: Path) -> None:
    storage = SlotStorage(tmp_path / "saves")
    payload = {"save_version": SAVE_VERSION, "player": {"feathers": -5, "scrap": 40, "highest_zone": "far"}}
    (tmp_path / "saves" / "slot2.json").write_text(json.dumps(payload), encoding="utf-8")

    assert storage.preview(2) is not None
    state = storage.load(2)
    assert (state.feathers, state.scrap, state.highest_zone) == (0, 40, 1)
    assert not (tmp_path / "saves" / "slot2.corrupt.json").exists()


def test_non_object_save_is_treated_as_corrupt(tmp_path: Path) -> None:
    storage = SlotStorage(tmp_path / "saves")
    (tmp_path / "saves" / "slot2.json").write_text("[1, 2, 3]", encoding="utf-8")

    assert storage.preview(2) is None
    assert storage.load(2).feathers == 0
    assert (tmp_path / "saves" / "slot2.corrupt.json").exists()


def test_partly_shaped_records_are_repaired_or_dropped(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    storage = SlotStorage(tmp_path / "saves")
    state = choose_starter(create_default_player_state(3), "eagle", DeterministicRNG.from_seed(3)).state
    state.feathers = 5000
    bird = state.selected_creature_id
    storage.save(1, state)

    path = tmp_path / "saves" / "slot1.json"
    payload = json.loads(path.read_text(encoding="utf-8"))
    player = payload["player"]
    player["gear"]["gear_x"] = {"id": "gear_x", "type": "beak"}
    player["gear"]["gear_bad"] = {"type": "wing"}
    player["gems"]["gem_bad"] = {"buffs": [{"type": "LUCK", "value": 3}]}
    player["gems"]["gem_ok"] = {"buffs": [{"stat": "XP_BONUS", "value": 4}], "socketed_in": {"gear_id": "gone", "index": 0}}
    player["creatures"][bird]["gear"]["beak"] = "gear_x"
    del player["creatures"][bird]["moves"]
    player["creatures"]["bird_ghost"] = {"template_id": "dodo", "name": "Ghost"}
    player["consumables"] = [{"type": "HUNTING_SPEED", "rarity": "RARE", "count": 1}, {"type": "MYSTERY"}]
    player["active_buffs"] = [{"type": "BATTLE_REWARD"}]
    path.write_text(json.dumps(payload), encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="bird_battler.core.save_system"):
        loaded = storage.load(1)

    assert loaded.feathers == 5000
    assert list(loaded.creatures) == [bird]
    eagle = default_content().template_by_id["eagle"]
    assert [move.id for move in loaded.creatures[bird].moves] == [move.id for move in eagle.moves]
    assert loaded.creatures[bird].gear.beak == "gear_x"
    beak = loaded.gear["gear_x"]
    assert (beak.name, beak.rarity, beak.owner_id, beak.slot) == ("Beak", "COMMON", bird, "beak")
    assert "gear_bad" not in loaded.gear
    assert "gem_bad" not in loaded.gems
    assert loaded.gems["gem_ok"].socketed_in is None
    assert [(stack.type, stack.count) for stack in loaded.consumables] == [("HUNTING_SPEED", 1)]
    assert loaded.active_buffs == []
    assert not (tmp_path / "saves" / "slot1.corrupt.json").exists()
    assert "gear_bad" in caplog.text
    assert "bird_ghost" in caplog.text


def test_slot_listing_rename_and_reset(tmp_path: Path) -> None:
    storage = SlotStorage(tmp_path / "saves", slot_count=9)
    assert storage.slot_count == 5

    state = create_default_player_state(1)
    state.feathers = 77
    storage.save(2, state)
    storage.rename_slot(2, "  Main flock  ")

    summaries = storage.list_slots()
    assert [summary.slot for summary in summaries] == [1, 2, 3, 4, 5]
    second = summaries[1]
    assert second.occupied is True
    assert second.slot_name == "Main flock"
    assert second.feathers == 77
    assert second.last_played is not None
    assert summaries[0].occupied is False
    assert storage.last_slot() == 2

    with pytest.raises(ValueError):
        storage.rename_slot(2, "   ")
    with pytest.raises(ValueError):
        storage.load(6)

    storage.reset(2)
    assert storage.slot_exists(2) is False
    assert storage.preview(2) is None
    assert storage.last_slot() is None
    assert storage.list_slots()[1].slot_name == "Slot 2"
