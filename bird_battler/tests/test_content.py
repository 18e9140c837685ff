from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

from bird_battler.core.loader import ContentValidationError, default_content, load_content
from bird_battler.core.models import RARITY_ORDER

CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"


def _copy_content(tmp_path: Path) -> Path:
    target = tmp_path / "content"
    shutil.copytree(CONTENT_DIR, target)
    return target


def test_bundled_content_loads_every_species_and_table():
    content = load_content(CONTENT_DIR)

    assert sorted(content.template_by_id) == ["eagle", "hawk", "hummingbird", "owl", "vulture"]
    assert tuple(tier.id for tier in content.balance.rarities) == RARITY_ORDER
    assert content.balance.tier("MYTHIC").name == "Adult"
    assert content.unlock_by_id["achievements"].cost.feathers == 0
    assert content.balance.economy.craft_gear.feathers == 250
    assert content.balance.economy.craft_gear.scrap == 25


def test_default_content_is_cached():
    assert default_content() is default_content()


def test_duplicate_template_id_raises_clear_error(tmp_path: Path):
    content_dir = _copy_content(tmp_path)
    birds_path = content_dir / "birds.json"
    birds = json.loads(birds_path.read_text(encoding="utf-8"))
    birds[1]["id"] = birds[0]["id"]
    birds_path.write_text(json.dumps(birds, indent=2), encoding="utf-8")

    with pytest.raises(ContentValidationError, match="Duplicate template id 'eagle'"):
        load_content(content_dir)


def test_schema_errors_list_the_offending_field(tmp_path: Path):
    content_dir = _copy_content(tmp_path)
    birds_path = content_dir / "birds.json"
    birds = json.loads(birds_path.read_text(encoding="utf-8"))
    birds[0]["moves"][0]["type"] = "TELEPORT"
    birds_path.write_text(json.dumps(birds, indent=2), encoding="utf-8")

    with pytest.raises(ContentValidationError) as excinfo:
        load_content(content_dir)
    assert any("birds.json:0.moves.0.type" in detail for detail in excinfo.value.details)


def test_descending_roll_thresholds_are_rejected(tmp_path: Path):
    content_dir = _copy_content(tmp_path)
    balance_path = content_dir / "balance.json"
    balance = json.loads(balance_path.read_text(encoding="utf-8"))
    balance["roll"]["thresholds"]["RARE"] = 100
    balance_path.write_text(json.dumps(balance, indent=2), encoding="utf-8")

    with pytest.raises(ContentValidationError, match="must ascend"):
        load_content(content_dir)


def test_missing_content_file_is_reported(tmp_path: Path):
    content_dir = _copy_content(tmp_path)
    (content_dir / "balance.json").unlink()

    with pytest.raises(ContentValidationError, match="Missing content file"):
        load_content(content_dir)
