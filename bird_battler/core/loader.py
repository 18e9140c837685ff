from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError

from .models import (
    GEM_BUFF_TYPES,
    RARITY_ORDER,
    Achievement,
    BalanceTables,
    CreatureTemplate,
    LifetimeStats,
    MetaShopItem,
    UnlockDefinition,
    UpgradeDefinition,
    META_BOOST_IDS,
    UNLOCK_IDS,
    UPGRADE_IDS,
)

T = TypeVar("T")

DEFAULT_CONTENT_DIR = Path(__file__).resolve().parents[1] / "content"


class ContentValidationError(ValueError):
    def __init__(self, message: str, details: list[str] | None = None) -> None:
        self.details = details or []
        suffix = "\n".join(self.details)
        super().__init__(f"{message}\n{suffix}" if suffix else message)


@dataclass(slots=True)
class ContentBundle:
    templates: list[CreatureTemplate]
    balance: BalanceTables
    template_by_id: dict[str, CreatureTemplate]
    upgrade_by_id: dict[str, UpgradeDefinition]
    meta_item_by_id: dict[str, MetaShopItem]
    unlock_by_id: dict[str, UnlockDefinition]
    achievement_by_id: dict[str, Achievement]


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ContentValidationError(f"Missing content file: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ContentValidationError(f"Invalid JSON in {path.name}: {exc.msg} at line {exc.lineno}") from exc


def _validation_details(path: Path, exc: ValidationError) -> list[str]:
    errors = []
    for issue in exc.errors():
        issue_path = ".".join(str(part) for part in issue.get("loc", [])) or "(root)"
        errors.append(f"{path.name}:{issue_path}: {issue.get('msg', 'validation error')}")
    return errors


def _load_typed(path: Path, target: Any) -> Any:
    data = _load_json(path)
    try:
        return TypeAdapter(target).validate_python(data)
    except ValidationError as exc:
        raise ContentValidationError(f"Schema validation failed for {path.name}.", _validation_details(path, exc)) from exc


def _assert_unique_ids(kind: str, values: list[Any]) -> None:
    seen: set[str] = set()
    for entry in values:
        if entry.id in seen:
            raise ContentValidationError(f"Duplicate {kind} id '{entry.id}'.")
        seen.add(entry.id)


def _assert_complete(kind: str, table: dict[str, Any], expected: tuple[str, ...]) -> None:
    missing = [key for key in expected if key not in table]
    if missing:
        raise ContentValidationError(f"{kind} is missing entries for: {', '.join(missing)}.")


def _validate_balance(balance: BalanceTables) -> None:
    _assert_complete("gear.stat_bonus_ranges", balance.gear.stat_bonus_ranges, RARITY_ORDER)
    _assert_complete("gear.socket_capacity", balance.gear.socket_capacity, RARITY_ORDER)
    _assert_complete("gems.common_ranges", balance.gems.common_ranges, RARITY_ORDER)
    _assert_complete("gems.rare_ranges", balance.gems.rare_ranges, RARITY_ORDER)
    _assert_complete("leveling.pool_option_ranges", balance.leveling.pool_option_ranges, RARITY_ORDER)
    _assert_complete("leveling.core_option_ranges", balance.leveling.core_option_ranges, RARITY_ORDER)
    _assert_complete("rewards.scrap", balance.rewards.scrap, RARITY_ORDER)
    _assert_complete("rewards.consumable_chance", balance.rewards.consumable_chance, RARITY_ORDER)
    for consumable_type, entries in balance.consumables.entries.items():
        _assert_complete(f"consumables.entries.{consumable_type}", entries, RARITY_ORDER)
    _assert_complete("roll.thresholds", balance.roll.thresholds, RARITY_ORDER[1:])

    thresholds = [balance.roll.thresholds[rarity] for rarity in RARITY_ORDER[1:]]
    if thresholds != sorted(thresholds):
        raise ContentValidationError("roll.thresholds must ascend with rarity.")
    for capacity in balance.gear.socket_capacity.values():
        if not 0 <= capacity <= 3:
            raise ContentValidationError("gear.socket_capacity values must be between 0 and 3.")
    if balance.gear.socket_full_chance + balance.gear.socket_reduced_chance > 1.0:
        raise ContentValidationError("gear socket chances must not exceed 1.0 in total.")
    for kind in balance.gems.rare_kinds:
        if kind not in GEM_BUFF_TYPES:
            raise ContentValidationError(f"gems.rare_kinds references unknown buff '{kind}'.")

    _assert_unique_ids("upgrade", balance.upgrades)
    _assert_unique_ids("meta shop item", balance.meta_shop)
    _assert_unique_ids("unlock", balance.unlocks)
    _assert_unique_ids("achievement", balance.achievements)
    _assert_complete("upgrades", {entry.id: entry for entry in balance.upgrades}, UPGRADE_IDS)
    _assert_complete("meta_shop", {entry.id: entry for entry in balance.meta_shop}, META_BOOST_IDS)
    _assert_complete("unlocks", {entry.id: entry for entry in balance.unlocks}, UNLOCK_IDS)

    stat_keys = set(LifetimeStats.model_fields)
    for achievement in balance.achievements:
        if achievement.stat_key not in stat_keys:
            raise ContentValidationError(
                f"achievement '{achievement.id}' tracks unknown stat '{achievement.stat_key}'."
            )


def _validate_templates(templates: list[CreatureTemplate]) -> None:
    if not templates:
        raise ContentValidationError("birds.json must define at least one template.")
    _assert_unique_ids("template", templates)
    for template in templates:
        move_ids: set[str] = set()
        for move in template.moves:
            if move.id in move_ids:
                raise ContentValidationError(f"template '{template.id}' has duplicate move id '{move.id}'.")
            move_ids.add(move.id)


def load_content(content_dir: Path | None = None) -> ContentBundle:
    root = content_dir or DEFAULT_CONTENT_DIR
    templates_path = root / "birds.json"
    balance_path = root / "balance.json"
    templates: list[CreatureTemplate] = _load_typed(templates_path, list[CreatureTemplate])
    balance: BalanceTables = _load_typed(balance_path, BalanceTables)

    _validate_templates(templates)
    _validate_balance(balance)

    return ContentBundle(
        templates=templates,
        balance=balance,
        template_by_id={template.id: template for template in templates},
        upgrade_by_id={entry.id: entry for entry in balance.upgrades},
        meta_item_by_id={entry.id: entry for entry in balance.meta_shop},
        unlock_by_id={entry.id: entry for entry in balance.unlocks},
        achievement_by_id={entry.id: entry for entry in balance.achievements},
    )


@lru_cache(maxsize=1)
def default_content() -> ContentBundle:
    return load_content(DEFAULT_CONTENT_DIR)


def resolve_content(content: ContentBundle | None) -> ContentBundle:
    return content if content is not None else default_content()
