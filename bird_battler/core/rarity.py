from __future__ import annotations

from .loader import ContentBundle, resolve_content
from .models import RARITY_ORDER, Rarity, RollContext, rarity_at, rarity_index
from .rng import RandomSource


def max_craft_rarity(level: int, content: ContentBundle | None = None) -> Rarity:
    roll = resolve_content(content).balance.roll
    return rarity_at(min(len(RARITY_ORDER) - 1, roll.craft_floor_index + (int(level) // roll.craft_step)))


def catch_bonus(multiplier: float, content: ContentBundle | None = None) -> float:
    bonuses = resolve_content(content).balance.roll.catch_bonuses
    return sum(entry.bonus for entry in bonuses if multiplier >= entry.min_multiplier)


def rarity_for_score(score: float, content: ContentBundle | None = None) -> Rarity:
    thresholds = resolve_content(content).balance.roll.thresholds
    for rarity in reversed(RARITY_ORDER[1:]):
        if score > thresholds[rarity]:
            return rarity
    return RARITY_ORDER[0]


def roll_rarity(
    rng: RandomSource,
    upgrade_level: int = 0,
    context: RollContext = "CRAFT",
    multiplier: float = 1.0,
    content: ContentBundle | None = None,
) -> Rarity:
    """Roll a rarity tier.

    CRAFT rolls are clamped to the workshop ceiling for ``upgrade_level``,
    CATCH rolls get the skill bonus for ``multiplier`` and DROP rolls are
    taken as-is.
    """
    bundle = resolve_content(content)
    roll = bundle.balance.roll
    score = rng.next_float() * roll.score_range + upgrade_level * roll.level_bonus
    if context == "CATCH":
        score += catch_bonus(multiplier, bundle)

    rarity = rarity_for_score(score, bundle)
    if context == "CRAFT":
        ceiling = max_craft_rarity(upgrade_level, bundle)
        if rarity_index(rarity) > rarity_index(ceiling):
            rarity = ceiling
    return rarity


def roll_multiplier(rng: RandomSource, rarity: Rarity, content: ContentBundle | None = None) -> float:
    tier = resolve_content(content).balance.tier(rarity)
    return rng.uniform(tier.min_mult, tier.max_mult)


def tier_name(rarity: Rarity, content: ContentBundle | None = None) -> str:
    return resolve_content(content).balance.tier(rarity).name


def min_multiplier(rarity: Rarity, content: ContentBundle | None = None) -> float:
    return resolve_content(content).balance.tier(rarity).min_mult
