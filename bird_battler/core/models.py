from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Rarity = Literal["COMMON", "UNCOMMON", "RARE", "EPIC", "LEGENDARY", "MYTHIC"]
GearType = Literal["beak", "claws"]
PrefixType = Literal["QUALITY", "SHARP", "GREAT"]
StatKey = Literal["HP", "ATK", "DEF", "SPD", "NRG"]
GemBuffType = Literal[
    "XP_BONUS",
    "SCRAP_BONUS",
    "HUNT_BONUS",
    "FEATHER_BONUS",
    "DIAMOND_BATTLE_CHANCE",
    "DIAMOND_HUNT_CHANCE",
    "GEM_FIND_CHANCE",
    "ITEM_FIND_CHANCE",
]
ConsumableType = Literal["HUNTING_SPEED", "BATTLE_REWARD"]
MoveType = Literal["ATTACK", "SPECIAL", "DEFENSE", "HEAL", "DRAIN"]
MoveEffect = Literal["shield", "dodge"]
PassiveKind = Literal["predator", "keen_eye", "wisdom", "hyper_metabolism", "rot_eater"]
EnemyModifier = Literal["MERCHANT", "HOARDER", "SCRAPOHOLIC", "GENIUS", "GEMFINDER"]
RollContext = Literal["CRAFT", "CATCH", "DROP"]
DropKind = Literal["scrap", "gem", "consumable"]

SAVE_VERSION = 5

RARITY_ORDER: tuple[Rarity, ...] = ("COMMON", "UNCOMMON", "RARE", "EPIC", "LEGENDARY", "MYTHIC")
GEAR_SLOTS: tuple[GearType, GearType] = ("beak", "claws")
STAT_KEYS: tuple[StatKey, ...] = ("HP", "ATK", "DEF", "SPD", "NRG")
GEM_BUFF_TYPES: tuple[GemBuffType, ...] = (
    "XP_BONUS",
    "SCRAP_BONUS",
    "HUNT_BONUS",
    "FEATHER_BONUS",
    "DIAMOND_BATTLE_CHANCE",
    "DIAMOND_HUNT_CHANCE",
    "GEM_FIND_CHANCE",
    "ITEM_FIND_CHANCE",
)
CONSUMABLE_TYPES: tuple[ConsumableType, ConsumableType] = ("HUNTING_SPEED", "BATTLE_REWARD")

GROUND = 0
LOW = 1
HIGH = 2
ALTITUDES = (GROUND, LOW, HIGH)

UPGRADE_IDS = ("scrap_chance", "catch_rarity", "craft_rarity", "gem_rarity", "roster_capacity")
META_BOOST_IDS = ("feather_boost", "scrap_boost", "diamond_boost", "item_drop_boost", "gem_drop_boost")
UNLOCK_IDS = ("workshop", "claw_crafting", "gem_crafting", "upgrades", "achievements")


def rarity_index(rarity: Rarity) -> int:
    return RARITY_ORDER.index(rarity)


def rarity_at(index: int) -> Rarity:
    return RARITY_ORDER[max(0, min(len(RARITY_ORDER) - 1, int(index)))]


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class StatRange(StrictModel):
    min: int = Field(ge=0)
    max: int = Field(ge=0)

    @model_validator(mode="after")
    def validate_bounds(self) -> "StatRange":
        if self.max < self.min:
            raise ValueError("StatRange.max must be greater than or equal to min.")
        return self


class BaseStatRanges(StrictModel):
    hp: StatRange
    energy: StatRange
    attack: StatRange
    defense: StatRange
    speed: StatRange


class Move(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    type: MoveType
    power: float = Field(ge=0)
    cost: float = Field(ge=0)
    accuracy: float = Field(ge=0, le=100)
    cooldown_ms: int = Field(default=0, alias="cooldownMs", ge=0)
    requires_height: bool = Field(default=False, alias="requiresHeight")
    effect: MoveEffect | None = None
    description: str = ""


class Passive(StrictModel):
    kind: PassiveKind
    name: str = Field(min_length=1)
    description: str = ""


class HuntingProfile(StrictModel):
    base_rate: float = Field(alias="baseRate", gt=0)
    description: str = ""


class CreatureTemplate(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    species: str = Field(min_length=1)
    description: str = ""
    base_stats: BaseStatRanges = Field(alias="baseStats")
    moves: list[Move] = Field(min_length=1)
    passive: Passive
    hunting: HuntingProfile


class StatBonus(StrictModel):
    stat: StatKey
    value: int = Field(ge=0)
    rarity: Rarity


class GearPrefix(StrictModel):
    type: PrefixType
    value: int = Field(ge=0)


class Gear(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    type: GearType
    rarity: Rarity
    attack_bonus: int = Field(default=0, ge=0)
    prefix: GearPrefix | None = None
    stat_bonuses: list[StatBonus] = Field(default_factory=list, max_length=3)
    sockets: list[str | None] = Field(default_factory=list, max_length=3)
    owner_id: str | None = None
    slot: GearType | None = None

    @model_validator(mode="after")
    def validate_owner(self) -> "Gear":
        if (self.owner_id is None) != (self.slot is None):
            raise ValueError("Gear owner_id and slot must be set together.")
        if self.slot is not None and self.slot != self.type:
            raise ValueError(f"Gear of type '{self.type}' cannot sit in slot '{self.slot}'.")
        return self


class GemBuff(StrictModel):
    type: GemBuffType
    value: float = Field(ge=0)
    rarity: Rarity


class SocketRef(StrictModel):
    gear_id: str = Field(min_length=1)
    index: int = Field(ge=0, le=2)


class Gem(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    rarity: Rarity
    buffs: list[GemBuff] = Field(min_length=1, max_length=2)
    socketed_in: SocketRef | None = None


class GearSlots(StrictModel):
    beak: str | None = None
    claws: str | None = None

    def get(self, slot: GearType) -> str | None:
        return self.beak if slot == "beak" else self.claws

    def ids(self) -> list[str]:
        return [gear_id for gear_id in (self.beak, self.claws) if gear_id]


class CreatureInstance(StrictModel):
    id: str = Field(min_length=1)
    template_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    species: str = Field(min_length=1)
    rarity: Rarity
    hp: int = Field(ge=1)
    energy: int = Field(ge=1)
    attack: int = Field(ge=0)
    defense: int = Field(ge=0)
    speed: int = Field(ge=0)
    moves: list[Move] = Field(min_length=1)
    passive: Passive
    hunting: HuntingProfile
    level: int = Field(default=1, ge=1)
    xp: int = Field(default=0, ge=0)
    xp_to_next: int = Field(default=100, ge=1)
    stat_points: int = Field(default=0, ge=0)
    gear: GearSlots = Field(default_factory=GearSlots)

    @model_validator(mode="after")
    def validate_xp(self) -> "CreatureInstance":
        if self.xp >= self.xp_to_next:
            raise ValueError("Creature xp must stay below xp_to_next.")
        return self


class ConsumableStack(StrictModel):
    type: ConsumableType
    rarity: Rarity
    count: int = Field(default=0, ge=0)


class ActiveBuff(StrictModel):
    type: ConsumableType
    rarity: Rarity
    multiplier: float = Field(gt=0)
    remaining: int = Field(ge=0)


class LifetimeStats(StrictModel):
    total_feathers: int = Field(default=0, ge=0)
    total_scrap: int = Field(default=0, ge=0)
    total_crafts: int = Field(default=0, ge=0)
    total_catches: int = Field(default=0, ge=0)
    battles_won: int = Field(default=0, ge=0)
    highest_zone_reached: int = Field(default=1, ge=1)
    max_perfect_catch_streak: int = Field(default=0, ge=0)
    current_perfect_catch_streak: int = Field(default=0, ge=0)
    system_unlocked: int = Field(default=0, ge=0, le=1)


class PlayerState(StrictModel):
    feathers: int = Field(default=0, ge=0)
    scrap: int = Field(default=0, ge=0)
    diamonds: int = Field(default=0, ge=0)
    ap: int = Field(default=0, ge=0)
    creatures: dict[str, CreatureInstance] = Field(default_factory=dict)
    selected_creature_id: str | None = None
    hunting_ids: list[str] = Field(default_factory=list)
    pending_catch: CreatureInstance | None = None
    gear: dict[str, Gear] = Field(default_factory=dict)
    gems: dict[str, Gem] = Field(default_factory=dict)
    consumables: list[ConsumableStack] = Field(default_factory=list)
    active_buffs: list[ActiveBuff] = Field(default_factory=list)
    upgrades: dict[str, int] = Field(default_factory=dict)
    meta_shop: dict[str, int] = Field(default_factory=dict)
    unlocks: set[str] = Field(default_factory=set)
    lifetime: LifetimeStats = Field(default_factory=LifetimeStats)
    achievement_baselines: dict[str, int] = Field(default_factory=dict)
    completed_achievements: set[str] = Field(default_factory=set)
    highest_zone: int = Field(default=1, ge=1)
    zone_progress: list[Rarity] = Field(default_factory=list)
    idle_carry: float = Field(default=0.0, ge=0)
    id_sequence: int = Field(default=0, ge=0)
    base_seed: int | str = 1337
    rng_state: int = Field(default=1, gt=0)
    rng_calls: int = Field(default=0, ge=0)

    @field_validator("upgrades", "meta_shop")
    @classmethod
    def validate_levels(cls, levels: dict[str, int]) -> dict[str, int]:
        for key, level in levels.items():
            if level < 0:
                raise ValueError(f"Level for '{key}' cannot be negative.")
        return levels

    @field_validator("hunting_ids")
    @classmethod
    def dedupe_hunters(cls, hunting_ids: list[str]) -> list[str]:
        return list(dict.fromkeys(hunting_ids))

    def upgrade_level(self, upgrade_id: str) -> int:
        return max(0, int(self.upgrades.get(upgrade_id, 0)))

    def meta_level(self, boost_id: str) -> int:
        return max(0, int(self.meta_shop.get(boost_id, 0)))

    def is_unlocked(self, unlock_id: str) -> bool:
        return unlock_id in self.unlocks


class SaveData(StrictModel):
    save_version: int = Field(default=SAVE_VERSION, ge=1)
    player: PlayerState


# Balance tables. Every tunable number the engine reads lives below and is
# loaded from content/balance.json.


class ValueRange(StrictModel):
    min: float
    max: float

    @model_validator(mode="after")
    def validate_bounds(self) -> "ValueRange":
        if self.max < self.min:
            raise ValueError("ValueRange.max must be greater than or equal to min.")
        return self


class Cost(StrictModel):
    feathers: int = Field(default=0, ge=0)
    scrap: int = Field(default=0, ge=0)
    diamonds: int = Field(default=0, ge=0)


class RarityTier(StrictModel):
    id: Rarity
    name: str = Field(min_length=1)
    min_mult: float = Field(gt=0)
    max_mult: float = Field(gt=0)
    drop_rate: float = Field(ge=0, le=1)

    @model_validator(mode="after")
    def validate_mults(self) -> "RarityTier":
        if self.max_mult < self.min_mult:
            raise ValueError(f"Rarity tier '{self.id}' has max_mult below min_mult.")
        return self


class CatchBonus(StrictModel):
    min_multiplier: float = Field(gt=0)
    bonus: float = Field(ge=0)


class RollTable(StrictModel):
    score_range: float = Field(gt=0)
    level_bonus: float = Field(ge=0)
    thresholds: dict[Rarity, float]
    catch_bonuses: list[CatchBonus] = Field(default_factory=list)
    craft_floor_index: int = Field(default=1, ge=0, le=5)
    craft_step: int = Field(default=5, ge=1)


class GearTable(StrictModel):
    base_attack: dict[GearType, int]
    level_scale: float = Field(ge=0)
    prefix_chance: float = Field(ge=0, le=1)
    prefix_tier_scale: float = Field(ge=0)
    prefix_ranges: dict[PrefixType, ValueRange]
    stat_bonus_ranges: dict[Rarity, ValueRange]
    stat_bonus_max: int = Field(default=3, ge=0, le=3)
    stat_bonus_level_luck: float = Field(ge=0)
    tier_drop_base: float = Field(ge=0, le=1)
    tier_drop_per_level: float = Field(ge=0)
    socket_capacity: dict[Rarity, int]
    socket_full_chance: float = Field(ge=0, le=1)
    socket_reduced_chance: float = Field(ge=0, le=1)
    names: dict[GearType, str]


class GemTable(StrictModel):
    common_ranges: dict[Rarity, ValueRange]
    rare_ranges: dict[Rarity, ValueRange]
    rare_kinds: list[GemBuffType]
    level_scale: float = Field(ge=0)
    max_buffs: int = Field(default=2, ge=1, le=2)


class ConsumableEntry(StrictModel):
    multiplier: float = Field(gt=0)
    duration: int = Field(ge=1)


class ConsumableTable(StrictModel):
    names: dict[ConsumableType, str]
    entries: dict[ConsumableType, dict[Rarity, ConsumableEntry]]


class StatOptionOdds(StrictModel):
    rarity: Rarity
    below: float = Field(gt=0, le=1)


class LevelingTable(StrictModel):
    base_xp: int = Field(ge=1)
    growth: float = Field(ge=1)
    stat_points_per_level: int = Field(default=1, ge=0)
    stat_option_count: int = Field(default=3, ge=1)
    option_odds: list[StatOptionOdds] = Field(min_length=1)
    pool_option_ranges: dict[Rarity, StatRange]
    core_option_ranges: dict[Rarity, StatRange]


class CombatTable(StrictModel):
    player_growth: float = Field(ge=0)
    enemy_growth: float = Field(ge=0)
    enemy_level_growth: float = Field(ge=0)
    evasion_per_speed: float = Field(ge=0)
    evasion_cap: float = Field(ge=0)
    skill_threshold: float = Field(gt=0)
    skill_accuracy_bonus: float = Field(ge=0)
    crit_multiplier: float = Field(ge=1)
    predator_threshold: float = Field(gt=0, le=1)
    predator_multiplier: float = Field(ge=1)
    altitude_multiplier: float = Field(ge=1)
    high_altitude_chance: float = Field(ge=0, le=1)
    high_altitude_multiplier: float = Field(ge=1)
    shield_factor: float = Field(ge=0, le=1)
    bleed_base_chance: float = Field(ge=0)
    claws_bleed_chance: float = Field(ge=0, le=1)
    bleed_tick: float = Field(ge=0, le=1)
    drain_factor: float = Field(ge=0)
    energy_regen: float = Field(ge=0)
    hyper_metabolism_rate: float = Field(ge=1)
    rot_eater_heal: float = Field(ge=0, le=1)
    altitude_energy: dict[int, float]


class OpponentTable(StrictModel):
    rarity_weights: list[float] = Field(min_length=6, max_length=6)
    force_missing_chance: float = Field(ge=0, le=1)
    modifier_chance: float = Field(ge=0, le=1)
    modifiers: dict[EnemyModifier, dict[str, float]]
    random_stat_modifiers: list[EnemyModifier] = Field(default_factory=list)
    random_stat_multipliers: dict[str, float] = Field(default_factory=dict)


class ScrapEntry(StrictModel):
    chance: float = Field(ge=0, le=1)
    min: float = Field(ge=0)
    max: float = Field(ge=0)


class RewardTable(StrictModel):
    base_xp: float = Field(ge=0)
    xp_level_scale: float = Field(ge=0)
    base_feathers: float = Field(ge=0)
    feather_level_scale: float = Field(ge=0)
    modifier_multipliers: dict[EnemyModifier, dict[str, float]] = Field(default_factory=dict)
    guaranteed_drops: dict[EnemyModifier, DropKind] = Field(default_factory=dict)
    scrap: dict[Rarity, ScrapEntry]
    scrap_enemy_scale: float = Field(ge=0)
    scrap_player_scale: float = Field(ge=0)
    scrap_chance_per_level: float = Field(ge=0)
    diamond_base_chance: float = Field(ge=0)
    gem_base_chance: float = Field(ge=0)
    gem_rarity_bonus: dict[Rarity, float]
    consumable_chance: dict[Rarity, float]
    meta_rate: float = Field(ge=0)
    zone_clear_feathers: int = Field(ge=0)
    zone_clear_scrap: int = Field(ge=0)
    zone_clear_roll_scale: int = Field(ge=0)


class IdleTable(StrictModel):
    level_scale: float = Field(ge=0)
    double_yield_chance: float = Field(ge=0, le=1)
    scrap_find_chance: float = Field(ge=0, le=1)
    wisdom_income: float = Field(ge=1)
    wisdom_xp_chance: float = Field(ge=0, le=1)
    wisdom_xp_per_level: float = Field(ge=0)
    rot_eater_item_chance: float = Field(ge=0, le=1)


class EconomyTable(StrictModel):
    craft_gear: Cost
    craft_gem: Cost
    recruit_feathers: int = Field(ge=0)
    salvage_feather_ratio: float = Field(ge=0, le=1)
    salvage_scrap_ratio: float = Field(ge=0, le=1)
    release_base_ratio: float = Field(ge=0)
    release_rarity_ratio: float = Field(ge=0)
    release_level_ratio: float = Field(ge=0)
    roster_base_capacity: int = Field(ge=1)


class UpgradeDefinition(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    base_cost: Cost
    cost_multiplier: float = Field(ge=1)
    max_level: int = Field(ge=1)


class MetaShopItem(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    base_cost: int = Field(ge=0)
    cost_scale: int = Field(ge=0)


class UnlockDefinition(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    cost: Cost = Field(default_factory=Cost)


class AchievementStage(StrictModel):
    target_value: int = Field(ge=1)
    ap_reward: int = Field(ge=0)
    description: str | None = None


class Achievement(StrictModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    stat_key: str = Field(min_length=1)
    stages: list[AchievementStage] = Field(min_length=1)

    @field_validator("stages")
    @classmethod
    def validate_stage_order(cls, stages: list[AchievementStage]) -> list[AchievementStage]:
        targets = [stage.target_value for stage in stages]
        if targets != sorted(targets):
            raise ValueError("Achievement stages must be listed in ascending target order.")
        return stages


class BalanceTables(StrictModel):
    rarities: list[RarityTier] = Field(min_length=6, max_length=6)
    roll: RollTable
    gear: GearTable
    gems: GemTable
    consumables: ConsumableTable
    leveling: LevelingTable
    combat: CombatTable
    opponents: OpponentTable
    rewards: RewardTable
    zones: list[list[Rarity]] = Field(min_length=1)
    idle: IdleTable
    economy: EconomyTable
    upgrades: list[UpgradeDefinition]
    meta_shop: list[MetaShopItem]
    unlocks: list[UnlockDefinition]
    achievements: list[Achievement]

    @field_validator("rarities")
    @classmethod
    def validate_rarity_order(cls, rarities: list[RarityTier]) -> list[RarityTier]:
        if tuple(tier.id for tier in rarities) != RARITY_ORDER:
            raise ValueError("Rarity tiers must be listed COMMON through MYTHIC.")
        return rarities

    def tier(self, rarity: Rarity) -> RarityTier:
        return self.rarities[rarity_index(rarity)]


T = TypeVar("T")


@dataclass(slots=True)
class ActionResult(Generic[T]):
    """Outcome of a reducer.

    On rejection ``state`` is the exact object that was passed in.
    """

    state: PlayerState
    ok: bool
    message: str = ""
    payload: T | None = None


def accepted(state: PlayerState, message: str = "", payload: Any = None) -> ActionResult:
    return ActionResult(state=state, ok=True, message=message, payload=payload)


def rejected(state: PlayerState, message: str) -> ActionResult:
    return ActionResult(state=state, ok=False, message=message, payload=None)
