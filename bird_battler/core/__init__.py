"""Core deterministic simulation modules."""

from .achievements import achievement_progress, claim_achievement, claimable_stages
from .battle import BattleState, auto_battle, opponent_turn, player_turn, start_battle
from .crafting import craft_gear, craft_gem, salvage_gear, salvage_gem, salvage_gems
from .idle import IdleLoop, IntervalTickSource, ManualTickSource, tick
from .inventory import equip_gear, socket_gem, unequip_gear, unsocket_gem, use_consumable
from .loader import ContentBundle, ContentValidationError, default_content, load_content
from .models import ActionResult, PlayerState, SaveData
from .persistence import create_default_player_state, create_default_save_data, load_save_data, save_save_data
from .rewards import apply_battle_result, record_zone_victory, report_zone_victory
from .rng import DeterministicRNG, RandomSource, ScriptedRNG
from .roster import (
    apply_stat_option,
    assign_hunter,
    catch_creature,
    choose_starter,
    discard_catch,
    keep_catch,
    recall_hunter,
    release_creature,
    roll_level_up_options,
    select_creature,
)
from .save_system import SlotStorage, migrate_save, repair_save
from .session import GameSession
from .upgrades import buy_meta_upgrade, buy_upgrade, unlock_feature

__all__ = [
    "ActionResult",
    "BattleState",
    "ContentBundle",
    "ContentValidationError",
    "DeterministicRNG",
    "GameSession",
    "IdleLoop",
    "IntervalTickSource",
    "ManualTickSource",
    "PlayerState",
    "RandomSource",
    "SaveData",
    "ScriptedRNG",
    "SlotStorage",
    "achievement_progress",
    "apply_battle_result",
    "apply_stat_option",
    "assign_hunter",
    "auto_battle",
    "buy_meta_upgrade",
    "buy_upgrade",
    "catch_creature",
    "choose_starter",
    "claim_achievement",
    "claimable_stages",
    "craft_gear",
    "craft_gem",
    "create_default_player_state",
    "create_default_save_data",
    "default_content",
    "discard_catch",
    "equip_gear",
    "keep_catch",
    "load_content",
    "load_save_data",
    "migrate_save",
    "opponent_turn",
    "player_turn",
    "recall_hunter",
    "record_zone_victory",
    "release_creature",
    "repair_save",
    "report_zone_victory",
    "roll_level_up_options",
    "salvage_gear",
    "salvage_gem",
    "salvage_gems",
    "save_save_data",
    "select_creature",
    "socket_gem",
    "start_battle",
    "tick",
    "unequip_gear",
    "unlock_feature",
    "unsocket_gem",
    "use_consumable",
]
