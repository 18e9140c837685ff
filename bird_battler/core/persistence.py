from __future__ import annotations

import json
from pathlib import Path

from .models import SAVE_VERSION, Cost, PlayerState, SaveData
from .rng import DeterministicRNG, seed_to_uint32
from .save_system import migrate_save, repair_save


def create_default_player_state(base_seed: int | str = 1337) -> PlayerState:
    return PlayerState(base_seed=base_seed, rng_state=seed_to_uint32(base_seed), rng_calls=0)


def create_default_save_data(base_seed: int | str = 1337) -> SaveData:
    return SaveData(save_version=SAVE_VERSION, player=create_default_player_state(base_seed))


def clone_state(state: PlayerState) -> PlayerState:
    return state.model_copy(deep=True)


def allocate_id(state: PlayerState, prefix: str) -> str:
    state.id_sequence += 1
    return f"{prefix}_{state.id_sequence:05d}"


def player_rng(state: PlayerState) -> DeterministicRNG:
    return DeterministicRNG(seed=state.base_seed, state=state.rng_state, calls=state.rng_calls)


def sync_rng(state: PlayerState, rng: object) -> None:
    if isinstance(rng, DeterministicRNG):
        state.rng_state = rng.state
        state.rng_calls = rng.calls


def can_afford(state: PlayerState, cost: Cost) -> bool:
    return state.feathers >= cost.feathers and state.scrap >= cost.scrap and state.diamonds >= cost.diamonds


def spend(state: PlayerState, cost: Cost) -> bool:
    if not can_afford(state, cost):
        return False
    state.feathers -= cost.feathers
    state.scrap -= cost.scrap
    state.diamonds -= cost.diamonds
    return True


def grant_feathers(state: PlayerState, amount: int) -> None:
    amount = max(0, int(amount))
    state.feathers += amount
    state.lifetime.total_feathers += amount


def grant_scrap(state: PlayerState, amount: int) -> None:
    amount = max(0, int(amount))
    state.scrap += amount
    state.lifetime.total_scrap += amount


def load_save_data(path: Path) -> SaveData:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Save file does not hold a JSON object.")
    return SaveData.model_validate(repair_save(migrate_save(payload)))


def save_save_data(path: Path, save_data: SaveData) -> None:
    save_data.save_version = SAVE_VERSION
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(save_data.model_dump(mode="json"), indent=2), encoding="utf-8")
