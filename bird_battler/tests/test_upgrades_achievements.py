from __future__ import annotations

import bird_battler.core as core
from bird_battler.core.achievements import achievement_stages, claim_achievement, claimable_stages, stage_id
from bird_battler.core.models import PlayerState
from bird_battler.core.persistence import create_default_player_state, grant_feathers
from bird_battler.core.upgrades import (
    buy_meta_upgrade,
    buy_upgrade,
    can_unlock,
    meta_cost,
    unlock_feature,
    upgrade_cost,
)


def _rich_state() -> PlayerState:
    state = create_default_player_state(9)
    state.feathers = 10_000
    state.scrap = 1_000
    return state


def test_upgrade_costs_grow_geometrically() -> None:
    assert upgrade_cost("scrap_chance", 0).feathers == 250
    assert upgrade_cost("scrap_chance", 1).feathers == 375
    assert upgrade_cost("scrap_chance", 2).feathers == 562
    assert upgrade_cost("roster_capacity", 1).diamonds == 2
    assert upgrade_cost("scrap_chance", 1000) is None
    assert upgrade_cost("time_travel", 0) is None


def test_upgrades_need_the_lab() -> None:
    state = _rich_state()
    locked = buy_upgrade(state, "scrap_chance")
    assert locked.ok is False
    assert locked.state is state

    state = unlock_feature(state, "upgrades").state
    assert (state.feathers, state.scrap) == (9_000, 800)

    bought = buy_upgrade(state, "scrap_chance")
    assert bought.ok is True
    assert bought.state.upgrade_level("scrap_chance") == 1
    assert bought.state.feathers == 8_750
    assert state.upgrade_level("scrap_chance") == 0

    again = buy_upgrade(bought.state, "scrap_chance")
    assert again.state.feathers == 8_375


def test_unlock_rules() -> None:
    state = create_default_player_state(9)
    assert can_unlock(state, "workshop") == (False, "Need 50 feathers and 10 scrap.")
    assert can_unlock(state, "moon_base") == (False, "Unknown feature.")

    state.feathers, state.scrap = 50, 10
    unlocked = unlock_feature(state, "workshop")
    assert unlocked.ok is True
    assert "workshop" in unlocked.state.unlocks
    assert (unlocked.state.feathers, unlocked.state.scrap) == (0, 0)
    assert unlock_feature(unlocked.state, "workshop").ok is False


def test_meta_shop_spends_ap() -> None:
    state = create_default_player_state(9)
    assert meta_cost("feather_boost", 0) == 5
    assert meta_cost("feather_boost", 2) == 9
    assert buy_meta_upgrade(state, "feather_boost").ok is False

    state.ap = 12
    first = buy_meta_upgrade(state, "feather_boost")
    second = buy_meta_upgrade(first.state, "feather_boost")
    assert second.state.meta_level("feather_boost") == 2
    assert second.state.ap == 0
    assert buy_meta_upgrade(second.state, "nonsense").ok is False


def test_achievements_count_from_the_unlock_baseline() -> None:
    state = _rich_state()
    grant_feathers(state, 5_000)
    assert claimable_stages(state) == []

    state = unlock_feature(state, "achievements").state
    assert state.lifetime.system_unlocked == 1
    assert state.achievement_baselines["total_feathers"] == 5_000

    claimable = {status.stage_id for status in claimable_stages(state)}
    assert claimable == {stage_id("system_unlock", 0)}

    grant_feathers(state, 1_000)
    claimable = {status.stage_id for status in claimable_stages(state)}
    assert stage_id("feathers", 0) in claimable
    assert stage_id("feathers", 1) not in claimable


def test_claiming_stages_in_order() -> None:
    state = _rich_state()
    state = unlock_feature(state, "achievements").state
    state.lifetime.highest_zone_reached = 3

    out_of_order = claim_achievement(state, "zone", 1)
    assert out_of_order.ok is False
    assert out_of_order.message == "Claim the previous stage first."

    first = claim_achievement(state, "zone", 0)
    assert first.ok is True
    assert first.state.ap == 5
    second = claim_achievement(first.state, "zone", 1)
    assert second.state.ap == 15
    assert claim_achievement(second.state, "zone", 1).message == "Already claimed."
    assert claim_achievement(second.state, "zone", 2).message == "Not there yet."
    assert claim_achievement(second.state, "zone", 99).ok is False

    claimed = {status.stage_id for status in achievement_stages(second.state) if status.claimed}
    assert claimed == {"zone_stage_0", "zone_stage_1"}


def test_claiming_requires_the_hall() -> None:
    state = _rich_state()
    state.lifetime.system_unlocked = 1
    result = claim_achievement(state, "system_unlock", 0)
    assert result.ok is False
    assert result.state is state


def test_reducers_are_exported_from_the_core_package() -> None:
    assert core.buy_upgrade is buy_upgrade
    assert core.unlock_feature is unlock_feature
    assert core.claim_achievement is claim_achievement
    assert set(core.__all__) >= {"craft_gear", "equip_gear", "choose_starter", "assign_hunter", "salvage_gems"}
    assert all(hasattr(core, name) for name in core.__all__)
