from __future__ import annotations

from dataclasses import dataclass

from .loader import ContentBundle, resolve_content
from .models import Achievement, ActionResult, PlayerState, accepted, rejected
from .persistence import clone_state

# Peaks and flags are not cumulative, so they are measured as-is.
ABSOLUTE_STAT_KEYS = frozenset({"system_unlocked", "highest_zone_reached", "max_perfect_catch_streak"})


@dataclass(slots=True)
class StageStatus:
    achievement_id: str
    stage_index: int
    stage_id: str
    target: int
    progress: int
    ap_reward: int
    claimed: bool

    @property
    def claimable(self) -> bool:
        return not self.claimed and self.progress >= self.target


def stage_id(achievement_id: str, stage_index: int) -> str:
    return f"{achievement_id}_stage_{stage_index}"


def achievement_progress(state: PlayerState, achievement: Achievement) -> int:
    current = int(getattr(state.lifetime, achievement.stat_key, 0))
    if achievement.stat_key in ABSOLUTE_STAT_KEYS:
        return current
    baseline = int(state.achievement_baselines.get(achievement.stat_key, 0))
    return max(0, current - baseline)


def achievement_stages(state: PlayerState, content: ContentBundle | None = None) -> list[StageStatus]:
    statuses: list[StageStatus] = []
    for achievement in resolve_content(content).balance.achievements:
        progress = achievement_progress(state, achievement)
        for index, stage in enumerate(achievement.stages):
            sid = stage_id(achievement.id, index)
            statuses.append(
                StageStatus(
                    achievement_id=achievement.id,
                    stage_index=index,
                    stage_id=sid,
                    target=stage.target_value,
                    progress=progress,
                    ap_reward=stage.ap_reward,
                    claimed=sid in state.completed_achievements,
                )
            )
    return statuses


def claimable_stages(state: PlayerState, content: ContentBundle | None = None) -> list[StageStatus]:
    if not state.is_unlocked("achievements"):
        return []
    return [status for status in achievement_stages(state, content) if status.claimable]


def claim_achievement(
    state: PlayerState,
    achievement_id: str,
    stage_index: int,
    content: ContentBundle | None = None,
) -> ActionResult:
    achievement = resolve_content(content).achievement_by_id.get(achievement_id)
    if achievement is None or not 0 <= stage_index < len(achievement.stages):
        return rejected(state, "Unknown achievement stage.")
    if not state.is_unlocked("achievements"):
        return rejected(state, "Unlock the Hall of Glory first.")
    sid = stage_id(achievement_id, stage_index)
    if sid in state.completed_achievements:
        return rejected(state, "Already claimed.")
    if stage_index > 0 and stage_id(achievement_id, stage_index - 1) not in state.completed_achievements:
        return rejected(state, "Claim the previous stage first.")
    stage = achievement.stages[stage_index]
    if achievement_progress(state, achievement) < stage.target_value:
        return rejected(state, "Not there yet.")

    new_state = clone_state(state)
    new_state.completed_achievements.add(sid)
    new_state.ap += stage.ap_reward
    return accepted(new_state, f"{achievement.name} claimed: +{stage.ap_reward} AP.", stage.ap_reward)
