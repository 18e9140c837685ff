from __future__ import annotations

import inspect
import logging
import threading
from pathlib import Path
from typing import Any, Callable

from . import battle as battle_ops
from . import idle
from .advisory import DEFAULT_ADVISORY_TIMEOUT, AdvisorAnswer, HttpAdvisor, OpponentAdvisor, ask_advisor
from .battle import BattleState, TurnOutcome
from .loader import ContentBundle, resolve_content
from .models import ActionResult, PlayerState, rejected
from .persistence import player_rng, sync_rng
from .rewards import apply_battle_result
from .rng import RandomSource
from .save_system import SlotStorage
from .settings import EngineSettings

logger = logging.getLogger(__name__)
gameplay_logger = logging.getLogger("bird_battler.gameplay")

Reducer = Callable[..., ActionResult]


def _accepts_content(action: Callable[..., Any]) -> bool:
    try:
        return "content" in inspect.signature(action).parameters
    except (TypeError, ValueError):
        return False


class GameSession:
    """Owns the live player state for one save slot.

    Every mutation goes through ``dispatch`` under a single lock, so the idle
    loop thread and the caller never interleave. Accepted actions are written
    to the slot immediately.
    """

    def __init__(
        self,
        storage: SlotStorage,
        slot: int,
        content: ContentBundle | None = None,
        advisor: OpponentAdvisor | None = None,
        advisory_timeout: float = DEFAULT_ADVISORY_TIMEOUT,
        autosave: bool = True,
        rng: RandomSource | None = None,
        idle_interval: float = 1.0,
    ) -> None:
        self.storage = storage
        self.slot = slot
        self.content = resolve_content(content)
        self.advisor = advisor
        self.advisory_timeout = advisory_timeout
        self.autosave = autosave
        self.idle_interval = idle_interval
        self.state: PlayerState = storage.load(slot)
        self.rng: RandomSource = rng if rng is not None else player_rng(self.state)
        self.battle: BattleState | None = None
        self._lock = threading.RLock()
        self._idle_loop: idle.IdleLoop | None = None

    @classmethod
    def open(
        cls,
        saves_dir: Path,
        slot: int,
        settings: EngineSettings | None = None,
        content: ContentBundle | None = None,
    ) -> "GameSession":
        settings = settings or EngineSettings()
        storage = SlotStorage(saves_dir, settings.gameplay.save_slots, base_seed=settings.gameplay.base_seed)
        advisor = None
        if settings.advisory.endpoint:
            advisor = HttpAdvisor(
                settings.advisory.endpoint,
                path=settings.advisory.path,
                timeout=settings.advisory.timeout,
                api_key=settings.advisory.api_key,
            )
        return cls(
            storage,
            slot,
            content=content,
            advisor=advisor,
            advisory_timeout=settings.advisory.timeout,
            autosave=settings.gameplay.autosave,
            idle_interval=settings.idle.tick_interval,
        )

    def dispatch(self, action: Reducer, *args: Any, **kwargs: Any) -> ActionResult:
        """Run ``action(state, *args)`` and adopt the new state when it is accepted."""
        if _accepts_content(action):
            kwargs.setdefault("content", self.content)
        with self._lock:
            result = action(self.state, *args, **kwargs)
            if result.ok:
                sync_rng(result.state, self.rng)
                self.state = result.state
                self.persist()
                if result.message:
                    gameplay_logger.info(result.message)
            return result

    def persist(self) -> None:
        if not self.autosave:
            return
        with self._lock:
            self.storage.save(self.slot, self.state)

    def reload(self) -> PlayerState:
        with self._lock:
            self.state = self.storage.load(self.slot)
            self.rng = player_rng(self.state)
            self.battle = None
            return self.state

    # Battles

    def start_battle(self, creature_id: str | None = None, zone: int | None = None) -> ActionResult:
        with self._lock:
            if self.battle is not None and self.battle.phase != "resolved":
                return rejected(self.state, "A battle is already running.")
            result = battle_ops.start_battle(self.state, self.rng, creature_id, zone, content=self.content)
            if result.ok:
                self.battle = result.payload
                gameplay_logger.info(result.message)
            return result

    def play_move(
        self,
        move_id: str,
        now_ms: int,
        desired_altitude: int | None = None,
        multiplier: float = 1.0,
    ) -> TurnOutcome:
        with self._lock:
            if self.battle is None:
                raise RuntimeError("No battle in progress.")
            outcome = battle_ops.player_turn(
                self.battle, move_id, now_ms, self.rng, desired_altitude, multiplier, content=self.content
            )
            self.battle = outcome.battle
            return outcome

    def opponent_move(self, now_ms: int) -> TurnOutcome:
        """Play the opponent's turn.

        The advisor is consulted without holding the state lock, so idle ticks
        keep landing while it thinks. The answer is applied only if the battle
        is still the one it was asked about.
        """
        with self._lock:
            if self.battle is None:
                raise RuntimeError("No battle in progress.")
            asked = self.battle
        answer = None
        if self.advisor is not None and asked.phase == "opponent_turn":
            context = battle_ops.advisory_context(asked, "opponent", now_ms)
            answer = AdvisorAnswer(ask_advisor(self.advisor, context, self.advisory_timeout))
        with self._lock:
            if self.battle is not asked:
                return TurnOutcome(battle=self.battle if self.battle is not None else asked, ok=False, message="The battle moved on.")
            outcome = battle_ops.opponent_turn(
                asked, now_ms, self.rng, self.advisor, self.advisory_timeout, content=self.content, answer=answer
            )
            self.battle = outcome.battle
            if outcome.used_fallback:
                logger.info("Opponent turn %s used the fallback move.", outcome.battle.turn)
            return outcome

    def rest(self) -> TurnOutcome:
        with self._lock:
            if self.battle is None:
                raise RuntimeError("No battle in progress.")
            outcome = battle_ops.pass_turn(self.battle, "player", self.rng, content=self.content)
            self.battle = outcome.battle
            return outcome

    def auto_battle(self, max_turns: int = 200, turn_ms: int = 1000) -> BattleState | None:
        """Fight the current battle to the end, one locked step per turn.

        Returns ``None`` when the battle is abandoned with ``retreat`` midway.
        """
        with self._lock:
            if self.battle is None:
                raise RuntimeError("No battle in progress.")
            self.battle = battle_ops.begin_battle(self.battle)
        now_ms = 0
        while True:
            with self._lock:
                current = self.battle
                if current is None or current.phase == "resolved":
                    return current
                if current.turn >= max_turns:
                    self.battle = battle_ops.call_stalemate(current, self.rng, self.content)
                    return self.battle
                now_ms += turn_ms
                if current.phase == "player_turn":
                    self.battle = battle_ops.autoplay_player_turn(current, now_ms, self.rng, self.content).battle
                    continue
            self.opponent_move(now_ms)

    def settle_battle(self) -> ActionResult:
        with self._lock:
            if self.battle is None:
                return rejected(self.state, "No battle to settle.")
            result = self.dispatch(apply_battle_result, self.battle, self.rng)
            if result.ok:
                self.battle = None
            return result

    def retreat(self) -> None:
        with self._lock:
            if self.battle is not None:
                gameplay_logger.info("%s retreats.", self.battle.player.name)
            self.battle = None

    # Idle

    def tick(self) -> ActionResult:
        return self.dispatch(idle.tick, self.rng)

    def run_idle(self, source: idle.TickSource) -> int:
        return idle.IdleLoop(source, self.tick).run()

    def start_idle(self, interval: float | None = None) -> idle.IdleLoop:
        """Start wall-clock ticks every ``interval`` seconds, defaulting to the configured rate."""
        with self._lock:
            if self._idle_loop is None:
                source = idle.IntervalTickSource(self.idle_interval if interval is None else interval)
                self._idle_loop = idle.IdleLoop(source, self.tick)
                self._idle_loop.start()
            return self._idle_loop

    def stop_idle(self, timeout: float | None = 5.0) -> None:
        loop = self._idle_loop
        self._idle_loop = None
        if loop is not None:
            loop.stop(timeout)

    def close(self) -> None:
        self.stop_idle()
        close = getattr(self.advisor, "close", None)
        if callable(close):
            close()
        self.persist()
