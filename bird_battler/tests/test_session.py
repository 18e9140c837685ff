from __future__ import annotations

import threading
import time
from pathlib import Path

from bird_battler.core.advisory import AdvisoryChoice, AdvisoryContext
from bird_battler.core.battle import TurnOutcome
from bird_battler.core.crafting import craft_gear
from bird_battler.core.idle import ManualTickSource
from bird_battler.core.roster import assign_hunter, choose_starter
from bird_battler.core.save_system import SlotStorage
from bird_battler.core.session import GameSession
from bird_battler.core.settings import EngineSettings


def _session(tmp_path: Path) -> GameSession:
    session = GameSession(SlotStorage(tmp_path / "saves", base_seed=99), 1)
    session.dispatch(choose_starter, "eagle", session.rng)
    return session


class _SlowAdvisor:
    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.asked = threading.Event()

    def choose(self, context: AdvisoryContext) -> AdvisoryChoice | None:
        self.asked.set()
        time.sleep(self.delay)
        grounded = [move for move in context.legal_moves() if not move.requires_height]
        return AdvisoryChoice(move_id=grounded[0].id) if grounded else None


def _opponent_to_move(tmp_path: Path, advisor: _SlowAdvisor) -> GameSession:
    session = _session(tmp_path)
    session.advisor = advisor
    session.advisory_timeout = 2.0
    assert session.start_battle().ok is True
    if session.battle.phase == "player_turn":
        session.rest()
    assert session.battle.phase == "opponent_turn"
    return session


def test_accepted_actions_are_persisted(tmp_path: Path) -> None:
    session = _session(tmp_path)
    bird = session.state.selected_creature_id

    reloaded = SlotStorage(tmp_path / "saves").load(1)
    assert list(reloaded.creatures) == [bird]
    assert reloaded.feathers == 100
    assert reloaded.rng_calls == session.rng.calls > 0


def test_rejected_actions_leave_the_session_alone(tmp_path: Path) -> None:
    session = _session(tmp_path)
    before = session.state

    result = session.dispatch(choose_starter, "owl", session.rng)
    assert result.ok is False
    assert session.state is before


def test_concurrent_crafts_spend_the_balance_once(tmp_path: Path) -> None:
    session = _session(tmp_path)
    session.state.feathers = 250
    session.state.scrap = 25
    session.state.unlocks.add("workshop")

    results = []
    barrier = threading.Barrier(8)

    def craft() -> None:
        barrier.wait()
        results.append(session.dispatch(craft_gear, "beak", session.rng))

    threads = [threading.Thread(target=craft) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5.0)

    assert sum(result.ok for result in results) == 1
    assert (session.state.feathers, session.state.scrap) == (0, 0)
    assert len(session.state.gear) == 1


def test_battle_flow_settles_into_the_save(tmp_path: Path) -> None:
    session = _session(tmp_path)
    started = session.start_battle()
    assert started.ok is True
    assert session.start_battle().ok is False

    battle = session.auto_battle()
    assert battle.phase == "resolved"
    settled = session.settle_battle()
    assert settled.ok is True
    assert session.battle is None
    assert session.state.lifetime.battles_won == (1 if battle.winner == "player" else 0)
    assert session.settle_battle().ok is False

    reloaded = SlotStorage(tmp_path / "saves").load(1)
    assert reloaded.lifetime.battles_won == session.state.lifetime.battles_won


def test_idle_ticks_run_through_dispatch(tmp_path: Path) -> None:
    session = _session(tmp_path)
    session.dispatch(assign_hunter, session.state.selected_creature_id)

    assert session.run_idle(ManualTickSource(3)) == 3
    assert session.state.feathers > 100
    assert SlotStorage(tmp_path / "saves").load(1).feathers == session.state.feathers


def test_open_builds_storage_from_settings(tmp_path: Path) -> None:
    settings = EngineSettings.model_validate(
        {"gameplay": {"save_slots": 4, "base_seed": 5}, "idle": {"tick_interval": 0.05}}
    )
    session = GameSession.open(tmp_path / "saves", 4, settings=settings)
    assert session.storage.slot_count == 4
    assert session.state.base_seed == "5:slot4"
    assert session.advisor is None
    assert session.idle_interval == 0.05

    loop = session.start_idle()
    assert loop.source.interval == 0.05
    assert session.start_idle(interval=3.0) is loop
    session.close()


def test_idle_ticks_do_not_wait_for_a_slow_advisor(tmp_path: Path) -> None:
    advisor = _SlowAdvisor(0.8)
    session = _opponent_to_move(tmp_path, advisor)
    outcomes: list[TurnOutcome] = []

    turn = threading.Thread(target=lambda: outcomes.append(session.opponent_move(1000)))
    turn.start()
    assert advisor.asked.wait(2.0) is True
    started = time.monotonic()
    assert session.tick().ok is True
    waited = time.monotonic() - started
    turn.join(5.0)

    assert waited < 0.5
    assert outcomes[0].ok is True
    assert outcomes[0].used_fallback is False
    assert session.battle.phase != "opponent_turn"


def test_a_late_answer_for_an_abandoned_battle_is_dropped(tmp_path: Path) -> None:
    advisor = _SlowAdvisor(0.3)
    session = _opponent_to_move(tmp_path, advisor)
    outcomes: list[TurnOutcome] = []

    turn = threading.Thread(target=lambda: outcomes.append(session.opponent_move(1000)))
    turn.start()
    assert advisor.asked.wait(2.0) is True
    session.retreat()
    turn.join(5.0)

    assert outcomes[0].ok is False
    assert session.battle is None
