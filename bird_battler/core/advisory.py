"""Opponent move advisors.

The battle loop never trusts an advisor: every call is bounded by
``ask_advisor`` and settled by ``settle_advice``, which checks the answer against
the legal move list and falls back to a random legal move.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from pydantic import Field

from .combat import Combatant
from .models import ALTITUDES, Move, StrictModel
from .rng import RandomSource

logger = logging.getLogger(__name__)

DEFAULT_ADVISORY_TIMEOUT = 2.0
LOW_HP_DEFENSE_RATIO = 0.6


@dataclass(slots=True)
class AdvisoryChoice:
    move_id: str
    desired_altitude: int | None = None


@dataclass(frozen=True, slots=True)
class AdvisorAnswer:
    """Raw advisor reply collected ahead of the turn. ``None`` means no usable answer."""

    choice: AdvisoryChoice | None = None


class AdvisoryContext(StrictModel):
    turn: int = Field(ge=0)
    zone: int = Field(ge=1)
    actor: Combatant
    target: Combatant
    legal_move_ids: list[str] = Field(default_factory=list)
    recent_log: list[str] = Field(default_factory=list)

    def legal_moves(self) -> list[Move]:
        return [move for move in self.actor.moves if move.id in self.legal_move_ids]

    def as_payload(self) -> dict[str, Any]:
        def unit(combatant: Combatant) -> dict[str, Any]:
            return {
                "name": combatant.name,
                "species": combatant.template_id,
                "rarity": combatant.rarity,
                "level": combatant.level,
                "hp": combatant.current_hp,
                "maxHp": combatant.max_hp,
                "energy": round(combatant.current_energy, 2),
                "maxEnergy": combatant.max_energy,
                "attack": combatant.attack,
                "defense": combatant.defense,
                "speed": combatant.speed,
                "altitude": combatant.altitude,
                "statusEffects": sorted(combatant.status_effects),
            }

        return {
            "turn": self.turn,
            "zone": self.zone,
            "self": unit(self.actor),
            "enemy": unit(self.target),
            "legalMoves": [
                {"id": move.id, "name": move.name, "type": move.type, "power": move.power, "cost": move.cost}
                for move in self.legal_moves()
            ],
            "recentLog": list(self.recent_log),
        }


class OpponentAdvisor(Protocol):
    def choose(self, context: AdvisoryContext) -> AdvisoryChoice | None: ...


def random_legal_choice(context: AdvisoryContext, rng: RandomSource) -> AdvisoryChoice | None:
    moves = context.legal_moves()
    if not moves:
        return None
    return AdvisoryChoice(move_id=rng.pick(moves).id)


class LocalAdvisor:
    """Aggressive heuristic: heavy hitters first, then the strongest attack."""

    def __init__(self, rng: RandomSource) -> None:
        self.rng = rng

    def choose(self, context: AdvisoryContext) -> AdvisoryChoice | None:
        moves = context.legal_moves()
        if not moves:
            return None

        heavy = [move for move in moves if move.type in ("SPECIAL", "DRAIN")]
        if heavy:
            return AdvisoryChoice(move_id=self.rng.pick(heavy).id)

        attacks = [move for move in moves if move.type == "ATTACK"]
        if attacks:
            strongest = attacks[0]
            for move in attacks[1:]:
                if move.power > strongest.power:
                    strongest = move
            return AdvisoryChoice(move_id=strongest.id)

        actor = context.actor
        defensive = [move for move in moves if move.type in ("HEAL", "DEFENSE")]
        if defensive and actor.current_hp < actor.max_hp * LOW_HP_DEFENSE_RATIO:
            return AdvisoryChoice(move_id=self.rng.pick(defensive).id)

        return AdvisoryChoice(move_id=self.rng.pick(moves).id)


class HttpAdvisor:
    """Client for a remote advisory service answering ``{moveId, desiredAltitude}``."""

    def __init__(
        self,
        base_url: str,
        path: str = "/advise",
        timeout: float = DEFAULT_ADVISORY_TIMEOUT,
        api_key: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.path = path
        self.client = httpx.Client(base_url=base_url, headers=headers, timeout=timeout, transport=transport)

    def choose(self, context: AdvisoryContext) -> AdvisoryChoice | None:
        response = self.client.post(self.path, json=context.as_payload())
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict) or not isinstance(data.get("moveId"), str):
            raise ValueError("Advisory response is missing a moveId.")
        altitude = data.get("desiredAltitude")
        return AdvisoryChoice(
            move_id=data["moveId"],
            desired_altitude=int(altitude) if isinstance(altitude, (int, float)) else None,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "HttpAdvisor":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def _validated(choice: AdvisoryChoice | None, context: AdvisoryContext) -> AdvisoryChoice | None:
    if choice is None or choice.move_id not in context.legal_move_ids:
        return None
    altitude = choice.desired_altitude
    if altitude is not None and altitude not in ALTITUDES:
        altitude = None
    move = context.actor.move_by_id(choice.move_id)
    if move is not None and move.requires_height and (altitude if altitude is not None else context.actor.altitude) != ALTITUDES[-1]:
        return None
    return AdvisoryChoice(move_id=choice.move_id, desired_altitude=altitude)


def ask_advisor(
    advisor: OpponentAdvisor,
    context: AdvisoryContext,
    timeout: float = DEFAULT_ADVISORY_TIMEOUT,
) -> AdvisoryChoice | None:
    """Wait at most ``timeout`` for the advisor's raw answer.

    This is the only step that may block. It draws nothing from the RNG, so
    callers can run it without holding any game state lock. Late answers are
    dropped with the worker.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="advisor")
    try:
        future = executor.submit(advisor.choose, context)
        return future.result(timeout=max(0.0, timeout))
    except FutureTimeoutError:
        logger.warning("Advisor timed out after %.2fs; using a random legal move.", timeout)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Advisor failed (%s); using a random legal move.", exc)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    return None


def settle_advice(
    choice: AdvisoryChoice | None,
    context: AdvisoryContext,
    rng: RandomSource,
) -> tuple[AdvisoryChoice | None, bool]:
    """Validate an answer, falling back to a random legal move. Returns ``(choice, used_fallback)``."""
    validated = _validated(choice, context)
    if validated is not None:
        return validated, False
    if choice is not None:
        logger.info("Advisor picked illegal move '%s'; using a random legal move.", choice.move_id)
    return random_legal_choice(context, rng), True


def consult_advisor(
    advisor: OpponentAdvisor | None,
    context: AdvisoryContext,
    rng: RandomSource,
    timeout: float = DEFAULT_ADVISORY_TIMEOUT,
) -> tuple[AdvisoryChoice | None, bool]:
    """Ask ``advisor`` for a move without ever blocking past ``timeout``."""
    if advisor is None:
        return random_legal_choice(context, rng), True
    return settle_advice(ask_advisor(advisor, context, timeout), context, rng)
