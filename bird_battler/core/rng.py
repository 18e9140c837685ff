from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Generic, Sequence, TypeVar

T = TypeVar("T")


def seed_to_uint32(seed: int | str) -> int:
    digest = hashlib.sha256(str(seed).encode("utf-8")).hexdigest()
    value = int(digest[:8], 16)
    return value if value != 0 else 0x9E3779B9


@dataclass(slots=True)
class WeightedEntry(Generic[T]):
    value: T
    weight: float


class RandomSource:
    """Single entry point for every random draw in the engine.

    Subclasses only provide ``next_float``; all derived helpers are built on it
    so a fixed float sequence fully determines an outcome.
    """

    __slots__ = ()

    def next_float(self) -> float:
        raise NotImplementedError

    def next(self) -> float:
        return self.next_float()

    def next_int(self, min_inclusive: int, max_exclusive: int) -> int:
        if max_exclusive <= min_inclusive:
            raise ValueError(
                f"next_int requires max_exclusive ({max_exclusive}) > min_inclusive ({min_inclusive})."
            )
        span = max_exclusive - min_inclusive
        return min(max_exclusive - 1, min_inclusive + int(self.next_float() * span))

    def randint(self, low: int, high: int) -> int:
        return self.next_int(low, high + 1)

    def uniform(self, low: float, high: float) -> float:
        return low + self.next_float() * (high - low)

    def chance(self, probability: float) -> bool:
        return self.next_float() < probability

    def pick(self, values: Sequence[T]) -> T:
        if not values:
            raise ValueError("pick requires a non-empty sequence.")
        return values[self.next_int(0, len(values))]

    def pick_weighted(self, entries: Sequence[WeightedEntry[T]]) -> T:
        valid_entries = [entry for entry in entries if entry.weight > 0]
        if not valid_entries:
            raise ValueError("pick_weighted requires at least one positive weight.")

        cursor = self.next_float() * sum(entry.weight for entry in valid_entries)
        for entry in valid_entries:
            if cursor < entry.weight:
                return entry.value
            cursor -= entry.weight
        return valid_entries[-1].value


@dataclass(slots=True)
class DeterministicRNG(RandomSource):
    seed: int | str
    state: int
    calls: int = 0

    @classmethod
    def from_seed(cls, seed: int | str) -> "DeterministicRNG":
        return cls(seed=seed, state=seed_to_uint32(seed), calls=0)

    def _next_uint32(self) -> int:
        value = self.state & 0xFFFFFFFF
        value ^= (value << 13) & 0xFFFFFFFF
        value ^= (value >> 17) & 0xFFFFFFFF
        value ^= (value << 5) & 0xFFFFFFFF
        value &= 0xFFFFFFFF
        self.state = value if value != 0 else 0x6D2B79F5
        self.calls += 1
        return self.state

    def next_float(self) -> float:
        return self._next_uint32() / 2**32


@dataclass(slots=True)
class ScriptedRNG(RandomSource):
    """Replays a fixed sequence of floats, cycling when exhausted."""

    values: Sequence[float]
    cursor: int = 0
    history: list[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.values:
            raise ValueError("ScriptedRNG requires at least one value.")
        for value in self.values:
            if not 0.0 <= float(value) < 1.0:
                raise ValueError(f"ScriptedRNG values must be in [0, 1), got {value}.")

    def next_float(self) -> float:
        value = float(self.values[self.cursor % len(self.values)])
        self.cursor += 1
        self.history.append(value)
        return value
