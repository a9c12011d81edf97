"""
Seeded Random Context — the only source of chance in a round.

Behavioral Contract:
- Mulberry32 over an unsigned 32-bit state; pure integer arithmetic, so the
  same seed and call sequence produce the same floats on every platform
- Passed explicitly to every component that needs randomness. There is no
  module-level generator to fall back to
- Counts draws so the orchestrator can record consumption in the audit trail
"""

import math
from typing import List, Sequence, TypeVar

from quarter_engine.core.errors import DeterminismError

T = TypeVar("T")

_MASK = 0xFFFFFFFF
_INCREMENT = 0x6D2B79F5
_TWO_32 = 4294967296.0


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK


def hash_string(text: str) -> int:
    """djb2 (xor variant) folded to an unsigned 32-bit integer."""
    value = 5381
    for ch in text:
        value = (((value << 5) + value) ^ ord(ch)) & _MASK
    return value


def derive_seed(game_seed: int, *parts: object) -> int:
    """Derive a stable sub-seed, e.g. derive_seed(seed, "round", 3)."""
    key = ":".join([str(game_seed)] + [str(p) for p in parts])
    return hash_string(key)


class RandomContext:
    """Deterministic [0, 1) stream plus the helpers the engines use."""

    def __init__(self, seed: int):
        if isinstance(seed, bool) or not isinstance(seed, int):
            raise DeterminismError(f"Random context seed must be an integer, got {seed!r}")
        if seed < 0:
            raise DeterminismError(f"Random context seed must be non-negative, got {seed}")
        self.seed = seed
        self._state = seed & _MASK
        self.draws = 0

    def next(self) -> float:
        self._state = (self._state + _INCREMENT) & _MASK
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK
        self.draws += 1
        return ((t ^ (t >> 14)) & _MASK) / _TWO_32

    def range(self, low: float, high: float) -> float:
        return low + self.next() * (high - low)

    def int(self, low: int, high: int) -> int:
        """Inclusive on both ends."""
        return int(math.floor(self.range(low, high + 1)))

    def chance(self, probability: float) -> bool:
        return self.next() < probability

    def pick(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("Cannot pick from an empty sequence")
        return items[self.int(0, len(items) - 1)]

    def shuffle(self, items: Sequence[T]) -> List[T]:
        result = list(items)
        for i in range(len(result) - 1, 0, -1):
            j = self.int(0, i)
            result[i], result[j] = result[j], result[i]
        return result

    def gaussian(self, mean: float = 0.0, std: float = 1.0) -> float:
        u1 = self.next()
        u2 = self.next()
        # log(0) guard
        u1 = max(u1, 1e-12)
        z = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
        return mean + z * std


class IdGenerator:
    """Deterministic identifiers of the form ``{kind}-{team}-r{round}-{n}``."""

    def __init__(self, round_number: int, team_id: str = "market"):
        self.round_number = round_number
        self.team_id = team_id
        self._counter = 0

    def next(self, kind: str) -> str:
        self._counter += 1
        return f"{kind}-{self.team_id}-r{self.round_number}-{self._counter}"
