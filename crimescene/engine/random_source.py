"""Seeded random stream shared by the generators."""
from __future__ import annotations

import math
import random
import time
from typing import List, Optional, Sequence, TypeVar

T = TypeVar("T")


def _time_seed() -> int:
    return int(time.time() * 1000) & 0x7FFFFFFF


class RandomSource:
    """Deterministic stream when seeded, time-seeded when randomizing."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self._seed = seed
        self._current_seed = seed if seed is not None else _time_seed()
        self._rng = random.Random(self._current_seed)

    @property
    def seed(self) -> Optional[int]:
        """Configured seed, or ``None`` in randomize mode."""

        return self._seed

    @property
    def randomize(self) -> bool:
        return self._seed is None

    @property
    def current_seed(self) -> int:
        return self._current_seed

    def reseed(self) -> int:
        """Restart the stream for a new generation cycle and return the seed used."""

        self._current_seed = self._seed if self._seed is not None else _time_seed()
        self._rng.seed(self._current_seed)
        return self._current_seed

    def set_seed(self, seed: Optional[int]) -> None:
        self._seed = seed
        self.reseed()

    def randomize_seed(self) -> int:
        seed = _time_seed()
        # Avoid repeating the previous seed when called twice in the same millisecond.
        if seed == self._current_seed:
            seed = (seed + 1) & 0x7FFFFFFF
        self.set_seed(seed)
        return seed

    def next_int(self, lo: int, hi_exclusive: int) -> int:
        if hi_exclusive <= lo:
            return lo
        return self._rng.randrange(lo, hi_exclusive)

    def uniform(self, a: float, b: float) -> float:
        return self._rng.uniform(a, b)

    def angle(self) -> float:
        return self._rng.random() * 2.0 * math.pi

    def chance(self, probability: float) -> bool:
        roll = self._rng.random()
        if probability >= 1.0:
            return True
        if probability <= 0.0:
            return False
        return roll < probability

    def choice(self, options: Sequence[T]) -> T:
        return self._rng.choice(options)

    def shuffle(self, items: List[T]) -> None:
        self._rng.shuffle(items)

    def pick_weighted(self, weights: Sequence[float]) -> int:
        total = sum(max(0.0, weight) for weight in weights)
        if total <= 0.0:
            return 0
        roll = self._rng.random() * total
        cumulative = 0.0
        for index, weight in enumerate(weights):
            cumulative += max(0.0, weight)
            if roll < cumulative:
                return index
        return len(weights) - 1


__all__ = ["RandomSource"]
