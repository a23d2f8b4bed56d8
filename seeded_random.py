"""
seeded_random.py

Deterministic pseudo-random stream used by every stage of the UAR generator.

The stream follows the Park-Miller minimal standard recurrence so that a seed
reproduces the same sequence of draws across runs. All helper draws (integers,
picks, dates, shuffles, samples) are defined purely in terms of next().
"""

import logging
import math
from datetime import datetime
from typing import List, MutableSequence, Optional, Sequence, TypeVar

import numpy as np

T = TypeVar("T")

MODULUS = 2147483647
MULTIPLIER = 16807

HEX_CHARS = "0123456789abcdef"
BASE36_CHARS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def normalize_seed(seed: int) -> int:
    """Map an arbitrary integer seed onto the recurrence's state space [1, MODULUS - 1]."""
    seed = int(seed)
    # sign-preserving integer remainder
    state = abs(seed) % MODULUS
    if seed < 0:
        state = -state
    if state <= 0:
        state += MODULUS - 1
    return state


def entropy_seed() -> int:
    """Draw a fresh seed from the operating system's entropy pool."""
    return int(np.random.SeedSequence().entropy % (MODULUS - 1)) + 1


class DeterministicStream:
    """Seeded multiplicative-congruential random stream."""

    def __init__(self, seed: Optional[int] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.seeded = seed is not None
        if seed is None:
            seed = entropy_seed()
            self.logger.info(f"No seed supplied, drew seed {seed} from system entropy")
        self.seed = seed
        self._state = normalize_seed(seed)
        self.draws = 0

    def next(self) -> float:
        """Return the next value in [0, 1)."""
        self._state = (self._state * MULTIPLIER) % MODULUS
        self.draws += 1
        return (self._state - 1) / (MODULUS - 1)

    def int_in(self, minimum: int, maximum_exclusive: int) -> int:
        """Return an integer in [minimum, maximum_exclusive)."""
        return int(math.floor(self.next() * (maximum_exclusive - minimum))) + minimum

    def pick(self, items: Sequence[T]) -> T:
        """Pick one element of a non-empty sequence."""
        if not items:
            raise ValueError("Cannot pick from an empty sequence")
        return items[int(math.floor(self.next() * len(items)))]

    def date_between(self, start: datetime, end: datetime) -> datetime:
        return start + (end - start) * self.next()

    def shuffle(self, items: MutableSequence[T]) -> None:
        """Shuffle a list in place (Fisher-Yates)."""
        for i in range(len(items) - 1, 0, -1):
            j = int(math.floor(self.next() * (i + 1)))
            items[i], items[j] = items[j], items[i]

    def sample(self, pool: Sequence[T], k: int) -> List[T]:
        """
        Select k distinct elements uniformly at random.

        Runs a Fisher-Yates shuffle on a copy of the pool but stops after the
        first k positions, so every k-subset (and ordering) is equally likely
        and only k draws are consumed.
        """
        items = list(pool)
        k = max(0, min(k, len(items)))
        for i in range(k):
            j = self.int_in(i, len(items))
            items[i], items[j] = items[j], items[i]
        return items[:k]

    def hex_token(self, length: int) -> str:
        return ''.join(self.pick(HEX_CHARS) for _ in range(length))

    def base36_token(self, length: int) -> str:
        return ''.join(self.pick(BASE36_CHARS) for _ in range(length))
