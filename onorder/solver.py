"""
CPU opponent.

Brute-force constraint solver: every permutation of n distinct digits is a
possible secret until some feedback rules it out. The CPU guesses uniformly
among the survivors, so it never wastes a guess on something already
contradicted, but it makes no attempt to maximize information gain.
"""

import logging
import random
from functools import lru_cache
from itertools import permutations
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from .engine import DIGITS, score_guess
from .random_client import generate_secret
from .types import Code

if TYPE_CHECKING:
    from .machine import GuessRecord

logger = logging.getLogger(__name__)

_rng = random.Random()


@lru_cache(maxsize=None)
def all_sequences(n: int) -> Tuple[Code, ...]:
    """90 for n=2, 720 for n=3, 5040 for n=4."""
    return tuple("".join(p) for p in permutations(DIGITS, n))


def opening_guess(n: int) -> Code:
    return DIGITS[:n]


def is_consistent(candidate: Code, history: Sequence["GuessRecord"]) -> bool:
    # candidate plays the role of the secret
    for record in history:
        if score_guess(candidate, record.guess) != (record.on, record.order):
            return False
    return True


def candidates(n: int, history: Sequence["GuessRecord"]) -> List[Code]:
    return [seq for seq in all_sequences(n) if is_consistent(seq, history)]


def next_guess(n: int, history: Sequence["GuessRecord"], rng: Optional[random.Random] = None) -> Code:
    if not history:
        return opening_guess(n)

    pool = candidates(n, history)
    if not pool:
        # only reachable if the recorded feedback contradicts itself
        logger.warning("No sequence fits %d recorded guesses; guessing at random", len(history))
        return generate_secret(n)

    return (rng or _rng).choice(pool)
