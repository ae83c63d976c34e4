"""
Pure game logic (no HTTP, no storage).
We compute two feedback numbers for each guess:
- order: how many indices are exactly correct (right digit, right place)
- on: how many digits appear in both sequences, wherever they sit
(including those already counted in order).

Digits never repeat inside a sequence, so `on` is a plain set intersection.
"""

from typing import NamedTuple

from .errors import ValidationError
from .types import Code

DIGITS = "0123456789"


class Feedback(NamedTuple):
    on: int
    order: int


def validate(candidate: str, n: int) -> Code:
    """
    Checks run in a fixed order so the same bad input always gets the same message:
      1. length must be n
      2. only ASCII digits 0-9
      3. no repeated digit
    Returns the candidate unchanged when it passes.
    """
    if len(candidate) != n:
        raise ValidationError("wrong_length", f"Length must be {n}.")

    for ch in candidate:
        # str.isdigit() also accepts things like "²" or Arabic-Indic digits
        if ch not in DIGITS:
            raise ValidationError("non_digit", "Only digits 0-9 allowed.")

    if len(set(candidate)) != n:
        raise ValidationError("duplicate_digit", "No repeated digits allowed.")

    return candidate


def score_guess(secret: Code, guess: Code) -> Feedback:
    """
    Example:
      secret = "4725"
      guess  = "2475"
      order = 1  (the 5 at the end)
      on    = 4  (every digit of the guess is somewhere in the secret)

    The defender's secret always goes first: `on` is symmetric, `order` is not
    meaningful the other way round in a match.
    """
    n = len(secret)
    if n == 0 or len(guess) != n:
        raise ValueError("Secret and guess must be the same non-zero length.")

    order = 0
    for i in range(n):
        if secret[i] == guess[i]:
            order += 1

    on = len(set(secret) & set(guess))

    return Feedback(on=on, order=order)


def is_win(secret: Code, guess: Code) -> bool:
    """
    Win = every digit in place. Lengths must match.
    """
    if len(secret) == 0 or len(guess) != len(secret):
        return False
    return secret == guess
