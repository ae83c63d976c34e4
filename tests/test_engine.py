"""
Testing pure game logic: validation and scoring.
"""

from itertools import permutations

import pytest

from onorder.engine import DIGITS, Feedback, is_win, score_guess, validate
from onorder.errors import ValidationError
from onorder.solver import all_sequences


@pytest.mark.parametrize(
    "secret, guess, on, order",
    [
        ("4725", "2475", 4, 1),
        ("1234", "4321", 4, 0),
        ("9876", "9876", 4, 4),
        ("582", "528", 3, 1),
        ("45", "54", 2, 0),
    ],
)
def test_score_guess_known_vectors(secret, guess, on, order):
    assert score_guess(secret, guess) == (on, order)


def test_score_guess_no_matches():
    result = score_guess("0123", "4567")
    assert result.on == 0
    assert result.order == 0


def test_score_guess_returns_named_feedback():
    result = score_guess("0135", "0246")
    assert isinstance(result, Feedback)
    # Only the first position matches (0), and 0 is the only shared digit
    assert result.order == 1
    assert result.on == 1


def test_score_guess_rejects_length_mismatch():
    with pytest.raises(ValueError):
        score_guess("123", "1234")
    with pytest.raises(ValueError):
        score_guess("", "")


@pytest.mark.parametrize("n", [2, 3, 4])
def test_exact_guess_scores_full_marks(n):
    for seq in all_sequences(n):
        assert score_guess(seq, seq) == (n, n)


def test_order_never_exceeds_on():
    secret = "4725"
    for guess in all_sequences(4):
        on, order = score_guess(secret, guess)
        assert 0 <= order <= on <= 4


def test_score_is_unchanged_by_relabeling_digits():
    relabel = dict(zip(DIGITS, "3917064825"))
    pairs = [("4725", "2475"), ("582", "528"), ("0123", "3210"), ("45", "96")]
    for secret, guess in pairs:
        mapped_secret = "".join(relabel[d] for d in secret)
        mapped_guess = "".join(relabel[d] for d in guess)
        assert score_guess(mapped_secret, mapped_guess) == score_guess(secret, guess)


def test_on_is_symmetric():
    for a, b in permutations(["4725", "2475", "0913", "5270"], 2):
        assert score_guess(a, b).on == score_guess(b, a).on


def test_is_win_true_and_false():
    assert is_win("1234", "1234") is True
    assert is_win("1234", "1235") is False
    assert is_win("1234", "123") is False


def test_validate_accepts_good_sequence():
    assert validate("4725", 4) == "4725"
    assert validate("09", 2) == "09"


@pytest.mark.parametrize(
    "candidate, n, reason",
    [
        ("1123", 4, "duplicate_digit"),
        ("12", 4, "wrong_length"),
        ("abcd", 4, "non_digit"),
        ("12345", 4, "wrong_length"),
        ("12a", 3, "non_digit"),
        ("１２", 2, "non_digit"),  # full-width digits are not ASCII
        ("", 2, "wrong_length"),
    ],
)
def test_validate_rejects_with_reason(candidate, n, reason):
    with pytest.raises(ValidationError) as excinfo:
        validate(candidate, n)
    assert excinfo.value.reason == reason


def test_validate_checks_length_before_digits():
    # wrong length AND non-digit AND repeated: length wins
    with pytest.raises(ValidationError) as excinfo:
        validate("aa", 4)
    assert excinfo.value.reason == "wrong_length"

    # right length, non-digit AND repeated: digits win
    with pytest.raises(ValidationError) as excinfo:
        validate("aab1", 4)
    assert excinfo.value.reason == "non_digit"


def test_validation_error_is_a_value_error():
    with pytest.raises(ValueError):
        validate("11", 2)
