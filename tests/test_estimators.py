"""Tests for usage unit estimation."""

import pytest

from app.adapters.rate_limit.estimators import CharacterRatioEstimator


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        (None, 0),
        ("", 0),
        ("a", 1),
        ("abcd", 1),
        ("abcde", 2),
        ("x" * 8000, 2000),
    ],
)
def test_four_chars_per_unit_rounds_up(text, expected: int) -> None:
    assert CharacterRatioEstimator().estimate(text) == expected


def test_custom_ratio() -> None:
    assert CharacterRatioEstimator(chars_per_unit=3.0).estimate("abcdefg") == 3


def test_is_deterministic() -> None:
    estimator = CharacterRatioEstimator()
    text = "How do I reset my password?"
    assert estimator.estimate(text) == estimator.estimate(text)


@pytest.mark.parametrize("ratio", [0, -1.5])
def test_invalid_ratio(ratio: float) -> None:
    with pytest.raises(ValueError):
        CharacterRatioEstimator(chars_per_unit=ratio)
