"""Usage unit estimators.

Estimators turn request content into abstract usage units before the
downstream language-model call happens. They are approximations: the actual
cost is only known after the call and is reconciled via record_usage().
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod


class UnitEstimator(ABC):
    """Strategy for estimating the cost of a piece of text."""

    @abstractmethod
    def estimate(self, text: str | None) -> int:
        raise NotImplementedError


class CharacterRatioEstimator(UnitEstimator):
    """Length-proportional estimator.

    Roughly four characters per token for OpenAI-style tokenizers. Cheap and
    deterministic, but not an exact token count.
    """

    def __init__(self, chars_per_unit: float = 4.0) -> None:
        if chars_per_unit <= 0:
            raise ValueError("chars_per_unit must be > 0")
        self.chars_per_unit = chars_per_unit

    def estimate(self, text: str | None) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_unit)
