"""Usage store adapters.

This package provides a small abstraction layer so the service can start with
an in-memory store and later migrate to Redis or another shared store without
changing the admission service or the API layer.
"""

from app.adapters.rate_limit.base import (
    AbstractUsageStore,
    Dimension,
    SessionResult,
    WindowResult,
)
from app.adapters.rate_limit.estimators import CharacterRatioEstimator, UnitEstimator
from app.adapters.rate_limit.in_memory import InMemoryUsageStore
from app.adapters.rate_limit.policy import (
    LimitPolicy,
    RequestPolicy,
    SessionPolicy,
    UsagePolicy,
)

__all__ = [
    "AbstractUsageStore",
    "CharacterRatioEstimator",
    "Dimension",
    "InMemoryUsageStore",
    "LimitPolicy",
    "RequestPolicy",
    "SessionPolicy",
    "SessionResult",
    "UnitEstimator",
    "UsagePolicy",
    "WindowResult",
]
