"""Static admission thresholds.

A LimitPolicy is pure data: it is built once from settings and shared,
read-only, by the usage store and the admission service.
"""

from __future__ import annotations

from dataclasses import dataclass, field


def _require_positive(name: str, value: int) -> None:
    if value < 1:
        raise ValueError(f"{name} must be >= 1")


@dataclass(frozen=True)
class RequestPolicy:
    """Request-rate thresholds, including the shorter burst window."""

    limit: int
    window_seconds: int
    burst_limit: int
    burst_window_seconds: int

    def __post_init__(self) -> None:
        _require_positive("requests.limit", self.limit)
        _require_positive("requests.window_seconds", self.window_seconds)
        _require_positive("requests.burst_limit", self.burst_limit)
        _require_positive("requests.burst_window_seconds", self.burst_window_seconds)


@dataclass(frozen=True)
class UsagePolicy:
    """Cumulative usage budget in estimated units per window."""

    limit: int
    window_seconds: int

    def __post_init__(self) -> None:
        _require_positive("usage.limit", self.limit)
        _require_positive("usage.window_seconds", self.window_seconds)


@dataclass(frozen=True)
class SessionPolicy:
    """Concurrent session cap.

    Attributes:
        limit: Max distinct session ids per client key.
        window_seconds: Lifetime of a client's session set before it resets.
        exempt_keys: Client keys that bypass this dimension (and only this one).
        retry_seconds: Advisory retry hint returned when the cap is reached.
    """

    limit: int
    window_seconds: int
    exempt_keys: frozenset[str] = field(default_factory=frozenset)
    retry_seconds: int = 60

    def __post_init__(self) -> None:
        _require_positive("sessions.limit", self.limit)
        _require_positive("sessions.window_seconds", self.window_seconds)
        _require_positive("sessions.retry_seconds", self.retry_seconds)

    def is_exempt(self, key: str) -> bool:
        return key in self.exempt_keys


@dataclass(frozen=True)
class LimitPolicy:
    requests: RequestPolicy
    usage: UsagePolicy
    sessions: SessionPolicy
