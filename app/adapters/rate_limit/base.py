"""Usage store interfaces.

The admission service depends on this abstraction (not the concrete
implementation) so the in-process store can later be replaced by a shared,
atomically-incrementing backend (e.g., Redis) without touching the HTTP layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class Dimension(str, Enum):
    """Per-client counters tracked by a usage store."""

    BURST = "burst"
    REQUESTS = "requests"
    USAGE = "usage"
    SESSIONS = "sessions"


@dataclass(frozen=True)
class WindowResult:
    """Result of a window-based check, reservation or peek.

    Attributes:
        allowed: Whether the operation was admitted.
        limit: Configured limit for the dimension.
        remaining: Quota left in the current window (0 when exhausted).
        reset_at: UNIX epoch seconds when the current window ends.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float


@dataclass(frozen=True)
class SessionResult:
    """Result of a session admission.

    Attributes:
        allowed: Whether the session id is (now) active.
        limit: Configured session cap.
        remaining: Free session slots after this call.
        active: Number of active session ids for the key.
    """

    allowed: bool
    limit: int
    remaining: int
    active: int


class AbstractUsageStore(ABC):
    """Interface for per-client admission counters.

    Every check-and-update must be atomic for a given key. Rejections are
    returned as values; implementations must not raise for exhausted quotas.
    """

    @abstractmethod
    def check_and_increment_requests(self, key: str) -> WindowResult:
        """Count one request against the main request window."""
        raise NotImplementedError

    @abstractmethod
    def check_and_increment_burst(self, key: str) -> WindowResult:
        """Count one request against the short burst window."""
        raise NotImplementedError

    @abstractmethod
    def reserve_usage(self, key: str, estimated_units: int) -> WindowResult:
        """Reserve units from the usage budget.

        A rejected reservation must leave the consumed total unchanged.
        """
        raise NotImplementedError

    @abstractmethod
    def record_usage(self, key: str, units_delta: int) -> None:
        """Adjust the consumed total after the fact (actual minus reserved)."""
        raise NotImplementedError

    @abstractmethod
    def admit_session(self, key: str, session_id: str) -> SessionResult:
        """Admit a session id; re-admitting an active id is free."""
        raise NotImplementedError

    @abstractmethod
    def release_session(self, key: str, session_id: str) -> None:
        """Release a session id. Unknown ids are ignored."""
        raise NotImplementedError

    @abstractmethod
    def estimate_units(self, text: str | None) -> int:
        """Approximate the cost of text in usage units."""
        raise NotImplementedError

    @abstractmethod
    def peek_requests(self, key: str) -> WindowResult:
        raise NotImplementedError

    @abstractmethod
    def peek_burst(self, key: str) -> WindowResult:
        raise NotImplementedError

    @abstractmethod
    def peek_usage(self, key: str) -> WindowResult:
        raise NotImplementedError

    @abstractmethod
    def sweep(self, dimension: Dimension, grace_seconds: float) -> int:
        """Delete entries expired for longer than grace_seconds.

        Returns:
            Number of entries removed.
        """
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> dict[str, int]:
        raise NotImplementedError
