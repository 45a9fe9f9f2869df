"""In-memory usage store.

Notes:
- Per-process only: running multiple workers multiplies the effective limits.
- Thread-safe: a fixed pool of lock stripes guards every read-decide-write,
  so two keys only contend when they hash to the same stripe.
- Windows start on first touch and reset lazily when a check observes that
  they have ended. The expiry sweeper only reclaims memory.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Callable

from app.adapters.rate_limit.base import (
    AbstractUsageStore,
    Dimension,
    SessionResult,
    WindowResult,
)
from app.adapters.rate_limit.estimators import CharacterRatioEstimator, UnitEstimator
from app.adapters.rate_limit.policy import LimitPolicy

logger = logging.getLogger(__name__)


@dataclass
class _WindowState:
    count: int
    window_ends_at: float


@dataclass
class _SessionState:
    window_ends_at: float
    active_ids: set[str] = field(default_factory=set)


def _is_valid_key(key: object) -> bool:
    return isinstance(key, str) and bool(key.strip())


class InMemoryUsageStore(AbstractUsageStore):
    """Usage store keeping every counter in process memory.

    Important:
        Invalid client keys (empty or non-string) are evaluated against a
        fresh, unstored state: they are admitted as a first request would be,
        and never raise.
    """

    def __init__(
        self,
        policy: LimitPolicy,
        *,
        estimator: UnitEstimator | None = None,
        clock: Callable[[], float] = time.time,
        lock_stripes: int = 64,
    ) -> None:
        """Initialize the store.

        Args:
            policy: Limits and window sizes for every dimension.
            estimator: Strategy used by estimate_units().
            clock: Time source returning UNIX time in seconds.
            lock_stripes: Number of locks keys are spread across.

        Raises:
            ValueError: If lock_stripes is invalid.
        """
        if lock_stripes < 1:
            raise ValueError("lock_stripes must be >= 1")

        self._policy = policy
        self._estimator = estimator or CharacterRatioEstimator()
        self._clock = clock
        self._locks = [threading.Lock() for _ in range(lock_stripes)]
        self._windows: dict[Dimension, dict[str, _WindowState]] = {
            Dimension.BURST: {},
            Dimension.REQUESTS: {},
            Dimension.USAGE: {},
        }
        self._sessions: dict[str, _SessionState] = {}

    @property
    def policy(self) -> LimitPolicy:
        return self._policy

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def _window_config(self, dimension: Dimension) -> tuple[int, int]:
        """Return (limit, window_seconds) for a window-based dimension."""
        requests = self._policy.requests
        if dimension is Dimension.BURST:
            return requests.burst_limit, requests.burst_window_seconds
        if dimension is Dimension.REQUESTS:
            return requests.limit, requests.window_seconds
        if dimension is Dimension.USAGE:
            return self._policy.usage.limit, self._policy.usage.window_seconds
        raise ValueError(f"{dimension.value} is not a window-based dimension")

    def _active_window(self, dimension: Dimension, key: str, now: float) -> _WindowState | None:
        """Return the live window for key, or None if absent or ended.

        Must be called while holding the key's lock.
        """
        state = self._windows[dimension].get(key)
        if state is None or now >= state.window_ends_at:
            return None
        return state

    def _increment(self, dimension: Dimension, key: str) -> WindowResult:
        limit, window_seconds = self._window_config(dimension)
        now = self._clock()

        if not _is_valid_key(key):
            return WindowResult(True, limit, limit - 1, now + window_seconds)

        with self._lock_for(key):
            state = self._active_window(dimension, key, now)
            if state is None:
                state = _WindowState(count=1, window_ends_at=now + window_seconds)
                self._windows[dimension][key] = state
                return WindowResult(True, limit, limit - 1, state.window_ends_at)

            if state.count < limit:
                state.count += 1
                return WindowResult(True, limit, limit - state.count, state.window_ends_at)

            return WindowResult(False, limit, 0, state.window_ends_at)

    def _peek(self, dimension: Dimension, key: str) -> WindowResult:
        limit, window_seconds = self._window_config(dimension)
        now = self._clock()

        if not _is_valid_key(key):
            return WindowResult(True, limit, limit, now + window_seconds)

        with self._lock_for(key):
            state = self._active_window(dimension, key, now)
            if state is None:
                return WindowResult(True, limit, limit, now + window_seconds)
            remaining = max(0, limit - state.count)
            return WindowResult(remaining > 0, limit, remaining, state.window_ends_at)

    def check_and_increment_requests(self, key: str) -> WindowResult:
        return self._increment(Dimension.REQUESTS, key)

    def check_and_increment_burst(self, key: str) -> WindowResult:
        return self._increment(Dimension.BURST, key)

    def reserve_usage(self, key: str, estimated_units: int) -> WindowResult:
        """Reserve estimated units from the key's usage budget.

        A reservation that would push the consumed total past the limit is
        rejected and leaves the total untouched; the reported remaining is
        computed from the current total, not the rejected request.
        """
        limit, window_seconds = self._window_config(Dimension.USAGE)
        units = max(0, int(estimated_units))
        now = self._clock()

        if not _is_valid_key(key):
            allowed = units <= limit
            remaining = limit - units if allowed else limit
            return WindowResult(allowed, limit, remaining, now + window_seconds)

        with self._lock_for(key):
            state = self._active_window(Dimension.USAGE, key, now)
            if state is None:
                state = _WindowState(count=0, window_ends_at=now + window_seconds)
                self._windows[Dimension.USAGE][key] = state

            projected = state.count + units
            if projected > limit:
                return WindowResult(False, limit, max(0, limit - state.count), state.window_ends_at)

            state.count = projected
            return WindowResult(True, limit, limit - projected, state.window_ends_at)

    def record_usage(self, key: str, units_delta: int) -> None:
        """Apply a post-hoc correction to the consumed total.

        The total is clamped to [0, limit]. Nothing happens when the key has
        no live usage window.
        """
        delta = int(units_delta)
        if delta == 0 or not _is_valid_key(key):
            return

        limit = self._policy.usage.limit
        now = self._clock()
        with self._lock_for(key):
            state = self._active_window(Dimension.USAGE, key, now)
            if state is None:
                return
            state.count = min(limit, max(0, state.count + delta))

    def admit_session(self, key: str, session_id: str) -> SessionResult:
        limit = self._policy.sessions.limit
        window_seconds = self._policy.sessions.window_seconds
        now = self._clock()

        if not _is_valid_key(key):
            return SessionResult(True, limit, limit - 1, 1)

        with self._lock_for(key):
            state = self._sessions.get(key)
            if state is None or now >= state.window_ends_at:
                state = _SessionState(window_ends_at=now + window_seconds)
                self._sessions[key] = state

            active = len(state.active_ids)
            if session_id in state.active_ids:
                return SessionResult(True, limit, max(0, limit - active), active)

            if active < limit:
                state.active_ids.add(session_id)
                active += 1
                return SessionResult(True, limit, limit - active, active)

            return SessionResult(False, limit, 0, active)

    def release_session(self, key: str, session_id: str) -> None:
        if not _is_valid_key(key):
            return

        with self._lock_for(key):
            state = self._sessions.get(key)
            if state is None:
                return
            state.active_ids.discard(session_id)
            if not state.active_ids:
                del self._sessions[key]

    def estimate_units(self, text: str | None) -> int:
        return self._estimator.estimate(text)

    def peek_requests(self, key: str) -> WindowResult:
        return self._peek(Dimension.REQUESTS, key)

    def peek_burst(self, key: str) -> WindowResult:
        return self._peek(Dimension.BURST, key)

    def peek_usage(self, key: str) -> WindowResult:
        return self._peek(Dimension.USAGE, key)

    def sweep(self, dimension: Dimension, grace_seconds: float) -> int:
        """Delete entries of one dimension that ended before now - grace.

        Each candidate is re-checked under its key's lock, so a key that was
        recreated by a concurrent check is never removed.
        """
        cutoff = self._clock() - grace_seconds
        table: dict[str, _WindowState] | dict[str, _SessionState]
        if dimension is Dimension.SESSIONS:
            table = self._sessions
        else:
            table = self._windows[dimension]

        # dict.copy() is atomic under the GIL; iterating the live dict is not
        candidates = [
            key for key, state in table.copy().items() if state.window_ends_at <= cutoff
        ]

        removed = 0
        for key in candidates:
            with self._lock_for(key):
                state = table.get(key)
                if state is not None and state.window_ends_at <= cutoff:
                    del table[key]
                    removed += 1

        if removed:
            logger.debug(
                "usage_store.swept",
                extra={"dimension": dimension.value, "removed": removed},
            )
        return removed

    def stats(self) -> dict[str, int]:
        """Return entry counts without exposing client keys."""
        sessions = self._sessions.copy()
        return {
            "burst_entries": len(self._windows[Dimension.BURST]),
            "request_entries": len(self._windows[Dimension.REQUESTS]),
            "usage_entries": len(self._windows[Dimension.USAGE]),
            "session_entries": len(sessions),
            "active_sessions": sum(len(state.active_ids) for state in sessions.values()),
        }

    def reset(self) -> None:
        """Drop all counters."""
        with ExitStack() as stack:
            for lock in self._locks:
                stack.enter_context(lock)
            for table in self._windows.values():
                table.clear()
            self._sessions.clear()
