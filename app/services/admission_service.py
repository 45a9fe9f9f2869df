"""Admission service composing usage-store checks into one decision.

Dimensions are evaluated in a fixed order: burst, requests, tokens (usage
budget), sessions. The first rejection short-circuits, so later dimensions
are neither checked nor charged.

Internal faults:
- The usage budget fails closed: if the estimator or the store raises, the
  request is rejected as a tokens rejection.
- Burst, requests and sessions fail open: the fault is logged and the
  dimension is skipped.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from app.adapters.rate_limit.base import AbstractUsageStore, WindowResult
from app.adapters.rate_limit.policy import LimitPolicy
from app.core.client_identity import ClientIdentity, hash_client_key

logger = logging.getLogger(__name__)

# Retry hint when the usage budget cannot be evaluated
FAULT_RETRY_SECONDS = 60


class AdmissionDimension(str, Enum):
    """Client-facing rejection types."""

    BURST = "burst"
    REQUESTS = "requests"
    TOKENS = "tokens"
    SESSIONS = "sessions"


@dataclass(frozen=True)
class Rejection:
    """Why a request was refused and when to retry.

    Attributes:
        type: Dimension that rejected the request.
        limit: Configured limit of that dimension.
        remaining: Quota left in that dimension.
        reset_at: UNIX epoch seconds when the dimension frees up.
        retry_after_seconds: Whole seconds the caller should wait.
        message: Human-readable explanation including retry guidance.
    """

    type: AdmissionDimension
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int
    message: str


@dataclass(frozen=True)
class QuotaSnapshot:
    """Informational quotas read without mutating any counter."""

    requests: WindowResult
    tokens: WindowResult
    sessions_limit: int


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    client_key: str
    session_id: str
    reserved_units: int = 0
    quota: QuotaSnapshot | None = None
    rejection: Rejection | None = None


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def describe_period(window_seconds: int) -> str:
    """Render a window size as 'hour', '2 hours', 'day', '10 seconds', ...

    >>> describe_period(3600)
    'hour'
    >>> describe_period(10)
    '10 seconds'
    """
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if window_seconds % size == 0:
            count = window_seconds // size
            return unit if count == 1 else _plural(count, unit)
    return _plural(window_seconds, "second")


def describe_wait(seconds: int) -> str:
    """Render a retry delay in the coarsest sensible unit, rounding up."""
    if seconds < 60:
        return _plural(max(1, seconds), "second")
    if seconds < 3600:
        return _plural(math.ceil(seconds / 60), "minute")
    return _plural(math.ceil(seconds / 3600), "hour")


class AdmissionService:
    """Admission facade over a usage store.

    Attributes:
        store: Usage store owning all per-client counters.
        policy: Limits used for messages, exemptions and advisory hints.
        enabled: When False every request is admitted without touching counters.
        reconcile_usage: When False report_usage() keeps the original estimate.
    """

    def __init__(
        self,
        store: AbstractUsageStore,
        policy: LimitPolicy,
        *,
        enabled: bool = True,
        reconcile_usage: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.policy = policy
        self.enabled = enabled
        self.reconcile_usage = reconcile_usage
        self._clock = clock

    def retry_after(self, reset_at: float) -> int:
        """Whole seconds until reset_at, rounded up, never negative."""
        return max(0, math.ceil(reset_at - self._clock()))

    def _window_rejection(
        self,
        dimension: AdmissionDimension,
        result: WindowResult,
        window_seconds: int,
    ) -> Rejection:
        retry_after = self.retry_after(result.reset_at)
        wait = describe_wait(retry_after)
        period = describe_period(window_seconds)

        if dimension is AdmissionDimension.BURST:
            message = (
                f"You're sending messages too quickly. The limit is {result.limit} "
                f"messages per {period}. Try again in {wait}."
            )
        elif dimension is AdmissionDimension.REQUESTS:
            message = (
                f"Too many requests. You've exceeded the limit of {result.limit} "
                f"messages per {period}. Try again in {wait}."
            )
        else:
            message = (
                f"Token limit exceeded. You've reached the limit of {result.limit} "
                f"tokens per {period}. Limit resets in {wait}."
            )

        return Rejection(
            type=dimension,
            limit=result.limit,
            remaining=result.remaining,
            reset_at=result.reset_at,
            retry_after_seconds=retry_after,
            message=message,
        )

    def _session_rejection(self, remaining: int) -> Rejection:
        retry_seconds = self.policy.sessions.retry_seconds
        return Rejection(
            type=AdmissionDimension.SESSIONS,
            limit=self.policy.sessions.limit,
            remaining=remaining,
            reset_at=self._clock() + retry_seconds,
            retry_after_seconds=retry_seconds,
            message=(
                f"Too many concurrent sessions. Maximum {self.policy.sessions.limit} "
                "sessions allowed per client. Please close an existing session "
                "before starting a new one."
            ),
        )

    def _usage_fault_rejection(self) -> Rejection:
        return Rejection(
            type=AdmissionDimension.TOKENS,
            limit=self.policy.usage.limit,
            remaining=0,
            reset_at=self._clock() + FAULT_RETRY_SECONDS,
            retry_after_seconds=FAULT_RETRY_SECONDS,
            message="Usage budget is temporarily unavailable. Please try again shortly.",
        )

    def _reject(self, identity: ClientIdentity, rejection: Rejection) -> AdmissionDecision:
        logger.warning(
            "admission.rejected",
            extra={
                "key_hash": hash_client_key(identity.client_key),
                "dimension": rejection.type.value,
                "limit": rejection.limit,
                "remaining": rejection.remaining,
                "retry_after_s": rejection.retry_after_seconds,
            },
        )
        return AdmissionDecision(
            allowed=False,
            client_key=identity.client_key,
            session_id=identity.session_id,
            rejection=rejection,
        )

    def _log_fault(self, dimension: AdmissionDimension, identity: ClientIdentity, exc: Exception) -> None:
        logger.error(
            "admission.fault",
            extra={
                "dimension": dimension.value,
                "key_hash": hash_client_key(identity.client_key),
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )

    def admit(self, identity: ClientIdentity, content: str | None = None) -> AdmissionDecision:
        """Evaluate one request against every dimension.

        Args:
            identity: Resolved client key and session id.
            content: Request text used to estimate usage units.

        Returns:
            AdmissionDecision. On admission it carries a quota snapshot taken
            after the admitting mutation; on rejection it carries the reason.
        """
        key = identity.client_key

        if not self.enabled:
            return AdmissionDecision(
                allowed=True,
                client_key=key,
                session_id=identity.session_id,
                quota=self.quota(key),
            )

        requests_policy = self.policy.requests

        try:
            burst = self.store.check_and_increment_burst(key)
        except Exception as exc:
            self._log_fault(AdmissionDimension.BURST, identity, exc)
        else:
            if not burst.allowed:
                return self._reject(
                    identity,
                    self._window_rejection(
                        AdmissionDimension.BURST, burst, requests_policy.burst_window_seconds
                    ),
                )

        try:
            requests = self.store.check_and_increment_requests(key)
        except Exception as exc:
            self._log_fault(AdmissionDimension.REQUESTS, identity, exc)
        else:
            if not requests.allowed:
                return self._reject(
                    identity,
                    self._window_rejection(
                        AdmissionDimension.REQUESTS, requests, requests_policy.window_seconds
                    ),
                )

        try:
            units = self.store.estimate_units(content)
            usage = self.store.reserve_usage(key, units)
        except Exception as exc:
            self._log_fault(AdmissionDimension.TOKENS, identity, exc)
            return self._reject(identity, self._usage_fault_rejection())
        if not usage.allowed:
            return self._reject(
                identity,
                self._window_rejection(
                    AdmissionDimension.TOKENS, usage, self.policy.usage.window_seconds
                ),
            )

        if not self.policy.sessions.is_exempt(key):
            try:
                session = self.store.admit_session(key, identity.session_id)
            except Exception as exc:
                self._log_fault(AdmissionDimension.SESSIONS, identity, exc)
            else:
                if not session.allowed:
                    return self._reject(identity, self._session_rejection(session.remaining))

        quota = self.quota(key)
        logger.info(
            "admission.allowed",
            extra={
                "key_hash": hash_client_key(key),
                "reserved_units": units,
                "requests_remaining": quota.requests.remaining,
                "tokens_remaining": quota.tokens.remaining,
            },
        )
        return AdmissionDecision(
            allowed=True,
            client_key=key,
            session_id=identity.session_id,
            reserved_units=units,
            quota=quota,
        )

    def quota(self, key: str) -> QuotaSnapshot:
        """Read current quotas for key without consuming anything."""
        return QuotaSnapshot(
            requests=self.store.peek_requests(key),
            tokens=self.store.peek_usage(key),
            sessions_limit=self.policy.sessions.limit,
        )

    def report_usage(self, key: str, reserved_units: int, actual_units: int) -> None:
        """Reconcile a reservation with the cost actually incurred."""
        if not (self.enabled and self.reconcile_usage):
            return
        delta = actual_units - reserved_units
        if delta:
            self.store.record_usage(key, delta)
            logger.debug(
                "admission.usage_reconciled",
                extra={
                    "key_hash": hash_client_key(key),
                    "reserved_units": reserved_units,
                    "actual_units": actual_units,
                },
            )

    def release_session(self, key: str, session_id: str) -> None:
        self.store.release_session(key, session_id)
