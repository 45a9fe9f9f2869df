"""Admission control wiring for the HTTP layer.

Builds the limit policy and sweep schedules from settings, exposes the
admission service to routes as a FastAPI dependency, and renders decisions
as X-RateLimit-* headers.

Design goals:
- No ambient globals: the store and service are constructed by the app
  factory and live on app.state; routes receive them via Depends().
- Swap-friendly: the service depends on AbstractUsageStore only.
"""

from __future__ import annotations

import math

from fastapi import Request

from app.adapters.rate_limit.base import Dimension
from app.adapters.rate_limit.estimators import CharacterRatioEstimator
from app.adapters.rate_limit.in_memory import InMemoryUsageStore
from app.adapters.rate_limit.policy import (
    LimitPolicy,
    RequestPolicy,
    SessionPolicy,
    UsagePolicy,
)
from app.core.client_identity import parse_key_list
from app.core.config import RateLimitSettings
from app.services.admission_service import AdmissionService, QuotaSnapshot, Rejection
from app.services.expiry_sweeper import ExpirySweeper, SweepSchedule


def build_limit_policy(cfg: RateLimitSettings) -> LimitPolicy:
    """Translate environment settings into an immutable LimitPolicy."""

    return LimitPolicy(
        requests=RequestPolicy(
            limit=cfg.requests_limit,
            window_seconds=cfg.requests_window_seconds,
            burst_limit=cfg.burst_limit,
            burst_window_seconds=cfg.burst_window_seconds,
        ),
        usage=UsagePolicy(
            limit=cfg.usage_limit,
            window_seconds=cfg.usage_window_seconds,
        ),
        sessions=SessionPolicy(
            limit=cfg.sessions_limit,
            window_seconds=cfg.sessions_window_seconds,
            exempt_keys=parse_key_list(cfg.sessions_exempt_keys),
            retry_seconds=cfg.sessions_retry_seconds,
        ),
    )


def build_sweep_schedules(cfg: RateLimitSettings) -> list[SweepSchedule]:
    """Hourly-window data is swept every few minutes, daily data hourly."""

    grace = cfg.sweep_grace_seconds
    return [
        SweepSchedule(Dimension.BURST, cfg.sweep_requests_interval_seconds, grace),
        SweepSchedule(Dimension.REQUESTS, cfg.sweep_requests_interval_seconds, grace),
        SweepSchedule(Dimension.USAGE, cfg.sweep_usage_interval_seconds, grace),
        SweepSchedule(Dimension.SESSIONS, cfg.sweep_sessions_interval_seconds, grace),
    ]


def build_admission(cfg: RateLimitSettings) -> tuple[AdmissionService, ExpirySweeper]:
    """Construct the process-local store, the admission service and its sweeper."""

    policy = build_limit_policy(cfg)
    store = InMemoryUsageStore(
        policy,
        estimator=CharacterRatioEstimator(cfg.chars_per_unit),
    )
    service = AdmissionService(
        store,
        policy,
        enabled=cfg.enabled,
        reconcile_usage=cfg.reconcile_actual_usage,
    )
    sweeper = ExpirySweeper(store, build_sweep_schedules(cfg))
    return service, sweeper


def get_admission_service(request: Request) -> AdmissionService:
    """FastAPI dependency returning the app-scoped admission service."""

    return request.app.state.admission_service


def _epoch(reset_at: float) -> str:
    return str(int(math.ceil(reset_at)))


def rejection_headers(rejection: Rejection) -> dict[str, str]:
    """Headers sent with a 429 response."""

    return {
        "X-RateLimit-Limit": str(rejection.limit),
        "X-RateLimit-Remaining": str(rejection.remaining),
        "X-RateLimit-Reset": _epoch(rejection.reset_at),
        "X-RateLimit-Type": rejection.type.value,
        "Retry-After": str(rejection.retry_after_seconds),
    }


def quota_headers(quota: QuotaSnapshot) -> dict[str, str]:
    """Informational headers sent with an admitted response."""

    return {
        "X-RateLimit-Requests-Limit": str(quota.requests.limit),
        "X-RateLimit-Requests-Remaining": str(quota.requests.remaining),
        "X-RateLimit-Requests-Reset": _epoch(quota.requests.reset_at),
        "X-RateLimit-Tokens-Limit": str(quota.tokens.limit),
        "X-RateLimit-Tokens-Remaining": str(quota.tokens.remaining),
        "X-RateLimit-Tokens-Reset": _epoch(quota.tokens.reset_at),
        "X-RateLimit-Sessions-Limit": str(quota.sessions_limit),
    }
