from __future__ import annotations

import math
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from app.adapters.rate_limit.base import WindowResult
from app.core.admission import get_admission_service
from app.core.client_identity import resolve_client_key
from app.schemas.admission import QuotaResponse, QuotaWindow, StoreStatsResponse
from app.services.admission_service import AdmissionService

router = APIRouter(tags=["Admission"])


def _window(result: WindowResult) -> QuotaWindow:
    return QuotaWindow(
        limit=result.limit,
        remaining=result.remaining,
        reset=int(math.ceil(result.reset_at)),
    )


@router.get("/admission/quota", response_model=QuotaResponse)
def get_quota(
    request: Request,
    admission: Annotated[AdmissionService, Depends(get_admission_service)],
) -> QuotaResponse:
    """Report the caller's remaining quotas without consuming any."""

    client_key = resolve_client_key(request)
    quota = admission.quota(client_key)
    return QuotaResponse(
        client_key=client_key,
        requests=_window(quota.requests),
        tokens=_window(quota.tokens),
        sessions_limit=quota.sessions_limit,
        session_exempt=admission.policy.sessions.is_exempt(client_key),
    )


@router.get("/admission/stats", response_model=StoreStatsResponse)
def get_stats(
    admission: Annotated[AdmissionService, Depends(get_admission_service)],
) -> StoreStatsResponse:
    """Entry counts of the usage store, for capacity monitoring."""

    return StoreStatsResponse(enabled=admission.enabled, **admission.store.stats())
