from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness check used by load balancers and monitoring.

    Also reports whether the background expiry sweeper is running, since a
    stopped sweeper means the usage store grows without bound.
    """

    sweeper = getattr(request.app.state, "expiry_sweeper", None)
    return {
        "status": "ok",
        "sweeper": "running" if sweeper is not None and sweeper.running else "stopped",
    }
