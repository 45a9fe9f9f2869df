"""Pydantic schemas for admission-control responses."""

from pydantic import BaseModel, Field


class RateLimitErrorResponse(BaseModel):
    """Body of an HTTP 429 response."""

    error: str = Field(..., examples=["Rate limit exceeded"])
    message: str = Field(..., description="Human-readable reason and retry guidance.")
    type: str = Field(..., description="Rejecting dimension: burst, requests, tokens or sessions.")
    limit: int
    remaining: int
    resetTime: int = Field(..., description="UNIX epoch seconds when the dimension frees up.")


class QuotaWindow(BaseModel):
    limit: int
    remaining: int
    reset: int = Field(..., description="UNIX epoch seconds when the window ends.")


class QuotaResponse(BaseModel):
    """Caller's current quotas, read without consuming anything."""

    client_key: str
    requests: QuotaWindow
    tokens: QuotaWindow
    sessions_limit: int
    session_exempt: bool


class StoreStatsResponse(BaseModel):
    enabled: bool
    burst_entries: int
    request_entries: int
    usage_entries: int
    session_entries: int
    active_sessions: int
