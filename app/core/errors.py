"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Admission rejections are values inside the admission service; only the HTTP
layer turns them into AdmissionRejectedError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NotRequired, TypedDict

if TYPE_CHECKING:
    from app.services.admission_service import Rejection


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    hint: str
    max_value: int
    actual_value: int
    http_status: int
    retry_after: float
    model: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class LLMAppError(AppError):
    """Raised when LLM provider/client operations fail."""


@dataclass
class AdmissionRejectedError(AppError):
    """Raised by routes when admission control refuses a request.

    Attributes:
        rejection: Dimension, limits and retry guidance of the refusal.
    """

    rejection: Rejection | None = None

    @classmethod
    def from_rejection(cls, rejection: Rejection) -> "AdmissionRejectedError":
        return cls(
            code="rate_limit_exceeded",
            message=rejection.message,
            rejection=rejection,
        )
