from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status

from app.core.admission import get_admission_service, quota_headers
from app.core.client_identity import resolve_client_key, resolve_identity
from app.core.errors import AdmissionRejectedError
from app.schemas.admission import RateLimitErrorResponse
from app.schemas.chat import ChatRequest, ChatResponse, ChatUsage
from app.services.admission_service import AdmissionService
from app.services.chat_service import ChatService

router = APIRouter(tags=["Chat"])


def get_chat_service(request: Request) -> ChatService:
    """FastAPI dependency returning the app-scoped chat service."""
    return request.app.state.chat_service


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={status.HTTP_429_TOO_MANY_REQUESTS: {"model": RateLimitErrorResponse}},
)
async def chat(
    payload: ChatRequest,
    request: Request,
    response: Response,
    admission: Annotated[AdmissionService, Depends(get_admission_service)],
    chat_service: Annotated[ChatService, Depends(get_chat_service)],
) -> ChatResponse:
    """Continue a conversation with the assistant.

    Admission control runs before the model is called: a rejected request
    costs nothing downstream and gets HTTP 429 with retry guidance.

    Args:
        payload: Conversation history; the last message is the new one.

    Returns:
        ChatResponse with the reply, the session id to reuse, and usage.

    Raises:
        AdmissionRejectedError: 429 when any admission dimension refuses.
        ValidationAppError: 400 for malformed conversations.
        LLMAppError: 500 when the model call fails.
    """
    # Validate first so malformed requests are not charged
    chat_service.validate(payload.messages)

    identity = resolve_identity(request, payload.session_id)
    decision = admission.admit(identity, payload.latest_content)
    if not decision.allowed:
        raise AdmissionRejectedError.from_rejection(decision.rejection)

    reply = await chat_service.reply(payload.messages)
    if reply.total_tokens:
        admission.report_usage(identity.client_key, decision.reserved_units, reply.total_tokens)

    response.headers.update(quota_headers(admission.quota(identity.client_key)))
    response.headers["X-Session-ID"] = identity.session_id

    return ChatResponse(
        reply=reply.content,
        session_id=identity.session_id,
        usage=ChatUsage(
            reserved_units=decision.reserved_units,
            prompt_tokens=reply.prompt_tokens,
            completion_tokens=reply.completion_tokens,
        ),
    )


@router.delete(
    "/chat/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def end_session(
    session_id: str,
    request: Request,
    admission: Annotated[AdmissionService, Depends(get_admission_service)],
) -> Response:
    """Release a session slot so the client can open another conversation.

    Unknown session ids are ignored.
    """
    admission.release_session(resolve_client_key(request), session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
