"""Chat service wrapping the metered language-model call.

This is the expensive work admission control protects. It handles:
- Input validation (message count and size)
- Prepending the configured system prompt
- LLM invocation and error translation
"""

from __future__ import annotations

import logging
from typing import Any

from app.adapters.llm.base import AbstractLLMClient, ChatMessage, LLMReply
from app.core.errors import LLMAppError, ValidationAppError
from app.schemas.chat import ChatMessageIn

logger = logging.getLogger(__name__)


class ChatService:
    """Service producing assistant replies for a conversation.

    Attributes:
        llm: LLM client adapter.
        system_prompt: Instruction prepended to every conversation.
        max_messages: Maximum number of client messages per request.
        max_message_chars: Maximum characters per client message.
    """

    def __init__(
        self,
        llm: AbstractLLMClient,
        *,
        system_prompt: str,
        max_messages: int = 50,
        max_message_chars: int = 8000,
        completion_options: dict[str, Any] | None = None,
    ) -> None:
        self.llm = llm
        self.system_prompt = system_prompt
        self.max_messages = max_messages
        self.max_message_chars = max_message_chars
        self.completion_options = dict(completion_options or {})

    def _validate_messages(self, messages: list[ChatMessageIn]) -> None:
        """Reject conversations the model should never see.

        Raises:
            ValidationAppError: If there are too many or too long messages,
                or the last message is not from the user.
        """
        if len(messages) > self.max_messages:
            raise ValidationAppError(
                code="too_many_messages",
                message=f"Conversation exceeds {self.max_messages} messages.",
                details={"max_value": self.max_messages, "actual_value": len(messages)},
            )

        longest = max(len(m.content) for m in messages)
        if longest > self.max_message_chars:
            raise ValidationAppError(
                code="message_too_long",
                message=f"Messages are limited to {self.max_message_chars} characters.",
                details={"max_value": self.max_message_chars, "actual_value": longest},
            )

        if messages[-1].role != "user":
            raise ValidationAppError(
                code="last_message_not_user",
                message="The last message must come from the user.",
            )

    def validate(self, messages: list[ChatMessageIn]) -> None:
        if not messages:
            raise ValidationAppError(code="empty_conversation", message="No messages provided.")
        self._validate_messages(messages)

    def build_conversation(self, messages: list[ChatMessageIn]) -> list[ChatMessage]:
        conversation = [ChatMessage(role="system", content=self.system_prompt)]
        conversation.extend(ChatMessage(role=m.role, content=m.content) for m in messages)
        return conversation

    async def reply(self, messages: list[ChatMessageIn]) -> LLMReply:
        """Generate the assistant's next message.

        Args:
            messages: Validated client conversation.

        Returns:
            LLMReply with the reply text and billed token usage.

        Raises:
            ValidationAppError: If the conversation is invalid.
            LLMAppError: If the provider call fails.
        """
        self.validate(messages)
        conversation = self.build_conversation(messages)

        try:
            reply = await self.llm.generate_reply(conversation, **self.completion_options)
        except RuntimeError as exc:
            raise LLMAppError(code="llm_call_failed", message=str(exc)) from exc

        logger.info(
            "chat.completed",
            extra={
                "message_count": len(messages),
                "prompt_tokens": reply.prompt_tokens,
                "completion_tokens": reply.completion_tokens,
            },
        )
        return reply
