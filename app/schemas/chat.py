"""Pydantic schemas for the chat endpoint."""

from typing import Literal

from pydantic import BaseModel, Field


class ChatMessageIn(BaseModel):
    """One turn of the conversation as sent by the client."""

    role: Literal["user", "assistant"] = Field(
        ...,
        description="Author of the message. System prompts are added server-side.",
    )
    content: str = Field(
        ...,
        min_length=1,
        description="Message text.",
    )


class ChatRequest(BaseModel):
    """Conversation to continue.

    The latest message is what admission control estimates usage from.
    """

    messages: list[ChatMessageIn] = Field(
        ...,
        min_length=1,
        description="Conversation history, oldest first. The last item is the new user message.",
    )
    session_id: str | None = Field(
        None,
        description="Logical conversation id. Overridden by the X-Session-ID header when present.",
    )

    @property
    def latest_content(self) -> str:
        return self.messages[-1].content


class ChatUsage(BaseModel):
    reserved_units: int = Field(..., description="Units reserved by admission control (estimate).")
    prompt_tokens: int = Field(0, description="Input tokens billed by the model provider.")
    completion_tokens: int = Field(0, description="Output tokens billed by the model provider.")


class ChatResponse(BaseModel):
    reply: str = Field(..., description="Assistant reply.")
    session_id: str = Field(..., description="Session id to send with follow-up messages.")
    usage: ChatUsage
