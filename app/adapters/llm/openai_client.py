"""OpenAI LLM client adapter."""

from typing import Any

from openai import AsyncOpenAI

from app.adapters.llm.base import AbstractLLMClient, ChatMessage, LLMReply


class OpenAIClient(AbstractLLMClient):
    """Client for OpenAI (or OpenAI-compatible) chat completions.

    Uses the official OpenAI Python SDK with async support.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 45.0,
    ) -> None:
        """Initialize OpenAI async client.

        Args:
            api_key: OpenAI API key for authentication.
            model: Model name (e.g., "gpt-4o-mini").
            base_url: Optional custom base URL for OpenAI API.
            timeout_seconds: Timeout for requests in seconds.
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
        )
        self.model = model

    async def generate_reply(
        self,
        messages: list[ChatMessage],
        **kwargs: Any,
    ) -> LLMReply:
        """Generate a chat reply using OpenAI chat completions.

        Args:
            messages: Conversation so far, system prompt first.
            **kwargs: Provider options (temperature, max_tokens, top_p, etc.).

        Returns:
            LLMReply with the assistant text and billed usage.

        Raises:
            RuntimeError: If the API call fails or the response is empty.
        """
        request_params: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": kwargs.pop("temperature", 0.7),
        }

        allowed_params = {
            "max_tokens",
            "top_p",
            "frequency_penalty",
            "presence_penalty",
            "seed",
        }
        for param in allowed_params:
            if kwargs.get(param) is not None:
                request_params[param] = kwargs[param]

        try:
            response = await self.client.chat.completions.create(**request_params)
        except Exception as exc:
            raise RuntimeError(f"OpenAI API error: {str(exc)}") from exc

        content = response.choices[0].message.content
        if not content:
            raise RuntimeError("LLM returned empty response")

        usage = response.usage
        return LLMReply(
            content=content.strip(),
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )
