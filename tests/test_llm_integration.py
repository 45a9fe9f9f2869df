"""Integration tests for LLM adapter layer."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import os

# Ensure required env vars exist before importing settings-dependent modules
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("LLM_MODEL", "gpt-4o")
os.environ.setdefault("LLM_API_KEY", "test-key")

from app.adapters.llm import ChatMessage, LLMReply, OpenAIClient, create_llm_client
from app.core.config import LLMSettings
from app.core.errors import LLMAppError, ValidationAppError
from app.schemas.chat import ChatMessageIn
from app.services.chat_service import ChatService


def make_completion(content: str | None, prompt_tokens: int = 12, completion_tokens: int = 7) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    response.usage = MagicMock(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)
    return response


CONVERSATION = [
    ChatMessage(role="system", content="Be brief."),
    ChatMessage(role="user", content="Hello"),
]


class TestOpenAIClientIntegration:
    """Test OpenAI client integration with mocked API calls."""

    @pytest.mark.asyncio
    async def test_generate_reply_success(self) -> None:
        """Validates that the client calls the API and reports usage."""
        client = OpenAIClient(api_key="test-key-123", model="gpt-4o")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=make_completion("  Hi there!  "),
        ) as mock_create:
            reply = await client.generate_reply(CONVERSATION, temperature=0.2, max_tokens=100)

        assert reply == LLMReply(content="Hi there!", prompt_tokens=12, completion_tokens=7)
        assert reply.total_tokens == 19

        call_kwargs = mock_create.call_args.kwargs
        assert call_kwargs["model"] == "gpt-4o"
        assert call_kwargs["temperature"] == 0.2
        assert call_kwargs["max_tokens"] == 100
        assert call_kwargs["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hello"},
        ]

    @pytest.mark.asyncio
    async def test_none_options_are_not_sent(self) -> None:
        """Ensures unset provider options are omitted from the request."""
        client = OpenAIClient(api_key="test-key", model="gpt-4o")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=make_completion("ok"),
        ) as mock_create:
            await client.generate_reply(CONVERSATION, max_tokens=None)

        assert "max_tokens" not in mock_create.call_args.kwargs
        assert mock_create.call_args.kwargs["temperature"] == 0.7

    @pytest.mark.asyncio
    async def test_empty_reply_raises_error(self) -> None:
        client = OpenAIClient(api_key="test-key", model="gpt-4o")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=make_completion(""),
        ):
            with pytest.raises(RuntimeError, match="empty response"):
                await client.generate_reply(CONVERSATION)

    @pytest.mark.asyncio
    async def test_api_error_is_wrapped(self) -> None:
        client = OpenAIClient(api_key="test-key", model="gpt-4o")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            side_effect=ConnectionError("network down"),
        ):
            with pytest.raises(RuntimeError, match="OpenAI API error"):
                await client.generate_reply(CONVERSATION)


class TestChatService:
    """Test the chat service on top of a mocked LLM client."""

    def make_service(self, **kwargs) -> tuple[ChatService, AsyncMock]:
        llm = MagicMock()
        llm.generate_reply = AsyncMock(return_value=LLMReply(content="Sure.", prompt_tokens=5, completion_tokens=2))
        return ChatService(llm, system_prompt="Be brief.", **kwargs), llm.generate_reply

    @pytest.mark.asyncio
    async def test_prepends_system_prompt(self) -> None:
        service, generate = self.make_service(completion_options={"temperature": 0.1})

        reply = await service.reply([ChatMessageIn(role="user", content="Hi")])

        assert reply.content == "Sure."
        messages = generate.call_args.args[0]
        assert messages[0] == ChatMessage(role="system", content="Be brief.")
        assert messages[1] == ChatMessage(role="user", content="Hi")
        assert generate.call_args.kwargs == {"temperature": 0.1}

    @pytest.mark.parametrize(
        ("messages", "code"),
        [
            ([], "empty_conversation"),
            ([ChatMessageIn(role="user", content="x")] * 3, "too_many_messages"),
            ([ChatMessageIn(role="user", content="x" * 11)], "message_too_long"),
            ([ChatMessageIn(role="assistant", content="x")], "last_message_not_user"),
        ],
    )
    def test_validation(self, messages: list[ChatMessageIn], code: str) -> None:
        service, _ = self.make_service(max_messages=2, max_message_chars=10)

        with pytest.raises(ValidationAppError) as exc:
            service.validate(messages)
        assert exc.value.code == code

    @pytest.mark.asyncio
    async def test_llm_failure_becomes_app_error(self) -> None:
        service, generate = self.make_service()
        generate.side_effect = RuntimeError("OpenAI API error: timeout")

        with pytest.raises(LLMAppError) as exc:
            await service.reply([ChatMessageIn(role="user", content="Hi")])
        assert exc.value.code == "llm_call_failed"


class TestLLMFactory:
    """Test LLM client factory pattern."""

    def test_create_llm_client_with_settings(self) -> None:
        """Validates that factory correctly instantiates client with provided settings."""
        client = create_llm_client(
            LLMSettings(
                provider="openai",
                api_key="test-key",
                model="gpt-4o-mini",
                base_url=None,
                timeout_seconds=30.0,
            )
        )

        assert isinstance(client, OpenAIClient)
        assert client.model == "gpt-4o-mini"

    def test_create_llm_client_missing_api_key_raises_error(self) -> None:
        """Ensures proper validation of required credentials."""
        llm_settings = LLMSettings(
            provider="openai",
            api_key=None,
            model="gpt-4o",
        )

        with pytest.raises(ValidationAppError, match="requires LLM_API_KEY") as exc:
            create_llm_client(llm_settings)
        assert exc.value.code == "llm_missing_api_key"

    def test_create_llm_client_unknown_provider_raises_error(self) -> None:
        """Validates that unsupported providers are rejected with clear error."""
        llm_settings = LLMSettings(
            provider="unknown-provider",
            api_key="test-key",
            model="gpt-4o",
        )

        with pytest.raises(ValidationAppError, match="Unknown LLM provider") as exc:
            create_llm_client(llm_settings)
        assert exc.value.code == "llm_unknown_provider"

    def test_create_llm_client_defaults_to_global_settings(self) -> None:
        """Validates that the factory falls back to environment settings."""
        client = create_llm_client()

        assert isinstance(client, OpenAIClient)
