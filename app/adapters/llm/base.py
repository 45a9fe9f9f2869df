from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ChatMessage:
	role: str
	content: str


@dataclass(frozen=True)
class LLMReply:
	"""A model reply plus the usage the provider billed for it.

	Attributes:
		content: Assistant message text.
		prompt_tokens: Tokens billed for the input.
		completion_tokens: Tokens billed for the output.
	"""

	content: str
	prompt_tokens: int = 0
	completion_tokens: int = 0

	@property
	def total_tokens(self) -> int:
		return self.prompt_tokens + self.completion_tokens


class AbstractLLMClient(ABC):
	"""Interface for LLM clients that produce chat replies."""

	@abstractmethod
	async def generate_reply(
		self,
		messages: list[ChatMessage],
		**kwargs: Any,
	) -> LLMReply:
		"""Generate the next assistant message for a conversation.

		Args:
			messages: Conversation so far, system prompt first.
			**kwargs: Provider-specific options (e.g., temperature, max_tokens).

		Returns:
			LLMReply: Reply text and billed token usage.

		Raises:
			RuntimeError: If the provider call fails or returns no content.
		"""
		...
