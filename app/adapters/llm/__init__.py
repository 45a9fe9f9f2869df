"""LLM adapter layer - abstracts over LLM providers."""

from app.adapters.llm.base import AbstractLLMClient, ChatMessage, LLMReply
from app.adapters.llm.factory import create_llm_client
from app.adapters.llm.openai_client import OpenAIClient

__all__ = [
    "AbstractLLMClient",
    "ChatMessage",
    "LLMReply",
    "OpenAIClient",
    "create_llm_client",
]
