"""LLM provider implementations."""

from marutham.core.llm.providers.anthropic import AnthropicProvider
from marutham.core.llm.providers.gemini import GeminiProvider
from marutham.core.llm.providers.mock import MockProvider
from marutham.core.llm.providers.openai import OpenAIProvider

__all__ = ["AnthropicProvider", "GeminiProvider", "MockProvider", "OpenAIProvider"]
