"""Anthropic Claude provider for summary generation."""

from __future__ import annotations

import time

from marutham.core.errors import ConfigurationError, NetworkError
from marutham.core.llm.provider import ProviderResponse


class AnthropicProvider:
    """Claude over the async Anthropic SDK.

    SDK auth and connection failures are re-raised as ``ConfigurationError``
    and ``NetworkError`` so the summary flow can classify them; rate limits
    keep the SDK's own message, which mentions the 429.
    """

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-5-20250929") -> None:
        import anthropic

        self._sdk = anthropic
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> ProviderResponse:
        start = time.monotonic()
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_message,
                messages=[{"role": "user", "content": user_message}],
            )
        except self._sdk.AuthenticationError as exc:
            raise ConfigurationError(f"Anthropic rejected the API key: {exc}") from exc
        except self._sdk.APIConnectionError as exc:
            raise NetworkError(f"Could not connect to Anthropic: {exc}") from exc
        elapsed_ms = (time.monotonic() - start) * 1000

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return ProviderResponse(
            content=text.strip(),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.model,
            latency_ms=elapsed_ms,
        )
