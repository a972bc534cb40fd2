"""OpenAI chat-completions provider for summary generation."""

from __future__ import annotations

import time

from marutham.core.errors import ConfigurationError, NetworkError
from marutham.core.llm.provider import ProviderResponse


class OpenAIProvider:
    """GPT over the async OpenAI SDK. Errors are translated like the Anthropic provider's."""

    def __init__(self, api_key: str, model: str = "gpt-4o") -> None:
        import openai

        self._sdk = openai
        self.client = openai.AsyncOpenAI(api_key=api_key)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> ProviderResponse:
        messages = [
            {"role": "system", "content": system_message},
            {"role": "user", "content": user_message},
        ]
        start = time.monotonic()
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=messages,
            )
        except self._sdk.AuthenticationError as exc:
            raise ConfigurationError(f"OpenAI rejected the API key: {exc}") from exc
        except self._sdk.APIConnectionError as exc:
            raise NetworkError(f"Could not connect to OpenAI: {exc}") from exc
        elapsed_ms = (time.monotonic() - start) * 1000

        if not response.choices:
            raise RuntimeError(f"OpenAI returned no choices for model {self.model}")
        usage = response.usage
        return ProviderResponse(
            content=(response.choices[0].message.content or "").strip(),
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self.model,
            latency_ms=elapsed_ms,
        )
