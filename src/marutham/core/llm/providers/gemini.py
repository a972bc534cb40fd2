"""Google Gemini provider."""

from __future__ import annotations

import time

import httpx

from marutham.core.errors import ConfigurationError, NetworkError
from marutham.core.llm.provider import ProviderResponse


class GeminiProvider:
    """Gemini over the google-genai async client.

    A 401/403 from the API becomes ``ConfigurationError`` and a transport
    failure ``NetworkError``; other API errors keep the SDK's message
    (``429 RESOURCE_EXHAUSTED``, ``400 API key not valid``).
    """

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash") -> None:
        from google import genai

        self.client = genai.Client(api_key=api_key)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> ProviderResponse:
        from google.genai import errors, types

        config = types.GenerateContentConfig(
            system_instruction=system_message,
            temperature=temperature,
            top_k=40,
            top_p=0.95,
            max_output_tokens=max_tokens,
        )
        start = time.monotonic()
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=user_message,
                config=config,
            )
        except errors.APIError as exc:
            if exc.code in (401, 403):
                raise ConfigurationError(f"Gemini rejected the API key: {exc}") from exc
            raise
        except httpx.TransportError as exc:
            raise NetworkError(f"Could not connect to Gemini: {exc}") from exc
        elapsed_ms = (time.monotonic() - start) * 1000

        usage = response.usage_metadata
        return ProviderResponse(
            content=(response.text or "").strip(),
            input_tokens=(usage.prompt_token_count or 0) if usage else 0,
            output_tokens=(usage.candidates_token_count or 0) if usage else 0,
            model=self.model,
            latency_ms=elapsed_ms,
        )
