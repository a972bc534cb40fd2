"""Summary LLM client: one completion call per summary request."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from marutham.core.llm.provider import LLMProvider, ProviderResponse
from marutham.core.llm.system_prompt import build_full_system_prompt

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Structured response from the summary LLM."""

    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0


class SummaryLLMClient:
    """Invokes the configured provider with an assembled summary prompt."""

    def __init__(self, provider: LLMProvider, provider_name: str = "mock") -> None:
        self.provider = provider
        self.provider_name = provider_name

    async def invoke(
        self,
        user_message: str,
        *,
        system_message: str = "",
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Call the provider once. Provider exceptions propagate unchanged."""
        provider_response: ProviderResponse = await self.provider.generate(
            system_message=build_full_system_prompt(system_message),
            user_message=user_message,
            max_tokens=max_tokens,
            temperature=temperature,
        )

        logger.info(
            "Summary LLM call: provider=%s, model=%s, tokens=%d+%d, latency=%.0fms",
            self.provider_name,
            provider_response.model,
            provider_response.input_tokens,
            provider_response.output_tokens,
            provider_response.latency_ms,
        )

        return LLMResponse(
            content=provider_response.content.strip(),
            model=provider_response.model,
            usage={
                "input_tokens": provider_response.input_tokens,
                "output_tokens": provider_response.output_tokens,
            },
            latency_ms=provider_response.latency_ms,
        )
