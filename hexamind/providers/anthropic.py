"""Anthropic Claude provider using anthropic SDK with native async."""

import logging
import os
import time

import anthropic as anthropic_sdk

from config.config_loader import ModelSpec
from hexamind.errors import ConfigurationError
from hexamind.providers.base import (
    ChatMessage,
    LLMError,
    LLMErrorKind,
    LLMProvider,
    parse_retry_after,
    split_system,
)

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, spec: ModelSpec, timeout_sec: float = 60.0) -> None:
        self._spec = spec
        api_key = os.environ.get(spec.api_key_env, "").strip()
        if not api_key:
            raise ConfigurationError(f"Missing API key for {spec.id}: {spec.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key, timeout=timeout_sec, max_retries=0)

    def name(self) -> str:
        return "anthropic"

    async def complete(
        self,
        messages: list[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        system, turns = split_system(messages)
        start = time.monotonic()
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=min(temperature, 1.0),
                system=system,
                messages=turns,
            )
        except anthropic_sdk.RateLimitError as exc:
            retry_after = parse_retry_after(exc.response.headers.get("retry-after"))
            raise LLMError(self.name(), LLMErrorKind.RATE_LIMITED, str(exc), retry_after) from exc
        except anthropic_sdk.APITimeoutError as exc:
            raise LLMError(self.name(), LLMErrorKind.TIMEOUT, str(exc)) from exc
        except anthropic_sdk.APIError as exc:
            raise LLMError(self.name(), LLMErrorKind.UNKNOWN, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        text_blocks = [b.text for b in (response.content or []) if b.type == "text"]
        if not text_blocks:
            logger.warning("Anthropic %s returned no text blocks", model)
            return ""

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens

        logger.info("Anthropic %s: %.2fs, %s tokens", model, latency, token_count)
        return "\n".join(text_blocks)
