"""OpenAI provider using openai SDK with native async."""

import logging
import os
import time

import openai
from openai import AsyncOpenAI

from config.config_loader import ModelSpec
from hexamind.errors import ConfigurationError
from hexamind.providers.base import ChatMessage, LLMError, LLMErrorKind, LLMProvider, parse_retry_after

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions via openai SDK. Retries are left to the gateway."""

    def __init__(self, spec: ModelSpec, timeout_sec: float = 60.0) -> None:
        self._spec = spec
        api_key = os.environ.get(spec.api_key_env, "").strip()
        if not api_key:
            raise ConfigurationError(f"Missing API key for {spec.id}: {spec.api_key_env}")
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=spec.base_url,
            timeout=timeout_sec,
            max_retries=0,
        )

    def name(self) -> str:
        return "openai"

    async def complete(
        self,
        messages: list[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        start = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.RateLimitError as exc:
            retry_after = parse_retry_after(exc.response.headers.get("retry-after"))
            raise LLMError(self.name(), LLMErrorKind.RATE_LIMITED, str(exc), retry_after) from exc
        except openai.APITimeoutError as exc:
            raise LLMError(self.name(), LLMErrorKind.TIMEOUT, str(exc)) from exc
        except openai.APIError as exc:
            raise LLMError(self.name(), LLMErrorKind.UNKNOWN, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if choice is None or not choice.message.content:
            logger.warning("OpenAI %s returned no text content", model)
            return ""

        logger.info(
            "OpenAI %s: %.2fs, %s tokens",
            model,
            latency,
            response.usage.total_tokens if response.usage else None,
        )
        return choice.message.content
