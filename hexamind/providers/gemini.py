"""Gemini provider using google-genai SDK with native async."""

import logging
import os
import time

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from config.config_loader import ModelSpec
from hexamind.errors import ConfigurationError
from hexamind.providers.base import ChatMessage, LLMError, LLMErrorKind, LLMProvider, split_system

logger = logging.getLogger(__name__)


class GeminiProvider(LLMProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, spec: ModelSpec, timeout_sec: float = 60.0) -> None:
        self._spec = spec
        api_key = os.environ.get(spec.api_key_env, "").strip()
        if not api_key:
            raise ConfigurationError(f"Missing API key for {spec.id}: {spec.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return "gemini"

    async def complete(
        self,
        messages: list[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        system, turns = split_system(messages)
        contents = [
            genai_types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[genai_types.Part(text=m["content"])],
            )
            for m in turns
        ]
        start = time.monotonic()
        try:
            response = await self._client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=genai_types.GenerateContentConfig(
                    system_instruction=system or None,
                    max_output_tokens=max_tokens,
                    temperature=temperature,
                ),
            )
        except genai_errors.APIError as exc:
            kind = LLMErrorKind.RATE_LIMITED if exc.code == 429 else LLMErrorKind.UNKNOWN
            raise LLMError(self.name(), kind, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            logger.warning("Gemini %s returned no text", model)
            return ""

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        logger.info("Gemini %s: %.2fs, %s tokens", model, latency, token_count)
        return response.text
