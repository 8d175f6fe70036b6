"""Generic HTTP chat gateway: POST {messages, model, max_tokens, temperature} -> {text}."""

import logging
import os

import httpx

from config.config_loader import ModelSpec
from hexamind.errors import ConfigurationError
from hexamind.providers.base import ChatMessage, LLMError, LLMErrorKind, LLMProvider, parse_retry_after

logger = logging.getLogger(__name__)

# Older deployments of the board endpoint answer with "response" instead of "text".
_TEXT_FIELDS = ("text", "response")


class HttpGatewayProvider(LLMProvider):
    """Chat completions through a JSON HTTP endpoint fronting the real model."""

    def __init__(
        self,
        spec: ModelSpec,
        timeout_sec: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not spec.base_url:
            raise ConfigurationError(f"Model {spec.id} needs a base_url for the http gateway")
        self._spec = spec
        self._url = spec.base_url
        self._timeout_sec = timeout_sec
        self._transport = transport
        self._api_key = os.environ.get(spec.api_key_env, "").strip()

    def name(self) -> str:
        return "http"

    async def complete(
        self,
        messages: list[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        body = {
            "messages": messages,
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout_sec, transport=self._transport) as client:
                response = await client.post(self._url, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            raise LLMError(self.name(), LLMErrorKind.TIMEOUT, f"Request timed out after {self._timeout_sec}s") from exc
        except httpx.HTTPError as exc:
            raise LLMError(self.name(), LLMErrorKind.UNKNOWN, f"Request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            if response.is_error:
                data = {}
            else:
                raise LLMError(
                    self.name(), LLMErrorKind.MALFORMED, f"Non-JSON response (HTTP {response.status_code})"
                ) from exc

        if response.status_code == 429:
            retry_after = parse_retry_after(response.headers.get("retry-after"))
            if retry_after is None and isinstance(data, dict) and data.get("retryAfter") is not None:
                retry_after = parse_retry_after(str(data["retryAfter"]))
            raise LLMError(self.name(), LLMErrorKind.RATE_LIMITED, "Rate limited by gateway", retry_after)

        if response.is_error:
            detail = data.get("error") if isinstance(data, dict) else None
            raise LLMError(
                self.name(), LLMErrorKind.UNKNOWN, f"HTTP {response.status_code}: {detail or 'gateway error'}"
            )

        if not isinstance(data, dict):
            raise LLMError(self.name(), LLMErrorKind.MALFORMED, "Response body is not a JSON object")

        for field_name in _TEXT_FIELDS:
            text = data.get(field_name)
            if isinstance(text, str):
                return text

        logger.warning("Gateway response for %s has no text field; treating as empty", model)
        return ""
