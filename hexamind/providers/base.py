"""Abstract base for all chat-completion providers."""

from abc import ABC, abstractmethod
from enum import Enum

# {"role": "system" | "user" | "assistant", "content": str}
ChatMessage = dict[str, str]


class LLMErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    UNKNOWN = "unknown"


class LLMError(Exception):
    """Raised when a provider call fails."""

    def __init__(
        self,
        provider_name: str,
        kind: LLMErrorKind,
        message: str,
        retry_after: float | None = None,
    ) -> None:
        self.provider_name = provider_name
        self.kind = kind
        self.retry_after = retry_after
        super().__init__(f"[{provider_name}] {kind.value}: {message}")


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header value given in seconds."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def split_system(messages: list[ChatMessage]) -> tuple[str, list[ChatMessage]]:
    """Pull system messages out for providers that take them separately.

    Remaining messages are merged so roles alternate and the first one is a
    user message, as the Anthropic and Gemini APIs require.
    """
    system_parts = [m["content"] for m in messages if m["role"] == "system"]
    merged: list[ChatMessage] = []
    for m in messages:
        if m["role"] == "system":
            continue
        if merged and merged[-1]["role"] == m["role"]:
            merged[-1] = {"role": m["role"], "content": merged[-1]["content"] + "\n\n" + m["content"]}
        else:
            merged.append({"role": m["role"], "content": m["content"]})
    if not merged or merged[0]["role"] != "user":
        merged.insert(0, {"role": "user", "content": "議論を始めてください。"})
    return "\n\n".join(system_parts), merged


class LLMProvider(ABC):
    """Abstract base for all chat-completion providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'openai', 'anthropic')."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Run one chat completion and return its text.

        A response without text yields "" rather than an error.

        Raises:
            LLMError: On API failure, rate limiting or an unusable response.
        """
        ...
