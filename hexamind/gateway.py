"""Retrying gateway in front of a chat-completion provider."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from config.config_loader import RetryConfig
from hexamind.providers.base import ChatMessage, LLMError, LLMErrorKind, LLMProvider

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt count, per-call timeout and backoff shared by every provider."""

    max_attempts: int = 3
    timeout_sec: float = 60.0
    default_retry_after_sec: float = 60.0
    backoff_base_sec: float = 1.0

    @classmethod
    def from_config(cls, cfg: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=cfg.max_attempts,
            timeout_sec=cfg.timeout_sec,
            default_retry_after_sec=cfg.default_retry_after_sec,
            backoff_base_sec=cfg.backoff_base_sec,
        )

    def is_retryable(self, error: LLMError) -> bool:
        # A malformed body will be malformed again.
        return error.kind is not LLMErrorKind.MALFORMED

    def delay_for(self, error: LLMError, attempt: int) -> float:
        """Seconds to wait after a failed attempt (1-indexed)."""
        if error.kind is LLMErrorKind.RATE_LIMITED:
            if error.retry_after is not None:
                return error.retry_after
            return self.default_retry_after_sec
        return self.backoff_base_sec * attempt


class RequestRateLimiter:
    """Token bucket shared by all gateway clients of a process.

    Holds at most ``requests_per_minute`` tokens and refills continuously.
    """

    def __init__(
        self,
        requests_per_minute: int,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")
        self._capacity = float(requests_per_minute)
        self._rate = requests_per_minute / 60.0
        self._tokens = self._capacity
        self._sleep = sleep
        self._clock = clock
        self._updated = clock()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = self._clock()
                self._tokens = min(self._capacity, self._tokens + (now - self._updated) * self._rate)
                self._updated = now
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait = (1.0 - self._tokens) / self._rate
                logger.debug("Rate limiter waiting %.2fs", wait)
                await self._sleep(wait)


class GatewayClient:
    """Single entry point for LLM calls: timeout, retry and backoff per call."""

    def __init__(
        self,
        provider: LLMProvider,
        policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
        limiter: RequestRateLimiter | None = None,
    ) -> None:
        self._provider = provider
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._limiter = limiter

    @property
    def provider_name(self) -> str:
        return self._provider.name()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def complete(
        self,
        messages: list[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Return the completion text, retrying up to policy.max_attempts times.

        Raises:
            LLMError: The last error once every attempt has failed, or a
                non-retryable error straight away.
        """
        last_error: LLMError | None = None

        for attempt in range(1, self._policy.max_attempts + 1):
            if self._limiter is not None:
                await self._limiter.acquire()
            try:
                return await asyncio.wait_for(
                    self._provider.complete(messages, model, max_tokens, temperature),
                    timeout=self._policy.timeout_sec,
                )
            except TimeoutError:
                last_error = LLMError(
                    self.provider_name,
                    LLMErrorKind.TIMEOUT,
                    f"Request timed out after {self._policy.timeout_sec}s",
                )
            except LLMError as exc:
                last_error = exc
            except Exception as exc:
                last_error = LLMError(self.provider_name, LLMErrorKind.UNKNOWN, f"Unexpected error: {exc}")

            if not self._policy.is_retryable(last_error):
                raise last_error

            logger.warning(
                "LLM call to %s failed (attempt %d/%d): %s",
                model,
                attempt,
                self._policy.max_attempts,
                last_error,
            )

            if attempt < self._policy.max_attempts:
                delay = self._policy.delay_for(last_error, attempt)
                if last_error.kind is LLMErrorKind.RATE_LIMITED:
                    logger.info("Rate limited by %s, retrying in %.1fs", self.provider_name, delay)
                await self._sleep(delay)

        if last_error is None:
            last_error = LLMError(self.provider_name, LLMErrorKind.UNKNOWN, "Retry policy allows no attempts")
        raise last_error
