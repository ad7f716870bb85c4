"""Resilient Anthropic Client — wraps AsyncAnthropic with retry, backoff, and error mapping.

Invariants:
    - Rate limits (429): exponential backoff with jitter, respects Retry-After header
    - Transient errors (5xx, 529, connection): max 3 retries with exponential backoff
    - Client errors (4xx except 429): immediate failure, no retry
    - All failures mapped to AnthropicAPIError (core/errors.py)

Design Decisions:
    - Wrapper over raw client: isolates retry logic from the collaborators (ADR: single responsibility)
    - ±25% jitter on backoff: prevents thundering herd on shared rate limits
    - Callers still wrap each call in their own timeout (asyncio.wait_for); retries happen
      inside that budget
"""

import asyncio
import random
import logging

import anthropic
from anthropic import (
    APIError,
    APIConnectionError,
    APIStatusError,
    RateLimitError,
    APITimeoutError,
    InternalServerError,
)

from app.core.errors import AnthropicAPIError, ErrorContext

logger = logging.getLogger(__name__)

# 529 Overloaded is not re-exported by the SDK; detect via status code.
_OVERLOADED_STATUS = 529


def _is_overloaded(e: APIError) -> bool:
    """Check if error is Anthropic 529 Overloaded."""
    return isinstance(e, APIStatusError) and e.status_code == _OVERLOADED_STATUS


class ResilientAnthropicClient:
    """Wraps Anthropic client with retry logic, timeouts, and error mapping."""

    def __init__(
        self,
        api_key: str,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 30_000,
        timeout_seconds: int = 60,
    ):
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=timeout_seconds,
            max_retries=0,
        )
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def create_message(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        messages: list,
        context: ErrorContext | None = None,
    ):
        """Create message with automatic retry on transient failures."""
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.messages.create(
                    model=model,
                    max_tokens=max_tokens,
                    system=system,
                    messages=messages,
                )
                self._log_success(response, attempt)
                return response

            except RateLimitError as e:
                await self._handle_rate_limit(e, attempt, context)

            except (APIConnectionError, InternalServerError) as e:
                await self._handle_transient_error(e, attempt, context)

            except APITimeoutError:
                raise AnthropicAPIError(
                    "API timeout", "timeout", context=context,
                )

            except APIError as e:
                if _is_overloaded(e):
                    await self._handle_transient_error(e, attempt, context)
                    continue
                raise AnthropicAPIError(
                    str(e), "client_error", context=context,
                )

    def _log_success(self, response, attempt: int) -> None:
        usage = response.usage
        logger.info(
            "Anthropic API success",
            extra={
                "attempt": attempt + 1,
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
            },
        )

    async def _handle_rate_limit(
        self, e: RateLimitError, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle rate limit error with retry or raise."""
        retry_after_ms = self._extract_retry_after(e)
        if attempt >= self.max_retries:
            raise AnthropicAPIError(
                "Rate limit exceeded after retries",
                "rate_limit",
                retry_after_ms=retry_after_ms,
                context=context,
            )
        delay = retry_after_ms or self._backoff(attempt)
        logger.warning(
            f"Rate limit hit, retry after {delay}ms (attempt {attempt + 1})",
        )
        await asyncio.sleep(delay / 1000)

    async def _handle_transient_error(
        self, e: Exception, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle transient errors with retry or raise."""
        if attempt >= self.max_retries:
            raise AnthropicAPIError(
                f"Transient failure after {self.max_retries} retries: {e}",
                "connection_error",
                context=context,
            )
        delay = self._backoff(attempt)
        logger.warning(f"Transient error, retry after {delay}ms: {e}")
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    def _extract_retry_after(self, error: RateLimitError) -> int | None:
        """Extract Retry-After header (returns milliseconds)."""
        response = getattr(error, "response", None)
        if response is None:
            return None
        val = response.headers.get("retry-after")
        if val and val.isdigit():
            return int(val) * 1000
        return None
