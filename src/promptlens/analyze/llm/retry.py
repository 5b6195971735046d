from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from ...errors import ProviderAuthError, ProviderRequestError, ResponseParseError
from ...logging import PromptLensLogger

T = TypeVar("T")


def is_transient_error(error: BaseException) -> bool:
    """
    Whether retrying ``error`` can succeed.

    Retryable: network failures and timeouts, HTTP 5xx, HTTP 429.
    Terminal: HTTP 401/403, other 4xx, malformed or mismatched responses.
    """
    if isinstance(error, (ProviderAuthError, ResponseParseError)):
        return False
    if isinstance(error, ProviderRequestError):
        status = error.status_code or 0
        return status == 429 or status >= 500
    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError)):
        return True
    return False


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    is_retryable: Callable[[BaseException], bool] = field(default=is_transient_error)

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1``: base * 2^attempt, capped."""
        return min(self.base_delay * (2**attempt), self.max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    logger: Optional[PromptLensLogger] = None,
    component: str = "retry",
) -> T:
    """
    Run ``operation`` until it succeeds, fails terminally or retries run out.

    The operation is attempted at most ``policy.max_retries + 1`` times. The
    last error is re-raised unchanged.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= policy.max_retries or not policy.is_retryable(exc):
                raise
            delay = policy.delay_for(attempt)
            if logger:
                logger.debug(
                    "retry_scheduled",
                    component=component,
                    attempt=attempt + 1,
                    max_retries=policy.max_retries,
                    delay_seconds=delay,
                    error=str(exc),
                )
            await asyncio.sleep(delay)
            attempt += 1
