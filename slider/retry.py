from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from slider.errors import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    delay_seconds: float


async def retry_call(
    call: Callable[[], T],
    *,
    policy: RetryPolicy,
    retry_if: Callable[[Exception], bool],
    description: str,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Invoke `call` until it returns, at most `policy.max_attempts` times.

    Errors rejected by `retry_if` propagate immediately. After the last retryable
    failure a `RetryExhaustedError` is raised, chained to that failure. The delay
    only separates attempts; there is no sleep after the final one.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return call()
        except Exception as exc:
            if not retry_if(exc):
                raise
            if attempt >= policy.max_attempts:
                raise RetryExhaustedError(description, attempt) from exc
            logger.warning(
                "[retry] %s failed (attempt %s/%s): %s; retrying in %ss",
                description,
                attempt,
                policy.max_attempts,
                exc,
                policy.delay_seconds,
            )
            await sleep(policy.delay_seconds)
