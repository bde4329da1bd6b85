"""Reusable retry/backoff helpers shared by adapters and the enrichment queue."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff policy.

    ``max_retries`` counts retries, not calls: a policy with ``max_retries=2``
    makes at most three calls. The delay before retry ``n`` (1-based) is
    ``base_delay * 2 ** (n - 1)`` capped at ``max_delay``.
    """

    max_retries: int = 1
    base_delay: float = 0.0
    max_delay: float = 30.0
    retry_on: Tuple[Type[BaseException], ...] = field(default=(Exception,))

    def delay_for(self, retry_number: int) -> float:
        if retry_number < 1 or self.base_delay <= 0:
            return 0.0
        return min(self.max_delay, self.base_delay * (2 ** (retry_number - 1)))

    def is_retryable(self, exc: BaseException) -> bool:
        return isinstance(exc, self.retry_on)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Optional[SleepFn] = None,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """Call ``fn`` until it succeeds, a non-retryable error occurs, or retries run out."""
    sleep = sleep or asyncio.sleep
    retries = 0
    while True:
        try:
            return await fn()
        except Exception as exc:
            if not policy.is_retryable(exc) or retries >= policy.max_retries:
                raise
            retries += 1
            if on_retry is not None:
                on_retry(retries, exc)
            delay = policy.delay_for(retries)
            if delay > 0:
                await sleep(delay)
