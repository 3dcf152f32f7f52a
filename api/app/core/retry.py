from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class RetryPolicy:
    max_attempts: int = 3
    base_seconds: float = 0.5
    max_seconds: float = 4.0
    jitter_ratio: float = 0.25

    def compute_delay_seconds(self, *, attempt: int) -> float:
        if self.base_seconds <= 0:
            return 0.0
        multiplier = max(0, attempt - 1)
        delay = min(self.base_seconds * (2**multiplier), self.max_seconds)
        jitter = random.uniform(0.0, self.jitter_ratio) * delay
        return min(delay + jitter, self.max_seconds)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...],
    description: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``operation`` until it succeeds or ``policy.max_attempts`` is exhausted.

    Only exceptions listed in ``retry_on`` are retried; the last one is re-raised.
    """
    attempts = max(1, policy.max_attempts)
    attempt = 1
    while True:
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= attempts:
                logger.error("%s failed after %s attempts: %s", description, attempt, exc)
                raise
            delay = policy.compute_delay_seconds(attempt=attempt)
            logger.warning("%s failed attempt=%s: %s; retry in %.2fs", description, attempt, exc, delay)
            await sleep(delay)
            attempt += 1
