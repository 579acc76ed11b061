from __future__ import annotations

import asyncio
import random

MAX_BACKOFF_SECONDS = 30.0


def compute_backoff(
    attempt: int,
    base: float = 1.5,
    jitter: float = 0.5,
    max_delay: float = MAX_BACKOFF_SECONDS,
) -> float:
    """Compute exponential backoff with jitter, capped at ``max_delay``."""
    delay = min(base ** attempt, max_delay)
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt)
    await asyncio.sleep(delay)
