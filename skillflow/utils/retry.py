from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

Sleep = Callable[[float], Awaitable[None]]


def compute_backoff(attempt: int, base_ms: int) -> int:
    """Delay in milliseconds after failed ``attempt`` (1-based): doubles each time."""
    return base_ms * 2 ** (attempt - 1)


async def schedule_retry(attempt: int, base_ms: int, sleep: Sleep = asyncio.sleep) -> int:
    """Sleep for the computed backoff delay before retrying; return the delay."""
    delay_ms = compute_backoff(attempt, base_ms)
    await sleep(delay_ms / 1000)
    return delay_ms
