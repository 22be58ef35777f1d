"""Step cache abstraction."""

from __future__ import annotations

from typing import Protocol

from .models import CacheEntry, CacheSetParams


class StepCache(Protocol):
    """Content-addressed store of prior step outputs.

    There is no TTL: entries live until overwritten or explicitly
    invalidated.
    """

    async def get(self, cache_key: str) -> CacheEntry | None:
        """Return the entry for ``cache_key`` or ``None`` on a miss."""

    async def set(self, params: CacheSetParams) -> None:
        """Insert, or overwrite artifacts/data/scope of an existing key."""

    async def invalidate_step(self, workflow_name: str, step_id: str) -> int:
        """Delete every entry of one step; return the number removed."""

    async def invalidate_workflow(self, workflow_name: str) -> int:
        """Delete every entry of one workflow; return the number removed."""
