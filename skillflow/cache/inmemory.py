"""In-memory implementation of the step cache."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict

from .base import StepCache
from .models import CacheEntry, CacheSetParams

logger = logging.getLogger(__name__)


class InMemoryStepCache(StepCache):
    """Keep cache entries in local memory.

    Useful for tests or when no cache database is configured. Entries are
    lost on process restart.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}

    async def get(self, cache_key: str) -> CacheEntry | None:
        entry = self._entries.get(cache_key)
        if entry is None:
            logger.debug(f"Cache miss for key: {cache_key}")
            return None
        logger.debug(f"Cache hit for key: {cache_key}")
        return entry.model_copy(deep=True)

    async def set(self, params: CacheSetParams) -> None:
        existing = self._entries.get(params.cache_key)
        if existing is not None:
            self._entries[params.cache_key] = existing.model_copy(
                update={
                    "artifact_ids": list(params.artifact_ids),
                    "data": params.data,
                    "scope": params.scope,
                    "updated_at": datetime.now(timezone.utc),
                },
                deep=True,
            )
            logger.debug(f"Cache updated for key: {params.cache_key}")
            return
        self._entries[params.cache_key] = CacheEntry(**params.model_dump())
        logger.debug(f"Cache entry created for key: {params.cache_key}")

    async def invalidate_step(self, workflow_name: str, step_id: str) -> int:
        keys = [
            key
            for key, entry in self._entries.items()
            if entry.workflow_name == workflow_name and entry.step_id == step_id
        ]
        for key in keys:
            del self._entries[key]
        logger.debug(f"Invalidated {len(keys)} cache entries for {workflow_name}:{step_id}")
        return len(keys)

    async def invalidate_workflow(self, workflow_name: str) -> int:
        keys = [k for k, e in self._entries.items() if e.workflow_name == workflow_name]
        for key in keys:
            del self._entries[key]
        logger.debug(f"Invalidated {len(keys)} cache entries for workflow {workflow_name}")
        return len(keys)
