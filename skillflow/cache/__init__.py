"""Step cache backends for skillflow."""

from __future__ import annotations

from typing import Optional

from ..config import SkillflowConfig, load_config
from .base import StepCache
from .inmemory import InMemoryStepCache
from .models import CacheEntry, CacheSetParams, StepCacheRow
from .sql import SQLStepCache


def get_step_cache(
    url: Optional[str] = None, config: Optional[SkillflowConfig] = None
) -> StepCache:
    """Factory function to obtain a step cache.

    ``url`` may be any SQLAlchemy async URL (for example
    ``sqlite+aiosqlite:///cache.db``). Without one, the configured
    ``cache.url`` is used, falling back to an in-memory cache.
    """
    if url is None:
        config = config or load_config()
        url = config.cache.url
    if not url:
        return InMemoryStepCache()
    return SQLStepCache(url)


__all__ = [
    "CacheEntry",
    "CacheSetParams",
    "InMemoryStepCache",
    "SQLStepCache",
    "StepCache",
    "StepCacheRow",
    "get_step_cache",
]
