"""SQL implementation of the step cache on an async SQLAlchemy engine."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel, select

from .base import StepCache
from .models import CacheEntry, CacheSetParams, StepCacheRow

logger = logging.getLogger(__name__)


class SQLStepCache(StepCache):
    """Persist cache entries in the ``step_cache`` table."""

    def __init__(self, database_url: str) -> None:
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_async_engine(
            database_url, echo=False, future=True, connect_args=connect_args
        )
        self._initialized = False

    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all, tables=[StepCacheRow.__table__])
        self._initialized = True

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if not self._initialized:
            await self.init_db()
        async with AsyncSession(self.engine) as session:
            yield session

    async def _find(self, session: AsyncSession, cache_key: str) -> StepCacheRow | None:
        result = await session.execute(
            select(StepCacheRow).where(StepCacheRow.cache_key == cache_key)
        )
        return result.scalars().first()

    async def get(self, cache_key: str) -> CacheEntry | None:
        async with self.session() as session:
            row = await self._find(session, cache_key)
            if row is None:
                logger.debug(f"Cache miss for key: {cache_key}")
                return None
            logger.debug(f"Cache hit for key: {cache_key}")
            return row.to_entry()

    async def set(self, params: CacheSetParams) -> None:
        async with self.session() as session:
            row = await self._find(session, params.cache_key)
            if row is not None:
                row.artifact_ids = list(params.artifact_ids)
                row.data = params.data
                row.scope = params.scope
                row.updated_at = datetime.now(timezone.utc)
                logger.debug(f"Cache updated for key: {params.cache_key}")
            else:
                session.add(StepCacheRow(**params.model_dump()))
                logger.debug(f"Cache entry created for key: {params.cache_key}")
            await session.commit()

    async def invalidate_step(self, workflow_name: str, step_id: str) -> int:
        async with self.session() as session:
            result = await session.execute(
                delete(StepCacheRow).where(
                    StepCacheRow.workflow_name == workflow_name,
                    StepCacheRow.step_id == step_id,
                )
            )
            await session.commit()
        count = result.rowcount or 0
        logger.debug(f"Invalidated {count} cache entries for {workflow_name}:{step_id}")
        return count

    async def invalidate_workflow(self, workflow_name: str) -> int:
        async with self.session() as session:
            result = await session.execute(
                delete(StepCacheRow).where(StepCacheRow.workflow_name == workflow_name)
            )
            await session.commit()
        count = result.rowcount or 0
        logger.debug(f"Invalidated {count} cache entries for workflow {workflow_name}")
        return count

    async def close(self) -> None:
        await self.engine.dispose()
