from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from ..contracts import CacheScope


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheEntry(BaseModel):
    """Prior output of a memoized step, addressed by its cache key."""

    cache_key: str
    workflow_name: str
    step_id: str
    input_hash: str
    artifact_ids: List[str] = PydanticField(default_factory=list)
    data: Optional[Dict[str, Any]] = None
    scope: CacheScope = "global"
    created_at: datetime = PydanticField(default_factory=_utcnow)
    updated_at: datetime = PydanticField(default_factory=_utcnow)


class CacheSetParams(BaseModel):
    cache_key: str
    workflow_name: str
    step_id: str
    input_hash: str
    artifact_ids: List[str]
    data: Optional[Dict[str, Any]] = None
    scope: CacheScope = "global"


class StepCacheRow(SQLModel, table=True):
    """Table mapping cache keys to artifact references."""

    __tablename__ = "step_cache"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    cache_key: str = Field(index=True, unique=True)
    workflow_name: str = Field(index=True)
    step_id: str = Field(index=True)
    input_hash: str
    artifact_ids: list = Field(default_factory=list, sa_column=Column(JSON))
    data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    scope: str = Field(default="global")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def to_entry(self) -> CacheEntry:
        return CacheEntry(
            cache_key=self.cache_key,
            workflow_name=self.workflow_name,
            step_id=self.step_id,
            input_hash=self.input_hash,
            artifact_ids=list(self.artifact_ids or []),
            data=self.data,
            scope=self.scope,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
