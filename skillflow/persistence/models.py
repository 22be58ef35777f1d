"""Data models for persisted run state."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

RunStatus = Literal["queued", "running", "completed", "failed", "cancelled"]
StepStatus = Literal["pending", "running", "completed", "skipped", "failed"]
TriggerType = Literal["initial", "update"]

TERMINAL_RUN_STATUSES = frozenset({"completed", "failed", "cancelled"})
TERMINAL_STEP_STATUSES = frozenset({"completed", "skipped", "failed"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class RunError(BaseModel):
    code: str
    message: str
    failed_step_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class StepError(BaseModel):
    code: str
    message: str
    attempt: int
    timestamp: datetime = Field(default_factory=utcnow)
    details: Optional[Dict[str, Any]] = None


class Run(BaseModel):
    """One execution instance of a workflow."""

    id: str = Field(default_factory=new_id)
    tenant_id: str
    workflow_name: str
    workflow_version: str
    trigger_type: TriggerType = "initial"
    trigger_payload: Dict[str, Any] = Field(default_factory=dict)
    status: RunStatus = "queued"
    base_run_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error: Optional[RunError] = None
    created_at: datetime = Field(default_factory=utcnow)


class RunStep(BaseModel):
    """Execution record of one step within a run."""

    id: str = Field(default_factory=new_id)
    run_id: str
    tenant_id: str
    step_id: str
    skill_id: str
    status: StepStatus = "pending"
    input_hash: str
    attempt: int = Field(default=1, ge=1)
    output_artifact_ids: Optional[List[str]] = None
    output_data: Optional[Dict[str, Any]] = None
    cache_hit: bool = False
    duration_ms: Optional[int] = None
    error: Optional[StepError] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
