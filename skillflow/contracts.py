"""Core contracts for skillflow workflows and runs."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    DEFAULT_BACKOFF_MS,
    DEFAULT_CACHE_ENABLED,
    DEFAULT_CACHE_SCOPE,
    DEFAULT_MAX_ATTEMPTS,
    MAX_RETRY_ATTEMPTS,
)

CacheScope = Literal["global", "run_only"]
StepOutputStatus = Literal["completed", "skipped", "failed"]


class StepOutput(BaseModel):
    """Concluded result of one step, addressable by ``step_id`` in a run."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    status: StepOutputStatus
    output_artifact_ids: List[str] = Field(default_factory=list)
    data: Optional[Dict[str, Any]] = None


class RunContext(BaseModel):
    """Read-only view handed to input selectors while computing a step input."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    tenant_id: str
    workflow_name: str
    trigger_payload: Dict[str, Any] = Field(default_factory=dict)
    step_outputs: Dict[str, StepOutput] = Field(default_factory=dict)
    artifacts: Dict[str, List[str]] = Field(default_factory=dict)

    base_run_id: Optional[str] = None
    base_run_outputs: Optional[Dict[str, StepOutput]] = None
    base_run_artifacts: Optional[Dict[str, List[str]]] = None


CompiledInputSelector = Callable[[RunContext], Dict[str, Any]]


def _empty_input(ctx: RunContext) -> Dict[str, Any]:
    return {}


class CachePolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = DEFAULT_CACHE_ENABLED
    scope: CacheScope = DEFAULT_CACHE_SCOPE


class RetryPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1, le=MAX_RETRY_ATTEMPTS)
    backoff_ms: int = Field(default=DEFAULT_BACKOFF_MS, ge=0)


class StepSpec(BaseModel):
    """Defines one node of a workflow DAG."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    skill_id: str
    depends_on: List[str] = Field(default_factory=list)
    input_selector: CompiledInputSelector = _empty_input
    cache_policy: CachePolicy = Field(default_factory=CachePolicy)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    description: Optional[str] = None


class WorkflowSpec(BaseModel):
    """Compiled workflow. Identity is ``(workflow_name, version)``."""

    model_config = ConfigDict(frozen=True)

    workflow_name: str
    version: str
    description: Optional[str] = None
    steps: List[StepSpec] = Field(default_factory=list)

    def get_step(self, step_id: str) -> Optional[StepSpec]:
        return next((s for s in self.steps if s.step_id == step_id), None)


class SkillArtifact(BaseModel):
    """Artifact produced by a skill."""

    artifact_type: str
    uri: str
    content_hash: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SkillResult(BaseModel):
    """Standard envelope returned by skill execution."""

    ok: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    artifacts: List[SkillArtifact] = Field(default_factory=list)

    def artifact_ids(self) -> List[str]:
        """Return the non-empty ``metadata["id"]`` of every artifact."""
        ids = []
        for artifact in self.artifacts:
            artifact_id = artifact.metadata.get("id")
            if artifact_id:
                ids.append(str(artifact_id))
        return ids


class ErrorInfo(BaseModel):
    code: str
    message: str
    attempt: Optional[int] = None


class StepResult(BaseModel):
    """Terminal outcome of a single step execution."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    status: StepOutputStatus
    artifact_ids: List[str] = Field(default_factory=list)
    data: Optional[Dict[str, Any]] = None
    cache_hit: bool = False
    duration_ms: int = 0
    error: Optional[ErrorInfo] = None

    def to_output(self) -> StepOutput:
        return StepOutput(
            step_id=self.step_id,
            status=self.status,
            output_artifact_ids=list(self.artifact_ids),
            data=self.data,
        )
