"""Accumulated state of one run, merged step by step."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from .contracts import RunContext, StepOutput, StepResult


class RunStateUpdate(BaseModel):
    """Partial state produced by executing one or more steps."""

    model_config = ConfigDict(frozen=True)

    step_results: Dict[str, StepResult] = Field(default_factory=dict)
    artifacts: Dict[str, List[str]] = Field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def from_result(cls, result: StepResult) -> "RunStateUpdate":
        error = None
        if result.status == "failed" and result.error is not None:
            error = f"Step {result.step_id} failed: {result.error.message}"
        return cls(
            step_results={result.step_id: result},
            artifacts={result.step_id: list(result.artifact_ids)},
            error=error,
        )


class RunState(BaseModel):
    """Immutable snapshot of a run's progress.

    :meth:`apply` never mutates the receiver: it returns a new state whose
    maps are fresh copies, so readers holding an older snapshot are never
    affected by later merges.
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    tenant_id: str
    workflow_name: str
    trigger_payload: Dict[str, Any] = Field(default_factory=dict)
    step_results: Mapping[str, StepResult] = Field(default_factory=dict)
    artifacts: Mapping[str, List[str]] = Field(default_factory=dict)
    base_run_id: Optional[str] = None
    base_run_outputs: Optional[Mapping[str, StepOutput]] = None
    base_run_artifacts: Optional[Mapping[str, List[str]]] = None
    error: Optional[str] = None

    def apply(self, update: RunStateUpdate) -> "RunState":
        """Merge ``update`` into a new state; later results win per step."""
        return self.model_copy(
            update={
                "step_results": {**self.step_results, **update.step_results},
                "artifacts": {**self.artifacts, **update.artifacts},
                "error": update.error if update.error is not None else self.error,
            }
        )

    def to_context(self) -> RunContext:
        """Build the read-only selector view of this state."""
        return RunContext(
            run_id=self.run_id,
            tenant_id=self.tenant_id,
            workflow_name=self.workflow_name,
            trigger_payload=self.trigger_payload,
            step_outputs={sid: r.to_output() for sid, r in self.step_results.items()},
            artifacts={sid: list(ids) for sid, ids in self.artifacts.items()},
            base_run_id=self.base_run_id,
            base_run_outputs=dict(self.base_run_outputs) if self.base_run_outputs is not None else None,
            base_run_artifacts=(
                dict(self.base_run_artifacts) if self.base_run_artifacts is not None else None
            ),
        )

    @property
    def completed_step_ids(self) -> Set[str]:
        return {
            sid for sid, r in self.step_results.items() if r.status in ("completed", "skipped")
        }

    @property
    def failed_step_ids(self) -> Set[str]:
        return {sid for sid, r in self.step_results.items() if r.status == "failed"}
