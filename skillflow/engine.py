"""Run engine: persisted run and step lifecycle."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from .contracts import RunContext, StepOutput, StepResult, StepSpec, WorkflowSpec
from .errors import (
    InputSelectorError,
    InvalidStatusTransition,
    RunNotFoundError,
    RunStepNotFoundError,
)
from .graph import DependencyGraph
from .hashing import InputHasher
from .persistence.models import (
    TERMINAL_RUN_STATUSES,
    TERMINAL_STEP_STATUSES,
    Run,
    RunError,
    RunStatus,
    RunStep,
    StepError,
    StepStatus,
    TriggerType,
    utcnow,
)
from .persistence.repository import RunRepository
from .state import RunState

logger = logging.getLogger(__name__)

_ALLOWED_RUN_TRANSITIONS: Dict[str, frozenset[str]] = {
    "queued": frozenset({"running", "failed", "cancelled"}),
    # running -> running happens when an interrupted run is resumed
    "running": frozenset({"running", "completed", "failed", "cancelled"}),
}


class RunSummary(BaseModel):
    run: Run
    steps_summary: Dict[str, int]


class RunEngine:
    """Creates runs and their step rows and applies status transitions."""

    def __init__(
        self,
        repository: RunRepository,
        graph: Optional[DependencyGraph] = None,
        hasher: Optional[InputHasher] = None,
    ) -> None:
        self._repository = repository
        self._graph = graph or DependencyGraph()
        self._hasher = hasher or InputHasher()

    @property
    def repository(self) -> RunRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Creation

    async def create_run(
        self,
        tenant_id: str,
        workflow: WorkflowSpec,
        trigger_payload: Optional[Dict[str, Any]] = None,
        trigger_type: Optional[TriggerType] = None,
        base_run_id: Optional[str] = None,
    ) -> Run:
        """Persist a queued run and one pending step row per workflow step."""
        run = Run(
            tenant_id=tenant_id,
            workflow_name=workflow.workflow_name,
            workflow_version=workflow.version,
            trigger_type=trigger_type or ("update" if base_run_id else "initial"),
            trigger_payload=trigger_payload or {},
            base_run_id=base_run_id,
        )
        await self._repository.create_run(run)
        await self.create_run_steps(run, workflow)
        logger.info(f"Created run {run.id} for {workflow.workflow_name} v{workflow.version}")
        return run

    async def create_run_steps(self, run: Run, workflow: WorkflowSpec) -> List[RunStep]:
        """Create pending step rows in topological order.

        The stamped input hash is provisional: it only sees the trigger
        payload and is overwritten once the step actually runs.
        """
        context = RunContext(
            run_id=run.id,
            tenant_id=run.tenant_id,
            workflow_name=workflow.workflow_name,
            trigger_payload=run.trigger_payload,
        )
        run_steps = []
        for step in self._graph.topological_sort(workflow.steps):
            initial_input = self.compute_step_input(step, context)
            run_steps.append(
                RunStep(
                    run_id=run.id,
                    tenant_id=run.tenant_id,
                    step_id=step.step_id,
                    skill_id=step.skill_id,
                    input_hash=self._hasher.compute_hash(initial_input),
                )
            )
        await self._repository.create_run_steps(run_steps)
        logger.info(f"Created {len(run_steps)} run steps for run {run.id}")
        return run_steps

    def compute_step_input(self, step: StepSpec, context: RunContext) -> Dict[str, Any]:
        try:
            return step.input_selector(context)
        except InputSelectorError as exc:
            logger.debug(f"Provisional input unavailable for step {step.step_id}: {exc}")
            return {}

    # ------------------------------------------------------------------
    # Runs

    async def get_run(self, run_id: str, tenant_id: str) -> Optional[Run]:
        return await self._repository.get_run(run_id, tenant_id)

    async def require_run(self, run_id: str, tenant_id: str) -> Run:
        run = await self._repository.get_run(run_id, tenant_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    async def get_run_with_summary(self, run_id: str, tenant_id: str) -> Optional[RunSummary]:
        run = await self._repository.get_run(run_id, tenant_id)
        if run is None:
            return None
        steps = await self._repository.list_run_steps(run_id, tenant_id)
        summary = {"total": len(steps)}
        for status in ("pending", "running", "completed", "skipped", "failed"):
            summary[status] = sum(1 for s in steps if s.status == status)
        return RunSummary(run=run, steps_summary=summary)

    async def update_run_status(
        self,
        run_id: str,
        tenant_id: str,
        status: RunStatus,
        error: Optional[RunError] = None,
    ) -> Run:
        """Apply a monotonic status transition.

        Raises:
            RunNotFoundError: If the run does not exist for the tenant.
            InvalidStatusTransition: If ``status`` would move the run backwards
                or out of a terminal state.
        """
        run = await self.require_run(run_id, tenant_id)
        allowed = _ALLOWED_RUN_TRANSITIONS.get(run.status, frozenset())
        if status not in allowed:
            raise InvalidStatusTransition(run_id, run.status, status)

        now = utcnow()
        run.status = status
        if status == "running" and run.started_at is None:
            run.started_at = now
        if status in TERMINAL_RUN_STATUSES:
            run.completed_at = now
            if run.started_at is not None:
                run.duration_ms = int((now - run.started_at).total_seconds() * 1000)
        if error is not None:
            run.error = error
        await self._repository.save_run(run)
        return run

    # ------------------------------------------------------------------
    # Steps

    async def get_run_steps(
        self, run_id: str, tenant_id: str, status: Optional[StepStatus] = None
    ) -> List[RunStep]:
        return await self._repository.list_run_steps(run_id, tenant_id, status)

    async def get_run_step_by_step_id(
        self, run_id: str, step_id: str, tenant_id: str
    ) -> Optional[RunStep]:
        return await self._repository.get_run_step_by_step_id(run_id, step_id, tenant_id)

    async def update_run_step_status(
        self,
        step_row_id: str,
        tenant_id: str,
        status: StepStatus,
        *,
        output_artifact_ids: Optional[List[str]] = None,
        output_data: Optional[Dict[str, Any]] = None,
        error: Optional[StepError] = None,
        cache_hit: Optional[bool] = None,
        duration_ms: Optional[int] = None,
    ) -> RunStep:
        step = await self._repository.get_run_step(step_row_id, tenant_id)
        if step is None:
            raise RunStepNotFoundError(step_row_id)

        step.status = status
        if status == "running":
            step.started_at = utcnow()
        if status in TERMINAL_STEP_STATUSES:
            step.ended_at = utcnow()
        if output_artifact_ids is not None:
            step.output_artifact_ids = list(output_artifact_ids)
        if output_data is not None:
            step.output_data = output_data
        if error is not None:
            step.error = error
        if cache_hit is not None:
            step.cache_hit = cache_hit
        if duration_ms is not None:
            step.duration_ms = duration_ms
        await self._repository.save_run_step(step)
        return step

    async def update_run_step_input_hash(
        self, step_row_id: str, tenant_id: str, input_hash: str
    ) -> None:
        await self._repository.update_run_step_input_hash(step_row_id, tenant_id, input_hash)

    async def increment_step_attempt(self, step_row_id: str, tenant_id: str) -> None:
        await self._repository.increment_step_attempt(step_row_id, tenant_id)

    # ------------------------------------------------------------------
    # State

    async def build_run_state(
        self, run: Run, workflow: Optional[WorkflowSpec] = None
    ) -> RunState:
        """Rebuild run state from persisted step rows.

        Completed and skipped steps of ``run`` become step results, so a run
        interrupted part-way resumes with its earlier outputs visible. When
        ``workflow`` is given, rows for steps it no longer declares are
        ignored. For update runs the base run's outputs are loaded once here.
        """
        steps = await self._repository.list_run_steps(run.id, run.tenant_id)
        if workflow is not None:
            known = {s.step_id for s in workflow.steps}
            steps = [s for s in steps if s.step_id in known]
        step_results: Dict[str, StepResult] = {}
        artifacts: Dict[str, List[str]] = {}
        for step in steps:
            if step.status not in ("completed", "skipped"):
                continue
            step_results[step.step_id] = StepResult(
                step_id=step.step_id,
                status=step.status,
                artifact_ids=list(step.output_artifact_ids or []),
                data=step.output_data,
                cache_hit=step.cache_hit,
                duration_ms=step.duration_ms or 0,
            )
            artifacts[step.step_id] = list(step.output_artifact_ids or [])

        base_outputs = base_artifacts = None
        if run.base_run_id:
            base_outputs, base_artifacts = await self._load_base_run(
                run.base_run_id, run.tenant_id
            )

        return RunState(
            run_id=run.id,
            tenant_id=run.tenant_id,
            workflow_name=run.workflow_name,
            trigger_payload=run.trigger_payload,
            step_results=step_results,
            artifacts=artifacts,
            base_run_id=run.base_run_id,
            base_run_outputs=base_outputs,
            base_run_artifacts=base_artifacts,
        )

    async def _load_base_run(
        self, base_run_id: str, tenant_id: str
    ) -> tuple[Dict[str, StepOutput], Dict[str, List[str]]]:
        await self.require_run(base_run_id, tenant_id)
        outputs: Dict[str, StepOutput] = {}
        artifacts: Dict[str, List[str]] = {}
        for step in await self._repository.list_run_steps(base_run_id, tenant_id):
            if step.status not in ("completed", "skipped"):
                continue
            ids = list(step.output_artifact_ids or [])
            outputs[step.step_id] = StepOutput(
                step_id=step.step_id,
                status=step.status,
                output_artifact_ids=ids,
                data=step.output_data,
            )
            artifacts[step.step_id] = ids
        return outputs, artifacts
