"""Drive a persisted run through its workflow DAG."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Set

from .constants import (
    MAX_STEPS_EXCEEDED,
    ORCHESTRATION_ERROR,
    STEP_EXECUTION_FAILED,
    TIMEOUT,
)
from .contracts import StepResult, WorkflowSpec
from .engine import RunEngine
from .errors import WorkflowNotFoundError
from .executor import CachedStepExecutor
from .graph import DependencyGraph
from .persistence.models import TERMINAL_RUN_STATUSES, Run, RunError, RunStep
from .registry import WorkflowRegistry
from .state import RunState, RunStateUpdate

logger = logging.getLogger(__name__)


class RunOrchestrator:
    """Runs ready steps until the workflow completes or a step fails.

    Readiness is computed from persisted step statuses, so calling
    :meth:`process` again on a partially completed run resumes it: only
    ``pending`` steps are ever handed to the executor. Rows an interrupted
    process left ``running`` are requeued as ``pending`` first.
    """

    def __init__(
        self,
        engine: RunEngine,
        registry: WorkflowRegistry,
        executor: CachedStepExecutor,
        graph: Optional[DependencyGraph] = None,
        max_concurrency: int = 1,
        timeout_s: Optional[float] = None,
        max_steps: Optional[int] = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._engine = engine
        self._registry = registry
        self._executor = executor
        self._graph = graph or DependencyGraph()
        self._max_concurrency = max_concurrency
        self._timeout_s = timeout_s
        self._max_steps = max_steps

    async def trigger(
        self,
        tenant_id: str,
        workflow_name: str,
        payload: Optional[Dict[str, Any]] = None,
        version: Optional[str] = None,
        base_run_id: Optional[str] = None,
    ) -> Run:
        """Create a queued run with pending steps for the named workflow."""
        workflow = self._registry.get_workflow(workflow_name, version)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_name, version)
        if base_run_id is not None:
            await self._engine.require_run(base_run_id, tenant_id)
        return await self._engine.create_run(
            tenant_id, workflow, payload or {}, base_run_id=base_run_id
        )

    async def process(self, run_id: str, tenant_id: str) -> Run:
        run = await self._engine.require_run(run_id, tenant_id)
        if run.status in TERMINAL_RUN_STATUSES:
            logger.info(f"Run {run_id} already {run.status}; nothing to process")
            return run

        workflow = self._registry.get_workflow(run.workflow_name, run.workflow_version)
        if workflow is None:
            return await self._finish(
                run,
                RunError(
                    code=ORCHESTRATION_ERROR,
                    message=f"Workflow not found: {run.workflow_name} v{run.workflow_version}",
                ),
            )

        run = await self._engine.update_run_status(run_id, tenant_id, "running")
        try:
            error = await self._drive(run, workflow)
        except Exception as exc:
            logger.exception(f"Run {run_id} aborted")
            error = RunError(code=ORCHESTRATION_ERROR, message=str(exc))
        return await self._finish(run, error)

    async def _drive(self, run: Run, workflow: WorkflowSpec) -> Optional[RunError]:
        ordered = self._graph.topological_sort(workflow.steps)
        await self._requeue_interrupted(run)
        state = await self._engine.build_run_state(run, workflow)
        deadline = time.monotonic() + self._timeout_s if self._timeout_s is not None else None
        executed = 0

        while True:
            rows = await self._engine.get_run_steps(run.id, run.tenant_id)
            done = {r.step_id for r in rows if r.status in ("completed", "skipped")}
            pending = {r.step_id for r in rows if r.status == "pending"}
            if not pending:
                return self._settled(rows, done)

            ready = self._graph.get_ready_steps(ordered, done, pending)
            if not ready:
                return RunError(
                    code=ORCHESTRATION_ERROR,
                    message=f"No runnable steps; blocked: {', '.join(sorted(pending))}",
                )
            if deadline is not None and time.monotonic() >= deadline:
                return RunError(
                    code=TIMEOUT, message=f"Run exceeded timeout of {self._timeout_s}s"
                )
            if self._max_steps is not None and executed >= self._max_steps:
                return RunError(
                    code=MAX_STEPS_EXCEEDED,
                    message=f"Run exceeded maximum of {self._max_steps} executed steps",
                )

            batch = ready[: self._max_concurrency]
            if self._max_steps is not None:
                batch = batch[: self._max_steps - executed]
            state, failed = await self._run_batch(batch, state)
            executed += len(batch)
            if failed is not None:
                return self._step_failure(failed.step_id, failed.error)

    async def _requeue_interrupted(self, run: Run) -> None:
        # A running row belongs to an attempt that never reported back.
        for row in await self._engine.get_run_steps(run.id, run.tenant_id, status="running"):
            logger.warning(f"Requeueing interrupted step {row.step_id} of run {run.id}")
            await self._engine.update_run_step_status(row.id, run.tenant_id, "pending")

    def _settled(self, rows: List[RunStep], done: Set[str]) -> Optional[RunError]:
        unfinished = [r for r in rows if r.step_id not in done]
        if not unfinished:
            return None
        failed = next((r for r in unfinished if r.status == "failed"), None)
        if failed is not None:
            return self._step_failure(failed.step_id, failed.error)
        return RunError(
            code=ORCHESTRATION_ERROR,
            message=f"Steps left unfinished: {', '.join(sorted(r.step_id for r in unfinished))}",
        )

    async def _run_batch(self, batch, state: RunState) -> tuple[RunState, Optional[StepResult]]:
        # Every step in a batch sees the same snapshot; results merge afterwards.
        outcomes = await asyncio.gather(
            *(self._executor.execute_step(step, state) for step in batch),
            return_exceptions=True,
        )
        failed = None
        raised: Optional[BaseException] = None
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raised = raised or outcome
                continue
            state = state.apply(RunStateUpdate.from_result(outcome))
            if outcome.status == "failed" and failed is None:
                failed = outcome
        # Siblings have settled, so nothing writes to the run after it is finished.
        if raised is not None:
            raise raised
        return state, failed

    def _step_failure(self, step_id: str, error: Optional[Any]) -> RunError:
        attempt = error.attempt if error else None
        reason = error.message if error else "unknown error"
        code = error.code if error else "UNKNOWN"
        return RunError(
            code=STEP_EXECUTION_FAILED,
            message=f"Step {step_id} failed after {attempt or 1} attempt(s) [{code}]: {reason}",
            failed_step_id=step_id,
        )

    async def _finish(self, run: Run, error: Optional[RunError]) -> Run:
        if error is None:
            logger.info(f"Run {run.id} completed")
            return await self._engine.update_run_status(run.id, run.tenant_id, "completed")
        logger.error(f"Run {run.id} failed [{error.code}]: {error.message}")
        return await self._engine.update_run_status(run.id, run.tenant_id, "failed", error=error)
