"""In-memory implementation of the run repository."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from .models import Run, RunStep, StepStatus
from .repository import RunRepository


class InMemoryRunRepository(RunRepository):
    """Store run state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Stored models are copied on the way
    in and out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, Run] = {}
        self._steps: Dict[str, RunStep] = {}
        self._step_order: List[str] = []

    # ------------------------------------------------------------------
    async def create_run(self, run: Run) -> None:
        if run.id in self._runs:
            raise ValueError(f"Run {run.id} already exists")
        self._runs[run.id] = run.model_copy(deep=True)

    async def save_run(self, run: Run) -> None:
        self._runs[run.id] = run.model_copy(deep=True)

    async def get_run(self, run_id: str, tenant_id: str) -> Run | None:
        run = self._runs.get(run_id)
        if run is None or run.tenant_id != tenant_id:
            return None
        return run.model_copy(deep=True)

    async def list_runs(self, tenant_id: Optional[str] = None) -> list[Run]:
        return [
            run.model_copy(deep=True)
            for run in self._runs.values()
            if tenant_id is None or run.tenant_id == tenant_id
        ]

    # ------------------------------------------------------------------
    async def create_run_steps(self, steps: Sequence[RunStep]) -> None:
        for step in steps:
            if self._find(step.run_id, step.step_id) is not None:
                raise ValueError(f"Step {step.step_id} already exists for run {step.run_id}")
            self._steps[step.id] = step.model_copy(deep=True)
            self._step_order.append(step.id)

    async def save_run_step(self, step: RunStep) -> None:
        if step.id not in self._steps:
            self._step_order.append(step.id)
        self._steps[step.id] = step.model_copy(deep=True)

    def _find(self, run_id: str, step_id: str) -> RunStep | None:
        return next(
            (s for s in self._steps.values() if s.run_id == run_id and s.step_id == step_id),
            None,
        )

    async def get_run_step(self, step_row_id: str, tenant_id: str) -> RunStep | None:
        step = self._steps.get(step_row_id)
        if step is None or step.tenant_id != tenant_id:
            return None
        return step.model_copy(deep=True)

    async def get_run_step_by_step_id(
        self, run_id: str, step_id: str, tenant_id: str
    ) -> RunStep | None:
        step = self._find(run_id, step_id)
        if step is None or step.tenant_id != tenant_id:
            return None
        return step.model_copy(deep=True)

    async def list_run_steps(
        self, run_id: str, tenant_id: str, status: Optional[StepStatus] = None
    ) -> list[RunStep]:
        steps = []
        for row_id in self._step_order:
            step = self._steps[row_id]
            if step.run_id != run_id or step.tenant_id != tenant_id:
                continue
            if status is not None and step.status != status:
                continue
            steps.append(step.model_copy(deep=True))
        return steps

    async def update_run_step_input_hash(
        self, step_row_id: str, tenant_id: str, input_hash: str
    ) -> None:
        step = self._steps.get(step_row_id)
        if step is not None and step.tenant_id == tenant_id:
            step.input_hash = input_hash

    async def increment_step_attempt(self, step_row_id: str, tenant_id: str) -> None:
        step = self._steps.get(step_row_id)
        if step is not None and step.tenant_id == tenant_id:
            step.attempt += 1
