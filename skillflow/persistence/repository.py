"""Repository abstraction for run state persistence."""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .models import Run, RunStep, StepStatus


class RunRepository(Protocol):
    """Protocol for run/step persistence backends.

    Every read and write is scoped by ``tenant_id``; every mutation touches a
    single row.
    """

    async def create_run(self, run: Run) -> None:
        """Persist a new run."""

    async def save_run(self, run: Run) -> None:
        """Persist changes to an existing run."""

    async def get_run(self, run_id: str, tenant_id: str) -> Run | None:
        """Retrieve a run by id."""

    async def list_runs(self, tenant_id: Optional[str] = None) -> list[Run]:
        """Return all runs, optionally for one tenant."""

    async def create_run_steps(self, steps: Sequence[RunStep]) -> None:
        """Persist step rows in the given order."""

    async def save_run_step(self, step: RunStep) -> None:
        """Persist changes to an existing step row."""

    async def get_run_step(self, step_row_id: str, tenant_id: str) -> RunStep | None:
        """Retrieve a step row by its row id."""

    async def get_run_step_by_step_id(
        self, run_id: str, step_id: str, tenant_id: str
    ) -> RunStep | None:
        """Retrieve the step row of ``step_id`` within ``run_id``."""

    async def list_run_steps(
        self, run_id: str, tenant_id: str, status: Optional[StepStatus] = None
    ) -> list[RunStep]:
        """Return step rows of a run in creation order."""

    async def update_run_step_input_hash(
        self, step_row_id: str, tenant_id: str, input_hash: str
    ) -> None:
        """Overwrite the stored input hash of a step row."""

    async def increment_step_attempt(self, step_row_id: str, tenant_id: str) -> None:
        """Add one to the attempt counter of a step row."""
