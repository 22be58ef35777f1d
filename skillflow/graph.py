"""DAG operations over workflow steps."""

from __future__ import annotations

import heapq
from collections import deque
from typing import Dict, Iterable, List, Optional, Sequence, Set

from pydantic import BaseModel

from .contracts import StepSpec
from .errors import CycleDetectedError, DuplicateStepError, UnknownDependencyError


class GraphValidation(BaseModel):
    """Structured outcome of :meth:`DependencyGraph.validate_no_cycles`."""

    valid: bool
    error: Optional[str] = None


class DependencyGraph:
    """Topological ordering, cycle validation and frontier computation for steps."""

    def topological_sort(self, steps: Sequence[StepSpec]) -> List[StepSpec]:
        """Return ``steps`` in execution order.

        Ties between independent steps are broken by their position in
        ``steps``, so sorting the same list twice yields the same order.

        Raises:
            DuplicateStepError: If two steps share a ``step_id``.
            UnknownDependencyError: If ``depends_on`` names a missing step.
            CycleDetectedError: If the dependency graph is not acyclic.
        """
        index: Dict[str, int] = {}
        for position, step in enumerate(steps):
            if step.step_id in index:
                raise DuplicateStepError(step.step_id)
            index[step.step_id] = position

        in_degree: Dict[str, int] = {step.step_id: 0 for step in steps}
        dependents: Dict[str, List[str]] = {step.step_id: [] for step in steps}
        for step in steps:
            for dep_id in step.depends_on:
                if dep_id not in index:
                    raise UnknownDependencyError(step.step_id, dep_id)
                # edge dependency -> dependent
                dependents[dep_id].append(step.step_id)
                in_degree[step.step_id] += 1

        ready = [index[sid] for sid, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)
        ordered: List[StepSpec] = []
        while ready:
            step = steps[heapq.heappop(ready)]
            ordered.append(step)
            for child in dependents[step.step_id]:
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    heapq.heappush(ready, index[child])

        if len(ordered) != len(steps):
            remaining = [s.step_id for s in steps if in_degree[s.step_id] > 0]
            raise CycleDetectedError(remaining)
        return ordered

    def validate_no_cycles(self, steps: Sequence[StepSpec]) -> GraphValidation:
        """Check that ``steps`` form a valid DAG without raising."""
        try:
            self.topological_sort(steps)
        except ValueError as exc:
            return GraphValidation(valid=False, error=str(exc))
        return GraphValidation(valid=True)

    def get_entry_steps(self, steps: Iterable[StepSpec]) -> List[StepSpec]:
        """Steps with no dependencies (the roots of the DAG)."""
        return [step for step in steps if not step.depends_on]

    def get_dependents(self, steps: Iterable[StepSpec], step_id: str) -> List[StepSpec]:
        """Steps that directly depend on ``step_id``."""
        return [step for step in steps if step_id in step.depends_on]

    def downstream_closure(
        self, all_steps: Iterable[StepSpec], changed_step_ids: Iterable[str]
    ) -> Set[str]:
        """Return ``changed_step_ids`` plus every transitive dependent."""
        changed = list(changed_step_ids)
        closure: Set[str] = set(changed)
        queue = deque(changed)

        dependents_map: Dict[str, List[str]] = {}
        for step in all_steps:
            for dep_id in step.depends_on:
                dependents_map.setdefault(dep_id, []).append(step.step_id)

        while queue:
            step_id = queue.popleft()
            for dependent in dependents_map.get(step_id, []):
                if dependent not in closure:
                    closure.add(dependent)
                    queue.append(dependent)
        return closure

    def get_ready_steps(
        self,
        all_steps: Iterable[StepSpec],
        completed_step_ids: Set[str],
        pending_step_ids: Set[str],
    ) -> List[StepSpec]:
        """Pending steps whose dependencies have all completed."""
        ready: List[StepSpec] = []
        for step in all_steps:
            if step.step_id not in pending_step_ids:
                continue
            if all(dep_id in completed_step_ids for dep_id in step.depends_on):
                ready.append(step)
        return ready
