"""Exception hierarchy for skillflow."""

from __future__ import annotations

from typing import Iterable


class SkillflowError(Exception):
    """Root of all skillflow errors."""


# ---------------------------------------------------------------------------
# Graph errors: fatal at registration, never retried


class GraphError(SkillflowError, ValueError):
    """The step dependency graph is structurally invalid."""


class UnknownDependencyError(GraphError):
    def __init__(self, step_id: str, dependency_id: str) -> None:
        self.step_id = step_id
        self.dependency_id = dependency_id
        super().__init__(f"Step '{step_id}' depends on unknown step '{dependency_id}'")


class DuplicateStepError(GraphError):
    def __init__(self, step_id: str) -> None:
        self.step_id = step_id
        super().__init__(f"Duplicate step id: '{step_id}'")


class CycleDetectedError(GraphError):
    def __init__(self, step_ids: Iterable[str]) -> None:
        self.step_ids = list(step_ids)
        super().__init__(
            f"Cycle detected in step dependency graph involving: {', '.join(self.step_ids)}"
        )


class WorkflowValidationError(SkillflowError, ValueError):
    """A workflow could not be registered."""

    def __init__(self, workflow_name: str, reason: str) -> None:
        self.workflow_name = workflow_name
        self.reason = reason
        super().__init__(f"Workflow '{workflow_name}' has invalid dependencies: {reason}")


# ---------------------------------------------------------------------------
# Input selector errors: fatal for the current step, never retried


class InputSelectorError(SkillflowError):
    """Computing a step's input from the run context failed."""


class InvalidSelectorError(InputSelectorError, ValueError):
    """The selector document does not describe a known source or operation."""


class MalformedPathError(InputSelectorError, ValueError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"Malformed path: {reason} in '{path}'")


class StepOutputNotFound(InputSelectorError, LookupError):
    def __init__(self, step_id: str, base_run: bool = False) -> None:
        self.step_id = step_id
        self.base_run = base_run
        prefix = "Base run step output" if base_run else "Step output"
        super().__init__(f"{prefix} not found for step: {step_id}")


class BaseRunNotAvailable(InputSelectorError, LookupError):
    def __init__(self) -> None:
        super().__init__(
            "Base run outputs not available - this is not an update workflow "
            "or base run was not loaded"
        )


class SelectorTypeError(InputSelectorError, TypeError):
    """A merge or pick input did not resolve to a mapping."""


class CircularMergeError(InputSelectorError):
    def __init__(self) -> None:
        super().__init__("Circular reference detected in merge operation")


class RegistryItemNotFound(InputSelectorError, LookupError):
    def __init__(self, item_type: str, item_id: str, version: str | None = None) -> None:
        self.item_type = item_type
        self.item_id = item_id
        self.version = version
        super().__init__(
            f"Registry {item_type} not found: {item_id} (version: {version or 'latest'})"
        )


# ---------------------------------------------------------------------------
# Persistence / engine errors


class RunNotFoundError(SkillflowError, LookupError):
    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Run {run_id} not found")


class RunStepNotFoundError(SkillflowError, LookupError):
    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"RunStep {identifier} not found")


class InvalidStatusTransition(SkillflowError, ValueError):
    def __init__(self, run_id: str, current: str, requested: str) -> None:
        self.run_id = run_id
        self.current = current
        self.requested = requested
        super().__init__(f"Run {run_id} cannot transition from '{current}' to '{requested}'")


class WorkflowNotFoundError(SkillflowError, LookupError):
    def __init__(self, workflow_name: str, version: str | None = None) -> None:
        self.workflow_name = workflow_name
        self.version = version
        super().__init__(f"Workflow {workflow_name} v{version or 'latest'} not found")
