"""In-memory registry of compiled workflow specifications."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from ..contracts import WorkflowSpec
from ..errors import WorkflowValidationError
from ..graph import DependencyGraph
from .models import SemanticVersion, WorkflowSummary, sort_versions, version_key

logger = logging.getLogger(__name__)


class WorkflowRegistry:
    """Versioned store of workflow specs keyed by ``(name, version)``.

    Holds no execution state. A registry starts empty and is typically
    populated by :class:`skillflow.loader.WorkflowLoader` at startup.
    """

    def __init__(self, graph: Optional[DependencyGraph] = None) -> None:
        self._graph = graph or DependencyGraph()
        self._workflows: Dict[str, Dict[str, WorkflowSpec]] = {}

    def register(self, workflow: WorkflowSpec) -> None:
        """Validate the workflow DAG and store it.

        Raises:
            WorkflowValidationError: If the steps reference unknown
                dependencies or contain a cycle.
        """
        validation = self._graph.validate_no_cycles(workflow.steps)
        if not validation.valid:
            raise WorkflowValidationError(workflow.workflow_name, validation.error or "unknown error")

        versions = self._workflows.setdefault(workflow.workflow_name, {})
        versions[workflow.version] = workflow
        logger.info(
            f"Registered workflow: {workflow.workflow_name} v{workflow.version} "
            f"with {len(workflow.steps)} steps"
        )

    def get_workflow(
        self, workflow_name: str, version: Optional[str] = None
    ) -> Optional[WorkflowSpec]:
        """Return the exact ``version``, or the highest one when omitted."""
        versions = self._workflows.get(workflow_name)
        if not versions:
            return None
        if version is not None:
            return versions.get(version)
        latest = max(versions, key=version_key)
        return versions[latest]

    def list_workflows(self) -> List[WorkflowSummary]:
        summaries: List[WorkflowSummary] = []
        for name, versions in self._workflows.items():
            for version in sort_versions(versions):
                workflow = versions[version]
                summaries.append(
                    WorkflowSummary(
                        name=name,
                        version=version,
                        step_count=len(workflow.steps),
                        description=workflow.description,
                    )
                )
        return summaries

    def get_workflow_versions(self, workflow_name: str) -> List[str]:
        return sort_versions(self._workflows.get(workflow_name, {}))

    def has_workflow(self, workflow_name: str, version: Optional[str] = None) -> bool:
        return self.get_workflow(workflow_name, version) is not None

    def unregister(self, workflow_name: str, version: str) -> bool:
        """Remove one version; the name disappears with its last version."""
        versions = self._workflows.get(workflow_name)
        if versions is None:
            return False
        deleted = versions.pop(version, None) is not None
        if not versions:
            del self._workflows[workflow_name]
        if deleted:
            logger.info(f"Unregistered workflow: {workflow_name} v{version}")
        return deleted


__all__ = [
    "SemanticVersion",
    "WorkflowRegistry",
    "WorkflowSummary",
    "sort_versions",
    "version_key",
]
