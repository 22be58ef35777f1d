"""Helpers shared by the workflow CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from skillflow.config import SkillflowConfig
from skillflow.contracts import WorkflowSpec
from skillflow.graph import DependencyGraph
from skillflow.loader import WorkflowLoader
from skillflow.registry import WorkflowRegistry
from skillflow.selectors import InputSelectorInterpreter
from skillflow.skills import InMemoryPromptRegistry


class _AnySkillCatalog:
    """Accepts every skill id; the CLI inspects definitions without a skill runtime."""

    def has_skill(self, skill_id: str) -> bool:
        return True


def _build_loader(
    config: SkillflowConfig, workflows_path: Optional[Path] = None
) -> WorkflowLoader:
    graph = DependencyGraph()
    return WorkflowLoader(
        registry=WorkflowRegistry(graph),
        interpreter=InputSelectorInterpreter(InMemoryPromptRegistry()),
        skill_catalog=_AnySkillCatalog(),
        workflows_path=workflows_path or Path(config.workflows_path),
    )


def _format_step_lines(workflow: WorkflowSpec) -> List[str]:
    """One line per step in execution order: ``step_id (skill) <- deps``."""
    lines = []
    for step in DependencyGraph().topological_sort(workflow.steps):
        line = f"{step.step_id} ({step.skill_id})"
        if step.depends_on:
            line += f" <- {', '.join(step.depends_on)}"
        if step.cache_policy.enabled:
            line += f" [cache:{step.cache_policy.scope}]"
        if step.retry_policy.max_attempts > 1:
            line += f" [retry:{step.retry_policy.max_attempts}x{step.retry_policy.backoff_ms}ms]"
        lines.append(line)
    return lines
