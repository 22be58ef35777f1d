"""skillflow: DAG workflow runner for skill steps with cached, retrying execution."""

from .cache import get_step_cache
from .contracts import (
    CachePolicy,
    RetryPolicy,
    RunContext,
    SkillArtifact,
    SkillResult,
    StepOutput,
    StepResult,
    StepSpec,
    WorkflowSpec,
)
from .engine import RunEngine
from .executor import CachedStepExecutor
from .graph import DependencyGraph
from .hashing import InputHasher
from .loader import WorkflowLoader
from .orchestrator import RunOrchestrator
from .persistence import get_repository
from .registry import WorkflowRegistry
from .selectors import InputSelectorInterpreter
from .skills import InMemoryPromptRegistry, LocalSkillRunner
from .state import RunState, RunStateUpdate

__version__ = "0.1.0"
__all__ = [
    "CachePolicy",
    "CachedStepExecutor",
    "DependencyGraph",
    "InMemoryPromptRegistry",
    "InputHasher",
    "InputSelectorInterpreter",
    "LocalSkillRunner",
    "RetryPolicy",
    "RunContext",
    "RunEngine",
    "RunOrchestrator",
    "RunState",
    "RunStateUpdate",
    "SkillArtifact",
    "SkillResult",
    "StepOutput",
    "StepResult",
    "StepSpec",
    "WorkflowLoader",
    "WorkflowRegistry",
    "WorkflowSpec",
    "get_repository",
    "get_step_cache",
]
