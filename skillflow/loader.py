"""Load workflow definitions from YAML into the registry."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .contracts import CachePolicy, CacheScope, RetryPolicy, StepSpec, WorkflowSpec
from .errors import SkillflowError
from .registry import WorkflowRegistry
from .registry.models import SemanticVersion
from .selectors import InputSelectorInterpreter
from .skills import SkillCatalog

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.yaml"


class CachePolicyDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool
    scope: CacheScope


class RetryPolicyDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(ge=1, le=5)
    backoff_ms: int = Field(ge=0)


class StepDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    step_id: str = Field(min_length=1)
    skill_id: str = Field(min_length=1)
    depends_on: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    input_selector: Dict[str, Any] = Field(default_factory=dict)
    cache_policy: Optional[CachePolicyDocument] = None
    retry_policy: Optional[RetryPolicyDocument] = None


class WorkflowDocument(BaseModel):
    """A workflow as written in YAML."""

    model_config = ConfigDict(extra="forbid")

    workflow_name: str = Field(min_length=1)
    version: str = Field(min_length=1)
    description: Optional[str] = None
    steps: List[StepDocument] = Field(min_length=1)


class WorkflowIndexEntry(BaseModel):
    workflow_name: str
    version: str
    file: Optional[str] = None
    status: Literal["active", "deprecated", "experimental"]


class WorkflowIndex(BaseModel):
    version: str
    updated_at: str
    workflows: List[WorkflowIndexEntry] = Field(default_factory=list)


class WorkflowLoadError(BaseModel):
    workflow_name: str
    message: str
    field: Optional[str] = None


class WorkflowLoadResult(BaseModel):
    loaded: int = 0
    errors: List[WorkflowLoadError] = Field(default_factory=list)


class WorkflowLoader:
    """Reads ``index.yaml`` and registers every active workflow it lists.

    Errors never abort loading: each failing workflow is recorded as a
    :class:`WorkflowLoadError` and the remaining entries are still loaded.
    """

    def __init__(
        self,
        registry: WorkflowRegistry,
        interpreter: InputSelectorInterpreter,
        skill_catalog: SkillCatalog,
        workflows_path: Union[str, Path, None] = None,
    ) -> None:
        self._registry = registry
        self._interpreter = interpreter
        self._skill_catalog = skill_catalog
        self._workflows_path = Path(
            workflows_path or os.getenv("SKILLFLOW_WORKFLOWS_PATH", "workflows")
        )
        self._load_errors: List[WorkflowLoadError] = []

    @property
    def registry(self) -> WorkflowRegistry:
        return self._registry

    @property
    def workflows_path(self) -> Path:
        return self._workflows_path

    def load_all_workflows(self) -> WorkflowLoadResult:
        self._load_errors = []
        index = self.load_index()
        if index is None:
            return WorkflowLoadResult(loaded=0, errors=list(self._load_errors))

        logger.info(f"Loading workflows from index v{index.version} (updated: {index.updated_at})")
        loaded = 0
        for entry in index.workflows:
            if entry.status != "active":
                logger.debug(f"Skipping non-active workflow: {entry.workflow_name} ({entry.status})")
                continue
            if self._load_entry(entry):
                loaded += 1

        logger.info(f"Workflow loading complete: {loaded} loaded, {len(self._load_errors)} errors")
        for error in self._load_errors:
            logger.error(f"Failed to load workflow '{error.workflow_name}': {error.message}")
        return WorkflowLoadResult(loaded=loaded, errors=list(self._load_errors))

    def reload_workflows(self) -> WorkflowLoadResult:
        return self.load_all_workflows()

    def get_load_errors(self) -> List[WorkflowLoadError]:
        return list(self._load_errors)

    def load_index(self) -> Optional[WorkflowIndex]:
        index_path = self._workflows_path / INDEX_FILENAME
        if not index_path.exists():
            logger.warning(f"Workflows index not found at {index_path}")
            return None
        try:
            raw = yaml.safe_load(index_path.read_text(encoding="utf-8"))
            return WorkflowIndex.model_validate(raw)
        except ValidationError as exc:
            self._load_errors.extend(_validation_errors("index", exc))
        except (OSError, yaml.YAMLError) as exc:
            logger.error(f"Failed to load workflows index: {exc}")
            self._load_errors.append(WorkflowLoadError(workflow_name="index", message=str(exc)))
        return None

    def load_document(self, path: Union[str, Path]) -> WorkflowDocument:
        """Parse and schema-validate one workflow file.

        Raises:
            OSError: If the file cannot be read.
            yaml.YAMLError: If the file is not valid YAML.
            pydantic.ValidationError: If the document does not match the schema.
        """
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        return WorkflowDocument.model_validate(raw)

    def validate_skill_references(self, document: WorkflowDocument) -> List[Tuple[str, str]]:
        """Return ``(step_id, skill_id)`` for every unknown skill."""
        return [
            (step.step_id, step.skill_id)
            for step in document.steps
            if not self._skill_catalog.has_skill(step.skill_id)
        ]

    def compile_document(self, document: WorkflowDocument) -> WorkflowSpec:
        return WorkflowSpec(
            workflow_name=document.workflow_name,
            version=document.version,
            description=document.description,
            steps=[self._compile_step(step) for step in document.steps],
        )

    def _compile_step(self, step: StepDocument) -> StepSpec:
        cache_policy = (
            CachePolicy(enabled=step.cache_policy.enabled, scope=step.cache_policy.scope)
            if step.cache_policy
            else CachePolicy()
        )
        retry_policy = (
            RetryPolicy(
                max_attempts=step.retry_policy.max_attempts,
                backoff_ms=step.retry_policy.backoff_ms,
            )
            if step.retry_policy
            else RetryPolicy()
        )
        return StepSpec(
            step_id=step.step_id,
            skill_id=step.skill_id,
            depends_on=list(step.depends_on),
            input_selector=self._interpreter.compile(step.input_selector),
            cache_policy=cache_policy,
            retry_policy=retry_policy,
            description=step.description,
        )

    def _entry_path(self, entry: WorkflowIndexEntry) -> Path:
        if entry.file:
            return self._workflows_path / entry.file
        try:
            major = SemanticVersion.coerce(entry.version).major
        except ValueError:
            major = 1
        return self._workflows_path / f"{entry.workflow_name}.v{major}.yaml"

    def _load_entry(self, entry: WorkflowIndexEntry) -> bool:
        name = entry.workflow_name
        path = self._entry_path(entry)
        if not path.exists():
            self._record(name, f"Workflow file not found: {path}")
            return False

        try:
            document = self.load_document(path)
        except ValidationError as exc:
            self._load_errors.extend(_validation_errors(name, exc))
            return False
        except (OSError, yaml.YAMLError) as exc:
            self._record(name, str(exc))
            return False

        unknown = self.validate_skill_references(document)
        if unknown:
            for step_id, skill_id in unknown:
                self._record(name, f"Unknown skill reference: {skill_id} in step {step_id}")
            return False

        try:
            self._registry.register(self.compile_document(document))
        except SkillflowError as exc:
            self._record(name, f"Failed to compile/register workflow: {exc}")
            return False
        return True

    def _record(self, workflow_name: str, message: str, field: Optional[str] = None) -> None:
        self._load_errors.append(
            WorkflowLoadError(workflow_name=workflow_name, message=message, field=field)
        )


def _validation_errors(workflow_name: str, exc: ValidationError) -> List[WorkflowLoadError]:
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"])
        errors.append(
            WorkflowLoadError(
                workflow_name=workflow_name,
                message=f"Schema validation failed: {field} - {error['msg']}",
                field=field or None,
            )
        )
    return errors
