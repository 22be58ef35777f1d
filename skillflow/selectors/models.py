"""Selector AST: the declarative data-binding language for step inputs."""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Tag,
    TypeAdapter,
    ValidationError,
)

from ..errors import InvalidSelectorError


class _SelectorNode(BaseModel):
    model_config = ConfigDict(frozen=True)


class TriggerSelector(_SelectorNode):
    """Read ``path`` out of the run's trigger payload."""

    source: Literal["trigger"]
    path: str = ""


class StepOutputSelector(_SelectorNode):
    """Read ``path`` out of a completed step's output in the current run."""

    source: Literal["step_output"]
    step_id: str
    path: str = ""


class BaseRunSelector(_SelectorNode):
    """Read ``path`` out of a step output of the base run (update workflows)."""

    source: Literal["base_run"]
    step_id: str
    path: str = ""


class RegistrySelector(_SelectorNode):
    """Fetch a versioned prompt, config or rubric from the prompt registry."""

    source: Literal["registry"]
    type: Literal["prompt", "config", "rubric"]
    id: str
    version: Optional[str] = None


class ConstantsSelector(_SelectorNode):
    source: Literal["constants"]
    value: Any = None


class MergeSelector(_SelectorNode):
    """Shallow-merge mappings left to right; later inputs win."""

    operation: Literal["merge"]
    inputs: List[Selector]


class PickSelector(_SelectorNode):
    """Copy only ``keys`` out of a mapping; absent keys are omitted."""

    operation: Literal["pick"]
    input: Selector
    keys: List[str]


def _selector_tag(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("source") or value.get("operation")
    return getattr(value, "source", None) or getattr(value, "operation", None)


Selector = Annotated[
    Union[
        Annotated[TriggerSelector, Tag("trigger")],
        Annotated[StepOutputSelector, Tag("step_output")],
        Annotated[BaseRunSelector, Tag("base_run")],
        Annotated[RegistrySelector, Tag("registry")],
        Annotated[ConstantsSelector, Tag("constants")],
        Annotated[MergeSelector, Tag("merge")],
        Annotated[PickSelector, Tag("pick")],
    ],
    Discriminator(_selector_tag),
]

MergeSelector.model_rebuild()
PickSelector.model_rebuild()

SelectorNode = Union[
    TriggerSelector,
    StepOutputSelector,
    BaseRunSelector,
    RegistrySelector,
    ConstantsSelector,
    MergeSelector,
    PickSelector,
]

_selector_adapter: TypeAdapter[Any] = TypeAdapter(Selector)


def parse_selector(raw: Any) -> SelectorNode:
    """Validate a JSON/YAML selector document into a selector node.

    Raises:
        InvalidSelectorError: If ``raw`` is not a known source or operation,
            or is missing required fields.
    """
    if isinstance(raw, _SelectorNode):
        return raw  # type: ignore[return-value]
    if not isinstance(raw, dict):
        raise InvalidSelectorError(
            f"Invalid input selector field: expected a mapping, got {type(raw).__name__}"
        )
    if "source" not in raw and "operation" not in raw:
        raise InvalidSelectorError("Invalid input selector field: must have source or operation")
    try:
        return _selector_adapter.validate_python(raw)
    except ValidationError as exc:
        tag = raw.get("source") or raw.get("operation")
        raise InvalidSelectorError(f"Invalid selector '{tag}': {exc}") from exc
