"""Compile selector documents into resolvers over a :class:`RunContext`.

Selectors are data. Compilation walks the selector tree once and returns
closures; no selector string is ever evaluated as code.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional

from ..constants import BLOCKED_PROPERTIES
from ..contracts import CompiledInputSelector, RunContext
from ..errors import (
    BaseRunNotAvailable,
    CircularMergeError,
    InvalidSelectorError,
    RegistryItemNotFound,
    SelectorTypeError,
    StepOutputNotFound,
)
from ..skills import PromptRegistry
from .models import (
    BaseRunSelector,
    ConstantsSelector,
    MergeSelector,
    PickSelector,
    RegistrySelector,
    SelectorNode,
    StepOutputSelector,
    TriggerSelector,
    parse_selector,
)
from .paths import get_nested_value, get_step_output_value, parse_path

logger = logging.getLogger(__name__)

FieldResolver = Callable[[RunContext], Any]


class InputSelectorInterpreter:
    """Turns an ``input_selector`` mapping into a compiled input function."""

    def __init__(self, prompt_registry: Optional[PromptRegistry] = None) -> None:
        self._prompt_registry = prompt_registry

    def compile(self, selector_map: Mapping[str, Any]) -> CompiledInputSelector:
        """Compile ``field -> selector`` into ``RunContext -> input``.

        Every field is resolved independently and assembled into one dict.

        Raises:
            InvalidSelectorError: For unknown sources/operations or bad shapes.
            MalformedPathError: For unbalanced brackets in any path.
        """
        if not isinstance(selector_map, Mapping):
            raise InvalidSelectorError("input_selector must be a mapping of field -> selector")

        resolvers: Dict[str, FieldResolver] = {
            key: self.compile_field(raw) for key, raw in selector_map.items()
        }

        def compiled(ctx: RunContext) -> Dict[str, Any]:
            return {key: resolve(ctx) for key, resolve in resolvers.items()}

        return compiled

    def compile_field(self, selector: Any) -> FieldResolver:
        node = parse_selector(selector)
        return self._compile_node(node)

    def _compile_node(self, node: SelectorNode) -> FieldResolver:
        if isinstance(node, TriggerSelector):
            return self._compile_trigger(node)
        if isinstance(node, StepOutputSelector):
            return self._compile_step_output(node)
        if isinstance(node, BaseRunSelector):
            return self._compile_base_run(node)
        if isinstance(node, RegistrySelector):
            return self._compile_registry(node)
        if isinstance(node, ConstantsSelector):
            value = node.value
            return lambda ctx: copy.deepcopy(value)
        if isinstance(node, MergeSelector):
            return self._compile_merge(node)
        if isinstance(node, PickSelector):
            return self._compile_pick(node)
        raise InvalidSelectorError(f"Unknown selector node: {type(node).__name__}")

    # ------------------------------------------------------------------
    # Sources

    def _compile_trigger(self, node: TriggerSelector) -> FieldResolver:
        path = node.path
        parse_path(path)
        return lambda ctx: get_nested_value(ctx.trigger_payload, path)

    def _compile_step_output(self, node: StepOutputSelector) -> FieldResolver:
        step_id, path = node.step_id, node.path
        parse_path(path)

        def resolve(ctx: RunContext) -> Any:
            output = ctx.step_outputs.get(step_id)
            if output is None:
                raise StepOutputNotFound(step_id)
            return get_step_output_value(output, path)

        return resolve

    def _compile_base_run(self, node: BaseRunSelector) -> FieldResolver:
        step_id, path = node.step_id, node.path
        parse_path(path)

        def resolve(ctx: RunContext) -> Any:
            if ctx.base_run_outputs is None:
                raise BaseRunNotAvailable()
            output = ctx.base_run_outputs.get(step_id)
            if output is None:
                raise StepOutputNotFound(step_id, base_run=True)
            return get_step_output_value(output, path)

        return resolve

    def _compile_registry(self, node: RegistrySelector) -> FieldResolver:
        if self._prompt_registry is None:
            raise InvalidSelectorError(
                f"Registry selector for {node.type} '{node.id}' requires a prompt registry"
            )
        fetchers = {
            "prompt": self._prompt_registry.get_prompt,
            "config": self._prompt_registry.get_config,
            "rubric": self._prompt_registry.get_rubric,
        }
        fetch = fetchers[node.type]
        item_type, item_id, version = node.type, node.id, node.version

        def resolve(ctx: RunContext) -> Any:
            result = fetch(item_id, version)
            if not result.ok:
                raise RegistryItemNotFound(item_type, item_id, version)
            return result.data

        return resolve

    # ------------------------------------------------------------------
    # Operations

    def _compile_merge(self, node: MergeSelector) -> FieldResolver:
        resolvers: List[FieldResolver] = [self._compile_node(n) for n in node.inputs]

        def resolve(ctx: RunContext) -> Dict[str, Any]:
            merged: Dict[str, Any] = {}
            seen: set[int] = set()
            for resolver in resolvers:
                value = resolver(ctx)
                if not isinstance(value, Mapping):
                    raise SelectorTypeError("Merge operation requires all inputs to be objects")
                if id(value) in seen:
                    raise CircularMergeError()
                seen.add(id(value))
                for key, item in value.items():
                    if key not in BLOCKED_PROPERTIES:
                        merged[key] = item
            return merged

        return resolve

    def _compile_pick(self, node: PickSelector) -> FieldResolver:
        resolver = self._compile_node(node.input)
        keys = list(node.keys)

        def resolve(ctx: RunContext) -> Dict[str, Any]:
            value = resolver(ctx)
            if not isinstance(value, Mapping):
                raise SelectorTypeError("Pick operation requires input to be an object")
            return {
                key: value[key]
                for key in keys
                if key in value and key not in BLOCKED_PROPERTIES
            }

        return resolve
