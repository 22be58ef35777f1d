"""Declarative input selector language."""

from __future__ import annotations

from .interpreter import FieldResolver, InputSelectorInterpreter
from .models import (
    BaseRunSelector,
    ConstantsSelector,
    MergeSelector,
    PickSelector,
    RegistrySelector,
    Selector,
    SelectorNode,
    StepOutputSelector,
    TriggerSelector,
    parse_selector,
)
from .paths import get_nested_value, get_step_output_value, parse_path

__all__ = [
    "BaseRunSelector",
    "ConstantsSelector",
    "FieldResolver",
    "InputSelectorInterpreter",
    "MergeSelector",
    "PickSelector",
    "RegistrySelector",
    "Selector",
    "SelectorNode",
    "StepOutputSelector",
    "TriggerSelector",
    "get_nested_value",
    "get_step_output_value",
    "parse_path",
    "parse_selector",
]
