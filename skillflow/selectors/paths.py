"""Path parsing and traversal for selector lookups.

Paths are dot-separated segments with optional ``[index]`` array indices,
e.g. ``a.b[0].c``. ``""`` and ``"."`` address the root. Traversal never
raises for missing data: ``None`` is returned whenever a segment cannot be
resolved. Only mappings and lists/tuples are traversed; attributes of
arbitrary objects are never read.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict, List

from ..constants import BLOCKED_PROPERTIES
from ..contracts import StepOutput
from ..errors import MalformedPathError

# First path segment -> StepOutput field.
STEP_OUTPUT_PROJECTIONS: Dict[str, str] = {
    "data": "data",
    "artifacts": "output_artifact_ids",
    "outputArtifactIds": "output_artifact_ids",
    "status": "status",
    "stepId": "step_id",
}


def is_root_path(path: str) -> bool:
    return path == "" or path == "."


def parse_path(path: str) -> List[str]:
    """Split ``path`` into its segments.

    Raises:
        MalformedPathError: On unbalanced brackets.
    """
    parts: List[str] = []
    current = ""
    depth = 0

    for char in path:
        if char == "[":
            if current:
                parts.append(current)
                current = ""
            depth += 1
        elif char == "]":
            depth -= 1
            if depth < 0:
                raise MalformedPathError(path, "unbalanced brackets")
            if current:
                parts.append(current)
                current = ""
        elif char == "." and depth == 0:
            if current:
                parts.append(current)
                current = ""
        else:
            current += char

    if depth != 0:
        raise MalformedPathError(path, "unclosed bracket")
    if current:
        parts.append(current)
    return parts


def _array_index(part: str, length: int) -> int | None:
    try:
        index = int(part)
    except ValueError:
        return None
    if index < 0 or index >= length:
        return None
    return index


def walk(obj: Any, parts: List[str]) -> Any:
    """Resolve already-parsed ``parts`` against ``obj``."""
    current = obj
    for part in parts:
        if current is None:
            return None
        if isinstance(current, (list, tuple)):
            index = _array_index(part, len(current))
            if index is None:
                return None
            current = current[index]
        elif isinstance(current, Mapping):
            if part in BLOCKED_PROPERTIES:
                return None
            current = current.get(part)
        else:
            return None
    return current


def get_nested_value(obj: Any, path: str) -> Any:
    if is_root_path(path):
        return obj
    return walk(obj, parse_path(path))


def step_output_view(output: StepOutput) -> Dict[str, Any]:
    """Whole-output projection returned for an empty step path."""
    return {
        "stepId": output.step_id,
        "status": output.status,
        "outputArtifactIds": list(output.output_artifact_ids),
        "data": output.data,
    }


def get_step_output_value(output: StepOutput, path: str) -> Any:
    """Resolve ``path`` against a step output.

    The first segment may name a projection (``data``, ``artifacts``,
    ``outputArtifactIds``, ``status``, ``stepId``); any other first segment
    is looked up inside ``data``.
    """
    parts = parse_path(path)
    if not parts:
        return step_output_view(output)

    field = STEP_OUTPUT_PROJECTIONS.get(parts[0])
    if field is None:
        return walk(output.data, parts)
    return walk(getattr(output, field), parts[1:])
