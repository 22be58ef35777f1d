"""Tests for selector path parsing and traversal."""

import pytest

from skillflow.contracts import StepOutput
from skillflow.errors import MalformedPathError
from skillflow.selectors import get_nested_value, get_step_output_value, parse_path


def test_parse_path_segments_and_indices() -> None:
    assert parse_path("a.b[0].c") == ["a", "b", "0", "c"]
    assert parse_path("items[2][1]") == ["items", "2", "1"]
    assert parse_path("") == []
    assert parse_path(".") == []


@pytest.mark.parametrize("path", ["a[0", "a]0[", "a.b]"])
def test_parse_path_rejects_unbalanced_brackets(path: str) -> None:
    with pytest.raises(MalformedPathError):
        parse_path(path)


def test_get_nested_value_traverses_mappings_and_lists() -> None:
    payload = {"user": {"tags": ["x", {"name": "y"}]}}
    assert get_nested_value(payload, "user.tags[1].name") == "y"
    assert get_nested_value(payload, "user.tags[0]") == "x"
    assert get_nested_value(payload, "") is payload


def test_get_nested_value_returns_none_for_missing_data() -> None:
    payload = {"a": {"b": [1, 2]}, "s": "text"}
    assert get_nested_value(payload, "a.c") is None
    assert get_nested_value(payload, "a.b[5]") is None
    assert get_nested_value(payload, "a.b[-1]") is None
    assert get_nested_value(payload, "a.b.x") is None
    assert get_nested_value(payload, "s.upper") is None
    assert get_nested_value(None, "a") is None


def test_blocked_properties_are_treated_as_absent() -> None:
    payload = {"__proto__": {"polluted": True}, "constructor": 1, "prototype": 2}
    assert get_nested_value(payload, "__proto__.polluted") is None
    assert get_nested_value(payload, "constructor") is None
    assert get_nested_value(payload, "prototype") is None


def test_step_output_projections() -> None:
    output = StepOutput(
        step_id="fetch",
        status="completed",
        output_artifact_ids=["art-1", "art-2"],
        data={"title": "Hello", "items": [{"id": 7}]},
    )
    assert get_step_output_value(output, "data.title") == "Hello"
    assert get_step_output_value(output, "artifacts[1]") == "art-2"
    assert get_step_output_value(output, "outputArtifactIds") == ["art-1", "art-2"]
    assert get_step_output_value(output, "status") == "completed"
    assert get_step_output_value(output, "stepId") == "fetch"
    # Unknown first segments read from data.
    assert get_step_output_value(output, "items[0].id") == 7


def test_step_output_root_path_returns_whole_output() -> None:
    output = StepOutput(step_id="s", status="skipped")
    assert get_step_output_value(output, "") == {
        "stepId": "s",
        "status": "skipped",
        "outputArtifactIds": [],
        "data": None,
    }
    assert get_step_output_value(output, "data.anything") is None
