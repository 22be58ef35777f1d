from typer.testing import CliRunner

from skillflow.cli import app

INDEX = """
version: "1"
updated_at: "2026-10-01"
workflows:
  - workflow_name: digest
    version: 1.0.0
    status: active
"""

DIGEST = """
workflow_name: digest
version: 1.0.0
description: Daily digest
steps:
  - step_id: write
    skill_id: writer
    depends_on: [gather]
    retry_policy: {max_attempts: 2, backoff_ms: 10}
  - step_id: gather
    skill_id: gatherer
    input_selector:
      topic: {source: trigger, path: topic}
    cache_policy: {enabled: true, scope: global}
"""


def _workflows_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("SKILLFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.delenv("SKILLFLOW_WORKFLOWS_PATH", raising=False)
    path = tmp_path / "workflows"
    path.mkdir()
    (path / "index.yaml").write_text(INDEX)
    (path / "digest.v1.yaml").write_text(DIGEST)
    return path


def test_workflow_list_shows_registered_versions(tmp_path, monkeypatch):
    path = _workflows_dir(tmp_path, monkeypatch)
    result = CliRunner().invoke(app, ["workflow", "list", "--path", str(path)])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "digest\t1.0.0\t2 steps\tDaily digest" in result.stdout


def test_workflow_list_empty(tmp_path, monkeypatch):
    monkeypatch.setenv("SKILLFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    result = CliRunner().invoke(app, ["workflow", "list", "--path", str(tmp_path)])
    assert result.exit_code == 0
    assert "No workflows found" in result.stdout


def test_workflow_show_prints_steps_in_execution_order(tmp_path, monkeypatch):
    path = _workflows_dir(tmp_path, monkeypatch)
    result = CliRunner().invoke(app, ["workflow", "show", "digest", "--path", str(path)])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    output = result.stdout
    assert "Workflow digest v1.0.0 (2 steps)" in output
    assert output.index("- gather (gatherer) [cache:global]") < output.index(
        "- write (writer) <- gather [retry:2x10ms]"
    )


def test_workflow_show_missing(tmp_path, monkeypatch):
    path = _workflows_dir(tmp_path, monkeypatch)
    result = CliRunner().invoke(app, ["workflow", "show", "nope", "--path", str(path)])
    assert result.exit_code == 1
    assert "Workflow not found" in result.stdout


def test_workflow_validate_accepts_valid_file(tmp_path, monkeypatch):
    path = _workflows_dir(tmp_path, monkeypatch)
    result = CliRunner().invoke(app, ["workflow", "validate", str(path / "digest.v1.yaml")])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "Workflow digest v1.0.0 is valid (2 steps)" in result.stdout


def test_workflow_validate_reports_graph_errors(tmp_path, monkeypatch):
    monkeypatch.setenv("SKILLFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    bad = tmp_path / "bad.yaml"
    bad.write_text(
        "workflow_name: bad\nversion: 1.0.0\nsteps:\n"
        "  - {step_id: a, skill_id: s, depends_on: [ghost]}\n"
    )
    result = CliRunner().invoke(app, ["workflow", "validate", str(bad)])
    assert result.exit_code == 1
    assert "ghost" in result.stdout


def test_workflow_validate_reports_schema_errors(tmp_path, monkeypatch):
    monkeypatch.setenv("SKILLFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    bad = tmp_path / "bad.yaml"
    bad.write_text("workflow_name: bad\nsteps: []\n")
    result = CliRunner().invoke(app, ["workflow", "validate", str(bad)])
    assert result.exit_code == 1
    assert "version" in result.stdout


def test_workflow_validate_missing_file(tmp_path, monkeypatch):
    monkeypatch.setenv("SKILLFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    result = CliRunner().invoke(app, ["workflow", "validate", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1
