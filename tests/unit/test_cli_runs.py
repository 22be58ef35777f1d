import asyncio

from typer.testing import CliRunner

import skillflow.persistence as persistence
from skillflow.cache import CacheSetParams, SQLStepCache
from skillflow.cli import app
from skillflow.contracts import StepSpec, WorkflowSpec
from skillflow.engine import RunEngine
from skillflow.persistence import InMemoryRunRepository, RunError, SQLiteRunRepository, StepError


def _workflow() -> WorkflowSpec:
    return WorkflowSpec(
        workflow_name="digest",
        version="1.0.0",
        steps=[
            StepSpec(step_id="gather", skill_id="gatherer"),
            StepSpec(step_id="write", skill_id="writer", depends_on=["gather"]),
        ],
    )


def _setup_repo(monkeypatch, tmp_path) -> InMemoryRunRepository:
    for name in ("SKILLFLOW_DATABASE_URL", "DATABASE_URL", "SKILLFLOW_CACHE_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SKILLFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    repo = InMemoryRunRepository()
    monkeypatch.setattr(persistence, "_repository_instance", repo)
    return repo


def test_run_list_shows_runs(tmp_path, monkeypatch):
    repo = _setup_repo(monkeypatch, tmp_path)
    engine = RunEngine(repo)
    first = asyncio.run(engine.create_run("acme", _workflow(), {"topic": "a"}))
    second = asyncio.run(engine.create_run("globex", _workflow(), {}))

    runner = CliRunner()
    result = runner.invoke(app, ["run", "list"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert f"{first.id}\tacme\tdigest v1.0.0\tqueued" in result.stdout
    assert second.id in result.stdout

    result = runner.invoke(app, ["run", "list", "--tenant", "globex"])
    assert first.id not in result.stdout
    assert second.id in result.stdout


def test_run_list_empty(tmp_path, monkeypatch):
    _setup_repo(monkeypatch, tmp_path)
    result = CliRunner().invoke(app, ["run", "list"])
    assert result.exit_code == 0
    assert "No runs found" in result.stdout


def test_run_show_details_and_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("SKILLFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("SKILLFLOW_DATABASE_URL", f"sqlite://{tmp_path / 'runs.db'}")

    async def prepare():
        engine = RunEngine(SQLiteRunRepository(tmp_path / "runs.db"))
        run = await engine.create_run("acme", _workflow(), {"topic": "cats"})
        await engine.update_run_status(run.id, "acme", "running")
        gather = await engine.get_run_step_by_step_id(run.id, "gather", "acme")
        await engine.update_run_step_status(gather.id, "acme", "completed", cache_hit=True, duration_ms=5)
        write = await engine.get_run_step_by_step_id(run.id, "write", "acme")
        await engine.update_run_step_status(
            write.id, "acme", "failed", error=StepError(code="SKILL_ERROR", message="boom", attempt=2)
        )
        await engine.update_run_status(
            run.id,
            "acme",
            "failed",
            error=RunError(code="STEP_EXECUTION_FAILED", message="Step write failed", failed_step_id="write"),
        )
        return run

    run = asyncio.run(prepare())

    runner = CliRunner()
    result = runner.invoke(app, ["run", "show", run.id, "--tenant", "acme"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    output = result.stdout
    assert f"Run {run.id}: failed (digest v1.0.0)" in output
    assert "Payload: {'topic': 'cats'}" in output
    assert "Error: STEP_EXECUTION_FAILED: Step write failed" in output
    assert "- gather: completed [cache hit] 5ms" in output
    assert "- write: failed attempt 2 SKILL_ERROR: boom" in output

    wrong_tenant = runner.invoke(app, ["run", "show", run.id, "--tenant", "other"])
    assert wrong_tenant.exit_code == 1
    assert "Run not found" in wrong_tenant.stdout


def test_cache_invalidate_reports_count(tmp_path, monkeypatch):
    url = f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}"
    monkeypatch.setenv("SKILLFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("SKILLFLOW_CACHE_URL", url)

    async def prepare():
        cache = SQLStepCache(url)
        for key, step in (("digest:gather:1", "gather"), ("digest:gather:2", "gather"), ("digest:write:1", "write")):
            await cache.set(
                CacheSetParams(
                    cache_key=key, workflow_name="digest", step_id=step, input_hash=key[-1], artifact_ids=["a"]
                )
            )
        await cache.close()

    asyncio.run(prepare())

    runner = CliRunner()
    result = runner.invoke(app, ["cache", "invalidate", "digest", "--step", "gather"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert "Invalidated 2 cache entries for digest:gather" in result.stdout

    result = runner.invoke(app, ["cache", "invalidate", "digest"])
    assert "Invalidated 1 cache entries for digest" in result.stdout
