import pytest

from skillflow.persistence import (
    InMemoryRunRepository,
    Run,
    RunError,
    RunStep,
    SQLiteRunRepository,
    StepError,
    get_repository,
)


def _run(tenant: str = "t1", **kw) -> Run:
    return Run(
        tenant_id=tenant,
        workflow_name="wf",
        workflow_version="1.0.0",
        trigger_payload={"topic": "cats"},
        **kw,
    )


def _steps(run: Run, *step_ids: str) -> list[RunStep]:
    return [
        RunStep(
            run_id=run.id,
            tenant_id=run.tenant_id,
            step_id=step_id,
            skill_id=f"skill_{step_id}",
            input_hash="h0",
        )
        for step_id in step_ids
    ]


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryRunRepository()
    return SQLiteRunRepository(tmp_path / "runs.db")


@pytest.mark.asyncio
async def test_run_crud_is_tenant_scoped(repo):
    run = _run()
    await repo.create_run(run)

    loaded = await repo.get_run(run.id, "t1")
    assert loaded is not None
    assert loaded.trigger_payload == {"topic": "cats"}
    assert loaded.status == "queued"
    assert await repo.get_run(run.id, "other-tenant") is None

    loaded.status = "failed"
    loaded.error = RunError(code="TIMEOUT", message="too slow", failed_step_id="a")
    await repo.save_run(loaded)

    again = await repo.get_run(run.id, "t1")
    assert again.status == "failed"
    assert again.error.code == "TIMEOUT"
    assert again.error.failed_step_id == "a"


@pytest.mark.asyncio
async def test_list_runs_filters_by_tenant(repo):
    first, second, third = _run("t1"), _run("t2"), _run("t1")
    for run in (first, second, third):
        await repo.create_run(run)

    assert [r.id for r in await repo.list_runs("t1")] == [first.id, third.id]
    assert len(await repo.list_runs()) == 3


@pytest.mark.asyncio
async def test_run_steps_lookup_and_updates(repo):
    run = _run()
    await repo.create_run(run)
    await repo.create_run_steps(_steps(run, "a", "b", "c"))

    steps = await repo.list_run_steps(run.id, "t1")
    assert [s.step_id for s in steps] == ["a", "b", "c"]
    assert all(s.status == "pending" and s.attempt == 1 for s in steps)
    assert await repo.list_run_steps(run.id, "other-tenant") == []

    b = await repo.get_run_step_by_step_id(run.id, "b", "t1")
    assert b is not None
    assert await repo.get_run_step_by_step_id(run.id, "b", "other-tenant") is None
    assert await repo.get_run_step_by_step_id(run.id, "zzz", "t1") is None

    await repo.update_run_step_input_hash(b.id, "t1", "h1")
    await repo.increment_step_attempt(b.id, "t1")
    await repo.increment_step_attempt(b.id, "t1")
    b = await repo.get_run_step(b.id, "t1")
    assert b.input_hash == "h1"
    assert b.attempt == 3

    b.status = "failed"
    b.error = StepError(code="SKILL_ERROR", message="boom", attempt=3, details={"k": "v"})
    b.output_artifact_ids = ["x"]
    b.output_data = {"partial": True}
    b.cache_hit = True
    await repo.save_run_step(b)

    failed = await repo.list_run_steps(run.id, "t1", status="failed")
    assert [s.step_id for s in failed] == ["b"]
    assert failed[0].error.message == "boom"
    assert failed[0].error.details == {"k": "v"}
    assert failed[0].output_artifact_ids == ["x"]
    assert failed[0].output_data == {"partial": True}
    assert failed[0].cache_hit is True
    # Updating a step keeps its position.
    assert [s.step_id for s in await repo.list_run_steps(run.id, "t1")] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_duplicate_step_rows_are_rejected(repo):
    run = _run()
    await repo.create_run(run)
    await repo.create_run_steps(_steps(run, "a"))
    with pytest.raises(Exception):
        await repo.create_run_steps(_steps(run, "a"))


@pytest.mark.asyncio
async def test_sqlite_repository_persists_across_connections(tmp_path):
    db_path = tmp_path / "runs.db"
    repo = SQLiteRunRepository(db_path)
    run = _run()
    await repo.create_run(run)
    await repo.create_run_steps(_steps(run, "a"))
    repo.close()

    reopened = SQLiteRunRepository(db_path)
    loaded = await reopened.get_run(run.id, "t1")
    assert loaded is not None
    assert loaded.created_at == run.created_at
    assert [s.step_id for s in await reopened.list_run_steps(run.id, "t1")] == ["a"]


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("SKILLFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("SKILLFLOW_CONFIG", str(tmp_path / "missing.yaml"))

    repo = get_repository(f"sqlite://{tmp_path / 'wf.db'}")
    assert isinstance(repo, SQLiteRunRepository)

    with pytest.raises(ValueError):
        get_repository("mysql://localhost/db")
