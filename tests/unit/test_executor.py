"""Tests for cached, retrying step execution."""

import asyncio

import pytest

from skillflow.cache import CacheSetParams, InMemoryStepCache
from skillflow.contracts import (
    CachePolicy,
    RetryPolicy,
    SkillArtifact,
    SkillResult,
    StepSpec,
    WorkflowSpec,
)
from skillflow.engine import RunEngine
from skillflow.executor import CachedStepExecutor, RetryPhase
from skillflow.hashing import InputHasher
from skillflow.persistence import InMemoryRunRepository
from skillflow.selectors import InputSelectorInterpreter


class ScriptedRunner:
    """Skill runner returning queued results (or raising queued exceptions)."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def execute(self, skill_id, input):
        self.calls.append((skill_id, input))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


class FailingCache:
    async def get(self, cache_key):
        raise RuntimeError("cache down")

    async def set(self, params):
        raise RuntimeError("cache down")


def _ok(*artifact_ids, data=None):
    return SkillResult(
        ok=True,
        data=data if data is not None else {"value": "done"},
        artifacts=[
            SkillArtifact(artifact_type="text", uri=f"mem://{a}", metadata={"id": a})
            for a in artifact_ids
        ],
    )


def _fail(code="SKILL_ERROR", message="boom"):
    return SkillResult(ok=False, error=message, error_code=code)


def _step(selector=None, cache=False, scope="global", attempts=1, backoff_ms=100) -> StepSpec:
    compiled = InputSelectorInterpreter().compile(
        selector if selector is not None else {"q": {"source": "trigger", "path": "q"}}
    )
    return StepSpec(
        step_id="work",
        skill_id="worker",
        input_selector=compiled,
        cache_policy=CachePolicy(enabled=cache, scope=scope),
        retry_policy=RetryPolicy(max_attempts=attempts, backoff_ms=backoff_ms),
    )


async def _setup(step, payload=None):
    engine = RunEngine(InMemoryRunRepository())
    workflow = WorkflowSpec(workflow_name="wf", version="1.0.0", steps=[step])
    run = await engine.create_run("t1", workflow, payload if payload is not None else {"q": "cats"})
    state = await engine.build_run_state(run, workflow)
    return engine, run, state


@pytest.mark.asyncio
async def test_success_persists_completed_step():
    step = _step()
    engine, run, state = await _setup(step)
    runner = ScriptedRunner(_ok("a1", "", data={"summary": "s"}))
    executor = CachedStepExecutor(engine, runner, sleep=RecordingSleep())

    result = await executor.execute_step(step, state)

    assert result.status == "completed"
    assert result.cache_hit is False
    assert result.artifact_ids == ["a1"]
    assert result.data == {"summary": "s"}
    assert result.duration_ms >= 0
    assert runner.calls == [("worker", {"q": "cats"})]

    row = await engine.get_run_step_by_step_id(run.id, "work", "t1")
    assert row.status == "completed"
    assert row.output_artifact_ids == ["a1"]
    assert row.output_data == {"summary": "s"}
    assert row.started_at is not None and row.ended_at is not None
    assert row.input_hash == InputHasher().compute_hash({"q": "cats"})


@pytest.mark.asyncio
async def test_non_mapping_skill_data_is_wrapped():
    step = _step()
    engine, _, state = await _setup(step)
    executor = CachedStepExecutor(engine, ScriptedRunner(SkillResult(ok=True, data=[1, 2])))
    result = await executor.execute_step(step, state)
    assert result.data == {"value": [1, 2]}


@pytest.mark.asyncio
async def test_retry_uses_doubling_backoff_and_counts_attempts():
    step = _step(attempts=3, backoff_ms=100)
    engine, run, state = await _setup(step)
    sleep = RecordingSleep()
    runner = ScriptedRunner(_fail(), _fail(), _ok("a1"))
    executor = CachedStepExecutor(engine, runner, sleep=sleep)

    result = await executor.execute_step(step, state)

    assert result.status == "completed"
    assert len(runner.calls) == 3
    assert sleep.delays == [0.1, 0.2]
    row = await engine.get_run_step_by_step_id(run.id, "work", "t1")
    assert row.attempt == 3


@pytest.mark.asyncio
async def test_exhausted_retries_record_last_error_and_attempts():
    step = _step(attempts=3, backoff_ms=1000)
    engine, run, state = await _setup(step)
    sleep = RecordingSleep()
    runner = ScriptedRunner(_fail("RATE_LIMIT", "first"), RuntimeError("kaboom"), _fail("BAD_INPUT", "last"))
    executor = CachedStepExecutor(engine, runner, sleep=sleep)

    result = await executor.execute_step(step, state)

    assert result.status == "failed"
    assert result.error.code == "BAD_INPUT"
    assert result.error.message == "last"
    assert result.error.attempt == 3
    assert sleep.delays == [1.0, 2.0]

    row = await engine.get_run_step_by_step_id(run.id, "work", "t1")
    assert row.status == "failed"
    assert row.attempt == 3
    assert row.error.code == "BAD_INPUT"
    assert row.error.attempt == 3


@pytest.mark.asyncio
async def test_exception_is_classified_as_execution_error():
    step = _step()
    engine, _, state = await _setup(step)
    executor = CachedStepExecutor(engine, ScriptedRunner(ValueError("bad things")))

    result = await executor.execute_step(step, state)

    assert result.status == "failed"
    assert result.error.code == "EXECUTION_ERROR"
    assert "bad things" in result.error.message
    assert result.error.attempt == 1


@pytest.mark.asyncio
async def test_skill_failure_without_code_is_skill_error():
    step = _step()
    engine, _, state = await _setup(step)
    executor = CachedStepExecutor(engine, ScriptedRunner(SkillResult(ok=False)))
    result = await executor.execute_step(step, state)
    assert result.error.code == "SKILL_ERROR"


@pytest.mark.asyncio
async def test_retry_state_machine_outcome():
    step = _step(attempts=2, backoff_ms=50)
    engine, run, _ = await _setup(step)
    row = await engine.get_run_step_by_step_id(run.id, "work", "t1")
    executor = CachedStepExecutor(engine, ScriptedRunner(_fail(), _fail()), sleep=RecordingSleep())

    outcome = await executor.execute_with_retry(step, {"q": "cats"}, row.id, "t1")

    assert outcome.phase is RetryPhase.EXHAUSTED
    assert outcome.attempts == 2
    assert outcome.delays_ms == [50]
    assert outcome.result.ok is False

    ok_executor = CachedStepExecutor(engine, ScriptedRunner(_ok()), sleep=RecordingSleep())
    outcome = await ok_executor.execute_with_retry(step, {"q": "cats"}, row.id, "t1")
    assert outcome.phase is RetryPhase.SUCCEEDED
    assert outcome.attempts == 1
    assert outcome.delays_ms == []


@pytest.mark.asyncio
async def test_cancellation_during_backoff_propagates():
    step = _step(attempts=3, backoff_ms=10)
    engine, _, state = await _setup(step)

    async def cancelled_sleep(seconds):
        raise asyncio.CancelledError()

    executor = CachedStepExecutor(engine, ScriptedRunner(_fail(), _ok()), sleep=cancelled_sleep)
    with pytest.raises(asyncio.CancelledError):
        await executor.execute_step(step, state)


@pytest.mark.asyncio
async def test_input_selector_error_is_terminal_and_not_retried():
    step = _step(
        selector={"x": {"source": "step_output", "step_id": "missing", "path": "data"}},
        attempts=5,
    )
    engine, run, state = await _setup(step)
    runner = ScriptedRunner()
    sleep = RecordingSleep()
    executor = CachedStepExecutor(engine, runner, sleep=sleep)

    result = await executor.execute_step(step, state)

    assert result.status == "failed"
    assert result.error.code == "INPUT_SELECTOR_ERROR"
    assert runner.calls == []
    assert sleep.delays == []
    row = await engine.get_run_step_by_step_id(run.id, "work", "t1")
    assert row.status == "failed"
    assert row.error.code == "INPUT_SELECTOR_ERROR"


@pytest.mark.asyncio
async def test_cache_miss_then_hit_skips_skill():
    step = _step(cache=True)
    cache = InMemoryStepCache()

    engine, run, state = await _setup(step)
    runner = ScriptedRunner(_ok("a1", data={"n": 1}))
    executor = CachedStepExecutor(engine, runner, cache=cache)
    first = await executor.execute_step(step, state)
    assert first.cache_hit is False

    key = InputHasher().create_cache_key("wf", "work", {"q": "cats"})
    entry = await cache.get(key)
    assert entry.artifact_ids == ["a1"]
    assert entry.scope == "global"

    # A second run with the same input is served from the cache.
    engine2, run2, state2 = await _setup(step)
    runner2 = ScriptedRunner()
    second = await CachedStepExecutor(engine2, runner2, cache=cache).execute_step(step, state2)
    assert second.cache_hit is True
    assert second.artifact_ids == ["a1"]
    assert second.data == {"n": 1}
    assert runner2.calls == []
    row = await engine2.get_run_step_by_step_id(run2.id, "work", "t1")
    assert row.status == "completed"
    assert row.cache_hit is True


@pytest.mark.asyncio
async def test_results_without_artifacts_are_not_cached():
    step = _step(cache=True)
    cache = InMemoryStepCache()
    engine, _, state = await _setup(step)
    await CachedStepExecutor(engine, ScriptedRunner(_ok()), cache=cache).execute_step(step, state)
    assert await cache.get(InputHasher().create_cache_key("wf", "work", {"q": "cats"})) is None


@pytest.mark.asyncio
async def test_disabled_cache_is_never_consulted():
    step = _step(cache=False)
    cache = InMemoryStepCache()
    key = InputHasher().create_cache_key("wf", "work", {"q": "cats"})
    await cache.set(
        CacheSetParams(
            cache_key=key, workflow_name="wf", step_id="work", input_hash="h", artifact_ids=["old"]
        )
    )
    engine, _, state = await _setup(step)
    runner = ScriptedRunner(_ok("fresh"))
    result = await CachedStepExecutor(engine, runner, cache=cache).execute_step(step, state)
    assert result.artifact_ids == ["fresh"]
    assert len(runner.calls) == 1
    assert (await cache.get(key)).artifact_ids == ["old"]


@pytest.mark.asyncio
async def test_cache_faults_are_advisory():
    step = _step(cache=True)
    engine, _, state = await _setup(step)
    executor = CachedStepExecutor(engine, ScriptedRunner(_ok("a1")), cache=FailingCache())
    result = await executor.execute_step(step, state)
    assert result.status == "completed"
    assert result.artifact_ids == ["a1"]


@pytest.mark.asyncio
async def test_isolated_run_only_keys_include_run_id():
    step = _step(cache=True, scope="run_only")
    cache = InMemoryStepCache()
    engine, run, state = await _setup(step)
    executor = CachedStepExecutor(engine, ScriptedRunner(_ok("a1")), cache=cache, isolate_run_only=True)
    await executor.execute_step(step, state)

    hasher = InputHasher()
    input_hash = hasher.compute_hash({"q": "cats"})
    assert await cache.get(hasher.create_cache_key_from_hash("wf", "work", input_hash)) is None
    scoped = hasher.create_cache_key_from_hash("wf", "work", input_hash, run_id=run.id)
    assert (await cache.get(scoped)).scope == "run_only"


@pytest.mark.asyncio
async def test_node_returns_state_update():
    step = _step()
    engine, _, state = await _setup(step)
    node = CachedStepExecutor(engine, ScriptedRunner(_ok("a1"))).node(step)

    update = await node(state)
    merged = state.apply(update)

    assert merged.step_results["work"].status == "completed"
    assert merged.artifacts == {"work": ["a1"]}
    assert merged.error is None
