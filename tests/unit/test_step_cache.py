"""Tests for the step cache backends."""

import pytest

from skillflow.cache import CacheSetParams, InMemoryStepCache, SQLStepCache, get_step_cache


def _params(key: str = "wf:step:abc", step_id: str = "step", workflow: str = "wf", **kw):
    values = dict(
        cache_key=key,
        workflow_name=workflow,
        step_id=step_id,
        input_hash=key.rsplit(":", 1)[-1],
        artifact_ids=["art-1"],
        data={"answer": 42},
        scope="global",
    )
    values.update(kw)
    return CacheSetParams(**values)


async def _exercise_cache(cache) -> None:
    assert await cache.get("wf:step:abc") is None

    await cache.set(_params())
    entry = await cache.get("wf:step:abc")
    assert entry is not None
    assert entry.artifact_ids == ["art-1"]
    assert entry.data == {"answer": 42}
    assert entry.scope == "global"

    # Writing the same key overwrites artifacts, data and scope.
    await cache.set(_params(artifact_ids=["art-2", "art-3"], data=None, scope="run_only"))
    entry = await cache.get("wf:step:abc")
    assert entry.artifact_ids == ["art-2", "art-3"]
    assert entry.data is None
    assert entry.scope == "run_only"

    await cache.set(_params("wf:step:def"))
    await cache.set(_params("wf:other:abc", step_id="other"))
    await cache.set(_params("wf2:step:abc", workflow="wf2"))

    assert await cache.invalidate_step("wf", "step") == 2
    assert await cache.get("wf:step:abc") is None
    assert await cache.get("wf:other:abc") is not None

    assert await cache.invalidate_workflow("wf") == 1
    assert await cache.invalidate_workflow("wf") == 0
    assert await cache.get("wf2:step:abc") is not None


@pytest.mark.asyncio
async def test_in_memory_cache_lifecycle():
    await _exercise_cache(InMemoryStepCache())


@pytest.mark.asyncio
async def test_sql_cache_lifecycle(tmp_path):
    cache = SQLStepCache(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
    try:
        await _exercise_cache(cache)
    finally:
        await cache.close()


@pytest.mark.asyncio
async def test_sql_cache_survives_reopen(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}"
    cache = SQLStepCache(url)
    await cache.set(_params())
    await cache.close()

    reopened = SQLStepCache(url)
    try:
        entry = await reopened.get("wf:step:abc")
        assert entry is not None
        assert entry.artifact_ids == ["art-1"]
    finally:
        await reopened.close()


@pytest.mark.asyncio
async def test_in_memory_cache_returns_copies():
    cache = InMemoryStepCache()
    await cache.set(_params())
    entry = await cache.get("wf:step:abc")
    entry.artifact_ids.append("tampered")
    assert (await cache.get("wf:step:abc")).artifact_ids == ["art-1"]


def test_get_step_cache_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("SKILLFLOW_CACHE_URL", raising=False)
    monkeypatch.setenv("SKILLFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    assert isinstance(get_step_cache(), InMemoryStepCache)
    assert isinstance(
        get_step_cache(f"sqlite+aiosqlite:///{tmp_path / 'c.db'}"), SQLStepCache
    )
