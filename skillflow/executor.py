"""Cached, retrying execution of a single workflow step."""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from .cache.base import StepCache
from .cache.models import CacheSetParams
from .constants import EXECUTION_ERROR, INPUT_SELECTOR_ERROR, MAX_RETRIES, SKILL_ERROR
from .contracts import ErrorInfo, SkillResult, StepResult, StepSpec
from .engine import RunEngine
from .errors import RunStepNotFoundError
from .hashing import InputHasher
from .persistence.models import RunStep, StepError
from .skills import SkillRunner
from .state import RunState, RunStateUpdate
from .utils.retry import Sleep, schedule_retry

logger = logging.getLogger(__name__)

StepNode = Callable[[RunState], Awaitable[RunStateUpdate]]


class RetryPhase(str, enum.Enum):
    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


class RetryOutcome(BaseModel):
    """Terminal state of one execution-with-retry cycle."""

    result: SkillResult
    attempts: int
    phase: RetryPhase
    delays_ms: List[int] = Field(default_factory=list)


class CachedStepExecutor:
    """Compute a step's input, consult the cache, run the skill with retries
    and persist the outcome.

    The executor does not guard against re-running a step that already
    completed; callers schedule only pending steps.
    """

    def __init__(
        self,
        engine: RunEngine,
        skill_runner: SkillRunner,
        cache: Optional[StepCache] = None,
        hasher: Optional[InputHasher] = None,
        sleep: Sleep = asyncio.sleep,
        isolate_run_only: bool = False,
    ) -> None:
        self._engine = engine
        self._skill_runner = skill_runner
        self._cache = cache
        self._hasher = hasher or InputHasher()
        self._sleep = sleep
        self._isolate_run_only = isolate_run_only

    def node(self, step: StepSpec) -> StepNode:
        """Wrap ``step`` as a state-in, update-out callable for graph drivers."""

        async def run_node(state: RunState) -> RunStateUpdate:
            result = await self.execute_step(step, state)
            return RunStateUpdate.from_result(result)

        run_node.__name__ = f"step_{step.step_id}"
        return run_node

    async def execute_step(self, step: StepSpec, state: RunState) -> StepResult:
        started = time.monotonic()
        run_step = await self._engine.get_run_step_by_step_id(
            state.run_id, step.step_id, state.tenant_id
        )
        if run_step is None:
            raise RunStepNotFoundError(f"{state.run_id}/{step.step_id}")

        logger.info(f"Executing step {step.step_id} ({step.skill_id}) for run {state.run_id}")

        try:
            step_input = step.input_selector(state.to_context())
        except Exception as exc:
            # Input computation failures are terminal and never retried.
            logger.error(f"Input selector failed for step {step.step_id}: {exc}")
            return await self._fail(
                run_step,
                started,
                ErrorInfo(code=INPUT_SELECTOR_ERROR, message=str(exc), attempt=run_step.attempt),
            )

        input_hash = self._hasher.compute_hash(step_input)
        cache_key = self._cache_key(step, state, input_hash)

        await self._engine.update_run_step_status(run_step.id, state.tenant_id, "running")
        if input_hash != run_step.input_hash:
            await self._engine.update_run_step_input_hash(
                run_step.id, state.tenant_id, input_hash
            )

        if step.cache_policy.enabled:
            cached = await self._cache_get(cache_key)
            if cached is not None:
                duration_ms = _elapsed_ms(started)
                await self._engine.update_run_step_status(
                    run_step.id,
                    state.tenant_id,
                    "completed",
                    output_artifact_ids=cached.artifact_ids,
                    output_data=cached.data,
                    cache_hit=True,
                    duration_ms=duration_ms,
                )
                logger.info(f"Cache hit for step {step.step_id} ({cache_key})")
                return StepResult(
                    step_id=step.step_id,
                    status="completed",
                    artifact_ids=list(cached.artifact_ids),
                    data=cached.data,
                    cache_hit=True,
                    duration_ms=duration_ms,
                )

        outcome = await self.execute_with_retry(step, step_input, run_step.id, state.tenant_id)
        result = outcome.result

        if not result.ok:
            return await self._fail(
                run_step,
                started,
                ErrorInfo(
                    code=result.error_code or SKILL_ERROR,
                    message=result.error or "Skill execution failed",
                    attempt=outcome.attempts,
                ),
            )

        artifact_ids = result.artifact_ids()
        data = _as_mapping(result.data)
        duration_ms = _elapsed_ms(started)
        await self._engine.update_run_step_status(
            run_step.id,
            state.tenant_id,
            "completed",
            output_artifact_ids=artifact_ids,
            output_data=data,
            cache_hit=False,
            duration_ms=duration_ms,
        )

        if step.cache_policy.enabled and artifact_ids:
            await self._cache_set(
                CacheSetParams(
                    cache_key=cache_key,
                    workflow_name=state.workflow_name,
                    step_id=step.step_id,
                    input_hash=input_hash,
                    artifact_ids=artifact_ids,
                    data=data,
                    scope=step.cache_policy.scope,
                )
            )

        logger.info(
            f"Step {step.step_id} completed in {duration_ms}ms after {outcome.attempts} attempt(s)"
        )
        return StepResult(
            step_id=step.step_id,
            status="completed",
            artifact_ids=artifact_ids,
            data=data,
            cache_hit=False,
            duration_ms=duration_ms,
        )

    async def execute_with_retry(
        self,
        step: StepSpec,
        step_input: Dict[str, Any],
        run_step_id: str,
        tenant_id: str,
    ) -> RetryOutcome:
        """Run the skill until it succeeds or the retry policy is exhausted.

        A thrown exception counts as an ``EXECUTION_ERROR`` failure. Before
        each retry the persisted attempt counter is incremented and the
        injected ``sleep`` waits ``backoff_ms * 2**(attempt-1)``.
        """
        policy = step.retry_policy
        phase = RetryPhase.ATTEMPTING
        attempt = 1
        last_failure: Optional[SkillResult] = None
        delays: List[int] = []

        while True:
            if phase is RetryPhase.ATTEMPTING:
                result = await self._attempt(step, step_input, attempt)
                if result.ok:
                    phase = RetryPhase.SUCCEEDED
                    return RetryOutcome(
                        result=result, attempts=attempt, phase=phase, delays_ms=delays
                    )
                last_failure = result
                logger.warning(
                    f"Step {step.step_id} attempt {attempt}/{policy.max_attempts} failed: "
                    f"{result.error_code}: {result.error}"
                )
                phase = (
                    RetryPhase.BACKOFF
                    if attempt < policy.max_attempts
                    else RetryPhase.EXHAUSTED
                )
            elif phase is RetryPhase.BACKOFF:
                await self._engine.increment_step_attempt(run_step_id, tenant_id)
                delay_ms = await schedule_retry(attempt, policy.backoff_ms, self._sleep)
                delays.append(delay_ms)
                logger.info(
                    f"Retrying step {step.step_id} after {delay_ms}ms (attempt {attempt + 1})"
                )
                attempt += 1
                phase = RetryPhase.ATTEMPTING
            else:
                break

        if last_failure is None:
            last_failure = SkillResult(
                ok=False,
                error=f"Max retries ({policy.max_attempts}) exceeded",
                error_code=MAX_RETRIES,
            )
        return RetryOutcome(result=last_failure, attempts=attempt, phase=phase, delays_ms=delays)

    async def _attempt(self, step: StepSpec, step_input: Dict[str, Any], attempt: int) -> SkillResult:
        try:
            return await self._skill_runner.execute(step.skill_id, step_input)
        except Exception as exc:
            logger.exception(f"Skill {step.skill_id} raised on attempt {attempt}")
            return SkillResult(ok=False, error=str(exc), error_code=EXECUTION_ERROR)

    def _cache_key(self, step: StepSpec, state: RunState, input_hash: str) -> str:
        run_id = None
        if self._isolate_run_only and step.cache_policy.scope == "run_only":
            run_id = state.run_id
        return self._hasher.create_cache_key_from_hash(
            state.workflow_name, step.step_id, input_hash, run_id=run_id
        )

    async def _cache_get(self, cache_key: str):
        try:
            return await self._cache.get(cache_key) if self._cache is not None else None
        except Exception as exc:
            logger.warning(f"Cache lookup failed for {cache_key}: {exc}")
            return None

    async def _cache_set(self, params: CacheSetParams) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(params)
        except Exception as exc:
            logger.warning(f"Cache write failed for {params.cache_key}: {exc}")

    async def _fail(self, run_step: RunStep, started: float, error: ErrorInfo) -> StepResult:
        duration_ms = _elapsed_ms(started)
        await self._engine.update_run_step_status(
            run_step.id,
            run_step.tenant_id,
            "failed",
            error=StepError(code=error.code, message=error.message, attempt=error.attempt or 1),
            duration_ms=duration_ms,
        )
        logger.error(f"Step {run_step.step_id} failed [{error.code}]: {error.message}")
        return StepResult(
            step_id=run_step.step_id,
            status="failed",
            duration_ms=duration_ms,
            error=error,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _as_mapping(data: Any) -> Optional[Dict[str, Any]]:
    if data is None or isinstance(data, dict):
        return data
    return {"value": data}
