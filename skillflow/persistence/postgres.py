"""PostgreSQL implementation of the run repository."""

from __future__ import annotations

from typing import Any, Optional, Sequence

import asyncpg

from .models import Run, RunStep, StepStatus
from .repository import RunRepository
from .rows import (
    RUN_COLUMNS,
    RUN_JSON_COLUMNS,
    STEP_COLUMNS,
    STEP_JSON_COLUMNS,
    decode_row,
    encode_row,
    insert_sql,
    upsert_sql,
)

_RUN_SELECT = f"SELECT {', '.join(RUN_COLUMNS)} FROM runs"
_STEP_SELECT = f"SELECT {', '.join(STEP_COLUMNS)} FROM run_steps"


def _placeholders(count: int) -> list[str]:
    return [f"${i}" for i in range(1, count + 1)]


class PostgresRunRepository(RunRepository):
    """Persist run state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                workflow_name TEXT NOT NULL,
                workflow_version TEXT NOT NULL,
                trigger_type TEXT NOT NULL,
                trigger_payload JSONB,
                status TEXT NOT NULL,
                base_run_id TEXT,
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                duration_ms INTEGER,
                error JSONB,
                created_at TIMESTAMPTZ NOT NULL,
                seq BIGSERIAL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS run_steps (
                id TEXT PRIMARY KEY,
                run_id TEXT NOT NULL,
                tenant_id TEXT NOT NULL,
                step_id TEXT NOT NULL,
                skill_id TEXT NOT NULL,
                status TEXT NOT NULL,
                input_hash TEXT NOT NULL,
                attempt INTEGER NOT NULL DEFAULT 1,
                output_artifact_ids JSONB,
                output_data JSONB,
                cache_hit BOOLEAN NOT NULL DEFAULT FALSE,
                duration_ms INTEGER,
                error JSONB,
                started_at TIMESTAMPTZ,
                ended_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL,
                seq BIGSERIAL,
                UNIQUE (run_id, step_id)
            )
            """
        )

    async def _execute(self, query: str, *params: Any) -> None:
        conn = await self._connect()
        try:
            await conn.execute(query, *params)
        finally:
            await conn.close()

    async def _fetchrow(self, query: str, *params: Any) -> asyncpg.Record | None:
        conn = await self._connect()
        try:
            return await conn.fetchrow(query, *params)
        finally:
            await conn.close()

    async def _fetch(self, query: str, *params: Any) -> list[asyncpg.Record]:
        conn = await self._connect()
        try:
            return await conn.fetch(query, *params)
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    async def create_run(self, run: Run) -> None:
        await self._execute(
            insert_sql("runs", RUN_COLUMNS, _placeholders(len(RUN_COLUMNS))),
            *encode_row(run, RUN_COLUMNS, RUN_JSON_COLUMNS, native_datetimes=True),
        )

    async def save_run(self, run: Run) -> None:
        await self._execute(
            upsert_sql("runs", RUN_COLUMNS, _placeholders(len(RUN_COLUMNS))),
            *encode_row(run, RUN_COLUMNS, RUN_JSON_COLUMNS, native_datetimes=True),
        )

    async def get_run(self, run_id: str, tenant_id: str) -> Run | None:
        row = await self._fetchrow(
            f"{_RUN_SELECT} WHERE id = $1 AND tenant_id = $2", run_id, tenant_id
        )
        return decode_row(Run, row, RUN_JSON_COLUMNS) if row else None

    async def list_runs(self, tenant_id: Optional[str] = None) -> list[Run]:
        if tenant_id is None:
            rows = await self._fetch(f"{_RUN_SELECT} ORDER BY seq")
        else:
            rows = await self._fetch(f"{_RUN_SELECT} WHERE tenant_id = $1 ORDER BY seq", tenant_id)
        return [decode_row(Run, r, RUN_JSON_COLUMNS) for r in rows]

    async def create_run_steps(self, steps: Sequence[RunStep]) -> None:
        conn = await self._connect()
        try:
            await conn.executemany(
                insert_sql("run_steps", STEP_COLUMNS, _placeholders(len(STEP_COLUMNS))),
                [
                    encode_row(s, STEP_COLUMNS, STEP_JSON_COLUMNS, native_datetimes=True)
                    for s in steps
                ],
            )
        finally:
            await conn.close()

    async def save_run_step(self, step: RunStep) -> None:
        await self._execute(
            upsert_sql("run_steps", STEP_COLUMNS, _placeholders(len(STEP_COLUMNS))),
            *encode_row(step, STEP_COLUMNS, STEP_JSON_COLUMNS, native_datetimes=True),
        )

    async def get_run_step(self, step_row_id: str, tenant_id: str) -> RunStep | None:
        row = await self._fetchrow(
            f"{_STEP_SELECT} WHERE id = $1 AND tenant_id = $2", step_row_id, tenant_id
        )
        return decode_row(RunStep, row, STEP_JSON_COLUMNS) if row else None

    async def get_run_step_by_step_id(
        self, run_id: str, step_id: str, tenant_id: str
    ) -> RunStep | None:
        row = await self._fetchrow(
            f"{_STEP_SELECT} WHERE run_id = $1 AND step_id = $2 AND tenant_id = $3",
            run_id,
            step_id,
            tenant_id,
        )
        return decode_row(RunStep, row, STEP_JSON_COLUMNS) if row else None

    async def list_run_steps(
        self, run_id: str, tenant_id: str, status: Optional[StepStatus] = None
    ) -> list[RunStep]:
        if status is None:
            rows = await self._fetch(
                f"{_STEP_SELECT} WHERE run_id = $1 AND tenant_id = $2 ORDER BY seq",
                run_id,
                tenant_id,
            )
        else:
            rows = await self._fetch(
                f"{_STEP_SELECT} WHERE run_id = $1 AND tenant_id = $2 AND status = $3 ORDER BY seq",
                run_id,
                tenant_id,
                status,
            )
        return [decode_row(RunStep, r, STEP_JSON_COLUMNS) for r in rows]

    async def update_run_step_input_hash(
        self, step_row_id: str, tenant_id: str, input_hash: str
    ) -> None:
        await self._execute(
            "UPDATE run_steps SET input_hash = $1 WHERE id = $2 AND tenant_id = $3",
            input_hash,
            step_row_id,
            tenant_id,
        )

    async def increment_step_attempt(self, step_row_id: str, tenant_id: str) -> None:
        await self._execute(
            "UPDATE run_steps SET attempt = attempt + 1 WHERE id = $1 AND tenant_id = $2",
            step_row_id,
            tenant_id,
        )
