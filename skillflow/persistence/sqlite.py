"""SQLite implementation of the run repository."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Any, Optional, Sequence

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


class SQLiteRunRepository(RunRepository):
    """Persist run state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                workflow_name TEXT NOT NULL,
                workflow_version TEXT NOT NULL,
                trigger_type TEXT NOT NULL,
                trigger_payload TEXT,
                status TEXT NOT NULL,
                base_run_id TEXT,
                started_at TEXT,
                completed_at TEXT,
                duration_ms INTEGER,
                error TEXT,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
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
                output_artifact_ids TEXT,
                output_data TEXT,
                cache_hit INTEGER NOT NULL DEFAULT 0,
                duration_ms INTEGER,
                error TEXT,
                started_at TEXT,
                ended_at TEXT,
                created_at TEXT NOT NULL,
                UNIQUE (run_id, step_id)
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_run_steps_tenant_run ON run_steps (tenant_id, run_id)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()

    def _executemany(self, query: str, rows: Sequence[tuple]) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.executemany(query, rows)
            self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Repository API
    async def create_run(self, run: Run) -> None:
        await asyncio.to_thread(
            self._execute,
            insert_sql("runs", RUN_COLUMNS, ["?"] * len(RUN_COLUMNS)),
            *encode_row(run, RUN_COLUMNS, RUN_JSON_COLUMNS),
        )

    async def save_run(self, run: Run) -> None:
        await asyncio.to_thread(
            self._execute,
            upsert_sql("runs", RUN_COLUMNS, ["?"] * len(RUN_COLUMNS)),
            *encode_row(run, RUN_COLUMNS, RUN_JSON_COLUMNS),
        )

    async def get_run(self, run_id: str, tenant_id: str) -> Run | None:
        row = await asyncio.to_thread(
            self._fetchone, f"{_RUN_SELECT} WHERE id = ? AND tenant_id = ?", run_id, tenant_id
        )
        return decode_row(Run, row, RUN_JSON_COLUMNS) if row else None

    async def list_runs(self, tenant_id: Optional[str] = None) -> list[Run]:
        if tenant_id is None:
            rows = await asyncio.to_thread(self._fetchall, f"{_RUN_SELECT} ORDER BY rowid")
        else:
            rows = await asyncio.to_thread(
                self._fetchall, f"{_RUN_SELECT} WHERE tenant_id = ? ORDER BY rowid", tenant_id
            )
        return [decode_row(Run, r, RUN_JSON_COLUMNS) for r in rows]

    async def create_run_steps(self, steps: Sequence[RunStep]) -> None:
        await asyncio.to_thread(
            self._executemany,
            insert_sql("run_steps", STEP_COLUMNS, ["?"] * len(STEP_COLUMNS)),
            [encode_row(s, STEP_COLUMNS, STEP_JSON_COLUMNS) for s in steps],
        )

    async def save_run_step(self, step: RunStep) -> None:
        await asyncio.to_thread(
            self._execute,
            upsert_sql("run_steps", STEP_COLUMNS, ["?"] * len(STEP_COLUMNS)),
            *encode_row(step, STEP_COLUMNS, STEP_JSON_COLUMNS),
        )

    async def get_run_step(self, step_row_id: str, tenant_id: str) -> RunStep | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"{_STEP_SELECT} WHERE id = ? AND tenant_id = ?",
            step_row_id,
            tenant_id,
        )
        return decode_row(RunStep, row, STEP_JSON_COLUMNS) if row else None

    async def get_run_step_by_step_id(
        self, run_id: str, step_id: str, tenant_id: str
    ) -> RunStep | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"{_STEP_SELECT} WHERE run_id = ? AND step_id = ? AND tenant_id = ?",
            run_id,
            step_id,
            tenant_id,
        )
        return decode_row(RunStep, row, STEP_JSON_COLUMNS) if row else None

    async def list_run_steps(
        self, run_id: str, tenant_id: str, status: Optional[StepStatus] = None
    ) -> list[RunStep]:
        query = f"{_STEP_SELECT} WHERE run_id = ? AND tenant_id = ?"
        params: list[Any] = [run_id, tenant_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status)
        rows = await asyncio.to_thread(self._fetchall, query + " ORDER BY rowid", *params)
        return [decode_row(RunStep, r, STEP_JSON_COLUMNS) for r in rows]

    async def update_run_step_input_hash(
        self, step_row_id: str, tenant_id: str, input_hash: str
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE run_steps SET input_hash = ? WHERE id = ? AND tenant_id = ?",
            input_hash,
            step_row_id,
            tenant_id,
        )

    async def increment_step_attempt(self, step_row_id: str, tenant_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE run_steps SET attempt = attempt + 1 WHERE id = ? AND tenant_id = ?",
            step_row_id,
            tenant_id,
        )
