"""Column layout shared by the SQL run repositories."""

from __future__ import annotations

import json
from typing import Any, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel

ModelT = TypeVar("ModelT", bound=BaseModel)

RUN_COLUMNS: Tuple[str, ...] = (
    "id",
    "tenant_id",
    "workflow_name",
    "workflow_version",
    "trigger_type",
    "trigger_payload",
    "status",
    "base_run_id",
    "started_at",
    "completed_at",
    "duration_ms",
    "error",
    "created_at",
)
RUN_JSON_COLUMNS = frozenset({"trigger_payload", "error"})

STEP_COLUMNS: Tuple[str, ...] = (
    "id",
    "run_id",
    "tenant_id",
    "step_id",
    "skill_id",
    "status",
    "input_hash",
    "attempt",
    "output_artifact_ids",
    "output_data",
    "cache_hit",
    "duration_ms",
    "error",
    "started_at",
    "ended_at",
    "created_at",
)
STEP_JSON_COLUMNS = frozenset({"output_artifact_ids", "output_data", "error"})


def encode_row(
    model: BaseModel,
    columns: Sequence[str],
    json_columns: frozenset[str],
    native_datetimes: bool = False,
) -> Tuple[Any, ...]:
    """Flatten ``model`` into column values.

    JSON columns are serialized to strings. Datetimes stay native when the
    driver supports them, otherwise they are ISO strings.
    """
    json_dump = model.model_dump(mode="json")
    native = model.model_dump() if native_datetimes else json_dump
    values = []
    for column in columns:
        if column in json_columns:
            value = json_dump[column]
            values.append(json.dumps(value) if value is not None else None)
        else:
            values.append(native[column])
    return tuple(values)


def decode_row(
    model_cls: Type[ModelT], row: Any, json_columns: frozenset[str]
) -> ModelT:
    data = {key: row[key] for key in row.keys()}
    for column in json_columns:
        value = data.get(column)
        if isinstance(value, (str, bytes)):
            data[column] = json.loads(value)
    return model_cls.model_validate(data)


def upsert_sql(table: str, columns: Sequence[str], placeholders: Sequence[str]) -> str:
    updates = ", ".join(f"{c} = excluded.{c}" for c in columns if c != "id")
    return (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(placeholders)}) "
        f"ON CONFLICT (id) DO UPDATE SET {updates}"
    )


def insert_sql(table: str, columns: Sequence[str], placeholders: Sequence[str]) -> str:
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(placeholders)})"
