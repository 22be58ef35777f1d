"""Deterministic hashing of step inputs and cache key construction."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping, Optional


class InputHasher:
    """Content-addresses resolved step inputs.

    The hash is SHA-256 over canonical JSON (sorted keys, compact
    separators), so logically equal inputs hash equally regardless of key
    insertion order.
    """

    def canonicalize(self, input: Mapping[str, Any]) -> str:
        return json.dumps(
            _stringify_keys(input),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=str,
        )

    def compute_hash(self, input: Mapping[str, Any]) -> str:
        canonical = self.canonicalize(input)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def create_cache_key(
        self,
        workflow_name: str,
        step_id: str,
        input: Mapping[str, Any],
        run_id: Optional[str] = None,
    ) -> str:
        return self.create_cache_key_from_hash(
            workflow_name, step_id, self.compute_hash(input), run_id=run_id
        )

    def create_cache_key_from_hash(
        self,
        workflow_name: str,
        step_id: str,
        input_hash: str,
        run_id: Optional[str] = None,
    ) -> str:
        """Build ``workflow:step:hash``; ``run_id`` scopes the key to one run."""
        if run_id is not None:
            return f"{workflow_name}:{step_id}:run:{run_id}:{input_hash}"
        return f"{workflow_name}:{step_id}:{input_hash}"


def _stringify_keys(value: Any) -> Any:
    """Convert mapping keys to strings the way ``json.dumps`` would.

    ``sort_keys`` cannot order keys of mixed types, so they are converted
    before dumping.
    """
    if isinstance(value, Mapping):
        return {
            key if isinstance(key, str) else json.dumps(key, default=str): _stringify_keys(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_stringify_keys(item) for item in value]
    return value
