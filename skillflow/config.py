from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


class CacheConfig(BaseModel):
    """Configuration for the step cache."""

    url: Optional[str] = None
    isolate_run_only: bool = False


class ExecutionConfig(BaseModel):
    """Limits applied when driving a run to completion."""

    max_concurrency: int = Field(default=1, ge=1)
    timeout_s: Optional[float] = None
    max_steps: Optional[int] = None


class SkillflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    cache: CacheConfig = Field(default_factory=CacheConfig)
    workflows_path: str = "workflows"
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


def load_config(path: Optional[str] = None) -> SkillflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to SKILLFLOW_CONFIG env
            variable or 'skillflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("SKILLFLOW_CONFIG", "skillflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = SkillflowConfig(**data)
    else:
        config = SkillflowConfig()

    env_db_url = os.getenv("SKILLFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_cache_url = os.getenv("SKILLFLOW_CACHE_URL")
    if env_cache_url:
        config.cache.url = env_cache_url
    env_workflows = os.getenv("SKILLFLOW_WORKFLOWS_PATH")
    if env_workflows:
        config.workflows_path = env_workflows
    return config
