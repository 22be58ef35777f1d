"""Collaborator interfaces: skill execution, skill catalog and prompt registry."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from pydantic import BaseModel

from .constants import SKILL_NOT_FOUND
from .contracts import SkillResult
from .registry.models import sort_versions

logger = logging.getLogger(__name__)

SkillHandler = Callable[[Dict[str, Any]], Awaitable[SkillResult]]


class SkillRunner(Protocol):
    """Executes a named skill with a resolved input."""

    async def execute(self, skill_id: str, input: Dict[str, Any]) -> SkillResult:
        """Run ``skill_id`` and return its result envelope."""


class SkillCatalog(Protocol):
    def has_skill(self, skill_id: str) -> bool:
        """Return ``True`` when ``skill_id`` is known."""


class LocalSkillRunner:
    """Run skills as in-process async handlers.

    Doubles as a :class:`SkillCatalog` for the handlers it knows about.
    """

    def __init__(self, handlers: Optional[Dict[str, SkillHandler]] = None) -> None:
        self._handlers: Dict[str, SkillHandler] = dict(handlers or {})

    def register(self, skill_id: str, handler: SkillHandler) -> None:
        self._handlers[skill_id] = handler

    def skill(self, skill_id: str) -> Callable[[SkillHandler], SkillHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(handler: SkillHandler) -> SkillHandler:
            self.register(skill_id, handler)
            return handler

        return decorator

    def has_skill(self, skill_id: str) -> bool:
        return skill_id in self._handlers

    async def execute(self, skill_id: str, input: Dict[str, Any]) -> SkillResult:
        handler = self._handlers.get(skill_id)
        if handler is None:
            logger.error(f"Skill not registered: {skill_id}")
            return SkillResult(
                ok=False,
                error=f"Skill not found: {skill_id}",
                error_code=SKILL_NOT_FOUND,
            )
        return await handler(input)


class RegistryLookup(BaseModel):
    """Result of a prompt registry lookup."""

    ok: bool
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class PromptRegistry(Protocol):
    def get_prompt(self, prompt_id: str, version: Optional[str] = None) -> RegistryLookup: ...

    def get_config(self, config_id: str, version: Optional[str] = None) -> RegistryLookup: ...

    def get_rubric(self, rubric_id: str, version: Optional[str] = None) -> RegistryLookup: ...


class InMemoryPromptRegistry:
    """Versioned prompts, configs and rubrics held in local memory."""

    def __init__(self) -> None:
        self._items: Dict[str, Dict[str, Dict[str, Any]]] = {
            "prompt": {},
            "config": {},
            "rubric": {},
        }

    def add(self, item_type: str, item_id: str, version: str, data: Any) -> None:
        if item_type not in self._items:
            raise ValueError(f"Unknown registry type: {item_type}")
        self._items[item_type].setdefault(item_id, {})[version] = data

    def _lookup(self, item_type: str, item_id: str, version: Optional[str]) -> RegistryLookup:
        versions = self._items[item_type].get(item_id)
        if not versions:
            return RegistryLookup(
                ok=False, error=f"{item_type} '{item_id}' not found", error_code="NOT_FOUND"
            )
        if version is None:
            version = sort_versions(versions)[-1]
        if version not in versions:
            return RegistryLookup(
                ok=False,
                error=f"{item_type} '{item_id}' has no version {version}",
                error_code="VERSION_NOT_FOUND",
            )
        return RegistryLookup(ok=True, data=versions[version])

    def get_prompt(self, prompt_id: str, version: Optional[str] = None) -> RegistryLookup:
        return self._lookup("prompt", prompt_id, version)

    def get_config(self, config_id: str, version: Optional[str] = None) -> RegistryLookup:
        return self._lookup("config", config_id, version)

    def get_rubric(self, rubric_id: str, version: Optional[str] = None) -> RegistryLookup:
        return self._lookup("rubric", rubric_id, version)
