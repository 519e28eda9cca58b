"""Skill registry used by the agent loop."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any

from opencowork.logging import get_logger
from opencowork.skills.loader import discover_skills
from opencowork.skills.schema import SkillInfo, SkillManifest

log = get_logger("skills")


class SkillManager:
    """Holds the skills found in one directory and exposes them as tools.

    A skill tool takes no arguments; invoking it returns the skill's
    instructions to the model instead of executing anything.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._directory = Path(os.path.expanduser(os.fspath(directory)))
        self._skills: dict[str, SkillManifest] = {}

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def names(self) -> set[str]:
        return set(self._skills)

    async def load_skills(self) -> None:
        """Rescan the skills directory off the event loop."""
        manifests = await asyncio.to_thread(discover_skills, self._directory)
        self._skills = {m.name: m for m in manifests}
        log.debug("Loaded %d skills from %s", len(self._skills), self._directory)

    def get_tools(self) -> list[dict[str, Any]]:
        return [
            {
                "name": manifest.name,
                "description": manifest.description,
                "input_schema": {"type": "object", "properties": {}},
            }
            for manifest in self._skills.values()
        ]

    def get_skill_info(self, name: str) -> SkillInfo | None:
        manifest = self._skills.get(name)
        if manifest is None:
            return None
        skill_dir = manifest.path or (self._directory / name)
        return SkillInfo(instructions=manifest.instructions, skill_dir=str(skill_dir))

    def get_skill_metadata(self) -> list[tuple[str, str]]:
        """(name, description) pairs in name order."""
        return [(m.name, m.description) for m in self._skills.values()]
