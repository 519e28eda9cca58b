"""Skill manifest schema.

A skill is a directory holding a SKILL.md whose YAML frontmatter names and
describes it:

    ---
    name: pdf-tools            # Required: hyphen-case, max 64 chars
    description: Work with PDF # Required: max 1024 chars, no < or >
    license: MIT               # Optional
    metadata:                  # Optional
      version: 1.0.0
    ---
    ...instructions...
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

MAX_NAME_LENGTH = 64
MAX_DESCRIPTION_LENGTH = 1024

_HYPHEN_CASE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")


@dataclass
class SkillManifest:
    """Parsed SKILL.md.

    Attributes:
        name: Skill identifier, also used as its tool name.
        description: One-paragraph summary shown to the model.
        license: Optional license identifier.
        metadata: Free-form extension fields.
        instructions: SKILL.md body after the frontmatter.
        path: Absolute skill directory.
    """

    name: str
    description: str
    license: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    instructions: str = ""
    path: Path | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Skill name is required")
        if len(self.name) > MAX_NAME_LENGTH:
            raise ValueError(f"Skill name exceeds {MAX_NAME_LENGTH} characters: {len(self.name)}")
        if not _HYPHEN_CASE.match(self.name):
            raise ValueError(
                f"Skill name must be hyphen-case (lowercase letters, numbers, hyphens): {self.name}"
            )
        if not self.description:
            raise ValueError("Skill description is required")
        if len(self.description) > MAX_DESCRIPTION_LENGTH:
            raise ValueError(
                f"Skill description exceeds {MAX_DESCRIPTION_LENGTH} characters: "
                f"{len(self.description)}"
            )
        if "<" in self.description or ">" in self.description:
            raise ValueError("Skill description must not contain < or > characters")


@dataclass(frozen=True)
class SkillInfo:
    """What the executor needs to hand a skill to the model."""

    instructions: str
    skill_dir: str
