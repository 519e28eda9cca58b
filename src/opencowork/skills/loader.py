"""Skill discovery and SKILL.md parsing."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml

from opencowork.logging import get_logger
from opencowork.skills.schema import SkillManifest

log = get_logger("skills")

SKILL_FILE = "SKILL.md"

_FRONTMATTER_PATTERN = re.compile(
    r"^---\s*\n(.*?)\n---\s*\n?(.*)$",
    re.DOTALL,
)


def parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split SKILL.md into its YAML frontmatter and body.

    Raises:
        ValueError: If the frontmatter is missing or not a YAML mapping.
    """
    match = _FRONTMATTER_PATTERN.match(content.lstrip("\ufeff"))
    if not match:
        raise ValueError("Missing or malformed YAML frontmatter (must start with ---)")

    try:
        frontmatter = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in frontmatter: {e}") from e
    if not isinstance(frontmatter, dict):
        raise ValueError("Frontmatter must be a YAML mapping")
    return frontmatter, match.group(2).strip()


def load_skill_from_path(skill_path: Path) -> SkillManifest | None:
    """Load one skill directory.

    Returns:
        The manifest, or None when SKILL.md is missing, unreadable or invalid.
    """
    skill_file = skill_path / SKILL_FILE
    if not skill_file.is_file():
        log.debug("%s not found in %s", SKILL_FILE, skill_path)
        return None

    try:
        content = skill_file.read_text(encoding="utf-8")
    except OSError as e:
        log.warning("Error reading %s: %s", skill_file, e)
        return None

    try:
        frontmatter, body = parse_frontmatter(content)
        license_str = frontmatter.get("license")
        metadata = frontmatter.get("metadata")
        return SkillManifest(
            name=str(frontmatter.get("name") or ""),
            description=str(frontmatter.get("description") or "").strip(),
            license=str(license_str) if license_str else None,
            metadata=metadata if isinstance(metadata, dict) else {},
            instructions=body,
            path=skill_path.resolve(),
        )
    except ValueError as e:
        log.warning("Invalid skill in %s: %s", skill_file, e)
        return None


def discover_skills(directory: Path) -> list[SkillManifest]:
    """Load every valid skill under `directory`, sorted by name.

    Malformed skills are logged and skipped; duplicate names keep the
    first directory in sorted order.
    """
    if not directory.is_dir():
        log.debug("Skills directory does not exist: %s", directory)
        return []

    try:
        entries = sorted(directory.iterdir())
    except OSError as e:
        log.warning("Error listing %s: %s", directory, e)
        return []

    manifests: dict[str, SkillManifest] = {}
    for entry in entries:
        if not entry.is_dir():
            continue
        manifest = load_skill_from_path(entry)
        if manifest is None:
            continue
        if manifest.name in manifests:
            log.warning("Duplicate skill name '%s' in %s, ignoring", manifest.name, entry)
            continue
        manifests[manifest.name] = manifest

    return sorted(manifests.values(), key=lambda m: m.name)
