"""Skill discovery and loading for OpenCowork.

Skills live in `~/.opencowork/skills/<name>/SKILL.md`. Each one is offered
to the model as a tool; calling it returns the skill's instructions.

Example usage:
    from opencowork.skills import SkillManager

    skills = SkillManager("~/.opencowork/skills")
    await skills.load_skills()
    info = skills.get_skill_info("pdf-tools")
"""

from opencowork.skills.loader import discover_skills, load_skill_from_path, parse_frontmatter
from opencowork.skills.manager import SkillManager
from opencowork.skills.schema import SkillInfo, SkillManifest

__all__ = [
    "SkillInfo",
    "SkillManager",
    "SkillManifest",
    "discover_skills",
    "load_skill_from_path",
    "parse_frontmatter",
]
