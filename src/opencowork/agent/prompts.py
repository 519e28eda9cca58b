"""System prompt assembly.

The prompt is rebuilt before every turn because folders, skills and
connected servers can change while a conversation is running.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

from opencowork.prompts import SYSTEM_TEMPLATE
from opencowork.security.trust_store import AuthorizedFolder


def working_directory_context(folders: Sequence[AuthorizedFolder]) -> str:
    if not folders:
        return "\n\nNote: No working directory has been selected yet. Ask the user to select a folder first."
    paths = [f.path for f in folders]
    return (
        f"\n\nWORKING DIRECTORY:\n- Primary: {paths[0]}\n- All authorized: {', '.join(paths)}"
        "\n\nYou should primarily work within these directories. Always use absolute paths."
    )


def build_system_prompt(
    folders: Sequence[AuthorizedFolder],
    skill_metadata: Sequence[tuple[str, str]],
    active_servers: Sequence[str],
    skills_dir: str,
) -> str:
    """Render the system prompt for one turn.

    Args:
        folders: Authorized folders, primary first.
        skill_metadata: (name, description) for each loaded skill.
        active_servers: Names of connected external tool servers.
        skills_dir: Directory skills are loaded from.
    """
    skills = "\n".join(f"- {name}: {description}" for name, description in skill_metadata)
    return SYSTEM_TEMPLATE.format(
        working_directory=working_directory_context(folders),
        skills_dir=skills_dir,
        skills=skills,
        active_servers=json.dumps(list(active_servers)),
    )
