"""Prompt templates shipped with the package.

Prompts are loaded from markdown files in this package.
"""

from importlib.resources import files

_PROMPTS_PKG = files("opencowork.prompts")


def load_prompt(name: str) -> str:
    """Load a prompt by name (without .md extension)."""
    return _PROMPTS_PKG.joinpath(f"{name}.md").read_text(encoding="utf-8")


SYSTEM_TEMPLATE = load_prompt("system")

__all__ = ["load_prompt", "SYSTEM_TEMPLATE"]
