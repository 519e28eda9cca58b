"""Resolve a tool name to the kind of handler that serves it."""

from __future__ import annotations

from collections.abc import Container
from dataclasses import dataclass
from enum import Enum

from opencowork.agent.tools.schemas import (
    BUILTIN_TOOL_NAMES,
    LIST_DIR,
    MCP_ADMIN_PREFIX,
    READ_FILE,
    RUN_COMMAND,
    WRITE_FILE,
)
from opencowork.mcp.client import NAMESPACE_SEPARATOR


class ToolKind(Enum):
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    LIST_DIR = "list_dir"
    RUN_COMMAND = "run_command"
    SKILL = "skill"
    MCP_TOOL = "mcp_tool"
    MCP_ADMIN = "mcp_admin"
    UNKNOWN = "unknown"


_BUILTIN_KINDS = {
    READ_FILE: ToolKind.READ_FILE,
    WRITE_FILE: ToolKind.WRITE_FILE,
    LIST_DIR: ToolKind.LIST_DIR,
    RUN_COMMAND: ToolKind.RUN_COMMAND,
}


@dataclass(frozen=True, slots=True)
class ToolRoute:
    kind: ToolKind
    name: str


def classify_tool(name: str, skill_names: Container[str] = ()) -> ToolRoute:
    """Classify a tool name, checking in a fixed order.

    Built-ins first, then skills, then namespaced server tools
    (`server__tool`), then `mcp_` management tools.
    """
    if name in BUILTIN_TOOL_NAMES:
        return ToolRoute(_BUILTIN_KINDS[name], name)
    if name in skill_names:
        return ToolRoute(ToolKind.SKILL, name)
    if NAMESPACE_SEPARATOR in name:
        return ToolRoute(ToolKind.MCP_TOOL, name)
    if name.startswith(MCP_ADMIN_PREFIX):
        return ToolRoute(ToolKind.MCP_ADMIN, name)
    return ToolRoute(ToolKind.UNKNOWN, name)
