"""Tools the agent offers to the model."""

from opencowork.agent.tools.dispatch import ToolKind, ToolRoute, classify_tool
from opencowork.agent.tools.executor import ToolExecutor
from opencowork.agent.tools.schemas import BUILTIN_TOOLS, MCP_ADMIN_TOOLS

__all__ = [
    "BUILTIN_TOOLS",
    "MCP_ADMIN_TOOLS",
    "ToolExecutor",
    "ToolKind",
    "ToolRoute",
    "classify_tool",
]
