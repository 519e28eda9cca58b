"""External tool server (MCP) integration.

Example usage:
    from opencowork.mcp import MCPClientManager

    manager = MCPClientManager(Path("~/.opencowork/mcp.yaml").expanduser())
    await manager.load_clients()
    tools = manager.get_tools()  # names look like "github__search_repos"
    text = await manager.call_tool("github__search_repos", {"q": "mcp"})
"""

from opencowork.mcp.client import (
    NAMESPACE_SEPARATOR,
    MCPClientManager,
    MCPConnection,
    namespaced_tool_name,
    sanitize_name,
)
from opencowork.mcp.transport import create_transport, expand_env_vars
from opencowork.mcp.types import (
    MCPConnectionStatus,
    MCPServerConfig,
    MCPToolInfo,
    MCPToolResult,
    ServerStatus,
)

__all__ = [
    "NAMESPACE_SEPARATOR",
    "MCPClientManager",
    "MCPConnection",
    "MCPConnectionStatus",
    "MCPServerConfig",
    "MCPToolInfo",
    "MCPToolResult",
    "ServerStatus",
    "create_transport",
    "expand_env_vars",
    "namespaced_tool_name",
    "sanitize_name",
]
