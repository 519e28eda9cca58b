"""MCP client manager for external tool servers.

Server definitions persist in a YAML file so the model can add, remove and
toggle servers at runtime through the `mcp_*` management tools. Tools are
exposed to the model as `<server>__<tool>`.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import shutil
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from filelock import FileLock
from mcp import types
from mcp.client.session import ClientSession

from opencowork.logging import get_logger
from opencowork.mcp.transport import create_transport
from opencowork.mcp.types import (
    MCPConnectionStatus,
    MCPServerConfig,
    MCPToolInfo,
    MCPToolResult,
    ServerStatus,
)

log = get_logger("mcp")

NAMESPACE_SEPARATOR = "__"
MAX_TOOL_NAME_LENGTH = 64

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_name(name: str) -> str:
    """Restrict a name to characters every provider accepts in tool names."""
    cleaned = _UNSAFE_CHARS.sub("_", name).strip("_")
    return cleaned or "tool"


def namespaced_tool_name(server: str, tool: str) -> str:
    name = f"{sanitize_name(server)}{NAMESPACE_SEPARATOR}{sanitize_name(tool)}"
    return name[:MAX_TOOL_NAME_LENGTH]


@dataclass
class MCPConnection:
    """A live connection to one server.

    The transport and session contexts are entered and exited inside a
    single runner task, as anyio requires.
    """

    name: str
    config: MCPServerConfig
    session: ClientSession | None = None
    status: MCPConnectionStatus = MCPConnectionStatus.DISCONNECTED
    tools: list[MCPToolInfo] = field(default_factory=list)
    error_message: str | None = None
    _runner: asyncio.Task | None = None
    _stop: asyncio.Event | None = None

    async def connect(self) -> None:
        """Start the runner task and wait until the session is initialized."""
        self.status = MCPConnectionStatus.CONNECTING
        self.error_message = None
        self._stop = asyncio.Event()
        ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._runner = asyncio.create_task(self._run(ready, self._stop), name=f"mcp:{self.name}")
        await ready

    async def _run(self, ready: asyncio.Future[None], stop: asyncio.Event) -> None:
        try:
            async with AsyncExitStack() as stack:
                transport = await create_transport(self.config)
                streams = await stack.enter_async_context(transport)
                session = await stack.enter_async_context(ClientSession(streams[0], streams[1]))
                await asyncio.wait_for(session.initialize(), timeout=self.config.timeout)

                tools_result = await session.list_tools()
                self.tools = [
                    MCPToolInfo(
                        name=t.name,
                        description=t.description or "",
                        input_schema=t.inputSchema or {"type": "object", "properties": {}},
                        server_name=self.name,
                    )
                    for t in tools_result.tools
                ]
                self.session = session
                self.status = MCPConnectionStatus.CONNECTED
                log.info("Connected to MCP server '%s' with %d tools", self.name, len(self.tools))
                if not ready.done():
                    ready.set_result(None)

                await stop.wait()
        except Exception as e:
            self.status = MCPConnectionStatus.ERROR
            self.error_message = str(e) or type(e).__name__
            log.error("MCP server '%s' failed: %s", self.name, self.error_message)
            if not ready.done():
                ready.set_exception(e)
        finally:
            self.session = None
            self.tools = []
            if self.status is not MCPConnectionStatus.ERROR:
                self.status = MCPConnectionStatus.DISCONNECTED

    async def disconnect(self) -> None:
        """Stop the runner task and wait for it to close the transport."""
        if self._stop is not None:
            self._stop.set()
        if self._runner is not None:
            try:
                await asyncio.wait_for(self._runner, timeout=5.0)
            except asyncio.TimeoutError:
                log.warning("MCP server '%s' did not close in time, cancelling", self.name)
                self._runner.cancel()
            except Exception as e:
                log.warning("Error closing MCP server '%s': %s", self.name, e)
            self._runner = None
        if self.status is not MCPConnectionStatus.ERROR:
            self.status = MCPConnectionStatus.DISCONNECTED
        log.info("Disconnected from MCP server '%s'", self.name)

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> MCPToolResult:
        """Call a tool on this server."""
        if self.session is None or self.status is not MCPConnectionStatus.CONNECTED:
            return MCPToolResult(
                success=False,
                content=[],
                is_error=True,
                error_message=f"Server '{self.name}' is not connected",
            )

        try:
            result = await self.session.call_tool(tool_name, arguments)
        except Exception as e:
            log.error("Tool call failed: %s.%s: %s", self.name, tool_name, e)
            return MCPToolResult(success=False, content=[], is_error=True, error_message=str(e))

        content: list[dict[str, Any]] = []
        for block in result.content:
            if isinstance(block, types.TextContent):
                content.append({"type": "text", "text": block.text})
            elif isinstance(block, types.ImageContent):
                content.append({"type": "image", "data": block.data, "mime_type": block.mimeType})
            elif isinstance(block, types.EmbeddedResource):
                resource = block.resource
                content.append({
                    "type": "resource",
                    "uri": str(getattr(resource, "uri", "")),
                    "text": getattr(resource, "text", None),
                })
        return MCPToolResult(success=True, content=content, is_error=bool(result.isError))


class MCPClientManager:
    """Owns the configured servers and their connections for one agent."""

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialize the manager.

        Args:
            config_path: YAML file with the `servers:` list, or None to
                keep server definitions in memory only.
        """
        self._config_path = config_path
        self._servers: dict[str, MCPServerConfig] = {}
        self.connections: dict[str, MCPConnection] = {}
        self._routes: dict[str, tuple[str, str]] = {}
        self._loaded = False

    # -- persistence -------------------------------------------------------

    def _read_servers(self) -> dict[str, MCPServerConfig]:
        if self._config_path is None:
            return dict(self._servers)
        if not self._config_path.exists():
            return {}
        try:
            with open(self._config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            log.warning("Unreadable MCP config %s: %s", self._config_path, e)
            return dict(self._servers)

        servers: dict[str, MCPServerConfig] = {}
        for entry in data.get("servers") or []:
            if not isinstance(entry, dict) or not entry.get("name"):
                continue
            try:
                config = MCPServerConfig.from_dict(str(entry["name"]), entry)
            except ValueError as e:
                log.warning("Skipping MCP server entry: %s", e)
                continue
            servers[config.name] = config
        return servers

    def _write_servers(self) -> None:
        if self._config_path is None:
            return
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        data = {"servers": [c.to_dict() for c in self._servers.values()]}
        temp_path = self._config_path.with_suffix(".yaml.tmp")
        with FileLock(self._config_path.with_suffix(".lock"), timeout=10):
            with open(temp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            os.replace(temp_path, self._config_path)

    # -- lifecycle ---------------------------------------------------------

    async def _connect(self, config: MCPServerConfig) -> MCPConnection:
        existing = self.connections.pop(config.name, None)
        if existing is not None:
            await existing.disconnect()
        connection = MCPConnection(name=config.name, config=config)
        self.connections[config.name] = connection
        await connection.connect()
        return connection

    async def load_clients(self) -> None:
        """Sync connections with the config file.

        Enabled servers that are not connected get connected; removed or
        disabled ones are closed. Connection failures are logged and kept
        as error status rather than raised. Servers already in error are
        left alone until `retry_connection`.
        """
        self._servers = self._read_servers()
        self._loaded = True

        for name in list(self.connections):
            config = self._servers.get(name)
            if config is None or not config.enabled:
                await self.connections.pop(name).disconnect()

        pending = [
            config
            for config in self._servers.values()
            if config.enabled and config.name not in self.connections
        ]
        if not pending:
            return
        results = await asyncio.gather(
            *(self._connect(c) for c in pending), return_exceptions=True
        )
        for config, result in zip(pending, results):
            if isinstance(result, BaseException):
                log.warning("Could not connect MCP server '%s': %s", config.name, result)

    async def dispose(self) -> None:
        """Disconnect every server."""
        for name in list(self.connections):
            await self.connections.pop(name).disconnect()
        self._routes.clear()

    # -- tools -------------------------------------------------------------

    def get_tools(self) -> list[dict[str, Any]]:
        """Tool schemas from every connected server, namespaced by server."""
        tools: list[dict[str, Any]] = []
        routes: dict[str, tuple[str, str]] = {}
        for connection in self.connections.values():
            if connection.status is not MCPConnectionStatus.CONNECTED:
                continue
            for tool in connection.tools:
                name = namespaced_tool_name(connection.name, tool.name)
                if name in routes:
                    log.warning("Duplicate MCP tool name %s, skipping", name)
                    continue
                routes[name] = (connection.name, tool.name)
                tools.append({
                    "name": name,
                    "description": tool.description or f"{tool.name} from {connection.name}",
                    "input_schema": tool.input_schema,
                })
        self._routes = routes
        return tools

    def _route(self, name: str) -> tuple[str, str] | None:
        if name in self._routes:
            return self._routes[name]
        self.get_tools()
        return self._routes.get(name)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        """Call a namespaced tool and render its result as text."""
        route = self._route(name)
        if route is None:
            return f"Error: MCP tool '{name}' is not available."
        server, tool = route
        connection = self.connections.get(server)
        if connection is None:
            return f"Error: MCP server '{server}' is not connected."
        result = await connection.call_tool(tool, arguments)
        return result.text()

    def get_active_servers(self) -> list[str]:
        return [
            name
            for name, connection in self.connections.items()
            if connection.status is MCPConnectionStatus.CONNECTED
        ]

    def get_all_servers(self) -> list[ServerStatus]:
        if not self._loaded:
            self._servers = self._read_servers()
            self._loaded = True
        statuses: list[ServerStatus] = []
        for name, config in self._servers.items():
            connection = self.connections.get(name)
            statuses.append(
                ServerStatus(
                    name=name,
                    config=config,
                    status=connection.status if connection else MCPConnectionStatus.DISCONNECTED,
                    tool_count=len(connection.tools) if connection else 0,
                    error=connection.error_message if connection else None,
                )
            )
        return statuses

    # -- management ----------------------------------------------------------

    async def add_server(self, json_config: str) -> dict[str, Any]:
        """Add servers from JSON.

        Accepts `{"mcpServers": {name: {...}}}`, `{name: {...}}` or a single
        `{"name": ..., "command"/"url": ...}` object.
        """
        try:
            data = json.loads(json_config)
        except (TypeError, json.JSONDecodeError) as e:
            return {"success": False, "message": f"Invalid JSON: {e}"}
        if not isinstance(data, dict):
            return {"success": False, "message": "Config must be a JSON object"}

        if isinstance(data.get("mcpServers"), dict):
            entries = data["mcpServers"]
        elif "name" in data:
            entries = {str(data["name"]): data}
        else:
            entries = data

        configs: list[MCPServerConfig] = []
        try:
            for name, entry in entries.items():
                if not isinstance(entry, dict):
                    raise ValueError(f"Server '{name}' must be an object")
                configs.append(MCPServerConfig.from_dict(str(name), entry))
        except ValueError as e:
            return {"success": False, "message": str(e)}
        if not configs:
            return {"success": False, "message": "No servers found in config"}

        self._servers = self._read_servers()
        for config in configs:
            self._servers[config.name] = config
        self._write_servers()

        connected: list[str] = []
        failed: dict[str, str] = {}
        for config in configs:
            if not config.enabled:
                continue
            try:
                await self._connect(config)
                connected.append(config.name)
            except Exception as e:
                failed[config.name] = str(e) or type(e).__name__

        names = ", ".join(c.name for c in configs)
        message = f"Added {names}"
        if failed:
            message += "; connection failed for " + ", ".join(
                f"{k} ({v})" for k, v in failed.items()
            )
        return {"success": not failed, "message": message, "connected": connected}

    async def remove_server(self, name: str) -> dict[str, Any]:
        self._servers = self._read_servers()
        if name not in self._servers:
            return {"success": False, "message": f"Server {name} not found"}
        del self._servers[name]
        self._write_servers()
        connection = self.connections.pop(name, None)
        if connection is not None:
            await connection.disconnect()
        return {"success": True, "message": f"Removed {name}"}

    async def toggle_server(self, name: str, enabled: bool) -> dict[str, Any]:
        self._servers = self._read_servers()
        config = self._servers.get(name)
        if config is None:
            return {"success": False, "message": f"Server {name} not found"}
        config.enabled = bool(enabled)
        self._write_servers()

        if not config.enabled:
            connection = self.connections.pop(name, None)
            if connection is not None:
                await connection.disconnect()
            return {"success": True, "message": f"Disabled {name}"}

        try:
            await self._connect(config)
        except Exception as e:
            return {"success": False, "message": f"Enabled {name} but connection failed: {e}"}
        return {"success": True, "message": f"Enabled {name}"}

    async def diagnose_server(self, name: str) -> dict[str, Any]:
        """Report config and connection problems for one server."""
        status = next((s for s in self.get_all_servers() if s.name == name), None)
        if status is None:
            return {"success": False, "message": "Server not found"}

        config = status.config
        problems: list[str] = []
        if not config.enabled:
            problems.append("server is disabled")
        if config.transport == "stdio" and config.command and shutil.which(config.command) is None:
            problems.append(f"command '{config.command}' not found on PATH")
        for key, value in config.env.items():
            for ref in re.findall(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}", value):
                if ref not in os.environ:
                    problems.append(f"env {key} references unset variable {ref}")
        if status.error:
            problems.append(f"last error: {status.error}")

        healthy = status.status is MCPConnectionStatus.CONNECTED and not problems
        return {
            "success": healthy,
            "message": "Server is healthy" if healthy else "; ".join(problems) or status.status.value,
            "status": status.to_dict(),
        }

    async def retry_connection(self, name: str) -> dict[str, Any]:
        status = next((s for s in self.get_all_servers() if s.name == name), None)
        if status is None:
            return {"success": False, "message": f"Server {name} not found"}
        try:
            connection = await self._connect(status.config)
        except Exception as e:
            return {"success": False, "message": f"Retry failed for {name}: {e}"}
        return {
            "success": True,
            "message": f"Reconnected {name} ({len(connection.tools)} tools)",
        }
