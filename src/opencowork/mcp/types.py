"""MCP client type definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

TRANSPORTS = ("stdio", "streamable-http", "sse")


class MCPConnectionStatus(Enum):
    """Status of an MCP server connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class MCPServerConfig:
    """One external tool server definition.

    Mirrors the common `mcpServers` JSON shape:
        {"command": "npx", "args": ["-y", "@mcp/server"], "env": {...}}
        {"url": "http://localhost:8000/mcp", "headers": {...}}
    """

    name: str
    command: str | None = None
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)  # values support ${VAR}
    url: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    transport: str = "stdio"
    enabled: bool = True
    timeout: float = 30.0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "transport": self.transport}
        if self.command:
            data["command"] = self.command
        if self.args:
            data["args"] = list(self.args)
        if self.env:
            data["env"] = dict(self.env)
        if self.url:
            data["url"] = self.url
        if self.headers:
            data["headers"] = dict(self.headers)
        data["enabled"] = self.enabled
        data["timeout"] = self.timeout
        return data

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> MCPServerConfig:
        """Build a config, inferring the transport when it is not given.

        Raises:
            ValueError: If the entry has neither a command nor a url, or
                names an unknown transport.
        """
        command = data.get("command")
        args = data.get("args") or []
        if isinstance(command, list):
            command, args = (command[0] if command else None), [*command[1:], *args]
        url = data.get("url")

        transport = data.get("transport") or data.get("type")
        if not transport:
            transport = "stdio" if command else "streamable-http"
        if transport == "http":
            transport = "streamable-http"
        if transport not in TRANSPORTS:
            raise ValueError(f"Unknown transport '{transport}' for server '{name}'")
        if transport == "stdio" and not command:
            raise ValueError(f"Server '{name}' needs a 'command'")
        if transport != "stdio" and not url:
            raise ValueError(f"Server '{name}' needs a 'url'")

        return cls(
            name=name,
            command=str(command) if command else None,
            args=[str(a) for a in args],
            env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
            url=str(url) if url else None,
            headers={str(k): str(v) for k, v in (data.get("headers") or {}).items()},
            transport=transport,
            enabled=bool(data.get("enabled", not data.get("disabled", False))),
            timeout=float(data.get("timeout", 30.0)),
        )


@dataclass
class MCPToolInfo:
    """A tool offered by a connected server."""

    name: str
    description: str
    input_schema: dict[str, Any]
    server_name: str


@dataclass
class MCPToolResult:
    """Result from calling an MCP tool."""

    success: bool
    content: list[dict[str, Any]]
    is_error: bool = False
    error_message: str | None = None

    def text(self) -> str:
        """Render the result as tool-result text."""
        if self.error_message:
            return f"Error: {self.error_message}"
        parts: list[str] = []
        for item in self.content:
            kind = item.get("type")
            if kind == "text":
                parts.append(item.get("text", ""))
            elif kind == "image":
                parts.append(f"[image: {item.get('mime_type', 'unknown')}]")
            elif kind == "resource":
                parts.append(item.get("text") or f"[resource: {item.get('uri')}]")
        body = "\n".join(parts) or "(no content)"
        return f"Error: {body}" if self.is_error else body


@dataclass
class ServerStatus:
    """Snapshot of one configured server for the management tools."""

    name: str
    config: MCPServerConfig
    status: MCPConnectionStatus
    tool_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.config.enabled,
            "status": self.status.value,
            "transport": self.config.transport,
            "tool_count": self.tool_count,
            "error": self.error,
            "config": self.config.to_dict(),
        }
