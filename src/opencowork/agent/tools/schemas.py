"""Tool schemas offered to the model."""

from __future__ import annotations

from typing import Any

READ_FILE = "read_file"
WRITE_FILE = "write_file"
LIST_DIR = "list_dir"
RUN_COMMAND = "run_command"

BUILTIN_TOOL_NAMES = frozenset({READ_FILE, WRITE_FILE, LIST_DIR, RUN_COMMAND})

MCP_ADMIN_PREFIX = "mcp_"

READ_FILE_SCHEMA: dict[str, Any] = {
    "name": READ_FILE,
    "description": "Read the contents of a text file inside an authorized folder.",
    "input_schema": {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Absolute path to the file"},
        },
        "required": ["path"],
    },
}

WRITE_FILE_SCHEMA: dict[str, Any] = {
    "name": WRITE_FILE,
    "description": (
        "Write text to a file inside an authorized folder, creating parent "
        "directories as needed. Overwrites existing files."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Absolute path to the file"},
            "content": {"type": "string", "description": "Full file content"},
        },
        "required": ["path", "content"],
    },
}

LIST_DIR_SCHEMA: dict[str, Any] = {
    "name": LIST_DIR,
    "description": "List the entries of a directory inside an authorized folder.",
    "input_schema": {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Absolute path to the directory"},
        },
        "required": ["path"],
    },
}

RUN_COMMAND_SCHEMA: dict[str, Any] = {
    "name": RUN_COMMAND,
    "description": (
        "Run a shell command. Defaults to the primary working directory. "
        "Commands may need user approval depending on the folder's trust level."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "Command line to execute"},
            "cwd": {"type": "string", "description": "Working directory (optional)"},
        },
        "required": ["command"],
    },
}

BUILTIN_TOOLS: list[dict[str, Any]] = [
    READ_FILE_SCHEMA,
    WRITE_FILE_SCHEMA,
    LIST_DIR_SCHEMA,
    RUN_COMMAND_SCHEMA,
]


def _admin(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "input_schema": {"type": "object", "properties": properties, "required": required},
    }


MCP_ADMIN_TOOLS: list[dict[str, Any]] = [
    _admin("mcp_get_all_servers", "List every configured MCP server with its status.", {}, []),
    _admin(
        "mcp_add_server",
        "Add MCP servers from a JSON config (an mcpServers object or a single server).",
        {"json_config": {"type": "string", "description": "Server configuration as JSON"}},
        ["json_config"],
    ),
    _admin(
        "mcp_remove_server",
        "Remove an MCP server and close its connection.",
        {"name": {"type": "string"}},
        ["name"],
    ),
    _admin(
        "mcp_toggle_server",
        "Enable or disable an MCP server.",
        {"name": {"type": "string"}, "enabled": {"type": "boolean"}},
        ["name", "enabled"],
    ),
    _admin(
        "mcp_diagnose_server",
        "Check an MCP server's configuration and connection for problems.",
        {"name": {"type": "string"}},
        ["name"],
    ),
    _admin(
        "mcp_retry_connection",
        "Reconnect an MCP server.",
        {"name": {"type": "string"}},
        ["name"],
    ),
]

MCP_ADMIN_TOOL_NAMES = frozenset(t["name"] for t in MCP_ADMIN_TOOLS)
