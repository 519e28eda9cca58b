"""Tool execution with authorization and approval policy.

`ToolExecutor.execute` is the single entry point: it classifies the tool
name, applies folder authorization and the trust-tier approval policy,
performs the action and returns the text the model sees. Nothing raised
inside a tool escapes; unexpected faults become an error result.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Callable
from pathlib import PurePath
from typing import Any

from opencowork.agent.confirmation import ConfirmationBroker
from opencowork.agent.tools import filesystem
from opencowork.agent.tools.dispatch import ToolKind, classify_tool
from opencowork.agent.tools.schemas import BUILTIN_TOOLS, MCP_ADMIN_TOOLS, RUN_COMMAND, WRITE_FILE
from opencowork.config.schema import AgentConfig
from opencowork.core.llm.content import ToolUseBlock
from opencowork.logging import get_logger
from opencowork.mcp.client import MCPClientManager
from opencowork.security.path_authorizer import PathAuthorizer
from opencowork.security.risk import is_dangerous_command, is_dangerous_write, is_safe_command
from opencowork.security.trust_store import TrustLevel, TrustStore
from opencowork.skills.manager import SkillManager
from opencowork.skills.schema import SkillInfo
from opencowork.terminal.protocol import TerminalExecutor
from opencowork.terminal.subprocess_executor import SubprocessTerminalExecutor

log = get_logger("tools")

WRITE_DENIED = "User denied the write operation."
COMMAND_DENIED = "User denied the command execution."

ArtifactCallback = Callable[[dict[str, str]], None]


def unauthorized_path(path: str) -> str:
    return f"Error: Path {path} is not in an authorized folder."


def invalid_json_result(raw: str) -> str:
    return (
        "Error: The tool input was not valid JSON. Please fix the JSON format and retry. "
        f"Raw input length: {len(raw)}"
    )


def format_skill_payload(name: str, info: SkillInfo) -> str:
    skill_dir = info.skill_dir
    return (
        f"[SKILL LOADED: {name}]\n\n"
        f"SKILL DIRECTORY: {skill_dir}\n\n"
        "Follow these instructions to complete the user's request. When the instructions "
        "reference Python modules in core/, create your script in the working directory "
        "and run it from the skill directory:\n\n"
        f'run_command: cd "{skill_dir}" && python /path/to/your_script.py\n\n'
        "Or add to the top of your script:\n"
        f'import sys; sys.path.insert(0, r"{skill_dir}")\n\n'
        f"---\n{info.instructions}\n---"
    )


class ToolExecutor:
    """Runs tool calls for one agent.

    Approval policy by trust tier of the containing folder:

    - write_file: Trust auto-approves; Standard auto-approves new files and
      confirms overwrites; Strict always confirms. A standing permission
      for the path skips the confirmation.
    - run_command: dangerous commands always confirm, standing permission
      or not. Otherwise Trust auto-approves, Standard auto-approves safe
      commands, Strict confirms. A standing permission only skips the
      confirmation of a safe command.
    """

    def __init__(
        self,
        trust_store: TrustStore,
        authorizer: PathAuthorizer,
        broker: ConfirmationBroker,
        *,
        skills: SkillManager | None = None,
        mcp: MCPClientManager | None = None,
        terminal: TerminalExecutor | None = None,
        agent_config: AgentConfig | None = None,
        on_artifact: ArtifactCallback | None = None,
    ) -> None:
        self._trust_store = trust_store
        self._authorizer = authorizer
        self._broker = broker
        self._skills = skills
        self._mcp = mcp
        self._terminal = terminal or SubprocessTerminalExecutor()
        self._config = agent_config or AgentConfig()
        self._on_artifact = on_artifact

    def get_tools(self) -> list[dict[str, Any]]:
        """Every tool schema offered to the model for the next turn."""
        tools = list(BUILTIN_TOOLS)
        if self._skills is not None:
            tools.extend(self._skills.get_tools())
        if self._mcp is not None:
            tools.extend(self._mcp.get_tools())
            tools.extend(MCP_ADMIN_TOOLS)
        return tools

    async def execute(self, tool_use: ToolUseBlock) -> str:
        """Run one tool call and return its result text."""
        if tool_use.has_parse_error:
            return invalid_json_result(tool_use.invalid_json or "")

        skill_names = self._skills.names if self._skills is not None else ()
        route = classify_tool(tool_use.name, skill_names)
        args = tool_use.input
        log.info("Executing tool %s (%s)", tool_use.name, route.kind.value)

        try:
            if route.kind is ToolKind.READ_FILE:
                return await self.read_file(args)
            if route.kind is ToolKind.WRITE_FILE:
                return await self.write_file(args)
            if route.kind is ToolKind.LIST_DIR:
                return await self.list_dir(args)
            if route.kind is ToolKind.RUN_COMMAND:
                return await self.run_command(args)
            if route.kind is ToolKind.SKILL:
                return self.load_skill(route.name)
            if route.kind is ToolKind.MCP_TOOL:
                return await self.call_external_tool(route.name, args)
            if route.kind is ToolKind.MCP_ADMIN:
                return await self.manage_servers(route.name, args)
            return f"Error: Unknown tool '{tool_use.name}'."
        except Exception as e:
            log.exception("Tool %s failed", tool_use.name)
            return f"Error executing tool: {e}"

    # -- built-ins ---------------------------------------------------------

    def _authorized(self, args: dict[str, Any], key: str = "path") -> tuple[str, str | None]:
        """Returns (path, error). Error is set when the path is missing or unauthorized."""
        path = args.get(key)
        if not isinstance(path, str) or not path:
            return "", f"Error: Missing required argument '{key}'."
        if not self._authorizer.is_authorized(path):
            log.info("Rejected unauthorized path %s", path)
            return path, unauthorized_path(path)
        return path, None

    async def read_file(self, args: dict[str, Any]) -> str:
        path, error = self._authorized(args)
        if error:
            return error
        return await asyncio.to_thread(filesystem.read_file, self._authorizer.normalize(path), path)

    async def list_dir(self, args: dict[str, Any]) -> str:
        path, error = self._authorized(args)
        if error:
            return error
        return await asyncio.to_thread(filesystem.list_dir, self._authorizer.normalize(path), path)

    async def write_file(self, args: dict[str, Any]) -> str:
        path, error = self._authorized(args)
        if error:
            return error
        content = args.get("content", "")
        if not isinstance(content, str):
            content = json.dumps(content, ensure_ascii=False, indent=2)

        target = self._authorizer.normalize(path)
        level = self._authorizer.trust_level_for(path)
        if level is TrustLevel.TRUST:
            approved = True
        elif level is TrustLevel.STANDARD and not is_dangerous_write(str(target)):
            approved = True
        else:
            approved = await self._confirm(WRITE_FILE, f"Write to file: {path}", args, str(target))

        if not approved:
            log.info("Write to %s denied", path)
            return WRITE_DENIED

        result = await asyncio.to_thread(filesystem.write_file, target, content, path)
        if result.startswith("Successfully"):
            self._record_artifact(path)
        return result

    def _record_artifact(self, path: str) -> None:
        name = PurePath(path).name or "file"
        if self._on_artifact is not None:
            self._on_artifact({"path": path, "name": name, "type": "file"})

    def _default_cwd(self) -> str:
        primary = self._trust_store.primary_folder()
        return primary.path if primary else os.getcwd()

    async def run_command(self, args: dict[str, Any]) -> str:
        command = args.get("command")
        if not isinstance(command, str) or not command.strip():
            return "Error: Missing required argument 'command'."

        explicit_cwd = args.get("cwd")
        if explicit_cwd:
            if not isinstance(explicit_cwd, str) or not self._authorizer.is_authorized(explicit_cwd):
                log.info("Rejected unauthorized cwd %s", explicit_cwd)
                return unauthorized_path(str(explicit_cwd))
            cwd = str(self._authorizer.normalize(explicit_cwd))
            permission_path: str | None = cwd
        else:
            cwd = self._default_cwd()
            permission_path = None

        description = f"Execute command: {command}"
        if is_dangerous_command(command):
            log.info("Dangerous command needs confirmation: %s", command)
            approved = await self._broker.request(RUN_COMMAND, description, args)
        else:
            level = self._authorizer.trust_level_for(cwd)
            safe = is_safe_command(command)
            if level is TrustLevel.TRUST or (level is TrustLevel.STANDARD and safe):
                approved = True
            elif safe:
                approved = await self._confirm(RUN_COMMAND, description, args, permission_path)
            else:
                approved = await self._broker.request(RUN_COMMAND, description, args)

        if not approved:
            log.info("Command denied: %s", command)
            return COMMAND_DENIED

        # No cancel event; an abort lets a started command finish.
        result = await self._terminal.run(
            command,
            cwd,
            timeout=self._config.command_timeout,
            output_limit=self._config.output_limit,
        )
        log.debug("Command finished: %r", result)
        return result.to_tool_text()

    async def _confirm(
        self, tool: str, description: str, args: dict[str, Any], path: str | None
    ) -> bool:
        if self._trust_store.has_standing_permission(tool, path):
            log.info("Auto-approved %s (standing permission)", tool)
            return True
        return await self._broker.request(tool, description, args)

    # -- skills and external tools -------------------------------------------

    def load_skill(self, name: str) -> str:
        info = self._skills.get_skill_info(name) if self._skills is not None else None
        if info is None:
            return f"Error: Unknown tool '{name}'."
        log.debug("Loaded skill %s (%d chars)", name, len(info.instructions))
        return format_skill_payload(name, info)

    async def call_external_tool(self, name: str, args: dict[str, Any]) -> str:
        if self._mcp is None:
            return f"Error: Unknown tool '{name}'."
        return await self._mcp.call_tool(name, args)

    async def manage_servers(self, name: str, args: dict[str, Any]) -> str:
        mcp = self._mcp
        if mcp is None:
            return f"Error: Unknown tool '{name}'."

        if name == "mcp_get_all_servers":
            result: Any = [s.to_dict() for s in mcp.get_all_servers()]
        elif name == "mcp_add_server":
            result = await mcp.add_server(str(args.get("json_config", "")))
        elif name == "mcp_remove_server":
            result = await mcp.remove_server(str(args.get("name", "")))
        elif name == "mcp_toggle_server":
            result = await mcp.toggle_server(str(args.get("name", "")), bool(args.get("enabled", True)))
        elif name == "mcp_diagnose_server":
            result = await mcp.diagnose_server(str(args.get("name", "")))
        elif name == "mcp_retry_connection":
            result = await mcp.retry_connection(str(args.get("name", "")))
        else:
            return f"Error: Unknown tool '{name}'."
        return json.dumps(result, indent=2, ensure_ascii=False)
