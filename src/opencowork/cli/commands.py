"""Slash command handlers for the interactive host."""

from __future__ import annotations

import shlex
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from opencowork.security.trust_store import InvalidPath, TrustLevel

if TYPE_CHECKING:
    from opencowork.agent.loop import AgentLoop
    from opencowork.security.trust_store import TrustStore
    from opencowork.session.recorder import SessionRecorder
    from opencowork.session.storage import SessionStore

console = Console()


class CommandHandler:
    """Handles slash commands in interactive mode."""

    def __init__(
        self,
        agent: AgentLoop,
        trust_store: TrustStore,
        sessions: SessionStore,
        recorder: SessionRecorder,
    ) -> None:
        self.agent = agent
        self.trust_store = trust_store
        self.sessions = sessions
        self.recorder = recorder

    async def handle(self, line: str) -> bool:
        """Handle a slash command. Returns False when the host should exit."""
        try:
            parts = shlex.split(line)
        except ValueError as e:
            console.print(f"[red]Could not parse command: {e}[/red]")
            return True
        if not parts:
            return True

        cmd = parts[0].lower()
        args = parts[1:]
        if cmd in ("/quit", "/exit"):
            return False

        handlers = {
            "/help": self._cmd_help,
            "/folders": self._cmd_folders,
            "/trust": self._cmd_trust,
            "/clear": self._cmd_clear,
            "/sessions": self._cmd_sessions,
            "/permissions": self._cmd_permissions,
            "/revoke-all": self._cmd_revoke_all,
        }
        handler = handlers.get(cmd)
        if handler:
            handler(args)
        else:
            console.print(f"[red]Unknown command: {cmd}[/red]")
            console.print("Type [bold]/help[/bold] for available commands.")
        return True

    def _cmd_help(self, args: list[str]) -> None:
        table = Table(title="Available Commands")
        table.add_column("Command", style="bold")
        table.add_column("Description")

        commands = [
            ("/help", "Show this help message"),
            ("/folders", "List authorized folders"),
            ("/folders add <path>", "Authorize a folder (Strict)"),
            ("/folders remove <path>", "Remove an authorized folder"),
            ("/folders primary <path>", "Make a folder the working directory"),
            ("/trust <level> \\[path]", "Set trust level: strict, standard or trust"),
            ("/clear", "Start a new conversation"),
            ("/sessions", "List saved sessions"),
            ("/sessions load <id>", "Resume a saved session"),
            ("/sessions delete <id>", "Delete a saved session"),
            ("/permissions", "List remembered approvals"),
            ("/revoke-all", "Forget every remembered approval"),
            ("/quit", "Exit"),
        ]
        for cmd, desc in commands:
            table.add_row(cmd, desc)
        console.print(table)

    def _cmd_folders(self, args: list[str]) -> None:
        if len(args) == 2:
            action, path = args
            try:
                if action == "add":
                    folder = self.trust_store.add_folder(path)
                    console.print(f"Authorized [bold]{folder.path}[/bold] ({folder.trust_level.value})")
                elif action == "remove":
                    if self.trust_store.remove_folder(path):
                        console.print(f"Removed {path}")
                    else:
                        console.print(f"[yellow]{path} is not authorized[/yellow]")
                elif action == "primary":
                    self.trust_store.set_primary_folder(path)
                    console.print(f"Working directory is now {path}")
                else:
                    console.print(f"[red]Unknown folders action: {action}[/red]")
            except InvalidPath as e:
                console.print(f"[red]{e}[/red]")
            return

        folders = self.trust_store.get_folders()
        if not folders:
            console.print("[dim]No authorized folders. Use /folders add <path>.[/dim]")
            return
        table = Table(title="Authorized Folders")
        table.add_column("Path", style="bold")
        table.add_column("Trust")
        table.add_column("Added")
        for index, folder in enumerate(folders):
            label = f"{folder.path} (primary)" if index == 0 else folder.path
            table.add_row(label, folder.trust_level.value, folder.added_at.strftime("%Y-%m-%d %H:%M"))
        console.print(table)

    def _cmd_trust(self, args: list[str]) -> None:
        if not args:
            console.print("[red]Usage: /trust <strict|standard|trust> \\[path][/red]")
            return
        try:
            level = TrustLevel(args[0].lower())
        except ValueError:
            console.print(f"[red]Unknown trust level: {args[0]}[/red]")
            return

        if len(args) > 1:
            path = args[1]
        else:
            primary = self.trust_store.primary_folder()
            if primary is None:
                console.print("[red]No authorized folder to change.[/red]")
                return
            path = primary.path
        try:
            self.trust_store.set_folder_trust(path, level)
        except InvalidPath as e:
            console.print(f"[red]{e}[/red]")
            return
        console.print(f"{path} is now [bold]{level.value}[/bold]")

    def _cmd_clear(self, args: list[str]) -> None:
        self.recorder.new_session()
        console.print("[dim]Started a new conversation.[/dim]")

    def _cmd_sessions(self, args: list[str]) -> None:
        if len(args) == 2 and args[0] == "load":
            if self.agent.is_processing:
                console.print("[red]Wait for the current run to finish.[/red]")
            elif self.recorder.load(args[1]):
                console.print(f"Loaded session {args[1]}")
            else:
                console.print(f"[red]Session not found: {args[1]}[/red]")
            return
        if len(args) == 2 and args[0] == "delete":
            if self.sessions.delete(args[1]):
                console.print(f"Deleted session {args[1]}")
            else:
                console.print(f"[red]Session not found: {args[1]}[/red]")
            return

        listing = self.sessions.list()
        if not listing:
            console.print("[dim]No saved sessions.[/dim]")
            return
        current = self.recorder.session_id
        table = Table(title="Sessions")
        table.add_column("ID", style="bold")
        table.add_column("Title")
        table.add_column("Messages", justify="right")
        table.add_column("Updated")
        for meta in listing:
            marker = "* " if meta.id == current else ""
            table.add_row(
                marker + meta.id,
                meta.title,
                str(meta.message_count),
                meta.updated_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

    def _cmd_permissions(self, args: list[str]) -> None:
        permissions = self.trust_store.get_permissions()
        if not permissions:
            console.print("[dim]No remembered approvals.[/dim]")
            return
        table = Table(title="Remembered Approvals")
        table.add_column("Tool", style="bold")
        table.add_column("Path")
        table.add_column("Granted")
        for permission in permissions:
            table.add_row(
                permission.tool,
                permission.path_pattern,
                permission.granted_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

    def _cmd_revoke_all(self, args: list[str]) -> None:
        self.trust_store.clear_all_permissions()
        console.print("Forgot every remembered approval.")
