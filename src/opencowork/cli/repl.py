"""Interactive REPL for talking to an agent from the terminal."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from opencowork.agent.errors import AlreadyProcessing
from opencowork.agent.events import AgentEvent, EventKind

if TYPE_CHECKING:
    from pathlib import Path

    from opencowork.agent.loop import AgentLoop
    from opencowork.cli.commands import CommandHandler

console = Console()


class InteractiveRepl:
    """Reads user messages, streams agent output and answers confirmations.

    Ctrl-C while the agent runs aborts the run; at the prompt it clears
    the line.
    """

    def __init__(
        self,
        agent: AgentLoop,
        commands: CommandHandler,
        history_file: Path | None = None,
    ) -> None:
        self.agent = agent
        self.commands = commands
        self._confirmations: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._unsubscribe = agent.on_event(self._on_event)

        history = FileHistory(str(history_file)) if history_file else None
        self.session: PromptSession[str] = PromptSession(
            history=history,
            auto_suggest=AutoSuggestFromHistory(),
        )

    def _on_event(self, event: AgentEvent) -> None:
        kind = event.kind
        if kind is EventKind.STREAM_TOKEN:
            console.print(event.payload, end="", markup=False, highlight=False, soft_wrap=True)
        elif kind is EventKind.STREAM_THINKING:
            console.print(event.payload, end="", style="dim", markup=False, highlight=False, soft_wrap=True)
        elif kind is EventKind.CONFIRM_REQUEST:
            self._confirmations.put_nowait(event.payload)
        elif kind is EventKind.ARTIFACT_CREATED:
            console.print(f"\n[green]Wrote {escape(event.payload['path'])}[/green]")
        elif kind is EventKind.ERROR:
            console.print(Panel(escape(str(event.payload)), title="Error", border_style="red"))
        elif kind is EventKind.ABORTED:
            console.print("\n[yellow]Aborted.[/yellow]")
        elif kind is EventKind.DONE:
            console.print()

    async def run(self) -> None:
        """Run the interactive REPL until /quit or end of input."""
        console.print(f"[bold]OpenCowork[/bold] - {self.agent.provider.model}")
        console.print("Type [bold]/help[/bold] for commands, [bold]/quit[/bold] to exit.\n")

        while True:
            try:
                line = await self.session.prompt_async("you> ")
            except KeyboardInterrupt:
                continue
            except EOFError:
                break

            line = line.strip()
            if not line:
                continue
            if line.startswith("/"):
                if not await self.commands.handle(line):
                    break
                continue
            await self._run_message(line)

        self._unsubscribe()

    @contextlib.contextmanager
    def _abort_on_interrupt(self) -> Iterator[None]:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self.agent.abort)
            installed = True
        except (NotImplementedError, RuntimeError):
            installed = False
        try:
            yield
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)

    async def _run_message(self, text: str) -> None:
        task = asyncio.create_task(self.agent.process_user_message(text))
        with self._abort_on_interrupt():
            while not task.done():
                getter = asyncio.create_task(self._confirmations.get())
                done, _ = await asyncio.wait({task, getter}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    await self._ask(getter.result())
                else:
                    getter.cancel()

        while not self._confirmations.empty():
            self._confirmations.get_nowait()
        try:
            task.result()
        except AlreadyProcessing as e:
            console.print(f"[red]{e}[/red]")

    async def _ask(self, request: dict[str, Any]) -> None:
        console.print()
        console.print(Panel(escape(request["description"]), title=f"Confirm {request['tool']}", border_style="yellow"))
        try:
            answer = await self.session.prompt_async("Allow? [y]es / [n]o / [a]lways: ")
        except (KeyboardInterrupt, EOFError):
            self.agent.abort()
            return
        answer = answer.strip().lower()
        approved = answer in ("y", "yes", "a", "always")
        remember = answer in ("a", "always")
        self.agent.handle_confirm_response(request["id"], approved, remember)
