"""The agent run loop.

One AgentLoop drives one conversation: it streams a response from the
provider, executes the tool calls it contains, feeds the results back and
repeats until the model answers without tools, the iteration bound is
reached, or the user aborts.

Each UI surface gets its own AgentLoop. Only the TrustStore is shared.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from opencowork.agent.confirmation import ConfirmationBroker, PendingConfirmation
from opencowork.agent.errors import (
    CONTENT_SAFETY_RETRY_PROMPT,
    AlreadyProcessing,
    describe_provider_error,
    is_content_safety_error,
)
from opencowork.agent.events import AgentEventCallback, EventBroadcaster, EventKind
from opencowork.agent.prompts import build_system_prompt
from opencowork.agent.stream import StreamAssembler
from opencowork.agent.tools.executor import ToolExecutor
from opencowork.config.schema import AgentConfig, SkillsConfig
from opencowork.core.llm.content import ContentBlock, ImageBlock, TextBlock, ToolResultBlock
from opencowork.core.llm.provider import LLMProvider, Message, ProviderError, Role
from opencowork.logging import get_logger
from opencowork.mcp.client import MCPClientManager
from opencowork.security.path_authorizer import PathAuthorizer
from opencowork.security.trust_store import TrustStore
from opencowork.skills.manager import SkillManager
from opencowork.terminal.protocol import TerminalExecutor

log = get_logger("agent")

CANCELLED_RESULT = "Tool call cancelled: the run was aborted."
IMAGE_ONLY_PROMPT = "Please analyze this image."

_IMAGE_DATA_URL = re.compile(r"^data:(image/[a-zA-Z]+);base64,(.+)$", re.DOTALL)


@dataclass
class UserInput:
    """A user message with optional images given as base64 data URLs."""

    content: str = ""
    images: list[str] = field(default_factory=list)


def build_user_content(user_input: str | UserInput) -> str | list[ContentBlock]:
    """Turn user input into message content.

    Image URLs that are not `data:image/<type>;base64,...` are skipped.
    Images without text get a default prompt, since providers reject
    image-only user turns.
    """
    if isinstance(user_input, str):
        return user_input

    blocks: list[ContentBlock] = []
    for url in user_input.images:
        match = _IMAGE_DATA_URL.match(url)
        if match is None:
            log.warning("Skipping malformed image data URL (%d chars)", len(url))
            continue
        blocks.append(ImageBlock(media_type=match.group(1), data=match.group(2)))

    if user_input.content and user_input.content.strip():
        blocks.append(TextBlock(user_input.content))
    elif blocks:
        blocks.append(TextBlock(IMAGE_ONLY_PROMPT))
    return blocks


def _timestamp() -> int:
    return int(time.time() * 1000)


class AgentLoop:
    """Multi-turn, tool-using conversation with a streaming provider.

    States are Idle and Processing. `process_user_message` runs one user
    message to completion; `abort` stops it from any other task.

    Example:
        loop = AgentLoop(provider, TrustStore(path))
        unsubscribe = loop.on_event(print)
        await loop.initialize()
        await loop.process_user_message("List the files in my project")
    """

    def __init__(
        self,
        provider: LLMProvider,
        trust_store: TrustStore,
        *,
        skills: SkillManager | None = None,
        mcp: MCPClientManager | None = None,
        terminal: TerminalExecutor | None = None,
        config: AgentConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the loop.

        Args:
            provider: Streaming model provider.
            trust_store: Authorized folders and standing permissions.
            skills: Skill registry, or None for no skills.
            mcp: External tool-server manager, or None for none.
            terminal: Command executor for run_command.
            config: Iteration bound, watchdog and command limits.
            clock: Monotonic time source for the stale-run watchdog.
        """
        self._provider = provider
        self._trust_store = trust_store
        self._skills = skills
        self._mcp = mcp
        self._config = config or AgentConfig()
        self._clock = clock

        self._events = EventBroadcaster()
        self._authorizer = PathAuthorizer(trust_store)
        self._broker = ConfirmationBroker(notify=self._on_confirm_request)
        self._executor = ToolExecutor(
            trust_store,
            self._authorizer,
            self._broker,
            skills=skills,
            mcp=mcp,
            terminal=terminal,
            agent_config=self._config,
            on_artifact=self._add_artifact,
        )

        self._history: list[Message] = []
        self._artifacts: list[dict[str, str]] = []

        self._processing = False
        self._started_at = 0.0
        self._generation = 0
        self._cancel: asyncio.Event | None = None
        self._stream_task: asyncio.Task[None] | None = None
        self._unwinding: asyncio.Event | None = None

    # -- observation -------------------------------------------------------

    def on_event(self, callback: AgentEventCallback) -> Callable[[], None]:
        """Subscribe to agent events. Returns an unsubscribe function."""
        return self._events.subscribe(callback)

    @property
    def history(self) -> list[Message]:
        return list(self._history)

    @property
    def artifacts(self) -> list[dict[str, str]]:
        return list(self._artifacts)

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def pending_confirmations(self) -> list[PendingConfirmation]:
        return self._broker.pending

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    def _notify_history(self) -> None:
        self._events.emit(EventKind.HISTORY_UPDATED, self.history)

    def _on_confirm_request(self, entry: PendingConfirmation) -> None:
        self._events.emit(EventKind.CONFIRM_REQUEST, entry.to_payload())

    def _add_artifact(self, artifact: dict[str, str]) -> None:
        self._artifacts.append(artifact)
        self._events.emit(EventKind.ARTIFACT_CREATED, dict(artifact))

    # -- lifecycle ---------------------------------------------------------

    async def initialize(self) -> None:
        """Load skills and connect external tool servers concurrently."""
        await self._reload_extensions()
        log.info("Agent initialized")

    async def _reload_extensions(self) -> None:
        jobs = []
        if self._skills is not None:
            jobs.append(self._skills.load_skills())
        if self._mcp is not None:
            jobs.append(self._mcp.load_clients())
        for result in await asyncio.gather(*jobs, return_exceptions=True):
            if isinstance(result, BaseException):
                log.warning("Failed to load agent extensions: %s", result)

    async def dispose(self) -> None:
        self.abort()
        if self._mcp is not None:
            await self._mcp.dispose()

    def update_config(
        self,
        model: str | None = None,
        api_url: str | None = None,
        api_key: str | None = None,
        max_tokens: int | None = None,
    ) -> bool:
        """Swap provider settings without touching the conversation.

        Returns:
            True if anything changed.
        """
        return self._provider.reconfigure(
            model=model, api_base=api_url, api_key=api_key, max_tokens=max_tokens
        )

    # -- history -----------------------------------------------------------

    def clear_history(self) -> None:
        self._history = []
        self._artifacts = []
        self._notify_history()

    def load_history(self, messages: list[Message]) -> None:
        """Replace the conversation, e.g. when switching sessions."""
        self._history = list(messages)
        self._artifacts = []
        self._notify_history()

    def _close_open_tool_uses(self) -> None:
        """Give every unanswered tool call at the tail a cancellation result."""
        if not self._history:
            return
        last = self._history[-1]
        if last.role is not Role.ASSISTANT or not last.tool_uses():
            return
        self._history.append(
            Message(
                role=Role.USER,
                content=[ToolResultBlock(t.id, CANCELLED_RESULT, is_error=True) for t in last.tool_uses()],
            )
        )

    def _commit(self, message: Message, generation: int) -> bool:
        """Append to history unless a newer run has taken over."""
        if generation != self._generation:
            log.debug("Dropping %s message from superseded run", message.role.value)
            return False
        self._history.append(message)
        self._notify_history()
        return True

    # -- confirmation ------------------------------------------------------

    def handle_confirm_response(self, confirmation_id: str, approved: bool, remember: bool = False) -> bool:
        """Answer a confirmation request.

        Args:
            confirmation_id: Id from the confirm-request event.
            approved: The user's answer.
            remember: Also grant a standing permission for this tool and
                path, so the same action is not asked about again.

        Returns:
            False if nothing was pending under that id.
        """
        entry = self._broker.get(confirmation_id)
        if entry is None:
            return False
        if approved and remember:
            path = entry.path
            pattern = str(self._authorizer.normalize(path)) if path else None
            self._trust_store.grant_permission(entry.tool, pattern)
        return self._broker.resolve(confirmation_id, approved) is not None

    # -- processing --------------------------------------------------------

    def abort(self) -> None:
        """Stop the current run.

        Cancels the provider stream, denies every pending confirmation and
        returns to Idle immediately. A tool that is already running is
        allowed to finish and report back; nothing further is dispatched.
        """
        if not self._processing:
            return
        log.info("Aborting agent run")
        if self._cancel is not None:
            self._cancel.set()
        if self._stream_task is not None and not self._stream_task.done():
            self._stream_task.cancel()
        self._broker.cancel_all()
        self._events.emit(EventKind.ABORTED, {"aborted": True, "timestamp": _timestamp()})
        self._processing = False
        self._cancel = None

    async def process_user_message(self, user_input: str | UserInput) -> None:
        """Run one user message through the agent.

        Provider failures are reported through the error event, not raised.

        Raises:
            AlreadyProcessing: If a run is in progress and has not yet
                exceeded the stale-run timeout.
        """
        now = self._clock()
        previous = self._unwinding
        if self._processing:
            elapsed = now - self._started_at
            if elapsed <= self._config.stale_timeout:
                raise AlreadyProcessing(elapsed=elapsed)
            log.warning("Run stuck for %.0fs, resetting processing state", elapsed)
            if self._cancel is not None:
                self._cancel.set()
            if self._stream_task is not None and not self._stream_task.done():
                self._stream_task.cancel()
            self._broker.cancel_all()
            previous = None

        self._generation += 1
        generation = self._generation
        cancel = asyncio.Event()
        done = asyncio.Event()
        self._cancel = cancel
        self._unwinding = done
        self._processing = True
        self._started_at = now

        try:
            if previous is not None and not previous.is_set():
                log.debug("Waiting for the aborted run to unwind")
                await previous.wait()
            self._close_open_tool_uses()
            await self._reload_extensions()

            content = build_user_content(user_input)
            if not self._commit(Message(role=Role.USER, content=content), generation):
                return
            await self._run_turns(generation, cancel)
        except Exception as e:
            if cancel.is_set():
                log.info("Run ended after abort: %s", e)
            else:
                if isinstance(e, ProviderError):
                    log.error("Provider error: %s", e)
                else:
                    log.exception("Agent loop failed")
                self._events.emit(EventKind.ERROR, describe_provider_error(e))
        finally:
            done.set()
            if generation == self._generation:
                self._processing = False
                self._cancel = None
                self._stream_task = None
                self._notify_history()
                self._events.emit(EventKind.DONE, {"timestamp": _timestamp()})

    async def _run_turns(self, generation: int, cancel: asyncio.Event) -> None:
        max_iterations = self._config.max_iterations
        for iteration in range(1, max_iterations + 1):
            if cancel.is_set():
                return
            log.debug("Turn %d/%d", iteration, max_iterations)

            assembler = StreamAssembler(
                on_text=lambda text: self._events.emit(EventKind.STREAM_TOKEN, text),
                on_reasoning=lambda text: self._events.emit(EventKind.STREAM_THINKING, text),
            )
            try:
                completed = await self._stream_turn(assembler, cancel)
            except ProviderError as e:
                if cancel.is_set() or not is_content_safety_error(e):
                    raise
                log.warning("Response blocked by content filter, asking the model to retry")
                self._commit(Message(role=Role.USER, content=CONTENT_SAFETY_RETRY_PROMPT), generation)
                continue

            if not completed:
                partial = assembler.interrupt()
                if partial and self._commit(Message(role=Role.ASSISTANT, content=partial), generation):
                    self._close_open_tool_uses()
                return

            blocks = assembler.finish()
            if not blocks:
                log.debug("Empty response, ending run")
                return
            assistant = Message(role=Role.ASSISTANT, content=blocks)
            if not self._commit(assistant, generation):
                return

            tool_uses = assistant.tool_uses()
            if not tool_uses:
                return

            results: list[ContentBlock] = []
            for tool_use in tool_uses:
                if cancel.is_set():
                    results.append(ToolResultBlock(tool_use.id, CANCELLED_RESULT, is_error=True))
                    continue
                output = await self._executor.execute(tool_use)
                results.append(ToolResultBlock(tool_use.id, output))
            if not self._commit(Message(role=Role.USER, content=results), generation):
                return

        log.warning("Stopped after reaching the %d iteration limit", max_iterations)

    async def _stream_turn(self, assembler: StreamAssembler, cancel: asyncio.Event) -> bool:
        """Stream one response into the assembler.

        The stream is consumed in its own task so `abort` can cancel the
        underlying request.

        Returns:
            False if the run was aborted before the stream finished.
        """
        folders = self._trust_store.get_folders()
        system = build_system_prompt(
            folders,
            self._skills.get_skill_metadata() if self._skills is not None else [],
            self._mcp.get_active_servers() if self._mcp is not None else [],
            str(self._skills.directory) if self._skills is not None else SkillsConfig().directory,
        )
        tools = self._executor.get_tools()
        messages = list(self._history)

        async def consume() -> None:
            async for event in self._provider.stream(system=system, messages=messages, tools=tools):
                assembler.feed(event)

        task = asyncio.create_task(consume())
        self._stream_task = task
        try:
            await task
        except asyncio.CancelledError:
            if not cancel.is_set():
                raise
            return False
        finally:
            if self._stream_task is task:
                self._stream_task = None
        return not cancel.is_set()

