"""Shared test utilities for OpenCowork tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from opencowork.agent.events import AgentEvent, EventKind
from opencowork.core.llm.provider import Message, StreamEvent
from opencowork.terminal.result import ShellResult


def text_events(text: str) -> list[StreamEvent]:
    """Events for a response that is a single text block."""
    return [
        StreamEvent.text_start(),
        StreamEvent.text_delta(text),
        StreamEvent.block_stop(),
        StreamEvent.message_stop(),
    ]


def tool_events(tool_id: str, name: str, args: dict[str, Any] | str, text: str = "") -> list[StreamEvent]:
    """Events for an optional text block followed by one tool call."""
    raw = args if isinstance(args, str) else json.dumps(args)
    events: list[StreamEvent] = []
    if text:
        events += [StreamEvent.text_start(), StreamEvent.text_delta(text), StreamEvent.block_stop()]
    events += [
        StreamEvent.tool_start(tool_id, name),
        StreamEvent.argument_delta(raw),
        StreamEvent.block_stop(),
        StreamEvent.message_stop(),
    ]
    return events


def multi_tool_events(*calls: tuple[str, str, dict[str, Any]]) -> list[StreamEvent]:
    """Events for several tool calls in one response."""
    events: list[StreamEvent] = []
    for tool_id, name, args in calls:
        events += [
            StreamEvent.tool_start(tool_id, name),
            StreamEvent.argument_delta(json.dumps(args)),
            StreamEvent.block_stop(),
        ]
    events.append(StreamEvent.message_stop())
    return events


@dataclass
class StreamCall:
    """One recorded provider call."""

    system: str
    messages: list[Message]
    tools: list[dict[str, Any]]


@dataclass
class Hang:
    """A scripted turn that emits `events` and then blocks until cancelled."""

    events: list[StreamEvent] = field(default_factory=list)


class FakeProvider:
    """Scripted LLMProvider.

    Each entry in `turns` is a list of events, an exception to raise, or a
    Hang. When the script runs out, `repeat_last` replays the final turn.
    """

    def __init__(self, turns: list[Any], *, repeat_last: bool = False) -> None:
        self.turns = list(turns)
        self.repeat_last = repeat_last
        self.calls: list[StreamCall] = []
        self.hanging = asyncio.Event()
        self.cancelled = False
        self._model = "fake-model"
        self._max_tokens = 1024

    @property
    def model(self) -> str:
        return self._model

    @property
    def max_tokens(self) -> int:
        return self._max_tokens

    def reconfigure(
        self,
        *,
        model: str | None = None,
        api_base: str | None = None,
        api_key: str | None = None,
        max_tokens: int | None = None,
    ) -> bool:
        changed = False
        if model and model != self._model:
            self._model = model
            changed = True
        if max_tokens is not None and max_tokens != self._max_tokens:
            self._max_tokens = max_tokens
            changed = True
        return changed

    def _next_turn(self) -> Any:
        index = len(self.calls) - 1
        if index < len(self.turns):
            return self.turns[index]
        if self.repeat_last and self.turns:
            return self.turns[-1]
        raise AssertionError("FakeProvider ran out of scripted turns")

    async def stream(
        self,
        *,
        system: str,
        messages: list[Message],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[StreamEvent]:
        self.calls.append(StreamCall(system=system, messages=list(messages), tools=list(tools)))
        turn = self._next_turn()
        if isinstance(turn, BaseException):
            raise turn
        if isinstance(turn, Hang):
            for event in turn.events:
                yield event
            self.hanging.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
            return
        for event in turn:
            yield event
            await asyncio.sleep(0)


class FakeTerminal:
    """TerminalExecutor that records commands instead of running them."""

    def __init__(self, output: str = "ok", exit_code: int = 0) -> None:
        self.output = output
        self.exit_code = exit_code
        self.commands: list[tuple[str, str]] = []

    async def run(
        self,
        command: str,
        cwd: str,
        *,
        timeout: float | None = 120.0,
        output_limit: int = 50000,
        cancel: asyncio.Event | None = None,
    ) -> ShellResult:
        self.commands.append((command, cwd))
        return ShellResult(
            command=command,
            cwd=cwd,
            exit_code=self.exit_code,
            output=self.output,
            truncated=False,
            status="ok" if self.exit_code == 0 else "error",
            duration_ms=1.0,
        )


class EventRecorder:
    """Collects agent events for assertions."""

    def __init__(self) -> None:
        self.events: list[AgentEvent] = []

    def __call__(self, event: AgentEvent) -> None:
        self.events.append(event)

    def kinds(self) -> list[EventKind]:
        return [e.kind for e in self.events]

    def payloads(self, kind: EventKind) -> list[Any]:
        return [e.payload for e in self.events if e.kind is kind]


async def wait_for_async(coro, timeout: float = 1.0):
    """Wait for an async coroutine with a timeout.

    Raises:
        asyncio.TimeoutError: If timeout is exceeded
    """
    return await asyncio.wait_for(coro, timeout=timeout)


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll `predicate` until it is true, yielding to the event loop."""
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout=timeout)


def create_mock_llm_stream_chunk(
    content: str | None = None,
    *,
    reasoning: str | None = None,
    tool_calls: list[Any] | None = None,
) -> Any:
    """Create a streaming chunk shaped like litellm's OpenAI-style deltas."""
    from types import SimpleNamespace

    delta = SimpleNamespace(content=content, reasoning_content=reasoning, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=None)])


def create_mock_tool_call_delta(
    index: int,
    *,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> Any:
    """One entry of a chunk's `delta.tool_calls`."""
    from types import SimpleNamespace

    return SimpleNamespace(
        index=index,
        id=call_id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )
