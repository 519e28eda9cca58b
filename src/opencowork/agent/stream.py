"""Reassembles streamed provider events into finalized content blocks."""

from __future__ import annotations

import json
from collections.abc import Callable
from enum import Enum

from opencowork.core.llm.content import ContentBlock, TextBlock, ToolUseBlock
from opencowork.core.llm.provider import StreamEvent, StreamEventType
from opencowork.logging import get_logger

log = get_logger("stream")

INTERRUPTED_MARKER = "\n\n[interrupted]"


class AssemblerState(Enum):
    IDLE = "idle"
    BUFFERING_TEXT = "buffering-text"
    BUFFERING_TOOL_ARGS = "buffering-tool-args"


def parse_tool_arguments(raw: str) -> tuple[dict, str | None]:
    """Parse accumulated argument text.

    Returns:
        (arguments, None) on success, or ({}, raw) when the text is not a
        JSON object. Empty text means no arguments.
    """
    if not raw.strip():
        return {}, None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}, raw
    if not isinstance(parsed, dict):
        return {}, raw
    return parsed, None


class StreamAssembler:
    """State machine over one streamed assistant response.

    Text deltas are buffered into text blocks and echoed to `on_text`;
    reasoning deltas go only to `on_reasoning`; argument deltas accumulate
    until the tool block stops and are then parsed. Argument text that is
    not a JSON object still yields a ToolUseBlock, flagged with
    `invalid_json`.
    """

    def __init__(
        self,
        on_text: Callable[[str], None] | None = None,
        on_reasoning: Callable[[str], None] | None = None,
    ) -> None:
        self._on_text = on_text
        self._on_reasoning = on_reasoning
        self._state = AssemblerState.IDLE
        self._blocks: list[ContentBlock] = []
        self._text: list[str] = []
        self._tool_id = ""
        self._tool_name = ""
        self._args: list[str] = []

    @property
    def state(self) -> AssemblerState:
        return self._state

    @property
    def blocks(self) -> list[ContentBlock]:
        """Blocks finalized so far."""
        return list(self._blocks)

    def _flush_text(self, suffix: str = "") -> None:
        if self._state is AssemblerState.BUFFERING_TEXT:
            text = "".join(self._text)
            if text:
                self._blocks.append(TextBlock(text + suffix))
            self._text = []
            self._state = AssemblerState.IDLE

    def _finish_tool(self) -> None:
        if self._state is AssemblerState.BUFFERING_TOOL_ARGS:
            raw = "".join(self._args)
            arguments, invalid = parse_tool_arguments(raw)
            if invalid is not None:
                log.warning("Tool %s produced invalid JSON arguments (%d chars)", self._tool_name, len(raw))
            self._blocks.append(
                ToolUseBlock(id=self._tool_id, name=self._tool_name, input=arguments, invalid_json=invalid)
            )
            self._args = []
            self._state = AssemblerState.IDLE

    def _close_open_unit(self) -> None:
        self._flush_text()
        self._finish_tool()

    def feed(self, event: StreamEvent) -> None:
        kind = event.type

        if kind is StreamEventType.BLOCK_START:
            if event.block_type == "tool_use":
                self._close_open_unit()
                self._tool_id = event.tool_id or ""
                self._tool_name = event.tool_name or ""
                self._args = []
                self._state = AssemblerState.BUFFERING_TOOL_ARGS
            else:
                self._finish_tool()

        elif kind is StreamEventType.TEXT_DELTA:
            if not event.text:
                return
            self._finish_tool()
            self._text.append(event.text)
            self._state = AssemblerState.BUFFERING_TEXT
            if self._on_text is not None:
                self._on_text(event.text)

        elif kind is StreamEventType.REASONING_DELTA:
            if event.text and self._on_reasoning is not None:
                self._on_reasoning(event.text)

        elif kind is StreamEventType.ARGUMENT_DELTA:
            if self._state is AssemblerState.BUFFERING_TOOL_ARGS:
                self._args.append(event.text)
            else:
                log.debug("Dropping argument delta outside a tool block")

        elif kind in (StreamEventType.BLOCK_STOP, StreamEventType.MESSAGE_STOP):
            self._close_open_unit()

    def finish(self) -> list[ContentBlock]:
        """Finalize whatever is still open and return all blocks."""
        self._close_open_unit()
        return self.blocks

    def interrupt(self) -> list[ContentBlock]:
        """Finalize after cancellation.

        Buffered text gets the interruption marker appended (or the last
        finalized text block, when nothing is buffered). A tool block whose
        arguments were still streaming is discarded since it can never be
        executed.
        """
        if self._state is AssemblerState.BUFFERING_TOOL_ARGS:
            log.info("Discarding incomplete tool call %s", self._tool_name)
            self._args = []
            self._state = AssemblerState.IDLE
        if self._state is AssemblerState.BUFFERING_TEXT and "".join(self._text):
            self._flush_text(suffix=INTERRUPTED_MARKER)
        else:
            self._flush_text()
            if self._blocks and isinstance(self._blocks[-1], TextBlock):
                last = self._blocks[-1]
                self._blocks[-1] = TextBlock(last.text + INTERRUPTED_MARKER)
        return self.blocks
