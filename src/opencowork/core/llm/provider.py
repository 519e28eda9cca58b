"""LLM provider protocol and base types."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from opencowork.core.llm.content import (
    ContentBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    block_from_dict,
    block_to_dict,
)


class Role(Enum):
    """Message role in a conversation."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(slots=True)
class Message:
    """A message in the conversation history.

    Attributes:
        role: user or assistant
        content: Plain text, or an ordered list of content blocks
    """

    role: Role
    content: str | list[ContentBlock]

    @property
    def blocks(self) -> list[ContentBlock]:
        if isinstance(self.content, str):
            return [TextBlock(self.content)] if self.content else []
        return list(self.content)

    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]

    def tool_results(self) -> list[ToolResultBlock]:
        return [b for b in self.blocks if isinstance(b, ToolResultBlock)]

    def text(self) -> str:
        return "".join(b.text for b in self.blocks if isinstance(b, TextBlock))

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role.value, "content": self.content}
        return {
            "role": self.role.value,
            "content": [block_to_dict(b) for b in self.content],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        role = Role(data["role"])
        content = data.get("content", "")
        if isinstance(content, list):
            return cls(role=role, content=[block_from_dict(b) for b in content])
        return cls(role=role, content=str(content))


class StreamEventType(Enum):
    """Incremental events produced by a streaming provider."""

    BLOCK_START = "block_start"
    TEXT_DELTA = "text_delta"
    REASONING_DELTA = "reasoning_delta"
    ARGUMENT_DELTA = "argument_delta"
    BLOCK_STOP = "block_stop"
    MESSAGE_STOP = "message_stop"


@dataclass(slots=True)
class StreamEvent:
    """One event from a streaming response.

    `block_type`, `tool_id` and `tool_name` are only set on BLOCK_START;
    `text` carries the fragment for the delta events.
    """

    type: StreamEventType
    text: str = ""
    block_type: str | None = None  # "text" or "tool_use"
    tool_id: str | None = None
    tool_name: str | None = None

    @classmethod
    def text_start(cls) -> StreamEvent:
        return cls(StreamEventType.BLOCK_START, block_type="text")

    @classmethod
    def tool_start(cls, tool_id: str, name: str) -> StreamEvent:
        return cls(StreamEventType.BLOCK_START, block_type="tool_use", tool_id=tool_id, tool_name=name)

    @classmethod
    def text_delta(cls, text: str) -> StreamEvent:
        return cls(StreamEventType.TEXT_DELTA, text=text)

    @classmethod
    def reasoning_delta(cls, text: str) -> StreamEvent:
        return cls(StreamEventType.REASONING_DELTA, text=text)

    @classmethod
    def argument_delta(cls, fragment: str) -> StreamEvent:
        return cls(StreamEventType.ARGUMENT_DELTA, text=fragment)

    @classmethod
    def block_stop(cls) -> StreamEvent:
        return cls(StreamEventType.BLOCK_STOP)

    @classmethod
    def message_stop(cls) -> StreamEvent:
        return cls(StreamEventType.MESSAGE_STOP)


@dataclass
class ProviderError(Exception):
    """A failed provider call, categorized by HTTP status where known."""

    status: int | None
    message: str
    error_type: str | None = None
    code: str | None = None

    def __str__(self) -> str:
        if self.status is not None:
            return f"[{self.status}] {self.message}"
        return self.message


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol for streaming, tool-calling model providers."""

    @property
    def model(self) -> str:
        """The model identifier being used."""
        ...

    @property
    def max_tokens(self) -> int:
        """Maximum output tokens per response."""
        ...

    def stream(
        self,
        *,
        system: str,
        messages: list[Message],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[StreamEvent]:
        """Stream one assistant response.

        Cancelling the consuming task must abort the underlying request.

        Args:
            system: System prompt text
            messages: Full conversation history
            tools: Tool schemas (name, description, input_schema)

        Yields:
            StreamEvent objects as they arrive

        Raises:
            ProviderError: On any transport or API failure
        """
        ...

    def reconfigure(
        self,
        *,
        model: str | None = None,
        api_base: str | None = None,
        api_key: str | None = None,
        max_tokens: int | None = None,
    ) -> bool:
        """Swap settings in place. Returns True if anything changed."""
        ...
