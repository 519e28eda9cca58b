"""Conversation content blocks and their persisted form."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class TextBlock:
    """A span of plain text."""

    text: str


@dataclass(slots=True)
class ImageBlock:
    """An inline base64 image."""

    media_type: str
    data: str

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"


@dataclass(slots=True)
class ToolUseBlock:
    """A tool invocation requested by the model.

    Attributes:
        id: Provider-assigned invocation id.
        name: Tool name.
        input: Parsed arguments (empty when they could not be parsed).
        invalid_json: Raw argument text when it was not a JSON object,
            otherwise None.
    """

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    invalid_json: str | None = None

    @property
    def has_parse_error(self) -> bool:
        return self.invalid_json is not None


@dataclass(slots=True)
class ToolResultBlock:
    """The textual outcome of one tool invocation."""

    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = TextBlock | ImageBlock | ToolUseBlock | ToolResultBlock


def block_to_dict(block: ContentBlock) -> dict[str, Any]:
    """Serialize a block for session storage."""
    if isinstance(block, TextBlock):
        return {"type": "text", "text": block.text}
    if isinstance(block, ImageBlock):
        return {"type": "image", "media_type": block.media_type, "data": block.data}
    if isinstance(block, ToolUseBlock):
        data: dict[str, Any] = {
            "type": "tool_use",
            "id": block.id,
            "name": block.name,
            "input": block.input,
        }
        if block.invalid_json is not None:
            data["invalid_json"] = block.invalid_json
        return data
    if isinstance(block, ToolResultBlock):
        return {
            "type": "tool_result",
            "tool_use_id": block.tool_use_id,
            "content": block.content,
            "is_error": block.is_error,
        }
    raise TypeError(f"Unknown content block: {block!r}")


def block_from_dict(data: dict[str, Any]) -> ContentBlock:
    """Rebuild a block from its stored form.

    Raises:
        ValueError: If the block type is unknown.
    """
    kind = data.get("type")
    if kind == "text":
        return TextBlock(text=str(data.get("text", "")))
    if kind == "image":
        return ImageBlock(media_type=str(data["media_type"]), data=str(data["data"]))
    if kind == "tool_use":
        raw_input = data.get("input")
        return ToolUseBlock(
            id=str(data["id"]),
            name=str(data["name"]),
            input=raw_input if isinstance(raw_input, dict) else {},
            invalid_json=data.get("invalid_json"),
        )
    if kind == "tool_result":
        return ToolResultBlock(
            tool_use_id=str(data["tool_use_id"]),
            content=str(data.get("content", "")),
            is_error=bool(data.get("is_error", False)),
        )
    raise ValueError(f"Unknown content block type: {kind!r}")
