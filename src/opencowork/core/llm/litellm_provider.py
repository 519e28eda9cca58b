"""LiteLLM provider implementation.

Talks to Anthropic-compatible endpoints (GLM, Z.AI, MiniMax, or a custom
URL) through litellm's `anthropic/` route. litellm normalizes the stream to
OpenAI-style chunks; this module turns those back into block events.

See https://docs.litellm.ai/docs/providers for the model naming rules.
"""

from __future__ import annotations

import json
import re
from collections.abc import AsyncIterator
from typing import Any

import litellm

from opencowork.core.llm.content import ImageBlock, TextBlock, ToolResultBlock, ToolUseBlock
from opencowork.core.llm.provider import (
    Message,
    ProviderError,
    Role,
    StreamEvent,
)
from opencowork.core.llm.providers import ResolvedProvider
from opencowork.logging import get_logger, register_secret

log = get_logger("llm")

_CODE_PATTERN = re.compile(r"\bcode\b[\"'\s:=]*(\d+)", re.IGNORECASE)


def litellm_model_name(model: str) -> str:
    """Route bare model ids through litellm's Anthropic adapter."""
    return model if "/" in model else f"anthropic/{model}"


def to_litellm_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert `{name, description, input_schema}` schemas to function tools."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "parameters": tool.get("input_schema") or {"type": "object", "properties": {}},
            },
        }
        for tool in tools
    ]


def to_litellm_messages(system: str, messages: list[Message]) -> list[dict[str, Any]]:
    """Flatten block-structured history into chat-completion messages.

    Tool results become `tool` role messages placed before any other user
    content of the same turn, so they directly follow their tool calls.
    """
    converted: list[dict[str, Any]] = [{"role": "system", "content": system}]
    for message in messages:
        if isinstance(message.content, str):
            converted.append({"role": message.role.value, "content": message.content})
            continue

        if message.role is Role.ASSISTANT:
            entry: dict[str, Any] = {"role": "assistant", "content": message.text() or None}
            calls = [
                {
                    "id": block.id,
                    "type": "function",
                    "function": {"name": block.name, "arguments": json.dumps(block.input)},
                }
                for block in message.tool_uses()
            ]
            if calls:
                entry["tool_calls"] = calls
            converted.append(entry)
            continue

        parts: list[dict[str, Any]] = []
        for block in message.content:
            if isinstance(block, ToolResultBlock):
                converted.append(
                    {"role": "tool", "tool_call_id": block.tool_use_id, "content": block.content}
                )
            elif isinstance(block, TextBlock):
                parts.append({"type": "text", "text": block.text})
            elif isinstance(block, ImageBlock):
                parts.append({"type": "image_url", "image_url": {"url": block.data_url}})
            elif isinstance(block, ToolUseBlock):
                log.warning("Dropping tool_use block found in a user message")
        if parts:
            converted.append({"role": "user", "content": parts})
    return converted


def to_provider_error(exc: Exception) -> ProviderError:
    """Wrap a litellm (or transport) exception with its HTTP status."""
    status = getattr(exc, "status_code", None)
    try:
        status = int(status) if status is not None else None
    except (TypeError, ValueError):
        status = None
    message = str(getattr(exc, "message", None) or exc)
    match = _CODE_PATTERN.search(message)
    return ProviderError(
        status=status,
        message=message,
        error_type=getattr(exc, "type", None) or type(exc).__name__,
        code=match.group(1) if match else None,
    )


class ChunkTranslator:
    """Turns OpenAI-style delta chunks into block start/delta/stop events."""

    def __init__(self) -> None:
        self._open: str | None = None  # "text" or "tool_use"
        self._tool_index: int | None = None

    def _close(self) -> list[StreamEvent]:
        if self._open is None:
            return []
        self._open = None
        self._tool_index = None
        return [StreamEvent.block_stop()]

    def feed(self, chunk: Any) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        choices = getattr(chunk, "choices", None)
        if not choices:
            return events
        delta = getattr(choices[0], "delta", None)
        if delta is None:
            return events

        reasoning = getattr(delta, "reasoning_content", None)
        if reasoning:
            events.append(StreamEvent.reasoning_delta(reasoning))

        content = getattr(delta, "content", None)
        if content:
            if self._open != "text":
                events.extend(self._close())
                events.append(StreamEvent.text_start())
                self._open = "text"
            events.append(StreamEvent.text_delta(content))

        for call in getattr(delta, "tool_calls", None) or []:
            index = getattr(call, "index", None) or 0
            function = getattr(call, "function", None)
            name = getattr(function, "name", None) if function is not None else None
            arguments = getattr(function, "arguments", None) if function is not None else None
            if self._open != "tool_use" or index != self._tool_index:
                events.extend(self._close())
                call_id = getattr(call, "id", None) or f"call_{index}"
                events.append(StreamEvent.tool_start(call_id, name or ""))
                self._open = "tool_use"
                self._tool_index = index
            if arguments:
                events.append(StreamEvent.argument_delta(arguments))
        return events

    def finish(self) -> list[StreamEvent]:
        events = self._close()
        events.append(StreamEvent.message_stop())
        return events


class LiteLLMProvider:
    """Streaming tool-calling provider built on litellm.

    Usage:
        provider = LiteLLMProvider(
            "MiniMax-M2.1",
            api_base="https://api.minimax.io/anthropic",
            api_key="...",
        )
    """

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        api_base: str | None = None,
        max_tokens: int = 131072,
        **kwargs: Any,
    ) -> None:
        """Initialize the provider.

        Args:
            model: Model identifier (bare ids are routed via `anthropic/`)
            api_key: API key (litellm falls back to env vars if not provided)
            api_base: Endpoint base URL
            max_tokens: Maximum output tokens per response
            **kwargs: Additional litellm options
        """
        self._model = model
        self._api_key = api_key
        register_secret(api_key)
        self._api_base = api_base
        self._max_tokens = max_tokens
        self._kwargs = kwargs

    @classmethod
    def from_resolved(cls, settings: ResolvedProvider) -> LiteLLMProvider:
        return cls(
            settings.model,
            api_key=settings.api_key,
            api_base=settings.api_url,
            max_tokens=settings.max_tokens,
        )

    @property
    def model(self) -> str:
        return self._model

    @property
    def max_tokens(self) -> int:
        return self._max_tokens

    @property
    def api_base(self) -> str | None:
        return self._api_base

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
        if api_base and api_base != self._api_base:
            self._api_base = api_base
            changed = True
        if api_key and api_key != self._api_key:
            self._api_key = api_key
            register_secret(api_key)
            changed = True
        if max_tokens is not None and max_tokens != self._max_tokens:
            self._max_tokens = max_tokens
            changed = True
        if changed:
            log.info("Provider reconfigured: model=%s max_tokens=%d", self._model, self._max_tokens)
        return changed

    def _build_kwargs(
        self,
        system: str,
        messages: list[Message],
        tools: list[dict[str, Any]],
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": litellm_model_name(self._model),
            "messages": to_litellm_messages(system, messages),
            "max_tokens": self._max_tokens,
            "stream": True,
            **self._kwargs,
        }
        if tools:
            kwargs["tools"] = to_litellm_tools(tools)
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._api_base:
            kwargs["api_base"] = self._api_base
        return kwargs

    async def stream(
        self,
        *,
        system: str,
        messages: list[Message],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[StreamEvent]:
        """Stream one assistant response as block events.

        Raises:
            ProviderError: Wrapping whatever litellm raised.
        """
        kwargs = self._build_kwargs(system, messages, tools)
        translator = ChunkTranslator()
        try:
            response = await litellm.acompletion(**kwargs)
            async for chunk in response:
                for event in translator.feed(chunk):
                    yield event
        except ProviderError:
            raise
        except Exception as e:
            raise to_provider_error(e) from e

        for event in translator.finish():
            yield event
