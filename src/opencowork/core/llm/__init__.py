"""LLM provider abstraction."""

from opencowork.core.llm.content import (
    ContentBlock,
    ImageBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from opencowork.core.llm.litellm_provider import LiteLLMProvider
from opencowork.core.llm.provider import (
    LLMProvider,
    Message,
    ProviderError,
    Role,
    StreamEvent,
    StreamEventType,
)
from opencowork.core.llm.providers import (
    PROVIDER_PRESETS,
    ProviderPreset,
    ResolvedProvider,
    get_preset,
    resolve_provider,
)

__all__ = [
    # Provider protocol and implementation
    "LLMProvider",
    "LiteLLMProvider",
    "ProviderError",
    # Conversation types
    "Message",
    "Role",
    "ContentBlock",
    "TextBlock",
    "ImageBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    # Streaming
    "StreamEvent",
    "StreamEventType",
    # Presets
    "PROVIDER_PRESETS",
    "ProviderPreset",
    "ResolvedProvider",
    "get_preset",
    "resolve_provider",
]
