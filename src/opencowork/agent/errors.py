"""Agent-level errors and user-facing provider error messages."""

from __future__ import annotations

from dataclasses import dataclass

from opencowork.core.llm.provider import ProviderError

CONTENT_SAFETY_CODE = "1027"

CONTENT_SAFETY_RETRY_PROMPT = (
    "[SYSTEM ERROR] Your previous response was blocked by the safety filter "
    "(Error Code 1027: output new_sensitive). \n\n"
    "This usually means the generated content contained sensitive, restricted, "
    "or unsafe material.\n\n"
    "Please generate a NEW response that:\n"
    "1. Addresses the user's request safely.\n"
    "2. Avoids the sensitive topic or phrasing that triggered the block.\n"
    "3. Acknowledges the issue briefly if necessary."
)


@dataclass
class AlreadyProcessing(Exception):
    """Raised when a message arrives while the agent is still running."""

    elapsed: float

    def __str__(self) -> str:
        return f"Agent is already processing a message (started {self.elapsed:.0f}s ago)"


def is_content_safety_error(error: BaseException) -> bool:
    """The provider refused the output on content-safety grounds (status 500, code 1027)."""
    if not isinstance(error, ProviderError) or error.status != 500:
        return False
    return (
        error.code == CONTENT_SAFETY_CODE
        or "sensitive" in error.message.lower()
        or CONTENT_SAFETY_CODE in error.message
    )


def _is_tool_name_error(error: ProviderError) -> bool:
    message = error.message.lower()
    return "tools[" in message or ("tools." in message and "name" in message)


def describe_provider_error(error: BaseException) -> str:
    """Map a failure to the message shown to the user."""
    if not isinstance(error, ProviderError):
        return f"Unexpected error: {error}" if str(error) else f"Unexpected error: {type(error).__name__}"

    status = error.status
    details = error.message or "Unknown error"

    if is_content_safety_error(error):
        return (
            "AI Provider Error: The generated content was flagged as sensitive "
            "and blocked by the provider."
        )
    if status == 400 and _is_tool_name_error(error):
        return (
            "Configuration error: an external tool name has an invalid format.\n\n"
            f"Details: {details}\n\n"
            "This usually means an MCP server returned a tool name with unsupported "
            "characters. Try disabling the offending server.\n\n"
            "Error code: 400"
        )
    if status == 400:
        return (
            f"Bad request (400): {details}\n\n"
            "Please check:\n- the API key\n- the API URL\n- the model name"
        )
    if status == 401:
        return "Authentication failed (401): the API key is invalid or expired.\n\nPlease check your API key."
    if status == 429:
        return "Too many requests (429): the API rate limit was exceeded.\n\nPlease retry later or upgrade your plan."
    if status == 500:
        return f"Server error (500): the AI provider had a problem.\n\n{details}"
    if status == 503:
        return "Service unavailable (503): the AI service is temporarily unreachable.\n\nPlease retry later."
    prefix = f"[{status}] " if status is not None else ""
    return f"{prefix}{details}"
