"""OpenCowork: a tool-using AI assistant confined to folders the user authorizes."""

__version__ = "0.1.0"

# Public API
from opencowork.agent import AgentLoop, AlreadyProcessing, EventKind, UserInput
from opencowork.config import Config, get_config, load_config
from opencowork.core.llm import LiteLLMProvider, LLMProvider, Message, ProviderError, Role
from opencowork.mcp import MCPClientManager
from opencowork.security import PathAuthorizer, TrustLevel, TrustStore
from opencowork.session import SessionRecorder, SessionStore
from opencowork.skills import SkillManager
from opencowork.terminal import ShellResult, SubprocessTerminalExecutor

__all__ = [
    # Main entry points
    "AgentLoop",
    "UserInput",
    "EventKind",
    "AlreadyProcessing",
    # Configuration
    "Config",
    "get_config",
    "load_config",
    # Providers
    "LLMProvider",
    "LiteLLMProvider",
    "Message",
    "Role",
    "ProviderError",
    # Security
    "TrustStore",
    "TrustLevel",
    "PathAuthorizer",
    # Extensions
    "SkillManager",
    "MCPClientManager",
    # Persistence
    "SessionStore",
    "SessionRecorder",
    # Terminal
    "ShellResult",
    "SubprocessTerminalExecutor",
]
