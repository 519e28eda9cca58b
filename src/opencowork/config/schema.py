"""Configuration schema dataclasses for OpenCowork.

Defines the structure of configuration at every level (system, user,
environment). All fields have defaults so partial configs merge cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_PROVIDER = "minimax_intl"
DEFAULT_MAX_TOKENS = 131072


@dataclass
class ProviderOverride:
    """User-supplied settings for one provider preset.

    Any field left as None falls back to the packaged preset.
    """

    api_key: str | None = None
    api_url: str | None = None
    model: str | None = None
    max_tokens: int | None = None


@dataclass
class LLMConfig:
    """Model provider configuration.

    Example config.yaml:
        llm:
          active_provider: glm
          providers:
            glm:
              model: glm-4.7
            custom:
              api_url: https://example.com/anthropic
              model: my-model
    """

    active_provider: str = DEFAULT_PROVIDER
    providers: dict[str, ProviderOverride] = field(default_factory=dict)


@dataclass
class AgentConfig:
    """Agent loop limits."""

    max_iterations: int = 30  # Turn bound per user message
    stale_timeout: float = 60.0  # Seconds before a stuck run is force-reset
    command_timeout: float = 120.0  # run_command timeout in seconds
    output_limit: int = 50000  # Max characters of command output kept


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class SkillsConfig:
    """Skill discovery configuration."""

    directory: str = "~/.opencowork/skills"


@dataclass
class MCPConfig:
    """External tool server configuration.

    The server list itself lives in its own YAML file so it can be edited
    at runtime through the management tools.
    """

    config_file: str = "~/.opencowork/mcp.yaml"


@dataclass
class StorageConfig:
    """Local persistence locations."""

    data_dir: str = "~/.opencowork"


@dataclass
class Config:
    """Root configuration object.

    Aggregates all configuration sections. Unknown top-level keys are kept
    in `extra`.
    """

    llm: LLMConfig = field(default_factory=LLMConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    skills: SkillsConfig = field(default_factory=SkillsConfig)
    mcp: MCPConfig = field(default_factory=MCPConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    extra: dict[str, Any] = field(default_factory=dict)
